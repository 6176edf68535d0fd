import copy

IMAGE_FIELD = "imageUuid"
ENVIRONMENT_FIELD = "environment"


def _is_blank(value):
    return value is None or not str(value).strip()


def apply_tag(image_reference, new_tag):
    """Replace the tag segment of an image reference, or append one"""
    if _is_blank(new_tag):
        return image_reference

    segments = image_reference.split(":")
    if len(segments) == 1:
        return f"{segments[0]}:{new_tag}"

    segments[-1] = new_tag
    return ":".join(segments)


def apply_image(image_reference, new_image):
    """Replace the repository segment, keeping the tag when there is one"""
    if _is_blank(new_image):
        return image_reference

    segments = image_reference.split(":")
    if len(segments) == 1:
        # Nothing to preserve, the whole reference goes
        return new_image

    segments[-2] = new_image
    return ":".join(segments)


def rewrite_image_reference(image_reference, new_image=None, new_tag=None):
    """Apply tag then image rewrite, each on a fresh split of the current value"""
    image_reference = apply_tag(image_reference, new_tag)
    return apply_image(image_reference, new_image)


def parse_environment(overrides):
    """Build an environment mapping from KEY=VALUE strings"""
    environment = {}
    for entry in overrides:
        key, _, value = entry.partition("=")
        environment[key] = value
    return environment


def mutate_launch_config(launch_config, request):
    """Return a copy of the launch configuration with the request's rewrites applied.

    Only the image reference and (when requested) the environment change;
    every other field is carried over untouched.
    """
    mutated = copy.deepcopy(launch_config)

    if not _is_blank(request.new_image) or not _is_blank(request.new_tag):
        mutated[IMAGE_FIELD] = rewrite_image_reference(
            mutated.get(IMAGE_FIELD) or "", request.new_image, request.new_tag
        )

    if request.update_environment:
        mutated[ENVIRONMENT_FIELD] = parse_environment(request.environment_overrides)

    return mutated
