import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict
from .client import HttpConfig, RancherClient
from .errors import ConfigurationError
from .fanout import FanOutExecutor
from .logger import setup_logging, get_logger
from .models import Action, DeploymentRequest

BANNER = "RANCHER UPGRADER"


class UpgraderArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with 1 like every other validation failure"""

    def error(self, message):
        self.print_usage(sys.stderr)
        print(f" - {message}", file=sys.stderr)
        sys.exit(1)


def build_parser():
    parser = UpgraderArgumentParser(
        prog="rancher-upgrader",
        description="Rancher Upgrader - Upgrade, rollback and finish upgrades.",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    sub = parser.add_subparsers(dest="cmd")

    execute = sub.add_parser("execute", help="Execute operation")
    execute.add_argument("action", help="Action like 'upgrade' 'finishupgrade' 'rollback'")
    execute.add_argument("-r", "--url", default=os.environ.get("RANCHER_URL"),
                         help="API url for rancher service, several joined with '|'")
    execute.add_argument("-u", "--user", default=os.environ.get("RANCHER_USER"),
                         help="User for authentication with rancher API")
    execute.add_argument("-p", "--pass", dest="password", default=os.environ.get("RANCHER_PASS"),
                         help="Pass for authentication with rancher API")
    execute.add_argument("-i", "--image", help="New image")
    execute.add_argument("-t", "--tag", help="New image tag")
    execute.add_argument("-f", "--force", action="store_true", help="Force finish if upgraded")
    execute.add_argument("-k", "--update-env", action="store_true", help="Update environment variables")
    execute.add_argument("-w", "--wait", action="store_true", help="Wait complete")
    execute.add_argument("-e", "--env", action="append", default=[], help="Setup env var (KEY=VALUE)")
    execute.add_argument("-m", "--max-wait", type=int, default=10, help="Max wait in minutes")
    execute.add_argument("--timeout", type=float, default=30, help="HTTP request timeout in seconds")
    return parser


def build_request(args):
    return DeploymentRequest(
        target_endpoint=args.url or "",
        action=args.action,
        user=args.user,
        password=args.password,
        new_image=args.image,
        new_tag=args.tag,
        update_environment=args.update_env,
        environment_overrides=tuple(args.env),
        force_finish=args.force,
        wait=args.wait,
        max_wait_seconds=args.max_wait * 60,
    )


def main():
    parser = build_parser()
    args = parser.parse_args()
    if args.cmd is None:
        parser.print_help()
        sys.exit(0)

    setup_logging(args.log_level, json_format=args.json_logs)
    logger = get_logger("cli")
    logger.info(BANNER)

    try:
        request = build_request(args)
        Action(request.action)
    except ConfigurationError as e:
        print(f" - {e}")
        sys.exit(1)
    except ValueError:
        print(" - Invalid action, try use upgrade, finishupgrade or rollback")
        sys.exit(1)

    client = RancherClient(HttpConfig(request_timeout_s=args.timeout))
    try:
        result = asyncio.run(FanOutExecutor(client).run(request))
    except Exception as e:
        logger.error(f"Ooops! Exception: {e}")
        sys.exit(1)
    finally:
        client.close()

    print(json.dumps(asdict(result), indent=2))
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
