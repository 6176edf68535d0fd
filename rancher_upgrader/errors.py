from typing import Any, Optional


class UpgraderError(RuntimeError):
    """Base class for every failure raised while driving an upgrade."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class ConfigurationError(UpgraderError):
    """Invalid request: missing target URL or unknown action."""


class TransportError(UpgraderError):
    """Connection level failure while reaching the Rancher API."""


class RemoteStatusError(UpgraderError):
    """Rancher answered with a status outside the accepted set."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        reason: Optional[str] = None,
        url: Optional[str] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status = status
        self.reason = reason
        self.payload = payload


class WaitTimeoutError(UpgraderError):
    """The service never reached the expected state."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        expected_state: Optional[str] = None,
        last_state: Optional[str] = None,
    ) -> None:
        super().__init__(message, url=url)
        self.expected_state = expected_state
        self.last_state = last_state


def parse_error_payload(resp: Any) -> Any:
    """Best-effort extraction of error payload without raising."""
    try:
        return resp.json()
    except Exception:
        snippet = getattr(resp, "text", "")
        if not snippet:
            return None
        return snippet[:400]


def build_error_message(ctx: str, status: int, reason: Optional[str], payload: Any) -> str:
    detail = None
    if isinstance(payload, dict):
        # Rancher error documents carry "message" and "code"
        for key in ("message", "detail", "code"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                detail = value.strip()
                break
    elif isinstance(payload, str) and payload.strip():
        detail = payload.strip()

    status_text = f"HTTP {status} {reason}" if reason else f"HTTP {status}"
    if detail:
        return f"{ctx}: {detail} ({status_text})"
    return f"{ctx}: {status_text}"
