"""HTTP adapter for Rancher service resources.

Thin wrapper around ``requests.Session`` exposing the two primitive calls the
engine needs: read the service resource, and invoke an action on it. The
adapter maps transport and status failures to typed errors but makes no
decisions of its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests
from requests import exceptions as req_exc

from .errors import (
    RemoteStatusError,
    TransportError,
    build_error_message,
    parse_error_payload,
)
from .logger import get_logger
from .models import Action, ServiceSnapshot

ACCEPTED_STATUSES = {200, 201, 202, 204}
UNPROCESSABLE = 422


@dataclass
class HttpConfig:
    """Transport settings shared by every call of one client.

    Attributes:
        request_timeout_s: Timeout in seconds for a single API request.
    """
    request_timeout_s: float = 30


class RancherClient:
    """Issues service reads and actions against a Rancher service URL."""

    def __init__(
        self,
        cfg: Optional[HttpConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.cfg = cfg or HttpConfig()
        self.session = session if session is not None else requests.Session()
        self.logger = get_logger("client")

    def fetch_state(self, url: str, auth: Optional[Tuple[str, str]] = None) -> ServiceSnapshot:
        """GET the service resource. No ``action`` parameter is sent."""
        context = f"GET {url}"
        try:
            resp = self.session.get(
                url,
                auth=auth,
                headers={"Accept": "application/json"},
                timeout=self.cfg.request_timeout_s,
            )
        except req_exc.RequestException as exc:
            self.logger.error(f"Request to {url} failed: {exc}")
            raise TransportError(f"{context}: {exc}", url=url) from exc

        self._ensure_ok(resp, context, url, action=None)
        return ServiceSnapshot(self._json_dict(resp))

    def invoke_action(
        self,
        url: str,
        action: str,
        auth: Optional[Tuple[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> ServiceSnapshot:
        """POST ``?action=<action>`` with an optional JSON body."""
        context = f"POST {url}?action={action}"
        try:
            resp = self.session.post(
                url,
                params={"action": action},
                json=body,
                auth=auth,
                headers={"Accept": "application/json"},
                timeout=self.cfg.request_timeout_s,
            )
        except req_exc.RequestException as exc:
            self.logger.error(f"Request to {url} failed: {exc}")
            raise TransportError(f"{context}: {exc}", url=url) from exc

        self._ensure_ok(resp, context, url, action=action)
        return ServiceSnapshot(self._json_dict(resp))

    # ------------------------------------------------------------------
    def _ensure_ok(self, resp, ctx: str, url: str, action: Optional[str]) -> None:
        status = resp.status_code
        if status in ACCEPTED_STATUSES:
            return
        if status == UNPROCESSABLE and action is not None and action != Action.UPGRADE.value:
            # Service is already in the state the action would produce
            self.logger.info(f"{ctx} returned {status}, treating as already applied")
            return

        reason = getattr(resp, "reason", None)
        payload = parse_error_payload(resp)
        message = build_error_message(ctx, status, reason, payload)
        self.logger.error(f"Invalid status from {url}: {status} {reason or ''}".rstrip())
        raise RemoteStatusError(message, status=status, reason=reason, url=url, payload=payload)

    @staticmethod
    def _json_dict(resp) -> Dict[str, Any]:
        if resp.status_code == 204 or not getattr(resp, "content", b"x"):
            return {}
        try:
            payload = resp.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    def close(self) -> None:
        self.session.close()
