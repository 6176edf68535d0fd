from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from .errors import ConfigurationError

ENDPOINT_DELIMITER = "|"
DEFAULT_MAX_WAIT_SECONDS = 10 * 60


class Action(str, Enum):
    UPGRADE = "upgrade"
    FINISH_UPGRADE = "finishupgrade"
    ROLLBACK = "rollback"


class ServiceState(str, Enum):
    ACTIVE = "active"
    UPGRADED = "upgraded"


@dataclass(frozen=True)
class DeploymentRequest:
    """Configuration for one orchestration run"""
    target_endpoint: str
    action: str = Action.UPGRADE.value
    user: Optional[str] = None
    password: Optional[str] = None
    new_image: Optional[str] = None
    new_tag: Optional[str] = None
    update_environment: bool = False
    environment_overrides: Tuple[str, ...] = ()  # Unparsed KEY=VALUE strings
    force_finish: bool = False  # Finish a pending upgrade before upgrading again
    wait: bool = False  # Block until the service settles
    max_wait_seconds: int = DEFAULT_MAX_WAIT_SECONDS

    def __post_init__(self):
        # Blank or delimiter-only targets ("|", " | ") name no endpoint
        if not self.target_endpoint or not self.endpoints():
            raise ConfigurationError("'url' is required")
        if self.max_wait_seconds <= 0:
            raise ConfigurationError("max wait must be a positive duration")
        # Lists from the CLI are frozen so derived requests never share them
        if not isinstance(self.environment_overrides, tuple):
            object.__setattr__(self, "environment_overrides", tuple(self.environment_overrides))

    @property
    def auth(self):
        if self.user is None and self.password is None:
            return None
        return (self.user or "", self.password or "")

    def endpoints(self):
        """Split the target into its individual endpoints"""
        parts = [p.strip() for p in self.target_endpoint.split(ENDPOINT_DELIMITER)]
        return [p for p in parts if p]

    def is_fan_out(self):
        return len(self.endpoints()) > 1

    def derive(self, **overrides):
        """Return a new validated request with some fields replaced"""
        return replace(self, **overrides)


@dataclass(frozen=True)
class ServiceSnapshot:
    """Remote service state at one point in time"""
    document: dict

    @property
    def state(self):
        return self.document.get("state")

    @property
    def transitioning(self):
        return self.document.get("transitioning") == "yes"

    @property
    def transitioning_message(self):
        return self.document.get("transitioningMessage") or ""

    @property
    def launch_config(self):
        return self.document.get("launchConfig") or {}


@dataclass
class FanOutResult:
    """Outcome for a single target endpoint"""
    endpoint: str
    succeeded: bool
    error: Optional[str] = None
    state: Optional[str] = None  # Last observed service state, if any


@dataclass
class DeploymentResult:
    """Aggregate result of a run over every target"""
    success: bool
    action: Optional[str] = None
    results: list = field(default_factory=list)  # FanOutResult per endpoint
    history: list = field(default_factory=list)  # Structured events in emission order

    @property
    def failed(self):
        return [r.endpoint for r in self.results if not r.succeeded]

    @property
    def succeeded(self):
        return [r.endpoint for r in self.results if r.succeeded]
