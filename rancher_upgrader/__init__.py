from .models import (
    Action, ServiceState, DeploymentRequest, ServiceSnapshot,
    FanOutResult, DeploymentResult
)
from .errors import (
    UpgraderError, ConfigurationError, TransportError,
    RemoteStatusError, WaitTimeoutError
)
from .client import RancherClient, HttpConfig
from .engine import UpgradeEngine
from .fanout import FanOutExecutor

__all__ = [
    "Action", "ServiceState", "DeploymentRequest", "ServiceSnapshot",
    "FanOutResult", "DeploymentResult",
    "UpgraderError", "ConfigurationError", "TransportError",
    "RemoteStatusError", "WaitTimeoutError",
    "RancherClient", "HttpConfig", "UpgradeEngine", "FanOutExecutor"
]
