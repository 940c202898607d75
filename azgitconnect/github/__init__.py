"""GitHub device-flow authentication and Actions secret publishing."""

from __future__ import annotations

from .config import DeviceFlowConfig, GitHubSecretsConfig
from .device_flow import DeviceFlowAuthenticator, DeviceFlowState
from .errors import (
    DeviceCodeExpiredError,
    DeviceFlowDeniedError,
    DeviceFlowError,
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
)
from .models import (
    DeviceCodeSession,
    GitHubPublicKey,
    PublishReport,
    SealedSecret,
    SecretPublishResult,
)
from .secrets import SecretPublisher

__all__ = [
    "DeviceCodeExpiredError",
    "DeviceCodeSession",
    "DeviceFlowAuthenticator",
    "DeviceFlowConfig",
    "DeviceFlowDeniedError",
    "DeviceFlowError",
    "DeviceFlowState",
    "GitHubAPIError",
    "GitHubConfigError",
    "GitHubPublicKey",
    "GitHubResponseShapeError",
    "GitHubSecretsConfig",
    "PublishReport",
    "SealedSecret",
    "SecretPublishResult",
    "SecretPublisher",
]
