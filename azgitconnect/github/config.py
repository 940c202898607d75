"""Configuration for the GitHub device flow and secrets clients."""

from __future__ import annotations

import dataclasses
import os

from azgitconnect.github.errors import GitHubConfigError

# Public client id of the OAuth app registered for device flow.
_DEFAULT_CLIENT_ID = "Ov23liBhP6pOLo4HJgKO"
_DEFAULT_SCOPE = "repo read:org"
_DEFAULT_DEVICE_CODE_URL = "https://github.com/login/device/code"
_DEFAULT_ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105
_DEFAULT_API_BASE_URL = "https://api.github.com"
_DEFAULT_TIMEOUT_S = 20.0
_DEFAULT_EXPIRY_GRACE_S = 100.0
USER_AGENT = "azgitconnect/0.1"


@dataclasses.dataclass(frozen=True, slots=True)
class DeviceFlowConfig:
    """Configuration for the OAuth device authorization grant.

    Attributes
    ----------
    client_id
        OAuth app client id with device flow enabled.
    scope
        Space-separated scopes requested for the token.
    device_code_url
        Device-code issuance endpoint.
    access_token_url
        Token polling endpoint.
    timeout_s
        Per-request timeout in seconds.
    expiry_grace_s
        Seconds added to ``expires_in`` before the session is treated as
        expired locally.

    """

    client_id: str = _DEFAULT_CLIENT_ID
    scope: str = _DEFAULT_SCOPE
    device_code_url: str = _DEFAULT_DEVICE_CODE_URL
    access_token_url: str = _DEFAULT_ACCESS_TOKEN_URL
    timeout_s: float = _DEFAULT_TIMEOUT_S
    expiry_grace_s: float = _DEFAULT_EXPIRY_GRACE_S
    user_agent: str = USER_AGENT

    @classmethod
    def from_env(cls) -> DeviceFlowConfig:
        """Build configuration from environment variables.

        Reads ``AZGITCONNECT_GITHUB_CLIENT_ID`` (optional override of the
        bundled client id) and ``AZGITCONNECT_GITHUB_SCOPE``.

        Raises
        ------
        GitHubConfigError
            If the client id override is blank.

        """
        client_id = os.environ.get("AZGITCONNECT_GITHUB_CLIENT_ID", _DEFAULT_CLIENT_ID)
        if not client_id.strip():
            raise GitHubConfigError.empty_client_id()
        scope = os.environ.get("AZGITCONNECT_GITHUB_SCOPE", _DEFAULT_SCOPE)
        return cls(client_id=client_id.strip(), scope=scope)


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubSecretsConfig:
    """Configuration for the Actions secrets REST client."""

    repository: str
    token: str
    api_base_url: str = _DEFAULT_API_BASE_URL
    timeout_s: float = _DEFAULT_TIMEOUT_S
    user_agent: str = USER_AGENT
