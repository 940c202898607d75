"""GitHub OAuth and REST errors."""

from __future__ import annotations

from azgitconnect.errors import AzGitConnectError, ConfigurationError


class GitHubAPIError(AzGitConnectError, RuntimeError):
    """Raised when GitHub returns an error response or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(
        cls, operation: str, status_code: int, body: str = ""
    ) -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        detail = f": {body}" if body else ""
        return cls(
            f"GitHub {operation} failed with HTTP {status_code}{detail}",
            status_code=status_code,
        )

    @classmethod
    def network_error(cls, operation: str, detail: str) -> GitHubAPIError:
        """Return an error for transport failures that outlived retries."""
        return cls(f"GitHub {operation} network error: {detail}")


class GitHubResponseShapeError(AzGitConnectError, RuntimeError):
    """Raised when GitHub responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitHub response missing expected field: {field}")

    @classmethod
    def invalid_json(cls, operation: str) -> GitHubResponseShapeError:
        """Return an error for a body that does not decode."""
        return cls(f"GitHub {operation} returned a body that is not the expected JSON")


class GitHubConfigError(ConfigurationError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def empty_client_id(cls) -> GitHubConfigError:
        """Return an error when the OAuth client id is blank."""
        return cls("GitHub OAuth client id must be non-empty")

    @classmethod
    def empty_token(cls) -> GitHubConfigError:
        """Return an error when the provided token is empty."""
        return cls("GitHub token must be non-empty")


class DeviceFlowError(AzGitConnectError):
    """Base class for terminal device authorization outcomes."""


class DeviceCodeExpiredError(DeviceFlowError):
    """Raised when the device code expires before the user approves it."""

    @classmethod
    def expired(cls, expires_in: int) -> DeviceCodeExpiredError:
        """Return the error shown to the operator on expiry."""
        return cls(
            f"Device code expired after {expires_in}s without approval; "
            "restart authentication"
        )


class DeviceFlowDeniedError(DeviceFlowError):
    """Raised when the provider ends the device flow with a denial."""

    def __init__(self, message: str, *, error_code: str) -> None:
        """Initialise with the provider's ``error`` discriminator."""
        self.error_code = error_code
        super().__init__(message)

    @classmethod
    def denied(
        cls, error_code: str, description: str | None = None
    ) -> DeviceFlowDeniedError:
        """Return an error for a terminal OAuth ``error`` response."""
        detail = f" ({description})" if description else ""
        return cls(
            f"GitHub device authorization failed: {error_code}{detail}",
            error_code=error_code,
        )
