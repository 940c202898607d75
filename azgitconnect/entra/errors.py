"""Errors raised while reconciling Entra ID and Azure resources."""

from __future__ import annotations

from azgitconnect.errors import AzGitConnectError, ConfigurationError


class DirectoryError(AzGitConnectError, RuntimeError):
    """Base exception for directory-service failures."""


class DirectoryAPIError(DirectoryError):
    """Raised when Graph or Resource Manager answers with an error.

    Attributes
    ----------
    status_code
        HTTP status code, when the failure came from an HTTP response.
    error_code
        Service error code from the ``error.code`` body field, if any.

    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        """Initialise with a message and optional status and error code."""
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)

    @classmethod
    def http_error(
        cls,
        operation: str,
        status_code: int,
        *,
        error_code: str | None = None,
        detail: str = "",
    ) -> DirectoryAPIError:
        """Return an error for a non-2xx response."""
        code = f" {error_code}" if error_code else ""
        suffix = f": {detail}" if detail else ""
        return cls(
            f"{operation} failed with HTTP {status_code}{code}{suffix}",
            status_code=status_code,
            error_code=error_code,
        )

    @classmethod
    def network_error(cls, operation: str, detail: str) -> DirectoryAPIError:
        """Return an error for transport failures that outlived retries."""
        return cls(f"{operation} network error: {detail}")

    @classmethod
    def unexpected_shape(cls, operation: str) -> DirectoryAPIError:
        """Return an error for a body that does not decode."""
        return cls(f"{operation} returned an unexpected response body")


class InsufficientPermissionsError(DirectoryError):
    """Raised when the signed-in identity lacks directory permissions.

    Retrying does not help; an administrator has to grant
    ``Application.ReadWrite.All`` (or admin consent) first.
    """

    @classmethod
    def for_operation(
        cls, operation: str, detail: str = ""
    ) -> InsufficientPermissionsError:
        """Return an error naming the operation that was refused."""
        suffix = f" ({detail})" if detail else ""
        return cls(
            f"Insufficient permissions for {operation}{suffix}. Check the "
            "identity's Microsoft Graph permissions and grant admin consent."
        )


class PrincipalNotReplicatedError(DirectoryError):
    """Raised when a new service principal is not yet visible to ARM."""

    @classmethod
    def pending(cls, principal_id: str) -> PrincipalNotReplicatedError:
        """Return an error for a principal that has not replicated."""
        return cls(f"Service principal {principal_id} has not replicated yet")


class ApplicationNotReplicatedError(DirectoryError):
    """Raised when Graph cannot yet see a new application from its app id."""

    @classmethod
    def pending(cls, app_id: str) -> ApplicationNotReplicatedError:
        """Return an error for an application that has not replicated."""
        return cls(f"Application {app_id} has not replicated yet")


class TenantNotFoundError(ConfigurationError):
    """Raised when the subscription does not resolve to a tenant."""

    @classmethod
    def for_subscription(cls, subscription_id: str) -> TenantNotFoundError:
        """Return an error for an unknown or inaccessible subscription."""
        return cls(f"Failed to retrieve tenant id for subscription {subscription_id}")


class CommandFailedError(DirectoryError):
    """Raised when an external CLI exits with a non-zero status."""

    def __init__(
        self, message: str, *, command: str, returncode: int, stderr: str
    ) -> None:
        """Initialise with the command, exit status and captured stderr."""
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)

    @classmethod
    def exited(
        cls, command: str, args: tuple[str, ...], returncode: int, stderr: str
    ) -> CommandFailedError:
        """Return an error for a failed invocation."""
        joined = " ".join((command, *args))
        return cls(
            f"'{joined}' exited with status {returncode}: {stderr.strip()}",
            command=command,
            returncode=returncode,
            stderr=stderr,
        )


class ExecutableNotFoundError(ConfigurationError):
    """Raised when a required CLI tool is not installed."""

    @classmethod
    def missing(cls, name: str) -> ExecutableNotFoundError:
        """Return an error for an executable absent from ``PATH``."""
        return cls(f"Required executable '{name}' not found in PATH")


class RoleDefinitionNotFoundError(ConfigurationError):
    """Raised when a role name does not resolve at the requested scope."""

    @classmethod
    def named(cls, role_name: str, scope: str) -> RoleDefinitionNotFoundError:
        """Return an error for an unknown role name."""
        return cls(f"Role '{role_name}' is not defined at scope {scope}")


class DirectoryAuthenticationError(DirectoryError):
    """Raised when no Azure credential could produce an access token."""

    @classmethod
    def sign_in_failed(cls, detail: str) -> DirectoryAuthenticationError:
        """Return an error wrapping the credential chain's failure."""
        return cls(f"Azure sign-in failed: {detail}")
