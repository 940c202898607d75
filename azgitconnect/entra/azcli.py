"""Directory backend that shells out to the Azure CLI.

Useful where an ``az login`` session is the only credential available. Every
call asks for ``-o json`` and decodes the result with msgspec; JSON request
bodies are handed over through a temporary file removed after the call.
"""

from __future__ import annotations

import asyncio
import re
import typing as typ

import msgspec

from azgitconnect.entra.errors import (
    ApplicationNotReplicatedError,
    CommandFailedError,
    DirectoryAPIError,
    InsufficientPermissionsError,
    PrincipalNotReplicatedError,
)
from azgitconnect.entra.models import (
    Application,
    FederatedIdentityCredential,
    ServicePrincipal,
    Subscription,
)
from azgitconnect.entra.process import SubprocessRunner, json_temp_file
from azgitconnect.http import RetryPolicy, SleepFn, replication_retrying

if typ.TYPE_CHECKING:
    from azgitconnect.entra.process import CommandRunner

T = typ.TypeVar("T")

AZ = "az"
_ORGANIZATION_URL = "https://graph.microsoft.com/v1.0/organization?$select=id"
_PERMISSION_MARKERS = (
    "authorization_requestdenied",
    "insufficient privileges",
    "authorizationfailed",
)
_RESOURCE_NOT_FOUND_MARKERS = (
    "request_resourcenotfound",
    "does not exist",
)
_SUBSCRIPTION_NOT_FOUND = re.compile(
    r"subscription (?:of )?'[^']*' (?:not found|doesn't exist)", re.IGNORECASE
)
_PRINCIPAL_NOT_FOUND = "principalnotfound"
_APPLICATION_NOT_REPLICATED = "does not reference a valid application object"


def _mentions(stderr: str, markers: tuple[str, ...]) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in markers)


class AzCliDirectoryService:
    """:class:`~azgitconnect.entra.protocol.DirectoryService` over ``az``.

    Parameters
    ----------
    runner
        Command runner; defaults to :class:`SubprocessRunner`.
    retry_policy
        Retry budget for new directory objects that have not replicated yet.
    sleep
        Awaitable sleep used between those retries.

    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialise the service with a command runner."""
        self._runner = runner or SubprocessRunner()
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def aclose(self) -> None:
        """Nothing to release; present for protocol compatibility."""

    async def verify_access(self) -> None:
        """Read the organization record through ``az rest``."""
        await self._az(
            "directory access check",
            "rest",
            "--method",
            "get",
            "--url",
            _ORGANIZATION_URL,
        )

    async def get_tenant_id(self, subscription_id: str) -> str | None:
        """Return the tenant of ``subscription_id`` from ``az account show``."""
        try:
            output = await self._az(
                "subscription lookup",
                "account",
                "show",
                "--subscription",
                subscription_id,
            )
        except CommandFailedError as exc:
            if _SUBSCRIPTION_NOT_FOUND.search(exc.stderr):
                return None
            raise
        return self._decode("subscription lookup", output, Subscription).tenant_id

    async def find_applications(self, display_name: str) -> list[Application]:
        """Return applications listed for ``display_name``."""
        output = await self._az(
            "application lookup", "ad", "app", "list", "--display-name", display_name
        )
        return self._decode("application lookup", output, list[Application])

    async def create_application(self, display_name: str) -> Application:
        """Create an application registration named ``display_name``."""
        output = await self._az(
            "application creation",
            "ad",
            "app",
            "create",
            "--display-name",
            display_name,
        )
        return self._decode("application creation", output, Application)

    async def get_service_principal(self, app_id: str) -> ServicePrincipal | None:
        """Return the service principal for ``app_id``, or ``None``."""
        operation = "service principal lookup"
        try:
            output = await self._az(operation, "ad", "sp", "show", "--id", app_id)
        except CommandFailedError as exc:
            if _mentions(exc.stderr, _RESOURCE_NOT_FOUND_MARKERS):
                return None
            raise
        return self._decode(operation, output, ServicePrincipal)

    async def create_service_principal(self, app_id: str) -> ServicePrincipal:
        """Create the service principal for ``app_id``.

        Retries while the directory cannot yet resolve the new application.
        """
        operation = "service principal creation"
        retrying = replication_retrying(
            self._retry_policy,
            error=ApplicationNotReplicatedError,
            description=f"Application {app_id}",
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    output = await self._az(
                        operation, "ad", "sp", "create", "--id", app_id
                    )
                except CommandFailedError as exc:
                    if _APPLICATION_NOT_REPLICATED in exc.stderr.lower():
                        raise ApplicationNotReplicatedError.pending(app_id) from exc
                    raise
                return self._decode(operation, output, ServicePrincipal)
        msg = "service principal retry loop finished without an outcome"
        raise RuntimeError(msg)  # pragma: no cover - reraise=True always exits

    async def list_federated_credentials(
        self, application_id: str
    ) -> list[FederatedIdentityCredential]:
        """Return the application's federated credentials."""
        output = await self._az(
            "federated credential listing",
            "ad",
            "app",
            "federated-credential",
            "list",
            "--id",
            application_id,
        )
        return self._decode(
            "federated credential listing", output, list[FederatedIdentityCredential]
        )

    async def create_federated_credential(
        self, application_id: str, credential: FederatedIdentityCredential
    ) -> FederatedIdentityCredential:
        """Create ``credential`` from a temporary parameters file."""
        operation = "federated credential creation"
        with json_temp_file(credential) as parameters:
            output = await self._az(
                operation,
                "ad",
                "app",
                "federated-credential",
                "create",
                "--id",
                application_id,
                "--parameters",
                f"@{parameters}",
            )
        return self._decode(operation, output, FederatedIdentityCredential)

    async def ensure_role_assignment(
        self, subscription_id: str, principal_id: str, role_name: str
    ) -> bool:
        """Grant ``role_name`` on the subscription unless already held."""
        scope = f"/subscriptions/{subscription_id}"
        output = await self._az(
            "role assignment listing",
            "role",
            "assignment",
            "list",
            "--assignee",
            principal_id,
            "--role",
            role_name,
            "--scope",
            scope,
        )
        existing = self._decode(
            "role assignment listing", output, list[dict[str, typ.Any]]
        )
        if existing:
            return False

        retrying = replication_retrying(
            self._retry_policy,
            error=PrincipalNotReplicatedError,
            description=f"Service principal {principal_id}",
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                await self._create_role_assignment(scope, principal_id, role_name)
        return True

    async def _create_role_assignment(
        self, scope: str, principal_id: str, role_name: str
    ) -> None:
        try:
            await self._az(
                "role assignment creation",
                "role",
                "assignment",
                "create",
                "--assignee-object-id",
                principal_id,
                "--assignee-principal-type",
                "ServicePrincipal",
                "--role",
                role_name,
                "--scope",
                scope,
            )
        except CommandFailedError as exc:
            if _PRINCIPAL_NOT_FOUND in exc.stderr.lower():
                raise PrincipalNotReplicatedError.pending(principal_id) from exc
            raise

    async def _az(self, operation: str, *args: str) -> str:
        try:
            return await asyncio.to_thread(self._runner.run, AZ, [*args, "-o", "json"])
        except CommandFailedError as exc:
            if _mentions(exc.stderr, _PERMISSION_MARKERS):
                raise InsufficientPermissionsError.for_operation(
                    operation, exc.stderr.strip()
                ) from exc
            raise

    @staticmethod
    def _decode(operation: str, output: str, kind: type[T]) -> T:
        try:
            return msgspec.json.decode(output, type=kind)
        except msgspec.DecodeError as exc:
            raise DirectoryAPIError.unexpected_shape(operation) from exc


__all__ = ["AZ", "AzCliDirectoryService"]
