"""Directory backend over Microsoft Graph and Azure Resource Manager REST.

Tokens come from :class:`azure.identity.DefaultAzureCredential`, which picks
up environment credentials, managed identity or an ``az login`` session.
Requests go through :func:`azgitconnect.http.send_with_retry`; this module
only classifies the final response.
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
import time
import typing as typ
import uuid

import httpx
import msgspec
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential

from azgitconnect.entra.errors import (
    ApplicationNotReplicatedError,
    DirectoryAPIError,
    DirectoryAuthenticationError,
    InsufficientPermissionsError,
    PrincipalNotReplicatedError,
    RoleDefinitionNotFoundError,
)
from azgitconnect.entra.models import (
    Application,
    ApplicationList,
    FederatedIdentityCredential,
    FederatedIdentityCredentialList,
    ServiceErrorBody,
    ServicePrincipal,
    Subscription,
)
from azgitconnect.http import (
    RetryPolicy,
    SleepFn,
    replication_retrying,
    response_excerpt,
    send_with_retry,
)
from azgitconnect.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from azure.core.credentials import AccessToken, TokenCredential

    from azgitconnect.entra.models import ServiceErrorDetail

logger = get_logger(__name__)

T = typ.TypeVar("T")

_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_BAD_REQUEST = 400
_HTTP_FORBIDDEN = 403
_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409
_SUBSCRIPTION_API_VERSION = "2022-12-01"
_AUTHORIZATION_API_VERSION = "2022-04-01"
_ROLE_ASSIGNMENT_EXISTS = "RoleAssignmentExists"
_PRINCIPAL_NOT_FOUND = "PrincipalNotFound"
_APPLICATION_NOT_REPLICATED = "does not reference a valid application object"
_TOKEN_REFRESH_MARGIN_S = 300

_DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
_DEFAULT_ARM_BASE_URL = "https://management.azure.com"
_DEFAULT_TIMEOUT_S = 30.0


@dataclasses.dataclass(frozen=True, slots=True)
class GraphDirectoryConfig:
    """Endpoints and timeouts for :class:`GraphDirectoryService`.

    Attributes
    ----------
    graph_base_url
        Microsoft Graph root including the version segment.
    arm_base_url
        Azure Resource Manager root.
    timeout_s
        Per-request timeout in seconds.

    """

    graph_base_url: str = _DEFAULT_GRAPH_BASE_URL
    arm_base_url: str = _DEFAULT_ARM_BASE_URL
    timeout_s: float = _DEFAULT_TIMEOUT_S

    @property
    def graph_scope(self) -> str:
        """Return the token scope for Graph requests."""
        return _default_scope(self.graph_base_url)

    @property
    def arm_scope(self) -> str:
        """Return the token scope for Resource Manager requests."""
        return _default_scope(self.arm_base_url)

    @classmethod
    def from_env(cls) -> GraphDirectoryConfig:
        """Build configuration from environment variables.

        Reads ``AZGITCONNECT_GRAPH_URL`` and ``AZGITCONNECT_ARM_URL`` so that
        sovereign clouds can be targeted; both default to the public cloud.
        """
        return cls(
            graph_base_url=os.environ.get(
                "AZGITCONNECT_GRAPH_URL", _DEFAULT_GRAPH_BASE_URL
            ),
            arm_base_url=os.environ.get("AZGITCONNECT_ARM_URL", _DEFAULT_ARM_BASE_URL),
        )


def _default_scope(base_url: str) -> str:
    url = httpx.URL(base_url)
    return f"{url.scheme}://{url.host}/.default"


def odata_quote(value: str) -> str:
    """Return ``value`` as an OData string literal.

    >>> odata_quote("it's")
    "'it''s'"
    """
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


class _RoleDefinition(msgspec.Struct, frozen=True):
    id: str


class _RoleDefinitionList(msgspec.Struct, frozen=True):
    value: list[_RoleDefinition] = msgspec.field(default_factory=list)


class _RoleAssignmentProperties(msgspec.Struct, frozen=True):
    role_definition_id: str = msgspec.field(name="roleDefinitionId")
    scope: str = ""


class _RoleAssignment(msgspec.Struct, frozen=True):
    properties: _RoleAssignmentProperties


class _RoleAssignmentList(msgspec.Struct, frozen=True):
    value: list[_RoleAssignment] = msgspec.field(default_factory=list)
    next_link: str | None = msgspec.field(default=None, name="nextLink")


class GraphDirectoryService:
    """:class:`~azgitconnect.entra.protocol.DirectoryService` over REST.

    Parameters
    ----------
    config
        Endpoint configuration.
    credential
        Token credential; defaults to ``DefaultAzureCredential``.
    http_client
        Optional ``httpx.AsyncClient`` for testing. When omitted the instance
        creates and owns its own client.
    retry_policy
        Retry budget for transient failures and for new directory objects
        that have not replicated yet.
    sleep
        Awaitable sleep used between retries.
    clock
        Wall clock deciding when a cached access token must be refreshed.

    """

    def __init__(  # noqa: PLR0913
        self,
        config: GraphDirectoryConfig | None = None,
        *,
        credential: TokenCredential | None = None,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: typ.Callable[[], float] = time.time,
    ) -> None:
        """Initialise the service with its endpoints and credential."""
        self._config = config or GraphDirectoryConfig()
        self._owns_credential = credential is None
        self._credential = credential or DefaultAzureCredential()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self._config.timeout_s)
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._tokens: dict[str, AccessToken] = {}
        self._graph = self._config.graph_base_url.rstrip("/")
        self._arm = self._config.arm_base_url.rstrip("/")

    async def aclose(self) -> None:
        """Close owned HTTP and credential resources."""
        if self._owns_client:
            await self._client.aclose()
        if self._owns_credential:
            close = getattr(self._credential, "close", None)
            if close is not None:
                close()

    async def verify_access(self) -> None:
        """Read the tenant's organization record to prove Graph access."""
        operation = "directory access check"
        response = await self._graph_request(
            operation, "GET", f"{self._graph}/organization", params={"$select": "id"}
        )
        self._raise_for_status(operation, response)

    async def get_tenant_id(self, subscription_id: str) -> str | None:
        """Return the tenant id owning ``subscription_id``."""
        operation = "subscription lookup"
        response = await self._arm_request(
            operation,
            "GET",
            f"{self._arm}/subscriptions/{subscription_id}",
            params={"api-version": _SUBSCRIPTION_API_VERSION},
        )
        if response.status_code == _HTTP_NOT_FOUND:
            return None
        self._raise_for_status(operation, response)
        return self._decode(operation, response, Subscription).tenant_id

    async def find_applications(self, display_name: str) -> list[Application]:
        """Return every application whose display name equals ``display_name``."""
        operation = "application lookup"
        apps: list[Application] = []
        url: str | None = f"{self._graph}/applications"
        params: dict[str, str] | None = {
            "$filter": f"displayName eq {odata_quote(display_name)}"
        }
        while url is not None:
            response = await self._graph_request(operation, "GET", url, params=params)
            self._raise_for_status(operation, response)
            page = self._decode(operation, response, ApplicationList)
            apps.extend(page.value)
            url, params = page.next_link, None
        return apps

    async def create_application(self, display_name: str) -> Application:
        """Create an application registration named ``display_name``."""
        operation = "application creation"
        response = await self._graph_request(
            operation,
            "POST",
            f"{self._graph}/applications",
            json={"displayName": display_name},
        )
        self._raise_for_status(operation, response)
        return self._decode(operation, response, Application)

    async def get_service_principal(self, app_id: str) -> ServicePrincipal | None:
        """Return the service principal for ``app_id``, or ``None`` on 404."""
        operation = "service principal lookup"
        response = await self._graph_request(
            operation,
            "GET",
            f"{self._graph}/servicePrincipals(appId={odata_quote(app_id)})",
        )
        if response.status_code == _HTTP_NOT_FOUND:
            return None
        self._raise_for_status(operation, response)
        return self._decode(operation, response, ServicePrincipal)

    async def create_service_principal(self, app_id: str) -> ServicePrincipal:
        """Create the service principal for ``app_id``.

        Right after the application is created Graph may still reject its app
        id; those answers are retried within the retry policy's budget.
        """
        retrying = replication_retrying(
            self._retry_policy,
            error=ApplicationNotReplicatedError,
            description=f"Application {app_id}",
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post_service_principal(app_id)
        msg = "service principal retry loop finished without an outcome"
        raise RuntimeError(msg)  # pragma: no cover - reraise=True always exits

    async def _post_service_principal(self, app_id: str) -> ServicePrincipal:
        operation = "service principal creation"
        response = await self._graph_request(
            operation,
            "POST",
            f"{self._graph}/servicePrincipals",
            json={"appId": app_id},
        )
        if (
            response.status_code == _HTTP_BAD_REQUEST
            and _APPLICATION_NOT_REPLICATED in _error_message(response).lower()
        ):
            raise ApplicationNotReplicatedError.pending(app_id)
        self._raise_for_status(operation, response)
        return self._decode(operation, response, ServicePrincipal)

    async def list_federated_credentials(
        self, application_id: str
    ) -> list[FederatedIdentityCredential]:
        """Return every federated credential on the application object."""
        operation = "federated credential listing"
        credentials: list[FederatedIdentityCredential] = []
        url: str | None = (
            f"{self._graph}/applications/{application_id}/federatedIdentityCredentials"
        )
        while url is not None:
            response = await self._graph_request(operation, "GET", url)
            self._raise_for_status(operation, response)
            page = self._decode(operation, response, FederatedIdentityCredentialList)
            credentials.extend(page.value)
            url = page.next_link
        return credentials

    async def create_federated_credential(
        self, application_id: str, credential: FederatedIdentityCredential
    ) -> FederatedIdentityCredential:
        """Attach ``credential`` to the application object."""
        operation = "federated credential creation"
        response = await self._graph_request(
            operation,
            "POST",
            f"{self._graph}/applications/{application_id}/federatedIdentityCredentials",
            content=msgspec.json.encode(credential),
            headers={"Content-Type": "application/json"},
        )
        self._raise_for_status(operation, response)
        return self._decode(operation, response, FederatedIdentityCredential)

    async def ensure_role_assignment(
        self, subscription_id: str, principal_id: str, role_name: str
    ) -> bool:
        """Grant ``role_name`` on the subscription unless already held.

        A freshly created service principal can take a while to become visible
        to Resource Manager; ``PrincipalNotFound`` answers are retried within
        the retry policy's budget.
        """
        scope = f"/subscriptions/{subscription_id}"
        role_definition_id = await self._find_role_definition(scope, role_name)
        if await self._has_role_assignment(scope, principal_id, role_definition_id):
            return False

        retrying = replication_retrying(
            self._retry_policy,
            error=PrincipalNotReplicatedError,
            description=f"Service principal {principal_id}",
            sleep=self._sleep,
        )
        async for attempt in retrying:
            with attempt:
                return await self._create_role_assignment(
                    scope, principal_id, role_definition_id
                )
        msg = "role assignment retry loop finished without an outcome"
        raise RuntimeError(msg)  # pragma: no cover - reraise=True always exits

    async def _find_role_definition(self, scope: str, role_name: str) -> str:
        operation = "role definition lookup"
        response = await self._arm_request(
            operation,
            "GET",
            f"{self._arm}{scope}/providers/Microsoft.Authorization/roleDefinitions",
            params={
                "$filter": f"roleName eq {odata_quote(role_name)}",
                "api-version": _AUTHORIZATION_API_VERSION,
            },
        )
        self._raise_for_status(operation, response)
        definitions = self._decode(operation, response, _RoleDefinitionList).value
        if not definitions:
            raise RoleDefinitionNotFoundError.named(role_name, scope)
        return definitions[0].id

    async def _has_role_assignment(
        self, scope: str, principal_id: str, role_definition_id: str
    ) -> bool:
        operation = "role assignment listing"
        url: str | None = (
            f"{self._arm}{scope}/providers/Microsoft.Authorization/roleAssignments"
        )
        params: dict[str, str] | None = {
            "$filter": f"assignedTo({odata_quote(principal_id)})",
            "api-version": _AUTHORIZATION_API_VERSION,
        }
        while url is not None:
            response = await self._arm_request(operation, "GET", url, params=params)
            self._raise_for_status(operation, response)
            page = self._decode(operation, response, _RoleAssignmentList)
            for assignment in page.value:
                props = assignment.properties
                if (
                    props.role_definition_id.lower() == role_definition_id.lower()
                    and props.scope.lower() == scope.lower()
                ):
                    return True
            url, params = page.next_link, None
        return False

    async def _create_role_assignment(
        self, scope: str, principal_id: str, role_definition_id: str
    ) -> bool:
        operation = "role assignment creation"
        response = await self._arm_request(
            operation,
            "PUT",
            f"{self._arm}{scope}/providers/Microsoft.Authorization/roleAssignments/"
            f"{uuid.uuid4()}",
            params={"api-version": _AUTHORIZATION_API_VERSION},
            json={
                "properties": {
                    "roleDefinitionId": role_definition_id,
                    "principalId": principal_id,
                    "principalType": "ServicePrincipal",
                }
            },
        )
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            error_code = _error_code(response)
            if error_code == _PRINCIPAL_NOT_FOUND:
                raise PrincipalNotReplicatedError.pending(principal_id)
            if (
                response.status_code == _HTTP_CONFLICT
                and error_code == _ROLE_ASSIGNMENT_EXISTS
            ):
                log_info(logger, "Role assignment already exists for %s", principal_id)
                return False
        self._raise_for_status(operation, response)
        return True

    async def _graph_request(
        self,
        operation: str,
        method: str,
        url: str,
        **kwargs: typ.Any,  # noqa: ANN401
    ) -> httpx.Response:
        return await self._send(
            operation, self._config.graph_scope, method, url, **kwargs
        )

    async def _arm_request(
        self,
        operation: str,
        method: str,
        url: str,
        **kwargs: typ.Any,  # noqa: ANN401
    ) -> httpx.Response:
        return await self._send(
            operation, self._config.arm_scope, method, url, **kwargs
        )

    async def _send(
        self,
        operation: str,
        scope: str,
        method: str,
        url: str,
        **kwargs: typ.Any,  # noqa: ANN401
    ) -> httpx.Response:
        token = await self._access_token(scope)
        headers = {
            "Authorization": f"Bearer {token}",
            **kwargs.pop("headers", {}),
        }
        try:
            return await send_with_retry(
                self._client,
                method,
                url,
                policy=self._retry_policy,
                sleep=self._sleep,
                headers=headers,
                **kwargs,
            )
        except httpx.TransportError as exc:
            raise DirectoryAPIError.network_error(operation, str(exc)) from exc

    async def _access_token(self, scope: str) -> str:
        """Return a bearer token for ``scope``, reusing it until near expiry.

        The synchronous credential chain may start an ``az`` process, so it
        runs in a worker thread and is only consulted when no cached token
        outlives the refresh margin.
        """
        cached = self._tokens.get(scope)
        now = self._clock()
        if cached is not None and cached.expires_on - _TOKEN_REFRESH_MARGIN_S > now:
            return cached.token
        try:
            token = await asyncio.to_thread(self._credential.get_token, scope)
        except ClientAuthenticationError as exc:
            raise DirectoryAuthenticationError.sign_in_failed(exc.message) from exc
        self._tokens[scope] = token
        return token.token

    @staticmethod
    def _raise_for_status(operation: str, response: httpx.Response) -> None:
        if response.status_code < _HTTP_ERROR_STATUS_THRESHOLD:
            return
        error_code = _error_code(response)
        if response.status_code == _HTTP_FORBIDDEN:
            raise InsufficientPermissionsError.for_operation(
                operation, error_code or ""
            )
        raise DirectoryAPIError.http_error(
            operation,
            response.status_code,
            error_code=error_code,
            detail=response_excerpt(response),
        )

    @staticmethod
    def _decode(operation: str, response: httpx.Response, kind: type[T]) -> T:
        try:
            return msgspec.json.decode(response.content, type=kind)
        except msgspec.DecodeError as exc:
            raise DirectoryAPIError.unexpected_shape(operation) from exc


def _error_detail(response: httpx.Response) -> ServiceErrorDetail | None:
    try:
        body = msgspec.json.decode(response.content, type=ServiceErrorBody)
    except msgspec.DecodeError:
        return None
    return body.error


def _error_code(response: httpx.Response) -> str | None:
    detail = _error_detail(response)
    return detail.code if detail is not None else None


def _error_message(response: httpx.Response) -> str:
    detail = _error_detail(response)
    return (detail.message or "") if detail is not None else ""


__all__ = ["GraphDirectoryConfig", "GraphDirectoryService", "odata_quote"]
