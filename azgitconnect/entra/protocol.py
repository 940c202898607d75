"""Capability protocols for identity provisioning."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from azgitconnect.entra.models import (
        Application,
        FederatedIdentityCredential,
        GitHubSecretData,
        ProvisionRequest,
        ServicePrincipal,
    )


@typ.runtime_checkable
class Provisioner(typ.Protocol):
    """Protocol for reconciling the Azure side of a GitHub OIDC connection.

    Implementations are selected once at startup (see
    :func:`azgitconnect.entra.factory.create_provisioner`) and must be safe to
    re-run to completion after a partial failure.

    Examples
    --------
    >>> from azgitconnect.entra import IdentityProvisioner, Provisioner
    >>> isinstance(IdentityProvisioner(directory=...), Provisioner)
    True

    """

    async def provision(self, request: ProvisionRequest) -> GitHubSecretData:
        """Ensure the application, credentials and role grant exist.

        Parameters
        ----------
        request
            Application name, subscription and repository coordinates.

        Returns
        -------
        GitHubSecretData
            Client id, tenant id and subscription id for the workflow.

        """
        ...

    async def aclose(self) -> None:
        """Release any owned resources."""
        ...


class DirectoryService(typ.Protocol):
    """Minimal directory surface the provisioner reconciles against.

    Lookups report absence with an empty list or ``None``; only real failures
    raise. Permission refusals raise
    :class:`~azgitconnect.entra.errors.InsufficientPermissionsError`.
    """

    async def verify_access(self) -> None:
        """Fail early when the signed-in identity cannot use the directory."""
        ...

    async def get_tenant_id(self, subscription_id: str) -> str | None:
        """Return the tenant owning ``subscription_id``, or ``None``."""
        ...

    async def find_applications(self, display_name: str) -> list[Application]:
        """Return applications whose display name is ``display_name``."""
        ...

    async def create_application(self, display_name: str) -> Application:
        """Create an application registration."""
        ...

    async def get_service_principal(self, app_id: str) -> ServicePrincipal | None:
        """Return the service principal for ``app_id``, or ``None``."""
        ...

    async def create_service_principal(self, app_id: str) -> ServicePrincipal:
        """Create the service principal for ``app_id``."""
        ...

    async def list_federated_credentials(
        self, application_id: str
    ) -> list[FederatedIdentityCredential]:
        """Return every credential attached to the application object."""
        ...

    async def create_federated_credential(
        self, application_id: str, credential: FederatedIdentityCredential
    ) -> FederatedIdentityCredential:
        """Attach ``credential`` to the application object."""
        ...

    async def ensure_role_assignment(
        self, subscription_id: str, principal_id: str, role_name: str
    ) -> bool:
        """Grant ``role_name`` at subscription scope.

        Returns
        -------
        bool
            ``True`` when a new assignment was created, ``False`` when the
            principal already held the role.

        """
        ...

    async def aclose(self) -> None:
        """Release any owned resources."""
        ...
