"""Idempotent reconciliation of the Entra side of a GitHub OIDC connection.

Every step checks the directory's current state before mutating it, so a run
that failed half-way can simply be repeated. The find-or-create of the
application is not atomic: two concurrent runs with the same display name can
both create an application. The tool is meant for a single operator and does
not try to prevent that race.
"""

from __future__ import annotations

import typing as typ

from azgitconnect.entra.credentials import required_credentials
from azgitconnect.entra.errors import TenantNotFoundError
from azgitconnect.entra.models import GitHubSecretData
from azgitconnect.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from azgitconnect.entra.models import (
        Application,
        ProvisionRequest,
        ServicePrincipal,
    )
    from azgitconnect.entra.protocol import DirectoryService

logger = get_logger(__name__)


class IdentityProvisioner:
    """Reconcile application, service principal, credentials and role grant.

    Parameters
    ----------
    directory
        Directory backend: Microsoft Graph over REST or the ``az`` CLI.

    """

    def __init__(self, directory: DirectoryService) -> None:
        """Initialise the provisioner with a directory backend."""
        self._directory = directory

    async def aclose(self) -> None:
        """Close the directory backend."""
        await self._directory.aclose()

    async def provision(self, request: ProvisionRequest) -> GitHubSecretData:
        """Ensure every Azure resource the GitHub workflow needs exists.

        Parameters
        ----------
        request
            Application name, subscription and repository coordinates.

        Returns
        -------
        GitHubSecretData
            The application's client id, the tenant id and the subscription id.

        Raises
        ------
        TenantNotFoundError
            If the subscription does not resolve to a tenant.
        InsufficientPermissionsError
            If the signed-in identity may not manage applications.
        DirectoryAPIError
            For any other directory failure.

        """
        await self._directory.verify_access()

        tenant_id = await self._directory.get_tenant_id(request.subscription_id)
        if not tenant_id:
            raise TenantNotFoundError.for_subscription(request.subscription_id)

        application = await self.ensure_application(request.app_name)
        principal = await self.ensure_service_principal(application.app_id)
        await self.ensure_federated_credentials(application, request)

        if request.role:
            await self.ensure_role_assignment(request, principal)
        else:
            log_info(logger, "Role assignment skipped")

        return GitHubSecretData(
            app_id=application.app_id,
            tenant_id=tenant_id,
            subscription_id=request.subscription_id,
        )

    async def ensure_application(self, display_name: str) -> Application:
        """Return the application named ``display_name``, creating it if absent."""
        matches = [
            app
            for app in await self._directory.find_applications(display_name)
            if app.display_name == display_name
        ]
        if not matches:
            log_info(logger, "Creating application %s", display_name)
            created = await self._directory.create_application(display_name)
            log_info(logger, "Application created with app id %s", created.app_id)
            return created

        if len(matches) > 1:
            log_warning(
                logger,
                "%d applications are named %s; using %s (app id %s). "
                "Directory ordering is not guaranteed, rename or delete the "
                "duplicates to make this deterministic.",
                len(matches),
                display_name,
                matches[0].id,
                matches[0].app_id,
            )
        application = matches[0]
        log_info(
            logger,
            "Reusing application %s (app id %s)",
            display_name,
            application.app_id,
        )
        return application

    async def ensure_service_principal(self, app_id: str) -> ServicePrincipal:
        """Return the service principal for ``app_id``, creating it if absent."""
        principal = await self._directory.get_service_principal(app_id)
        if principal is not None:
            log_info(logger, "Service principal for %s already exists", app_id)
            return principal

        log_info(logger, "Creating service principal for %s", app_id)
        return await self._directory.create_service_principal(app_id)

    async def ensure_federated_credentials(
        self, application: Application, request: ProvisionRequest
    ) -> list[str]:
        """Create the branch and pull-request credentials that are missing.

        Returns
        -------
        list[str]
            Names of the credentials created by this call.

        """
        existing = await self._directory.list_federated_credentials(application.id)
        existing_names = {credential.name for credential in existing}

        created: list[str] = []
        for credential in required_credentials(
            request.owner, request.repo, request.branch
        ):
            if credential.name in existing_names:
                log_info(
                    logger,
                    "Federated identity credential %s already exists",
                    credential.name,
                )
                continue
            log_info(
                logger,
                "Adding federated identity credential %s for %s",
                credential.name,
                credential.subject,
            )
            await self._directory.create_federated_credential(
                application.id, credential
            )
            created.append(credential.name)
        return created

    async def ensure_role_assignment(
        self, request: ProvisionRequest, principal: ServicePrincipal
    ) -> None:
        """Grant the requested role at subscription scope."""
        role = typ.cast("str", request.role)
        created = await self._directory.ensure_role_assignment(
            request.subscription_id, principal.id, role
        )
        if created:
            log_info(
                logger,
                "Assigned %s on subscription %s",
                role,
                request.subscription_id,
            )
        else:
            log_info(
                logger,
                "%s already assigned on subscription %s",
                role,
                request.subscription_id,
            )
