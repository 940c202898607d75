"""Entra ID application, federated credential and role reconciliation."""

from __future__ import annotations

from .credentials import (
    GITHUB_OIDC_ISSUER,
    PULL_REQUEST_CREDENTIAL_NAME,
    TOKEN_EXCHANGE_AUDIENCE,
    branch_credential_name,
    branch_subject,
    pull_request_subject,
    required_credentials,
)
from .errors import (
    ApplicationNotReplicatedError,
    CommandFailedError,
    DirectoryAPIError,
    DirectoryAuthenticationError,
    DirectoryError,
    ExecutableNotFoundError,
    InsufficientPermissionsError,
    PrincipalNotReplicatedError,
    RoleDefinitionNotFoundError,
    TenantNotFoundError,
)
from .factory import Backend, create_provisioner
from .models import (
    Application,
    FederatedIdentityCredential,
    GitHubSecretData,
    ProvisionRequest,
    ServicePrincipal,
)
from .protocol import DirectoryService, Provisioner
from .provisioner import IdentityProvisioner

__all__ = [
    "GITHUB_OIDC_ISSUER",
    "PULL_REQUEST_CREDENTIAL_NAME",
    "TOKEN_EXCHANGE_AUDIENCE",
    "Application",
    "ApplicationNotReplicatedError",
    "Backend",
    "CommandFailedError",
    "DirectoryAPIError",
    "DirectoryAuthenticationError",
    "DirectoryError",
    "DirectoryService",
    "ExecutableNotFoundError",
    "FederatedIdentityCredential",
    "GitHubSecretData",
    "IdentityProvisioner",
    "InsufficientPermissionsError",
    "PrincipalNotReplicatedError",
    "ProvisionRequest",
    "Provisioner",
    "RoleDefinitionNotFoundError",
    "ServicePrincipal",
    "TenantNotFoundError",
    "branch_credential_name",
    "branch_subject",
    "create_provisioner",
    "pull_request_subject",
    "required_credentials",
]
