"""Typed records for Entra ID resources and provisioning results.

Wire names are mapped explicitly with ``msgspec.field(name=...)``; unknown
fields in service responses are ignored.
"""

from __future__ import annotations

import dataclasses

import msgspec


class Application(msgspec.Struct, frozen=True, kw_only=True):
    """Entra application registration.

    ``id`` is the directory object id used in Graph URLs; ``app_id`` is the
    client id that GitHub workflows log in with.
    """

    id: str
    app_id: str = msgspec.field(name="appId")
    display_name: str = msgspec.field(name="displayName")


class ServicePrincipal(msgspec.Struct, frozen=True, kw_only=True):
    """Service principal companion of an application."""

    id: str
    app_id: str = msgspec.field(name="appId")


class FederatedIdentityCredential(
    msgspec.Struct, frozen=True, kw_only=True, omit_defaults=True
):
    """Trust statement letting an external OIDC token sign in as the app."""

    name: str
    issuer: str
    subject: str
    audiences: tuple[str, ...]
    description: str | None = None


class ApplicationList(msgspec.Struct, frozen=True):
    """Graph collection page of applications."""

    value: list[Application] = msgspec.field(default_factory=list)
    next_link: str | None = msgspec.field(default=None, name="@odata.nextLink")


class FederatedIdentityCredentialList(msgspec.Struct, frozen=True):
    """Graph collection page of federated identity credentials."""

    value: list[FederatedIdentityCredential] = msgspec.field(default_factory=list)
    next_link: str | None = msgspec.field(default=None, name="@odata.nextLink")


class ServiceErrorDetail(msgspec.Struct, frozen=True):
    """``error`` object shared by Graph and Resource Manager error bodies."""

    code: str | None = None
    message: str | None = None


class ServiceErrorBody(msgspec.Struct, frozen=True):
    """Error envelope ``{"error": {"code": ..., "message": ...}}``."""

    error: ServiceErrorDetail | None = None


AZURE_CLIENT_ID = "AZURE_CLIENT_ID"
AZURE_TENANT_ID = "AZURE_TENANT_ID"
AZURE_SUBSCRIPTION_ID = "AZURE_SUBSCRIPTION_ID"


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubSecretData:
    """Identifiers a GitHub workflow needs for ``azure/login`` with OIDC."""

    app_id: str
    tenant_id: str
    subscription_id: str

    def as_secrets(self) -> tuple[tuple[str, str], ...]:
        """Return the ``(secret name, value)`` pairs in publish order."""
        return (
            (AZURE_CLIENT_ID, self.app_id),
            (AZURE_TENANT_ID, self.tenant_id),
            (AZURE_SUBSCRIPTION_ID, self.subscription_id),
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ProvisionRequest:
    """Inputs for one provisioning run.

    Attributes
    ----------
    app_name
        Display name used to find or create the application.
    subscription_id
        Subscription that supplies the tenant and the role scope.
    owner
        GitHub repository owner.
    repo
        GitHub repository name.
    branch
        Branch trusted by the branch credential.
    role
        Role granted at subscription scope, or ``None`` to skip the grant.

    """

    app_name: str
    subscription_id: str
    owner: str
    repo: str
    branch: str = "main"
    role: str | None = "Contributor"


class Subscription(msgspec.Struct, frozen=True, kw_only=True):
    """Subscription record as returned by ARM and ``az account show``."""

    id: str
    tenant_id: str | None = msgspec.field(default=None, name="tenantId")
