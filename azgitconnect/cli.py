"""Command-line entry point for connecting a GitHub repository to Azure.

Usage::

    azgitconnect connect --subscription-id <id> --repo owner/repo
    azgitconnect --subscription-id <id> --repo owner/repo --backend az-cli

Environment variables:
    AZGITCONNECT_SUBSCRIPTION_ID - Subscription to connect
    AZGITCONNECT_BACKEND         - ``graph`` (default) or ``az-cli``
    AZGITCONNECT_LOG_LEVEL       - Log level (default: INFO)
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
import typing as typ

from cyclopts import App, Parameter

from azgitconnect import __version__
from azgitconnect.common.slug import default_app_name, parse_repo_slug
from azgitconnect.entra import (
    Backend,
    DirectoryAuthenticationError,
    ExecutableNotFoundError,
    InsufficientPermissionsError,
    ProvisionRequest,
    TenantNotFoundError,
    create_provisioner,
)
from azgitconnect.errors import AzGitConnectError, ConfigurationError
from azgitconnect.github import (
    DeviceCodeExpiredError,
    DeviceFlowAuthenticator,
    DeviceFlowConfig,
    DeviceFlowDeniedError,
    GitHubSecretsConfig,
    SecretPublisher,
)
from azgitconnect.logging import (
    configure_logging,
    get_logger,
    log_exception,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    from azgitconnect.entra import Provisioner
    from azgitconnect.github import PublishReport

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2

app = App(
    name="azgitconnect",
    help="Connect GitHub Actions to Azure with OIDC federated credentials",
    version=__version__,
)

PublisherFactory = typ.Callable[[str], SecretPublisher]


def remediation_for(exc: AzGitConnectError) -> str:
    """Return a one-line hint telling the operator how to recover."""
    match exc:
        case InsufficientPermissionsError():
            return (
                "Ask a directory administrator to grant Application.ReadWrite.All "
                "and role assignment rights, then re-run."
            )
        case TenantNotFoundError():
            return (
                "Check --subscription-id and that you are signed in to the "
                "tenant that owns it."
            )
        case DirectoryAuthenticationError():
            return "Sign in with 'az login' or set AZURE_* credentials, then re-run."
        case ExecutableNotFoundError():
            return "Install the Azure CLI or use --backend graph."
        case DeviceCodeExpiredError():
            return "Re-run the command and enter the code before it expires."
        case DeviceFlowDeniedError():
            return "Re-run the command and approve the request on GitHub."
        case ConfigurationError():
            return "Fix the configuration value above and re-run."
        case _:
            return "Re-run the command; steps that already completed are skipped."


def _default_publisher_factory(repository: str) -> PublisherFactory:
    def build(token: str) -> SecretPublisher:
        return SecretPublisher(GitHubSecretsConfig(repository=repository, token=token))

    return build


async def run_connect(
    request: ProvisionRequest,
    *,
    provisioner: Provisioner,
    authenticator: DeviceFlowAuthenticator,
    publisher_factory: PublisherFactory,
) -> PublishReport:
    """Provision Azure, authenticate to GitHub and publish the login secrets.

    Every collaborator is closed before returning, whichever stage fails.

    Parameters
    ----------
    request
        Provisioning inputs, including the repository coordinates.
    provisioner
        Reconciles the Azure side.
    authenticator
        Device-flow client.
    publisher_factory
        Builds a :class:`SecretPublisher` from the GitHub token.

    Returns
    -------
    PublishReport
        Per-secret publish outcome.

    """
    async with contextlib.AsyncExitStack() as stack:
        stack.push_async_callback(provisioner.aclose)
        stack.push_async_callback(authenticator.aclose)

        secret_data = await provisioner.provision(request)
        token = await authenticator.authenticate()

        publisher = publisher_factory(token)
        stack.push_async_callback(publisher.aclose)
        return await publisher.publish(secret_data.as_secrets())


async def _connect(
    request: ProvisionRequest, backend: Backend, repository: str
) -> PublishReport:
    """Build the collaborators for ``request`` and run :func:`run_connect`."""
    config = DeviceFlowConfig.from_env()
    async with contextlib.AsyncExitStack() as stack:
        provisioner = create_provisioner(backend)
        stack.push_async_callback(provisioner.aclose)
        authenticator = DeviceFlowAuthenticator(config)
        stack.pop_all()
    return await run_connect(
        request,
        provisioner=provisioner,
        authenticator=authenticator,
        publisher_factory=_default_publisher_factory(repository),
    )


@app.command(name="connect")
def connect(  # noqa: PLR0913
    *,
    subscription_id: typ.Annotated[
        str, Parameter(env_var="AZGITCONNECT_SUBSCRIPTION_ID")
    ],
    repo: str,
    app_name: str | None = None,
    branch: str = "main",
    role: str = "Contributor",
    skip_role_assignment: bool = False,
    backend: typ.Annotated[
        Backend, Parameter(env_var="AZGITCONNECT_BACKEND")
    ] = Backend.GRAPH,
    log_level: typ.Annotated[
        str, Parameter(env_var="AZGITCONNECT_LOG_LEVEL")
    ] = "INFO",
) -> int:
    """Create the Entra application and store its ids as GitHub secrets.

    Safe to run repeatedly: existing applications, service principals,
    federated credentials and role assignments are reused.

    Args:
        subscription_id: Azure subscription to connect.
        repo: GitHub repository as ``owner/repo``.
        app_name: Application display name (default ``gh-{owner}-{repo}``).
        branch: Branch trusted by the branch credential.
        role: Role granted on the subscription.
        skip_role_assignment: Do not grant any role.
        backend: Directory backend, ``graph`` or ``az-cli``.
        log_level: Log level.

    Returns:
        0 when every secret was published, 1 when some failed, 2 on a fatal
        error.

    """
    normalized_level, invalid_level = configure_logging(log_level)
    if invalid_level:
        log_warning(
            logger,
            "Invalid log level %r, falling back to %s",
            log_level,
            normalized_level,
        )

    try:
        owner, name = parse_repo_slug(repo)
        request = ProvisionRequest(
            app_name=app_name or default_app_name(repo),
            subscription_id=subscription_id,
            owner=owner,
            repo=name,
            branch=branch,
            role=None if skip_role_assignment else role,
        )
        report = asyncio.run(_connect(request, backend, f"{owner}/{name}"))
    except AzGitConnectError as exc:
        log_exception(logger, f"azgitconnect failed: {exc}", exc)
        print(f"error: {exc}", file=sys.stderr)
        print(remediation_for(exc), file=sys.stderr)
        return EXIT_FATAL

    if report.all_succeeded:
        log_info(logger, "GitHub repository %s/%s is connected", owner, name)
        return EXIT_OK

    failed = ", ".join(result.name for result in report.failed)
    print(f"error: failed to publish secrets: {failed}", file=sys.stderr)
    print(
        "Re-run the command; published secrets are overwritten safely.",
        file=sys.stderr,
    )
    return EXIT_PARTIAL


app.default(connect)


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
