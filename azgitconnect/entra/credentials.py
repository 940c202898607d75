"""Federated identity credentials trusted for a GitHub repository."""

from __future__ import annotations

from azgitconnect.entra.models import FederatedIdentityCredential

GITHUB_OIDC_ISSUER = "https://token.actions.githubusercontent.com"
TOKEN_EXCHANGE_AUDIENCE = "api://AzureADTokenExchange"
PULL_REQUEST_CREDENTIAL_NAME = "gh-pr"


def branch_credential_name(branch: str) -> str:
    """Return the credential name for ``branch``."""
    return f"gh-{branch}"


def branch_subject(owner: str, repo: str, branch: str) -> str:
    """Return the OIDC subject for workflows running on ``branch``.

    >>> branch_subject("octo", "reef", "main")
    'repo:octo/reef:ref:refs/heads/main'
    """
    return f"repo:{owner}/{repo}:ref:refs/heads/{branch}"


def pull_request_subject(owner: str, repo: str) -> str:
    """Return the OIDC subject for workflows triggered by pull requests.

    >>> pull_request_subject("octo", "reef")
    'repo:octo/reef:pull_request'
    """
    return f"repo:{owner}/{repo}:pull_request"


def required_credentials(
    owner: str, repo: str, branch: str
) -> tuple[FederatedIdentityCredential, FederatedIdentityCredential]:
    """Return the branch and pull-request credentials, in creation order."""
    audiences = (TOKEN_EXCHANGE_AUDIENCE,)
    return (
        FederatedIdentityCredential(
            name=branch_credential_name(branch),
            issuer=GITHUB_OIDC_ISSUER,
            subject=branch_subject(owner, repo, branch),
            audiences=audiences,
        ),
        FederatedIdentityCredential(
            name=PULL_REQUEST_CREDENTIAL_NAME,
            issuer=GITHUB_OIDC_ISSUER,
            subject=pull_request_subject(owner, repo),
            audiences=audiences,
        ),
    )
