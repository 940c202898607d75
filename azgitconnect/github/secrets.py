"""Publish sealed values to GitHub Actions repository secrets."""

from __future__ import annotations

import asyncio
import re
import typing as typ

import httpx
import msgspec

from azgitconnect.common.slug import parse_repo_slug
from azgitconnect.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
)
from azgitconnect.github.models import (
    GitHubPublicKey,
    PublishReport,
    SealedSecret,
    SecretPublishResult,
)
from azgitconnect.http import (
    RetryPolicy,
    SleepFn,
    response_excerpt,
    send_with_retry,
)
from azgitconnect.logging import get_logger, log_error, log_info
from azgitconnect.sealing import InvalidPublicKeyError, seal_secret

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from azgitconnect.github.config import GitHubSecretsConfig

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400
_API_VERSION = "2022-11-28"
_SECRET_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED_PREFIX = "GITHUB_"


def secret_name_problem(name: str) -> str | None:
    """Return why ``name`` is not a valid Actions secret name, if it is not.

    Examples
    --------
    >>> secret_name_problem("AZURE_CLIENT_ID") is None
    True
    >>> secret_name_problem("GITHUB_TOKEN")
    "secret names must not start with 'GITHUB_'"

    """
    if not _SECRET_NAME_PATTERN.match(name):
        return (
            "secret names must start with a letter or underscore and contain "
            "only letters, digits and underscores"
        )
    if name.upper().startswith(_RESERVED_PREFIX):
        return f"secret names must not start with {_RESERVED_PREFIX!r}"
    return None


class SecretPublisher:
    """Seal and store repository secrets through the GitHub REST API.

    The repository public key is fetched once per :meth:`publish` call. Each
    ``PUT`` has overwrite semantics, so re-running a publish is safe. A
    failed ``PUT`` is recorded in the returned report and does not stop the
    remaining secrets.
    """

    def __init__(
        self,
        config: GitHubSecretsConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialise the publisher for one repository."""
        if not config.token.strip():
            raise GitHubConfigError.empty_token()
        owner, name = parse_repo_slug(config.repository)

        self._config = config
        self._secrets_url = (
            f"{config.api_base_url.rstrip('/')}/repos/{owner}/{name}/actions/secrets"
        )
        self._headers = {
            "Authorization": f"Bearer {config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": _API_VERSION,
            "User-Agent": config.user_agent,
        }
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_s)
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def get_public_key(self) -> GitHubPublicKey:
        """Fetch the repository's Actions public key.

        Raises
        ------
        GitHubAPIError
            If GitHub rejects the request or cannot be reached.
        GitHubResponseShapeError
            If the body lacks ``key_id`` or ``key``.

        """
        operation = "public key fetch"
        try:
            response = await self._send("GET", f"{self._secrets_url}/public-key")
        except httpx.TransportError as exc:
            raise GitHubAPIError.network_error(operation, str(exc)) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(
                operation, response.status_code, response_excerpt(response)
            )
        try:
            return msgspec.json.decode(response.content, type=GitHubPublicKey)
        except msgspec.DecodeError as exc:
            raise GitHubResponseShapeError.invalid_json(operation) from exc

    async def publish(
        self, secrets: cabc.Sequence[tuple[str, str]]
    ) -> PublishReport:
        """Seal and store each ``(name, value)`` pair in order.

        Parameters
        ----------
        secrets
            Secrets to store. Values are never logged.

        Returns
        -------
        PublishReport
            One result per secret, in request order.

        Raises
        ------
        GitHubAPIError
            If the public key cannot be fetched; nothing is stored then.

        """
        log_info(logger, "Fetching public key for %s", self._config.repository)
        public_key = await self.get_public_key()

        results: list[SecretPublishResult] = []
        for name, value in secrets:
            results.append(await self._publish_one(name, value, public_key))

        report = PublishReport(results=tuple(results))
        log_info(
            logger,
            "Published %d of %d secrets to %s",
            len(report.succeeded),
            len(report.results),
            self._config.repository,
        )
        return report

    async def _publish_one(
        self, name: str, value: str, public_key: GitHubPublicKey
    ) -> SecretPublishResult:
        problem = secret_name_problem(name)
        if problem is not None:
            log_error(logger, "Skipping secret '%s': %s", name, problem)
            return SecretPublishResult(name=name, succeeded=False, detail=problem)

        try:
            sealed = SealedSecret(
                encrypted_value=seal_secret(value, public_key.key),
                key_id=public_key.key_id,
            )
        except InvalidPublicKeyError as exc:
            log_error(logger, "Failed to seal secret '%s': %s", name, exc)
            return SecretPublishResult(name=name, succeeded=False, detail=str(exc))

        try:
            response = await self._send(
                "PUT",
                f"{self._secrets_url}/{name}",
                content=msgspec.json.encode(sealed),
                headers={**self._headers, "Content-Type": "application/json"},
            )
        except httpx.TransportError as exc:
            log_error(logger, "Failed to set secret '%s': %s", name, exc)
            return SecretPublishResult(name=name, succeeded=False, detail=str(exc))

        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            body = response_excerpt(response)
            log_error(
                logger,
                "Failed to set secret '%s': HTTP %d %s",
                name,
                response.status_code,
                body,
            )
            return SecretPublishResult(
                name=name,
                succeeded=False,
                status_code=response.status_code,
                detail=body,
            )

        log_info(logger, "Secret '%s' set successfully", name)
        return SecretPublishResult(
            name=name, succeeded=True, status_code=response.status_code
        )

    async def _send(
        self,
        method: str,
        url: str,
        **kwargs: typ.Any,  # noqa: ANN401
    ) -> httpx.Response:
        kwargs.setdefault("headers", self._headers)
        return await send_with_retry(
            self._client,
            method,
            url,
            policy=self._retry_policy,
            sleep=self._sleep,
            **kwargs,
        )


__all__ = ["SecretPublisher", "secret_name_problem"]
