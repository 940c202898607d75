"""Unit tests for publishing sealed Actions secrets."""

from __future__ import annotations

import base64
import json
import secrets
import typing as typ

import httpx
import pytest
from nacl.public import PrivateKey, SealedBox

from azgitconnect.github import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubSecretsConfig,
    SecretPublisher,
)
from azgitconnect.github.secrets import secret_name_problem
from azgitconnect.http import RetryPolicy
from tests.helpers.fakes import FakeClock

_TOKEN = secrets.token_hex(8)
_SECRETS_PATH = "/repos/octo/reef/actions/secrets"


class _SecretStore:
    """Scripted GitHub secrets endpoints backed by a real key pair."""

    def __init__(
        self,
        *,
        put_statuses: dict[str, int] | None = None,
        key_status: int = 200,
    ) -> None:
        self.private_key = PrivateKey.generate()
        self.put_statuses = put_statuses or {}
        self.key_status = key_status
        self.stored: dict[str, dict[str, typ.Any]] = {}
        self.requests: list[httpx.Request] = []

    def opened(self, name: str) -> str:
        """Decrypt a stored secret the way GitHub would."""
        ciphertext = base64.b64decode(self.stored[name]["encrypted_value"])
        return SealedBox(self.private_key).decrypt(ciphertext).decode("utf-8")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == f"{_SECRETS_PATH}/public-key":
            public_key = bytes(self.private_key.public_key)
            return httpx.Response(
                self.key_status,
                json={
                    "key_id": "key-7",
                    "key": base64.b64encode(public_key).decode("ascii"),
                },
            )
        name = request.url.path.rsplit("/", 1)[-1]
        status = self.put_statuses.get(name, 201)
        if status < 400:
            self.stored[name] = json.loads(request.content)
            return httpx.Response(status)
        return httpx.Response(status, json={"message": f"cannot store {name}"})


def _make_publisher(
    store: _SecretStore,
) -> tuple[SecretPublisher, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(store))
    publisher = SecretPublisher(
        GitHubSecretsConfig(
            repository="octo/reef",
            token=_TOKEN,
            api_base_url="https://api.example.test",
        ),
        http_client=http_client,
        retry_policy=RetryPolicy(max_attempts=2),
        sleep=FakeClock().sleep,
    )
    return publisher, http_client


@pytest.mark.asyncio
async def test_publish_seals_each_secret_with_repository_key() -> None:
    """Every secret is stored sealed, tagged with the key id."""
    store = _SecretStore()
    publisher, http_client = _make_publisher(store)
    try:
        report = await publisher.publish(
            [("AZURE_CLIENT_ID", "client-1"), ("AZURE_TENANT_ID", "tenant-1")]
        )
    finally:
        await http_client.aclose()

    assert report.all_succeeded
    assert store.opened("AZURE_CLIENT_ID") == "client-1"
    assert store.opened("AZURE_TENANT_ID") == "tenant-1"
    assert {body["key_id"] for body in store.stored.values()} == {"key-7"}


@pytest.mark.asyncio
async def test_public_key_is_fetched_once_per_run() -> None:
    """One key fetch serves all secrets in the run."""
    store = _SecretStore()
    publisher, http_client = _make_publisher(store)
    try:
        await publisher.publish([("A", "1"), ("B", "2"), ("C", "3")])
    finally:
        await http_client.aclose()

    methods = [request.method for request in store.requests]
    assert methods == ["GET", "PUT", "PUT", "PUT"]


@pytest.mark.asyncio
async def test_requests_carry_github_rest_headers() -> None:
    """Requests authenticate with the bearer token and pin the API version."""
    store = _SecretStore()
    publisher, http_client = _make_publisher(store)
    try:
        await publisher.publish([("AZURE_CLIENT_ID", "client-1")])
    finally:
        await http_client.aclose()

    for request in store.requests:
        assert request.headers["Authorization"] == f"Bearer {_TOKEN}"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"


@pytest.mark.asyncio
async def test_failed_put_does_not_stop_remaining_secrets() -> None:
    """A rejected secret is reported while later secrets are still stored."""
    store = _SecretStore(put_statuses={"AZURE_TENANT_ID": 422})
    publisher, http_client = _make_publisher(store)
    try:
        report = await publisher.publish(
            [
                ("AZURE_CLIENT_ID", "client-1"),
                ("AZURE_TENANT_ID", "tenant-1"),
                ("AZURE_SUBSCRIPTION_ID", "sub-1"),
            ]
        )
    finally:
        await http_client.aclose()

    assert not report.all_succeeded
    assert [result.name for result in report.succeeded] == [
        "AZURE_CLIENT_ID",
        "AZURE_SUBSCRIPTION_ID",
    ]
    (failure,) = report.failed
    assert failure.name == "AZURE_TENANT_ID"
    assert failure.status_code == 422
    assert "cannot store AZURE_TENANT_ID" in failure.detail


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_reported() -> None:
    """A persistent 5xx is retried within budget and then recorded."""
    store = _SecretStore(put_statuses={"AZURE_CLIENT_ID": 503})
    publisher, http_client = _make_publisher(store)
    try:
        report = await publisher.publish([("AZURE_CLIENT_ID", "client-1")])
    finally:
        await http_client.aclose()

    assert report.failed[0].status_code == 503
    assert [request.method for request in store.requests] == ["GET", "PUT", "PUT"]


@pytest.mark.asyncio
async def test_invalid_secret_name_is_reported_without_a_request() -> None:
    """Names GitHub would reject are recorded locally as failures."""
    store = _SecretStore()
    publisher, http_client = _make_publisher(store)
    try:
        report = await publisher.publish(
            [("GITHUB_TOKEN", "x"), ("AZURE_CLIENT_ID", "client-1")]
        )
    finally:
        await http_client.aclose()

    assert [result.name for result in report.failed] == ["GITHUB_TOKEN"]
    assert "GITHUB_TOKEN" not in store.stored
    assert "AZURE_CLIENT_ID" in store.stored


@pytest.mark.asyncio
async def test_public_key_failure_publishes_nothing() -> None:
    """Without a public key no secret is attempted."""
    store = _SecretStore(key_status=403)
    publisher, http_client = _make_publisher(store)
    try:
        with pytest.raises(GitHubAPIError) as excinfo:
            await publisher.publish([("AZURE_CLIENT_ID", "client-1")])
    finally:
        await http_client.aclose()

    assert excinfo.value.status_code == 403
    assert store.stored == {}


def test_empty_token_is_rejected() -> None:
    """A blank token is a configuration error."""
    with pytest.raises(GitHubConfigError, match="token"):
        SecretPublisher(GitHubSecretsConfig(repository="octo/reef", token=" "))


@pytest.mark.parametrize(
    ("name", "problem"),
    [
        ("AZURE_CLIENT_ID", None),
        ("_private", None),
        ("1ST", "letters, digits and underscores"),
        ("HAS-DASH", "letters, digits and underscores"),
        ("github_anything", "GITHUB_"),
    ],
)
def test_secret_name_problem(name: str, problem: str | None) -> None:
    """Secret names follow GitHub's naming rules."""
    result = secret_name_problem(name)
    if problem is None:
        assert result is None
    else:
        assert result is not None
        assert problem in result
