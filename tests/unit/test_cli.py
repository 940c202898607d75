"""Unit tests for the azgitconnect command line."""

from __future__ import annotations

import typing as typ

import pytest

from azgitconnect import cli
from azgitconnect.entra import (
    Backend,
    GitHubSecretData,
    IdentityProvisioner,
    InsufficientPermissionsError,
    ProvisionRequest,
    TenantNotFoundError,
)
from azgitconnect.github import (
    DeviceCodeExpiredError,
    DeviceFlowAuthenticator,
    DeviceFlowConfig,
    GitHubConfigError,
    PublishReport,
    SecretPublisher,
    SecretPublishResult,
)
from tests.helpers.fakes import FakeDirectory


class _FakeAuthenticator:
    def __init__(self, events: list[str], token: str = "gho_token") -> None:
        self.events = events
        self.token = token

    async def authenticate(self) -> str:
        self.events.append("authenticate")
        return self.token

    async def aclose(self) -> None:
        self.events.append("authenticator.aclose")


class _FakePublisher:
    def __init__(self, events: list[str], token: str) -> None:
        self.events = events
        self.token = token
        self.published: list[tuple[str, str]] = []

    async def publish(
        self, secrets: typ.Sequence[tuple[str, str]]
    ) -> PublishReport:
        self.events.append("publish")
        self.published = list(secrets)
        return PublishReport(
            results=tuple(
                SecretPublishResult(name=name, succeeded=True) for name, _ in secrets
            )
        )

    async def aclose(self) -> None:
        self.events.append("publisher.aclose")


def _request() -> ProvisionRequest:
    return ProvisionRequest(
        app_name="gh-octo-reef", subscription_id="sub-1", owner="octo", repo="reef"
    )


def _unused_publisher_factory(token: str) -> SecretPublisher:
    msg = f"publisher requested with token {token!r}"
    raise AssertionError(msg)


def test_app_exposes_connect_command() -> None:
    """The CLI is named azgitconnect and registers connect."""
    assert cli.app.name == ("azgitconnect",)
    assert cli.app["connect"] is not None


@pytest.mark.asyncio
async def test_run_connect_provisions_then_authenticates_then_publishes() -> None:
    """The orchestrator runs the three stages in order and closes each."""
    events: list[str] = []
    publishers: list[_FakePublisher] = []
    directory = FakeDirectory()

    def factory(token: str) -> _FakePublisher:
        publisher = _FakePublisher(events, token)
        publishers.append(publisher)
        return publisher

    report = await cli.run_connect(
        ProvisionRequest(
            app_name="gh-octo-reef", subscription_id="sub-1", owner="octo", repo="reef"
        ),
        provisioner=IdentityProvisioner(directory),
        authenticator=_FakeAuthenticator(events),  # type: ignore[arg-type]
        publisher_factory=factory,  # type: ignore[arg-type]
    )

    assert report.all_succeeded
    assert directory.closed
    assert events == [
        "authenticate",
        "publish",
        "publisher.aclose",
        "authenticator.aclose",
    ]
    (publisher,) = publishers
    assert publisher.token == "gho_token"
    assert publisher.published == [
        ("AZURE_CLIENT_ID", "client-1"),
        ("AZURE_TENANT_ID", "tenant-1"),
        ("AZURE_SUBSCRIPTION_ID", "sub-1"),
    ]


@pytest.mark.asyncio
async def test_run_connect_stops_before_github_when_provisioning_fails() -> None:
    """A provisioning failure skips the device flow but still closes it."""
    events: list[str] = []
    directory = FakeDirectory(tenant_id=None)

    with pytest.raises(TenantNotFoundError):
        await cli.run_connect(
            _request(),
            provisioner=IdentityProvisioner(directory),
            authenticator=_FakeAuthenticator(events),  # type: ignore[arg-type]
            publisher_factory=_unused_publisher_factory,
        )

    assert directory.closed
    assert events == ["authenticator.aclose"]


@pytest.mark.asyncio
async def test_run_connect_closes_device_flow_when_provisioning_fails() -> None:
    """The authenticator's own HTTP client is closed on the error path."""
    authenticator = DeviceFlowAuthenticator(DeviceFlowConfig())

    with pytest.raises(TenantNotFoundError):
        await cli.run_connect(
            _request(),
            provisioner=IdentityProvisioner(FakeDirectory(tenant_id=None)),
            authenticator=authenticator,
            publisher_factory=_unused_publisher_factory,
        )

    assert authenticator._client.is_closed  # noqa: SLF001


@pytest.mark.asyncio
async def test_run_connect_closes_stages_when_publisher_fails() -> None:
    """A publisher factory failure still closes the earlier stages."""
    events: list[str] = []
    directory = FakeDirectory()

    def factory(token: str) -> _FakePublisher:
        del token
        raise GitHubConfigError.empty_token()

    with pytest.raises(GitHubConfigError):
        await cli.run_connect(
            _request(),
            provisioner=IdentityProvisioner(directory),
            authenticator=_FakeAuthenticator(events),  # type: ignore[arg-type]
            publisher_factory=factory,  # type: ignore[arg-type]
        )

    assert directory.closed
    assert events == ["authenticate", "authenticator.aclose"]


def _patch_run_connect(
    monkeypatch: pytest.MonkeyPatch,
    outcome: PublishReport | Exception,
) -> dict[str, object]:
    captured: dict[str, object] = {}

    async def fake_run_connect(
        request: ProvisionRequest, **kwargs: object
    ) -> PublishReport:
        captured["request"] = request
        captured.update(kwargs)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def fake_create_provisioner(backend: Backend) -> IdentityProvisioner:
        captured["backend"] = backend
        return IdentityProvisioner(FakeDirectory())

    monkeypatch.setattr(cli, "run_connect", fake_run_connect)
    monkeypatch.setattr(cli, "create_provisioner", fake_create_provisioner)
    monkeypatch.setattr(cli, "DeviceFlowAuthenticator", lambda config: config)
    monkeypatch.setattr(cli, "configure_logging", lambda level: (level, False))
    return captured


def test_connect_closes_provisioner_when_authenticator_cannot_be_built(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """A device-flow setup failure closes the directory client already built."""
    directory = FakeDirectory()

    def failing_authenticator(config: DeviceFlowConfig) -> DeviceFlowAuthenticator:
        del config
        raise GitHubConfigError.empty_client_id()

    monkeypatch.setattr(
        cli, "create_provisioner", lambda backend: IdentityProvisioner(directory)
    )
    monkeypatch.setattr(cli, "DeviceFlowAuthenticator", failing_authenticator)
    monkeypatch.setattr(cli, "configure_logging", lambda level: (level, False))

    code = cli.connect(subscription_id="sub-1", repo="octo/reef")

    assert code == cli.EXIT_FATAL
    assert directory.closed
    assert "client id" in capsys.readouterr().err.lower()


def _report(*failed: str) -> PublishReport:
    names = ("AZURE_CLIENT_ID", "AZURE_TENANT_ID", "AZURE_SUBSCRIPTION_ID")
    return PublishReport(
        results=tuple(
            SecretPublishResult(name=name, succeeded=name not in failed)
            for name in names
        )
    )


def test_connect_returns_zero_and_derives_defaults(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """All secrets published gives exit code 0 with default app name."""
    captured = _patch_run_connect(monkeypatch, _report())

    code = cli.connect(subscription_id="sub-1", repo="octo/reef")

    assert code == cli.EXIT_OK
    assert captured["request"] == ProvisionRequest(
        app_name="gh-octo-reef",
        subscription_id="sub-1",
        owner="octo",
        repo="reef",
        branch="main",
        role="Contributor",
    )
    assert captured["backend"] is Backend.GRAPH


def test_connect_passes_overrides_and_skips_role(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Flags flow into the provisioning request and backend selection."""
    captured = _patch_run_connect(monkeypatch, _report())

    cli.connect(
        subscription_id="sub-1",
        repo="octo/reef",
        app_name="custom",
        branch="release",
        skip_role_assignment=True,
        backend=Backend.AZ_CLI,
    )

    request = typ.cast("ProvisionRequest", captured["request"])
    assert (request.app_name, request.branch, request.role) == (
        "custom",
        "release",
        None,
    )
    assert captured["backend"] is Backend.AZ_CLI


def test_connect_returns_one_on_partial_publish(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Any failed secret gives exit code 1 and names the failures."""
    _patch_run_connect(monkeypatch, _report("AZURE_TENANT_ID"))

    code = cli.connect(subscription_id="sub-1", repo="octo/reef")

    assert code == cli.EXIT_PARTIAL
    assert "AZURE_TENANT_ID" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("error", "hint"),
    [
        (InsufficientPermissionsError.for_operation("application creation"), "admin"),
        (TenantNotFoundError.for_subscription("sub-1"), "--subscription-id"),
        (DeviceCodeExpiredError.expired(900), "before it expires"),
    ],
)
def test_connect_returns_two_on_fatal_errors(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    error: Exception,
    hint: str,
) -> None:
    """Fatal errors give exit code 2 and a remediation line."""
    _patch_run_connect(monkeypatch, error)

    code = cli.connect(subscription_id="sub-1", repo="octo/reef")

    assert code == cli.EXIT_FATAL
    assert hint in capsys.readouterr().err


def test_connect_rejects_malformed_repository(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """A bad --repo value is a fatal configuration error."""
    captured = _patch_run_connect(monkeypatch, _report())

    code = cli.connect(subscription_id="sub-1", repo="not-a-slug")

    assert code == cli.EXIT_FATAL
    assert "Invalid repository slug" in capsys.readouterr().err
    assert "request" not in captured


def test_secret_data_maps_to_fixed_secret_names() -> None:
    """Provisioning output becomes the three azure/login secrets."""
    data = GitHubSecretData(app_id="a", tenant_id="t", subscription_id="s")

    assert data.as_secrets() == (
        ("AZURE_CLIENT_ID", "a"),
        ("AZURE_TENANT_ID", "t"),
        ("AZURE_SUBSCRIPTION_ID", "s"),
    )
