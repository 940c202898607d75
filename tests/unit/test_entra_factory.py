"""Unit tests for directory backend selection."""

from __future__ import annotations

import pytest

from azgitconnect.entra import (
    Backend,
    IdentityProvisioner,
    Provisioner,
    create_provisioner,
)
from azgitconnect.entra.azcli import AzCliDirectoryService
from azgitconnect.entra.graph import GraphDirectoryService


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("backend", "directory_type"),
    [
        (Backend.GRAPH, GraphDirectoryService),
        ("graph", GraphDirectoryService),
        (Backend.AZ_CLI, AzCliDirectoryService),
        ("az-cli", AzCliDirectoryService),
    ],
)
async def test_create_provisioner_selects_backend(
    backend: Backend | str, directory_type: type
) -> None:
    """Each backend name yields a provisioner over the matching service."""
    provisioner = create_provisioner(backend)
    try:
        assert isinstance(provisioner, IdentityProvisioner)
        assert isinstance(provisioner, Provisioner)
        assert isinstance(provisioner._directory, directory_type)  # noqa: SLF001
    finally:
        await provisioner.aclose()


def test_create_provisioner_rejects_unknown_backend() -> None:
    """Unknown backend names raise ValueError."""
    with pytest.raises(ValueError, match="ldap"):
        create_provisioner("ldap")


def test_graph_config_reads_cloud_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment variables point the Graph backend at another cloud."""
    from azgitconnect.entra.graph import GraphDirectoryConfig

    monkeypatch.setenv("AZGITCONNECT_GRAPH_URL", "https://graph.microsoft.us/v1.0")
    monkeypatch.setenv("AZGITCONNECT_ARM_URL", "https://management.usgovcloudapi.net")

    config = GraphDirectoryConfig.from_env()

    assert config.graph_base_url == "https://graph.microsoft.us/v1.0"
    assert config.arm_scope == "https://management.usgovcloudapi.net/.default"
