"""Select the directory backend once at startup."""

from __future__ import annotations

import enum
import typing as typ

from azgitconnect.entra.provisioner import IdentityProvisioner

if typ.TYPE_CHECKING:
    from azgitconnect.entra.protocol import Provisioner
    from azgitconnect.http import RetryPolicy


class Backend(enum.StrEnum):
    """Directory backends understood by :func:`create_provisioner`."""

    GRAPH = "graph"
    AZ_CLI = "az-cli"


def create_provisioner(
    backend: Backend | str = Backend.GRAPH,
    *,
    retry_policy: RetryPolicy | None = None,
) -> Provisioner:
    """Create a provisioner backed by the requested directory service.

    Parameters
    ----------
    backend
        ``graph`` for Microsoft Graph and Resource Manager over REST, or
        ``az-cli`` to drive the installed Azure CLI.
    retry_policy
        Optional retry budget passed to the directory service.

    Returns
    -------
    Provisioner
        Provisioner that owns the directory service.

    Raises
    ------
    ValueError
        If ``backend`` names no known backend.

    Examples
    --------
    >>> provisioner = create_provisioner("az-cli")
    >>> type(provisioner).__name__
    'IdentityProvisioner'

    """
    match Backend(backend):
        case Backend.GRAPH:
            from azgitconnect.entra.graph import (
                GraphDirectoryConfig,
                GraphDirectoryService,
            )

            return IdentityProvisioner(
                GraphDirectoryService(
                    GraphDirectoryConfig.from_env(), retry_policy=retry_policy
                )
            )
        case Backend.AZ_CLI:
            from azgitconnect.entra.azcli import AzCliDirectoryService

            return IdentityProvisioner(AzCliDirectoryService(retry_policy=retry_policy))
