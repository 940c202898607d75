"""Base exceptions shared across azgitconnect."""

from __future__ import annotations


class AzGitConnectError(Exception):
    """Base exception for all azgitconnect errors.

    This provides a single catch point for the command-line entrypoint.
    """


class ConfigurationError(AzGitConnectError):
    """Raised when required configuration is missing or malformed.

    Configuration errors are fatal: they are never retried because the
    remediation is a change of input, not a change of timing.
    """


class InvalidRepositorySlugError(ConfigurationError, ValueError):
    """Raised when a repository argument is not in ``owner/name`` format."""

    @classmethod
    def malformed(cls, slug: str) -> InvalidRepositorySlugError:
        """Return an error for a slug that does not split into two parts."""
        return cls(f"Invalid repository slug: expected 'owner/name', got {slug!r}")
