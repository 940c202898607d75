"""Typed records for the GitHub device flow and Actions secrets API."""

from __future__ import annotations

import dataclasses

import msgspec

# Added to the polling interval each time the provider answers ``slow_down``.
SLOW_DOWN_INCREMENT_S = 5


class DeviceCodeResponse(msgspec.Struct, kw_only=True, frozen=True):
    """Body returned by the device-code endpoint."""

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int = 5


class AccessTokenResponse(msgspec.Struct, kw_only=True, frozen=True):
    """Body returned by the token endpoint while polling.

    Exactly one of ``access_token`` and ``error`` is expected to be set.
    """

    access_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    error: str | None = None
    error_description: str | None = None


@dataclasses.dataclass(slots=True)
class DeviceCodeSession:
    """Handshake state for one device authorization attempt.

    Only ``interval`` changes after issuance. ``started_at`` is a reading of
    the authenticator's clock taken when the code was issued.
    """

    device_code: str = dataclasses.field(repr=False)
    user_code: str
    verification_uri: str
    interval: int
    expires_in: int
    started_at: float

    @classmethod
    def from_response(
        cls, response: DeviceCodeResponse, *, started_at: float
    ) -> DeviceCodeSession:
        """Start a session from a device-code response."""
        return cls(
            device_code=response.device_code,
            user_code=response.user_code,
            verification_uri=response.verification_uri,
            interval=response.interval,
            expires_in=response.expires_in,
            started_at=started_at,
        )

    def elapsed(self, now: float) -> float:
        """Return seconds elapsed since issuance."""
        return now - self.started_at

    def slow_down(self) -> None:
        """Honour a ``slow_down`` answer for the next poll."""
        self.interval += SLOW_DOWN_INCREMENT_S


class GitHubPublicKey(msgspec.Struct, frozen=True):
    """Repository public key used to seal Actions secrets."""

    key_id: str
    key: str


class SealedSecret(msgspec.Struct, frozen=True):
    """Request body for ``PUT /repos/{owner}/{repo}/actions/secrets/{name}``."""

    encrypted_value: str
    key_id: str


@dataclasses.dataclass(frozen=True, slots=True)
class SecretPublishResult:
    """Outcome of publishing a single secret."""

    name: str
    succeeded: bool
    status_code: int | None = None
    detail: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class PublishReport:
    """Per-secret outcomes of a publish run, in request order."""

    results: tuple[SecretPublishResult, ...]

    @property
    def succeeded(self) -> tuple[SecretPublishResult, ...]:
        """Return the secrets that were stored."""
        return tuple(result for result in self.results if result.succeeded)

    @property
    def failed(self) -> tuple[SecretPublishResult, ...]:
        """Return the secrets that were not stored."""
        return tuple(result for result in self.results if not result.succeeded)

    @property
    def all_succeeded(self) -> bool:
        """Return ``True`` when every secret was stored."""
        return not self.failed
