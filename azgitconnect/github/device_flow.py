"""OAuth device authorization grant against GitHub.

The authenticator walks a small state machine::

    REQUESTING -> WAITING_FOR_USER -> POLLING -> SUCCEEDED | EXPIRED | DENIED

Expiry is decided from the clock reading taken when the device code was
issued, so a process that was suspended (debugger, laptop sleep) still
expires on time instead of trusting a loop counter.
"""

from __future__ import annotations

import asyncio
import enum
import time
import typing as typ

import httpx
import msgspec

from azgitconnect.github.config import DeviceFlowConfig
from azgitconnect.github.errors import (
    DeviceCodeExpiredError,
    DeviceFlowDeniedError,
    GitHubAPIError,
    GitHubResponseShapeError,
)
from azgitconnect.github.models import (
    AccessTokenResponse,
    DeviceCodeResponse,
    DeviceCodeSession,
)
from azgitconnect.http import RetryPolicy, SleepFn, send_with_retry
from azgitconnect.logging import get_logger, log_info, log_warning

logger = get_logger(__name__)

_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
_HTTP_ERROR_STATUS_THRESHOLD = 400

Prompt = typ.Callable[[DeviceCodeSession], None]
Clock = typ.Callable[[], float]


class DeviceFlowState(enum.StrEnum):
    """Observable states of :class:`DeviceFlowAuthenticator`."""

    IDLE = "idle"
    REQUESTING = "requesting"
    WAITING_FOR_USER = "waiting_for_user"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"
    DENIED = "denied"


def print_instructions(session: DeviceCodeSession) -> None:
    """Tell the operator where to approve the device code."""
    print("To authenticate, please visit the following URL in your browser:")
    print(session.verification_uri)
    print(f"Enter the following code: {session.user_code}")


class DeviceFlowAuthenticator:
    """Obtain a GitHub bearer token through the device authorization grant.

    Parameters
    ----------
    config
        Endpoints, client id and timing configuration.
    http_client
        Optional ``httpx.AsyncClient`` for testing. When omitted the instance
        creates and owns its own client.
    retry_policy
        Retry budget for transient transport and 5xx failures.
    prompt
        Callback that shows the verification URI and user code.
    sleep
        Awaitable sleep used between polls.
    clock
        Wall-clock source in seconds, used to measure session age.

    Examples
    --------
    >>> import asyncio
    >>> authenticator = DeviceFlowAuthenticator(DeviceFlowConfig())
    >>> # token = asyncio.run(authenticator.authenticate())
    >>> asyncio.run(authenticator.aclose())

    """

    def __init__(  # noqa: PLR0913
        self,
        config: DeviceFlowConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        prompt: Prompt = print_instructions,
        sleep: SleepFn = asyncio.sleep,
        clock: Clock = time.time,
    ) -> None:
        """Initialise the authenticator."""
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "Accept": "application/json",
                "User-Agent": config.user_agent,
            },
        )
        self._retry_policy = retry_policy or RetryPolicy()
        self._prompt = prompt
        self._sleep = sleep
        self._clock = clock
        self._state = DeviceFlowState.IDLE

    @property
    def state(self) -> DeviceFlowState:
        """Return the current state of the flow."""
        return self._state

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def authenticate(self) -> str:
        """Run the full device flow and return the access token.

        Raises
        ------
        GitHubAPIError
            If the device code cannot be issued or GitHub cannot be reached.
        DeviceCodeExpiredError
            If the operator does not approve the code in time.
        DeviceFlowDeniedError
            If GitHub ends the flow with any other error.

        """
        session = await self.request_device_code()
        self._state = DeviceFlowState.WAITING_FOR_USER
        self._prompt(session)
        return await self.poll_for_token(session)

    async def request_device_code(self) -> DeviceCodeSession:
        """Request a device and user code pair."""
        self._state = DeviceFlowState.REQUESTING
        operation = "device code request"
        response = await self._post(
            self._config.device_code_url,
            {"client_id": self._config.client_id, "scope": self._config.scope},
            operation=operation,
        )
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(
                operation, response.status_code, response.text
            )
        try:
            issued = msgspec.json.decode(response.content, type=DeviceCodeResponse)
        except msgspec.DecodeError as exc:
            raise GitHubResponseShapeError.invalid_json(operation) from exc

        session = DeviceCodeSession.from_response(issued, started_at=self._clock())
        log_info(
            logger,
            "Device code issued (expires in %ds, polling every %ds)",
            session.expires_in,
            session.interval,
        )
        return session

    async def poll_for_token(self, session: DeviceCodeSession) -> str:
        """Poll the token endpoint until the session resolves.

        Parameters
        ----------
        session
            Session returned by :meth:`request_device_code`. Its ``interval``
            grows by five seconds for every ``slow_down`` answer.

        Returns
        -------
        str
            The access token.

        """
        self._state = DeviceFlowState.POLLING
        form = {
            "client_id": self._config.client_id,
            "device_code": session.device_code,
            "grant_type": _GRANT_TYPE,
        }
        deadline = session.started_at + session.expires_in + self._config.expiry_grace_s

        while True:
            self._ensure_not_expired(session, deadline)
            await self._sleep(session.interval)
            self._ensure_not_expired(session, deadline)

            answer = await self._poll_once(form)
            if answer.access_token:
                self._state = DeviceFlowState.SUCCEEDED
                log_info(logger, "GitHub device authorization succeeded")
                return answer.access_token

            match answer.error:
                case None:
                    raise GitHubResponseShapeError.missing("access_token")
                case "authorization_pending":
                    continue
                case "slow_down":
                    session.slow_down()
                    log_info(
                        logger,
                        "GitHub asked to slow down; polling every %ds",
                        session.interval,
                    )
                case "expired_token":
                    self._state = DeviceFlowState.EXPIRED
                    raise DeviceCodeExpiredError.expired(session.expires_in)
                case error_code:
                    self._state = DeviceFlowState.DENIED
                    raise DeviceFlowDeniedError.denied(
                        error_code, answer.error_description
                    )

    def _ensure_not_expired(self, session: DeviceCodeSession, deadline: float) -> None:
        now = self._clock()
        if now >= deadline:
            self._state = DeviceFlowState.EXPIRED
            log_warning(
                logger,
                "Device code expired %.0fs after issuance",
                session.elapsed(now),
            )
            raise DeviceCodeExpiredError.expired(session.expires_in)

    async def _poll_once(self, form: dict[str, str]) -> AccessTokenResponse:
        operation = "token poll"
        response = await self._post(
            self._config.access_token_url, form, operation=operation
        )
        try:
            answer = msgspec.json.decode(response.content, type=AccessTokenResponse)
        except msgspec.DecodeError as exc:
            if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
                raise GitHubAPIError.http_error(
                    operation, response.status_code, response.text
                ) from exc
            raise GitHubResponseShapeError.invalid_json(operation) from exc

        # RFC 8628 error answers may arrive as HTTP 400 with an ``error`` body.
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD and not answer.error:
            raise GitHubAPIError.http_error(
                operation, response.status_code, response.text
            )
        return answer

    async def _post(
        self, url: str, form: dict[str, str], *, operation: str
    ) -> httpx.Response:
        try:
            return await send_with_retry(
                self._client,
                "POST",
                url,
                policy=self._retry_policy,
                sleep=self._sleep,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as exc:
            raise GitHubAPIError.network_error(operation, str(exc)) from exc


__all__ = [
    "DeviceFlowAuthenticator",
    "DeviceFlowState",
    "print_instructions",
]
