"""Bounded retry for outbound HTTP calls.

All REST traffic (Microsoft Graph, Azure Resource Manager, GitHub OAuth and
GitHub REST) is sent through :func:`send_with_retry`. Transport failures and
5xx responses are retried with exponential backoff; 4xx responses are handed
back immediately so callers can classify them (``404`` as expected absence,
``403`` as missing permissions, and so on).
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from azgitconnect.logging import get_logger, log_warning

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500

SleepFn = typ.Callable[[float], typ.Awaitable[None]]


@dataclasses.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry budget for transient failures.

    Attributes
    ----------
    max_attempts
        Total attempts including the first one.
    initial_delay_s
        Delay before the first retry; doubled for every further retry.
    max_delay_s
        Upper bound on a single delay.

    """

    max_attempts: int = 5
    initial_delay_s: float = 2.0
    max_delay_s: float = 30.0

    def wait_strategy(self) -> wait_exponential:
        """Return the tenacity wait strategy for this policy."""
        return wait_exponential(multiplier=self.initial_delay_s, max=self.max_delay_s)


class _ServerErrorResponse(Exception):
    """Internal signal carrying a retryable 5xx response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def is_server_error(response: httpx.Response) -> bool:
    """Return ``True`` for 5xx responses."""
    return response.status_code >= _HTTP_SERVER_ERROR_THRESHOLD


def _log_retry(state: RetryCallState) -> None:
    outcome = state.outcome
    reason = outcome.exception() if outcome is not None else None
    delay = state.next_action.sleep if state.next_action is not None else 0.0
    log_warning(
        logger,
        "Transient HTTP failure on attempt %d (%s); retrying in %.1fs",
        state.attempt_number,
        reason,
        delay,
    )


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    **kwargs: typ.Any,  # noqa: ANN401
) -> httpx.Response:
    """Send a request, retrying transport errors and 5xx responses.

    Parameters
    ----------
    client
        HTTP client used to send the request.
    method
        HTTP method name.
    url
        Absolute URL, or a path relative to the client's base URL.
    policy
        Retry budget.
    sleep
        Awaitable sleep used between attempts.
    **kwargs
        Forwarded to :meth:`httpx.AsyncClient.request`.

    Returns
    -------
    httpx.Response
        The first non-5xx response, or the last 5xx response once the retry
        budget is spent.

    Raises
    ------
    httpx.TransportError
        When every attempt failed at the transport level.

    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception_type((httpx.TransportError, _ServerErrorResponse)),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    response: httpx.Response | None = None
    try:
        async for attempt in retrying:
            with attempt:
                response = await client.request(method, url, **kwargs)
                if is_server_error(response):
                    raise _ServerErrorResponse(response)
    except _ServerErrorResponse as exc:
        return exc.response
    if response is None:  # pragma: no cover - tenacity always runs one attempt
        msg = "retry loop finished without a response"
        raise RuntimeError(msg)
    return response


def replication_retrying(
    policy: RetryPolicy,
    *,
    error: type[Exception],
    description: str,
    sleep: SleepFn = asyncio.sleep,
) -> AsyncRetrying:
    """Return a retrier for objects a directory has not replicated yet.

    Only ``error`` is retried, within the same budget as transient HTTP
    failures; the last ``error`` is re-raised once the budget is spent.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception_type(error),
        before_sleep=lambda state: log_warning(
            logger,
            "%s not visible yet (attempt %d); retrying",
            description,
            state.attempt_number,
        ),
        sleep=sleep,
        reraise=True,
    )


def response_excerpt(response: httpx.Response, limit: int = 500) -> str:
    """Return the start of a response body for error messages."""
    text = response.text
    return text if len(text) <= limit else f"{text[:limit]}..."
