"""
Status poller — bounded, fixed-interval polling of a notarization request.

Each attempt asks the NotarizationClient for the request's status:

  terminal status        → stop, return it
  non-terminal status    → wait `interval` seconds, try again
  status check failure   → stop, return the failure (no retry)
  `max_attempts` reached → NotarizationTimeoutError

The loop policy is a tenacity AsyncRetrying driven by the Result value
rather than by exceptions. Waiting happens in the injected `sleep`
coroutine (asyncio.sleep by default), so cancelling the task stops a
pending wait immediately instead of at the next attempt boundary.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from railway.result import Result
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from notary.domain.errors import NotarizationTimeoutError
from notary.domain.models import NotarizationCredentials, NotarizationStatus
from notary.domain.ports import NotarizationClient

log = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_MAX_ATTEMPTS = 120


def _still_pending(outcome: Result[NotarizationStatus]) -> bool:
    return outcome.is_success() and not outcome.value().is_terminal


def _timed_out(retry_state: RetryCallState) -> Result[NotarizationStatus]:
    log.error("poller.timed_out", attempts=retry_state.attempt_number)
    return NotarizationTimeoutError().to_failure()


class StatusPoller:
    def __init__(
        self,
        client: NotarizationClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._interval = interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def wait_for_completion(
        self,
        request_id: str,
        credentials: NotarizationCredentials,
    ) -> Result[NotarizationStatus]:
        """
        Poll until the request reaches a terminal status.

        Makes at most `max_attempts` status checks, spaced `interval`
        seconds apart. Returns the terminal status, the first status-check
        failure, or a TIMEOUT_ERROR failure.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_fixed(self._interval),
            retry=retry_if_result(_still_pending),
            retry_error_callback=_timed_out,
            sleep=self._sleep,
        )
        return await retrying(self._check, request_id, credentials)

    async def _check(self, request_id: str, credentials: NotarizationCredentials) -> Result[NotarizationStatus]:
        outcome = await self._client.status(request_id, credentials)
        if outcome.is_success():
            log.debug("poller.attempt", request_id=request_id, status=outcome.value().value)
        else:
            log.error("poller.status_check_failed", request_id=request_id, error=outcome.error().message)
        return outcome
