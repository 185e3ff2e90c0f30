"""
Execution contexts — separate WHAT (pure logic) from HOW (side effects).

Core concept:
  - Pipelines describe WHAT should happen → return Result[T]
  - ExecutionContext describes HOW it happens → logging, timing, the
    boundary where stray exceptions become failures
  - They are NEVER mixed: stages do not log their own entry/exit timing

Both synchronous and coroutine-based computations are supported, because
command-line entry points drive async pipelines (subprocess calls, timed
polling) through the same boundary as plain functions.

Usage:
    ctx = LoggingExecutionContext(operation="notarize")
    result = await ctx.execute_async(lambda: coordinator.notarize(request))
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Protocol, TypeVar, runtime_checkable

import structlog

from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger("railway.execution")


# ──────────────────────── Protocol (Interface) ────────────────────────


@runtime_checkable
class ExecutionContext(Protocol):
    """
    Protocol for execution contexts.

    Any class implementing execute/execute_async satisfies this protocol
    via structural typing — no explicit inheritance needed.
    """

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        """Execute a Result-returning computation within this context."""
        ...

    async def execute_async(self, computation: Callable[[], Awaitable[Result[T]]]) -> Result[T]:
        """Await a Result-returning coroutine within this context."""
        ...


# ──────────────────────── NoOp (Testing) ────────────────────────


class NoOpExecutionContext:
    """Passthrough execution context — runs the computation without any wrapper."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()

    async def execute_async(self, computation: Callable[[], Awaitable[Result[T]]]) -> Result[T]:
        return await computation()


# ──────────────────────── Logging ────────────────────────


class LoggingExecutionContext:
    """
    Execution context that logs entry, exit, duration, and result state.

    Wraps another context (decorator pattern) to add observability.
    Unexpected exceptions are logged and converted into a TECHNICAL_ERROR
    failure; asyncio cancellation is a BaseException and passes through.

        ctx = LoggingExecutionContext(operation="sign")
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        log.debug("execution.started", operation=self._operation)
        start = time.monotonic()
        try:
            result = self._inner.execute(computation)
        except Exception as e:
            return self._crashed(e, start)
        return self._completed(result, start)

    async def execute_async(self, computation: Callable[[], Awaitable[Result[T]]]) -> Result[T]:
        log.debug("execution.started", operation=self._operation)
        start = time.monotonic()
        try:
            result = await self._inner.execute_async(computation)
        except Exception as e:
            return self._crashed(e, start)
        return self._completed(result, start)

    def _completed(self, result: Result[T], start: float) -> Result[T]:
        elapsed = time.monotonic() - start
        if result.is_success():
            log.info("execution.completed", operation=self._operation, elapsed_s=round(elapsed, 3))
        else:
            failure = result.error()
            log.warning(
                "execution.failed",
                operation=self._operation,
                elapsed_s=round(elapsed, 3),
                code=failure.code.value,
                reason=failure.message,
            )
        return result

    def _crashed(self, error: Exception, start: float) -> Result[T]:
        elapsed = time.monotonic() - start
        log.error(
            "execution.crashed",
            operation=self._operation,
            elapsed_s=round(elapsed, 3),
            error=str(error),
            exc_info=error,
        )
        return Failure(
            FailureDescription(
                ErrorCode.TECHNICAL_ERROR,
                f"Execution failed: {error}",
                error,
            )
        )
