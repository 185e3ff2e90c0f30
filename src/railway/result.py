"""
Result monad — the two-track value every notary stage returns.

A Result[T] is either Success(value) or Failure(FailureDescription). Stages
chain with .flat_map(); the first Failure rides the lower track straight
to the caller and later stages never run.

    archive ──Success──▶ upload ──Success──▶ poll ──Success──▶ Result[NotarizationResult]
       │                   │                  │
       └──Failure──────────┴──────Failure─────┴──────────────▶ Result[...] (first error)

Stages that suspend (subprocess calls, timed waits) chain with
.flat_map_async(), which keeps the same short-circuit rule.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from railway.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


class Result(Generic[T]):
    """
    Base of Success and Failure.

        >>> Result.success(2).map(lambda n: n * 21).value()
        42
        >>> Result.failure(ErrorCode.NOT_FOUND, "no identity").map(str.upper).is_failure()
        True

    None is not a value: a stage with nothing to hand on returns the
    object it acted upon (a path, a request) instead.
    """

    # ──────────────────────── Construction ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: Optional[BaseException] = None,
    ) -> Result[T]:
        """
        Failure from its parts.

            Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "codesign exited 1", error)
        """
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        """Re-emit an existing failure, typically onto a Result of another type."""
        return Failure(error)

    @staticmethod
    def from_optional(
        value: Optional[T],
        error_message: str,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> Result[T]:
        """
        None becomes a failure; anything else a success.

            Result.from_optional(args.identity, "No signing identity specified")
        """
        if value is None:
            return Result.failure(error_code, error_message)
        return Result.success(value)

    # ──────────────────────── Inspection ────────────────────────

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """The success value; calling this on a Failure is a programming error."""
        if isinstance(self, Success):
            return self._value
        raise ValueError(f"Cannot get value from a Failure: {self.error().message}")

    def error(self) -> FailureDescription:
        """The failure description; calling this on a Success is a programming error."""
        if isinstance(self, Failure):
            return self._error
        raise ValueError(f"Cannot get error from a Success: {self.value()!r}")

    def get_or_else(self, default: T) -> T:
        return self._value if isinstance(self, Success) else default

    # ──────────────────────── Chaining ────────────────────────

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        """Transform the success value; a Failure passes through untouched."""
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """
        Chain a stage that itself returns a Result.

            Result.success(chain).flat_map(validator.validate_temporal)
        """
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    async def flat_map_async(self, mapper: Callable[[T], Awaitable[Result[U]]]) -> Result[U]:
        """
        Chain a coroutine stage.

            notarized = await submitted.flat_map_async(coordinator.wait)

        An ordinary exception escaping the stage lands on the failure track
        as EXTERNAL_SERVICE_ERROR; cancellation propagates.
        """
        match self:
            case Success(v):
                try:
                    return await mapper(v)
                except Exception as e:
                    return Failure(FailureDescription(ErrorCode.EXTERNAL_SERVICE_ERROR, "Async operation failed", e))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def ensure(
        self,
        predicate: Callable[[T], bool],
        error: FailureDescription | ErrorCode,
        message: str = "",
    ) -> Result[T]:
        """
        Keep the success only if `predicate` holds for it.

            Result.success(credentials).ensure(
                lambda c: c.is_valid, ErrorCode.AUTHENTICATION_ERROR, "Incomplete credentials"
            )
        """
        description = FailureDescription(code=error, message=message) if isinstance(error, ErrorCode) else error
        return self.flat_map(lambda v: self if predicate(v) else Failure(description))

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        """Fold both tracks into one value, e.g. the line a CLI prints."""
        if isinstance(self, Success):
            return on_success(self._value)
        return on_failure(self.error())

    # ──────────────────────── Side effects ────────────────────────

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        if isinstance(self, Success):
            action(self._value)
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        """Observe a failure (usually to log it) without changing it."""
        if isinstance(self, Failure):
            action(self._error)
        return self

    # ──────────────────────── Dunder methods ────────────────────────

    def __bool__(self) -> bool:
        """Only a Success is truthy."""
        return self.is_success()


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    """The upper track."""

    _value: T

    def __init__(self, value: T) -> None:
        if value is None:
            raise TypeError("Success value must not be None")
        object.__setattr__(self, "_value", value)

    def __repr__(self) -> str:
        return f"Success({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Success):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Success", self._value))


Success.__match_args__ = ("_value",)


@dataclass(frozen=True, slots=True)
class Failure(Result[T]):
    """The lower track; equality compares code and message only."""

    _error: FailureDescription

    def __init__(self, error: FailureDescription) -> None:
        if error is None:
            raise TypeError("Failure error must not be None")
        object.__setattr__(self, "_error", error)

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Failure):
            return self._error.code == other._error.code and self._error.message == other._error.message
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Failure", self._error.code, self._error.message))


Failure.__match_args__ = ("_error",)
