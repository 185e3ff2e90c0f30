"""
Failure description — structured error information for the failure track.

An ErrorCode classifies *where* a failure originated (the caller's input,
the local environment, or an external tool), and a FailureDescription
carries the code, a human-readable message, and the originating exception
when there is one.

Enum + frozen dataclass gives us __eq__, __hash__ and __repr__ for free,
and Enum members are singleton-comparable with `is`.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Caller-side codes mean the request itself cannot succeed as given;
    environment-side codes mean the request was fine but something it
    depends on (a tool, a file, the clock) did not cooperate.
    """

    # --- Caller-side errors ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed or contradictory input, unusable certificate or bundle."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    """Missing/invalid credentials, signatures that do not verify."""

    NOT_FOUND = "NOT_FOUND"
    """Identity, certificate or file does not exist."""

    BUSINESS_RULE_ERROR = "BUSINESS_RULE_ERROR"
    """A remote policy decision went against the request."""

    # --- Environment-side errors ---
    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected local failure (bug, OS error)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Unusable settings or a required tool is not installed."""

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    """An external tool exited non-zero or produced unreadable output."""

    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    """Operation exceeded its time or attempt limit."""

    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    """The requested variant of an operation is not supported."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unclassified failures."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "Identity is required")
    >>> desc.code
    <ErrorCode.VALIDATION_ERROR: 'VALIDATION_ERROR'>
    >>> desc.message
    'Identity is required'
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def from_exception(code: ErrorCode, exception: BaseException) -> FailureDescription:
        """Describe a failure using the exception's own message."""
        return FailureDescription(code=code, message=str(exception), exception=exception)

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(traceback.format_exception(type(self.exception), self.exception, self.exception.__traceback__))
        return f"{self.message}\n{tb}"
