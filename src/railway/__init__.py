"""
Railway-Oriented Programming (ROP) toolkit.

Explicit, composable error handling — stages return Result instead of raising.

    from railway import Result, ErrorCode

    def require_identity(name: str | None) -> Result[str]:
        if not name:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "No signing identity specified")
        return Result.success(name)

    result = (
        require_identity("Developer ID Application: Example (ABCDE12345)")
        .map(lambda name: name.upper())
    )
"""

from railway.result import Result, Success, Failure
from railway.failure import ErrorCode, FailureDescription
from railway.execution import (
    ExecutionContext,
    NoOpExecutionContext,
    LoggingExecutionContext,
)
from railway.assertions import ResultAssertions

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]

__version__ = "1.1.0"
