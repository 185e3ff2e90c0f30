"""
Domain errors — the failure taxonomy for signing and notarization.

Adapters raise these internally; the service boundary converts them into
railway failures with `to_failure()`, so callers receive a Result whose
FailureDescription keeps the typed error in `.exception`.

Each class pins the railway ErrorCode it maps to. Reason text coming from
an external tool (its stderr) is attached unmodified as `.reason`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, TypeVar

from railway import ErrorCode, Result

if TYPE_CHECKING:
    from notary.domain.models import NotarizationIssue

T = TypeVar("T")


class NotaryError(Exception):
    """Base class for every error the notary core reports."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    default_message = "Notary operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_failure(self) -> Result[T]:
        return Result.failure(self.code, self.message, self)


class ValidationError(NotaryError):
    """Missing or contradictory user input, detected before any external call."""

    code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid input"


class ConfigurationError(NotaryError):
    """The configuration file is missing, unreadable or malformed."""

    code = ErrorCode.CONFIGURATION_ERROR
    default_message = "Invalid configuration"


# ─────────────────────── Certificates ───────────────────────


class CertificateError(NotaryError):
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Certificate error"


class EmptyCertificateChainError(CertificateError):
    default_message = "The certificate chain is empty"


class InvalidCertificateError(CertificateError):
    def __init__(self, reason: str, member_name: str | None = None) -> None:
        self.reason = reason
        self.member_name = member_name
        super().__init__(f"Invalid certificate: {reason}")


class CertificateNotFoundError(CertificateError):
    code = ErrorCode.NOT_FOUND
    default_message = "Certificate not found"


class InvalidCertificateFormatError(CertificateError):
    default_message = "Invalid certificate format"


class VerificationFailedError(CertificateError):
    code = ErrorCode.AUTHENTICATION_ERROR
    default_message = "Certificate verification failed"


class ExportNotImplementedError(CertificateError):
    code = ErrorCode.NOT_IMPLEMENTED
    default_message = "PKCS#12 export with private key is not implemented"


# ─────────────────────── Signing ───────────────────────


class SigningError(NotaryError):
    code = ErrorCode.EXTERNAL_SERVICE_ERROR
    default_message = "Signing error"


class InvalidEntitlementsError(SigningError):
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid entitlements file"


class SigningFailedError(SigningError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Signing failed: {reason}")


class IdentityNotFoundError(SigningError):
    code = ErrorCode.NOT_FOUND
    default_message = "Signing identity not found in keychain"


class InvalidBinaryError(SigningError):
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid binary or bundle"


class ExecutorNotFoundError(SigningError):
    code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, program: str) -> None:
        self.program = program
        super().__init__(f"{program} tool not found")


# ─────────────────────── Notarization ───────────────────────


class NotarizationError(NotaryError):
    code = ErrorCode.EXTERNAL_SERVICE_ERROR
    default_message = "Notarization error"


class InvalidCredentialsError(NotarizationError):
    code = ErrorCode.AUTHENTICATION_ERROR
    default_message = "Invalid Apple ID credentials"


class NetworkError(NotarizationError):
    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Network error: {cause}")


class UploadFailedError(NotarizationError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Upload failed: {reason}")


class StatusCheckFailedError(NotarizationError):
    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        message = "Failed to check notarization status"
        super().__init__(f"{message}: {reason}" if reason else message)


class NotarizationFailedError(NotarizationError):
    code = ErrorCode.BUSINESS_RULE_ERROR

    def __init__(self, issues: Sequence[NotarizationIssue]) -> None:
        self.issues = tuple(issues)
        errors = [issue for issue in self.issues if issue.is_error]
        super().__init__(f"Notarization failed with {len(errors)} error(s)")


class NotarizationTimeoutError(NotarizationError):
    code = ErrorCode.TIMEOUT_ERROR
    default_message = "Notarization timed out"


class InvalidBundleError(NotarizationError):
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid bundle or archive"


class StapleFailedError(NotarizationError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to staple notarization ticket: {reason}")


async def capture(computation: Callable[[], Awaitable[T]]) -> Result[T]:
    """Await a computation and move any NotaryError it raises onto the failure track."""
    try:
        return Result.success(await computation())
    except NotaryError as e:
        return e.to_failure()


def attempt(computation: Callable[[], T]) -> Result[T]:
    """Synchronous counterpart of `capture`."""
    try:
        return Result.success(computation())
    except NotaryError as e:
        return e.to_failure()
