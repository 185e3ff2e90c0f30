"""
Domain models — value objects for certificates, signing and notarization.

Everything here is a frozen dataclass except NotarizationRequest, whose
`status`, `request_uuid` and `log_file` are advanced by the single
coordinator that owns the request. Frozen models are safe to share between
concurrently running pipelines without locks.

All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import plistlib
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum, unique
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4
from xml.parsers.expat import ExpatError

from notary.domain.errors import EmptyCertificateChainError, InvalidEntitlementsError


def utcnow() -> datetime:
    return datetime.now(UTC)


# ─────────────────────── Certificates ───────────────────────


@dataclass(frozen=True, slots=True)
class Certificate:
    """
    An X.509 certificate as the signing tools see it.

    `public_key`, `signature` and `raw_data` are opaque byte blobs. When both
    `public_key` and `signature` are present they describe an ECDSA P-256
    signature (uncompressed X9.62 point, raw r||s) over `raw_data`.
    """

    common_name: str
    not_before: datetime
    not_after: datetime
    organization_name: str = ""
    organization_unit: str = ""
    country_name: str = ""
    serial_number: str = ""
    issuer: str = ""
    subject: str = ""
    public_key: bytes = field(default=b"", repr=False)
    signature: bytes = field(default=b"", repr=False)
    raw_data: bytes = field(default=b"", repr=False)

    def is_valid_at(self, moment: datetime) -> bool:
        """Inclusive at both ends of the validity window."""
        return self.not_before <= moment <= self.not_after

    @property
    def is_valid(self) -> bool:
        return self.is_valid_at(utcnow())

    @property
    def is_expired(self) -> bool:
        return utcnow() > self.not_after

    def days_until_expiration(self, now: datetime | None = None) -> int:
        """Whole days left before `not_after`; negative once expired."""
        return (self.not_after - (now or utcnow())).days


@unique
class CertificateKind(Enum):
    """Well-known certificate kinds, valued by their canonical identifier."""

    DEVELOPER_ID = "Developer ID Application"
    APPLE_DISTRIBUTION = "Apple Distribution"
    MAC_INSTALLER = "3rd Party Mac Developer Installer"
    DEVELOPER_ID_INSTALLER = "Developer ID Installer"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class CertificateType:
    """
    A certificate kind, or a custom kind carrying its own name.

    `identifier` is the string matched against free-text tool output.
    """

    kind: CertificateKind
    name: str | None = None

    @staticmethod
    def custom(name: str) -> CertificateType:
        return CertificateType(CertificateKind.CUSTOM, name)

    @property
    def identifier(self) -> str:
        if self.kind is CertificateKind.CUSTOM:
            return self.name or ""
        return self.kind.value

    @staticmethod
    def infer(name: str) -> CertificateType:
        """Classify a certificate name by the first well-known identifier it contains."""
        for kind in _INFERENCE_ORDER:
            if kind.value in name:
                return CertificateType(kind)
        return CertificateType.custom(name)


# Kinds recognised in free-text identity names, highest priority first.
_INFERENCE_ORDER = (
    CertificateKind.DEVELOPER_ID,
    CertificateKind.APPLE_DISTRIBUTION,
    CertificateKind.MAC_INSTALLER,
)


@dataclass(frozen=True, slots=True)
class CertificateChain:
    """
    Ordered trust chain: leaf first, root last.

    A single-certificate chain has no root and no intermediates.
    """

    certificates: tuple[Certificate, ...]

    def __post_init__(self) -> None:
        if not self.certificates:
            raise EmptyCertificateChainError()
        object.__setattr__(self, "certificates", tuple(self.certificates))

    @property
    def leaf(self) -> Certificate:
        return self.certificates[0]

    @property
    def root(self) -> Certificate | None:
        if len(self.certificates) > 1:
            return self.certificates[-1]
        return None

    @property
    def intermediates(self) -> tuple[Certificate, ...]:
        return self.certificates[1:-1]


@dataclass(frozen=True, slots=True)
class CertificateQuery:
    """
    Conjunctive filter over a certificate collection.

    Unset fields do not constrain; string fields use case-sensitive
    substring containment.
    """

    common_name: str | None = None
    organization_name: str | None = None
    team_identifier: str | None = None
    type: CertificateType | None = None
    only_valid: bool = True


# ─────────────────────── Signing ───────────────────────


@dataclass(frozen=True, slots=True)
class SigningIdentity:
    certificate: Certificate
    type: CertificateType
    team_identifier: str | None = None
    private_key: Any = field(default=None, repr=False)

    @property
    def is_valid(self) -> bool:
        return self.certificate.is_valid

    @property
    def display_name(self) -> str:
        # Keychain names already end with "(TEAMID)"; the suffix is added only when missing.
        suffix = f"({self.team_identifier})"
        if self.team_identifier and not self.certificate.common_name.endswith(suffix):
            return f"{self.certificate.common_name} {suffix}"
        return self.certificate.common_name


@dataclass(frozen=True, slots=True)
class Entitlements:
    """
    Permissions granted to a signed binary, decoded from a property list.

    Construction fails with InvalidEntitlementsError unless the payload
    decodes to a dictionary.
    """

    plist_data: bytes = field(repr=False)
    permissions: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        try:
            payload = plistlib.loads(self.plist_data)
        except (ValueError, ExpatError) as e:
            raise InvalidEntitlementsError() from e
        if not isinstance(payload, dict):
            raise InvalidEntitlementsError()
        object.__setattr__(self, "permissions", frozenset(payload))

    @classmethod
    def from_file(cls, path: Path) -> Entitlements:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise InvalidEntitlementsError(f"Invalid entitlements file: {e}") from e
        return cls(data)


@dataclass(frozen=True, slots=True)
class SigningConfiguration:
    identity: SigningIdentity
    entitlements: Entitlements | None = None
    timestamp: bool = True
    hardened_runtime: bool = True
    deep_sign: bool = True
    force: bool = False


@dataclass(frozen=True, slots=True)
class SigningInfo:
    """Fields read back from `codesign --display --verbose=4`."""

    identifier: str | None = None
    format: str | None = None
    team_identifier: str | None = None
    authorities: tuple[str, ...] = ()
    signature_size: str | None = None
    timestamp: str | None = None
    is_hardened_runtime: bool = False


# ─────────────────────── Notarization ───────────────────────


@dataclass(frozen=True, slots=True)
class NotarizationCredentials:
    """
    One of three credential combinations accepted by the notary service:
    keychain profile, API key + issuer, or Apple ID + team + password.
    """

    apple_id: str | None = None
    team_id: str | None = None
    password: str | None = field(default=None, repr=False)
    api_key: str | None = None
    api_key_id: str | None = None
    api_issuer: str | None = None
    keychain_profile: str | None = None

    @property
    def is_valid(self) -> bool:
        if self.keychain_profile:
            return True
        if self.api_key and self.api_issuer:
            return True
        return bool(self.apple_id and self.team_id and self.password)


@unique
class NotarizationStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    SUCCESS = "success"
    INVALID = "invalid"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self not in (NotarizationStatus.PENDING, NotarizationStatus.IN_PROGRESS)


@dataclass(slots=True)
class NotarizationRequest:
    """
    A submission in flight.

    Starts as PENDING; the coordinator moves it to IN_PROGRESS once the
    upload is accepted and to a terminal status when polling completes.
    """

    bundle_identifier: str
    file_path: Path
    credentials: NotarizationCredentials
    primary_bundle_id: str | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    status: NotarizationStatus = NotarizationStatus.PENDING
    request_uuid: str | None = None
    log_file: Path | None = None

    @property
    def team_id(self) -> str | None:
        return self.credentials.team_id

    @property
    def username(self) -> str | None:
        return self.credentials.apple_id

    def snapshot(self) -> NotarizationRequest:
        return replace(self)


@unique
class IssueSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class NotarizationIssue:
    severity: IssueSeverity
    message: str
    path: str | None = None
    code: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is IssueSeverity.ERROR


@dataclass(frozen=True, slots=True)
class NotarizationResult:
    """
    Outcome of one notarization.

    `stapled` is None when stapling was not attempted; a failed staple keeps
    `status` as SUCCESS and records the tool's reason in `staple_error`.
    """

    request: NotarizationRequest
    status: NotarizationStatus
    log_file: Path | None = None
    issues: tuple[NotarizationIssue, ...] = ()
    completed_at: datetime = field(default_factory=utcnow)
    stapled: bool | None = None
    staple_error: str | None = None

    @property
    def duration(self) -> timedelta:
        return self.completed_at - self.request.created_at

    @property
    def errors(self) -> tuple[NotarizationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.is_error)


# ─────────────────────── Executors ───────────────────────


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """What an external tool hands back: exit code plus both output streams."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0
