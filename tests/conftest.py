"""
Shared test fixtures and helpers for the notary test suite.

Provides:
  - a scripted CommandExecutor that replays queued tool results and
    records every invocation (no real codesign/notarytool is ever run)
  - certificate factories around a fixed reference instant
  - generated X.509 / PKCS#12 material and P-256 signed certificates
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from notary.domain.models import Certificate, ExecutionResult

REFERENCE_NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)

DEVELOPER_ID_NAME = "Developer ID Application: Example Corp (ABCDE12345)"


class StubExecutor:
    """
    Scripted CommandExecutor.

    Results are served in order from `queue`; once it is empty, `responder`
    (if set) decides, else `default` is returned. Every argument list is
    recorded in `calls`.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.queue: list[ExecutionResult] = []
        self.default = ExecutionResult(exit_code=0)
        self.responder: Callable[[list[str]], ExecutionResult] | None = None

    def enqueue(self, *results: ExecutionResult) -> StubExecutor:
        self.queue.extend(results)
        return self

    async def run(self, arguments: Sequence[str]) -> ExecutionResult:
        recorded = list(arguments)
        self.calls.append(recorded)
        if self.queue:
            return self.queue.pop(0)
        if self.responder is not None:
            return self.responder(recorded)
        return self.default

    def calls_to(self, *prefix: str) -> list[list[str]]:
        """Invocations whose leading arguments equal `prefix`."""
        return [call for call in self.calls if call[: len(prefix)] == list(prefix)]


@pytest.fixture()
def executor() -> StubExecutor:
    return StubExecutor()


@pytest.fixture()
def now() -> datetime:
    return REFERENCE_NOW


@pytest.fixture()
def make_certificate() -> Callable[..., Certificate]:
    """
    Factory for certificates valid around REFERENCE_NOW.

    Defaults describe an Apple-issued Developer ID certificate valid for
    a year either side of the reference instant.
    """

    def factory(**overrides: object) -> Certificate:
        fields: dict[str, object] = {
            "common_name": DEVELOPER_ID_NAME,
            "organization_name": "Example Corp",
            "organization_unit": "ABCDE12345",
            "country_name": "US",
            "serial_number": "1a2b3c",
            "issuer": "CN=Developer ID Certification Authority,O=Apple Inc.,C=US",
            "subject": f"CN={DEVELOPER_ID_NAME},OU=ABCDE12345,O=Example Corp,C=US",
            "not_before": REFERENCE_NOW - timedelta(days=365),
            "not_after": REFERENCE_NOW + timedelta(days=365),
        }
        fields.update(overrides)
        return Certificate(**fields)  # type: ignore[arg-type]

    return factory


# ─────────────────────── Key material ───────────────────────


def _raw_signature(private_key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    r, s = decode_dss_signature(private_key.sign(data, ec.ECDSA(hashes.SHA256())))
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def _uncompressed_point(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


@pytest.fixture()
def p256_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture()
def signed_certificate(
    make_certificate: Callable[..., Certificate],
    p256_key: ec.EllipticCurvePrivateKey,
) -> Certificate:
    """A certificate whose raw_data carries a valid P-256/SHA-256 signature."""
    payload = b"to-be-signed certificate body"
    return make_certificate(
        raw_data=payload,
        public_key=_uncompressed_point(p256_key),
        signature=_raw_signature(p256_key, payload),
    )


def _build_x509(
    private_key: ec.EllipticCurvePrivateKey,
    common_name: str,
    not_before: datetime,
    not_after: datetime,
) -> x509.Certificate:
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "ABCDE12345"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Corp"),
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        ]
    )
    issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, "Developer ID Certification Authority"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Apple Inc."),
        ]
    )
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(0x1A2B3C)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(private_key, hashes.SHA256())
    )


@pytest.fixture()
def x509_certificate(p256_key: ec.EllipticCurvePrivateKey) -> x509.Certificate:
    return _build_x509(
        p256_key,
        DEVELOPER_ID_NAME,
        REFERENCE_NOW - timedelta(days=30),
        REFERENCE_NOW + timedelta(days=335),
    )


@pytest.fixture()
def der_bytes(x509_certificate: x509.Certificate) -> bytes:
    return x509_certificate.public_bytes(serialization.Encoding.DER)


@pytest.fixture()
def pem_bytes(x509_certificate: x509.Certificate) -> bytes:
    return x509_certificate.public_bytes(serialization.Encoding.PEM)


@pytest.fixture()
def pkcs12_bytes(p256_key: ec.EllipticCurvePrivateKey, x509_certificate: x509.Certificate) -> bytes:
    """PKCS#12 bundle protected with the password 'secret'."""
    return pkcs12.serialize_key_and_certificates(
        name=b"identity",
        key=p256_key,
        cert=x509_certificate,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(b"secret"),
    )
