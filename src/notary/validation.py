"""
Certificate chain validation — temporal window, issuer heuristic, signature.

The validator is stateless after construction and may be shared by any
number of concurrent callers. Each check returns Result and the composed
`validate` chains them with flat_map, so the first failure wins:

  validate_temporal(chain)
    → validate_issuer(leaf)
      → verify_signature(member) for every member

The issuer check is a substring heuristic over issuer, subject and common
name. It is not RFC 5280 path validation.

Signature verification is skipped, not failed, when a certificate carries
no public key or no signature.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from railway.result import Result

from notary.domain.errors import InvalidCertificateError, VerificationFailedError
from notary.domain.models import Certificate, CertificateChain, utcnow

log = structlog.get_logger()

DEFAULT_ISSUER_MARKERS = ("Apple",)
DEFAULT_SUBJECT_MARKERS = ("Apple",)
DEFAULT_COMMON_NAME_MARKERS = ("Developer ID", "Apple Distribution", "Mac Developer")

EXPIRY_WARNING_DAYS = 30

# P-256 raw signatures are r||s, 32 bytes each.
_P256_COMPONENT_SIZE = 32


def _decode_raw_signature(signature: bytes) -> bytes:
    """Convert a raw r||s signature into the DER form cryptography verifies."""
    if len(signature) != 2 * _P256_COMPONENT_SIZE:
        raise ValueError(f"Expected {2 * _P256_COMPONENT_SIZE}-byte signature, got {len(signature)}")
    r = int.from_bytes(signature[:_P256_COMPONENT_SIZE], "big")
    s = int.from_bytes(signature[_P256_COMPONENT_SIZE:], "big")
    return encode_dss_signature(r, s)


class CertificateChainValidator:
    """Validates certificates and ordered chains of trust."""

    def __init__(
        self,
        issuer_markers: Sequence[str] = DEFAULT_ISSUER_MARKERS,
        subject_markers: Sequence[str] = DEFAULT_SUBJECT_MARKERS,
        common_name_markers: Sequence[str] = DEFAULT_COMMON_NAME_MARKERS,
    ) -> None:
        self._issuer_markers = tuple(issuer_markers)
        self._subject_markers = tuple(subject_markers)
        self._common_name_markers = tuple(common_name_markers)

    def validate_temporal(self, chain: CertificateChain, now: datetime | None = None) -> Result[CertificateChain]:
        """
        Check every member's validity window, leaf first.

        Stops at the first member outside its window with
        InvalidCertificateError naming that member.
        """
        moment = now or utcnow()
        for certificate in chain.certificates:
            if certificate.is_valid_at(moment):
                continue
            if moment > certificate.not_after:
                reason = f"Certificate has expired: {certificate.common_name}"
            else:
                reason = f"Certificate is not yet valid: {certificate.common_name}"
            return InvalidCertificateError(reason, member_name=certificate.common_name).to_failure()

        days_left = chain.leaf.days_until_expiration(moment)
        if days_left < EXPIRY_WARNING_DAYS:
            log.warning("certificate.expiring_soon", common_name=chain.leaf.common_name, days_left=days_left)
        return Result.success(chain)

    def validate_issuer(self, certificate: Certificate) -> Result[Certificate]:
        """Accept only certificates whose names carry a known trust-anchor marker."""
        recognized = (
            any(marker in certificate.issuer for marker in self._issuer_markers)
            or any(marker in certificate.subject for marker in self._subject_markers)
            or any(marker in certificate.common_name for marker in self._common_name_markers)
        )
        if not recognized:
            return InvalidCertificateError(
                "not a recognized certificate", member_name=certificate.common_name
            ).to_failure()
        return Result.success(certificate)

    def verify_signature(self, certificate: Certificate) -> Result[Certificate]:
        """
        Verify the ECDSA P-256 / SHA-256 signature over `raw_data`.

        Missing key material skips the check and succeeds.
        """
        if not certificate.public_key or not certificate.signature:
            log.debug("certificate.signature_check_skipped", common_name=certificate.common_name)
            return Result.success(certificate)

        try:
            public_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), certificate.public_key)
            public_key.verify(
                _decode_raw_signature(certificate.signature),
                certificate.raw_data,
                ec.ECDSA(hashes.SHA256()),
            )
        except (InvalidSignature, ValueError) as e:
            log.warning("certificate.signature_invalid", common_name=certificate.common_name, error=str(e))
            error = VerificationFailedError()
            error.__cause__ = e
            return error.to_failure()
        return Result.success(certificate)

    def validate(self, chain: CertificateChain, now: datetime | None = None) -> Result[CertificateChain]:
        """Temporal check, then issuer heuristic on the leaf, then every signature."""
        return (
            self.validate_temporal(chain, now)
            .flat_map(lambda c: self.validate_issuer(c.leaf).map(lambda _: c))
            .flat_map(self._verify_members)
        )

    def validate_certificate(self, certificate: Certificate, now: datetime | None = None) -> Result[Certificate]:
        """Full validation of a single certificate treated as a one-element chain."""
        return self.validate(CertificateChain((certificate,)), now).map(lambda chain: chain.leaf)

    def _verify_members(self, chain: CertificateChain) -> Result[CertificateChain]:
        for certificate in chain.certificates:
            verified = self.verify_signature(certificate)
            if verified.is_failure():
                return Result.failure_from(verified.error())
        return Result.success(chain)
