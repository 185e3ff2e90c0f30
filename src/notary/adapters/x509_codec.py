"""
X.509 codec adapter — certificate import and export via cryptography.

Adapter layer — converts between the bytes users hand us and the domain
Certificate / SigningIdentity models:

  DER bytes            → x509.load_der_x509_certificate → Certificate
  PEM bytes            → x509.load_pem_x509_certificate → Certificate
  PKCS#12 + password   → pkcs12.load_key_and_certificates → SigningIdentity
  Certificate          → DER bytes (raw_data)

Imported certificates carry `raw_data` = DER and no separate public key or
signature blobs, so signature verification treats them as "nothing to
check". Exporting a private key is refused: without a password it is a
validation error, with one it is reported as not implemented.
"""

from __future__ import annotations

import structlog
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding, pkcs12
from cryptography.x509.oid import NameOID
from railway.result import Result

from notary.domain.errors import (
    CertificateNotFoundError,
    ExportNotImplementedError,
    InvalidCertificateError,
    InvalidCertificateFormatError,
    attempt,
)
from notary.domain.models import Certificate, CertificateType, SigningIdentity

log = structlog.get_logger()

_PEM_MARKER = b"-----BEGIN CERTIFICATE-----"


def _first_attribute(name: x509.Name, oid: x509.ObjectIdentifier) -> str:
    attributes = name.get_attributes_for_oid(oid)
    if not attributes:
        return ""
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def certificate_from_x509(cert: x509.Certificate) -> Certificate:
    """Map a parsed X.509 certificate onto the domain model."""
    subject = cert.subject
    return Certificate(
        common_name=_first_attribute(subject, NameOID.COMMON_NAME),
        organization_name=_first_attribute(subject, NameOID.ORGANIZATION_NAME),
        organization_unit=_first_attribute(subject, NameOID.ORGANIZATIONAL_UNIT_NAME),
        country_name=_first_attribute(subject, NameOID.COUNTRY_NAME),
        serial_number=format(cert.serial_number, "x"),
        issuer=cert.issuer.rfc4514_string(),
        subject=subject.rfc4514_string(),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        raw_data=cert.public_bytes(Encoding.DER),
    )


def _load_single(data: bytes) -> x509.Certificate:
    try:
        if data.lstrip().startswith(_PEM_MARKER):
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise InvalidCertificateFormatError() from e


def _load_pkcs12(data: bytes, password: str) -> SigningIdentity:
    try:
        private_key, cert, _additional = pkcs12.load_key_and_certificates(data, password.encode("utf-8"))
    except (ValueError, TypeError) as e:
        raise InvalidCertificateFormatError() from e
    if cert is None:
        raise CertificateNotFoundError()
    certificate = certificate_from_x509(cert)
    log.info("certificate.imported_pkcs12", common_name=certificate.common_name)
    return SigningIdentity(
        certificate=certificate,
        type=CertificateType.infer(certificate.common_name),
        team_identifier=certificate.organization_unit or None,
        private_key=private_key,
    )


class X509CertificateCodec:
    """Stateless import/export of certificates and identities."""

    def import_certificate(self, data: bytes, password: str | None = None) -> Result[Certificate]:
        """
        Import a single certificate.

        With a password the bytes are read as a PKCS#12 bundle and its
        certificate is returned; otherwise they are DER (or PEM).
        """
        if password is not None:
            return self.import_identity(data, password).map(lambda identity: identity.certificate)
        return attempt(lambda: certificate_from_x509(_load_single(data)))

    def import_identity(self, data: bytes, password: str) -> Result[SigningIdentity]:
        """Import identity + certificate from a password-protected PKCS#12 bundle."""
        return attempt(lambda: _load_pkcs12(data, password))

    def export_certificate(
        self,
        certificate: Certificate,
        include_private_key: bool = False,
        password: str | None = None,
    ) -> Result[bytes]:
        if include_private_key:
            if password is None:
                return InvalidCertificateError("Password required for private key export").to_failure()
            return ExportNotImplementedError().to_failure()
        return Result.success(certificate.raw_data)
