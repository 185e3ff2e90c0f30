"""
Keychain adapter — enumerate certificates with `security find-certificate`.

Implements the CertificateSource port:

  security find-certificate -a -p [keychain]
    → concatenated PEM blocks on stdout
    → one Certificate per block that parses

A keychain that cannot be searched yields an empty collection, and blocks
that fail to parse are skipped with a warning.
"""

from __future__ import annotations

import re

import structlog
from cryptography import x509
from railway.result import Result

from notary.adapters.x509_codec import certificate_from_x509
from notary.domain.errors import capture
from notary.domain.models import Certificate
from notary.domain.ports import CommandExecutor

log = structlog.get_logger()

_PEM_BLOCK = re.compile(
    r"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----",
    re.DOTALL,
)


def parse_pem_bundle(text: str) -> list[Certificate]:
    certificates: list[Certificate] = []
    for index, block in enumerate(_PEM_BLOCK.findall(text)):
        try:
            parsed = x509.load_pem_x509_certificate(block.encode("ascii"))
        except ValueError as e:
            log.warning("keychain.unparseable_certificate", index=index, error=str(e))
            continue
        certificates.append(certificate_from_x509(parsed))
    return certificates


class KeychainCertificateSource:
    def __init__(self, executor: CommandExecutor, keychain: str | None = None) -> None:
        self._executor = executor
        self._keychain = keychain

    async def certificates(self) -> Result[list[Certificate]]:
        return await capture(self._enumerate)

    async def _enumerate(self) -> list[Certificate]:
        arguments = ["security", "find-certificate", "-a", "-p"]
        if self._keychain:
            arguments.append(self._keychain)
        result = await self._executor.run(arguments)
        if not result.succeeded:
            log.warning("keychain.search_failed", exit_code=result.exit_code, stderr=result.stderr.strip())
            return []
        certificates = parse_pem_bundle(result.stdout)
        log.info("keychain.enumerated", count=len(certificates))
        return certificates
