"""
Certificate query engine — predicate filtering over certificate collections.

`matches` is a pure AND over the query's optional fields; `find` pulls a
collection from a CertificateSource (normally the keychain) and filters it.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog
from railway.result import Result

from notary.domain.models import Certificate, CertificateQuery, utcnow
from notary.domain.ports import CertificateSource

log = structlog.get_logger()


def matches(certificate: Certificate, query: CertificateQuery, now: datetime | None = None) -> bool:
    """
    True when the certificate satisfies every field set on the query.

    With `only_valid` an invalid certificate never matches, whatever the
    other fields say.
    """
    if query.only_valid and not certificate.is_valid_at(now or utcnow()):
        return False
    if query.common_name is not None and query.common_name not in certificate.common_name:
        return False
    if query.organization_name is not None and query.organization_name not in certificate.organization_name:
        return False
    if query.team_identifier is not None and query.team_identifier not in certificate.organization_unit:
        return False
    if query.type is not None and query.type.identifier not in certificate.common_name:
        return False
    return True


class CertificateQueryEngine:
    """Stateless filter, optionally bound to a certificate source."""

    def __init__(self, source: CertificateSource | None = None) -> None:
        self._source = source

    def filter(
        self,
        certificates: Iterable[Certificate],
        query: CertificateQuery,
        now: datetime | None = None,
    ) -> list[Certificate]:
        moment = now or utcnow()
        return [certificate for certificate in certificates if matches(certificate, query, moment)]

    async def find(self, query: CertificateQuery) -> Result[list[Certificate]]:
        """Enumerate the bound source and keep the certificates matching the query."""
        if self._source is None:
            return Result.success([])
        found = await self._source.certificates()
        return found.map(lambda certificates: self.filter(certificates, query)).peek(
            lambda matched: log.info("certificates.matched", count=len(matched))
        )
