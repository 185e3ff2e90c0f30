"""
Unit tests for domain models — value objects.

Verifies the validity window, chain shape, type inference, entitlements
decoding, credential combinations and the notarization records.
"""

from __future__ import annotations

import plistlib
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import pytest

from notary.domain.errors import EmptyCertificateChainError, InvalidEntitlementsError
from notary.domain.models import (
    Certificate,
    CertificateChain,
    CertificateKind,
    CertificateType,
    Entitlements,
    ExecutionResult,
    IssueSeverity,
    NotarizationCredentials,
    NotarizationIssue,
    NotarizationRequest,
    NotarizationResult,
    NotarizationStatus,
    SigningIdentity,
)

# ─────────────────────── Certificate ───────────────────────


class TestCertificateValidity:
    """isValid ⇔ not_before ≤ t ≤ not_after, inclusive at both ends."""

    def test_valid_inside_window(self, make_certificate: Callable[..., Certificate], now) -> None:
        cert = make_certificate()
        assert cert.is_valid_at(now)

    def test_valid_exactly_at_not_before(self, make_certificate: Callable[..., Certificate], now) -> None:
        """
        GIVEN a certificate whose window starts at `now`
        WHEN checked at `now`
        THEN it is valid.
        """
        cert = make_certificate(not_before=now, not_after=now + timedelta(days=1))
        assert cert.is_valid_at(now)

    def test_valid_exactly_at_not_after(self, make_certificate: Callable[..., Certificate], now) -> None:
        cert = make_certificate(not_before=now - timedelta(days=1), not_after=now)
        assert cert.is_valid_at(now)

    def test_invalid_one_microsecond_after_expiry(self, make_certificate: Callable[..., Certificate], now) -> None:
        cert = make_certificate(not_after=now)
        assert not cert.is_valid_at(now + timedelta(microseconds=1))

    def test_invalid_before_window(self, make_certificate: Callable[..., Certificate], now) -> None:
        cert = make_certificate(not_before=now + timedelta(seconds=1))
        assert not cert.is_valid_at(now)

    def test_days_until_expiration_positive(self, make_certificate: Callable[..., Certificate], now) -> None:
        cert = make_certificate(not_after=now + timedelta(days=10, hours=3))
        assert cert.days_until_expiration(now) == 10

    def test_days_until_expiration_negative_when_expired(
        self, make_certificate: Callable[..., Certificate], now
    ) -> None:
        """
        GIVEN a certificate that expired five days ago
        WHEN days_until_expiration is computed
        THEN it is negative.
        """
        cert = make_certificate(not_after=now - timedelta(days=5))
        assert cert.days_until_expiration(now) < 0

    def test_expired_certificate_reports_expired(self, make_certificate: Callable[..., Certificate], now) -> None:
        cert = make_certificate(not_before=now - timedelta(days=800), not_after=now - timedelta(days=400))
        assert cert.is_expired
        assert not cert.is_valid

    def test_frozen_prevents_mutation(self, make_certificate: Callable[..., Certificate]) -> None:
        cert = make_certificate()
        with pytest.raises(AttributeError):
            cert.common_name = "changed"  # type: ignore[misc]

    def test_repr_omits_key_material(self, make_certificate: Callable[..., Certificate]) -> None:
        cert = make_certificate(public_key=b"\x04secret-point", raw_data=b"body")
        assert "secret-point" not in repr(cert)


# ─────────────────────── CertificateChain ───────────────────────


class TestCertificateChain:
    def test_empty_chain_fails_construction(self) -> None:
        """
        GIVEN an empty sequence
        WHEN a CertificateChain is constructed
        THEN EmptyCertificateChainError is raised.
        """
        with pytest.raises(EmptyCertificateChainError, match="The certificate chain is empty"):
            CertificateChain(())

    def test_single_member_has_no_root_and_no_intermediates(
        self, make_certificate: Callable[..., Certificate]
    ) -> None:
        leaf = make_certificate()
        chain = CertificateChain((leaf,))
        assert chain.leaf is leaf
        assert chain.root is None
        assert chain.intermediates == ()

    def test_two_members_have_root_and_no_intermediates(
        self, make_certificate: Callable[..., Certificate]
    ) -> None:
        leaf, root = make_certificate(common_name="leaf"), make_certificate(common_name="root")
        chain = CertificateChain((leaf, root))
        assert chain.root is root
        assert chain.intermediates == ()

    def test_intermediates_are_strictly_between_leaf_and_root(
        self, make_certificate: Callable[..., Certificate]
    ) -> None:
        """
        GIVEN a chain of four certificates
        WHEN its parts are read
        THEN intermediates are members 1..2 and the root is member 3.
        """
        members = [make_certificate(common_name=f"cert-{i}") for i in range(4)]
        chain = CertificateChain(tuple(members))
        assert chain.leaf is members[0]
        assert chain.intermediates == (members[1], members[2])
        assert chain.root is members[3]

    def test_list_input_is_stored_as_tuple(self, make_certificate: Callable[..., Certificate]) -> None:
        chain = CertificateChain([make_certificate()])  # type: ignore[arg-type]
        assert isinstance(chain.certificates, tuple)


# ─────────────────────── CertificateType ───────────────────────


class TestCertificateType:
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("Developer ID Application: Example Corp (ABCDE12345)", CertificateKind.DEVELOPER_ID),
            ("Apple Distribution: Example Corp (ABCDE12345)", CertificateKind.APPLE_DISTRIBUTION),
            ("3rd Party Mac Developer Installer: Example Corp (ABCDE12345)", CertificateKind.MAC_INSTALLER),
        ],
    )
    def test_infers_well_known_kinds(self, name: str, kind: CertificateKind) -> None:
        assert CertificateType.infer(name).kind is kind

    def test_unknown_name_becomes_custom(self) -> None:
        """
        GIVEN a name containing no well-known identifier
        WHEN inferred
        THEN the type is custom and carries the full name as identifier.
        """
        inferred = CertificateType.infer("Apple Development: someone@example.com (XYZ)")
        assert inferred.kind is CertificateKind.CUSTOM
        assert inferred.identifier == "Apple Development: someone@example.com (XYZ)"

    def test_developer_id_wins_over_later_kinds(self) -> None:
        inferred = CertificateType.infer("Developer ID Application / Apple Distribution")
        assert inferred.kind is CertificateKind.DEVELOPER_ID

    def test_installer_kind_is_not_inferred(self) -> None:
        inferred = CertificateType.infer("Developer ID Installer: Example Corp (ABCDE12345)")
        assert inferred.kind is CertificateKind.CUSTOM

    def test_identifier_of_well_known_kind(self) -> None:
        assert CertificateType(CertificateKind.DEVELOPER_ID_INSTALLER).identifier == "Developer ID Installer"


# ─────────────────────── SigningIdentity / Entitlements ───────────────────────


class TestSigningIdentity:
    def test_display_name_with_team(self, make_certificate: Callable[..., Certificate]) -> None:
        identity = SigningIdentity(
            certificate=make_certificate(common_name="Developer ID Application: Example Corp"),
            type=CertificateType(CertificateKind.DEVELOPER_ID),
            team_identifier="ABCDE12345",
        )
        assert identity.display_name == "Developer ID Application: Example Corp (ABCDE12345)"

    def test_display_name_does_not_repeat_team(self, make_certificate: Callable[..., Certificate]) -> None:
        identity = SigningIdentity(
            certificate=make_certificate(common_name="Developer ID Application: Example Corp (ABCDE12345)"),
            type=CertificateType(CertificateKind.DEVELOPER_ID),
            team_identifier="ABCDE12345",
        )
        assert identity.display_name == "Developer ID Application: Example Corp (ABCDE12345)"

    def test_display_name_without_team(self, make_certificate: Callable[..., Certificate]) -> None:
        identity = SigningIdentity(
            certificate=make_certificate(common_name="Example"),
            type=CertificateType.custom("Example"),
        )
        assert identity.display_name == "Example"


class TestEntitlements:
    def test_permissions_are_plist_keys(self) -> None:
        data = plistlib.dumps(
            {
                "com.apple.security.app-sandbox": True,
                "com.apple.security.network.client": True,
            }
        )
        entitlements = Entitlements(data)
        assert entitlements.permissions == frozenset(
            {"com.apple.security.app-sandbox", "com.apple.security.network.client"}
        )

    def test_non_dictionary_payload_is_rejected(self) -> None:
        """
        GIVEN a property list whose root is an array
        WHEN Entitlements are constructed
        THEN InvalidEntitlementsError is raised.
        """
        with pytest.raises(InvalidEntitlementsError):
            Entitlements(plistlib.dumps(["not", "a", "dict"]))

    def test_garbage_payload_is_rejected(self) -> None:
        with pytest.raises(InvalidEntitlementsError):
            Entitlements(b"definitely not a plist")

    def test_from_missing_file_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidEntitlementsError):
            Entitlements.from_file(tmp_path / "missing.plist")

    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "app.entitlements"
        path.write_bytes(plistlib.dumps({"com.apple.security.cs.allow-jit": True}))
        assert Entitlements.from_file(path).permissions == frozenset({"com.apple.security.cs.allow-jit"})


# ─────────────────────── Notarization ───────────────────────


class TestNotarizationCredentials:
    @pytest.mark.parametrize(
        "credentials",
        [
            NotarizationCredentials(keychain_profile="notary-profile"),
            NotarizationCredentials(api_key="KEY123", api_issuer="issuer-uuid"),
            NotarizationCredentials(apple_id="dev@example.com", team_id="ABCDE12345", password="app-pass"),
        ],
    )
    def test_each_complete_combination_is_valid(self, credentials: NotarizationCredentials) -> None:
        assert credentials.is_valid

    @pytest.mark.parametrize(
        "credentials",
        [
            NotarizationCredentials(),
            NotarizationCredentials(api_key="KEY123"),
            NotarizationCredentials(apple_id="dev@example.com", team_id="ABCDE12345"),
        ],
    )
    def test_incomplete_combinations_are_invalid(self, credentials: NotarizationCredentials) -> None:
        assert not credentials.is_valid

    def test_repr_hides_password(self) -> None:
        credentials = NotarizationCredentials(apple_id="a", team_id="b", password="hunter2")
        assert "hunter2" not in repr(credentials)


class TestNotarizationStatus:
    @pytest.mark.parametrize(
        "status",
        [NotarizationStatus.SUCCESS, NotarizationStatus.INVALID, NotarizationStatus.FAILED, NotarizationStatus.REJECTED],
    )
    def test_terminal_statuses(self, status: NotarizationStatus) -> None:
        assert status.is_terminal

    @pytest.mark.parametrize("status", [NotarizationStatus.PENDING, NotarizationStatus.IN_PROGRESS])
    def test_non_terminal_statuses(self, status: NotarizationStatus) -> None:
        assert not status.is_terminal


class TestNotarizationRecords:
    def _request(self, now) -> NotarizationRequest:
        return NotarizationRequest(
            bundle_identifier="com.example.app",
            file_path=Path("/tmp/Example.app"),
            credentials=NotarizationCredentials(apple_id="dev@example.com", team_id="ABCDE12345", password="p"),
            created_at=now,
        )

    def test_request_starts_pending(self, now) -> None:
        request = self._request(now)
        assert request.status is NotarizationStatus.PENDING
        assert request.request_uuid is None
        assert request.team_id == "ABCDE12345"
        assert request.username == "dev@example.com"

    def test_snapshot_is_independent(self, now) -> None:
        """
        GIVEN a request snapshot
        WHEN the original request advances
        THEN the snapshot keeps the earlier status.
        """
        request = self._request(now)
        snapshot = request.snapshot()
        request.status = NotarizationStatus.IN_PROGRESS
        assert snapshot.status is NotarizationStatus.PENDING

    def test_duration_is_completion_minus_creation(self, now) -> None:
        request = self._request(now)
        result = NotarizationResult(
            request=request,
            status=NotarizationStatus.SUCCESS,
            completed_at=now + timedelta(minutes=4),
        )
        assert result.duration == timedelta(minutes=4)

    def test_errors_filters_error_issues(self, now) -> None:
        error = NotarizationIssue(IssueSeverity.ERROR, "error: bad")
        warning = NotarizationIssue(IssueSeverity.WARNING, "warning: meh")
        result = NotarizationResult(
            request=self._request(now),
            status=NotarizationStatus.INVALID,
            issues=(error, warning),
            completed_at=now,
        )
        assert result.errors == (error,)


class TestExecutionResult:
    def test_zero_exit_succeeds(self) -> None:
        assert ExecutionResult(exit_code=0).succeeded

    def test_non_zero_exit_fails(self) -> None:
        assert not ExecutionResult(exit_code=1, stderr="boom").succeeded
