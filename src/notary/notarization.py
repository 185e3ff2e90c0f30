"""
Notarization coordinator — the submission state machine.

Drives one NotarizationRequest through the ports, strictly in order:

  archive(bundle)                       → InvalidBundleError, status stays PENDING
    → submit(archive, credentials)      → UploadFailedError, status stays PENDING
      → status = IN_PROGRESS
        → poller.wait_for_completion    → StatusCheckFailed / Timeout
          → status = terminal
            SUCCESS           → staple (best effort, never fatal)
            INVALID           → fetch_log → parse_log_issues
            FAILED / REJECTED → no log, no issues

Each stage returns Result[T] and the stages are chained with
flat_map_async, so the first failure short-circuits the rest. The request
status is written exactly twice: once when the upload is accepted and once
when polling ends.

A coordinator holds no per-request state. The request it is given is owned
by that call until the result is produced; do not drive the same request
from two tasks.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import structlog
from railway.result import Result

from notary.domain.errors import InvalidCredentialsError, ValidationError
from notary.domain.log_issues import parse_log_issues
from notary.domain.models import (
    NotarizationRequest,
    NotarizationResult,
    NotarizationStatus,
    utcnow,
)
from notary.domain.ports import BundleArchiver, NotarizationClient, TicketStapler
from notary.polling import StatusPoller

log = structlog.get_logger()


class NotarizationSubmissionCoordinator:
    def __init__(
        self,
        archiver: BundleArchiver,
        client: NotarizationClient,
        stapler: TicketStapler,
        poller: StatusPoller,
        log_directory: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._archiver = archiver
        self._client = client
        self._stapler = stapler
        self._poller = poller
        self._log_directory = log_directory
        self._clock = clock

    # ──────────────────────── Public API ────────────────────────

    async def notarize(self, request: NotarizationRequest, staple: bool = True) -> Result[NotarizationResult]:
        """Submit the request and wait for its terminal outcome."""
        submitted = await self.submit(request)
        return await submitted.flat_map_async(lambda accepted: self.wait(accepted, staple=staple))

    async def submit(self, request: NotarizationRequest) -> Result[NotarizationRequest]:
        """
        Archive and upload, without waiting for the service's verdict.

        On success the request carries the service's identifier and is
        IN_PROGRESS. Credentials are checked before any tool runs.
        """
        if not request.credentials.is_valid:
            log.error("notarization.invalid_credentials", request=str(request.id))
            return InvalidCredentialsError().to_failure()

        log.info("notarization.submitting", request=str(request.id), bundle_id=request.bundle_identifier)
        archived = await self._archiver.archive(request.file_path)
        return await archived.flat_map_async(lambda archive: self._upload(request, archive))

    async def wait(self, request: NotarizationRequest, staple: bool = True) -> Result[NotarizationResult]:
        """Poll an uploaded request to completion and run the post-processing for its status."""
        if request.request_uuid is None:
            return ValidationError("Request has not been submitted").to_failure()
        polled = await self._poller.wait_for_completion(request.request_uuid, request.credentials)
        return await polled.flat_map_async(lambda status: self._conclude(request, status, staple))

    # ──────────────────────── Stages ────────────────────────

    async def _upload(self, request: NotarizationRequest, archive: Path) -> Result[NotarizationRequest]:
        try:
            uploaded = await self._client.submit(archive, request.credentials)
        finally:
            self._archiver.discard(archive)
        return uploaded.map(lambda request_id: self._accepted(request, request_id)).peek_failure(
            lambda error: log.error("notarization.upload_failed", request=str(request.id), error=error.message)
        )

    def _accepted(self, request: NotarizationRequest, request_id: str) -> NotarizationRequest:
        request.request_uuid = request_id
        request.status = NotarizationStatus.IN_PROGRESS
        log.info("notarization.uploaded", request=str(request.id), request_id=request_id)
        return request

    async def _conclude(
        self,
        request: NotarizationRequest,
        status: NotarizationStatus,
        staple: bool,
    ) -> Result[NotarizationResult]:
        request.status = status
        log.info("notarization.completed", request=str(request.id), status=status.value)
        match status:
            case NotarizationStatus.SUCCESS:
                return Result.success(await self._staple(request, staple))
            case NotarizationStatus.INVALID:
                return await self._collect_issues(request)
            case _:
                return Result.success(self._result(request))

    async def _staple(self, request: NotarizationRequest, staple: bool) -> NotarizationResult:
        if not staple:
            return self._result(request)
        stapled = await self._stapler.staple(request.file_path)
        if stapled.is_success():
            log.info("staple.completed", path=str(request.file_path))
            return self._result(request, stapled=True)
        reason = stapled.error().message
        log.warning("staple.failed", path=str(request.file_path), error=reason)
        return self._result(request, stapled=False, staple_error=reason)

    async def _collect_issues(self, request: NotarizationRequest) -> Result[NotarizationResult]:
        if request.request_uuid is None:
            return ValidationError("Request has not been submitted").to_failure()
        fetched = await self._client.fetch_log(request.request_uuid, request.credentials)
        return fetched.map(lambda text: self._with_issues(request, text))

    def _with_issues(self, request: NotarizationRequest, log_text: str) -> NotarizationResult:
        issues = parse_log_issues(log_text)
        request.log_file = self._store_log(request, log_text)
        log.info(
            "notarization.issues_parsed",
            request=str(request.id),
            errors=sum(1 for issue in issues if issue.is_error),
            total=len(issues),
        )
        return self._result(request, issues=tuple(issues))

    def _store_log(self, request: NotarizationRequest, log_text: str) -> Path | None:
        """Keep a copy of the service log when a log directory is configured."""
        if self._log_directory is None:
            return None
        name = Path(request.request_uuid or "").name
        if name in ("", ".", ".."):
            log.warning("notarization.log_not_saved", request=str(request.id), error="unusable request ID")
            return None
        destination = self._log_directory / f"{name}.log"
        try:
            self._log_directory.mkdir(parents=True, exist_ok=True)
            destination.write_text(log_text, encoding="utf-8")
        except OSError as e:
            log.warning("notarization.log_not_saved", path=str(destination), error=str(e))
            return None
        return destination

    def _result(self, request: NotarizationRequest, **fields: object) -> NotarizationResult:
        return NotarizationResult(
            request=request.snapshot(),
            status=request.status,
            log_file=request.log_file,
            completed_at=self._clock(),
            **fields,  # type: ignore[arg-type]
        )
