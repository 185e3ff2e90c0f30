"""
Notarization adapters — ditto, notarytool and stapler via a CommandExecutor.

Adapter layer — implements the BundleArchiver, NotarizationClient and
TicketStapler ports by building argument lists for Apple's command-line
tools and interpreting their output:

  ditto -c -k --keepParent <bundle> <archive.zip>
  xcrun notarytool submit <archive> <credentials> --output-format json
  xcrun notarytool info <id> <credentials> --output-format json
  xcrun notarytool log <id> <credentials>
  xcrun stapler staple <bundle>

Tool failures become domain errors carrying the tool's stderr, which the
port methods hand back as Result failures. None of these calls is retried:
an upload that fails is reported, not resubmitted.
"""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from uuid import uuid4

import structlog
from railway.result import Result

from notary.domain.errors import (
    InvalidBundleError,
    StapleFailedError,
    StatusCheckFailedError,
    UploadFailedError,
    capture,
)
from notary.domain.models import NotarizationCredentials, NotarizationStatus
from notary.domain.ports import CommandExecutor

log = structlog.get_logger()

# notarytool reports human-facing status names; older tooling used the
# enum spellings. Anything unrecognised is treated as still pending.
_STATUS_NAMES: dict[str, NotarizationStatus] = {
    "pending": NotarizationStatus.PENDING,
    "in progress": NotarizationStatus.IN_PROGRESS,
    "inprogress": NotarizationStatus.IN_PROGRESS,
    "accepted": NotarizationStatus.SUCCESS,
    "success": NotarizationStatus.SUCCESS,
    "invalid": NotarizationStatus.INVALID,
    "failed": NotarizationStatus.FAILED,
    "rejected": NotarizationStatus.REJECTED,
}


def credential_arguments(credentials: NotarizationCredentials) -> list[str]:
    """
    notarytool authentication flags for whichever combination is complete.

    Preference order: keychain profile, API key, Apple ID.
    """
    if credentials.keychain_profile:
        return ["--keychain-profile", credentials.keychain_profile]
    if credentials.api_key and credentials.api_issuer:
        arguments = ["--key", credentials.api_key, "--issuer", credentials.api_issuer]
        if credentials.api_key_id:
            arguments += ["--key-id", credentials.api_key_id]
        return arguments
    return [
        "--apple-id", credentials.apple_id or "",
        "--password", credentials.password or "",
        "--team-id", credentials.team_id or "",
    ]


def parse_status(payload: str) -> NotarizationStatus:
    """Read the `status` field of `notarytool info` JSON output."""
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as e:
        raise StatusCheckFailedError("unreadable status response") from e
    status = document.get("status") if isinstance(document, dict) else None
    if not isinstance(status, str):
        raise StatusCheckFailedError("status missing from response")
    resolved = _STATUS_NAMES.get(status.strip().lower())
    if resolved is None:
        log.warning("notarytool.unknown_status", status=status)
        return NotarizationStatus.PENDING
    return resolved


def parse_submission_id(payload: str) -> str:
    """Read the request identifier from `notarytool submit` JSON output."""
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as e:
        raise UploadFailedError("Failed to parse response") from e
    request_id = document.get("id") if isinstance(document, dict) else None
    if not isinstance(request_id, str) or not request_id:
        raise UploadFailedError("Failed to parse response")
    return request_id


class DittoArchiver:
    """Zip a bundle with `ditto`, keeping the parent directory as the archive root."""

    def __init__(self, executor: CommandExecutor, temp_directory: Path | None = None) -> None:
        self._executor = executor
        self._temp_directory = temp_directory

    async def archive(self, path: Path) -> Result[Path]:
        return await capture(lambda: self._do_archive(path))

    def discard(self, archive: Path) -> None:
        archive.unlink(missing_ok=True)

    async def _do_archive(self, path: Path) -> Path:
        directory = self._temp_directory or Path(tempfile.gettempdir())
        directory.mkdir(parents=True, exist_ok=True)
        destination = directory / f"{uuid4()}.zip"
        result = await self._executor.run(
            ["ditto", "-c", "-k", "--keepParent", str(path), str(destination)]
        )
        if not result.succeeded:
            log.error("archive.failed", path=str(path), exit_code=result.exit_code)
            raise InvalidBundleError()
        log.info("archive.created", path=str(path), archive=str(destination))
        return destination


class NotarytoolClient:
    """Submit, poll and fetch logs through `xcrun notarytool`."""

    def __init__(self, executor: CommandExecutor) -> None:
        self._executor = executor

    async def submit(self, archive: Path, credentials: NotarizationCredentials) -> Result[str]:
        return await capture(lambda: self._do_submit(archive, credentials))

    async def status(self, request_id: str, credentials: NotarizationCredentials) -> Result[NotarizationStatus]:
        return await capture(lambda: self._do_status(request_id, credentials))

    async def fetch_log(self, request_id: str, credentials: NotarizationCredentials) -> Result[str]:
        return await capture(lambda: self._do_fetch_log(request_id, credentials))

    async def _do_submit(self, archive: Path, credentials: NotarizationCredentials) -> str:
        result = await self._executor.run(
            ["xcrun", "notarytool", "submit", str(archive)]
            + credential_arguments(credentials)
            + ["--output-format", "json"]
        )
        if not result.succeeded:
            raise UploadFailedError(result.stderr)
        request_id = parse_submission_id(result.stdout)
        log.info("notarytool.submitted", request_id=request_id)
        return request_id

    async def _do_status(self, request_id: str, credentials: NotarizationCredentials) -> NotarizationStatus:
        result = await self._executor.run(
            ["xcrun", "notarytool", "info", request_id]
            + credential_arguments(credentials)
            + ["--output-format", "json"]
        )
        if not result.succeeded:
            raise StatusCheckFailedError(result.stderr)
        return parse_status(result.stdout)

    async def _do_fetch_log(self, request_id: str, credentials: NotarizationCredentials) -> str:
        result = await self._executor.run(
            ["xcrun", "notarytool", "log", request_id] + credential_arguments(credentials)
        )
        if not result.succeeded:
            raise StatusCheckFailedError(result.stderr)
        return result.stdout


class StaplerTicketStapler:
    """Staple the notarization ticket with `xcrun stapler`."""

    def __init__(self, executor: CommandExecutor) -> None:
        self._executor = executor

    async def staple(self, path: Path) -> Result[Path]:
        return await capture(lambda: self._do_staple(path))

    async def _do_staple(self, path: Path) -> Path:
        result = await self._executor.run(["xcrun", "stapler", "staple", str(path)])
        if not result.succeeded:
            raise StapleFailedError(result.stderr)
        return path
