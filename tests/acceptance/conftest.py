"""
Acceptance test fixtures — real adapters over a scripted tool host.

`FakeToolHost` plays the part of ditto, notarytool and stapler: it keeps
a queue of statuses that `notarytool info` walks through, the log text
`notarytool log` returns, and per-tool exit codes. Everything above the
CommandExecutor port is the production code path.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from notary.adapters.notarytool import DittoArchiver, NotarytoolClient, StaplerTicketStapler
from notary.domain.models import ExecutionResult
from notary.notarization import NotarizationSubmissionCoordinator
from notary.polling import StatusPoller


@dataclass
class FakeToolHost:
    """CommandExecutor answering the notarization tool invocations."""

    statuses: list[str] = field(default_factory=lambda: ["Accepted"])
    log_text: str = ""
    submit_exit: int = 0
    submit_stderr: str = ""
    staple_exit: int = 0
    calls: list[list[str]] = field(default_factory=list)

    async def run(self, arguments: Sequence[str]) -> ExecutionResult:
        recorded = list(arguments)
        self.calls.append(recorded)
        match recorded[:3]:
            case ["ditto", *_]:
                Path(recorded[-1]).write_bytes(b"PK\x03\x04")
                return ExecutionResult(exit_code=0)
            case ["xcrun", "notarytool", "submit"]:
                if self.submit_exit:
                    return ExecutionResult(exit_code=self.submit_exit, stderr=self.submit_stderr)
                return ExecutionResult(exit_code=0, stdout='{"id": "e2e-req-1", "message": "Successfully uploaded"}')
            case ["xcrun", "notarytool", "info"]:
                status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
                return ExecutionResult(exit_code=0, stdout=f'{{"id": "e2e-req-1", "status": "{status}"}}')
            case ["xcrun", "notarytool", "log"]:
                return ExecutionResult(exit_code=0, stdout=self.log_text)
            case ["xcrun", "stapler", "staple"]:
                return ExecutionResult(exit_code=self.staple_exit, stderr="" if self.staple_exit == 0 else "no ticket")
        return ExecutionResult(exit_code=127, stderr=f"{recorded[0]}: command not found")

    def invoked(self, *prefix: str) -> list[list[str]]:
        return [call for call in self.calls if call[: len(prefix)] == list(prefix)]


async def _no_wait(_seconds: float) -> None:
    return None


@pytest.fixture()
def tool_host() -> FakeToolHost:
    return FakeToolHost()


@pytest.fixture()
def work_directory(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture()
def log_directory(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture()
def coordinator(tool_host: FakeToolHost, work_directory: Path, log_directory: Path) -> NotarizationSubmissionCoordinator:
    client = NotarytoolClient(tool_host)
    return NotarizationSubmissionCoordinator(
        archiver=DittoArchiver(tool_host, temp_directory=work_directory),
        client=client,
        stapler=StaplerTicketStapler(tool_host),
        poller=StatusPoller(client, interval=0, max_attempts=10, sleep=_no_wait),
        log_directory=log_directory,
    )
