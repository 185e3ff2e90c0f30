"""
Ports — Protocol-based interfaces for the external tools the core drives.

These define WHAT the core needs without specifying HOW it is done.
Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing) so adapters, and the scripted
stubs used in tests, satisfy the contract simply by implementing the
methods — no inheritance.

Every tool invocation is a suspension point, so all ports are async.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from railway.result import Result

from notary.domain.models import (
    Certificate,
    ExecutionResult,
    NotarizationCredentials,
    NotarizationStatus,
)


@runtime_checkable
class CommandExecutor(Protocol):
    """
    Port: run an external program and collect its outcome.

    The uniform request/response contract shared by signing, verification,
    submission, polling, stapling and log retrieval:
    argument list in, (exit code, stdout, stderr) out.

    A non-zero exit code is a normal return value, not an exception.
    Raises ExecutorNotFoundError only when the program cannot be started.
    """

    async def run(self, arguments: Sequence[str]) -> ExecutionResult: ...


@runtime_checkable
class BundleArchiver(Protocol):
    """
    Port: compress a bundle into an uploadable container.

    Returns Result[Path] pointing at the archive, or a failure caused by
    InvalidBundleError.
    """

    async def archive(self, path: Path) -> Result[Path]: ...

    def discard(self, archive: Path) -> None:
        """Remove an archive produced by `archive`. Missing files are ignored."""
        ...


@runtime_checkable
class NotarizationClient(Protocol):
    """
    Port: talk to the remote notarization service.

    submit     → externally issued request identifier (UploadFailedError)
    status     → current NotarizationStatus (StatusCheckFailedError)
    fetch_log  → raw diagnostic log text (StatusCheckFailedError)
    """

    async def submit(self, archive: Path, credentials: NotarizationCredentials) -> Result[str]: ...

    async def status(self, request_id: str, credentials: NotarizationCredentials) -> Result[NotarizationStatus]: ...

    async def fetch_log(self, request_id: str, credentials: NotarizationCredentials) -> Result[str]: ...


@runtime_checkable
class TicketStapler(Protocol):
    """Port: attach the notarization ticket to a bundle (StapleFailedError)."""

    async def staple(self, path: Path) -> Result[Path]: ...


@runtime_checkable
class CertificateSource(Protocol):
    """Port: enumerate certificates from a store such as the login keychain."""

    async def certificates(self) -> Result[list[Certificate]]: ...
