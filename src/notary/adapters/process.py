"""
Process adapter — runs external tools with asyncio subprocesses.

Implements the CommandExecutor port. Output streams are decoded as UTF-8
with replacement so a stray byte from a tool never aborts a pipeline.

No timeout is applied here: each tool (codesign, notarytool, stapler,
ditto) is trusted to enforce its own. A run that is cancelled, or that
fails while waiting, kills its child process before the error propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence

import structlog

from notary.domain.errors import ExecutorNotFoundError
from notary.domain.models import ExecutionResult

log = structlog.get_logger()


class SubprocessExecutor:
    """Run a command, wait for it, and capture exit code, stdout and stderr."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(env) if env is not None else None

    async def run(self, arguments: Sequence[str]) -> ExecutionResult:
        if not arguments:
            raise ValueError("Cannot run an empty command")
        program = arguments[0]
        log.debug("process.starting", program=program, argc=len(arguments))
        try:
            process = await asyncio.create_subprocess_exec(
                *arguments,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
            )
        except FileNotFoundError as e:
            raise ExecutorNotFoundError(program) from e

        try:
            stdout, stderr = await process.communicate()
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
                log.warning("process.killed", program=program, pid=process.pid)
            raise
        exit_code = process.returncode if process.returncode is not None else -1
        log.debug("process.finished", program=program, exit_code=exit_code)
        return ExecutionResult(
            exit_code=exit_code,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
