"""
Code signing service — codesign and security driven through a CommandExecutor.

Builds argument lists from an immutable SigningConfiguration, runs them via
the injected executor, and reads results back from tool output:

  sign                 codesign [--force] [--deep] [--timestamp] [--options runtime]
                                --sign <identity> [--entitlements <tmp.plist>] <path>
  verify               codesign --verify [--deep] --strict --verbose=2 <path>
  extract_signing_info codesign --display --verbose=4 <path>   (parsed from stderr)
  remove_signature     codesign --remove-signature <path>
  list_identities      security find-identity -v -p codesigning

Entitlements are written to a scratch directory that is removed on every
exit path, including failures and cancellation.

The service holds no per-call state and can be shared between concurrent
signing jobs.
"""

from __future__ import annotations

import re
import tempfile
from datetime import timedelta
from pathlib import Path

import structlog
from railway.result import Result

from notary.domain.errors import (
    IdentityNotFoundError,
    InvalidBinaryError,
    SigningFailedError,
    capture,
)
from notary.domain.models import (
    Certificate,
    CertificateType,
    SigningConfiguration,
    SigningIdentity,
    SigningInfo,
    utcnow,
)
from notary.domain.ports import CommandExecutor

log = structlog.get_logger()

_TEAM_ID = re.compile(r"\(([A-Z0-9]+)\)")

# Identities listed by `security` carry no validity dates; assume a year.
_LISTED_IDENTITY_LIFETIME = timedelta(days=365)


def build_sign_arguments(path: Path, config: SigningConfiguration, entitlements_path: Path | None) -> list[str]:
    arguments = ["codesign"]
    if config.force:
        arguments.append("--force")
    if config.deep_sign:
        arguments.append("--deep")
    if config.timestamp:
        arguments.append("--timestamp")
    if config.hardened_runtime:
        arguments += ["--options", "runtime"]
    arguments += ["--sign", config.identity.display_name]
    if entitlements_path is not None:
        arguments += ["--entitlements", str(entitlements_path)]
    arguments.append(str(path))
    return arguments


def parse_signing_info(output: str) -> SigningInfo:
    """
    Read `codesign --display` diagnostics line by line.

    Keys are matched by prefix; unknown lines are ignored. Authorities keep
    their order and duplicates.
    """
    fields: dict[str, str] = {}
    authorities: list[str] = []
    hardened = False
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if line.startswith("Authority="):
            authorities.append(line.removeprefix("Authority=").strip())
        elif line.startswith("TeamIdentifier="):
            fields["team_identifier"] = line.removeprefix("TeamIdentifier=").strip()
        elif line.startswith("Identifier="):
            fields["identifier"] = line.removeprefix("Identifier=").strip()
        elif line.startswith("Format="):
            fields["format"] = line.removeprefix("Format=").strip()
        elif line.startswith("Signature size="):
            fields["signature_size"] = line.removeprefix("Signature size=").strip()
        elif line.startswith("Signature="):
            fields["signature_size"] = line.removeprefix("Signature=").strip()
        elif line.startswith("Timestamp="):
            fields["timestamp"] = line.removeprefix("Timestamp=").strip()
        elif line.startswith("CodeDirectory") and "(runtime)" in line:
            hardened = True
    return SigningInfo(authorities=tuple(authorities), is_hardened_runtime=hardened, **fields)


def parse_identities(output: str) -> list[SigningIdentity]:
    """
    Read `security find-identity` output.

    A line is an identity when it has a closing parenthesis and a quoted
    name; the name is the text inside the first pair of double quotes.
    """
    identities: list[SigningIdentity] = []
    now = utcnow()
    for line in output.splitlines():
        if ")" not in line or '"' not in line:
            continue
        parts = line.split('"')
        if len(parts) < 3:
            continue
        name = parts[1]
        team = _TEAM_ID.search(line)
        identities.append(
            SigningIdentity(
                certificate=Certificate(
                    common_name=name,
                    subject=name,
                    not_before=now,
                    not_after=now + _LISTED_IDENTITY_LIFETIME,
                ),
                type=CertificateType.infer(name),
                team_identifier=team.group(1) if team else None,
            )
        )
    return identities


class CodeSigningService:
    def __init__(self, executor: CommandExecutor, temp_directory: Path | None = None) -> None:
        self._executor = executor
        self._temp_directory = temp_directory

    async def sign(self, path: Path, config: SigningConfiguration) -> Result[Path]:
        """Sign `path`; failures carry codesign's stderr as the reason."""
        return await capture(lambda: self._do_sign(path, config))

    async def verify(self, path: Path, deep: bool = True) -> Result[bool]:
        """True when codesign accepts the signature. Output is not interpreted."""
        arguments = ["codesign", "--verify"]
        if deep:
            arguments.append("--deep")
        arguments += ["--strict", "--verbose=2", str(path)]
        return await capture(lambda: self._exit_ok(arguments))

    async def extract_signing_info(self, path: Path) -> Result[SigningInfo]:
        return await capture(lambda: self._do_extract(path))

    async def remove_signature(self, path: Path) -> Result[Path]:
        return await capture(lambda: self._do_remove(path))

    async def list_identities(self) -> Result[list[SigningIdentity]]:
        return await capture(self._do_list)

    async def _do_sign(self, path: Path, config: SigningConfiguration) -> Path:
        if self._temp_directory is not None:
            self._temp_directory.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=self._temp_directory) as scratch:
            entitlements_path = None
            if config.entitlements is not None:
                entitlements_path = Path(scratch) / "entitlements.plist"
                entitlements_path.write_bytes(config.entitlements.plist_data)

            result = await self._executor.run(build_sign_arguments(path, config, entitlements_path))

        if not result.succeeded:
            log.error("codesign.sign_failed", path=str(path), exit_code=result.exit_code)
            raise SigningFailedError(result.stderr)
        log.info("codesign.signed", path=str(path), identity=config.identity.display_name)
        return path

    async def _exit_ok(self, arguments: list[str]) -> bool:
        result = await self._executor.run(arguments)
        return result.succeeded

    async def _do_extract(self, path: Path) -> SigningInfo:
        result = await self._executor.run(["codesign", "--display", "--verbose=4", str(path)])
        if not result.succeeded:
            raise InvalidBinaryError()
        return parse_signing_info(result.stderr)

    async def _do_remove(self, path: Path) -> Path:
        result = await self._executor.run(["codesign", "--remove-signature", str(path)])
        if not result.succeeded:
            raise SigningFailedError("Failed to remove signature")
        return path

    async def _do_list(self) -> list[SigningIdentity]:
        result = await self._executor.run(["security", "find-identity", "-v", "-p", "codesigning"])
        if not result.succeeded:
            raise IdentityNotFoundError()
        identities = parse_identities(result.stdout)
        log.info("security.identities_listed", count=len(identities))
        return identities
