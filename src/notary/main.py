"""
Command-line entry point — parses arguments, wires dependencies, runs a command.

Composition root: creates the subprocess executor and every adapter on top
of it, injects them into the signing service and the notarization
coordinator, and hands those to the selected command.

This is the ONLY place where concrete adapters are instantiated.

Commands:
  sign <path>             sign, then verify the fresh signature
  notarize <path>         archive + upload; with --wait also poll and post-process
  verify <path>           check a signature, optionally print its details
  list-identities         identities usable for code signing
  config                  show or edit ~/.notary/config.json

Exit codes:
  0  success
  1  failure (message printed to stderr)
  2  usage error (argparse)
  3  partial success: signed but not verified, notarized but not stapled
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeAlias
from datetime import timedelta
from pathlib import Path

import structlog
from pydantic import ValidationError as PydanticValidationError
from railway import LoggingExecutionContext
from railway.result import Result

from notary import __version__
from notary.adapters.notarytool import DittoArchiver, NotarytoolClient, StaplerTicketStapler
from notary.adapters.process import SubprocessExecutor
from notary.config import (
    ConfigurationManager,
    NotarizationCredentialsConfiguration,
    NotaryConfiguration,
    NotarySettings,
    SigningIdentityConfiguration,
    merge_environment,
    resolve_credentials,
)
from notary.domain.errors import NotarizationFailedError, ValidationError, attempt
from notary.domain.models import (
    Certificate,
    CertificateQuery,
    CertificateType,
    Entitlements,
    NotarizationRequest,
    NotarizationResult,
    NotarizationStatus,
    SigningConfiguration,
    SigningIdentity,
    utcnow,
)
from notary.notarization import NotarizationSubmissionCoordinator
from notary.polling import StatusPoller
from notary.query import CertificateQueryEngine
from notary.signing import CodeSigningService

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 3

log = structlog.get_logger()


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console logging.

    Logs go to stderr so command output on stdout stays clean for scripts.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _say(message: str = "") -> None:
    print(message)  # noqa: T201


# ─────────────────────── Composition ───────────────────────


@dataclass(frozen=True, slots=True)
class Services:
    signing: CodeSigningService
    notarization: NotarizationSubmissionCoordinator


def _create_services(settings: NotarySettings, config: NotaryConfiguration) -> Services:
    executor = SubprocessExecutor()
    client = NotarytoolClient(executor)
    poller = StatusPoller(
        client,
        interval=settings.poll_interval_seconds,
        max_attempts=settings.max_poll_attempts,
    )
    coordinator = NotarizationSubmissionCoordinator(
        archiver=DittoArchiver(executor, temp_directory=config.paths.resolved_temp_directory),
        client=client,
        stapler=StaplerTicketStapler(executor),
        poller=poller,
        log_directory=config.paths.resolved_log_directory,
    )
    signing = CodeSigningService(executor, temp_directory=config.paths.resolved_temp_directory)
    return Services(signing=signing, notarization=coordinator)


@dataclass(frozen=True, slots=True)
class CommandContext:
    args: argparse.Namespace
    services: Services
    config: NotaryConfiguration
    manager: ConfigurationManager


Command: TypeAlias = Callable[[CommandContext], Awaitable[Result[int]]]


# ─────────────────────── sign ───────────────────────


def _signing_configuration(args: argparse.Namespace, config: NotaryConfiguration) -> Result[SigningConfiguration]:
    saved = config.signing_identity or SigningIdentityConfiguration()
    name = args.identity or saved.name
    if not name:
        return ValidationError(
            "No signing identity specified. Use --identity or configure in ~/.notary/config.json"
        ).to_failure()

    now = utcnow()
    identity = SigningIdentity(
        certificate=Certificate(
            common_name=name,
            subject=name,
            not_before=now,
            not_after=now + timedelta(days=365),
        ),
        type=CertificateType.infer(name),
        team_identifier=args.team_id or saved.team_identifier,
    )

    options = config.options

    def build(entitlements: Entitlements | None) -> SigningConfiguration:
        return SigningConfiguration(
            identity=identity,
            entitlements=entitlements,
            timestamp=args.timestamp or options.timestamp,
            hardened_runtime=args.hardened_runtime or options.hardened_runtime,
            deep_sign=args.deep or options.deep_sign,
            force=args.force or options.force,
        )

    entitlements_file = args.entitlements or options.entitlements_file
    if not entitlements_file:
        return Result.success(build(None))
    return attempt(lambda: Entitlements.from_file(Path(entitlements_file).expanduser())).map(build)


async def _sign(ctx: CommandContext) -> Result[int]:
    path = Path(ctx.args.path)
    signing = ctx.services.signing

    async def sign_and_verify(config: SigningConfiguration) -> Result[int]:
        _say(f"Signing {path.name}...")
        signed = await signing.sign(path, config)
        if signed.is_failure():
            return Result.failure_from(signed.error())
        _say(f"Successfully signed {path.name}")
        verified = await signing.verify(path)
        if verified.is_success() and verified.value():
            _say("Signature verified successfully")
            return Result.success(EXIT_OK)
        _say("Warning: signed, but signature verification failed")
        return Result.success(EXIT_PARTIAL)

    return await _signing_configuration(ctx.args, ctx.config).flat_map_async(sign_and_verify)


# ─────────────────────── notarize ───────────────────────


def _report(result: NotarizationResult) -> Result[int]:
    match result.status:
        case NotarizationStatus.SUCCESS:
            _say("Notarization successful!")
            if result.request.request_uuid:
                _say(f"   Request ID: {result.request.request_uuid}")
            if result.stapled is False:
                _say(f"Warning: notarized, but stapling failed: {result.staple_error}")
                return Result.success(EXIT_PARTIAL)
            if result.stapled:
                _say("Notarization ticket stapled")
            return Result.success(EXIT_OK)
        case NotarizationStatus.INVALID:
            _say("Notarization failed - Invalid submission")
            for issue in result.errors:
                _say(f"   • {issue.message}")
            if result.log_file is not None:
                _say(f"   Log: {result.log_file}")
            return NotarizationFailedError(result.issues).to_failure()
        case NotarizationStatus.REJECTED:
            _say("Notarization rejected")
        case NotarizationStatus.FAILED:
            _say("Notarization failed")
        case _:
            _say(f"Notarization status: {result.status.value}")
    return Result.success(EXIT_FAILURE)


async def _notarize(ctx: CommandContext) -> Result[int]:
    args = ctx.args
    credentials = resolve_credentials(
        ctx.config,
        apple_id=args.apple_id,
        password=args.password,
        team_id=args.team_id,
        keychain_profile=args.keychain_profile,
    )
    if not credentials.is_valid:
        return ValidationError(
            "Missing credentials. Provide --apple-id, --password and --team-id, "
            "or --keychain-profile, or configure in ~/.notary/config.json"
        ).to_failure()

    path = Path(args.path)
    request = NotarizationRequest(bundle_identifier=args.bundle_id, file_path=path, credentials=credentials)
    _say(f"Submitting {path.name} for notarization...")

    coordinator = ctx.services.notarization
    if not args.wait:
        submitted = await coordinator.submit(request)
        return submitted.map(lambda accepted: _submitted(accepted))

    notarized = await coordinator.notarize(request, staple=args.staple)
    return notarized.flat_map(_report)


def _submitted(request: NotarizationRequest) -> int:
    _say(f"Submitted. Request ID: {request.request_uuid}")
    _say("Run again with --wait to follow the submission to completion")
    return EXIT_OK


# ─────────────────────── verify ───────────────────────


async def _verify(ctx: CommandContext) -> Result[int]:
    path = Path(ctx.args.path)
    signing = ctx.services.signing
    _say(f"Verifying {path.name}...")

    verified = await signing.verify(path, deep=ctx.args.deep)
    if verified.is_failure():
        return Result.failure_from(verified.error())
    if not verified.value():
        _say("Invalid signature")
        return ValidationError("Signature verification failed").to_failure()

    _say("Valid signature")
    if not ctx.args.verbose:
        return Result.success(EXIT_OK)

    info = await signing.extract_signing_info(path)
    if info.is_failure():
        return Result.failure_from(info.error())
    details = info.value()
    if details.identifier:
        _say(f"   Identifier: {details.identifier}")
    if details.team_identifier:
        _say(f"   Team ID: {details.team_identifier}")
    if details.authorities:
        _say("   Authorities:")
        for authority in details.authorities:
            _say(f"     • {authority}")
    if details.format:
        _say(f"   Format: {details.format}")
    if details.is_hardened_runtime:
        _say("   Hardened runtime: enabled")
    return Result.success(EXIT_OK)


# ─────────────────────── list-identities ───────────────────────


async def _list_identities(ctx: CommandContext) -> Result[int]:
    listed = await ctx.services.signing.list_identities()
    if listed.is_failure():
        return Result.failure_from(listed.error())

    _say("Available signing identities:")
    _say()
    identities = listed.value()
    if ctx.args.valid_only:
        valid = CertificateQueryEngine().filter(
            [identity.certificate for identity in identities], CertificateQuery(only_valid=True), utcnow()
        )
        identities = [identity for identity in identities if identity.certificate in valid]
    if not identities:
        _say("No signing identities found")
        return Result.success(EXIT_OK)

    for index, identity in enumerate(identities, start=1):
        _say(f"{index}) {identity.display_name}")
        _say(f"   Type: {identity.type.identifier}")
        if not identity.is_valid:
            _say("   Warning: certificate expired or invalid")
    return Result.success(EXIT_OK)


# ─────────────────────── config ───────────────────────


def _apply_config_changes(args: argparse.Namespace, config: NotaryConfiguration) -> NotaryConfiguration:
    changes: dict[str, object] = {}
    if args.apple_id is not None:
        credentials = config.notarization_credentials or NotarizationCredentialsConfiguration()
        changes["notarization_credentials"] = credentials.model_copy(update={"apple_id": args.apple_id})
    identity_update = {
        key: value
        for key, value in (("name", args.identity), ("team_identifier", args.team_id))
        if value is not None
    }
    if identity_update:
        identity = config.signing_identity or SigningIdentityConfiguration()
        changes["signing_identity"] = identity.model_copy(update=identity_update)
    return config.model_copy(update=changes)


async def _config(ctx: CommandContext) -> Result[int]:
    args = ctx.args
    if args.show:
        return ctx.manager.load().map(lambda stored: _printed(stored.redacted().to_json().rstrip("\n")))

    if args.apple_id is None and args.team_id is None and args.identity is None:
        _say("No changes to configuration")
        return Result.success(EXIT_OK)

    updated = ctx.manager.update(lambda stored: _apply_config_changes(args, stored))
    return updated.map(lambda _: _printed("Configuration updated"))


def _printed(message: str) -> int:
    _say(message)
    return EXIT_OK


# ─────────────────────── Parser ───────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notary",
        description="Sign, verify and notarize macOS software with codesign and notarytool",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="Configuration file (default: ~/.notary/config.json)")
    parser.add_argument("--log-level", default=None, help="Log level (default: NOTARY_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    sign = sub.add_parser("sign", help="Sign an app bundle or binary")
    sign.add_argument("path", help="Path to the app or binary to sign")
    sign.add_argument("-i", "--identity", help="Signing identity name")
    sign.add_argument("-t", "--team-id", help="Team identifier")
    sign.add_argument("-e", "--entitlements", help="Entitlements property list")
    sign.add_argument("--hardened-runtime", action="store_true", help="Enable hardened runtime")
    sign.add_argument("--deep", action="store_true", help="Sign nested code")
    sign.add_argument("-f", "--force", action="store_true", help="Replace an existing signature")
    sign.add_argument("--timestamp", action="store_true", help="Add a secure timestamp")
    sign.set_defaults(handler=_sign)

    notarize = sub.add_parser("notarize", help="Submit an app for notarization")
    notarize.add_argument("path", help="Path to the app or archive to notarize")
    notarize.add_argument("-b", "--bundle-id", required=True, help="Bundle identifier")
    notarize.add_argument("--apple-id", help="Apple ID username")
    notarize.add_argument("-p", "--password", help="App-specific password")
    notarize.add_argument("-t", "--team-id", help="Team ID")
    notarize.add_argument("--keychain-profile", help="notarytool keychain profile name")
    notarize.add_argument("--wait", action="store_true", help="Wait for notarization to complete")
    notarize.add_argument("--staple", action="store_true", help="Staple the ticket after a successful notarization")
    notarize.set_defaults(handler=_notarize)

    verify = sub.add_parser("verify", help="Verify a code signature")
    verify.add_argument("path", help="Path to verify")
    verify.add_argument("--deep", action="store_true", help="Deep verification")
    verify.add_argument("-v", "--verbose", action="store_true", help="Print signature details")
    verify.set_defaults(handler=_verify)

    identities = sub.add_parser("list-identities", help="List available signing identities")
    identities.add_argument("--valid-only", action="store_true", help="Show only valid identities")
    identities.set_defaults(handler=_list_identities)

    config = sub.add_parser("config", help="Manage notary configuration")
    config.add_argument("--show", action="store_true", help="Show current configuration")
    config.add_argument("--apple-id", help="Set Apple ID")
    config.add_argument("--team-id", help="Set team ID")
    config.add_argument("--identity", help="Set signing identity")
    config.set_defaults(handler=_config)

    return parser


# ─────────────────────── Entry point ───────────────────────


async def _run(command: Command, ctx: CommandContext) -> Result[int]:
    context = LoggingExecutionContext(operation=ctx.args.command)
    return await context.execute_async(lambda: command(ctx))


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, wire dependencies and run one command. Returns the exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = NotarySettings()
    except PydanticValidationError as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE

    configure_structlog(args.log_level or settings.log_level)
    log.debug("app.starting", version=__version__, command=args.command)

    manager = ConfigurationManager(args.config or settings.config_file)
    loaded = manager.load()
    if loaded.is_failure():
        print(f"Error: {loaded.error().message}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE
    config = merge_environment(loaded.value(), settings)

    ctx = CommandContext(
        args=args,
        services=_create_services(settings, config),
        config=config,
        manager=manager,
    )
    try:
        outcome = asyncio.run(_run(args.handler, ctx))
    except KeyboardInterrupt:
        log.info("app.interrupted", command=args.command)
        return 130

    if outcome.is_failure():
        print(f"Error: {outcome.error().message}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE
    return outcome.value()


if __name__ == "__main__":
    sys.exit(main())
