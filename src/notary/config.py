"""
Configuration — runtime settings plus the persisted configuration record.

Two layers, both pydantic:

  NotarySettings (pydantic-settings)
      Process-level knobs and credential overrides read from NOTARY_*
      environment variables or a .env file: log level, poll policy,
      config file location, Apple ID / API key / keychain profile,
      signing identity.

  NotaryConfiguration (plain BaseModel)
      The user's saved preferences in ~/.notary/config.json: signing
      identity, notarization credentials, signing options and working
      directories. Stored as pretty-printed, key-sorted JSON with
      snake_case keys; absent optional fields are omitted.

Precedence for any runtime value (highest first):
  1. Explicit caller value (CLI flag)
  2. Environment variable
  3. Configuration file
  4. Built-in default
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from railway.result import Result

from notary.domain.errors import ConfigurationError, attempt
from notary.domain.models import NotarizationCredentials

log = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path("~/.notary/config.json")

CREDENTIAL_COMBINATIONS = (
    ("keychain_profile",),
    ("api_key", "api_key_id", "api_issuer"),
    ("apple_id", "team_id", "password"),
)

SECRET_MASK = "********"


# ─────────────────────── Persisted record ───────────────────────


class SigningIdentityConfiguration(BaseModel):
    """Which identity `sign` uses when none is given on the command line."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None
    team_identifier: str | None = None
    certificate_file: str | None = None
    private_key_file: str | None = None
    password: str | None = None


class NotarizationCredentialsConfiguration(BaseModel):
    """
    Saved notary service credentials.

    Any one complete combination is enough: keychain profile, API key +
    issuer, or Apple ID + team + password.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    apple_id: str | None = None
    team_id: str | None = None
    password: str | None = None
    api_key: str | None = None
    api_key_id: str | None = None
    api_issuer: str | None = None
    keychain_profile: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.to_credentials().is_valid

    def to_credentials(self) -> NotarizationCredentials:
        return NotarizationCredentials(**self.model_dump())

    def overlaid(self, given: Mapping[str, str]) -> NotarizationCredentialsConfiguration:
        """
        Layer higher-precedence values over these.

        A combination that `given` touches and that ends up complete wins
        outright: the fields of every other combination are cleared, so a
        saved keychain profile cannot shadow an Apple ID typed on the
        command line.
        """
        merged = self.model_copy(update=given)
        chosen = [
            fields
            for fields in CREDENTIAL_COMBINATIONS
            if given.keys() & set(fields) and _completes(merged, fields)
        ]
        if not chosen:
            return merged
        kept = set().union(*chosen)
        cleared = {name: None for fields in CREDENTIAL_COMBINATIONS for name in fields if name not in kept}
        return merged.model_copy(update=cleared)


def _completes(record: NotarizationCredentialsConfiguration, fields: tuple[str, ...]) -> bool:
    return NotarizationCredentials(**{name: getattr(record, name) for name in fields}).is_valid


class SigningOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    deep_sign: bool = True
    force: bool = False
    hardened_runtime: bool = True
    timestamp: bool = True
    preserve_metadata: bool = True
    entitlements_file: str | None = None
    requirements_file: str | None = None


def _resolve(path: str) -> Path:
    return Path(path).expanduser().absolute()


class PathConfiguration(BaseModel):
    """Working directories; `~` is expanded only when a path is resolved."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    output_directory: str = "./signed"
    temp_directory: str = "/tmp/notary"
    log_directory: str = "~/.notary/logs"

    @property
    def resolved_output_directory(self) -> Path:
        return _resolve(self.output_directory)

    @property
    def resolved_temp_directory(self) -> Path:
        return _resolve(self.temp_directory)

    @property
    def resolved_log_directory(self) -> Path:
        return _resolve(self.log_directory)


class NotaryConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    signing_identity: SigningIdentityConfiguration | None = None
    notarization_credentials: NotarizationCredentialsConfiguration | None = None
    options: SigningOptions = Field(default_factory=SigningOptions)
    paths: PathConfiguration = Field(default_factory=PathConfiguration)

    def to_json(self) -> str:
        payload = self.model_dump(mode="json", exclude_none=True)
        return json.dumps(payload, indent=2, sort_keys=True) + "\n"

    def redacted(self) -> NotaryConfiguration:
        """Copy with every saved password replaced by a mask, for display."""
        changes: dict[str, object] = {}
        if self.signing_identity is not None and self.signing_identity.password:
            changes["signing_identity"] = self.signing_identity.model_copy(update={"password": SECRET_MASK})
        credentials = self.notarization_credentials
        if credentials is not None and credentials.password:
            changes["notarization_credentials"] = credentials.model_copy(update={"password": SECRET_MASK})
        return self.model_copy(update=changes)


# ─────────────────────── Environment ───────────────────────


class NotarySettings(BaseSettings):
    """
    Process settings from NOTARY_* environment variables.

    NOTARY_APPLE_ID, NOTARY_TEAM_ID and NOTARY_PASSWORD override the saved
    Apple ID credentials; NOTARY_IDENTITY overrides the saved identity name.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_file: Path | None = None
    log_level: str = Field(default="INFO")
    poll_interval_seconds: float = Field(default=30.0, ge=0)
    max_poll_attempts: int = Field(default=120, ge=1)

    apple_id: str | None = None
    team_id: str | None = None
    password: SecretStr | None = None
    api_key: str | None = None
    api_key_id: str | None = None
    api_issuer: str | None = None
    keychain_profile: str | None = None
    identity: str | None = None

    def credential_overrides(self) -> dict[str, str]:
        overrides = {
            "apple_id": self.apple_id,
            "team_id": self.team_id,
            "password": self.password.get_secret_value() if self.password else None,
            "api_key": self.api_key,
            "api_key_id": self.api_key_id,
            "api_issuer": self.api_issuer,
            "keychain_profile": self.keychain_profile,
        }
        return {key: value for key, value in overrides.items() if value}


def merge_environment(config: NotaryConfiguration, settings: NotarySettings) -> NotaryConfiguration:
    """Overlay environment values on a file configuration; set values win."""
    changes: dict[str, object] = {}

    overrides = settings.credential_overrides()
    if overrides:
        current = config.notarization_credentials or NotarizationCredentialsConfiguration()
        changes["notarization_credentials"] = current.overlaid(overrides)

    if settings.identity:
        if config.signing_identity is None:
            changes["signing_identity"] = SigningIdentityConfiguration(name=settings.identity)
        else:
            changes["signing_identity"] = config.signing_identity.model_copy(update={"name": settings.identity})

    return config.model_copy(update=changes) if changes else config


def resolve_credentials(
    config: NotaryConfiguration,
    **explicit: str | None,
) -> NotarizationCredentials:
    """
    Build credentials from explicit values layered over the configuration.

    `explicit` takes NotarizationCredentials field names; None means
    "not given" and falls through to the configuration.
    """
    current = config.notarization_credentials or NotarizationCredentialsConfiguration()
    given = {key: value for key, value in explicit.items() if value is not None}
    return current.overlaid(given).to_credentials()


# ─────────────────────── File storage ───────────────────────


class ConfigurationManager:
    """
    Load and save the persisted configuration.

    With no explicit path the default file is created, with defaults, the
    first time it is loaded. An explicit path that does not exist is a
    configuration error.
    """

    def __init__(self, config_file: Path | None = None) -> None:
        self._explicit = config_file is not None
        self._path = (config_file or DEFAULT_CONFIG_FILE).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Result[NotaryConfiguration]:
        return attempt(self._load)

    def save(self, config: NotaryConfiguration) -> Result[Path]:
        return attempt(lambda: self._save(config))

    def update(self, change: Callable[[NotaryConfiguration], NotaryConfiguration]) -> Result[NotaryConfiguration]:
        """Load, apply `change`, save, and return the stored configuration."""
        return self.load().map(change).flat_map(lambda updated: self.save(updated).map(lambda _: updated))

    def _load(self) -> NotaryConfiguration:
        if not self._path.exists():
            if self._explicit:
                raise ConfigurationError(f"Configuration file not found: {self._path}")
            config = NotaryConfiguration()
            self._save(config)
            log.info("config.created", path=str(self._path))
            return config
        try:
            config = NotaryConfiguration.model_validate_json(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration: {e}") from e
        except PydanticValidationError as e:
            raise ConfigurationError(f"Malformed configuration in {self._path}: {e.error_count()} error(s)") from e
        log.debug("config.loaded", path=str(self._path))
        return config

    def _save(self, config: NotaryConfiguration) -> Path:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(config.to_json(), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot write configuration: {e}") from e
        log.debug("config.saved", path=str(self._path))
        return self._path
