"""Configuration models and loading logic."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path("~/.config/hushbrew/settings.yaml")
SETTINGS_FILE_ENV = "HUSHBREW_SETTINGS_FILE"

MIB = 1024 * 1024

UpgradeStrategy = Literal["all", "leaves"]


class PathsConfig(BaseModel):
    """Filesystem locations for log, state marker, lock and user config."""

    log_file: Path = Path("~/.local/log/hushbrew.log")
    state_file: Path = Path("~/.local/log/hushbrew.lastrun")
    lock_file: Path = Path("/tmp/hushbrew.lock")
    config_file: Path = Path("~/.config/hushbrew/config")

    def resolved(self) -> "PathsConfig":
        """Return a copy with `~` expanded on every path."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value.expanduser()
        return self.model_copy(update=updates)


class GateConfig(BaseModel):
    """Process names and thresholds used by the readiness gate."""

    meeting_host_process: str = "CptHost"
    conferencing_process: str = "zoom.us"
    messaging_process: str = "Slack"
    messaging_excluded_port: int = Field(default=443, ge=1, le=65535)
    battery_min_percent: float = Field(default=15.0, ge=0.0, le=100.0)


class NetworkConfig(BaseModel):
    """Reachability probe and bandwidth throttling parameters."""

    reachability_url: str = "https://formulae.brew.sh"
    reachability_timeout_s: float = Field(default=5.0, gt=0.0)
    bandwidth_probe_url: str = "https://speed.cloudflare.com/__down?bytes=2000000"
    bandwidth_probe_timeout_s: float = Field(default=10.0, gt=0.0)
    throttle_fraction: float = Field(default=0.6, gt=0.0, le=1.0)
    throttle_floor_bps: int = Field(default=MIB, ge=1)
    throttle_fallback_bps: int = Field(default=5 * MIB, ge=1)
    curl_path: Path = Path("/usr/bin/curl")


class PipelineConfig(BaseModel):
    """Stage bounds and process priority for the upgrade pipeline."""

    refresh_timeout_s: float = Field(default=300.0, gt=0.0)
    upgrade_timeout_s: float = Field(default=900.0, gt=0.0)
    cleanup_timeout_s: float = Field(default=300.0, gt=0.0)
    query_timeout_s: float = Field(default=120.0, gt=0.0)
    cleanup_prune_days: int = Field(default=7, ge=0)
    nice_level: int = Field(default=15, ge=0, le=19)
    kill_grace_s: float = Field(default=10.0, ge=0.0)


class DiskConfig(BaseModel):
    """Free-space thresholds in MiB."""

    min_free_mb: int = Field(default=1024, ge=0)
    critical_free_mb: int | None = None

    @property
    def effective_critical_free_mb(self) -> int:
        if self.critical_free_mb is not None:
            return self.critical_free_mb
        return self.min_free_mb // 2


class NotificationConfig(BaseModel):
    """Desktop notification sink settings."""

    enabled: bool = True
    max_chars: int = Field(default=200, ge=1)
    sound_name: str = "Glass"


class BrewConfig(BaseModel):
    """Homebrew location override."""

    prefix: Path | None = None


class AppSettings(BaseSettings):
    """Top-level runtime settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    paths: PathsConfig = Field(default_factory=PathsConfig)
    gate: GateConfig = Field(default_factory=GateConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    disk: DiskConfig = Field(default_factory=DiskConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    brew: BrewConfig = Field(default_factory=BrewConfig)

    model_config = SettingsConfigDict(
        env_prefix="HUSHBREW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            yaml_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


class UpgradeConfig(BaseSettings):
    """User-editable exclusions and upgrade strategy.

    Read from a shell-style key/value file, e.g.::

        EXCLUDED_FORMULAE="nodejs python@3.12"
        EXCLUDED_CASKS="docker"
        UPGRADE_STRATEGY="leaves"

    Only the file (and explicit keyword arguments) feed this model; process
    environment variables are ignored.
    """

    excluded_formulae: Annotated[frozenset[str], NoDecode] = Field(
        default=frozenset(),
        validation_alias="EXCLUDED_FORMULAE",
    )
    excluded_casks: Annotated[frozenset[str], NoDecode] = Field(
        default=frozenset(),
        validation_alias="EXCLUDED_CASKS",
    )
    upgrade_strategy: UpgradeStrategy = Field(default="all", validation_alias="UPGRADE_STRATEGY")

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, dotenv_settings)

    @field_validator("excluded_formulae", "excluded_casks", mode="before")
    @classmethod
    def _split_identifiers(cls, value: object) -> object:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            return frozenset(value.split())
        return value

    @field_validator("upgrade_strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: object) -> str:
        normalized = str(value or "").strip().lower()
        if normalized == "leaves":
            return "leaves"
        if normalized not in {"", "all"}:
            LOGGER.warning("config.unknown_strategy value=%s; using all", value)
        return "all"

    @property
    def leaves_only(self) -> bool:
        return self.upgrade_strategy == "leaves"

    def as_dict(self) -> dict[str, object]:
        return {
            "EXCLUDED_FORMULAE": " ".join(sorted(self.excluded_formulae)),
            "EXCLUDED_CASKS": " ".join(sorted(self.excluded_casks)),
            "UPGRADE_STRATEGY": self.upgrade_strategy,
        }


def resolve_settings_file(override: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default."""

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE
    return chosen.expanduser().resolve()


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    return settings.model_copy(update={"paths": settings.paths.resolved()})


def load_upgrade_config(config_file: Path) -> UpgradeConfig:
    """Load the user key/value config; an absent file yields all defaults."""

    if not config_file.exists():
        LOGGER.info("config.absent path=%s; using defaults", config_file)
        return UpgradeConfig()
    return UpgradeConfig(_env_file=config_file)
