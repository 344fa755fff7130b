"""
SyncForge configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from syncforge.core.errors import ConfigError
from syncforge.core.models import ConflictStrategy, SyncMode

DEFAULT_CONFIG_PATH = Path.home() / ".syncforge" / "config.json"
DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".syncforge" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class SyncOptions(BaseModel):
    """Reconciliation options shared by every root pair."""

    mode: SyncMode = SyncMode.MIRROR
    include_pattern: str | None = None
    exclude_pattern: str | None = None
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, ge=0)
    conflict_strategy: ConflictStrategy = ConflictStrategy.KEEP_BOTH
    dry_run: bool = False
    workers: int = Field(default=4, ge=1, le=32)
    timestamp_tolerance_seconds: float = Field(default=1.0, ge=0.0)
    cycle_timeout_seconds: float | None = Field(default=None, gt=0)
    create_target: bool = True
    incremental: bool = True

    @field_validator("include_pattern", "exclude_pattern", mode="before")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not str(v).strip():
            return None
        return str(v)


class HooksConfig(BaseModel):
    """Shell commands run around each cycle."""

    on_start: list[str] = Field(default_factory=list)
    on_complete: list[str] = Field(default_factory=list)
    on_conflict: list[str] = Field(default_factory=list)


class ScheduleConfig(BaseModel):
    """Configuration for continuous operation."""

    continuous: bool = False
    interval_seconds: float = Field(default=30.0, gt=0)


class SyncConfig(SyncOptions):
    """Everything one cycle needs for a single source/target pair."""

    source_root: Path
    target_root: Path
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    status_file: Path | None = None

    @field_validator("source_root", "target_root", mode="before")
    @classmethod
    def expand_root(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("status_file", mode="before")
    @classmethod
    def expand_status_file(cls, v: str | Path | None) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()


class SyncForgeConfig(BaseModel):
    """Main SyncForge configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sync: SyncOptions = Field(default_factory=SyncOptions)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    status_file: Path | None = Field(
        default_factory=lambda: Path.home() / ".syncforge" / "last_report.json"
    )

    @field_validator("status_file", mode="before")
    @classmethod
    def expand_status_path(cls, v: str | Path | None) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> SyncForgeConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if not config_path.exists():
            return cls()

        try:
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise ConfigError(f"Invalid configuration file {config_path}: {exc}") from exc

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        if self.status_file:
            self.status_file.parent.mkdir(parents=True, exist_ok=True)

    def for_roots(self, source: Path | str, target: Path | str, **overrides: Any) -> SyncConfig:
        """Build a per-pair SyncConfig from the defaults plus overrides.

        Overrides whose value is None are ignored so CLI options that were not
        given fall back to the configured defaults.
        """
        data: dict[str, Any] = self.sync.model_dump()
        data.update({key: value for key, value in overrides.items() if value is not None})
        data.update(
            source_root=source,
            target_root=target,
            hooks=self.hooks,
            status_file=self.status_file,
        )
        try:
            return SyncConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def get_default_config() -> SyncForgeConfig:
    """Get the default configuration."""
    return SyncForgeConfig()


def load_config(config_path: Path | None = None) -> SyncForgeConfig:
    """Load or create configuration."""
    config = SyncForgeConfig.load(config_path)
    config.ensure_directories()
    return config
