"""
Tests for syncforge.core.config module.
"""

import json
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from syncforge.core.config import (
    DEFAULT_MAX_FILE_SIZE,
    HooksConfig,
    LoggingConfig,
    ScheduleConfig,
    SyncConfig,
    SyncForgeConfig,
    SyncOptions,
    load_config,
)
from syncforge.core.errors import ConfigError
from syncforge.core.models import ConflictStrategy, SyncMode


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)


class TestSyncOptions:
    """Tests for SyncOptions."""

    def test_default_values(self) -> None:
        options = SyncOptions()
        assert options.mode is SyncMode.MIRROR
        assert options.conflict_strategy is ConflictStrategy.KEEP_BOTH
        assert options.max_file_size == DEFAULT_MAX_FILE_SIZE
        assert options.timestamp_tolerance_seconds == 1.0
        assert options.cycle_timeout_seconds is None
        assert options.dry_run is False

    def test_string_values_are_coerced(self) -> None:
        options = SyncOptions(mode="merge", conflict_strategy="keep-target")
        assert options.mode is SyncMode.MERGE
        assert options.conflict_strategy is ConflictStrategy.KEEP_TARGET

    def test_blank_patterns_become_none(self) -> None:
        options = SyncOptions(include_pattern="  ", exclude_pattern="")
        assert options.include_pattern is None
        assert options.exclude_pattern is None

    def test_workers_bounds(self) -> None:
        assert SyncOptions(workers=1).workers == 1
        assert SyncOptions(workers=32).workers == 32
        with pytest.raises(ValidationError):
            SyncOptions(workers=0)

    def test_invalid_mode_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SyncOptions(mode="bidirectional")


class TestScheduleConfig:
    def test_default_interval(self) -> None:
        config = ScheduleConfig()
        assert config.interval_seconds == 30.0
        assert config.continuous is False

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ScheduleConfig(interval_seconds=0)


class TestSyncConfig:
    def test_roots_are_resolved(self, temp_dir: Path) -> None:
        config = SyncConfig(source_root=temp_dir / "a" / ".." / "src", target_root=temp_dir / "dst")
        assert config.source_root == (temp_dir / "src").resolve()
        assert config.target_root.is_absolute()

    def test_roots_required(self) -> None:
        with pytest.raises(ValidationError):
            SyncConfig()


class TestSyncForgeConfig:
    """Tests for SyncForgeConfig."""

    def test_default_config(self) -> None:
        config = SyncForgeConfig()
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.sync, SyncOptions)
        assert isinstance(config.hooks, HooksConfig)
        assert isinstance(config.schedule, ScheduleConfig)

    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"

            original = SyncForgeConfig(
                sync=SyncOptions(mode=SyncMode.MERGE, workers=8),
                schedule=ScheduleConfig(interval_seconds=5),
            )
            original.save(config_path)

            loaded = SyncForgeConfig.load(config_path)

            assert loaded.sync.mode is SyncMode.MERGE
            assert loaded.sync.workers == 8
            assert loaded.schedule.interval_seconds == 5

    def test_load_nonexistent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = SyncForgeConfig.load(Path(tmpdir) / "nonexistent.json")
            assert config.sync.mode is SyncMode.MIRROR

    def test_load_invalid_json_raises_config_error(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config_path.write_text("{not json")
        with pytest.raises(ConfigError):
            SyncForgeConfig.load(config_path)

    def test_load_invalid_values_raises_config_error(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config_path.write_text(json.dumps({"sync": {"conflict_strategy": "newest"}}))
        with pytest.raises(ConfigError):
            SyncForgeConfig.load(config_path)

    def test_for_roots_applies_overrides(self, temp_dir: Path) -> None:
        config = SyncForgeConfig(
            sync=SyncOptions(mode=SyncMode.MERGE, exclude_pattern="*.tmp"),
            status_file=temp_dir / "status.json",
        )
        pair = config.for_roots(
            temp_dir / "a",
            temp_dir / "b",
            mode=None,
            include_pattern="*.txt",
            dry_run=True,
        )
        assert pair.mode is SyncMode.MERGE
        assert pair.exclude_pattern == "*.tmp"
        assert pair.include_pattern == "*.txt"
        assert pair.dry_run is True
        assert pair.status_file == (temp_dir / "status.json").resolve()

    def test_for_roots_invalid_override(self, temp_dir: Path) -> None:
        config = SyncForgeConfig()
        with pytest.raises(ConfigError):
            config.for_roots(temp_dir / "a", temp_dir / "b", mode="sideways")

    def test_ensure_directories(self, temp_dir: Path) -> None:
        config = SyncForgeConfig(
            logging=LoggingConfig(log_directory=temp_dir / "logs"),
            status_file=temp_dir / "state" / "last.json",
        )
        config.ensure_directories()

        assert config.logging.log_directory.exists()
        assert (temp_dir / "state").is_dir()

    def test_load_config_creates_directories(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        SyncForgeConfig(
            logging=LoggingConfig(log_directory=temp_dir / "logs"),
            status_file=temp_dir / "state" / "last.json",
        ).save(config_path)

        config = load_config(config_path)
        assert config.logging.log_directory.exists()
