"""
Pytest configuration and fixtures for SyncForge tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture(autouse=True, scope="session")
def quiet_logging() -> None:
    """Route structured logs into a silent stdlib logger."""
    from syncforge.core.config import LoggingConfig
    from syncforge.core.logging import setup_logging

    setup_logging(LoggingConfig(console_enabled=False, file_enabled=False))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def roots(temp_dir: Path) -> tuple[Path, Path]:
    """Create empty source and target directories."""
    source = temp_dir / "source"
    target = temp_dir / "target"
    source.mkdir()
    target.mkdir()
    return source, target


def write_tree(root: Path, files: dict[str, str | bytes]) -> None:
    """Write ``{relative_path: content}`` under root."""
    for relative_path, content in files.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)


def set_mtime(path: Path, timestamp: float) -> None:
    os.utime(path, (timestamp, timestamp))


@pytest.fixture
def make_tree() -> Callable[[Path, dict[str, str | bytes]], None]:
    return write_tree


@pytest.fixture
def sync_config_factory(roots: tuple[Path, Path]) -> Callable[..., "SyncConfig"]:
    """Build SyncConfigs for the ``roots`` pair."""
    from syncforge.core.config import SyncConfig

    source, target = roots

    def factory(**overrides: object) -> SyncConfig:
        data: dict[str, object] = {"source_root": source, "target_root": target, "workers": 2}
        data.update(overrides)
        return SyncConfig.model_validate(data)

    return factory


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
