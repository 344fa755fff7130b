"""
SyncForge Core - shared building blocks.

Contains configuration, data models, the error taxonomy and logging
used by every sync component.
"""

from syncforge.core.config import SyncConfig, SyncForgeConfig
from syncforge.core.errors import (
    ConfigError,
    ConflictPending,
    FatalScanError,
    ItemIOError,
    SchedulerBusyError,
    SyncForgeError,
)
from syncforge.core.logging import get_logger, setup_logging

__all__ = [
    "SyncConfig",
    "SyncForgeConfig",
    "ConfigError",
    "ConflictPending",
    "FatalScanError",
    "ItemIOError",
    "SchedulerBusyError",
    "SyncForgeError",
    "get_logger",
    "setup_logging",
]
