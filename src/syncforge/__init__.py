"""
SyncForge - directory synchronization engine.

Reconciles a source and a target directory tree in mirror or two-way
merge mode, once or on a schedule, with content-aware diffing and
explicit conflict resolution.
"""

__version__ = "1.0.0"
__author__ = "SyncForge Team"

from syncforge.core.config import SyncConfig, SyncForgeConfig
from syncforge.sync.scheduler import run_continuous, run_cycle

__all__ = ["SyncConfig", "SyncForgeConfig", "run_continuous", "run_cycle", "__version__"]
