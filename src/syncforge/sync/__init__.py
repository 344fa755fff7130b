"""
SyncForge sync module.

Snapshot building, difference classification, conflict resolution,
action execution and cycle scheduling.
"""

from syncforge.sync.classifier import diff
from syncforge.sync.executor import ActionExecutor
from syncforge.sync.resolver import (
    ConflictDecider,
    ConflictResolver,
    PolicyDecider,
    Resolution,
)
from syncforge.sync.scheduler import (
    CancelToken,
    SyncScheduler,
    load_status,
    run_continuous,
    run_cycle,
)
from syncforge.sync.snapshot import SnapshotBuilder

__all__ = [
    "ActionExecutor",
    "CancelToken",
    "ConflictDecider",
    "ConflictResolver",
    "PolicyDecider",
    "Resolution",
    "SnapshotBuilder",
    "SyncScheduler",
    "diff",
    "load_status",
    "run_continuous",
    "run_cycle",
]
