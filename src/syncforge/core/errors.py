"""
SyncForge error taxonomy.

Only FatalScanError and ConfigError stop a run. Everything else is
recorded in the cycle report as an item-level failure.
"""

from __future__ import annotations

from pathlib import Path


class SyncForgeError(Exception):
    """Base class for all SyncForge errors."""


class FatalScanError(SyncForgeError):
    """A snapshot root could not be opened or read at all."""

    def __init__(self, root: Path | str, reason: str) -> None:
        self.root = str(root)
        self.reason = reason
        super().__init__(f"Cannot scan {self.root}: {reason}")


class ConfigError(SyncForgeError):
    """Invalid configuration, rejected before any cycle runs."""


class SchedulerBusyError(SyncForgeError):
    """A cycle for the same root pair is already running."""


class ItemIOError(SyncForgeError):
    """A single file operation failed."""

    def __init__(self, path: str, operation: str, cause: BaseException | None = None) -> None:
        self.path = path
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed for {path}{detail}")


class ConflictPending(SyncForgeError):
    """A conflict was left unresolved; both sides stay untouched."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Conflict on {path} left unresolved: {reason}")
