"""
SyncForge data models.

Defines the core data structures for snapshots, sync plans, actions and
cycle reports.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from types import MappingProxyType
from typing import Any, Union


class SyncMode(str, Enum):
    """Reconciliation policy."""

    MIRROR = "mirror"  # target is made to match source, including deletions
    MERGE = "merge"  # two-way, never deletes unilaterally


class Direction(str, Enum):
    """Which side of a copy is authoritative."""

    FORWARD = "forward"  # source -> target
    REVERSE = "reverse"  # target -> source


class ConflictStrategy(str, Enum):
    """How detected conflicts are turned into actions."""

    KEEP_SOURCE = "keep-source"
    KEEP_TARGET = "keep-target"
    KEEP_BOTH = "keep-both"
    INTERACTIVE = "interactive"


class SchedulerState(Enum):
    """Lifecycle of a sync scheduler."""

    IDLE = auto()
    RUNNING = auto()
    STOPPED = auto()


@dataclass(frozen=True)
class FileRecord:
    """One entry of a directory snapshot."""

    relative_path: str
    size: int
    modified_at: float
    content_digest: str | None = None
    is_directory: bool = False
    mode: int = field(default=0, compare=False)
    # (size, mtime_ns, ctime_ns) of the stat the digest was computed from
    change_token: tuple[int, int, int] | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.is_directory and self.content_digest is not None:
            raise ValueError(f"Directory record cannot carry a digest: {self.relative_path}")

    @property
    def name(self) -> str:
        return self.relative_path.rsplit("/", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "relative_path": self.relative_path,
            "size": self.size,
            "modified_at": self.modified_at,
            "content_digest": self.content_digest,
            "is_directory": self.is_directory,
        }


@dataclass(frozen=True)
class ScanWarning:
    """A non-fatal problem met while scanning one entry."""

    path: str
    message: str


class DirectorySnapshot(Mapping[str, FileRecord]):
    """Immutable point-in-time inventory of a directory tree.

    Keyed by POSIX relative path. Two snapshots compare equal when their
    records are equal, regardless of root, scan time or warnings.
    """

    __slots__ = ("_records", "root", "taken_at", "warnings")

    def __init__(
        self,
        root: Path | str,
        records: Iterable[FileRecord] = (),
        warnings: Iterable[ScanWarning] = (),
        taken_at: datetime | None = None,
    ) -> None:
        mapping: dict[str, FileRecord] = {}
        for record in sorted(records, key=lambda r: r.relative_path):
            if record.relative_path in mapping:
                raise ValueError(f"Duplicate path in snapshot: {record.relative_path}")
            mapping[record.relative_path] = record

        object.__setattr__(self, "_records", MappingProxyType(mapping))
        object.__setattr__(self, "root", Path(root))
        object.__setattr__(self, "taken_at", taken_at or datetime.now())
        object.__setattr__(
            self, "warnings", tuple(sorted(warnings, key=lambda w: w.path))
        )

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("DirectorySnapshot is immutable")

    def __getitem__(self, key: str) -> FileRecord:
        return self._records[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"DirectorySnapshot(root={str(self.root)!r}, entries={len(self)})"

    @classmethod
    def empty(cls, root: Path | str) -> DirectorySnapshot:
        return cls(root)

    def files(self) -> Iterator[FileRecord]:
        """Iterate over non-directory records in path order."""
        return (record for record in self._records.values() if not record.is_directory)

    def digests(self) -> dict[str, str | None]:
        return {path: record.content_digest for path, record in self._records.items()}


@dataclass(frozen=True)
class CopyEntry:
    """A path to copy, with the authoritative side made explicit."""

    path: str
    direction: Direction = Direction.FORWARD
    is_directory: bool = False


@dataclass(frozen=True)
class SyncPlan:
    """Copy/delete/conflict sets computed from exactly two snapshots."""

    to_copy: frozenset[CopyEntry] = frozenset()
    to_delete: frozenset[str] = frozenset()
    conflicts: frozenset[str] = frozenset()
    # subset of to_delete that are directories on the target side
    deleted_directories: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.to_copy or self.to_delete or self.conflicts)

    @property
    def copy_paths(self) -> frozenset[str]:
        return frozenset(entry.path for entry in self.to_copy)

    def direction_of(self, path: str) -> Direction | None:
        for entry in self.to_copy:
            if entry.path == path:
                return entry.direction
        return None

    def sorted_copies(self) -> list[CopyEntry]:
        return sorted(self.to_copy, key=lambda entry: entry.path)

    def sorted_deletes(self) -> list[str]:
        return sorted(self.to_delete)

    def to_dict(self) -> dict[str, Any]:
        return {
            "to_copy": [
                {"path": entry.path, "direction": entry.direction.value}
                for entry in self.sorted_copies()
            ],
            "to_delete": self.sorted_deletes(),
            "conflicts": sorted(self.conflicts),
        }


@dataclass(frozen=True)
class Conflict:
    """A path whose two versions cannot be ordered as authoritative."""

    path: str
    source: FileRecord
    target: FileRecord

    @property
    def time_delta(self) -> float:
        return self.source.modified_at - self.target.modified_at


@dataclass(frozen=True)
class CopyAction:
    path: str
    direction: Direction = Direction.FORWARD
    is_directory: bool = False


@dataclass(frozen=True)
class DeleteAction:
    path: str
    is_directory: bool = False


@dataclass(frozen=True)
class RenameAction:
    """Rename a target-side entry in place."""

    path: str
    new_path: str


Action = Union[CopyAction, DeleteAction, RenameAction]


@dataclass(frozen=True)
class ResolvedConflict:
    """Concrete actions chosen for one conflict, executed in order."""

    path: str
    strategy: ConflictStrategy
    actions: tuple[Action, ...]


@dataclass(frozen=True)
class PendingConflict:
    """A conflict no strategy could settle this cycle."""

    path: str
    reason: str


@dataclass
class CopiedEntry:
    path: str
    direction: Direction


@dataclass
class RenamedEntry:
    path: str
    renamed_to: str


@dataclass
class ResolvedEntry:
    path: str
    strategy: ConflictStrategy


@dataclass
class FailureEntry:
    path: str
    error_kind: str
    message: str = ""


@dataclass
class ActionReport:
    """Outcome of one sync cycle.

    Entries may be produced by several workers; every append goes through
    the report lock.
    """

    cycle_timestamp: datetime
    source_root: str = ""
    target_root: str = ""
    mode: SyncMode = SyncMode.MIRROR
    dry_run: bool = False
    copied: list[CopiedEntry] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    renamed: list[RenamedEntry] = field(default_factory=list)
    conflicts_resolved: list[ResolvedEntry] = field(default_factory=list)
    failures: list[FailureEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    timed_out: bool = False
    ended_at: datetime | None = None
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def record_copy(self, path: str, direction: Direction) -> None:
        with self._lock:
            self.copied.append(CopiedEntry(path=path, direction=direction))

    def record_delete(self, path: str) -> None:
        with self._lock:
            self.deleted.append(path)

    def record_rename(self, path: str, renamed_to: str) -> None:
        with self._lock:
            self.renamed.append(RenamedEntry(path=path, renamed_to=renamed_to))

    def record_resolution(self, path: str, strategy: ConflictStrategy) -> None:
        with self._lock:
            self.conflicts_resolved.append(ResolvedEntry(path=path, strategy=strategy))

    def record_failure(self, path: str, error_kind: str, message: str = "") -> None:
        with self._lock:
            self.failures.append(FailureEntry(path=path, error_kind=error_kind, message=message))

    def add_warning(self, warning: str) -> None:
        with self._lock:
            self.warnings.append(warning)

    @property
    def action_count(self) -> int:
        return len(self.copied) + len(self.deleted) + len(self.renamed)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures) or self.timed_out

    @property
    def in_sync(self) -> bool:
        return self.action_count == 0 and not self.has_failures

    @property
    def duration_seconds(self) -> float | None:
        if self.ended_at:
            return (self.ended_at - self.cycle_timestamp).total_seconds()
        return None

    def summary(self) -> str:
        """Get a one-line human-readable summary."""
        if self.in_sync:
            return "in sync"
        parts = [
            f"{len(self.copied)} copied",
            f"{len(self.deleted)} deleted",
            f"{len(self.conflicts_resolved)} conflicts resolved",
            f"{len(self.failures)} failed",
        ]
        if self.timed_out:
            parts.append("timed out")
        prefix = "[dry run] " if self.dry_run else ""
        return prefix + ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_timestamp": self.cycle_timestamp.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "source_root": self.source_root,
            "target_root": self.target_root,
            "mode": self.mode.value,
            "dry_run": self.dry_run,
            "copied": [
                {"path": entry.path, "direction": entry.direction.value}
                for entry in self.copied
            ],
            "deleted": list(self.deleted),
            "renamed": [
                {"path": entry.path, "renamed_to": entry.renamed_to}
                for entry in self.renamed
            ],
            "conflicts_resolved": [
                {"path": entry.path, "strategy": entry.strategy.value}
                for entry in self.conflicts_resolved
            ],
            "failures": [
                {"path": entry.path, "error_kind": entry.error_kind, "message": entry.message}
                for entry in self.failures
            ],
            "warnings": list(self.warnings),
            "timed_out": self.timed_out,
            "summary": {
                "in_sync": self.in_sync,
                "copied": len(self.copied),
                "deleted": len(self.deleted),
                "conflicts_resolved": len(self.conflicts_resolved),
                "failures": len(self.failures),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionReport:
        ended_at = data.get("ended_at")
        return cls(
            cycle_timestamp=datetime.fromisoformat(data["cycle_timestamp"]),
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
            source_root=data.get("source_root", ""),
            target_root=data.get("target_root", ""),
            mode=SyncMode(data.get("mode", SyncMode.MIRROR.value)),
            dry_run=data.get("dry_run", False),
            copied=[
                CopiedEntry(path=item["path"], direction=Direction(item["direction"]))
                for item in data.get("copied", [])
            ],
            deleted=list(data.get("deleted", [])),
            renamed=[
                RenamedEntry(path=item["path"], renamed_to=item["renamed_to"])
                for item in data.get("renamed", [])
            ],
            conflicts_resolved=[
                ResolvedEntry(path=item["path"], strategy=ConflictStrategy(item["strategy"]))
                for item in data.get("conflicts_resolved", [])
            ],
            failures=[
                FailureEntry(
                    path=item["path"],
                    error_kind=item["error_kind"],
                    message=item.get("message", ""),
                )
                for item in data.get("failures", [])
            ],
            warnings=list(data.get("warnings", [])),
            timed_out=data.get("timed_out", False),
        )
