"""
SyncForge difference classifier.

Compares two already-built snapshots and decides, per path, whether it
must be copied (and in which direction), deleted, or flagged as a
conflict. Never touches the filesystem.
"""

from __future__ import annotations

from enum import Enum, auto

from syncforge.core.models import (
    CopyEntry,
    Direction,
    DirectorySnapshot,
    FileRecord,
    SyncMode,
    SyncPlan,
)

DEFAULT_TOLERANCE = 1.0


class Verdict(Enum):
    """Outcome of comparing one path present on both sides."""

    SAME = auto()
    FORWARD = auto()
    REVERSE = auto()
    CONFLICT = auto()


def same_content(source: FileRecord, target: FileRecord, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """Whether two file records hold the same bytes.

    Digests decide when both sides have one. Files over the size ceiling
    have none; they count as equal when size matches and mtimes agree
    within the tolerance.
    """
    if source.content_digest is not None and target.content_digest is not None:
        return source.content_digest == target.content_digest
    return source.size == target.size and abs(source.modified_at - target.modified_at) <= tolerance


def compare(
    source: FileRecord,
    target: FileRecord,
    mode: SyncMode,
    tolerance: float = DEFAULT_TOLERANCE,
) -> Verdict:
    if source.is_directory and target.is_directory:
        return Verdict.SAME

    if source.is_directory != target.is_directory:
        # A file on one side and a directory on the other
        return Verdict.FORWARD if mode is SyncMode.MIRROR else Verdict.CONFLICT

    if same_content(source, target, tolerance):
        return Verdict.SAME

    if mode is SyncMode.MIRROR:
        return Verdict.FORWARD

    delta = source.modified_at - target.modified_at
    if delta > tolerance:
        return Verdict.FORWARD
    if delta < -tolerance:
        return Verdict.REVERSE
    return Verdict.CONFLICT


def unreadable_prefixes(snapshot: DirectorySnapshot) -> frozenset[str]:
    """Paths that could not be read while building ``snapshot``."""
    return frozenset(warning.path for warning in snapshot.warnings)


def is_shadowed(path: str, prefixes: frozenset[str]) -> bool:
    """Whether ``path`` is one of ``prefixes`` or lies beneath one."""
    if path in prefixes:
        return True
    parts = path.split("/")
    return any("/".join(parts[:depth]) in prefixes for depth in range(1, len(parts)))


def diff(
    source: DirectorySnapshot,
    target: DirectorySnapshot,
    mode: SyncMode,
    tolerance: float = DEFAULT_TOLERANCE,
) -> SyncPlan:
    """Build the sync plan that reconciles ``target`` with ``source``.

    A path missing from ``source`` only because it (or a parent directory)
    failed to scan is never deleted from the target.
    """
    unreadable = unreadable_prefixes(source)
    to_copy: set[CopyEntry] = set()
    to_delete: set[str] = set()
    deleted_directories: set[str] = set()
    conflicts: set[str] = set()

    for path in sorted(set(source) | set(target)):
        src = source.get(path)
        tgt = target.get(path)

        if tgt is None and src is not None:
            to_copy.add(CopyEntry(path, Direction.FORWARD, src.is_directory))
            continue

        if src is None and tgt is not None:
            # Merge mode never deletes on its own
            if mode is SyncMode.MIRROR and not is_shadowed(path, unreadable):
                to_delete.add(path)
                if tgt.is_directory:
                    deleted_directories.add(path)
            continue

        assert src is not None and tgt is not None
        verdict = compare(src, tgt, mode, tolerance)
        if verdict is Verdict.FORWARD:
            to_copy.add(CopyEntry(path, Direction.FORWARD, src.is_directory))
        elif verdict is Verdict.REVERSE:
            to_copy.add(CopyEntry(path, Direction.REVERSE, tgt.is_directory))
        elif verdict is Verdict.CONFLICT:
            conflicts.add(path)

    return SyncPlan(
        to_copy=frozenset(to_copy),
        to_delete=frozenset(to_delete),
        conflicts=frozenset(conflicts),
        deleted_directories=frozenset(deleted_directories),
    )
