"""
SyncForge snapshot builder.

Walks a directory tree into an immutable, path-keyed inventory with
content digests.
"""

from __future__ import annotations

import os
import stat
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from syncforge.core.config import DEFAULT_MAX_FILE_SIZE
from syncforge.core.errors import FatalScanError
from syncforge.core.logging import get_logger
from syncforge.core.models import DirectorySnapshot, FileRecord, ScanWarning
from syncforge.platform.file_ops import hash_file, is_temporary, matches_pattern

logger = get_logger(__name__)


@dataclass
class _Entry:
    relative_path: str
    path: Path
    stat: os.stat_result
    is_directory: bool

    @property
    def change_token(self) -> tuple[int, int, int]:
        return (self.stat.st_size, self.stat.st_mtime_ns, self.stat.st_ctime_ns)


class SnapshotBuilder:
    """Builds DirectorySnapshots, hashing files on a bounded worker pool."""

    def __init__(self, workers: int = 4, digest_algorithm: str = "sha256") -> None:
        self.workers = workers
        self.digest_algorithm = digest_algorithm

    def build(
        self,
        root: Path | str,
        include_pattern: str | None = None,
        exclude_pattern: str | None = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        previous: DirectorySnapshot | None = None,
    ) -> DirectorySnapshot:
        """Scan ``root`` and return its snapshot.

        Raises FatalScanError when the root itself cannot be listed. Entries
        that fail individually are left out and reported as warnings.
        ``previous`` is the last snapshot of the same root; digests of files
        whose stat is unchanged since then are reused.
        """
        root = Path(root)
        taken_at = datetime.now()
        warnings: list[ScanWarning] = []
        entries = self._walk(root, include_pattern, exclude_pattern, warnings)

        records: list[FileRecord] = []
        to_hash: list[_Entry] = []
        for entry in entries:
            if entry.is_directory:
                records.append(self._make_record(entry, None))
            elif entry.stat.st_size > max_file_size:
                records.append(self._make_record(entry, None))
            else:
                reused = self._reusable_digest(entry, previous)
                if reused is not None:
                    records.append(self._make_record(entry, reused))
                else:
                    to_hash.append(entry)

        if to_hash:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                results = list(pool.map(self._digest, to_hash))
            for entry, (digest, error) in zip(to_hash, results):
                if error is not None:
                    warnings.append(ScanWarning(entry.relative_path, error))
                    logger.warning(
                        "Entry skipped", path=entry.relative_path, error=error
                    )
                    continue
                records.append(self._make_record(entry, digest))

        snapshot = DirectorySnapshot(root, records, warnings, taken_at=taken_at)
        logger.debug(
            "Snapshot built",
            root=str(root),
            entries=len(snapshot),
            hashed=len(to_hash),
            warnings=len(warnings),
        )
        return snapshot

    def _walk(
        self,
        root: Path,
        include_pattern: str | None,
        exclude_pattern: str | None,
        warnings: list[ScanWarning],
    ) -> list[_Entry]:
        if not root.exists():
            raise FatalScanError(root, "path does not exist")
        if not root.is_dir():
            raise FatalScanError(root, "not a directory")
        try:
            top = self._list_dir(root)
        except OSError as exc:
            raise FatalScanError(root, exc.strerror or str(exc)) from exc

        found: list[_Entry] = []
        pending: list[tuple[str, list[os.DirEntry[str]]]] = [("", top)]
        while pending:
            prefix, dir_entries = pending.pop()
            for dir_entry in dir_entries:
                relative_path = prefix + dir_entry.name
                if is_temporary(dir_entry.name):
                    continue
                try:
                    if dir_entry.is_symlink():
                        continue
                    entry_stat = dir_entry.stat(follow_symlinks=False)
                except OSError as exc:
                    self._warn(warnings, relative_path, exc)
                    continue

                if stat.S_ISDIR(entry_stat.st_mode):
                    try:
                        children = self._list_dir(Path(dir_entry.path))
                    except OSError as exc:
                        self._warn(warnings, relative_path, exc)
                        continue
                    found.append(_Entry(relative_path, Path(dir_entry.path), entry_stat, True))
                    pending.append((relative_path + "/", children))
                    continue

                if not stat.S_ISREG(entry_stat.st_mode):
                    continue
                if matches_pattern(dir_entry.name, exclude_pattern):
                    continue
                if include_pattern is not None and not matches_pattern(
                    dir_entry.name, include_pattern
                ):
                    continue
                found.append(_Entry(relative_path, Path(dir_entry.path), entry_stat, False))
        return found

    @staticmethod
    def _list_dir(path: Path) -> list[os.DirEntry[str]]:
        with os.scandir(path) as iterator:
            return list(iterator)

    @staticmethod
    def _warn(warnings: list[ScanWarning], relative_path: str, exc: OSError) -> None:
        message = exc.strerror or str(exc)
        warnings.append(ScanWarning(relative_path, message))
        logger.warning("Entry skipped", path=relative_path, error=message)

    def _digest(self, entry: _Entry) -> tuple[str | None, str | None]:
        try:
            return hash_file(entry.path, self.digest_algorithm), None
        except OSError as exc:
            return None, exc.strerror or str(exc)

    @staticmethod
    def _reusable_digest(entry: _Entry, previous: DirectorySnapshot | None) -> str | None:
        if previous is None:
            return None
        old = previous.get(entry.relative_path)
        if old is None or old.is_directory or old.change_token != entry.change_token:
            return None
        return old.content_digest

    @staticmethod
    def _make_record(entry: _Entry, digest: str | None) -> FileRecord:
        return FileRecord(
            relative_path=entry.relative_path,
            size=0 if entry.is_directory else entry.stat.st_size,
            modified_at=entry.stat.st_mtime,
            content_digest=digest,
            is_directory=entry.is_directory,
            mode=stat.S_IMODE(entry.stat.st_mode),
            change_token=None if entry.is_directory else entry.change_token,
        )
