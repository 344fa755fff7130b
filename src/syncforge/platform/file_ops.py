"""
Filesystem primitives used by the snapshot builder and the executor.

Every function here touches exactly one entry; callers decide how failures
are reported.
"""

from __future__ import annotations

import fnmatch
import hashlib
import os
import shutil
import stat
import uuid
from pathlib import Path

CHUNK_SIZE = 1024 * 1024
TEMP_PREFIX = ".syncforge-"


def matches_pattern(name: str, pattern: str | None) -> bool:
    return pattern is not None and fnmatch.fnmatch(name, pattern)


def hash_file(path: Path, algorithm: str = "sha256", chunk_size: int = CHUNK_SIZE) -> str:
    """Stream a file through a digest. Raises OSError on read failure."""
    digest = hashlib.new(algorithm)
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def is_temporary(name: str) -> bool:
    return name.startswith(TEMP_PREFIX)


def copy_file(source: Path, destination: Path) -> int:
    """Copy bytes and metadata from source to destination.

    The bytes land in a temporary sibling first and replace the destination
    in one rename, so readers never see a half-written file. Returns the
    number of bytes written.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.is_dir() and not destination.is_symlink():
        shutil.rmtree(destination)

    temp_path = destination.with_name(f"{TEMP_PREFIX}{uuid.uuid4().hex[:8]}-{destination.name}")
    written = 0
    try:
        with source.open("rb") as src, temp_path.open("wb") as dst:
            while chunk := src.read(CHUNK_SIZE):
                dst.write(chunk)
                written += len(chunk)
        copy_metadata(source, temp_path)
        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return written


def copy_metadata(source: Path, destination: Path) -> None:
    """Propagate modification time and permission bits (best effort on mode)."""
    info = source.stat()
    try:
        os.chmod(destination, stat.S_IMODE(info.st_mode))
    except PermissionError:
        pass
    os.utime(destination, ns=(info.st_atime_ns, info.st_mtime_ns))


def make_directory(destination: Path) -> None:
    """Create destination as a directory the owner can write into.

    The source's permission bits are applied later by copy_directory_mode,
    once everything beneath the directory has been copied.
    """
    if destination.exists() and not destination.is_dir():
        destination.unlink()
    destination.mkdir(parents=True, exist_ok=True)
    mode = stat.S_IMODE(destination.stat().st_mode)
    if mode & stat.S_IRWXU != stat.S_IRWXU:
        os.chmod(destination, mode | stat.S_IRWXU)


def copy_directory_mode(source: Path, destination: Path) -> None:
    """Give destination the permission bits of source (best effort)."""
    try:
        os.chmod(destination, stat.S_IMODE(source.stat().st_mode))
    except PermissionError:
        pass


def rename_entry(path: Path, new_path: Path) -> None:
    """Rename in place, refusing to overwrite an existing entry."""
    if new_path.exists():
        raise FileExistsError(f"Rename target already exists: {new_path}")
    os.rename(path, new_path)
