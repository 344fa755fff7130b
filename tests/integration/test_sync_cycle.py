"""
End-to-end sync cycles against real directory trees.
"""

import os
import time
from datetime import datetime
from pathlib import Path
from typing import Callable

import pytest
from pytest_mock import MockerFixture

from syncforge.core.config import SyncConfig
from syncforge.core.models import ConflictStrategy, Direction, SyncMode
from syncforge.sync import snapshot as snapshot_module
from syncforge.sync.classifier import diff
from syncforge.sync.scheduler import SyncScheduler, run_cycle
from syncforge.sync.snapshot import SnapshotBuilder

Tree = Callable[[Path, dict[str, str | bytes]], None]
ConfigFactory = Callable[..., SyncConfig]

pytestmark = pytest.mark.integration


def tree_contents(root: Path) -> dict[str, str]:
    return {
        path.relative_to(root).as_posix(): path.read_text()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def touch(path: Path, timestamp: float) -> None:
    os.utime(path, (timestamp, timestamp))


class TestMirror:
    """Mirror mode end to end."""

    def test_converges_and_is_idempotent(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"a.txt": "A", "src/main.py": "print()", "src/pkg/util.py": "x = 1"})
        make_tree(target, {"a.txt": "old A", "stale.txt": "gone", "junk/deep/file.bin": b"\0"})
        config = sync_config_factory()

        first = run_cycle(config)
        second = run_cycle(config)

        assert tree_contents(target) == tree_contents(source)
        assert not (target / "junk").exists()
        assert set(first.deleted) == {"stale.txt", "junk", "junk/deep", "junk/deep/file.bin"}
        assert not first.has_failures
        assert second.in_sync
        assert second.summary() == "in sync"

    def test_snapshots_match_after_sync(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"one.txt": "1", "nested/two.txt": "2"})

        run_cycle(sync_config_factory())

        builder = SnapshotBuilder()
        assert builder.build(source).digests() == builder.build(target).digests()

    def test_identical_content_with_different_mtime_is_left_alone(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"same.txt": "identical"})
        make_tree(target, {"same.txt": "identical"})
        touch(source / "same.txt", 1_000_000)
        touch(target / "same.txt", 2_000_000)

        report = run_cycle(sync_config_factory())

        assert report.in_sync
        assert (target / "same.txt").stat().st_mtime == 2_000_000

    def test_excluded_files_survive_in_target(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"keep.txt": "k"})
        make_tree(target, {"cache.tmp": "local only"})

        report = run_cycle(sync_config_factory(exclude_pattern="*.tmp"))

        assert (target / "cache.tmp").exists()
        assert report.deleted == []

    def test_dry_run_is_a_no_op(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"a.txt": "new"})
        make_tree(target, {"b.txt": "old"})
        before = tree_contents(target)

        report = run_cycle(sync_config_factory(dry_run=True))

        assert tree_contents(target) == before
        assert [entry.path for entry in report.copied] == ["a.txt"]
        assert report.deleted == ["b.txt"]
        assert report.summary().startswith("[dry run]")


class TestMerge:
    """Two-way merge end to end."""

    def test_new_files_flow_both_ways_without_deletes(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"a.txt": "from source"})
        make_tree(target, {"b.txt": "from target"})

        report = run_cycle(sync_config_factory(mode="merge"))

        assert (target / "a.txt").read_text() == "from source"
        assert (target / "b.txt").exists()
        assert not (source / "b.txt").exists()
        assert report.deleted == []

    def test_newer_target_is_copied_back(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"doc.txt": "v1"})
        make_tree(target, {"doc.txt": "v2 edited"})
        now = time.time()
        touch(source / "doc.txt", now - 100)
        touch(target / "doc.txt", now - 98.5)

        report = run_cycle(sync_config_factory(mode="merge"))

        assert (source / "doc.txt").read_text() == "v2 edited"
        assert [(entry.path, entry.direction) for entry in report.copied] == [
            ("doc.txt", Direction.REVERSE)
        ]

    def test_tolerance_window_produces_conflict(
        self, roots: tuple[Path, Path], make_tree: Tree
    ) -> None:
        source, target = roots
        make_tree(source, {"doc.txt": "left"})
        make_tree(target, {"doc.txt": "right"})
        touch(source / "doc.txt", 1_700_000_000)
        touch(target / "doc.txt", 1_700_000_000.5)

        builder = SnapshotBuilder()
        plan = diff(builder.build(source), builder.build(target), SyncMode.MERGE)

        assert plan.conflicts == {"doc.txt"}
        assert not plan.to_copy

    def test_keep_both_preserves_target_version(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"a.txt": "mine", "b.txt": "shared"})
        make_tree(target, {"a.txt": "theirs", "b.txt": "shared"})
        touch(source / "a.txt", 1_700_000_000)
        touch(target / "a.txt", 1_700_000_000.4)

        scheduler = SyncScheduler(sync_config_factory(mode="merge", conflict_strategy="keep-both"))
        report = scheduler.run_cycle()

        suffix = report.cycle_timestamp.strftime("%Y%m%d_%H%M%S")
        preserved = f"a.txt.conflict_{suffix}"
        assert tree_contents(target) == {"a.txt": "mine", "b.txt": "shared", preserved: "theirs"}
        assert report.renamed[0].renamed_to == preserved
        assert report.conflicts_resolved[0].strategy is ConflictStrategy.KEEP_BOTH
        assert not report.has_failures

        # The preserved copy only exists on the target, so merge leaves it there
        follow_up = scheduler.run_cycle()
        assert follow_up.in_sync

    def test_keep_target_overwrites_source(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"a.txt": "mine"})
        make_tree(target, {"a.txt": "theirs"})
        touch(source / "a.txt", 1_700_000_000)
        touch(target / "a.txt", 1_700_000_000.2)

        report = run_cycle(sync_config_factory(mode="merge", conflict_strategy="keep-target"))

        assert (source / "a.txt").read_text() == "theirs"
        assert report.copied[0].direction is Direction.REVERSE

    def test_type_mismatch_is_a_conflict_in_merge(
        self, roots: tuple[Path, Path], make_tree: Tree, sync_config_factory: ConfigFactory
    ) -> None:
        source, target = roots
        make_tree(source, {"item/inside.txt": "dir on source"})
        make_tree(target, {"item": "file on target"})

        report = run_cycle(sync_config_factory(mode="merge", conflict_strategy="keep-both"))

        assert (target / "item").is_dir()
        assert (target / "item" / "inside.txt").read_text() == "dir on source"
        preserved = [name for name in os.listdir(target) if name.startswith("item.conflict_")]
        assert len(preserved) == 1
        assert not report.has_failures

    def test_cycle_timestamp_is_recent(
        self, roots: tuple[Path, Path], sync_config_factory: ConfigFactory
    ) -> None:
        report = run_cycle(sync_config_factory(mode="merge"))
        assert (datetime.now() - report.cycle_timestamp).total_seconds() < 60


class TestUnreadableSource:
    """Entries the source scan could not read must survive in the target."""

    def test_unreadable_file_keeps_target_copy(
        self,
        roots: tuple[Path, Path],
        make_tree: Tree,
        sync_config_factory: ConfigFactory,
        mocker: MockerFixture,
    ) -> None:
        source, target = roots
        make_tree(source, {"precious.txt": "only good copy", "other.txt": "o"})
        config = sync_config_factory()
        run_cycle(config)

        real_hash = snapshot_module.hash_file
        locked = source.resolve() / "precious.txt"

        def guarded(path: Path, algorithm: str = "sha256") -> str:
            if Path(path).resolve() == locked:
                raise PermissionError(13, "Permission denied")
            return real_hash(path, algorithm)

        mocker.patch.object(snapshot_module, "hash_file", side_effect=guarded)
        report = run_cycle(config)

        assert (target / "precious.txt").read_text() == "only good copy"
        assert report.deleted == []
        assert "source:precious.txt: Permission denied" in report.warnings

    def test_unlistable_directory_keeps_target_subtree(
        self,
        roots: tuple[Path, Path],
        make_tree: Tree,
        sync_config_factory: ConfigFactory,
        mocker: MockerFixture,
    ) -> None:
        source, target = roots
        make_tree(source, {"docs/a.txt": "a", "docs/deep/b.txt": "b", "top.txt": "t"})
        config = sync_config_factory()
        run_cycle(config)

        real_list = SnapshotBuilder._list_dir
        locked = source.resolve() / "docs"

        def guarded(path: Path) -> list[os.DirEntry[str]]:
            if Path(path).resolve() == locked:
                raise PermissionError(13, "Permission denied")
            return real_list(path)

        mocker.patch.object(SnapshotBuilder, "_list_dir", side_effect=guarded)
        report = run_cycle(config)

        assert tree_contents(target) == {"docs/a.txt": "a", "docs/deep/b.txt": "b", "top.txt": "t"}
        assert report.deleted == []
        assert report.warnings == ["source:docs: Permission denied"]
