"""
SyncForge action executor.

Applies a sync plan (plus the actions chosen for its conflicts) to the two
trees, or simulates it in dry-run mode. Work is grouped into units, one per
path, so a conflict's rename always finishes before its copy starts.
Directories are created writable and only receive their source permission
bits after every phase has run, deepest first.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from syncforge.core.errors import ItemIOError
from syncforge.core.logging import get_logger
from syncforge.core.models import (
    Action,
    ActionReport,
    CopyAction,
    DeleteAction,
    Direction,
    RenameAction,
    ResolvedConflict,
    SyncPlan,
)
from syncforge.platform.file_ops import (
    copy_directory_mode,
    copy_file,
    make_directory,
    rename_entry,
)

logger = get_logger(__name__)

TIMEOUT_ERROR_KIND = "CycleTimeout"


def resolve_path(root: Path, relative_path: str) -> Path:
    return root.joinpath(*relative_path.split("/"))


@dataclass
class WorkUnit:
    """Ordered actions touching a single path."""

    path: str
    actions: tuple[Action, ...]


@dataclass
class UnitOutcome:
    completed: list[Action] = field(default_factory=list)
    error: ItemIOError | None = None
    skipped: bool = False


class ActionExecutor:
    """Runs work units on a bounded thread pool."""

    def __init__(self, workers: int = 4) -> None:
        self.workers = workers

    def apply(
        self,
        plan: SyncPlan,
        source_root: Path | str,
        target_root: Path | str,
        dry_run: bool = False,
        resolutions: Iterable[ResolvedConflict] = (),
        report: ActionReport | None = None,
        deadline: float | None = None,
    ) -> ActionReport:
        """Apply ``plan`` and return the report.

        ``deadline`` is a ``time.monotonic()`` value; units that have not
        started when it passes are skipped and recorded as timed out.
        """
        source_root = Path(source_root)
        target_root = Path(target_root)
        if report is None:
            report = ActionReport(
                cycle_timestamp=datetime.now(),
                source_root=str(source_root),
                target_root=str(target_root),
                dry_run=dry_run,
            )

        created: list[CopyAction] = []
        for units, parallel in self._phases(plan, resolutions):
            outcomes = self._run_units(
                units, source_root, target_root, dry_run, deadline, parallel
            )
            for unit, outcome in zip(units, outcomes):
                self._record(report, unit, outcome)
                created.extend(
                    action
                    for action in outcome.completed
                    if isinstance(action, CopyAction) and action.is_directory
                )
        if not dry_run:
            self._seal_directories(created, source_root, target_root, report)

        if report.action_count == 0 and not report.failures:
            logger.info("Trees in sync", source=str(source_root), target=str(target_root))
        return report

    def _phases(
        self, plan: SyncPlan, resolutions: Iterable[ResolvedConflict]
    ) -> list[tuple[list[WorkUnit], bool]]:
        file_deletes = [
            WorkUnit(path, (DeleteAction(path),))
            for path in plan.sorted_deletes()
            if path not in plan.deleted_directories
        ]
        # Deepest first so children go before their parents
        directory_deletes = [
            WorkUnit(path, (DeleteAction(path, is_directory=True),))
            for path in sorted(
                plan.deleted_directories, key=lambda p: (-p.count("/"), p)
            )
        ]
        copies = plan.sorted_copies()
        directory_copies = [
            WorkUnit(entry.path, (CopyAction(entry.path, entry.direction, True),))
            for entry in copies
            if entry.is_directory
        ]
        file_units = [
            WorkUnit(entry.path, (CopyAction(entry.path, entry.direction, False),))
            for entry in copies
            if not entry.is_directory
        ]
        for item in resolutions:
            unit = WorkUnit(item.path, item.actions)
            if any(isinstance(a, CopyAction) and a.is_directory for a in item.actions):
                # Children may be copied into it during the parallel phase
                directory_copies.append(unit)
            else:
                file_units.append(unit)
        directory_copies.sort(key=lambda unit: unit.path)
        file_units.sort(key=lambda unit: unit.path)

        return [
            (file_deletes, True),
            (directory_copies, False),
            (file_units, True),
            (directory_deletes, False),
        ]

    def _run_units(
        self,
        units: list[WorkUnit],
        source_root: Path,
        target_root: Path,
        dry_run: bool,
        deadline: float | None,
        parallel: bool,
    ) -> list[UnitOutcome]:
        if not units:
            return []
        if not parallel or self.workers <= 1 or len(units) == 1:
            return [
                self._run_unit(unit, source_root, target_root, dry_run, deadline)
                for unit in units
            ]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [
                pool.submit(self._run_unit, unit, source_root, target_root, dry_run, deadline)
                for unit in units
            ]
            return [future.result() for future in futures]

    def _run_unit(
        self,
        unit: WorkUnit,
        source_root: Path,
        target_root: Path,
        dry_run: bool,
        deadline: float | None,
    ) -> UnitOutcome:
        outcome = UnitOutcome()
        if deadline is not None and time.monotonic() > deadline:
            outcome.skipped = True
            return outcome

        for action in unit.actions:
            try:
                self._execute(action, source_root, target_root, dry_run)
            except ItemIOError as exc:
                outcome.error = exc
                break
            outcome.completed.append(action)
        return outcome

    def _execute(
        self, action: Action, source_root: Path, target_root: Path, dry_run: bool
    ) -> None:
        if isinstance(action, CopyAction):
            if action.direction is Direction.FORWARD:
                origin, destination = source_root, target_root
            else:
                origin, destination = target_root, source_root
            operation = "mkdir" if action.is_directory else "copy"
            if dry_run:
                return
            src = resolve_path(origin, action.path)
            dst = resolve_path(destination, action.path)
            try:
                if action.is_directory:
                    make_directory(dst)
                else:
                    copy_file(src, dst)
            except OSError as exc:
                raise ItemIOError(action.path, operation, exc) from exc

        elif isinstance(action, DeleteAction):
            if dry_run:
                return
            path = resolve_path(target_root, action.path)
            try:
                if action.is_directory:
                    path.rmdir()
                else:
                    path.unlink()
            except FileNotFoundError:
                # Already removed along with a replaced parent
                return
            except OSError as exc:
                raise ItemIOError(action.path, "delete", exc) from exc

        elif isinstance(action, RenameAction):
            if dry_run:
                return
            try:
                rename_entry(
                    resolve_path(target_root, action.path),
                    resolve_path(target_root, action.new_path),
                )
            except OSError as exc:
                raise ItemIOError(action.path, "rename", exc) from exc

        else:
            raise TypeError(f"Unknown action: {action!r}")

    @staticmethod
    def _seal_directories(
        created: list[CopyAction],
        source_root: Path,
        target_root: Path,
        report: ActionReport,
    ) -> None:
        # Deepest first so a read-only parent is locked after its children
        for action in sorted(created, key=lambda a: (-a.path.count("/"), a.path)):
            if action.direction is Direction.FORWARD:
                origin, destination = source_root, target_root
            else:
                origin, destination = target_root, source_root
            try:
                copy_directory_mode(
                    resolve_path(origin, action.path), resolve_path(destination, action.path)
                )
            except OSError as exc:
                error = ItemIOError(action.path, "chmod", exc)
                report.record_failure(action.path, type(error).__name__, str(error))
                logger.warning("Action failed", path=action.path, operation="chmod", error=str(exc))

    @staticmethod
    def _record(report: ActionReport, unit: WorkUnit, outcome: UnitOutcome) -> None:
        if outcome.skipped:
            report.timed_out = True
            report.record_failure(unit.path, TIMEOUT_ERROR_KIND, "cycle deadline passed")
            return

        for action in outcome.completed:
            if isinstance(action, CopyAction):
                report.record_copy(action.path, action.direction)
                logger.debug("Copied", path=action.path, direction=action.direction.value)
            elif isinstance(action, DeleteAction):
                report.record_delete(action.path)
                logger.debug("Deleted", path=action.path)
            elif isinstance(action, RenameAction):
                report.record_rename(action.path, action.new_path)
                logger.debug("Renamed", path=action.path, renamed_to=action.new_path)

        if outcome.error is not None:
            report.record_failure(unit.path, type(outcome.error).__name__, str(outcome.error))
            logger.warning(
                "Action failed",
                path=unit.path,
                operation=outcome.error.operation,
                error=str(outcome.error.cause or outcome.error),
            )
