"""
SyncForge synchronization scheduler.

Runs one-shot or continuous sync cycles for a source/target pair. A cycle
is snapshot -> diff -> resolve -> execute, always run to completion once
started; only one cycle per root pair runs at a time.
"""

from __future__ import annotations

import json
import os
import subprocess
import threading
import time
from collections.abc import Iterable, Iterator
from datetime import datetime
from pathlib import Path

from syncforge.core.config import SyncConfig
from syncforge.core.errors import (
    ConfigError,
    ConflictPending,
    FatalScanError,
    SchedulerBusyError,
    SyncForgeError,
)
from syncforge.core.logging import PhaseLogger, cycle_context, get_logger
from syncforge.core.models import (
    ActionReport,
    ConflictStrategy,
    DirectorySnapshot,
    SchedulerState,
)
from syncforge.sync.classifier import diff
from syncforge.sync.executor import ActionExecutor
from syncforge.sync.resolver import ConflictDecider, ConflictResolver
from syncforge.sync.snapshot import SnapshotBuilder

logger = get_logger(__name__)

_pair_locks: dict[tuple[str, str], threading.Lock] = {}
_pair_locks_guard = threading.Lock()


def _lock_for(source: Path, target: Path) -> threading.Lock:
    key = (str(source), str(target))
    with _pair_locks_guard:
        return _pair_locks.setdefault(key, threading.Lock())


class CancelToken:
    """Cooperative cancellation signal shared with a running scheduler."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to ``timeout`` seconds; returns True once cancelled."""
        return self._event.wait(timeout)


class SyncScheduler:
    """Drives sync cycles for one source/target pair."""

    def __init__(
        self,
        config: SyncConfig,
        decider: ConflictDecider | None = None,
        builder: SnapshotBuilder | None = None,
        executor: ActionExecutor | None = None,
    ) -> None:
        self.config = config
        self.decider = decider
        self.builder = builder or SnapshotBuilder(workers=config.workers)
        self.executor = executor or ActionExecutor(workers=config.workers)
        self.last_report: ActionReport | None = None
        self._state = SchedulerState.IDLE
        self._previous: tuple[DirectorySnapshot, DirectorySnapshot] | None = None
        self._lock = _lock_for(config.source_root, config.target_root)

    @property
    def state(self) -> SchedulerState:
        return self._state

    def validate(self, continuous: bool = False) -> list[str]:
        """
        Validate the configuration before any cycle runs.
        Returns a list of errors (empty if valid).
        """
        errors: list[str] = []
        source, target = self.config.source_root, self.config.target_root

        if source == target:
            errors.append("Source and target must be different directories")
        elif source in target.parents or target in source.parents:
            errors.append("Source and target must not be nested inside each other")

        if self.config.conflict_strategy is ConflictStrategy.INTERACTIVE:
            if continuous:
                errors.append(
                    "The interactive conflict strategy cannot be used in continuous mode"
                )
            elif self.decider is None:
                errors.append("The interactive conflict strategy requires a decider")

        return errors

    def run_cycle(self) -> ActionReport:
        """Run exactly one full cycle and return its report."""
        self._ensure_runnable(continuous=False)
        return self._trigger()

    def run_continuous(
        self, interval: float, cancel_token: CancelToken
    ) -> Iterator[ActionReport]:
        """Validate, then yield one report per cycle until cancelled.

        The interval is measured from the end of one cycle to the start of
        the next. Cancellation during the wait stops at once; during a cycle
        it takes effect once that cycle has finished executing.
        """
        self._ensure_runnable(continuous=True)
        if interval <= 0:
            raise ConfigError("Interval must be positive")
        return self._loop(interval, cancel_token)

    def _ensure_runnable(self, continuous: bool) -> None:
        if self._state is SchedulerState.STOPPED:
            raise SyncForgeError("Scheduler has been stopped")
        errors = self.validate(continuous=continuous)
        if errors:
            raise ConfigError("; ".join(errors))

    def _loop(self, interval: float, cancel_token: CancelToken) -> Iterator[ActionReport]:
        logger.info(
            "Continuous sync started",
            source=str(self.config.source_root),
            target=str(self.config.target_root),
            interval_seconds=interval,
        )
        try:
            while not cancel_token.is_cancelled:
                report = self._trigger()
                finished = time.monotonic()
                yield report
                if cancel_token.is_cancelled:
                    break
                remaining = interval - (time.monotonic() - finished)
                if cancel_token.wait(max(0.0, remaining)):
                    break
        finally:
            self._state = SchedulerState.STOPPED
            logger.info("Continuous sync stopped", source=str(self.config.source_root))

    def _trigger(self) -> ActionReport:
        if not self._lock.acquire(blocking=False):
            raise SchedulerBusyError(
                f"A cycle is already running for {self.config.source_root} -> "
                f"{self.config.target_root}"
            )
        try:
            self._state = SchedulerState.RUNNING
            report = self._cycle()
            self.last_report = report
            return report
        finally:
            self._state = SchedulerState.IDLE
            self._lock.release()

    def _cycle(self) -> ActionReport:
        config = self.config
        cycle_timestamp = datetime.now()
        deadline = (
            time.monotonic() + config.cycle_timeout_seconds
            if config.cycle_timeout_seconds
            else None
        )
        report = ActionReport(
            cycle_timestamp=cycle_timestamp,
            source_root=str(config.source_root),
            target_root=str(config.target_root),
            mode=config.mode,
            dry_run=config.dry_run,
        )
        with cycle_context(
            cycle=cycle_timestamp.isoformat(),
            source=str(config.source_root),
            target=str(config.target_root),
            mode=config.mode.value,
            dry_run=config.dry_run,
        ):
            logger.info("Cycle started")
            self._run_hooks(config.hooks.on_start, report)
            self._run_phases(report, deadline)
            return self._finish(report)

    def _run_phases(self, report: ActionReport, deadline: float | None) -> None:
        config = self.config

        with PhaseLogger("snapshot", logger):
            source_snapshot, target_snapshot = self._snapshots()
        self._previous = (source_snapshot, target_snapshot)
        for side, snapshot in (("source", source_snapshot), ("target", target_snapshot)):
            for warning in snapshot.warnings:
                report.add_warning(f"{side}:{warning.path}: {warning.message}")

        if self._expired(deadline, report, "snapshot"):
            return

        with PhaseLogger("diff", logger) as phase:
            plan = diff(
                source_snapshot,
                target_snapshot,
                config.mode,
                config.timestamp_tolerance_seconds,
            )
            phase.update(
                to_copy=len(plan.to_copy),
                to_delete=len(plan.to_delete),
                conflicts=len(plan.conflicts),
            )

        if self._expired(deadline, report, "diff"):
            return

        with PhaseLogger("resolve", logger):
            resolver = ConflictResolver(config.conflict_strategy, self.decider)
            resolution = resolver.resolve(
                plan, source_snapshot, target_snapshot, report.cycle_timestamp
            )

        if self._expired(deadline, report, "resolve"):
            return

        for resolved in resolution.resolved:
            report.record_resolution(resolved.path, resolved.strategy)
            self._run_hooks(
                config.hooks.on_conflict,
                report,
                conflict_path=resolved.path,
                conflict_strategy=resolved.strategy,
            )
        for pending in resolution.pending:
            error = ConflictPending(pending.path, pending.reason)
            report.record_failure(error.path, type(error).__name__, str(error))

        with PhaseLogger("execute", logger):
            self.executor.apply(
                plan,
                config.source_root,
                config.target_root,
                dry_run=config.dry_run,
                resolutions=resolution.resolved,
                report=report,
                deadline=deadline,
            )

    def _snapshots(self) -> tuple[DirectorySnapshot, DirectorySnapshot]:
        config = self.config
        previous_source, previous_target = (
            self._previous if self._previous and config.incremental else (None, None)
        )
        source = self.builder.build(
            config.source_root,
            config.include_pattern,
            config.exclude_pattern,
            config.max_file_size,
            previous=previous_source,
        )

        target_root = config.target_root
        if not target_root.exists() and config.create_target:
            if config.dry_run:
                logger.info("Target missing, treated as empty", target=str(target_root))
                return source, DirectorySnapshot.empty(target_root)
            try:
                target_root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FatalScanError(target_root, exc.strerror or str(exc)) from exc
            logger.info("Created target directory", target=str(target_root))

        target = self.builder.build(
            target_root,
            config.include_pattern,
            config.exclude_pattern,
            config.max_file_size,
            previous=previous_target,
        )
        return source, target

    @staticmethod
    def _expired(deadline: float | None, report: ActionReport, phase: str) -> bool:
        if deadline is None or time.monotonic() <= deadline:
            return False
        report.timed_out = True
        report.add_warning(f"Cycle timed out after {phase} phase")
        logger.warning("Cycle timed out", phase=phase)
        return True

    def _finish(self, report: ActionReport) -> ActionReport:
        report.ended_at = datetime.now()
        self._run_hooks(self.config.hooks.on_complete, report)
        if self.config.status_file:
            save_status(report, self.config.status_file)
        logger.info(
            "Cycle finished",
            summary=report.summary(),
            duration_seconds=report.duration_seconds,
            failures=len(report.failures),
        )
        return report

    def _run_hooks(
        self,
        hooks: Iterable[str],
        report: ActionReport,
        conflict_path: str | None = None,
        conflict_strategy: ConflictStrategy | None = None,
    ) -> None:
        if not hooks:
            return
        env = os.environ.copy()
        env.update(
            {
                "SYNCFORGE_SOURCE": report.source_root,
                "SYNCFORGE_TARGET": report.target_root,
                "SYNCFORGE_MODE": report.mode.value,
                "SYNCFORGE_DRY_RUN": "1" if report.dry_run else "0",
                "SYNCFORGE_CYCLE": report.cycle_timestamp.isoformat(),
            }
        )
        if report.ended_at:
            env["SYNCFORGE_SUMMARY"] = report.summary()
        if conflict_path:
            env["SYNCFORGE_CONFLICT_PATH"] = conflict_path
        if conflict_strategy:
            env["SYNCFORGE_CONFLICT_STRATEGY"] = conflict_strategy.value
        for hook in hooks:
            try:
                result = subprocess.run(hook, shell=True, check=False, env=env)
            except (OSError, subprocess.SubprocessError) as exc:
                report.add_warning(f"hook:{hook}:{exc}")
                logger.warning("Hook failed", hook=hook, error=str(exc))
                continue
            if result.returncode != 0:
                report.add_warning(f"hook:{hook}:exit {result.returncode}")
                logger.warning("Hook exited with error", hook=hook, returncode=result.returncode)


def save_status(report: ActionReport, path: Path) -> None:
    """Persist a cycle report to the status file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as handle:
        json.dump(report.to_dict(), handle, indent=2)


def load_status(path: Path) -> ActionReport | None:
    """Load the last cycle report, or None when there is none."""
    if not path.exists():
        return None
    with open(path) as handle:
        return ActionReport.from_dict(json.load(handle))


def run_cycle(config: SyncConfig, decider: ConflictDecider | None = None) -> ActionReport:
    """Run one sync cycle for ``config``."""
    return SyncScheduler(config, decider).run_cycle()


def run_continuous(
    config: SyncConfig,
    interval: float,
    cancel_token: CancelToken,
    decider: ConflictDecider | None = None,
) -> Iterator[ActionReport]:
    """Yield one report per cycle until ``cancel_token`` is cancelled."""
    return SyncScheduler(config, decider).run_continuous(interval, cancel_token)
