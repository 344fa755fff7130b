"""
SyncForge conflict resolver.

Turns every conflict of a sync plan into concrete actions. The choice
comes from a decision port: either a fixed policy or an external
collaborator asked once per conflict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from syncforge.core.errors import ConfigError
from syncforge.core.logging import get_logger
from syncforge.core.models import (
    Action,
    Conflict,
    ConflictStrategy,
    CopyAction,
    Direction,
    DirectorySnapshot,
    PendingConflict,
    RenameAction,
    ResolvedConflict,
    SyncPlan,
)

logger = get_logger(__name__)

CONFLICT_SUFFIX_FORMAT = "%Y%m%d_%H%M%S"

CONCRETE_STRATEGIES = frozenset(
    {ConflictStrategy.KEEP_SOURCE, ConflictStrategy.KEEP_TARGET, ConflictStrategy.KEEP_BOTH}
)


@runtime_checkable
class ConflictDecider(Protocol):
    """Decision port consulted by the interactive strategy."""

    def ask(self, conflict: Conflict) -> ConflictStrategy | None:
        """Return the strategy for this conflict, or None to leave it pending."""


class PolicyDecider:
    """Answers every conflict with the same strategy."""

    def __init__(self, strategy: ConflictStrategy) -> None:
        if strategy not in CONCRETE_STRATEGIES:
            raise ConfigError(f"Policy decider needs a concrete strategy, got {strategy.value}")
        self.strategy = strategy

    def ask(self, conflict: Conflict) -> ConflictStrategy | None:
        return self.strategy


@dataclass
class Resolution:
    """Outcome of resolving one plan's conflicts."""

    resolved: list[ResolvedConflict] = field(default_factory=list)
    pending: list[PendingConflict] = field(default_factory=list)

    def for_path(self, path: str) -> ResolvedConflict | None:
        for item in self.resolved:
            if item.path == path:
                return item
        return None


def conflict_name(path: str, cycle_timestamp: datetime) -> str:
    """Name the preserved target copy of a keep-both conflict."""
    return f"{path}.conflict_{cycle_timestamp.strftime(CONFLICT_SUFFIX_FORMAT)}"


def actions_for(
    strategy: ConflictStrategy,
    conflict: Conflict,
    cycle_timestamp: datetime,
) -> tuple[Action, ...]:
    """Map a concrete strategy to the ordered actions for one path."""
    if strategy is ConflictStrategy.KEEP_SOURCE:
        return (CopyAction(conflict.path, Direction.FORWARD, conflict.source.is_directory),)
    if strategy is ConflictStrategy.KEEP_TARGET:
        return (CopyAction(conflict.path, Direction.REVERSE, conflict.target.is_directory),)
    if strategy is ConflictStrategy.KEEP_BOTH:
        return (
            RenameAction(conflict.path, conflict_name(conflict.path, cycle_timestamp)),
            CopyAction(conflict.path, Direction.FORWARD, conflict.source.is_directory),
        )
    raise ValueError(f"Not a concrete strategy: {strategy.value}")


class ConflictResolver:
    """Resolves conflicts with one strategy for the whole run."""

    def __init__(
        self,
        strategy: ConflictStrategy,
        decider: ConflictDecider | None = None,
    ) -> None:
        if strategy is ConflictStrategy.INTERACTIVE and decider is None:
            raise ConfigError("The interactive conflict strategy requires a decider")
        self.strategy = strategy
        self.decider = decider

    @property
    def is_interactive(self) -> bool:
        return self.strategy is ConflictStrategy.INTERACTIVE

    def resolve(
        self,
        plan: SyncPlan,
        source: DirectorySnapshot,
        target: DirectorySnapshot,
        cycle_timestamp: datetime,
    ) -> Resolution:
        """Resolve every conflict of ``plan`` exactly once, in path order."""
        resolution = Resolution()
        for path in sorted(plan.conflicts):
            conflict = Conflict(path=path, source=source[path], target=target[path])
            chosen = self._choose(conflict)

            if chosen not in CONCRETE_STRATEGIES:
                reason = "no decision" if chosen is None else f"unusable answer {chosen.value}"
                resolution.pending.append(PendingConflict(path=path, reason=reason))
                logger.warning("Conflict left pending", path=path, reason=reason)
                continue

            assert chosen is not None
            resolution.resolved.append(
                ResolvedConflict(
                    path=path,
                    strategy=chosen,
                    actions=actions_for(chosen, conflict, cycle_timestamp),
                )
            )
            logger.info("Conflict resolved", path=path, strategy=chosen.value)
        return resolution

    def _choose(self, conflict: Conflict) -> ConflictStrategy | None:
        if not self.is_interactive:
            return self.strategy
        assert self.decider is not None
        answer = self.decider.ask(conflict)
        if answer is None:
            return None
        try:
            return ConflictStrategy(answer)
        except ValueError:
            logger.warning("Decider returned an unknown answer", path=conflict.path, answer=answer)
            return None
