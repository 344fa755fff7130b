"""
SyncForge structured logging.

Every event emitted while a cycle runs carries that cycle's identity
(timestamp and root pair) through structlog's context variables, so the
snapshot, diff, resolve and execute records of one cycle can be pulled out
of an interleaved stream. Phases are timed by PhaseLogger.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars

if TYPE_CHECKING:
    from syncforge.core.config import LoggingConfig


_configured = False


def _handlers(config: LoggingConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)
    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"syncforge_{datetime.now():%Y%m%d}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        # Files keep debug detail whatever the console level is
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)
    return handlers or [logging.NullHandler()]


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog on top of the stdlib logging handlers.

    Only the first call has any effect.
    """
    global _configured

    if _configured:
        return

    logging.basicConfig(level=logging.DEBUG, handlers=_handlers(config), format="%(message)s")

    processors: list[structlog.types.Processor] = [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if config.json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "syncforge")


@contextmanager
def cycle_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` to every event logged inside the block.

    Bindings are per thread of execution and are removed on exit, so
    schedulers for different root pairs never see each other's context.
    """
    with bound_contextvars(**values):
        yield


class PhaseLogger:
    """Times one cycle phase and logs its start, completion or failure."""

    def __init__(
        self,
        phase: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **fields: Any,
    ) -> None:
        self.phase = phase
        self.logger = (logger or get_logger()).bind(phase=phase)
        self.fields = fields
        self._started: float | None = None

    @property
    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        return round(time.monotonic() - self._started, 6)

    def __enter__(self) -> PhaseLogger:
        self._started = time.monotonic()
        self.logger.debug("Phase started", **self.fields)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            self.logger.info("Phase completed", duration_seconds=self.elapsed, **self.fields)
            return
        self.logger.error(
            "Phase failed",
            duration_seconds=self.elapsed,
            error_type=exc_type.__name__,
            error=str(exc_val),
            **self.fields,
        )

    def update(self, **fields: Any) -> None:
        """Add fields reported when the phase ends."""
        self.fields.update(fields)
