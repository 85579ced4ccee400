"""Contract for runtime telemetry and structured logging sinks."""

from __future__ import annotations

import logging
from collections import deque
from typing import Protocol

from rich.logging import RichHandler


class Telemetry(Protocol):
    """Reports navigation events and outcomes."""

    def emit(self, event_name: str, payload: dict) -> None:
        """Publish telemetry event to the configured sink."""


class LoggingTelemetry:
    """Telemetry sink that forwards events to a standard logger."""

    def __init__(self, logger: logging.Logger | None = None, max_events: int = 1_000) -> None:
        self._logger = logger or logging.getLogger("mc_navigator.telemetry")
        self.events: deque[tuple[str, dict]] = deque(maxlen=max_events)

    def emit(self, event_name: str, payload: dict) -> None:
        self.events.append((event_name, payload))
        self._logger.info(event_name, extra={"payload": payload})


def configure_logging(level: str = "INFO") -> None:
    """Route ``mc_navigator`` loggers through a rich console handler."""
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
