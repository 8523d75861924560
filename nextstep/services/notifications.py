"""User-visible notices (toasts in the browser build) routed through logging."""

from __future__ import annotations

import logging
from typing import List, Protocol, Tuple

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier(Protocol):
    def notify(self, message: str, level: str = "info") -> None:
        ...


class LoggingNotifier:
    """Default notifier: every notice becomes a log record."""

    def notify(self, message: str, level: str = "info") -> None:
        logger.log(_LEVELS.get(level, logging.INFO), "[notice:%s] %s", level, message)


class RecordingNotifier:
    """Keeps notices in memory so callers can render them later."""

    def __init__(self) -> None:
        self.notices: List[Tuple[str, str]] = []

    def notify(self, message: str, level: str = "info") -> None:
        self.notices.append((level, message))


__all__ = ["LoggingNotifier", "Notifier", "RecordingNotifier"]
