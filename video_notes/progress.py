from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class NullProgressSink:
    """Discard progress updates."""

    def notify_progress(self, percent: float, message: str) -> None:
        return None


class LoggingProgressSink:
    """Report progress through the module logger at INFO level."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def notify_progress(self, percent: float, message: str) -> None:
        self._log.info("[%3.0f%%] %s", percent, message)
