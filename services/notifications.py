from __future__ import annotations

from typing import Protocol

from core.logging_setup import get_logger


class Notifier(Protocol):
    def notify(self, title: str, message: str) -> None: ...


class LoggingNotifier:
    """Headless notifier: user notices only reach the sync log."""

    def __init__(self) -> None:
        self.logger = get_logger("notices")

    def notify(self, title: str, message: str) -> None:
        self.logger.warning("%s: %s", title, message)


__all__ = ["LoggingNotifier", "Notifier"]
