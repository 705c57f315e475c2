"""
Progress notification sinks.

Algorithms report informational progress (iteration counts, merges) through a
Notifier. Sinks only observe; nothing they do feeds back into clustering.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog

from colclust.utils.advanced_logging import get_logger


class Notifier(ABC):
    """Receives informational text events from clustering algorithms."""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """
        Deliver one event.

        Args:
            message: Human readable event text
            level: "debug", "info" or "warning"
        """
        pass


class NullNotifier(Notifier):
    """Discards every event. Default sink."""

    def notify(self, message: str, level: str = "info") -> None:
        pass


class LoggingNotifier(Notifier):
    """Forwards events to a structlog logger."""

    def __init__(self, logger: Optional[structlog.BoundLogger] = None):
        self.logger = logger or get_logger(__name__)

    def notify(self, message: str, level: str = "info") -> None:
        getattr(self.logger, level, self.logger.info)("progress", message=message)


class CallbackNotifier(Notifier):
    """Calls a user function with each message."""

    def __init__(self, callback: Callable[[str], None]):
        self.callback = callback

    def notify(self, message: str, level: str = "info") -> None:
        self.callback(message)


NULL_NOTIFIER = NullNotifier()
