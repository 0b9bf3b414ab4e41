"""
User-facing notifications.

The board reports outcomes that the user should see (sync failures,
recurring task spawned, ...) through a Notifier instead of raising.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from kanbill.models.task import utcnow

logger = logging.getLogger(__name__)

LEVELS = ("info", "success", "warning", "error")


@dataclass(frozen=True)
class Notification:
    message: str
    level: str = "info"
    created_at: datetime = field(default_factory=utcnow)


class Notifier(ABC):
    """Receives short, transient messages meant for the user."""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes notifications to the log."""

    def notify(self, message: str, level: str = "info") -> None:
        if level == "error":
            logger.error(message)
        elif level == "warning":
            logger.warning(message)
        else:
            logger.info(message)


class MemoryNotifier(Notifier):
    """Keeps the most recent notifications so a front end can drain them."""

    def __init__(self, maxlen: int = 100):
        self._items: deque = deque(maxlen=maxlen)

    def notify(self, message: str, level: str = "info") -> None:
        if level not in LEVELS:
            level = "info"
        self._items.append(Notification(message=message, level=level))

    @property
    def messages(self) -> List[str]:
        return [n.message for n in self._items]

    def drain(self) -> List[Notification]:
        items = list(self._items)
        self._items.clear()
        return items
