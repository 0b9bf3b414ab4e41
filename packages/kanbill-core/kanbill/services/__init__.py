"""
Business logic services for Kanbill.
"""

from kanbill.services.board import BoardController, MoveResult
from kanbill.services.notifications import LoggingNotifier, MemoryNotifier, Notifier
from kanbill.services.session import SessionManager, StaticAuthProvider, User
from kanbill.services.stats import compute_stats
from kanbill.services.sync import SyncQueue
from kanbill.services.tasks import DatabaseTaskStore, MemoryTaskStore, TaskStore, get_store
from kanbill.services.timer import TimerTicker

__all__ = [
    "BoardController",
    "MoveResult",
    "SyncQueue",
    "TaskStore",
    "MemoryTaskStore",
    "DatabaseTaskStore",
    "get_store",
    "TimerTicker",
    "SessionManager",
    "StaticAuthProvider",
    "User",
    "Notifier",
    "LoggingNotifier",
    "MemoryNotifier",
    "compute_stats",
]
