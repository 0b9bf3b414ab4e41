"""
Database abstraction layer supporting PostgreSQL and SQLite.
"""

from kanbill.db.factory import close_adapter, get_adapter, init_adapter, reset_adapter
from kanbill.db.interface import DatabaseAdapter

__all__ = [
    "DatabaseAdapter",
    "get_adapter",
    "init_adapter",
    "close_adapter",
    "reset_adapter",
]
