"""
Abstract database adapter interface.

Supports both PostgreSQL (including Supabase databases) and SQLite.
"""

import re
from abc import ABC, abstractmethod
from typing import Any


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    Implementations must support:
    - Basic CRUD operations (execute, fetch, fetchval)
    - Schema creation for the board_tasks table
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection/pool."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connection/pool."""
        pass

    @abstractmethod
    async def execute(self, query: str, *args) -> str:
        """
        Execute a query and return status.

        Args:
            query: SQL query with $1, $2 placeholders
            *args: Query parameters

        Returns:
            Status string (e.g., "INSERT 0 1", "UPDATE 1")
        """
        pass

    @abstractmethod
    async def fetch(self, query: str, *args) -> list[dict]:
        """Fetch multiple rows as list of dicts."""
        pass

    @abstractmethod
    async def fetchval(self, query: str, *args) -> Any:
        """Fetch single value."""
        pass

    @property
    @abstractmethod
    def placeholder_style(self) -> str:
        """
        Return the placeholder style for this adapter.

        Returns:
            "dollar" for PostgreSQL ($1, $2, ...)
            "qmark" for SQLite (?, ?, ...)
        """
        pass

    @property
    @abstractmethod
    def native_types(self) -> bool:
        """
        Does the driver accept datetime/bool parameters natively?

        SQLite columns here are TEXT/INTEGER, so values are pre-encoded.
        """
        pass

    def format_query(self, query: str) -> str:
        """
        Convert query placeholders to the adapter's style.

        Input uses $1, $2 style (PostgreSQL).
        For SQLite, converts to ? style.
        """
        if self.placeholder_style == "dollar":
            return query

        return re.sub(r'\$\d+', '?', query)

    @staticmethod
    def affected_rows(status: str) -> int:
        """Row count from a status string such as "UPDATE 1" or "DELETE 0"."""
        try:
            return int(status.split()[-1])
        except (IndexError, ValueError):
            return 0

    async def ensure_schema(self) -> None:
        """
        Create schema if needed.
        Default implementation does nothing.
        """
        pass
