"""
Database adapter factory.

Creates the appropriate adapter based on configuration.
"""

import logging

from kanbill.db.interface import DatabaseAdapter

logger = logging.getLogger(__name__)

# Global adapter instance (singleton pattern)
_adapter: DatabaseAdapter | None = None


def create_adapter(config) -> DatabaseAdapter:
    """
    Build a new adapter for ``config.database`` without caching it.

    Raises:
        ValueError: If database configuration is invalid
    """
    db_type = config.database.type.lower()

    if db_type in ("postgres", "postgresql"):
        from kanbill.db.postgres import PostgresAdapter

        url = config.database.postgres_url
        if not url:
            raise ValueError(
                "PostgreSQL URL not configured. "
                "Set database.postgres.url in config or KANBILL_DATABASE_URL env var."
            )

        logger.info("Using PostgreSQL adapter")
        return PostgresAdapter(url)

    if db_type == "sqlite":
        from kanbill.db.sqlite import SQLiteAdapter

        path = config.database.sqlite_path
        logger.info(f"Using SQLite adapter: {path}")
        return SQLiteAdapter(path)

    raise ValueError(
        f"Unknown database type: {db_type}. "
        "Use 'postgres' or 'sqlite'."
    )


def get_adapter(config=None) -> DatabaseAdapter:
    """
    Get or create the database adapter based on configuration.

    Returns the same adapter instance on subsequent calls.

    Args:
        config: Optional KanbillConfig. If not provided, loads from default location.
    """
    global _adapter

    if _adapter is not None:
        return _adapter

    if config is None:
        from kanbill.config import load_config
        config = load_config()

    _adapter = create_adapter(config)
    return _adapter


async def init_adapter(config=None) -> DatabaseAdapter:
    """
    Initialize the database adapter, connect, and create the schema.

    Args:
        config: Optional KanbillConfig

    Returns:
        Connected DatabaseAdapter instance
    """
    adapter = get_adapter(config)
    await adapter.connect()
    await adapter.ensure_schema()
    return adapter


async def close_adapter() -> None:
    """Close the global adapter connection."""
    global _adapter

    if _adapter is not None:
        await _adapter.close()
        _adapter = None


def reset_adapter() -> None:
    """
    Reset the global adapter instance.

    Useful for testing or when configuration changes.
    """
    global _adapter
    _adapter = None
