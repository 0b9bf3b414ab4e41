"""
SQLite database adapter using aiosqlite.

Used for local, single-user boards. Lists are stored as JSON text,
timestamps as ISO-8601 text and booleans as integers.
"""

import logging
from pathlib import Path
from typing import Optional, List, Any

from kanbill.db.interface import DatabaseAdapter

logger = logging.getLogger(__name__)

try:
    import aiosqlite
    HAS_AIOSQLITE = True
except ImportError:
    HAS_AIOSQLITE = False
    aiosqlite = None


SCHEMA = """
CREATE TABLE IF NOT EXISTS board_tasks (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    column_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT DEFAULT 'medium',
    tags TEXT DEFAULT '[]',
    created_at TEXT NOT NULL,
    completed_at TEXT,
    is_rejected INTEGER DEFAULT 0,
    time_spent INTEGER DEFAULT 0,
    is_timer_running INTEGER DEFAULT 0,
    due_date TEXT,
    recurrence TEXT DEFAULT 'none',
    recurrence_days TEXT DEFAULT '[]',
    billing_value REAL,
    billing_period TEXT,
    billing_pix_key TEXT,
    is_paid INTEGER DEFAULT 0,
    payment_date TEXT,
    client_name TEXT,
    client_phone TEXT,
    notify_client INTEGER DEFAULT 0,
    attachments TEXT DEFAULT '[]',
    updated_at TEXT
)
"""

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_board_tasks_user ON board_tasks(user_id, created_at)",
)


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite for async database operations.

    Automatically creates the database file and parent directories.
    """

    def __init__(self, db_path: str = "~/.kanbill/kanbill.db"):
        """
        Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite database file.
                    Supports ~ expansion for home directory.
        """
        if not HAS_AIOSQLITE:
            raise RuntimeError(
                "aiosqlite not installed. Run: pip install kanbill"
            )

        self.db_path = Path(db_path).expanduser()
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Initialize database connection and create file if needed."""
        if self._conn is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(self.db_path))
        await self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.row_factory = aiosqlite.Row

        logger.info(f"SQLite database connected: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite connection closed")

    async def _get_conn(self) -> "aiosqlite.Connection":
        """Get or create connection."""
        if self._conn is None:
            await self.connect()
        return self._conn

    async def execute(self, query: str, *args) -> str:
        """Execute query and return status."""
        conn = await self._get_conn()
        query = self.format_query(query)

        cursor = await conn.execute(query, args)
        await conn.commit()

        # Return a status string similar to PostgreSQL
        verb = query.strip().split(None, 1)[0].upper() if query.strip() else ""
        if verb == "INSERT":
            return f"INSERT 0 {cursor.rowcount}"
        elif verb == "UPDATE":
            return f"UPDATE {cursor.rowcount}"
        elif verb == "DELETE":
            return f"DELETE {cursor.rowcount}"
        return "OK"

    async def fetch(self, query: str, *args) -> List[dict]:
        """Fetch rows as list of dicts."""
        conn = await self._get_conn()
        query = self.format_query(query)

        cursor = await conn.execute(query, args)
        rows = await cursor.fetchall()

        return [dict(row) for row in rows]

    async def fetchval(self, query: str, *args) -> Any:
        """Fetch single value."""
        conn = await self._get_conn()
        query = self.format_query(query)

        cursor = await conn.execute(query, args)
        row = await cursor.fetchone()

        if row:
            return row[0]
        return None

    @property
    def placeholder_style(self) -> str:
        """SQLite uses ? style placeholders."""
        return "qmark"

    @property
    def native_types(self) -> bool:
        return False

    async def ensure_schema(self) -> None:
        """Create the board_tasks table if it does not exist."""
        await self.execute(SCHEMA)
        for statement in INDEXES:
            await self.execute(statement)
