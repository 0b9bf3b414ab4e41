"""
Task stores for Kanbill.

A store is the remote mirror of the board: it persists each task with its
column assignment. The board in memory stays the source of truth; stores
are written to on a best-effort basis by ``SyncQueue``.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from kanbill.db import get_adapter
from kanbill.errors import NotFoundError
from kanbill.models.task import Task, new_task_id, utcnow

logger = logging.getLogger(__name__)

Placement = Tuple[Task, str]

# Persisted task fields, in column order (id, user_id and column_id are handled separately)
TASK_FIELDS = (
    "title",
    "description",
    "priority",
    "tags",
    "created_at",
    "completed_at",
    "is_rejected",
    "time_spent",
    "is_timer_running",
    "due_date",
    "recurrence",
    "recurrence_days",
    "billing_value",
    "billing_period",
    "billing_pix_key",
    "is_paid",
    "payment_date",
    "client_name",
    "client_phone",
    "notify_client",
    "attachments",
)

JSON_FIELDS = ("tags", "recurrence_days", "attachments")


def task_values(task: Task) -> Dict[str, Any]:
    """Python values of every persisted field (datetimes, dates, bools, lists)."""
    return {
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "tags": list(task.tags),
        "created_at": task.created_at,
        "completed_at": task.completed_at,
        "is_rejected": task.is_rejected,
        "time_spent": task.time_spent,
        "is_timer_running": task.is_timer_running,
        "due_date": task.due_date,
        "recurrence": task.recurrence.value,
        "recurrence_days": list(task.recurrence_days),
        "billing_value": task.billing_value,
        "billing_period": task.billing_period.value if task.billing_period else None,
        "billing_pix_key": task.billing_pix_key,
        "is_paid": task.is_paid,
        "payment_date": task.payment_date,
        "client_name": task.client_name,
        "client_phone": task.client_phone,
        "notify_client": task.notify_client,
        "attachments": [a.to_dict() for a in task.attachments],
    }


class TaskStore(ABC):
    """
    Remote persistence collaborator.

    Implementations must:
    - assign a fresh server id on create
    - tolerate deleting an id that no longer exists
    - raise on any other failure (callers report it, never retry)
    """

    @abstractmethod
    async def fetch_all(self, user_id: Optional[str]) -> List[Placement]:
        """Return every ``(task, column_id)`` pair owned by ``user_id``."""
        pass

    @abstractmethod
    async def create(self, task: Task, column_id: str, user_id: Optional[str] = None) -> Task:
        """Persist a new task and return it carrying the server-assigned id."""
        pass

    @abstractmethod
    async def update(
        self,
        task: Task,
        column_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Overwrite every field of ``task`` (and its column, when given)."""
        pass

    @abstractmethod
    async def delete(self, task_id: str) -> None:
        """Remove a task. Missing ids are not an error."""
        pass

    async def close(self) -> None:
        """Release any connection held by the store."""
        pass


class MemoryTaskStore(TaskStore):
    """
    Store kept in process memory.

    Used for offline boards and in tests.
    """

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}

    async def fetch_all(self, user_id: Optional[str]) -> List[Placement]:
        rows = [r for r in self.records.values() if user_id is None or r["user_id"] == user_id]
        rows.sort(key=lambda r: r["task"].created_at)
        return [(r["task"], r["column_id"]) for r in rows]

    async def create(self, task: Task, column_id: str, user_id: Optional[str] = None) -> Task:
        stored = replace(task, id=new_task_id(), is_ghost=False)
        self.records[stored.id] = {"task": stored, "column_id": column_id, "user_id": user_id}
        return stored

    async def update(self, task: Task, column_id: Optional[str] = None, user_id: Optional[str] = None) -> None:
        record = self.records.get(task.id)
        if record is None:
            raise NotFoundError("task", task.id)
        record["task"] = task
        if column_id is not None:
            record["column_id"] = column_id
        if user_id is not None:
            record["user_id"] = user_id

    async def delete(self, task_id: str) -> None:
        self.records.pop(task_id, None)

    def column_of(self, task_id: str) -> Optional[str]:
        record = self.records.get(task_id)
        return record["column_id"] if record else None


class DatabaseTaskStore(TaskStore):
    """
    Store backed by the ``board_tasks`` SQL table.

    Works across PostgreSQL and SQLite through a DatabaseAdapter.
    """

    def __init__(self, adapter=None):
        """
        Initialize the store.

        Args:
            adapter: Optional DatabaseAdapter. If not provided, uses global adapter.
        """
        self._adapter = adapter

    @property
    def adapter(self):
        """Get the database adapter."""
        if self._adapter is None:
            self._adapter = get_adapter()
        return self._adapter

    def _table_name(self) -> str:
        return "board_tasks"

    def _encode(self, name: str, value: Any) -> Any:
        if name in JSON_FIELDS:
            return json.dumps(value)
        if self.adapter.native_types:
            return value
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, bool):
            return int(value)
        return value

    def _params(self, task: Task) -> list:
        values = task_values(task)
        return [self._encode(name, values[name]) for name in TASK_FIELDS]

    async def fetch_all(self, user_id: Optional[str]) -> List[Placement]:
        table = self._table_name()
        if user_id is None:
            rows = await self.adapter.fetch(f"SELECT * FROM {table} ORDER BY created_at")
        else:
            rows = await self.adapter.fetch(
                f"SELECT * FROM {table} WHERE user_id = $1 ORDER BY created_at",
                user_id,
            )
        return [(Task.from_dict(row), row["column_id"]) for row in rows]

    async def create(self, task: Task, column_id: str, user_id: Optional[str] = None) -> Task:
        stored = replace(task, id=new_task_id(), is_ghost=False)

        columns = ["id", "user_id", "column_id", *TASK_FIELDS, "updated_at"]
        params = [
            stored.id,
            user_id,
            column_id,
            *self._params(stored),
            self._encode("updated_at", utcnow()),
        ]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        await self.adapter.execute(
            f"INSERT INTO {self._table_name()} ({', '.join(columns)}) VALUES ({placeholders})",
            *params,
        )

        logger.info(f"Created task: {stored.id} - {stored.title}")
        return stored

    async def update(self, task: Task, column_id: Optional[str] = None, user_id: Optional[str] = None) -> None:
        updates = list(TASK_FIELDS)
        params = self._params(task)

        if column_id is not None:
            updates.append("column_id")
            params.append(column_id)

        if user_id is not None:
            updates.append("user_id")
            params.append(user_id)

        updates.append("updated_at")
        params.append(self._encode("updated_at", utcnow()))

        set_clause = ", ".join(f"{col} = ${i + 1}" for i, col in enumerate(updates))
        params.append(task.id)

        status = await self.adapter.execute(
            f"UPDATE {self._table_name()} SET {set_clause} WHERE id = ${len(params)}",
            *params,
        )
        if self.adapter.affected_rows(status) == 0:
            raise NotFoundError("task", task.id)

    async def delete(self, task_id: str) -> None:
        status = await self.adapter.execute(
            f"DELETE FROM {self._table_name()} WHERE id = $1",
            task_id,
        )
        if self.adapter.affected_rows(status) == 0:
            logger.debug(f"Delete of unknown task {task_id} ignored")

    async def close(self) -> None:
        if self._adapter is not None:
            await self._adapter.close()


def get_store(config=None, adapter=None) -> TaskStore:
    """
    Create the task store selected by configuration.

    Supabase REST is used when a project URL and key are configured;
    otherwise tasks go to the SQL database.
    """
    if config is None:
        from kanbill.config import get_config
        config = get_config()

    if config.supabase.enabled:
        from kanbill.services.supabase import SupabaseTaskStore

        logger.info(f"Using Supabase REST store: {config.supabase.url}")
        return SupabaseTaskStore(config.supabase.url, config.supabase.key, table=config.supabase.table)

    if adapter is None:
        adapter = get_adapter(config)
    return DatabaseTaskStore(adapter)
