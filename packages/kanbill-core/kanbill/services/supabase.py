"""
Supabase REST task store.

Talks to the PostgREST endpoint of a Supabase project
(``{url}/rest/v1/{table}``) with the project's anon or service key. Row ids
are generated by the database.
"""

import logging
from typing import List, Optional

import httpx

from kanbill.errors import NotFoundError, SyncFailure
from kanbill.models.task import Task
from kanbill.services.tasks import Placement, TaskStore

logger = logging.getLogger(__name__)


class SupabaseTaskStore(TaskStore):
    """
    Task store backed by a Supabase table.

    Requires a project URL and key; pass ``client`` to reuse or mock the
    HTTP client.
    """

    def __init__(
        self,
        url: str,
        key: str,
        table: str = "tasks",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        if not url or not key:
            raise ValueError(
                "Supabase URL and key are required. "
                "Set SUPABASE_URL and SUPABASE_ANON_KEY or supabase.url/key in config."
            )
        self.url = url.rstrip("/")
        self.table = table
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    def _record(self, task: Task, column_id: Optional[str], user_id: Optional[str]) -> dict:
        record = task.to_dict()
        record.pop("id")
        if column_id is not None:
            record["column_id"] = column_id
        if user_id is not None:
            record["user_id"] = user_id
        return record

    async def _request(self, operation: str, task_id: Optional[str], method: str, **kwargs) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, self.endpoint, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SyncFailure(operation, task_id, e) from e
        return response

    async def fetch_all(self, user_id: Optional[str]) -> List[Placement]:
        params = {"select": "*", "order": "created_at.asc"}
        if user_id is not None:
            params["user_id"] = f"eq.{user_id}"

        response = await self._request("fetch", None, "GET", params=params)
        return [(Task.from_dict(row), row["column_id"]) for row in response.json()]

    async def create(self, task: Task, column_id: str, user_id: Optional[str] = None) -> Task:
        response = await self._request(
            "create",
            task.id,
            "POST",
            json=self._record(task, column_id, user_id),
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        if not rows:
            raise SyncFailure("create", task.id, ValueError("empty response"))

        created = Task.from_dict(rows[0])
        logger.info(f"Created task: {created.id} - {created.title}")
        return created

    async def update(self, task: Task, column_id: Optional[str] = None, user_id: Optional[str] = None) -> None:
        response = await self._request(
            "update",
            task.id,
            "PATCH",
            params={"id": f"eq.{task.id}"},
            json=self._record(task, column_id, user_id),
            headers={"Prefer": "return=representation"},
        )
        if not response.json():
            raise NotFoundError("task", task.id)

    async def delete(self, task_id: str) -> None:
        await self._request("delete", task_id, "DELETE", params={"id": f"eq.{task_id}"})

    async def close(self) -> None:
        await self._client.aclose()
