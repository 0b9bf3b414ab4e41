"""
Tests for the Supabase REST task store.

Uses httpx.MockTransport to avoid actual API calls.
"""

import json
import pytest
import httpx


def make_store(handler):
    from kanbill.services.supabase import SupabaseTaskStore

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseTaskStore("https://project.supabase.co/", "anon-key", client=client)


def row(**overrides):
    data = {
        "id": "srv-1",
        "title": "Card",
        "priority": "medium",
        "tags": [],
        "created_at": "2024-03-10T12:00:00+00:00",
        "column_id": "todo",
        "user_id": "u1",
    }
    data.update(overrides)
    return data


class TestSupabaseTaskStore:
    """Tests for SupabaseTaskStore."""

    def test_requires_credentials(self):
        from kanbill.services.supabase import SupabaseTaskStore

        with pytest.raises(ValueError) as exc:
            SupabaseTaskStore("", "")

        assert "SUPABASE_URL" in str(exc.value)

    @pytest.mark.asyncio
    async def test_fetch_all(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["apikey"] = request.headers["apikey"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=[row(), row(id="srv-2", title="Other", column_id="done")])

        store = make_store(handler)
        placements = await store.fetch_all("u1")

        assert seen["url"].path == "/rest/v1/tasks"
        assert seen["url"].params["user_id"] == "eq.u1"
        assert seen["apikey"] == "anon-key"
        assert seen["auth"] == "Bearer anon-key"
        assert [(t.id, col) for t, col in placements] == [("srv-1", "todo"), ("srv-2", "done")]

    @pytest.mark.asyncio
    async def test_create_returns_server_row(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["prefer"] = request.headers.get("Prefer")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json=[row(id="srv-9", title=seen["body"]["title"])])

        from kanbill.models.task import Task

        store = make_store(handler)
        created = await store.create(Task(title="New card", id="local-1"), "budget", "u1")

        assert created.id == "srv-9"
        assert seen["method"] == "POST"
        assert seen["prefer"] == "return=representation"
        assert "id" not in seen["body"]
        assert seen["body"]["column_id"] == "budget"
        assert seen["body"]["user_id"] == "u1"

    @pytest.mark.asyncio
    async def test_update_missing_row(self):
        from kanbill.errors import NotFoundError
        from kanbill.models.task import Task

        store = make_store(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(NotFoundError):
            await store.update(Task(title="Gone", id="srv-1"), "done")

    @pytest.mark.asyncio
    async def test_http_error_becomes_sync_failure(self):
        from kanbill.errors import SyncFailure
        from kanbill.models.task import Task

        store = make_store(lambda request: httpx.Response(500, json={"message": "boom"}))

        with pytest.raises(SyncFailure) as exc:
            await store.update(Task(title="Card", id="srv-1"), "done")

        assert exc.value.operation == "update"
        assert exc.value.task_id == "srv-1"

    @pytest.mark.asyncio
    async def test_delete(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["id"] = request.url.params["id"]
            return httpx.Response(204)

        store = make_store(handler)
        await store.delete("srv-1")
        await store.close()

        assert seen == {"method": "DELETE", "id": "eq.srv-1"}

    def test_get_store_prefers_supabase(self):
        from kanbill.config import KanbillConfig, SupabaseConfig
        from kanbill.services.supabase import SupabaseTaskStore
        from kanbill.services.tasks import get_store

        config = KanbillConfig(supabase=SupabaseConfig(url="https://p.supabase.co", key="k"))

        store = get_store(config)

        assert isinstance(store, SupabaseTaskStore)
        assert store.endpoint == "https://p.supabase.co/rest/v1/tasks"
