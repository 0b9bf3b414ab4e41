"""
Tests for the SyncQueue.
"""

import asyncio
import pytest


class SlowStore:
    """Store whose writes finish in reverse order of submission unless sequenced."""

    def __init__(self):
        from kanbill.services.tasks import MemoryTaskStore

        self.inner = MemoryTaskStore()
        self.log = []

    async def create(self, task, column_id, user_id=None):
        await asyncio.sleep(0.02)
        stored = await self.inner.create(task, column_id, user_id)
        self.log.append(("create", stored.id, column_id))
        return stored

    async def update(self, task, column_id=None, user_id=None):
        # First writes sleep longest
        await asyncio.sleep(0.01 * (3 - len(self.log)) if len(self.log) < 3 else 0)
        await self.inner.update(task, column_id, user_id)
        self.log.append(("update", task.id, column_id))

    async def delete(self, task_id):
        await self.inner.delete(task_id)
        self.log.append(("delete", task_id, None))


class TestSyncQueue:
    """Tests for per-task ordering, id aliasing and failure reporting."""

    @pytest.mark.asyncio
    async def test_same_task_runs_in_order(self, notifier):
        from kanbill.models.task import Task
        from kanbill.services.sync import SyncQueue

        store = SlowStore()
        stored = await store.inner.create(Task(title="Card"), "todo")
        queue = SyncQueue(store, notifier)

        for column in ("in-progress", "done", "billing"):
            queue.update(stored, column)
        await queue.drain()

        assert [entry[2] for entry in store.log] == ["in-progress", "done", "billing"]
        assert store.inner.column_of(stored.id) == "billing"
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_placeholder_is_resolved(self, notifier):
        from kanbill.models.task import Task
        from kanbill.services.sync import SyncQueue

        store = SlowStore()
        queue = SyncQueue(store, notifier)
        task = Task(title="Card", id="local-1")
        adopted = []

        job = queue.create(task, "todo", on_created=lambda local, created: adopted.append((local, created.id)))
        queue.update(task, "done")
        await queue.drain()

        created = job.result()
        assert adopted == [("local-1", created.id)]
        assert queue.resolve("local-1") == created.id
        assert store.inner.column_of(created.id) == "done"

    @pytest.mark.asyncio
    async def test_failure_reported_once(self, notifier, flaky_store_factory):
        from kanbill.errors import SyncFailure
        from kanbill.models.task import Task
        from kanbill.services.sync import SyncQueue

        store = flaky_store_factory(fail_on={"update"})
        queue = SyncQueue(store, notifier)

        job = queue.update(Task(title="Card"), "done")
        assert await job is None

        assert len(queue.failures) == 1
        assert isinstance(queue.failures[0], SyncFailure)
        assert queue.failures[0].operation == "update"
        assert len(notifier.messages) == 1
        assert "Local changes were kept" in notifier.messages[0]

    @pytest.mark.asyncio
    async def test_failed_create_marks_ghost(self, notifier, flaky_store_factory):
        from kanbill.models.task import Task
        from kanbill.services.sync import SyncQueue

        store = flaky_store_factory(fail_on={"create"})
        queue = SyncQueue(store, notifier)
        failed = []
        task = Task(title="Card", id="local-1")

        job = queue.create(task, "todo", on_failed=failed.append)
        queue.delete("local-1")
        await queue.drain()

        assert job.result() is None
        assert failed == ["local-1"]
        assert ("delete", "local-1") not in store.calls
        assert len(queue.failures) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_is_tolerated(self, notifier):
        from kanbill.services.sync import SyncQueue
        from kanbill.services.tasks import MemoryTaskStore

        queue = SyncQueue(MemoryTaskStore(), notifier)

        await queue.delete("never-existed")

        assert queue.failures == []
        assert notifier.messages == []
