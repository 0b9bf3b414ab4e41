"""
Remote synchronization for Kanbill.

The in-memory board is authoritative; the store is a best-effort mirror.
Every remote call is scheduled on the event loop right after the local
change and never awaited by the caller. Failures are logged and reported
once through the notifier. Nothing is retried or rolled back.

Calls that concern the same task run one after another in submission
order, so rapid successive moves of one card cannot overtake each other
at the store. Calls for different tasks run concurrently.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Dict, List, Optional, Set

from kanbill.errors import SyncFailure
from kanbill.models.task import Task
from kanbill.services.notifications import LoggingNotifier, Notifier
from kanbill.services.tasks import TaskStore

logger = logging.getLogger(__name__)

CreatedCallback = Callable[[str, Task], None]
FailedCallback = Callable[[str], None]


class SyncQueue:
    """
    Per-task ordered queue of remote store operations.

    Placeholder ids are mapped to server ids as soon as a create returns,
    so operations queued before the server id was known still reach the
    right row. Tasks whose create failed are ghosts: later updates and
    deletes for them are skipped instead of failing again.
    """

    def __init__(self, store: TaskStore, notifier: Optional[Notifier] = None):
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.failures: List[SyncFailure] = []
        self._tails: Dict[str, asyncio.Task] = {}
        self._aliases: Dict[str, str] = {}
        self._ghosts: Set[str] = set()

    # -------------------- state --------------------

    def resolve(self, task_id: str) -> str:
        """Current remote id for ``task_id`` (follows placeholder aliases)."""
        seen = set()
        while task_id in self._aliases and task_id not in seen:
            seen.add(task_id)
            task_id = self._aliases[task_id]
        return task_id

    def is_ghost(self, task_id: str) -> bool:
        return self.resolve(task_id) in self._ghosts

    @property
    def pending(self) -> int:
        return len({id(job) for job in self._tails.values()})

    # -------------------- operations --------------------

    def create(
        self,
        task: Task,
        column_id: str,
        user_id: Optional[str] = None,
        on_created: Optional[CreatedCallback] = None,
        on_failed: Optional[FailedCallback] = None,
    ) -> asyncio.Task:
        """
        Schedule remote creation of ``task``.

        ``on_created(local_id, stored_task)`` runs as soon as the store
        answers; ``on_failed(local_id)`` runs when it rejects. The returned
        job resolves to the stored task, or None on failure.
        """
        local_id = task.id

        async def op():
            try:
                created = await self.store.create(task, column_id, user_id)
            except Exception:
                self._ghosts.add(local_id)
                if on_failed is not None:
                    on_failed(local_id)
                raise

            if created.id != local_id:
                self._aliases[local_id] = created.id
                if local_id in self._tails:
                    self._tails[created.id] = self._tails[local_id]
            if on_created is not None:
                on_created(local_id, created)
            return created

        return self._submit(local_id, "create", op)

    def update(self, task: Task, column_id: Optional[str] = None, user_id: Optional[str] = None) -> asyncio.Task:
        """Schedule a full overwrite of ``task`` (and its column) at the store."""

        async def op():
            remote_id = self.resolve(task.id)
            if remote_id in self._ghosts:
                logger.debug(f"Skipping update of local-only task {task.id}")
                return None
            payload = task if remote_id == task.id else replace(task, id=remote_id)
            await self.store.update(payload, column_id, user_id)

        return self._submit(task.id, "update", op)

    def delete(self, task_id: str) -> asyncio.Task:
        """Schedule removal of ``task_id`` from the store."""

        async def op():
            remote_id = self.resolve(task_id)
            if remote_id in self._ghosts:
                self._ghosts.discard(remote_id)
                logger.debug(f"Skipping delete of local-only task {task_id}")
                return None
            await self.store.delete(remote_id)

        return self._submit(task_id, "delete", op)

    async def drain(self) -> None:
        """Wait until every scheduled operation has finished."""
        while self._tails:
            await asyncio.gather(*set(self._tails.values()), return_exceptions=True)

    # -------------------- internals --------------------

    def _submit(self, task_id: str, operation: str, factory: Callable[[], Awaitable]) -> asyncio.Task:
        key = self.resolve(task_id)
        previous = {job for job in (self._tails.get(key), self._tails.get(task_id)) if job is not None}

        async def run():
            if previous:
                await asyncio.wait(previous)
            try:
                return await factory()
            except Exception as e:
                self._report(operation, task_id, e)
                return None

        job = asyncio.get_running_loop().create_task(run())
        self._tails[key] = job
        job.add_done_callback(self._release)
        return job

    def _release(self, job: asyncio.Task) -> None:
        for key in [k for k, tail in self._tails.items() if tail is job]:
            del self._tails[key]

    def _report(self, operation: str, task_id: str, error: Exception) -> None:
        failure = error if isinstance(error, SyncFailure) else SyncFailure(operation, task_id, error)
        self.failures.append(failure)
        logger.error(str(failure))
        self.notifier.notify(f"Could not save to the server ({operation}). Local changes were kept.", "error")
