"""
Board controller for Kanbill.

Owns the single authoritative Board and is the only place that changes it.
Every operation validates first, then swaps in a new Board in one step,
then hands the remote write to the SyncQueue without waiting for it.

Column transitions carry side effects:
- entering Done stops the timer, stamps completion, spawns the next
  occurrence of recurring tasks and optionally messages the client
- leaving Done clears the completion stamp
- Budget approval and rejection have dedicated operations
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Set

from kanbill.config import BillingConfig, BoardConfig
from kanbill.errors import NotFoundError, ValidationError
from kanbill.models.board import Board
from kanbill.models.task import Task, new_task_id, normalize_title, utcnow
from kanbill.services.messaging import Messenger, billing_message, completion_message
from kanbill.services.notifications import LoggingNotifier, Notifier
from kanbill.services.recurrence import RecurrenceGenerator
from kanbill.services.sync import SyncQueue
from kanbill.services.tasks import TaskStore

logger = logging.getLogger(__name__)

# Fields changed only through moves, timers and billing operations
PROTECTED_FIELDS = frozenset({"id", "completed_at", "is_ghost"})

STARTER_TASKS = (
    {
        "title": "Welcome to your board",
        "description": "Open this card to edit its details and set dates.",
        "priority": "low",
        "tags": ("onboarding",),
        "client_name": "Sample Client",
    },
    {
        "title": "Try the timer",
        "description": "Start the timer on a card to track the time you spend on it.",
        "priority": "high",
        "tags": ("feature", "time"),
        "client_name": "Internal Project",
    },
)


@dataclass(frozen=True)
class MoveResult:
    """What a move did, derived from its source and target columns."""

    task: Task
    source_column_id: str
    target_column_id: str
    completed: bool = False
    reopened: bool = False
    recurrence: Optional[asyncio.Task] = None


class BoardController:
    """
    Move pipeline and task operations over one Board.

    Must be used from a running event loop: remote writes and delayed
    recurrence spawns are scheduled on it.
    """

    def __init__(
        self,
        store: TaskStore,
        config: Optional[BoardConfig] = None,
        notifier: Optional[Notifier] = None,
        messenger: Optional[Messenger] = None,
        billing: Optional[BillingConfig] = None,
        clock: Callable = utcnow,
    ):
        """
        Initialize the controller.

        Args:
            store: Remote task store
            config: Board layout and timing (defaults to BoardConfig())
            notifier: Receives user-facing messages
            messenger: Optional client messaging collaborator
            billing: Billing defaults used for invoices
            clock: Returns the current aware datetime
        """
        self.config = config or BoardConfig()
        self.config.validate()
        self.billing = billing or BillingConfig()
        self.notifier = notifier or LoggingNotifier()
        self.store = store
        self.sync = SyncQueue(store, self.notifier)
        self.messenger = messenger
        self.user_id: Optional[str] = None
        self._clock = clock
        self._board = Board.empty(self.config.columns)
        self._dragged_task_id: Optional[str] = None
        self._jobs: Set[asyncio.Task] = set()
        self.recurrence = RecurrenceGenerator(
            create=self._create_successor,
            place=self._place_successor,
            delay=self.config.recurrence_delay,
            notifier=self.notifier,
            clock=clock,
        )

    # -------------------- state --------------------

    @property
    def board(self) -> Board:
        return self._board

    @property
    def dragged_task_id(self) -> Optional[str]:
        return self._dragged_task_id

    def get_task(self, task_id: str) -> Task:
        task = self._board.tasks.get(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def _swap(self, board: Board) -> None:
        self._board = board

    def _track(self, job: asyncio.Task) -> asyncio.Task:
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)
        return job

    def _push(self, task: Task, column_id: Optional[str] = None) -> None:
        self.sync.update(task, column_id, self.user_id)

    # -------------------- session --------------------

    async def load(self, user_id: Optional[str]) -> Board:
        """
        Rebuild the board from the store for ``user_id``.

        A failed fetch is reported and leaves an empty board.
        """
        self.user_id = user_id
        self._dragged_task_id = None
        try:
            placements = await self.store.fetch_all(user_id)
        except Exception as e:
            logger.error(f"Failed to load board for {user_id}: {e}")
            self.notifier.notify("Could not load your board from the server.", "error")
            self._swap(Board.empty(self.config.columns))
            return self._board

        self._swap(Board.from_placements(placements, self.config.columns, self.config.intake_column))
        logger.info(f"Loaded {len(self._board.tasks)} tasks for {user_id}")

        if not placements and self.config.starter_tasks:
            for fields in STARTER_TASKS:
                self.create_task(**fields)

        return self._board

    def reset(self) -> None:
        """
        Forget the board and the sync bookkeeping (sign-out).

        Writes still pending are no longer tracked; call flush() first.
        """
        self.sync = SyncQueue(self.store, self.notifier)
        self._swap(Board.empty(self.config.columns))
        self._dragged_task_id = None
        self.user_id = None

    async def flush(self) -> None:
        """Wait for every pending remote write and scheduled recurrence."""
        while self._jobs or self.sync.pending:
            if self._jobs:
                await asyncio.gather(*set(self._jobs), return_exceptions=True)
            await self.sync.drain()

    # -------------------- drag and drop --------------------

    def pick_up(self, task_id: str) -> None:
        """Start dragging a card."""
        if task_id not in self._board.tasks:
            logger.debug(f"pick_up: unknown task {task_id}")
            return
        self._dragged_task_id = task_id

    def cancel_drag(self) -> None:
        self._dragged_task_id = None

    def drop(self, target_column_id: str, before_task_id: Optional[str] = None) -> Optional[MoveResult]:
        """
        Finish a drag over ``target_column_id``.

        No-op without a prior pick-up or when dropped onto the dragged card.
        """
        task_id, self._dragged_task_id = self._dragged_task_id, None
        if task_id is None:
            return None
        return self.move(task_id, target_column_id, before_task_id)

    # -------------------- moves --------------------

    def move(self, task_id: str, target_column_id: str, before_task_id: Optional[str] = None) -> Optional[MoveResult]:
        """
        Relocate a task and apply the side effects of its column transition.

        Returns None when the board did not change (unknown ids, self-drop,
        drop into the task's own column).
        """
        relocation = self._board.relocate(task_id, target_column_id, before_task_id)
        if not relocation.changed:
            return None

        source, target = relocation.source_column_id, relocation.target_column_id
        done = self.config.done_column
        previous = self._board.tasks[task_id]
        completed = target == done and source != done
        reopened = source == done and target != done

        task = previous
        if completed:
            task = replace(task, is_timer_running=False, completed_at=self._clock())
        elif reopened:
            task = replace(task, completed_at=None)

        self._swap(relocation.board.with_task(task))
        logger.info(f"Moved task {task_id}: {source} -> {target}")

        self._push(task, target)

        recurrence = None
        if completed:
            if previous.is_recurring:
                recurrence = self._track(self.recurrence.schedule(previous))
            if task.notify_client and self.messenger is not None:
                self._track(asyncio.get_running_loop().create_task(
                    self._deliver(task, completion_message(task))
                ))

        return MoveResult(
            task=task,
            source_column_id=source,
            target_column_id=target,
            completed=completed,
            reopened=reopened,
            recurrence=recurrence,
        )

    def approve(self, task_id: str) -> MoveResult:
        """Approve a budget: move it to the front of the approval column."""
        task = self.get_task(task_id)
        source = self._board.column_of(task_id)
        if source != self.config.budget_column:
            raise ValidationError(f"Task {task_id} is not awaiting budget approval")

        target = self.config.approve_column
        head = self._board.columns[target].task_ids
        relocation = self._board.relocate(task_id, target, head[0] if head else None)

        approved = replace(task, is_rejected=False)
        self._swap(relocation.board.with_task(approved))
        logger.info(f"Approved budget {task_id}")

        self._push(approved, target)
        self.notifier.notify(f"Budget '{task.title}' approved.", "success")
        return MoveResult(task=approved, source_column_id=source, target_column_id=target)

    def reject(self, task_id: str) -> Task:
        """Reject a budget. The task stays in Budget and can still be approved."""
        task = self.get_task(task_id)
        if self._board.column_of(task_id) != self.config.budget_column:
            raise ValidationError(f"Task {task_id} is not awaiting budget approval")
        if task.is_rejected:
            return task

        rejected = replace(task, is_rejected=True)
        self._swap(self._board.with_task(rejected))
        logger.info(f"Rejected budget {task_id}")

        self._push(rejected)
        return rejected

    # -------------------- task operations --------------------

    def validate_title(self, title: str, exclude: Optional[str] = None) -> str:
        """
        Return the trimmed title, or raise if it is empty or already used.

        Uniqueness is case-insensitive and ignores surrounding whitespace.
        """
        clean = (title or "").strip()
        if not clean:
            raise ValidationError("Title cannot be empty")
        if normalize_title(clean) in self._board.titles(exclude=exclude):
            raise ValidationError(f"Duplicate title: a task named '{clean}' already exists")
        return clean

    def create_task(self, title: str, column_id: Optional[str] = None, at_front: bool = False, **fields) -> Task:
        """
        Create a task, show it immediately and persist it in the background.

        The task carries a placeholder id until the store answers with the
        server id. If the store rejects it the task stays on the board,
        flagged ``is_ghost``.
        """
        column_id = column_id or self.config.intake_column
        if column_id not in self._board.columns:
            raise NotFoundError("column", column_id)

        clean = self.validate_title(title)
        for name in fields.keys() & PROTECTED_FIELDS:
            if name != "completed_at":
                raise ValidationError(f"Field '{name}' cannot be set on create")

        completed_at = self._clock() if column_id == self.config.done_column else None
        fields["completed_at"] = completed_at
        try:
            task = Task(title=clean, id=f"local-{new_task_id()}", **fields)
        except TypeError as e:
            raise ValidationError(str(e)) from e

        self._swap(self._board.add_task(task, column_id, at_front=at_front))
        logger.info(f"Created task {task.id} in {column_id}")

        self.sync.create(
            task,
            column_id,
            self.user_id,
            on_created=self._adopt_server_id,
            on_failed=self._mark_ghost,
        )
        return task

    def update_task(self, task_id: str, **changes) -> Task:
        """Edit task fields. Renames are checked for uniqueness."""
        task = self.get_task(task_id)

        blocked = changes.keys() & PROTECTED_FIELDS
        if blocked:
            raise ValidationError(f"Fields cannot be edited directly: {', '.join(sorted(blocked))}")
        if "title" in changes:
            changes["title"] = self.validate_title(changes["title"], exclude=task_id)

        try:
            updated = replace(task, **changes)
        except TypeError as e:
            raise ValidationError(str(e)) from e

        if updated == task:
            return task

        self._swap(self._board.with_task(updated))
        self._push(updated)
        return updated

    def delete_task(self, task_id: str) -> None:
        if task_id not in self._board.tasks:
            raise NotFoundError("task", task_id)

        self._swap(self._board.remove_task(task_id))
        if self._dragged_task_id == task_id:
            self._dragged_task_id = None
        logger.info(f"Deleted task {task_id}")

        self.sync.delete(task_id)

    def toggle_timer(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        toggled = replace(task, is_timer_running=not task.is_timer_running)
        self._swap(self._board.with_task(toggled))
        self._push(toggled)
        return toggled

    def tick(self, elapsed_ms: Optional[int] = None) -> bool:
        """
        Advance running timers by one interval.

        Returns False (and leaves the board untouched) when nothing runs.
        """
        if elapsed_ms is None:
            elapsed_ms = int(self.config.tick_interval * 1000)
        board = self._board.tick(elapsed_ms)
        if board is self._board:
            return False
        self._swap(board)
        return True

    def mark_paid(self, task_id: str, paid: bool = True) -> Task:
        """Register (or undo) the client's payment."""
        task = self.get_task(task_id)
        updated = replace(task, is_paid=paid, payment_date=self._clock() if paid else None)
        self._swap(self._board.with_task(updated))
        self._push(updated)
        return updated

    async def request_payment(self, task_id: str) -> bool:
        """Send the client an invoice for the task's billing terms."""
        task = self.get_task(task_id)
        if self.messenger is None:
            raise ValidationError("No messaging service configured")
        if not task.client_phone:
            raise ValidationError(f"Task '{task.title}' has no client phone")

        text = billing_message(task, self.billing.currency, self.billing.default_pix_key)
        return await self._deliver(task, text)

    # -------------------- callbacks --------------------

    def _adopt_server_id(self, local_id: str, stored: Task) -> None:
        if stored.id == local_id:
            return
        self._swap(self._board.rename_task(local_id, stored.id))
        if self._dragged_task_id == local_id:
            self._dragged_task_id = stored.id
        logger.debug(f"Task {local_id} is now {stored.id}")

    def _mark_ghost(self, local_id: str) -> None:
        task = self._board.tasks.get(local_id)
        if task is None:
            return
        # Reported once by the sync queue
        self._swap(self._board.with_task(replace(task, is_ghost=True)))
        logger.warning(f"Task {local_id} exists only locally")

    async def _create_successor(self, successor: Task) -> Optional[Task]:
        return await self.sync.create(successor, self.config.intake_column, self.user_id)

    def _place_successor(self, stored: Task) -> None:
        self._swap(self._board.add_task(stored, self.config.intake_column, at_front=True))

    async def _deliver(self, task: Task, text: str) -> bool:
        try:
            sent = await self.messenger.send(task, text)
        except Exception as e:
            logger.error(f"Message to client of {task.id} failed: {e}")
            sent = False
        if sent:
            self.notifier.notify(f"Message sent to {task.client_name or 'the client'}.", "success")
        else:
            self.notifier.notify(f"Could not message {task.client_name or 'the client'}.", "warning")
        return sent
