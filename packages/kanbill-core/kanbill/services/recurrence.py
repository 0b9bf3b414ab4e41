"""
Recurring tasks.

When a recurring task reaches Done, a successor is computed and, after a
short delay, created at the store and placed at the front of the intake
column. A failed computation or a failed remote create skips the successor
and tells the user; there is no retry.
"""

import asyncio
import calendar
import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Callable, Optional

from kanbill.errors import RecurrenceComputationError
from kanbill.models.task import Recurrence, Task, new_task_id, utcnow
from kanbill.services.notifications import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)


def js_weekday(day: date) -> int:
    """Weekday index with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def add_months(day: date, months: int) -> date:
    """
    Shift ``day`` by whole calendar months.

    The day of month is clamped to the last day of the target month,
    so 2024-01-31 + 1 month is 2024-02-29.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def next_weekday(day: date, weekdays) -> date:
    """
    Next date after ``day`` whose weekday is in ``weekdays`` (0 = Sunday).

    Picks the smallest index later in the same week, else wraps to the
    smallest index of the following week.
    """
    current = js_weekday(day)
    later = [d for d in weekdays if d > current]
    if later:
        return day + timedelta(days=min(later) - current)
    return day + timedelta(days=7 - current + min(weekdays))


def next_due_date(task: Task) -> Optional[date]:
    """
    Due date of the next occurrence of ``task``.

    Returns None when the task has no due date.

    Raises:
        RecurrenceComputationError: task does not recur, has a malformed due
            date or weekday indices outside 0..6
    """
    if task.recurrence is Recurrence.NONE:
        raise RecurrenceComputationError(f"Task {task.id} does not recur")
    if task.due_date is None:
        return None
    if not isinstance(task.due_date, date):
        raise RecurrenceComputationError(f"Malformed due date on task {task.id}: {task.due_date!r}")

    due = task.due_date
    if task.recurrence is Recurrence.DAILY:
        return due + timedelta(days=1)
    if task.recurrence is Recurrence.MONTHLY:
        return add_months(due, 1)
    if task.recurrence is Recurrence.WEEKLY:
        days = task.recurrence_days
        if not days:
            return due + timedelta(days=7)
        if any(not isinstance(d, int) or d < 0 or d > 6 for d in days):
            raise RecurrenceComputationError(f"Invalid recurrence days on task {task.id}: {days}")
        return next_weekday(due, days)

    raise RecurrenceComputationError(f"Unsupported recurrence {task.recurrence!r}")


def build_successor(task: Task, now=None, id_factory: Callable[[], str] = new_task_id) -> Task:
    """
    Build the next occurrence of a completed recurring task.

    Tracked time, completion, payment and rejection are reset; billing
    terms carry over; attachments are not copied.
    """
    return replace(
        task,
        id=id_factory(),
        created_at=now or utcnow(),
        due_date=next_due_date(task),
        time_spent=0,
        is_timer_running=False,
        completed_at=None,
        attachments=(),
        is_paid=False,
        payment_date=None,
        is_rejected=False,
        is_ghost=False,
    )


class RecurrenceGenerator:
    """
    Schedules successors of completed recurring tasks.

    ``create`` persists the successor and returns the stored task (or None
    on failure, already reported); ``place`` puts it on the board.
    """

    def __init__(
        self,
        create: Callable,
        place: Callable[[Task], None],
        delay: float = 0.5,
        notifier: Optional[Notifier] = None,
        clock: Callable = utcnow,
    ):
        if delay < 0:
            raise ValueError("delay cannot be negative")
        self._create = create
        self._place = place
        self.delay = delay
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock

    def schedule(self, completed: Task) -> asyncio.Task:
        """Spawn the successor of ``completed`` after the configured delay."""
        return asyncio.get_running_loop().create_task(self._spawn(completed))

    async def _spawn(self, completed: Task) -> Optional[Task]:
        await asyncio.sleep(self.delay)

        try:
            successor = build_successor(completed, now=self._clock())
        except RecurrenceComputationError as e:
            logger.warning(f"Skipping recurrence of {completed.id}: {e}")
            self.notifier.notify(f"Could not schedule the next '{completed.title}': {e}", "warning")
            return None

        stored = await self._create(successor)
        if stored is None:
            logger.warning(f"Recurring successor of {completed.id} was not created")
            return None

        self._place(stored)
        logger.info(f"Recurring task {completed.id} spawned {stored.id} due {stored.due_date}")
        self.notifier.notify(f"Next '{stored.title}' created for the next date.", "success")
        return stored
