"""
Tests for recurring task computation and scheduling.
"""

import asyncio
import pytest
from datetime import date, datetime, timezone


class TestNextDueDate:
    """Tests for next_due_date()."""

    def test_daily(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        task = Task(title="Standup", recurrence="daily", due_date=date(2024, 3, 10))

        assert next_due_date(task) == date(2024, 3, 11)

    def test_weekly_later_in_week(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        # 2024-03-11 is a Monday; days are Monday (1) and Wednesday (3)
        task = Task(title="Report", recurrence="weekly", recurrence_days=[1, 3], due_date=date(2024, 3, 11))

        assert next_due_date(task) == date(2024, 3, 13)

    def test_weekly_wraps_to_next_week(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        task = Task(title="Report", recurrence="weekly", recurrence_days=[1, 3], due_date=date(2024, 3, 13))

        assert next_due_date(task) == date(2024, 3, 18)

    def test_weekly_sunday_index(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        # Saturday -> Sunday
        task = Task(title="Backup", recurrence="weekly", recurrence_days=[0], due_date=date(2024, 3, 16))

        assert next_due_date(task) == date(2024, 3, 17)

    def test_weekly_without_days_adds_a_week(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        task = Task(title="Review", recurrence="weekly", due_date=date(2024, 3, 10))

        assert next_due_date(task) == date(2024, 3, 17)

    def test_monthly(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        task = Task(title="Invoice", recurrence="monthly", due_date=date(2024, 3, 10))

        assert next_due_date(task) == date(2024, 4, 10)

    def test_monthly_clamps_to_month_end(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        leap = Task(title="Invoice", recurrence="monthly", due_date=date(2024, 1, 31))
        regular = Task(title="Invoice", recurrence="monthly", due_date=date(2023, 1, 31))
        december = Task(title="Invoice", recurrence="monthly", due_date=date(2024, 12, 15))

        assert next_due_date(leap) == date(2024, 2, 29)
        assert next_due_date(regular) == date(2023, 2, 28)
        assert next_due_date(december) == date(2025, 1, 15)

    def test_no_due_date(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        assert next_due_date(Task(title="Open", recurrence="daily")) is None

    def test_invalid_weekday(self):
        from kanbill.errors import RecurrenceComputationError
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        task = Task(title="Bad", recurrence="weekly", recurrence_days=[7], due_date=date(2024, 3, 10))

        with pytest.raises(RecurrenceComputationError):
            next_due_date(task)

    def test_not_recurring(self):
        from kanbill.errors import RecurrenceComputationError
        from kanbill.models.task import Task
        from kanbill.services.recurrence import next_due_date

        with pytest.raises(RecurrenceComputationError):
            next_due_date(Task(title="Once", due_date=date(2024, 3, 10)))


class TestBuildSuccessor:
    """Tests for build_successor()."""

    def test_resets_progress_and_keeps_terms(self):
        from kanbill.models.task import Attachment, Task
        from kanbill.services.recurrence import build_successor

        now = datetime(2024, 3, 10, 12, tzinfo=timezone.utc)
        task = Task(
            title="Monthly report",
            id="orig",
            recurrence="monthly",
            due_date=date(2024, 3, 10),
            time_spent=5000,
            is_timer_running=True,
            completed_at=now,
            is_paid=True,
            payment_date=now,
            billing_value=300.0,
            client_name="Acme",
            tags=["report"],
            attachments=[Attachment(name="a.pdf", locator="x")],
        )

        successor = build_successor(task, now=now, id_factory=lambda: "next")

        assert successor.id == "next"
        assert successor.title == "Monthly report"
        assert successor.due_date == date(2024, 4, 10)
        assert successor.created_at == now
        assert successor.time_spent == 0
        assert successor.is_timer_running is False
        assert successor.completed_at is None
        assert successor.is_paid is False
        assert successor.payment_date is None
        assert successor.attachments == ()
        assert successor.billing_value == 300.0
        assert successor.client_name == "Acme"
        assert successor.tags == ("report",)


class TestRecurrenceGenerator:
    """Tests for RecurrenceGenerator scheduling."""

    @pytest.mark.asyncio
    async def test_spawns_and_places(self, notifier):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import RecurrenceGenerator

        placed = []

        async def create(task):
            return task.with_changes(id="server-id")

        generator = RecurrenceGenerator(create, placed.append, delay=0, notifier=notifier)
        completed = Task(title="Daily", recurrence="daily", due_date=date(2024, 3, 10))

        stored = await generator.schedule(completed)

        assert stored.id == "server-id"
        assert placed == [stored]
        assert stored.due_date == date(2024, 3, 11)
        assert any("Daily" in m for m in notifier.messages)

    @pytest.mark.asyncio
    async def test_failed_create_does_not_place(self, notifier):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import RecurrenceGenerator

        placed = []

        async def create(task):
            return None

        generator = RecurrenceGenerator(create, placed.append, delay=0, notifier=notifier)

        result = await generator.schedule(Task(title="Daily", recurrence="daily"))

        assert result is None
        assert placed == []

    @pytest.mark.asyncio
    async def test_invalid_days_are_reported(self, notifier):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import RecurrenceGenerator

        created = []

        async def create(task):
            created.append(task)
            return task

        generator = RecurrenceGenerator(create, lambda t: None, delay=0, notifier=notifier)
        task = Task(title="Bad", recurrence="weekly", recurrence_days=[9], due_date=date(2024, 3, 10))

        assert await generator.schedule(task) is None
        assert created == []
        assert notifier.drain()[0].level == "warning"

    @pytest.mark.asyncio
    async def test_waits_for_delay(self):
        from kanbill.models.task import Task
        from kanbill.services.recurrence import RecurrenceGenerator

        async def create(task):
            return task

        generator = RecurrenceGenerator(create, lambda t: None, delay=0.05)
        job = generator.schedule(Task(title="Daily", recurrence="daily"))

        await asyncio.sleep(0)
        assert not job.done()
        assert await job is not None

    def test_negative_delay_rejected(self):
        from kanbill.services.recurrence import RecurrenceGenerator

        with pytest.raises(ValueError):
            RecurrenceGenerator(lambda t: None, lambda t: None, delay=-1)
