"""
Task model for Kanbill.

A task is a unit of client work that lives in exactly one board column.
Tasks are immutable values: every change produces a new instance through
``dataclasses.replace``.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple
from uuid import uuid4

from kanbill.errors import ValidationError


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Recurrence(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BillingPeriod(str, Enum):
    UNIQUE = "unique"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return str(uuid4())


def normalize_title(title: str) -> str:
    """Comparison key for title uniqueness: trimmed and case-folded."""
    return (title or "").strip().casefold()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp from storage.

    Accepts datetimes, ISO-8601 strings and epoch milliseconds (the format
    used by browser clients).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValidationError(f"Invalid timestamp: {value!r}")


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date (``YYYY-MM-DD``); time components are dropped."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as e:
            raise ValidationError(f"Invalid due date: {value!r}") from e
    raise ValidationError(f"Invalid due date: {value!r}")


def _json_list(value: Any) -> list:
    # SQLite keeps list columns as JSON text
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return json.loads(value)
    return list(value)


def _coerce_enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {label}. Must be one of: {choices}") from e


@dataclass(frozen=True)
class Attachment:
    """
    A file attached to a task.

    The locator (URL or storage key) is owned by the storage collaborator and
    never interpreted here.
    """

    name: str
    locator: str
    kind: str = "other"  # image, pdf, other
    id: str = field(default_factory=new_task_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "locator": self.locator,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        return cls(
            id=data.get("id") or new_task_id(),
            name=data.get("name", ""),
            kind=data.get("kind") or data.get("type") or "other",
            locator=data.get("locator") or data.get("data") or data.get("url") or "",
            created_at=parse_timestamp(data.get("created_at") or data.get("createdAt")) or utcnow(),
        )


@dataclass(frozen=True)
class Task:
    """
    A task card on the board.

    Attributes:
        title: Task title (non-empty when persisted)
        id: Opaque identifier, immutable once assigned
        description: Free text
        priority: low, medium, high, critical
        tags: Ordered tags (order carries no meaning)
        created_at: When the task was created
        completed_at: Set iff the task sits in the Done column
        is_rejected: Budget was rejected (only meaningful in Budget)
        time_spent: Tracked time in milliseconds
        is_timer_running: Timer is currently accumulating
        due_date: Calendar due date
        recurrence: none, daily, weekly, monthly
        recurrence_days: Weekday indices (0=Sunday) for weekly recurrence
        billing_value: Amount to bill the client
        billing_period: unique, monthly, quarterly, semiannual, annual
        billing_pix_key: Payment key shown on invoices
        is_paid: Client has paid
        payment_date: When the payment was registered
        client_name: Client contact name
        client_phone: Client phone for outbound messages
        notify_client: Message the client when the task completes
        attachments: Files attached to the task
        is_ghost: Remote creation failed; exists only locally (never stored)
    """

    title: str
    id: str = field(default_factory=new_task_id)
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    tags: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    is_rejected: bool = False
    time_spent: int = 0
    is_timer_running: bool = False
    due_date: Optional[date] = None
    recurrence: Recurrence = Recurrence.NONE
    recurrence_days: Tuple[int, ...] = ()
    billing_value: Optional[float] = None
    billing_period: Optional[BillingPeriod] = None
    billing_pix_key: Optional[str] = None
    is_paid: bool = False
    payment_date: Optional[datetime] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notify_client: bool = False
    attachments: Tuple[Attachment, ...] = ()
    is_ghost: bool = False

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, "priority", _coerce_enum(Priority, self.priority, "priority"))
        set_(self, "recurrence", _coerce_enum(Recurrence, self.recurrence, "recurrence"))
        if self.billing_period is not None:
            set_(self, "billing_period", _coerce_enum(BillingPeriod, self.billing_period, "billing period"))
        set_(self, "tags", tuple(self.tags or ()))
        set_(self, "recurrence_days", tuple(sorted(set(self.recurrence_days or ()))))
        set_(self, "attachments", tuple(self.attachments or ()))
        set_(self, "created_at", parse_timestamp(self.created_at) or utcnow())
        set_(self, "completed_at", parse_timestamp(self.completed_at))
        set_(self, "payment_date", parse_timestamp(self.payment_date))
        set_(self, "due_date", parse_date(self.due_date))

        if self.time_spent < 0:
            raise ValidationError("time_spent cannot be negative")
        if self.billing_value is not None and self.billing_value < 0:
            raise ValidationError("billing_value cannot be negative")

    @property
    def is_done(self) -> bool:
        """Task carries a completion stamp."""
        return self.completed_at is not None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not Recurrence.NONE

    def is_overdue(self, today: Optional[date] = None) -> bool:
        """Due date is in the past and the task does not recur."""
        if self.due_date is None or self.is_recurring:
            return False
        today = today or utcnow().date()
        return self.due_date < today

    def with_changes(self, **changes) -> "Task":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage/serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "is_rejected": self.is_rejected,
            "time_spent": self.time_spent,
            "is_timer_running": self.is_timer_running,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "recurrence": self.recurrence.value,
            "recurrence_days": list(self.recurrence_days),
            "billing_value": self.billing_value,
            "billing_period": self.billing_period.value if self.billing_period else None,
            "billing_pix_key": self.billing_pix_key,
            "is_paid": self.is_paid,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "notify_client": self.notify_client,
            "attachments": [a.to_dict() for a in self.attachments],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """Create Task from dictionary (e.g., database row or REST payload)."""
        billing_value = data.get("billing_value")
        return cls(
            id=data.get("id") or new_task_id(),
            title=data.get("title") or "",
            description=data.get("description"),
            priority=data.get("priority") or Priority.MEDIUM,
            tags=_json_list(data.get("tags")),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            completed_at=parse_timestamp(data.get("completed_at")),
            is_rejected=bool(data.get("is_rejected")),
            time_spent=int(data.get("time_spent") or 0),
            is_timer_running=bool(data.get("is_timer_running")),
            due_date=parse_date(data.get("due_date")),
            recurrence=data.get("recurrence") or Recurrence.NONE,
            recurrence_days=[int(d) for d in _json_list(data.get("recurrence_days"))],
            billing_value=float(billing_value) if billing_value is not None else None,
            billing_period=data.get("billing_period") or None,
            billing_pix_key=data.get("billing_pix_key"),
            is_paid=bool(data.get("is_paid")),
            payment_date=parse_timestamp(data.get("payment_date")),
            client_name=data.get("client_name"),
            client_phone=data.get("client_phone"),
            notify_client=bool(data.get("notify_client")),
            attachments=[Attachment.from_dict(a) for a in _json_list(data.get("attachments"))],
        )


# Valid priority values
TASK_PRIORITIES = tuple(p.value for p in Priority)

# Valid recurrence values
TASK_RECURRENCES = tuple(r.value for r in Recurrence)
