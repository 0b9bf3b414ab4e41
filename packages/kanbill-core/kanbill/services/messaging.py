"""
Outbound client messaging.

Delivery (WhatsApp gateway, e-mail, ...) is an external collaborator. The
board hands it the task with its contact fields and receives success or
failure; it never retries.
"""

from abc import ABC, abstractmethod

from kanbill.models.task import BillingPeriod, Task

PERIOD_LABELS = {
    BillingPeriod.UNIQUE: "one-off",
    BillingPeriod.MONTHLY: "monthly",
    BillingPeriod.QUARTERLY: "quarterly",
    BillingPeriod.SEMIANNUAL: "semiannual",
    BillingPeriod.ANNUAL: "annual",
}


def completion_message(task: Task) -> str:
    client = task.client_name or "there"
    return f"Hello {client}! The task '{task.title}' is done."


def billing_message(task: Task, currency: str = "BRL", pix_key: str | None = None) -> str:
    """Invoice text for a task's billing terms."""
    client = task.client_name or "there"
    value = f"{currency} {task.billing_value:.2f}" if task.billing_value is not None else "to be agreed"
    period = PERIOD_LABELS.get(task.billing_period, "one-off")
    lines = [
        f"Hello {client}!",
        f"Here is the invoice for: {task.title}.",
        f"Amount: {value} ({period})",
    ]
    key = task.billing_pix_key or pix_key
    if key:
        lines.append(f"PIX key: {key}")
    return "\n".join(lines)


class Messenger(ABC):
    """Delivers a message to the client of a task."""

    @abstractmethod
    async def send(self, task: Task, text: str) -> bool:
        """
        Send ``text`` to ``task.client_phone``.

        Returns:
            True if delivered, False otherwise
        """
        pass
