"""
Core data models for Kanbill.
"""

from kanbill.models.board import Board, Column, Relocation
from kanbill.models.task import Attachment, BillingPeriod, Priority, Recurrence, Task

__all__ = [
    "Task",
    "Attachment",
    "Priority",
    "Recurrence",
    "BillingPeriod",
    "Board",
    "Column",
    "Relocation",
]
