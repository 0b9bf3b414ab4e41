"""
Board statistics: productivity, tracked time per client and billing totals.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from kanbill.models.board import Board, DONE
from kanbill.models.task import utcnow

NO_CLIENT = "No client"
MS_PER_HOUR = 60 * 60 * 1000

# (minimum tasks completed in the last 7 days, rank)
RANKS = ((10, "S"), (7, "A"), (4, "B"))


@dataclass
class ClientStats:
    name: str
    time_spent: int = 0
    task_count: int = 0
    cost: float = 0.0

    @property
    def hours(self) -> float:
        return self.time_spent / MS_PER_HOUR

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "time_spent": self.time_spent,
            "hours": round(self.hours, 2),
            "task_count": self.task_count,
            "cost": round(self.cost, 2),
        }


@dataclass
class BoardStats:
    total_tasks: int = 0
    column_counts: Dict[str, int] = field(default_factory=dict)
    completion_rate: int = 0
    total_time_spent: int = 0
    top_clients: List[ClientStats] = field(default_factory=list)
    completed_this_week: int = 0
    weekly_rank: str = "C"
    billed: float = 0.0
    paid: float = 0.0
    outstanding: float = 0.0

    def to_dict(self) -> dict:
        hours, rest = divmod(self.total_time_spent, MS_PER_HOUR)
        return {
            "total_tasks": self.total_tasks,
            "column_counts": dict(self.column_counts),
            "completion_rate": self.completion_rate,
            "total_time_spent": self.total_time_spent,
            "total_time": f"{hours}h {rest // 60000}m",
            "top_clients": [c.to_dict() for c in self.top_clients],
            "completed_this_week": self.completed_this_week,
            "weekly_rank": self.weekly_rank,
            "billed": round(self.billed, 2),
            "paid": round(self.paid, 2),
            "outstanding": round(self.outstanding, 2),
        }


def weekly_rank(completed: int) -> str:
    for threshold, rank in RANKS:
        if completed >= threshold:
            return rank
    return "C"


def compute_stats(
    board: Board,
    hourly_rate: float = 150.0,
    now: Optional[datetime] = None,
    done_column: str = DONE,
    top: int = 5,
) -> BoardStats:
    """
    Summarize a board.

    Args:
        board: Board to summarize
        hourly_rate: Rate used to price tracked time per client
        now: Reference time for the weekly window (defaults to utcnow())
        done_column: Column whose tasks count as completed
        top: Number of clients to keep, by tracked time

    Returns:
        BoardStats
    """
    now = now or utcnow()
    tasks = list(board.tasks.values())
    stats = BoardStats(total_tasks=len(tasks))
    stats.column_counts = {col.id: len(col.task_ids) for col in board.ordered_columns()}

    done = stats.column_counts.get(done_column, 0)
    if tasks:
        stats.completion_rate = round(done / len(tasks) * 100)

    clients: Dict[str, ClientStats] = {}
    week_ago = now - timedelta(days=7)
    for task in tasks:
        stats.total_time_spent += task.time_spent

        name = (task.client_name or "").strip() or NO_CLIENT
        entry = clients.setdefault(name, ClientStats(name=name))
        entry.time_spent += task.time_spent
        entry.task_count += 1

        if task.completed_at is not None and task.completed_at > week_ago:
            stats.completed_this_week += 1

        if task.billing_value:
            stats.billed += task.billing_value
            if task.is_paid:
                stats.paid += task.billing_value

    ranked = sorted(clients.values(), key=lambda c: c.time_spent, reverse=True)[:top]
    for entry in ranked:
        entry.cost = entry.hours * hourly_rate
    stats.top_clients = ranked

    stats.weekly_rank = weekly_rank(stats.completed_this_week)
    stats.outstanding = stats.billed - stats.paid
    return stats
