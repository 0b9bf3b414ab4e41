"""
Kanbill Core Library

Kanban board for freelancers: tasks, time tracking, recurring work and
billing, persisted to SQLite, PostgreSQL or Supabase.
"""

__version__ = "0.1.0"

from kanbill.config import KanbillConfig, load_config
from kanbill.models import Board, Task

__all__ = [
    "load_config",
    "KanbillConfig",
    "Board",
    "Task",
]
