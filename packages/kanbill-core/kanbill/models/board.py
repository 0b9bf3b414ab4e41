"""
Board model for Kanbill.

The board is the normalized aggregate of tasks, columns and column display
order. It is a persistent value: every operation returns a new ``Board`` and
leaves the receiver untouched, so a caller can never observe a half-applied
change.

Invariant: every task id on the board sits in exactly one column.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from kanbill.models.task import Task, normalize_title

logger = logging.getLogger(__name__)

# Built-in column ids
BUDGET = "budget"
TODO = "todo"
IN_PROGRESS = "in-progress"
DONE = "done"
BILLING = "billing"

DEFAULT_COLUMNS: Tuple[Tuple[str, str], ...] = (
    (BUDGET, "Budget"),
    (TODO, "To Do"),
    (IN_PROGRESS, "In Progress"),
    (DONE, "Done"),
    (BILLING, "Billing"),
)


@dataclass(frozen=True)
class Column:
    """An ordered bucket of task ids."""

    id: str
    title: str
    task_ids: Tuple[str, ...] = ()

    def __contains__(self, task_id: str) -> bool:
        return task_id in self.task_ids


@dataclass(frozen=True)
class Relocation:
    """
    Outcome of ``Board.relocate``.

    ``source_column_id`` and ``target_column_id`` are captured before the
    move so side effects can be derived from the transition itself.
    """

    board: "Board"
    source_column_id: Optional[str]
    target_column_id: str
    changed: bool


@dataclass(frozen=True)
class Board:
    """
    Normalized board aggregate.

    Attributes:
        tasks: Task id -> Task
        columns: Column id -> Column
        column_order: Display order of column ids
    """

    tasks: Mapping[str, Task] = field(default_factory=dict)
    columns: Mapping[str, Column] = field(default_factory=dict)
    column_order: Tuple[str, ...] = ()

    @classmethod
    def empty(cls, columns: Iterable[Tuple[str, str]] = DEFAULT_COLUMNS) -> "Board":
        """Create a board with the given ``(id, title)`` columns and no tasks."""
        cols = {cid: Column(id=cid, title=title) for cid, title in columns}
        return cls(tasks={}, columns=cols, column_order=tuple(cols))

    @classmethod
    def from_placements(
        cls,
        placements: Iterable[Tuple[Task, str]],
        columns: Iterable[Tuple[str, str]] = DEFAULT_COLUMNS,
        fallback_column: str = TODO,
    ) -> "Board":
        """
        Build a board from ``(task, column_id)`` pairs as returned by a store.

        Tasks assigned to an unknown column land in ``fallback_column``;
        repeated task ids keep their first placement.
        """
        board = cls.empty(columns)
        if fallback_column not in board.columns:
            raise ValueError(f"Unknown fallback column: {fallback_column}")

        tasks: Dict[str, Task] = {}
        lists: Dict[str, List[str]] = {cid: [] for cid in board.column_order}
        for task, column_id in placements:
            if task.id in tasks:
                logger.warning(f"Duplicate task {task.id} in remote data, keeping first placement")
                continue
            if column_id not in lists:
                logger.warning(f"Task {task.id} has unknown column {column_id!r}, using {fallback_column}")
                column_id = fallback_column
            tasks[task.id] = task
            lists[column_id].append(task.id)

        return board._rebuild(tasks, lists)

    # -------------------- queries --------------------

    def ordered_columns(self) -> List[Column]:
        return [self.columns[cid] for cid in self.column_order]

    def columns_containing(self, task_id: str) -> List[str]:
        """Every column holding ``task_id``; more than one means the board is corrupted."""
        ordered = list(self.column_order) + [c for c in self.columns if c not in self.column_order]
        return [cid for cid in ordered if task_id in self.columns[cid]]

    def column_of(self, task_id: str) -> Optional[str]:
        found = self.columns_containing(task_id)
        return found[0] if found else None

    def tasks_in(self, column_id: str) -> List[Task]:
        return [self.tasks[tid] for tid in self.columns[column_id].task_ids if tid in self.tasks]

    def titles(self, exclude: Optional[str] = None) -> set:
        """Normalized titles of every task, optionally excluding one id."""
        return {normalize_title(t.title) for tid, t in self.tasks.items() if tid != exclude}

    def running_tasks(self) -> List[Task]:
        return [t for t in self.tasks.values() if t.is_timer_running]

    def violations(self) -> List[str]:
        """Describe every breach of the one-task-one-column invariant."""
        problems = []
        for task_id in self.tasks:
            found = self.columns_containing(task_id)
            if len(found) != 1:
                problems.append(f"task {task_id} in {len(found)} columns: {found}")
        for cid, column in self.columns.items():
            for task_id in column.task_ids:
                if task_id not in self.tasks:
                    problems.append(f"column {cid} references unknown task {task_id}")
        return problems

    # -------------------- transitions --------------------

    def relocate(
        self,
        task_id: str,
        target_column_id: str,
        before_task_id: Optional[str] = None,
    ) -> Relocation:
        """
        Move ``task_id`` into ``target_column_id``.

        The id is stripped from every column first, so a board that already
        holds duplicates comes out clean. Unknown ids and self-drops are
        silent no-ops. Dropping into the column the task already occupies
        does not reorder it.
        """
        unchanged = Relocation(self, None, target_column_id, False)

        if before_task_id is not None and before_task_id == task_id:
            return unchanged
        if task_id not in self.tasks:
            logger.debug(f"relocate: unknown task {task_id}")
            return unchanged
        if target_column_id not in self.columns:
            logger.debug(f"relocate: unknown column {target_column_id}")
            return unchanged

        containing = self.columns_containing(task_id)
        if not containing:
            logger.debug(f"relocate: task {task_id} is in no column")
            return unchanged

        elsewhere = [cid for cid in containing if cid != target_column_id]
        source = elsewhere[0] if elsewhere else target_column_id
        target_ids = self.columns[target_column_id].task_ids
        duplicated = len(containing) > 1 or target_ids.count(task_id) > 1

        if source == target_column_id and not duplicated:
            return Relocation(self, source, target_column_id, False)

        lists = {cid: [t for t in col.task_ids if t != task_id] for cid, col in self.columns.items()}
        target = lists[target_column_id]
        if task_id in target_ids:
            # Already in the target: keep its current slot
            target.insert(target_ids.index(task_id), task_id)
        elif before_task_id is not None and before_task_id in target:
            target.insert(target.index(before_task_id), task_id)
        else:
            target.append(task_id)

        return Relocation(self._rebuild(self.tasks, lists), source, target_column_id, True)

    def add_task(self, task: Task, column_id: str, at_front: bool = False) -> "Board":
        """Insert (or re-place) a task in a column."""
        if column_id not in self.columns:
            raise KeyError(column_id)
        tasks = dict(self.tasks)
        tasks[task.id] = task
        lists = {cid: [t for t in col.task_ids if t != task.id] for cid, col in self.columns.items()}
        if at_front:
            lists[column_id].insert(0, task.id)
        else:
            lists[column_id].append(task.id)
        return self._rebuild(tasks, lists)

    def with_task(self, task: Task) -> "Board":
        """Replace the record of a task already on the board."""
        if task.id not in self.tasks:
            raise KeyError(task.id)
        tasks = dict(self.tasks)
        tasks[task.id] = task
        return replace(self, tasks=tasks)

    def remove_task(self, task_id: str) -> "Board":
        if task_id not in self.tasks and not self.columns_containing(task_id):
            return self
        tasks = {tid: t for tid, t in self.tasks.items() if tid != task_id}
        lists = {cid: [t for t in col.task_ids if t != task_id] for cid, col in self.columns.items()}
        return self._rebuild(tasks, lists)

    def rename_task(self, old_id: str, new_id: str) -> "Board":
        """Swap a placeholder id for the server-assigned one, keeping position."""
        if old_id not in self.tasks or old_id == new_id:
            return self
        tasks = {}
        for tid, task in self.tasks.items():
            if tid == old_id:
                tasks[new_id] = replace(task, id=new_id)
            else:
                tasks[tid] = task
        lists = {
            cid: [new_id if t == old_id else t for t in col.task_ids]
            for cid, col in self.columns.items()
        }
        return self._rebuild(tasks, lists)

    def tick(self, elapsed_ms: int) -> "Board":
        """
        Advance every running timer by ``elapsed_ms``.

        Returns ``self`` when no timer runs, so observers see no change.
        """
        running = [t for t in self.tasks.values() if t.is_timer_running]
        if not running:
            return self
        tasks = dict(self.tasks)
        for task in running:
            tasks[task.id] = replace(task, time_spent=task.time_spent + elapsed_ms)
        return replace(self, tasks=tasks)

    def _rebuild(self, tasks: Mapping[str, Task], lists: Mapping[str, Sequence[str]]) -> "Board":
        columns = {
            cid: replace(col, task_ids=tuple(lists.get(cid, col.task_ids)))
            for cid, col in self.columns.items()
        }
        return Board(tasks=dict(tasks), columns=columns, column_order=self.column_order)
