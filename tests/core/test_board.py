"""
Tests for the Board aggregate.
"""

import pytest


def make_board(**columns):
    """Board with default columns and the given ``column=[titles]`` placements."""
    from kanbill.models.board import Board
    from kanbill.models.task import Task

    placements = []
    for column_id, titles in columns.items():
        for title in titles:
            placements.append((Task(title=title, id=title), column_id.replace("_", "-")))
    return Board.from_placements(placements)


class TestBoardConstruction:
    """Tests for building boards."""

    def test_empty_board(self):
        from kanbill.models.board import Board, DEFAULT_COLUMNS

        board = Board.empty()

        assert [c.id for c in board.ordered_columns()] == [cid for cid, _ in DEFAULT_COLUMNS]
        assert board.tasks == {}

    def test_from_placements_unknown_column_falls_back(self):
        from kanbill.models.board import Board, TODO
        from kanbill.models.task import Task

        task = Task(title="Lost", id="lost")
        board = Board.from_placements([(task, "archive")])

        assert board.column_of("lost") == TODO

    def test_from_placements_keeps_first_duplicate(self):
        from kanbill.models.board import Board
        from kanbill.models.task import Task

        task = Task(title="Dup", id="dup")
        board = Board.from_placements([(task, "todo"), (task, "done")])

        assert board.columns_containing("dup") == ["todo"]
        assert board.violations() == []


class TestRelocate:
    """Tests for Board.relocate()."""

    def test_move_between_columns(self):
        board = make_board(todo=["a", "b"], done=["c"])

        result = board.relocate("a", "done")

        assert result.changed is True
        assert result.source_column_id == "todo"
        assert result.target_column_id == "done"
        assert result.board.columns["todo"].task_ids == ("b",)
        assert result.board.columns["done"].task_ids == ("c", "a")
        assert result.board.violations() == []
        # Original board untouched
        assert board.columns["todo"].task_ids == ("a", "b")

    def test_insert_before(self):
        board = make_board(todo=["a"], done=["c", "d"])

        result = board.relocate("a", "done", before_task_id="d")

        assert result.board.columns["done"].task_ids == ("c", "a", "d")

    def test_before_not_in_target_appends(self):
        board = make_board(todo=["a", "b"], done=["c"])

        result = board.relocate("a", "done", before_task_id="b")

        assert result.board.columns["done"].task_ids == ("c", "a")

    def test_self_drop_is_noop(self):
        board = make_board(todo=["a"])

        result = board.relocate("a", "done", before_task_id="a")

        assert result.changed is False
        assert result.board is board

    def test_same_column_is_noop(self):
        board = make_board(todo=["a", "b"])

        result = board.relocate("b", "todo", before_task_id="a")

        assert result.changed is False
        assert result.board is board
        assert result.source_column_id == "todo"

    def test_unknown_task_or_column_is_noop(self):
        board = make_board(todo=["a"])

        assert board.relocate("missing", "done").board is board
        assert board.relocate("a", "archive").board is board

    def test_corrupted_board_is_cleaned(self):
        from dataclasses import replace

        board = make_board(todo=["a"], done=["b"])
        corrupted = replace(
            board,
            columns={
                **board.columns,
                "done": replace(board.columns["done"], task_ids=("b", "a")),
            },
        )
        assert corrupted.violations()

        result = corrupted.relocate("a", "in-progress")

        assert result.changed is True
        assert result.source_column_id == "todo"
        assert result.board.columns_containing("a") == ["in-progress"]
        assert result.board.violations() == []

    def test_corrupted_board_target_keeps_slot(self):
        from dataclasses import replace

        board = make_board(todo=["a"], done=["b", "c"])
        corrupted = replace(
            board,
            columns={
                **board.columns,
                "done": replace(board.columns["done"], task_ids=("b", "a", "c")),
            },
        )

        result = corrupted.relocate("a", "done")

        assert result.changed is True
        assert result.board.columns["done"].task_ids == ("b", "a", "c")
        assert result.board.columns["todo"].task_ids == ()

    def test_random_relocations_keep_one_column_per_task(self):
        import random

        rng = random.Random(20240101)
        board = make_board(budget=["a", "b"], todo=["c", "d", "e"], in_progress=["f"], done=["g", "h"])
        task_ids = sorted(board.tasks)
        columns = list(board.column_order) + ["archive"]

        for _ in range(500):
            task_id = rng.choice(task_ids + ["missing"])
            before = rng.choice(task_ids + [None, "missing"])
            board = board.relocate(task_id, rng.choice(columns), before).board

            assert board.violations() == []
            placed = [t for cid in board.column_order for t in board.columns[cid].task_ids]
            assert sorted(placed) == task_ids

    def test_random_relocations_clean_corrupted_boards(self):
        import random
        from dataclasses import replace

        rng = random.Random(7)
        for _ in range(50):
            board = make_board(todo=["a", "b", "c"], in_progress=["d"], done=["e", "f"])
            task_ids = sorted(board.tasks)
            columns = dict(board.columns)
            for task_id in rng.sample(task_ids, 3):
                cid = rng.choice(board.column_order)
                ids = list(columns[cid].task_ids)
                ids.insert(rng.randint(0, len(ids)), task_id)
                columns[cid] = replace(columns[cid], task_ids=tuple(ids))
            board = replace(board, columns=columns)

            pending = set(task_ids)
            while pending:
                task_id = rng.choice(task_ids)
                before = rng.choice(task_ids + [None])
                target = rng.choice(board.column_order)
                problems = len(board.violations())

                result = board.relocate(task_id, target, before)
                board = result.board

                assert len(board.violations()) <= problems
                if before != task_id:
                    assert board.columns_containing(task_id) == [target]
                    assert board.columns[target].task_ids.count(task_id) == 1
                    pending.discard(task_id)

            assert board.violations() == []


class TestBoardOperations:
    """Tests for the other Board transitions."""

    def test_add_task_front(self):
        from kanbill.models.task import Task

        board = make_board(todo=["a"])
        board = board.add_task(Task(title="new", id="new"), "todo", at_front=True)

        assert board.columns["todo"].task_ids == ("new", "a")

    def test_add_task_unknown_column(self):
        from kanbill.models.task import Task

        board = make_board()
        with pytest.raises(KeyError):
            board.add_task(Task(title="x"), "archive")

    def test_remove_task(self):
        board = make_board(todo=["a", "b"])

        board = board.remove_task("a")

        assert "a" not in board.tasks
        assert board.columns["todo"].task_ids == ("b",)

    def test_rename_task_keeps_position(self):
        board = make_board(todo=["a", "b", "c"])

        board = board.rename_task("b", "server-b")

        assert board.columns["todo"].task_ids == ("a", "server-b", "c")
        assert board.tasks["server-b"].id == "server-b"
        assert "b" not in board.tasks

    def test_titles_exclude(self):
        board = make_board(todo=["Alpha", "beta"])

        assert board.titles() == {"alpha", "beta"}
        assert board.titles(exclude="Alpha") == {"beta"}

    def test_tick_running_only(self):
        from dataclasses import replace

        board = make_board(todo=["a", "b"])
        board = board.with_task(replace(board.tasks["a"], is_timer_running=True))

        ticked = board.tick(1000)

        assert ticked.tasks["a"].time_spent == 1000
        assert ticked.tasks["b"].time_spent == 0

    def test_tick_without_running_returns_same_board(self):
        board = make_board(todo=["a"])

        assert board.tick(1000) is board
