from __future__ import annotations

import datetime as dt
import itertools

import pytest

from taskboard.board import Board, BoardStore, check_invariants
from taskboard.models import NotFoundError, ValidationError


def _clock():
    counter = itertools.count(1)
    return lambda: f"2026-03-01T09:00:{next(counter):02d}.000Z"


def _ids():
    counter = itertools.count(1)
    return lambda prefix: f"{prefix}-id-{next(counter)}-abcdefghi"


def _store() -> BoardStore:
    return BoardStore(clock=_clock(), id_factory=_ids())


def _seeded() -> tuple[BoardStore, str, str, list[str]]:
    store = _store()
    todo = store.add_column({"title": "To Do"})
    done = store.add_column({"title": "Done", "color": "bg-green-50"})
    tasks = [store.add_task(todo, {"title": f"Task {n}"}) for n in range(3)]
    return store, todo, done, tasks


def test_empty_store_satisfies_invariants() -> None:
    store = _store()
    assert store.board.tasks == {}
    assert store.board.column_order == ()
    assert check_invariants(store.board) == []


def test_add_column_appends_to_order() -> None:
    store = _store()
    first = store.add_column({"title": "To Do"})
    second = store.add_column({"title": "Doing"})
    assert store.board.column_order == (first, second)
    assert store.get_column(second).order == 1
    assert [column.title for column in store.ordered_columns()] == ["To Do", "Doing"]


def test_add_column_rejects_task_ids_and_bad_titles() -> None:
    store = _store()
    before = store.board
    with pytest.raises(ValidationError):
        store.add_column({"title": "Doing", "taskIds": ["x"]})
    with pytest.raises(ValidationError, match="Title is required"):
        store.add_column({"title": ""})
    assert store.board is before


def test_add_task_appends_and_stamps() -> None:
    store, todo, _, tasks = _seeded()
    assert store.get_column(todo).task_ids == tuple(tasks)
    assert [task.title for task in store.get_tasks_for_column(todo)] == ["Task 0", "Task 1", "Task 2"]
    assert store.board.last_modified == store.get_task(tasks[-1]).created_at


def test_add_task_to_missing_column_raises_not_found() -> None:
    store, *_ = _seeded()
    before = store.board
    with pytest.raises(NotFoundError):
        store.add_task("column-id-missing", {"title": "Orphan"})
    assert store.board is before


def test_add_task_validates_before_committing() -> None:
    store, todo, _, _ = _seeded()
    before = store.board
    with pytest.raises(ValidationError, match="Title must be at most 100 characters"):
        store.add_task(todo, {"title": "x" * 101})
    assert store.board is before


def test_add_then_delete_restores_column() -> None:
    store, todo, _, tasks = _seeded()
    new_id = store.add_task(todo, {"title": "Temporary"})
    store.delete_task(new_id)
    assert store.get_column(todo).task_ids == tuple(tasks)
    assert new_id not in store.board.tasks


def test_delete_unknown_task_raises() -> None:
    store, *_ = _seeded()
    with pytest.raises(NotFoundError):
        store.delete_task("task-id-missing")


def test_update_task_keeps_membership() -> None:
    store, todo, _, tasks = _seeded()
    store.update_task(tasks[1], {"priority": "high"})
    assert store.get_task(tasks[1]).priority == "high"
    assert store.get_column(todo).task_ids == tuple(tasks)
    with pytest.raises(NotFoundError):
        store.update_task("task-id-missing", {"title": "x"})


def test_move_task_appends_to_target() -> None:
    store, todo, done, tasks = _seeded()
    store.move_task(tasks[0], done)
    assert store.get_column(todo).task_ids == tuple(tasks[1:])
    assert store.get_column(done).task_ids == (tasks[0],)
    assert store.find_task_column(tasks[0]) == done
    assert check_invariants(store.board) == []


def test_move_task_to_same_column_is_noop() -> None:
    store, todo, _, tasks = _seeded()
    before = store.board
    seen: list[Board] = []
    store.subscribe(seen.append)
    result = store.move_task(tasks[0], todo)
    assert result is before
    assert store.board is before
    assert seen == []


def test_move_task_to_missing_column_leaves_board() -> None:
    store, _, _, tasks = _seeded()
    before = store.board
    with pytest.raises(NotFoundError):
        store.move_task(tasks[0], "column-id-missing")
    assert store.board is before
    assert store.board.last_modified == before.last_modified


def test_move_within_column_clamps_index() -> None:
    store, todo, _, tasks = _seeded()
    store.move_task_within_column(todo, tasks[0], 99)
    assert store.get_column(todo).task_ids == (tasks[1], tasks[2], tasks[0])
    store.move_task_within_column(todo, tasks[0], -5)
    assert store.get_column(todo).task_ids == tuple(tasks)
    store.move_task_within_column(todo, tasks[2], 1)
    assert store.get_column(todo).task_ids == (tasks[0], tasks[2], tasks[1])


def test_move_within_column_requires_membership() -> None:
    store, _, done, tasks = _seeded()
    with pytest.raises(NotFoundError):
        store.move_task_within_column(done, tasks[0], 0)


def test_delete_column_cascades() -> None:
    store, todo, done, tasks = _seeded()
    store.move_task(tasks[0], done)
    store.delete_column(todo)
    assert store.board.column_order == (done,)
    assert set(store.board.tasks) == {tasks[0]}
    assert check_invariants(store.board) == []


def test_update_column_only_patches_title_and_color() -> None:
    store, todo, _, tasks = _seeded()
    store.update_column(todo, {"title": "Backlog", "color": "bg-purple-50"})
    assert store.get_column(todo).title == "Backlog"
    with pytest.raises(ValidationError, match="Field cannot be set on a column: taskIds"):
        store.update_column(todo, {"taskIds": []})
    assert store.get_column(todo).task_ids == tuple(tasks)


def test_reorder_columns_requires_permutation() -> None:
    store, todo, done, _ = _seeded()
    store.reorder_columns([done, todo])
    assert store.board.column_order == (done, todo)
    for bad in ([done], [done, done], [done, "column-id-missing"], [done, todo, todo]):
        with pytest.raises(ValidationError):
            store.reorder_columns(bad)
    assert store.board.column_order == (done, todo)


def test_find_by_prefix_and_title() -> None:
    store, todo, done, tasks = _seeded()
    assert store.find_column("done").id == done
    assert store.find_task(tasks[1]).title == "Task 1"
    assert store.find_task("task 2").id == tasks[2]
    assert store.find_column(todo.rsplit("-", 1)[0]).id == todo
    with pytest.raises(ValidationError, match="Ambiguous"):
        store.find_task("task-id-")
    with pytest.raises(NotFoundError):
        store.find_column("Review")


def test_get_stats_counts_priority_and_due_state() -> None:
    store, todo, _, tasks = _seeded()
    store.update_task(tasks[0], {"priority": "high", "dueDate": "2026-02-27"})
    store.update_task(tasks[1], {"priority": "low", "dueDate": "2026-03-01"})
    stats = store.get_stats(today=dt.date(2026, 3, 1))
    assert stats.total_tasks == 3
    assert stats.total_columns == 2
    assert stats.tasks_by_priority == {"low": 1, "medium": 1, "high": 1}
    assert stats.overdue_tasks == 1
    assert stats.due_today_tasks == 1
    assert stats.last_modified == store.board.last_modified
    assert stats.to_dict()["tasksByPriority"]["high"] == 1


def test_listeners_receive_each_new_snapshot() -> None:
    store = _store()
    seen: list[Board] = []
    unsubscribe = store.subscribe(seen.append)
    column = store.add_column({"title": "To Do"})
    store.add_task(column, {"title": "A"})
    assert [len(board.tasks) for board in seen] == [0, 1]
    assert seen[-1] is store.board
    with pytest.raises(ValidationError):
        store.add_task(column, {"title": ""})
    assert len(seen) == 2
    unsubscribe()
    store.clear()
    assert len(seen) == 2


def test_clear_resets_board() -> None:
    store, *_ = _seeded()
    store.clear()
    assert store.board.tasks == {}
    assert store.board.columns == {}
    assert store.board.column_order == ()


def test_import_snapshot_replaces_board() -> None:
    source, todo, _, tasks = _seeded()
    target = _store()
    target.import_snapshot(source.board.to_dict())
    assert target.board.column_order == source.board.column_order
    assert target.get_column(todo).task_ids == tuple(tasks)
    assert target.board.tasks == source.board.tasks


def test_import_snapshot_rejects_broken_invariants() -> None:
    source, todo, done, tasks = _seeded()
    data = source.board.to_dict()
    data["columns"][done]["taskIds"] = [tasks[0]]
    target = _store()
    before = target.board
    with pytest.raises(ValidationError, match="appears in more than one column"):
        target.import_snapshot(data)
    assert target.board is before


@pytest.mark.parametrize(
    "mutate",
    [
        lambda data: data.pop("columnOrder"),
        lambda data: data.update(tasks=[]),
        lambda data: data["columnOrder"].append("column-id-ghost"),
        lambda data: data["columnOrder"].pop(),
        lambda data: data["tasks"].update(extra={"id": "extra", "title": "Loose"}),
    ],
)
def test_import_snapshot_rejects_malformed_data(mutate) -> None:
    source, *_ = _seeded()
    data = source.board.to_dict()
    mutate(data)
    with pytest.raises(ValidationError):
        _store().import_snapshot(data)


def test_board_dict_round_trip() -> None:
    store, *_ = _seeded()
    assert Board.from_dict(store.board.to_dict()) == store.board
