"""Board aggregate and the store that owns every mutation of it."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
import datetime as dt
from typing import Any, Callable, Iterable, Mapping

from . import dates
from .models import (
    VALID_PRIORITIES,
    Column,
    NotFoundError,
    Task,
    ValidationError,
    generate_id,
)


COLUMN_EDITABLE_FIELDS = frozenset({"title", "color"})

Listener = Callable[["Board"], None]


@dataclass(frozen=True, slots=True)
class Board:
    """Immutable snapshot of the whole board.

    ``tasks`` and ``columns`` are never mutated once a snapshot is built;
    operations produce a new snapshot with copied maps instead.
    """

    tasks: dict[str, Task] = field(default_factory=dict)
    columns: dict[str, Column] = field(default_factory=dict)
    column_order: tuple[str, ...] = ()
    last_modified: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.column_order, list):
            object.__setattr__(self, "column_order", tuple(self.column_order))

    @classmethod
    def empty(cls, *, now: str | None = None) -> Board:
        return cls(last_modified=now or dates.utc_now())

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": {task_id: task.to_dict() for task_id, task in self.tasks.items()},
            "columns": {column_id: column.to_dict() for column_id, column in self.columns.items()},
            "columnOrder": list(self.column_order),
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Board:
        """Build a snapshot from its JSON shape, checking every invariant.

        Raises ValidationError listing all problems found.
        """
        if not isinstance(data, Mapping):
            raise ValidationError("Board data must be an object", subject="board")

        raw_tasks = data.get("tasks")
        raw_columns = data.get("columns")
        raw_order = data.get("columnOrder")
        errors: list[str] = []
        if not isinstance(raw_tasks, Mapping):
            errors.append("tasks must be an object")
        if not isinstance(raw_columns, Mapping):
            errors.append("columns must be an object")
        if not isinstance(raw_order, (list, tuple)):
            errors.append("columnOrder must be an array")
        if errors:
            raise ValidationError(errors, subject="board")

        tasks: dict[str, Task] = {}
        for key, raw in raw_tasks.items():
            try:
                task = Task.from_dict(raw)
            except (ValidationError, TypeError) as exc:
                errors.append(f"Task {key}: {exc}")
                continue
            errors.extend(f"Task {key}: {message}" for message in task.validate().errors)
            if task.id != key:
                errors.append(f"Task {key}: id does not match its key")
            tasks[key] = task

        columns: dict[str, Column] = {}
        for key, raw in raw_columns.items():
            try:
                column = Column.from_dict(raw)
            except (ValidationError, TypeError) as exc:
                errors.append(f"Column {key}: {exc}")
                continue
            errors.extend(f"Column {key}: {message}" for message in column.validate().errors)
            if column.id != key:
                errors.append(f"Column {key}: id does not match its key")
            columns[key] = column

        if errors:
            raise ValidationError(errors, subject="board")

        last_modified = data.get("lastModified")
        board = cls(
            tasks=tasks,
            columns=columns,
            column_order=tuple(raw_order),
            last_modified=last_modified if isinstance(last_modified, str) else "",
        )
        problems = check_invariants(board)
        if problems:
            raise ValidationError(problems, subject="board")
        return board


def check_invariants(board: Board) -> list[str]:
    """Return every cross-entity invariant the board violates."""
    errors: list[str] = []

    order = board.column_order
    if not all(isinstance(column_id, str) for column_id in order):
        return ["columnOrder must contain column ids"]
    duplicated = sorted(column_id for column_id, count in Counter(order).items() if count > 1)
    if duplicated:
        errors.append(f"Duplicate column ids in columnOrder: {', '.join(duplicated)}")
    missing = sorted(set(board.columns) - set(order))
    if missing:
        errors.append(f"Columns missing from columnOrder: {', '.join(missing)}")
    unknown = sorted(set(order) - set(board.columns))
    if unknown:
        errors.append(f"Unknown columns in columnOrder: {', '.join(unknown)}")

    owners: dict[str, list[str]] = {}
    for column_id, column in board.columns.items():
        for task_id in column.task_ids:
            owners.setdefault(task_id, []).append(column_id)
            if task_id not in board.tasks:
                errors.append(f"Column {column_id} references unknown task {task_id}")
    for task_id, column_ids in owners.items():
        if len(column_ids) > 1:
            errors.append(f"Task {task_id} appears in more than one column")
    for task_id in board.tasks:
        if task_id not in owners:
            errors.append(f"Task {task_id} is not in any column")
    return errors


@dataclass(frozen=True, slots=True)
class BoardStats:
    total_tasks: int
    total_columns: int
    tasks_by_priority: dict[str, int]
    overdue_tasks: int
    due_today_tasks: int
    last_modified: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTasks": self.total_tasks,
            "totalColumns": self.total_columns,
            "tasksByPriority": dict(self.tasks_by_priority),
            "overdueTasks": self.overdue_tasks,
            "dueTodayTasks": self.due_today_tasks,
            "lastModified": self.last_modified,
        }


class BoardStore:
    """Single owner of the current board snapshot.

    Every mutation validates its result and swaps in a new snapshot, or
    raises without touching the current one.
    """

    def __init__(
        self,
        board: Board | None = None,
        *,
        clock: Callable[[], str] = dates.utc_now,
        id_factory: Callable[[str], str] = generate_id,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._board = board if board is not None else Board.empty(now=clock())
        self._listeners: list[Listener] = []

    @property
    def board(self) -> Board:
        return self._board

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, board: Board, now: str) -> Board:
        problems = check_invariants(board)
        if problems:
            raise ValidationError(problems, subject="board")
        committed = replace(board, last_modified=now)
        self._board = committed
        for listener in list(self._listeners):
            listener(committed)
        return committed

    def _new_id(self, prefix: str, taken: Iterable[str]) -> str:
        existing = set(taken)
        while True:
            candidate = self._id_factory(prefix)
            if candidate and candidate not in existing:
                return candidate

    def _require_task(self, task_id: str) -> Task:
        task = self._board.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def _require_column(self, column_id: str) -> Column:
        column = self._board.columns.get(column_id)
        if column is None:
            raise NotFoundError(f"Column {column_id} not found")
        return column

    @staticmethod
    def _column_fields(data: Mapping[str, Any]) -> dict[str, Any]:
        unknown = sorted(key for key in data if key not in COLUMN_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                [f"Field cannot be set on a column: {key}" for key in unknown],
                subject="column",
            )
        return dict(data)

    # -------------------- queries --------------------
    def get_task(self, task_id: str) -> Task | None:
        return self._board.tasks.get(task_id)

    def get_column(self, column_id: str) -> Column | None:
        return self._board.columns.get(column_id)

    def get_tasks_for_column(self, column_id: str) -> list[Task]:
        column = self._board.columns.get(column_id)
        if column is None:
            return []
        tasks = self._board.tasks
        return [tasks[task_id] for task_id in column.task_ids if task_id in tasks]

    def ordered_columns(self) -> list[Column]:
        return [self._board.columns[column_id] for column_id in self._board.column_order]

    def find_task_column(self, task_id: str) -> str | None:
        for column_id, column in self._board.columns.items():
            if task_id in column.task_ids:
                return column_id
        return None

    def find_task(self, selector: str) -> Task:
        """Resolve a task by id, unique id prefix or unique title."""
        return self._find(selector, self._board.tasks, "task")

    def find_column(self, selector: str) -> Column:
        """Resolve a column by id, unique id prefix or unique title."""
        return self._find(selector, self._board.columns, "column")

    @staticmethod
    def _find(selector: str, items: Mapping[str, Any], kind: str) -> Any:
        selector = selector.strip()
        if selector in items:
            return items[selector]
        matches = [item for item_id, item in items.items() if item_id.startswith(selector)]
        if not matches:
            lowered = selector.lower()
            matches = [item for item in items.values() if item.title.lower() == lowered]
        if not matches:
            raise NotFoundError(f"{kind.capitalize()} not found: {selector}")
        if len(matches) > 1:
            names = ", ".join(item.id for item in matches)
            raise ValidationError(f"Ambiguous {kind} selector '{selector}': {names}")
        return matches[0]

    def get_stats(self, today: dt.date | None = None) -> BoardStats:
        by_priority = {priority: 0 for priority in VALID_PRIORITIES}
        overdue = 0
        due_today = 0
        for task in self._board.tasks.values():
            by_priority[task.priority] = by_priority.get(task.priority, 0) + 1
            if task.is_overdue(today):
                overdue += 1
            elif task.is_due_today(today):
                due_today += 1
        return BoardStats(
            total_tasks=len(self._board.tasks),
            total_columns=len(self._board.columns),
            tasks_by_priority=by_priority,
            overdue_tasks=overdue,
            due_today_tasks=due_today,
            last_modified=self._board.last_modified,
        )

    # -------------------- task operations --------------------
    def add_task(self, column_id: str, data: Mapping[str, Any]) -> str:
        board = self._board
        now = self._clock()
        task_id = self._new_id("task", board.tasks)
        task = Task.new(task_id, data, now=now)
        result = task.validate()
        if not result.is_valid:
            raise ValidationError(result.errors, subject="task")

        column = self._require_column(column_id)
        column = column.update({"task_ids": (*column.task_ids, task_id)}, now=now)
        self._commit(
            replace(
                board,
                tasks={**board.tasks, task_id: task},
                columns={**board.columns, column_id: column},
            ),
            now,
        )
        return task_id

    def update_task(self, task_id: str, patch: Mapping[str, Any]) -> Board:
        board = self._board
        now = self._clock()
        task = self._require_task(task_id).update(patch, now=now)
        return self._commit(replace(board, tasks={**board.tasks, task_id: task}), now)

    def delete_task(self, task_id: str) -> Board:
        board = self._board
        owners = [column for column in board.columns.values() if task_id in column.task_ids]
        if len(owners) != 1 or task_id not in board.tasks:
            raise NotFoundError(f"Task {task_id} not found in any column")

        now = self._clock()
        owner = owners[0]
        column = owner.update(
            {"task_ids": tuple(tid for tid in owner.task_ids if tid != task_id)},
            now=now,
        )
        tasks = dict(board.tasks)
        del tasks[task_id]
        return self._commit(
            replace(board, tasks=tasks, columns={**board.columns, owner.id: column}),
            now,
        )

    def move_task(self, task_id: str, target_column_id: str) -> Board:
        board = self._board
        source_id = self.find_task_column(task_id)
        if source_id is None:
            raise NotFoundError(f"Task {task_id} not found")
        if source_id == target_column_id:
            return board
        target = self._require_column(target_column_id)

        now = self._clock()
        source = board.columns[source_id]
        source = source.update(
            {"task_ids": tuple(tid for tid in source.task_ids if tid != task_id)},
            now=now,
        )
        target = target.update({"task_ids": (*target.task_ids, task_id)}, now=now)
        return self._commit(
            replace(
                board,
                columns={**board.columns, source_id: source, target_column_id: target},
            ),
            now,
        )

    def move_task_within_column(self, column_id: str, task_id: str, new_index: int) -> Board:
        board = self._board
        column = self._require_column(column_id)
        if task_id not in column.task_ids:
            raise NotFoundError(f"Task {task_id} not found in column {column_id}")

        remaining = [tid for tid in column.task_ids if tid != task_id]
        index = max(0, min(int(new_index), len(remaining)))
        remaining.insert(index, task_id)

        now = self._clock()
        column = column.update({"task_ids": tuple(remaining)}, now=now)
        return self._commit(replace(board, columns={**board.columns, column_id: column}), now)

    # -------------------- column operations --------------------
    def add_column(self, data: Mapping[str, Any]) -> str:
        board = self._board
        now = self._clock()
        column_id = self._new_id("column", board.columns)
        column = Column.new(
            column_id,
            self._column_fields(data),
            order=len(board.column_order),
            now=now,
        )
        result = column.validate()
        if not result.is_valid:
            raise ValidationError(result.errors, subject="column")

        self._commit(
            replace(
                board,
                columns={**board.columns, column_id: column},
                column_order=(*board.column_order, column_id),
            ),
            now,
        )
        return column_id

    def update_column(self, column_id: str, patch: Mapping[str, Any]) -> Board:
        board = self._board
        column = self._require_column(column_id)
        now = self._clock()
        column = column.update(self._column_fields(patch), now=now)
        return self._commit(replace(board, columns={**board.columns, column_id: column}), now)

    def delete_column(self, column_id: str) -> Board:
        board = self._board
        column = self._require_column(column_id)
        doomed = set(column.task_ids)
        tasks = {task_id: task for task_id, task in board.tasks.items() if task_id not in doomed}
        columns = {cid: col for cid, col in board.columns.items() if cid != column_id}
        order = tuple(cid for cid in board.column_order if cid != column_id)
        return self._commit(
            replace(board, tasks=tasks, columns=columns, column_order=order),
            self._clock(),
        )

    def reorder_columns(self, new_order: Iterable[str]) -> Board:
        board = self._board
        proposed = tuple(new_order)
        current = board.column_order
        if (
            len(proposed) != len(current)
            or len(set(proposed)) != len(proposed)
            or set(proposed) != set(current)
        ):
            raise ValidationError("Column order must be a permutation of the existing columns")
        return self._commit(replace(board, column_order=proposed), self._clock())

    # -------------------- whole-board operations --------------------
    def clear(self) -> Board:
        now = self._clock()
        return self._commit(Board.empty(now=now), now)

    def import_snapshot(self, data: Mapping[str, Any] | Board) -> Board:
        if isinstance(data, Board):
            data = data.to_dict()
        board = Board.from_dict(data)
        return self._commit(board, self._clock())
