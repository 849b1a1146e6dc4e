"""Core entity models, constants and errors."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
import datetime as dt
import random
import re
import time
from typing import Any, Iterable, Mapping

from . import dates

VALID_PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"

COLUMN_COLORS = {
    "bg-gray-100": "Gray",
    "bg-blue-50": "Blue",
    "bg-green-50": "Green",
    "bg-yellow-50": "Yellow",
    "bg-purple-50": "Purple",
    "bg-pink-50": "Pink",
    "bg-indigo-50": "Indigo",
}
DEFAULT_COLUMN_COLOR = "bg-gray-100"

HEADER_COLORS = {
    "to do": "border-t-slate-500",
    "in progress": "border-t-blue-500",
    "review": "border-t-yellow-500",
    "done": "border-t-green-500",
    "testing": "border-t-purple-500",
    "blocked": "border-t-red-500",
}
DEFAULT_HEADER_COLOR = "border-t-gray-500"

MAX_TASK_TITLE_LENGTH = 100
MAX_TASK_DESCRIPTION_LENGTH = 500
MAX_ASSIGNEE_LENGTH = 50
MAX_COLUMN_TITLE_LENGTH = 50
MAX_TASKS_PER_COLUMN = 100

ID_RE = re.compile(r"^(task|column)-id-[0-9a-z]+-[0-9a-z]+$")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# Fields no patch may touch; updated_at is stamped by update() itself.
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


class BoardError(Exception):
    """Base error for board operations."""


class ValidationError(BoardError):
    """Raised when field constraints or board invariants are violated."""

    def __init__(self, errors: Iterable[str] | str, *, subject: str = "") -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        message = ", ".join(self.errors)
        if subject:
            message = f"Invalid {subject} data: {message}"
        super().__init__(message)


class NotFoundError(BoardError):
    """Raised when a referenced task or column does not exist."""


class StorageError(BoardError):
    """Raised when the key-value backend fails."""


class ImportFormatError(BoardError):
    """Raised for malformed or structurally incomplete import payloads."""


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> ValidationResult:
        return cls(is_valid=not errors, errors=errors)


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id(prefix: str) -> str:
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"{prefix}-id-{stamp}-{suffix}"


def generate_task_id() -> str:
    return generate_id("task")


def generate_column_id() -> str:
    return generate_id("column")


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and bool(ID_RE.fullmatch(value))


def _is_text(value: Any) -> bool:
    return isinstance(value, str)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _normalize_patch(entity: Any, patch: Mapping[str, Any], subject: str) -> dict[str, Any]:
    names = {f.name for f in fields(entity)}
    aliases = {_camel(name): name for name in names}
    changes: dict[str, Any] = {}
    errors: list[str] = []
    for key, value in patch.items():
        name = aliases.get(key, key)
        if name not in names:
            errors.append(f"Unknown {subject} field: {key}")
        elif name in IMMUTABLE_FIELDS:
            errors.append(f"Field cannot be changed: {key}")
        else:
            changes[name] = value
    if errors:
        raise ValidationError(errors, subject=subject)
    return changes


def _from_mapping(cls: type, data: Any, subject: str) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError(f"{subject.capitalize()} must be an object")
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        key = _camel(f.name)
        if key in data:
            kwargs[f.name] = data[key]
        elif f.name in data:
            kwargs[f.name] = data[f.name]
    return kwargs


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    description: str = ""
    priority: str = DEFAULT_PRIORITY
    assignee: str = ""
    due_date: str = ""
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def new(cls, task_id: str, data: Mapping[str, Any], *, now: str | None = None) -> Task:
        """Build a task from form-like data, filling defaults for blank fields."""
        values = _normalize_patch(cls, data, "task")
        stamp = now or dates.utc_now()
        return cls(
            id=task_id,
            title=values.get("title") or "",
            description=values.get("description") or "",
            priority=values.get("priority") or DEFAULT_PRIORITY,
            assignee=values.get("assignee") or "",
            due_date=values.get("due_date") or "",
            created_at=stamp,
            updated_at=stamp,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Task:
        kwargs = _from_mapping(cls, data, "task")
        kwargs.setdefault("id", "")
        kwargs.setdefault("title", "")
        if kwargs.get("due_date") is None:
            kwargs["due_date"] = ""
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {_camel(key): value for key, value in asdict(self).items()}

    def validate(self) -> ValidationResult:
        errors: list[str] = []
        if not _is_text(self.id) or not self.id:
            errors.append("ID is required")

        if not _is_text(self.title) or not self.title.strip():
            errors.append("Title is required")
        elif len(self.title) > MAX_TASK_TITLE_LENGTH:
            errors.append(f"Title must be at most {MAX_TASK_TITLE_LENGTH} characters")

        if not _is_text(self.description):
            errors.append("Description must be text")
        elif len(self.description) > MAX_TASK_DESCRIPTION_LENGTH:
            errors.append(f"Description must be at most {MAX_TASK_DESCRIPTION_LENGTH} characters")

        if self.priority not in VALID_PRIORITIES:
            errors.append("Invalid priority level")

        if not _is_text(self.assignee):
            errors.append("Assignee must be text")
        elif len(self.assignee) > MAX_ASSIGNEE_LENGTH:
            errors.append(f"Assignee name must be at most {MAX_ASSIGNEE_LENGTH} characters")

        if not _is_text(self.due_date) or not dates.is_valid_due_date(self.due_date):
            errors.append("Invalid due date format")

        return ValidationResult.from_errors(errors)

    def update(self, patch: Mapping[str, Any], *, now: str | None = None) -> Task:
        changes = _normalize_patch(self, patch, "task")
        if changes.get("due_date") is None and "due_date" in changes:
            changes["due_date"] = ""
        updated = replace(self, **changes, updated_at=now or dates.utc_now())
        result = updated.validate()
        if not result.is_valid:
            raise ValidationError(result.errors, subject="task")
        return updated

    def is_overdue(self, today: dt.date | None = None) -> bool:
        return dates.is_overdue(self.due_date, today)

    def is_due_today(self, today: dt.date | None = None) -> bool:
        return dates.is_due_today(self.due_date, today)


@dataclass(frozen=True, slots=True)
class Column:
    id: str
    title: str
    color: str = DEFAULT_COLUMN_COLOR
    task_ids: tuple[str, ...] = ()
    created_at: str = ""
    updated_at: str = ""
    order: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.task_ids, list):
            object.__setattr__(self, "task_ids", tuple(self.task_ids))

    @classmethod
    def new(
        cls,
        column_id: str,
        data: Mapping[str, Any],
        *,
        order: int = 0,
        now: str | None = None,
    ) -> Column:
        values = _normalize_patch(cls, data, "column")
        stamp = now or dates.utc_now()
        return cls(
            id=column_id,
            title=values.get("title") or "",
            color=values.get("color") or DEFAULT_COLUMN_COLOR,
            task_ids=(),
            created_at=stamp,
            updated_at=stamp,
            order=order,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Column:
        kwargs = _from_mapping(cls, data, "column")
        kwargs.setdefault("id", "")
        kwargs.setdefault("title", "")
        task_ids = kwargs.get("task_ids", ())
        if not isinstance(task_ids, (list, tuple)):
            raise ValidationError("TaskIds must be an array", subject="column")
        kwargs["task_ids"] = tuple(task_ids)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = {_camel(key): value for key, value in asdict(self).items()}
        data["taskIds"] = list(self.task_ids)
        return data

    def validate(self) -> ValidationResult:
        errors: list[str] = []
        if not _is_text(self.id) or not self.id:
            errors.append("ID is required")

        if not _is_text(self.title) or not self.title.strip():
            errors.append("Title is required")
        elif len(self.title) > MAX_COLUMN_TITLE_LENGTH:
            errors.append(f"Title must be at most {MAX_COLUMN_TITLE_LENGTH} characters")

        if not _is_text(self.color) or self.color not in COLUMN_COLORS:
            errors.append("Invalid column color")

        if not all(_is_text(task_id) and task_id for task_id in self.task_ids):
            errors.append("Task IDs must be non-empty strings")
        elif len(set(self.task_ids)) != len(self.task_ids):
            errors.append("Task IDs must be unique")
        if len(self.task_ids) > MAX_TASKS_PER_COLUMN:
            errors.append(f"Column cannot contain more than {MAX_TASKS_PER_COLUMN} tasks")

        if not isinstance(self.order, int) or isinstance(self.order, bool):
            errors.append("Order must be an integer")

        return ValidationResult.from_errors(errors)

    def update(self, patch: Mapping[str, Any], *, now: str | None = None) -> Column:
        changes = _normalize_patch(self, patch, "column")
        if "task_ids" in changes:
            changes["task_ids"] = tuple(changes["task_ids"])
        updated = replace(self, **changes, updated_at=now or dates.utc_now())
        result = updated.validate()
        if not result.is_valid:
            raise ValidationError(result.errors, subject="column")
        return updated

    @property
    def task_count(self) -> int:
        return len(self.task_ids)

    @property
    def is_empty(self) -> bool:
        return not self.task_ids

    @property
    def header_color(self) -> str:
        title = self.title.lower() if _is_text(self.title) else ""
        return HEADER_COLORS.get(title, DEFAULT_HEADER_COLOR)


DEFAULT_COLUMNS = (
    {"title": "To Do", "color": "bg-gray-100"},
    {"title": "In Progress", "color": "bg-blue-50"},
    {"title": "Review", "color": "bg-yellow-50"},
    {"title": "Done", "color": "bg-green-50"},
)


def default_columns() -> list[dict[str, str]]:
    """Form data for the starter column set."""
    return [dict(item) for item in DEFAULT_COLUMNS]
