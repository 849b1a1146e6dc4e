"""Renderers for board, task and stats output."""

from __future__ import annotations

import json
from typing import Iterable, Sequence

from . import dates
from .board import Board, BoardStats
from .models import Column, Task

ColumnView = tuple[Column, Sequence[Task]]

PRIORITY_LABELS = {"low": "Low", "medium": "Medium", "high": "High"}
PRIORITY_MARKERS = {"low": "L", "medium": "M", "high": "H"}


def _priority_style(priority: str) -> str:
    return {
        "high": "bold red",
        "medium": "yellow",
        "low": "green",
    }.get(priority, "white")


def _column_style(color: str) -> str:
    return {
        "bg-gray-100": "white",
        "bg-blue-50": "blue",
        "bg-green-50": "green",
        "bg-yellow-50": "yellow",
        "bg-purple-50": "magenta",
        "bg-pink-50": "bright_magenta",
        "bg-indigo-50": "bright_blue",
    }.get(color, "white")


def _short_id(item_id: str) -> str:
    return item_id.rsplit("-", 1)[-1]


def _due_label(task: Task) -> str:
    if not task.due_date:
        return ""
    label = f"due {dates.format_date_short(task.due_date)}"
    if task.is_overdue():
        return f"{label} (overdue)"
    if task.is_due_today():
        return f"{label} (today)"
    return label


def _column_header(column: Column, show_count: bool) -> str:
    title = column.title.upper()
    if show_count:
        return f"{title} ({column.task_count})"
    return title


def _task_line(task: Task, *, compact: bool) -> str:
    marker = PRIORITY_MARKERS.get(task.priority, "?")
    line = f"[{marker}] {task.title}"
    if compact:
        return line
    extras = [f"#{_short_id(task.id)}"]
    if task.assignee:
        extras.append(f"@{task.assignee}")
    due = _due_label(task)
    if due:
        extras.append(due)
    return f"{line}  {'  '.join(extras)}"


def render_board_plain(
    views: Iterable[ColumnView],
    *,
    show_task_count: bool = True,
    compact: bool = False,
) -> str:
    views = list(views)
    if not views:
        return "No columns yet. Start by creating your first column to organize your tasks."

    lines: list[str] = []
    for column, tasks in views:
        header = _column_header(column, show_task_count)
        lines.append(f"{header}  #{_short_id(column.id)}")
        lines.append("-" * max(len(header), 8))
        if not tasks:
            lines.append("  (empty)")
        for task in tasks:
            lines.append(f"  {_task_line(task, compact=compact)}")
        lines.append("")
    return "\n".join(lines).rstrip("\n")


def render_board_rich(
    views: Iterable[ColumnView],
    *,
    show_task_count: bool = True,
    compact: bool = False,
):
    from rich import box
    from rich.columns import Columns
    from rich.panel import Panel
    from rich.text import Text

    views = list(views)
    if not views:
        return Text("No columns yet. Start by creating your first column.", style="dim")

    panels = []
    for column, tasks in views:
        style = _column_style(column.color)
        body = Text()
        if not tasks:
            body.append("(empty)", style="dim")
        for index, task in enumerate(tasks):
            if index:
                body.append("\n")
            body.append(f"{PRIORITY_MARKERS.get(task.priority, '?')} ", style=_priority_style(task.priority))
            body.append(task.title, style="bold")
            if compact:
                continue
            body.append(f"  #{_short_id(task.id)}", style="dim")
            if task.assignee:
                body.append(f"  @{task.assignee}", style="cyan")
            due = _due_label(task)
            if due:
                due_style = "bold red" if task.is_overdue() else "yellow" if task.is_due_today() else "dim"
                body.append(f"  {due}", style=due_style)
        panels.append(
            Panel(
                body,
                title=Text(_column_header(column, show_task_count), style=f"bold {style}"),
                subtitle=Text(f"#{_short_id(column.id)}", style="dim"),
                box=box.ROUNDED,
                border_style=style,
                width=36,
            )
        )
    return Columns(panels)


def render_board_json(board: Board) -> str:
    return json.dumps(board.to_dict(), indent=2)


def render_task_detail_plain(task: Task, column: Column | None) -> str:
    lines = [
        f"title: {task.title}",
        f"id: {task.id}",
        f"column: {column.title if column else '-'}",
        f"priority: {PRIORITY_LABELS.get(task.priority, task.priority)}",
        f"assignee: {task.assignee or '-'}",
        f"due: {dates.format_date_full(task.due_date) or '-'}",
        f"created: {task.created_at}",
        f"updated: {task.updated_at}",
    ]
    if task.description:
        lines.extend(["", task.description])
    return "\n".join(lines)


def render_task_detail_json(task: Task, column: Column | None) -> str:
    payload = task.to_dict()
    payload["columnId"] = column.id if column else None
    payload["overdue"] = task.is_overdue()
    payload["dueToday"] = task.is_due_today()
    return json.dumps(payload, indent=2)


def render_stats_plain(stats: BoardStats) -> str:
    lines = [
        f"columns: {stats.total_columns}",
        f"tasks: {stats.total_tasks}",
    ]
    for priority, count in stats.tasks_by_priority.items():
        lines.append(f"  {PRIORITY_LABELS.get(priority, priority).lower()}: {count}")
    lines.append(f"overdue: {stats.overdue_tasks}")
    lines.append(f"due today: {stats.due_today_tasks}")
    lines.append(f"last modified: {stats.last_modified}")
    return "\n".join(lines)


def render_stats_rich(stats: BoardStats):
    from rich import box
    from rich.table import Table
    from rich.text import Text

    table = Table(box=box.SIMPLE_HEAVY, show_header=False, pad_edge=False)
    table.add_column("metric", style="bold")
    table.add_column("value")
    table.add_row("Columns", str(stats.total_columns))
    table.add_row("Tasks", str(stats.total_tasks))
    for priority, count in stats.tasks_by_priority.items():
        table.add_row(
            Text(f"  {PRIORITY_LABELS.get(priority, priority)}", style=_priority_style(priority)),
            str(count),
        )
    overdue_style = "bold red" if stats.overdue_tasks else ""
    table.add_row("Overdue", Text(str(stats.overdue_tasks), style=overdue_style))
    table.add_row("Due today", str(stats.due_today_tasks))
    table.add_row("Last modified", Text(stats.last_modified, style="dim"))
    return table


def render_stats_json(stats: BoardStats) -> str:
    return json.dumps(stats.to_dict(), indent=2)
