"""CLI entrypoint for taskboard."""

from __future__ import annotations

import json
import logging
from pathlib import Path
import sys
from typing import Annotated, Any

import click
import typer

from . import codec, render, storage
from .controller import BoardController
from .models import BoardError, COLUMN_COLORS, ValidationError, default_columns

BoardRootOption = Annotated[
    Path | None,
    typer.Option("--board-root", help="Explicit .taskboard directory"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Emit JSON")]
YesOption = Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")]

CONFIRM_DELETE_TASK = "Are you sure you want to delete this task?"
CONFIRM_DELETE_COLUMN = "Are you sure you want to delete this column?"
CONFIRM_DELETE_COLUMN_WITH_TASKS = (
    "This column contains tasks. Deleting it will also delete all tasks in this column. "
    "Are you sure?"
)
CONFIRM_CLEAR = "Are you sure you want to clear all board data? This cannot be undone."

app = typer.Typer(help="Terminal task board with columns, priorities and due dates")


def _can_render_rich_output() -> bool:
    return sys.stdout.isatty()


def _print_rich(renderable) -> None:
    from rich.console import Console

    Console().print(renderable)


def _echo_root_notice(root: Path, multiple_found: bool) -> None:
    typer.echo(f"Using board root: {root}", err=True)
    if multiple_found:
        typer.echo("Warning: multiple .taskboard roots found; using nearest ancestor.", err=True)


def _warn_config(message: str) -> None:
    typer.echo(f"Warning: {message}", err=True)


def _resolve_existing_root(board_root: Path | None) -> Path:
    if board_root is not None:
        root = board_root.resolve()
        if not root.exists():
            raise typer.BadParameter(f"board root not found: {root}")
        return root

    root, multiple = storage.choose_board_root(Path.cwd())
    if root is None:
        raise ValidationError(
            "No .taskboard root found from current directory upward. Run 'taskboard init' first."
        )
    _echo_root_notice(root, multiple)
    return root


def _resolve_init_root(board_root: Path | None) -> Path:
    if board_root is not None:
        return board_root.resolve()

    root, multiple = storage.choose_board_root(Path.cwd())
    if root is not None:
        _echo_root_notice(root, multiple)
        return root

    default_root = storage.default_init_root(Path.cwd())
    typer.echo(f"No .taskboard found. Initializing at: {default_root}", err=True)
    return default_root


def _controller(root: Path) -> BoardController:
    # One-shot commands write explicitly; the debounce timer is for long-lived sessions.
    return BoardController(
        storage.FileKeyValueStore(root),
        auto_save=False,
        auto_save_delay=storage.resolve_auto_save_delay(root, warn=_warn_config),
    )


def _commit(ctrl: BoardController) -> None:
    if not ctrl.save():
        raise BoardError("Unable to save the board")


def _run_and_handle(fn) -> None:
    try:
        fn()
    except BoardError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _confirm(message: str, *, yes: bool, root: Path) -> bool:
    if yes or not storage.resolve_confirm_deletes(root, warn=_warn_config):
        return True
    try:
        return bool(typer.confirm(message, default=False))
    except (click.Abort, EOFError, KeyboardInterrupt):
        return False


def _exit_canceled(code: int) -> None:
    typer.echo("Canceled.")
    raise typer.Exit(code=code)


def _provided(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _board_views(ctrl: BoardController) -> list[render.ColumnView]:
    return [
        (column, ctrl.store.get_tasks_for_column(column.id))
        for column in ctrl.store.ordered_columns()
    ]


@app.callback()
def root_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Manage a local task board."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command("init")
def init_cmd(
    empty: Annotated[bool, typer.Option("--empty", help="Do not create the starter columns")] = False,
    board_root: BoardRootOption = None,
) -> None:
    """Initialize a .taskboard directory with the starter columns."""

    def _inner() -> None:
        root = _resolve_init_root(board_root)
        root.mkdir(parents=True, exist_ok=True)
        if storage.write_default_config_if_missing(root):
            typer.echo(f"Wrote config: {storage.config_path(root)}")
        ctrl = _controller(root)
        try:
            if ctrl.persistence.load() is not None:
                typer.echo(f"Board already initialized: {root}")
                return
            if not empty:
                for data in default_columns():
                    ctrl.store.add_column(data)
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo(f"Initialized board: {root}")

    _run_and_handle(_inner)


@app.command("show")
def show_cmd(
    as_json: JsonOption = False,
    compact: Annotated[bool | None, typer.Option("--compact/--full", help="Titles only")] = None,
    board_root: BoardRootOption = None,
) -> None:
    """Show all columns and their tasks."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            if as_json:
                typer.echo(render.render_board_json(ctrl.board))
                return
            prefs = ctrl.preferences
            options = {
                "show_task_count": prefs.show_task_count,
                "compact": prefs.compact_mode if compact is None else compact,
            }
            if _can_render_rich_output():
                _print_rich(render.render_board_rich(_board_views(ctrl), **options))
            else:
                typer.echo(render.render_board_plain(_board_views(ctrl), **options))
        finally:
            ctrl.close()

    _run_and_handle(_inner)


@app.command("view")
def view_cmd(
    task: Annotated[str, typer.Argument(help="Task id, id prefix or title")],
    as_json: JsonOption = False,
    board_root: BoardRootOption = None,
) -> None:
    """Show one task in detail."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            found = ctrl.store.find_task(task)
            column_id = ctrl.store.find_task_column(found.id)
            column = ctrl.store.get_column(column_id) if column_id else None
            if as_json:
                typer.echo(render.render_task_detail_json(found, column))
            else:
                typer.echo(render.render_task_detail_plain(found, column))
        finally:
            ctrl.close()

    _run_and_handle(_inner)


@app.command("stats")
def stats_cmd(
    as_json: JsonOption = False,
    board_root: BoardRootOption = None,
) -> None:
    """Show task counts by priority and due state."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            stats = ctrl.store.get_stats()
            if as_json:
                typer.echo(render.render_stats_json(stats))
            elif _can_render_rich_output():
                _print_rich(render.render_stats_rich(stats))
            else:
                typer.echo(render.render_stats_plain(stats))
        finally:
            ctrl.close()

    _run_and_handle(_inner)


@app.command("add-column")
def add_column_cmd(
    title: Annotated[str, typer.Argument(help="Column title")],
    color: Annotated[
        str,
        typer.Option("--color", help=f"One of: {', '.join(COLUMN_COLORS)}"),
    ] = "bg-gray-100",
    board_root: BoardRootOption = None,
) -> None:
    """Add a column at the end of the board."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            column_id = ctrl.store.add_column({"title": title, "color": color})
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo(f"Added column: {title} ({column_id})")

    _run_and_handle(_inner)


@app.command("edit-column")
def edit_column_cmd(
    column: Annotated[str, typer.Argument(help="Column id, id prefix or title")],
    title: Annotated[str | None, typer.Option("--title")] = None,
    color: Annotated[str | None, typer.Option("--color")] = None,
    board_root: BoardRootOption = None,
) -> None:
    """Rename or recolor a column."""

    def _inner() -> None:
        patch = _provided(title=title, color=color)
        if not patch:
            raise ValidationError("Nothing to update; pass --title or --color")
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            found = ctrl.store.find_column(column)
            ctrl.store.update_column(found.id, patch)
            _commit(ctrl)
            updated = ctrl.store.get_column(found.id)
        finally:
            ctrl.close()
        typer.echo(f"Updated column: {updated.title}")

    _run_and_handle(_inner)


@app.command("delete-column")
def delete_column_cmd(
    column: Annotated[str, typer.Argument(help="Column id, id prefix or title")],
    yes: YesOption = False,
    board_root: BoardRootOption = None,
) -> None:
    """Delete a column and every task in it."""

    def _inner() -> None:
        root = _resolve_existing_root(board_root)
        ctrl = _controller(root)
        try:
            found = ctrl.store.find_column(column)
            message = CONFIRM_DELETE_COLUMN_WITH_TASKS if found.task_ids else CONFIRM_DELETE_COLUMN
            if not _confirm(message, yes=yes, root=root):
                _exit_canceled(1)
            ctrl.store.delete_column(found.id)
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo(f"Deleted column: {found.title} ({found.task_count} tasks removed)")

    _run_and_handle(_inner)


@app.command("reorder")
def reorder_cmd(
    columns: Annotated[list[str], typer.Argument(help="Every column, in the new order")],
    board_root: BoardRootOption = None,
) -> None:
    """Set the left-to-right order of all columns."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            order = [ctrl.store.find_column(selector).id for selector in columns]
            ctrl.store.reorder_columns(order)
            _commit(ctrl)
            titles = [column.title for column in ctrl.store.ordered_columns()]
        finally:
            ctrl.close()
        typer.echo(f"Column order: {' | '.join(titles)}")

    _run_and_handle(_inner)


@app.command("add")
def add_cmd(
    column: Annotated[str, typer.Argument(help="Column id, id prefix or title")],
    title: Annotated[str, typer.Argument(help="Task title")],
    description: Annotated[str | None, typer.Option("--description", "-d")] = None,
    priority: Annotated[str | None, typer.Option("--priority", "-p", help="low, medium or high")] = None,
    assignee: Annotated[str | None, typer.Option("--assignee", "-a")] = None,
    due: Annotated[str | None, typer.Option("--due", help="Due date, YYYY-MM-DD")] = None,
    board_root: BoardRootOption = None,
) -> None:
    """Add a task to the end of a column."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            target = ctrl.store.find_column(column)
            data = _provided(
                title=title,
                description=description,
                priority=priority,
                assignee=assignee,
                due_date=due,
            )
            task_id = ctrl.store.add_task(target.id, data)
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo(f"Added: {title} ({task_id}) to {target.title}")

    _run_and_handle(_inner)


@app.command("edit")
def edit_cmd(
    task: Annotated[str, typer.Argument(help="Task id, id prefix or title")],
    title: Annotated[str | None, typer.Option("--title")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d")] = None,
    priority: Annotated[str | None, typer.Option("--priority", "-p")] = None,
    assignee: Annotated[str | None, typer.Option("--assignee", "-a")] = None,
    due: Annotated[str | None, typer.Option("--due", help="YYYY-MM-DD, or '' to clear")] = None,
    board_root: BoardRootOption = None,
) -> None:
    """Update task fields."""

    def _inner() -> None:
        patch = _provided(
            title=title,
            description=description,
            priority=priority,
            assignee=assignee,
            due_date=due,
        )
        if not patch:
            raise ValidationError("Nothing to update")
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            found = ctrl.store.find_task(task)
            ctrl.store.update_task(found.id, patch)
            _commit(ctrl)
            updated = ctrl.store.get_task(found.id)
        finally:
            ctrl.close()
        typer.echo(f"Updated: {updated.title}")

    _run_and_handle(_inner)


@app.command("move")
def move_cmd(
    task: Annotated[str, typer.Argument(help="Task id, id prefix or title")],
    column: Annotated[str, typer.Argument(help="Target column id, id prefix or title")],
    board_root: BoardRootOption = None,
) -> None:
    """Move a task to the end of another column."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            found = ctrl.store.find_task(task)
            target = ctrl.store.find_column(column)
            ctrl.store.move_task(found.id, target.id)
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo(f"Moved: {found.title} -> {target.title}")

    _run_and_handle(_inner)


@app.command("position")
def position_cmd(
    task: Annotated[str, typer.Argument(help="Task id, id prefix or title")],
    index: Annotated[int, typer.Argument(help="New zero-based position within its column")],
    board_root: BoardRootOption = None,
) -> None:
    """Reorder a task inside its current column."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            found = ctrl.store.find_task(task)
            column_id = ctrl.store.find_task_column(found.id)
            if column_id is None:
                raise ValidationError(f"Task {found.id} is not in any column")
            ctrl.store.move_task_within_column(column_id, found.id, index)
            _commit(ctrl)
            position = ctrl.store.get_column(column_id).task_ids.index(found.id)
        finally:
            ctrl.close()
        typer.echo(f"Positioned: {found.title} at {position}")

    _run_and_handle(_inner)


@app.command("delete")
def delete_cmd(
    task: Annotated[str, typer.Argument(help="Task id, id prefix or title")],
    yes: YesOption = False,
    board_root: BoardRootOption = None,
) -> None:
    """Delete a task."""

    def _inner() -> None:
        root = _resolve_existing_root(board_root)
        ctrl = _controller(root)
        try:
            found = ctrl.store.find_task(task)
            if not _confirm(CONFIRM_DELETE_TASK, yes=yes, root=root):
                _exit_canceled(1)
            ctrl.store.delete_task(found.id)
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo(f"Deleted: {found.title}")

    _run_and_handle(_inner)


@app.command("export")
def export_cmd(
    path: Annotated[Path | None, typer.Argument(help="Output file, '-' for stdout")] = None,
    board_root: BoardRootOption = None,
) -> None:
    """Export the board as a versioned JSON file."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            text = ctrl.export_json()
        finally:
            ctrl.close()
        if path is not None and str(path) == "-":
            typer.echo(text)
            return
        target = path or Path.cwd() / codec.default_export_filename()
        try:
            target.write_text(text + "\n", encoding="utf-8")
        except OSError as exc:
            raise BoardError(f"Unable to write {target}: {exc}") from exc
        typer.echo(f"Exported: {target}")

    _run_and_handle(_inner)


@app.command("import")
def import_cmd(
    path: Annotated[Path, typer.Argument(help="File produced by 'taskboard export'")],
    board_root: BoardRootOption = None,
) -> None:
    """Replace the board with the contents of an export file."""

    def _inner() -> None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise BoardError(f"Unable to read {path}: {exc}") from exc
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            result = ctrl.import_json(text)
            if not result.success:
                raise BoardError(f"Failed to import board data: {result.error}")
            _commit(ctrl)
            stats = ctrl.store.get_stats()
        finally:
            ctrl.close()
        typer.echo(f"Imported: {stats.total_columns} columns, {stats.total_tasks} tasks")

    _run_and_handle(_inner)


@app.command("clear")
def clear_cmd(
    yes: YesOption = False,
    board_root: BoardRootOption = None,
) -> None:
    """Remove every column and task."""

    def _inner() -> None:
        root = _resolve_existing_root(board_root)
        if not _confirm(CONFIRM_CLEAR, yes=yes, root=root):
            _exit_canceled(1)
        ctrl = _controller(root)
        try:
            ctrl.clear_board()
            _commit(ctrl)
        finally:
            ctrl.close()
        typer.echo("Cleared board.")

    _run_and_handle(_inner)


@app.command("prefs")
def prefs_cmd(
    show_task_count: Annotated[
        bool | None,
        typer.Option("--show-task-count/--hide-task-count"),
    ] = None,
    compact: Annotated[bool | None, typer.Option("--compact/--no-compact")] = None,
    theme: Annotated[str | None, typer.Option("--theme")] = None,
    as_json: JsonOption = False,
    board_root: BoardRootOption = None,
) -> None:
    """Show or change display preferences."""

    def _inner() -> None:
        ctrl = _controller(_resolve_existing_root(board_root))
        try:
            changes = _provided(show_task_count=show_task_count, compact_mode=compact, theme=theme)
            if changes:
                ctrl.update_preferences(**changes)
            prefs = ctrl.preferences
        finally:
            ctrl.close()
        if as_json:
            typer.echo(json.dumps(prefs.to_dict(), indent=2))
            return
        for key, value in prefs.to_dict().items():
            typer.echo(f"{key}: {value}")

    _run_and_handle(_inner)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
