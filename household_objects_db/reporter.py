from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from household_objects_db.domain.entities import Task, TaskStatus
from household_objects_db.domain.fields import EntityDescriptor

_STATUS_STYLES = {
    TaskStatus.PENDING.value: "yellow",
    TaskStatus.RUNNING.value: "cyan",
    TaskStatus.COMPLETE.value: "green",
    TaskStatus.ERROR.value: "red",
}


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, (list, tuple)):
        shown = ", ".join(str(v) for v in value[:6])
        return escape(f"[{shown}, …]" if len(value) > 6 else f"[{shown}]")
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return escape(str(value))


def print_entities(
    rows: Sequence[EntityDescriptor],
    title: str,
    console: Optional[Console] = None,
) -> None:
    """
    Render descriptors as a rich table, one column per readable binding.
    """
    console = console or Console()

    if not rows:
        console.print(f"[yellow]No {title.lower()} to display.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, caption=f"{len(rows)} row(s)")
    attrs = rows[0].readable_attrs()
    for i, attr in enumerate(attrs):
        table.add_column(attr, style="cyan" if i == 0 else None, no_wrap=i == 0)

    for row in rows:
        table.add_row(*(_format_value(getattr(row, attr)) for attr in attrs))

    console.print(table)


def print_tasks(tasks: Sequence[Task], console: Optional[Console] = None) -> None:
    """
    Render tasks with their claim state, colouring the status column.
    """
    console = console or Console()

    if not tasks:
        console.print("[yellow]No tasks to display.[/yellow]")
        return

    table = Table(title="Tasks", box=box.ROUNDED, caption="Ordered by task id")
    table.add_column("Task", justify="right", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Claimed by", style="magenta")
    table.add_column("Claimed at")
    table.add_column("Scaled model", justify="right")
    table.add_column("Hand")

    for task in sorted(tasks, key=lambda t: t.id):
        style = _STATUS_STYLES.get(task.status, "white")
        table.add_row(
            str(task.id),
            _format_value(task.task_type),
            f"[{style}]{task.status}[/{style}]",
            _format_value(task.claimed_by),
            _format_value(task.claimed_at),
            _format_value(task.scaled_model_id),
            _format_value(task.hand_name),
        )

    console.print(table)
