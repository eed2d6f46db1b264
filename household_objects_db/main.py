from __future__ import annotations

import json
import os
import socket
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, List, Optional

import typer
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from household_objects_db.accessors import ObjectsDatabase
from household_objects_db.config import get_settings
from household_objects_db.domain.entities import TaskStatus
from household_objects_db.errors import ClaimError, ObjectsDatabaseError
from household_objects_db.infrastructure.db_factory import get_sync_connection, get_sync_pool
from household_objects_db.reporter import print_entities, print_tasks
from household_objects_db.utils.logging import configure_logging

app = typer.Typer(help="Household objects database CLI.")


def _default_worker_id() -> str:
    return (get_settings().worker_id or "").strip() or f"{socket.gethostname()}-{os.getpid()}"


def _database() -> ObjectsDatabase:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return ObjectsDatabase(get_sync_pool(), settings=settings)


def _non_blank_worker_id(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise typer.BadParameter("worker id must not be blank")
    return value


@contextmanager
def _reporting_errors() -> Generator[None, None, None]:
    try:
        yield
    except ObjectsDatabaseError as exc:
        typer.echo(f"{type(exc).__name__}: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool=({settings.pool_min_size},{settings.pool_max_size}) "
        f"lock_timeout={settings.claim_lock_timeout_ms}ms "
        f"statement_timeout={settings.db_statement_timeout_ms}ms "
        f"worker={_default_worker_id()}"
    )


@app.command("init-db")
def init_db(
    schema: Path = typer.Option(
        Path("db/init.sql"),
        "--schema",
        help="SQL file creating the schema.",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """
    Create the tables (idempotent).
    """
    configure_logging(level=get_settings().log_level)
    with get_sync_connection() as conn:
        conn.execute(schema.read_text(encoding="utf-8"))
    typer.echo(f"Schema applied from {schema}")


@app.command()
def claim(
    worker_id: Optional[str] = typer.Option(
        None,
        "--worker-id",
        "-w",
        help="Claimant id (default: WORKER_ID or host-pid).",
        callback=_non_blank_worker_id,
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for locks/connections before giving up."
    ),
    retries: int = typer.Option(
        0, "--retries", help="Retry a failed claim this many times (claims are safe to retry)."
    ),
) -> None:
    """
    Claim the next pending task and print it as JSON.
    """
    db = _database()
    worker = worker_id or _default_worker_id()

    with _reporting_errors():
        for attempt in Retrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(ClaimError),
            reraise=True,
        ):
            with attempt:
                task = db.acquire_next_task(worker, timeout=timeout)

    if task is None:
        typer.echo("No pending task.")
        return
    typer.echo(json.dumps(task.values(), indent=2, default=str))


@app.command()
def complete(
    task_id: int = typer.Argument(..., help="Task to mark COMPLETE."),
    worker_id: Optional[str] = typer.Option(
        None, "--worker-id", "-w", callback=_non_blank_worker_id
    ),
    result_path: Optional[str] = typer.Option(None, "--result-path"),
) -> None:
    """
    Report a claimed task as finished.
    """
    db = _database()
    with _reporting_errors():
        changed = db.tasks.complete_task(task_id, worker_id or _default_worker_id(), result_path)
    if not changed:
        typer.echo(f"Task {task_id} is not RUNNING for this worker.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Task {task_id} COMPLETE")


@app.command()
def fail(
    task_id: int = typer.Argument(..., help="Task to mark ERROR."),
    worker_id: Optional[str] = typer.Option(
        None, "--worker-id", "-w", callback=_non_blank_worker_id
    ),
) -> None:
    """
    Report a claimed task as failed.
    """
    db = _database()
    with _reporting_errors():
        changed = db.tasks.fail_task(task_id, worker_id or _default_worker_id())
    if not changed:
        typer.echo(f"Task {task_id} is not RUNNING for this worker.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Task {task_id} ERROR")


@app.command()
def requeue(task_id: int = typer.Argument(..., help="RUNNING or ERROR task to put back.")) -> None:
    """
    Put a task back to PENDING (recovery after a worker died).
    """
    db = _database()
    with _reporting_errors():
        changed = db.tasks.requeue_task(task_id)
    if not changed:
        typer.echo(f"Task {task_id} is not RUNNING/ERROR.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Task {task_id} PENDING")


@app.command()
def tasks(
    status: Optional[TaskStatus] = typer.Option(None, "--status", "-s", case_sensitive=False),
) -> None:
    """
    List tasks, optionally filtered by status.
    """
    db = _database()
    with _reporting_errors():
        rows = db.list_tasks(status)
    print_tasks(rows)


@app.command()
def models(
    tag: List[str] = typer.Option([], "--tag", help="Only models carrying this tag (repeatable)."),
) -> None:
    """
    List original models.
    """
    db = _database()
    with _reporting_errors():
        rows = db.get_models_list_by_tags(tag) if tag else db.get_original_models_list()
    print_entities(rows, title="Original models")


@app.command("count-models")
def count_models() -> None:
    """
    Print the number of original models.
    """
    db = _database()
    with _reporting_errors():
        typer.echo(str(db.get_num_original_models()))


@app.command()
def shape(scaled_model_id: int = typer.Argument(..., help="Scaled model id.")) -> None:
    """
    Print the mesh of a scaled model as JSON.
    """
    db = _database()
    with _reporting_errors():
        mesh_shape = db.get_scaled_model_shape(scaled_model_id)
    typer.echo(mesh_shape.model_dump_json(indent=2))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
