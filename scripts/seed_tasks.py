"""
Schema setup and task seeding script for the household objects database.

Implements deterministic pseudo-random task generation, CSV emission, and
Postgres COPY loading into the shared task table.
"""

from __future__ import annotations

import csv
import random
import sys
import tempfile
import time
from pathlib import Path

import psycopg
import typer

from household_objects_db.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Create the schema and seed PENDING tasks (CSV + COPY).")

TASK_COLUMNS = ["task_type", "status", "scaled_model_id", "hand_name"]
HAND_NAMES = ["WILLOW_GRIPPER_2010", "PR2_GRIPPER", "BARRETT_HAND"]
DEFAULT_SCHEMA = Path(__file__).resolve().parent.parent / "db" / "init.sql"


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _generate_tasks_csv(
    csv_path: Path, rows: int, batch_size: int, seed: int, max_model_id: int = 1000
) -> None:
    rng = random.Random(seed)

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(TASK_COLUMNS)

        buffer: list[list[str]] = []
        for _ in range(rows):
            buffer.append(
                [
                    rng.choice(["grasp_planning", "grasp_evaluation", "perturbation"]),
                    "PENDING",
                    str(rng.randint(1, max_model_id)),
                    rng.choice(HAND_NAMES),
                ]
            )
            if len(buffer) >= batch_size:
                writer.writerows(buffer)
                buffer.clear()
        if buffer:
            writer.writerows(buffer)


def _apply_schema(dsn: str, schema_path: Path) -> None:
    with psycopg.connect(dsn) as conn:
        conn.execute(schema_path.read_text(encoding="utf-8"))


def _copy_into_db(dsn: str, csv_path: Path) -> int:
    """Load the CSV with COPY and return the number of data rows sent."""
    lines = 0
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            with cur.copy(
                """
                COPY public.task (task_type, status, scaled_model_id, hand_name)
                FROM STDIN WITH (FORMAT csv, HEADER TRUE)
                """
            ) as copy:
                with csv_path.open("r", encoding="utf-8") as f:
                    for line in f:
                        copy.write(line)
                        lines += 1
        conn.commit()
    return max(lines - 1, 0)


@app.command()
def main(
    rows: int = typer.Option(
        100,
        "--rows",
        "-r",
        help="Number of PENDING tasks to generate.",
    ),
    batch_size: int = typer.Option(
        1_000,
        "--batch-size",
        "-b",
        help="Batch size for CSV buffering during generation.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Optional CSV output path (if omitted, a temp file will be used).",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
    schema: Path = typer.Option(
        DEFAULT_SCHEMA,
        "--schema",
        help="Schema file applied before loading.",
    ),
    no_load: bool = typer.Option(
        False,
        "--no-load",
        help="Only generate CSV; skip schema and loading into Postgres.",
    ),
) -> None:
    """
    Generate PENDING tasks and optionally load them into Postgres using COPY.
    """
    start = time.perf_counter()
    if output:
        csv_path = output
        csv_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        tmpdir = Path(tempfile.mkdtemp(prefix="household_tasks_"))
        csv_path = tmpdir / "tasks.csv"

    typer.echo(f"Generating {rows:,} tasks -> {csv_path} (batch={batch_size}, seed={seed})")
    _generate_tasks_csv(csv_path, rows=rows, batch_size=batch_size, seed=seed)

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    conn_dsn = _build_dsn(dsn)
    typer.echo(f"Applying schema {schema}")
    _apply_schema(conn_dsn, schema)
    typer.echo("Loading CSV into Postgres via COPY...")
    loaded = _copy_into_db(conn_dsn, csv_path)

    total_duration = time.perf_counter() - start
    typer.echo(f"Loaded {loaded:,} tasks in {total_duration:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
