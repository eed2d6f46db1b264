"""
Task claim coordinator.

Many independent workers pull experiments from one shared ``task`` table.
Each claim is a single conditional UPDATE:

    UPDATE task SET status = 'RUNNING', claimed_by = <worker>, claimed_at = now()
    WHERE task_id = (SELECT task_id FROM task WHERE status = 'PENDING'
                     ORDER BY task_id LIMIT 1 FOR UPDATE SKIP LOCKED)
      AND status = 'PENDING'
    RETURNING <task columns>

The sub-select row-locks its candidate, and SKIP LOCKED hides rows other
claimants have locked but not committed, so concurrent callers walk down the
queue instead of converging on one row. The outer ``status`` guard keeps the
transition conditional even if the row changed between snapshot and lock.
Selecting and transitioning happen in one statement inside one transaction:
either the row is RUNNING with a claimant after commit, or it is untouched.

The coordinator holds no in-process lock and no state between calls; all
serialization is PostgreSQL's.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import psycopg
from psycopg import sql
from psycopg_pool import AsyncConnectionPool, ConnectionPool

from household_objects_db.config import Settings, get_settings
from household_objects_db.domain.entities import Task, TaskStatus
from household_objects_db.domain.fields import Projection
from household_objects_db.errors import ClaimError
from household_objects_db.infrastructure.db_factory import timeout_statements
from household_objects_db.query.builder import QueryBuilder, column_list
from household_objects_db.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_TASK_TYPE = "grasp_planning"

_STATUS = Task.status.name
_CLAIMED_BY = Task.claimed_by.name
_CLAIMED_AT = Task.claimed_at.name
_RESULT_PATH = Task.result_path.name


def claim_statement(projection: Projection) -> sql.Composed:
    """Compose the single-statement claim for a task projection."""
    return sql.SQL(
        "UPDATE {table} SET {status} = %(running)s, {claimed_by} = %(worker_id)s, "
        "{claimed_at} = now() "
        "WHERE {key} = ("
        "SELECT {key} FROM {table} WHERE {status} = %(pending)s "
        "ORDER BY {key} LIMIT 1 FOR UPDATE SKIP LOCKED"
        ") AND {status} = %(pending)s "
        "RETURNING {returning}"
    ).format(
        table=sql.Identifier(projection.table),
        key=sql.Identifier(projection.key),
        status=sql.Identifier(_STATUS),
        claimed_by=sql.Identifier(_CLAIMED_BY),
        claimed_at=sql.Identifier(_CLAIMED_AT),
        returning=column_list(projection.readable),
    )


def claim_params(worker_id: str) -> Dict[str, Any]:
    return {
        "running": TaskStatus.RUNNING.value,
        "pending": TaskStatus.PENDING.value,
        "worker_id": worker_id,
    }


def finish_statement(projection: Projection) -> sql.Composed:
    """RUNNING -> COMPLETE/ERROR, only for the worker holding the claim."""
    return sql.SQL(
        "UPDATE {table} SET {status} = %(status)s, "
        "{result_path} = COALESCE(%(result_path)s, {result_path}) "
        "WHERE {key} = %(task_id)s AND {status} = %(running)s AND {claimed_by} = %(worker_id)s"
    ).format(
        table=sql.Identifier(projection.table),
        key=sql.Identifier(projection.key),
        status=sql.Identifier(_STATUS),
        result_path=sql.Identifier(_RESULT_PATH),
        claimed_by=sql.Identifier(_CLAIMED_BY),
    )


def requeue_statement(projection: Projection) -> sql.Composed:
    """RUNNING/ERROR -> PENDING with the claimant cleared."""
    return sql.SQL(
        "UPDATE {table} SET {status} = %(pending)s, {claimed_by} = NULL, {claimed_at} = NULL "
        "WHERE {key} = %(task_id)s AND {status} = ANY(%(from_statuses)s)"
    ).format(
        table=sql.Identifier(projection.table),
        key=sql.Identifier(projection.key),
        status=sql.Identifier(_STATUS),
        claimed_by=sql.Identifier(_CLAIMED_BY),
        claimed_at=sql.Identifier(_CLAIMED_AT),
    )


def _check_worker_id(worker_id: str) -> None:
    if not worker_id or not worker_id.strip():
        raise ValueError("worker_id must be a non-empty string")


def _hydrate(example: Task, projection: Projection, row: Optional[Tuple[Any, ...]]) -> Optional[Task]:
    if row is None:
        return None
    task = example.fresh()
    task.populate(projection.readable, row)
    return task


class _TimeoutPolicy:
    """Resolve per-call timeouts against settings."""

    def __init__(
        self,
        settings: Settings,
        lock_timeout_ms: Optional[int],
        statement_timeout_ms: Optional[int],
    ) -> None:
        self.lock_timeout_ms = (
            settings.claim_lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        )
        self.statement_timeout_ms = (
            settings.db_statement_timeout_ms
            if statement_timeout_ms is None
            else statement_timeout_ms
        )

    def statements(self, timeout: Optional[float]) -> List[sql.Composed]:
        if timeout is None:
            return timeout_statements(self.statement_timeout_ms, self.lock_timeout_ms)
        timeout_ms = max(int(timeout * 1000), 1)
        return timeout_statements(timeout_ms, timeout_ms)


class TaskClaimCoordinator:
    """
    Hands each PENDING task to exactly one worker.

    Parameters
    ----------
    pool : ConnectionPool
        Pool shared with the rest of the process.
    lock_timeout_ms, statement_timeout_ms : int, optional
        Bounds applied with SET LOCAL to each claim transaction; default from
        settings (``CLAIM_LOCK_TIMEOUT_MS``, ``DB_STATEMENT_TIMEOUT_MS``).
    example : Task, optional
        Shape of returned records; defaults to every task column.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        lock_timeout_ms: Optional[int] = None,
        statement_timeout_ms: Optional[int] = None,
        example: Optional[Task] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._pool = pool
        self._queries = QueryBuilder(pool)
        self._example = example or Task.example()
        self._timeouts = _TimeoutPolicy(
            settings or get_settings(), lock_timeout_ms, statement_timeout_ms
        )

    def acquire_next_task(self, worker_id: str, timeout: Optional[float] = None) -> Optional[Task]:
        """
        Claim the earliest PENDING task for `worker_id`.

        Parameters
        ----------
        worker_id : str
            Opaque identifier recorded as the claimant.
        timeout : float, optional
            Seconds to wait for a pooled connection, a row lock, or the
            statement itself. Exceeding it aborts the transaction.

        Returns
        -------
        Task | None
            The claimed task in its RUNNING state, or None when nothing is pending.

        Raises
        ------
        ClaimError
            On any store failure or timeout; the row is left as it was.
        """
        _check_worker_id(worker_id)
        projection = self._example.projection()
        statement = claim_statement(projection)

        try:
            with self._pool.connection(timeout=timeout) as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        for setting in self._timeouts.statements(timeout):
                            cur.execute(setting)
                        cur.execute(statement, claim_params(worker_id))
                        row = cur.fetchone()
        except psycopg.Error as exc:
            log.warning(
                "Task claim failed",
                extra={"worker_id": worker_id, "error": str(exc)},
            )
            raise ClaimError(f"claim for worker {worker_id!r} failed: {exc}") from exc

        task = _hydrate(self._example, projection, row)
        if task is None:
            log.debug("No pending task", extra={"worker_id": worker_id})
            return None
        log.info(
            f"Claimed task {task.id}",
            extra={"task_id": task.id, "worker_id": worker_id},
        )
        return task

    def enqueue_task(self, task: Task) -> Task:
        """Insert `task` as PENDING and return it with its assigned id."""
        if task.task_type is None:
            task.task_type = DEFAULT_TASK_TYPE
        task.status = TaskStatus.PENDING.value
        task.claimed_by = None
        task.claimed_at = None
        self._queries.insert(task)
        log.info(f"Enqueued task {task.id}", extra={"task_id": task.id})
        return task

    def get_task(self, task_id: int) -> Task:
        """Load one task by id; NotFoundError if it does not exist."""
        return self._queries.load_by_key(Task.example(id=task_id))

    def complete_task(
        self, task_id: int, worker_id: str, result_path: Optional[str] = None
    ) -> bool:
        """RUNNING -> COMPLETE for the claimant. False when the guard did not match."""
        return self._finish(task_id, worker_id, TaskStatus.COMPLETE, result_path)

    def fail_task(self, task_id: int, worker_id: str, result_path: Optional[str] = None) -> bool:
        """RUNNING -> ERROR for the claimant. False when the guard did not match."""
        return self._finish(task_id, worker_id, TaskStatus.ERROR, result_path)

    def requeue_task(self, task_id: int) -> bool:
        """
        Administrative recovery: put a RUNNING or ERROR task back to PENDING.

        Never called by the claim path itself.
        """
        params = {
            "pending": TaskStatus.PENDING.value,
            "task_id": task_id,
            "from_statuses": [TaskStatus.RUNNING.value, TaskStatus.ERROR.value],
        }
        changed = self._transition(requeue_statement(self._example.projection()), params)
        if changed:
            log.info(f"Requeued task {task_id}", extra={"task_id": task_id})
        else:
            log.warning(
                f"Task {task_id} not requeued: not RUNNING/ERROR or missing",
                extra={"task_id": task_id},
            )
        return changed

    def _finish(
        self,
        task_id: int,
        worker_id: str,
        status: TaskStatus,
        result_path: Optional[str],
    ) -> bool:
        _check_worker_id(worker_id)
        params = {
            "status": status.value,
            "running": TaskStatus.RUNNING.value,
            "task_id": task_id,
            "worker_id": worker_id,
            "result_path": result_path,
        }
        changed = self._transition(finish_statement(self._example.projection()), params)
        if changed:
            log.info(
                f"Task {task_id} -> {status.value}",
                extra={"task_id": task_id, "worker_id": worker_id, "status": status.value},
            )
        else:
            log.warning(
                f"Task {task_id} not marked {status.value}: not RUNNING for this worker",
                extra={"task_id": task_id, "worker_id": worker_id},
            )
        return changed

    def _transition(self, statement: sql.Composed, params: Dict[str, Any]) -> bool:
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        for setting in self._timeouts.statements(None):
                            cur.execute(setting)
                        cur.execute(statement, params)
                        return cur.rowcount == 1
        except psycopg.Error as exc:
            raise ClaimError(f"task {params.get('task_id')!r} transition failed: {exc}") from exc


class AsyncTaskClaimCoordinator:
    """
    asyncio flavour of `TaskClaimCoordinator.acquire_next_task`.

    Cancelling the awaiting task (or exceeding `timeout`) aborts the claim
    transaction; PostgreSQL rolls it back, so the row stays PENDING.
    """

    def __init__(
        self,
        pool: AsyncConnectionPool,
        *,
        lock_timeout_ms: Optional[int] = None,
        statement_timeout_ms: Optional[int] = None,
        example: Optional[Task] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._pool = pool
        self._example = example or Task.example()
        self._timeouts = _TimeoutPolicy(
            settings or get_settings(), lock_timeout_ms, statement_timeout_ms
        )

    async def acquire_next_task(
        self, worker_id: str, timeout: Optional[float] = None
    ) -> Optional[Task]:
        _check_worker_id(worker_id)
        projection = self._example.projection()
        try:
            row = await asyncio.wait_for(self._claim(projection, worker_id, timeout), timeout)
        except asyncio.TimeoutError as exc:
            log.warning("Task claim timed out", extra={"worker_id": worker_id, "timeout": timeout})
            raise ClaimError(f"claim for worker {worker_id!r} timed out after {timeout}s") from exc
        except psycopg.Error as exc:
            log.warning("Task claim failed", extra={"worker_id": worker_id, "error": str(exc)})
            raise ClaimError(f"claim for worker {worker_id!r} failed: {exc}") from exc

        task = _hydrate(self._example, projection, row)
        if task is None:
            log.debug("No pending task", extra={"worker_id": worker_id})
            return None
        log.info(f"Claimed task {task.id}", extra={"task_id": task.id, "worker_id": worker_id})
        return task

    async def _claim(
        self, projection: Projection, worker_id: str, timeout: Optional[float]
    ) -> Optional[Tuple[Any, ...]]:
        async with self._pool.connection(timeout=timeout) as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    for setting in self._timeouts.statements(timeout):
                        await cur.execute(setting)
                    await cur.execute(claim_statement(projection), claim_params(worker_id))
                    return await cur.fetchone()


__all__ = [
    "AsyncTaskClaimCoordinator",
    "TaskClaimCoordinator",
    "claim_params",
    "claim_statement",
    "finish_statement",
    "requeue_statement",
]
