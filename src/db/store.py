"""PostgreSQL implementation of the `Store` protocol.

Queries come from `src.sql.builder`; this module only executes them and maps psycopg errors onto
the `StoreError` family. Nothing is retried.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, LiteralString, cast

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from src.commands.store import (
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StoreValidationError,
)
from src.db.pool import get_conn
from src.intent.schema import (
    EntityKind,
    Priority,
    Project,
    ProjectFilter,
    Task,
    TaskFilter,
    TaskStatus,
)
from src.sql.builder import (
    BuiltQuery,
    build_count,
    build_insert_project,
    build_insert_task,
    build_select_projects,
    build_select_tasks,
    build_update,
)

logger = logging.getLogger(__name__)


def _store_error(exc: Exception) -> StoreError:
    if isinstance(exc, pg_errors.UniqueViolation):
        return StoreConflictError(str(exc))
    if isinstance(exc, (pg_errors.ForeignKeyViolation, pg_errors.CheckViolation, pg_errors.DataError)):
        return StoreValidationError(str(exc))
    return StoreError(str(exc))


class PostgresStore:
    """`Store` backed by the `projects` and `tasks` tables."""

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def _fetch(self, query: BuiltQuery) -> list[dict[str, Any]]:
        try:
            async with get_conn(self._pool) as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(cast(LiteralString, query.sql), query.params)
                    return await cur.fetchall()
        except (psycopg.Error, PoolTimeout) as exc:
            logger.warning("store query failed error=%s", type(exc).__name__)
            raise _store_error(exc) from exc

    async def _fetch_one(self, query: BuiltQuery) -> dict[str, Any] | None:
        rows = await self._fetch(query)
        return rows[0] if rows else None

    async def create_project(
            self,
            *,
            title: str,
            description: str | None,
            priority: Priority | None,
            due_date: date | None,
    ) -> Project:
        row = await self._fetch_one(
            build_insert_project(title=title, description=description, priority=priority, due_date=due_date)
        )
        if row is None:
            raise StoreError("INSERT returned no row")
        return Project.model_validate(row)

    async def create_task(
            self,
            *,
            title: str,
            description: str | None,
            status: TaskStatus,
            due_date: date | None,
            project_id: int,
    ) -> Task:
        row = await self._fetch_one(
            build_insert_task(
                title=title,
                description=description,
                status=status,
                due_date=due_date,
                project_id=project_id,
            )
        )
        if row is None:
            raise StoreError("INSERT returned no row")
        return Task.model_validate(row)

    async def find_projects(self) -> list[Project]:
        return [Project.model_validate(row) for row in await self._fetch(build_select_projects())]

    async def find_tasks(self, task_filter: TaskFilter) -> list[Task]:
        return [Task.model_validate(row) for row in await self._fetch(build_select_tasks(task_filter))]

    async def update_task(self, task_id: int, patch: dict[str, Any]) -> Task:
        row = await self._fetch_one(build_update("task", task_id, patch))
        if row is None:
            raise StoreNotFoundError(f"task {task_id} does not exist")
        return Task.model_validate(row)

    async def update_project(self, project_id: int, patch: dict[str, Any]) -> Project:
        row = await self._fetch_one(build_update("project", project_id, patch))
        if row is None:
            raise StoreNotFoundError(f"project {project_id} does not exist")
        return Project.model_validate(row)

    async def count(self, kind: EntityKind, entity_filter: TaskFilter | ProjectFilter | None = None) -> int:
        row = await self._fetch_one(build_count(kind, entity_filter))
        if not row:
            return 0
        value = row.get("total")
        return int(value) if value is not None else 0
