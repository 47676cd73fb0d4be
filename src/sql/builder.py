"""Deterministic SQL builder for the project/task store.

Identifiers (tables, columns) are strictly allowlisted; only values become bound parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from src.intent.schema import EntityKind, Priority, ProjectFilter, TaskFilter, TaskStatus
from src.sql.columns import PATCH_COLUMNS, RETURNING_COLUMNS, TABLES


class SQLBuilderError(ValueError):
    """Raised when a request cannot be converted into deterministic SQL."""


@dataclass(frozen=True)
class BuiltQuery:
    """A parameterized SQL query ready for execution."""

    sql: str
    params: tuple[Any, ...]


def _param(value: Any) -> Any:
    # Enums are stored by value, never by member name.
    return value.value if isinstance(value, Enum) else value


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _where_and(clauses: list[str]) -> str:
    if not clauses:
        return ""
    return " WHERE " + " AND ".join(clauses)


def _returning(kind: EntityKind) -> str:
    return " RETURNING " + ", ".join(RETURNING_COLUMNS[kind])


def _table(kind: EntityKind) -> str:
    try:
        return TABLES[kind]
    except KeyError as exc:
        raise SQLBuilderError(f"Unsupported entity kind: {kind}") from exc


def build_insert_project(
        *,
        title: str,
        description: str | None,
        priority: Priority | None,
        due_date: date | None,
) -> BuiltQuery:
    sql = "INSERT INTO projects (title, description, priority, due_date) VALUES (%s, %s, %s, %s)"
    return BuiltQuery(
        sql=sql + _returning("project"),
        params=(title, description, _param(priority), due_date),
    )


def build_insert_task(
        *,
        title: str,
        description: str | None,
        status: TaskStatus,
        due_date: date | None,
        project_id: int,
) -> BuiltQuery:
    sql = "INSERT INTO tasks (title, description, status, due_date, project_id) VALUES (%s, %s, %s, %s, %s)"
    return BuiltQuery(
        sql=sql + _returning("task"),
        params=(title, description, _param(status), due_date, project_id),
    )


def _task_filter_clauses(task_filter: TaskFilter | None) -> tuple[list[str], list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if task_filter is None:
        return clauses, params

    if task_filter.text:
        pattern = _like_pattern(task_filter.text)
        clauses.append("(title ILIKE %s OR description ILIKE %s)")
        params.extend([pattern, pattern])
    if task_filter.status is not None:
        clauses.append("status = %s")
        params.append(_param(task_filter.status))
    if task_filter.project_id is not None:
        clauses.append("project_id = %s")
        params.append(task_filter.project_id)
    return clauses, params


def _project_filter_clauses(project_filter: ProjectFilter | None) -> tuple[list[str], list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if project_filter is None:
        return clauses, params

    if project_filter.text:
        pattern = _like_pattern(project_filter.text)
        clauses.append("(title ILIKE %s OR description ILIKE %s)")
        params.extend([pattern, pattern])
    if project_filter.priority is not None:
        clauses.append("priority = %s")
        params.append(_param(project_filter.priority))
    return clauses, params


def build_select_projects(project_filter: ProjectFilter | None = None) -> BuiltQuery:
    clauses, params = _project_filter_clauses(project_filter)
    columns = ", ".join(RETURNING_COLUMNS["project"])
    return BuiltQuery(
        sql=f"SELECT {columns} FROM projects{_where_and(clauses)} ORDER BY id",
        params=tuple(params),
    )


def build_select_tasks(task_filter: TaskFilter | None = None) -> BuiltQuery:
    clauses, params = _task_filter_clauses(task_filter)
    columns = ", ".join(RETURNING_COLUMNS["task"])
    return BuiltQuery(
        sql=f"SELECT {columns} FROM tasks{_where_and(clauses)} ORDER BY id",
        params=tuple(params),
    )


def build_update(kind: EntityKind, record_id: int, patch: dict[str, Any]) -> BuiltQuery:
    """Partial update touching only the columns present in `patch`."""

    table = _table(kind)
    allowed = PATCH_COLUMNS[kind]
    if not patch:
        raise SQLBuilderError("Update requires at least one field")

    assignments: list[str] = []
    params: list[Any] = []
    for name, value in patch.items():
        column = allowed.get(name)
        if column is None:
            raise SQLBuilderError(f"Field {name!r} cannot be updated on {kind}")
        assignments.append(f"{column} = %s")
        params.append(_param(value))
    assignments.append("updated_at = NOW()")
    params.append(record_id)

    sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = %s" + _returning(kind)
    return BuiltQuery(sql=sql, params=tuple(params))


def build_count(kind: EntityKind, entity_filter: TaskFilter | ProjectFilter | None = None) -> BuiltQuery:
    table = _table(kind)
    if kind == "task":
        if entity_filter is not None and not isinstance(entity_filter, TaskFilter):
            raise SQLBuilderError("Task counts require a TaskFilter")
        clauses, params = _task_filter_clauses(entity_filter)
    else:
        if entity_filter is not None and not isinstance(entity_filter, ProjectFilter):
            raise SQLBuilderError("Project counts require a ProjectFilter")
        clauses, params = _project_filter_clauses(entity_filter)

    return BuiltQuery(
        sql=f"SELECT COUNT(*)::bigint AS total FROM {table}{_where_and(clauses)}",
        params=tuple(params),
    )
