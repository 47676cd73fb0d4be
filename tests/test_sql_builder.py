"""Tests for deterministic SQL builder (allowlists + parameter binding)."""

from __future__ import annotations

from datetime import date

import pytest

from src.intent.schema import Priority, ProjectFilter, TaskFilter, TaskStatus
from src.sql.builder import (
    SQLBuilderError,
    build_count,
    build_insert_project,
    build_insert_task,
    build_select_projects,
    build_select_tasks,
    build_update,
)


def _placeholder_count(sql: str) -> int:
    return sql.count("%s")


def test_insert_project_binds_values_and_returns_row() -> None:
    query = build_insert_project(title="Apolo", description=None, priority=Priority.high, due_date=None)

    assert query.sql.startswith("INSERT INTO projects")
    assert "RETURNING id, title, description, priority, due_date" in query.sql
    assert "Apolo" not in query.sql
    assert query.params == ("Apolo", None, "high", None)
    assert _placeholder_count(query.sql) == len(query.params)


def test_insert_task_stores_status_value() -> None:
    query = build_insert_task(
        title="Comprar pan",
        description="Tarea «Comprar pan» del proyecto Casa",
        status=TaskStatus.in_progress,
        due_date=date(2024, 7, 15),
        project_id=1,
    )

    assert query.params[2] == "in_progress"
    assert query.params[-1] == 1
    assert _placeholder_count(query.sql) == len(query.params)


def test_select_tasks_without_filter() -> None:
    query = build_select_tasks()

    assert query.sql == "SELECT id, title, description, status, due_date, project_id FROM tasks ORDER BY id"
    assert query.params == ()


def test_select_tasks_combines_filters() -> None:
    query = build_select_tasks(TaskFilter(text="marketing", status=TaskStatus.pending, project_id=2))

    assert "(title ILIKE %s OR description ILIKE %s)" in query.sql
    assert "status = %s" in query.sql
    assert "project_id = %s" in query.sql
    assert "marketing" not in query.sql
    assert query.params == ("%marketing%", "%marketing%", "pending", 2)
    assert _placeholder_count(query.sql) == len(query.params)


def test_like_wildcards_in_user_text_are_escaped() -> None:
    query = build_select_tasks(TaskFilter(text="100%_listo"))

    assert query.params[0] == "%100\\%\\_listo%"


def test_select_projects_by_priority() -> None:
    query = build_select_projects(ProjectFilter(priority=Priority.low))

    assert query.sql.endswith("FROM projects WHERE priority = %s ORDER BY id")
    assert query.params == ("low",)


def test_update_touches_only_patched_columns() -> None:
    query = build_update("task", 7, {"status": TaskStatus.completed})

    assert query.sql.startswith("UPDATE tasks SET status = %s, updated_at = NOW() WHERE id = %s")
    assert "title =" not in query.sql
    assert query.params == ("completed", 7)


def test_update_rejects_unknown_or_empty_patch() -> None:
    with pytest.raises(SQLBuilderError):
        build_update("task", 1, {})
    with pytest.raises(SQLBuilderError):
        build_update("task", 1, {"priority": Priority.high})
    with pytest.raises(SQLBuilderError):
        build_update("project", 1, {"id": 3})


def test_count_tasks_with_filter() -> None:
    query = build_count("task", TaskFilter(status=TaskStatus.completed, project_id=1))

    assert query.sql == "SELECT COUNT(*)::bigint AS total FROM tasks WHERE status = %s AND project_id = %s"
    assert query.params == ("completed", 1)


def test_count_rejects_mismatched_filter() -> None:
    with pytest.raises(SQLBuilderError):
        build_count("project", TaskFilter(status=TaskStatus.pending))
    with pytest.raises(SQLBuilderError):
        build_count("comments")  # type: ignore[arg-type]
