"""Allowlisted SQL identifiers.

All table and column names referenced in generated SQL must come from these mappings; no
user-provided identifier is ever interpolated into SQL.
"""

from __future__ import annotations

from src.intent.schema import EntityKind

TABLES: dict[EntityKind, str] = {
    "project": "projects",
    "task": "tasks",
}

PROJECT_COLUMNS: tuple[str, ...] = ("id", "title", "description", "priority", "due_date")
TASK_COLUMNS: tuple[str, ...] = ("id", "title", "description", "status", "due_date", "project_id")

RETURNING_COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    "project": PROJECT_COLUMNS,
    "task": TASK_COLUMNS,
}

# Slot name -> column name for partial updates.
PATCH_COLUMNS: dict[EntityKind, dict[str, str]] = {
    "project": {
        "title": "title",
        "description": "description",
        "priority": "priority",
        "due_date": "due_date",
    },
    "task": {
        "title": "title",
        "description": "description",
        "status": "status",
        "due_date": "due_date",
    },
}
