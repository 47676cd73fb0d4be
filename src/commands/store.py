"""Project/task store collaborator.

The pipeline talks to persistence only through the async `Store` protocol. Adapters translate
their own failures into the `StoreError` family so the executor can map them to error kinds.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from src.intent.schema import (
    EntityKind,
    Priority,
    Project,
    ProjectFilter,
    Task,
    TaskFilter,
    TaskStatus,
)

TASK_PATCH_FIELDS: tuple[str, ...] = ("title", "description", "status", "due_date")
PROJECT_PATCH_FIELDS: tuple[str, ...] = ("title", "description", "priority", "due_date")


class StoreError(RuntimeError):
    """Base class for store failures (connectivity, unexpected backend errors)."""


class StoreConflictError(StoreError):
    """Raised when a write would duplicate an existing record."""


class StoreValidationError(StoreError):
    """Raised when the store rejects a value (bad foreign key, constraint violation)."""


class StoreNotFoundError(StoreError):
    """Raised when the record to update does not exist."""


class Store(Protocol):
    """Async persistence operations used by the command executor."""

    async def create_project(
            self,
            *,
            title: str,
            description: str | None,
            priority: Priority | None,
            due_date: date | None,
    ) -> Project:
        ...

    async def create_task(
            self,
            *,
            title: str,
            description: str | None,
            status: TaskStatus,
            due_date: date | None,
            project_id: int,
    ) -> Task:
        ...

    async def find_projects(self) -> list[Project]:
        ...

    async def find_tasks(self, task_filter: TaskFilter) -> list[Task]:
        ...

    async def update_task(self, task_id: int, patch: dict[str, Any]) -> Task:
        ...

    async def update_project(self, project_id: int, patch: dict[str, Any]) -> Project:
        ...

    async def count(self, kind: EntityKind, entity_filter: TaskFilter | ProjectFilter | None = None) -> int:
        ...
