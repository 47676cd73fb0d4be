"""In-memory stand-ins for the store and LLM collaborators."""

from __future__ import annotations

import asyncio
import time
from datetime import date
from typing import Any

from src.commands.store import StoreConflictError, StoreNotFoundError
from src.intent.normalize import normalize_text
from src.intent.schema import Project, ProjectFilter, Snapshot, Task, TaskFilter

TODAY = date(2024, 7, 8)


class FakeStore:
    """In-memory `Store` with the same filtering semantics as the SQL builder."""

    def __init__(
            self,
            projects: list[Project] | None = None,
            tasks: list[Task] | None = None,
            *,
            delay_s: float = 0.0,
            error: Exception | None = None,
    ) -> None:
        self.projects: list[Project] = list(projects or [])
        self.tasks: list[Task] = list(tasks or [])
        self.delay_s = delay_s
        self.error = error
        self.calls: list[str] = []
        self.count_override: int | None = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, **kwargs: Any) -> FakeStore:
        return cls(list(snapshot.projects), list(snapshot.tasks), **kwargs)

    def snapshot(self) -> Snapshot:
        return Snapshot(projects=tuple(self.projects), tasks=tuple(self.tasks))

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error

    @staticmethod
    def _matches_text(text: str | None, *values: str | None) -> bool:
        if not text:
            return True
        needle = normalize_text(text)
        return any(needle in normalize_text(value or "") for value in values)

    def _tasks(self, task_filter: TaskFilter | None) -> list[Task]:
        task_filter = task_filter or TaskFilter()
        return [
            task
            for task in self.tasks
            if self._matches_text(task_filter.text, task.title, task.description)
            and (task_filter.status is None or task.status == task_filter.status)
            and (task_filter.project_id is None or task.project_id == task_filter.project_id)
        ]

    async def create_project(self, *, title, description, priority, due_date) -> Project:
        await self._enter("create_project")
        if any(normalize_text(p.title) == normalize_text(title) for p in self.projects):
            raise StoreConflictError(title)
        project = Project(
            id=max((p.id for p in self.projects), default=0) + 1,
            title=title,
            description=description,
            priority=priority,
            due_date=due_date,
        )
        self.projects.append(project)
        return project

    async def create_task(self, *, title, description, status, due_date, project_id) -> Task:
        await self._enter("create_task")
        task = Task(
            id=max((t.id for t in self.tasks), default=0) + 1,
            title=title,
            description=description,
            status=status,
            due_date=due_date,
            project_id=project_id,
        )
        self.tasks.append(task)
        return task

    async def find_projects(self) -> list[Project]:
        await self._enter("find_projects")
        return list(self.projects)

    async def find_tasks(self, task_filter: TaskFilter) -> list[Task]:
        await self._enter("find_tasks")
        return self._tasks(task_filter)

    async def update_task(self, task_id: int, patch: dict[str, Any]) -> Task:
        await self._enter("update_task")
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                self.tasks[index] = task.model_copy(update=patch)
                return self.tasks[index]
        raise StoreNotFoundError(str(task_id))

    async def update_project(self, project_id: int, patch: dict[str, Any]) -> Project:
        await self._enter("update_project")
        for index, project in enumerate(self.projects):
            if project.id == project_id:
                self.projects[index] = project.model_copy(update=patch)
                return self.projects[index]
        raise StoreNotFoundError(str(project_id))

    async def count(self, kind, entity_filter=None) -> int:
        await self._enter("count")
        if self.count_override is not None:
            return self.count_override
        if kind == "task":
            return len(self._tasks(entity_filter))
        project_filter = entity_filter or ProjectFilter()
        return len(
            [
                p
                for p in self.projects
                if self._matches_text(project_filter.text, p.title, p.description)
                and (project_filter.priority is None or p.priority == project_filter.priority)
            ]
        )


class FakeLLM:
    """Scripted `LLMClient`: replies in order, records every prompt."""

    def __init__(
            self,
            replies: list[str | None] | None = None,
            *,
            error: Exception | None = None,
            delay_s: float = 0.0,
    ) -> None:
        self.replies = list(replies or [])
        self.error = error
        self.delay_s = delay_s
        self.calls: list[tuple[str, str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str, expected_shape: str) -> str | None:
        self.calls.append((system_prompt, user_prompt, expected_shape))
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        if not self.replies:
            return ""
        return self.replies.pop(0)
