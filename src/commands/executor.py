"""Intent execution against the store.

One branch per intent. Branches raise `CommandAbort` for expected failures; `execute` turns the
abort into an unsuccessful `CommandResult`. Store calls are bounded by a timeout and never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable
from datetime import date
from typing import Any, TypeVar

from src.commands.store import (
    PROJECT_PATCH_FIELDS,
    TASK_PATCH_FIELDS,
    Store,
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StoreValidationError,
)
from src.intent.llm import LLMClient, LLMError, call_llm, load_prompt
from src.intent.normalize import normalize_text
from src.intent.schema import (
    CommandResult,
    ErrorKind,
    Intent,
    MatchStrategy,
    Priority,
    ProjectFilter,
    ResolvedReference,
    SlotSet,
    Snapshot,
    TaskFilter,
    TaskStatus,
    failure,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

HELP_TEXT = (
    "¿En qué puedo ayudarte? Puedo asistirte con la creación de tareas y proyectos, o ayudarte a "
    "buscar información en tu sistema de gestión de tareas. Por ejemplo: «crear tarea Comprar pan "
    "para mañana», «crear proyecto Apolo con prioridad alta», «buscar tareas de marketing», "
    "«marcar la tarea Comprar pan como completada» o «¿cuántas tareas pendientes tengo?»."
)

ACTIONS: dict[Intent, str] = {
    Intent.create_task: "task_created",
    Intent.create_project: "project_created",
    Intent.search_task: "tasks_found",
    Intent.search_project: "projects_found",
    Intent.update_task: "task_updated",
    Intent.update_project: "project_updated",
    Intent.count_tasks: "tasks_counted",
    Intent.count_projects: "projects_counted",
    Intent.assistance: "help",
}


class CommandAbort(Exception):
    """Expected execution failure carrying its error kind and message context."""

    def __init__(
            self,
            kind: ErrorKind,
            reason: str,
            *,
            payload: dict[str, Any] | None = None,
            reference: ResolvedReference | None = None,
    ) -> None:
        super().__init__(f"{kind}: {reason}")
        self.kind = kind
        self.reason = reason
        self.payload = payload or {}
        self.reference = reference

    def to_result(self, intent: Intent) -> CommandResult:
        return failure(
            intent,
            self.kind,
            payload={"reason": self.reason, **self.payload},
            reference=self.reference,
        )


def _same_title(left: str, right: str) -> bool:
    return normalize_text(left) == normalize_text(right)


def _contains_text(needle: str | None, *haystacks: str | None) -> bool:
    if not needle:
        return True
    wanted = normalize_text(needle)
    return any(wanted in normalize_text(value or "") for value in haystacks)


def _snapshot_summary(snapshot: Snapshot) -> str:
    statuses = Counter(task.status for task in snapshot.tasks)
    lines = [f"Proyectos: {len(snapshot.projects)}. Tareas: {len(snapshot.tasks)}."]
    if statuses:
        lines.append("Tareas por estado: " + ", ".join(f"{k}={v}" for k, v in sorted(statuses.items())))
    if snapshot.projects:
        lines.append("Proyectos: " + ", ".join(p.title for p in snapshot.projects[:10]))
    return "\n".join(lines)


class CommandExecutor:
    """Executes one interpreted command; holds no per-request state."""

    def __init__(
            self,
            store: Store,
            *,
            llm: LLMClient | None = None,
            store_timeout_s: float = 5.0,
            llm_timeout_s: float = 10.0,
            search_result_limit: int = 10,
    ) -> None:
        self._store = store
        self._llm = llm
        self._store_timeout_s = store_timeout_s
        self._llm_timeout_s = llm_timeout_s
        self._search_result_limit = search_result_limit

    async def execute(
            self,
            intent: Intent,
            slots: SlotSet,
            reference: ResolvedReference | None,
            snapshot: Snapshot,
            *,
            today: date,
            text: str = "",
    ) -> CommandResult:
        """Run the branch for `intent`. Expected failures come back as unsuccessful results."""

        branches = {
            Intent.create_task: self._create_task,
            Intent.create_project: self._create_project,
            Intent.search_task: self._search_tasks,
            Intent.search_project: self._search_projects,
            Intent.update_task: self._update_task,
            Intent.update_project: self._update_project,
            Intent.count_tasks: self._count_tasks,
            Intent.count_projects: self._count_projects,
        }

        try:
            if intent == Intent.assistance:
                payload = await self._assist(text, snapshot)
            else:
                payload = await branches[intent](slots, reference, snapshot, today)
        except CommandAbort as abort:
            logger.info("command aborted intent=%s kind=%s reason=%s", intent, abort.kind, abort.reason)
            if abort.reference is None:
                abort.reference = reference
            return abort.to_result(intent)

        return CommandResult(
            success=True,
            intent=intent,
            action=ACTIONS[intent],
            payload=payload,
            reference=reference,
        )

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await one store call under the timeout, mapping store errors to error kinds."""

        try:
            return await asyncio.wait_for(awaitable, timeout=self._store_timeout_s)
        except TimeoutError as exc:
            logger.warning("store timeout operation=%s timeout_s=%.1f", operation, self._store_timeout_s)
            raise CommandAbort(ErrorKind.external_service_failure, "store_timeout") from exc
        except StoreConflictError as exc:
            raise CommandAbort(ErrorKind.validation_conflict, "duplicate_title") from exc
        except StoreValidationError as exc:
            raise CommandAbort(ErrorKind.validation_conflict, "store_rejected") from exc
        except StoreNotFoundError as exc:
            raise CommandAbort(ErrorKind.entity_not_found, "record_missing") from exc
        except StoreError as exc:
            logger.warning("store failure operation=%s error=%s", operation, exc)
            raise CommandAbort(ErrorKind.external_service_failure, "store_error") from exc

    @staticmethod
    def _check_due_date(due_date: date | None, today: date) -> None:
        if due_date is not None and due_date < today:
            raise CommandAbort(
                ErrorKind.validation_conflict,
                "past_due_date",
                payload={"due_date": due_date.isoformat()},
            )

    async def _create_project(self, slots, reference, snapshot, today) -> dict[str, Any]:
        title = slots.title
        if title is None:
            raise CommandAbort(ErrorKind.extraction_incomplete, "missing_title")
        if any(_same_title(project.title, title) for project in snapshot.projects):
            raise CommandAbort(ErrorKind.validation_conflict, "duplicate_title", payload={"title": title})
        self._check_due_date(slots.due_date, today)

        project = await self._call(
            "create_project",
            self._store.create_project(
                title=title,
                description=slots.description,
                priority=slots.priority or Priority.medium,
                due_date=slots.due_date,
            ),
        )
        logger.info("project created id=%s", project.id)
        return project.model_dump(mode="json")

    async def _create_task(self, slots, reference, snapshot, today) -> dict[str, Any]:
        if slots.title is None:
            raise CommandAbort(ErrorKind.extraction_incomplete, "missing_title")
        if reference is None:
            raise CommandAbort(
                ErrorKind.entity_not_found,
                "project_not_found" if slots.project_reference else "no_projects",
                payload={"reference_text": slots.project_reference, "title": slots.title},
            )
        self._check_due_date(slots.due_date, today)

        task = await self._call(
            "create_task",
            self._store.create_task(
                title=slots.title,
                description=slots.description,
                status=slots.status or TaskStatus.pending,
                due_date=slots.due_date,
                project_id=reference.id,
            ),
        )
        logger.info("task created id=%s project_id=%s strategy=%s", task.id, reference.id, reference.match_strategy)
        return {**task.model_dump(mode="json"), "project_title": reference.title}

    async def _search_tasks(self, slots, reference, snapshot, today) -> dict[str, Any]:
        task_filter = TaskFilter(
            text=slots.reference_text,
            status=slots.status,
            project_id=reference.id if reference is not None else None,
        )
        tasks = await self._call("find_tasks", self._store.find_tasks(task_filter))
        return {
            "filter": task_filter.model_dump(mode="json", exclude_none=True),
            "project_title": reference.title if reference is not None else None,
            "total": len(tasks),
            "results": [task.model_dump(mode="json") for task in tasks[: self._search_result_limit]],
        }

    async def _search_projects(self, slots, reference, snapshot, today) -> dict[str, Any]:
        project_filter = ProjectFilter(text=slots.reference_text, priority=slots.priority)
        projects = [
            project
            for project in await self._call("find_projects", self._store.find_projects())
            if _contains_text(project_filter.text, project.title, project.description)
            and (project_filter.priority is None or project.priority == project_filter.priority)
        ]
        return {
            "filter": project_filter.model_dump(mode="json", exclude_none=True),
            "total": len(projects),
            "results": [project.model_dump(mode="json") for project in projects[: self._search_result_limit]],
        }

    @staticmethod
    def _patch(slots: SlotSet, fields: tuple[str, ...]) -> dict[str, Any]:
        present = slots.present()
        return {name: present[name] for name in fields if name in present}

    @staticmethod
    def _require_target(slots: SlotSet, reference: ResolvedReference | None) -> ResolvedReference:
        if reference is None:
            raise CommandAbort(
                ErrorKind.entity_not_found,
                "reference_not_found" if slots.reference_text else "missing_reference",
                payload={"reference_text": slots.reference_text},
            )
        if reference.match_strategy == MatchStrategy.fallback:
            # A guessed record is never mutated.
            raise CommandAbort(ErrorKind.extraction_incomplete, "missing_reference", reference=reference)
        return reference

    async def _update_task(self, slots, reference, snapshot, today) -> dict[str, Any]:
        target = self._require_target(slots, reference)
        patch = self._patch(slots, TASK_PATCH_FIELDS)
        if not patch:
            raise CommandAbort(ErrorKind.extraction_incomplete, "empty_patch", payload={"title": target.title})
        self._check_due_date(slots.due_date, today)

        task = await self._call("update_task", self._store.update_task(target.id, patch))
        logger.info("task updated id=%s fields=%s", task.id, ",".join(patch))
        return {**task.model_dump(mode="json"), "changed_fields": list(patch), "previous_title": target.title}

    async def _update_project(self, slots, reference, snapshot, today) -> dict[str, Any]:
        target = self._require_target(slots, reference)
        patch = self._patch(slots, PROJECT_PATCH_FIELDS)
        if not patch:
            raise CommandAbort(ErrorKind.extraction_incomplete, "empty_patch", payload={"title": target.title})
        new_title = patch.get("title")
        if new_title and any(
                _same_title(project.title, new_title) and project.id != target.id for project in snapshot.projects
        ):
            raise CommandAbort(ErrorKind.validation_conflict, "duplicate_title", payload={"title": new_title})
        self._check_due_date(slots.due_date, today)

        project = await self._call("update_project", self._store.update_project(target.id, patch))
        logger.info("project updated id=%s fields=%s", project.id, ",".join(patch))
        return {**project.model_dump(mode="json"), "changed_fields": list(patch), "previous_title": target.title}

    async def _count_tasks(self, slots, reference, snapshot, today) -> dict[str, Any]:
        project_id = reference.id if reference is not None else None
        tasks = [
            task
            for task in snapshot.tasks
            if (project_id is None or task.project_id == project_id)
            and (slots.status is None or task.status == slots.status)
        ]
        counts = Counter(task.status for task in tasks)
        breakdown = {status.value: counts[status.value] for status in TaskStatus if counts[status.value]}

        total = await self._call(
            "count_tasks",
            self._store.count("task", TaskFilter(status=slots.status, project_id=project_id)),
        )
        uncategorized = total - sum(breakdown.values())
        if uncategorized:
            logger.warning(
                "count anomaly kind=task total=%d categorized=%d unknown_statuses=%s",
                total,
                sum(breakdown.values()),
                sorted(set(counts) - set(breakdown)),
            )
        return {
            "total": total,
            "by_status": breakdown,
            "uncategorized": uncategorized,
            "status": slots.status.value if slots.status else None,
            "project_title": reference.title if reference is not None else None,
        }

    async def _count_projects(self, slots, reference, snapshot, today) -> dict[str, Any]:
        projects = [p for p in snapshot.projects if slots.priority is None or p.priority == slots.priority]
        counts = Counter(project.priority for project in projects)
        breakdown = {priority.value: counts[priority] for priority in Priority if counts[priority]}

        total = await self._call(
            "count_projects",
            self._store.count("project", ProjectFilter(priority=slots.priority)),
        )
        uncategorized = total - sum(breakdown.values())
        if uncategorized:
            logger.warning(
                "count anomaly kind=project total=%d categorized=%d",
                total,
                sum(breakdown.values()),
            )
        return {
            "total": total,
            "by_priority": breakdown,
            "uncategorized": uncategorized,
            "priority": slots.priority.value if slots.priority else None,
        }

    async def _assist(self, text: str, snapshot: Snapshot) -> dict[str, Any]:
        if self._llm is None or not text.strip():
            return {"answer": HELP_TEXT, "source": "help"}

        user_prompt = f"Contexto:\n{_snapshot_summary(snapshot)}\n\nPregunta: {text}"
        try:
            answer = await call_llm(
                self._llm,
                load_prompt("assistance_v1.md"),
                user_prompt,
                expected_shape="text",
                timeout_s=self._llm_timeout_s,
            )
        except LLMError as exc:
            logger.warning("llm assistance unavailable reason=%s", exc)
            return {"answer": HELP_TEXT, "source": "help"}

        answer = answer.strip()
        if not answer:
            return {"answer": HELP_TEXT, "source": "help"}
        return {"answer": answer, "source": "llm"}
