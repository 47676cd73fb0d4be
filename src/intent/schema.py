"""Command data model (Pydantic models).

This schema is the contract between the interpretation stages (classifier, slot extractor,
resolver) and the executor. Snapshot models are frozen: a pipeline run reads them but never
mutates them.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Intent(StrEnum):
    """Closed set of command intents."""

    create_task = "createTask"
    create_project = "createProject"
    search_task = "searchTask"
    search_project = "searchProject"
    update_task = "updateTask"
    update_project = "updateProject"
    count_tasks = "countTasks"
    count_projects = "countProjects"
    assistance = "assistance"


class TaskStatus(StrEnum):
    """Known task statuses."""

    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class Priority(StrEnum):
    """Known project priorities."""

    high = "high"
    medium = "medium"
    low = "low"


class MatchStrategy(StrEnum):
    """How a free-text reference was resolved, strongest first."""

    exact = "exact"
    partial = "partial"
    keyword = "keyword"
    fallback = "fallback"


class ErrorKind(StrEnum):
    """Failure taxonomy carried by unsuccessful results."""

    classification_ambiguous = "ClassificationAmbiguous"
    extraction_incomplete = "ExtractionIncomplete"
    entity_not_found = "EntityNotFound"
    validation_conflict = "ValidationConflict"
    external_service_failure = "ExternalServiceFailure"


EntityKind = Literal["project", "task"]


class SlotSet(BaseModel):
    """Structured fields extracted from an utterance.

    Every field is either a typed value or `None`; extractors never guess.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    due_date: date | None = None
    reference_text: str | None = None
    project_reference: str | None = None
    project_id: int | None = None

    @field_validator("title", "description", "reference_text", "project_reference")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        """Treat empty strings as absent."""

        if value is not None and not value.strip():
            return None
        return value

    def present(self) -> dict[str, Any]:
        """Return only the slots that carry a value."""

        return self.model_dump(exclude_none=True)


class Project(BaseModel):
    """Read-only projection of a stored project."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    title: str
    description: str | None = None
    priority: Priority | None = None
    due_date: date | None = None


class Task(BaseModel):
    """Read-only projection of a stored task.

    `status` is a plain string: stored rows may carry values outside `TaskStatus`.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    title: str
    description: str | None = None
    status: str = TaskStatus.pending
    due_date: date | None = None
    project_id: int | None = None


class Snapshot(BaseModel):
    """Projects and tasks visible to one pipeline run."""

    model_config = ConfigDict(frozen=True)

    projects: tuple[Project, ...] = ()
    tasks: tuple[Task, ...] = ()


class TaskFilter(BaseModel):
    """Task search filter understood by the store."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str | None = None
    status: TaskStatus | None = None
    project_id: int | None = None


class ProjectFilter(BaseModel):
    """Project filter understood by the store."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str | None = None
    priority: Priority | None = None


class ResolvedReference(BaseModel):
    """A free-text reference bound to a concrete record."""

    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    id: int
    title: str
    match_strategy: MatchStrategy
    confidence: float = Field(ge=0.0, le=1.0)


class CommandResult(BaseModel):
    """Outcome of one pipeline run. Failures are results, never exceptions."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    intent: Intent
    action: str
    payload: dict[str, Any] | None = None
    message: str = ""
    error_kind: ErrorKind | None = None
    reference: ResolvedReference | None = None


def failure(
        intent: Intent,
        kind: ErrorKind,
        *,
        payload: dict[str, Any] | None = None,
        reference: ResolvedReference | None = None,
) -> CommandResult:
    """Build an unsuccessful result; the message is rendered later by the formatter."""

    return CommandResult(
        success=False,
        intent=intent,
        action=intent.value,
        payload=payload,
        error_kind=kind,
        reference=reference,
    )


def intent_from_name(name: str | None) -> Intent | None:
    """Map an intent name (any case) to `Intent`, or `None` if unknown."""

    value = (name or "").strip().lower()
    for intent in Intent:
        if intent.value.lower() == value:
            return intent
    return None
