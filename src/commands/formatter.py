"""Spanish user-facing messages for command results.

Messages are built only from the result payload; internal details (exceptions, SQL, stack traces)
never reach the user. Counts and searches render distinctly for 0, 1 and many.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

from src.intent.schema import CommandResult, ErrorKind, Intent

MAX_LISTED_ITEMS = 3

STATUS_LABELS: dict[str, tuple[str, str]] = {
    "pending": ("pendiente", "pendientes"),
    "in_progress": ("en progreso", "en progreso"),
    "completed": ("completada", "completadas"),
    "cancelled": ("cancelada", "canceladas"),
}

PRIORITY_LABELS: dict[str, str] = {"high": "alta", "medium": "media", "low": "baja"}

FIELD_LABELS: dict[str, str] = {
    "title": "título",
    "description": "descripción",
    "status": "estado",
    "priority": "prioridad",
    "due_date": "fecha límite",
}

_GENERIC_FAILURE = "No pude completar la operación en este momento. Inténtalo de nuevo más tarde."


def _noun(intent: Intent) -> str:
    return "proyecto" if "project" in intent.value.lower() else "tarea"


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _join(items: Sequence[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return ", ".join(items[:-1]) + " y " + items[-1]


def _listing(results: Sequence[dict[str, Any]], total: int) -> str:
    names = [f"«{item.get('title', '')}»" for item in results[:MAX_LISTED_ITEMS]]
    rest = total - len(names)
    if rest > 0:
        return ", ".join(names) + f" y {rest} más"
    return _join(names)


def _date(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value).strftime("%d/%m/%Y")
    except ValueError:
        return value


def _status_label(status: str | None, count: int = 1) -> str:
    singular, plural = STATUS_LABELS.get(status or "", (status or "", status or ""))
    return singular if count == 1 else plural


def _task_created(payload: dict[str, Any]) -> str:
    message = f"Tarea «{payload['title']}» creada en el proyecto {payload.get('project_title') or payload['project_id']}"
    due = _date(payload.get("due_date"))
    if due:
        message += f", con fecha límite {due}"
    return message + "."


def _project_created(payload: dict[str, Any]) -> str:
    message = f"Proyecto «{payload['title']}» creado"
    priority = PRIORITY_LABELS.get(payload.get("priority") or "")
    if priority:
        message += f" con prioridad {priority}"
    due = _date(payload.get("due_date"))
    if due:
        message += f" y fecha límite {due}"
    return message + "."


def _criteria(payload: dict[str, Any], noun: str, count: int) -> str:
    parts: list[str] = []
    query = payload.get("filter") or {}
    if query.get("status"):
        parts.append(_status_label(query["status"], count))
    if query.get("priority"):
        parts.append(f"de prioridad {PRIORITY_LABELS.get(query['priority'], query['priority'])}")
    if query.get("text"):
        parts.append(f"que {'coincida' if count == 1 else 'coincidan'} con «{query['text']}»")
    if payload.get("project_title"):
        parts.append(f"en el proyecto {payload['project_title']}")
    return " ".join([noun, *parts])


def _found(singular: str, plural: str) -> Callable[[dict[str, Any]], str]:
    def render(payload: dict[str, Any]) -> str:
        total = int(payload.get("total") or 0)
        if total == 0:
            return f"No encontré {_criteria(payload, plural, 0)}."
        listing = _listing(payload.get("results") or [], total)
        if total == 1:
            return f"Encontré 1 {_criteria(payload, singular, 1)}: {listing}."
        return f"Encontré {total} {_criteria(payload, plural, total)}: {listing}."

    return render


def _updated(noun: str) -> Callable[[dict[str, Any]], str]:
    def render(payload: dict[str, Any]) -> str:
        fields = [FIELD_LABELS.get(name, name) for name in payload.get("changed_fields") or []]
        title = payload.get("previous_title") or payload.get("title")
        message = f"Tarea «{title}» actualizada" if noun == "tarea" else f"Proyecto «{title}» actualizado"
        if fields:
            message += f" ({_join(fields)})"
        return message + "."

    return render


def _tasks_counted(payload: dict[str, Any]) -> str:
    total = int(payload.get("total") or 0)
    status = payload.get("status")
    scope = f" {_status_label(status, total)}" if status else ""
    if payload.get("project_title"):
        scope += f" en el proyecto {payload['project_title']}"

    if total == 0:
        return f"No tienes tareas{scope}."
    head = f"Tienes {_plural(total, 'tarea', 'tareas')}{scope}"
    if status:
        return head + "."

    parts = [
        f"{count} {_status_label(name, count)}" for name, count in (payload.get("by_status") or {}).items()
    ]
    uncategorized = int(payload.get("uncategorized") or 0)
    if uncategorized > 0:
        parts.append(f"{uncategorized} sin clasificar")
    if total == 1 or not parts:
        return head + (f" ({parts[0]})." if parts else ".")
    return f"{head}: {_join(parts)}."


def _projects_counted(payload: dict[str, Any]) -> str:
    total = int(payload.get("total") or 0)
    priority = payload.get("priority")
    scope = f" de prioridad {PRIORITY_LABELS.get(priority, priority)}" if priority else ""

    if total == 0:
        return f"No tienes proyectos{scope}."
    head = f"Tienes {_plural(total, 'proyecto', 'proyectos')}{scope}"
    if priority:
        return head + "."

    parts = [
        f"{count} de prioridad {PRIORITY_LABELS.get(name, name)}"
        for name, count in (payload.get("by_priority") or {}).items()
    ]
    uncategorized = int(payload.get("uncategorized") or 0)
    if uncategorized > 0:
        parts.append(f"{uncategorized} sin prioridad")
    if total == 1 or not parts:
        return head + (f" ({parts[0]})." if parts else ".")
    return f"{head}: {_join(parts)}."


_SUCCESS_RENDERERS: dict[str, Callable[[dict[str, Any]], str]] = {
    "task_created": _task_created,
    "project_created": _project_created,
    "tasks_found": _found("tarea", "tareas"),
    "projects_found": _found("proyecto", "proyectos"),
    "task_updated": _updated("tarea"),
    "project_updated": _updated("proyecto"),
    "tasks_counted": _tasks_counted,
    "projects_counted": _projects_counted,
    "help": lambda payload: payload.get("answer") or "",
}


def _entity_not_found(intent: Intent, payload: dict[str, Any]) -> str:
    reason = payload.get("reason")
    reference = payload.get("reference_text")
    if reason == "no_projects":
        return "No hay ningún proyecto donde crear la tarea. Crea primero un proyecto."
    if intent in (Intent.update_task, Intent.update_project):
        noun = _noun(intent)
        if reference:
            article = "ningún proyecto" if noun == "proyecto" else "ninguna tarea"
            return f"No encontré {article} que coincida con «{reference}»."
        return f"No pude identificar qué {noun} deseas actualizar."
    if reference:
        return f"No encontré el proyecto «{reference}»."
    return "No encontré el registro indicado."


def _extraction_incomplete(intent: Intent, payload: dict[str, Any]) -> str:
    reason = payload.get("reason")
    noun = _noun(intent)
    if reason == "empty_patch":
        return f"No entendí qué cambio quieres hacer en {'el proyecto' if noun == 'proyecto' else 'la tarea'} «{payload.get('title')}»."
    if reason == "missing_reference":
        return f"No pude identificar qué {noun} deseas actualizar."
    if reason == "missing_title":
        return f"No entendí el nombre {'del proyecto' if noun == 'proyecto' else 'de la tarea'}. ¿Puedes repetirlo?"
    return "No entendí todos los datos del comando. ¿Puedes repetirlo?"


def _validation_conflict(intent: Intent, payload: dict[str, Any]) -> str:
    reason = payload.get("reason")
    if reason == "duplicate_title":
        title = payload.get("title")
        return f"Ya existe un proyecto llamado «{title}»." if title else "Ya existe un proyecto con ese nombre."
    if reason == "past_due_date":
        return f"La fecha {_date(payload.get('due_date'))} ya pasó; indica una fecha futura."
    return f"No se pudo guardar {'el proyecto' if _noun(intent) == 'proyecto' else 'la tarea'} porque los datos no son válidos."


_FAILURE_RENDERERS: dict[ErrorKind, Callable[[Intent, dict[str, Any]], str]] = {
    ErrorKind.entity_not_found: _entity_not_found,
    ErrorKind.extraction_incomplete: _extraction_incomplete,
    ErrorKind.validation_conflict: _validation_conflict,
    ErrorKind.classification_ambiguous: lambda intent, payload: "No entendí el comando. Prueba a decir «ayuda».",
    ErrorKind.external_service_failure: lambda intent, payload: _GENERIC_FAILURE,
}


def format_result(result: CommandResult) -> str:
    """Render the user-facing message for `result`."""

    payload = result.payload or {}
    if not result.success:
        render_failure = _FAILURE_RENDERERS.get(result.error_kind)
        return render_failure(result.intent, payload) if render_failure else _GENERIC_FAILURE

    render = _SUCCESS_RENDERERS.get(result.action)
    if render is None:
        return "Listo."
    return render(payload)
