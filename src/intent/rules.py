"""Ordered intent rule table (deterministic classification).

The table is evaluated top to bottom against normalized text and the first matching rule wins.
The order is part of the contract: several utterances match more than one rule, e.g.
"actualizar la tarea del proyecto Apolo" matches both update rules and must stay a task update.

Committed priority:
    1. create task / create project  - creation verbs attached to the entity noun, or an
       utterance that opens with "nueva tarea" / "proyecto nuevo"
    2. count tasks / count projects  - "cuántas tareas" must not read as a search
    3. update task (explicit "tarea") before update project (explicit "proyecto"),
       then a bare update verb defaults to a task update
    4. search task (explicit "tarea"), search project, then a bare search verb -> tasks
    5. help phrases -> assistance

Reordering entries changes classification of ambiguous inputs; tests pin the current order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from src.intent.normalize import normalize_text
from src.intent.schema import Intent

_CREATE_VERBS = (
    r"crear|crea|creame|anadir|anade|agregar|agrega|registrar|registra|"
    r"hacer|haz|apuntar|apunta"
)
_COUNT_WORDS = r"cuantas|cuantos|numero\s+de|cantidad\s+de|contar|cuenta|total\s+de"
_UPDATE_VERBS = (
    r"actualizar|actualiza|modificar|modifica|cambiar|cambia|editar|edita|renombrar|renombra|"
    r"marcar|marca\s+(?:como|la|el)|mover|mueve|completar|completa|terminar|termina|"
    r"finalizar|finaliza|cancelar|cancela|poner|pon\s+(?:la|el)"
)
_SEARCH_VERBS = (
    r"buscar|busca|buscame|encontrar|encuentra|mostrar|muestra|muestrame|listar|ver|"
    r"lista\s+(?:las|los|mis|todas|todos)|ensename|dame|consultar|consulta"
)
_ARTICLES = r"(?:(?:una|un|la|el|las|los|mis|otra|otro|nueva|nuevo)\s+)*"
# "nueva tarea ..." only reads as a creation when it opens the utterance.
_NEW_TASK_LEAD = r"^(?:(?:una|un)\s+)?(?:nueva\s+tarea|tarea\s+nueva)\b"
_NEW_PROJECT_LEAD = r"^(?:(?:una|un)\s+)?(?:nuevo\s+proyecto|proyecto\s+nuevo)\b"


@dataclass(frozen=True)
class IntentRule:
    """One named classification rule."""

    name: str
    intent: Intent
    pattern: re.Pattern[str]


def _rule(name: str, intent: Intent, pattern: str) -> IntentRule:
    return IntentRule(name=name, intent=intent, pattern=re.compile(pattern))


INTENT_RULES: tuple[IntentRule, ...] = (
    _rule(
        "create_task",
        Intent.create_task,
        rf"\b(?:{_CREATE_VERBS})\s+{_ARTICLES}tareas?\b|{_NEW_TASK_LEAD}",
    ),
    _rule(
        "create_project",
        Intent.create_project,
        rf"\b(?:{_CREATE_VERBS})\s+{_ARTICLES}proyectos?\b|{_NEW_PROJECT_LEAD}",
    ),
    _rule("count_tasks", Intent.count_tasks, rf"\b(?:{_COUNT_WORDS})\b.*\btareas?\b"),
    _rule("count_projects", Intent.count_projects, rf"\b(?:{_COUNT_WORDS})\b.*\bproyectos?\b"),
    _rule("update_task", Intent.update_task, rf"\b(?:{_UPDATE_VERBS})\b.*\btareas?\b"),
    _rule("update_project", Intent.update_project, rf"\b(?:{_UPDATE_VERBS})\b.*\bproyectos?\b"),
    _rule("update_task_bare_verb", Intent.update_task, rf"\b(?:{_UPDATE_VERBS})\b"),
    _rule(
        "search_task",
        Intent.search_task,
        rf"\b(?:{_SEARCH_VERBS})\b.*\btareas?\b|\b(?:que|cuales)\s+(?:son\s+)?{_ARTICLES}tareas\b",
    ),
    _rule(
        "search_project",
        Intent.search_project,
        rf"\b(?:{_SEARCH_VERBS})\b.*\bproyectos?\b"
        rf"|\b(?:que|cuales)\s+(?:son\s+)?{_ARTICLES}proyectos\b",
    ),
    _rule("search_task_bare_verb", Intent.search_task, rf"\b(?:{_SEARCH_VERBS})\b"),
    _rule(
        "assistance",
        Intent.assistance,
        r"\b(?:ayuda|ayudame|que\s+puedes\s+hacer|como\s+funciona|como\s+(?:se\s+)?usa)\b",
    ),
)


def match_rule(text: str) -> IntentRule | None:
    """Return the first rule matching the normalized text, or `None`."""

    normalized = normalize_text(text)
    if not normalized:
        return None
    for rule in INTENT_RULES:
        if rule.pattern.search(normalized):
            return rule
    return None
