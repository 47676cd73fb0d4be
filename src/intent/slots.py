"""Slot extraction (LLM optional; declarative pattern rules as fallback).

Each intent declares the slots it cares about (`DECLARED_SLOTS`). Extraction tries, in order:
    1) the LLM, asked for a JSON object limited to the declared slot names;
    2) the ordered `SLOT_RULES` table, evaluated per slot with first-success semantics.

Patterns run on the folded (lowercase, accent-free) text; captured titles and references are
sliced back out of the raw text so the user's casing survives. Creation defaults
(`apply_create_defaults`) are a separate step because the task description needs the resolved
project name.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from pydantic import ValidationError

from src.intent.dates import resolve_date
from src.intent.dictionaries import (
    COMMAND_KEYWORDS,
    MONTH_PATTERN,
    NUMBER_PATTERN,
    PRIORITY_PATTERN,
    STATUS_PATTERN,
    STATUS_PATTERNS,
    STATUS_VERBS,
    WEEKDAY_PATTERN,
    priority_from_word,
    status_from_phrase,
)
from src.intent.llm import LLMClient, LLMError, call_llm, load_prompt, parse_json_object
from src.intent.normalize import fold_text
from src.intent.schema import Intent, Priority, SlotSet, TaskStatus

logger = logging.getLogger(__name__)

DECLARED_SLOTS: dict[Intent, tuple[str, ...]] = {
    Intent.create_task: ("title", "description", "status", "due_date", "project_reference"),
    Intent.create_project: ("title", "description", "priority", "due_date"),
    Intent.search_task: ("reference_text", "status", "project_reference"),
    Intent.search_project: ("reference_text", "priority"),
    Intent.update_task: ("reference_text", "title", "description", "status", "due_date"),
    Intent.update_project: ("reference_text", "title", "description", "priority", "due_date"),
    Intent.count_tasks: ("status", "project_reference"),
    Intent.count_projects: ("priority",),
    Intent.assistance: (),
}

_CREATE_INTENTS = frozenset({Intent.create_task, Intent.create_project})
_UPDATE_INTENTS = frozenset({Intent.update_task, Intent.update_project})
_SEARCH_INTENTS = frozenset({Intent.search_task, Intent.search_project})

MAX_SYNTHESIZED_TITLE_WORDS = 8
DEFAULT_TASK_TITLE = "Nueva tarea"
DEFAULT_PROJECT_TITLE = "Nuevo proyecto"

_LLM_KEY_ALIASES: dict[str, str] = {
    "dueDate": "due_date",
    "completion_date": "due_date",
    "culmination_date": "due_date",
    "referenceText": "reference_text",
    "projectReference": "project_reference",
}

_EDGE_MARKS_RE = re.compile(r"^[\s¿¡]+|[\s?!]+$")
_QUOTES = "\"'«»“”‘’`"
_VALUE_STRIP = _QUOTES + " \t:;,.-"

_DATE_WORDS = (
    rf"pasado\s+manana|manana|hoy|\d{{1,2}}[/\-]\d{{1,2}}|\d{{1,2}}\s+de\s+(?:{MONTH_PATTERN})"
    rf"|(?:la\s+|el\s+)?(?:proxima|proximo|siguiente)\s+(?:semana|mes)"
    rf"|(?:la\s+)?semana\s+que\s+viene|(?:el\s+)?mes\s+que\s+viene"
    rf"|(?:fin|final|finales)\s+del?\s+ano|(?:{MONTH_PATTERN})|(?:{WEEKDAY_PATTERN})"
)

# Trailing clauses that end a free-text value ("Comprar pan| para el proyecto Casa").
_CLAUSE_BREAK_RE = re.compile(
    r"[,;.!?]"
    r"|(?:^|\s+)(?:"
    r"(?:para|en|del|de|al|dentro\s+del?)\s+(?:el\s+|la\s+)?proyecto\b"
    r"|con\s+(?:la\s+|una\s+)?(?:prioridad|estado|fecha|descripcion)\b"
    rf"|(?:de\s+|con\s+)?prioridad\s+(?:{PRIORITY_PATTERN})\b"
    rf"|(?:{PRIORITY_PATTERN})\s+prioridad\b"
    r"|(?:y\s+)?(?:que\s+)?(?:la\s+|su\s+)?descripcion\b"
    rf"|(?:(?:para|antes\s+del?|hasta|el|la|al|del?)\s+)?(?:el\s+|la\s+)?(?:{_DATE_WORDS})\b"
    rf"|en\s+(?:{NUMBER_PATTERN})\s+(?:dias?|semanas?)\b"
    rf"|(?:como|a|en)\s+(?:estado\s+)?(?:{STATUS_PATTERN})\b"
    rf"|a\s+(?:prioridad\s+)?(?:{PRIORITY_PATTERN})\b"
    r"|(?:el|su|de)\s+(?:titulo|nombre|estado|prioridad|fecha)\b"
    r"|(?:a|como|por)\s+(?:titulo|nombre)\b"
    r"|que\s+(?:diga|sea|este|se\s+llame)\b"
    r"|y\s+(?:cambia|cambiar|ponle|ponerle|poner|pon|marca|marcar)\b"
    r")"
)

_DESCRIPTION_BREAK_RE = re.compile(
    r"[;.]"
    r"|\s+(?:(?:para|en|del)\s+(?:el\s+)?proyecto"
    r"|con\s+(?:prioridad|estado|fecha)"
    r"|y\s+(?:prioridad|fecha|estado))\b"
)

_LEADING_NOISE = frozenset(
    {
        "a",
        "al",
        "acerca",
        "con",
        "de",
        "del",
        "el",
        "la",
        "las",
        "los",
        "mis",
        "nueva",
        "nuevas",
        "nuevo",
        "nuevos",
        "que",
        "sobre",
        "tarea",
        "tareas",
        "proyecto",
        "proyectos",
        "todas",
        "todos",
        "relacionadas",
        "relacionados",
        "contengan",
        "tengan",
        "digan",
        "hablen",
    }
)

_STATUS_WORDS_RE = re.compile(rf"\b(?:en\s+estado\s+)?(?:{STATUS_PATTERN})\b")
_PRIORITY_PHRASE_RE = re.compile(
    rf"\b(?:(?:de|con)\s+)?(?:prioridad\s+(?:{PRIORITY_PATTERN})|(?:{PRIORITY_PATTERN})\s+prioridad"
    rf"|urgentes?)\b"
)


@dataclass(frozen=True)
class Utterance:
    """Raw text plus its folded twin; both have the same length whenever folding allows it."""

    raw: str
    folded: str
    today: date

    @classmethod
    def from_text(cls, text: str, today: date) -> Utterance:
        raw = _EDGE_MARKS_RE.sub("", text or "")
        return cls(raw=raw, folded=fold_text(raw), today=today)

    def slice(self, start: int, end: int) -> str:
        source = self.raw if len(self.raw) == len(self.folded) else self.folded
        return source[start:end]


def _clean_value(value: str) -> str | None:
    cleaned = re.sub(r"\s+", " ", value).strip(_VALUE_STRIP)
    return cleaned or None


def _cut_at_clause(utt: Utterance, start: int, end: int, breaker: re.Pattern[str]) -> str | None:
    # Search the segment itself so `^` anchors at the value start.
    match = breaker.search(utt.folded[start:end])
    stop = start + match.start() if match else end
    return _clean_value(utt.slice(start, stop))


def _span(match: re.Match[str], utt: Utterance) -> str | None:
    """Captured `value` group cut at the first trailing clause."""

    return _cut_at_clause(utt, match.start("value"), match.end("value"), _CLAUSE_BREAK_RE)


def _quoted(match: re.Match[str], utt: Utterance) -> str | None:
    return _clean_value(utt.slice(match.start("value"), match.end("value")))


def _description(match: re.Match[str], utt: Utterance) -> str | None:
    return _cut_at_clause(utt, match.start("value"), match.end("value"), _DESCRIPTION_BREAK_RE)


def _strip_spans(raw: str, folded: str, pattern: re.Pattern[str]) -> tuple[str, str]:
    if len(raw) != len(folded):
        raw = folded
    kept_raw: list[str] = []
    kept_folded: list[str] = []
    cursor = 0
    for match in pattern.finditer(folded):
        kept_raw.append(raw[cursor:match.start()])
        kept_folded.append(folded[cursor:match.start()])
        cursor = match.end()
    kept_raw.append(raw[cursor:])
    kept_folded.append(folded[cursor:])
    return " ".join(kept_raw), " ".join(kept_folded)


def _search_term(match: re.Match[str], utt: Utterance) -> str | None:
    """Search keywords with status/priority qualifiers and leading filler words removed."""

    value = _span(match, utt)
    if value is None:
        return None

    raw, folded = _strip_spans(value, fold_text(value), _STATUS_WORDS_RE)
    raw, folded = _strip_spans(raw, folded, _PRIORITY_PHRASE_RE)

    raw_tokens = raw.split()
    folded_tokens = folded.split()
    if len(raw_tokens) != len(folded_tokens):
        raw_tokens = list(folded_tokens)
    while folded_tokens and folded_tokens[0].strip(_VALUE_STRIP) in _LEADING_NOISE:
        folded_tokens.pop(0)
        raw_tokens.pop(0)
    return _clean_value(" ".join(raw_tokens))


def _constant(value: Any) -> Callable[[re.Match[str], Utterance], Any]:
    return lambda match, utt: value


def _status_group(match: re.Match[str], utt: Utterance) -> TaskStatus | None:
    return status_from_phrase(match.group("value"))


def _priority_group(match: re.Match[str], utt: Utterance) -> Priority | None:
    return priority_from_word(match.group("value"))


def _due_date(match: re.Match[str], utt: Utterance) -> date | None:
    return resolve_date(utt.folded, utt.today)


@dataclass(frozen=True)
class SlotRule:
    """One named extraction strategy: `transform(match)` yields the slot value or `None`."""

    name: str
    slot: str
    pattern: re.Pattern[str]
    transform: Callable[[re.Match[str], Utterance], Any]
    intents: frozenset[Intent] | None = None

    def applies_to(self, intent: Intent) -> bool:
        return self.intents is None or intent in self.intents


def _slot_rule(
        name: str,
        slot: str,
        pattern: str,
        transform: Callable[[re.Match[str], Utterance], Any],
        intents: frozenset[Intent] | None = None,
) -> SlotRule:
    return SlotRule(name=name, slot=slot, pattern=re.compile(pattern), transform=transform, intents=intents)


_QUOTED = rf"[{_QUOTES}](?P<value>[^{_QUOTES}]+)[{_QUOTES}]"
_NAMED = r"(?:que\s+se\s+llama|llamad[ao]|titulad[ao]|con\s+(?:el\s+)?(?:nombre|titulo)(?:\s+de)?|de\s+nombre)"
_SEARCH_VERBS = (
    r"buscar|busca|buscame|encontrar|encuentra|mostrar|muestra|muestrame|listar|lista|ver|"
    r"ensename|dame|consultar|consulta"
)
_UPDATE_VERBS = (
    r"actualizar|actualiza|modificar|modifica|cambiar|cambia|editar|edita|renombrar|renombra|"
    r"marcar|marca|mover|mueve|completar|completa|terminar|termina|finalizar|finaliza|"
    r"cancelar|cancela|poner|pon"
)

_TASK_INTENTS = frozenset({Intent.create_task, Intent.update_task})
_PROJECT_INTENTS = frozenset({Intent.create_project, Intent.update_project})

# Rules are grouped by slot; within a slot the listed order is the priority order.
SLOT_RULES: tuple[SlotRule, ...] = (
    # title (create: the new record's title)
    _slot_rule("title_quoted", "title", _QUOTED, _quoted, _CREATE_INTENTS),
    _slot_rule(
        "task_title_named",
        "title",
        rf"\btareas?\s+{_NAMED}\s*:?\s*(?P<value>.+)",
        _span,
        frozenset({Intent.create_task}),
    ),
    _slot_rule(
        "task_title_after_noun",
        "title",
        r"\btareas?\s*:?\s+(?:para\s+(?!(?:el\s+|la\s+)?proyecto))?(?P<value>.+)",
        _span,
        frozenset({Intent.create_task}),
    ),
    _slot_rule(
        "project_title_named",
        "title",
        rf"\bproyectos?\s+{_NAMED}\s*:?\s*(?P<value>.+)",
        _span,
        frozenset({Intent.create_project}),
    ),
    _slot_rule(
        "project_title_after_noun",
        "title",
        r"\bproyectos?\s*:?\s+(?:para\s+)?(?P<value>.+)",
        _span,
        frozenset({Intent.create_project}),
    ),
    # title (update: the replacement title)
    _slot_rule(
        "new_title_explicit",
        "title",
        r"\b(?:titulo|nombre)\s+(?:a|por|como|en)\s+(?P<value>.+)",
        _span,
        _UPDATE_INTENTS,
    ),
    _slot_rule(
        "new_title_after_target",
        "title",
        r"\b(?:titulo|nombre)\b.*?\b(?:tarea|proyecto)\s+.+?\s(?:a|por)\s+(?P<value>.+)",
        _span,
        _UPDATE_INTENTS,
    ),
    _slot_rule(
        "new_title_renamed",
        "title",
        r"\brenombra(?:r)?\b.*?\s(?:a|como|por)\s+(?P<value>.+)",
        _span,
        _UPDATE_INTENTS,
    ),
    _slot_rule(
        "new_title_called",
        "title",
        r"\b(?:que\s+se\s+llame|llamarse|pasa\s+a\s+llamarse)\s+(?P<value>.+)",
        _span,
        _UPDATE_INTENTS,
    ),
    # description
    _slot_rule(
        "description_explicit",
        "description",
        r"\b(?:con\s+(?:la\s+)?|y\s+)?descripcion\s*:?\s*(?:de\s+|que\s+diga\s+|a\s+)?(?P<value>.+)",
        _description,
    ),
    _slot_rule("description_says", "description", r"\bque\s+diga\s+(?P<value>.+)", _description),
    # reference_text (update: the record being changed)
    _slot_rule(
        "task_reference_quoted",
        "reference_text",
        rf"\btareas?\s+{_QUOTED}",
        _quoted,
        frozenset({Intent.update_task}),
    ),
    _slot_rule(
        "task_reference_after_noun",
        "reference_text",
        r"\btarea\s+(?:(?:llamada|titulada|numero)\s+)?(?P<value>.+)",
        _span,
        frozenset({Intent.update_task}),
    ),
    _slot_rule(
        "project_reference_quoted",
        "reference_text",
        rf"\bproyectos?\s+{_QUOTED}",
        _quoted,
        frozenset({Intent.update_project}),
    ),
    _slot_rule(
        "project_reference_after_noun",
        "reference_text",
        r"\bproyecto\s+(?:(?:llamado|titulado|numero)\s+)?(?P<value>.+)",
        _span,
        frozenset({Intent.update_project}),
    ),
    _slot_rule(
        "reference_after_verb",
        "reference_text",
        rf"\b(?:{_UPDATE_VERBS})\s+(?:(?:la|el|mi)\s+)?(?P<value>.+)",
        _span,
        _UPDATE_INTENTS,
    ),
    # reference_text (search: keywords)
    _slot_rule("search_quoted", "reference_text", _QUOTED, _quoted, _SEARCH_INTENTS),
    _slot_rule(
        "search_after_verb",
        "reference_text",
        rf"\b(?:{_SEARCH_VERBS})\b\s*(?P<value>.+)",
        _search_term,
        _SEARCH_INTENTS,
    ),
    # project_reference (project a task belongs to)
    _slot_rule(
        "project_mention",
        "project_reference",
        r"\b(?:en|para|del|de|al|dentro\s+del?)\s+(?:el\s+|la\s+)?proyecto\s+"
        r"(?:(?:llamado|titulado)\s+)?(?P<value>.+)",
        _span,
    ),
    _slot_rule(
        "project_owner",
        "project_reference",
        r"\b(?:tiene|tienen|hay\s+en|quedan\s+en)\s+(?:el\s+)?proyecto\s+(?P<value>.+)",
        _span,
    ),
    # status
    *(
        _slot_rule(
            f"status_verb_{status.value}",
            "status",
            rf"^\s*(?:{verbs})\b",
            _constant(status),
            frozenset({Intent.update_task}),
        )
        for status, verbs in STATUS_VERBS.items()
    ),
    _slot_rule(
        "status_after_marker",
        "status",
        rf"\b(?:como|a|estado)\s+(?P<value>{STATUS_PATTERN})\b",
        _status_group,
    ),
    *(
        _slot_rule(f"status_{status.value}", "status", rf"\b(?:{pattern})\b", _constant(status))
        for status, pattern in STATUS_PATTERNS
    ),
    # priority
    _slot_rule(
        "priority_after_noun",
        "priority",
        rf"\bprioridad\s+(?:es\s+|de\s+|a\s+)?(?P<value>{PRIORITY_PATTERN})\b",
        _priority_group,
    ),
    _slot_rule(
        "priority_before_noun",
        "priority",
        rf"\b(?P<value>{PRIORITY_PATTERN})\s+prioridad\b",
        _priority_group,
    ),
    _slot_rule(
        "priority_changed_to",
        "priority",
        rf"\bprioridad\b.*?\b(?:a|en|como)\s+(?P<value>{PRIORITY_PATTERN})\b",
        _priority_group,
    ),
    _slot_rule("priority_urgent", "priority", r"\burgentes?\b", _constant(Priority.high)),
    # due_date
    _slot_rule("due_date", "due_date", r"(?s).+", _due_date),
)


def _coerce_llm_value(slot: str, value: Any, today: date) -> Any:
    if value is None:
        return None
    if slot == "status":
        return status_from_phrase(fold_text(str(value)))
    if slot == "priority":
        return priority_from_word(fold_text(str(value)))
    if slot == "due_date":
        text = str(value).strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return resolve_date(text, today)
    if isinstance(value, (str, int, float)):
        return _clean_value(str(value))
    return None


def _detach_new_title(reference: str, new_title: str) -> str | None:
    """Drop a trailing "a <new title>" from an update reference."""

    pattern = rf"\s+(?:a|por|como|en)\s+{re.escape(fold_text(new_title))}$"
    match = re.search(pattern, fold_text(reference))
    if not match:
        return reference
    return _clean_value(reference[: match.start()])


def synthesize_title(intent: Intent, text: str) -> str:
    """Title built from leftover words once command keywords and trailing clauses are removed."""

    utt = Utterance.from_text(text, date.today())
    match = _CLAUSE_BREAK_RE.search(utt.folded)
    head = utt.slice(0, match.start() if match else len(utt.folded))

    words: list[str] = []
    for token in head.split():
        if fold_text(token).strip(_VALUE_STRIP) in COMMAND_KEYWORDS:
            continue
        cleaned = token.strip(_VALUE_STRIP)
        if cleaned:
            words.append(cleaned)

    if words:
        title = " ".join(words[:MAX_SYNTHESIZED_TITLE_WORDS])
        return title[:1].upper() + title[1:]
    return DEFAULT_PROJECT_TITLE if intent == Intent.create_project else DEFAULT_TASK_TITLE


class SlotExtractor:
    """Per-intent slot extraction with LLM-first, rules-second degradation."""

    def __init__(
            self,
            llm: LLMClient | None = None,
            *,
            llm_timeout_s: float = 10.0,
            default_due_days: int = 7,
    ) -> None:
        self._llm = llm
        self._llm_timeout_s = llm_timeout_s
        self._default_due_days = default_due_days

    async def extract(self, intent: Intent, text: str, *, today: date) -> SlotSet:
        """Extract the declared slots for `intent`; never raises."""

        declared = DECLARED_SLOTS[intent]
        if not declared:
            return SlotSet()

        slots: SlotSet | None = None
        if self._llm is not None:
            try:
                slots = await self._extract_with_llm(intent, text, declared, today=today)
            except LLMError as exc:
                logger.warning("llm extraction unavailable intent=%s reason=%s", intent, exc)

        if slots is None:
            slots = self.extract_with_rules(intent, text, today=today)

        if intent in _CREATE_INTENTS and slots.title is None:
            slots = slots.model_copy(update={"title": synthesize_title(intent, text)})
        return slots

    def extract_with_rules(self, intent: Intent, text: str, *, today: date) -> SlotSet:
        """Deterministic extraction: first successful rule per declared slot."""

        utt = Utterance.from_text(text, today)
        values: dict[str, Any] = {}
        for slot in DECLARED_SLOTS[intent]:
            for rule in SLOT_RULES:
                if rule.slot != slot or not rule.applies_to(intent):
                    continue
                match = rule.pattern.search(utt.folded)
                if not match:
                    continue
                value = rule.transform(match, utt)
                if value is not None:
                    logger.debug("slot=%s rule=%s", slot, rule.name)
                    values[slot] = value
                    break

        if intent in _UPDATE_INTENTS and values.get("reference_text") and values.get("title"):
            values["reference_text"] = _detach_new_title(values["reference_text"], values["title"])
        return SlotSet(**values)

    async def _extract_with_llm(
            self,
            intent: Intent,
            text: str,
            declared: tuple[str, ...],
            *,
            today: date,
    ) -> SlotSet:
        user_prompt = json.dumps(
            {
                "transcripcion": text,
                "intencion": intent.value,
                "hoy": today.isoformat(),
                "campos": list(declared),
            },
            ensure_ascii=False,
        )
        answer = await call_llm(
            self._llm,
            load_prompt("slots_v1.md"),
            user_prompt,
            expected_shape="json",
            timeout_s=self._llm_timeout_s,
        )
        obj = parse_json_object(answer)

        values: dict[str, Any] = {}
        for key, value in obj.items():
            slot = _LLM_KEY_ALIASES.get(key, key)
            if slot not in declared:
                continue
            values[slot] = _coerce_llm_value(slot, value, today)

        try:
            return SlotSet(**values)
        except ValidationError as exc:
            raise LLMError(f"LLM slots failed validation: {exc.error_count()} errors") from exc

    def apply_create_defaults(
            self,
            intent: Intent,
            slots: SlotSet,
            *,
            today: date,
            project_title: str | None = None,
    ) -> SlotSet:
        """Fill absent creation slots with the documented defaults.

        Only creation intents get defaults; updates must leave absent fields untouched.
        """

        if intent not in _CREATE_INTENTS:
            return slots

        title = slots.title or (
            DEFAULT_PROJECT_TITLE if intent == Intent.create_project else DEFAULT_TASK_TITLE
        )
        update: dict[str, Any] = {"title": title}

        if intent == Intent.create_task:
            if slots.description is None:
                if project_title:
                    update["description"] = f"Tarea «{title}» del proyecto {project_title}"
                else:
                    update["description"] = f"Tarea «{title}» creada por comando de voz"
            if slots.due_date is None:
                update["due_date"] = today + timedelta(days=self._default_due_days)
            if slots.status is None:
                update["status"] = TaskStatus.pending
        else:
            if slots.description is None:
                update["description"] = f"Proyecto «{title}» creado por comando de voz"
            if slots.priority is None:
                update["priority"] = Priority.medium

        return slots.model_copy(update=update)
