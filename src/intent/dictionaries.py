"""Spanish vocabularies for statuses, priorities, calendar names and command keywords.

All entries are written in folded form (lowercase, no accents) because they are matched against
`fold_text`/`normalize_text` output. Keep these small and deterministic.
"""

from __future__ import annotations

import re

from src.intent.schema import Priority, TaskStatus

# Order matters: the first status whose pattern matches wins.
STATUS_PATTERNS: tuple[tuple[TaskStatus, str], ...] = (
    (TaskStatus.in_progress, r"en\s+progreso|en\s+curso|en\s+proceso|empezad[ao]s?|iniciad[ao]s?"),
    (TaskStatus.completed, r"completad[ao]s?|terminad[ao]s?|finalizad[ao]s?|hech[ao]s?"),
    (TaskStatus.cancelled, r"cancelad[ao]s?|anulad[ao]s?"),
    (TaskStatus.pending, r"pendientes?|por\s+hacer|sin\s+empezar"),
)

STATUS_VERBS: dict[TaskStatus, str] = {
    TaskStatus.completed: r"completar|completa|terminar|termina|finalizar|finaliza",
    TaskStatus.cancelled: r"cancelar|cancela|anular|anula",
    TaskStatus.in_progress: r"empezar|empieza|iniciar|inicia|comenzar|comienza",
}

PRIORITY_WORDS: dict[str, Priority] = {
    "alta": Priority.high,
    "urgente": Priority.high,
    "maxima": Priority.high,
    "media": Priority.medium,
    "normal": Priority.medium,
    "baja": Priority.low,
    "minima": Priority.low,
}

PRIORITY_PATTERN = "|".join(PRIORITY_WORDS)
STATUS_PATTERN = "|".join(pattern for _, pattern in STATUS_PATTERNS)

MONTH_NAMES: tuple[str, ...] = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)
MONTHS: dict[str, int] = {name: idx + 1 for idx, name in enumerate(MONTH_NAMES)}
MONTHS["setiembre"] = 9
MONTH_PATTERN = "|".join(sorted(MONTHS, key=lambda name: (-len(name), name)))

WEEKDAYS: dict[str, int] = {
    "lunes": 0,
    "martes": 1,
    "miercoles": 2,
    "jueves": 3,
    "viernes": 4,
    "sabado": 5,
    "domingo": 6,
}
WEEKDAY_PATTERN = "|".join(WEEKDAYS)

NUMBER_WORDS: dict[str, int] = {
    "un": 1,
    "una": 1,
    "uno": 1,
    "dos": 2,
    "tres": 3,
    "cuatro": 4,
    "cinco": 5,
    "seis": 6,
    "siete": 7,
    "ocho": 8,
    "nueve": 9,
    "diez": 10,
    "quince": 15,
    "veinte": 20,
    "treinta": 30,
}
NUMBER_PATTERN = r"\d{1,3}|" + "|".join(sorted(NUMBER_WORDS, key=lambda w: (-len(w), w)))

# Words dropped when a title has to be synthesized from leftover tokens.
COMMAND_KEYWORDS: frozenset[str] = frozenset(
    {
        "crear",
        "crea",
        "creame",
        "nueva",
        "nuevo",
        "anadir",
        "anade",
        "agregar",
        "agrega",
        "hacer",
        "haz",
        "registrar",
        "registra",
        "quiero",
        "necesito",
        "por",
        "favor",
        "una",
        "un",
        "la",
        "el",
        "tarea",
        "proyecto",
        "llamada",
        "llamado",
        "titulada",
        "titulado",
        "con",
        "nombre",
        "titulo",
    }
)

# Words ignored when scoring token overlap between a reference and a record title.
STOP_WORDS: frozenset[str] = frozenset(
    {
        "a",
        "al",
        "con",
        "de",
        "del",
        "el",
        "en",
        "la",
        "las",
        "lo",
        "los",
        "mi",
        "mis",
        "para",
        "por",
        "que",
        "se",
        "sobre",
        "su",
        "un",
        "una",
        "y",
        "tarea",
        "tareas",
        "proyecto",
        "proyectos",
    }
)


def priority_from_word(word: str | None) -> Priority | None:
    """Map a priority value (`high`) or a folded word (`alta`, `baja`, ...) to `Priority`."""

    value = (word or "").strip().lower()
    if value in Priority.__members__:
        return Priority(value)
    return PRIORITY_WORDS.get(value)


def status_from_phrase(phrase: str | None) -> TaskStatus | None:
    """Map a status value (`in_progress`) or a folded phrase (`en progreso`) to `TaskStatus`."""

    value = (phrase or "").strip().lower()
    if value in TaskStatus.__members__:
        return TaskStatus(value)
    for status, pattern in STATUS_PATTERNS:
        if re.fullmatch(pattern, value):
            return status
    return None
