"""Spanish due-date resolution (UTC calendar days).

Resolution order:
    1) explicit dates: numeric `D/M[/Y]`, then textual `D de <mes> [de Y]`;
    2) relative phrases (`mañana`, `próxima semana`, `fin de año`, month names, ...);
    3) nothing found -> `None`.

Explicit dates always win over relative phrases, even when both appear in the text. A value that is
not a real calendar day (`31/2`) is skipped rather than partially emitted.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

import dateparser
from dateparser.conf import Settings as DateparserSettings

from src.intent.dictionaries import (
    MONTH_PATTERN,
    MONTHS,
    NUMBER_PATTERN,
    NUMBER_WORDS,
    WEEKDAY_PATTERN,
    WEEKDAYS,
)
from src.intent.normalize import fold_text

_DATEPARSER_SETTINGS = DateparserSettings().replace(
    STRICT_PARSING=True,
    DATE_ORDER="DMY",
    TIMEZONE="UTC",
    TO_TIMEZONE="UTC",
    RETURN_AS_TIMEZONE_AWARE=True,
)

_NUMERIC_DATE_RE = re.compile(
    r"(?<![\d/\-])(?P<d>\d{1,2})[/\-](?P<m>\d{1,2})(?:[/\-](?P<y>\d{4}|\d{2}))?(?![\d/\-])"
)

_TEXTUAL_DATE_RE = re.compile(
    rf"\b(?P<d>\d{{1,2}})\s+de\s+(?P<m>{MONTH_PATTERN})(?:\s+(?:de|del)\s+(?P<y>\d{{4}}))?\b"
)


def _expand_year(raw: str) -> int:
    year = int(raw)
    if len(raw) == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _roll_forward(month: int, day: int, reference: date) -> date | None:
    """Date in the reference year, or the next one if that day has already passed."""

    candidate = _safe_date(reference.year, month, day)
    if candidate is not None and candidate < reference:
        candidate = _safe_date(reference.year + 1, month, day)
    return candidate


def _parse_es_date_fragment(fragment: str) -> date | None:
    dt = dateparser.parse(fragment, languages=["es"], settings=_DATEPARSER_SETTINGS)
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.date()


def _explicit_date(text: str, reference: date) -> date | None:
    for match in _NUMERIC_DATE_RE.finditer(text):
        day, month = int(match.group("d")), int(match.group("m"))
        if match.group("y"):
            found = _safe_date(_expand_year(match.group("y")), month, day)
        else:
            found = _roll_forward(month, day, reference)
        if found is not None:
            return found

    for match in _TEXTUAL_DATE_RE.finditer(text):
        day, month = int(match.group("d")), MONTHS[match.group("m")]
        if match.group("y"):
            found = _parse_es_date_fragment(match.group(0)) or _safe_date(
                int(match.group("y")), month, day
            )
        else:
            found = _roll_forward(month, day, reference)
        if found is not None:
            return found

    return None


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""

    index = day.month - 1 + months
    year = day.year + index // 12
    month = index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _count(raw: str) -> int:
    return int(raw) if raw.isdigit() else NUMBER_WORDS[raw]


def _next_weekday(reference: date, weekday: int) -> date:
    delta = (weekday - reference.weekday()) % 7
    return reference + timedelta(days=delta or 7)


def _end_of_named_month(month: int, reference: date) -> date:
    year = reference.year + 1 if month < reference.month else reference.year
    return date(year, month, calendar.monthrange(year, month)[1])


_RelativeRule = tuple[re.Pattern[str], Callable[[re.Match[str], date], date]]

# Checked in order; the first phrase found wins ("pasado mañana" must precede "mañana").
_RELATIVE_RULES: tuple[_RelativeRule, ...] = (
    (re.compile(r"\bpasado\s+manana\b"), lambda m, ref: ref + timedelta(days=2)),
    (re.compile(r"\bmanana\b"), lambda m, ref: ref + timedelta(days=1)),
    (re.compile(r"\bhoy\b"), lambda m, ref: ref),
    (
        re.compile(rf"\ben\s+(?P<n>{NUMBER_PATTERN})\s+dias?\b"),
        lambda m, ref: ref + timedelta(days=_count(m.group("n"))),
    ),
    (
        re.compile(rf"\ben\s+(?P<n>{NUMBER_PATTERN})\s+semanas?\b"),
        lambda m, ref: ref + timedelta(weeks=_count(m.group("n"))),
    ),
    (
        re.compile(r"\b(?:(?:proxima|siguiente)\s+semana|semana\s+que\s+viene)\b"),
        lambda m, ref: ref + timedelta(days=7),
    ),
    (
        re.compile(r"\b(?:(?:proximo|siguiente)\s+mes|mes\s+que\s+viene)\b"),
        lambda m, ref: add_months(ref, 1),
    ),
    (
        re.compile(r"\b(?:fin|final|finales)\s+del?\s+ano\b"),
        lambda m, ref: date(ref.year, 12, 31),
    ),
    (
        re.compile(rf"\b(?P<wd>{WEEKDAY_PATTERN})\b"),
        lambda m, ref: _next_weekday(ref, WEEKDAYS[m.group("wd")]),
    ),
    (
        re.compile(rf"\b(?P<m>{MONTH_PATTERN})\b"),
        lambda m, ref: _end_of_named_month(MONTHS[m.group("m")], ref),
    ),
)


def _relative_date(text: str, reference: date) -> date | None:
    for pattern, compute in _RELATIVE_RULES:
        match = pattern.search(text)
        if match:
            return compute(match, reference)
    return None


def today_utc() -> date:
    """Current UTC calendar day."""

    return datetime.now(UTC).date()


def resolve_date(text: str, reference: date | None = None) -> date | None:
    """Resolve the first date expression in `text` relative to `reference` (default: today)."""

    value = fold_text(text).strip()
    if not value:
        return None

    ref = reference or today_utc()
    return _explicit_date(value, ref) or _relative_date(value, ref)


def resolve_iso_date(text: str, reference: date | None = None) -> str | None:
    """Same as `resolve_date`, formatted as `YYYY-MM-DD`."""

    resolved = resolve_date(text, reference)
    return resolved.isoformat() if resolved is not None else None
