"""Tests for Spanish due-date resolution (explicit and relative expressions)."""

from __future__ import annotations

from datetime import date

import pytest

from src.intent.dates import add_months, resolve_date, resolve_iso_date

MONDAY = date(2024, 7, 8)


def test_manana_is_next_day() -> None:
    assert resolve_iso_date("mañana", MONDAY) == "2024-07-09"


def test_en_una_semana_adds_seven_days() -> None:
    assert resolve_iso_date("en una semana", MONDAY) == "2024-07-15"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("pasado mañana", date(2024, 7, 10)),
        ("hoy", date(2024, 7, 8)),
        ("en 3 días", date(2024, 7, 11)),
        ("en dos semanas", date(2024, 7, 22)),
        ("la próxima semana", date(2024, 7, 15)),
        ("la semana que viene", date(2024, 7, 15)),
        ("el próximo mes", date(2024, 8, 8)),
        ("para fin de año", date(2024, 12, 31)),
        ("el viernes", date(2024, 7, 12)),
        ("el lunes", date(2024, 7, 15)),
    ],
)
def test_relative_phrases(text: str, expected: date) -> None:
    assert resolve_date(text, MONDAY) == expected


def test_named_month_is_last_day_and_rolls_to_next_year() -> None:
    assert resolve_date("para agosto", MONDAY) == date(2024, 8, 31)
    assert resolve_date("para marzo", MONDAY) == date(2025, 3, 31)
    assert resolve_date("en febrero", MONDAY) == date(2025, 2, 28)


def test_numeric_dates() -> None:
    assert resolve_date("el 15/08", MONDAY) == date(2024, 8, 15)
    assert resolve_date("el 1/3", MONDAY) == date(2025, 3, 1)
    assert resolve_date("20-09-2025", MONDAY) == date(2025, 9, 20)
    assert resolve_date("5/1/30", MONDAY) == date(2030, 1, 5)
    assert resolve_date("5/1/99", MONDAY) == date(1999, 1, 5)


def test_textual_dates() -> None:
    assert resolve_date("el 25 de diciembre", MONDAY) == date(2024, 12, 25)
    assert resolve_date("el 15 de agosto de 2025", MONDAY) == date(2025, 8, 15)


def test_explicit_date_wins_over_relative_phrase() -> None:
    assert resolve_date("mañana o mejor el 20/07", MONDAY) == date(2024, 7, 20)


def test_invalid_calendar_values_are_ignored() -> None:
    assert resolve_date("el 31/02/2025", MONDAY) is None
    assert resolve_date("el 31/02/2025 o mañana", MONDAY) == date(2024, 7, 9)


def test_no_date_expression() -> None:
    assert resolve_date("comprar pan", MONDAY) is None
    assert resolve_iso_date("", MONDAY) is None


def test_add_months_clamps_day() -> None:
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)
