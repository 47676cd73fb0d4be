"""Tests for the Spanish status/priority vocabularies."""

from __future__ import annotations

from src.intent.dictionaries import priority_from_word, status_from_phrase
from src.intent.schema import Priority, TaskStatus


def test_status_phrases() -> None:
    assert status_from_phrase("pendiente") == TaskStatus.pending
    assert status_from_phrase("por hacer") == TaskStatus.pending
    assert status_from_phrase("en progreso") == TaskStatus.in_progress
    assert status_from_phrase("completadas") == TaskStatus.completed
    assert status_from_phrase("hecha") == TaskStatus.completed
    assert status_from_phrase("cancelada") == TaskStatus.cancelled


def test_status_accepts_enum_values_and_rejects_unknown() -> None:
    assert status_from_phrase("in_progress") == TaskStatus.in_progress
    assert status_from_phrase("bloqueada") is None
    assert status_from_phrase(None) is None


def test_priority_words() -> None:
    assert priority_from_word("alta") == Priority.high
    assert priority_from_word("urgente") == Priority.high
    assert priority_from_word("media") == Priority.medium
    assert priority_from_word("baja") == Priority.low
    assert priority_from_word("low") == Priority.low
    assert priority_from_word("altisima") is None
