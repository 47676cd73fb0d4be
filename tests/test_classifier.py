"""Tests for intent classification (rules first, LLM only for unmatched text)."""

from __future__ import annotations

import pytest

from src.intent.classifier import IntentClassifier, intent_from_llm_answer
from src.intent.llm import LLMError
from src.intent.schema import Intent
from tests.fakes import FakeLLM


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text",
    ["crear tarea Comprar pan", "buscar tareas de marketing", "cuántos proyectos tengo"],
)
async def test_rule_match_is_identical_with_and_without_llm(text: str) -> None:
    llm = FakeLLM(["assistance"])

    with_llm = await IntentClassifier(llm).classify(text)
    without_llm = await IntentClassifier().classify(text)

    assert with_llm == without_llm
    assert llm.calls == []


@pytest.mark.asyncio
async def test_llm_classifies_unmatched_text() -> None:
    llm = FakeLLM(["countProjects"])

    intent = await IntentClassifier(llm).classify("me gustaría saber la cifra de iniciativas")

    assert intent == Intent.count_projects
    assert len(llm.calls) == 1
    system_prompt, user_prompt, shape = llm.calls[0]
    assert "createTask" in system_prompt
    assert "iniciativas" in user_prompt
    assert shape == "text"


@pytest.mark.asyncio
async def test_unmatched_text_without_llm_is_assistance() -> None:
    assert await IntentClassifier().classify("hola, qué tal") == Intent.assistance


@pytest.mark.asyncio
async def test_llm_error_falls_back_to_assistance() -> None:
    llm = FakeLLM(error=LLMError("boom"))
    assert await IntentClassifier(llm).classify("hola, qué tal") == Intent.assistance


@pytest.mark.asyncio
async def test_llm_timeout_falls_back_to_assistance() -> None:
    llm = FakeLLM(["createTask"], delay_s=0.3)
    classifier = IntentClassifier(llm, llm_timeout_s=0.05)
    assert await classifier.classify("hola, qué tal") == Intent.assistance


@pytest.mark.asyncio
async def test_unknown_llm_answer_is_assistance() -> None:
    llm = FakeLLM(["no lo sé"])
    assert await IntentClassifier(llm).classify("hola, qué tal") == Intent.assistance


def test_intent_from_llm_answer() -> None:
    assert intent_from_llm_answer("searchProject") == Intent.search_project
    assert intent_from_llm_answer(" createtask. ") == Intent.create_task
    assert intent_from_llm_answer("La categoría es updateTask") == Intent.update_task
    assert intent_from_llm_answer("ninguna") is None


@pytest.mark.asyncio
async def test_llm_answer_without_text_falls_back_to_assistance() -> None:
    llm = FakeLLM([None])

    assert await IntentClassifier(llm).classify("hola, qué tal") == Intent.assistance
    assert len(llm.calls) == 1
