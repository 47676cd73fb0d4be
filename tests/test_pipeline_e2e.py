"""End-to-end pipeline tests: transcript in, formatted result out, against the in-memory store."""

from __future__ import annotations

import logging

import pytest

from src.commands.pipeline import CommandPipeline
from src.commands.store import StoreError
from src.intent.schema import ErrorKind, Intent, MatchStrategy, Snapshot
from tests.fakes import TODAY, FakeLLM, FakeStore


def _pipeline(store: FakeStore, **kwargs) -> CommandPipeline:
    return CommandPipeline(store, clock=lambda: TODAY, **kwargs)


@pytest.mark.asyncio
async def test_create_task_falls_back_to_first_project(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("crear tarea Comprar pan")

    assert result.success
    assert result.intent == Intent.create_task
    assert result.action == "task_created"
    assert result.payload["title"] == "Comprar pan"
    assert result.payload["project_id"] == 1
    assert result.payload["due_date"] == "2024-07-15"
    assert result.payload["status"] == "pending"
    assert result.reference.match_strategy == MatchStrategy.fallback
    assert result.message == "Tarea «Comprar pan» creada en el proyecto Casa, con fecha límite 15/07/2024."


@pytest.mark.asyncio
async def test_create_task_in_mentioned_project(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("crear tarea Diseñar logo para el lanzamiento web")

    assert result.success
    assert result.payload["project_id"] == 2


@pytest.mark.asyncio
async def test_create_task_with_unknown_project_is_a_tagged_guess(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("crear tarea Comprar pan en el proyecto Fénix")

    assert result.success
    assert result.payload["project_id"] == 1
    assert result.reference.match_strategy == MatchStrategy.fallback
    assert result.reference.confidence == 0.1


@pytest.mark.asyncio
async def test_search_tasks_by_keyword(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("buscar tareas de marketing")

    assert result.success
    assert result.intent == Intent.search_task
    assert result.payload["total"] == 2
    assert {item["id"] for item in result.payload["results"]} == {2, 3}
    assert result.message.startswith("Encontré 2 tareas")


@pytest.mark.asyncio
async def test_create_project_with_priority(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("crear proyecto Apolo con prioridad alta")

    assert result.success
    assert result.intent == Intent.create_project
    assert result.payload["title"] == "Apolo"
    assert result.payload["priority"] == "high"
    assert result.message == "Proyecto «Apolo» creado con prioridad alta."


@pytest.mark.asyncio
async def test_update_unknown_task_is_not_found(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("actualizar la tarea Fénix")

    assert not result.success
    assert result.error_kind == ErrorKind.entity_not_found
    assert "update_task" not in store.calls
    assert result.message == "No encontré ninguna tarea que coincida con «Fénix»."


@pytest.mark.asyncio
async def test_update_task_status(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("marcar la tarea Comprar pan como completada")

    assert result.success
    assert result.payload["status"] == "completed"
    assert result.reference.id == 1


@pytest.mark.asyncio
async def test_count_in_unknown_project(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("¿cuántas tareas hay en el proyecto Fénix?")

    assert result.error_kind == ErrorKind.entity_not_found
    assert result.message == "No encontré el proyecto «Fénix»."


@pytest.mark.asyncio
async def test_intent_hint_skips_classification(store: FakeStore) -> None:
    llm = FakeLLM()
    result = await _pipeline(store, llm=llm).process_transcript("lo de siempre", intent_hint="countTasks")

    assert result.intent == Intent.count_tasks
    assert result.payload["total"] == 4
    # Only slot extraction reached the LLM.
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_project_id_hint_overrides_resolution(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("crear tarea Diseñar logo", project_id_hint=2)

    assert result.success
    assert result.payload["project_id"] == 2
    assert result.payload["project_title"] == "Lanzamiento web"


@pytest.mark.asyncio
async def test_supplied_snapshot_is_not_reloaded(store: FakeStore, snapshot: Snapshot) -> None:
    result = await _pipeline(store).process_transcript("¿cuántas tareas tengo?", snapshot=snapshot)

    assert result.success
    assert store.calls == ["count"]


@pytest.mark.asyncio
async def test_store_failure_is_reported_not_raised() -> None:
    store = FakeStore(error=StoreError("connection refused"))

    result = await _pipeline(store).process_transcript("buscar tareas de marketing")

    assert not result.success
    assert result.error_kind == ErrorKind.external_service_failure
    assert "connection refused" not in result.message


@pytest.mark.asyncio
async def test_unexpected_error_is_logged_and_contained(caplog: pytest.LogCaptureFixture) -> None:
    store = FakeStore(error=ValueError("boom"))

    with caplog.at_level(logging.ERROR, logger="src.commands.pipeline"):
        result = await _pipeline(store).process_transcript("buscar tareas de marketing")

    assert result.error_kind == ErrorKind.external_service_failure
    assert result.payload == {"reason": "unexpected"}
    assert "pipeline failed" in caplog.text


@pytest.mark.asyncio
async def test_assistance_without_llm(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("ayuda")

    assert result.success
    assert result.intent == Intent.assistance
    assert result.message == result.payload["answer"]


@pytest.mark.asyncio
async def test_llm_without_text_content_still_answers_with_help(store: FakeStore) -> None:
    llm = FakeLLM([None, None])

    result = await _pipeline(store, llm=llm).process_transcript("hola que tal")

    assert result.success
    assert result.intent == Intent.assistance
    assert result.payload["source"] == "help"


@pytest.mark.asyncio
async def test_reading_a_new_task_does_not_create_one(store: FakeStore) -> None:
    result = await _pipeline(store).process_transcript("buscar la nueva tarea de marketing")

    assert result.intent == Intent.search_task
    assert result.payload["total"] == 2
    assert "create_task" not in store.calls
