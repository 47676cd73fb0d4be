"""Integration tests against a real Postgres database.

These tests exercise the end-to-end path:
pipeline -> PostgresStore -> deterministic SQL builder -> psycopg async pool.

Everything runs inside a throwaway schema. The tests are skipped if `DATABASE_URL` is not
configured or the DB is unreachable.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator, Iterator
from typing import Any, NoReturn

import psycopg
import pytest
from dotenv import load_dotenv
from psycopg import sql
from psycopg.conninfo import make_conninfo

from src.commands.pipeline import CommandPipeline
from src.commands.store import StoreConflictError
from src.db.migrate import connect_utc, list_migration_files, load_migrations, migrate, pending_migrations
from src.db.pool import create_pool, get_conn, open_pool
from src.db.store import PostgresStore
from src.intent.schema import ErrorKind, Priority, TaskFilter, TaskStatus
from tests.fakes import TODAY


def _skip(reason: str) -> NoReturn:
    pytest.skip(reason)


def _require_database_url() -> str:
    load_dotenv(".env")
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        _skip("DATABASE_URL is not set; skipping integration tests")
    return database_url


@pytest.fixture(scope="session")
def schema_url() -> Iterator[str]:
    """Create an isolated schema, migrate it, and yield a conninfo pinned to it."""

    database_url = _require_database_url()
    schema = f"it_{uuid.uuid4().hex}"

    try:
        conn_ctx = connect_utc(database_url)
    except psycopg.OperationalError as exc:
        _skip(f"Postgres is unreachable ({exc}); skipping integration tests")

    with conn_ctx as conn:
        conn.execute(sql.SQL("CREATE SCHEMA {}").format(sql.Identifier(schema)), prepare=False)

    url = make_conninfo(database_url, options=f"-c search_path={schema}")
    applied = migrate(url)
    assert applied == [path.name for path in list_migration_files()]

    yield url

    # noinspection PyBroadException
    try:
        with psycopg.connect(database_url) as conn:
            conn.execute(
                sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(sql.Identifier(schema)),
                prepare=False,
            )
    except Exception:
        # Cleanup best-effort: do not fail test run on teardown.
        pass


@pytest.fixture
async def pg_store(schema_url: str) -> AsyncIterator[PostgresStore]:
    pool = create_pool(schema_url, max_size=2)
    try:
        await open_pool(pool, timeout=5.0)
    except Exception as exc:
        _skip(f"Postgres is unreachable ({exc}); skipping integration tests")

    async with get_conn(pool) as conn:
        await conn.execute("TRUNCATE tasks, projects RESTART IDENTITY", prepare=False)

    yield PostgresStore(pool)
    await pool.close()


def test_migrations_are_idempotent(schema_url: str) -> None:
    assert migrate(schema_url) == []
    with connect_utc(schema_url) as conn:
        assert pending_migrations(conn, load_migrations()) == []


@pytest.mark.asyncio
async def test_pool_enforces_utc_timezone(pg_store: Any) -> None:
    async with get_conn(pg_store._pool) as conn:
        async with conn.cursor() as cur:
            await cur.execute("SHOW TimeZone", prepare=False)
            row = await cur.fetchone()
    assert row is not None
    assert row[0] == "UTC"


@pytest.mark.asyncio
async def test_store_round_trip(pg_store: PostgresStore) -> None:
    project = await pg_store.create_project(title="Casa", description=None, priority=Priority.medium, due_date=None)
    task = await pg_store.create_task(
        title="Comprar pan",
        description="Panadería de la esquina",
        status=TaskStatus.pending,
        due_date=TODAY,
        project_id=project.id,
    )

    found = await pg_store.find_tasks(TaskFilter(text="esquina"))
    updated = await pg_store.update_task(task.id, {"status": TaskStatus.completed})

    assert [t.id for t in found] == [task.id]
    assert updated.status == "completed"
    assert updated.title == "Comprar pan"
    assert await pg_store.count("task", TaskFilter(status=TaskStatus.completed)) == 1


@pytest.mark.asyncio
async def test_store_rejects_duplicate_project_title(pg_store: PostgresStore) -> None:
    await pg_store.create_project(title="Apolo", description=None, priority=None, due_date=None)

    with pytest.raises(StoreConflictError):
        await pg_store.create_project(title="APOLO", description=None, priority=None, due_date=None)


@pytest.mark.asyncio
async def test_pipeline_end_to_end(pg_store: PostgresStore) -> None:
    pipeline = CommandPipeline(pg_store, clock=lambda: TODAY)

    created_project = await pipeline.process_transcript("crear proyecto Casa con prioridad alta")
    created_task = await pipeline.process_transcript("crear tarea Comprar pan")
    completed = await pipeline.process_transcript("marcar la tarea Comprar pan como completada")
    counted = await pipeline.process_transcript("¿cuántas tareas completadas tengo?")
    missing = await pipeline.process_transcript("actualizar la tarea Fénix")

    assert created_project.success
    assert created_task.success
    assert created_task.payload["project_id"] == created_project.payload["id"]
    assert completed.payload["status"] == "completed"
    assert counted.payload["total"] == 1
    assert missing.error_kind == ErrorKind.entity_not_found
