"""Composition root: settings -> pool -> store -> pipeline."""

from __future__ import annotations

from dataclasses import dataclass

from psycopg_pool import AsyncConnectionPool

from src.commands.pipeline import CommandPipeline
from src.config.settings import Settings
from src.db.pool import create_pool
from src.db.store import PostgresStore
from src.intent.llm import LLMClient, OpenAIChatClient


@dataclass(frozen=True)
class App:
    """Long-lived dependencies handed to every handler call."""

    settings: Settings
    pool: AsyncConnectionPool
    pipeline: CommandPipeline


def build_llm_client(settings: Settings) -> LLMClient | None:
    config = settings.llm_config()
    return OpenAIChatClient(config) if config is not None else None


def create_app(settings: Settings) -> App:
    """Wire the pipeline to Postgres. The pool is returned unopened (see `src.db.pool.open_pool`)."""

    pool = create_pool(settings.database_url, max_size=settings.db_pool_max_size)
    pipeline = CommandPipeline(
        PostgresStore(pool),
        llm=build_llm_client(settings),
        llm_timeout_s=settings.llm_timeout_s,
        store_timeout_s=settings.store_timeout_s,
        search_result_limit=settings.search_result_limit,
        default_due_days=settings.default_due_days,
    )
    return App(settings=settings, pool=pool, pipeline=pipeline)
