"""Async Postgres pool for the project/task store.

Due dates are compared against UTC calendar days, so every pooled session runs with
`TimeZone=UTC`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

POOL_NAME = "task-store"


async def _configure_session(conn: AsyncConnection) -> None:
    await conn.execute("SET TIME ZONE 'UTC'", prepare=False)
    # Leave the connection idle (not INTRANS) before the pool hands it out.
    await conn.commit()


def create_pool(
        database_url: str,
        *,
        min_size: int = 1,
        max_size: int | None = None,
        timeout: float = 30.0,
) -> AsyncConnectionPool:
    """Build the store pool unopened; the owner calls `await pool.open()` at startup."""

    return AsyncConnectionPool(
        conninfo=database_url,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
        open=False,
        name=POOL_NAME,
        configure=_configure_session,
    )


async def open_pool(pool: AsyncConnectionPool, *, timeout: float = 30.0) -> None:
    """Open `pool` and wait for its first connection so a bad URL fails at startup."""

    await pool.open(wait=True, timeout=timeout)
    logger.info("pool open name=%s min_size=%d max_size=%d", pool.name, pool.min_size, pool.max_size)


@asynccontextmanager
async def get_conn(pool: AsyncConnectionPool) -> AsyncIterator[AsyncConnection]:
    """Borrow a connection; its transaction commits when the block exits cleanly."""

    async with pool.connection() as conn:
        yield conn
