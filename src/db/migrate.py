"""Schema migrations for the `projects` / `tasks` store (`voice-task-migrate`).

Each `src/db/migrations/NNNN_*.sql` file runs once, in name order, inside its own transaction.
`schema_migrations` records the file name and a SHA-256 of its contents; editing a file after it
was applied is reported, never re-run.
"""

from __future__ import annotations

import argparse
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import LiteralString, cast

import psycopg

from src.config.logging import configure_logging
from src.config.settings import load_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations
(
    filename   TEXT PRIMARY KEY,
    checksum   TEXT        NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

_DROP_ALL = "DROP TABLE IF EXISTS tasks, projects, schema_migrations CASCADE"


@dataclass(frozen=True)
class Migration:
    name: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def connect_utc(database_url: str) -> psycopg.Connection:
    """Open a synchronous connection whose session runs in UTC."""

    conn = psycopg.connect(database_url)
    conn.execute("SET TIME ZONE 'UTC'", prepare=False)
    return conn


def list_migration_files() -> list[Path]:
    files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not files:
        raise RuntimeError(f"No .sql migration files found in {MIGRATIONS_DIR}")
    return files


def load_migrations() -> list[Migration]:
    return [Migration(path.name, path.read_text(encoding="utf-8")) for path in list_migration_files()]


def _ledger(conn: psycopg.Connection) -> dict[str, str]:
    conn.execute(_LEDGER_DDL, prepare=False)
    rows = conn.execute("SELECT filename, checksum FROM schema_migrations", prepare=False).fetchall()
    return {name: checksum for name, checksum in rows}


def pending_migrations(conn: psycopg.Connection, migrations: list[Migration]) -> list[Migration]:
    """Migrations not yet recorded; logs a warning for recorded files whose contents changed."""

    ledger = _ledger(conn)
    for migration in migrations:
        recorded = ledger.get(migration.name)
        if recorded is not None and recorded != migration.checksum:
            logger.warning("migration changed after apply filename=%s", migration.name)
    return [m for m in migrations if m.name not in ledger]


def migrate(database_url: str, *, recreate: bool = False) -> list[str]:
    """Apply pending migrations and return the names applied by this run.

    `recreate=True` drops the store tables first (destructive).
    """

    migrations = load_migrations()
    applied: list[str] = []

    with connect_utc(database_url) as conn:
        if recreate:
            logger.warning("dropping store tables before migrating")
            conn.execute(_DROP_ALL, prepare=False)
            conn.commit()

        for migration in pending_migrations(conn, migrations):
            with conn.transaction():
                conn.execute(cast(LiteralString, migration.sql), prepare=False)
                conn.execute(
                    "INSERT INTO schema_migrations (filename, checksum) VALUES (%s, %s)",
                    (migration.name, migration.checksum),
                    prepare=False,
                )
            logger.info("migration applied filename=%s", migration.name)
            applied.append(migration.name)

    if not applied:
        logger.info("schema up to date migrations=%d", len(migrations))
    return applied


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or upgrade the project/task tables.")
    parser.add_argument(
        "--recreate",
        action="store_true",
        help="Drop projects, tasks and the migration ledger, then apply every migration.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="List pending migrations without applying them; exit 1 if any are pending.",
    )
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level)

    if args.check:
        with connect_utc(settings.database_url) as conn:
            pending = pending_migrations(conn, load_migrations())
        for migration in pending:
            print(migration.name)
        raise SystemExit(1 if pending else 0)

    migrate(settings.database_url, recreate=args.recreate)


if __name__ == "__main__":
    main()
