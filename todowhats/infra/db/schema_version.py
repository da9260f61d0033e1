from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from todowhats.infra.db.connection import Database

logger = logging.getLogger(__name__)

MigrationFn = Callable[[Database, str], Awaitable[None]]

# Older app builds wrote camelCase columns
LEGACY_COLUMNS = (
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
    ("scheduledAt", "scheduled_at"),
    ("serverId", "server_id"),
)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: MigrationFn


async def _create_tasks(db: Database, now_iso: str) -> None:
    await db.executescript(
        """
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            scheduled_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            synced INTEGER NOT NULL DEFAULT 0,
            server_id TEXT
        );
        """
    )


async def _repair_legacy_columns(db: Database, now_iso: str) -> None:
    columns = await db.table_columns("tasks")

    for legacy, current in LEGACY_COLUMNS:
        if legacy not in columns:
            continue
        if current not in columns:
            await db.execute(f"ALTER TABLE tasks RENAME COLUMN {legacy} TO {current};")
        else:
            await db.execute(f"UPDATE tasks SET {current} = COALESCE(NULLIF({current}, ''), {legacy});")
            await db.execute(f"ALTER TABLE tasks DROP COLUMN {legacy};")
        logger.info("Migrated legacy column tasks.%s -> %s", legacy, current)

    columns = await db.table_columns("tasks")
    for col, sql in [
        ("description", "ALTER TABLE tasks ADD COLUMN description TEXT;"),
        ("status", "ALTER TABLE tasks ADD COLUMN status TEXT NOT NULL DEFAULT 'pending';"),
        ("scheduled_at", "ALTER TABLE tasks ADD COLUMN scheduled_at TEXT;"),
        ("created_at", "ALTER TABLE tasks ADD COLUMN created_at TEXT;"),
        ("updated_at", "ALTER TABLE tasks ADD COLUMN updated_at TEXT;"),
        ("synced", "ALTER TABLE tasks ADD COLUMN synced INTEGER NOT NULL DEFAULT 0;"),
        ("server_id", "ALTER TABLE tasks ADD COLUMN server_id TEXT;"),
    ]:
        if col not in columns:
            await db.execute(sql)

    await db.execute("UPDATE tasks SET created_at = ? WHERE created_at IS NULL OR TRIM(created_at) = '';", (now_iso,))
    await db.execute(
        "UPDATE tasks SET updated_at = COALESCE(NULLIF(TRIM(created_at), ''), ?) "
        "WHERE updated_at IS NULL OR TRIM(updated_at) = '';",
        (now_iso,),
    )


async def _create_indexes(db: Database, now_iso: str) -> None:
    # legacy data may hold one server_id twice; keep the oldest row linked
    await db.execute(
        """
        UPDATE tasks SET server_id = NULL, synced = 0
        WHERE server_id IS NOT NULL
          AND rowid NOT IN (
            SELECT MIN(rowid) FROM tasks WHERE server_id IS NOT NULL GROUP BY server_id
          );
        """
    )
    await db.executescript(
        """
        CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);
        CREATE INDEX IF NOT EXISTS idx_tasks_synced ON tasks(synced);
        CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_server_id ON tasks(server_id) WHERE server_id IS NOT NULL;
        """
    )


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "create tasks", _create_tasks),
    Migration(2, "snake_case columns", _repair_legacy_columns),
    Migration(3, "sync indexes", _create_indexes),
)


async def apply_migrations(db: Database, now_iso: str, migrations: tuple[Migration, ...] = MIGRATIONS) -> list[int]:
    """Apply pending migrations in version order. Returns the versions applied."""
    await db.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL);"
    )

    applied: list[int] = []
    for migration in sorted(migrations, key=lambda m: m.version):
        row = await db.fetchone("SELECT version FROM schema_migrations WHERE version = ?;", (migration.version,))
        if row:
            continue

        await migration.apply(db, now_iso)

        await db.execute(
            "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?);",
            (migration.version, now_iso),
        )
        applied.append(migration.version)
        logger.info("Applied migration %d (%s)", migration.version, migration.name)
    return applied
