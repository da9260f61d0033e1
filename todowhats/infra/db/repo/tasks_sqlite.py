from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional

from todowhats.domain.common.errors import NotificationError, ValidationError
from todowhats.domain.common.time import coerce_timestamp, to_iso
from todowhats.domain.tasks.models import Task
from todowhats.domain.tasks.ports import Clock, IdGenerator, LocalTaskStore, NotificationService
from todowhats.domain.tasks.rules import (
    validate_description,
    validate_scheduled_at,
    validate_status,
    validate_title,
)
from todowhats.infra.db.connection import Database
from todowhats.infra.db.schema_version import apply_migrations

logger = logging.getLogger(__name__)

TASK_COLUMNS = "id, title, description, status, scheduled_at, created_at, updated_at, synced, server_id"

# fields update() accepts, in SET order
UPDATABLE_FIELDS = ("title", "description", "status", "scheduled_at", "server_id", "synced")


class SqliteTaskStore(LocalTaskStore):
    """
    On-device task table.

    Owns local ids and the synced flag. Reminder side effects of scheduled_at
    changes go through the NotificationService and never fail a write.
    """

    def __init__(
        self,
        db: Database,
        clock: Clock,
        ids: IdGenerator,
        notifier: Optional[NotificationService] = None,
    ) -> None:
        self._db = db
        self._clock = clock
        self._ids = ids
        self._notifier = notifier
        self._init_future: Optional[asyncio.Future] = None

    def _now_iso(self) -> str:
        return to_iso(self._clock.now())

    async def init(self) -> None:
        # concurrent callers await the same in-flight initialization
        if self._init_future is None:
            self._init_future = asyncio.ensure_future(self._run_init())
        try:
            await asyncio.shield(self._init_future)
        except Exception:
            # let a later call retry a failed init
            self._init_future = None
            raise

    async def _run_init(self) -> None:
        applied = await apply_migrations(self._db, self._now_iso())
        if applied:
            logger.info("Local task store ready (%s), migrations applied: %s", self._db.path, applied)

    async def list_all(self, status: Optional[str] = None, only_unsynced: bool = False) -> list[Task]:
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            conditions.append("status = ?")
            params.append(validate_status(status))
        if only_unsynced:
            conditions.append("synced = 0")

        sql = f"SELECT {TASK_COLUMNS} FROM tasks"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC;"

        rows = await self._db.fetchall(sql, params)
        return [self._row_to_task(r) for r in rows]

    async def list_unsynced(self) -> list[Task]:
        return await self.list_all(only_unsynced=True)

    async def get_by_id(self, local_id: str) -> Optional[Task]:
        row = await self._db.fetchone(f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?;", (local_id,))
        return self._row_to_task(row) if row else None

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        scheduled_at: Optional[str] = None,
        created_at: Optional[str] = None,
        updated_at: Optional[str] = None,
        server_id: Optional[str] = None,
        synced: bool = False,
    ) -> Task:
        now = self._now_iso()
        task = Task(
            local_id=self._ids.new_id(),
            title=validate_title(title),
            description=validate_description(description),
            status=validate_status(status),
            scheduled_at=validate_scheduled_at(scheduled_at),
            created_at=coerce_timestamp(created_at, now),
            updated_at=coerce_timestamp(updated_at, now),
            synced=bool(synced),
            server_id=server_id or None,
        )
        await self._db.execute(
            f"INSERT INTO tasks ({TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                task.local_id,
                task.title,
                task.description,
                task.status,
                task.scheduled_at,
                task.created_at,
                task.updated_at,
                1 if task.synced else 0,
                task.server_id,
            ),
        )

        if task.scheduled_at:
            await self._schedule(task.local_id, task.scheduled_at, task.title)
        return task

    async def update(self, local_id: str, **changes: Any) -> Optional[Task]:
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}.")

        current = await self.get_by_id(local_id)
        if current is None:
            return None

        values: dict[str, Any] = {}
        if "title" in changes:
            values["title"] = validate_title(changes["title"])
        if "description" in changes:
            values["description"] = validate_description(changes["description"])
        if "status" in changes:
            values["status"] = validate_status(changes["status"])
        if "scheduled_at" in changes:
            values["scheduled_at"] = validate_scheduled_at(changes["scheduled_at"])
        if "server_id" in changes:
            values["server_id"] = changes["server_id"] or None
        if "synced" in changes:
            values["synced"] = 1 if changes["synced"] else 0

        # every update refreshes updated_at, whatever changed
        values["updated_at"] = self._now_iso()

        assignments = ", ".join(f"{col} = ?" for col in values)
        await self._db.execute(
            f"UPDATE tasks SET {assignments} WHERE id = ?;",
            (*values.values(), local_id),
        )

        updated = await self.get_by_id(local_id)
        if updated is not None and "scheduled_at" in changes:
            await self._reschedule(current, updated)
        return updated

    async def delete(self, local_id: str) -> bool:
        task = await self.get_by_id(local_id)
        if task is None:
            logger.warning("Task %s not found for delete", local_id)
            return False

        if task.scheduled_at:
            await self._cancel(local_id)

        deleted = await self._db.execute("DELETE FROM tasks WHERE id = ?;", (local_id,))
        return deleted > 0

    async def delete_by_title(self, fragment: str) -> int:
        """Delete every task whose title contains fragment (case-insensitive). Returns the count."""
        if not fragment or not fragment.strip():
            raise ValidationError("Title fragment is required.")
        rows = await self._db.fetchall(
            "SELECT id FROM tasks WHERE LOWER(title) LIKE ?;",
            (f"%{fragment.strip().lower()}%",),
        )
        count = 0
        for row in rows:
            if await self.delete(row["id"]):
                count += 1
        return count

    async def mark_synced(self, local_ids: Iterable[str], pushed: Optional[Mapping[str, str]] = None) -> None:
        """
        Set synced = 1 on the acknowledged rows.

        With pushed (local_id -> updated_at as sent), a row edited after the
        push snapshot no longer matches and stays unsynced for the next cycle.
        """
        ids = list(local_ids)
        if not ids:
            return
        if pushed is None:
            placeholders = ",".join("?" for _ in ids)
            await self._db.execute(f"UPDATE tasks SET synced = 1 WHERE id IN ({placeholders});", ids)
            return

        stale = [i for i in ids if i not in pushed]
        if stale:
            logger.warning("Acknowledged ids not in the pushed batch, ignored: %s", stale)
        await self._db.executemany(
            "UPDATE tasks SET synced = 1 WHERE id = ? AND updated_at = ?;",
            [(i, pushed[i]) for i in ids if i in pushed],
        )

    async def link(self, local_id: str, server_id: str, pushed_updated_at: Optional[str] = None) -> None:
        # bookkeeping only: updated_at stays, so linking never looks like an edit
        if pushed_updated_at is None:
            await self._db.execute(
                "UPDATE tasks SET server_id = ?, synced = 1 WHERE id = ?;",
                (server_id, local_id),
            )
            return
        # edited since the push: link, but leave it unsynced so the edit goes out next cycle
        await self._db.execute(
            "UPDATE tasks SET server_id = ?, synced = CASE WHEN updated_at = ? THEN 1 ELSE synced END WHERE id = ?;",
            (server_id, pushed_updated_at, local_id),
        )

    async def unlink(self, local_id: str) -> None:
        await self._db.execute(
            "UPDATE tasks SET server_id = NULL, synced = 0 WHERE id = ?;",
            (local_id,),
        )

    async def _reschedule(self, before: Task, after: Task) -> None:
        if before.scheduled_at == after.scheduled_at:
            return
        if before.scheduled_at:
            await self._cancel(after.local_id)
        if after.scheduled_at:
            await self._schedule(after.local_id, after.scheduled_at, after.title)

    async def _schedule(self, local_id: str, when_iso: str, title: str) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.schedule_reminder(local_id, when_iso, title)
        except NotificationError as e:
            logger.warning("Could not schedule reminder for task %s: %s", local_id, e)

    async def _cancel(self, local_id: str) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.cancel_reminder(local_id)
        except NotificationError as e:
            logger.warning("Could not cancel reminder for task %s: %s", local_id, e)

    def _row_to_task(self, row) -> Task:
        return Task(
            local_id=row["id"],
            title=row["title"],
            description=row["description"],
            status=row["status"],
            scheduled_at=row["scheduled_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced=bool(row["synced"]),
            server_id=row["server_id"],
        )
