"""Shared fakes and temp-DB plumbing for the test modules."""
from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from todowhats.domain.common.errors import NotificationError
from todowhats.domain.common.time import to_iso
from todowhats.domain.tasks.ports import Clock, NotificationService
from todowhats.infra.db.connection import Database
from todowhats.infra.db.repo.tasks_sqlite import SqliteTaskStore
from todowhats.infra.ids.uuid_gen import UuidGenerator
from todowhats.infra.remote.json_store import JsonFileTaskStore

START = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def now_iso(self) -> str:
        return to_iso(self.current)

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


class RecordingNotifier(NotificationService):
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail = fail

    async def schedule_reminder(self, task_id: str, when_iso: str, title: str) -> Any:
        self.calls.append(("schedule", task_id, when_iso, title))
        if self.fail:
            raise NotificationError("notifications disabled")
        return None

    async def cancel_reminder(self, task_id: str) -> None:
        self.calls.append(("cancel", task_id))
        if self.fail:
            raise NotificationError("notifications disabled")


def temp_path(suffix: str) -> str:
    fd, path = tempfile.mkstemp(suffix=suffix)
    os.close(fd)
    return path


def remove_files(*paths: str) -> None:
    for path in paths:
        # WAL mode leaves -wal/-shm files next to the database
        for p in (path, path + "-wal", path + "-shm"):
            if os.path.exists(p):
                os.unlink(p)


def make_local_store(
    path: str,
    clock: Clock,
    notifier: Optional[NotificationService] = None,
) -> SqliteTaskStore:
    return SqliteTaskStore(Database(path), clock, UuidGenerator(), notifier)


def make_server_store(clock: Clock) -> tuple[JsonFileTaskStore, str]:
    """Server store on a fresh path (file not created yet, so it starts empty)."""
    path = temp_path(".json")
    os.unlink(path)
    return JsonFileTaskStore(path, clock=clock), path
