# -*- coding: utf-8 -*-
"""
Server-side task collection kept in a JSON file: {"tasks": [...], "lastId": n}.

Holds the backend's sync semantics (sync_batch) and serves as an in-process
RemoteTaskStore. Records on disk use the backend's snake_case wire shape.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from todowhats.domain.common.errors import ValidationError
from todowhats.domain.common.time import coerce_timestamp, is_newer, to_iso
from todowhats.domain.tasks.codec import decode_remote_task, decode_remote_tasks, encode_remote_task
from todowhats.domain.tasks.models import RemoteTask, SyncBatchResult, Task
from todowhats.domain.tasks.ports import Clock, RemoteTaskStore
from todowhats.domain.tasks.rules import (
    collect_errors,
    validate_description,
    validate_scheduled_at,
    validate_status,
    validate_title,
)
from todowhats.infra.clock.system_clock import SystemClock

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "status", "scheduled_at")


def _empty() -> dict[str, Any]:
    return {"tasks": [], "lastId": 0}


class JsonFileTaskStore(RemoteTaskStore):
    def __init__(self, path: str | Path, clock: Optional[Clock] = None) -> None:
        self._path = Path(path)
        self._clock = clock or SystemClock()
        self._lock = asyncio.Lock()

    def _now_iso(self) -> str:
        return to_iso(self._clock.now())

    # ----- file access (blocking, run in a worker thread) -----

    def _read_sync(self) -> dict[str, Any]:
        if not self._path.exists():
            return _empty()
        with self._path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        data.setdefault("tasks", [])
        data.setdefault("lastId", 0)
        return data

    def _write_sync(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        os.replace(tmp, self._path)

    async def _read(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read_sync)

    async def _write(self, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, data)

    def _new_id(self, data: dict[str, Any]) -> str:
        data["lastId"] = int(data.get("lastId", 0)) + 1
        return f"task_{int(time.time() * 1000)}_{data['lastId']}"

    def _decode_all(self, data: dict[str, Any]) -> list[RemoteTask]:
        now = self._now_iso()
        return decode_remote_tasks(data["tasks"], now)

    @staticmethod
    def _index_of(data: dict[str, Any], server_id: str) -> int:
        for i, record in enumerate(data["tasks"]):
            if str(record.get("id")) == server_id:
                return i
        return -1

    # ----- RemoteTaskStore -----

    async def list_all(self) -> list[RemoteTask]:
        async with self._lock:
            return self._decode_all(await self._read())

    async def get_by_id(self, server_id: str) -> Optional[RemoteTask]:
        async with self._lock:
            data = await self._read()
        i = self._index_of(data, server_id)
        if i < 0:
            return None
        try:
            return decode_remote_task(data["tasks"][i], self._now_iso())
        except ValidationError as e:
            # same treatment as list_all: a malformed record is not served
            logger.warning("Dropping malformed task %s: %s", server_id, e.message)
            return None

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        scheduled_at: Optional[str] = None,
    ) -> RemoteTask:
        now_dt = self._clock.now()
        errors = collect_errors(title, description, status, scheduled_at, now=now_dt, require_future=True)
        if errors:
            raise ValidationError("Invalid task data.", errors)

        now = to_iso(now_dt)
        async with self._lock:
            data = await self._read()
            task = RemoteTask(
                server_id=self._new_id(data),
                title=validate_title(title),
                description=validate_description(description),
                status=validate_status(status),
                scheduled_at=validate_scheduled_at(scheduled_at),
                created_at=now,
                updated_at=now,
            )
            data["tasks"].append(encode_remote_task(task))
            await self._write(data)
        return task

    async def update(self, server_id: str, **changes: Any) -> Optional[RemoteTask]:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}.")

        now_dt = self._clock.now()
        async with self._lock:
            data = await self._read()
            i = self._index_of(data, server_id)
            if i < 0:
                return None
            merged = {**data["tasks"][i], **changes}
            errors = collect_errors(
                merged.get("title"),
                merged.get("description"),
                merged.get("status"),
                changes.get("scheduled_at"),
                now=now_dt,
                require_future=True,
            )
            if errors:
                raise ValidationError("Invalid task data.", errors)

            task = RemoteTask(
                server_id=server_id,
                title=validate_title(merged.get("title")),
                description=validate_description(merged.get("description")),
                status=validate_status(merged.get("status")),
                scheduled_at=validate_scheduled_at(merged.get("scheduled_at")),
                created_at=coerce_timestamp(data["tasks"][i].get("created_at"), to_iso(now_dt)),
                updated_at=to_iso(now_dt),
            )
            data["tasks"][i] = encode_remote_task(task)
            await self._write(data)
        return task

    async def delete(self, server_id: str) -> bool:
        async with self._lock:
            data = await self._read()
            i = self._index_of(data, server_id)
            if i < 0:
                return False
            del data["tasks"][i]
            await self._write(data)
        return True

    async def sync_batch(self, tasks: Sequence[Task]) -> SyncBatchResult:
        """
        Merge a client batch into the collection.

        Unknown server_id -> create, keeping the client's timestamps.
        Known server_id   -> newer updated_at wins; the client version is written
                             back with its own updated_at.
        Invalid tasks are skipped and not acknowledged. The response lists every
        server record and names the ones this batch created or overwrote.
        """
        synced_ids: list[str] = []
        touched_ids: list[str] = []
        now_dt = self._clock.now()
        now = to_iso(now_dt)

        async with self._lock:
            data = await self._read()
            for incoming in tasks:
                # reminders in the past must still sync, so no future check here
                errors = collect_errors(incoming.title, incoming.description, incoming.status, incoming.scheduled_at)
                if errors:
                    logger.warning("Skipping invalid task %s in sync batch: %s", incoming.local_id, "; ".join(errors))
                    continue

                i = self._index_of(data, incoming.server_id) if incoming.server_id else -1
                if i < 0:
                    created = RemoteTask(
                        server_id=self._new_id(data),
                        title=validate_title(incoming.title),
                        description=validate_description(incoming.description),
                        status=validate_status(incoming.status),
                        scheduled_at=validate_scheduled_at(incoming.scheduled_at),
                        created_at=coerce_timestamp(incoming.created_at, now),
                        updated_at=coerce_timestamp(incoming.updated_at, now),
                    )
                    data["tasks"].append(encode_remote_task(created))
                    touched_ids.append(created.server_id)
                    logger.info("Sync created %s for client task %s", created.server_id, incoming.local_id)
                else:
                    # raw record: a malformed one is repaired by a newer client version
                    stored = data["tasks"][i]
                    if is_newer(incoming.updated_at, stored.get("updated_at")):
                        data["tasks"][i] = encode_remote_task(
                            RemoteTask(
                                server_id=incoming.server_id,
                                title=validate_title(incoming.title),
                                description=validate_description(incoming.description),
                                status=validate_status(incoming.status),
                                scheduled_at=validate_scheduled_at(incoming.scheduled_at),
                                created_at=coerce_timestamp(stored.get("created_at"), now),
                                updated_at=coerce_timestamp(incoming.updated_at, now),
                            )
                        )
                        touched_ids.append(incoming.server_id)
                        logger.info("Sync updated %s from client task %s", incoming.server_id, incoming.local_id)
                synced_ids.append(incoming.local_id)

            await self._write(data)
            current = self._decode_all(data)

        return SyncBatchResult(synced_ids=synced_ids, tasks=current, complete=True, touched_ids=touched_ids)
