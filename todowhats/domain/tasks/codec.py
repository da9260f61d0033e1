# -*- coding: utf-8 -*-
"""
Wire codec for task payloads.

The backend and older clients disagree on key style (created_at vs createdAt,
server_id vs serverId). Everything loosely-typed is decoded here, once, into the
strict Task / RemoteTask types; nothing past this module looks at raw dicts.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from todowhats.domain.common.errors import ValidationError
from todowhats.domain.common.time import coerce_timestamp
from todowhats.domain.tasks.models import RemoteTask, SyncBatchResult, Task
from todowhats.domain.tasks.rules import (
    validate_description,
    validate_scheduled_at,
    validate_status,
    validate_title,
)

logger = logging.getLogger(__name__)


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among the key spellings."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _as_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, str)) and str(value).strip():
        return str(value).strip()
    return None


def _as_ids(values: Any) -> list[str]:
    return [i for i in (_as_id(v) for v in values) if i is not None]


def decode_remote_task(payload: Any, now_iso: str) -> RemoteTask:
    if not isinstance(payload, Mapping):
        raise ValidationError("Task payload must be an object.")
    server_id = _as_id(_pick(payload, "id", "server_id", "serverId"))
    if server_id is None:
        raise ValidationError("Task payload has no id.")
    return RemoteTask(
        server_id=server_id,
        title=validate_title(payload.get("title")),
        description=validate_description(payload.get("description")),
        status=validate_status(payload.get("status")),
        scheduled_at=validate_scheduled_at(_pick(payload, "scheduled_at", "scheduledAt")),
        created_at=coerce_timestamp(_pick(payload, "created_at", "createdAt"), now_iso),
        updated_at=coerce_timestamp(_pick(payload, "updated_at", "updatedAt"), now_iso),
    )


def decode_remote_tasks(payloads: Any, now_iso: str) -> list[RemoteTask]:
    """Decode a listing, dropping rows that fail validation."""
    if not isinstance(payloads, list):
        raise ValidationError("Task listing must be an array.")
    tasks: list[RemoteTask] = []
    for payload in payloads:
        try:
            tasks.append(decode_remote_task(payload, now_iso))
        except ValidationError as e:
            logger.warning("Dropping malformed remote task %r: %s", payload, e.message)
    return tasks


def decode_pushed_task(payload: Any, now_iso: str) -> Task:
    """Decode a task as sent by a client in a sync batch."""
    if not isinstance(payload, Mapping):
        raise ValidationError("Task payload must be an object.")
    local_id = _as_id(_pick(payload, "id", "local_id", "localId"))
    if local_id is None:
        raise ValidationError("Task payload has no id.")
    return Task(
        local_id=local_id,
        title=validate_title(payload.get("title")),
        description=validate_description(payload.get("description")),
        status=validate_status(payload.get("status")),
        scheduled_at=validate_scheduled_at(_pick(payload, "scheduled_at", "scheduledAt")),
        created_at=coerce_timestamp(_pick(payload, "created_at", "createdAt"), now_iso),
        updated_at=coerce_timestamp(_pick(payload, "updated_at", "updatedAt"), now_iso),
        synced=False,
        server_id=_as_id(_pick(payload, "server_id", "serverId")),
    )


def decode_sync_response(payload: Any, now_iso: str) -> SyncBatchResult:
    if not isinstance(payload, Mapping):
        raise ValidationError("Sync response must be an object.")
    raw_ids = _pick(payload, "syncedIds", "synced_ids") or []
    synced_ids = _as_ids(raw_ids)
    raw_touched = _pick(payload, "touchedIds", "touched_ids")
    touched_ids = _as_ids(raw_touched) if isinstance(raw_touched, list) else None
    return SyncBatchResult(
        synced_ids=synced_ids,
        tasks=decode_remote_tasks(payload.get("tasks") or [], now_iso),
        complete=payload.get("complete") is True,
        touched_ids=touched_ids,
    )


def encode_task(task: Task) -> dict[str, Any]:
    return {
        "id": task.local_id,
        "server_id": task.server_id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "scheduled_at": task.scheduled_at,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


def encode_remote_task(task: RemoteTask) -> dict[str, Any]:
    return {
        "id": task.server_id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "scheduled_at": task.scheduled_at,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


def encode_sync_response(result: SyncBatchResult) -> dict[str, Any]:
    body: dict[str, Any] = {
        "syncedIds": list(result.synced_ids),
        "tasks": [encode_remote_task(t) for t in result.tasks],
        "complete": result.complete,
    }
    if result.touched_ids is not None:
        body["touchedIds"] = list(result.touched_ids)
    return body


def encode_sync_request(tasks: Iterable[Task]) -> dict[str, Any]:
    return {"tasks": [encode_task(t) for t in tasks]}
