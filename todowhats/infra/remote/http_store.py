from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Sequence

import aiohttp

from todowhats.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, ENDPOINT_TASKS, ENDPOINT_TASKS_SYNC
from todowhats.domain.common.errors import RemoteRequestError, TransientNetworkError, ValidationError
from todowhats.domain.common.time import to_iso
from todowhats.domain.tasks.codec import (
    decode_remote_task,
    decode_remote_tasks,
    decode_sync_response,
    encode_sync_request,
)
from todowhats.domain.tasks.models import RemoteTask, SyncBatchResult, Task
from todowhats.domain.tasks.ports import Clock, RemoteTaskStore
from todowhats.infra.clock.system_clock import SystemClock

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "status", "scheduled_at")


class HttpRemoteTaskStore(RemoteTaskStore):
    """
    REST client for the backend task collection.

    Timeouts, connection failures and 5xx responses surface as
    TransientNetworkError; 400 as ValidationError; other non-2xx as
    RemoteRequestError. Use as an async context manager unless a session is
    supplied by the caller.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        clock: Optional[Clock] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._clock = clock or SystemClock()

    async def __aenter__(self) -> "HttpRemoteTaskStore":
        if self._session is None:
            self._session = aiohttp.ClientSession(headers={"Content-Type": "application/json"})
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _now_iso(self) -> str:
        return to_iso(self._clock.now())

    async def _request(self, method: str, path: str, payload: Any = None) -> tuple[int, Any]:
        if self._session is None:
            raise RuntimeError("HttpRemoteTaskStore used outside 'async with' and without a session")
        url = f"{self.base_url}{path}"
        try:
            async with self._session.request(method, url, json=payload, timeout=self._timeout) as resp:
                logger.debug("%s %s -> %s", method, url, resp.status)
                body = await _read_body(resp)
                if resp.status == 404:
                    return resp.status, body
                if resp.status >= 500:
                    raise TransientNetworkError(f"{method} {path} failed: {resp.status} {_error_message(body)}")
                if resp.status == 400:
                    raise ValidationError(_error_message(body), _error_details(body))
                if resp.status >= 400:
                    raise RemoteRequestError(resp.status, _error_message(body))
                return resp.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransientNetworkError(f"{method} {path} failed: {str(e) or type(e).__name__}") from e

    async def list_all(self) -> list[RemoteTask]:
        status, body = await self._request("GET", ENDPOINT_TASKS)
        if status == 404:
            raise RemoteRequestError(status, "Task endpoint not found")
        return decode_remote_tasks(body or [], self._now_iso())

    async def get_by_id(self, server_id: str) -> Optional[RemoteTask]:
        status, body = await self._request("GET", f"{ENDPOINT_TASKS}/{server_id}")
        if status == 404:
            return None
        return decode_remote_task(body, self._now_iso())

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        scheduled_at: Optional[str] = None,
    ) -> RemoteTask:
        payload = {"title": title, "description": description, "status": status, "scheduled_at": scheduled_at}
        code, body = await self._request("POST", ENDPOINT_TASKS, {k: v for k, v in payload.items() if v is not None})
        if code == 404:
            raise RemoteRequestError(code, "Task endpoint not found")
        return decode_remote_task(body, self._now_iso())

    async def update(self, server_id: str, **changes: Any) -> Optional[RemoteTask]:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}.")
        status, body = await self._request("PUT", f"{ENDPOINT_TASKS}/{server_id}", changes)
        if status == 404:
            return None
        return decode_remote_task(body, self._now_iso())

    async def delete(self, server_id: str) -> bool:
        status, _ = await self._request("DELETE", f"{ENDPOINT_TASKS}/{server_id}")
        return status != 404

    async def sync_batch(self, tasks: Sequence[Task]) -> SyncBatchResult:
        status, body = await self._request("POST", ENDPOINT_TASKS_SYNC, encode_sync_request(tasks))
        if status == 404:
            raise RemoteRequestError(status, "Sync endpoint not found")
        return decode_sync_response(body, self._now_iso())


async def _read_body(resp: aiohttp.ClientResponse) -> Any:
    text = await resp.text()
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def _error_message(body: Any) -> str:
    # backend error shape: {"error": {"message": ..., "status": ..., "details": [...]}}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message") or "Request failed")
    return "Request failed"


def _error_details(body: Any) -> list[str]:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        details = body["error"].get("details") or []
        if isinstance(details, list):
            return [str(d) for d in details]
    return []
