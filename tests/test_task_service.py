"""
Tests for TaskService: offline-first edits, best-effort remote delete,
manual sync and orphan cleanup.

Run with: python -m pytest tests/test_task_service.py -v
"""
from __future__ import annotations

import asyncio

import pytest

from todowhats.domain.common.errors import NotFoundError, TransientNetworkError, ValidationError
from todowhats.domain.sync.engine import ReconciliationEngine
from todowhats.domain.tasks.service import TaskService
from todowhats.infra.remote.json_store import JsonFileTaskStore
from todowhats.infra.scheduler.loop import AutoSyncScheduler
from tests.helpers import ManualClock, make_local_store, make_server_store, remove_files, temp_path


class _UnreachableServer(JsonFileTaskStore):
    async def delete(self, server_id: str) -> bool:
        raise TransientNetworkError("DELETE failed: connection refused")

    async def list_all(self):
        raise TransientNetworkError("GET /tasks failed: connection refused")


async def _run_with_service(test_fn):
    db_path = temp_path(".db")
    clock = ManualClock()
    server, server_path = make_server_store(clock)
    try:
        local = make_local_store(db_path, clock)
        scheduler = AutoSyncScheduler(ReconciliationEngine(local, server))
        service = TaskService(local, server, scheduler)
        await test_fn(service, local, server, clock)
    finally:
        remove_files(db_path, server_path)


def test_add_and_edit_mark_task_for_push():
    async def run(service: TaskService, local, server, clock):
        task = await service.add_task("Buy milk", description="2 litres")
        await service.sync_now()
        assert (await local.get_by_id(task.local_id)).synced is True

        clock.advance(5)
        edited = await service.set_status(task.local_id, "completed")
        assert edited.synced is False
        assert edited.updated_at == clock.now_iso()

        outcome = await service.sync_now()
        assert outcome.success is True
        assert outcome.uploaded == 1
        [remote] = await server.list_all()
        assert remote.status == "completed"

    asyncio.run(_run_with_service(run))


def test_edit_rejects_sync_fields_and_unknown_ids():
    async def run(service: TaskService, local, server, clock):
        task = await service.add_task("Essay")
        with pytest.raises(ValidationError):
            await service.edit_task(task.local_id, server_id="task_x")
        with pytest.raises(NotFoundError):
            await service.edit_task("task_missing", title="x")

    asyncio.run(_run_with_service(run))


def test_list_tasks_filters_by_status():
    async def run(service: TaskService, local, server, clock):
        await service.add_task("a")
        done = await service.add_task("b", status="completed")
        assert [t.local_id for t in await service.list_tasks(status="completed")] == [done.local_id]
        assert len(await service.list_tasks()) == 2

    asyncio.run(_run_with_service(run))


def test_delete_removes_task_on_both_sides():
    async def run(service: TaskService, local, server, clock):
        task = await service.add_task("Temp")
        await service.sync_now()

        assert await service.delete_task(task.local_id) is True
        assert await local.get_by_id(task.local_id) is None
        assert await server.list_all() == []
        assert await service.delete_task(task.local_id) is False

    asyncio.run(_run_with_service(run))


def test_delete_stands_when_server_unreachable():
    db_path = temp_path(".db")
    server_path = temp_path(".json")
    remove_files(server_path)

    async def run():
        clock = ManualClock()
        local = make_local_store(db_path, clock)
        await local.init()
        task = await local.create(title="Linked", server_id="task_1_1", synced=True)
        service = TaskService(local, _UnreachableServer(server_path, clock=clock))

        assert await service.delete_task(task.local_id) is True
        assert await local.get_by_id(task.local_id) is None

    try:
        asyncio.run(run())
    finally:
        remove_files(db_path, server_path)


def test_cleanup_orphans_deletes_only_tasks_missing_on_server():
    async def run(service: TaskService, local, server, clock):
        kept = await service.add_task("Still there")
        gone = await service.add_task("Deleted on server")
        unsynced = await service.add_task("Never pushed")
        await service.sync_now()
        await local.unlink(unsynced.local_id)

        await server.delete((await local.get_by_id(gone.local_id)).server_id)

        result = await service.cleanup_orphans()
        assert result.success is True
        assert result.deleted == 1
        assert [t.local_id for t in result.orphans] == [gone.local_id]
        assert await local.get_by_id(kept.local_id) is not None
        assert await local.get_by_id(unsynced.local_id) is not None

    asyncio.run(_run_with_service(run))


def test_cleanup_orphans_aborts_when_server_unreachable():
    db_path = temp_path(".db")
    server_path = temp_path(".json")
    remove_files(server_path)

    async def run():
        clock = ManualClock()
        local = make_local_store(db_path, clock)
        service = TaskService(local, _UnreachableServer(server_path, clock=clock))
        await service.add_task("Linked")

        result = await service.cleanup_orphans()
        assert result.success is False
        assert "connection refused" in result.error
        assert len(await service.list_tasks()) == 1

    try:
        asyncio.run(run())
    finally:
        remove_files(db_path, server_path)


def test_delete_by_title_and_sync_without_trigger():
    db_path = temp_path(".db")
    server_path = temp_path(".json")
    remove_files(server_path)

    async def run():
        clock = ManualClock()
        local = make_local_store(db_path, clock)
        service = TaskService(local, JsonFileTaskStore(server_path, clock=clock))
        await service.add_task("Test task 1")
        await service.add_task("Keep me")
        assert await service.delete_by_title("test") == 1

        with pytest.raises(RuntimeError):
            await service.sync_now()

    try:
        asyncio.run(run())
    finally:
        remove_files(db_path, server_path)
