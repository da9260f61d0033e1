"""
Tests for SqliteTaskStore: validation, timestamps, sync bookkeeping and
reminder side effects.

Uses a temporary DB file (in-memory SQLite would use a new DB per connection).
Run with: python -m pytest tests/test_sqlite_task_store.py -v
"""
from __future__ import annotations

import asyncio

import pytest

from todowhats.domain.common.errors import ValidationError
from todowhats.infra.db.repo.tasks_sqlite import SqliteTaskStore
from tests.helpers import ManualClock, RecordingNotifier, make_local_store, remove_files, temp_path


async def _run_with_store(test_fn, notifier=None, clock=None):
    path = temp_path(".db")
    clock = clock or ManualClock()
    try:
        store = make_local_store(path, clock, notifier)
        await store.init()
        await test_fn(store, clock)
    finally:
        remove_files(path)


def test_create_defaults_to_pending_unsynced_unlinked():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        task = await store.create(title="  Buy milk  ")
        assert task.title == "Buy milk"
        assert task.status == "pending"
        assert task.synced is False
        assert task.server_id is None
        assert task.created_at == clock.now_iso()
        assert task.updated_at == clock.now_iso()
        assert await store.get_by_id(task.local_id) == task

    asyncio.run(_run_with_store(run))


def test_create_rejects_invalid_fields():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        with pytest.raises(ValidationError):
            await store.create(title="   ")
        with pytest.raises(ValidationError):
            await store.create(title="x" * 101)
        with pytest.raises(ValidationError):
            await store.create(title="ok", description="d" * 501)
        with pytest.raises(ValidationError):
            await store.create(title="ok", status="done")
        with pytest.raises(ValidationError):
            await store.create(title="ok", scheduled_at="tomorrow")
        assert await store.list_all() == []

    asyncio.run(_run_with_store(run))


def test_create_coerces_missing_or_garbage_timestamps_to_now():
    """created_at None or unparseable falls back to now; valid values are kept (in UTC)."""

    async def run(store: SqliteTaskStore, clock: ManualClock):
        a = await store.create(title="a", created_at=None, updated_at="garbage")
        assert a.created_at == clock.now_iso()
        assert a.updated_at == clock.now_iso()

        b = await store.create(title="b", created_at="2023-05-01T12:00:00+02:00", updated_at="2023-05-01T10:30:00Z")
        assert b.created_at == "2023-05-01T10:00:00+00:00"
        assert b.updated_at == "2023-05-01T10:30:00+00:00"

    asyncio.run(_run_with_store(run))


def test_update_always_bumps_updated_at():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        task = await store.create(title="Read chapter 3")
        clock.advance(60)
        updated = await store.update(task.local_id, status="in_progress")
        assert updated is not None
        assert updated.status == "in_progress"
        assert updated.updated_at == clock.now_iso()
        assert updated.created_at == task.created_at

        clock.advance(5)
        # even a no-op change counts as a write
        again = await store.update(task.local_id, status="in_progress")
        assert again.updated_at == clock.now_iso()

    asyncio.run(_run_with_store(run))


def test_update_unknown_task_returns_none_and_unknown_field_raises():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        assert await store.update("missing", title="x") is None
        task = await store.create(title="x")
        with pytest.raises(ValidationError):
            await store.update(task.local_id, colour="red")

    asyncio.run(_run_with_store(run))


def test_list_all_orders_newest_first_and_filters_status():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        first = await store.create(title="first")
        clock.advance(10)
        second = await store.create(title="second", status="completed")

        assert [t.local_id for t in await store.list_all()] == [second.local_id, first.local_id]
        assert [t.local_id for t in await store.list_all(status="completed")] == [second.local_id]

    asyncio.run(_run_with_store(run))


def test_mark_synced_link_unlink_do_not_touch_updated_at():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        task = await store.create(title="Essay draft")
        clock.advance(30)

        await store.mark_synced([task.local_id])
        assert await store.list_unsynced() == []

        await store.link(task.local_id, "task_1_1")
        linked = await store.get_by_id(task.local_id)
        assert linked.server_id == "task_1_1"
        assert linked.synced is True
        assert linked.updated_at == task.updated_at

        await store.unlink(task.local_id)
        unlinked = await store.get_by_id(task.local_id)
        assert unlinked.server_id is None
        assert unlinked.synced is False
        assert unlinked.updated_at == task.updated_at
        assert [t.local_id for t in await store.list_unsynced()] == [task.local_id]

    asyncio.run(_run_with_store(run))


def test_mark_synced_with_no_ids_is_a_noop():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        await store.create(title="x")
        await store.mark_synced([])
        assert len(await store.list_unsynced()) == 1

    asyncio.run(_run_with_store(run))


def test_delete_by_title_matches_fragment_case_insensitively():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        await store.create(title="Test task 1")
        await store.create(title="another TEST")
        await store.create(title="Groceries")

        assert await store.delete_by_title("test") == 2
        assert [t.title for t in await store.list_all()] == ["Groceries"]

        with pytest.raises(ValidationError):
            await store.delete_by_title("  ")

    asyncio.run(_run_with_store(run))


def test_reminders_follow_scheduled_at():
    notifier = RecordingNotifier()

    async def run(store: SqliteTaskStore, clock: ManualClock):
        task = await store.create(title="Exam", scheduled_at="2024-02-01T09:00:00Z")
        assert notifier.calls == [("schedule", task.local_id, "2024-02-01T09:00:00+00:00", "Exam")]

        notifier.calls.clear()
        await store.update(task.local_id, title="Exam (room B)")
        assert notifier.calls == []

        await store.update(task.local_id, scheduled_at="2024-02-02T09:00:00+00:00")
        assert notifier.calls == [
            ("cancel", task.local_id),
            ("schedule", task.local_id, "2024-02-02T09:00:00+00:00", "Exam (room B)"),
        ]

        notifier.calls.clear()
        await store.delete(task.local_id)
        assert notifier.calls == [("cancel", task.local_id)]

    asyncio.run(_run_with_store(run, notifier=notifier))


def test_reminder_failure_does_not_fail_the_write():
    notifier = RecordingNotifier(fail=True)

    async def run(store: SqliteTaskStore, clock: ManualClock):
        task = await store.create(title="Exam", scheduled_at="2024-02-01T09:00:00Z")
        assert await store.get_by_id(task.local_id) is not None
        assert await store.delete(task.local_id) is True

    asyncio.run(_run_with_store(run, notifier=notifier))


def test_concurrent_init_runs_migrations_once():
    path = temp_path(".db")

    async def run():
        store = make_local_store(path, ManualClock())
        await asyncio.gather(*(store.init() for _ in range(5)))
        await store.init()
        rows = await store._db.fetchall("SELECT version FROM schema_migrations ORDER BY version;")
        assert [r["version"] for r in rows] == [1, 2, 3]

    try:
        asyncio.run(run())
    finally:
        remove_files(path)


def test_mark_synced_and_link_skip_rows_edited_after_the_push_snapshot():
    async def run(store: SqliteTaskStore, clock: ManualClock):
        untouched = await store.create(title="Sent as is")
        edited = await store.create(title="Edited mid-push")
        pushed = {untouched.local_id: untouched.updated_at, edited.local_id: edited.updated_at}

        clock.advance(5)
        await store.update(edited.local_id, title="Edited twice", synced=False)

        await store.mark_synced([untouched.local_id, edited.local_id], pushed)
        assert (await store.get_by_id(untouched.local_id)).synced is True
        assert (await store.get_by_id(edited.local_id)).synced is False

        await store.link(edited.local_id, "task_1_2", pushed[edited.local_id])
        linked = await store.get_by_id(edited.local_id)
        assert linked.server_id == "task_1_2"
        assert linked.synced is False
        assert [t.local_id for t in await store.list_unsynced()] == [edited.local_id]

    asyncio.run(_run_with_store(run))
