from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional, Sequence

from todowhats.domain.common.time import is_newer
from todowhats.domain.sync.matching import MATCH_WINDOW, find_identity_match, same_instant
from todowhats.domain.tasks.models import CycleResult, RemoteTask, Task
from todowhats.domain.tasks.ports import LocalTaskStore, RemoteTaskStore

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    One push-then-pull reconciliation pass between the local and remote stores.

    Conflicts are last-write-wins on updated_at, ties favouring local. Records
    without a shared server_id are bridged by the identity heuristic in
    todowhats.domain.sync.matching. No aiohttp. No sqlite.
    """

    def __init__(
        self,
        local: LocalTaskStore,
        remote: RemoteTaskStore,
        match_window: timedelta = MATCH_WINDOW,
    ) -> None:
        self._local = local
        self._remote = remote
        self._match_window = match_window
        # concurrent run_cycle() calls queue here; the store is never reconciled twice at once
        self._lock = asyncio.Lock()

    async def run_cycle(self) -> CycleResult:
        async with self._lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleResult:
        await self._local.init()

        unsynced = await self._local.list_unsynced()
        logger.info("Sync cycle started: %d local task(s) to push", len(unsynced))

        uploaded = 0
        applied: set[str] = set()
        snapshot: Optional[list[RemoteTask]] = None

        if unsynced:
            # a push failure propagates and the pull is skipped
            batch = await self._remote.sync_batch(unsynced)
            # rows edited while the push was in flight keep synced = 0
            pushed = {t.local_id: t.updated_at for t in unsynced}
            await self._local.mark_synced(batch.synced_ids, pushed)
            uploaded = len(batch.synced_ids)
            # link before pulling, or the pull sees our own pushes as new remote tasks
            fresh = batch.tasks
            if batch.touched_ids is not None:
                touched = set(batch.touched_ids)
                fresh = [r for r in batch.tasks if r.server_id in touched]
            applied |= await self._link_pushed(unsynced, fresh)
            if batch.complete:
                snapshot = batch.tasks

        if snapshot is None:
            snapshot = await self._remote.list_all()

        await self._heal_orphans(snapshot)
        applied |= await self.merge_remote_into_local(snapshot)

        result = CycleResult(uploaded=uploaded, downloaded=len(applied))
        logger.info("Sync cycle finished: uploaded=%d downloaded=%d", result.uploaded, result.downloaded)
        return result

    async def _link_pushed(self, pushed: Sequence[Task], remote_tasks: Sequence[RemoteTask]) -> set[str]:
        """
        Link just-pushed tasks to the server records they became.

        The server keeps pushed created_at values, so exact created_at matches
        are linked first; the windowed heuristic only gets what is left.
        """
        linked: set[str] = set()
        local_server_ids = {t.server_id for t in await self._local.list_all() if t.server_id}
        candidates = [t for t in pushed if t.server_id is None]
        pending = [r for r in remote_tasks if r.server_id not in local_server_ids]

        for exact in (True, False):
            for remote in list(pending):
                pool = [c for c in candidates if same_instant(c.created_at, remote.created_at)] if exact else candidates
                match = find_identity_match(remote, pool, self._match_window)
                if match is None:
                    continue
                await self._local.link(match.local_id, remote.server_id, match.updated_at)
                candidates.remove(match)
                pending.remove(remote)
                linked.add(remote.server_id)
                logger.info("Linked local task %s (%r) to server id %s", match.local_id, match.title, remote.server_id)
        return linked

    async def _heal_orphans(self, remote_tasks: Sequence[RemoteTask]) -> int:
        """
        Unlink local tasks whose server_id is missing from the listing.

        Absence is not proof of remote deletion: the task is re-pushed next cycle.
        """
        remote_ids = {r.server_id for r in remote_tasks}
        healed = 0
        for task in await self._local.list_all():
            if task.server_id and task.server_id not in remote_ids:
                await self._local.unlink(task.local_id)
                healed += 1
                logger.info(
                    "Orphan task %s (%r): server id %s not found remotely, will re-push",
                    task.local_id,
                    task.title,
                    task.server_id,
                )
        return healed

    async def merge_remote_into_local(self, remote_tasks: Sequence[RemoteTask]) -> set[str]:
        """Apply remote snapshots to the local store. Returns server ids that changed local state."""
        applied: set[str] = set()
        local_tasks = await self._local.list_all()
        by_server_id = {t.server_id: t for t in local_tasks if t.server_id}
        unlinked = [t for t in local_tasks if t.server_id is None]

        for remote in remote_tasks:
            local = by_server_id.get(remote.server_id)

            if local is None:
                match = find_identity_match(remote, unlinked, self._match_window)
                if match is not None:
                    await self._local.link(match.local_id, remote.server_id, match.updated_at)
                    unlinked.remove(match)
                    by_server_id[remote.server_id] = match
                    applied.add(remote.server_id)
                    logger.info("Linked local task %s to server id %s", match.local_id, remote.server_id)
                    continue

                created = await self._local.create(
                    title=remote.title,
                    description=remote.description,
                    status=remote.status,
                    scheduled_at=remote.scheduled_at,
                    created_at=remote.created_at,
                    updated_at=remote.updated_at,
                    server_id=remote.server_id,
                    synced=True,
                )
                by_server_id[remote.server_id] = created
                applied.add(remote.server_id)
                logger.info("Created local task %s from server id %s", created.local_id, remote.server_id)
                continue

            if is_newer(remote.updated_at, local.updated_at):
                updated = await self._local.update(
                    local.local_id,
                    title=remote.title,
                    description=remote.description,
                    status=remote.status,
                    scheduled_at=remote.scheduled_at,
                    synced=True,
                )
                if updated is not None:
                    by_server_id[remote.server_id] = updated
                    applied.add(remote.server_id)
                    logger.debug("Applied remote version of %s to local task %s", remote.server_id, local.local_id)
            # local newer or equal: local wins, pushed on a later cycle if unsynced

        return applied
