from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from todowhats.domain.common.errors import NotFoundError, RemoteRequestError, TransientNetworkError, ValidationError
from todowhats.domain.tasks.models import SyncOutcome, Task
from todowhats.domain.tasks.ports import LocalTaskStore, RemoteTaskStore, SyncTrigger

logger = logging.getLogger(__name__)

USER_EDITABLE_FIELDS = ("title", "description", "status", "scheduled_at")


@dataclass(frozen=True)
class OrphanCleanupResult:
    success: bool
    orphans: list[Task] = field(default_factory=list)
    deleted: int = 0
    error: Optional[str] = None


class TaskService:
    """
    Task operations as a screen calls them. Offline-first: every write lands
    in the local store and is pushed by the next sync cycle.
    """

    def __init__(
        self,
        local: LocalTaskStore,
        remote: RemoteTaskStore,
        sync: Optional[SyncTrigger] = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._sync = sync

    async def add_task(
        self,
        title: str,
        description: Optional[str] = None,
        scheduled_at: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Task:
        await self._local.init()
        task = await self._local.create(
            title=title,
            description=description,
            status=status,
            scheduled_at=scheduled_at,
        )
        logger.info("Task %s created locally (%r)", task.local_id, task.title)
        return task

    async def edit_task(self, local_id: str, **changes: Any) -> Task:
        not_editable = set(changes) - set(USER_EDITABLE_FIELDS)
        if not_editable:
            raise ValidationError(f"Field(s) not editable: {', '.join(sorted(not_editable))}.")
        await self._local.init()
        # any user edit has to be pushed again
        task = await self._local.update(local_id, **changes, synced=False)
        if task is None:
            raise NotFoundError(f"Task {local_id} not found.")
        return task

    async def set_status(self, local_id: str, status: str) -> Task:
        return await self.edit_task(local_id, status=status)

    async def list_tasks(self, status: Optional[str] = None) -> list[Task]:
        await self._local.init()
        return await self._local.list_all(status=status)

    async def delete_task(self, local_id: str) -> bool:
        """
        Delete locally, then best-effort on the server if linked.

        A failed remote delete leaves an orphan the server still lists; the
        local delete stands either way.
        """
        await self._local.init()
        task = await self._local.get_by_id(local_id)
        if task is None:
            return False

        deleted = await self._local.delete(local_id)
        if deleted and task.server_id:
            try:
                await self._remote.delete(task.server_id)
                logger.info("Task %s deleted on server", task.server_id)
            except (TransientNetworkError, RemoteRequestError) as e:
                logger.warning("Could not delete task %s on server: %s", task.server_id, e)
        return deleted

    async def delete_by_title(self, fragment: str) -> int:
        """Maintenance: delete local tasks whose title contains fragment."""
        await self._local.init()
        count = await self._local.delete_by_title(fragment)
        logger.info("Deleted %d task(s) matching %r", count, fragment)
        return count

    async def sync_now(self) -> Optional[SyncOutcome]:
        """Pull-to-refresh. None when a cycle is already running."""
        if self._sync is None:
            raise RuntimeError("No sync trigger configured")
        return await self._sync.sync_now()

    async def cleanup_orphans(self) -> OrphanCleanupResult:
        """
        Maintenance: delete local tasks whose server_id the server no longer lists.

        Unlike the sync cycle, which re-pushes orphans, this removes them.
        Only ever run on explicit user request.
        """
        await self._local.init()
        try:
            remote_tasks = await self._remote.list_all()
        except TransientNetworkError as e:
            logger.warning("Orphan cleanup aborted, server unreachable: %s", e)
            return OrphanCleanupResult(success=False, error=str(e))

        remote_ids = {r.server_id for r in remote_tasks}
        orphans = [t for t in await self._local.list_all() if t.server_id and t.server_id not in remote_ids]

        deleted = 0
        for task in orphans:
            if await self._local.delete(task.local_id):
                deleted += 1
                logger.info("Orphan task %s (%r) deleted", task.local_id, task.title)
        return OrphanCleanupResult(success=True, orphans=orphans, deleted=deleted)
