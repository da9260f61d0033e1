from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from todowhats.domain.tasks.models import RemoteTask, SyncBatchResult, SyncOutcome, Task


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class IdGenerator(ABC):
    @abstractmethod
    def new_id(self) -> str: ...


class NotificationService(ABC):
    @abstractmethod
    async def schedule_reminder(self, task_id: str, when_iso: str, title: str) -> Any: ...

    @abstractmethod
    async def cancel_reminder(self, task_id: str) -> None: ...


class LocalTaskStore(ABC):
    @abstractmethod
    async def init(self) -> None: ...

    @abstractmethod
    async def list_unsynced(self) -> list[Task]: ...

    @abstractmethod
    async def list_all(self, status: Optional[str] = None) -> list[Task]: ...

    @abstractmethod
    async def get_by_id(self, local_id: str) -> Optional[Task]: ...

    @abstractmethod
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
    ) -> Task: ...

    @abstractmethod
    async def update(self, local_id: str, **changes: Any) -> Optional[Task]: ...

    @abstractmethod
    async def delete(self, local_id: str) -> bool: ...

    @abstractmethod
    async def delete_by_title(self, fragment: str) -> int: ...

    @abstractmethod
    async def mark_synced(self, local_ids: Iterable[str], pushed: Optional[Mapping[str, str]] = None) -> None: ...

    @abstractmethod
    async def link(self, local_id: str, server_id: str, pushed_updated_at: Optional[str] = None) -> None: ...

    @abstractmethod
    async def unlink(self, local_id: str) -> None: ...


class RemoteTaskStore(ABC):
    @abstractmethod
    async def list_all(self) -> list[RemoteTask]: ...

    @abstractmethod
    async def get_by_id(self, server_id: str) -> Optional[RemoteTask]: ...

    @abstractmethod
    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        scheduled_at: Optional[str] = None,
    ) -> RemoteTask: ...

    @abstractmethod
    async def update(self, server_id: str, **changes: Any) -> Optional[RemoteTask]: ...

    @abstractmethod
    async def delete(self, server_id: str) -> bool: ...

    @abstractmethod
    async def sync_batch(self, tasks: Sequence[Task]) -> SyncBatchResult: ...


class SyncTrigger(ABC):
    @abstractmethod
    async def sync_now(self) -> Optional[SyncOutcome]: ...
