from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Task:
    """On-device task record."""

    local_id: str
    title: str
    description: Optional[str]
    status: str  # 'pending' | 'in_progress' | 'completed'
    scheduled_at: Optional[str]  # ISO datetime, UTC
    created_at: str
    updated_at: str
    synced: bool
    server_id: Optional[str]

    @property
    def linked(self) -> bool:
        return self.server_id is not None


@dataclass(frozen=True)
class RemoteTask:
    """Server-side task record as seen by the sync engine."""

    server_id: str
    title: str
    description: Optional[str]
    status: str
    scheduled_at: Optional[str]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SyncBatchResult:
    synced_ids: list[str]  # local ids acknowledged by the server
    tasks: list[RemoteTask] = field(default_factory=list)
    complete: bool = False  # tasks is the full server listing
    touched_ids: Optional[list[str]] = None  # server ids this batch created or overwrote; None if not reported


@dataclass(frozen=True)
class CycleResult:
    uploaded: int
    downloaded: int


@dataclass(frozen=True)
class SyncOutcome:
    """What a sync trigger reports: success flag plus counts, or the error."""

    success: bool
    uploaded: int = 0
    downloaded: int = 0
    error: Optional[BaseException] = None
