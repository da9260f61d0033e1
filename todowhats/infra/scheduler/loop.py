# todowhats/infra/scheduler/loop.py
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Literal, Optional, Union

from todowhats.constants import DEFAULT_SYNC_INTERVAL_SECONDS
from todowhats.domain.sync.engine import ReconciliationEngine
from todowhats.domain.tasks.models import SyncOutcome
from todowhats.domain.tasks.ports import SyncTrigger

logger = logging.getLogger(__name__)

SchedulerState = Literal["idle", "running"]


ResultFn = Callable[[SyncOutcome], Union[None, Awaitable[None]]]


class AutoSyncScheduler(SyncTrigger):
    """
    Runs the reconciliation engine on a fixed interval and on demand.

    State machine: idle -> running -> idle. A tick or sync_now() arriving while
    running is dropped, not queued; the next tick picks up the deferred work.
    Timer ticks and manual syncs share this one guard.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        on_result: Optional[ResultFn] = None,
    ) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._on_result = on_result
        self._state: SchedulerState = "idle"
        self._stop = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_armed(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Run one cycle now, then every interval_seconds until stop()."""
        if self.is_armed:
            return
        self._stop.clear()
        self._loop_task = asyncio.create_task(self.run_forever())

    def stop(self) -> None:
        self._stop.set()

    async def join(self) -> None:
        if self._loop_task is not None:
            await self._loop_task

    async def run_forever(self) -> None:
        while not self._stop.is_set():
            await self.sync_now()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    async def sync_now(self) -> Optional[SyncOutcome]:
        """Run one cycle unless one is in flight. Returns None when dropped."""
        if self._state == "running":
            logger.info("Sync skipped: previous cycle still running")
            return None

        self._state = "running"
        try:
            result = await self._engine.run_cycle()
            outcome = SyncOutcome(success=True, uploaded=result.uploaded, downloaded=result.downloaded)
        except Exception as e:
            # never crash the host because of sync, but log errors
            logger.error(f"Sync cycle failed: {e}", exc_info=True)
            outcome = SyncOutcome(success=False, error=e)
        finally:
            self._state = "idle"

        await self._report(outcome)
        return outcome

    async def _report(self, outcome: SyncOutcome) -> None:
        if self._on_result is None:
            return
        try:
            maybe = self._on_result(outcome)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception as e:
            logger.error(f"Sync result callback failed: {e}", exc_info=True)
