# todowhats/infra/notifications/reminders.py
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional

from todowhats.domain.common.errors import NotificationError
from todowhats.domain.common.time import parse_iso_or_none
from todowhats.domain.tasks.ports import Clock, NotificationService
from todowhats.infra.clock.system_clock import SystemClock

logger = logging.getLogger(__name__)

ReminderFn = Callable[[str, str], None]


class LocalReminderScheduler(NotificationService):
    """
    In-process task reminders on the running event loop.

    One pending reminder per task id; scheduling again replaces the old one.
    Reminder times already in the past are skipped.
    """

    def __init__(self, on_fire: Optional[ReminderFn] = None, clock: Optional[Clock] = None) -> None:
        self._on_fire = on_fire
        self._clock = clock or SystemClock()
        self._handles: Dict[str, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> list[str]:
        return sorted(self._handles)

    async def schedule_reminder(self, task_id: str, when_iso: str, title: str) -> Optional[asyncio.TimerHandle]:
        when = parse_iso_or_none(when_iso)
        if when is None:
            raise NotificationError(f"Invalid reminder time for task {task_id}: {when_iso!r}")

        delay = (when - self._clock.now()).total_seconds()
        self._drop(task_id)
        if delay <= 0:
            logger.info("Reminder for task %s is in the past (%s), not scheduling", task_id, when_iso)
            return None

        handle = asyncio.get_running_loop().call_later(delay, self._fire, task_id, title)
        self._handles[task_id] = handle
        logger.info("Reminder scheduled for task %s at %s", task_id, when_iso)
        return handle

    async def cancel_reminder(self, task_id: str) -> None:
        if self._drop(task_id):
            logger.info("Reminder cancelled for task %s", task_id)

    def cancel_all(self) -> None:
        for task_id in list(self._handles):
            self._drop(task_id)

    def _drop(self, task_id: str) -> bool:
        handle = self._handles.pop(task_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _fire(self, task_id: str, title: str) -> None:
        self._handles.pop(task_id, None)
        logger.info("Reminder: %s (task %s)", title, task_id)
        if self._on_fire is None:
            return
        try:
            self._on_fire(task_id, title)
        except Exception as e:
            # a broken callback must not take the event loop down
            logger.error(f"Reminder callback failed for task {task_id}: {e}", exc_info=True)
