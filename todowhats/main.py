from __future__ import annotations

import asyncio
import logging
import os

from todowhats.config import load_settings
from todowhats.domain.sync.engine import ReconciliationEngine
from todowhats.domain.tasks.models import SyncOutcome
from todowhats.infra.clock.system_clock import SystemClock
from todowhats.infra.db.connection import Database
from todowhats.infra.db.repo.tasks_sqlite import SqliteTaskStore
from todowhats.infra.ids.uuid_gen import UuidGenerator
from todowhats.infra.notifications.reminders import LocalReminderScheduler
from todowhats.infra.remote.http_store import HttpRemoteTaskStore
from todowhats.infra.scheduler.loop import AutoSyncScheduler

logger = logging.getLogger(__name__)


def _log_outcome(outcome: SyncOutcome) -> None:
    if outcome.success:
        logger.info("Sync ok: %d up, %d down", outcome.uploaded, outcome.downloaded)
    else:
        logger.warning("Sync failed: %s", outcome.error)


async def main() -> None:
    """
    Run the sync engine headless: local store, HTTP backend, auto-sync loop.

    One process per database file; two engines on the same file would both
    push the same unsynced rows.
    """
    pid = os.getpid()
    settings = load_settings()

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - [PID:%(process)d] - %(message)s'
    )

    logger.info("=" * 60)
    logger.info(f"Sync engine starting - PID: {pid}")
    logger.info(f"Backend: {settings.api_base_url}, every {settings.sync_interval_seconds:g}s")
    logger.info("=" * 60)

    scheduler = None
    reminders = None
    try:
        os.makedirs(os.path.dirname(settings.db_path) or ".", exist_ok=True)

        clock = SystemClock(settings.timezone)
        reminders = LocalReminderScheduler(clock=clock)
        local = SqliteTaskStore(Database(str(settings.db_path)), clock, UuidGenerator(), reminders)
        await local.init()

        async with HttpRemoteTaskStore(
            settings.api_base_url,
            timeout_seconds=settings.http_timeout_seconds,
            clock=clock,
        ) as remote:
            engine = ReconciliationEngine(local, remote)
            scheduler = AutoSyncScheduler(
                engine,
                interval_seconds=settings.sync_interval_seconds,
                on_result=_log_outcome,
            )
            scheduler.start()
            await scheduler.join()

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info(f"Sync engine stopped - PID: {pid}")
    except Exception:
        logger.error(f"Sync engine crashed - PID: {pid}", exc_info=True)
        raise
    finally:
        if scheduler is not None:
            scheduler.stop()
        if reminders is not None:
            reminders.cancel_all()
        logger.info(f"Sync engine shutdown complete - PID: {pid}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
