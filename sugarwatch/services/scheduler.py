"""Background job scheduler.

APScheduler-based scheduler that drives the Dexcom polling cycle.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sugarwatch.config import settings
from sugarwatch.logging_config import get_logger
from sugarwatch.services.dexcom_sync import DexcomPoller

logger = get_logger(__name__)

DEXCOM_SYNC_JOB_ID = "dexcom_sync"

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def start_scheduler(poller: DexcomPoller) -> AsyncIOScheduler:
    """Start the background job scheduler.

    Args:
        poller: Poller whose `run_cycle` is called on every interval

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()

    if settings.dexcom_sync_enabled:
        scheduler.add_job(
            poller.run_cycle,
            trigger=IntervalTrigger(seconds=settings.dexcom_sync_interval_seconds),
            id=DEXCOM_SYNC_JOB_ID,
            name="Dexcom CGM Data Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Scheduled Dexcom sync job",
            interval_seconds=settings.dexcom_sync_interval_seconds,
        )

    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")
