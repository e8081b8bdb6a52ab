"""
App Catalog Backend — Scheduled Jobs
=====================================

What:  Recurring trigger for the bulk store sync.
How:   APScheduler AsyncIOScheduler with a crontab trigger (default daily at
       00:00 UTC). The job coroutine runs on the application's event loop.
When:  build_scheduler() is called from the FastAPI lifespan; the caller
       starts it on boot and shuts it down on exit.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from catalog.config import settings
from catalog.exceptions import CatalogFetchError
from catalog.services.sync_service import SyncService, sync_service

logger = logging.getLogger(__name__)

STORE_SYNC_JOB_ID = "daily_store_sync"


async def run_store_sync(service: SyncService = sync_service) -> None:
    """
    Cron entry point: run a full store sync and wait for it to finish.

    Nothing is raised to APScheduler; a catalog read failure is logged and the
    next scheduled run tries again.
    """
    try:
        run = await service.sync_all_apps(wait=True)
    except CatalogFetchError as e:
        logger.error("Scheduled store sync aborted: %s", e.message)
        return
    logger.info(
        "Scheduled store sync %s finished (%s, %d/%d apps)",
        run.run_id,
        run.state,
        run.processed,
        run.total_apps,
    )


def build_scheduler(cron: str = settings.sync_cron) -> AsyncIOScheduler:
    """Build the scheduler with the store sync job registered (not started)."""
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_store_sync,
        trigger=CronTrigger.from_crontab(cron, timezone="UTC"),
        id=STORE_SYNC_JOB_ID,
        name="Daily store data sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
    )
    return scheduler
