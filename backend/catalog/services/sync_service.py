"""
App Catalog Backend — Store Sync Service (Orchestrator)
========================================================

What:  Composes catalog snapshot → batch scheduler → per-app lookup → merge →
       repository update into the two sync entry points.
Why:   Keeps sync policy (failure isolation, staleness, retries) in one place,
       independent of HTTP and of the cron trigger.
Who:   The daily cron job, the admin "sync store" endpoint, and the
       get-single-app read path.

Entry Points:
    sync_all_apps()     Bulk sync. Reads the catalog once, then hands it to a
                        BatchScheduler that runs in the background.
    refresh_if_stale()  On-demand refresh of exactly one app, awaited by the
                        caller before it responds.

Failure Policy:
    ┌──────────────────────┬────────────────────────────────────────────────┐
    │ Lookup not found     │ platform treated as absent, no log noise       │
    │ Lookup transport err │ logged with app/platform, treated as not found │
    │ Repository write err │ logged with app id, app keeps stored state     │
    │ Catalog fetch error  │ retried, then CatalogFetchError (run aborted)  │
    └──────────────────────┴────────────────────────────────────────────────┘
    Per-app failures are never retried here; the next scheduled run is the
    retry.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog.config import SyncConfig, settings
from catalog.exceptions import CatalogFetchError, RepositoryError
from catalog.repositories.app_repository import AppRepository, app_repository
from catalog.schemas.app import AppRecord
from catalog.services.batch_scheduler import BatchScheduler
from catalog.services.merge import store_updates
from catalog.services.store_lookup import (
    ANDROID,
    IOS,
    LookupResult,
    StoreLookupService,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncRun:
    """Handle for one bulk sync run, returned as soon as the scheduler starts."""

    run_id: str
    started_at: datetime
    scheduler: BatchScheduler

    @property
    def state(self) -> str:
        return self.scheduler.state

    @property
    def total_apps(self) -> int:
        return self.scheduler.total

    @property
    def batch_size(self) -> int:
        return self.scheduler.batch_size

    @property
    def processed(self) -> int:
        return self.scheduler.cursor

    async def wait(self) -> None:
        await self.scheduler.wait()


class SyncService:
    """
    Store sync orchestrator.

    Args:
        repository:  AppRepository (or any object with the same coroutine API)
        lookup:      StoreLookupService used for both platforms
        config:      Immutable SyncConfig (batch size/interval, staleness)
        clock:       Returns the current UTC time; injectable for tests
        fetch_attempts / fetch_min_wait / fetch_max_wait:
                     tenacity settings for the catalog snapshot read
    """

    def __init__(
        self,
        repository: AppRepository,
        lookup: StoreLookupService,
        config: SyncConfig,
        clock: Optional[Clock] = None,
        fetch_attempts: int = 3,
        fetch_min_wait: float = 1,
        fetch_max_wait: float = 10,
    ):
        self.repository = repository
        self.lookup = lookup
        self.config = config
        self.clock = clock or _utcnow
        self.fetch_attempts = fetch_attempts
        self.fetch_min_wait = fetch_min_wait
        self.fetch_max_wait = fetch_max_wait
        self._runs: Dict[str, SyncRun] = {}

    # ══════════════════════════════════════════════════════════════════════
    # Bulk Sync
    # ══════════════════════════════════════════════════════════════════════

    async def sync_all_apps(self, wait: bool = False) -> SyncRun:
        """
        Start a bulk store sync over the current catalog.

        Args:
            wait: False (admin trigger) returns once the scheduler is started;
                  True (cron trigger) returns after the run has finished.

        Raises:
            CatalogFetchError: The catalog could not be read; no run started.
        """
        apps = await self._fetch_catalog()

        run_id = uuid.uuid4().hex[:12]
        scheduler = BatchScheduler(
            apps,
            batch_size=self.config.batch_size,
            batch_interval=self.config.batch_interval,
            process_app=self.process_app,
            name=f"sync-{run_id}",
        )
        run = SyncRun(run_id=run_id, started_at=self.clock(), scheduler=scheduler)
        self._runs[run_id] = run

        logger.info(
            "Store sync %s started: %d apps, batch_size=%d, interval=%.0fs",
            run_id,
            len(apps),
            self.config.batch_size,
            self.config.batch_interval,
        )

        task = scheduler.start()
        task.add_done_callback(lambda _: self._runs.pop(run_id, None))

        if wait:
            await run.wait()
        return run

    async def _fetch_catalog(self) -> List[AppRecord]:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RepositoryError),
                stop=stop_after_attempt(self.fetch_attempts),
                wait=wait_exponential(min=self.fetch_min_wait, max=self.fetch_max_wait),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    return await self.repository.get_all()
        except RetryError as e:
            cause = e.last_attempt.exception() if e.last_attempt else None
            logger.error("Catalog fetch failed after %d attempts: %s", self.fetch_attempts, cause)
            raise CatalogFetchError(
                context={
                    "attempts": self.fetch_attempts,
                    "error_type": type(cause).__name__ if cause else None,
                },
            )

    # ══════════════════════════════════════════════════════════════════════
    # Per-App Step
    # ══════════════════════════════════════════════════════════════════════

    async def _lookup(self, platform: str, store_app_id: Optional[str]) -> LookupResult:
        if not store_app_id:
            return LookupResult.not_found("not_tracked")
        return await self.lookup.lookup(platform, store_app_id)

    async def process_app(self, record: AppRecord) -> Optional[AppRecord]:
        """
        Look up, merge and persist one app.

        Platform lookups run one after the other and are independent: a failed
        iOS lookup does not prevent the Android lookup.

        Returns:
            The record as stored after the write (`record` itself when no
            platform was found), or None when the write failed.
        """
        ios = await self._lookup(IOS, record.ios_app_id)
        android = await self._lookup(ANDROID, record.android_app_id)

        updates = store_updates(record, ios, android, now=self.clock())
        if not updates:
            return record

        # Only the found platforms are written; the snapshot may be hours old
        try:
            return await self.repository.update_fields(record.id, updates)
        except RepositoryError as e:
            logger.error("Failed to persist store data for app %s: %s", record.id, e.message)
            return None

    # ══════════════════════════════════════════════════════════════════════
    # On-Demand Refresh
    # ══════════════════════════════════════════════════════════════════════

    def is_stale(self, record: AppRecord, now: Optional[datetime] = None) -> bool:
        """True when the record was never enriched or is older than the threshold."""
        last = record.last_store_update
        if last is None:
            return True
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        now = now or self.clock()
        return now - last >= timedelta(minutes=self.config.staleness_threshold)

    async def refresh_if_stale(self, record: AppRecord) -> AppRecord:
        """
        Refresh a single app on read when its store data is stale.

        Never raises for enrichment problems: on any failure the stored record
        is returned unchanged so the read still succeeds.
        """
        if not self.is_stale(record):
            return record
        try:
            refreshed = await self.process_app(record)
        except Exception:
            logger.exception("On-demand store refresh failed for app %s", record.id)
            return record
        return refreshed or record

    # ══════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ══════════════════════════════════════════════════════════════════════

    @property
    def active_runs(self) -> List[SyncRun]:
        return [run for run in self._runs.values() if not run.scheduler.is_finished]

    def stop(self) -> None:
        """Stop every in-flight run (graceful shutdown). Idempotent."""
        for run in list(self._runs.values()):
            run.scheduler.stop()

    async def shutdown(self, timeout: float = 30.0) -> None:
        """
        Stop every run and wait for the batch each one is in the middle of.

        Runs still busy after `timeout` seconds are cancelled, so the caller
        can close store clients and the engine with no task left using them.
        """
        self.stop()
        tasks = [run.scheduler.task for run in self._runs.values() if run.scheduler.task is not None]
        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(
                "%d store sync run(s) still busy after %.0fs; cancelling", len(pending), timeout
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)


def build_sync_service() -> SyncService:
    """Wire the production SyncService from settings."""
    sync_config = settings.sync_config()
    return SyncService(
        repository=app_repository,
        lookup=StoreLookupService(timeout=sync_config.lookup_timeout),
        config=sync_config,
        fetch_attempts=settings.catalog_fetch_max_attempts,
        fetch_min_wait=settings.catalog_fetch_min_wait,
        fetch_max_wait=settings.catalog_fetch_max_wait,
    )


# ── Singleton Instance ────────────────────────────────────────────────────
sync_service = build_sync_service()
