"""
App Catalog Backend — Paced Batch Scheduler
============================================

What:  Walks a fixed snapshot of the app catalog in batches spaced by a delay.
Why:   The app stores rate-limit lookups; firing the whole catalog back-to-back
       would get requests throttled or blocked. Spacing batches smooths load.
How:   An explicit state machine advanced by tick(); run() drives ticks with an
       interruptible timer wait between them.

State Machine:
    IDLE
        → start()/run(): transition to RUNNING
    RUNNING (cursor)
        → tick(): process snapshot[cursor : cursor + batch_size], then
          cursor += len(slice)
        → cursor >= len(snapshot): transition to COMPLETED
        → stop(): transition to STOPPED (no further tick)
    COMPLETED / STOPPED
        → terminal; the snapshot and cursor are discarded with the instance

Guarantees:
    - Each app in the snapshot is processed exactly once, in snapshot order
    - Apps in a batch are processed one at a time (never concurrently)
    - An exception from one app is logged and does not affect the others
    - The snapshot is taken once; apps added later wait for the next run
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from catalog.schemas.app import AppRecord

logger = logging.getLogger(__name__)

ProcessApp = Callable[[AppRecord], Awaitable[object]]


class BatchScheduler:
    """
    One paced pass over a catalog snapshot.

    Instances are single-use: once COMPLETED or STOPPED they never run again.
    """

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"

    def __init__(
        self,
        apps: Sequence[AppRecord],
        batch_size: int,
        batch_interval: float,
        process_app: ProcessApp,
        name: str = "sync",
    ):
        """
        Args:
            apps:            Catalog to walk; copied into an immutable snapshot
            batch_size:      Apps per tick (must be >= 1)
            batch_interval:  Seconds between ticks; 0 fires ticks back-to-back
            process_app:     Async per-app callback
            name:            Label used in log lines
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_interval < 0:
            raise ValueError("batch_interval must not be negative")

        self.snapshot = tuple(apps)
        self.batch_size = batch_size
        self.batch_interval = batch_interval
        self.process_app = process_app
        self.name = name

        self.cursor = 0
        self.state = self.IDLE
        self.ticks = 0
        self.failures = 0

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # ── Predicates ────────────────────────────────────────────────────────

    @property
    def total(self) -> int:
        return len(self.snapshot)

    @property
    def is_exhausted(self) -> bool:
        """Termination condition: every app in the snapshot has been handed out."""
        return self.cursor >= len(self.snapshot)

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The task created by start(), or None when driven directly."""
        return self._task

    @property
    def is_finished(self) -> bool:
        return self.state in (self.COMPLETED, self.STOPPED)

    # ── Transitions ───────────────────────────────────────────────────────

    async def tick(self) -> int:
        """
        Process the next batch.

        Returns:
            Number of apps handed to process_app in this tick (0 once exhausted).
        """
        if self.is_finished:
            return 0
        if self.state == self.IDLE:
            self.state = self.RUNNING

        batch = self.snapshot[self.cursor:self.cursor + self.batch_size]
        if not batch:
            self._complete()
            return 0

        self.ticks += 1
        logger.info(
            "[%s] Batch %d: apps %d-%d of %d",
            self.name,
            self.ticks,
            self.cursor + 1,
            self.cursor + len(batch),
            self.total,
        )

        for record in batch:
            try:
                await self.process_app(record)
            except Exception:
                self.failures += 1
                logger.exception("[%s] Processing failed for app %s", self.name, record.id)

        # Advance by what was actually sliced so a short final batch ends exactly at len
        self.cursor += len(batch)
        if self.is_exhausted:
            self._complete()
        return len(batch)

    def _complete(self) -> None:
        if self.state == self.RUNNING or self.state == self.IDLE:
            self.state = self.COMPLETED
            logger.info(
                "[%s] Run completed: %d apps in %d batches (%d failures)",
                self.name,
                self.total,
                self.ticks,
                self.failures,
            )

    def stop(self) -> None:
        """
        Prevent any further tick. Idempotent; a batch already in progress
        finishes its current app sequence, and nothing is rolled back.
        """
        if self.is_finished:
            return
        self.state = self.STOPPED
        self._stop_event.set()
        logger.info("[%s] Run stopped at %d/%d", self.name, self.cursor, self.total)

    # ── Driver ────────────────────────────────────────────────────────────

    async def run(self) -> None:
        """Drive ticks until the snapshot is exhausted or stop() is called."""
        if self.is_finished:
            return
        self.state = self.RUNNING

        if self.is_exhausted:
            self._complete()
            return

        while self.state == self.RUNNING:
            await self.tick()
            if self.state != self.RUNNING:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.batch_interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> asyncio.Task:
        """
        Schedule run() on the current event loop and return its task.

        The state is RUNNING as soon as this returns, before the first tick.
        """
        if self._task is None:
            if self.state == self.IDLE:
                self.state = self.RUNNING
            self._task = asyncio.create_task(self.run(), name=f"batch-scheduler-{self.name}")
        return self._task

    async def wait(self) -> None:
        """Wait until the run reaches COMPLETED or STOPPED."""
        if self._task is not None:
            await self._task
        elif not self.is_finished:
            await self.run()
