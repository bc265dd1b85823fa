"""Wall-clock aligned hourly and daily jobs.

Each job waits for its first boundary (next top of the hour, next UTC
midnight), runs, and then repeats on a fixed period. Stopping prevents
further runs; a job already in progress is allowed to finish.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from uniswap_pool_tracker.aggregation.snapshot import PoolSnapshotService
from uniswap_pool_tracker.aggregation.stats import StatsAggregator
from uniswap_pool_tracker.monitoring.integrity import IntegrityChecker

logger = logging.getLogger(__name__)

HOURLY_PERIOD = timedelta(hours=1)
DAILY_PERIOD = timedelta(days=1)


def next_hour_boundary(now: datetime) -> datetime:
    now = now.astimezone(UTC)
    return now.replace(minute=0, second=0, microsecond=0) + HOURLY_PERIOD


def next_midnight(now: datetime) -> datetime:
    now = now.astimezone(UTC)
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + DAILY_PERIOD


class Scheduler:
    """Drive pool snapshots, rollups and the integrity sweep."""

    def __init__(
        self,
        stats: StatsAggregator,
        snapshots: PoolSnapshotService,
        integrity: IntegrityChecker,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._stats = stats
        self._snapshots = snapshots
        self._integrity = integrity
        self._clock = clock or (lambda: datetime.now(UTC))

        self._stop_event: asyncio.Event | None = None
        self._hourly_task: asyncio.Task[None] | None = None
        self._daily_task: asyncio.Task[None] | None = None
        self._jobs: set[asyncio.Task[Any]] = set()
        self._next_hourly_run: datetime | None = None
        self._next_daily_run: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._hourly_task is not None or self._daily_task is not None

    def start(self) -> None:
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        now = self._clock()
        stop_event = self._stop_event = asyncio.Event()
        first_hourly = self._next_hourly_run = next_hour_boundary(now)
        first_daily = self._next_daily_run = next_midnight(now)
        self._hourly_task = asyncio.create_task(
            self._run_periodic(
                "hourly", self.run_hourly_job, HOURLY_PERIOD, first_hourly, stop_event, hourly=True
            )
        )
        self._daily_task = asyncio.create_task(
            self._run_periodic(
                "daily", self.run_daily_job, DAILY_PERIOD, first_daily, stop_event, hourly=False
            )
        )
        logger.info(
            "Scheduler started: first hourly run at %s, first daily run at %s",
            first_hourly.isoformat(),
            first_daily.isoformat(),
        )

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        for task in (self._hourly_task, self._daily_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._hourly_task = None
        self._daily_task = None
        self._next_hourly_run = None
        self._next_daily_run = None
        logger.info("Scheduler stopped")

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "hourly_task": self._hourly_task is not None,
            "daily_task": self._daily_task is not None,
            "next_hourly_run": self._next_hourly_run.isoformat() if self._next_hourly_run else None,
            "next_daily_run": self._next_daily_run.isoformat() if self._next_daily_run else None,
        }

    async def _sleep_until(self, when: datetime, stop_event: asyncio.Event) -> bool:
        """Wait until `when`; False if the scheduler was stopped first."""
        delay = max((when - self._clock()).total_seconds(), 0.0)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
            return False
        except TimeoutError:
            return True

    async def _run_periodic(
        self,
        name: str,
        job: Callable[[], Awaitable[None]],
        period: timedelta,
        first_run: datetime,
        stop_event: asyncio.Event,
        *,
        hourly: bool,
    ) -> None:
        next_run = first_run
        while await self._sleep_until(next_run, stop_event):
            next_run = next_run + period
            if hourly:
                self._next_hourly_run = next_run
            else:
                self._next_daily_run = next_run

            # Cancelling the loop must not interrupt a job mid-flight.
            task = asyncio.create_task(job())
            self._jobs.add(task)
            task.add_done_callback(self._jobs.discard)
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                logger.info("Scheduler stopping while %s job is still running", name)
                raise

    async def run_hourly_job(self) -> None:
        """Snapshot the pool, then roll up the previous hour."""
        now = self._clock()
        logger.info("Running hourly job at %s", now.isoformat())
        try:
            await self._snapshots.take_snapshot(now)
        except Exception:
            logger.exception("Pool snapshot failed")
        try:
            await self._stats.generate_previous_hour(now)
        except Exception:
            logger.exception("Hourly stats failed")

    async def run_daily_job(self) -> None:
        """Roll up the previous day, then run and persist the integrity checks."""
        now = self._clock()
        logger.info("Running daily job at %s", now.isoformat())
        try:
            await self._stats.generate_previous_day(now)
        except Exception:
            logger.exception("Daily stats failed")
        try:
            await self._integrity.check_and_save()
        except Exception:
            logger.exception("Integrity sweep failed")
