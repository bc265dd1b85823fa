"""Per-event latency metrics with a buffered database flush."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import EventMetricDTO, EventMetricRepository

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL_SECONDS = 30.0
DEFAULT_MAX_BUFFER = 1000
DEFAULT_HISTORY_SIZE = 1000


def _ms(delta: timedelta) -> int:
    return round(delta.total_seconds() * 1000)


@dataclass(frozen=True)
class EventMetric:
    """Timing of one processed event."""

    event_type: str
    event_timestamp: datetime
    transaction_hash: str
    block_number: int
    processing_start: datetime
    processing_end: datetime
    storage_start: datetime
    storage_end: datetime
    success: bool
    error_message: str | None = None

    @property
    def processing_latency_ms(self) -> int:
        return _ms(self.processing_end - self.processing_start)

    @property
    def storage_latency_ms(self) -> int:
        return _ms(self.storage_end - self.storage_start)

    @property
    def total_latency_ms(self) -> int:
        """Chain time to stored, including propagation and queueing delay."""
        return _ms(self.storage_end - self.event_timestamp)

    def to_dto(self) -> EventMetricDTO:
        return EventMetricDTO(
            event_type=self.event_type,
            event_timestamp=self.event_timestamp,
            transaction_hash=self.transaction_hash,
            block_number=self.block_number,
            processing_start=self.processing_start,
            processing_end=self.processing_end,
            storage_start=self.storage_start,
            storage_end=self.storage_end,
            processing_latency_ms=self.processing_latency_ms,
            storage_latency_ms=self.storage_latency_ms,
            total_latency_ms=self.total_latency_ms,
            success=self.success,
            error_message=self.error_message,
        )


@dataclass(frozen=True)
class SystemMetrics:
    timestamp: datetime
    total_events: int
    successful_events: int
    failed_events: int
    avg_processing_latency_ms: int
    avg_storage_latency_ms: int
    avg_total_latency_ms: int
    error_rate: float
    events_per_second: float


def summarize(metrics: Sequence[EventMetric | EventMetricDTO]) -> SystemMetrics | None:
    """Summary statistics over metrics ordered by event time; None if empty."""
    if not metrics:
        return None
    total = len(metrics)
    successful = sum(1 for m in metrics if m.success)
    failed = total - successful

    window = (metrics[-1].event_timestamp - metrics[0].event_timestamp).total_seconds()
    return SystemMetrics(
        timestamp=datetime.now(UTC),
        total_events=total,
        successful_events=successful,
        failed_events=failed,
        avg_processing_latency_ms=round(sum(m.processing_latency_ms for m in metrics) / total),
        avg_storage_latency_ms=round(sum(m.storage_latency_ms for m in metrics) / total),
        avg_total_latency_ms=round(sum(m.total_latency_ms for m in metrics) / total),
        error_rate=failed / total,
        events_per_second=total / window if window > 0 else 0.0,
    )


class MetricsCollector:
    """Buffer event metrics in memory and flush them in batches.

    A flush runs every `flush_interval_seconds` and as soon as the buffer
    reaches `max_buffer` entries. A failed flush puts the batch back at the
    front of the buffer.
    """

    def __init__(
        self,
        db: DatabaseManager,
        *,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self._db = db
        self._flush_interval = flush_interval_seconds
        self._max_buffer = max_buffer
        self._buffer: list[EventMetric] = []
        self._recent: deque[EventMetric] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._flush_task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def record_event(self, metric: EventMetric) -> None:
        async with self._lock:
            self._buffer.append(metric)
            self._recent.append(metric)
            full = len(self._buffer) >= self._max_buffer
        if full:
            await self._flush_logged()

    async def flush(self) -> int:
        """Write buffered metrics; returns the number written.

        Raises:
            Exception: Whatever the write raised; the batch is re-queued first.
        """
        async with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return 0

        try:
            async with self._db.get_async_session() as session:
                await EventMetricRepository(session).insert_many([m.to_dto() for m in batch])
        except Exception:
            async with self._lock:
                self._buffer[:0] = batch
            raise

        logger.debug("Flushed %d event metrics", len(batch))
        return len(batch)

    async def _flush_logged(self) -> None:
        try:
            await self.flush()
        except Exception as e:
            logger.warning("Metrics flush failed, %d metrics re-queued: %s", self.pending, e)

    def start(self) -> None:
        if self._flush_task is not None:
            return
        self._stop_event = asyncio.Event()
        self._flush_task = asyncio.create_task(self._run_flush_loop(self._stop_event))
        logger.info("Metrics flushing every %.0fs", self._flush_interval)

    async def stop(self) -> None:
        """Stop the flush loop and flush what is left."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._flush_task is not None:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task
            self._flush_task = None
        await self._flush_logged()

    async def _run_flush_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._flush_interval)
                break
            except TimeoutError:
                pass
            await self._flush_logged()

    def get_system_metrics(self, limit: int = 100) -> SystemMetrics | None:
        """Summary of the most recently recorded events."""
        recent = list(self._recent)[-limit:]
        return summarize(sorted(recent, key=lambda m: m.event_timestamp))

    async def get_aggregated_metrics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SystemMetrics | None:
        """Summary of persisted metrics in [start, end]; defaults to the last hour."""
        end = end or datetime.now(UTC)
        start = start or end - timedelta(hours=1)
        try:
            async with self._db.get_async_session() as session:
                rows = await EventMetricRepository(session).list_between(start, end)
        except SQLAlchemyError as e:
            logger.error("Failed to read aggregated metrics: %s", e)
            return None
        return summarize(rows)
