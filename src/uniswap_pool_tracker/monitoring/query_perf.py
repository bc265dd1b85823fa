"""Query execution time recording."""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import QueryPerformanceDTO, QueryPerformanceRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_QUERY_TEXT_LENGTH = 1000


def query_hash(query_text: str) -> str:
    return hashlib.sha256(query_text.encode("utf-8")).hexdigest()


@dataclass
class QueryMeasurement:
    """Filled in by the caller inside `track`."""

    rows_returned: int | None = None


class QueryPerformanceRecorder:
    """Write one `query_performance` row per measured query.

    Recording failures are logged; they never affect the measured query.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def record(
        self,
        query_type: str,
        query_text: str,
        execution_time_ms: int,
        rows_returned: int | None = None,
    ) -> None:
        dto = QueryPerformanceDTO(
            query_type=query_type,
            query_hash=query_hash(query_text),
            execution_time_ms=execution_time_ms,
            rows_returned=rows_returned,
            query_text=query_text[:MAX_QUERY_TEXT_LENGTH],
            timestamp=datetime.now(UTC),
        )
        try:
            async with self._db.get_async_session() as session:
                await QueryPerformanceRepository(session).insert(dto)
        except SQLAlchemyError as e:
            logger.warning("Failed to record query performance for %s: %s", query_type, e)

    @asynccontextmanager
    async def track(self, query_type: str, query_text: str) -> AsyncIterator[QueryMeasurement]:
        """Time the enclosed block; a failing block is recorded with 0 rows."""
        measurement = QueryMeasurement()
        started = time.perf_counter()
        try:
            yield measurement
        except Exception:
            elapsed = round((time.perf_counter() - started) * 1000)
            await self.record(query_type, query_text, elapsed, 0)
            raise
        elapsed = round((time.perf_counter() - started) * 1000)
        await self.record(query_type, query_text, elapsed, measurement.rows_returned)

    async def measure(
        self,
        query_type: str,
        query_text: str,
        query: Callable[[], Awaitable[T]],
    ) -> T:
        """Run `query` under `track`; list results report their length."""
        async with self.track(query_type, query_text) as measurement:
            result = await query()
            if isinstance(result, list):
                measurement.rows_returned = len(result)
        return result
