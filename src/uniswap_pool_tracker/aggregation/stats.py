"""Hourly and daily statistics generation."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time
from decimal import Decimal

from uniswap_pool_tracker.aggregation.rollup import (
    DAY,
    HOUR,
    carry_forward,
    daily_stats,
    hourly_stats,
    rollup_swaps,
)
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import (
    DailyStatsDTO,
    DailyStatsRepository,
    HourlyStatsDTO,
    HourlyStatsRepository,
    PoolSnapshotRepository,
    SwapRepository,
)

logger = logging.getLogger(__name__)


def floor_hour(ts: datetime) -> datetime:
    return ts.astimezone(UTC).replace(minute=0, second=0, microsecond=0)


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def previous_hour(now: datetime | None = None) -> datetime:
    """Start of the last fully closed hour."""
    return floor_hour(now or datetime.now(UTC)) - HOUR


def previous_day(now: datetime | None = None) -> date:
    """The last fully closed UTC calendar day."""
    return (now or datetime.now(UTC)).astimezone(UTC).date() - DAY


class StatsAggregator:
    """Recompute bucket rows wholesale from raw swaps and upsert them.

    A bucket without priced swaps takes the previous bucket's close as its
    OHLC; when the previous bucket has no row the latest swap price before
    the bucket is used instead.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def compute_hourly(self, hour_start: datetime) -> HourlyStatsDTO:
        hour_start = floor_hour(hour_start)
        async with self._db.get_async_session() as session:
            swaps = SwapRepository(session)
            hourly = HourlyStatsRepository(session)

            rollup = rollup_swaps(await swaps.list_priced_between(hour_start, hour_start + HOUR))
            if rollup.open_price == 0:
                previous = await hourly.get(hour_start - HOUR)
                previous_close = previous.close_price if previous is not None else None
                if not previous_close:
                    previous_close = await swaps.latest_price_before(hour_start)
                rollup = carry_forward(rollup, previous_close)

            dto = hourly_stats(hour_start, rollup)
            await hourly.upsert(dto)

        logger.info(
            "Hourly stats %s: %d swaps, volume_usd=%s close=%s",
            hour_start.isoformat(),
            dto.total_transactions,
            dto.volume_usd,
            dto.close_price,
        )
        return dto

    async def compute_daily(self, day: date) -> DailyStatsDTO:
        start = day_start(day)
        async with self._db.get_async_session() as session:
            swaps = SwapRepository(session)
            daily = DailyStatsRepository(session)

            rollup = rollup_swaps(await swaps.list_priced_between(start, start + DAY))
            if rollup.open_price == 0:
                previous = await daily.get(day - DAY)
                previous_close: Decimal | None = previous.close_price if previous is not None else None
                if not previous_close:
                    previous_close = await swaps.latest_price_before(start)
                rollup = carry_forward(rollup, previous_close)

            previous_addresses = await swaps.addresses_between(start - DAY, start)
            avg_tvl, end_tvl = await PoolSnapshotRepository(session).tvl_between(start, start + DAY)

            dto = daily_stats(
                day,
                rollup,
                previous_addresses=previous_addresses,
                avg_tvl_usd=avg_tvl,
                end_tvl_usd=end_tvl,
            )
            await daily.upsert(dto)

        logger.info(
            "Daily stats %s: %d swaps, %d new addresses, %d whale transactions",
            day.isoformat(),
            dto.total_transactions,
            dto.new_addresses,
            dto.whale_transactions,
        )
        return dto

    async def generate_previous_hour(self, now: datetime | None = None) -> HourlyStatsDTO:
        return await self.compute_hourly(previous_hour(now))

    async def generate_previous_day(self, now: datetime | None = None) -> DailyStatsDTO:
        return await self.compute_daily(previous_day(now))
