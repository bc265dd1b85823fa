"""Aggregation engine - bucket rollups, pool snapshots and account statistics."""

from uniswap_pool_tracker.aggregation.rollup import (
    FEE_RATE,
    WHALE_TRANSACTION_USD,
    BucketRollup,
    carry_forward,
    daily_stats,
    hourly_stats,
    rollup_swaps,
)
from uniswap_pool_tracker.aggregation.snapshot import PoolSnapshotService
from uniswap_pool_tracker.aggregation.stats import StatsAggregator, previous_day, previous_hour
from uniswap_pool_tracker.aggregation.users import (
    UserStatsService,
    derive_user_type,
    liquidity_contributions,
    swap_contributions,
)

__all__ = [
    "FEE_RATE",
    "WHALE_TRANSACTION_USD",
    "BucketRollup",
    "PoolSnapshotService",
    "StatsAggregator",
    "UserStatsService",
    "carry_forward",
    "daily_stats",
    "derive_user_type",
    "hourly_stats",
    "liquidity_contributions",
    "previous_day",
    "previous_hour",
    "rollup_swaps",
    "swap_contributions",
]
