"""Storage layer - Database schemas and repositories."""

from uniswap_pool_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from uniswap_pool_tracker.storage.models import (
    Base,
    DailyStatsModel,
    EventMetricModel,
    HourlyStatsModel,
    IntegrityCheckModel,
    LiquidityEventModel,
    PoolSnapshotModel,
    PriceHistoryModel,
    QueryPerformanceModel,
    SwapModel,
    UserStatsModel,
)
from uniswap_pool_tracker.storage.repos import (
    DailyStatsDTO,
    DailyStatsRepository,
    EventMetricDTO,
    EventMetricRepository,
    HourlyStatsDTO,
    HourlyStatsRepository,
    IntegrityCheckDTO,
    IntegrityCheckRepository,
    LiquidityEventDTO,
    LiquidityEventRepository,
    PoolSnapshotDTO,
    PoolSnapshotRepository,
    PriceHistoryDTO,
    PriceHistoryRepository,
    QueryPerformanceDTO,
    QueryPerformanceRepository,
    SwapDTO,
    SwapRepository,
    UserStatsDTO,
    UserStatsRepository,
    ensure_utc,
)

__all__ = [
    "Base",
    "DailyStatsDTO",
    "DailyStatsModel",
    "DailyStatsRepository",
    "DatabaseManager",
    "EventMetricDTO",
    "EventMetricModel",
    "EventMetricRepository",
    "HourlyStatsDTO",
    "HourlyStatsModel",
    "HourlyStatsRepository",
    "IntegrityCheckDTO",
    "IntegrityCheckModel",
    "IntegrityCheckRepository",
    "LiquidityEventDTO",
    "LiquidityEventModel",
    "LiquidityEventRepository",
    "PoolSnapshotDTO",
    "PoolSnapshotModel",
    "PoolSnapshotRepository",
    "PriceHistoryDTO",
    "PriceHistoryModel",
    "PriceHistoryRepository",
    "QueryPerformanceDTO",
    "QueryPerformanceModel",
    "QueryPerformanceRepository",
    "SwapDTO",
    "SwapModel",
    "SwapRepository",
    "UserStatsDTO",
    "UserStatsModel",
    "UserStatsRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "ensure_utc",
    "init_async_db",
]
