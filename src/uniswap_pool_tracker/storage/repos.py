"""Repository pattern implementations for data access.

Raw event writers insert and ignore natural-key conflicts, derived row
writers (price points, snapshots, hourly/daily stats) overwrite on
conflict, and user stats merge on conflict in a single statement.
Statements are built for the session's dialect (PostgreSQL in production,
SQLite in tests).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from uniswap_pool_tracker.storage.models import (
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

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

USER_TYPE_LP = "LP"
USER_TYPE_WHALE = "WHALE"
USER_TYPE_RETAIL = "RETAIL"


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _decimal(value: int | float | Decimal | None) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _int(value: Decimal | int | None) -> int | None:
    return int(value) if value is not None else None


def _insert(session: AsyncSession, model: type[Any]) -> Any:
    """INSERT statement supporting ON CONFLICT for the session's dialect."""
    bind = session.bind
    dialect = bind.dialect.name if bind is not None else "postgresql"
    if dialect == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


@dataclass
class SwapDTO:
    """Data transfer object for valued swaps."""

    transaction_hash: str
    log_index: int
    block_number: int
    block_timestamp: datetime
    sender: str
    recipient: str
    amount0: int
    amount1: int
    sqrt_price_x96: int
    liquidity: int
    tick: int
    amount0_readable: Decimal
    amount1_readable: Decimal
    price_token0: Decimal | None
    price_token1: Decimal | None
    swap_type: str
    usd_value: Decimal | None
    gas_used: int | None = None
    gas_price: int | None = None
    transaction_fee: Decimal | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SwapModel) -> SwapDTO:
        return cls(
            transaction_hash=model.transaction_hash,
            log_index=model.log_index,
            block_number=model.block_number,
            block_timestamp=ensure_utc(model.block_timestamp),
            sender=model.sender,
            recipient=model.recipient,
            amount0=int(model.amount0),
            amount1=int(model.amount1),
            sqrt_price_x96=int(model.sqrt_price_x96),
            liquidity=int(model.liquidity),
            tick=model.tick,
            amount0_readable=model.amount0_readable or Decimal(0),
            amount1_readable=model.amount1_readable or Decimal(0),
            price_token0=model.price_token0,
            price_token1=model.price_token1,
            swap_type=model.swap_type,
            usd_value=model.usd_value,
            gas_used=model.gas_used,
            gas_price=_int(model.gas_price),
            transaction_fee=model.transaction_fee,
            created_at=ensure_utc(model.created_at),
        )


@dataclass
class LiquidityEventDTO:
    """Data transfer object for valued Mint/Burn/Collect events."""

    transaction_hash: str
    log_index: int
    block_number: int
    block_timestamp: datetime
    event_type: str
    owner: str
    sender: str | None
    liquidity_delta: int
    tick_lower: int
    tick_upper: int
    amount0: int
    amount1: int
    amount0_readable: Decimal
    amount1_readable: Decimal
    usd_value: Decimal | None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: LiquidityEventModel) -> LiquidityEventDTO:
        return cls(
            transaction_hash=model.transaction_hash,
            log_index=model.log_index,
            block_number=model.block_number,
            block_timestamp=ensure_utc(model.block_timestamp),
            event_type=model.event_type,
            owner=model.owner,
            sender=model.sender,
            liquidity_delta=int(model.liquidity_delta),
            tick_lower=model.tick_lower,
            tick_upper=model.tick_upper,
            amount0=int(model.amount0),
            amount1=int(model.amount1),
            amount0_readable=model.amount0_readable or Decimal(0),
            amount1_readable=model.amount1_readable or Decimal(0),
            usd_value=model.usd_value,
            created_at=ensure_utc(model.created_at),
        )


@dataclass
class PriceHistoryDTO:
    timestamp: datetime
    block_number: int
    price: Decimal

    @classmethod
    def from_model(cls, model: PriceHistoryModel) -> PriceHistoryDTO:
        return cls(
            timestamp=ensure_utc(model.timestamp),
            block_number=model.block_number,
            price=model.price,
        )


@dataclass
class PoolSnapshotDTO:
    """Data transfer object for pool state snapshots."""

    snapshot_time: datetime
    block_number: int
    sqrt_price_x96: int
    tick: int
    liquidity: int
    price_token0: Decimal | None
    price_token1: Decimal | None
    tvl_usd: Decimal | None
    token0_balance: Decimal | None
    token1_balance: Decimal | None
    volume_24h_usd: Decimal | None
    fees_24h_usd: Decimal | None
    transactions_24h: int | None

    @classmethod
    def from_model(cls, model: PoolSnapshotModel) -> PoolSnapshotDTO:
        return cls(
            snapshot_time=ensure_utc(model.snapshot_time),
            block_number=model.block_number,
            sqrt_price_x96=int(model.sqrt_price_x96),
            tick=model.tick,
            liquidity=int(model.liquidity),
            price_token0=model.price_token0,
            price_token1=model.price_token1,
            tvl_usd=model.tvl_usd,
            token0_balance=model.token0_balance,
            token1_balance=model.token1_balance,
            volume_24h_usd=model.volume_24h_usd,
            fees_24h_usd=model.fees_24h_usd,
            transactions_24h=model.transactions_24h,
        )


@dataclass
class HourlyStatsDTO:
    """Data transfer object for hourly rollups."""

    hour_start: datetime
    hour_end: datetime
    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    close_price: Decimal
    total_transactions: int = 0
    buy_transactions: int = 0
    sell_transactions: int = 0
    volume_token0: Decimal = Decimal(0)
    volume_token1: Decimal = Decimal(0)
    volume_usd: Decimal = Decimal(0)
    fees_token0: Decimal = Decimal(0)
    fees_token1: Decimal = Decimal(0)
    fees_usd: Decimal = Decimal(0)
    unique_addresses: int = 0
    unique_senders: int = 0
    avg_liquidity: int | None = None
    min_liquidity: int | None = None
    max_liquidity: int | None = None

    @classmethod
    def from_model(cls, model: HourlyStatsModel) -> HourlyStatsDTO:
        return cls(
            hour_start=ensure_utc(model.hour_start),
            hour_end=ensure_utc(model.hour_end),
            open_price=model.open_price,
            high_price=model.high_price,
            low_price=model.low_price,
            close_price=model.close_price,
            total_transactions=model.total_transactions,
            buy_transactions=model.buy_transactions,
            sell_transactions=model.sell_transactions,
            volume_token0=model.volume_token0,
            volume_token1=model.volume_token1,
            volume_usd=model.volume_usd,
            fees_token0=model.fees_token0,
            fees_token1=model.fees_token1,
            fees_usd=model.fees_usd,
            unique_addresses=model.unique_addresses,
            unique_senders=model.unique_senders,
            avg_liquidity=_int(model.avg_liquidity),
            min_liquidity=_int(model.min_liquidity),
            max_liquidity=_int(model.max_liquidity),
        )


@dataclass
class DailyStatsDTO:
    """Data transfer object for daily rollups."""

    day: date
    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    close_price: Decimal
    total_transactions: int = 0
    buy_transactions: int = 0
    sell_transactions: int = 0
    volume_token0: Decimal = Decimal(0)
    volume_token1: Decimal = Decimal(0)
    volume_usd: Decimal = Decimal(0)
    fees_token0: Decimal = Decimal(0)
    fees_token1: Decimal = Decimal(0)
    fees_usd: Decimal = Decimal(0)
    unique_addresses: int = 0
    unique_senders: int = 0
    new_addresses: int = 0
    avg_tvl_usd: Decimal | None = None
    end_tvl_usd: Decimal | None = None
    whale_transactions: int = 0
    largest_transaction_usd: Decimal | None = None

    @classmethod
    def from_model(cls, model: DailyStatsModel) -> DailyStatsDTO:
        return cls(
            day=model.date,
            open_price=model.open_price,
            high_price=model.high_price,
            low_price=model.low_price,
            close_price=model.close_price,
            total_transactions=model.total_transactions,
            buy_transactions=model.buy_transactions,
            sell_transactions=model.sell_transactions,
            volume_token0=model.volume_token0,
            volume_token1=model.volume_token1,
            volume_usd=model.volume_usd,
            fees_token0=model.fees_token0,
            fees_token1=model.fees_token1,
            fees_usd=model.fees_usd,
            unique_addresses=model.unique_addresses,
            unique_senders=model.unique_senders,
            new_addresses=model.new_addresses,
            avg_tvl_usd=model.avg_tvl_usd,
            end_tvl_usd=model.end_tvl_usd,
            whale_transactions=model.whale_transactions,
            largest_transaction_usd=model.largest_transaction_usd,
        )


@dataclass
class UserStatsDTO:
    """Per-account statistics, or one event's contribution to them."""

    address: str
    total_transactions: int = 0
    buy_transactions: int = 0
    sell_transactions: int = 0
    total_volume_usd: Decimal = Decimal(0)
    largest_transaction_usd: Decimal | None = None
    first_transaction_at: datetime | None = None
    last_transaction_at: datetime | None = None
    is_liquidity_provider: bool = False
    total_liquidity_provided_usd: Decimal = Decimal(0)
    user_type: str | None = None

    @classmethod
    def from_model(cls, model: UserStatsModel) -> UserStatsDTO:
        return cls(
            address=model.address,
            total_transactions=model.total_transactions,
            buy_transactions=model.buy_transactions,
            sell_transactions=model.sell_transactions,
            total_volume_usd=model.total_volume_usd,
            largest_transaction_usd=model.largest_transaction_usd,
            first_transaction_at=ensure_utc(model.first_transaction_at),
            last_transaction_at=ensure_utc(model.last_transaction_at),
            is_liquidity_provider=bool(model.is_liquidity_provider),
            total_liquidity_provided_usd=model.total_liquidity_provided_usd,
            user_type=model.user_type,
        )


@dataclass
class EventMetricDTO:
    """Data transfer object for persisted event metrics."""

    event_type: str
    event_timestamp: datetime
    transaction_hash: str
    block_number: int
    processing_start: datetime
    processing_end: datetime
    storage_start: datetime
    storage_end: datetime
    processing_latency_ms: int
    storage_latency_ms: int
    total_latency_ms: int
    success: bool
    error_message: str | None = None

    @classmethod
    def from_model(cls, model: EventMetricModel) -> EventMetricDTO:
        return cls(
            event_type=model.event_type,
            event_timestamp=ensure_utc(model.event_timestamp),
            transaction_hash=model.transaction_hash,
            block_number=model.block_number,
            processing_start=ensure_utc(model.processing_start),
            processing_end=ensure_utc(model.processing_end),
            storage_start=ensure_utc(model.storage_start),
            storage_end=ensure_utc(model.storage_end),
            processing_latency_ms=model.processing_latency_ms,
            storage_latency_ms=model.storage_latency_ms,
            total_latency_ms=model.total_latency_ms,
            success=bool(model.success),
            error_message=model.error_message,
        )


@dataclass
class IntegrityCheckDTO:
    check_type: str
    timestamp: datetime
    passed: bool
    issues_count: int
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, model: IntegrityCheckModel) -> IntegrityCheckDTO:
        return cls(
            check_type=model.check_type,
            timestamp=ensure_utc(model.timestamp),
            passed=bool(model.passed),
            issues_count=model.issues_count,
            details=dict(model.details or {}),
        )


@dataclass
class QueryPerformanceDTO:
    query_type: str
    query_hash: str
    execution_time_ms: int
    rows_returned: int | None
    query_text: str | None
    timestamp: datetime


class SwapRepository:
    """Repository for swap events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_ignore(self, dto: SwapDTO) -> bool:
        """Insert a swap; a duplicate (transaction_hash, log_index) is a no-op.

        Returns:
            True if a row was inserted.
        """
        values = {
            "transaction_hash": dto.transaction_hash.lower(),
            "log_index": dto.log_index,
            "block_number": dto.block_number,
            "block_timestamp": dto.block_timestamp,
            "sender": dto.sender.lower(),
            "recipient": dto.recipient.lower(),
            "amount0": _decimal(dto.amount0),
            "amount1": _decimal(dto.amount1),
            "sqrt_price_x96": _decimal(dto.sqrt_price_x96),
            "liquidity": _decimal(dto.liquidity),
            "tick": dto.tick,
            "amount0_readable": dto.amount0_readable,
            "amount1_readable": dto.amount1_readable,
            "price_token0": dto.price_token0,
            "price_token1": dto.price_token1,
            "swap_type": dto.swap_type,
            "usd_value": dto.usd_value,
            "gas_used": dto.gas_used,
            "gas_price": _decimal(dto.gas_price),
            "transaction_fee": dto.transaction_fee,
            "created_at": datetime.now(UTC),
        }
        stmt = _insert(self.session, SwapModel).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["transaction_hash", "log_index"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return bool(result.rowcount)

    async def get(self, transaction_hash: str, log_index: int) -> SwapDTO | None:
        result = await self.session.execute(
            select(SwapModel).where(
                (SwapModel.transaction_hash == transaction_hash.lower())
                & (SwapModel.log_index == log_index)
            )
        )
        model = result.scalar_one_or_none()
        return SwapDTO.from_model(model) if model else None

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(SwapModel))
        return int(result.scalar_one())

    async def list_priced_between(self, start: datetime, end: datetime) -> list[SwapDTO]:
        """Swaps with a pool price and block_timestamp in [start, end), oldest first."""
        result = await self.session.execute(
            select(SwapModel)
            .where(
                (SwapModel.block_timestamp >= start)
                & (SwapModel.block_timestamp < end)
                & SwapModel.price_token0.is_not(None)
            )
            .order_by(SwapModel.block_timestamp.asc(), SwapModel.log_index.asc())
        )
        return [SwapDTO.from_model(m) for m in result.scalars().all()]

    async def addresses_between(self, start: datetime, end: datetime) -> set[str]:
        """Distinct senders and recipients of swaps in [start, end)."""
        result = await self.session.execute(
            select(SwapModel.sender, SwapModel.recipient)
            .where((SwapModel.block_timestamp >= start) & (SwapModel.block_timestamp < end))
            .distinct()
        )
        addresses: set[str] = set()
        for sender, recipient in result.all():
            addresses.add(sender)
            addresses.add(recipient)
        return addresses

    async def latest_price_before(self, ts: datetime) -> Decimal | None:
        result = await self.session.execute(
            select(SwapModel.price_token0)
            .where((SwapModel.block_timestamp < ts) & SwapModel.price_token0.is_not(None))
            .order_by(SwapModel.block_timestamp.desc(), SwapModel.log_index.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def volume_since(self, since: datetime) -> tuple[Decimal, int]:
        """Sum of USD value and count of valued swaps since `since`."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(SwapModel.usd_value), 0), func.count(SwapModel.id)).where(
                (SwapModel.block_timestamp >= since) & SwapModel.usd_value.is_not(None)
            )
        )
        total, count = result.one()
        return Decimal(str(total)), int(count)

    async def list_valued_for_replay(self) -> list[SwapDTO]:
        """All swaps with a USD value, oldest first."""
        result = await self.session.execute(
            select(SwapModel)
            .where(SwapModel.usd_value.is_not(None))
            .order_by(SwapModel.block_timestamp.asc(), SwapModel.log_index.asc())
        )
        return [SwapDTO.from_model(m) for m in result.scalars().all()]


class LiquidityEventRepository:
    """Repository for Mint/Burn/Collect events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_ignore(self, dto: LiquidityEventDTO) -> bool:
        """Insert an event; a duplicate natural key is a no-op."""
        values = {
            "transaction_hash": dto.transaction_hash.lower(),
            "log_index": dto.log_index,
            "block_number": dto.block_number,
            "block_timestamp": dto.block_timestamp,
            "event_type": dto.event_type,
            "owner": dto.owner.lower(),
            "sender": dto.sender.lower() if dto.sender else None,
            "liquidity_delta": _decimal(dto.liquidity_delta),
            "tick_lower": dto.tick_lower,
            "tick_upper": dto.tick_upper,
            "amount0": _decimal(dto.amount0),
            "amount1": _decimal(dto.amount1),
            "amount0_readable": dto.amount0_readable,
            "amount1_readable": dto.amount1_readable,
            "usd_value": dto.usd_value,
            "created_at": datetime.now(UTC),
        }
        stmt = _insert(self.session, LiquidityEventModel).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["transaction_hash", "log_index"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return bool(result.rowcount)

    async def get(self, transaction_hash: str, log_index: int) -> LiquidityEventDTO | None:
        result = await self.session.execute(
            select(LiquidityEventModel).where(
                (LiquidityEventModel.transaction_hash == transaction_hash.lower())
                & (LiquidityEventModel.log_index == log_index)
            )
        )
        model = result.scalar_one_or_none()
        return LiquidityEventDTO.from_model(model) if model else None

    async def list_valued_for_replay(self) -> list[LiquidityEventDTO]:
        result = await self.session.execute(
            select(LiquidityEventModel)
            .where(LiquidityEventModel.usd_value.is_not(None))
            .order_by(LiquidityEventModel.block_timestamp.asc(), LiquidityEventModel.log_index.asc())
        )
        return [LiquidityEventDTO.from_model(m) for m in result.scalars().all()]


class PriceHistoryRepository:
    """Repository for the per-swap price series."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: PriceHistoryDTO) -> None:
        stmt = _insert(self.session, PriceHistoryModel).values(
            timestamp=dto.timestamp,
            block_number=dto.block_number,
            price=dto.price,
            created_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["timestamp"],
            set_={
                "block_number": stmt.excluded.block_number,
                "price": stmt.excluded.price,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get_latest(self) -> PriceHistoryDTO | None:
        result = await self.session.execute(
            select(PriceHistoryModel).order_by(PriceHistoryModel.timestamp.desc()).limit(1)
        )
        model = result.scalar_one_or_none()
        return PriceHistoryDTO.from_model(model) if model else None

    async def list_between(self, start: datetime, end: datetime) -> list[PriceHistoryDTO]:
        result = await self.session.execute(
            select(PriceHistoryModel)
            .where((PriceHistoryModel.timestamp >= start) & (PriceHistoryModel.timestamp < end))
            .order_by(PriceHistoryModel.timestamp.asc())
        )
        return [PriceHistoryDTO.from_model(m) for m in result.scalars().all()]


class PoolSnapshotRepository:
    """Repository for hourly pool snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: PoolSnapshotDTO) -> None:
        values = {
            "snapshot_time": dto.snapshot_time,
            "block_number": dto.block_number,
            "sqrt_price_x96": _decimal(dto.sqrt_price_x96),
            "tick": dto.tick,
            "liquidity": _decimal(dto.liquidity),
            "price_token0": dto.price_token0,
            "price_token1": dto.price_token1,
            "tvl_usd": dto.tvl_usd,
            "token0_balance": dto.token0_balance,
            "token1_balance": dto.token1_balance,
            "volume_24h_usd": dto.volume_24h_usd,
            "fees_24h_usd": dto.fees_24h_usd,
            "transactions_24h": dto.transactions_24h,
        }
        stmt = _insert(self.session, PoolSnapshotModel).values(**values, created_at=datetime.now(UTC))
        stmt = stmt.on_conflict_do_update(
            index_elements=["snapshot_time"],
            set_={key: getattr(stmt.excluded, key) for key in values if key != "snapshot_time"},
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get_latest(self) -> PoolSnapshotDTO | None:
        result = await self.session.execute(
            select(PoolSnapshotModel).order_by(PoolSnapshotModel.snapshot_time.desc()).limit(1)
        )
        model = result.scalar_one_or_none()
        return PoolSnapshotDTO.from_model(model) if model else None

    async def tvl_between(self, start: datetime, end: datetime) -> tuple[Decimal | None, Decimal | None]:
        """Average TVL and the TVL of the last snapshot in [start, end)."""
        in_range = (
            (PoolSnapshotModel.snapshot_time >= start)
            & (PoolSnapshotModel.snapshot_time < end)
            & PoolSnapshotModel.tvl_usd.is_not(None)
        )
        avg_result = await self.session.execute(select(func.avg(PoolSnapshotModel.tvl_usd)).where(in_range))
        avg_tvl = avg_result.scalar_one_or_none()
        end_result = await self.session.execute(
            select(PoolSnapshotModel.tvl_usd)
            .where(in_range)
            .order_by(PoolSnapshotModel.snapshot_time.desc())
            .limit(1)
        )
        end_tvl = end_result.scalar_one_or_none()
        return (_decimal(avg_tvl) if avg_tvl is not None else None, end_tvl)


def _stats_values(dto: HourlyStatsDTO | DailyStatsDTO) -> dict[str, Any]:
    return {
        "open_price": dto.open_price,
        "high_price": dto.high_price,
        "low_price": dto.low_price,
        "close_price": dto.close_price,
        "total_transactions": dto.total_transactions,
        "buy_transactions": dto.buy_transactions,
        "sell_transactions": dto.sell_transactions,
        "volume_token0": dto.volume_token0,
        "volume_token1": dto.volume_token1,
        "volume_usd": dto.volume_usd,
        "fees_token0": dto.fees_token0,
        "fees_token1": dto.fees_token1,
        "fees_usd": dto.fees_usd,
        "unique_addresses": dto.unique_addresses,
        "unique_senders": dto.unique_senders,
    }


class HourlyStatsRepository:
    """Repository for hourly rollups."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: HourlyStatsDTO) -> None:
        """Write a bucket row, replacing every non-key field on conflict."""
        now = datetime.now(UTC)
        values = _stats_values(dto) | {
            "hour_end": dto.hour_end,
            "avg_liquidity": _decimal(dto.avg_liquidity),
            "min_liquidity": _decimal(dto.min_liquidity),
            "max_liquidity": _decimal(dto.max_liquidity),
            "updated_at": now,
        }
        stmt = _insert(self.session, HourlyStatsModel).values(
            hour_start=dto.hour_start, created_at=now, **values
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["hour_start"],
            set_={key: getattr(stmt.excluded, key) for key in values},
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get(self, hour_start: datetime) -> HourlyStatsDTO | None:
        result = await self.session.execute(
            select(HourlyStatsModel).where(HourlyStatsModel.hour_start == hour_start)
        )
        model = result.scalar_one_or_none()
        return HourlyStatsDTO.from_model(model) if model else None

    async def list_between(self, start: datetime, end: datetime) -> list[HourlyStatsDTO]:
        result = await self.session.execute(
            select(HourlyStatsModel)
            .where((HourlyStatsModel.hour_start >= start) & (HourlyStatsModel.hour_start < end))
            .order_by(HourlyStatsModel.hour_start.asc())
        )
        return [HourlyStatsDTO.from_model(m) for m in result.scalars().all()]


class DailyStatsRepository:
    """Repository for daily rollups."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(self, dto: DailyStatsDTO) -> None:
        now = datetime.now(UTC)
        values = _stats_values(dto) | {
            "new_addresses": dto.new_addresses,
            "avg_tvl_usd": dto.avg_tvl_usd,
            "end_tvl_usd": dto.end_tvl_usd,
            "whale_transactions": dto.whale_transactions,
            "largest_transaction_usd": dto.largest_transaction_usd,
            "updated_at": now,
        }
        stmt = _insert(self.session, DailyStatsModel).values(date=dto.day, created_at=now, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["date"],
            set_={key: getattr(stmt.excluded, key) for key in values},
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get(self, day: date) -> DailyStatsDTO | None:
        result = await self.session.execute(select(DailyStatsModel).where(DailyStatsModel.date == day))
        model = result.scalar_one_or_none()
        return DailyStatsDTO.from_model(model) if model else None


class UserStatsRepository:
    """Repository for per-account statistics."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def merge(self, contribution: UserStatsDTO) -> None:
        """Fold one event's contribution into the account row atomically.

        Counts and volumes add, the largest transaction and the first/last
        timestamps take the extreme value, the LP flag is OR-ed, and the
        classification follows: LP is sticky; an incoming LP or WHALE wins;
        otherwise an existing classification is kept; otherwise the
        incoming one is used.
        """
        now = datetime.now(UTC)
        stmt = _insert(self.session, UserStatsModel).values(
            address=contribution.address.lower(),
            total_transactions=contribution.total_transactions,
            buy_transactions=contribution.buy_transactions,
            sell_transactions=contribution.sell_transactions,
            total_volume_usd=contribution.total_volume_usd,
            largest_transaction_usd=contribution.largest_transaction_usd,
            first_transaction_at=contribution.first_transaction_at,
            last_transaction_at=contribution.last_transaction_at,
            is_liquidity_provider=contribution.is_liquidity_provider,
            total_liquidity_provided_usd=contribution.total_liquidity_provided_usd,
            user_type=contribution.user_type,
            created_at=now,
            updated_at=now,
        )
        table = UserStatsModel.__table__.c
        new = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=["address"],
            set_={
                "total_transactions": table.total_transactions + new.total_transactions,
                "buy_transactions": table.buy_transactions + new.buy_transactions,
                "sell_transactions": table.sell_transactions + new.sell_transactions,
                "total_volume_usd": table.total_volume_usd + new.total_volume_usd,
                "largest_transaction_usd": sa.case(
                    (
                        new.largest_transaction_usd > func.coalesce(table.largest_transaction_usd, 0),
                        new.largest_transaction_usd,
                    ),
                    else_=table.largest_transaction_usd,
                ),
                "first_transaction_at": sa.case(
                    (table.first_transaction_at.is_(None), new.first_transaction_at),
                    (new.first_transaction_at.is_(None), table.first_transaction_at),
                    (
                        new.first_transaction_at < table.first_transaction_at,
                        new.first_transaction_at,
                    ),
                    else_=table.first_transaction_at,
                ),
                "last_transaction_at": sa.case(
                    (table.last_transaction_at.is_(None), new.last_transaction_at),
                    (new.last_transaction_at.is_(None), table.last_transaction_at),
                    (
                        new.last_transaction_at > table.last_transaction_at,
                        new.last_transaction_at,
                    ),
                    else_=table.last_transaction_at,
                ),
                "is_liquidity_provider": sa.or_(
                    table.is_liquidity_provider, new.is_liquidity_provider
                ),
                "total_liquidity_provided_usd": func.coalesce(table.total_liquidity_provided_usd, 0)
                + new.total_liquidity_provided_usd,
                "user_type": sa.case(
                    (
                        sa.or_(
                            table.is_liquidity_provider == sa.true(),
                            table.user_type == USER_TYPE_LP,
                        ),
                        USER_TYPE_LP,
                    ),
                    (new.user_type.in_([USER_TYPE_LP, USER_TYPE_WHALE]), new.user_type),
                    (table.user_type.is_not(None), table.user_type),
                    else_=new.user_type,
                ),
                "updated_at": new.updated_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def get(self, address: str) -> UserStatsDTO | None:
        result = await self.session.execute(
            select(UserStatsModel).where(UserStatsModel.address == address.lower())
        )
        model = result.scalar_one_or_none()
        return UserStatsDTO.from_model(model) if model else None

    async def top_by_volume(self, limit: int = 10) -> list[UserStatsDTO]:
        result = await self.session.execute(
            select(UserStatsModel).order_by(UserStatsModel.total_volume_usd.desc()).limit(limit)
        )
        return [UserStatsDTO.from_model(m) for m in result.scalars().all()]

    async def list_by_type(self, user_type: str, limit: int = 100) -> list[UserStatsDTO]:
        result = await self.session.execute(
            select(UserStatsModel)
            .where(UserStatsModel.user_type == user_type)
            .order_by(UserStatsModel.total_volume_usd.desc())
            .limit(limit)
        )
        return [UserStatsDTO.from_model(m) for m in result.scalars().all()]

    async def delete_all(self) -> int:
        result = await self.session.execute(delete(UserStatsModel))
        await self.session.flush()
        return int(result.rowcount or 0)


class EventMetricRepository:
    """Repository for per-event latency metrics."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, dtos: Sequence[EventMetricDTO]) -> None:
        now = datetime.now(UTC)
        self.session.add_all(
            [
                EventMetricModel(
                    event_type=dto.event_type,
                    event_timestamp=dto.event_timestamp,
                    transaction_hash=dto.transaction_hash.lower(),
                    block_number=dto.block_number,
                    processing_start=dto.processing_start,
                    processing_end=dto.processing_end,
                    storage_start=dto.storage_start,
                    storage_end=dto.storage_end,
                    processing_latency_ms=dto.processing_latency_ms,
                    storage_latency_ms=dto.storage_latency_ms,
                    total_latency_ms=dto.total_latency_ms,
                    success=dto.success,
                    error_message=dto.error_message,
                    created_at=now,
                )
                for dto in dtos
            ]
        )
        await self.session.flush()

    async def list_between(self, start: datetime, end: datetime) -> list[EventMetricDTO]:
        result = await self.session.execute(
            select(EventMetricModel)
            .where(
                (EventMetricModel.event_timestamp >= start) & (EventMetricModel.event_timestamp <= end)
            )
            .order_by(EventMetricModel.event_timestamp.asc())
        )
        return [EventMetricDTO.from_model(m) for m in result.scalars().all()]


class IntegrityCheckRepository:
    """Append-only log of integrity check results."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: IntegrityCheckDTO) -> None:
        self.session.add(
            IntegrityCheckModel(
                check_type=dto.check_type,
                timestamp=dto.timestamp,
                passed=dto.passed,
                issues_count=dto.issues_count,
                details=dto.details,
                created_at=datetime.now(UTC),
            )
        )
        await self.session.flush()

    async def list_recent(self, limit: int = 50, check_type: str | None = None) -> list[IntegrityCheckDTO]:
        stmt = select(IntegrityCheckModel)
        if check_type is not None:
            stmt = stmt.where(IntegrityCheckModel.check_type == check_type)
        result = await self.session.execute(
            stmt.order_by(IntegrityCheckModel.timestamp.desc(), IntegrityCheckModel.id.desc()).limit(limit)
        )
        return [IntegrityCheckDTO.from_model(m) for m in result.scalars().all()]


class QueryPerformanceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: QueryPerformanceDTO) -> None:
        self.session.add(
            QueryPerformanceModel(
                query_type=dto.query_type,
                query_hash=dto.query_hash,
                execution_time_ms=dto.execution_time_ms,
                rows_returned=dto.rows_returned,
                query_text=dto.query_text,
                timestamp=dto.timestamp,
            )
        )
        await self.session.flush()

    async def list_by_type(self, query_type: str) -> list[QueryPerformanceDTO]:
        result = await self.session.execute(
            select(QueryPerformanceModel)
            .where(QueryPerformanceModel.query_type == query_type)
            .order_by(QueryPerformanceModel.timestamp.desc())
        )
        return [
            QueryPerformanceDTO(
                query_type=m.query_type,
                query_hash=m.query_hash,
                execution_time_ms=m.execution_time_ms,
                rows_returned=m.rows_returned,
                query_text=m.query_text,
                timestamp=ensure_utc(m.timestamp),
            )
            for m in result.scalars().all()
        ]
