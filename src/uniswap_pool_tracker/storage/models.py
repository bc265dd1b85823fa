"""SQLAlchemy models for persistent storage.

This module defines the database schema for raw pool events, derived
price and rollup tables, per-account statistics, and the monitoring
tables (event metrics, integrity check results, query performance).
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# uint256 / int256 values and Q64.96 prices.
RawAmount = Numeric(78, 0)
TokenAmount = Numeric(38, 18)
Price = Numeric(38, 18)
UsdAmount = Numeric(24, 6)

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SwapModel(Base):
    """Swap events, one row per (transaction_hash, log_index)."""

    __tablename__ = "swaps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    sender: Mapped[str] = mapped_column(String(42), nullable=False)
    recipient: Mapped[str] = mapped_column(String(42), nullable=False)

    amount0: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    amount1: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    sqrt_price_x96: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    liquidity: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    tick: Mapped[int] = mapped_column(Integer, nullable=False)

    amount0_readable: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)
    amount1_readable: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)
    price_token0: Mapped[Decimal | None] = mapped_column(Price, nullable=True)
    price_token1: Mapped[Decimal | None] = mapped_column(Price, nullable=True)
    swap_type: Mapped[str] = mapped_column(String(4), nullable=False)
    usd_value: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)

    gas_used: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    gas_price: Mapped[Decimal | None] = mapped_column(RawAmount, nullable=True)
    transaction_fee: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("transaction_hash", "log_index", name="uq_swaps_tx_log"),
        Index("idx_swaps_block_number", "block_number"),
        Index("idx_swaps_block_timestamp", "block_timestamp"),
        Index("idx_swaps_sender", "sender"),
        Index("idx_swaps_recipient", "recipient"),
    )


class LiquidityEventModel(Base):
    """Mint, Burn and Collect events."""

    __tablename__ = "liquidity_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    event_type: Mapped[str] = mapped_column(String(10), nullable=False)
    owner: Mapped[str] = mapped_column(String(42), nullable=False)
    sender: Mapped[str | None] = mapped_column(String(42), nullable=True)

    liquidity_delta: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    tick_lower: Mapped[int] = mapped_column(Integer, nullable=False)
    tick_upper: Mapped[int] = mapped_column(Integer, nullable=False)

    amount0: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    amount1: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    amount0_readable: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)
    amount1_readable: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)
    usd_value: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("transaction_hash", "log_index", name="uq_liquidity_events_tx_log"),
        Index("idx_liquidity_events_block_timestamp", "block_timestamp"),
        Index("idx_liquidity_events_owner", "owner"),
        Index("idx_liquidity_events_event_type", "event_type"),
    )


class PoolSnapshotModel(Base):
    """Hourly pool state snapshots."""

    __tablename__ = "pool_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    snapshot_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    sqrt_price_x96: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)
    tick: Mapped[int] = mapped_column(Integer, nullable=False)
    liquidity: Mapped[Decimal] = mapped_column(RawAmount, nullable=False)

    price_token0: Mapped[Decimal | None] = mapped_column(Price, nullable=True)
    price_token1: Mapped[Decimal | None] = mapped_column(Price, nullable=True)
    tvl_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)

    token0_balance: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)
    token1_balance: Mapped[Decimal | None] = mapped_column(TokenAmount, nullable=True)

    volume_24h_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)
    fees_24h_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)
    transactions_24h: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("snapshot_time", name="uq_pool_snapshots_time"),
        Index("idx_pool_snapshots_block", "block_number"),
    )


class HourlyStatsModel(Base):
    """Hourly OHLC and volume rollup."""

    __tablename__ = "hourly_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    hour_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    hour_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    open_price: Mapped[Decimal] = mapped_column(Price, nullable=False)
    high_price: Mapped[Decimal] = mapped_column(Price, nullable=False)
    low_price: Mapped[Decimal] = mapped_column(Price, nullable=False)
    close_price: Mapped[Decimal] = mapped_column(Price, nullable=False)

    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buy_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sell_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    volume_token0: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    volume_token1: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    volume_usd: Mapped[Decimal] = mapped_column(UsdAmount, nullable=False, default=0)

    fees_token0: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    fees_token1: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    fees_usd: Mapped[Decimal] = mapped_column(UsdAmount, nullable=False, default=0)

    unique_addresses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_senders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    avg_liquidity: Mapped[Decimal | None] = mapped_column(RawAmount, nullable=True)
    min_liquidity: Mapped[Decimal | None] = mapped_column(RawAmount, nullable=True)
    max_liquidity: Mapped[Decimal | None] = mapped_column(RawAmount, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (UniqueConstraint("hour_start", name="uq_hourly_stats_hour_start"),)


class DailyStatsModel(Base):
    """Daily OHLC, volume and address rollup."""

    __tablename__ = "daily_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    date: Mapped[date] = mapped_column(Date, nullable=False)

    open_price: Mapped[Decimal] = mapped_column(Price, nullable=False)
    high_price: Mapped[Decimal] = mapped_column(Price, nullable=False)
    low_price: Mapped[Decimal] = mapped_column(Price, nullable=False)
    close_price: Mapped[Decimal] = mapped_column(Price, nullable=False)

    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buy_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sell_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    volume_token0: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    volume_token1: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    volume_usd: Mapped[Decimal] = mapped_column(UsdAmount, nullable=False, default=0)

    fees_token0: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    fees_token1: Mapped[Decimal] = mapped_column(TokenAmount, nullable=False, default=0)
    fees_usd: Mapped[Decimal] = mapped_column(UsdAmount, nullable=False, default=0)

    unique_addresses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_senders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_addresses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    avg_tvl_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)
    end_tvl_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)

    whale_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    largest_transaction_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (UniqueConstraint("date", name="uq_daily_stats_date"),)


class UserStatsModel(Base):
    """Per-account trading and liquidity statistics."""

    __tablename__ = "user_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    address: Mapped[str] = mapped_column(String(42), nullable=False)

    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buy_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sell_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_volume_usd: Mapped[Decimal] = mapped_column(UsdAmount, nullable=False, default=0)
    largest_transaction_usd: Mapped[Decimal | None] = mapped_column(UsdAmount, nullable=True)

    first_transaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_transaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_liquidity_provider: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_liquidity_provided_usd: Mapped[Decimal] = mapped_column(
        UsdAmount, nullable=False, default=0
    )

    user_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("address", name="uq_user_stats_address"),
        Index("idx_user_stats_volume", "total_volume_usd"),
        Index("idx_user_stats_type", "user_type"),
    )


class PriceHistoryModel(Base):
    """Pool price after each priced swap, keyed by block timestamp."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price: Mapped[Decimal] = mapped_column(Price, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (UniqueConstraint("timestamp", name="uq_price_history_timestamp"),)


class EventMetricModel(Base):
    """Per-event processing latency."""

    __tablename__ = "event_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_type: Mapped[str] = mapped_column(String(10), nullable=False)
    event_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    processing_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processing_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    storage_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    storage_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    processing_latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    total_latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_event_metrics_timestamp", "event_timestamp"),
        Index("idx_event_metrics_type", "event_type"),
    )


class IntegrityCheckModel(Base):
    """Append-only integrity check results."""

    __tablename__ = "integrity_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    check_type: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    issues_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    details: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_integrity_checks_timestamp", "timestamp"),
        Index("idx_integrity_checks_type", "check_type"),
    )


class QueryPerformanceModel(Base):
    """Execution time of monitored queries."""

    __tablename__ = "query_performance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    query_type: Mapped[str] = mapped_column(String(100), nullable=False)
    query_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    rows_returned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    query_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_query_performance_timestamp", "timestamp"),
        Index("idx_query_performance_type", "query_type"),
    )
