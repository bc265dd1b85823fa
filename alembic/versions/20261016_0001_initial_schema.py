"""Initial schema: raw pool events, rollups, user stats and monitoring tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-16 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RAW = sa.Numeric(78, 0)
TOKEN = sa.Numeric(38, 18)
PRICE = sa.Numeric(38, 18)
USD = sa.Numeric(24, 6)


def _tz() -> sa.DateTime:
    return sa.DateTime(timezone=True)


def _event_key_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("block_timestamp", _tz(), nullable=False),
    ]


def _ohlc_columns() -> list[sa.Column]:
    return [
        sa.Column("open_price", PRICE, nullable=False),
        sa.Column("high_price", PRICE, nullable=False),
        sa.Column("low_price", PRICE, nullable=False),
        sa.Column("close_price", PRICE, nullable=False),
        sa.Column("total_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buy_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sell_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("volume_token0", TOKEN, nullable=False, server_default="0"),
        sa.Column("volume_token1", TOKEN, nullable=False, server_default="0"),
        sa.Column("volume_usd", USD, nullable=False, server_default="0"),
        sa.Column("fees_token0", TOKEN, nullable=False, server_default="0"),
        sa.Column("fees_token1", TOKEN, nullable=False, server_default="0"),
        sa.Column("fees_usd", USD, nullable=False, server_default="0"),
        sa.Column("unique_addresses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_senders", sa.Integer(), nullable=False, server_default="0"),
    ]


def upgrade() -> None:
    op.create_table(
        "swaps",
        *_event_key_columns(),
        sa.Column("sender", sa.String(42), nullable=False),
        sa.Column("recipient", sa.String(42), nullable=False),
        sa.Column("amount0", RAW, nullable=False),
        sa.Column("amount1", RAW, nullable=False),
        sa.Column("sqrt_price_x96", RAW, nullable=False),
        sa.Column("liquidity", RAW, nullable=False),
        sa.Column("tick", sa.Integer(), nullable=False),
        sa.Column("amount0_readable", TOKEN, nullable=True),
        sa.Column("amount1_readable", TOKEN, nullable=True),
        sa.Column("price_token0", PRICE, nullable=True),
        sa.Column("price_token1", PRICE, nullable=True),
        sa.Column("swap_type", sa.String(4), nullable=False),
        sa.Column("usd_value", USD, nullable=True),
        sa.Column("gas_used", sa.BigInteger(), nullable=True),
        sa.Column("gas_price", RAW, nullable=True),
        sa.Column("transaction_fee", TOKEN, nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_hash", "log_index", name="uq_swaps_tx_log"),
    )
    op.create_index("idx_swaps_block_number", "swaps", ["block_number"])
    op.create_index("idx_swaps_block_timestamp", "swaps", ["block_timestamp"])
    op.create_index("idx_swaps_sender", "swaps", ["sender"])
    op.create_index("idx_swaps_recipient", "swaps", ["recipient"])

    op.create_table(
        "liquidity_events",
        *_event_key_columns(),
        sa.Column("event_type", sa.String(10), nullable=False),
        sa.Column("owner", sa.String(42), nullable=False),
        sa.Column("sender", sa.String(42), nullable=True),
        sa.Column("liquidity_delta", RAW, nullable=False),
        sa.Column("tick_lower", sa.Integer(), nullable=False),
        sa.Column("tick_upper", sa.Integer(), nullable=False),
        sa.Column("amount0", RAW, nullable=False),
        sa.Column("amount1", RAW, nullable=False),
        sa.Column("amount0_readable", TOKEN, nullable=True),
        sa.Column("amount1_readable", TOKEN, nullable=True),
        sa.Column("usd_value", USD, nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_hash", "log_index", name="uq_liquidity_events_tx_log"),
    )
    op.create_index("idx_liquidity_events_block_timestamp", "liquidity_events", ["block_timestamp"])
    op.create_index("idx_liquidity_events_owner", "liquidity_events", ["owner"])
    op.create_index("idx_liquidity_events_event_type", "liquidity_events", ["event_type"])

    op.create_table(
        "pool_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("snapshot_time", _tz(), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("sqrt_price_x96", RAW, nullable=False),
        sa.Column("tick", sa.Integer(), nullable=False),
        sa.Column("liquidity", RAW, nullable=False),
        sa.Column("price_token0", PRICE, nullable=True),
        sa.Column("price_token1", PRICE, nullable=True),
        sa.Column("tvl_usd", USD, nullable=True),
        sa.Column("token0_balance", TOKEN, nullable=True),
        sa.Column("token1_balance", TOKEN, nullable=True),
        sa.Column("volume_24h_usd", USD, nullable=True),
        sa.Column("fees_24h_usd", USD, nullable=True),
        sa.Column("transactions_24h", sa.Integer(), nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("snapshot_time", name="uq_pool_snapshots_time"),
    )
    op.create_index("idx_pool_snapshots_block", "pool_snapshots", ["block_number"])

    op.create_table(
        "hourly_stats",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("hour_start", _tz(), nullable=False),
        sa.Column("hour_end", _tz(), nullable=False),
        *_ohlc_columns(),
        sa.Column("avg_liquidity", RAW, nullable=True),
        sa.Column("min_liquidity", RAW, nullable=True),
        sa.Column("max_liquidity", RAW, nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.Column("updated_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("hour_start", name="uq_hourly_stats_hour_start"),
    )

    op.create_table(
        "daily_stats",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        *_ohlc_columns(),
        sa.Column("new_addresses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_tvl_usd", USD, nullable=True),
        sa.Column("end_tvl_usd", USD, nullable=True),
        sa.Column("whale_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("largest_transaction_usd", USD, nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.Column("updated_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", name="uq_daily_stats_date"),
    )

    op.create_table(
        "user_stats",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("total_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buy_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sell_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_volume_usd", USD, nullable=False, server_default="0"),
        sa.Column("largest_transaction_usd", USD, nullable=True),
        sa.Column("first_transaction_at", _tz(), nullable=True),
        sa.Column("last_transaction_at", _tz(), nullable=True),
        sa.Column("is_liquidity_provider", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_liquidity_provided_usd", USD, nullable=False, server_default="0"),
        sa.Column("user_type", sa.String(20), nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.Column("updated_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("address", name="uq_user_stats_address"),
    )
    op.create_index("idx_user_stats_volume", "user_stats", ["total_volume_usd"])
    op.create_index("idx_user_stats_type", "user_stats", ["user_type"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", _tz(), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("price", PRICE, nullable=False),
        sa.Column("created_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("timestamp", name="uq_price_history_timestamp"),
    )

    op.create_table(
        "event_metrics",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_type", sa.String(10), nullable=False),
        sa.Column("event_timestamp", _tz(), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("processing_start", _tz(), nullable=False),
        sa.Column("processing_end", _tz(), nullable=False),
        sa.Column("storage_start", _tz(), nullable=False),
        sa.Column("storage_end", _tz(), nullable=False),
        sa.Column("processing_latency_ms", sa.Integer(), nullable=False),
        sa.Column("storage_latency_ms", sa.Integer(), nullable=False),
        sa.Column("total_latency_ms", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_event_metrics_timestamp", "event_metrics", ["event_timestamp"])
    op.create_index("idx_event_metrics_type", "event_metrics", ["event_type"])

    op.create_table(
        "integrity_checks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("check_type", sa.String(50), nullable=False),
        sa.Column("timestamp", _tz(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("issues_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_integrity_checks_timestamp", "integrity_checks", ["timestamp"])
    op.create_index("idx_integrity_checks_type", "integrity_checks", ["check_type"])

    op.create_table(
        "query_performance",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("query_type", sa.String(100), nullable=False),
        sa.Column("query_hash", sa.String(64), nullable=False),
        sa.Column("execution_time_ms", sa.Integer(), nullable=False),
        sa.Column("rows_returned", sa.Integer(), nullable=True),
        sa.Column("query_text", sa.Text(), nullable=True),
        sa.Column("timestamp", _tz(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_query_performance_timestamp", "query_performance", ["timestamp"])
    op.create_index("idx_query_performance_type", "query_performance", ["query_type"])


def downgrade() -> None:
    op.drop_index("idx_query_performance_type", table_name="query_performance")
    op.drop_index("idx_query_performance_timestamp", table_name="query_performance")
    op.drop_table("query_performance")

    op.drop_index("idx_integrity_checks_type", table_name="integrity_checks")
    op.drop_index("idx_integrity_checks_timestamp", table_name="integrity_checks")
    op.drop_table("integrity_checks")

    op.drop_index("idx_event_metrics_type", table_name="event_metrics")
    op.drop_index("idx_event_metrics_timestamp", table_name="event_metrics")
    op.drop_table("event_metrics")

    op.drop_table("price_history")

    op.drop_index("idx_user_stats_type", table_name="user_stats")
    op.drop_index("idx_user_stats_volume", table_name="user_stats")
    op.drop_table("user_stats")

    op.drop_table("daily_stats")
    op.drop_table("hourly_stats")

    op.drop_index("idx_pool_snapshots_block", table_name="pool_snapshots")
    op.drop_table("pool_snapshots")

    op.drop_index("idx_liquidity_events_event_type", table_name="liquidity_events")
    op.drop_index("idx_liquidity_events_owner", table_name="liquidity_events")
    op.drop_index("idx_liquidity_events_block_timestamp", table_name="liquidity_events")
    op.drop_table("liquidity_events")

    op.drop_index("idx_swaps_recipient", table_name="swaps")
    op.drop_index("idx_swaps_sender", table_name="swaps")
    op.drop_index("idx_swaps_block_timestamp", table_name="swaps")
    op.drop_index("idx_swaps_block_number", table_name="swaps")
    op.drop_table("swaps")
