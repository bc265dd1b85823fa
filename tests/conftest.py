"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from uniswap_pool_tracker.ingestor.models import PoolTokens, TokenInfo
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import LiquidityEventDTO, SwapDTO

WETH = "0x82af49447d8a07e3bd95bd0d56f35241523fbab1"
USDC = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"
POOL = "0xC6962004f452bE9203591991D15f6b388e09E8D0"

TRADER = "0x1111111111111111111111111111111111111111"
ROUTER = "0x2222222222222222222222222222222222222222"


@pytest.fixture
async def db() -> AsyncIterator[DatabaseManager]:
    """In-memory SQLite database with the full schema."""
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()


@pytest.fixture
def pool_tokens() -> PoolTokens:
    return PoolTokens(
        token0=TokenInfo(address=WETH, decimals=18, symbol="WETH"),
        token1=TokenInfo(address=USDC, decimals=6, symbol="USDC"),
    )


@pytest.fixture
def make_swap() -> Callable[..., SwapDTO]:
    """Factory for valued swaps with sensible defaults."""

    def _make(
        *,
        tx: str = "0x" + "a" * 64,
        log_index: int = 0,
        block_number: int = 100,
        at: datetime | None = None,
        sender: str = TRADER,
        recipient: str = ROUTER,
        price: str | None = "2000",
        usd: str | None = "500",
        swap_type: str = "BUY",
        liquidity: int = 1_000,
        amount0: str = "0.25",
        amount1: str = "500",
    ) -> SwapDTO:
        return SwapDTO(
            transaction_hash=tx,
            log_index=log_index,
            block_number=block_number,
            block_timestamp=at or datetime(2026, 1, 1, 10, 0, tzinfo=UTC),
            sender=sender,
            recipient=recipient,
            amount0=-250_000_000_000_000_000,
            amount1=500_000_000,
            sqrt_price_x96=2**96,
            liquidity=liquidity,
            tick=0,
            amount0_readable=Decimal(amount0),
            amount1_readable=Decimal(amount1),
            price_token0=Decimal(price) if price is not None else None,
            price_token1=None,
            swap_type=swap_type,
            usd_value=Decimal(usd) if usd is not None else None,
        )

    return _make


@pytest.fixture
def make_liquidity_event() -> Callable[..., LiquidityEventDTO]:
    def _make(
        *,
        tx: str = "0x" + "b" * 64,
        log_index: int = 0,
        event_type: str = "MINT",
        owner: str = TRADER,
        sender: str | None = None,
        usd: str | None = "500",
        at: datetime | None = None,
    ) -> LiquidityEventDTO:
        return LiquidityEventDTO(
            transaction_hash=tx,
            log_index=log_index,
            block_number=100,
            block_timestamp=at or datetime(2026, 1, 1, 10, 0, tzinfo=UTC),
            event_type=event_type,
            owner=owner,
            sender=sender,
            liquidity_delta=1_000,
            tick_lower=-600,
            tick_upper=600,
            amount0=1,
            amount1=1,
            amount0_readable=Decimal("0.1"),
            amount1_readable=Decimal("200"),
            usd_value=Decimal(usd) if usd is not None else None,
        )

    return _make
