"""Tests for pool snapshots."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from uniswap_pool_tracker.aggregation.snapshot import PoolSnapshotService
from uniswap_pool_tracker.chain import RPCError
from uniswap_pool_tracker.ingestor.models import PoolTokens
from uniswap_pool_tracker.processors.base import TokenInfoMissingError
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import PoolSnapshotRepository, SwapDTO, SwapRepository

POOL = "0xC6962004f452bE9203591991D15f6b388e09E8D0"
NOW = datetime(2026, 1, 2, 12, tzinfo=UTC)


def make_chain(pool_tokens: PoolTokens, *, balances_fail: bool = False) -> MagicMock:
    async def call_function(address: str, abi: Any, name: str, *args: Any) -> Any:
        if name == "slot0":
            return (2 * 2**96, 13_863, 0, 1, 1, 0, True)
        if name == "liquidity":
            return 10**18
        if name == "balanceOf":
            if balances_fail:
                raise RPCError("balance unavailable")
            if address == pool_tokens.token0.address:
                return 3 * 10**18
            return 5_000_000_000
        raise AssertionError(name)

    chain = MagicMock()
    chain.call_function = AsyncMock(side_effect=call_function)
    chain.get_block_number = AsyncMock(return_value=250_000_000)
    return chain


def make_quoter(prices: dict[str, float | None]) -> MagicMock:
    quoter = MagicMock()
    quoter.get_price = AsyncMock(side_effect=lambda address, decimals: prices.get(address))
    return quoter


class TestPoolSnapshotService:
    @pytest.mark.asyncio
    async def test_requires_token_info(self, db: DatabaseManager, pool_tokens: PoolTokens) -> None:
        service = PoolSnapshotService(db, make_chain(pool_tokens), make_quoter({}), POOL)
        with pytest.raises(TokenInfoMissingError):
            await service.take_snapshot(NOW)

    @pytest.mark.asyncio
    async def test_snapshot_with_tvl_and_trailing_volume(
        self,
        db: DatabaseManager,
        pool_tokens: PoolTokens,
        make_swap: Callable[..., SwapDTO],
    ) -> None:
        async with db.get_async_session() as session:
            swaps = SwapRepository(session)
            await swaps.insert_ignore(make_swap(log_index=0, at=NOW - timedelta(hours=2), usd="1000"))
            await swaps.insert_ignore(make_swap(log_index=1, at=NOW - timedelta(hours=30), usd="9999"))

        quoter = make_quoter({pool_tokens.token0.address: 2000.0, pool_tokens.token1.address: 1.0})
        service = PoolSnapshotService(db, make_chain(pool_tokens), quoter, POOL)
        service.set_token_info(pool_tokens)

        dto = await service.take_snapshot(NOW)

        assert dto.block_number == 250_000_000
        assert dto.tick == 13_863
        assert dto.price_token0 == Decimal("4.0")
        assert dto.price_token1 == Decimal("0.25")
        assert dto.token0_balance == Decimal("3")
        assert dto.token1_balance == Decimal("5000")
        assert dto.tvl_usd == Decimal("11000")
        assert dto.volume_24h_usd == Decimal("1000")
        assert dto.fees_24h_usd == Decimal("0.5")
        assert dto.transactions_24h == 1

        async with db.get_async_session() as session:
            stored = await PoolSnapshotRepository(session).get_latest()
        assert stored is not None
        assert stored.snapshot_time == NOW

    @pytest.mark.asyncio
    async def test_partial_prices_sum_resolved_sides(
        self, db: DatabaseManager, pool_tokens: PoolTokens
    ) -> None:
        quoter = make_quoter({pool_tokens.token1.address: 1.0})
        service = PoolSnapshotService(db, make_chain(pool_tokens), quoter, POOL)
        service.set_token_info(pool_tokens)
        dto = await service.take_snapshot(NOW)
        assert dto.tvl_usd == Decimal("5000")

    @pytest.mark.asyncio
    async def test_balance_failure_leaves_tvl_empty(
        self, db: DatabaseManager, pool_tokens: PoolTokens
    ) -> None:
        service = PoolSnapshotService(
            db, make_chain(pool_tokens, balances_fail=True), make_quoter({}), POOL
        )
        service.set_token_info(pool_tokens)
        dto = await service.take_snapshot(NOW)
        assert dto.tvl_usd is None
        assert dto.token0_balance is None
        assert dto.volume_24h_usd == Decimal(0)
        assert dto.transactions_24h == 0

    @pytest.mark.asyncio
    async def test_pool_state_failure_propagates(
        self, db: DatabaseManager, pool_tokens: PoolTokens
    ) -> None:
        chain = make_chain(pool_tokens)
        chain.get_block_number.side_effect = RPCError("down")
        service = PoolSnapshotService(db, chain, make_quoter({}), POOL)
        service.set_token_info(pool_tokens)
        with pytest.raises(RPCError):
            await service.take_snapshot(NOW)
