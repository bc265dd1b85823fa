"""Tests for USD valuation."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from uniswap_pool_tracker.chain import RPCError
from uniswap_pool_tracker.ingestor.models import TokenInfo
from uniswap_pool_tracker.valuation.valuator import UsdValuator

WETH = TokenInfo(address="0x82af49447d8a07e3bd95bd0d56f35241523fbab1", decimals=18, symbol="WETH")
ARB = TokenInfo(address="0x912ce59144191c1204e64559fe8253a0e49e6548", decimals=18, symbol="ARB")
USDC = TokenInfo(address="0xaf88d065e77c8cc2239327c5edb3a432268e5831", decimals=6, symbol="USDC")


@pytest.fixture
def chain() -> MagicMock:
    client = MagicMock()
    client.get_chain_id = AsyncMock(return_value=42161)
    return client


@pytest.fixture
def quoter() -> MagicMock:
    source = MagicMock()
    source.get_price = AsyncMock(return_value=None)
    return source


@pytest.fixture
def coingecko() -> MagicMock:
    source = MagicMock()
    source.get_price = AsyncMock(return_value=None)
    return source


class TestUsdValuator:
    @pytest.mark.asyncio
    async def test_stable_token1_taken_at_face_value(
        self, chain: MagicMock, quoter: MagicMock
    ) -> None:
        valuator = UsdValuator(chain, quoter)
        value = await valuator.usd_value(
            Decimal("1"), Decimal("-2000"), WETH, USDC, use_sum=False
        )
        assert value == Decimal("2000")
        quoter.get_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stable_token0_takes_precedence(self, chain: MagicMock, quoter: MagicMock) -> None:
        valuator = UsdValuator(chain, quoter)
        value = await valuator.usd_value(Decimal("150"), Decimal("0.05"), USDC, WETH, use_sum=True)
        assert value == Decimal("150")

    @pytest.mark.asyncio
    async def test_swap_averages_quoted_sides(self, chain: MagicMock, quoter: MagicMock) -> None:
        prices = {WETH.address: 2000.0, ARB.address: 1.0}
        quoter.get_price.side_effect = lambda address, decimals: prices[address]
        valuator = UsdValuator(chain, quoter)

        value = await valuator.usd_value(Decimal("1"), Decimal("1800"), WETH, ARB, use_sum=False)
        assert value == Decimal("1900")

    @pytest.mark.asyncio
    async def test_liquidity_sums_quoted_sides(self, chain: MagicMock, quoter: MagicMock) -> None:
        prices = {WETH.address: 2000.0, ARB.address: 1.0}
        quoter.get_price.side_effect = lambda address, decimals: prices[address]
        valuator = UsdValuator(chain, quoter)

        value = await valuator.usd_value(Decimal("1"), Decimal("1800"), WETH, ARB, use_sum=True)
        assert value == Decimal("3800")

    @pytest.mark.asyncio
    async def test_falls_back_to_price_index(
        self, chain: MagicMock, quoter: MagicMock, coingecko: MagicMock
    ) -> None:
        coingecko.get_price.side_effect = lambda address, symbol, chain_id: (
            0.5 if symbol == "ARB" else None
        )
        valuator = UsdValuator(chain, quoter, coingecko)

        value = await valuator.usd_value(Decimal("1"), Decimal("10"), WETH, ARB, use_sum=False)
        assert value == Decimal("5")
        coingecko.get_price.assert_any_await(ARB.address, "ARB", 42161)

    @pytest.mark.asyncio
    async def test_unresolved_is_none(
        self, chain: MagicMock, quoter: MagicMock, coingecko: MagicMock
    ) -> None:
        valuator = UsdValuator(chain, quoter, coingecko)
        assert await valuator.usd_value(Decimal("1"), Decimal("1"), WETH, ARB, use_sum=False) is None

    @pytest.mark.asyncio
    async def test_chain_id_failure_skips_price_index(
        self, chain: MagicMock, quoter: MagicMock, coingecko: MagicMock
    ) -> None:
        chain.get_chain_id.side_effect = RPCError("down")
        valuator = UsdValuator(chain, quoter, coingecko)
        assert await valuator.token_price(WETH) is None
        coingecko.get_price.assert_not_awaited()
