"""USD valuation of pool events with tiered price sources."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from uniswap_pool_tracker.chain import ChainClient, ChainClientError
from uniswap_pool_tracker.ingestor.models import TokenInfo
from uniswap_pool_tracker.valuation.coingecko import CoinGeckoPriceSource
from uniswap_pool_tracker.valuation.math import combine_usd_values
from uniswap_pool_tracker.valuation.quoter import QuoterPriceSource
from uniswap_pool_tracker.valuation.tokens import is_stable_token

logger = logging.getLogger(__name__)


class UsdValuator:
    """Resolve the USD notional of a token pair movement.

    Resolution order:
    1. A stable token on either side is taken at face value.
    2. Per token, the on-chain quoter across fee tiers.
    3. Per token, the external index by symbol, then by address.
    The two sides are then combined: summed for liquidity events and
    averaged for swaps, or one side alone if only one price resolved.
    """

    def __init__(
        self,
        chain: ChainClient,
        quoter: QuoterPriceSource,
        coingecko: CoinGeckoPriceSource | None = None,
    ) -> None:
        self._chain = chain
        self._quoter = quoter
        self._coingecko = coingecko

    async def token_price(self, token: TokenInfo) -> float | None:
        """USD price of one unit of `token`, or None."""
        price = await self._quoter.get_price(token.address, token.decimals)
        if price is not None or self._coingecko is None:
            return price

        try:
            chain_id = await self._chain.get_chain_id()
        except ChainClientError as e:
            logger.warning("Chain ID unavailable, skipping price index: %s", e)
            return None
        return await self._coingecko.get_price(token.address, token.symbol or None, chain_id)

    async def usd_value(
        self,
        amount0: Decimal,
        amount1: Decimal,
        token0: TokenInfo,
        token1: TokenInfo,
        *,
        use_sum: bool,
    ) -> Decimal | None:
        """USD notional for readable amounts; None means valuation unavailable."""
        if is_stable_token(token0.address):
            return abs(amount0)
        if is_stable_token(token1.address):
            return abs(amount1)

        price0, price1 = await asyncio.gather(self.token_price(token0), self.token_price(token1))
        value = combine_usd_values(amount0, amount1, price0, price1, use_sum=use_sum)
        if value is None:
            logger.warning(
                "USD value unavailable for %s/%s",
                token0.symbol or token0.address,
                token1.symbol or token1.address,
            )
        return value
