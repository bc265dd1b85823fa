"""On-chain USD prices from the quoting contract."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from uniswap_pool_tracker.abi import QUOTER_ABI
from uniswap_pool_tracker.chain import ChainClient, ChainClientError
from uniswap_pool_tracker.config import DEFAULT_FEE_TIERS, DEFAULT_QUOTER_ADDRESS
from uniswap_pool_tracker.valuation.cache import PriceCache
from uniswap_pool_tracker.valuation.tokens import default_quote_token, stable_token

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_DECIMALS = 6


class QuoterPriceSource:
    """Price one whole token against a stable token via quoteExactInputSingle.

    Fee tiers are tried in ascending order; the first tier that returns a
    quote wins. A tier without a pool reverts and is skipped.
    """

    def __init__(
        self,
        chain: ChainClient,
        cache: PriceCache,
        *,
        quoter_address: str = DEFAULT_QUOTER_ADDRESS,
        fee_tiers: Sequence[int] = DEFAULT_FEE_TIERS,
    ) -> None:
        self._chain = chain
        self._cache = cache
        self._quoter_address = quoter_address
        self._fee_tiers = tuple(sorted(fee_tiers))

    async def _quote(self, token_in: str, token_out: str, fee: int, amount_in: int) -> int | None:
        try:
            amount_out = await self._chain.call_function(
                self._quoter_address,
                QUOTER_ABI,
                "quoteExactInputSingle",
                token_in,
                token_out,
                fee,
                amount_in,
                0,
            )
        except ChainClientError as e:
            logger.debug("No quote for %s at fee %d: %s", token_in, fee, e)
            return None
        return int(amount_out)

    async def get_price(
        self,
        token_address: str,
        token_decimals: int,
        quote_token: str | None = None,
    ) -> float | None:
        """USD price of one unit of `token_address`, or None if no tier quotes."""
        quote_side = quote_token or "auto"
        cached = await self._cache.get(token_address, quote_side)
        if cached is not None:
            return cached

        if stable_token(token_address) is not None:
            await self._cache.set(token_address, quote_side, 1.0)
            return 1.0

        try:
            if quote_token is None:
                quote_token = default_quote_token(await self._chain.get_chain_id())
        except ChainClientError as e:
            logger.warning("Cannot determine quote token for %s: %s", token_address, e)
            return None
        quote_info = stable_token(quote_token)
        quote_decimals = quote_info.decimals if quote_info else DEFAULT_QUOTE_DECIMALS

        one_token = 10**token_decimals
        for fee in self._fee_tiers:
            amount_out = await self._quote(token_address, quote_token, fee, one_token)
            if amount_out is None:
                continue
            price = amount_out / one_token / 10 ** (quote_decimals - token_decimals)
            logger.debug("Quoted %s at %.6f USD (fee %d)", token_address, price, fee)
            await self._cache.set(token_address, quote_side, price)
            return price

        logger.warning("No quoter price for %s on any fee tier", token_address)
        return None
