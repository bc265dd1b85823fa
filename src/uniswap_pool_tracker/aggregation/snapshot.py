"""Periodic pool state snapshots."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from uniswap_pool_tracker.abi import ERC20_ABI, POOL_ABI
from uniswap_pool_tracker.aggregation.rollup import FEE_RATE
from uniswap_pool_tracker.chain import ChainClient, ChainClientError
from uniswap_pool_tracker.ingestor.models import PoolTokens, TokenInfo
from uniswap_pool_tracker.processors.base import TokenInfoMissingError, float_to_decimal
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import PoolSnapshotDTO, PoolSnapshotRepository, SwapRepository
from uniswap_pool_tracker.valuation.math import inverse_price, price_from_sqrt_price, readable_amount
from uniswap_pool_tracker.valuation.quoter import QuoterPriceSource

logger = logging.getLogger(__name__)

TRAILING_WINDOW = timedelta(hours=24)


class PoolSnapshotService:
    """Capture pool state, TVL and trailing 24h activity into `pool_snapshots`."""

    def __init__(
        self,
        db: DatabaseManager,
        chain: ChainClient,
        quoter: QuoterPriceSource,
        pool_address: str,
    ) -> None:
        self._db = db
        self._chain = chain
        self._quoter = quoter
        self._pool_address = pool_address
        self._tokens: PoolTokens | None = None

    def set_token_info(self, tokens: PoolTokens) -> None:
        self._tokens = tokens

    async def _balance(self, token: TokenInfo) -> Decimal:
        raw = await self._chain.call_function(token.address, ERC20_ABI, "balanceOf", self._pool_address)
        return readable_amount(int(raw), token.decimals)

    async def _balances(self, tokens: PoolTokens) -> tuple[Decimal | None, Decimal | None]:
        try:
            balance0, balance1 = await asyncio.gather(
                self._balance(tokens.token0), self._balance(tokens.token1)
            )
        except ChainClientError as e:
            logger.warning("Token balances unavailable, snapshot without TVL: %s", e)
            return None, None
        return balance0, balance1

    async def _tvl(self, tokens: PoolTokens, balance0: Decimal, balance1: Decimal) -> Decimal | None:
        price0, price1 = await asyncio.gather(
            self._quoter.get_price(tokens.token0.address, tokens.token0.decimals),
            self._quoter.get_price(tokens.token1.address, tokens.token1.decimals),
        )
        if price0 is None and price1 is None:
            return None
        tvl = Decimal(0)
        if price0 is not None:
            tvl += balance0 * Decimal(repr(price0))
        if price1 is not None:
            tvl += balance1 * Decimal(repr(price1))
        return tvl

    async def take_snapshot(self, now: datetime | None = None) -> PoolSnapshotDTO:
        """Read slot0, liquidity and balances and persist one snapshot.

        Raises:
            TokenInfoMissingError: If token info has not been set.
            RPCError: If pool state or the block number cannot be read.
        """
        tokens = self._tokens
        if tokens is None:
            raise TokenInfoMissingError("PoolSnapshotService: token info not set")
        snapshot_time = now or datetime.now(UTC)

        slot0, liquidity, block_number = await asyncio.gather(
            self._chain.call_function(self._pool_address, POOL_ABI, "slot0"),
            self._chain.call_function(self._pool_address, POOL_ABI, "liquidity"),
            self._chain.get_block_number(),
        )
        sqrt_price_x96, tick = int(slot0[0]), int(slot0[1])
        price = price_from_sqrt_price(sqrt_price_x96)

        balance0, balance1 = await self._balances(tokens)
        tvl_usd = None
        if balance0 is not None and balance1 is not None:
            tvl_usd = await self._tvl(tokens, balance0, balance1)

        async with self._db.get_async_session() as session:
            volume_24h, transactions_24h = await SwapRepository(session).volume_since(
                snapshot_time - TRAILING_WINDOW
            )
            dto = PoolSnapshotDTO(
                snapshot_time=snapshot_time,
                block_number=int(block_number),
                sqrt_price_x96=sqrt_price_x96,
                tick=tick,
                liquidity=int(liquidity),
                price_token0=float_to_decimal(price),
                price_token1=float_to_decimal(inverse_price(price)),
                tvl_usd=tvl_usd,
                token0_balance=balance0,
                token1_balance=balance1,
                volume_24h_usd=volume_24h,
                fees_24h_usd=volume_24h * FEE_RATE,
                transactions_24h=transactions_24h,
            )
            await PoolSnapshotRepository(session).upsert(dto)

        logger.info(
            "Pool snapshot at block %d: price=%.10g tvl_usd=%s volume_24h=%s",
            dto.block_number,
            price,
            tvl_usd,
            volume_24h,
        )
        return dto
