"""Mint, Burn and Collect event processing."""

from __future__ import annotations

import logging

from uniswap_pool_tracker.ingestor.models import BurnEvent, CollectEvent, LiquidityEvent, MintEvent
from uniswap_pool_tracker.processors.base import BaseEventProcessor
from uniswap_pool_tracker.storage.repos import LiquidityEventDTO
from uniswap_pool_tracker.valuation.math import readable_amount

logger = logging.getLogger(__name__)


def nominal_sender(event: LiquidityEvent) -> str | None:
    """The account named by the log itself; Burn logs carry none."""
    if isinstance(event, MintEvent):
        return event.sender
    if isinstance(event, CollectEvent):
        return event.recipient
    return None


def liquidity_delta(event: LiquidityEvent) -> int:
    if isinstance(event, (MintEvent, BurnEvent)):
        return event.amount
    return 0


class LiquidityProcessor(BaseEventProcessor):
    """Turn a raw liquidity log into a valued, persistence-ready record."""

    async def process(self, event: LiquidityEvent) -> LiquidityEventDTO:
        """Enrich and value a Mint, Burn or Collect.

        Raises:
            TokenInfoMissingError: If token info has not been set.
            RPCError: If the receipt or block cannot be fetched.
        """
        tokens = self._require_tokens()
        receipt, block_timestamp = await self._fetch_context(event.meta)

        amount0_readable = readable_amount(event.amount0, tokens.token0.decimals)
        amount1_readable = readable_amount(event.amount1, tokens.token1.decimals)
        usd_value = await self._valuator.usd_value(
            amount0_readable, amount1_readable, tokens.token0, tokens.token1, use_sum=True
        )

        event_type = event.kind.value.upper()
        logger.debug(
            "%s %s:%d owner=%s usd=%s",
            event_type,
            event.meta.transaction_hash,
            event.meta.log_index,
            event.owner,
            usd_value,
        )

        return LiquidityEventDTO(
            transaction_hash=event.meta.transaction_hash,
            log_index=event.meta.log_index,
            block_number=event.meta.block_number,
            block_timestamp=block_timestamp,
            event_type=event_type,
            owner=event.owner,
            sender=self._origin(receipt) or nominal_sender(event),
            liquidity_delta=liquidity_delta(event),
            tick_lower=event.tick_lower,
            tick_upper=event.tick_upper,
            amount0=event.amount0,
            amount1=event.amount1,
            amount0_readable=amount0_readable,
            amount1_readable=amount1_readable,
            usd_value=usd_value,
        )
