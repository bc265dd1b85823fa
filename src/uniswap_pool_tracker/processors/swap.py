"""Swap event processing."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from uniswap_pool_tracker.ingestor.models import SwapEvent
from uniswap_pool_tracker.processors.base import BaseEventProcessor, float_to_decimal
from uniswap_pool_tracker.storage.repos import SwapDTO
from uniswap_pool_tracker.valuation.math import (
    classify_swap_direction,
    inverse_price,
    price_from_sqrt_price,
    readable_amount,
)

logger = logging.getLogger(__name__)

WEI_PER_ETHER = Decimal(10) ** 18


def gas_details(receipt: dict[str, Any]) -> tuple[int | None, int | None, Decimal | None]:
    """Gas used, effective gas price (wei) and fee in the native asset."""
    gas_used = receipt.get("gasUsed")
    gas_price = receipt.get("effectiveGasPrice")
    if gas_used is None:
        return None, None, None
    gas_used = int(gas_used)
    if gas_price is None:
        return gas_used, None, None
    gas_price = int(gas_price)
    return gas_used, gas_price, Decimal(gas_used * gas_price) / WEI_PER_ETHER


class SwapProcessor(BaseEventProcessor):
    """Turn a raw Swap log into a valued, persistence-ready record."""

    async def process(self, event: SwapEvent) -> SwapDTO:
        """Enrich and value a swap.

        Raises:
            TokenInfoMissingError: If token info has not been set.
            RPCError: If the receipt or block cannot be fetched.
        """
        tokens = self._require_tokens()
        receipt, block_timestamp = await self._fetch_context(event.meta)

        price = price_from_sqrt_price(event.sqrt_price_x96)
        amount0_readable = readable_amount(event.amount0, tokens.token0.decimals)
        amount1_readable = readable_amount(event.amount1, tokens.token1.decimals)
        direction = classify_swap_direction(event.amount0)

        usd_value = await self._valuator.usd_value(
            amount0_readable, amount1_readable, tokens.token0, tokens.token1, use_sum=False
        )
        gas_used, gas_price, transaction_fee = gas_details(receipt)

        logger.debug(
            "Swap %s:%d %s price=%.10g usd=%s",
            event.meta.transaction_hash,
            event.meta.log_index,
            direction.value,
            price,
            usd_value,
        )

        return SwapDTO(
            transaction_hash=event.meta.transaction_hash,
            log_index=event.meta.log_index,
            block_number=event.meta.block_number,
            block_timestamp=block_timestamp,
            sender=self._origin(receipt) or event.sender,
            recipient=event.recipient,
            amount0=event.amount0,
            amount1=event.amount1,
            sqrt_price_x96=event.sqrt_price_x96,
            liquidity=event.liquidity,
            tick=event.tick,
            amount0_readable=amount0_readable,
            amount1_readable=amount1_readable,
            price_token0=float_to_decimal(price),
            price_token1=float_to_decimal(inverse_price(price)),
            swap_type=direction.value,
            usd_value=usd_value,
            gas_used=gas_used,
            gas_price=gas_price,
            transaction_fee=transaction_fee,
        )
