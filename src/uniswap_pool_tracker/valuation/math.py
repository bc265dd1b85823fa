"""Pure price and amount math for pool events."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

Q96 = 2**96


class SwapDirection(str, Enum):
    """Swap direction from the pool's perspective on token0."""

    BUY = "BUY"
    SELL = "SELL"


def price_from_sqrt_price(sqrt_price_x96: int) -> float:
    """Pool price (token1 per token0, raw units) from a Q64.96 sqrt price.

    Integer true division rounds the Q64.96 ratio to the nearest float
    before squaring, so precision is that of a double.
    """
    if sqrt_price_x96 < 0:
        raise ValueError("sqrt_price_x96 must be non-negative")
    ratio = sqrt_price_x96 / Q96
    return ratio * ratio


def inverse_price(price: float) -> float | None:
    """Price in the other quote direction; None for a zero price."""
    if price == 0:
        return None
    return 1.0 / price


def readable_amount(raw_amount: int, decimals: int) -> Decimal:
    """Absolute token amount scaled down by 10^decimals."""
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    return Decimal(abs(raw_amount)).scaleb(-decimals)


def classify_swap_direction(amount0: int) -> SwapDirection:
    """amount0 > 0 means the pool received token0, i.e. the trader sold it."""
    return SwapDirection.SELL if amount0 > 0 else SwapDirection.BUY


def combine_usd_values(
    amount0: Decimal,
    amount1: Decimal,
    price0: float | None,
    price1: float | None,
    *,
    use_sum: bool,
) -> Decimal | None:
    """Combine the USD value implied by each side of an event.

    Both prices known: sum (liquidity events, capital moved) or average
    (swaps, trade size). One price known: that side alone. Neither: None.
    """
    value0 = abs(amount0) * Decimal(str(price0)) if price0 is not None else None
    value1 = abs(amount1) * Decimal(str(price1)) if price1 is not None else None

    if value0 is not None and value1 is not None:
        total = value0 + value1
        return total if use_sum else total / 2
    if value0 is not None:
        return value0
    if value1 is not None:
        return value1
    return None
