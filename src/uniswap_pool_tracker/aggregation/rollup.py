"""Pure bucket rollup computation.

A bucket is folded from the priced swaps that fall in its window. These
functions know nothing about adjacent buckets; carry-forward of the previous
close into an empty bucket is applied separately by `carry_forward`.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from decimal import Decimal

from uniswap_pool_tracker.storage.repos import DailyStatsDTO, HourlyStatsDTO, SwapDTO
from uniswap_pool_tracker.valuation.math import SwapDirection

FEE_RATE = Decimal("0.0005")
WHALE_TRANSACTION_USD = Decimal(10_000)

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

_ZERO = Decimal(0)


@dataclass(frozen=True)
class BucketRollup:
    """Aggregates of one bucket's swaps."""

    open_price: Decimal = _ZERO
    high_price: Decimal = _ZERO
    low_price: Decimal = _ZERO
    close_price: Decimal = _ZERO
    total_transactions: int = 0
    buy_transactions: int = 0
    sell_transactions: int = 0
    volume_token0: Decimal = _ZERO
    volume_token1: Decimal = _ZERO
    volume_usd: Decimal = _ZERO
    fees_token0: Decimal = _ZERO
    fees_token1: Decimal = _ZERO
    fees_usd: Decimal = _ZERO
    addresses: frozenset[str] = field(default_factory=frozenset)
    unique_senders: int = 0
    whale_transactions: int = 0
    largest_transaction_usd: Decimal = _ZERO
    min_liquidity: int | None = None
    avg_liquidity: int | None = None
    max_liquidity: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.total_transactions == 0

    @property
    def unique_addresses(self) -> int:
        return len(self.addresses)


def rollup_swaps(swaps: Sequence[SwapDTO]) -> BucketRollup:
    """Fold time-ordered priced swaps into one bucket.

    open and close are the first and last price, high the largest price and
    low the smallest positive price (open when no price is positive).
    """
    if not swaps:
        return BucketRollup()

    prices = [s.price_token0 for s in swaps if s.price_token0 is not None]
    positive = [p for p in prices if p > 0]
    open_price = prices[0] if prices else _ZERO
    close_price = prices[-1] if prices else _ZERO
    high_price = max(prices) if prices else _ZERO
    low_price = min(positive) if positive else open_price

    buys = sells = whales = 0
    volume0 = volume1 = volume_usd = largest = _ZERO
    addresses: set[str] = set()
    senders: set[str] = set()
    liquidities: list[int] = []

    for swap in swaps:
        if swap.swap_type == SwapDirection.BUY.value:
            buys += 1
        elif swap.swap_type == SwapDirection.SELL.value:
            sells += 1
        volume0 += swap.amount0_readable
        volume1 += swap.amount1_readable
        usd = swap.usd_value or _ZERO
        volume_usd += usd
        if usd > WHALE_TRANSACTION_USD:
            whales += 1
        if usd > largest:
            largest = usd
        senders.add(swap.sender.lower())
        addresses.add(swap.sender.lower())
        addresses.add(swap.recipient.lower())
        liquidities.append(int(swap.liquidity))

    return BucketRollup(
        open_price=open_price,
        high_price=high_price,
        low_price=low_price,
        close_price=close_price,
        total_transactions=len(swaps),
        buy_transactions=buys,
        sell_transactions=sells,
        volume_token0=volume0,
        volume_token1=volume1,
        volume_usd=volume_usd,
        fees_token0=volume0 * FEE_RATE,
        fees_token1=volume1 * FEE_RATE,
        fees_usd=volume_usd * FEE_RATE,
        addresses=frozenset(addresses),
        unique_senders=len(senders),
        whale_transactions=whales,
        largest_transaction_usd=largest,
        min_liquidity=min(liquidities),
        avg_liquidity=sum(liquidities) // len(liquidities),
        max_liquidity=max(liquidities),
    )


def carry_forward(rollup: BucketRollup, previous_close: Decimal | None) -> BucketRollup:
    """Fill an unpriced bucket's OHLC with the previous bucket's close."""
    if rollup.open_price != 0 or previous_close is None or previous_close <= 0:
        return rollup
    return replace(
        rollup,
        open_price=previous_close,
        high_price=previous_close,
        low_price=previous_close,
        close_price=previous_close,
    )


def hourly_stats(hour_start: datetime, rollup: BucketRollup) -> HourlyStatsDTO:
    return HourlyStatsDTO(
        hour_start=hour_start,
        hour_end=hour_start + HOUR,
        open_price=rollup.open_price,
        high_price=rollup.high_price,
        low_price=rollup.low_price,
        close_price=rollup.close_price,
        total_transactions=rollup.total_transactions,
        buy_transactions=rollup.buy_transactions,
        sell_transactions=rollup.sell_transactions,
        volume_token0=rollup.volume_token0,
        volume_token1=rollup.volume_token1,
        volume_usd=rollup.volume_usd,
        fees_token0=rollup.fees_token0,
        fees_token1=rollup.fees_token1,
        fees_usd=rollup.fees_usd,
        unique_addresses=rollup.unique_addresses,
        unique_senders=rollup.unique_senders,
        avg_liquidity=rollup.avg_liquidity,
        min_liquidity=rollup.min_liquidity,
        max_liquidity=rollup.max_liquidity,
    )


def daily_stats(
    day: date,
    rollup: BucketRollup,
    *,
    previous_addresses: set[str] | frozenset[str] = frozenset(),
    avg_tvl_usd: Decimal | None = None,
    end_tvl_usd: Decimal | None = None,
) -> DailyStatsDTO:
    """Build the daily row; new addresses are those absent from the previous day."""
    return DailyStatsDTO(
        day=day,
        open_price=rollup.open_price,
        high_price=rollup.high_price,
        low_price=rollup.low_price,
        close_price=rollup.close_price,
        total_transactions=rollup.total_transactions,
        buy_transactions=rollup.buy_transactions,
        sell_transactions=rollup.sell_transactions,
        volume_token0=rollup.volume_token0,
        volume_token1=rollup.volume_token1,
        volume_usd=rollup.volume_usd,
        fees_token0=rollup.fees_token0,
        fees_token1=rollup.fees_token1,
        fees_usd=rollup.fees_usd,
        unique_addresses=rollup.unique_addresses,
        unique_senders=rollup.unique_senders,
        new_addresses=len(rollup.addresses - set(previous_addresses)),
        avg_tvl_usd=avg_tvl_usd,
        end_tvl_usd=end_tvl_usd,
        whale_transactions=rollup.whale_transactions,
        largest_transaction_usd=rollup.largest_transaction_usd or None,
    )
