"""Valuation engine - price math and USD pricing sources."""

from uniswap_pool_tracker.valuation.cache import PriceCache
from uniswap_pool_tracker.valuation.coingecko import CoinGeckoPriceSource
from uniswap_pool_tracker.valuation.math import (
    SwapDirection,
    classify_swap_direction,
    combine_usd_values,
    inverse_price,
    price_from_sqrt_price,
    readable_amount,
)
from uniswap_pool_tracker.valuation.quoter import QuoterPriceSource
from uniswap_pool_tracker.valuation.valuator import UsdValuator

__all__ = [
    "CoinGeckoPriceSource",
    "PriceCache",
    "QuoterPriceSource",
    "SwapDirection",
    "UsdValuator",
    "classify_swap_direction",
    "combine_usd_values",
    "inverse_price",
    "price_from_sqrt_price",
    "readable_amount",
]
