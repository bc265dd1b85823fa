"""Event processors - enrich raw pool events into valued records."""

from uniswap_pool_tracker.processors.base import (
    BaseEventProcessor,
    ProcessorError,
    TokenInfoMissingError,
)
from uniswap_pool_tracker.processors.liquidity import LiquidityProcessor
from uniswap_pool_tracker.processors.swap import SwapProcessor

__all__ = [
    "BaseEventProcessor",
    "LiquidityProcessor",
    "ProcessorError",
    "SwapProcessor",
    "TokenInfoMissingError",
]
