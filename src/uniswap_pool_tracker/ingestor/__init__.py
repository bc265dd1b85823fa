"""Event ingestion layer - pool log subscriptions and typed events."""

from uniswap_pool_tracker.ingestor.listener import EventListener, PoolSubscription
from uniswap_pool_tracker.ingestor.models import (
    BurnEvent,
    CollectEvent,
    EventKind,
    LogMetadata,
    MintEvent,
    PoolEvent,
    PoolTokens,
    SwapEvent,
    TokenInfo,
    event_from_decoded,
)

__all__ = [
    "BurnEvent",
    "CollectEvent",
    "EventKind",
    "EventListener",
    "LogMetadata",
    "MintEvent",
    "PoolEvent",
    "PoolSubscription",
    "PoolTokens",
    "SwapEvent",
    "TokenInfo",
    "event_from_decoded",
]
