"""Data models for the ingestor module."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Pool event kinds handled by the tracker."""

    SWAP = "swap"
    MINT = "mint"
    BURN = "burn"
    COLLECT = "collect"

    @classmethod
    def from_event_name(cls, name: str) -> EventKind:
        return cls(name.lower())


def to_hex_str(value: Any) -> str:
    """Normalize a hash or address from web3 (HexBytes/bytes/str) to 0x-hex."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


@dataclass(frozen=True)
class LogMetadata:
    """Identity of a log within the chain: the natural key plus its block."""

    transaction_hash: str
    block_number: int
    log_index: int

    @classmethod
    def from_log(cls, log: Mapping[str, Any]) -> LogMetadata | None:
        """Extract metadata from a raw or decoded log.

        Returns None if any of transactionHash, blockNumber or logIndex is
        absent, which happens for pending or truncated logs.
        """
        tx_hash = log.get("transactionHash")
        block_number = log.get("blockNumber")
        log_index = log.get("logIndex")
        if tx_hash is None or block_number is None or log_index is None:
            return None
        return cls(
            transaction_hash=to_hex_str(tx_hash).lower(),
            block_number=int(block_number),
            log_index=int(log_index),
        )


@dataclass(frozen=True)
class SwapEvent:
    """Swap log as emitted by the pool."""

    meta: LogMetadata
    sender: str
    recipient: str
    amount0: int
    amount1: int
    sqrt_price_x96: int
    liquidity: int
    tick: int

    kind = EventKind.SWAP

    @classmethod
    def from_args(cls, meta: LogMetadata, args: Mapping[str, Any]) -> SwapEvent:
        return cls(
            meta=meta,
            sender=str(args["sender"]),
            recipient=str(args["recipient"]),
            amount0=int(args["amount0"]),
            amount1=int(args["amount1"]),
            sqrt_price_x96=int(args["sqrtPriceX96"]),
            liquidity=int(args["liquidity"]),
            tick=int(args["tick"]),
        )


@dataclass(frozen=True)
class MintEvent:
    """Mint log: liquidity added to a tick range."""

    meta: LogMetadata
    sender: str
    owner: str
    tick_lower: int
    tick_upper: int
    amount: int
    amount0: int
    amount1: int

    kind = EventKind.MINT

    @classmethod
    def from_args(cls, meta: LogMetadata, args: Mapping[str, Any]) -> MintEvent:
        return cls(
            meta=meta,
            sender=str(args["sender"]),
            owner=str(args["owner"]),
            tick_lower=int(args["tickLower"]),
            tick_upper=int(args["tickUpper"]),
            amount=int(args["amount"]),
            amount0=int(args["amount0"]),
            amount1=int(args["amount1"]),
        )


@dataclass(frozen=True)
class BurnEvent:
    """Burn log: liquidity removed from a tick range."""

    meta: LogMetadata
    owner: str
    tick_lower: int
    tick_upper: int
    amount: int
    amount0: int
    amount1: int

    kind = EventKind.BURN

    @classmethod
    def from_args(cls, meta: LogMetadata, args: Mapping[str, Any]) -> BurnEvent:
        return cls(
            meta=meta,
            owner=str(args["owner"]),
            tick_lower=int(args["tickLower"]),
            tick_upper=int(args["tickUpper"]),
            amount=int(args["amount"]),
            amount0=int(args["amount0"]),
            amount1=int(args["amount1"]),
        )


@dataclass(frozen=True)
class CollectEvent:
    """Collect log: owed tokens withdrawn from a position."""

    meta: LogMetadata
    owner: str
    recipient: str
    tick_lower: int
    tick_upper: int
    amount0: int
    amount1: int

    kind = EventKind.COLLECT

    @classmethod
    def from_args(cls, meta: LogMetadata, args: Mapping[str, Any]) -> CollectEvent:
        return cls(
            meta=meta,
            owner=str(args["owner"]),
            recipient=str(args["recipient"]),
            tick_lower=int(args["tickLower"]),
            tick_upper=int(args["tickUpper"]),
            amount0=int(args["amount0"]),
            amount1=int(args["amount1"]),
        )


LiquidityEvent = MintEvent | BurnEvent | CollectEvent
PoolEvent = SwapEvent | MintEvent | BurnEvent | CollectEvent

_EVENT_TYPES: dict[str, type[SwapEvent] | type[MintEvent] | type[BurnEvent] | type[CollectEvent]] = {
    "Swap": SwapEvent,
    "Mint": MintEvent,
    "Burn": BurnEvent,
    "Collect": CollectEvent,
}


def event_from_decoded(decoded: Mapping[str, Any]) -> PoolEvent | None:
    """Build a typed event from a web3-decoded log (EventData).

    Returns None when the log metadata is incomplete. Raises KeyError for
    an unknown event name or missing argument.
    """
    meta = LogMetadata.from_log(decoded)
    if meta is None:
        return None
    event_cls = _EVENT_TYPES[str(decoded["event"])]
    return event_cls.from_args(meta, decoded["args"])


@dataclass(frozen=True)
class TokenInfo:
    """ERC20 metadata for one side of the pool."""

    address: str
    decimals: int
    symbol: str = ""


@dataclass(frozen=True)
class PoolTokens:
    """Both pool tokens, set once at startup."""

    token0: TokenInfo
    token1: TokenInfo
