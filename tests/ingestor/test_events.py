"""Tests for typed pool events."""

from __future__ import annotations

import pytest
from hexbytes import HexBytes

from uniswap_pool_tracker.ingestor.models import (
    BurnEvent,
    CollectEvent,
    EventKind,
    LogMetadata,
    MintEvent,
    SwapEvent,
    event_from_decoded,
    to_hex_str,
)

TX_HASH = "0x" + "ab" * 32
SENDER = "0xE592427A0AEce92De3Edee1F18E0157C05861564"
OWNER = "0xC36442b4a4522E871399CD717aBDD847Ab11FE88"


def decoded(event: str, args: dict[str, object], **overrides: object) -> dict[str, object]:
    log: dict[str, object] = {
        "event": event,
        "args": args,
        "transactionHash": HexBytes(TX_HASH),
        "blockNumber": 190_000_000,
        "logIndex": 7,
    }
    log.update(overrides)
    return log


class TestToHexStr:
    def test_bytes(self) -> None:
        assert to_hex_str(b"\x01\xff") == "0x01ff"

    def test_hexbytes(self) -> None:
        assert to_hex_str(HexBytes(TX_HASH)) == TX_HASH

    def test_unprefixed_string(self) -> None:
        assert to_hex_str("abcd") == "0xabcd"


class TestLogMetadata:
    def test_from_log(self) -> None:
        meta = LogMetadata.from_log(
            {"transactionHash": TX_HASH.upper().replace("0X", "0x"), "blockNumber": 5, "logIndex": 2}
        )
        assert meta == LogMetadata(transaction_hash=TX_HASH, block_number=5, log_index=2)

    @pytest.mark.parametrize("missing", ["transactionHash", "blockNumber", "logIndex"])
    def test_incomplete_log(self, missing: str) -> None:
        log = {"transactionHash": TX_HASH, "blockNumber": 5, "logIndex": 2}
        log[missing] = None
        assert LogMetadata.from_log(log) is None


class TestEventFromDecoded:
    def test_swap(self) -> None:
        event = event_from_decoded(
            decoded(
                "Swap",
                {
                    "sender": SENDER,
                    "recipient": OWNER,
                    "amount0": -(10**18),
                    "amount1": 2_000_000,
                    "sqrtPriceX96": 2**96,
                    "liquidity": 10**12,
                    "tick": 0,
                },
            )
        )
        assert isinstance(event, SwapEvent)
        assert event.kind == EventKind.SWAP
        assert event.meta.transaction_hash == TX_HASH
        assert event.meta.log_index == 7
        assert event.amount0 == -(10**18)
        assert event.sqrt_price_x96 == 2**96

    def test_mint(self) -> None:
        event = event_from_decoded(
            decoded(
                "Mint",
                {
                    "sender": SENDER,
                    "owner": OWNER,
                    "tickLower": -600,
                    "tickUpper": 600,
                    "amount": 1000,
                    "amount0": 5,
                    "amount1": 6,
                },
            )
        )
        assert isinstance(event, MintEvent)
        assert event.sender == SENDER
        assert event.tick_lower == -600

    def test_burn(self) -> None:
        event = event_from_decoded(
            decoded(
                "Burn",
                {
                    "owner": OWNER,
                    "tickLower": -60,
                    "tickUpper": 60,
                    "amount": 10,
                    "amount0": 1,
                    "amount1": 2,
                },
            )
        )
        assert isinstance(event, BurnEvent)
        assert event.kind.value == "burn"

    def test_collect(self) -> None:
        event = event_from_decoded(
            decoded(
                "Collect",
                {
                    "owner": OWNER,
                    "recipient": SENDER,
                    "tickLower": -60,
                    "tickUpper": 60,
                    "amount0": 1,
                    "amount1": 2,
                },
            )
        )
        assert isinstance(event, CollectEvent)
        assert event.recipient == SENDER

    def test_incomplete_metadata_returns_none(self) -> None:
        assert event_from_decoded(decoded("Burn", {}, logIndex=None)) is None

    def test_unknown_event_raises(self) -> None:
        with pytest.raises(KeyError):
            event_from_decoded(decoded("Flash", {}))

    def test_event_kind_from_name(self) -> None:
        assert EventKind.from_event_name("Collect") == EventKind.COLLECT
