"""Tests for pool log subscriptions."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from uniswap_pool_tracker.abi import BURN_TOPIC, SWAP_TOPIC
from uniswap_pool_tracker.chain import InvalidPoolError, RPCError
from uniswap_pool_tracker.ingestor.listener import EventListener, PoolSubscription
from uniswap_pool_tracker.ingestor.models import SwapEvent

POOL = "0xC6962004f452bE9203591991D15f6b388e09E8D0"
TX_HASH = "0x" + "cd" * 32


def raw_log(topic: str = SWAP_TOPIC, **overrides: object) -> dict[str, object]:
    log: dict[str, object] = {
        "address": POOL,
        "topics": [topic],
        "data": "0x",
        "transactionHash": TX_HASH,
        "blockNumber": 101,
        "logIndex": 3,
    }
    log.update(overrides)
    return log


def decoded_swap(log: dict[str, object]) -> dict[str, object]:
    return {
        "event": "Swap",
        "transactionHash": log["transactionHash"],
        "blockNumber": log["blockNumber"],
        "logIndex": log["logIndex"],
        "args": {
            "sender": "0x" + "1" * 40,
            "recipient": "0x" + "2" * 40,
            "amount0": 5,
            "amount1": -7,
            "sqrtPriceX96": 2**96,
            "liquidity": 100,
            "tick": 0,
        },
    }


@pytest.fixture
def chain() -> MagicMock:
    client = MagicMock()
    client.get_block_number = AsyncMock(return_value=100)
    client.get_logs = AsyncMock(return_value=[])
    client.get_code = AsyncMock(return_value=b"\x60\x80")
    contract = MagicMock()
    contract.events.Swap.return_value.process_log.side_effect = decoded_swap
    client.contract.return_value = contract
    return client


class TestPoolSubscriptionDecode:
    def test_decodes_swap(self, chain: MagicMock) -> None:
        subscription = PoolSubscription(chain, POOL, AsyncMock())
        event = subscription.decode(raw_log())
        assert isinstance(event, SwapEvent)
        assert event.amount1 == -7
        assert subscription.events_dropped == 0

    def test_drops_log_without_metadata(self, chain: MagicMock) -> None:
        subscription = PoolSubscription(chain, POOL, AsyncMock())
        assert subscription.decode(raw_log(logIndex=None)) is None
        assert subscription.events_dropped == 1

    def test_ignores_unknown_topic(self, chain: MagicMock) -> None:
        subscription = PoolSubscription(chain, POOL, AsyncMock())
        assert subscription.decode(raw_log(topic="0x" + "00" * 32)) is None
        assert subscription.events_dropped == 0

    def test_drops_undecodable_log(self, chain: MagicMock) -> None:
        chain.contract.return_value.events.Burn.return_value.process_log.side_effect = ValueError(
            "bad data"
        )
        subscription = PoolSubscription(chain, POOL, AsyncMock())
        assert subscription.decode(raw_log(topic=BURN_TOPIC)) is None
        assert subscription.events_dropped == 1


class TestPoolSubscriptionPolling:
    @pytest.mark.asyncio
    async def test_first_poll_sets_cursor_to_head(self, chain: MagicMock) -> None:
        subscription = PoolSubscription(chain, POOL, AsyncMock())
        assert await subscription.poll_once() == 0
        assert subscription.next_block == 101
        chain.get_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_poll_reads_range_and_advances(self, chain: MagicMock) -> None:
        chain.get_block_number.return_value = 105
        chain.get_logs.return_value = [raw_log(), raw_log(logIndex=None)]
        subscription = PoolSubscription(chain, POOL, AsyncMock(), start_block=101)

        assert await subscription.poll_once() == 1
        params = chain.get_logs.await_args.args[0]
        assert params["fromBlock"] == 101
        assert params["toBlock"] == 105
        assert subscription.next_block == 106
        assert subscription.events_received == 1

    @pytest.mark.asyncio
    async def test_block_range_is_capped(self, chain: MagicMock) -> None:
        chain.get_block_number.return_value = 10_000
        subscription = PoolSubscription(
            chain, POOL, AsyncMock(), start_block=1, max_block_range=100
        )
        await subscription.poll_once()
        assert chain.get_logs.await_args.args[0]["toBlock"] == 100
        assert subscription.next_block == 101

    @pytest.mark.asyncio
    async def test_workers_deliver_events_to_handler(self, chain: MagicMock) -> None:
        chain.get_logs.return_value = [raw_log(logIndex=i) for i in range(3)]
        handler = AsyncMock()
        subscription = PoolSubscription(
            chain, POOL, handler, start_block=100, workers=2, poll_interval=60
        )
        await subscription.start()
        try:
            await asyncio.wait_for(subscription.join(), timeout=1)
            for _ in range(50):
                if handler.await_count == 3:
                    break
                await asyncio.sleep(0.01)
        finally:
            await subscription.stop()

        assert handler.await_count == 3
        assert not subscription.running

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_worker(self, chain: MagicMock) -> None:
        chain.get_logs.return_value = [raw_log(logIndex=0), raw_log(logIndex=1)]
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])
        subscription = PoolSubscription(
            chain, POOL, handler, start_block=100, workers=1, poll_interval=60
        )
        await subscription.start()
        try:
            for _ in range(50):
                if handler.await_count == 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await subscription.stop()
        assert handler.await_count == 2


class TestEventListener:
    @pytest.mark.asyncio
    async def test_attach_rejects_malformed_address(self, chain: MagicMock) -> None:
        listener = EventListener(chain, AsyncMock())
        with pytest.raises(InvalidPoolError):
            await listener.attach("0x1234")

    @pytest.mark.asyncio
    async def test_attach_rejects_address_without_code(self, chain: MagicMock) -> None:
        chain.get_code.return_value = b""
        listener = EventListener(chain, AsyncMock())
        with pytest.raises(InvalidPoolError):
            await listener.attach(POOL)

    @pytest.mark.asyncio
    async def test_attach_replaces_existing_subscription(self, chain: MagicMock) -> None:
        listener = EventListener(chain, AsyncMock(), poll_interval=60)
        first = await listener.attach(POOL)
        second = await listener.attach(POOL.lower())
        try:
            assert first is not second
            assert not first.running
            assert listener.get_subscription(POOL) is second
            status = listener.get_listening_status()
            assert status == {"listening": True, "pools": [POOL.lower()], "count": 1}
        finally:
            await listener.detach()
        assert listener.get_listening_status()["count"] == 0

    @pytest.mark.asyncio
    async def test_rpc_failure_propagates_from_attach(self, chain: MagicMock) -> None:
        chain.get_code.side_effect = RPCError("down")
        listener = EventListener(chain, AsyncMock())
        with pytest.raises(RPCError):
            await listener.attach(POOL)
