"""Pool event subscriptions.

Each monitored pool gets one `PoolSubscription`: a poller that reads the
pool's Swap/Mint/Burn/Collect logs from a block cursor and a bounded
worker pool that hands decoded events to the handler. Events are
delivered without ordering guarantees between workers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from web3 import AsyncWeb3

from uniswap_pool_tracker.abi import EVENT_NAMES_BY_TOPIC, POOL_ABI
from uniswap_pool_tracker.chain import ChainClient, ChainClientError, InvalidPoolError
from uniswap_pool_tracker.ingestor.models import LogMetadata, PoolEvent, event_from_decoded, to_hex_str

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_WORKERS = 4
DEFAULT_QUEUE_SIZE = 1000
DEFAULT_MAX_BLOCK_RANGE = 2000

EventHandler = Callable[[PoolEvent], Awaitable[None]]


class PoolSubscription:
    """Live log subscription for a single pool."""

    def __init__(
        self,
        chain: ChainClient,
        pool_address: str,
        handler: EventHandler,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        start_block: int | None = None,
        max_block_range: int = DEFAULT_MAX_BLOCK_RANGE,
    ) -> None:
        self.pool_address = AsyncWeb3.to_checksum_address(pool_address)
        self._chain = chain
        self._handler = handler
        self._poll_interval = poll_interval
        self._worker_count = workers
        self._max_block_range = max_block_range
        self._next_block = start_block
        self._contract = chain.contract(self.pool_address, POOL_ABI)
        self._queue: asyncio.Queue[PoolEvent] = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task[None]] = []
        self.events_received = 0
        self.events_dropped = 0

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def next_block(self) -> int | None:
        return self._next_block

    async def start(self) -> None:
        if self.running:
            return
        if self._next_block is None:
            self._next_block = await self._chain.get_block_number() + 1
        self._tasks = [asyncio.create_task(self._poll_loop(), name=f"poll-{self.pool_address}")]
        for i in range(self._worker_count):
            self._tasks.append(
                asyncio.create_task(self._worker(), name=f"worker-{self.pool_address}-{i}")
            )
        logger.info(
            "Subscribed to %s from block %d with %d workers",
            self.pool_address,
            self._next_block,
            self._worker_count,
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Unsubscribed from %s", self.pool_address)

    def decode(self, log: dict[str, Any]) -> PoolEvent | None:
        """Decode a raw pool log, or return None if it must be dropped."""
        if LogMetadata.from_log(log) is None:
            self.events_dropped += 1
            logger.warning(
                "Dropping log without transaction hash, block number or log index: %s", log
            )
            return None

        topics = log.get("topics") or []
        if not topics:
            self.events_dropped += 1
            logger.warning("Dropping log without topics: %s", log)
            return None
        event_name = EVENT_NAMES_BY_TOPIC.get(to_hex_str(topics[0]).lower())
        if event_name is None:
            logger.debug("Ignoring log with unknown topic %s", to_hex_str(topics[0]))
            return None

        try:
            decoded = getattr(self._contract.events, event_name)().process_log(log)
            return event_from_decoded(decoded)
        except Exception as e:
            self.events_dropped += 1
            logger.warning("Dropping undecodable %s log: %s", event_name, e)
            return None

    async def poll_once(self) -> int:
        """Fetch logs up to the chain head and enqueue them. Returns events queued."""
        head = await self._chain.get_block_number()
        if self._next_block is None:
            self._next_block = head + 1
            return 0
        if head < self._next_block:
            return 0

        to_block = min(head, self._next_block + self._max_block_range - 1)
        logs = await self._chain.get_logs(
            {
                "address": self.pool_address,
                "fromBlock": self._next_block,
                "toBlock": to_block,
                "topics": [list(EVENT_NAMES_BY_TOPIC)],
            }
        )
        queued = 0
        for log in logs:
            event = self.decode(log)
            if event is None:
                continue
            await self._queue.put(event)
            queued += 1
        self.events_received += queued
        self._next_block = to_block + 1
        return queued

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except ChainClientError as e:
                logger.warning("Log poll for %s failed: %s", self.pool_address, e)
            await asyncio.sleep(self._poll_interval)

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handler(event)
            except Exception:
                logger.exception(
                    "Handler failed for %s %s", event.kind.value, event.meta.transaction_hash
                )
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()


class EventListener:
    """Registry of pool subscriptions keyed by lowercased pool address."""

    def __init__(
        self,
        chain: ChainClient,
        handler: EventHandler,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        start_block: int | None = None,
    ) -> None:
        self._chain = chain
        self._handler = handler
        self._poll_interval = poll_interval
        self._workers = workers
        self._queue_size = queue_size
        self._start_block = start_block
        self._subscriptions: dict[str, PoolSubscription] = {}

    async def attach(self, pool_address: str) -> PoolSubscription:
        """Validate the pool and (re)subscribe to its events.

        Raises:
            InvalidPoolError: If the address is malformed or has no code.
        """
        if not AsyncWeb3.is_address(pool_address):
            raise InvalidPoolError(f"Invalid address format: {pool_address}")
        code = await self._chain.get_code(pool_address)
        if not code:
            raise InvalidPoolError(f"Address {pool_address} is not a contract")

        key = pool_address.lower()
        existing = self._subscriptions.pop(key, None)
        if existing is not None:
            logger.info("Replacing existing subscription for %s", pool_address)
            await existing.stop()

        subscription = PoolSubscription(
            self._chain,
            pool_address,
            self._handler,
            poll_interval=self._poll_interval,
            workers=self._workers,
            queue_size=self._queue_size,
            start_block=self._start_block,
        )
        await subscription.start()
        self._subscriptions[key] = subscription
        return subscription

    async def detach(self, pool_address: str | None = None) -> None:
        """Stop one subscription, or all when `pool_address` is None."""
        if pool_address is None:
            keys = list(self._subscriptions)
        else:
            keys = [pool_address.lower()]
        for key in keys:
            subscription = self._subscriptions.pop(key, None)
            if subscription is not None:
                await subscription.stop()

    def get_subscription(self, pool_address: str) -> PoolSubscription | None:
        return self._subscriptions.get(pool_address.lower())

    def get_listening_status(self) -> dict[str, Any]:
        pools = list(self._subscriptions)
        return {"listening": bool(pools), "pools": pools, "count": len(pools)}
