"""Blockchain RPC client with retry, failover and rate limiting.

This module provides the chain client shared by the event listener, the
event processors, the quoting price source and the snapshot service:
- Fixed-delay retry with a per-attempt timeout (`RetryPolicy`)
- Failover to a secondary RPC URL
- Rate limiting to respect provider limits
- Optional Redis caching of immutable block timestamps
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, TypeVar

import aiohttp
from redis.asyncio import Redis
from redis.exceptions import RedisError
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

from uniswap_pool_tracker.retry import RetryError, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_REQUESTS_PER_SECOND = 25
BLOCK_TIMESTAMP_CACHE_TTL_SECONDS = 24 * 3600

RPC_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    Web3Exception,
    aiohttp.ClientError,
    ConnectionError,
)


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """Raised when an RPC call fails after all retries and failover."""


class ContractCallReverted(ChainClientError):
    """Raised when a contract call reverts. Never retried."""


class InvalidPoolError(ChainClientError):
    """Raised when a pool address is malformed or has no deployed code."""


def _checksum_arg(value: Any) -> Any:
    if isinstance(value, str) and len(value) == 42 and AsyncWeb3.is_address(value):
        return AsyncWeb3.to_checksum_address(value)
    return value


class TokenBucket:
    """Request budget of `rate` calls per second, with bursts up to `rate`."""

    def __init__(self, rate: float) -> None:
        self.rate = rate
        self.capacity = rate
        self.available = rate
        self._updated = time.monotonic()

    def _top_up(self) -> None:
        now = time.monotonic()
        self.available = min(self.capacity, self.available + (now - self._updated) * self.rate)
        self._updated = now

    async def take(self, cost: float = 1.0) -> None:
        """Wait until `cost` requests fit in the budget, then spend them."""
        self._top_up()
        while self.available < cost:
            await asyncio.sleep((cost - self.available) / self.rate)
            self._top_up()
        self.available -= cost


class ChainClient:
    """RPC client for the pool's chain.

    Example:
        ```python
        client = ChainClient(
            rpc_url="https://arb1.arbitrum.io/rpc",
            fallback_rpc_url="https://arbitrum-one.publicnode.com",
            retry_policy=RetryPolicy(attempts=3, delay_seconds=2.0, timeout_seconds=30.0),
        )
        ts = await client.get_block_timestamp(190_000_000)
        receipt = await client.get_transaction_receipt("0x...")
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        retry_policy: RetryPolicy | None = None,
        redis: Redis | None = None,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        chain_id: int | None = None,
    ) -> None:
        """Initialize the chain client.

        Args:
            rpc_url: Primary RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            retry_policy: Attempts, delay and timeout per endpoint. Only
                transport and RPC errors are retried.
            redis: Optional Redis client for caching block timestamps.
            max_requests_per_second: Rate limit for RPC calls.
            chain_id: Known chain ID; detected from the node when None.
        """
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._retry = replace(retry_policy or RetryPolicy(), retry_on=RPC_RETRYABLE_ERRORS)
        self._redis = redis
        self._chain_id = chain_id

        self._w3 = self._new_web3_client(rpc_url)
        self._w3_fallback: AsyncWeb3[AsyncHTTPProvider] | None = None
        if fallback_rpc_url:
            self._w3_fallback = self._new_web3_client(fallback_rpc_url)

        self._budget = TokenBucket(max_requests_per_second)

        self._primary_healthy = True
        self._last_primary_check = 0.0
        self._primary_recovery_interval = 60.0

        self._cache_prefix = "chain:"

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def _new_web3_client(self, rpc_url: str) -> AsyncWeb3[AsyncHTTPProvider]:
        client = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._inject_poa_middleware(client, rpc_url=rpc_url)
        return client

    def _inject_poa_middleware(self, client: AsyncWeb3[AsyncHTTPProvider], *, rpc_url: str) -> None:
        try:
            client.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except ValueError as e:
            logger.warning("PoA middleware not injected for %s: %s", rpc_url, e)

    async def _cache_get(self, key: str) -> str | None:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(self._cache_prefix + key)
        except RedisError as e:
            logger.warning("Redis read of %s failed: %s", key, e)
            return None
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else str(raw)

    async def _cache_put(self, key: str, value: str, ttl: int) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(self._cache_prefix + key, value, ex=ttl)
        except RedisError as e:
            logger.warning("Redis write of %s failed: %s", key, e)

    def _should_try_primary(self) -> bool:
        if self._primary_healthy or self._w3_fallback is None:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > self._primary_recovery_interval:
            self._last_primary_check = now
            return True
        return False

    @staticmethod
    async def _attempt(
        call: Callable[[AsyncWeb3[AsyncHTTPProvider]], Awaitable[T]],
        w3: AsyncWeb3[AsyncHTTPProvider],
    ) -> T:
        try:
            return await call(w3)
        except ContractLogicError as e:
            raise ContractCallReverted(str(e)) from e

    async def _execute(
        self,
        description: str,
        call: Callable[[AsyncWeb3[AsyncHTTPProvider]], Awaitable[T]],
    ) -> T:
        """Run `call` against the primary endpoint, then the fallback.

        Raises:
            RPCError: If all retries and failover fail.
            ContractCallReverted: If the contract reverted the call.
        """
        await self._budget.take()

        last_error: BaseException | None = None

        if self._should_try_primary():
            try:
                result = await self._retry.run(
                    self._attempt, call, self._w3, description=f"Primary RPC {description}"
                )
                self._primary_healthy = True
                return result
            except RetryError as e:
                last_error = e.last_exception
                self._primary_healthy = False
                self._last_primary_check = time.monotonic()

        if self._w3_fallback is not None:
            try:
                result = await self._retry.run(
                    self._attempt, call, self._w3_fallback, description=f"Fallback RPC {description}"
                )
                logger.info("Fallback RPC succeeded for %s", description)
                return result
            except RetryError as e:
                last_error = e.last_exception

        raise RPCError(f"RPC call {description} failed after all retries: {last_error}")

    async def get_chain_id(self) -> int:
        """Return the chain ID, querying the node once if it was not configured."""
        if self._chain_id is None:
            self._chain_id = int(await self._execute("chain_id", lambda w3: w3.eth.chain_id))
        return self._chain_id

    async def get_block_number(self) -> int:
        return int(await self._execute("block_number", lambda w3: w3.eth.block_number))

    async def get_block(self, block_identifier: int | str) -> dict[str, Any]:
        block = await self._execute(
            "get_block", lambda w3: w3.eth.get_block(block_identifier)
        )
        return dict(block)

    async def get_block_timestamp(self, block_number: int) -> datetime:
        """Get a block's timestamp as an aware UTC datetime.

        Raises:
            RPCError: If the block cannot be fetched.
        """
        cache_key = f"block_ts:{block_number}"
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return datetime.fromtimestamp(int(cached), tz=UTC)

        block = await self.get_block(block_number)
        timestamp = int(block["timestamp"])
        await self._cache_put(cache_key, str(timestamp), ttl=BLOCK_TIMESTAMP_CACHE_TTL_SECONDS)
        return datetime.fromtimestamp(timestamp, tz=UTC)

    async def get_transaction_receipt(self, transaction_hash: str) -> dict[str, Any]:
        """Fetch a transaction receipt.

        Raises:
            RPCError: If the receipt cannot be fetched.
        """
        receipt = await self._execute(
            "get_transaction_receipt",
            lambda w3: w3.eth.get_transaction_receipt(transaction_hash),
        )
        return dict(receipt)

    async def get_code(self, address: str) -> bytes:
        checksum = AsyncWeb3.to_checksum_address(address)
        code = await self._execute("get_code", lambda w3: w3.eth.get_code(checksum))
        return bytes(code)

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch logs via `eth_getLogs` with retry/failover semantics."""
        logs = await self._execute("get_logs", lambda w3: w3.eth.get_logs(filter_params))
        return [dict(log) for log in logs]

    async def call_function(
        self,
        address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        *args: Any,
        block_identifier: int | str = "latest",
    ) -> Any:
        """Call a contract function with eth_call.

        Works for non-view functions as well (e.g. the quoter), since
        eth_call simulates the transaction without sending it. Address
        arguments are checksummed.
        """
        checksum = AsyncWeb3.to_checksum_address(address)
        args = tuple(_checksum_arg(arg) for arg in args)

        async def _call(w3: AsyncWeb3[AsyncHTTPProvider]) -> Any:
            contract = w3.eth.contract(address=checksum, abi=abi)
            function = getattr(contract.functions, function_name)
            return await function(*args).call(block_identifier=block_identifier)

        return await self._execute(f"{function_name}@{checksum}", _call)

    def contract(self, address: str, abi: list[dict[str, Any]]) -> Any:
        """Build a contract object on the primary endpoint (for log decoding)."""
        return self._w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    async def health_check(self) -> bool:
        """Check if the client can connect to the RPC."""
        try:
            await self.get_block_number()
            return True
        except RPCError:
            return False

    async def aclose(self) -> None:
        """Close async HTTP provider sessions to avoid leaked aiohttp sessions."""
        providers = [self._w3.provider]
        if self._w3_fallback is not None:
            providers.append(self._w3_fallback.provider)

        for provider in providers:
            disconnect = getattr(provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)
