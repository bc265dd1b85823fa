"""USD prices from the CoinGecko simple price API."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

import aiohttp

from uniswap_pool_tracker.retry import RetryError, RetryPolicy
from uniswap_pool_tracker.valuation.cache import PriceCache
from uniswap_pool_tracker.valuation.tokens import (
    ARBITRUM_CHAIN_ID,
    ZERO_ADDRESS,
    coingecko_id,
    coingecko_platform,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"
DEFAULT_TIMEOUT_SECONDS = 15.0


class CoinGeckoPriceSource:
    """External price index queried by symbol, then by contract address.

    The HTTP session may be shared with other clients; a session is only
    closed by `aclose` if this source created it.
    """

    def __init__(
        self,
        cache: PriceCache,
        *,
        session: aiohttp.ClientSession | None = None,
        base_url: str = DEFAULT_BASE_URL,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._cache = cache
        self._session = session
        self._owns_session = session is None
        self._base_url = base_url.rstrip("/")
        self._retry = replace(
            retry_policy or RetryPolicy(),
            timeout_seconds=timeout_seconds,
            retry_on=(aiohttp.ClientError,),
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"Accept": "application/json"})
            self._owns_session = True
        return self._session

    async def _fetch(self, url: str, params: dict[str, str]) -> dict[str, Any] | None:
        async with self._get_session().get(url, params=params) as response:
            if response.status != 200:
                logger.warning("CoinGecko responded %d for %s", response.status, url)
                return None
            data = await response.json()
            return data if isinstance(data, dict) else None

    async def _get_json(self, url: str, params: dict[str, str]) -> dict[str, Any] | None:
        try:
            return await self._retry.run(self._fetch, url, params, description=f"GET {url}")
        except RetryError as e:
            logger.warning("CoinGecko request failed: %s", e)
            return None

    @staticmethod
    def _usd(data: dict[str, Any] | None, key: str) -> float | None:
        if not data:
            return None
        entry = data.get(key)
        if not isinstance(entry, dict):
            return None
        price = entry.get("usd")
        if not price:
            return None
        return float(price)

    async def price_by_symbol(self, symbol: str) -> float | None:
        coin_id = coingecko_id(symbol)
        data = await self._get_json(
            f"{self._base_url}/simple/price",
            {"ids": coin_id, "vs_currencies": "usd"},
        )
        return self._usd(data, coin_id)

    async def price_by_address(self, token_address: str, chain_id: int) -> float | None:
        platform = coingecko_platform(chain_id)
        if platform is None:
            logger.warning("No CoinGecko platform for chain %d", chain_id)
            return None
        address = token_address.lower()
        data = await self._get_json(
            f"{self._base_url}/simple/token_price/{platform}",
            {"contract_addresses": address, "vs_currencies": "usd"},
        )
        return self._usd(data, address)

    async def get_price(self, token_address: str, symbol: str | None, chain_id: int) -> float | None:
        """USD price by symbol, then by address; None when neither resolves."""
        quote_side = f"coingecko:{chain_id}"
        cached = await self._cache.get(token_address, quote_side)
        if cached is not None:
            return cached

        price: float | None = None
        if symbol:
            price = await self.price_by_symbol(symbol)
        if price is None and token_address and token_address.lower() != ZERO_ADDRESS:
            price = await self.price_by_address(token_address, chain_id)
        if price is None and chain_id == ARBITRUM_CHAIN_ID and symbol == "WETH":
            # Bridged WETH is often unlisted by address; retry the mainnet id.
            price = await self.price_by_symbol("WETH")

        if price is None:
            logger.warning(
                "No CoinGecko price for %s (%s) on chain %d", symbol or "N/A", token_address, chain_id
            )
            return None

        await self._cache.set(token_address, quote_side, price)
        return price

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
