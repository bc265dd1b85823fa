"""Well-known token addresses and price index identifiers."""

from __future__ import annotations

from dataclasses import dataclass

ETHEREUM_CHAIN_ID = 1
ARBITRUM_CHAIN_ID = 42161

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class StableToken:
    symbol: str
    decimals: int


# Keys are lowercased addresses.
STABLE_TOKENS: dict[str, StableToken] = {
    "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": StableToken("USDC", 6),  # Ethereum
    "0xdac17f958d2ee523a2206206994597c13d831ec7": StableToken("USDT", 6),  # Ethereum
    "0xaf88d065e77c8cc2239327c5edb3a432268e5831": StableToken("USDC", 6),  # Arbitrum
    "0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9": StableToken("USDT", 6),  # Arbitrum
    "0xda10009cbd5d07dd0cecc66161fc93d7c9000da1": StableToken("DAI", 18),  # Arbitrum
}

ETHEREUM_USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
ARBITRUM_USDC = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"

COINGECKO_IDS_BY_SYMBOL: dict[str, str] = {
    "WETH": "weth",
    "ETH": "ethereum",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "WBTC": "wrapped-bitcoin",
    "ARB": "arbitrum",
    "UNI": "uniswap",
    "LINK": "chainlink",
    "AAVE": "aave",
}

COINGECKO_PLATFORMS_BY_CHAIN: dict[int, str] = {
    1: "ethereum",
    42161: "arbitrum-one",
    137: "polygon-pos",
    56: "binance-smart-chain",
}


def is_stable_token(address: str) -> bool:
    return address.lower() in STABLE_TOKENS


def stable_token(address: str) -> StableToken | None:
    return STABLE_TOKENS.get(address.lower())


def default_quote_token(chain_id: int) -> str:
    """USDC address used as the quote side when none is given."""
    if chain_id == ARBITRUM_CHAIN_ID:
        return ARBITRUM_USDC
    return ETHEREUM_USDC


def coingecko_id(symbol: str) -> str:
    """Map a token symbol to its price index id (lowercased symbol if unknown)."""
    return COINGECKO_IDS_BY_SYMBOL.get(symbol.upper(), symbol.lower())


def coingecko_platform(chain_id: int) -> str | None:
    return COINGECKO_PLATFORMS_BY_CHAIN.get(chain_id)
