"""Shared plumbing for event processors."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from uniswap_pool_tracker.chain import ChainClient
from uniswap_pool_tracker.ingestor.models import LogMetadata, PoolTokens
from uniswap_pool_tracker.valuation.valuator import UsdValuator

logger = logging.getLogger(__name__)


class ProcessorError(Exception):
    """Base exception for event processing errors."""


class TokenInfoMissingError(ProcessorError):
    """Raised when an event is processed before token info is set."""


def float_to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(repr(value))


class BaseEventProcessor:
    """Holds pool token metadata and fetches per-event chain context."""

    def __init__(self, chain: ChainClient, valuator: UsdValuator) -> None:
        self._chain = chain
        self._valuator = valuator
        self._tokens: PoolTokens | None = None

    def set_token_info(self, tokens: PoolTokens) -> None:
        self._tokens = tokens
        logger.info(
            "%s token info set: %s (%d) / %s (%d)",
            type(self).__name__,
            tokens.token0.symbol or tokens.token0.address,
            tokens.token0.decimals,
            tokens.token1.symbol or tokens.token1.address,
            tokens.token1.decimals,
        )

    @property
    def tokens(self) -> PoolTokens | None:
        return self._tokens

    def _require_tokens(self) -> PoolTokens:
        if self._tokens is None:
            raise TokenInfoMissingError(
                f"{type(self).__name__}: token info not set, call set_token_info() first"
            )
        return self._tokens

    async def _fetch_context(self, meta: LogMetadata) -> tuple[dict[str, Any], datetime]:
        """Fetch the transaction receipt and block timestamp for a log.

        Raises:
            RPCError: If either lookup fails after retries.
        """
        receipt, timestamp = await asyncio.gather(
            self._chain.get_transaction_receipt(meta.transaction_hash),
            self._chain.get_block_timestamp(meta.block_number),
        )
        return receipt, timestamp

    @staticmethod
    def _origin(receipt: dict[str, Any]) -> str | None:
        origin = receipt.get("from")
        return str(origin) if origin else None
