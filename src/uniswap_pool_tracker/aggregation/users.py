"""Per-account statistics maintenance."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import (
    USER_TYPE_LP,
    USER_TYPE_RETAIL,
    USER_TYPE_WHALE,
    LiquidityEventDTO,
    LiquidityEventRepository,
    SwapDTO,
    SwapRepository,
    UserStatsDTO,
    UserStatsRepository,
)
from uniswap_pool_tracker.valuation.math import SwapDirection

logger = logging.getLogger(__name__)

WHALE_USD_THRESHOLD = Decimal(100_000)
RETAIL_USD_THRESHOLD = Decimal(100)

LP_EVENT_TYPES = frozenset({"MINT", "BURN"})


def derive_user_type(usd_value: Decimal | None, is_liquidity_provider: bool) -> str | None:
    """Classification implied by a single event.

    The stored classification is merged in the upsert: LP never downgrades,
    an incoming WHALE overrides a previous non-LP type, and RETAIL only
    applies to an account without a type yet.
    """
    if is_liquidity_provider:
        return USER_TYPE_LP
    value = usd_value or Decimal(0)
    if value > WHALE_USD_THRESHOLD:
        return USER_TYPE_WHALE
    if value < RETAIL_USD_THRESHOLD:
        return USER_TYPE_RETAIL
    return None


def _contribution(
    address: str,
    *,
    swap_type: str | None,
    usd_value: Decimal | None,
    at: datetime,
    is_liquidity_provider: bool = False,
) -> UserStatsDTO:
    value = usd_value or Decimal(0)
    return UserStatsDTO(
        address=address.lower(),
        total_transactions=1 if swap_type else 0,
        buy_transactions=1 if swap_type == SwapDirection.BUY.value else 0,
        sell_transactions=1 if swap_type == SwapDirection.SELL.value else 0,
        total_volume_usd=value,
        largest_transaction_usd=value if value > 0 else None,
        first_transaction_at=at,
        last_transaction_at=at,
        is_liquidity_provider=is_liquidity_provider,
        total_liquidity_provided_usd=value if is_liquidity_provider else Decimal(0),
        user_type=derive_user_type(value, is_liquidity_provider),
    )


def swap_contributions(swap: SwapDTO) -> list[UserStatsDTO]:
    """Contributions to the sender and, when different, the recipient."""
    addresses = [swap.sender]
    if swap.recipient.lower() != swap.sender.lower():
        addresses.append(swap.recipient)
    return [
        _contribution(a, swap_type=swap.swap_type, usd_value=swap.usd_value, at=swap.block_timestamp)
        for a in addresses
    ]


def liquidity_contributions(event: LiquidityEventDTO) -> list[UserStatsDTO]:
    """Contributions to the owner and, when present and different, the sender."""
    is_lp = event.event_type in LP_EVENT_TYPES
    addresses = [event.owner]
    if event.sender and event.sender.lower() != event.owner.lower():
        addresses.append(event.sender)
    return [
        _contribution(
            a,
            swap_type=None,
            usd_value=event.usd_value,
            at=event.block_timestamp,
            is_liquidity_provider=is_lp,
        )
        for a in addresses
    ]


class UserStatsService:
    """Fold events into `user_stats` through the repository's atomic merge."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    @staticmethod
    async def merge_swap(session: AsyncSession, swap: SwapDTO) -> None:
        """Merge a swap into the accounts it touches, inside the caller's transaction."""
        repo = UserStatsRepository(session)
        for contribution in swap_contributions(swap):
            await repo.merge(contribution)

    @staticmethod
    async def merge_liquidity_event(session: AsyncSession, event: LiquidityEventDTO) -> None:
        repo = UserStatsRepository(session)
        for contribution in liquidity_contributions(event):
            await repo.merge(contribution)

    async def update_from_swap(self, swap: SwapDTO) -> None:
        async with self._db.get_async_session() as session:
            await self.merge_swap(session, swap)

    async def update_from_liquidity_event(self, event: LiquidityEventDTO) -> None:
        async with self._db.get_async_session() as session:
            await self.merge_liquidity_event(session, event)

    async def get(self, address: str) -> UserStatsDTO | None:
        async with self._db.get_async_session() as session:
            return await UserStatsRepository(session).get(address)

    async def top_by_volume(self, limit: int = 10) -> list[UserStatsDTO]:
        async with self._db.get_async_session() as session:
            return await UserStatsRepository(session).top_by_volume(limit)

    async def list_by_type(self, user_type: str, limit: int = 100) -> list[UserStatsDTO]:
        async with self._db.get_async_session() as session:
            return await UserStatsRepository(session).list_by_type(user_type, limit)

    async def sync_all_user_stats(self) -> dict[str, int]:
        """Rebuild every account row by replaying valued events oldest first.

        Runs in a single transaction: existing rows are removed, then valued
        swaps and valued liquidity events are merged in time order.
        """
        logger.info("Resyncing user stats from raw events")
        async with self._db.get_async_session() as session:
            repo = UserStatsRepository(session)
            removed = await repo.delete_all()

            swaps = await SwapRepository(session).list_valued_for_replay()
            for swap in swaps:
                await self.merge_swap(session, swap)

            events = await LiquidityEventRepository(session).list_valued_for_replay()
            for event in events:
                await self.merge_liquidity_event(session, event)

        logger.info(
            "User stats resynced: %d swaps, %d liquidity events replayed (%d rows replaced)",
            len(swaps),
            len(events),
            removed,
        )
        return {"swaps": len(swaps), "liquidity_events": len(events), "removed": removed}
