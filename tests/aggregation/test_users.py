"""Tests for per-account statistics."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import pytest

from uniswap_pool_tracker.aggregation.users import (
    UserStatsService,
    derive_user_type,
    liquidity_contributions,
    swap_contributions,
)
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import (
    LiquidityEventDTO,
    LiquidityEventRepository,
    SwapDTO,
    SwapRepository,
)

TRADER = "0x1111111111111111111111111111111111111111"
ROUTER = "0x2222222222222222222222222222222222222222"
LP = "0x5555555555555555555555555555555555555555"


class TestDeriveUserType:
    @pytest.mark.parametrize(
        ("usd", "is_lp", "expected"),
        [
            (Decimal("50"), True, "LP"),
            (Decimal("100001"), False, "WHALE"),
            (Decimal("100000"), False, None),
            (Decimal("99.99"), False, "RETAIL"),
            (Decimal("100"), False, None),
            (None, False, "RETAIL"),
        ],
    )
    def test_thresholds(self, usd: Decimal | None, is_lp: bool, expected: str | None) -> None:
        assert derive_user_type(usd, is_lp) == expected


class TestContributions:
    def test_swap_credits_sender_and_recipient(self, make_swap: Callable[..., SwapDTO]) -> None:
        contributions = swap_contributions(
            make_swap(sender=TRADER, recipient=ROUTER, usd="250", swap_type="SELL")
        )
        assert [c.address for c in contributions] == [TRADER, ROUTER]
        for c in contributions:
            assert c.total_transactions == 1
            assert c.sell_transactions == 1
            assert c.buy_transactions == 0
            assert c.total_volume_usd == Decimal("250")
            assert c.user_type is None

    def test_self_swap_credited_once(self, make_swap: Callable[..., SwapDTO]) -> None:
        contributions = swap_contributions(make_swap(sender=TRADER, recipient=TRADER))
        assert len(contributions) == 1

    def test_mint_marks_owner_and_sender_as_lp(
        self, make_liquidity_event: Callable[..., LiquidityEventDTO]
    ) -> None:
        contributions = liquidity_contributions(
            make_liquidity_event(event_type="MINT", owner=LP, sender=TRADER, usd="1000")
        )
        assert [c.address for c in contributions] == [LP, TRADER]
        for c in contributions:
            assert c.total_transactions == 0
            assert c.total_volume_usd == Decimal("1000")
            assert c.is_liquidity_provider is True
            assert c.total_liquidity_provided_usd == Decimal("1000")
            assert c.user_type == "LP"

    def test_collect_is_not_lp_activity(
        self, make_liquidity_event: Callable[..., LiquidityEventDTO]
    ) -> None:
        (contribution,) = liquidity_contributions(
            make_liquidity_event(event_type="COLLECT", owner=LP, sender=None, usd="30")
        )
        assert contribution.is_liquidity_provider is False
        assert contribution.total_liquidity_provided_usd == Decimal(0)
        assert contribution.total_volume_usd == Decimal("30")
        assert contribution.user_type == "RETAIL"


class TestUserStatsService:
    @pytest.mark.asyncio
    async def test_mint_and_burn_accumulate_liquidity(
        self, db: DatabaseManager, make_liquidity_event: Callable[..., LiquidityEventDTO]
    ) -> None:
        service = UserStatsService(db)
        await service.update_from_liquidity_event(
            make_liquidity_event(log_index=0, event_type="MINT", owner=LP, usd="500")
        )
        await service.update_from_liquidity_event(
            make_liquidity_event(log_index=1, event_type="BURN", owner=LP, usd="700")
        )

        stats = await service.get(LP)
        assert stats is not None
        assert stats.is_liquidity_provider is True
        assert stats.total_liquidity_provided_usd == Decimal("1200")
        assert stats.total_transactions == 0
        assert stats.user_type == "LP"

    @pytest.mark.asyncio
    async def test_swaps_update_both_parties(
        self, db: DatabaseManager, make_swap: Callable[..., SwapDTO]
    ) -> None:
        service = UserStatsService(db)
        await service.update_from_swap(make_swap(log_index=0, usd="150000"))
        await service.update_from_swap(make_swap(log_index=1, usd="5"))

        trader = await service.get(TRADER)
        router = await service.get(ROUTER)
        assert trader is not None and router is not None
        assert trader.total_transactions == router.total_transactions == 2
        assert trader.user_type == "WHALE"
        assert trader.largest_transaction_usd == Decimal("150000")

        top = await service.top_by_volume(limit=5)
        assert {u.address for u in top} == {TRADER, ROUTER}
        assert len(await service.list_by_type("WHALE")) == 2

    @pytest.mark.asyncio
    async def test_sync_rebuilds_from_raw_events(
        self,
        db: DatabaseManager,
        make_swap: Callable[..., SwapDTO],
        make_liquidity_event: Callable[..., LiquidityEventDTO],
    ) -> None:
        async with db.get_async_session() as session:
            swaps = SwapRepository(session)
            await swaps.insert_ignore(make_swap(log_index=0, usd="50"))
            await swaps.insert_ignore(make_swap(log_index=1, usd="70"))
            await swaps.insert_ignore(make_swap(log_index=2, usd=None))
            await LiquidityEventRepository(session).insert_ignore(
                make_liquidity_event(owner=LP, usd="900")
            )

        service = UserStatsService(db)
        # Stale row that the resync must replace.
        await service.update_from_swap(make_swap(log_index=9, usd="999999"))

        result = await service.sync_all_user_stats()

        assert result == {"swaps": 2, "liquidity_events": 1, "removed": 2}
        trader = await service.get(TRADER)
        assert trader is not None
        assert trader.total_transactions == 2
        assert trader.total_volume_usd == Decimal("120")
        assert trader.user_type == "RETAIL"
        lp = await service.get(LP)
        assert lp is not None
        assert lp.user_type == "LP"

        again = await service.sync_all_user_stats()
        assert again["removed"] == 3
        assert await service.get(TRADER) == trader
