"""Tests for data integrity checks."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from uniswap_pool_tracker.aggregation.users import UserStatsService
from uniswap_pool_tracker.monitoring.integrity import (
    CHECK_MISSING_TRANSACTIONS,
    CHECK_PRICE_HISTORY,
    CHECK_SWAP_PRICE_CONSISTENCY,
    CHECK_USER_STATS,
    IntegrityCheck,
    IntegrityChecker,
    IntegrityCheckResult,
    check_block_ordering,
    check_missing_transactions,
    check_price_history,
    check_swap_price_consistency,
    check_user_stats,
)
from uniswap_pool_tracker.monitoring.query_perf import QueryPerformanceRecorder
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import (
    PriceHistoryDTO,
    PriceHistoryRepository,
    QueryPerformanceRepository,
    SwapDTO,
    SwapRepository,
)

T0 = datetime(2026, 1, 1, 10, tzinfo=UTC)


async def store_swaps(db: DatabaseManager, swaps: list[SwapDTO]) -> None:
    async with db.get_async_session() as session:
        repo = SwapRepository(session)
        for swap in swaps:
            await repo.insert_ignore(swap)


async def run(db: DatabaseManager, check: IntegrityCheck) -> IntegrityCheckResult:
    async with db.get_async_session() as session:
        return await check(session)


class TestChecks:
    @pytest.mark.asyncio
    async def test_block_gaps(self, db: DatabaseManager, make_swap: Callable[..., SwapDTO]) -> None:
        await store_swaps(
            db,
            [
                make_swap(log_index=i, block_number=block, at=T0 + timedelta(seconds=i))
                for i, block in enumerate([100, 101, 102, 120])
            ],
        )
        result = await run(db, check_missing_transactions)

        assert result.check_type == CHECK_MISSING_TRANSACTIONS
        assert result.passed is False
        (issue,) = result.issues
        assert issue.affected_count == 1
        assert issue.details == {"max_gap": 18}
        assert issue.message == "Found 1 block number gaps (max gap: 18 blocks)"
        assert result.details == {"min_block": 100, "max_block": 120, "total_swaps": 4}

    @pytest.mark.asyncio
    async def test_empty_tables_pass(self, db: DatabaseManager) -> None:
        for check in (check_missing_transactions, check_price_history, check_block_ordering):
            assert (await run(db, check)).passed

    @pytest.mark.asyncio
    async def test_orphaned_and_invalid_prices(
        self, db: DatabaseManager, make_swap: Callable[..., SwapDTO]
    ) -> None:
        await store_swaps(db, [make_swap(at=T0)])
        async with db.get_async_session() as session:
            repo = PriceHistoryRepository(session)
            await repo.upsert(PriceHistoryDTO(timestamp=T0, block_number=100, price=Decimal(0)))
            await repo.upsert(
                PriceHistoryDTO(timestamp=T0 + timedelta(hours=1), block_number=200, price=Decimal(5))
            )

        result = await run(db, check_price_history)

        assert result.check_type == CHECK_PRICE_HISTORY
        assert [i.severity for i in result.issues] == ["warning", "error"]
        assert [i.affected_count for i in result.issues] == [1, 1]

    @pytest.mark.asyncio
    async def test_priced_swap_without_price_point(
        self, db: DatabaseManager, make_swap: Callable[..., SwapDTO]
    ) -> None:
        await store_swaps(
            db,
            [
                make_swap(log_index=0, at=T0),
                make_swap(log_index=1, at=T0 + timedelta(minutes=1), price=None),
            ],
        )
        result = await run(db, check_swap_price_consistency)

        assert result.check_type == CHECK_SWAP_PRICE_CONSISTENCY
        (issue,) = result.issues
        assert issue.affected_count == 1

    @pytest.mark.asyncio
    async def test_out_of_order_timestamps(
        self, db: DatabaseManager, make_swap: Callable[..., SwapDTO]
    ) -> None:
        await store_swaps(
            db,
            [
                make_swap(log_index=0, block_number=100, at=T0 + timedelta(minutes=5)),
                make_swap(log_index=1, block_number=101, at=T0),
            ],
        )
        result = await run(db, check_block_ordering)
        assert result.issues[0].affected_count == 1

    @pytest.mark.asyncio
    async def test_user_stats_counted_against_sent_swaps(
        self, db: DatabaseManager, make_swap: Callable[..., SwapDTO]
    ) -> None:
        swap = make_swap(at=T0)
        await store_swaps(db, [swap])
        await UserStatsService(db).update_from_swap(swap)

        result = await run(db, check_user_stats)

        assert result.check_type == CHECK_USER_STATS
        (issue,) = result.issues
        assert issue.affected_count == 1
        assert issue.details == [
            {"address": swap.recipient, "total_transactions": 1, "actual_count": 0}
        ]


class TestIntegrityChecker:
    @pytest.mark.asyncio
    async def test_failing_query_becomes_failed_result(self, db: DatabaseManager) -> None:
        async def broken(session: AsyncSession) -> IntegrityCheckResult:
            raise OperationalError("SELECT", {}, Exception("no such table"))

        result = await IntegrityChecker(db)._run_check("broken", broken)

        assert result.passed is False
        assert result.issues[0].severity == "error"
        assert "no such table" in result.issues[0].message

    @pytest.mark.asyncio
    async def test_check_and_save(self, db: DatabaseManager) -> None:
        recorder = QueryPerformanceRecorder(db)
        checker = IntegrityChecker(db, query_recorder=recorder)

        results = await checker.check_and_save()

        assert len(results) == 6
        assert all(r.passed for r in results)
        saved = await checker.recent_results()
        assert len(saved) == 6
        assert {s.issues_count for s in saved} == {0}
        only_gaps = await checker.recent_results(check_type=CHECK_MISSING_TRANSACTIONS)
        assert [s.check_type for s in only_gaps] == [CHECK_MISSING_TRANSACTIONS]

        async with db.get_async_session() as session:
            timings = await QueryPerformanceRepository(session).list_by_type("integrity")
        assert len(timings) == 6
