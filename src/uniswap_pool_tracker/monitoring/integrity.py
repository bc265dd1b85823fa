"""Batch consistency checks over the raw and derived tables.

Every check runs independently: a failing query turns that check into a
failed result with an error issue and the remaining checks still run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from uniswap_pool_tracker.monitoring.query_perf import QueryPerformanceRecorder
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.models import PriceHistoryModel, SwapModel, UserStatsModel
from uniswap_pool_tracker.storage.repos import IntegrityCheckDTO, IntegrityCheckRepository

logger = logging.getLogger(__name__)

MAX_BLOCK_GAP = 10
USER_STATS_SAMPLE_LIMIT = 10

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"

CHECK_MISSING_TRANSACTIONS = "missing_transactions"
CHECK_DUPLICATE_TRANSACTIONS = "duplicate_transactions"
CHECK_PRICE_HISTORY = "price_history_integrity"
CHECK_BLOCK_ORDERING = "block_number_continuity"
CHECK_SWAP_PRICE_CONSISTENCY = "swap_price_consistency"
CHECK_USER_STATS = "user_stats_integrity"


@dataclass
class IntegrityIssue:
    severity: str
    message: str
    affected_count: int | None = None
    details: Any = None


@dataclass
class IntegrityCheckResult:
    check_type: str
    timestamp: datetime
    passed: bool
    issues: list[IntegrityIssue] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_issues(
        cls, check_type: str, issues: list[IntegrityIssue], details: dict[str, Any] | None = None
    ) -> IntegrityCheckResult:
        return cls(
            check_type=check_type,
            timestamp=datetime.now(UTC),
            passed=not issues,
            issues=issues,
            details=details or {},
        )

    def to_dto(self) -> IntegrityCheckDTO:
        return IntegrityCheckDTO(
            check_type=self.check_type,
            timestamp=self.timestamp,
            passed=self.passed,
            issues_count=len(self.issues),
            details={
                "issues": [asdict(issue) for issue in self.issues],
                "details": self.details,
            },
        )


async def check_missing_transactions(session: AsyncSession) -> IntegrityCheckResult:
    """Flag gaps of more than MAX_BLOCK_GAP blocks between consecutive swaps."""
    range_row = (
        await session.execute(
            select(
                func.min(SwapModel.block_number),
                func.max(SwapModel.block_number),
                func.count(SwapModel.id),
            )
        )
    ).one()
    min_block, max_block, total_swaps = range_row
    if min_block is None:
        return IntegrityCheckResult.from_issues(CHECK_MISSING_TRANSACTIONS, [])

    gaps = select(
        (
            SwapModel.block_number
            - func.lag(SwapModel.block_number).over(order_by=SwapModel.block_number)
        ).label("gap")
    ).subquery()
    gap_count, max_gap = (
        await session.execute(
            select(func.count(), func.max(gaps.c.gap))
            .select_from(gaps)
            .where(gaps.c.gap > MAX_BLOCK_GAP)
        )
    ).one()

    issues = []
    if gap_count:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_WARNING,
                message=f"Found {gap_count} block number gaps (max gap: {max_gap} blocks)",
                affected_count=int(gap_count),
                details={"max_gap": int(max_gap)},
            )
        )
    return IntegrityCheckResult.from_issues(
        CHECK_MISSING_TRANSACTIONS,
        issues,
        {"min_block": int(min_block), "max_block": int(max_block), "total_swaps": int(total_swaps)},
    )


async def check_duplicate_transactions(session: AsyncSession) -> IntegrityCheckResult:
    result = await session.execute(
        select(SwapModel.transaction_hash, SwapModel.log_index, func.count().label("count"))
        .group_by(SwapModel.transaction_hash, SwapModel.log_index)
        .having(func.count() > 1)
    )
    duplicates = [
        {"transaction_hash": tx_hash, "log_index": log_index, "count": int(count)}
        for tx_hash, log_index, count in result.all()
    ]
    issues = []
    if duplicates:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_ERROR,
                message=f"Found {len(duplicates)} duplicate swap records",
                affected_count=len(duplicates),
                details=duplicates,
            )
        )
    return IntegrityCheckResult.from_issues(CHECK_DUPLICATE_TRANSACTIONS, issues)


async def check_price_history(session: AsyncSession) -> IntegrityCheckResult:
    """Orphaned price points and non-positive prices."""
    has_swap = exists().where(SwapModel.block_timestamp == PriceHistoryModel.timestamp)
    orphaned = (
        await session.execute(select(func.count()).select_from(PriceHistoryModel).where(~has_swap))
    ).scalar_one()
    invalid = (
        await session.execute(
            select(func.count())
            .select_from(PriceHistoryModel)
            .where(or_(PriceHistoryModel.price <= 0, PriceHistoryModel.price.is_(None)))
        )
    ).scalar_one()

    issues = []
    if orphaned:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_WARNING,
                message=f"Found {orphaned} orphaned price records without a matching swap",
                affected_count=int(orphaned),
            )
        )
    if invalid:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_ERROR,
                message=f"Found {invalid} invalid price records (<= 0 or NULL)",
                affected_count=int(invalid),
            )
        )
    return IntegrityCheckResult.from_issues(CHECK_PRICE_HISTORY, issues)


async def check_block_ordering(session: AsyncSession) -> IntegrityCheckResult:
    """Swaps timestamped earlier than a lower-block predecessor."""
    ordered = select(
        SwapModel.block_timestamp.label("block_timestamp"),
        func.lag(SwapModel.block_timestamp)
        .over(order_by=SwapModel.block_number)
        .label("prev_timestamp"),
    ).subquery()
    out_of_order = (
        await session.execute(
            select(func.count())
            .select_from(ordered)
            .where(
                and_(
                    ordered.c.prev_timestamp.is_not(None),
                    ordered.c.block_timestamp < ordered.c.prev_timestamp,
                )
            )
        )
    ).scalar_one()

    issues = []
    if out_of_order:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_WARNING,
                message=f"Found {out_of_order} swaps out of timestamp order by block number",
                affected_count=int(out_of_order),
            )
        )
    return IntegrityCheckResult.from_issues(CHECK_BLOCK_ORDERING, issues)


async def check_swap_price_consistency(session: AsyncSession) -> IntegrityCheckResult:
    has_point = exists().where(PriceHistoryModel.timestamp == SwapModel.block_timestamp)
    missing = (
        await session.execute(
            select(func.count())
            .select_from(SwapModel)
            .where(SwapModel.price_token0.is_not(None) & ~has_point)
        )
    ).scalar_one()

    issues = []
    if missing:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_WARNING,
                message=f"Found {missing} priced swaps without a price history record",
                affected_count=int(missing),
            )
        )
    return IntegrityCheckResult.from_issues(CHECK_SWAP_PRICE_CONSISTENCY, issues)


async def check_user_stats(session: AsyncSession) -> IntegrityCheckResult:
    """Compare transaction counts against swaps sent, sampled."""
    swap_counts = (
        select(SwapModel.sender.label("address"), func.count().label("actual_count"))
        .group_by(SwapModel.sender)
        .subquery()
    )
    actual = func.coalesce(swap_counts.c.actual_count, 0)
    result = await session.execute(
        select(UserStatsModel.address, UserStatsModel.total_transactions, actual)
        .outerjoin(swap_counts, UserStatsModel.address == swap_counts.c.address)
        .where(UserStatsModel.total_transactions != actual)
        .limit(USER_STATS_SAMPLE_LIMIT)
    )
    mismatched = [
        {"address": address, "total_transactions": int(recorded), "actual_count": int(count)}
        for address, recorded, count in result.all()
    ]

    issues = []
    if mismatched:
        issues.append(
            IntegrityIssue(
                severity=SEVERITY_WARNING,
                message=f"Found {len(mismatched)} user stats rows with mismatched transaction counts",
                affected_count=len(mismatched),
                details=mismatched,
            )
        )
    return IntegrityCheckResult.from_issues(CHECK_USER_STATS, issues)


IntegrityCheck = Callable[[AsyncSession], Awaitable[IntegrityCheckResult]]

CHECKS: tuple[tuple[str, IntegrityCheck], ...] = (
    (CHECK_MISSING_TRANSACTIONS, check_missing_transactions),
    (CHECK_DUPLICATE_TRANSACTIONS, check_duplicate_transactions),
    (CHECK_PRICE_HISTORY, check_price_history),
    (CHECK_BLOCK_ORDERING, check_block_ordering),
    (CHECK_SWAP_PRICE_CONSISTENCY, check_swap_price_consistency),
    (CHECK_USER_STATS, check_user_stats),
)


class IntegrityChecker:
    """Run the integrity battery and persist its results."""

    def __init__(
        self,
        db: DatabaseManager,
        query_recorder: QueryPerformanceRecorder | None = None,
    ) -> None:
        self._db = db
        self._query_recorder = query_recorder

    async def _execute(self, check: IntegrityCheck) -> IntegrityCheckResult:
        async with self._db.get_async_session() as session:
            return await check(session)

    async def _run_check(self, check_type: str, check: IntegrityCheck) -> IntegrityCheckResult:
        try:
            if self._query_recorder is None:
                return await self._execute(check)
            async with self._query_recorder.track("integrity", check_type):
                return await self._execute(check)
        except SQLAlchemyError as e:
            logger.error("Integrity check %s failed: %s", check_type, e)
            return IntegrityCheckResult.from_issues(
                check_type,
                [IntegrityIssue(severity=SEVERITY_ERROR, message=f"check failed: {e}")],
            )

    async def run_all(self) -> list[IntegrityCheckResult]:
        results = [await self._run_check(name, check) for name, check in CHECKS]
        failed = [r.check_type for r in results if not r.passed]
        if failed:
            logger.warning("Integrity checks failed: %s", ", ".join(failed))
        else:
            logger.info("All %d integrity checks passed", len(results))
        return results

    async def save_results(self, results: list[IntegrityCheckResult]) -> None:
        try:
            async with self._db.get_async_session() as session:
                repo = IntegrityCheckRepository(session)
                for result in results:
                    await repo.insert(result.to_dto())
        except SQLAlchemyError as e:
            logger.error("Failed to save integrity results: %s", e)

    async def check_and_save(self) -> list[IntegrityCheckResult]:
        results = await self.run_all()
        await self.save_results(results)
        return results

    async def recent_results(self, limit: int = 50, check_type: str | None = None) -> list[IntegrityCheckDTO]:
        async with self._db.get_async_session() as session:
            return await IntegrityCheckRepository(session).list_recent(limit, check_type)
