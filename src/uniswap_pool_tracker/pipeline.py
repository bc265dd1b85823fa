"""Composition root for the pool tracker.

The Pipeline constructs every service explicitly and owns their lifetime:
event subscription, processing, persistence, account statistics, metrics,
the scheduler and the integrity checker.

Event flow:
    EventListener → Swap/Liquidity processor → raw tables (+ price history)
    → user stats merge → EventMetric
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import aiohttp
from redis.asyncio import Redis

from uniswap_pool_tracker.abi import ERC20_ABI, POOL_ABI
from uniswap_pool_tracker.aggregation.snapshot import PoolSnapshotService
from uniswap_pool_tracker.aggregation.stats import StatsAggregator
from uniswap_pool_tracker.aggregation.users import UserStatsService
from uniswap_pool_tracker.chain import ChainClient, ChainClientError
from uniswap_pool_tracker.config import Settings, get_settings
from uniswap_pool_tracker.ingestor.listener import EventListener
from uniswap_pool_tracker.ingestor.models import PoolEvent, PoolTokens, SwapEvent, TokenInfo
from uniswap_pool_tracker.monitoring.integrity import IntegrityChecker, IntegrityCheckResult
from uniswap_pool_tracker.monitoring.metrics import EventMetric, MetricsCollector, SystemMetrics
from uniswap_pool_tracker.monitoring.query_perf import QueryPerformanceRecorder
from uniswap_pool_tracker.processors.liquidity import LiquidityProcessor
from uniswap_pool_tracker.processors.swap import SwapProcessor
from uniswap_pool_tracker.retry import RetryPolicy
from uniswap_pool_tracker.scheduler import Scheduler
from uniswap_pool_tracker.storage.database import DatabaseManager
from uniswap_pool_tracker.storage.repos import (
    LiquidityEventDTO,
    LiquidityEventRepository,
    PriceHistoryDTO,
    PriceHistoryRepository,
    SwapDTO,
    SwapRepository,
)
from uniswap_pool_tracker.valuation.cache import PriceCache
from uniswap_pool_tracker.valuation.coingecko import CoinGeckoPriceSource
from uniswap_pool_tracker.valuation.quoter import QuoterPriceSource
from uniswap_pool_tracker.valuation.valuator import UsdValuator

if TYPE_CHECKING:
    from uniswap_pool_tracker.storage.repos import IntegrityCheckDTO, UserStatsDTO

logger = logging.getLogger(__name__)


class PipelineError(RuntimeError):
    """Raised on lifecycle misuse, e.g. starting a pipeline that is not stopped."""


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Counters for the pipeline."""

    started_at: datetime | None = None
    events_processed: int = 0
    events_failed: int = 0
    duplicates: int = 0
    last_event_time: datetime | None = None
    last_error: str | None = None


class Pipeline:
    """Main orchestrator for the pool tracker.

    Example:
        ```python
        from uniswap_pool_tracker.config import get_settings
        from uniswap_pool_tracker.pipeline import Pipeline

        async with Pipeline(get_settings()) as pipeline:
            await asyncio.sleep(3600)
            print(pipeline.get_system_metrics())
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        db: DatabaseManager | None = None,
        chain: ChainClient | None = None,
        redis: Redis | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Wire all services; no I/O happens until start().

        Args:
            settings: Application settings. If not provided, uses get_settings().
            db: Database manager, built from settings when omitted.
            chain: Chain client, built from settings when omitted.
            redis: Redis client for caches, built from REDIS_URL when omitted.
            http_session: Session for the price index; the source owns one otherwise.
        """
        self._settings = settings or get_settings()
        s = self._settings

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()
        self._stop_event: asyncio.Event | None = None
        self._tokens: PoolTokens | None = None

        retry_policy = RetryPolicy(
            attempts=s.retry.attempts,
            delay_seconds=s.retry.delay_seconds,
            timeout_seconds=s.retry.timeout_seconds,
        )

        if redis is None and s.redis.url:
            redis = Redis.from_url(s.redis.url)
        self._redis = redis
        self._db = db or DatabaseManager(
            s.database.url,
            pool_size=s.database.pool_size,
            max_overflow=s.database.max_overflow,
        )
        self._chain = chain or ChainClient(
            s.chain.rpc_url,
            fallback_rpc_url=s.chain.fallback_rpc_url,
            retry_policy=retry_policy,
            redis=self._redis,
            max_requests_per_second=s.chain.max_requests_per_second,
            chain_id=s.chain.chain_id,
        )

        self._price_cache = PriceCache(ttl_seconds=s.pricing.cache_ttl_seconds, redis=self._redis)
        self._quoter = QuoterPriceSource(
            self._chain,
            self._price_cache,
            quoter_address=s.pricing.quoter_address,
            fee_tiers=s.pricing.fee_tiers,
        )
        self._coingecko = CoinGeckoPriceSource(
            self._price_cache,
            session=http_session,
            base_url=s.pricing.coingecko_base_url,
            retry_policy=retry_policy,
            timeout_seconds=s.pricing.coingecko_timeout_seconds,
        )
        self._valuator = UsdValuator(self._chain, self._quoter, self._coingecko)

        self._swap_processor = SwapProcessor(self._chain, self._valuator)
        self._liquidity_processor = LiquidityProcessor(self._chain, self._valuator)

        self._users = UserStatsService(self._db)
        self._metrics = MetricsCollector(
            self._db,
            flush_interval_seconds=s.metrics.flush_interval_seconds,
            max_buffer=s.metrics.max_buffer,
        )
        self._query_recorder = QueryPerformanceRecorder(self._db)
        self._integrity = IntegrityChecker(self._db, self._query_recorder)
        self._stats_aggregator = StatsAggregator(self._db)
        self._snapshots = PoolSnapshotService(self._db, self._chain, self._quoter, s.chain.pool_address)
        self._scheduler = Scheduler(self._stats_aggregator, self._snapshots, self._integrity)
        self._listener = EventListener(
            self._chain,
            self.handle_event,
            poll_interval=s.chain.poll_interval_seconds,
            workers=s.ingest.workers,
            queue_size=s.ingest.queue_size,
            start_block=s.chain.start_block,
        )

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def stats(self) -> PipelineStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == PipelineState.RUNNING

    @property
    def tokens(self) -> PoolTokens | None:
        return self._tokens

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def users(self) -> UserStatsService:
        return self._users

    @property
    def stats_aggregator(self) -> StatsAggregator:
        return self._stats_aggregator

    @property
    def snapshots(self) -> PoolSnapshotService:
        return self._snapshots

    async def start(self) -> None:
        """Load token info, start metrics and scheduler, then attach the pool.

        Raises:
            PipelineError: If the pipeline is not stopped.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise PipelineError(f"Cannot start pipeline in state {self._state.value}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logging.getLogger().setLevel(self._settings.get_logging_level())
        logger.info("Starting pipeline: %s", self._settings.redacted_summary())

        try:
            self.set_token_info(await self.load_token_info())
            self._metrics.start()
            if self._settings.scheduler.enabled:
                self._scheduler.start()
            await self._listener.attach(self._settings.chain.pool_address)
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._shutdown()
            self._state = PipelineState.STOPPED
            raise

    async def stop(self) -> None:
        if self._state == PipelineState.STOPPED:
            return
        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")
        if self._stop_event:
            self._stop_event.set()
        await self._shutdown()
        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _shutdown(self) -> None:
        await self._listener.detach()
        await self._scheduler.stop()
        await self._metrics.stop()
        await self._chain.aclose()
        await self._coingecko.aclose()
        if self._redis is not None:
            await self._redis.aclose()
        await self._db.dispose_async()

    async def run(self) -> None:
        """Start the pipeline and block until stop() is called or the task is cancelled."""
        await self.start()
        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    async def _token_info(self, address: str) -> TokenInfo:
        decimals = await self._chain.call_function(address, ERC20_ABI, "decimals")
        try:
            symbol = str(await self._chain.call_function(address, ERC20_ABI, "symbol"))
        except ChainClientError as e:
            logger.warning("Token %s has no readable symbol: %s", address, e)
            symbol = ""
        return TokenInfo(address=str(address).lower(), decimals=int(decimals), symbol=symbol)

    async def load_token_info(self) -> PoolTokens:
        """Read token0/token1 of the pool and their ERC20 metadata.

        Raises:
            RPCError: If the pool or token contracts cannot be read.
        """
        pool = self._settings.chain.pool_address
        token0_address, token1_address = await asyncio.gather(
            self._chain.call_function(pool, POOL_ABI, "token0"),
            self._chain.call_function(pool, POOL_ABI, "token1"),
        )
        token0, token1 = await asyncio.gather(
            self._token_info(str(token0_address)), self._token_info(str(token1_address))
        )
        return PoolTokens(token0=token0, token1=token1)

    def set_token_info(self, tokens: PoolTokens) -> None:
        self._tokens = tokens
        self._swap_processor.set_token_info(tokens)
        self._liquidity_processor.set_token_info(tokens)
        self._snapshots.set_token_info(tokens)

    async def _store_swap(self, dto: SwapDTO) -> bool:
        # Raw row, price point and account merge commit or roll back together.
        async with self._db.get_async_session() as session:
            inserted = await SwapRepository(session).insert_ignore(dto)
            if not inserted:
                return False
            if dto.price_token0 is not None:
                await PriceHistoryRepository(session).upsert(
                    PriceHistoryDTO(
                        timestamp=dto.block_timestamp,
                        block_number=dto.block_number,
                        price=dto.price_token0,
                    )
                )
            await self._users.merge_swap(session, dto)
        return True

    async def _store_liquidity_event(self, dto: LiquidityEventDTO) -> bool:
        async with self._db.get_async_session() as session:
            inserted = await LiquidityEventRepository(session).insert_ignore(dto)
            if inserted:
                await self._users.merge_liquidity_event(session, dto)
        return inserted

    async def handle_event(self, event: PoolEvent) -> None:
        """Process, persist and account one pool event.

        Failures are logged and recorded as failed metrics; they never
        propagate to the subscription.
        """
        processing_start = datetime.now(UTC)
        processing_end = storage_start = storage_end = None
        event_timestamp: datetime | None = None
        error: str | None = None

        try:
            dto: SwapDTO | LiquidityEventDTO
            if isinstance(event, SwapEvent):
                dto = await self._swap_processor.process(event)
            else:
                dto = await self._liquidity_processor.process(event)
            event_timestamp = dto.block_timestamp
            processing_end = storage_start = datetime.now(UTC)

            if isinstance(dto, SwapDTO):
                inserted = await self._store_swap(dto)
            else:
                inserted = await self._store_liquidity_event(dto)
            storage_end = datetime.now(UTC)

            self._stats.events_processed += 1
            self._stats.last_event_time = storage_end
            if not inserted:
                self._stats.duplicates += 1
                logger.debug(
                    "Duplicate %s %s:%d ignored",
                    event.kind.value,
                    event.meta.transaction_hash,
                    event.meta.log_index,
                )
        except Exception as e:
            error = str(e) or type(e).__name__
            self._stats.events_failed += 1
            self._stats.last_error = error
            logger.exception(
                "Failed to handle %s %s:%d",
                event.kind.value,
                event.meta.transaction_hash,
                event.meta.log_index,
            )

        now = datetime.now(UTC)
        await self._metrics.record_event(
            EventMetric(
                event_type=event.kind.value,
                event_timestamp=event_timestamp or processing_start,
                transaction_hash=event.meta.transaction_hash,
                block_number=event.meta.block_number,
                processing_start=processing_start,
                processing_end=processing_end or now,
                storage_start=storage_start or now,
                storage_end=storage_end or now,
                success=error is None,
                error_message=error,
            )
        )

    def get_system_metrics(self, limit: int = 100) -> SystemMetrics | None:
        return self._metrics.get_system_metrics(limit)

    async def get_aggregated_metrics(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> SystemMetrics | None:
        return await self._metrics.get_aggregated_metrics(start, end)

    async def check_data_integrity(self, *, save: bool = True) -> list[IntegrityCheckResult]:
        """Run all integrity checks, persisting the results unless save is False."""
        if save:
            return await self._integrity.check_and_save()
        return await self._integrity.run_all()

    async def recent_integrity_results(
        self, limit: int = 50, check_type: str | None = None
    ) -> list[IntegrityCheckDTO]:
        return await self._integrity.recent_results(limit, check_type)

    async def sync_all_user_stats(self) -> dict[str, int]:
        return await self._users.sync_all_user_stats()

    async def get_user_stats(self, address: str) -> UserStatsDTO | None:
        return await self._users.get(address)

    async def latest_price(self) -> PriceHistoryDTO | None:
        async with self._db.get_async_session() as session:
            return await PriceHistoryRepository(session).get_latest()

    async def price_history(self, start: datetime, end: datetime) -> list[PriceHistoryDTO]:
        async with self._db.get_async_session() as session:
            return await PriceHistoryRepository(session).list_between(start, end)

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "started_at": self._stats.started_at.isoformat() if self._stats.started_at else None,
            "events_processed": self._stats.events_processed,
            "events_failed": self._stats.events_failed,
            "duplicates": self._stats.duplicates,
            "last_error": self._stats.last_error,
            "listener": self._listener.get_listening_status(),
            "scheduler": self._scheduler.get_status(),
            "pending_metrics": self._metrics.pending,
        }
