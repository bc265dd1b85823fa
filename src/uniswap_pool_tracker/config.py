"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Uniswap pool tracker, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

DEFAULT_QUOTER_ADDRESS = "0xb27308f9F90D607463bb33eA1BeBb41C27CE5AB6"
DEFAULT_FEE_TIERS = (100, 500, 3000, 10000)


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )
    pool_size: int = Field(
        default=5,
        alias="DATABASE_POOL_SIZE",
        ge=1,
        le=50,
        description="Connection pool size",
    )
    max_overflow: int = Field(
        default=0,
        alias="DATABASE_MAX_OVERFLOW",
        ge=0,
        le=50,
        description="Connections allowed beyond the pool size",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string (price cache mirror, optional)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith("redis://"):
            raise ValueError("REDIS_URL must start with redis://")
        return v


class ChainSettings(BaseSettings):
    """Blockchain RPC and monitored pool settings."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_", extra="ignore")

    rpc_url: str = Field(
        alias="CHAIN_RPC_URL",
        description="Primary RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="CHAIN_FALLBACK_RPC_URL",
        description="Fallback RPC endpoint",
    )
    pool_address: str = Field(
        alias="CHAIN_POOL_ADDRESS",
        description="Address of the monitored pool contract",
    )
    chain_id: int | None = Field(
        default=None,
        alias="CHAIN_ID",
        ge=1,
        description="Chain ID (detected from the node when unset)",
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        alias="CHAIN_POLL_INTERVAL_SECONDS",
        ge=0.1,
        le=300.0,
        description="Delay between log polls for each subscription",
    )
    start_block: int | None = Field(
        default=None,
        alias="CHAIN_START_BLOCK",
        ge=0,
        description="First block to read logs from (defaults to the chain head)",
    )
    max_requests_per_second: float = Field(
        default=25.0,
        alias="CHAIN_MAX_REQUESTS_PER_SECOND",
        gt=0.0,
        le=1000.0,
        description="Rate limit for RPC calls",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v

    @field_validator("pool_address")
    @classmethod
    def validate_pool_address(cls, v: str) -> str:
        if not _ADDRESS_RE.match(v):
            raise ValueError("CHAIN_POOL_ADDRESS must be a 0x-prefixed 20-byte hex address")
        return v


class RetrySettings(BaseSettings):
    """Retry policy shared by RPC and HTTP calls."""

    model_config = SettingsConfigDict(env_prefix="RETRY_", extra="ignore")

    attempts: int = Field(
        default=3,
        alias="RETRY_ATTEMPTS",
        ge=1,
        le=20,
        description="Attempts per call before giving up",
    )
    delay_seconds: float = Field(
        default=2.0,
        alias="RETRY_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Fixed delay between attempts",
    )
    timeout_seconds: float = Field(
        default=30.0,
        alias="RETRY_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="Per-attempt timeout",
    )


class PricingSettings(BaseSettings):
    """USD valuation sources."""

    model_config = SettingsConfigDict(env_prefix="PRICING_", extra="ignore")

    quoter_address: str = Field(
        default=DEFAULT_QUOTER_ADDRESS,
        alias="PRICING_QUOTER_ADDRESS",
        description="On-chain quoting contract address",
    )
    fee_tiers: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_FEE_TIERS,
        alias="PRICING_FEE_TIERS",
        description="Fee tiers tried in ascending order (comma-separated)",
    )
    cache_ttl_seconds: int = Field(
        default=600,
        alias="PRICING_CACHE_TTL_SECONDS",
        ge=1,
        le=86_400,
        description="Token price cache TTL",
    )
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        alias="PRICING_COINGECKO_BASE_URL",
        description="External price index base URL",
    )
    coingecko_timeout_seconds: float = Field(
        default=15.0,
        alias="PRICING_COINGECKO_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="Per-request timeout for the price index",
    )

    @field_validator("quoter_address")
    @classmethod
    def validate_quoter_address(cls, v: str) -> str:
        if not _ADDRESS_RE.match(v):
            raise ValueError("PRICING_QUOTER_ADDRESS must be a 0x-prefixed 20-byte hex address")
        return v

    @field_validator("fee_tiers", mode="before")
    @classmethod
    def _parse_fee_tiers(cls, v: object) -> tuple[int, ...]:
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            tiers = [int(p) for p in parts]
        elif isinstance(v, (list, tuple)):
            tiers = [int(x) for x in v]
        else:
            raise ValueError("Invalid PRICING_FEE_TIERS type")
        if not tiers:
            raise ValueError("PRICING_FEE_TIERS must not be empty")
        return tuple(sorted(tiers))

    @field_validator("coingecko_base_url")
    @classmethod
    def validate_coingecko_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("PRICING_COINGECKO_BASE_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class IngestSettings(BaseSettings):
    """Event ingestion worker pool."""

    model_config = SettingsConfigDict(env_prefix="INGEST_", extra="ignore")

    workers: int = Field(
        default=4,
        alias="INGEST_WORKERS",
        ge=1,
        le=64,
        description="Concurrent event handlers per pool subscription",
    )
    queue_size: int = Field(
        default=1000,
        alias="INGEST_QUEUE_SIZE",
        ge=1,
        le=100_000,
        description="Pending decoded events buffered per subscription",
    )


class MetricsSettings(BaseSettings):
    """Event metric buffering."""

    model_config = SettingsConfigDict(env_prefix="METRICS_", extra="ignore")

    flush_interval_seconds: float = Field(
        default=30.0,
        alias="METRICS_FLUSH_INTERVAL_SECONDS",
        ge=1.0,
        le=3600.0,
        description="Time-based flush period",
    )
    max_buffer: int = Field(
        default=1000,
        alias="METRICS_MAX_BUFFER",
        ge=1,
        le=1_000_000,
        description="Buffer size that triggers an immediate flush",
    )


class SchedulerSettings(BaseSettings):
    """Periodic job settings."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="SCHEDULER_ENABLED",
        description="Run hourly snapshot/rollup and daily rollup/integrity jobs",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from uniswap_pool_tracker.config import get_settings

        settings = get_settings()
        print(settings.chain.pool_address)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    chain: ChainSettings = Field(
        default_factory=lambda: ChainSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    pricing: PricingSettings = Field(
        default_factory=lambda: PricingSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    ingest: IngestSettings = Field(
        default_factory=lambda: IngestSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    metrics: MetricsSettings = Field(
        default_factory=lambda: MetricsSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "chain": {
                "rpc_url": self._redact_url(self.chain.rpc_url),
                "fallback_rpc_url": (
                    self._redact_url(self.chain.fallback_rpc_url)
                    if self.chain.fallback_rpc_url
                    else "(not set)"
                ),
                "pool_address": self.chain.pool_address,
                "chain_id": str(self.chain.chain_id) if self.chain.chain_id else "(detect)",
            },
            "retry": {
                "attempts": str(self.retry.attempts),
                "delay_seconds": str(self.retry.delay_seconds),
                "timeout_seconds": str(self.retry.timeout_seconds),
            },
            "pricing": {
                "quoter_address": self.pricing.quoter_address,
                "fee_tiers": ",".join(str(t) for t in self.pricing.fee_tiers),
                "cache_ttl_seconds": str(self.pricing.cache_ttl_seconds),
            },
            "ingest": {
                "workers": str(self.ingest.workers),
                "queue_size": str(self.ingest.queue_size),
            },
            "scheduler_enabled": str(self.scheduler.enabled),
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (tests reload settings with different env)."""
    get_settings.cache_clear()
