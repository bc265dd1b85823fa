"""Bounded retry with a fixed delay and a per-attempt timeout.

Every outbound RPC and HTTP call goes through a `RetryPolicy` so that the
attempt count, delay and timeout are consistent across components.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 2.0
DEFAULT_TIMEOUT_SECONDS = 30.0


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry policy.

    Attributes:
        attempts: Total attempts, including the first one.
        delay_seconds: Sleep between attempts (not after the last one).
        timeout_seconds: Each attempt is cancelled after this long and
            counts as a failed attempt.
        retry_on: Exception types that trigger another attempt. Anything
            else propagates immediately.
    """

    attempts: int = DEFAULT_ATTEMPTS
    delay_seconds: float = DEFAULT_DELAY_SECONDS
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    retry_on: tuple[type[BaseException], ...] = field(default=(Exception,))

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        description: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Await `func(*args, **kwargs)` under this policy.

        Raises:
            RetryError: If every attempt failed or timed out.
        """
        name = description or getattr(func, "__name__", "call")
        last_exception: BaseException | None = None

        for attempt in range(1, self.attempts + 1):
            try:
                if self.timeout_seconds is None:
                    return await func(*args, **kwargs)
                return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout_seconds)
            except TimeoutError as e:
                last_exception = e
                reason = f"timed out after {self.timeout_seconds:.1f}s"
            except self.retry_on as e:
                last_exception = e
                reason = str(e)

            if attempt == self.attempts:
                break
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                name,
                attempt,
                self.attempts,
                reason,
                self.delay_seconds,
            )
            await asyncio.sleep(self.delay_seconds)

        raise RetryError(
            f"All {self.attempts} attempts failed for {name}: {last_exception}",
            last_exception=last_exception,
        )

    def wrap(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Decorate a coroutine function with this policy."""

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await self.run(func, *args, **kwargs)

        return wrapper
