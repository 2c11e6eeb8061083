"""Retryable - re-attempt the downstream chain on failure.

Total attempts are ``retries + 1`` with no delay between them; when every
attempt fails the last error propagates unchanged.

Each re-attempt runs the downstream chain through a renewed continuation,
so downstream steps execute again from the top. Side effects performed by
a failed attempt are not rolled back. A ``CompositionError`` is a defect
in a step and propagates from the first attempt.

Example:
    >>> ctx = RetryContext(ImmediateRetry(max_retries=2))
    >>> outcome = await ctx.run_async(flaky_call)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from modelchain.core.errors import ErrorCategory, InvalidConfigError, categorize_error
from modelchain.core.logging import get_logger
from modelchain.core.settings import get_settings
from modelchain.execution.adapter import DualView
from modelchain.execution.chain import Continuation
from modelchain.execution.outcome import Outcome

T = TypeVar("T")

logger = get_logger(__name__)


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay in seconds before the next attempt.

        Args:
            attempt: Number of attempts made so far
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Determine if another attempt should be made.

        Args:
            attempt: Number of attempts made so far
            error: The exception that caused the failure
        """
        ...


@dataclass
class ImmediateRetry(RetryStrategy):
    """Up to ``max_retries`` re-attempts, without delay.

    Composition errors are never retried.
    """

    max_retries: int = 3

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        if error is not None and categorize_error(error) is ErrorCategory.COMPOSITION:
            return False
        return attempt <= self.max_retries


@dataclass
class RetryContext:
    """Tracks attempts and runs a callable under a strategy.

    Example:
        >>> ctx = RetryContext(ImmediateRetry(max_retries=3))
        >>> result = await ctx.run_async(fetch)
        >>> ctx.attempts
        1
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, Exception, float], None] | None = None
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    errors: list[tuple[int, Exception]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.attempt

    async def run_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute an async callable with retry logic.

        Raises:
            The last exception once the strategy gives up
        """
        while True:
            self.attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e))
                if not self.strategy.should_retry(self.attempt, e):
                    raise
                delay = self.strategy.next_delay(self.attempt)
                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)
                await asyncio.sleep(delay)


def _parse_retries(args: Any) -> int:
    if isinstance(args, Mapping):
        retries = args.get("retries", args.get("max_retries", args.get("maxRetries")))
    else:
        retries = args
    if retries is None:
        return get_settings().default_retries
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise InvalidConfigError("retryable.retries", retries, f"retryable needs a non-negative integer, got {retries!r}")
    return retries


def create_retryable(args: Any):
    """Factory for the ``retryable`` step."""
    max_retries = _parse_retries(args)

    async def retryable(view: DualView, call_next: Continuation) -> Outcome | None:
        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "retry_attempt_failed",
                key=view.key,
                attempt=attempt,
                max_retries=max_retries,
                error=str(error),
                error_type=type(error).__name__,
            )

        retry = RetryContext(ImmediateRetry(max_retries), on_retry=on_retry)

        async def attempt() -> Outcome:
            cont = call_next if retry.attempt == 1 else call_next.renew()
            return await cont()

        return await retry.run_async(attempt)

    return retryable


__all__ = ["ImmediateRetry", "RetryContext", "RetryStrategy", "create_retryable"]
