"""Reusable retry policy for fallible async operations.

A RetryPolicy is a plain value (max retries, base delay, multiplier, cap,
retryable predicate). ``run`` drives tenacity's AsyncRetrying and returns a
RetryOutcome instead of raising, so callers decide whether to propagate
(``unwrap``) or record the failure.

Delays follow min(initial_delay * multiplier ** attempt, max_delay):
1s, 2s, 4s with the defaults.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from semantic_core.config import settings
from semantic_core.exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Default predicate: validation errors never retry; others honour ``retryable``."""
    if isinstance(exc, ValidationError):
        return False
    return bool(getattr(exc, "retryable", True))


@dataclass
class RetryOutcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or re-raise the final error."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        initial_delay: First wait in seconds.
        multiplier: Growth factor per attempt.
        max_delay: Cap on any single wait in seconds.
        retryable: Predicate deciding whether an exception may be retried.
    """
    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    retryable: Callable[[BaseException], bool] = field(default=is_retryable, compare=False)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            initial_delay=settings.RETRY_INITIAL_DELAY_MS / 1000.0,
            multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            max_delay=settings.RETRY_MAX_DELAY_MS / 1000.0,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Wait before the retry following zero-based ``attempt``."""
        return min(self.initial_delay * self.multiplier ** attempt, self.max_delay)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> RetryOutcome[T]:
        """Call ``fn`` until it succeeds, a non-retryable error occurs, or attempts run out.

        Args:
            fn: Zero-argument coroutine factory.
            sleep: Awaitable sleep used between attempts (asyncio.sleep by default).

        Returns:
            RetryOutcome: value on success, otherwise the last error, plus the
            number of attempts made.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=self.multiplier, max=self.max_delay),
            retry=retry_if_exception(self.retryable),
            before_sleep=self._log_retry,
            sleep=sleep or asyncio.sleep,
            reraise=True,
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    value = await fn()
        except Exception as exc:
            return RetryOutcome(error=exc, attempts=attempts)
        return RetryOutcome(value=value, attempts=attempts)

    @staticmethod
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Attempt %d failed (%s); retrying in %.2fs",
            retry_state.attempt_number,
            exc,
            wait,
        )
