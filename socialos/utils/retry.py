# =============================================================================
# RETRY LOGIC WITH EXPONENTIAL BACKOFF
# =============================================================================
# Retry decorator for backend calls plus a polling helper for
# read-after-write reconciliation (poll until the backend agrees).

import asyncio
import random
import functools
from dataclasses import dataclass, field
from typing import Type, Tuple, Callable, Any, Optional, Dict, List, Awaitable, Generic, TypeVar
from ..exceptions import (
    SocialOSError,
    NetworkError,
    APIError
)
from ..utils.logger import logger
from ..utils.structured_logger import structured_logger

T = TypeVar('T')


class RetryConfig:
    """Configuration for retry behavior"""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        jitter_range: float = 0.1
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range


class RetryStrategy:
    """Define which exceptions should trigger retries and with what config"""

    STRATEGIES: Dict[Type[Exception], RetryConfig] = {
        # Connection refused, DNS, timeouts
        NetworkError: RetryConfig(
            max_attempts=3,
            base_delay=1.0,
            max_delay=10.0,
            exponential_base=2.0
        ),
    }

    @classmethod
    def get_config_for_exception(cls, exc: Exception) -> Optional[RetryConfig]:
        """Get retry configuration for a specific exception"""
        for exc_type, config in cls.STRATEGIES.items():
            if isinstance(exc, exc_type):
                return config

        # 5xx from the backend (cold start, deploy in progress)
        if isinstance(exc, APIError) and exc.retryable:
            return RetryConfig(max_attempts=2, base_delay=2.0, max_delay=10.0)

        if isinstance(exc, SocialOSError) and exc.retryable:
            return RetryConfig(max_attempts=2, base_delay=2.0, max_delay=30.0)

        return None


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay for a given attempt with exponential backoff and jitter"""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * config.jitter_range
        jitter_offset = random.uniform(-jitter_amount, jitter_amount)
        delay = max(0, delay + jitter_offset)

    return delay


def retry_async_with_backoff(
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None
):
    """
    Decorator for retrying coroutine functions with exponential backoff

    Args:
        retryable_exceptions: Tuple of exception types to retry on
        config: Custom retry configuration
        on_retry: Callback function called on each retry attempt
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            last_exception = None

            max_attempts = config.max_attempts if config else 3
            for attempt in range(1, max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 1:
                        structured_logger.info(
                            f"Async function {func.__name__} succeeded on attempt {attempt}",
                            event="async_retry_success",
                            function=func.__name__,
                            attempt=attempt
                        )

                    return result

                except Exception as exc:
                    last_exception = exc

                    retry_config = config
                    if not retry_config:
                        retry_config = RetryStrategy.get_config_for_exception(exc)

                    should_retry = False
                    if retryable_exceptions and isinstance(exc, retryable_exceptions):
                        should_retry = True
                    elif retryable_exceptions is None and retry_config:
                        should_retry = True

                    max_attempts = retry_config.max_attempts if retry_config else max_attempts
                    if attempt >= max_attempts:
                        should_retry = False

                    if not should_retry:
                        structured_logger.error(
                            f"Async function {func.__name__} failed permanently",
                            event="async_retry_failed_permanently",
                            function=func.__name__,
                            attempt=attempt,
                            error_type=exc.__class__.__name__,
                            error_message=str(exc)
                        )
                        raise

                    delay = calculate_delay(attempt, retry_config or RetryConfig())

                    structured_logger.warning(
                        f"Async function {func.__name__} failed on attempt {attempt}, retrying in {delay:.1f}s",
                        event="async_retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay_seconds=delay,
                        error_type=exc.__class__.__name__,
                        error_message=str(exc)
                    )

                    if on_retry:
                        try:
                            on_retry(attempt, exc)
                        except Exception as callback_exc:
                            logger.warning(f"Async retry callback failed: {callback_exc}")

                    await asyncio.sleep(delay)

            raise last_exception

        return wrapper
    return decorator


# =============================================================================
# POLL-UNTIL (READ-AFTER-WRITE RECONCILIATION)
# =============================================================================

@dataclass
class BackoffSchedule:
    """
    Delays between polling attempts.

    Either an explicit list (``delays[i]`` is slept before attempt ``i + 2``)
    or an exponential schedule built from ``base_delay``/``multiplier``.
    """
    max_attempts: int = 4
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    delays: Optional[List[float]] = None

    @classmethod
    def fixed(cls, delays: List[float], max_attempts: Optional[int] = None) -> 'BackoffSchedule':
        """Schedule with hand-picked delays, in seconds"""
        return cls(
            max_attempts=max_attempts if max_attempts is not None else len(delays),
            delays=list(delays)
        )

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1-based); the first attempt is immediate"""
        if attempt <= 1:
            return 0.0
        if self.delays is not None:
            index = min(attempt - 2, len(self.delays) - 1)
            return self.delays[index] if index >= 0 else 0.0
        return min(self.base_delay * (self.multiplier ** (attempt - 2)), self.max_delay)

    def total_delay(self) -> float:
        return sum(self.delay_before(a) for a in range(1, self.max_attempts + 1))


@dataclass
class PollResult(Generic[T]):
    """Outcome of poll_until"""
    satisfied: bool
    attempts: int
    value: Optional[T] = None
    errors: List[Exception] = field(default_factory=list)


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    schedule: BackoffSchedule,
    on_attempt: Optional[Callable[[int, Optional[T], Optional[Exception]], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> PollResult[T]:
    """
    Re-run ``fetch`` until ``predicate`` accepts its value or attempts run out.

    Fetch errors count as an unsatisfied attempt and are collected, never
    raised. ``value`` is the last successfully fetched value, so callers can
    accept whatever the backend said last when the schedule is exhausted.
    """
    result: PollResult[T] = PollResult(satisfied=False, attempts=0)

    for attempt in range(1, schedule.max_attempts + 1):
        delay = schedule.delay_before(attempt)
        if delay > 0:
            await sleep(delay)

        result.attempts = attempt
        try:
            value = await fetch()
        except Exception as exc:
            result.errors.append(exc)
            logger.warning(f"Poll attempt {attempt} failed: {exc}")
            if on_attempt:
                on_attempt(attempt, None, exc)
            continue

        result.value = value
        if on_attempt:
            on_attempt(attempt, value, None)
        if predicate(value):
            result.satisfied = True
            break

    return result
