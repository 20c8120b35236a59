"""Exponential-backoff retry for upstream calls, built on tenacity.

Only transient failures are retried: errors carrying a retryable HTTP
status (429, 5xx) or whose message points at a network condition.
Everything else, configuration errors in particular, is raised as-is on
the first attempt.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from jpycwatch.constants.resilience import (
    RETRY_BACKOFF_FACTOR,
    RETRY_INITIAL_DELAY_SECONDS,
    RETRY_MAX_DELAY_SECONDS,
    RETRY_MAX_RETRIES,
    RETRYABLE_STATUS_CODES,
    TRANSIENT_ERROR_KEYWORDS,
)
from jpycwatch.core.exceptions import ConfigurationError, RetryExhaustedError

log = structlog.get_logger(__name__)

T = TypeVar("T")

OnRetry = Callable[[BaseException, int, float], None]


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay, in seconds.
        backoff_factor: Multiplier applied per retry.
        retryable_status_codes: HTTP statuses that are worth retrying.
        on_retry: Called as ``on_retry(error, attempt, delay)`` before each sleep.
    """

    max_retries: int = RETRY_MAX_RETRIES
    initial_delay: float = RETRY_INITIAL_DELAY_SECONDS
    max_delay: float = RETRY_MAX_DELAY_SECONDS
    backoff_factor: float = RETRY_BACKOFF_FACTOR
    retryable_status_codes: frozenset[int] = RETRYABLE_STATUS_CODES
    on_retry: OnRetry | None = None


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry ``attempt`` (0-indexed): min(initial * factor**attempt, max)."""
    return min(config.initial_delay * config.backoff_factor**attempt, config.max_delay)


def _status_of(error: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable_error(
    error: BaseException,
    retryable_status_codes: frozenset[int] = RETRYABLE_STATUS_CODES,
) -> bool:
    """Decide whether ``error`` is transient.

    Args:
        error: The exception raised by the operation.
        retryable_status_codes: Statuses treated as transient.

    Returns:
        True for a retryable status, an httpx transport error, a timeout,
        or a message naming a transient network condition.
    """
    if isinstance(error, (ConfigurationError, RetryExhaustedError)):
        return False

    status = _status_of(error)
    if status is not None:
        return status in retryable_status_codes

    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, TimeoutError)):
        return True

    message = str(error).lower()
    return any(keyword in message for keyword in TRANSIENT_ERROR_KEYWORDS)


def _before_sleep(config: RetryConfig, operation_name: str) -> Callable[[RetryCallState], None]:
    def hook(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        log.warning(
            "retry_scheduled",
            operation=operation_name,
            attempt=retry_state.attempt_number,
            max_retries=config.max_retries,
            delay=delay,
            error=str(error),
        )
        if config.on_retry is not None and error is not None:
            config.on_retry(error, retry_state.attempt_number, delay)

    return hook


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` and retry transient failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine function.
        config: Backoff parameters (default: ``RetryConfig()``).
        operation_name: Name used in log events.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The operation's result.

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error.
            The last error is chained as ``__cause__``.
        Exception: A non-retryable error, unchanged, on the attempt it occurred.

    Example:
        supply = await retry_with_backoff(
            lambda: gateway.total_supply(ChainId.ETHEREUM),
            RetryConfig(max_retries=2),
            operation_name="total_supply",
        )
    """
    config = config or RetryConfig()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(
            multiplier=config.initial_delay,
            exp_base=config.backoff_factor,
            max=config.max_delay,
        ),
        retry=retry_if_exception(
            lambda e: is_retryable_error(e, config.retryable_status_codes)
        ),
        before_sleep=_before_sleep(config, operation_name),
        sleep=sleep,
    )

    # tenacity only awaits coroutine functions, not lambdas returning coroutines
    async def attempt() -> T:
        return await operation()

    try:
        return await retrying(attempt)
    except RetryError as e:
        last_attempt = e.last_attempt
        last_error = last_attempt.exception()
        assert last_error is not None
        log.error(
            "retry_exhausted",
            operation=operation_name,
            attempts=last_attempt.attempt_number,
            error=str(last_error),
        )
        raise RetryExhaustedError(last_attempt.attempt_number, last_error) from last_error
