"""Resilience primitives: rate limiting, retry/backoff, parallel and fallback execution."""

from jpycwatch.services.resilience.fallback import (
    FallbackOperation,
    FallbackResult,
    FallbackStatus,
    ParallelFallbackResult,
    execute_parallel_with_fallback,
    execute_with_fallback,
)
from jpycwatch.services.resilience.parallel import (
    ParallelExecutionResult,
    ParallelRequest,
    ParallelRequestResult,
    ParallelStatus,
    execute_parallel_with_timeout,
    extract_errors,
    extract_success_data,
)
from jpycwatch.services.resilience.rate_limiter import (
    RateLimitDecision,
    SlidingWindowRateLimiter,
    enforce_rate_limit,
)
from jpycwatch.services.resilience.retry import (
    RetryConfig,
    calculate_backoff_delay,
    is_retryable_error,
    retry_with_backoff,
)

__all__ = [
    "FallbackOperation",
    "FallbackResult",
    "FallbackStatus",
    "ParallelExecutionResult",
    "ParallelFallbackResult",
    "ParallelRequest",
    "ParallelRequestResult",
    "ParallelStatus",
    "RateLimitDecision",
    "RetryConfig",
    "SlidingWindowRateLimiter",
    "calculate_backoff_delay",
    "enforce_rate_limit",
    "execute_parallel_with_fallback",
    "execute_parallel_with_timeout",
    "execute_with_fallback",
    "extract_errors",
    "extract_success_data",
    "is_retryable_error",
    "retry_with_backoff",
]
