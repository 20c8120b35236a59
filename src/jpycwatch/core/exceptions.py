"""JPYCWatch exception hierarchy.

This module defines the base exception class and specialized exceptions
for the failure modes of the on-chain data layer: configuration problems,
upstream service failures, resilience-layer outcomes (retry exhaustion,
timeouts, rate limiting) and cache storage limits.
"""


class JpycWatchError(Exception):
    """Base exception for all JPYCWatch errors.

    All custom exceptions in JPYCWatch should inherit from this class
    to enable consistent error handling and logging.
    """

    pass


class ConfigurationError(JpycWatchError):
    """Raised when configuration is invalid or missing.

    Configuration errors are fatal: the retry layer never retries them.

    Example:
        raise ConfigurationError("RPC URL for Avalanche is not configured")
    """

    pass


class ValidationError(JpycWatchError):
    """Raised when data fails an internal validation or invariant check.

    Example:
        raise ValidationError("Invalid hex quantity returned by RPC: 0xzz")
    """

    pass


class ExternalServiceError(JpycWatchError):
    """Raised when an external service call fails.

    Use this for JSON-RPC nodes, block explorers, the holder index and the
    price API.

    Attributes:
        service: Name of the external service that failed.
        status_code: HTTP status code if available, None otherwise.

    Example:
        raise ExternalServiceError(service="coingecko", message="Rate limited", status_code=429)
    """

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.detail = message
        self.status_code = status_code
        super().__init__(f"{service}: {message}")

    @property
    def status(self) -> int | None:
        """Alias used by the retry and error classifiers."""
        return self.status_code


class RpcError(ExternalServiceError):
    """Raised when a JSON-RPC ``eth_call`` fails on a chain.

    Covers transport failures, non-2xx responses and JSON-RPC error
    payloads. The message always names the chain and the cause.

    Attributes:
        chain: Chain name the call was made against.
    """

    def __init__(self, chain: str, message: str, status_code: int | None = None) -> None:
        self.chain = chain
        super().__init__(service=f"{chain} RPC", message=message, status_code=status_code)


class ExplorerError(ExternalServiceError):
    """Raised when a block-explorer API answers with ``status != "1"``."""

    pass


class CircuitBreakerOpenError(JpycWatchError):
    """Raised when circuit breaker is open.

    Use this when an API client's circuit breaker has tripped due to
    consecutive failures and requests are being blocked.
    """

    pass


class RateLimitExceededError(JpycWatchError):
    """Raised when a sliding-window rate limiter denies a request.

    Carries ``status_code = 429`` so the retry layer treats it as
    retryable.

    Attributes:
        key: Rate limit key (upstream source identifier).
        retry_after: Seconds until capacity becomes available again.
        reset_time: Epoch seconds at which the current window resets.
    """

    status_code = 429

    def __init__(self, key: str, retry_after: float, reset_time: float) -> None:
        self.key = key
        self.retry_after = retry_after
        self.reset_time = reset_time
        super().__init__(
            f"Rate limit exceeded for {key}. Retry in {retry_after:.1f} seconds."
        )

    @property
    def status(self) -> int:
        return self.status_code


class RetryExhaustedError(JpycWatchError):
    """Raised when an operation still fails after every retry attempt.

    Attributes:
        attempts: Total number of attempts made.
        last_error: The last underlying exception (also chained as __cause__).
    """

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries exceeded after {attempts} attempts: {last_error}")


class RequestTimeoutError(JpycWatchError):
    """Raised when a named parallel request exceeds its deadline."""

    def __init__(self, request_name: str, timeout: float) -> None:
        self.request_name = request_name
        self.timeout = timeout
        super().__init__(f'Request "{request_name}" timed out after {timeout}s')


class RequestAbortedError(JpycWatchError):
    """Raised when a parallel request is abandoned through the cancel signal."""

    def __init__(self, request_name: str) -> None:
        self.request_name = request_name
        super().__init__(f'Request "{request_name}" was aborted')


class StorageQuotaError(JpycWatchError):
    """Raised by a durable cache storage when its byte quota is exhausted."""

    pass


class AggregationError(JpycWatchError):
    """Raised when no usable upstream data could be gathered at all."""

    pass
