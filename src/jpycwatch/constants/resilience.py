"""Cache, retry, rate limit and error-log constants."""

from typing import Final

# Cache store
CACHE_SCHEMA_VERSION: Final[str] = "v1.0.0"
CACHE_DEFAULT_TTL_SECONDS: Final[float] = 30 * 60
CACHE_MAX_BYTES: Final[int] = 5 * 1024 * 1024
ONCHAIN_CACHE_KEY: Final[str] = "jpyc-onchain-data"
PRICE_CACHE_KEY: Final[str] = "jpyc-price-data"

# Serializer: digit strings at least this long are read back as integers
BIGINT_DIGIT_THRESHOLD: Final[int] = 15
JS_MAX_SAFE_INTEGER: Final[int] = 2**53 - 1

# Retry / backoff
RETRY_MAX_RETRIES: Final[int] = 3
RETRY_INITIAL_DELAY_SECONDS: Final[float] = 1.0
RETRY_MAX_DELAY_SECONDS: Final[float] = 10.0
RETRY_BACKOFF_FACTOR: Final[float] = 2.0
RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})
TRANSIENT_ERROR_KEYWORDS: Final[tuple[str, ...]] = (
    "timeout",
    "timed out",
    "network",
    "econnreset",
    "econnrefused",
    "connection reset",
    "connection refused",
    "enotfound",
    "name or service not known",
    "temporary failure in name resolution",
    "temporarily unavailable",
)

# Rate limiting (per upstream source)
RATE_LIMIT_MAX_REQUESTS: Final[int] = 10
RATE_LIMIT_WINDOW_SECONDS: Final[float] = 1.0

# Parallel requests
PARALLEL_DEFAULT_TIMEOUT_SECONDS: Final[float] = 15.0

# On-chain aggregation: each source of a primary/fallback pair gets
# SOURCE_TIMEOUT_SECONDS; the pair as a whole gets AGGREGATION_TIMEOUT_SECONDS
SOURCE_TIMEOUT_SECONDS: Final[float] = 12.0
AGGREGATION_TIMEOUT_SECONDS: Final[float] = 30.0

# Error classifier
MAX_ERROR_LOGS: Final[int] = 100

# Performance metrics
MAX_METRIC_ENTRIES: Final[int] = 1000
