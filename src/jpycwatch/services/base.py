"""Guarded HTTP access to upstream sources.

Every upstream client (JSON-RPC nodes, block explorers, Moralis, CoinGecko)
subclasses BaseAPIClient, which adds a per-source circuit breaker and
sliding-window admission in front of httpx and maps every failure to
ExternalServiceError.

Each request is a single attempt. Retrying is left to
``jpycwatch.services.resilience.retry`` so that every upstream call in the
aggregation goes through one backoff policy.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import structlog

from jpycwatch.core.exceptions import (
    CircuitBreakerOpenError,
    ExternalServiceError,
    RateLimitExceededError,
)
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger(__name__)


def split_endpoint(url: str) -> tuple[str, str]:
    """Split a full endpoint URL into (origin, path) so requests hit it exactly.

    Joining a base URL with an empty path would append a trailing slash.
    """
    parsed = httpx.URL(url)
    origin = f"{parsed.scheme}://{parsed.netloc.decode('ascii')}"
    return origin, parsed.raw_path.decode("ascii")


class CircuitState(Enum):
    """Upstream health as seen by one client."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Consecutive-failure breaker for one upstream source.

    ``failure_threshold`` counted failures in a row open the circuit. While
    open, requests are refused until ``cooldown_seconds`` have passed since
    the last failure; the next request is then let through as a trial and
    decides whether the circuit closes again.

    Attributes:
        name: Upstream name used in log events and errors.
        clock: Monotonic time source in seconds.
        failure_count: Counted failures since the last success.
        last_failure_at: Clock reading of the most recent failure.
    """

    name: str = "upstream"
    failure_threshold: int = 5
    cooldown_seconds: float = 30
    clock: Callable[[], float] = time.monotonic
    failure_count: int = field(default=0, init=False)
    last_failure_at: float | None = field(default=None, init=False)
    state: CircuitState = field(default=CircuitState.CLOSED, init=False)

    def record_success(self) -> None:
        if self.state != CircuitState.CLOSED:
            log.info("circuit_closed", upstream=self.name)
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_at = self.clock()

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            log.warning("circuit_trial_failed", upstream=self.name)
            return

        if self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                log.warning(
                    "circuit_opened",
                    upstream=self.name,
                    failures=self.failure_count,
                    cooldown_seconds=self.cooldown_seconds,
                )
            self.state = CircuitState.OPEN

    def seconds_until_trial(self) -> float:
        if self.last_failure_at is None:
            return 0.0
        return max(0.0, self.last_failure_at + self.cooldown_seconds - self.clock())

    def can_execute(self) -> bool:
        """True when closed, half-open, or open with the cooldown elapsed."""
        if self.state != CircuitState.OPEN:
            return True
        if self.last_failure_at is None or self.seconds_until_trial() > 0:
            return False
        self.state = CircuitState.HALF_OPEN
        log.info("circuit_half_open", upstream=self.name)
        return True

    def raise_if_open(self) -> None:
        """Raise CircuitBreakerOpenError while the circuit refuses requests."""
        if not self.can_execute():
            raise CircuitBreakerOpenError(
                f"Circuit breaker is open for {self.name}. "
                f"Next trial request in {self.seconds_until_trial():.1f} seconds."
            )


class BaseAPIClient:
    """One upstream source reached over HTTP.

    The httpx client is created on first use and recreated after ``close``.
    Before each request the circuit must admit it and, when a limiter is
    given, the source's sliding window must have room. Only 5xx, 429 and
    transport failures count against the circuit; a 404 says nothing about
    upstream health.

    Example:
        client = BaseAPIClient(
            base_url="https://api.etherscan.io",
            service_name="etherscan",
            rate_limiter=get_rate_limiter(),
        )
        response = await client.get("/v2/api", params={"module": "token"})
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        service_name: str | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_cooldown: int = 30,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        rate_limit_key: str | None = None,
    ) -> None:
        """
        Args:
            base_url: Origin every request path is joined to.
            service_name: Upstream name in errors and logs; defaults to ``base_url``.
            timeout: Per-request httpx timeout in seconds.
            headers: Sent with every request (API keys go here).
            circuit_breaker_threshold: Counted failures in a row that open the circuit.
            circuit_breaker_cooldown: Seconds an open circuit waits before a trial request.
            rate_limiter: Shared limiter; None disables admission control.
            rate_limit_key: Limiter bucket; defaults to ``service_name``.
        """
        self.base_url = base_url
        self.service_name = service_name or base_url
        self.timeout = timeout
        self.headers = headers or {}
        self.rate_limit_key = rate_limit_key or self.service_name
        self._rate_limiter = rate_limiter
        self._client: httpx.AsyncClient | None = None
        self._circuit_breaker = CircuitBreaker(
            name=self.service_name,
            failure_threshold=circuit_breaker_threshold,
            cooldown_seconds=circuit_breaker_cooldown,
        )

    @property
    def circuit_state(self) -> CircuitState:
        return self._circuit_breaker.state

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
            )
            log.debug("upstream_client_opened", service=self.service_name)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.debug("upstream_client_closed", service=self.service_name)

    def _admit(self) -> None:
        if self._rate_limiter is None:
            return
        decision = self._rate_limiter.try_acquire(self.rate_limit_key)
        if not decision.allowed:
            raise RateLimitExceededError(
                key=self.rate_limit_key,
                retry_after=decision.retry_after or 0.0,
                reset_time=decision.reset_time,
            )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Make a single guarded HTTP request.

        Args:
            method: HTTP method (GET, POST).
            path: Request path (appended to base_url).
            **kwargs: Additional arguments passed to httpx.request.

        Returns:
            httpx.Response on success.

        Raises:
            CircuitBreakerOpenError: If circuit breaker is open.
            RateLimitExceededError: If the rate limiter denies the request.
            ExternalServiceError: On HTTP error status or transport failure.
        """
        self._circuit_breaker.raise_if_open()
        self._admit()

        client = await self._get_client()

        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            # Only server-side failures count against the circuit
            if status_code >= 500 or status_code == 429:
                self._circuit_breaker.record_failure()
            log.warning(
                "request_http_error",
                service=self.service_name,
                method=method,
                path=path,
                status_code=status_code,
            )
            raise ExternalServiceError(
                service=self.service_name,
                message=f"HTTP {status_code} from {method} {path}",
                status_code=status_code,
            ) from e
        except httpx.TimeoutException as e:
            self._circuit_breaker.record_failure()
            log.warning(
                "request_timeout", service=self.service_name, method=method, path=path
            )
            raise ExternalServiceError(
                service=self.service_name,
                message=f"network timeout on {method} {path}: {e}",
            ) from e
        except httpx.RequestError as e:
            self._circuit_breaker.record_failure()
            log.warning(
                "request_connection_error",
                service=self.service_name,
                method=method,
                path=path,
                error=str(e),
            )
            raise ExternalServiceError(
                service=self.service_name,
                message=f"network error on {method} {path}: {e}",
            ) from e

        self._circuit_breaker.record_success()
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """GET ``path``; keyword arguments go to ``httpx.AsyncClient.request``."""
        return await self._request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """POST ``path``; keyword arguments go to ``httpx.AsyncClient.request``."""
        return await self._request("POST", path, **kwargs)
