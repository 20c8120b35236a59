"""Cached, coalesced access to the token price."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from jpycwatch.config.settings import get_settings
from jpycwatch.constants.resilience import PRICE_CACHE_KEY
from jpycwatch.data.cache.manager import CacheManager, get_cache_manager
from jpycwatch.models.price import PriceData, PriceState
from jpycwatch.services.coingecko.client import CoinGeckoClient
from jpycwatch.services.resilience.rate_limiter import get_rate_limiter
from jpycwatch.services.resilience.retry import RetryConfig, retry_with_backoff

log = structlog.get_logger(__name__)


class PriceService:
    """Serves the token price from a short-lived cache.

    Concurrent callers share one upstream request, retried with backoff on
    transient errors. A failed fetch returns the last known quote together
    with the error message.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        cache: CacheManager,
        ttl_seconds: float = 60.0,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cache = cache
        self.ttl_seconds = ttl_seconds
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._last_price: PriceData | None = None
        self._inflight: asyncio.Task[PriceData] | None = None

    async def get_price(self, force_refresh: bool = False) -> PriceState:
        """Return the current price state.

        Args:
            force_refresh: Skip the cache and hit the upstream API.
        """
        if not force_refresh:
            cached = self._cache.get(PRICE_CACHE_KEY)
            if cached is not None:
                price = PriceData.model_validate(cached)
                self._last_price = price
                return PriceState(price=price)

        try:
            price = await self._fetch_coalesced()
        except Exception as e:
            log.warning("price_fetch_failed", error=str(e))
            return PriceState(price=self._last_price, error=str(e))
        return PriceState(price=price)

    async def _fetch_coalesced(self) -> PriceData:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._fetch())
        return await asyncio.shield(self._inflight)

    async def _fetch(self) -> PriceData:
        price = await retry_with_backoff(
            self._client.get_price,
            self.retry_config,
            operation_name="coingecko_price",
            sleep=self._sleep,
        )
        self._cache.set(PRICE_CACHE_KEY, price.model_dump(), ttl=self.ttl_seconds)
        self._last_price = price
        return price

    async def close(self) -> None:
        await self._client.close()


_price_service: PriceService | None = None


def get_price_service() -> PriceService:
    """Get or create the process-wide price service."""
    global _price_service

    if _price_service is None:
        settings = get_settings()
        client = CoinGeckoClient(
            coin_id=settings.coingecko_coin_id,
            timeout=settings.rpc_timeout_seconds,
            rate_limiter=get_rate_limiter(),
        )
        _price_service = PriceService(
            client,
            get_cache_manager(),
            ttl_seconds=settings.price_cache_ttl_seconds,
            retry_config=RetryConfig(
                max_retries=settings.retry_max_retries,
                initial_delay=settings.retry_initial_delay,
                max_delay=settings.retry_max_delay,
                backoff_factor=settings.retry_backoff_factor,
            ),
        )

    return _price_service


async def close_price_service() -> None:
    """Close the CoinGecko client and drop the singleton."""
    global _price_service

    if _price_service is not None:
        await _price_service.close()
        _price_service = None


def reset_price_service() -> None:
    """Reset the singleton (for testing)."""
    global _price_service
    _price_service = None
