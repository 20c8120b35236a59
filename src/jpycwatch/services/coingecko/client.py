"""CoinGecko simple-price client."""

from datetime import UTC, datetime

import structlog

from jpycwatch.constants.chains import COINGECKO_BASE_URL
from jpycwatch.core.exceptions import ExternalServiceError
from jpycwatch.models.price import PriceData
from jpycwatch.services.base import BaseAPIClient
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger(__name__)


class CoinGeckoClient(BaseAPIClient):
    """Fetches the USD price, market cap, volume and 24h change of a coin."""

    def __init__(
        self,
        coin_id: str = "jpycoin",
        timeout: float = 10.0,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> None:
        super().__init__(
            base_url=COINGECKO_BASE_URL,
            service_name="coingecko",
            timeout=timeout,
            headers={"Accept": "application/json"},
            rate_limiter=rate_limiter,
        )
        self.coin_id = coin_id

    async def get_price(self) -> PriceData:
        """Fetch the current quote.

        Raises:
            ExternalServiceError: On HTTP failure or when the coin is missing
                from the response.
        """
        response = await self.get(
            "/simple/price",
            params={
                "ids": self.coin_id,
                "vs_currencies": "usd",
                "include_market_cap": "true",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
        )
        body = response.json()
        quote = body.get(self.coin_id) if isinstance(body, dict) else None
        if not quote or quote.get("usd") is None:
            raise ExternalServiceError(
                service=self.service_name,
                message=f"No price data for {self.coin_id}",
            )

        price = PriceData(
            usd=quote["usd"],
            usd_market_cap=quote.get("usd_market_cap"),
            usd_24h_vol=quote.get("usd_24h_vol"),
            usd_24h_change=quote.get("usd_24h_change"),
            fetched_at=datetime.now(UTC),
        )
        log.debug("coingecko_price_fetched", coin_id=self.coin_id, usd=price.usd)
        return price
