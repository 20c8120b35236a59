"""Price feed models."""

from datetime import datetime

from pydantic import BaseModel, Field


class PriceData(BaseModel):
    """USD quote of the token."""

    usd: float = Field(ge=0)
    usd_market_cap: float | None = None
    usd_24h_vol: float | None = None
    usd_24h_change: float | None = None
    fetched_at: datetime | None = None


class PriceState(BaseModel):
    """Price as exposed to the UI: last known quote plus any fetch error."""

    price: PriceData | None = None
    is_loading: bool = False
    error: str | None = None
