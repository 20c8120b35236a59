"""On-chain snapshot, price and diagnostics routes."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from jpycwatch.api.dependencies import (
    ErrorClassifierDep,
    OnChainServiceDep,
    PriceServiceDep,
)
from jpycwatch.core.formatting import (
    format_change,
    format_market_cap,
    format_price,
    format_volume,
)
from jpycwatch.core.serializer import to_transport
from jpycwatch.services.onchain.data_service import OnChainDataService

router = APIRouter(tags=["onchain"])


class PriceResponse(BaseModel):
    """Price state with display strings."""

    usd: float | None = None
    price: str | None = None
    market_cap: str | None = None
    volume_24h: str | None = None
    change_24h: str | None = None
    fetched_at: str | None = None
    error: str | None = None


def _state_payload(service: OnChainDataService) -> dict[str, Any]:
    payload = to_transport(service.snapshot.model_dump())
    payload["phase"] = service.phase.value
    return payload


@router.get("/onchain")
async def get_onchain(service: OnChainServiceDep) -> dict[str, Any]:
    """
    Current on-chain snapshot.

    The first call serves the cached snapshot (``is_stale`` true) and
    revalidates in the background, or fetches in the foreground when
    nothing is cached. Raw token amounts above the JavaScript safe integer
    range are returned as decimal strings.
    """
    await service.load()
    return _state_payload(service)


@router.post("/onchain/refresh")
async def refresh_onchain(service: OnChainServiceDep) -> dict[str, Any]:
    """Refetch the snapshot regardless of cache freshness."""
    await service.refresh()
    return _state_payload(service)


@router.get("/price", response_model=PriceResponse)
async def get_price(service: PriceServiceDep) -> PriceResponse:
    """Token price with formatted display values."""
    state = await service.get_price()
    price = state.price
    if price is None:
        return PriceResponse(error=state.error)

    return PriceResponse(
        usd=price.usd,
        price=format_price(price.usd),
        market_cap=(
            format_market_cap(price.usd_market_cap) if price.usd_market_cap is not None else None
        ),
        volume_24h=format_volume(price.usd_24h_vol) if price.usd_24h_vol is not None else None,
        change_24h=(
            format_change(price.usd_24h_change) if price.usd_24h_change is not None else None
        ),
        fetched_at=to_transport(price.fetched_at),
        error=state.error,
    )


@router.get("/errors")
async def get_errors(classifier: ErrorClassifierDep) -> list[dict[str, Any]]:
    """Recently classified errors, oldest first."""
    return [to_transport(entry.to_dict()) for entry in classifier.get_error_logs()]
