"""Pricing service package."""

from jpycwatch.services.pricing.price_service import (
    PriceService,
    close_price_service,
    get_price_service,
    reset_price_service,
)

__all__ = [
    "PriceService",
    "close_price_service",
    "get_price_service",
    "reset_price_service",
]
