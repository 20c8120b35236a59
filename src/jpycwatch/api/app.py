"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jpycwatch.api.routes import health, onchain
from jpycwatch.config.logging import configure_logging
from jpycwatch.config.settings import get_settings
from jpycwatch.services.onchain.data_service import close_onchain_service
from jpycwatch.services.pricing.price_service import close_price_service

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    configure_logging()
    settings = get_settings()
    log.info(
        "application_started",
        blacklist_size=len(settings.blacklist),
        durable_cache=settings.cache_dir is not None,
    )

    yield

    # Shutdown
    log.info("application_stopping")
    await close_onchain_service()
    await close_price_service()
    log.info("application_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="JPYC supply, holder and price data across Ethereum, Polygon and Avalanche",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(health.router, prefix="/api")
    app.include_router(onchain.router, prefix="/api")

    return app
