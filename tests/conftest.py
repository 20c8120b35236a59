"""Shared pytest fixtures for JPYCWatch tests.

This module provides fixtures for:
- Test environment variables and singleton cleanup
- A controllable clock for TTL / rate-limit tests
- In-memory durable storage and cache stores
- Sample holder accounts and snapshots

Usage:
    def test_something(clock, cache):
        cache.set("key", 1, ttl=10)
        clock.advance(11)
        assert cache.get("key") is None
"""

import os
from collections.abc import Generator

import pytest

from jpycwatch.constants.chains import ChainId
from jpycwatch.models.onchain import HolderAccount, HolderSnapshot

# =============================================================================
# Environment Configuration
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """Set up test environment variables.

    Loads .env file first, then sets defaults for any missing variables.
    """
    from dotenv import load_dotenv

    original_env = os.environ.copy()

    # Load .env file if it exists (won't override existing env vars)
    load_dotenv()

    os.environ.setdefault("LOG_LEVEL", "DEBUG")
    os.environ.setdefault("DEBUG", "false")

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Drop cached settings and process-wide services around every test."""
    from jpycwatch.config.settings import get_settings
    from jpycwatch.core.error_handler import reset_error_classifier
    from jpycwatch.data.cache.manager import reset_cache_manager
    from jpycwatch.services.onchain.data_service import reset_onchain_service
    from jpycwatch.services.pricing.price_service import reset_price_service
    from jpycwatch.services.resilience.rate_limiter import reset_rate_limiter

    def reset() -> None:
        get_settings.cache_clear()
        reset_error_classifier()
        reset_cache_manager()
        reset_onchain_service()
        reset_price_service()
        reset_rate_limiter()

    reset()
    yield
    reset()


# =============================================================================
# Clock and Storage
# =============================================================================


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def memory_storage():
    """Unbounded in-memory durable tier."""
    from jpycwatch.data.cache.storage import MemoryStorage

    return MemoryStorage()


@pytest.fixture
def cache(memory_storage, clock):
    """Cache store backed by in-memory storage and the fake clock."""
    from jpycwatch.data.cache.manager import CacheManager

    return CacheManager(storage=memory_storage, clock=clock)


# =============================================================================
# Sample Data
# =============================================================================

HOLDER_1 = "0x1111111111111111111111111111111111111111"
HOLDER_2 = "0x2222222222222222222222222222222222222222"
HOLDER_3 = "0x3333333333333333333333333333333333333333"


@pytest.fixture
def holder_addresses() -> list[str]:
    return [HOLDER_1, HOLDER_2, HOLDER_3]


@pytest.fixture
def tracked_holders() -> list[HolderAccount]:
    """Three tracked accounts on Ethereum."""
    return [
        HolderAccount(address=HOLDER_1, chain=ChainId.ETHEREUM, label="Treasury"),
        HolderAccount(address=HOLDER_2, chain=ChainId.ETHEREUM),
        HolderAccount(address=HOLDER_3, chain=ChainId.ETHEREUM),
    ]


@pytest.fixture
def sample_holders() -> list[HolderSnapshot]:
    """Holders with balances 1000, 2000 and 3000 on Ethereum."""
    return [
        HolderSnapshot(address=HOLDER_1, chain=ChainId.ETHEREUM, balance_raw=1000, label="one"),
        HolderSnapshot(address=HOLDER_2, chain=ChainId.ETHEREUM, balance_raw=2000, label="two"),
        HolderSnapshot(address=HOLDER_3, chain=ChainId.ETHEREUM, balance_raw=3000, label="three"),
    ]
