"""Tests for on-chain, price and error routes."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from jpycwatch.api.app import create_app
from jpycwatch.constants.chains import ChainId
from jpycwatch.core.error_handler import ErrorClassifier, get_error_classifier
from jpycwatch.models.onchain import ChainDistribution, OnChainState
from jpycwatch.models.price import PriceData
from jpycwatch.services.onchain.data_service import OnChainDataService, get_onchain_service
from jpycwatch.services.pricing.price_service import PriceService, get_price_service

BIG_SUPPLY = 12_345_678_901_234_567_890_123_456


def snapshot(total: int = BIG_SUPPLY) -> OnChainState:
    return OnChainState(
        total_supply_raw=total,
        decimals=18,
        chain_distribution={
            ChainId.ETHEREUM: ChainDistribution(supply=total, supply_percentage=100.0)
        },
        fetched_at=datetime(2024, 5, 1, 12, 30, tzinfo=UTC),
    )


@pytest.fixture
def aggregator() -> MagicMock:
    agg = MagicMock()
    agg.aggregate = AsyncMock(return_value=snapshot())
    agg.close = AsyncMock()
    return agg


@pytest.fixture
def price_client() -> MagicMock:
    client = MagicMock()
    client.get_price = AsyncMock(
        return_value=PriceData(
            usd=0.00663564,
            usd_market_cap=7_962_754.48,
            usd_24h_vol=17_528.96,
            usd_24h_change=0.301,
            fetched_at=datetime(2024, 5, 1, tzinfo=UTC),
        )
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture
def client(aggregator, price_client, classifier, cache):
    app = create_app()
    onchain_service = OnChainDataService(aggregator, cache, classifier=classifier)
    price_service = PriceService(price_client, cache)
    app.dependency_overrides[get_onchain_service] = lambda: onchain_service
    app.dependency_overrides[get_price_service] = lambda: price_service
    app.dependency_overrides[get_error_classifier] = lambda: classifier
    with TestClient(app) as test_client:
        yield test_client


class TestOnChainRoutes:
    """Tests for /api/onchain."""

    def test_get_onchain(self, client: TestClient) -> None:
        """
        Given: Nothing cached
        When: GET /api/onchain is called
        Then: The snapshot is fetched and big integers are sent as strings
        """
        response = client.get("/api/onchain")

        assert response.status_code == 200
        data = response.json()
        assert data["phase"] == "fresh"
        assert data["total_supply_raw"] == str(BIG_SUPPLY)
        assert data["decimals"] == 18
        assert data["chain_distribution"]["Ethereum"]["supply"] == str(BIG_SUPPLY)
        assert data["fetched_at"] == "2024-05-01T12:30:00.000Z"
        assert data["is_stale"] is False

    def test_refresh(self, client: TestClient, aggregator: MagicMock) -> None:
        client.get("/api/onchain")
        aggregator.aggregate.return_value = snapshot(1_000)

        response = client.post("/api/onchain/refresh")

        assert response.status_code == 200
        assert response.json()["total_supply_raw"] == 1_000
        assert aggregator.aggregate.await_count == 2

    def test_error_phase(self, client: TestClient, aggregator: MagicMock) -> None:
        aggregator.aggregate.side_effect = RuntimeError("connection refused")

        data = client.get("/api/onchain").json()

        assert data["phase"] == "error"
        assert data["error"] == "connection refused"
        assert data["total_supply_raw"] is None


class TestPriceRoute:
    """Tests for /api/price."""

    def test_formatted_price(self, client: TestClient) -> None:
        data = client.get("/api/price").json()

        assert data["usd"] == 0.00663564
        assert data["price"] == "$0.00664"
        assert data["market_cap"] == "$7.96M"
        assert data["volume_24h"] == "$17.5K"
        assert data["change_24h"] == "+0.30%"
        assert data["fetched_at"] == "2024-05-01T00:00:00.000Z"
        assert data["error"] is None

    def test_price_unavailable(self, client: TestClient, price_client: MagicMock) -> None:
        price_client.get_price.side_effect = RuntimeError("HTTP 429")

        data = client.get("/api/price").json()

        assert data["price"] is None
        assert data["error"] == "HTTP 429"


class TestErrorsRoute:
    """Tests for /api/errors."""

    def test_lists_classified_errors(
        self, client: TestClient, aggregator: MagicMock, classifier: ErrorClassifier
    ) -> None:
        aggregator.aggregate.side_effect = RuntimeError("network down")
        client.get("/api/onchain")

        data = client.get("/api/errors").json()

        assert len(data) == 1
        assert data[0]["type"] == "SYSTEM_ERROR"
        assert data[0]["operation"] == "fetch_onchain_data"
        assert data[0]["recoverable"] is True
        assert data[0]["error_class"] == "RuntimeError"
        assert data[0]["timestamp"].endswith("Z")
