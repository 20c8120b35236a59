"""Tests for health endpoint."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from jpycwatch.constants.chains import ChainId
from jpycwatch.services.base import CircuitState
from jpycwatch.services.onchain.data_service import OnChainDataService, get_onchain_service


def make_service(cache, states: dict[ChainId, CircuitState]) -> OnChainDataService:
    aggregator = MagicMock()
    aggregator.gateway.circuit_states.return_value = states
    aggregator.close = AsyncMock()
    return OnChainDataService(aggregator, cache)


@pytest.fixture
def app():
    from jpycwatch.main import app

    yield app
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_endpoint_returns_ok(self, app, cache) -> None:
        """
        Given: Every chain RPC circuit is closed
        When: GET /api/health is called
        Then: Returns 200 with status ok and the per-chain circuit states
        """
        service = make_service(cache, {chain: CircuitState.CLOSED for chain in ChainId})
        app.dependency_overrides[get_onchain_service] = lambda: service

        response = TestClient(app).get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["phase"] == "loading"
        assert "version" in data
        assert data["chains"] == {
            "Ethereum": "closed",
            "Polygon": "closed",
            "Avalanche": "closed",
        }

    def test_health_endpoint_degraded_when_circuit_open(self, app, cache) -> None:
        service = make_service(
            cache,
            {
                ChainId.ETHEREUM: CircuitState.CLOSED,
                ChainId.POLYGON: CircuitState.OPEN,
                ChainId.AVALANCHE: CircuitState.HALF_OPEN,
            },
        )
        app.dependency_overrides[get_onchain_service] = lambda: service

        data = TestClient(app).get("/api/health").json()

        assert data["status"] == "degraded"
        assert data["chains"]["Polygon"] == "open"

    def test_health_endpoint_method_not_allowed(self, app) -> None:
        """
        Given: The application is running
        When: POST /api/health is called
        Then: Returns 405 Method Not Allowed
        """
        response = TestClient(app).post("/api/health")

        assert response.status_code == 405
