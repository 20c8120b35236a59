"""Tests for the block-explorer client."""

import httpx
import pytest
import pytest_asyncio
import respx

from jpycwatch.config.settings import Settings
from jpycwatch.constants.chains import JPYC_CONTRACT_ADDRESS, ChainId
from jpycwatch.core.exceptions import ExplorerError, ValidationError
from jpycwatch.services.explorer.client import ExplorerClient, build_explorer_clients

ETHERSCAN_URL = "https://api.etherscan.io/v2/api"
SNOWTRACE_URL = "https://api.snowtrace.io/api"


def ok(result) -> httpx.Response:
    return httpx.Response(200, json={"status": "1", "message": "OK", "result": result})


@pytest_asyncio.fixture
async def polygon_explorer():
    client = ExplorerClient(ChainId.POLYGON, api_key="POLY-KEY")
    yield client
    await client.close()


class TestExplorerQueries:
    """Tests for supply, holder count and balance queries."""

    @pytest.mark.asyncio
    async def test_holder_count_uses_chainid(self, polygon_explorer: ExplorerClient) -> None:
        """
        Given: A Polygon explorer on the multichain endpoint
        When: The holder count is requested
        Then: The query carries chainid 137, the API key and the contract
        """
        with respx.mock:
            route = respx.get(ETHERSCAN_URL).mock(return_value=ok("12345"))
            count = await polygon_explorer.get_holder_count()

        assert count == 12345
        params = route.calls.last.request.url.params
        assert params["chainid"] == "137"
        assert params["apikey"] == "POLY-KEY"
        assert params["action"] == "tokenholdercount"
        assert params["contractaddress"] == JPYC_CONTRACT_ADDRESS

    @pytest.mark.asyncio
    async def test_token_supply(self, polygon_explorer: ExplorerClient) -> None:
        with respx.mock:
            respx.get(ETHERSCAN_URL).mock(return_value=ok(str(10**27)))
            assert await polygon_explorer.get_token_supply() == 10**27

    @pytest.mark.asyncio
    async def test_token_balance(self, polygon_explorer: ExplorerClient) -> None:
        holder = "0x2222222222222222222222222222222222222222"
        with respx.mock:
            route = respx.get(ETHERSCAN_URL).mock(return_value=ok("500"))
            assert await polygon_explorer.get_token_balance(holder) == 500

        assert route.calls.last.request.url.params["address"] == holder

    @pytest.mark.asyncio
    async def test_avalanche_has_no_chainid(self) -> None:
        client = ExplorerClient(ChainId.AVALANCHE, api_key="AVAX")
        with respx.mock:
            route = respx.get(SNOWTRACE_URL).mock(return_value=ok("7"))
            assert await client.get_holder_count() == 7

        assert "chainid" not in route.calls.last.request.url.params
        await client.close()


class TestExplorerErrors:
    """Tests for explorer error payloads."""

    @pytest.mark.asyncio
    async def test_status_not_one_raises(self, polygon_explorer: ExplorerClient) -> None:
        with respx.mock:
            respx.get(ETHERSCAN_URL).mock(
                return_value=httpx.Response(
                    200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
                )
            )
            with pytest.raises(ExplorerError) as exc_info:
                await polygon_explorer.get_holder_count()

        assert exc_info.value.status_code is None
        assert "Invalid API Key" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limit_result_maps_to_429(self, polygon_explorer: ExplorerClient) -> None:
        with respx.mock:
            respx.get(ETHERSCAN_URL).mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "status": "0",
                        "message": "NOTOK",
                        "result": "Max calls per sec rate limit reached (5/sec)",
                    },
                )
            )
            with pytest.raises(ExplorerError) as exc_info:
                await polygon_explorer.get_token_supply()

        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_non_numeric_result(self, polygon_explorer: ExplorerClient) -> None:
        with respx.mock:
            respx.get(ETHERSCAN_URL).mock(return_value=ok("not-a-number"))
            with pytest.raises(ValidationError, match="holder count"):
                await polygon_explorer.get_holder_count()


class TestBuildExplorerClients:
    def test_only_chains_with_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("ETHERSCAN_API_KEY", "POLYGONSCAN_API_KEY", "SNOWTRACE_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None, etherscan_api_key="E", snowtrace_api_key="S")

        clients = build_explorer_clients(settings)

        assert set(clients) == {ChainId.ETHEREUM, ChainId.AVALANCHE}
        assert clients[ChainId.ETHEREUM].api_key == "E"
