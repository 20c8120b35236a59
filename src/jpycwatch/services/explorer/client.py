"""Etherscan-compatible block-explorer client.

Used as the fallback source for supply and balances when a chain's RPC
fails, and as the primary source for per-chain holder counts.
"""

from typing import Any

import structlog

from jpycwatch.config.settings import Settings
from jpycwatch.constants.chains import EXPLORER_API_CONFIG, JPYC_CONTRACT_ADDRESS, ChainId
from jpycwatch.core.exceptions import ExplorerError, ValidationError
from jpycwatch.core.formatting import shorten_address
from jpycwatch.services.base import BaseAPIClient, split_endpoint
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger(__name__)

_RATE_LIMIT_MARKERS = ("rate limit", "max calls per sec")


def _as_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Explorer returned a non-numeric {field}: {value!r}") from e


class ExplorerClient(BaseAPIClient):
    """Block-explorer API for one chain.

    Attributes:
        chain: Chain served by this explorer.
        api_key: Explorer API key.
        chain_param: ``chainid`` query value for multichain explorers.

    Example:
        client = ExplorerClient(ChainId.POLYGON, api_key="KEY")
        holders = await client.get_holder_count(JPYC_CONTRACT_ADDRESS)
    """

    def __init__(
        self,
        chain: ChainId,
        api_key: str,
        timeout: float = 10.0,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> None:
        api_url, chain_param = EXPLORER_API_CONFIG[chain]
        origin, self._path = split_endpoint(api_url)
        super().__init__(
            base_url=origin,
            service_name=f"{chain.value} explorer",
            timeout=timeout,
            headers={"Accept": "application/json"},
            rate_limiter=rate_limiter,
            rate_limit_key=f"explorer:{chain.value}",
        )
        self.chain = chain
        self.api_key = api_key
        self.chain_param = chain_param

    async def _call(self, params: dict[str, str]) -> Any:
        query = dict(params)
        if self.chain_param is not None:
            query["chainid"] = self.chain_param
        query["apikey"] = self.api_key

        response = await self.get(self._path, params=query)
        body = response.json()

        if str(body.get("status")) != "1":
            result = str(body.get("result", ""))
            message = body.get("message") or "NOTOK"
            throttled = any(marker in result.lower() for marker in _RATE_LIMIT_MARKERS)
            log.warning(
                "explorer_error_response",
                chain=self.chain.value,
                action=params.get("action"),
                message=message,
                result=result[:120],
            )
            raise ExplorerError(
                service=self.service_name,
                message=f"{message}: {result}" if result else message,
                status_code=429 if throttled else None,
            )
        return body.get("result")

    async def get_token_supply(self, contract: str = JPYC_CONTRACT_ADDRESS) -> int:
        """Raw token supply (``stats/tokensupply``)."""
        result = await self._call(
            {"module": "stats", "action": "tokensupply", "contractaddress": contract}
        )
        return _as_int(result, "token supply")

    async def get_holder_count(self, contract: str = JPYC_CONTRACT_ADDRESS) -> int:
        """Number of holders (``token/tokenholdercount``)."""
        result = await self._call(
            {"module": "token", "action": "tokenholdercount", "contractaddress": contract}
        )
        return _as_int(result, "holder count")

    async def get_token_balance(
        self, address: str, contract: str = JPYC_CONTRACT_ADDRESS
    ) -> int:
        """Raw token balance of ``address`` (``account/tokenbalance``)."""
        result = await self._call(
            {
                "module": "account",
                "action": "tokenbalance",
                "contractaddress": contract,
                "address": address,
                "tag": "latest",
            }
        )
        log.debug(
            "explorer_balance_fetched",
            chain=self.chain.value,
            address=shorten_address(address),
        )
        return _as_int(result, "token balance")


def build_explorer_clients(
    settings: Settings,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> dict[ChainId, ExplorerClient]:
    """Create an explorer client for every chain that has an API key."""
    clients: dict[ChainId, ExplorerClient] = {}
    for chain in ChainId:
        api_key = settings.explorer_api_key_for(chain)
        if not api_key:
            log.debug("explorer_client_skipped", chain=chain.value, reason="no_api_key")
            continue
        clients[chain] = ExplorerClient(
            chain,
            api_key,
            timeout=settings.rpc_timeout_seconds,
            rate_limiter=rate_limiter,
        )
    return clients
