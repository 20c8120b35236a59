"""Chain gateway: one RPC client per configured chain."""

from collections.abc import Mapping

import structlog

from jpycwatch.config.settings import Settings
from jpycwatch.constants.chains import JPYC_CONTRACT_ADDRESS, ChainId
from jpycwatch.core.exceptions import ConfigurationError
from jpycwatch.services.base import CircuitState
from jpycwatch.services.evm.rpc_client import EvmRpcClient
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger(__name__)


class ChainGateway:
    """Read-only token queries routed to the right chain endpoint.

    Calls against a chain without a configured endpoint raise
    ConfigurationError immediately; that error is never retried.
    """

    def __init__(
        self,
        clients: Mapping[ChainId, EvmRpcClient],
        contract_address: str = JPYC_CONTRACT_ADDRESS,
    ) -> None:
        self._clients = dict(clients)
        self.contract_address = contract_address

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> "ChainGateway":
        """Build a client for every chain using the resolved RPC URLs."""
        clients = {
            chain: EvmRpcClient(
                chain,
                settings.rpc_url_for(chain),
                timeout=settings.rpc_timeout_seconds,
                rate_limiter=rate_limiter,
                circuit_breaker_threshold=settings.circuit_breaker_threshold,
                circuit_breaker_cooldown=settings.circuit_breaker_cooldown,
            )
            for chain in ChainId
        }
        log.debug("chain_gateway_initialized", chains=[chain.value for chain in clients])
        return cls(clients)

    @property
    def chains(self) -> list[ChainId]:
        return list(self._clients)

    def client_for(self, chain: ChainId) -> EvmRpcClient:
        client = self._clients.get(chain)
        if client is None:
            raise ConfigurationError(f"RPC URL for {chain.value} is not configured")
        return client

    async def total_supply(self, chain: ChainId, contract: str | None = None) -> int:
        client = self.client_for(chain)
        return await client.total_supply(contract or self.contract_address)

    async def decimals(self, chain: ChainId, contract: str | None = None) -> int:
        return await self.client_for(chain).decimals(contract or self.contract_address)

    async def balance_of(self, chain: ChainId, address: str, contract: str | None = None) -> int:
        client = self.client_for(chain)
        return await client.balance_of(contract or self.contract_address, address)

    def circuit_states(self) -> dict[ChainId, CircuitState]:
        """Circuit breaker state of every chain client."""
        return {chain: client.circuit_state for chain, client in self._clients.items()}

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
