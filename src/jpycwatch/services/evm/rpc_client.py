"""JSON-RPC client for read-only ERC-20 contract calls.

This module provides a client for one EVM chain endpoint, issuing
``eth_call`` requests for totalSupply, decimals and balanceOf.

The client extends BaseAPIClient to inherit:
- Circuit breaker pattern for failure protection
- Optional per-chain rate limiting
- Proper resource cleanup
"""

from itertools import count
from typing import Any

import structlog

from jpycwatch.constants.chains import (
    SELECTOR_BALANCE_OF,
    SELECTOR_DECIMALS,
    SELECTOR_TOTAL_SUPPLY,
    ChainId,
)
from jpycwatch.core.blacklist import validate_ethereum_address
from jpycwatch.core.exceptions import ExternalServiceError, RpcError, ValidationError
from jpycwatch.core.formatting import hex_to_int, shorten_address
from jpycwatch.services.base import BaseAPIClient, split_endpoint
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger(__name__)

_request_ids = count(1)


def encode_balance_of(address: str) -> str:
    """Build ``balanceOf(address)`` call data.

    The address is left-zero-padded to a 32-byte word after the selector.

    Raises:
        ValidationError: If the address is not a 20-byte hex address.
    """
    if not validate_ethereum_address(address):
        raise ValidationError(f"Invalid address for balanceOf: {address!r}")
    return SELECTOR_BALANCE_OF + address[2:].lower().rjust(64, "0")


class EvmRpcClient(BaseAPIClient):
    """Client for ``eth_call`` on a single chain.

    Attributes:
        chain: Chain this endpoint serves.

    Example:
        client = EvmRpcClient(ChainId.ETHEREUM, "https://rpc.ankr.com/eth")
        supply = await client.total_supply(JPYC_CONTRACT_ADDRESS)
        await client.close()
    """

    def __init__(
        self,
        chain: ChainId,
        rpc_url: str,
        timeout: float = 10.0,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_cooldown: int = 30,
    ) -> None:
        origin, self._path = split_endpoint(rpc_url)
        super().__init__(
            base_url=origin,
            service_name=f"{chain.value} RPC",
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            circuit_breaker_threshold=circuit_breaker_threshold,
            circuit_breaker_cooldown=circuit_breaker_cooldown,
            rate_limiter=rate_limiter,
            rate_limit_key=f"rpc:{chain.value}",
        )
        self.chain = chain

    async def eth_call(self, to: str, data: str) -> str:
        """Execute ``eth_call`` against the latest block.

        Args:
            to: Contract address.
            data: ABI-encoded call data.

        Returns:
            The raw hex result.

        Raises:
            RpcError: On transport failure, non-2xx response or a JSON-RPC
                error payload. The HTTP status is kept when there is one.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(_request_ids),
            "method": "eth_call",
            "params": [{"to": to, "data": data}, "latest"],
        }

        try:
            response = await self.post(self._path, json=payload)
        except ExternalServiceError as e:
            raise RpcError(self.chain.value, e.detail, status_code=e.status_code) from e

        try:
            body: dict[str, Any] = response.json()
        except ValueError as e:
            raise RpcError(self.chain.value, f"invalid JSON response: {e}") from e

        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            log.warning("rpc_error_payload", chain=self.chain.value, error=message)
            raise RpcError(self.chain.value, f"JSON-RPC error: {message}")

        result = body.get("result")
        if not isinstance(result, str):
            raise RpcError(self.chain.value, "JSON-RPC response has no result")
        return result

    async def total_supply(self, contract: str) -> int:
        """Raw ``totalSupply()`` of ``contract``."""
        return hex_to_int(await self.eth_call(contract, SELECTOR_TOTAL_SUPPLY))

    async def decimals(self, contract: str) -> int:
        """``decimals()`` of ``contract``."""
        return hex_to_int(await self.eth_call(contract, SELECTOR_DECIMALS))

    async def balance_of(self, contract: str, address: str) -> int:
        """Raw ``balanceOf(address)`` on ``contract``."""
        raw = await self.eth_call(contract, encode_balance_of(address))
        balance = hex_to_int(raw)
        log.debug(
            "rpc_balance_fetched",
            chain=self.chain.value,
            address=shorten_address(address),
            balance=str(balance),
        )
        return balance
