"""Health check endpoint with per-chain circuit breaker status."""

from typing import Any

from fastapi import APIRouter

from jpycwatch.api.dependencies import OnChainServiceDep, SettingsDep
from jpycwatch.services.base import CircuitState

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(settings: SettingsDep, service: OnChainServiceDep) -> dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        dict with overall status, version, data phase and the circuit
        breaker state of every chain RPC client.
    """
    circuits = service.aggregator.gateway.circuit_states()
    all_closed = all(state == CircuitState.CLOSED for state in circuits.values())

    return {
        "status": "ok" if all_closed else "degraded",
        "version": settings.app_version,
        "phase": service.phase.value,
        "chains": {chain.value: state.value for chain, state in circuits.items()},
    }
