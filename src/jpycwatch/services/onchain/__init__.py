"""On-chain aggregation and the stale-while-revalidate data service."""

from jpycwatch.services.onchain.aggregator import OnChainAggregator
from jpycwatch.services.onchain.data_service import (
    DataPhase,
    OnChainDataService,
    close_onchain_service,
    get_onchain_service,
    reset_onchain_service,
)

__all__ = [
    "DataPhase",
    "OnChainAggregator",
    "OnChainDataService",
    "close_onchain_service",
    "get_onchain_service",
    "reset_onchain_service",
]
