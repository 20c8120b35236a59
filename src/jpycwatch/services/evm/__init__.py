"""EVM JSON-RPC client and per-chain gateway."""

from jpycwatch.services.evm.gateway import ChainGateway
from jpycwatch.services.evm.rpc_client import EvmRpcClient, encode_balance_of

__all__ = ["ChainGateway", "EvmRpcClient", "encode_balance_of"]
