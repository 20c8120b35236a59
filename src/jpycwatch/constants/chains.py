"""Chain, contract and upstream endpoint constants."""

from enum import Enum
from typing import Final


class ChainId(str, Enum):
    """Blockchains on which JPYC supply is tracked."""

    ETHEREUM = "Ethereum"
    POLYGON = "Polygon"
    AVALANCHE = "Avalanche"


# Decimals are read once from this chain and assumed identical everywhere
REFERENCE_CHAIN: Final[ChainId] = ChainId.ETHEREUM

JPYC_CONTRACT_ADDRESS: Final[str] = "0xE7C3D8C9a439feDe00D2600032D5dB0Be71C3c29"

EXPLORER_TOKEN_URLS: Final[dict[ChainId, str]] = {
    ChainId.ETHEREUM: "https://etherscan.io/token/",
    ChainId.POLYGON: "https://polygonscan.com/token/",
    ChainId.AVALANCHE: "https://snowtrace.io/token/",
}

# ERC-20 function selectors (first 4 bytes of keccak256 of the signature)
SELECTOR_TOTAL_SUPPLY: Final[str] = "0x18160ddd"
SELECTOR_DECIMALS: Final[str] = "0x313ce567"
SELECTOR_BALANCE_OF: Final[str] = "0x70a08231"

# Public RPC endpoints used when nothing else is configured
DEFAULT_RPC_URLS: Final[dict[ChainId, str]] = {
    ChainId.ETHEREUM: "https://rpc.ankr.com/eth",
    ChainId.POLYGON: "https://polygon.drpc.org",
    ChainId.AVALANCHE: "https://avalanche.public-rpc.com",
}

ALCHEMY_RPC_TEMPLATES: Final[dict[ChainId, str]] = {
    ChainId.ETHEREUM: "https://eth-mainnet.g.alchemy.com/v2/{api_key}",
    ChainId.POLYGON: "https://polygon-mainnet.g.alchemy.com/v2/{api_key}",
    ChainId.AVALANCHE: "https://avax-mainnet.g.alchemy.com/v2/{api_key}",
}

# Etherscan-compatible explorers: (base URL, chainid query parameter)
EXPLORER_API_CONFIG: Final[dict[ChainId, tuple[str, str | None]]] = {
    ChainId.ETHEREUM: ("https://api.etherscan.io/v2/api", "1"),
    ChainId.POLYGON: ("https://api.etherscan.io/v2/api", "137"),
    ChainId.AVALANCHE: ("https://api.snowtrace.io/api", None),
}

MORALIS_BASE_URL: Final[str] = "https://deep-index.moralis.io/api/v2.2"
MORALIS_CHAIN_IDS: Final[dict[ChainId, str]] = {
    ChainId.ETHEREUM: "0x1",
    ChainId.POLYGON: "0x89",
    ChainId.AVALANCHE: "0xa86a",
}

COINGECKO_BASE_URL: Final[str] = "https://api.coingecko.com/api/v3"

# Accounts whose balances are tracked for the holder ranking:
# (address, chain, label)
TRACKED_HOLDERS: Final[list[tuple[str, ChainId, str | None]]] = [
    ("0xAb5801a7D398351b8bE11C439e05C5B3259aeC9B", ChainId.ETHEREUM, "JPYC Treasury"),
    ("0x742d35Cc6634C0532925a3b844Bc454e4438f44e", ChainId.POLYGON, None),
    ("0x90e7a9C4C2F15C3C645B11bB8487786B851351B4", ChainId.AVALANCHE, None),
    ("0x5DF9B87991262F6BA471F09758CDE1c0FC1De734", ChainId.ETHEREUM, None),
    ("0x1Db3439a222C519ab44bb1144fC28167b4Fa6EE6", ChainId.POLYGON, None),
]
