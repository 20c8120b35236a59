"""On-chain snapshot Pydantic models.

This module defines the data models that flow from the aggregation engine
to the UI-facing service: static contract / holder configuration, per-fetch
holder snapshots, per-chain distribution and the aggregate OnChainState.
Raw token quantities are plain ``int`` (arbitrary precision).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jpycwatch.constants.chains import ChainId


class ContractAddress(BaseModel):
    """Official token contract deployment on one chain.

    Attributes:
        chain: Chain the contract lives on.
        name: Logical contract name (e.g. "JPYC").
        address: 20-byte hex contract address.
        explorer_url: Block explorer page for the contract.
    """

    model_config = ConfigDict(frozen=True)

    chain: ChainId
    name: str
    address: str
    explorer_url: str


class HolderAccount(BaseModel):
    """A configured account whose balance is tracked for the ranking."""

    model_config = ConfigDict(frozen=True)

    address: str
    chain: ChainId
    label: str | None = None


class HolderSnapshot(BaseModel):
    """Balance of one tracked holder at fetch time.

    ``percentage`` is relative to the total supply of the same fetch and
    goes stale as soon as total supply changes.
    """

    address: str = Field(description="Holder address (case-insensitive identity)")
    label: str | None = Field(default=None, description="Display label")
    chain: ChainId
    balance_raw: int = Field(ge=0, description="Raw balance in base units")
    quantity: str = Field(default="0", description="Formatted balance")
    percentage: str = Field(default="0.00", description="Share of total supply (%)")
    rank: int | None = Field(default=None, ge=1, description="1-based rank after filtering")


class ChainDistribution(BaseModel):
    """Share of supply and holders on one chain."""

    supply: int = Field(default=0, description="Blacklist-adjusted raw supply")
    supply_percentage: float = Field(default=0.0, description="Share of total supply (%)")
    holder_count: int | None = Field(default=None, description="Holders on this chain")
    holder_percentage: float | None = Field(default=None, description="Share of holders (%)")
    available: bool = Field(default=True, description="False when every source failed")


class HolderSummary(BaseModel):
    """Holder count (and 24h delta) reported for one chain."""

    count: int | None = None
    change_24h: int | None = None


class OnChainState(BaseModel):
    """Aggregate on-chain snapshot handed to the UI layer.

    Invariants:
        - ``holders`` is sorted by raw balance (descending) with ranks 1..N.
        - ``circulating_supply == max(total_supply_raw - blacklisted_supply, 0)``;
          the signed value before clamping is kept in
          ``circulating_supply_signed`` for diagnostics.
    """

    is_loading: bool = False
    is_stale: bool = False
    error: str | None = None

    total_supply_raw: int | None = None
    total_supply_formatted: str | None = None
    total_supply_millions: str | None = None
    decimals: int | None = None

    holders: list[HolderSnapshot] = Field(default_factory=list)
    holders_count: int | None = None
    holders_change: int | None = None

    chain_distribution: dict[ChainId, ChainDistribution] | None = None
    unavailable_chains: list[ChainId] = Field(default_factory=list)

    blacklisted_supply: int | None = None
    circulating_supply: int | None = None
    circulating_supply_signed: int | None = None

    fetched_at: datetime | None = None

    @field_validator("holders")
    @classmethod
    def validate_ranks(cls, v: list[HolderSnapshot]) -> list[HolderSnapshot]:
        """Ranks, when present, must be contiguous from 1."""
        ranks = [holder.rank for holder in v if holder.rank is not None]
        if ranks and ranks != list(range(1, len(ranks) + 1)):
            raise ValueError("Holder ranks must be contiguous starting at 1")
        return v

    @property
    def has_data(self) -> bool:
        """True when the snapshot carries a total supply figure."""
        return self.total_supply_raw is not None
