"""Per-chain supply and holder distribution.

Percentages are rounded per chain to two decimals, so they may not sum to
exactly 100 (e.g. three equal chains give 33.33 each).
"""

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from jpycwatch.constants.chains import ChainId
from jpycwatch.models.onchain import ChainDistribution


def share_percentage(part: int | float, total: int | float) -> float:
    """Share of ``total`` in percent, two decimals; 0.0 for a zero total."""
    if total <= 0:
        return 0.0
    ratio = Decimal(part) * 100 / Decimal(total)
    return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_chain_percentages(values: Mapping[ChainId, int | None]) -> dict[ChainId, float]:
    """Share of each chain in the sum of its known values.

    Chains whose value is None are left out; negative values count as zero.
    """
    known = {chain: max(value, 0) for chain, value in values.items() if value is not None}
    total = sum(known.values())
    return {chain: share_percentage(value, total) for chain, value in known.items()}


def build_chain_distribution(
    supplies: Mapping[ChainId, int],
    holder_counts: Mapping[ChainId, int | None] | None = None,
    unavailable: Iterable[ChainId] = (),
) -> dict[ChainId, ChainDistribution]:
    """Build the chain -> distribution map.

    Args:
        supplies: Blacklist-adjusted raw supply per chain. Negative values
            count as zero for the share calculation.
        holder_counts: Holder count per chain, None where unknown.
        unavailable: Chains whose supply could not be fetched at all.

    Returns:
        Distribution per chain in ``supplies`` order.
    """
    counts = holder_counts or {}
    unavailable_set = set(unavailable)

    positive = {chain: max(supply, 0) for chain, supply in supplies.items()}
    supply_shares = calculate_chain_percentages(positive)
    holder_shares = calculate_chain_percentages(counts)

    distribution: dict[ChainId, ChainDistribution] = {}
    for chain, supply in positive.items():
        distribution[chain] = ChainDistribution(
            supply=supply,
            supply_percentage=supply_shares[chain],
            holder_count=counts.get(chain),
            holder_percentage=holder_shares.get(chain),
            available=chain not in unavailable_set,
        )
    return distribution
