"""Supply arithmetic and holder filtering.

Pure functions over HolderSnapshot lists; no I/O.
"""

from collections.abc import Iterable, Sequence

from jpycwatch.core.blacklist import is_blacklisted
from jpycwatch.models.onchain import HolderSnapshot


def filter_blacklisted_holders(
    holders: Sequence[HolderSnapshot], blacklist: Iterable[str]
) -> list[HolderSnapshot]:
    """Drop blacklisted holders, keeping order and every field of the rest."""
    entries = list(blacklist)
    if not entries:
        return list(holders)
    return [holder for holder in holders if not is_blacklisted(holder.address, entries)]


def calculate_blacklisted_supply(
    holders: Sequence[HolderSnapshot], blacklist: Iterable[str]
) -> int:
    """Sum the raw balances of blacklisted holders."""
    entries = list(blacklist)
    return sum(
        (holder.balance_raw for holder in holders if is_blacklisted(holder.address, entries)),
        0,
    )


def calculate_signed_circulating_supply(total_supply: int, blacklisted_supply: int) -> int:
    """Circulating supply before clamping (negative signals a data anomaly)."""
    return total_supply - blacklisted_supply


def calculate_circulating_supply(total_supply: int, blacklisted_supply: int) -> int:
    """Circulating supply = total - blacklisted, never below zero."""
    return max(calculate_signed_circulating_supply(total_supply, blacklisted_supply), 0)


def rank_holders(holders: Iterable[HolderSnapshot]) -> list[HolderSnapshot]:
    """Drop zero balances, sort descending by balance and assign ranks 1..N.

    The sort is stable, so holders with equal balances keep their input order.
    """
    funded = [holder for holder in holders if holder.balance_raw > 0]
    ordered = sorted(funded, key=lambda holder: holder.balance_raw, reverse=True)
    return [
        holder.model_copy(update={"rank": index})
        for index, holder in enumerate(ordered, start=1)
    ]
