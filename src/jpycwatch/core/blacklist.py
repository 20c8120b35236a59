"""Blacklisted address loading, validation and membership checks."""

import re
from collections.abc import Iterable

_ADDRESS_PATTERN = re.compile(r"^0[xX][0-9a-fA-F]{40}$")


def validate_ethereum_address(address: object) -> bool:
    """Check that a value is a 0x-prefixed 20-byte hex address.

    Args:
        address: Value to check (non-strings are rejected).

    Returns:
        True for a well-formed address, False otherwise.
    """
    if not isinstance(address, str):
        return False
    return bool(_ADDRESS_PATTERN.match(address))


def load_blacklist_addresses(raw: str | Iterable[str] | None) -> list[str]:
    """Parse and normalize a blacklist.

    Accepts either the comma-separated configuration string or an
    iterable of addresses. Blank and malformed entries are dropped,
    survivors are lowercased and de-duplicated in first-seen order.

    Args:
        raw: Comma-separated string, iterable of strings, or None.

    Returns:
        Normalized blacklist.
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        if not raw.strip():
            return []
        candidates = [part.strip() for part in raw.split(",")]
    else:
        candidates = [part.strip() for part in raw if isinstance(part, str)]

    normalized: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        if not candidate or not validate_ethereum_address(candidate):
            continue
        lowered = candidate.lower()
        if lowered not in seen:
            seen.add(lowered)
            normalized.append(lowered)
    return normalized


def is_blacklisted(address: object, blacklist: Iterable[str]) -> bool:
    """Case-insensitive blacklist membership; malformed addresses never match."""
    if not validate_ethereum_address(address):
        return False
    lowered = str(address).lower()
    return any(lowered == entry.lower() for entry in blacklist)
