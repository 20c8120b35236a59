"""Numeric formatting for raw token quantities and price figures.

Raw on-chain quantities are arbitrary-precision integers; everything here
works on ``int``/``Decimal`` so no precision is lost before the final
string is produced.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from jpycwatch.core.exceptions import ValidationError

_THOUSANDS_PATTERN = re.compile(r"\B(?=(\d{3})+(?!\d))")


def normalize_hex(value: str | None) -> str:
    """Ensure a hex quantity has a 0x prefix; empty values become 0x0."""
    if not value:
        return "0x0"
    return value if value.startswith(("0x", "0X")) else f"0x{value}"


def hex_to_int(value: str | None) -> int:
    """Convert an RPC hex quantity into an integer.

    Raises:
        ValidationError: If the value is not valid hexadecimal.
    """
    normalized = normalize_hex(value)
    digits = normalized[2:] or "0"
    try:
        return int(digits, 16)
    except ValueError as e:
        raise ValidationError(f"Invalid hex quantity: {value!r}") from e


def add_thousands_separator(value: str) -> str:
    """Insert commas every three digits: '1234567' -> '1,234,567'."""
    return _THOUSANDS_PATTERN.sub(",", value)


def format_token_amount(value: int, decimals: int, fraction_digits: int = 2) -> str:
    """Format a raw token amount as a human readable decimal string.

    Trailing zeros of the fractional part are stripped first, then the
    fraction is truncated (never rounded) to ``fraction_digits``.

    Example:
        >>> format_token_amount(1234567890000000000000, 18)
        '1,234.56'
    """
    negative = value < 0
    base = str(abs(value)).rjust(decimals + 1, "0")
    split_at = len(base) - decimals
    whole = base[:split_at] or "0"
    fraction = base[split_at:].rstrip("0")[:fraction_digits]

    formatted = add_thousands_separator(whole)
    if fraction:
        formatted = f"{formatted}.{fraction}"
    return f"-{formatted}" if negative else formatted


def _round(value: Decimal, places: int) -> str:
    quantum = Decimal(1).scaleb(-places)
    return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def format_millions(value: int, decimals: int) -> str:
    """Short form in millions with one decimal: 12_345_678 tokens -> '12.3'."""
    try:
        tokens = Decimal(value) / (Decimal(10) ** decimals)
        return _round(tokens / Decimal(1_000_000), 1)
    except InvalidOperation:
        return "0"


def format_percentage(value: int, total: int) -> str:
    """Percentage of ``total`` with two decimals; '0.00' when total is zero."""
    if total == 0:
        return "0.00"
    try:
        return _round(Decimal(value) * 100 / Decimal(total), 2)
    except InvalidOperation:
        return "0.00"


def shorten_address(address: str) -> str:
    """Shorten an address for logs: 0xAbCd1234..."""
    if len(address) > 10:
        return f"{address[:10]}..."
    return address


def format_price(price: float) -> str:
    """Format a USD price: 0.00663564 -> '$0.00664', 1.5 -> '$1.50'."""
    if price >= 1:
        return f"${price:.2f}"
    if price <= 0:
        return "$0.00"
    significant_digits = math.ceil(-math.log10(price)) + 2
    return f"${price:.{min(significant_digits, 8)}f}"


def format_volume(volume: float) -> str:
    """Format a 24h volume: 17528.96 -> '$17.5K'."""
    if volume >= 1_000_000:
        return f"${volume / 1_000_000:.2f}M"
    if volume >= 1_000:
        return f"${volume / 1_000:.1f}K"
    return f"${volume:.2f}"


def format_change(change: float) -> str:
    """Format a percent change with explicit sign: 0.301 -> '+0.30%'."""
    sign = "+" if change >= 0 else ""
    return f"{sign}{change:.2f}%"


def format_market_cap(market_cap: float) -> str:
    """Format a market cap: 7962754.48 -> '$7.96M'."""
    if market_cap >= 1_000_000_000:
        return f"${market_cap / 1_000_000_000:.2f}B"
    if market_cap >= 1_000_000:
        return f"${market_cap / 1_000_000:.2f}M"
    if market_cap >= 1_000:
        return f"${market_cap / 1_000:.2f}K"
    return f"${market_cap:.2f}"
