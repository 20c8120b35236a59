"""Moralis holder-index client.

The holders endpoint has reported its totals under several field names
over time. The candidate paths are kept as data below and tried in order;
the first one that yields a number wins.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from jpycwatch.constants.chains import (
    JPYC_CONTRACT_ADDRESS,
    MORALIS_BASE_URL,
    MORALIS_CHAIN_IDS,
    ChainId,
)
from jpycwatch.models.onchain import HolderSummary
from jpycwatch.services.base import BaseAPIClient
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter

log = structlog.get_logger(__name__)

# Dotted paths into the response body, most specific first
TOTAL_HOLDER_FIELDS: Final[tuple[str, ...]] = (
    "total",
    "page_total",
    "pagination.total",
    "summary.total",
    "summary.total_holders",
)
CHANGE_24H_FIELDS: Final[tuple[str, ...]] = (
    "total_change_24h",
    "summary.total_change_24h",
    "summary.total_holders_change_24h",
)
PREVIOUS_TOTAL_FIELDS: Final[tuple[str, ...]] = (
    "total_24h",
    "summary.total_24h",
    "summary.total_holders_24h",
)


@dataclass(frozen=True)
class FieldStrategy:
    """Extract a number from one dotted path, or None."""

    path: str

    def extract(self, body: Mapping[str, Any]) -> int | None:
        node: Any = body
        for part in self.path.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return None
            node = node[part]
        return _to_int(node)


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return None
    return None


def first_match(body: Mapping[str, Any], paths: Sequence[str]) -> int | None:
    """Return the value of the first path that holds a number."""
    for path in paths:
        value = FieldStrategy(path).extract(body)
        if value is not None:
            return value
    return None


def extract_holder_summary(body: Mapping[str, Any]) -> HolderSummary:
    """Pull the total holder count and its 24h change out of a response.

    When no explicit change field exists, the change is derived from a
    previous-total field when one is present.
    """
    total = first_match(body, TOTAL_HOLDER_FIELDS)
    change = first_match(body, CHANGE_24H_FIELDS)
    if change is None and total is not None:
        previous = first_match(body, PREVIOUS_TOTAL_FIELDS)
        if previous is not None:
            change = total - previous
    return HolderSummary(count=total, change_24h=change)


class MoralisClient(BaseAPIClient):
    """Holder-index API (fallback source for holder counts).

    Example:
        client = MoralisClient(api_key="KEY")
        summary = await client.get_holder_summary(ChainId.ETHEREUM)
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> None:
        super().__init__(
            base_url=MORALIS_BASE_URL,
            service_name="moralis",
            timeout=timeout,
            headers={"Accept": "application/json", "X-API-Key": api_key},
            rate_limiter=rate_limiter,
        )

    async def get_holder_summary(
        self, chain: ChainId, contract: str = JPYC_CONTRACT_ADDRESS
    ) -> HolderSummary:
        """Holder count and 24h change of ``contract`` on ``chain``."""
        response = await self.get(
            f"/erc20/{contract}/holders",
            params={
                "chain": MORALIS_CHAIN_IDS[chain],
                "limit": "1",
                "include": "total_change_24h",
            },
        )
        summary = extract_holder_summary(response.json())
        log.debug(
            "moralis_holder_summary",
            chain=chain.value,
            count=summary.count,
            change_24h=summary.change_24h,
        )
        return summary
