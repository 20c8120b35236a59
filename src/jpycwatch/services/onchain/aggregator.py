"""Holder / supply aggregation across chains.

Turns per-chain RPC, explorer and holder-index results into one
OnChainState. Every upstream call goes through retry/backoff, and each
source that has an alternative is wrapped in a primary/fallback pair.
A chain whose sources all fail contributes zero instead of failing the
whole aggregation; only when no chain at all yields a supply figure is an
AggregationError raised.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import TypeVar

import structlog

from jpycwatch.config.settings import Settings
from jpycwatch.constants.chains import (
    EXPLORER_TOKEN_URLS,
    JPYC_CONTRACT_ADDRESS,
    REFERENCE_CHAIN,
    TRACKED_HOLDERS,
    ChainId,
)
from jpycwatch.constants.resilience import AGGREGATION_TIMEOUT_SECONDS, SOURCE_TIMEOUT_SECONDS
from jpycwatch.core.distribution import build_chain_distribution
from jpycwatch.core.exceptions import AggregationError
from jpycwatch.core.formatting import (
    format_millions,
    format_percentage,
    format_token_amount,
    shorten_address,
)
from jpycwatch.core.metrics import PerformanceMetrics
from jpycwatch.core.supply import (
    calculate_blacklisted_supply,
    calculate_circulating_supply,
    calculate_signed_circulating_supply,
    filter_blacklisted_holders,
    rank_holders,
)
from jpycwatch.models.onchain import (
    ContractAddress,
    HolderAccount,
    HolderSnapshot,
    HolderSummary,
    OnChainState,
)
from jpycwatch.services.evm.gateway import ChainGateway
from jpycwatch.services.explorer.client import ExplorerClient, build_explorer_clients
from jpycwatch.services.moralis.client import MoralisClient
from jpycwatch.services.resilience.fallback import (
    FallbackOperation,
    execute_parallel_with_fallback,
)
from jpycwatch.services.resilience.rate_limiter import SlidingWindowRateLimiter
from jpycwatch.services.resilience.retry import RetryConfig, retry_with_backoff

log = structlog.get_logger(__name__)

T = TypeVar("T")


def default_contracts() -> list[ContractAddress]:
    """The JPYC deployment on every supported chain."""
    return [
        ContractAddress(
            chain=chain,
            name="JPYC",
            address=JPYC_CONTRACT_ADDRESS,
            explorer_url=f"{EXPLORER_TOKEN_URLS[chain]}{JPYC_CONTRACT_ADDRESS}",
        )
        for chain in ChainId
    ]


def default_tracked_holders() -> list[HolderAccount]:
    return [
        HolderAccount(address=address, chain=chain, label=label)
        for address, chain, label in TRACKED_HOLDERS
    ]


class OnChainAggregator:
    """Builds OnChainState snapshots from the upstream sources.

    Attributes:
        blacklist: Normalized blacklisted addresses.
        contracts: Token deployments to sum (at most one counted per chain).
        tracked_holders: Accounts ranked in the holder list.
        metrics: Per-phase timings.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        explorers: Mapping[ChainId, ExplorerClient] | None = None,
        moralis: MoralisClient | None = None,
        blacklist: Sequence[str] = (),
        contracts: Sequence[ContractAddress] | None = None,
        tracked_holders: Sequence[HolderAccount] | None = None,
        retry_config: RetryConfig | None = None,
        parallel_timeout: float = AGGREGATION_TIMEOUT_SECONDS,
        source_timeout: float | None = SOURCE_TIMEOUT_SECONDS,
        metrics: PerformanceMetrics | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.explorers = dict(explorers or {})
        self.moralis = moralis
        self.blacklist = list(blacklist)
        self.contracts = list(contracts) if contracts is not None else default_contracts()
        self.tracked_holders = (
            list(tracked_holders) if tracked_holders is not None else default_tracked_holders()
        )
        self.retry_config = retry_config or RetryConfig()
        self.parallel_timeout = parallel_timeout
        self.source_timeout = source_timeout
        self.metrics = metrics or PerformanceMetrics()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        metrics: PerformanceMetrics | None = None,
    ) -> "OnChainAggregator":
        """Wire gateway, explorers and holder index from configuration."""
        moralis_key = settings.moralis_api_key.get_secret_value()
        return cls(
            gateway=ChainGateway.from_settings(settings, rate_limiter),
            explorers=build_explorer_clients(settings, rate_limiter),
            moralis=(
                MoralisClient(
                    moralis_key,
                    timeout=settings.rpc_timeout_seconds,
                    rate_limiter=rate_limiter,
                )
                if moralis_key
                else None
            ),
            blacklist=settings.blacklist,
            retry_config=RetryConfig(
                max_retries=settings.retry_max_retries,
                initial_delay=settings.retry_initial_delay,
                max_delay=settings.retry_max_delay,
                backoff_factor=settings.retry_backoff_factor,
            ),
            parallel_timeout=settings.parallel_timeout_seconds,
            source_timeout=settings.source_timeout_seconds,
            metrics=metrics,
        )

    def _retrying(
        self, fn: Callable[[], Awaitable[T]], name: str
    ) -> Callable[[], Awaitable[T]]:
        return lambda: retry_with_backoff(
            fn, self.retry_config, operation_name=name, sleep=self._sleep
        )

    def _balance_operation(
        self, name: str, chain: ChainId, address: str, contract: str
    ) -> FallbackOperation[int]:
        explorer = self.explorers.get(chain)
        return FallbackOperation(
            name=name,
            primary=self._retrying(
                lambda: self.gateway.balance_of(chain, address, contract), f"rpc_{name}"
            ),
            fallback=(
                self._retrying(
                    lambda: explorer.get_token_balance(address, contract), f"explorer_{name}"
                )
                if explorer is not None
                else None
            ),
            source_timeout=self.source_timeout,
        )

    def _contract_for(self, chain: ChainId) -> str:
        for contract in self.contracts:
            if contract.chain == chain:
                return contract.address
        return self.gateway.contract_address

    async def fetch_decimals(self) -> int:
        """Read decimals from the reference chain, then from the others.

        Raises:
            AggregationError: If no chain answers.
        """
        chains = [REFERENCE_CHAIN] + [c for c in self.gateway.chains if c != REFERENCE_CHAIN]
        last_error: Exception | None = None
        for chain in chains:
            contract = self._contract_for(chain)
            try:
                return await retry_with_backoff(
                    lambda: self.gateway.decimals(chain, contract),
                    self.retry_config,
                    operation_name=f"decimals:{chain.value}",
                    sleep=self._sleep,
                )
            except Exception as e:
                last_error = e
                log.warning("decimals_fetch_failed", chain=chain.value, error=str(e))
        raise AggregationError(f"Unable to read token decimals from any chain: {last_error}")

    async def fetch_chain_supplies(
        self, cancel_event: asyncio.Event | None = None
    ) -> tuple[dict[ChainId, int], list[ChainId]]:
        """Blacklist-adjusted raw supply per chain.

        Returns:
            (supply per chain, chains whose supply could not be fetched).

        Raises:
            AggregationError: If no contract's supply could be fetched.
        """
        supply_ops: list[FallbackOperation[int]] = []
        supply_chains: dict[str, ChainId] = {}
        for index, contract in enumerate(self.contracts):
            name = f"supply:{contract.chain.value}:{index}"
            explorer = self.explorers.get(contract.chain)
            supply_chains[name] = contract.chain
            supply_ops.append(
                FallbackOperation(
                    name=name,
                    primary=self._retrying(
                        lambda c=contract: self.gateway.total_supply(c.chain, c.address),
                        f"rpc_{name}",
                    ),
                    fallback=(
                        self._retrying(
                            lambda c=contract, e=explorer: e.get_token_supply(c.address),
                            f"explorer_{name}",
                        )
                        if explorer is not None
                        else None
                    ),
                    source_timeout=self.source_timeout,
                )
            )

        blacklist_ops: list[FallbackOperation[int]] = []
        blacklist_chains: dict[str, ChainId] = {}
        for chain in dict.fromkeys(contract.chain for contract in self.contracts):
            for address in self.blacklist:
                name = f"blacklist:{chain.value}:{address}"
                blacklist_chains[name] = chain
                blacklist_ops.append(
                    self._balance_operation(name, chain, address, self._contract_for(chain))
                )

        supply_result, blacklist_result = await asyncio.gather(
            execute_parallel_with_fallback(
                supply_ops, timeout=self.parallel_timeout, cancel_event=cancel_event
            ),
            execute_parallel_with_fallback(
                blacklist_ops, timeout=self.parallel_timeout, cancel_event=cancel_event
            ),
        )

        if not supply_result.has_any_success:
            errors = "; ".join(str(r.error) for r in supply_result.results)
            raise AggregationError(f"No chain supply data available: {errors}")

        blacklisted_by_chain: dict[ChainId, int] = {}
        for result in blacklist_result.results:
            chain = blacklist_chains[result.name or ""]
            if not result.ok:
                log.warning(
                    "blacklist_balance_unavailable",
                    chain=chain.value,
                    operation=result.name,
                    error=str(result.error),
                )
                continue
            blacklisted_by_chain[chain] = blacklisted_by_chain.get(chain, 0) + (result.data or 0)

        supplies: dict[ChainId, int] = {}
        failed: set[ChainId] = set()
        for result in supply_result.results:
            chain = supply_chains[result.name or ""]
            if not result.ok:
                log.warning(
                    "chain_supply_unavailable",
                    chain=chain.value,
                    primary_error=str(result.primary_error),
                    fallback_error=str(result.fallback_error),
                )
                failed.add(chain)
                continue
            if result.used_fallback:
                log.info("chain_supply_from_explorer", chain=chain.value)
            adjusted = (result.data or 0) - blacklisted_by_chain.get(chain, 0)
            # Two deployments resolving to one chain count once
            supplies[chain] = max(supplies.get(chain, adjusted), adjusted)

        unavailable = [chain for chain in failed if chain not in supplies]
        for chain in unavailable:
            supplies[chain] = 0
        ordered = {chain: supplies[chain] for chain in ChainId if chain in supplies}
        return ordered, [chain for chain in ChainId if chain in unavailable]

    async def fetch_holder_balances(
        self, cancel_event: asyncio.Event | None = None
    ) -> list[tuple[HolderAccount, int]]:
        """Raw balance of each tracked account; failures count as zero."""
        operations = [
            self._balance_operation(
                f"holder:{holder.chain.value}:{index}",
                holder.chain,
                holder.address,
                self._contract_for(holder.chain),
            )
            for index, holder in enumerate(self.tracked_holders)
        ]
        result = await execute_parallel_with_fallback(
            operations, timeout=self.parallel_timeout, cancel_event=cancel_event
        )

        balances: list[tuple[HolderAccount, int]] = []
        for holder, outcome in zip(self.tracked_holders, result.results, strict=True):
            if not outcome.ok:
                log.warning(
                    "holder_balance_unavailable",
                    chain=holder.chain.value,
                    address=shorten_address(holder.address),
                    error=str(outcome.error),
                )
            balances.append((holder, outcome.data if outcome.ok and outcome.data else 0))
        return balances

    async def fetch_holder_counts(
        self, cancel_event: asyncio.Event | None = None
    ) -> dict[ChainId, HolderSummary]:
        """Holder count per chain from the explorer, else the holder index."""
        operations: list[FallbackOperation[HolderSummary]] = []
        for chain in dict.fromkeys(contract.chain for contract in self.contracts):
            contract = self._contract_for(chain)
            explorer = self.explorers.get(chain)
            moralis_fetch = (
                self._retrying(
                    lambda ch=chain, co=contract: self.moralis.get_holder_summary(ch, co),
                    f"moralis_holders:{chain.value}",
                )
                if self.moralis is not None
                else None
            )
            if explorer is not None:
                operations.append(
                    FallbackOperation(
                        name=chain.value,
                        primary=self._retrying(
                            lambda e=explorer, co=contract: self._explorer_summary(e, co),
                            f"explorer_holders:{chain.value}",
                        ),
                        fallback=moralis_fetch,
                        source_timeout=self.source_timeout,
                    )
                )
            elif moralis_fetch is not None:
                operations.append(
                    FallbackOperation(
                        name=chain.value,
                        primary=moralis_fetch,
                        source_timeout=self.source_timeout,
                    )
                )

        if not operations:
            return {}

        result = await execute_parallel_with_fallback(
            operations, timeout=self.parallel_timeout, cancel_event=cancel_event
        )
        counts: dict[ChainId, HolderSummary] = {}
        for outcome in result.results:
            chain = ChainId(outcome.name)
            if outcome.ok and outcome.data is not None:
                counts[chain] = outcome.data
            else:
                log.warning("holder_count_unavailable", chain=chain.value, error=str(outcome.error))
        return counts

    @staticmethod
    async def _explorer_summary(explorer: ExplorerClient, contract: str) -> HolderSummary:
        return HolderSummary(count=await explorer.get_holder_count(contract))

    async def aggregate(self, cancel_event: asyncio.Event | None = None) -> OnChainState:
        """Run a full fetch cycle.

        Raises:
            AggregationError: If decimals or every chain's supply are unavailable.
        """
        decimals = await self.metrics.measure("fetch_decimals", self.fetch_decimals)

        (supplies, unavailable), balances, holder_counts = await asyncio.gather(
            self.metrics.measure(
                "fetch_chain_supplies", lambda: self.fetch_chain_supplies(cancel_event)
            ),
            self.metrics.measure(
                "fetch_holder_balances", lambda: self.fetch_holder_balances(cancel_event)
            ),
            self.metrics.measure(
                "fetch_holder_counts", lambda: self.fetch_holder_counts(cancel_event)
            ),
        )

        total_supply = sum(supplies.values())
        snapshots = [
            HolderSnapshot(
                address=holder.address,
                label=holder.label,
                chain=holder.chain,
                balance_raw=balance,
                quantity=format_token_amount(balance, decimals, 2),
                percentage=format_percentage(balance, total_supply),
            )
            for holder, balance in balances
        ]

        ranked = rank_holders(filter_blacklisted_holders(snapshots, self.blacklist))
        blacklisted_supply = calculate_blacklisted_supply(snapshots, self.blacklist)

        known_counts = [s.count for s in holder_counts.values() if s.count is not None]
        known_changes = [s.change_24h for s in holder_counts.values() if s.change_24h is not None]

        state = OnChainState(
            total_supply_raw=total_supply,
            total_supply_formatted=format_token_amount(total_supply, decimals, 2),
            total_supply_millions=format_millions(total_supply, decimals),
            decimals=decimals,
            holders=ranked,
            holders_count=sum(known_counts) if known_counts else None,
            holders_change=sum(known_changes) if known_changes else None,
            chain_distribution=build_chain_distribution(
                supplies,
                {chain: summary.count for chain, summary in holder_counts.items()},
                unavailable,
            ),
            unavailable_chains=unavailable,
            blacklisted_supply=blacklisted_supply,
            circulating_supply=calculate_circulating_supply(total_supply, blacklisted_supply),
            circulating_supply_signed=calculate_signed_circulating_supply(
                total_supply, blacklisted_supply
            ),
            fetched_at=datetime.now(UTC),
        )

        log.info(
            "onchain_aggregation_complete",
            total_supply=str(total_supply),
            chains=len(supplies),
            unavailable_chains=[chain.value for chain in unavailable],
            holders=len(ranked),
            holders_count=state.holders_count,
        )
        return state

    async def close(self) -> None:
        await self.gateway.close()
        for explorer in self.explorers.values():
            await explorer.close()
        if self.moralis is not None:
            await self.moralis.close()

