"""Tests for the stale-while-revalidate on-chain data service."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from jpycwatch.constants.resilience import ONCHAIN_CACHE_KEY
from jpycwatch.core.error_handler import ErrorClassifier
from jpycwatch.core.exceptions import AggregationError
from jpycwatch.data.cache.manager import CacheManager
from jpycwatch.models.onchain import OnChainState
from jpycwatch.services.onchain.data_service import (
    DataPhase,
    OnChainDataService,
    get_onchain_service,
)


def snapshot(total: int) -> OnChainState:
    return OnChainState(
        total_supply_raw=total,
        total_supply_formatted=f"{total:,}",
        decimals=18,
        fetched_at=datetime(2024, 5, 1, tzinfo=UTC),
    )


@pytest.fixture
def aggregator() -> MagicMock:
    agg = MagicMock()
    agg.aggregate = AsyncMock(return_value=snapshot(2_000))
    agg.close = AsyncMock()
    return agg


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture
def service(aggregator: MagicMock, cache: CacheManager, classifier: ErrorClassifier):
    return OnChainDataService(aggregator, cache, classifier=classifier, ttl_seconds=1800)


class TestLoad:
    """Tests for the first load."""

    @pytest.mark.asyncio
    async def test_cached_snapshot_served_stale_then_revalidated(
        self, service: OnChainDataService, cache: CacheManager, aggregator: MagicMock
    ) -> None:
        """
        Given: A cached snapshot from an earlier session
        When: The service loads
        Then: The cached data is shown as stale immediately and replaced
              by fresh data once the background revalidation completes
        """
        cache.set(ONCHAIN_CACHE_KEY, snapshot(1_000).model_dump(), ttl=1800)
        seen: list[tuple[int | None, bool]] = []
        service.subscribe(lambda state: seen.append((state.total_supply_raw, state.is_stale)))

        state = await service.load()

        assert state.total_supply_raw == 1_000
        assert state.is_stale is True
        assert service.phase == DataPhase.STALE

        await service.wait_for_revalidation()

        assert service.snapshot.total_supply_raw == 2_000
        assert service.snapshot.is_stale is False
        assert service.phase == DataPhase.FRESH
        assert seen == [(1_000, True), (2_000, False)]
        assert cache.get(ONCHAIN_CACHE_KEY)["total_supply_raw"] == 2_000
        aggregator.aggregate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_miss_fetches_in_foreground(
        self, service: OnChainDataService, aggregator: MagicMock
    ) -> None:
        phases: list[DataPhase] = []
        service.subscribe(lambda state: phases.append(service.phase))

        state = await service.load()

        assert state.total_supply_raw == 2_000
        assert state.is_loading is False
        assert phases == [DataPhase.LOADING, DataPhase.FRESH]

    @pytest.mark.asyncio
    async def test_second_load_does_not_refetch(
        self, service: OnChainDataService, aggregator: MagicMock
    ) -> None:
        await service.load()
        await service.load()

        aggregator.aggregate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_cache_entry_is_discarded(
        self, service: OnChainDataService, cache: CacheManager
    ) -> None:
        cache.set(ONCHAIN_CACHE_KEY, {"holders": "not-a-list"})

        state = await service.load()

        assert service.phase == DataPhase.FRESH
        assert state.total_supply_raw == 2_000


class TestFailures:
    """Tests for failed revalidation."""

    @pytest.mark.asyncio
    async def test_failure_keeps_cached_data(
        self,
        service: OnChainDataService,
        cache: CacheManager,
        aggregator: MagicMock,
        classifier: ErrorClassifier,
    ) -> None:
        cache.set(ONCHAIN_CACHE_KEY, snapshot(1_000).model_dump())
        aggregator.aggregate.side_effect = AggregationError("No chain supply data available")

        await service.load()
        await service.wait_for_revalidation()

        assert service.snapshot.total_supply_raw == 1_000
        assert service.snapshot.is_loading is False
        assert service.phase == DataPhase.STALE
        logs = classifier.get_error_logs()
        assert len(logs) == 1
        assert logs[0].operation == "fetch_onchain_data"

    @pytest.mark.asyncio
    async def test_failure_without_data_is_error(
        self, service: OnChainDataService, aggregator: MagicMock
    ) -> None:
        aggregator.aggregate.side_effect = AggregationError("network unavailable")

        state = await service.load()

        assert service.phase == DataPhase.ERROR
        assert state.error == "network unavailable"
        assert state.is_loading is False
        assert not state.has_data

    @pytest.mark.asyncio
    async def test_refresh_failure_after_fresh_keeps_fresh_data(
        self, service: OnChainDataService, aggregator: MagicMock
    ) -> None:
        await service.load()
        aggregator.aggregate.side_effect = AggregationError("timeout")

        state = await service.refresh()

        assert state.total_supply_raw == 2_000
        assert service.phase == DataPhase.FRESH

    @pytest.mark.asyncio
    async def test_listener_errors_are_contained(self, service: OnChainDataService) -> None:
        def broken(state: OnChainState) -> None:
            raise RuntimeError("listener bug")

        service.subscribe(broken)

        state = await service.load()

        assert state.total_supply_raw == 2_000


class TestRefresh:
    """Tests for manual refresh and request coalescing."""

    @pytest.mark.asyncio
    async def test_refresh_ignores_fresh_cache(
        self, service: OnChainDataService, aggregator: MagicMock
    ) -> None:
        await service.load()
        aggregator.aggregate.return_value = snapshot(3_000)

        state = await service.refresh()

        assert state.total_supply_raw == 3_000
        assert aggregator.aggregate.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_fetch(
        self, service: OnChainDataService, aggregator: MagicMock
    ) -> None:
        """
        Given: A slow aggregation
        When: Three refreshes are requested at once
        Then: Only one aggregation runs and every caller sees its result
        """
        release = asyncio.Event()

        async def slow_aggregate() -> OnChainState:
            await release.wait()
            return snapshot(4_000)

        aggregator.aggregate.side_effect = slow_aggregate

        callers = asyncio.gather(*(service.refresh() for _ in range(3)))
        await asyncio.sleep(0)
        assert service.is_fetching
        assert service.phase == DataPhase.LOADING
        release.set()
        states = await callers

        assert [s.total_supply_raw for s in states] == [4_000, 4_000, 4_000]
        aggregator.aggregate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, service: OnChainDataService) -> None:
        listener = MagicMock()
        unsubscribe = service.subscribe(listener)
        unsubscribe()
        unsubscribe()

        await service.load()

        listener.assert_not_called()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close(self, service: OnChainDataService, aggregator: MagicMock) -> None:
        await service.close()

        aggregator.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_cancels_fetch_in_flight(
        self, service: OnChainDataService, cache: CacheManager, aggregator: MagicMock
    ) -> None:
        """
        Given: A background revalidation whose aggregation is still running
        When: The service is closed
        Then: The aggregation is cancelled before the upstream clients close
        """
        started = asyncio.Event()
        cancelled = asyncio.Event()
        order: list[str] = []

        async def slow_aggregate() -> OnChainState:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                order.append("aggregate_cancelled")
                cancelled.set()
                raise
            return snapshot(2_000)

        aggregator.aggregate = AsyncMock(side_effect=slow_aggregate)
        aggregator.close = AsyncMock(side_effect=lambda: order.append("clients_closed"))
        cache.set(ONCHAIN_CACHE_KEY, snapshot(1_000).model_dump(), ttl=1800)

        await service.load()
        await started.wait()
        assert service.is_fetching

        await service.close()

        assert cancelled.is_set()
        assert not service.is_fetching
        assert order == ["aggregate_cancelled", "clients_closed"]

    def test_singleton(self) -> None:
        service = get_onchain_service()

        assert service is get_onchain_service()
        assert service.phase == DataPhase.LOADING
