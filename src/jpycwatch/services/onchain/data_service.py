"""Stale-while-revalidate coordinator for the on-chain snapshot.

Phases:
    LOADING  no data yet, or a manual refresh is running
    STALE    cached snapshot shown while a background revalidation runs
    FRESH    snapshot from the latest successful aggregation
    ERROR    no data at all and the last attempt failed

A failed revalidation never discards data that is already displayed.
At most one aggregation runs at a time; concurrent callers await the
same task.
"""

import asyncio
from collections.abc import Callable
from enum import Enum

import pydantic
import structlog

from jpycwatch.config.settings import get_settings
from jpycwatch.constants.resilience import CACHE_DEFAULT_TTL_SECONDS, ONCHAIN_CACHE_KEY
from jpycwatch.core.error_handler import ErrorClassifier, get_error_classifier
from jpycwatch.data.cache.manager import CacheManager, get_cache_manager
from jpycwatch.models.onchain import OnChainState
from jpycwatch.services.onchain.aggregator import OnChainAggregator
from jpycwatch.services.resilience.rate_limiter import get_rate_limiter

log = structlog.get_logger(__name__)

Listener = Callable[[OnChainState], None]


class DataPhase(str, Enum):
    """Display state of the snapshot."""

    LOADING = "loading"
    STALE = "stale"
    FRESH = "fresh"
    ERROR = "error"


class OnChainDataService:
    """Owns the current OnChainState and keeps it fresh.

    Example:
        service = OnChainDataService(aggregator, cache)
        state = await service.load()        # cached (stale) or freshly fetched
        unsubscribe = service.subscribe(print)
        await service.wait_for_revalidation()
        state = await service.refresh()     # manual foreground refetch
    """

    def __init__(
        self,
        aggregator: OnChainAggregator,
        cache: CacheManager,
        classifier: ErrorClassifier | None = None,
        ttl_seconds: float = CACHE_DEFAULT_TTL_SECONDS,
        cache_key: str = ONCHAIN_CACHE_KEY,
    ) -> None:
        self.aggregator = aggregator
        self.cache = cache
        self.classifier = classifier or ErrorClassifier()
        self.ttl_seconds = ttl_seconds
        self.cache_key = cache_key

        self._state = OnChainState(is_loading=True)
        self._phase = DataPhase.LOADING
        self._display_phase: DataPhase | None = None
        self._started = False
        self._listeners: list[Listener] = []
        self._inflight: asyncio.Task[OnChainState] | None = None
        self._revalidation: asyncio.Task[None] | None = None

    @property
    def snapshot(self) -> OnChainState:
        return self._state

    @property
    def phase(self) -> DataPhase:
        return self._phase

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: OnChainState, phase: DataPhase) -> None:
        self._state = state
        self._phase = phase
        if phase in (DataPhase.STALE, DataPhase.FRESH):
            self._display_phase = phase
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                log.exception("onchain_listener_failed")

    def _read_cache(self) -> OnChainState | None:
        cached = self.cache.get(self.cache_key)
        if cached is None:
            return None
        try:
            return OnChainState.model_validate(cached)
        except pydantic.ValidationError as e:
            log.warning("onchain_cache_invalid", key=self.cache_key, error=str(e))
            self.cache.clear(self.cache_key)
            return None

    async def load(self) -> OnChainState:
        """First use: serve the cache (stale) and revalidate, or fetch in the foreground.

        Later calls return the current snapshot, waiting for a foreground
        fetch that is still running.
        """
        if self._started:
            if self._phase == DataPhase.LOADING and self.is_fetching:
                await self._revalidate()
            return self._state

        self._started = True
        cached = self._read_cache()
        if cached is not None:
            log.debug("onchain_cache_hit", key=self.cache_key)
            self._set_state(
                cached.model_copy(update={"is_stale": True, "is_loading": False, "error": None}),
                DataPhase.STALE,
            )
            self._revalidation = asyncio.ensure_future(self._revalidate())
            return self._state

        log.debug("onchain_cache_miss", key=self.cache_key)
        self._set_state(self._state.model_copy(update={"is_loading": True}), DataPhase.LOADING)
        await self._revalidate()
        return self._state

    async def refresh(self) -> OnChainState:
        """Manual refresh: back to LOADING and refetch regardless of cache freshness."""
        self._started = True
        self._set_state(self._state.model_copy(update={"is_loading": True}), DataPhase.LOADING)
        await self._revalidate()
        return self._state

    async def wait_for_revalidation(self) -> None:
        """Wait for a background revalidation started by ``load`` to finish."""
        if self._revalidation is not None:
            await self._revalidation

    async def _revalidate(self) -> None:
        try:
            fresh = await self._fetch_coalesced()
        except Exception as e:
            self._handle_failure(e)
            return

        self._set_state(
            fresh.model_copy(update={"is_loading": False, "is_stale": False, "error": None}),
            DataPhase.FRESH,
        )

    async def _fetch_coalesced(self) -> OnChainState:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._fetch())
        return await asyncio.shield(self._inflight)

    async def _fetch(self) -> OnChainState:
        state = await self.aggregator.aggregate()
        self.cache.set(self.cache_key, state.model_dump(), ttl=self.ttl_seconds)
        return state

    def _handle_failure(self, error: Exception) -> None:
        error_log = self.classifier.handle(error, "fetch_onchain_data")

        if self._state.has_data:
            log.warning(
                "onchain_revalidation_failed_keeping_data",
                error=str(error),
                error_type=error_log.type.value,
            )
            self._set_state(
                self._state.model_copy(update={"is_loading": False}),
                self._display_phase or DataPhase.STALE,
            )
            return

        self._set_state(
            OnChainState(is_loading=False, error=str(error)),
            DataPhase.ERROR,
        )

    async def close(self) -> None:
        """Stop background work, then close the upstream clients."""
        pending = [
            task
            for task in (self._revalidation, self._inflight)
            if task is not None and not task.done()
        ]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self.aggregator.close()


_onchain_service: OnChainDataService | None = None


def get_onchain_service() -> OnChainDataService:
    """Get or create the process-wide on-chain data service."""
    global _onchain_service

    if _onchain_service is None:
        settings = get_settings()
        _onchain_service = OnChainDataService(
            aggregator=OnChainAggregator.from_settings(settings, get_rate_limiter()),
            cache=get_cache_manager(),
            classifier=get_error_classifier(),
            ttl_seconds=settings.cache_ttl_seconds,
        )

    return _onchain_service


async def close_onchain_service() -> None:
    """Close upstream clients and drop the singleton."""
    global _onchain_service

    if _onchain_service is not None:
        await _onchain_service.close()
        _onchain_service = None


def reset_onchain_service() -> None:
    """Reset the singleton (for testing)."""
    global _onchain_service
    _onchain_service = None
