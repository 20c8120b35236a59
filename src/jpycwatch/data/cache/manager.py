"""TTL + LRU cache store with a durable tier and in-memory fallback."""

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

import structlog

from jpycwatch.config.settings import get_settings
from jpycwatch.constants.resilience import CACHE_DEFAULT_TTL_SECONDS, CACHE_SCHEMA_VERSION
from jpycwatch.core.exceptions import StorageQuotaError
from jpycwatch.core.serializer import deserialize, read_schema_version, serialize
from jpycwatch.data.cache.storage import FileStorage, KeyValueStorage

logger = structlog.get_logger(__name__)

_WRITE_CHECK_KEY = "__cache_manager_write_check__"


@dataclass
class CacheEntry:
    """One cached value.

    Attributes:
        data: Cached payload.
        expiry: Epoch seconds after which the entry is treated as absent.
        last_accessed: Epoch seconds of the last read or write (LRU order).
        version: Cache schema version that wrote the entry.
    """

    data: Any
    expiry: float
    last_accessed: float
    version: str = CACHE_SCHEMA_VERSION

    def is_valid(self, now: float) -> bool:
        return self.expiry > now


class CacheManager:
    """Two-tier cache: authoritative in-process map plus a durable storage.

    - ``set`` writes both tiers. When the durable tier is full the least
      recently accessed entry is evicted and the write retried once; if
      that fails too the durable tier is disabled for the process lifetime.
    - ``get`` checks memory first, then the durable tier (promoting hits
      into memory). Expiry is evaluated lazily on access.
    - ``clear_all`` only removes durable entries written with the current
      schema version.

    Example:
        cache = CacheManager(storage=FileStorage(Path(".cache"), max_bytes=5_000_000))
        cache.set("jpyc-onchain-data", snapshot_dict, ttl=1800)
        cached = cache.get("jpyc-onchain-data")
    """

    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        default_ttl: float = CACHE_DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            storage: Durable tier; None keeps the cache memory-only.
            default_ttl: TTL in seconds used when ``set`` gets none.
            clock: Returns the current time in epoch seconds.
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}
        self._storage = storage
        self._use_storage = storage is not None and self._storage_available()
        self._hits = 0
        self._misses = 0

    @property
    def durable_enabled(self) -> bool:
        """Whether the durable tier is still in use."""
        return self._use_storage

    def _storage_available(self) -> bool:
        assert self._storage is not None
        try:
            self._storage.set_item(_WRITE_CHECK_KEY, "ok")
            self._storage.remove_item(_WRITE_CHECK_KEY)
            return True
        except Exception as e:
            logger.warning("cache_storage_unavailable", error=str(e))
            return False

    def _disable_storage(self, reason: str) -> None:
        self._use_storage = False
        logger.warning("cache_storage_disabled", reason=reason)

    def _write_storage(self, key: str, entry: CacheEntry) -> None:
        assert self._storage is not None
        self._storage.set_item(key, serialize(asdict(entry)))

    def _read_storage(self, key: str) -> CacheEntry | None:
        assert self._storage is not None
        stored = self._storage.get_item(key)
        if stored is None:
            return None
        raw = deserialize(stored)
        if not isinstance(raw, dict) or "expiry" not in raw:
            return None
        return CacheEntry(
            data=raw.get("data"),
            expiry=float(raw["expiry"]),
            last_accessed=float(raw.get("last_accessed", 0.0)),
            version=str(raw.get("version", "")),
        )

    def _touch(self, key: str, entry: CacheEntry, now: float) -> None:
        entry.last_accessed = now
        if not self._use_storage:
            return
        try:
            self._write_storage(key, entry)
        except Exception as e:
            logger.warning("cache_touch_persist_failed", key=key, error=str(e))

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        """Store a value in both tiers.

        Args:
            key: Cache key.
            data: Value to cache (must be serializable for the durable tier).
            ttl: Time to live in seconds (default: ``default_ttl``).
        """
        now = self._clock()
        entry = CacheEntry(
            data=data,
            expiry=now + (self.default_ttl if ttl is None else ttl),
            last_accessed=now,
        )
        self._memory[key] = entry

        if not self._use_storage:
            return

        try:
            self._write_storage(key, entry)
        except StorageQuotaError as e:
            removed = self.remove_oldest(exclude=key)
            if removed is None:
                self._disable_storage(f"quota exceeded with nothing to evict: {e}")
                return
            logger.warning("cache_quota_evicted_oldest", key=key, evicted=removed)
            try:
                self._write_storage(key, entry)
            except Exception as retry_error:
                self._disable_storage(f"write failed after eviction: {retry_error}")
        except Exception as e:
            self._disable_storage(f"write failed: {e}")

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        now = self._clock()

        memory_entry = self._memory.get(key)
        if memory_entry is not None:
            if memory_entry.is_valid(now):
                self._hits += 1
                self._touch(key, memory_entry, now)
                return memory_entry.data
            del self._memory[key]

        if self._use_storage:
            try:
                entry = self._read_storage(key)
            except Exception as e:
                logger.warning("cache_storage_read_failed", key=key, error=str(e))
                entry = None

            if entry is not None:
                if entry.is_valid(now):
                    self._memory[key] = entry
                    self._hits += 1
                    self._touch(key, entry, now)
                    return entry.data
                self._remove_from_storage(key)

        self._misses += 1
        return None

    def is_valid(self, key: str) -> bool:
        """Check for an unexpired entry without touching LRU order."""
        now = self._clock()
        memory_entry = self._memory.get(key)
        if memory_entry is not None and memory_entry.is_valid(now):
            return True

        if self._use_storage:
            try:
                entry = self._read_storage(key)
            except Exception as e:
                logger.warning("cache_storage_read_failed", key=key, error=str(e))
                return False
            return entry is not None and entry.is_valid(now)
        return False

    def _remove_from_storage(self, key: str) -> None:
        if not self._use_storage:
            return
        assert self._storage is not None
        try:
            self._storage.remove_item(key)
        except Exception as e:
            logger.warning("cache_storage_remove_failed", key=key, error=str(e))

    def clear(self, key: str) -> None:
        """Remove one entry from both tiers."""
        self._memory.pop(key, None)
        self._remove_from_storage(key)

    def clear_all(self) -> None:
        """Remove every memory entry and every durable entry of this schema version."""
        self._memory.clear()
        self._hits = 0
        self._misses = 0
        if not self._use_storage:
            return
        assert self._storage is not None
        for key in self._storage.keys():
            try:
                stored = self._storage.get_item(key)
            except Exception:
                logger.debug("cache_clear_skipped_unreadable", key=key)
                continue
            if stored is not None and read_schema_version(stored) == CACHE_SCHEMA_VERSION:
                self._remove_from_storage(key)

    def remove_oldest(self, exclude: str | None = None) -> str | None:
        """Evict the entry with the smallest ``last_accessed`` across both tiers.

        Args:
            exclude: Key that must not be evicted (the one being written).

        Returns:
            The evicted key, or None if there was nothing to evict.
        """
        oldest_key: str | None = None
        oldest_time = float("inf")

        for key, entry in self._memory.items():
            if key != exclude and entry.last_accessed < oldest_time:
                oldest_key, oldest_time = key, entry.last_accessed

        if self._use_storage:
            assert self._storage is not None
            for key in self._storage.keys():
                if key == exclude:
                    continue
                try:
                    entry = self._read_storage(key)
                except Exception:
                    continue
                if (
                    entry is not None
                    and entry.version == CACHE_SCHEMA_VERSION
                    and entry.last_accessed < oldest_time
                ):
                    oldest_key, oldest_time = key, entry.last_accessed

        if oldest_key is not None:
            self.clear(oldest_key)
            logger.debug("cache_removed_oldest", key=oldest_key)
        return oldest_key

    def size(self) -> int:
        """Number of entries held in memory."""
        return len(self._memory)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = self._hits / total if total > 0 else 0.0
        return {
            "size": len(self._memory),
            "durable_enabled": self._use_storage,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 4),
        }


_cache_manager: CacheManager | None = None


def get_cache_manager() -> CacheManager:
    """Get or create the process-wide cache store from settings."""
    global _cache_manager

    if _cache_manager is None:
        settings = get_settings()
        storage = None
        if settings.cache_dir is not None:
            try:
                storage = FileStorage(settings.cache_dir, max_bytes=settings.cache_max_bytes)
            except OSError as e:
                logger.warning("cache_dir_unusable", path=str(settings.cache_dir), error=str(e))
        _cache_manager = CacheManager(storage=storage, default_ttl=settings.cache_ttl_seconds)

    return _cache_manager


def reset_cache_manager() -> None:
    """Reset the singleton (for testing)."""
    global _cache_manager
    _cache_manager = None
