"""Cache store: TTL/LRU manager over a memory tier and an optional durable tier."""

from jpycwatch.data.cache.manager import CacheEntry, CacheManager
from jpycwatch.data.cache.storage import FileStorage, KeyValueStorage, MemoryStorage

__all__ = ["CacheEntry", "CacheManager", "FileStorage", "KeyValueStorage", "MemoryStorage"]
