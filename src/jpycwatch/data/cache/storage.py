"""Durable key/value storage backends for the cache store.

The cache store treats these as a best-effort secondary tier. Both
implementations enforce a byte quota and raise StorageQuotaError when a
write would exceed it, mirroring browser-style storage limits.
"""

import hashlib
from pathlib import Path
from typing import Protocol

from jpycwatch.core.exceptions import StorageQuotaError


class KeyValueStorage(Protocol):
    """Minimal string key/value storage interface."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStorage:
    """Dict-backed storage with an optional byte quota.

    Mostly used in tests to simulate a constrained durable tier.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes
        self._items: dict[str, str] = {}

    def _used_bytes(self, excluding: str | None = None) -> int:
        return sum(
            len(key.encode()) + len(value.encode())
            for key, value in self._items.items()
            if key != excluding
        )

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            needed = len(key.encode()) + len(value.encode())
            if self._used_bytes(excluding=key) + needed > self.max_bytes:
                raise StorageQuotaError(
                    f"Storage quota exceeded writing {key!r} ({needed} bytes)"
                )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileStorage:
    """One file per key under a directory, with a total byte quota.

    File names are the SHA-256 of the key; the key itself is stored on
    the first line so ``keys()`` can enumerate entries.

    Attributes:
        directory: Directory holding the entry files (created on demand).
        max_bytes: Total size limit of all entry files.
    """

    SUFFIX = ".cache"

    def __init__(self, directory: Path, max_bytes: int) -> None:
        self.directory = Path(directory)
        self.max_bytes = max_bytes
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()
        return self.directory / f"{digest}{self.SUFFIX}"

    def _entries(self) -> list[Path]:
        return sorted(self.directory.glob(f"*{self.SUFFIX}"))

    def _read(self, path: Path) -> tuple[str, str] | None:
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        key, _, value = content.partition("\n")
        return key, value

    def get_item(self, key: str) -> str | None:
        entry = self._read(self._path(key))
        if entry is None or entry[0] != key:
            return None
        return entry[1]

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        content = f"{key}\n{value}"
        needed = len(content.encode())
        used = sum(p.stat().st_size for p in self._entries() if p != path)
        if used + needed > self.max_bytes:
            raise StorageQuotaError(
                f"Storage quota exceeded writing {key!r} ({needed} bytes, {used} in use)"
            )
        tmp = path.with_suffix(".tmp")
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        found = []
        for path in self._entries():
            entry = self._read(path)
            if entry is not None:
                found.append(entry[0])
        return found
