"""Byte-budgeted LRU caches for chunks and index entries.

Cached payloads are immutable (chunks are content addressed, index entries
are never rewritten), so only the recency bookkeeping is guarded by a lock.
The cache is best-effort: every failure degrades to a miss.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, payload: bytes) -> None: ...

    def discard(self, key: str) -> None: ...

    def evict_if_needed(self) -> int: ...

    def stats(self) -> dict[str, int]: ...


@dataclass
class CacheEntry:
    key: str
    payload: bytes
    size: int
    last_access: float


class LRUCache:
    """In-memory cache bounded by ``budget_bytes`` of payload."""

    def __init__(self, budget_bytes: int) -> None:
        self.budget_bytes = budget_bytes
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._size = 0
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def size_bytes(self) -> int:
        return self._size

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            entry.last_access = time.monotonic()
            self.hits += 1
            return entry.payload

    def put(self, key: str, payload: bytes) -> None:
        size = len(payload)
        if size > self.budget_bytes:
            return
        with self._lock:
            old = self._entries.pop(key, None)
            if old is not None:
                self._size -= old.size
            self._entries[key] = CacheEntry(key, payload, size, time.monotonic())
            self._size += size
            self._evict_locked()

    def discard(self, key: str) -> None:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is not None:
                self._size -= entry.size

    def evict_if_needed(self) -> int:
        with self._lock:
            return self._evict_locked()

    def _evict_locked(self) -> int:
        evicted = 0
        while self._size > self.budget_bytes and self._entries:
            _key, entry = self._entries.popitem(last=False)
            self._size -= entry.size
            evicted += 1
        self.evictions += evicted
        return evicted

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._size = 0

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "size_bytes": self._size,
                "budget_bytes": self.budget_bytes,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }


class DiskCache:
    """On-disk cache tier; one file per entry, named by a digest of the key.

    Recency is tracked in memory and seeded from file mtimes on start-up, so
    a restarted process keeps its warm cache.
    """

    def __init__(self, directory: str | os.PathLike[str], budget_bytes: int) -> None:
        self.directory = Path(directory)
        self.budget_bytes = budget_bytes
        self.directory.mkdir(parents=True, exist_ok=True)
        self._order: OrderedDict[str, int] = OrderedDict()
        self._size = 0
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._load_existing()

    def _load_existing(self) -> None:
        found: list[tuple[float, str, int]] = []
        for path in self.directory.glob("*.blob"):
            try:
                st = path.stat()
            except OSError:
                continue
            found.append((st.st_mtime, path.stem, st.st_size))
        for _mtime, name, size in sorted(found):
            self._order[name] = size
            self._size += size
        self.evict_if_needed()

    @staticmethod
    def _name(key: str) -> str:
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}.blob"

    def get(self, key: str) -> bytes | None:
        name = self._name(key)
        with self._lock:
            if name not in self._order:
                self.misses += 1
                return None
            self._order.move_to_end(name)
        try:
            payload = self._path(name).read_bytes()
        except OSError as e:
            logger.debug("disk cache read failed for %s: %s", key, e)
            self.discard(key)
            with self._lock:
                self.misses += 1
            return None
        with self._lock:
            self.hits += 1
        return payload

    def put(self, key: str, payload: bytes) -> None:
        size = len(payload)
        if size > self.budget_bytes:
            return
        name = self._name(key)
        try:
            fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=self.directory)
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
            os.replace(tmp, self._path(name))
        except OSError as e:
            logger.debug("disk cache write failed for %s: %s", key, e)
            return
        with self._lock:
            old = self._order.pop(name, None)
            if old is not None:
                self._size -= old
            self._order[name] = size
            self._size += size
        self.evict_if_needed()

    def discard(self, key: str) -> None:
        name = self._name(key)
        with self._lock:
            size = self._order.pop(name, None)
            if size is not None:
                self._size -= size
        try:
            self._path(name).unlink()
        except OSError:
            pass

    def evict_if_needed(self) -> int:
        victims: list[str] = []
        with self._lock:
            while self._size > self.budget_bytes and self._order:
                name, size = self._order.popitem(last=False)
                self._size -= size
                victims.append(name)
            self.evictions += len(victims)
        for name in victims:
            try:
                self._path(name).unlink()
            except OSError:
                pass
        return len(victims)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._order),
                "size_bytes": self._size,
                "budget_bytes": self.budget_bytes,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }


class TieredCache:
    """Memory tier in front of an optional disk tier; disk hits are promoted."""

    def __init__(self, memory: LRUCache, disk: DiskCache | None = None) -> None:
        self.memory = memory
        self.disk = disk

    def get(self, key: str) -> bytes | None:
        payload = self.memory.get(key)
        if payload is not None or self.disk is None:
            return payload
        payload = self.disk.get(key)
        if payload is not None:
            self.memory.put(key, payload)
        return payload

    def put(self, key: str, payload: bytes) -> None:
        self.memory.put(key, payload)
        if self.disk is not None:
            self.disk.put(key, payload)

    def discard(self, key: str) -> None:
        self.memory.discard(key)
        if self.disk is not None:
            self.disk.discard(key)

    def evict_if_needed(self) -> int:
        evicted = self.memory.evict_if_needed()
        if self.disk is not None:
            evicted += self.disk.evict_if_needed()
        return evicted

    def stats(self) -> dict[str, int]:
        out = {f"memory_{k}": v for k, v in self.memory.stats().items()}
        if self.disk is not None:
            out.update({f"disk_{k}": v for k, v in self.disk.stats().items()})
        return out


def build_cache(
    budget_bytes: int,
    disk_dir: str | None = None,
    disk_budget_bytes: int = 0,
) -> TieredCache:
    disk = DiskCache(disk_dir, disk_budget_bytes) if disk_dir else None
    return TieredCache(LRUCache(budget_bytes), disk)


__all__ = ["Cache", "CacheEntry", "DiskCache", "LRUCache", "TieredCache", "build_cache"]
