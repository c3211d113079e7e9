"""Content-addressed chunk store.

Payloads are cut into fixed-size chunks named ``chunks/<sha256>``. A chunk
object is written once and never overwritten, so uploads are idempotent and
identical bytes are stored once no matter how many keys reference them.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Sequence, TypeVar

from chunkstash.cache import Cache
from chunkstash.errors import IntegrityError, ObjectExistsError
from chunkstash.retry import Deadline, RetryingBackend

logger = logging.getLogger(__name__)

CHUNK_PREFIX = "chunks/"

T = TypeVar("T")
R = TypeVar("R")


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def chunk_name(digest: str) -> str:
    return f"{CHUNK_PREFIX}{digest}"


@dataclass(frozen=True)
class ChunkReference:
    """One chunk's contribution to a logical object: bytes [offset, offset + length)."""

    hash: str
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length

    def to_dict(self) -> dict[str, Any]:
        return {"hash": self.hash, "offset": self.offset, "length": self.length}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkReference:
        return cls(hash=str(data["hash"]), offset=int(data["offset"]), length=int(data["length"]))


def split_payload(payload: bytes, chunk_size: int) -> list[tuple[int, bytes]]:
    """Fixed-size boundaries; the last chunk may be shorter. Empty payloads have no chunks."""
    view = memoryview(payload)
    return [
        (offset, bytes(view[offset : offset + chunk_size]))
        for offset in range(0, len(payload), chunk_size)
    ]


def select_range(
    refs: Sequence[ChunkReference], start: int, end: int
) -> list[tuple[ChunkReference, int, int]]:
    """Chunks intersecting [start, end) with the slice bounds inside each chunk."""
    out: list[tuple[ChunkReference, int, int]] = []
    for ref in refs:
        if ref.end <= start or ref.offset >= end:
            continue
        lo = max(start, ref.offset) - ref.offset
        hi = min(end, ref.end) - ref.offset
        out.append((ref, lo, hi))
    return out


class ChunkStore:
    """Splits, deduplicates, uploads, fetches and verifies chunks."""

    def __init__(
        self,
        backend: RetryingBackend,
        cache: Cache,
        *,
        chunk_size: int,
        verify_existence: bool = True,
        concurrency: int = 4,
        namespace: str = "",
    ) -> None:
        self._backend = backend
        self._cache = cache
        self.chunk_size = chunk_size
        self.verify_existence = verify_existence
        self.concurrency = concurrency
        # Cache entries are scoped to one backend, so a hit means this backend
        # stored or served the chunk.
        self.namespace = namespace
        self._stats_lock = threading.Lock()
        self._stats = {
            "chunks_uploaded": 0,
            "chunks_deduplicated": 0,
            "bytes_uploaded": 0,
            "chunks_fetched": 0,
            "bytes_fetched": 0,
        }

    def _cache_key(self, digest: str) -> str:
        return f"{self.namespace}chunk:{digest}"

    def _bump(self, **deltas: int) -> None:
        with self._stats_lock:
            for name, delta in deltas.items():
                self._stats[name] += delta

    def stats(self) -> dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)

    def _map(self, fn: Callable[[T], R], items: Sequence[T]) -> list[R]:
        if self.concurrency <= 1 or len(items) <= 1:
            return [fn(item) for item in items]
        workers = min(self.concurrency, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="chunkstash") as pool:
            return list(pool.map(fn, items))

    # --- Write side ---

    def has_chunk(self, digest: str, *, deadline: Deadline | None = None) -> bool:
        """Known-present check: cache first, then (optionally) a backend listing."""
        if self._cache.get(self._cache_key(digest)) is not None:
            return True
        if not self.verify_existence:
            return False
        name = chunk_name(digest)
        return name in self._backend.list(name, deadline=deadline)

    def _upload(self, digest: str, data: bytes, deadline: Deadline | None) -> None:
        if self.has_chunk(digest, deadline=deadline):
            logger.debug("chunk %s already stored, skipping upload", digest)
            self._bump(chunks_deduplicated=1)
            self._cache.put(self._cache_key(digest), data)
            return
        name = chunk_name(digest)
        try:
            if self._backend.supports_conditional_put:
                self._backend.put_if_absent(name, data, deadline=deadline)
            else:
                self._backend.put(name, data, deadline=deadline)
        except ObjectExistsError:
            logger.debug("chunk %s raced into place by another writer", digest)
            self._bump(chunks_deduplicated=1)
        else:
            self._bump(chunks_uploaded=1, bytes_uploaded=len(data))
        self._cache.put(self._cache_key(digest), data)

    def put(self, payload: bytes, *, deadline: Deadline | None = None) -> list[ChunkReference]:
        """Store ``payload`` and return the ordered references spanning it."""
        pieces = split_payload(payload, self.chunk_size)
        refs = [ChunkReference(content_hash(data), offset, len(data)) for offset, data in pieces]

        # Upload each distinct chunk once, even if it repeats inside the payload.
        unique: dict[str, bytes] = {}
        for ref, (_offset, data) in zip(refs, pieces):
            unique.setdefault(ref.hash, data)
        self._map(lambda item: self._upload(item[0], item[1], deadline), list(unique.items()))
        return refs

    # --- Read side ---

    def fetch_chunk(self, digest: str, *, deadline: Deadline | None = None) -> bytes:
        """Return verified chunk bytes, from cache when possible."""
        key = self._cache_key(digest)
        cached = self._cache.get(key)
        if cached is not None:
            if content_hash(cached) == digest:
                return cached
            logger.warning("cached copy of chunk %s is corrupt, discarding", digest)
            self._cache.discard(key)

        data = self._backend.get(chunk_name(digest), deadline=deadline)
        actual = content_hash(data)
        if actual != digest:
            raise IntegrityError(digest, actual)
        self._bump(chunks_fetched=1, bytes_fetched=len(data))
        self._cache.put(key, data)
        return data

    def _fetch_ref(self, ref: ChunkReference, deadline: Deadline | None) -> bytes:
        data = self.fetch_chunk(ref.hash, deadline=deadline)
        if len(data) != ref.length:
            raise IntegrityError(ref.hash, content_hash(data))
        return data

    def iter_chunks(
        self,
        refs: Sequence[ChunkReference],
        start: int = 0,
        end: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[bytes]:
        """Yield the bytes of [start, end), one slice per intersecting chunk.

        Chunks are fetched in windows of ``concurrency`` so memory stays bounded
        while a window downloads in parallel.
        """
        total = refs[-1].end if refs else 0
        stop = total if end is None else min(end, total)
        selected = select_range(refs, start, stop)
        window = max(1, self.concurrency)
        for i in range(0, len(selected), window):
            batch = selected[i : i + window]
            payloads = self._map(lambda item: self._fetch_ref(item[0], deadline), batch)
            for (_ref, lo, hi), data in zip(batch, payloads):
                yield data[lo:hi]

    def get(
        self, refs: Sequence[ChunkReference], *, deadline: Deadline | None = None
    ) -> bytes:
        return b"".join(self.iter_chunks(refs, deadline=deadline))

    def read_range(
        self,
        refs: Sequence[ChunkReference],
        start: int,
        end: int,
        *,
        deadline: Deadline | None = None,
    ) -> bytes:
        return b"".join(self.iter_chunks(refs, start, end, deadline=deadline))
