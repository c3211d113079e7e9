"""Read path: resolve a key's current version and stream its bytes."""

from __future__ import annotations

from typing import Iterator

from chunkstash.chunks import ChunkStore
from chunkstash.errors import KeyNotFoundError
from chunkstash.index import IndexEntry, MetadataIndex
from chunkstash.retry import Deadline


def _bounds(entry: IndexEntry, start: int | None, end: int | None) -> tuple[int, int]:
    lo = 0 if start is None else start
    hi = entry.size if end is None else min(end, entry.size)
    if lo < 0 or (end is not None and end < 0):
        raise ValueError("byte range bounds must not be negative")
    if end is not None and end < lo:
        raise ValueError(f"invalid byte range [{lo}, {end})")
    return lo, max(lo, hi)


class ReadPath:
    """Reads see the complete version they resolved at the start of the read,
    even if newer versions are committed while chunks are still streaming."""

    def __init__(self, chunks: ChunkStore, index: MetadataIndex) -> None:
        self._chunks = chunks
        self._index = index

    def stat(self, key: str, *, deadline: Deadline | None = None) -> IndexEntry:
        return self._index.resolve(key, deadline=deadline)

    def stream_entry(
        self,
        entry: IndexEntry,
        start: int | None = None,
        end: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[bytes]:
        if entry.deleted:
            raise KeyNotFoundError(entry.key, entry.version)
        lo, hi = _bounds(entry, start, end)
        if lo >= hi:
            return iter(())
        return self._chunks.iter_chunks(entry.chunks, lo, hi, deadline=deadline)

    def stream(
        self,
        key: str,
        start: int | None = None,
        end: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[bytes]:
        entry = self.stat(key, deadline=deadline)
        return self.stream_entry(entry, start, end, deadline=deadline)

    def read(
        self,
        key: str,
        start: int | None = None,
        end: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> bytes:
        return b"".join(self.stream(key, start, end, deadline=deadline))

    def read_version(
        self,
        key: str,
        version: int,
        start: int | None = None,
        end: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> bytes:
        entry = self._index.get_version(key, version, deadline=deadline)
        return b"".join(self.stream_entry(entry, start, end, deadline=deadline))
