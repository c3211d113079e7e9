"""Caller-facing key-value API assembled from the engine components."""

from __future__ import annotations

import time
from typing import Any, Callable, Iterator

from chunkstash.cache import Cache, build_cache
from chunkstash.chunks import ChunkStore
from chunkstash.config import StashConfig
from chunkstash.coordinator import WriteCoordinator
from chunkstash.errors import KeyNotFoundError
from chunkstash.index import IndexEntry, MetadataIndex
from chunkstash.reader import ReadPath
from chunkstash.retry import Deadline, RetryingBackend, RetryPolicy
from chunkstash.storage import ObjectBackend, open_backend


class ChunkStash:
    """Versioned key-value store persisted in an object backend.

    The cache is an explicit instance owned by this object (or passed in by
    the caller to share it between stashes); nothing is process-global.
    Cache keys carry the backend's ``cache_namespace``, so stashes over
    different stores can share one cache without seeing each other's data.
    """

    def __init__(
        self,
        backend: ObjectBackend,
        *,
        config: StashConfig | None = None,
        cache: Cache | None = None,
        storage_uri: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or StashConfig()
        self.storage_uri = storage_uri
        self.backend = backend
        cfg = self.config

        if cache is None:
            cache = build_cache(
                cfg.cache_budget_bytes, cfg.disk_cache_dir, cfg.disk_cache_budget_bytes
            )
        self.cache: Cache = cache
        self.retry_policy = RetryPolicy.from_config(cfg)
        self._transport = RetryingBackend(backend, self.retry_policy, sleep=sleep)
        namespace = f"{backend.cache_namespace}|"
        self.chunks = ChunkStore(
            self._transport,
            self.cache,
            chunk_size=cfg.chunk_size_bytes,
            verify_existence=cfg.verify_chunk_existence,
            concurrency=cfg.transfer_concurrency,
            namespace=namespace,
        )
        self.index = MetadataIndex(self._transport, self.cache, namespace=namespace)
        self.writer = WriteCoordinator(
            self.chunks,
            self.index,
            conflict_retry_limit=cfg.commit_conflict_retry_limit,
            backoff=self.retry_policy,
            writer_id=cfg.runtime_id,
            sleep=sleep,
        )
        self.reader = ReadPath(self.chunks, self.index)

    def _deadline(self) -> Deadline:
        return Deadline(self.config.operation_deadline_s)

    # --- Write side ---

    def write(self, key: str, data: bytes, *, metadata: dict[str, str] | None = None) -> int:
        """Store ``data`` as the next version of ``key`` and return that version."""
        return self.writer.write(key, data, metadata=metadata, deadline=self._deadline()).version

    def delete(self, key: str) -> int:
        """Tombstone ``key``; returns the tombstone's version."""
        return self.writer.delete(key, deadline=self._deadline()).version

    # --- Read side ---

    def read(self, key: str, start: int | None = None, end: int | None = None) -> bytes:
        return self.reader.read(key, start, end, deadline=self._deadline())

    def stream(self, key: str, start: int | None = None, end: int | None = None) -> Iterator[bytes]:
        return self.reader.stream(key, start, end, deadline=self._deadline())

    def read_version(
        self, key: str, version: int, start: int | None = None, end: int | None = None
    ) -> bytes:
        return self.reader.read_version(key, version, start, end, deadline=self._deadline())

    def stat(self, key: str) -> IndexEntry:
        return self.reader.stat(key, deadline=self._deadline())

    def exists(self, key: str) -> bool:
        try:
            self.stat(key)
        except KeyNotFoundError:
            return False
        return True

    def list_versions(self, key: str) -> list[int]:
        return self.index.list_versions(key, deadline=self._deadline())

    def list_keys(self, *, include_deleted: bool = False) -> list[str]:
        deadline = self._deadline()
        keys = self.index.list_keys(deadline=deadline)
        if include_deleted:
            return keys
        live: list[str] = []
        for key in keys:
            entry = self.index.resolve(key, include_deleted=True, deadline=deadline)
            if not entry.deleted:
                live.append(key)
        return live

    # --- Lifecycle ---

    def storage_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "storage_uri": self.storage_uri,
            **self.backend.storage_info(),
            "chunk_size_bytes": self.config.chunk_size_bytes,
            "commit_strategy": self.index.conditional_put.name,
            "cache": self.cache.stats(),
            "chunks": self.chunks.stats(),
        }
        return info

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> ChunkStash:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_stash(storage_uri: str, config: StashConfig | None = None) -> ChunkStash:
    """Open a stash on ``memory://``, ``file:///path`` or ``s3://bucket/prefix``."""
    cfg = config or StashConfig()
    return ChunkStash(open_backend(storage_uri, cfg), config=cfg, storage_uri=storage_uri)
