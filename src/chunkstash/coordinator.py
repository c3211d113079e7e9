"""Write coordinator: chunk upload, version selection and optimistic commit."""

from __future__ import annotations

import logging
import time
from typing import Callable

from chunkstash.chunks import ChunkReference, ChunkStore, content_hash
from chunkstash.errors import KeyNotFoundError, WriteConflictError
from chunkstash.index import IndexEntry, MetadataIndex, encode_key
from chunkstash.retry import Deadline, RetryPolicy

logger = logging.getLogger(__name__)

_EMPTY_HASH = content_hash(b"")


class WriteCoordinator:
    """Publishes new versions of keys without any locking.

    A write uploads its chunks first (idempotent, safe to repeat or abandon),
    then loops: read the current version N, try to commit N + 1, and on
    losing the race re-read and try again, up to ``conflict_retry_limit``
    attempts. The commit marker is the only step with exactly-once effect.
    """

    def __init__(
        self,
        chunks: ChunkStore,
        index: MetadataIndex,
        *,
        conflict_retry_limit: int = 5,
        backoff: RetryPolicy | None = None,
        writer_id: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._chunks = chunks
        self._index = index
        self.conflict_retry_limit = conflict_retry_limit
        self._backoff = backoff or RetryPolicy()
        self.writer_id = writer_id
        self._sleep = sleep

    def write(
        self,
        key: str,
        payload: bytes,
        *,
        metadata: dict[str, str] | None = None,
        deadline: Deadline | None = None,
    ) -> IndexEntry:
        encode_key(key)  # rejects an invalid key before any chunk is uploaded
        deadline = deadline or Deadline.unlimited()
        refs = self._chunks.put(payload, deadline=deadline)
        return self._publish(
            key,
            refs=tuple(refs),
            size=len(payload),
            digest=content_hash(payload),
            deleted=False,
            metadata=metadata,
            deadline=deadline,
        )

    def delete(self, key: str, *, deadline: Deadline | None = None) -> IndexEntry:
        """Commit a tombstone version. Raises KeyNotFoundError if the key is not live."""
        deadline = deadline or Deadline.unlimited()
        self._index.resolve(key, deadline=deadline)
        return self._publish(
            key,
            refs=(),
            size=0,
            digest=_EMPTY_HASH,
            deleted=True,
            metadata=None,
            deadline=deadline,
            require_live=True,
        )

    def _publish(
        self,
        key: str,
        *,
        refs: tuple[ChunkReference, ...],
        size: int,
        digest: str,
        deleted: bool,
        metadata: dict[str, str] | None,
        deadline: Deadline,
        require_live: bool = False,
    ) -> IndexEntry:
        template = IndexEntry(
            key=key,
            version=0,
            chunks=refs,
            size=size,
            content_hash=digest,
            deleted=deleted,
            writer_id=self.writer_id,
            metadata=dict(metadata or {}),
        )

        for attempt in range(1, self.conflict_retry_limit + 1):
            deadline.check(f"write {key}")
            current = self._index.latest_version(key, deadline=deadline)
            if require_live and attempt > 1:
                # Someone else may have deleted the key while we were retrying.
                current_entry = self._index.resolve(key, include_deleted=True, deadline=deadline)
                if current_entry.deleted:
                    raise KeyNotFoundError(key)
            entry = template.with_version(current + 1)
            if self._index.commit(entry, deadline=deadline):
                return entry

            if attempt < self.conflict_retry_limit:
                delay_ms = self._backoff.delay_ms(attempt)
                logger.warning(
                    "commit conflict on %s at version %d (attempt %d/%d), retrying in %dms",
                    key,
                    entry.version,
                    attempt,
                    self.conflict_retry_limit,
                    delay_ms,
                )
                deadline.sleep(f"write {key}", delay_ms / 1000.0, self._sleep)

        raise WriteConflictError(key, self.conflict_retry_limit)
