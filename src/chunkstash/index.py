"""Versioned metadata index stored as small objects next to the chunks.

Layout per key (key percent-encoded with no safe characters, ``.`` included)::

    index/<key>/<version:012d>.<token>.pending   provisional entry of an in-flight write
    index/<key>/<version:012d>.commit            committed marker, holds the entry JSON
    index/<key>/<version:012d>.dropped           a dropped version; its number stays taken

Readers only ever look at ``.commit`` objects. The marker is created with a
conditional write after every chunk of the entry is durable, so a version is
either fully readable or invisible.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, unquote

from chunkstash.cache import Cache
from chunkstash.chunks import ChunkReference
from chunkstash.errors import (
    ChunkStashError,
    KeyNotFoundError,
    ObjectExistsError,
    ObjectNotFoundError,
)
from chunkstash.retry import Deadline, RetryingBackend

logger = logging.getLogger(__name__)

INDEX_PREFIX = "index/"
COMMIT_SUFFIX = ".commit"
PENDING_SUFFIX = ".pending"
DROPPED_SUFFIX = ".dropped"
_VERSION_WIDTH = 12


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def encode_key(key: str) -> str:
    if not key:
        raise ValueError("key must not be empty")
    # "." and ".." must never become a path segment, nor ".tmp-" a file prefix.
    return quote(key, safe="").replace(".", "%2E")


def decode_key(encoded: str) -> str:
    return unquote(encoded)


def key_prefix(key: str) -> str:
    return f"{INDEX_PREFIX}{encode_key(key)}/"


def commit_marker_name(key: str, version: int) -> str:
    return f"{key_prefix(key)}{version:0{_VERSION_WIDTH}d}{COMMIT_SUFFIX}"


def pending_name(key: str, version: int, token: str) -> str:
    return f"{key_prefix(key)}{version:0{_VERSION_WIDTH}d}.{token}{PENDING_SUFFIX}"


def dropped_name(key: str, version: int) -> str:
    return f"{key_prefix(key)}{version:0{_VERSION_WIDTH}d}{DROPPED_SUFFIX}"


def parse_version(name: str, suffix: str) -> int | None:
    """Version number encoded in a marker/pending object name, or None."""
    leaf = name.rsplit("/", 1)[-1]
    if not leaf.endswith(suffix):
        return None
    head = leaf[: -len(suffix)].split(".", 1)[0]
    if len(head) != _VERSION_WIDTH or not head.isdigit():
        return None
    return int(head)


@dataclass(frozen=True)
class IndexEntry:
    """One immutable version of a logical key."""

    key: str
    version: int
    chunks: tuple[ChunkReference, ...]
    size: int
    content_hash: str
    created_at: str = field(default_factory=_now_iso)
    deleted: bool = False
    writer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    # Identifies one commit attempt; two attempts never share it.
    commit_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "version": self.version,
            "chunks": [c.to_dict() for c in self.chunks],
            "size": self.size,
            "content_hash": self.content_hash,
            "created_at": self.created_at,
            "deleted": self.deleted,
            "writer_id": self.writer_id,
            "metadata": dict(self.metadata),
            "commit_id": self.commit_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexEntry:
        return cls(
            key=str(data["key"]),
            version=int(data["version"]),
            chunks=tuple(ChunkReference.from_dict(c) for c in data.get("chunks", [])),
            size=int(data["size"]),
            content_hash=str(data["content_hash"]),
            created_at=str(data.get("created_at") or _now_iso()),
            deleted=bool(data.get("deleted", False)),
            writer_id=data.get("writer_id"),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            commit_id=str(data.get("commit_id") or ""),
        )

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, body: bytes) -> IndexEntry:
        return cls.from_dict(json.loads(body.decode("utf-8")))

    def with_version(self, version: int) -> IndexEntry:
        return replace(self, version=version, commit_id=uuid.uuid4().hex)


# --- Conditional commit strategies ---


class NativeConditionalPut:
    """Create-if-absent using the backend's own precondition support."""

    name = "native"

    def __call__(
        self, backend: RetryingBackend, name: str, body: bytes, deadline: Deadline | None
    ) -> bool:
        try:
            backend.put_if_absent(name, body, deadline=deadline)
        except ObjectExistsError:
            # A retried create whose first attempt landed finds its own body;
            # the body carries this attempt's commit_id, so nobody else's matches.
            try:
                return backend.get(name, deadline=deadline) == body
            except ObjectNotFoundError:
                return False
        return True


class ListThenPutConditionalPut:
    """Create-if-absent emulated with LIST, PUT and a read-back check.

    Weaker than a native precondition: two writers that both list before
    either puts can both proceed. The read-back catches the case where the
    other writer's PUT landed last; if both read back before the second PUT
    lands, the earlier commit is silently replaced.
    """

    name = "list-then-put"

    def __call__(
        self, backend: RetryingBackend, name: str, body: bytes, deadline: Deadline | None
    ) -> bool:
        if name in backend.list(name, deadline=deadline):
            return False
        backend.put(name, body, deadline=deadline)
        try:
            stored = backend.get(name, deadline=deadline)
        except ObjectNotFoundError:
            # Not yet visible on an eventually consistent listing/read path.
            return True
        return stored == body


def conditional_put_for(backend: RetryingBackend) -> NativeConditionalPut | ListThenPutConditionalPut:
    if backend.supports_conditional_put:
        return NativeConditionalPut()
    return ListThenPutConditionalPut()


class MetadataIndex:
    """Maps logical keys to their committed IndexEntry versions."""

    def __init__(
        self,
        backend: RetryingBackend,
        cache: Cache,
        *,
        conditional_put: NativeConditionalPut | ListThenPutConditionalPut | None = None,
        namespace: str = "",
    ) -> None:
        self._backend = backend
        self._cache = cache
        self.namespace = namespace
        self.conditional_put = conditional_put or conditional_put_for(backend)

    def _cache_key(self, key: str, version: int) -> str:
        return f"{self.namespace}index:{encode_key(key)}:{version}"

    def list_versions(self, key: str, *, deadline: Deadline | None = None) -> list[int]:
        """Committed version numbers of ``key``, ascending (tombstones included)."""
        names = self._backend.list(key_prefix(key), deadline=deadline)
        versions = {v for v in (parse_version(n, COMMIT_SUFFIX) for n in names) if v is not None}
        return sorted(versions)

    def list_pending(self, key: str, *, deadline: Deadline | None = None) -> list[int]:
        """Versions with a provisional entry but no commit marker yet."""
        names = self._backend.list(key_prefix(key), deadline=deadline)
        committed = {parse_version(n, COMMIT_SUFFIX) for n in names}
        pending = {parse_version(n, PENDING_SUFFIX) for n in names}
        return sorted(v for v in pending - committed if v is not None)

    def latest_version(self, key: str, *, deadline: Deadline | None = None) -> int:
        """Highest version number ever taken, 0 when the key was never written.

        Dropped versions count, so a number is never handed out twice.
        """
        names = self._backend.list(key_prefix(key), deadline=deadline)
        taken = [
            v
            for n in names
            for v in (parse_version(n, COMMIT_SUFFIX), parse_version(n, DROPPED_SUFFIX))
            if v is not None
        ]
        return max(taken, default=0)

    def get_version(
        self, key: str, version: int, *, deadline: Deadline | None = None
    ) -> IndexEntry:
        cache_key = self._cache_key(key, version)
        body = self._cache.get(cache_key)
        if body is None:
            try:
                body = self._backend.get(commit_marker_name(key, version), deadline=deadline)
            except ObjectNotFoundError:
                raise KeyNotFoundError(key, version) from None
            self._cache.put(cache_key, body)
        return IndexEntry.from_json(body)

    def resolve(
        self,
        key: str,
        *,
        include_deleted: bool = False,
        deadline: Deadline | None = None,
    ) -> IndexEntry:
        """Current committed entry of ``key``.

        Raises KeyNotFoundError when the key has no committed version, or when
        the current version is a tombstone and ``include_deleted`` is false.
        """
        versions = self.list_versions(key, deadline=deadline)
        # A marker listed but not yet readable falls back to the previous version.
        for version in reversed(versions):
            try:
                entry = self.get_version(key, version, deadline=deadline)
            except KeyNotFoundError:
                continue
            if entry.deleted and not include_deleted:
                raise KeyNotFoundError(key)
            return entry
        raise KeyNotFoundError(key)

    def commit(self, entry: IndexEntry, *, deadline: Deadline | None = None) -> bool:
        """Publish ``entry`` as version ``entry.version`` of its key.

        Returns False when another writer already claimed that version number;
        nothing is published in that case.
        """
        body = entry.to_json()
        token = uuid.uuid4().hex[:12]
        staged = pending_name(entry.key, entry.version, token)
        self._backend.put(staged, body, deadline=deadline)
        try:
            won = self.conditional_put(
                self._backend, commit_marker_name(entry.key, entry.version), body, deadline
            )
        finally:
            # Provisional entries are bookkeeping only; cleanup is best effort.
            try:
                self._backend.delete(staged, deadline=deadline)
            except ChunkStashError as e:
                logger.warning("could not remove provisional entry %s: %s", staged, e)

        if won:
            self._cache.put(self._cache_key(entry.key, entry.version), body)
            logger.info("committed %s version %d", entry.key, entry.version)
        else:
            logger.warning("version %d of %s already claimed", entry.version, entry.key)
        return won

    def drop_version(self, key: str, version: int, *, deadline: Deadline | None = None) -> None:
        """Remove one version's commit marker. Chunks are never touched.

        A ``.dropped`` object is left in its place so the number is not reused.
        """
        self._backend.put(dropped_name(key, version), b"", deadline=deadline)
        self._backend.delete(commit_marker_name(key, version), deadline=deadline)
        self._cache.discard(self._cache_key(key, version))

    def list_keys(self, *, deadline: Deadline | None = None) -> list[str]:
        """Keys with at least one committed version."""
        keys: set[str] = set()
        for name in self._backend.list(INDEX_PREFIX, deadline=deadline):
            if parse_version(name, COMMIT_SUFFIX) is None:
                continue
            encoded = name[len(INDEX_PREFIX) :].split("/", 1)[0]
            keys.add(decode_key(encoded))
        return sorted(keys)
