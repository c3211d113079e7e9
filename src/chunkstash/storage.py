"""Backend adapter contract, in-memory adapter and storage-URI resolution."""

from __future__ import annotations

import threading
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from urllib.parse import urlparse

from chunkstash.config import StashConfig
from chunkstash.errors import ObjectExistsError, ObjectNotFoundError, StorageTargetError


@runtime_checkable
class ObjectBackend(Protocol):
    """Whole-object store keyed by string names.

    Adapters raise ``ObjectNotFoundError`` from ``get`` for missing objects,
    ``ObjectExistsError`` from ``put_if_absent`` when the name is taken, and
    ``BackendError`` for everything else. Adapters never retry.

    ``cache_namespace`` names the physical store, so cached data from one
    store is never mistaken for another's.
    """

    supports_conditional_put: bool
    cache_namespace: str

    def put(self, name: str, data: bytes) -> None: ...

    def put_if_absent(self, name: str, data: bytes) -> None: ...

    def get(self, name: str) -> bytes: ...

    def delete(self, name: str) -> None: ...

    def list(self, prefix: str) -> list[str]: ...

    def storage_info(self) -> dict[str, object]: ...

    def close(self) -> None: ...


class MemoryBackend:
    """Thread-safe in-process object store.

    Counts calls per operation in ``calls``. With ``conditional_put=False``
    the adapter reports no conditional-write support, which makes the index
    fall back to list-then-put.
    """

    def __init__(self, *, conditional_put: bool = True) -> None:
        self.supports_conditional_put = conditional_put
        self.cache_namespace = f"memory:{uuid.uuid4().hex}"
        self.objects: dict[str, bytes] = {}
        self.calls: Counter[str] = Counter()
        self._lock = threading.Lock()

    def put(self, name: str, data: bytes) -> None:
        with self._lock:
            self.calls["put"] += 1
            self.objects[name] = bytes(data)

    def put_if_absent(self, name: str, data: bytes) -> None:
        with self._lock:
            self.calls["put_if_absent"] += 1
            if name in self.objects:
                raise ObjectExistsError(name)
            self.objects[name] = bytes(data)

    def get(self, name: str) -> bytes:
        with self._lock:
            self.calls["get"] += 1
            try:
                return self.objects[name]
            except KeyError:
                raise ObjectNotFoundError(name) from None

    def delete(self, name: str) -> None:
        with self._lock:
            self.calls["delete"] += 1
            self.objects.pop(name, None)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            self.calls["list"] += 1
            return sorted(n for n in self.objects if n.startswith(prefix))

    def storage_info(self) -> dict[str, object]:
        with self._lock:
            return {
                "backend": "memory",
                "object_count": len(self.objects),
                "stored_bytes": sum(len(v) for v in self.objects.values()),
                "conditional_put": self.supports_conditional_put,
            }

    def close(self) -> None:
        pass


@dataclass
class StorageTarget:
    """Resolved storage target from a URI."""

    backend: str
    uri: str
    path: str | None = None
    bucket: str | None = None
    prefix: str | None = None


def parse_storage_target(storage_uri: str) -> StorageTarget:
    """Resolve ``memory://``, ``file:///path`` or ``s3://bucket/prefix``."""
    parsed = urlparse(storage_uri)

    if parsed.scheme == "memory":
        return StorageTarget(backend="memory", uri=storage_uri)

    if parsed.scheme == "file":
        path = parsed.path
        if parsed.netloc:
            # file://relative/dir -> relative/dir
            path = f"{parsed.netloc}{path}"
        if not path:
            raise StorageTargetError(storage_uri, "file URI needs a directory path")
        return StorageTarget(backend="file", uri=storage_uri, path=path)

    if parsed.scheme == "s3":
        bucket = parsed.netloc
        if not bucket:
            raise StorageTargetError(storage_uri, "s3 URI needs a bucket name")
        prefix = parsed.path.lstrip("/").rstrip("/")
        return StorageTarget(backend="s3", uri=storage_uri, bucket=bucket, prefix=prefix)

    raise StorageTargetError(
        storage_uri, f"unsupported scheme '{parsed.scheme}' (use memory://, file:// or s3://)"
    )


def open_backend(storage_uri: str, config: StashConfig | None = None) -> ObjectBackend:
    """Build the backend adapter for a storage URI."""
    target = parse_storage_target(storage_uri)
    cfg = config or StashConfig()
    if target.backend == "memory":
        return MemoryBackend()
    if target.backend == "file":
        from chunkstash.storage_local import LocalBackend

        if target.path is None:
            raise StorageTargetError(storage_uri, "file URI needs a directory path")
        return LocalBackend(target.path)

    from chunkstash.storage_s3 import S3Backend

    if target.bucket is None:
        raise StorageTargetError(storage_uri, "s3 URI needs a bucket name")
    return S3Backend(
        bucket=target.bucket,
        prefix=target.prefix or "",
        config=cfg,
    )


__all__ = [
    "MemoryBackend",
    "ObjectBackend",
    "StorageTarget",
    "open_backend",
    "parse_storage_target",
]
