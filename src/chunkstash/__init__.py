"""chunkstash: versioned, content-addressed key-value storage on object stores."""

__version__ = "0.1.0"

from chunkstash.cache import DiskCache, LRUCache, TieredCache
from chunkstash.chunks import ChunkReference, ChunkStore
from chunkstash.config import StashConfig
from chunkstash.coordinator import WriteCoordinator
from chunkstash.errors import (
    BackendError,
    BackendUnavailableError,
    ChunkStashError,
    IntegrityError,
    KeyNotFoundError,
    ObjectExistsError,
    ObjectNotFoundError,
    OperationTimeoutError,
    StorageTargetError,
    WriteConflictError,
)
from chunkstash.index import IndexEntry, MetadataIndex
from chunkstash.reader import ReadPath
from chunkstash.retry import Deadline, RetryingBackend, RetryPolicy
from chunkstash.stash import ChunkStash, open_stash
from chunkstash.storage import MemoryBackend, ObjectBackend, open_backend
from chunkstash.sync import SyncReport, sync_stashes

__all__ = [
    "__version__",
    "ChunkStash",
    "open_stash",
    "StashConfig",
    "ObjectBackend",
    "MemoryBackend",
    "open_backend",
    "ChunkReference",
    "ChunkStore",
    "IndexEntry",
    "MetadataIndex",
    "WriteCoordinator",
    "ReadPath",
    "LRUCache",
    "DiskCache",
    "TieredCache",
    "RetryPolicy",
    "RetryingBackend",
    "Deadline",
    "SyncReport",
    "sync_stashes",
    "ChunkStashError",
    "BackendError",
    "BackendUnavailableError",
    "ObjectNotFoundError",
    "ObjectExistsError",
    "IntegrityError",
    "WriteConflictError",
    "KeyNotFoundError",
    "OperationTimeoutError",
    "StorageTargetError",
]
