"""Structured error types for chunkstash."""

from __future__ import annotations


class ChunkStashError(Exception):
    """Base error for all chunkstash errors."""


class BackendError(ChunkStashError):
    """Raised by backend adapters when an object-store call fails.

    ``transient`` marks failures worth retrying (network errors, throttling,
    5xx responses). Permanent failures surface immediately.
    """

    def __init__(self, operation: str, detail: str, *, transient: bool = True) -> None:
        self.operation = operation
        self.detail = detail
        self.transient = transient
        super().__init__(f"Backend error during {operation}: {detail}")


class ObjectNotFoundError(ChunkStashError):
    """Raised by backend adapters when a named object does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Object not found: {name}")


class ObjectExistsError(ChunkStashError):
    """Raised by put_if_absent when the object name is already taken."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Object already exists: {name}")


class BackendUnavailableError(ChunkStashError):
    """Raised when a backend call keeps failing after all retry attempts."""

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"Backend unavailable: {operation} failed after {attempts} attempt(s)")


class IntegrityError(ChunkStashError):
    """Raised when fetched chunk bytes do not hash to the referenced digest."""

    def __init__(self, chunk_hash: str, actual_hash: str) -> None:
        self.chunk_hash = chunk_hash
        self.actual_hash = actual_hash
        super().__init__(f"Chunk {chunk_hash} failed integrity check (content hashes to {actual_hash})")


class WriteConflictError(ChunkStashError):
    """Raised when a commit keeps losing the version race past the retry limit."""

    def __init__(self, key: str, attempts: int) -> None:
        self.key = key
        self.attempts = attempts
        super().__init__(
            f"Write conflict on key '{key}': no version could be committed in {attempts} attempt(s)"
        )


class KeyNotFoundError(ChunkStashError):
    """Raised when a key (or a specific version of it) is absent or deleted."""

    def __init__(self, key: str, version: int | None = None) -> None:
        self.key = key
        self.version = version
        if version is None:
            super().__init__(f"Key not found: '{key}'")
        else:
            super().__init__(f"Version {version} of key '{key}' not found")


class OperationTimeoutError(ChunkStashError):
    """Raised when an operation exceeds its total deadline."""

    def __init__(self, operation: str, deadline_s: float) -> None:
        self.operation = operation
        self.deadline_s = deadline_s
        super().__init__(f"Operation {operation} exceeded its {deadline_s:g}s deadline")


class StorageTargetError(ChunkStashError):
    """Raised when a storage URI cannot be resolved to a backend."""

    def __init__(self, uri: str, detail: str) -> None:
        self.uri = uri
        self.detail = detail
        super().__init__(f"Invalid storage target '{uri}': {detail}")
