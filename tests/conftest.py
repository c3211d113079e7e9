"""Shared test fixtures for chunkstash tests."""

from __future__ import annotations

import pytest

from chunkstash import ChunkStash, MemoryBackend, StashConfig
from chunkstash.errors import BackendError


class FlakyBackend(MemoryBackend):
    """MemoryBackend that fails the next ``failures[op]`` calls of an operation."""

    def __init__(self, *, conditional_put: bool = True) -> None:
        super().__init__(conditional_put=conditional_put)
        self.failures: dict[str, int] = {}

    def _maybe_fail(self, op: str) -> None:
        remaining = self.failures.get(op, 0)
        if remaining > 0:
            self.failures[op] = remaining - 1
            raise BackendError(op, "injected failure")

    def put(self, name: str, data: bytes) -> None:
        self._maybe_fail("put")
        super().put(name, data)

    def put_if_absent(self, name: str, data: bytes) -> None:
        self._maybe_fail("put_if_absent")
        super().put_if_absent(name, data)

    def get(self, name: str) -> bytes:
        self._maybe_fail("get")
        return super().get(name)

    def list(self, prefix: str) -> list[str]:
        self._maybe_fail("list")
        return super().list(prefix)


def chunk_names(backend: MemoryBackend) -> list[str]:
    return [n for n in backend.objects if n.startswith("chunks/")]


@pytest.fixture
def config():
    """Small chunks so multi-chunk objects stay tiny."""
    return StashConfig(
        chunk_size_bytes=16,
        cache_budget_bytes=1 << 20,
        retry_backoff_base_ms=0,
        retry_backoff_max_ms=0,
    )


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def stash(backend, config):
    s = ChunkStash(backend, config=config, sleep=lambda _s: None)
    yield s
    s.close()
