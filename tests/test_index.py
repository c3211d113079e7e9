"""Tests for the metadata index and its two conditional-commit strategies."""

from __future__ import annotations

import pytest

from chunkstash.cache import LRUCache
from chunkstash.chunks import ChunkReference
from chunkstash.errors import BackendError, KeyNotFoundError
from chunkstash.index import (
    IndexEntry,
    ListThenPutConditionalPut,
    MetadataIndex,
    NativeConditionalPut,
    commit_marker_name,
    decode_key,
    encode_key,
    parse_version,
    dropped_name,
    pending_name,
)
from chunkstash.retry import RetryingBackend, RetryPolicy
from chunkstash.storage import MemoryBackend


def _entry(key: str, version: int, *, deleted: bool = False, size: int = 4) -> IndexEntry:
    return IndexEntry(
        key=key,
        version=version,
        chunks=() if deleted else (ChunkReference("h" * 64, 0, size),),
        size=0 if deleted else size,
        content_hash="c" * 64,
        deleted=deleted,
    )


def _index(backend: MemoryBackend, cache=None) -> MetadataIndex:
    transport = RetryingBackend(backend, RetryPolicy(backoff_base_ms=0), sleep=lambda _s: None)
    return MetadataIndex(transport, cache if cache is not None else LRUCache(1 << 20))


@pytest.fixture(params=[True, False], ids=["native", "list-then-put"])
def backend(request):
    return MemoryBackend(conditional_put=request.param)


class TestNaming:
    def test_keys_with_slashes_stay_in_one_prefix(self):
        assert encode_key("a/b") == "a%2Fb"
        assert decode_key(encode_key("a/b c")) == "a/b c"
        assert commit_marker_name("a/b", 3) == "index/a%2Fb/000000000003.commit"

    def test_dots_are_escaped(self):
        assert encode_key(".") == "%2E"
        assert encode_key("..") == "%2E%2E"
        assert encode_key(".tmp-x").startswith("%2E")
        assert decode_key(encode_key("a/../b.txt")) == "a/../b.txt"
        assert commit_marker_name("..", 1) == "index/%2E%2E/000000000001.commit"

    def test_empty_key_is_rejected(self):
        with pytest.raises(ValueError):
            encode_key("")

    def test_parse_version(self):
        assert parse_version("index/k/000000000042.commit", ".commit") == 42
        assert parse_version(pending_name("k", 7, "abc"), ".pending") == 7
        assert parse_version("index/k/000000000042.commit", ".pending") is None
        assert parse_version("index/k/garbage.commit", ".commit") is None

    def test_entry_json_roundtrip(self):
        entry = IndexEntry(
            key="k",
            version=2,
            chunks=(ChunkReference("a" * 64, 0, 3), ChunkReference("b" * 64, 3, 1)),
            size=4,
            content_hash="d" * 64,
            writer_id="w1",
            metadata={"mtime": "2024-01-01T00:00:00+00:00"},
        )
        assert IndexEntry.from_json(entry.to_json()) == entry

    def test_each_attempt_gets_its_own_commit_id(self):
        entry = _entry("k", 1)
        retry = entry.with_version(2)
        assert retry.commit_id != entry.commit_id
        assert _entry("k", 1).commit_id != entry.commit_id


class TestCommitAndResolve:
    def test_resolve_missing_key(self, backend):
        with pytest.raises(KeyNotFoundError):
            _index(backend).resolve("nope")

    def test_commit_then_resolve(self, backend):
        index = _index(backend)
        assert index.commit(_entry("k", 1))
        resolved = index.resolve("k")
        assert resolved.version == 1
        assert index.list_versions("k") == [1]

    def test_dropped_version_stays_taken(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1))
        index.commit(_entry("k", 2))
        index.drop_version("k", 2)
        assert dropped_name("k", 2) in backend.objects
        assert index.latest_version("k") == 2
        assert index.list_keys() == ["k"]

    def test_resolve_picks_highest_version(self, backend):
        index = _index(backend)
        for v in (1, 2, 3):
            assert index.commit(_entry("k", v, size=v))
        assert index.resolve("k").size == 3
        assert index.latest_version("k") == 3

    def test_same_version_commits_once(self, backend):
        index = _index(backend)
        assert index.commit(_entry("k", 1, size=1))
        assert not index.commit(_entry("k", 1, size=2))
        assert _index(backend, LRUCache(0)).resolve("k").size == 1

    def test_strategy_follows_backend_capability(self, backend):
        index = _index(backend)
        expected = NativeConditionalPut if backend.supports_conditional_put else ListThenPutConditionalPut
        assert isinstance(index.conditional_put, expected)

    def test_provisional_entries_are_cleaned_up(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1))
        assert not [n for n in backend.objects if n.endswith(".pending")]

    def test_pending_version_is_invisible(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1))
        backend.put(pending_name("k", 2, "inflight"), _entry("k", 2).to_json())
        assert index.resolve("k").version == 1
        assert index.list_pending("k") == [2]
        assert index.list_versions("k") == [1]

    def test_tombstone_hides_key(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1))
        index.commit(_entry("k", 2, deleted=True))
        with pytest.raises(KeyNotFoundError):
            index.resolve("k")
        assert index.resolve("k", include_deleted=True).deleted
        assert index.latest_version("k") == 2

    def test_get_version(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1, size=1))
        index.commit(_entry("k", 2, size=2))
        assert index.get_version("k", 1).size == 1
        with pytest.raises(KeyNotFoundError) as exc:
            index.get_version("k", 9)
        assert exc.value.version == 9

    def test_drop_version_falls_back_to_previous(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1, size=1))
        index.commit(_entry("k", 2, size=2))
        index.drop_version("k", 2)
        assert index.resolve("k").size == 1
        assert index.list_versions("k") == [1]

    def test_list_keys(self, backend):
        index = _index(backend)
        index.commit(_entry("b/2", 1))
        index.commit(_entry("a", 1))
        backend.put(pending_name("ghost", 1, "x"), b"{}")
        assert index.list_keys() == ["a", "b/2"]

    def test_resolve_uses_cached_entry(self, backend):
        index = _index(backend)
        index.commit(_entry("k", 1))
        gets = backend.calls["get"]
        index.resolve("k")
        index.resolve("k")
        assert backend.calls["get"] == gets


class TestListThenPut:
    def test_read_back_detects_overwrite(self):
        class Racing(MemoryBackend):
            """Another writer's PUT lands right after ours."""

            def put(self, name: str, data: bytes) -> None:
                super().put(name, data)
                if name.endswith(".commit"):
                    super().put(name, b'{"other": true}')

        backend = Racing(conditional_put=False)
        index = _index(backend)
        assert not index.commit(_entry("k", 1))


class TestNative:
    def test_retried_create_recognises_its_own_marker(self):
        class LostResponse(MemoryBackend):
            """The first marker create lands but the caller sees a network error."""

            dropped = False

            def put_if_absent(self, name: str, data: bytes) -> None:
                super().put_if_absent(name, data)
                if name.endswith(".commit") and not self.dropped:
                    self.dropped = True
                    raise BackendError("put_if_absent", "connection reset")

        index = _index(LostResponse())
        assert index.commit(_entry("k", 1))
        assert index.resolve("k").version == 1

    def test_identical_entry_from_another_attempt_loses(self):
        index = _index(MemoryBackend())
        first = _entry("k", 1)
        assert index.commit(first)
        # Same payload, metadata and timestamp; only the attempt differs.
        twin = IndexEntry.from_dict({**first.to_dict(), "commit_id": "another-attempt"})
        assert {**twin.to_dict(), "commit_id": first.commit_id} == first.to_dict()
        assert not index.commit(twin)
        assert index.resolve("k").commit_id == first.commit_id
