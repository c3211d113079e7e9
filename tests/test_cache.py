"""Tests for the LRU, disk and tiered caches."""

from __future__ import annotations

import threading

from chunkstash.cache import DiskCache, LRUCache, TieredCache, build_cache


class TestLRUCache:
    def test_get_miss_returns_none(self):
        cache = LRUCache(100)
        assert cache.get("nope") is None
        assert cache.stats()["misses"] == 1

    def test_put_then_get(self):
        cache = LRUCache(100)
        cache.put("a", b"hello")
        assert cache.get("a") == b"hello"
        assert cache.size_bytes == 5

    def test_evicts_least_recently_used(self):
        cache = LRUCache(10)
        cache.put("a", b"aaaa")
        cache.put("b", b"bbbb")
        cache.get("a")
        cache.put("c", b"cccc")
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.size_bytes <= 10
        assert cache.stats()["evictions"] == 1

    def test_oversized_payload_is_not_cached(self):
        cache = LRUCache(4)
        cache.put("big", b"12345")
        assert cache.get("big") is None
        assert len(cache) == 0

    def test_replacing_entry_updates_size(self):
        cache = LRUCache(100)
        cache.put("a", b"1234")
        cache.put("a", b"12")
        assert cache.size_bytes == 2
        assert len(cache) == 1

    def test_discard_and_clear(self):
        cache = LRUCache(100)
        cache.put("a", b"1")
        cache.put("b", b"2")
        cache.discard("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0
        assert cache.size_bytes == 0

    def test_zero_budget_caches_nothing(self):
        cache = LRUCache(0)
        cache.put("a", b"x")
        assert cache.get("a") is None

    def test_concurrent_puts_respect_budget(self):
        cache = LRUCache(1000)

        def worker(n: int) -> None:
            for i in range(200):
                cache.put(f"{n}-{i}", b"x" * 10)
                cache.get(f"{n}-{i // 2}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert cache.size_bytes <= 1000
        assert cache.size_bytes == 10 * len(cache)


class TestDiskCache:
    def test_roundtrip_and_eviction(self, tmp_path):
        cache = DiskCache(tmp_path / "c", budget_bytes=8)
        cache.put("a", b"aaaa")
        cache.put("b", b"bbbb")
        assert cache.get("a") == b"aaaa"
        cache.put("c", b"cccc")
        assert cache.get("b") is None
        assert cache.get("a") == b"aaaa"
        assert len(list((tmp_path / "c").glob("*.blob"))) == 2

    def test_survives_restart(self, tmp_path):
        DiskCache(tmp_path, budget_bytes=100).put("k", b"payload")
        reopened = DiskCache(tmp_path, budget_bytes=100)
        assert reopened.get("k") == b"payload"

    def test_missing_file_degrades_to_miss(self, tmp_path):
        cache = DiskCache(tmp_path, budget_bytes=100)
        cache.put("k", b"payload")
        for path in tmp_path.glob("*.blob"):
            path.unlink()
        assert cache.get("k") is None


class TestTieredCache:
    def test_disk_hit_is_promoted_to_memory(self, tmp_path):
        disk = DiskCache(tmp_path, budget_bytes=100)
        disk.put("k", b"v")
        tiered = TieredCache(LRUCache(100), disk)
        assert tiered.get("k") == b"v"
        assert "k" in tiered.memory

    def test_build_cache_without_disk(self):
        cache = build_cache(100)
        assert cache.disk is None
        cache.put("k", b"v")
        assert cache.get("k") == b"v"
        assert "memory_entries" in cache.stats()
