"""Tests for storage URIs and the local filesystem adapter."""

from __future__ import annotations

import os

import pytest

from chunkstash import StashConfig
from chunkstash.errors import BackendError, ObjectExistsError, ObjectNotFoundError, StorageTargetError
from chunkstash.storage import (
    MemoryBackend,
    ObjectBackend,
    StorageTarget,
    open_backend,
    parse_storage_target,
)
from chunkstash.storage_local import LocalBackend


class TestParseStorageTarget:
    def test_memory(self):
        assert parse_storage_target("memory://").backend == "memory"

    def test_file_absolute(self):
        target = parse_storage_target("file:///var/data/stash")
        assert target.backend == "file"
        assert target.path == "/var/data/stash"

    def test_file_relative(self):
        assert parse_storage_target("file://data/stash").path == "data/stash"

    def test_s3_with_prefix(self):
        target = parse_storage_target("s3://bucket/team/stash/")
        assert target.backend == "s3"
        assert target.bucket == "bucket"
        assert target.prefix == "team/stash"

    def test_s3_without_prefix(self):
        target = parse_storage_target("s3://bucket")
        assert target.prefix == ""

    @pytest.mark.parametrize("uri", ["s3://", "file://", "gs://bucket", "/plain/path"])
    def test_rejected(self, uri):
        with pytest.raises(StorageTargetError):
            parse_storage_target(uri)

    def test_open_backend_local(self, tmp_path):
        backend = open_backend(f"file://{tmp_path}/objects", StashConfig())
        assert isinstance(backend, LocalBackend)
        assert (tmp_path / "objects").is_dir()

    @pytest.mark.parametrize(
        "target",
        [
            StorageTarget(backend="file", uri="file://"),
            StorageTarget(backend="s3", uri="s3://"),
        ],
        ids=["file-without-path", "s3-without-bucket"],
    )
    def test_open_backend_rejects_incomplete_target(self, monkeypatch, target):
        import chunkstash.storage

        monkeypatch.setattr(chunkstash.storage, "parse_storage_target", lambda _uri: target)
        with pytest.raises(StorageTargetError):
            open_backend(target.uri)


@pytest.fixture(params=["memory", "local"])
def any_backend(request, tmp_path):
    if request.param == "memory":
        return MemoryBackend()
    return LocalBackend(tmp_path / "root")


class TestAdapterContract:
    def test_satisfies_protocol(self, any_backend):
        assert isinstance(any_backend, ObjectBackend)

    def test_put_get(self, any_backend):
        any_backend.put("chunks/abc", b"data")
        assert any_backend.get("chunks/abc") == b"data"

    def test_put_overwrites(self, any_backend):
        any_backend.put("a", b"1")
        any_backend.put("a", b"2")
        assert any_backend.get("a") == b"2"

    def test_get_missing(self, any_backend):
        with pytest.raises(ObjectNotFoundError):
            any_backend.get("nope")

    def test_put_if_absent(self, any_backend):
        any_backend.put_if_absent("index/k/1.commit", b"first")
        with pytest.raises(ObjectExistsError):
            any_backend.put_if_absent("index/k/1.commit", b"second")
        assert any_backend.get("index/k/1.commit") == b"first"

    def test_delete_is_idempotent(self, any_backend):
        any_backend.put("a", b"1")
        any_backend.delete("a")
        any_backend.delete("a")
        with pytest.raises(ObjectNotFoundError):
            any_backend.get("a")

    def test_list_by_prefix(self, any_backend):
        for name in ["index/a/1.commit", "index/a/2.commit", "index/b/1.commit", "chunks/x"]:
            any_backend.put(name, b"")
        assert any_backend.list("index/a/") == ["index/a/1.commit", "index/a/2.commit"]
        assert any_backend.list("index/") == [
            "index/a/1.commit",
            "index/a/2.commit",
            "index/b/1.commit",
        ]
        assert any_backend.list("missing/") == []


class TestLocalBackend:
    @pytest.mark.parametrize("name", ["../escape", "a/../b", "/abs", "chunks/.tmp-x"])
    def test_invalid_names(self, tmp_path, name):
        backend = LocalBackend(tmp_path)
        with pytest.raises(BackendError) as exc:
            backend.put(name, b"")
        assert not exc.value.transient

    def test_list_skips_temp_files(self, tmp_path):
        backend = LocalBackend(tmp_path)
        backend.put("chunks/a", b"1")
        (tmp_path / "chunks" / ".tmp-leftover").write_bytes(b"partial")
        assert backend.list("chunks/") == ["chunks/a"]

    def test_put_if_absent_leaves_no_temp_file(self, tmp_path):
        backend = LocalBackend(tmp_path)
        backend.put_if_absent("x", b"1")
        with pytest.raises(ObjectExistsError):
            backend.put_if_absent("x", b"2")
        assert sorted(os.listdir(tmp_path)) == ["x"]

    def test_root_must_be_directory(self, tmp_path):
        f = tmp_path / "file"
        f.write_bytes(b"")
        with pytest.raises(BackendError):
            LocalBackend(f)

    def test_list_partial_segment_prefix(self, tmp_path):
        backend = LocalBackend(tmp_path)
        backend.put("index/abc/1.commit", b"")
        backend.put("index/abd/1.commit", b"")
        assert backend.list("index/ab") == ["index/abc/1.commit", "index/abd/1.commit"]


def test_cache_namespace_identifies_the_store(tmp_path):
    assert MemoryBackend().cache_namespace != MemoryBackend().cache_namespace
    assert LocalBackend(tmp_path / "a").cache_namespace == LocalBackend(tmp_path / "a").cache_namespace
    assert LocalBackend(tmp_path / "a").cache_namespace != LocalBackend(tmp_path / "b").cache_namespace
