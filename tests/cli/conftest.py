"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from chunkstash import StashConfig, open_stash
from chunkstash.cli import app

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def small_chunks(monkeypatch):
    monkeypatch.delenv("CHUNKSTASH_STORAGE_URI", raising=False)
    monkeypatch.setenv("CHUNKSTASH_CHUNK_SIZE_BYTES", "8")


@pytest.fixture
def store_uri(tmp_path):
    """A file:// stash under the test's temp directory."""
    return f"file://{tmp_path}/store"


@pytest.fixture
def seeded_uri(store_uri):
    """A stash holding a live key, a key with two versions and a deleted key."""
    with open_stash(store_uri, StashConfig(chunk_size_bytes=8)) as stash:
        stash.write("docs/readme.txt", b"hello chunkstash", metadata={"owner": "ops"})
        stash.write("data.bin", b"version one")
        stash.write("data.bin", b"version two!")
        stash.write("old.txt", b"bye")
        stash.delete("old.txt")
    return store_uri


def invoke(
    runner: CliRunner, args: list[str], storage_uri: str | None = None, **kwargs
) -> "Result":
    """Invoke the CLI with --storage-uri injected before the subcommand."""
    if storage_uri:
        args = ["--storage-uri", storage_uri, *args]
    return runner.invoke(app, args, **kwargs)
