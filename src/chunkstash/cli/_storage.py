"""CLI helpers for building configuration and opening stashes."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

import typer

from chunkstash.cli import _exitcodes as ec
from chunkstash.cli._output import print_error
from chunkstash.config import StashConfig
from chunkstash.errors import (
    BackendUnavailableError,
    ChunkStashError,
    IntegrityError,
    KeyNotFoundError,
    OperationTimeoutError,
    StorageTargetError,
    WriteConflictError,
)
from chunkstash.stash import ChunkStash, open_stash


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw else None


def config_from_env() -> StashConfig:
    """Build engine config from CHUNKSTASH_* environment variables."""
    kwargs: dict[str, object] = {}
    for field_name, env_name in (
        ("chunk_size_bytes", "CHUNKSTASH_CHUNK_SIZE_BYTES"),
        ("cache_budget_bytes", "CHUNKSTASH_CACHE_BUDGET_BYTES"),
        ("max_retry_attempts", "CHUNKSTASH_MAX_RETRY_ATTEMPTS"),
        ("retry_backoff_base_ms", "CHUNKSTASH_RETRY_BACKOFF_BASE_MS"),
        ("commit_conflict_retry_limit", "CHUNKSTASH_COMMIT_CONFLICT_RETRY_LIMIT"),
    ):
        value = _env_int(env_name)
        if value is not None:
            kwargs[field_name] = value
    deadline = os.getenv("CHUNKSTASH_OPERATION_DEADLINE_S")
    if deadline:
        kwargs["operation_deadline_s"] = float(deadline)
    conditional = os.getenv("CHUNKSTASH_S3_CONDITIONAL_WRITES")
    if conditional:
        kwargs["s3_conditional_writes"] = conditional.lower() not in {"0", "false", "no"}
    return StashConfig(
        disk_cache_dir=os.getenv("CHUNKSTASH_DISK_CACHE_DIR") or None,
        runtime_id=os.getenv("CHUNKSTASH_RUNTIME_ID") or None,
        s3_region=os.getenv("CHUNKSTASH_S3_REGION"),
        s3_endpoint_url=os.getenv("CHUNKSTASH_S3_ENDPOINT_URL")
        or os.getenv("CHUNKSTASH_S3_ENDPOINT"),
        **kwargs,  # type: ignore[arg-type]
    )


def exit_code_for(err: ChunkStashError) -> int:
    if isinstance(err, KeyNotFoundError):
        return ec.NOT_FOUND
    if isinstance(err, WriteConflictError):
        return ec.WRITE_CONFLICT
    if isinstance(err, IntegrityError):
        return ec.INTEGRITY_ERROR
    if isinstance(err, (BackendUnavailableError, OperationTimeoutError, StorageTargetError)):
        return ec.STORAGE_ERROR
    return ec.GENERAL_ERROR


def open_target(storage_uri: str | None = None) -> ChunkStash:
    """Open the stash named by ``storage_uri`` or the global --storage-uri."""
    from chunkstash.cli import state

    uri = storage_uri or state.storage_uri
    if not uri:
        print_error("No storage selected; pass --storage-uri or set CHUNKSTASH_STORAGE_URI")
        raise typer.Exit(ec.USAGE_ERROR)
    try:
        return open_stash(uri, config_from_env())
    except (ChunkStashError, ValueError) as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.STORAGE_ERROR)


@contextmanager
def opened(storage_uri: str | None = None) -> Iterator[ChunkStash]:
    """Open a stash and turn engine errors into CLI exit codes."""
    stash = open_target(storage_uri)
    try:
        yield stash
    except ChunkStashError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
    finally:
        stash.close()
