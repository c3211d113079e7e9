"""stash put/get/rm/ls/versions/stat: per-key commands."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

import typer

from chunkstash.cli import _exitcodes as ec
from chunkstash.cli._output import (
    entry_summary,
    format_size,
    print_error,
    print_object,
    print_table,
)
from chunkstash.cli._storage import opened


def _parse_meta(pairs: list[str]) -> dict[str, str]:
    meta: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            print_error(f"Invalid --meta value '{pair}', expected NAME=VALUE")
            raise typer.Exit(ec.USAGE_ERROR)
        meta[name] = value
    return meta


def put_cmd(
    key: str = typer.Argument(..., help="Logical key to write"),
    source: str = typer.Argument(..., help="File to upload, or '-' for stdin"),
    meta: Optional[List[str]] = typer.Option(
        None, "--meta", "-m", help="Metadata NAME=VALUE (repeatable)"
    ),
) -> None:
    """Write a file as the next version of KEY."""
    from chunkstash.cli import state

    metadata = _parse_meta(meta or [])
    if source == "-":
        data = sys.stdin.buffer.read()
    else:
        try:
            data = Path(source).read_bytes()
        except OSError as e:
            print_error(f"Cannot read {source}: {e}")
            raise typer.Exit(ec.USAGE_ERROR)

    with opened() as stash:
        version = stash.write(key, data, metadata=metadata)
        stats = stash.chunks.stats()

    result = {
        "key": key,
        "version": version,
        "size": len(data),
        "chunks_uploaded": stats["chunks_uploaded"],
        "chunks_deduplicated": stats["chunks_deduplicated"],
    }
    if state.json_output:
        print_object(result, json_mode=True)
    else:
        print(
            f"Wrote {key} v{version} ({format_size(len(data))}, "
            f"{stats['chunks_uploaded']} new chunk(s), "
            f"{stats['chunks_deduplicated']} deduplicated)"
        )


def get_cmd(
    key: str = typer.Argument(..., help="Logical key to read"),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write to this file instead of stdout"
    ),
    version: Optional[int] = typer.Option(None, "--version-id", help="Read a specific version"),
    start: Optional[int] = typer.Option(None, "--start", help="First byte offset (inclusive)"),
    end: Optional[int] = typer.Option(None, "--end", help="Last byte offset (exclusive)"),
) -> None:
    """Read the current (or a given) version of KEY."""
    try:
        with opened() as stash:
            if version is None:
                data = stash.read(key, start, end)
            else:
                data = stash.read_version(key, version, start, end)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    if output:
        Path(output).write_bytes(data)
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()


def rm_cmd(key: str = typer.Argument(..., help="Logical key to delete")) -> None:
    """Delete KEY by committing a tombstone version."""
    from chunkstash.cli import state

    with opened() as stash:
        version = stash.delete(key)
    if state.json_output:
        print_object({"key": key, "tombstone_version": version}, json_mode=True)
    else:
        print(f"Deleted {key} (tombstone v{version})")


def ls_cmd(
    prefix: str = typer.Argument("", help="Only keys starting with this prefix"),
    all_keys: bool = typer.Option(False, "--all", help="Include deleted keys"),
    long: bool = typer.Option(False, "--long", "-l", help="Show version, size and timestamp"),
) -> None:
    """List keys."""
    from chunkstash.cli import state

    with opened() as stash:
        keys = [k for k in stash.list_keys(include_deleted=all_keys) if k.startswith(prefix)]
        if not long:
            if state.json_output:
                print_object({"keys": keys}, json_mode=True)
            else:
                for key in keys:
                    print(key)
            return
        rows = []
        for key in keys:
            entry = stash.index.resolve(key, include_deleted=True)
            rows.append(
                [key, entry.version, entry.size, entry.created_at, "yes" if entry.deleted else ""]
            )

    print_table(
        ["key", "version", "size", "created_at", "deleted"], rows, json_mode=state.json_output
    )


def versions_cmd(key: str = typer.Argument(..., help="Logical key")) -> None:
    """List committed versions of KEY."""
    from chunkstash.cli import state

    with opened() as stash:
        rows = []
        for version in stash.list_versions(key):
            entry = stash.index.get_version(key, version)
            rows.append([version, entry.size, entry.created_at, "yes" if entry.deleted else ""])
        pending = stash.index.list_pending(key)

    if not rows:
        print_error(f"Key not found: '{key}'")
        raise typer.Exit(ec.NOT_FOUND)
    print_table(["version", "size", "created_at", "deleted"], rows, json_mode=state.json_output)
    if pending and not state.json_output:
        print(f"\nIn-flight versions: {', '.join(str(v) for v in pending)}")


def stat_cmd(key: str = typer.Argument(..., help="Logical key")) -> None:
    """Show the current index entry of KEY."""
    from chunkstash.cli import state

    with opened() as stash:
        entry = stash.stat(key)
    print_object(entry_summary(entry), json_mode=state.json_output)
