"""stash info: show backend, layout and cache/engine settings."""

from __future__ import annotations

from typing import Any

import typer

from chunkstash.cli._output import format_size, print_object
from chunkstash.cli._storage import opened


def info_cmd(
    stats: bool = typer.Option(False, "--stats", help="Count keys and committed versions"),
) -> None:
    """Show storage backend status and engine configuration."""
    from chunkstash.cli import state

    with opened() as stash:
        info = stash.storage_info()
        data: dict[str, Any] = {
            "storage_uri": info.get("storage_uri"),
            "backend": info.get("backend"),
            "commit_strategy": info.get("commit_strategy"),
            "chunk_size_bytes": info.get("chunk_size_bytes"),
        }
        for field in ("root", "bucket", "prefix"):
            if field in info:
                data[field] = info[field]
        if stats:
            keys = stash.list_keys(include_deleted=True)
            live = stash.list_keys()
            data["keys"] = len(live)
            data["deleted_keys"] = len(keys) - len(live)
            data["versions"] = sum(len(stash.list_versions(k)) for k in keys)

    if state.json_output:
        print_object(data, json_mode=True)
        return

    print(f"Backend: {data['backend']}")
    print(f"Storage URI: {data['storage_uri']}")
    if "root" in data:
        print(f"Root: {data['root']}")
    if "bucket" in data:
        print(f"Bucket: {data['bucket']}")
        print(f"Prefix: {data.get('prefix') or '(none)'}")
    print(f"Commit strategy: {data['commit_strategy']}")
    print(f"Chunk size: {format_size(int(data['chunk_size_bytes']))}")
    if stats:
        print(f"\nKeys: {data['keys']} live, {data['deleted_keys']} deleted")
        print(f"Committed versions: {data['versions']}")
