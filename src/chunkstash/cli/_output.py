"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any

from chunkstash.index import IndexEntry


def format_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024 or unit == "GiB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{num_bytes} B"


def entry_summary(entry: IndexEntry) -> dict[str, Any]:
    """Flat view of an index entry for tables and JSON."""
    return {
        "key": entry.key,
        "version": entry.version,
        "size": entry.size,
        "chunks": len(entry.chunks),
        "content_hash": entry.content_hash,
        "created_at": entry.created_at,
        "deleted": entry.deleted,
        "writer_id": entry.writer_id,
        "metadata": dict(entry.metadata),
    }


def print_table(headers: list[str], rows: list[list[Any]], *, json_mode: bool = False) -> None:
    """Print rows as aligned columns, or as a JSON array of objects."""
    if json_mode:
        print(json.dumps([dict(zip(headers, row)) for row in rows], indent=2, default=str))
        return
    if not rows:
        return

    cells = [[str(v) for v in row] for row in rows]
    widths = [max([len(h)] + [len(r[i]) for r in cells if i < len(r)]) for i, h in enumerate(headers)]
    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    print("  ".join("-" * w for w in widths))
    for row in cells:
        print("  ".join(val.ljust(widths[i]) for i, val in enumerate(row)).rstrip())


def print_object(data: dict[str, Any], *, json_mode: bool = False) -> None:
    """Print a mapping as JSON or as ``key: value`` lines (nested maps indented)."""
    if json_mode:
        print(json.dumps(data, indent=2, default=str))
        return
    for k, v in data.items():
        if isinstance(v, dict):
            print(f"{k}:")
            for sub_k, sub_v in v.items():
                print(f"  {sub_k}: {sub_v}")
        else:
            print(f"{k}: {v}")


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
