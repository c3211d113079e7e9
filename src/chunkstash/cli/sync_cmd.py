"""stash sync: reconcile two storage targets in both directions."""

from __future__ import annotations

import typer

from chunkstash.cli._output import print_object, print_table
from chunkstash.cli._storage import opened
from chunkstash.sync import sync_stashes


def sync_cmd(
    other_uri: str = typer.Argument(..., help="Storage URI to reconcile with --storage-uri"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only report what would change"),
) -> None:
    """Make every key's current version agree between two storage targets."""
    from chunkstash.cli import state

    with opened() as left, opened(other_uri) as right:
        report = sync_stashes(left, right, dry_run=dry_run)

    if state.json_output:
        print_object(report.to_dict(), json_mode=True)
        return
    rows = [[a.key, a.direction, a.kind, a.version or ""] for a in report.actions]
    print_table(["key", "direction", "action", "version"], rows)
    verb = "would change" if dry_run else "changed"
    print(f"{len(report.actions)} key(s) {verb}, {len(report.in_sync)} already in sync")
