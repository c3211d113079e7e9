"""Two-way reconciliation between two stashes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from chunkstash.errors import KeyNotFoundError
from chunkstash.index import IndexEntry
from chunkstash.stash import ChunkStash

logger = logging.getLogger(__name__)


@dataclass
class SyncAction:
    key: str
    direction: str  # 'left->right' or 'right->left'
    kind: str  # 'copy' or 'delete'
    version: int | None = None


@dataclass
class SyncReport:
    actions: list[SyncAction] = field(default_factory=list)
    in_sync: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "in_sync": list(self.in_sync),
            "actions": [a.__dict__ for a in self.actions],
        }


def _current(stash: ChunkStash, key: str) -> IndexEntry | None:
    try:
        return stash.index.resolve(key, include_deleted=True)
    except KeyNotFoundError:
        return None


def _newer(a: IndexEntry, b: IndexEntry) -> bool:
    return datetime.fromisoformat(a.created_at) > datetime.fromisoformat(b.created_at)


def _same(a: IndexEntry, b: IndexEntry) -> bool:
    if a.deleted or b.deleted:
        return a.deleted == b.deleted
    return a.content_hash == b.content_hash


def _apply(
    source: ChunkStash, target: ChunkStash, entry: IndexEntry, direction: str
) -> SyncAction:
    if entry.deleted:
        version = target.delete(entry.key)
        return SyncAction(entry.key, direction, "delete", version)
    data = source.read_version(entry.key, entry.version)
    version = target.write(entry.key, data, metadata=entry.metadata)
    return SyncAction(entry.key, direction, "copy", version)


def sync_stashes(left: ChunkStash, right: ChunkStash, *, dry_run: bool = False) -> SyncReport:
    """Make the current version of every key agree on both sides.

    A key present on one side only is copied across; when both sides differ
    the entry with the later ``created_at`` wins. Tombstones propagate like
    any other version, but a key deleted on a side that never had it is left
    alone.
    """
    report = SyncReport(dry_run=dry_run)
    keys = sorted(
        set(left.list_keys(include_deleted=True)) | set(right.list_keys(include_deleted=True))
    )

    for key in keys:
        l_entry = _current(left, key)
        r_entry = _current(right, key)
        if l_entry is not None and r_entry is not None and _same(l_entry, r_entry):
            report.in_sync.append(key)
            continue

        if l_entry is not None and (r_entry is None or _newer(l_entry, r_entry)):
            winner, source, target, direction = l_entry, left, right, "left->right"
            loser = r_entry
        elif r_entry is not None:
            winner, source, target, direction = r_entry, right, left, "right->left"
            loser = l_entry
        else:
            # Both markers vanished between listing and resolving.
            continue

        if winner.deleted and (loser is None or loser.deleted):
            report.in_sync.append(key)
            continue

        if dry_run:
            report.actions.append(
                SyncAction(key, direction, "delete" if winner.deleted else "copy")
            )
            continue

        action = _apply(source, target, winner, direction)
        logger.info("sync %s %s %s -> version %s", direction, action.kind, key, action.version)
        report.actions.append(action)

    return report
