"""Example 01: Basic Usage - Versioned Keys Over Content-Addressed Chunks.

This example demonstrates the fundamental operations:
- Opening a stash on a local directory with open_stash()
- Writing keys and reading them back, whole or by byte range
- Deduplication when the same bytes are written twice
- Version history and tombstone deletes
"""

import os
import tempfile

from chunkstash import StashConfig, open_stash
from chunkstash.errors import KeyNotFoundError


def main():
    """Run the basic usage example."""
    print("=" * 80)
    print("CHUNKSTASH BASIC USAGE EXAMPLE")
    print("=" * 80)

    # Step 1: Open a stash
    # Small chunks make the chunking visible in a tiny example.
    root = tempfile.mkdtemp(prefix="chunkstash-")
    config = StashConfig(chunk_size_bytes=64 * 1024)
    stash = open_stash(f"file://{root}", config)
    print(f"\n1. Opened stash at {root}")

    # Step 2: Write a key
    payload = os.urandom(200 * 1024)
    version = stash.write("reports/2024-q1.bin", payload, metadata={"owner": "finance"})
    entry = stash.stat("reports/2024-q1.bin")
    print(f"\n2. Wrote reports/2024-q1.bin as v{version}")
    print(f"   size={entry.size} chunks={len(entry.chunks)} hash={entry.content_hash[:12]}...")

    # Step 3: Read it back
    assert stash.read("reports/2024-q1.bin") == payload
    head = stash.read("reports/2024-q1.bin", 0, 16)
    print(f"\n3. Read back {len(payload)} bytes; first 16: {head.hex()}")

    # Step 4: Same bytes again
    # Every chunk already exists, so only a new index entry is committed.
    before = stash.chunks.stats()["chunks_uploaded"]
    version = stash.write("reports/2024-q1.bin", payload)
    after = stash.chunks.stats()["chunks_uploaded"]
    print(f"\n4. Rewrote the same bytes as v{version}; new chunks uploaded: {after - before}")

    # Step 5: History and deletes
    stash.write("scratch.txt", b"temporary")
    tombstone = stash.delete("scratch.txt")
    print(f"\n5. Deleted scratch.txt (tombstone v{tombstone})")
    try:
        stash.read("scratch.txt")
    except KeyNotFoundError as e:
        print(f"   read after delete: {e}")
    print(f"   versions of scratch.txt: {stash.list_versions('scratch.txt')}")
    print(f"   old version still readable: {stash.read_version('scratch.txt', 1)!r}")

    print(f"\n6. Live keys: {stash.list_keys()}")
    stash.close()


if __name__ == "__main__":
    main()
