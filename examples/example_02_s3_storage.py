"""Example 02: S3 Storage Backend and Concurrent Writers.

This example runs against any S3-compatible endpoint:
- s3://bucket/prefix storage URIs
- endpoint_url for MinIO/LocalStack testing
- Several writers racing on one key, each landing on its own version
- Falling back to list-then-put commits for endpoints without conditional writes

Requirements:
  1. MinIO server running: docker run -p 9000:9000 minio/minio server /data
  2. AWS credentials configured (environment or AWS profile)
  3. The bucket named below exists

Environment:
  CHUNKSTASH_S3_ENDPOINT   default http://127.0.0.1:9000
  CHUNKSTASH_S3_BUCKET     default chunkstash-demo
"""

import dataclasses
import os
import threading
import uuid

from chunkstash import ChunkStash, StashConfig, open_stash
from chunkstash.storage_s3 import S3Backend


def main():
    """Run S3 storage example."""
    print("=" * 80)
    print("EXAMPLE 02: S3 STORAGE BACKEND AND CONCURRENT WRITERS")
    print("=" * 80)

    endpoint = os.getenv("CHUNKSTASH_S3_ENDPOINT", "http://127.0.0.1:9000")
    bucket = os.getenv("CHUNKSTASH_S3_BUCKET", "chunkstash-demo")
    prefix = f"demo/{uuid.uuid4().hex[:8]}"
    uri = f"s3://{bucket}/{prefix}"

    # Set s3_conditional_writes=False for endpoints that reject If-None-Match.
    config = StashConfig(
        chunk_size_bytes=1024 * 1024,
        s3_region="us-east-1",
        s3_endpoint_url=endpoint,
        commit_conflict_retry_limit=10,
    )

    with open_stash(uri, config) as stash:
        version = stash.write("config/app.json", b'{"replicas": 3}')
        print(f"\n1. Wrote config/app.json v{version} to {uri}")
        print(f"   commit strategy: {stash.storage_info()['commit_strategy']}")

    # Each writer has its own adapter and cache, like separate processes.
    results: dict[str, int] = {}
    lock = threading.Lock()

    def writer(name: str) -> None:
        backend = S3Backend(bucket=bucket, prefix=prefix, config=config)
        local = ChunkStash(backend, config=dataclasses.replace(config, runtime_id=name))
        v = local.write("config/app.json", f'{{"replicas": 3, "by": "{name}"}}'.encode())
        with lock:
            results[name] = v

    threads = [threading.Thread(target=writer, args=(f"worker-{i}",)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    print("\n2. Concurrent writers:")
    for name, v in sorted(results.items(), key=lambda kv: kv[1]):
        print(f"   {name} committed v{v}")

    with open_stash(uri, config) as stash:
        entry = stash.stat("config/app.json")
        print(f"\n3. Current version v{entry.version} written by {entry.writer_id}")
        print(f"   content: {stash.read('config/app.json').decode()}")


if __name__ == "__main__":
    main()
