"""Configuration for the chunkstash storage engine."""

from __future__ import annotations

from dataclasses import dataclass

MIB = 1024 * 1024


@dataclass
class StashConfig:
    """Configuration for a ChunkStash instance and its components."""

    chunk_size_bytes: int = 4 * MIB
    cache_budget_bytes: int = 256 * MIB
    disk_cache_dir: str | None = None
    disk_cache_budget_bytes: int = 1024 * MIB
    max_retry_attempts: int = 5
    retry_backoff_base_ms: int = 50
    retry_backoff_max_ms: int = 5000
    commit_conflict_retry_limit: int = 5
    operation_deadline_s: float | None = None
    verify_chunk_existence: bool = True
    transfer_concurrency: int = 4
    runtime_id: str | None = None
    s3_region: str | None = None
    s3_endpoint_url: str | None = None
    s3_request_timeout_s: float = 10.0
    s3_conditional_writes: bool = True

    def __post_init__(self) -> None:
        if self.chunk_size_bytes <= 0:
            raise ValueError("chunk_size_bytes must be positive")
        if self.cache_budget_bytes < 0 or self.disk_cache_budget_bytes < 0:
            raise ValueError("cache budgets must not be negative")
        if self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be at least 1")
        if self.commit_conflict_retry_limit < 1:
            raise ValueError("commit_conflict_retry_limit must be at least 1")
        if self.retry_backoff_base_ms < 0 or self.retry_backoff_max_ms < 0:
            raise ValueError("retry backoff values must not be negative")
        if self.operation_deadline_s is not None and self.operation_deadline_s <= 0:
            raise ValueError("operation_deadline_s must be positive when set")
        if self.transfer_concurrency < 1:
            raise ValueError("transfer_concurrency must be at least 1")
