"""Bounded retry with deterministic backoff around backend adapter calls."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from chunkstash.config import StashConfig
from chunkstash.errors import BackendError, BackendUnavailableError, OperationTimeoutError
from chunkstash.storage import ObjectBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit plus exponential backoff schedule (no jitter)."""

    max_attempts: int = 5
    backoff_base_ms: int = 50
    backoff_max_ms: int = 5000

    @classmethod
    def from_config(cls, config: StashConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_retry_attempts,
            backoff_base_ms=config.retry_backoff_base_ms,
            backoff_max_ms=config.retry_backoff_max_ms,
        )

    def delay_ms(self, failed_attempts: int) -> int:
        """Delay before the next attempt after ``failed_attempts`` failures (>= 1)."""
        exponent = max(0, failed_attempts - 1)
        return min(self.backoff_base_ms * (2**exponent), self.backoff_max_ms)

    def schedule(self) -> list[int]:
        """All delays a fully failing call would sleep through, in order."""
        return [self.delay_ms(n) for n in range(1, self.max_attempts)]


class Deadline:
    """Total time budget of one caller operation, shared by all of its backend calls."""

    def __init__(
        self,
        seconds: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.seconds = seconds
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unlimited(cls) -> Deadline:
        return cls(None)

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self, operation: str) -> None:
        if self.seconds is not None and self.expired():
            raise OperationTimeoutError(operation, self.seconds)

    def sleep(self, operation: str, delay_s: float, sleep: Callable[[float], None]) -> None:
        """Sleep for ``delay_s`` unless that would overrun the deadline."""
        remaining = self.remaining()
        if self.seconds is not None and remaining is not None and delay_s >= remaining:
            raise OperationTimeoutError(operation, self.seconds)
        if delay_s > 0:
            sleep(delay_s)


def call_with_retry(
    operation: str,
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    deadline: Deadline | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn`` until it succeeds, fails permanently, or attempts run out.

    Only transient ``BackendError`` failures are retried. Every other
    exception (not-found, already-exists, integrity) propagates on the first
    occurrence.
    """
    deadline = deadline or Deadline.unlimited()
    attempt = 0
    while True:
        deadline.check(operation)
        attempt += 1
        try:
            return fn()
        except BackendError as e:
            if not e.transient:
                raise
            if attempt >= policy.max_attempts:
                raise BackendUnavailableError(operation, attempt) from e
            delay_ms = policy.delay_ms(attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %dms: %s",
                operation,
                attempt,
                policy.max_attempts,
                delay_ms,
                e.detail,
            )
            deadline.sleep(operation, delay_ms / 1000.0, sleep)


class RetryingBackend:
    """Wraps an adapter so every call goes through ``call_with_retry``."""

    def __init__(
        self,
        backend: ObjectBackend,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.policy = policy
        self._sleep = sleep

    @property
    def supports_conditional_put(self) -> bool:
        return bool(getattr(self.backend, "supports_conditional_put", False))

    def _call(self, operation: str, fn: Callable[[], T], deadline: Deadline | None) -> T:
        return call_with_retry(
            operation, fn, policy=self.policy, deadline=deadline, sleep=self._sleep
        )

    def put(self, name: str, data: bytes, *, deadline: Deadline | None = None) -> None:
        self._call(f"put {name}", lambda: self.backend.put(name, data), deadline)

    def put_if_absent(self, name: str, data: bytes, *, deadline: Deadline | None = None) -> None:
        self._call(f"put_if_absent {name}", lambda: self.backend.put_if_absent(name, data), deadline)

    def get(self, name: str, *, deadline: Deadline | None = None) -> bytes:
        return self._call(f"get {name}", lambda: self.backend.get(name), deadline)

    def delete(self, name: str, *, deadline: Deadline | None = None) -> None:
        self._call(f"delete {name}", lambda: self.backend.delete(name), deadline)

    def list(self, prefix: str, *, deadline: Deadline | None = None) -> list[str]:
        return self._call(f"list {prefix}", lambda: self.backend.list(prefix), deadline)
