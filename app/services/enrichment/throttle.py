"""Per-client fixed-window token bucket guarding the enrichment endpoint.

The limiter is process-local and best-effort. Buckets live in a
:class:`ThrottleStore`; the in-memory store is the default, and a shared
store can be injected for multi-instance deployments.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class ThrottleBucket:
    tokens: int
    window_start: float


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of a single throttle check."""

    allowed: bool
    remaining: int
    reset_in_ms: int


class ThrottleStore(Protocol):
    """Storage contract for throttle buckets.

    ``update`` must apply *mutate* atomically for a single key.
    """

    def update(
        self,
        key: str,
        mutate: Callable[[ThrottleBucket | None], tuple[ThrottleBucket, ThrottleDecision]],
    ) -> ThrottleDecision:
        ...

    def prune(self, older_than: float) -> int:
        ...


class InMemoryThrottleStore:
    """Thread-safe dict-backed bucket table."""

    def __init__(self) -> None:
        self._buckets: dict[str, ThrottleBucket] = {}
        self._lock = Lock()

    def update(
        self,
        key: str,
        mutate: Callable[[ThrottleBucket | None], tuple[ThrottleBucket, ThrottleDecision]],
    ) -> ThrottleDecision:
        with self._lock:
            bucket, decision = mutate(self._buckets.get(key))
            self._buckets[key] = bucket
            return decision

    def prune(self, older_than: float) -> int:
        with self._lock:
            stale = [key for key, bucket in self._buckets.items() if bucket.window_start < older_than]
            for key in stale:
                del self._buckets[key]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def get(self, key: str) -> ThrottleBucket | None:
        with self._lock:
            return self._buckets.get(key)


class RequestThrottle:
    """Fixed-window limiter: *capacity* requests per *window_seconds* per client."""

    def __init__(
        self,
        *,
        capacity: int,
        window_seconds: float,
        store: ThrottleStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._store = store if store is not None else InMemoryThrottleStore()
        self._clock = clock

    def check(self, identity: str) -> ThrottleDecision:
        """Consume one token for *identity* if any remain."""
        now = self._clock()
        window = self.window_seconds
        capacity = self.capacity

        def _mutate(bucket: ThrottleBucket | None) -> tuple[ThrottleBucket, ThrottleDecision]:
            if bucket is None or now - bucket.window_start > window:
                fresh = ThrottleBucket(tokens=capacity - 1, window_start=now)
                return fresh, ThrottleDecision(True, fresh.tokens, int(window * 1000))
            reset_in_ms = max(0, int((window - (now - bucket.window_start)) * 1000))
            if bucket.tokens <= 0:
                return bucket, ThrottleDecision(False, 0, max(1, reset_in_ms))
            bucket.tokens -= 1
            return bucket, ThrottleDecision(True, bucket.tokens, reset_in_ms)

        decision = self._store.update(identity, _mutate)
        if not decision.allowed:
            logger.warning(
                "throttle.denied",
                extra={"identity": identity, "reset_in_ms": decision.reset_in_ms},
            )
        return decision

    def prune(self) -> int:
        """Drop buckets whose window started more than two windows ago."""
        removed = self._store.prune(self._clock() - 2 * self.window_seconds)
        if removed:
            logger.debug("throttle.pruned", extra={"removed": removed})
        return removed


def resolve_client_identity(headers: Mapping[str, str]) -> str:
    """Pick the client key from proxy headers, falling back to ``unknown``."""
    forwarded = headers.get("x-forwarded-for") or ""
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    return real_ip or UNKNOWN_CLIENT
