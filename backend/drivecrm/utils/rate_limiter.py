"""Token-bucket rate limiting for mutating API calls.

Bucket state lives behind ``BucketStore`` so a shared store can replace the
in-process default when several workers serve the API.
"""
import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class Bucket:
    tokens: float
    updated_at: float


class BucketStore:
    """Storage interface for buckets keyed by client."""

    async def get(self, key: str) -> Optional[Bucket]:
        raise NotImplementedError

    async def put(self, key: str, bucket: Bucket) -> None:
        raise NotImplementedError

    async def prune(self, updated_before: float) -> None:
        """Drop buckets idle since before ``updated_before``. Optional for shared stores."""


class InMemoryBucketStore(BucketStore):
    """Single-process store, least recently updated first, capped at ``max_buckets``."""

    def __init__(self, max_buckets: int = 10000):
        self.max_buckets = max_buckets
        self._buckets: "OrderedDict[str, Bucket]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._buckets)

    async def get(self, key: str) -> Optional[Bucket]:
        return self._buckets.get(key)

    async def put(self, key: str, bucket: Bucket) -> None:
        self._buckets[key] = bucket
        self._buckets.move_to_end(key)
        while len(self._buckets) > self.max_buckets:
            self._buckets.popitem(last=False)

    async def prune(self, updated_before: float) -> None:
        while self._buckets:
            key, bucket = next(iter(self._buckets.items()))
            if bucket.updated_at >= updated_before:
                break
            del self._buckets[key]


class TokenBucketRateLimiter:
    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        store: Optional[BucketStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self.store = store or InMemoryBucketStore()
        self.clock = clock
        self._lock = asyncio.Lock()

    async def check(self, key: str, cost: float = 1.0) -> tuple[bool, Optional[str]]:
        """
        Take ``cost`` tokens from the bucket for ``key``.

        Returns:
            (allowed: bool, error_message: Optional[str])
        """
        async with self._lock:
            now = self.clock()
            if self.refill_per_second > 0:
                # A bucket idle long enough to refill completely is the same as a new one
                await self.store.prune(now - self.capacity / self.refill_per_second)
            bucket = await self.store.get(key)
            if bucket is None:
                bucket = Bucket(tokens=float(self.capacity), updated_at=now)
            else:
                elapsed = max(0.0, now - bucket.updated_at)
                bucket.tokens = min(float(self.capacity), bucket.tokens + elapsed * self.refill_per_second)
                bucket.updated_at = now

            if bucket.tokens < cost:
                await self.store.put(key, bucket)
                wait_seconds = int((cost - bucket.tokens) / self.refill_per_second) + 1 if self.refill_per_second else 0
                logger.warning(f"Rate limit exceeded for {key}")
                return False, f"Rate limit exceeded. Try again in {wait_seconds} seconds"

            bucket.tokens -= cost
            await self.store.put(key, bucket)
            return True, None
