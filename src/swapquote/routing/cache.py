"""In-memory TTL cache for aggregated quotes.

Entries expire lazily on read and are also removed by a periodic sweep.
Concurrent misses for the same key share one upstream fetch.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from swapquote.routing.amounts import canonical_amount
from swapquote.tokens import Token

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15.0
DEFAULT_SWEEP_INTERVAL = 60.0


@dataclass(frozen=True)
class CacheKey:
    """Identity of a quote request; amounts are compared canonically."""

    chain_in: int
    address_in: str
    chain_out: int
    address_out: str
    amount_in: str
    source: Optional[str] = None

    def __str__(self) -> str:
        scope = self.source or "all"
        return (
            f"{self.chain_in}:{self.address_in}->{self.chain_out}:{self.address_out}"
            f"@{self.amount_in}[{scope}]"
        )


def make_key(
    token_in: Token,
    token_out: Token,
    amount_in: str,
    source: Optional[str] = None,
) -> CacheKey:
    """Build a cache key; "1.50" and "1.5" map to the same entry."""
    return CacheKey(
        chain_in=token_in.chain_id,
        address_in=token_in.address.lower(),
        chain_out=token_out.chain_id,
        address_out=token_out.address.lower(),
        amount_in=canonical_amount(amount_in),
        source=source,
    )


@dataclass
class CacheEntry:
    key: CacheKey
    value: Any
    stored_at: float
    ttl_seconds: float

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class QuoteCache:
    """TTL cache with lazy eviction, a background sweep and single-flight fetch.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests
    inject a fake to move time forward deterministically.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        self.default_ttl_seconds = default_ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._key_locks: dict[CacheKey, asyncio.Lock] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the live value for ``key``, or None. Expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key}")
            return None
        self.hits += 1
        return entry.value

    def set(self, key: CacheKey, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = CacheEntry(key, value, self._clock(), ttl)

    def invalidate(self, key: CacheKey) -> bool:
        """Remove one entry. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Delete every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        for key in [k for k, lock in self._key_locks.items() if not lock.locked()]:
            if key not in self._entries:
                del self._key_locks[key]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entr(y/ies)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def _lock_for(self, key: CacheKey) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    async def get_or_fetch(
        self,
        key: CacheKey,
        fetch: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[float] = None,
    ) -> Any:
        """Return the cached value or run ``fetch`` once for all concurrent callers.

        Callers that arrive while a fetch for the same key is running wait
        for it and then read its result from the cache. A failed fetch
        stores nothing, and the next waiter tries again.
        """
        value = self.get(key)
        if value is not None:
            return value

        async with self._lock_for(key):
            # another caller may have filled the entry while we waited
            entry = self._entries.get(key)
            if entry is not None and not entry.is_expired(self._clock()):
                self.hits += 1
                return entry.value

            value = await fetch()
            self.set(key, value, ttl_seconds)
            return value

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="quote-cache-sweep")
        logger.debug(f"Cache sweep started (every {self.sweep_interval_seconds}s)")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()

    async def close(self) -> None:
        """Stop the sweep task. Entries are kept."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def stats(self) -> dict:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }
