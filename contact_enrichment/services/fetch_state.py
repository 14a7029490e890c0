"""Process-local state shared by concurrent fetches: per-domain throttle and response cache."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class DomainThrottle:
    """Ensures at least ``min_interval`` seconds between requests to one domain.

    Callers for the same domain queue on a per-domain lock, so a burst of
    concurrent fetches is spread out instead of all waking at once. Domains
    with no caller and no request within the interval are forgotten.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._last_request: dict[str, float] = {}
        self._init_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._locks)

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def last_request(self, domain: str) -> float | None:
        return self._last_request.get(domain.lower())

    def _prune(self, now: float) -> None:
        idle = [
            key for key in self._locks
            if not self._users.get(key)
            and now - self._last_request.get(key, now) >= self._min_interval
        ]
        for key in idle:
            del self._locks[key]
            self._users.pop(key, None)
            self._last_request.pop(key, None)

    async def wait(self, domain: str) -> float:
        """Suspend until ``domain`` may be requested again; return seconds waited."""
        key = (domain or "").lower()

        async with self._init_lock:
            self._prune(self._clock())
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1

        try:
            async with lock:
                waited = 0.0
                last = self._last_request.get(key)
                if last is not None and self._min_interval > 0:
                    delta = self._clock() - last
                    if delta < self._min_interval:
                        waited = self._min_interval - delta
                        logger.debug("Throttling %s for %.2fs", key, waited)
                        await self._sleep(waited)
                self._last_request[key] = self._clock()
                return waited
        finally:
            self._users[key] -= 1


@dataclass
class CacheEntry:
    url: str
    html: str
    final_url: str
    status_code: int
    fetched_at: datetime
    stored_at: float


class FetchCache:
    """In-memory response cache keyed by normalized URL, with a fixed TTL.

    Expired entries are purged on every ``put``; beyond ``max_entries`` the
    oldest entries are evicted. ``claim`` serializes fetches of one URL so a
    concurrent caller can reuse the first caller's result.
    """

    def __init__(
        self,
        ttl: float = 24 * 60 * 60,
        clock: Clock = time.monotonic,
        max_entries: int = 1000,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._max_entries = max(1, max_entries)
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._claims: dict[str, tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at >= self._ttl

    async def get(self, url: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[url]
                return None
            return entry

    async def put(
        self, url: str, html: str, final_url: str, status_code: int
    ) -> CacheEntry:
        entry = CacheEntry(
            url=url,
            html=html,
            final_url=final_url,
            status_code=status_code,
            fetched_at=datetime.now(timezone.utc),
            stored_at=self._clock(),
        )
        async with self._lock:
            self._purge_locked()
            self._entries.pop(url, None)
            self._entries[url] = entry
            while len(self._entries) > self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
        return entry

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if self._expired(e, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def purge_expired(self) -> int:
        async with self._lock:
            return self._purge_locked()

    @asynccontextmanager
    async def claim(self, url: str) -> AsyncIterator[None]:
        """Hold the per-URL fetch lock for ``url``."""
        async with self._lock:
            lock, users = self._claims.get(url, (None, 0))
            if lock is None:
                lock = asyncio.Lock()
            self._claims[url] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._claims[url]
            if users > 1:
                self._claims[url] = (lock, users - 1)
            else:
                del self._claims[url]
