"""
Quality-aware cache for fetch results and text-understanding results.

Two independent maps:
- fetch tier, keyed by URL
- understanding tier, keyed by (URL, sha256 of the content that was parsed)

TTL depends on the host (government sites change slowly) and on the
quality score of the payload. Expired entries are dropped lazily on read
and by a periodic sweep task whose lifecycle belongs to the entry point:

    cache = QualityCache()
    cache.start_sweeper()
    try:
        ...
    finally:
        await cache.aclose()
"""

import asyncio
import contextlib
import hashlib
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import structlog

from permit_agent.core.models import CacheEntry, utcnow
from permit_agent.services.url_utils import is_government_host

logger = structlog.get_logger()


# (quality threshold, ttl) steps for government hosts, checked top-down
GOVERNMENT_TTL_STEPS: list[tuple[float, timedelta]] = [
    (0.8, timedelta(days=7)),
    (0.5, timedelta(days=3)),
]
GOVERNMENT_TTL_FLOOR = timedelta(days=1)


def content_checksum(content: str | bytes) -> str:
    """sha256 hex digest of the content."""
    if isinstance(content, str):
        content = content.encode("utf-8", errors="replace")
    return hashlib.sha256(content).hexdigest()


class QualityCache:
    """In-memory two-tier cache with quality-dependent expiry."""

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: timedelta = timedelta(hours=24),
        sweep_interval: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._fetch: dict[str, CacheEntry] = {}
        self._understanding: dict[tuple[str, str], CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper: asyncio.Task | None = None
        self.log = logger.bind(component="QualityCache")

    # -------------------------------------------------------------------------
    # TTL policy
    # -------------------------------------------------------------------------

    def compute_ttl(self, url: str, quality: float) -> timedelta:
        """Government hosts: step function of quality. Others: flat default."""
        if not is_government_host(url):
            return self.default_ttl
        for threshold, ttl in GOVERNMENT_TTL_STEPS:
            if quality > threshold:
                return ttl
        return GOVERNMENT_TTL_FLOOR

    def _entry(self, url: str, payload: Any, quality: float, checksum: str | None = None) -> CacheEntry:
        quality = min(1.0, max(0.0, quality))
        now = self._clock()
        return CacheEntry(
            payload=payload,
            created_at=now,
            expires_at=now + self.compute_ttl(url, quality),
            quality=quality,
            checksum=checksum,
        )

    # -------------------------------------------------------------------------
    # Fetch tier
    # -------------------------------------------------------------------------

    def get_fetch(self, url: str) -> Any | None:
        entry = self._fetch.get(url)
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self._clock()):
            del self._fetch[url]
            self._misses += 1
            return None
        self._hits += 1
        return entry.payload

    def set_fetch(self, url: str, payload: Any, quality: float = 0.5) -> None:
        self._fetch[url] = self._entry(url, payload, quality)
        self._enforce_size(self._fetch)

    # -------------------------------------------------------------------------
    # Understanding tier
    # -------------------------------------------------------------------------

    def get_understanding(self, url: str, content: str | bytes) -> Any | None:
        checksum = content_checksum(content)
        key = (url, checksum)
        entry = self._understanding.get(key)
        if entry is None or entry.checksum != checksum:
            self._misses += 1
            return None
        if entry.is_expired(self._clock()):
            del self._understanding[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.payload

    def set_understanding(self, url: str, content: str | bytes, payload: Any, quality: float) -> None:
        checksum = content_checksum(content)
        self._understanding[(url, checksum)] = self._entry(url, payload, quality, checksum)
        self._enforce_size(self._understanding)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def invalidate(self, url: str) -> int:
        """Remove every entry (both tiers) for a URL. Returns count removed."""
        removed = 0
        if self._fetch.pop(url, None) is not None:
            removed += 1
        for key in [k for k in self._understanding if k[0] == url]:
            del self._understanding[key]
            removed += 1
        return removed

    def clear(self) -> None:
        self._fetch.clear()
        self._understanding.clear()

    def sweep(self) -> int:
        """Purge expired entries, then trim each tier to max_size. Returns count removed."""
        now = self._clock()
        removed = 0
        for store in (self._fetch, self._understanding):
            for key in [k for k, e in store.items() if e.is_expired(now)]:
                del store[key]
                removed += 1
            removed += self._enforce_size(store)
        if removed:
            self.log.debug("Cache sweep", removed=removed, **self.stats())
        return removed

    def _enforce_size(self, store: dict) -> int:
        """Evict oldest entries (by creation time) until the tier fits."""
        overflow = len(store) - self.max_size
        if overflow <= 0:
            return 0
        oldest = sorted(store.items(), key=lambda item: item[1].created_at)[:overflow]
        for key, _ in oldest:
            del store[key]
        return overflow

    def stats(self) -> dict[str, int]:
        return {
            "fetch_entries": len(self._fetch),
            "understanding_entries": len(self._understanding),
            "hits": self._hits,
            "misses": self._misses,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_sweeper(self) -> asyncio.Task:
        """Start the periodic sweep task (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="cache-sweeper")
        return self._sweeper

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    async def aclose(self) -> None:
        """Stop the sweeper task."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None

    async def __aenter__(self) -> "QualityCache":
        self.start_sweeper()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
