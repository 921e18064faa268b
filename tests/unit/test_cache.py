"""
Unit tests for the quality-aware cache and the caching fetcher.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from permit_agent.core.errors import HttpStatusError, InvalidUrlError
from permit_agent.services.cache import QualityCache, content_checksum

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QualityCache:
    return QualityCache(max_size=3, default_ttl=timedelta(hours=24), clock=clock)


# =============================================================================
# TTL policy
# =============================================================================


class TestTTL:
    """Government hosts get a quality step function, others the default."""

    def test_government_steps(self, cache: QualityCache):
        url = "https://www.springfield.gov/permits"
        assert cache.compute_ttl(url, 0.9) == timedelta(days=7)
        assert cache.compute_ttl(url, 0.6) == timedelta(days=3)
        assert cache.compute_ttl(url, 0.2) == timedelta(days=1)

    def test_boundaries_are_exclusive(self, cache: QualityCache):
        url = "https://www.springfield.gov/"
        assert cache.compute_ttl(url, 0.8) == timedelta(days=3)
        assert cache.compute_ttl(url, 0.5) == timedelta(days=1)

    def test_non_government_default(self, cache: QualityCache):
        assert cache.compute_ttl("https://example.com/", 0.99) == timedelta(hours=24)


# =============================================================================
# Tiers
# =============================================================================


class TestFetchTier:
    def test_hit_then_expiry_removes_entry(self, cache: QualityCache, clock: FakeClock):
        """An expired entry is a miss and is dropped on read."""
        cache.set_fetch("https://example.com/a", "payload")
        assert cache.get_fetch("https://example.com/a") == "payload"

        clock.advance(hours=25)
        assert cache.get_fetch("https://example.com/a") is None
        assert cache.stats()["fetch_entries"] == 0

    def test_size_bound_evicts_oldest(self, cache: QualityCache, clock: FakeClock):
        for i in range(4):
            cache.set_fetch(f"https://example.com/{i}", i)
            clock.advance(seconds=1)
        assert cache.get_fetch("https://example.com/0") is None
        assert cache.get_fetch("https://example.com/3") == 3
        assert cache.stats()["fetch_entries"] == 3


class TestUnderstandingTier:
    def test_keyed_by_content_checksum(self, cache: QualityCache):
        url = "https://example.com/permits"
        cache.set_understanding(url, "<p>v1</p>", {"permits": 1}, quality=0.7)

        assert cache.get_understanding(url, "<p>v1</p>") == {"permits": 1}
        assert cache.get_understanding(url, "<p>v2</p>") is None

    def test_invalidate_removes_both_tiers(self, cache: QualityCache):
        url = "https://example.com/permits"
        cache.set_fetch(url, "page")
        cache.set_understanding(url, "a", 1, quality=0.5)
        cache.set_understanding(url, "b", 2, quality=0.5)

        assert cache.invalidate(url) == 3
        assert cache.stats()["fetch_entries"] == 0
        assert cache.stats()["understanding_entries"] == 0

    def test_sweep_purges_expired(self, cache: QualityCache, clock: FakeClock):
        cache.set_fetch("https://example.com/old", 1)
        clock.advance(hours=30)
        cache.set_fetch("https://example.com/new", 2)

        assert cache.sweep() == 1
        assert cache.get_fetch("https://example.com/new") == 2

    def test_checksum_is_sha256(self):
        assert len(content_checksum("abc")) == 64
        assert content_checksum("abc") == content_checksum(b"abc")


class TestLifecycle:
    async def test_sweeper_started_and_stopped(self):
        cache = QualityCache(sweep_interval=3600)
        task = cache.start_sweeper()
        assert cache.start_sweeper() is task
        await cache.aclose()
        assert task.cancelled() or task.done()

    async def test_async_context_manager(self):
        async with QualityCache(sweep_interval=0.01) as cache:
            cache.set_fetch("https://example.com/", 1)
            await asyncio.sleep(0.03)
        assert cache._sweeper is None


# =============================================================================
# Fetcher + cache
# =============================================================================


class TestCachingFetcher:
    """Successful GETs are served from cache on repeat."""

    async def test_second_get_is_a_cache_hit(self, site, make_fetcher):
        site.add("https://www.springfield.gov/permits", "<html>ok</html>")
        fetcher = make_fetcher(site, cache=QualityCache())

        first = await fetcher.get("https://www.springfield.gov/permits")
        second = await fetcher.get("https://www.springfield.gov/permits")

        assert first.text == second.text
        assert len(site.fetched()) == 1

    async def test_errors_are_not_cached(self, site, make_fetcher):
        fetcher = make_fetcher(site, cache=QualityCache())
        for _ in range(2):
            with pytest.raises(HttpStatusError):
                await fetcher.get("https://www.springfield.gov/missing")
        assert len(site.fetched()) == 2

    async def test_malformed_url_never_hits_network(self, site, make_fetcher):
        fetcher = make_fetcher(site)
        with pytest.raises(InvalidUrlError):
            await fetcher.get("ftp://springfield.gov/file")
        assert site.requests == []

    async def test_head_falls_back_to_get(self, make_fetcher):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(200, text="ok")

        fetcher = make_fetcher(handler)
        result = await fetcher.head("https://www.springfield.gov/")
        assert result.ok

    async def test_documents_are_not_cached(self, site, make_fetcher):
        """PDF bodies are fetched fresh each time."""
        url = "https://www.springfield.gov/docs/fee-schedule.pdf"
        site.add(url, b"%PDF-1.4 fee schedule", content_type="application/pdf")
        cache = QualityCache()
        fetcher = make_fetcher(site, cache=cache)

        await fetcher.get(url)
        await fetcher.get(url)

        assert len(site.fetched()) == 2
        assert cache.stats()["fetch_entries"] == 0

    async def test_oversized_text_is_not_cached(self, site, make_fetcher, settings):
        settings.cache_max_body_bytes = 16
        site.add("https://www.springfield.gov/permits", "<html>" + "x" * 64 + "</html>")
        cache = QualityCache()
        fetcher = make_fetcher(site, cache=cache)

        await fetcher.get("https://www.springfield.gov/permits")

        assert cache.stats()["fetch_entries"] == 0
