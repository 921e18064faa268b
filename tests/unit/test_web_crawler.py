"""
Unit tests for the permit crawler.
"""

from types import SimpleNamespace

import pytest

from permit_agent.core.config import Settings
from permit_agent.core.models import ContactInfo, CrawlResult
from permit_agent.services import web_crawler
from permit_agent.services.web_crawler import PageAggregator, PermitCrawler
from tests.conftest import PERMIT_PAGE_HTML, PLAIN_PAGE_HTML

pytestmark = pytest.mark.asyncio

BASE = "https://www.springfield.gov"
DOMAIN = "springfield.gov"


@pytest.fixture
def crawler(fetcher, settings) -> PermitCrawler:
    return PermitCrawler(fetcher, settings=settings)


# =============================================================================
# Link scoring
# =============================================================================


class TestLinkScoring:
    """Keyword weights plus path bonuses."""

    async def test_relevance_order(self, crawler):
        apply_link = crawler.score_link(f"{BASE}/permits/building-permit")
        planning_link = crawler.score_link(f"{BASE}/planning")
        assert apply_link > planning_link > 0
        assert crawler.score_link(f"{BASE}/parks") == 0

    async def test_every_matching_bonus_group_counts(self, crawler):
        both = crawler.score_link(f"{BASE}/permits/apply")
        one = crawler.score_link(f"{BASE}/x/apply")
        assert both - one == crawler.score_link(f"{BASE}/permits/") - crawler.score_link(f"{BASE}/x/")

    async def test_weights_are_configurable(self, fetcher, settings):
        custom = PermitCrawler(
            fetcher,
            settings=settings,
            keyword_weights={"parks": (3, ("parks",))},
            path_bonuses=[],
        )
        assert custom.score_link(f"{BASE}/parks") == 3
        assert custom.score_link(f"{BASE}/permits/") == 0

    async def test_select_links_filters_and_ranks(self, crawler):
        links = [
            f"{BASE}/planning",
            f"{BASE}/permits/building-permit",
            f"{BASE}/docs/permit-form.pdf",
            f"{BASE}/news/permit-update",
            "https://other.example.com/permits/",
            f"{BASE}/parks",
            f"{BASE}/planning#top",
        ]
        assert crawler.select_links(links, DOMAIN) == [
            f"{BASE}/permits/building-permit/",
            f"{BASE}/planning/",
        ]

    async def test_links_per_page_cap(self, fetcher, settings):
        capped = PermitCrawler(fetcher, settings=settings, links_per_page=2)
        links = [f"{BASE}/permits/type-{i}" for i in range(5)]
        assert len(capped.select_links(links, DOMAIN)) == 2


# =============================================================================
# Crawl
# =============================================================================


class TestCrawl:
    async def test_single_page_crawl(self, site, crawler):
        """Nothing worth following: one page, no forms, no fees."""
        site.add(f"{BASE}/", PLAIN_PAGE_HTML)

        result = await crawler.crawl(f"{BASE}/")

        assert result.pages_visited == 1
        assert result.forms == []
        assert result.fees == []
        assert f"{BASE}/parks" in result.links

    async def test_permit_page_aggregated(self, site, crawler):
        site.add(f"{BASE}/permits", PERMIT_PAGE_HTML)

        result = await crawler.crawl(f"{BASE}/permits")

        assert result.pages_visited == 1
        assert len(result.forms) == 2
        assert {f.type for f in result.fees} >= {"Residential Building Permit", "Electrical Permit"}
        assert result.contacts["General"].phone == "(217) 555-0142"
        assert not any(url.endswith(".pdf") for url in site.fetched())

    async def test_url_variants_fetched_once(self, site, crawler):
        site.add(f"{BASE}/permits", """
            <a href="/permits/fence">Fence</a>
            <a href="/permits/fence/">Fence again</a>
            <a href="/permits/fence#fees">Fence fees</a>
            <a href="/permits/">Home</a>
        """)
        site.add(f"{BASE}/permits/fence", PLAIN_PAGE_HTML)

        result = await crawler.crawl(f"{BASE}/permits")

        assert result.pages_visited == 2
        assert site.fetched() == [f"{BASE}/permits/", f"{BASE}/permits/fence/"]

    async def test_failed_url_recorded(self, site, crawler):
        site.add(f"{BASE}/permits", '<a href="/permits/missing">Missing permit page</a>')

        result = await crawler.crawl(f"{BASE}/permits")

        assert result.failed_urls == [f"{BASE}/permits/missing/"]
        assert result.pages_visited == 1

    async def test_page_budget(self, site, fetcher, settings):
        links = "".join(f'<a href="/permits/type-{i}">Permit {i}</a>' for i in range(6))
        site.add(f"{BASE}/permits", links)
        for i in range(6):
            site.add(f"{BASE}/permits/type-{i}", "<p>Permit details</p>")

        result = await PermitCrawler(fetcher, settings=settings, max_pages=3).crawl(f"{BASE}/permits")

        assert result.pages_visited == 3

    async def test_depth_zero_visits_only_start(self, site, fetcher, settings):
        site.add(f"{BASE}/permits", '<a href="/permits/fence">Fence</a>')
        site.add(f"{BASE}/permits/fence", "<p>Fence</p>")

        result = await PermitCrawler(fetcher, settings=settings, max_depth=0).crawl(f"{BASE}/permits")

        assert result.visited_urls == [f"{BASE}/permits/"]

    async def test_robots_disallow(self, site, fetcher, settings):
        site.add(f"{BASE}/robots.txt", "User-agent: *\nDisallow: /permits/private", content_type="text/plain")
        site.add(f"{BASE}/permits", """
            <a href="/permits/private-forms">Private</a>
            <a href="/permits/public-forms">Public</a>
        """)
        site.add(f"{BASE}/permits/public-forms", "<p>Public permit forms</p>")
        site.add(f"{BASE}/permits/private-forms", "<p>Private permit forms</p>")

        result = await PermitCrawler(fetcher, settings=settings, respect_robots=True).crawl(f"{BASE}/permits")

        assert f"{BASE}/permits/public-forms/" in result.visited_urls
        assert not any("private" in url for url in site.fetched())

    async def test_prefetched_start_page_not_requested(self, site, crawler):
        site.add(f"{BASE}/permits/fence", PLAIN_PAGE_HTML)
        start = '<a href="/permits/fence">Fence permits</a>' + PERMIT_PAGE_HTML

        result = await crawler.crawl(f"{BASE}/permits", html=start)

        assert result.visited_urls == [f"{BASE}/permits/", f"{BASE}/permits/fence/"]
        assert site.fetched() == [f"{BASE}/permits/fence/"]
        assert "Electrical Permit" in {f.type for f in result.fees}


# =============================================================================
# Politeness
# =============================================================================


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(web_crawler, "time", SimpleNamespace(monotonic=fake.monotonic))
    monkeypatch.setattr(web_crawler, "asyncio", SimpleNamespace(sleep=fake.sleep))
    return fake


class TestPoliteness:
    """Fixed delay between consecutive fetches."""

    async def test_default_delay(self):
        assert Settings().crawler_request_delay == 1.5

    async def test_waits_out_the_remaining_delay(self, fetcher, settings, clock):
        crawler = PermitCrawler(fetcher, settings=settings, request_delay=1.5)

        await crawler._wait_politely()
        assert clock.sleeps == []

        clock.now += 0.5
        await crawler._wait_politely()
        assert clock.sleeps == [pytest.approx(1.0)]

        clock.now += 2.0
        await crawler._wait_politely()
        assert clock.sleeps == [pytest.approx(1.0)]

    async def test_delay_applied_between_crawled_pages(self, site, fetcher, settings, clock):
        site.add(f"{BASE}/permits", '<a href="/permits/fence">Fence</a> <a href="/permits/deck">Deck</a>')
        site.add(f"{BASE}/permits/fence", "<p>Fence</p>")
        site.add(f"{BASE}/permits/deck", "<p>Deck</p>")

        result = await PermitCrawler(fetcher, settings=settings, request_delay=1.5).crawl(f"{BASE}/permits")

        assert result.pages_visited == 3
        assert clock.sleeps == [1.5, 1.5]


class TestPageAggregator:
    async def test_later_contact_wins_per_attribute(self):
        result = CrawlResult(start_url=f"{BASE}/")
        aggregator = PageAggregator(result)

        aggregator.add_contact(ContactInfo(phone="(217) 555-0100", email="info@springfield.gov"))
        aggregator.add_contact(ContactInfo(phone="(217) 555-0142"))
        aggregator.add_contact(ContactInfo())

        contact = result.contacts["General"]
        assert contact.phone == "(217) 555-0142"
        assert contact.email == "info@springfield.gov"
