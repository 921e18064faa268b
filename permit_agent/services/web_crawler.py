"""
Permit-focused Web Crawler.

Explores same-domain pages likely to hold permit information, starting
from a confirmed base URL, and aggregates what each page yields.
Features:
- robots.txt compliance
- URL normalization for deduplication (a URL is fetched at most once)
- keyword-weighted link scoring, top links per page only
- depth and page budgets
- a fixed politeness delay between consecutive fetches
"""

import asyncio
import time

import structlog
from bs4 import BeautifulSoup

from permit_agent.core.config import Settings, get_settings
from permit_agent.core.constants import (
    CRAWL_EXCLUDE_PATTERNS,
    LINK_KEYWORD_WEIGHTS,
    LINK_PATH_BONUSES,
    SKIP_EXTENSIONS,
)
from permit_agent.core.errors import FetchError
from permit_agent.core.models import ContactInfo, CrawlResult, DetectedForm, PermitFee
from permit_agent.services.detection import detect_page_forms
from permit_agent.services.extraction.content_extractor import extract_content
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import (
    DOCUMENT_EXTENSIONS,
    RobotsChecker,
    absolute_url,
    extract_domain,
    is_same_domain,
    normalize_url,
)

logger = structlog.get_logger()

GENERAL_DEPARTMENT = "General"
# Documents are collected as forms, never crawled
UNCRAWLED_EXTENSIONS = SKIP_EXTENSIONS + tuple(sorted(DOCUMENT_EXTENSIONS))


class PageAggregator:
    """Merges per-page extraction output into one CrawlResult."""

    def __init__(self, result: CrawlResult):
        self.result = result
        self._form_urls: set[str] = {f.url for f in result.forms}
        self._fee_keys: set[tuple[str, float]] = {(f.type, f.amount) for f in result.fees}
        self._requirements: set[str] = set(result.requirements)

    def add_forms(self, forms: list[DetectedForm]) -> None:
        for form in forms:
            if form.url not in self._form_urls:
                self._form_urls.add(form.url)
                self.result.forms.append(form)

    def add_fees(self, fees: list[PermitFee]) -> None:
        for fee in fees:
            key = (fee.type, fee.amount)
            if key not in self._fee_keys:
                self._fee_keys.add(key)
                self.result.fees.append(fee)

    def add_contact(self, contact: ContactInfo) -> None:
        if contact.is_empty():
            return
        key = contact.department or GENERAL_DEPARTMENT
        existing = self.result.contacts.get(key)
        # Later pages win per attribute; earlier values fill the gaps
        self.result.contacts[key] = contact.merge(existing)

    def add_requirements(self, requirements: list[str]) -> None:
        for requirement in requirements:
            if requirement not in self._requirements:
                self._requirements.add(requirement)
                self.result.requirements.append(requirement)

    def add_processing_times(self, times: dict[str, str]) -> None:
        self.result.processing_times.update(times)


class PermitCrawler:
    """Depth-first, relevance-ordered crawler for permit pages.

    Link weights default to the module constants and can be overridden
    per instance.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        settings: Settings | None = None,
        max_depth: int | None = None,
        max_pages: int | None = None,
        request_delay: float | None = None,
        links_per_page: int | None = None,
        keyword_weights: dict[str, tuple[int, tuple[str, ...]]] | None = None,
        path_bonuses: list[tuple[tuple[str, ...], int]] | None = None,
        exclude_patterns: tuple[str, ...] | None = None,
        respect_robots: bool | None = None,
    ):
        """Initialize crawler.

        Args:
            fetcher: shared transport
            max_depth: Maximum crawl depth from the start URL (default 3)
            max_pages: Maximum pages fetched per crawl (default 25)
            request_delay: Seconds between consecutive fetches (default 1.5)
            links_per_page: Children expanded per page, best first (default 10)
        """
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self.max_depth = max_depth if max_depth is not None else self.settings.crawler_max_depth
        self.max_pages = max_pages if max_pages is not None else self.settings.crawler_max_pages
        self.request_delay = (
            request_delay if request_delay is not None else self.settings.crawler_request_delay
        )
        self.links_per_page = links_per_page or self.settings.crawler_links_per_page
        self.keyword_weights = LINK_KEYWORD_WEIGHTS if keyword_weights is None else keyword_weights
        self.path_bonuses = LINK_PATH_BONUSES if path_bonuses is None else path_bonuses
        self.exclude_patterns = CRAWL_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns
        respect = respect_robots if respect_robots is not None else self.settings.respect_robots_txt
        self.robots = RobotsChecker(fetcher.client, self.settings.crawler_user_agent) if respect else None

        self._visited: set[str] = set()
        self._last_fetch: float | None = None
        self.log = logger.bind(component="PermitCrawler")

    # -------------------------------------------------------------------------
    # Link scoring
    # -------------------------------------------------------------------------

    def score_link(self, url: str) -> int:
        """Keyword weight of a link. 0 means "do not follow"."""
        lower = url.lower()
        score = 0
        for weight, keywords in self.keyword_weights.values():
            score += sum(weight for kw in keywords if kw in lower)
        for fragments, bonus in self.path_bonuses:
            if any(fragment in lower for fragment in fragments):
                score += bonus
        return score

    def select_links(self, links: list[str], domain: str) -> list[str]:
        """Same-domain, unvisited, non-excluded links with score > 0, best first."""
        scored: dict[str, int] = {}
        for link in links:
            lower = link.lower()
            if not is_same_domain(link, domain):
                continue
            if any(pattern in lower for pattern in self.exclude_patterns):
                continue
            if lower.split("?", 1)[0].endswith(UNCRAWLED_EXTENSIONS):
                continue
            key = normalize_url(link)
            if key in self._visited or key in scored:
                continue
            score = self.score_link(link)
            if score > 0:
                scored[key] = score
        ranked = sorted(scored.items(), key=lambda item: item[1], reverse=True)
        return [url for url, _ in ranked[: self.links_per_page]]

    # -------------------------------------------------------------------------
    # Crawl
    # -------------------------------------------------------------------------

    async def crawl(self, start_url: str, html: str | None = None) -> CrawlResult:
        """Crawl from start_url and aggregate every visited page.

        When the start page was already fetched, pass its body as ``html``
        so it is not requested again.
        """
        result = CrawlResult(start_url=start_url)
        domain = extract_domain(start_url)
        if not domain:
            self.log.error("Invalid start URL", url=start_url)
            return result

        self._visited = set()
        self._last_fetch = None
        aggregator = PageAggregator(result)

        self.log.info(
            "Starting crawl",
            start_url=start_url,
            max_depth=self.max_depth,
            max_pages=self.max_pages,
        )
        await self._crawl_page(start_url, 0, domain, aggregator, html=html)

        result.pages_visited = len(result.visited_urls)
        self.log.info(
            "Crawl complete",
            pages_visited=result.pages_visited,
            failed=len(result.failed_urls),
            forms=len(result.forms),
            fees=len(result.fees),
        )
        return result

    async def _wait_politely(self) -> None:
        if self._last_fetch is not None and self.request_delay > 0:
            elapsed = time.monotonic() - self._last_fetch
            if elapsed < self.request_delay:
                await asyncio.sleep(self.request_delay - elapsed)
        self._last_fetch = time.monotonic()

    async def _crawl_page(
        self,
        url: str,
        depth: int,
        domain: str,
        aggregator: PageAggregator,
        html: str | None = None,
    ) -> None:
        if depth > self.max_depth or len(self._visited) >= self.max_pages:
            return
        key = normalize_url(url)
        if key in self._visited:
            return
        self._visited.add(key)

        if html is not None:
            final_url = url
            self._last_fetch = time.monotonic()
        else:
            if self.robots is not None and not await self.robots.can_fetch(key):
                self.log.debug("Blocked by robots.txt", url=key[:80])
                return

            await self._wait_politely()
            try:
                page = await self.fetcher.get(key)
            except FetchError as e:
                self.log.debug("Failed to fetch page", url=key[:80], error=str(e))
                aggregator.result.failed_urls.append(key)
                return

            if "html" not in page.content_type and page.content_type:
                self.log.debug("Skipping non-HTML page", url=key[:80], content_type=page.content_type)
                return
            html = page.text
            final_url = page.final_url

        soup = BeautifulSoup(html, "lxml")
        links = self._collect_page(key, final_url, html, soup, aggregator)

        if depth >= self.max_depth:
            return
        for child in self.select_links(links, domain):
            if len(self._visited) >= self.max_pages:
                break
            await self._crawl_page(child, depth + 1, domain, aggregator)

    def _collect_page(
        self,
        url: str,
        final_url: str,
        html: str,
        soup: BeautifulSoup,
        aggregator: PageAggregator,
    ) -> list[str]:
        """Extract one page into the aggregate; returns its outgoing links."""
        result = aggregator.result
        result.visited_urls.append(url)

        links = [u for u in (absolute_url(final_url, a.get("href")) for a in soup.find_all("a", href=True)) if u]
        for link in links:
            if link not in result.links:
                result.links.append(link)

        try:
            content = extract_content(soup, final_url)
        except Exception as e:
            self.log.debug("Page extraction failed", url=url[:80], error=str(e))
            return links
        result.content[url] = " ".join(soup.get_text(" ", strip=True).split())

        aggregator.add_forms(detect_page_forms(soup, final_url, html))
        aggregator.add_fees(content.fees)
        aggregator.add_contact(content.contact)
        aggregator.add_requirements(content.requirements)
        aggregator.add_processing_times(content.processing_times)
        return links
