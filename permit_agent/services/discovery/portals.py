"""
Permit-portal discovery on a confirmed base site.

Two strategies, merged and deduplicated by (host, path):
- probe a fixed list of common portal paths and classify each reachable
  page by its body text
- scan the base page's links for portal keywords

If both come back empty, a short list of generic permit paths is
validated against the base domain as a fallback.
"""

import structlog
from bs4 import BeautifulSoup

from permit_agent.core.constants import (
    COMMON_PERMIT_PATHS,
    PORTAL_INDICATORS,
    PORTAL_LINK_KEYWORDS,
    PORTAL_PATHS,
)
from permit_agent.core.errors import FetchError
from permit_agent.core.models import PortalCandidate, PortalType, UrlCheck
from permit_agent.services.discovery.validator import BatchUrlValidator
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import absolute_url, extract_domain, host_path_key, is_same_domain

logger = structlog.get_logger()

# Used when no indicator matches at all
DEFAULT_PORTAL_TYPE = PortalType.APPLICATION_PAGE


def classify_portal(
    text: str,
    indicators: dict[PortalType, tuple[str, ...]] = PORTAL_INDICATORS,
) -> tuple[PortalType, int]:
    """
    Portal type with the most indicator matches in ``text``.

    Ties go to the type listed first in ``indicators``.
    """
    lower = text.lower()
    best_type, best_count = DEFAULT_PORTAL_TYPE, 0
    for portal_type, keywords in indicators.items():
        count = sum(1 for kw in keywords if kw in lower)
        if count > best_count:
            best_type, best_count = portal_type, count
    return best_type, best_count


def merge_portals(*groups: list[PortalCandidate]) -> list[PortalCandidate]:
    """Concatenate groups, keeping the first candidate per (host, path)."""
    seen: set[str] = set()
    merged = []
    for group in groups:
        for candidate in group:
            key = host_path_key(candidate.url)
            if key not in seen:
                seen.add(key)
                merged.append(candidate)
    return merged


def _base(url: str) -> str:
    return url if url.endswith("/") else url + "/"


class PortalDiscovery:
    """Finds and classifies permit portals reachable from a base site."""

    def __init__(self, fetcher: Fetcher, validator: BatchUrlValidator):
        self.fetcher = fetcher
        self.validator = validator
        self.log = logger.bind(component="PortalDiscovery")

    async def discover(self, base_url: str) -> list[PortalCandidate]:
        probed = await self.probe_paths(base_url)
        linked = await self.scan_links(base_url)
        portals = merge_portals(probed, linked)

        if not portals:
            portals = await self.fallback(base_url)

        self.log.info(
            "Portal discovery done",
            base_url=base_url[:80],
            probed=len(probed),
            linked=len(linked),
            portals=len(portals),
        )
        return portals

    async def probe_paths(self, base_url: str) -> list[PortalCandidate]:
        urls = [absolute_url(_base(base_url), path.lstrip("/")) for path in PORTAL_PATHS]
        checks = await self.validator.accessible([u for u in urls if u])
        return [await self._classify_check(check, source="path") for check in checks]

    async def scan_links(self, base_url: str) -> list[PortalCandidate]:
        try:
            result = await self.fetcher.get(base_url)
        except FetchError as e:
            self.log.debug("Base page fetch failed", url=base_url[:80], error=str(e))
            return []

        soup = BeautifulSoup(result.text, "lxml")
        candidates = []
        for link in soup.find_all("a", href=True):
            text = link.get_text(" ", strip=True)
            url = absolute_url(result.final_url, link["href"])
            if url is None:
                continue
            combined = f"{text} {url}".lower()
            if not any(kw in combined for kw in PORTAL_LINK_KEYWORDS):
                continue
            portal_type, count = classify_portal(text)
            candidates.append(PortalCandidate(
                url=url, portal_type=portal_type, source="link", title=text or None, match_count=count,
            ))
        return candidates

    async def fallback(self, base_url: str) -> list[PortalCandidate]:
        domain = extract_domain(base_url) or ""
        urls = [absolute_url(_base(base_url), path.lstrip("/")) for path in COMMON_PERMIT_PATHS]
        checks = await self.validator.accessible([u for u in urls if u])
        checks = [c for c in checks if is_same_domain(c.final_url or c.url, domain)]
        return [await self._classify_check(check, source="fallback") for check in checks]

    async def _classify_check(self, check: UrlCheck, source: str) -> PortalCandidate:
        url = check.final_url or check.url
        title = None
        portal_type, count = DEFAULT_PORTAL_TYPE, 0
        try:
            result = await self.fetcher.get(url)
            soup = BeautifulSoup(result.text, "lxml")
            title = soup.title.get_text(strip=True) if soup.title else None
            portal_type, count = classify_portal(soup.get_text(" ", strip=True))
        except FetchError as e:
            self.log.debug("Portal page fetch failed", url=url[:80], error=str(e))
        return PortalCandidate(url=url, portal_type=portal_type, source=source, title=title, match_count=count)


def best_portal(portals: list[PortalCandidate]) -> PortalCandidate | None:
    """Most indicator matches; ties keep discovery order."""
    best = None
    for portal in portals:
        if best is None or portal.match_count > best.match_count:
            best = portal
    return best
