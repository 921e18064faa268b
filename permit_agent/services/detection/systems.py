"""
External permitting-system detection and probing.

Many jurisdictions hand permit intake to a hosted platform. We spot the
platform by indicator strings in the page or its links, then fetch the
platform's landing page and run the vendor extraction over it.
"""

import structlog
from bs4 import BeautifulSoup

from permit_agent.core.errors import FetchError
from permit_agent.core.models import DetectedForm, DetectedSystem
from permit_agent.services.detection.vendors import detect_vendor_forms
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import absolute_url

logger = structlog.get_logger()


SYSTEM_INDICATORS: dict[str, tuple[str, ...]] = {
    "accela": ("accela", "civic-platform", "aa.api"),
    "tyler": ("tylertech", "tyler technologies", "eden", "infor"),
    "energov": ("energov", "harris", "cgi"),
    "cityworks": ("cityworks", "azteca"),
    "amanda": ("amanda", "permittrax"),
    "viewpoint": ("viewpoint", "spectrum"),
}

# Only link hosts/paths are checked for these; they are too common in prose
LINK_ONLY_INDICATORS = {"eden", "infor", "harris", "cgi", "spectrum", "amanda"}


def detect_systems(html: str, page_url: str) -> list[DetectedSystem]:
    """Systems whose indicators appear in the page URL, link targets or text."""
    soup = BeautifulSoup(html, "lxml")
    links = [
        url for url in (absolute_url(page_url, a.get("href")) for a in soup.find_all("a", href=True))
        if url
    ]
    text = html.lower()

    systems = []
    for name, indicators in SYSTEM_INDICATORS.items():
        found: list[str] = []
        system_url = None
        for indicator in indicators:
            link = next((u for u in links if indicator in u.lower()), None)
            if link is not None:
                found.append(indicator)
                system_url = system_url or link
            elif indicator in page_url.lower():
                found.append(indicator)
                system_url = system_url or page_url
            elif indicator not in LINK_ONLY_INDICATORS and indicator in text:
                found.append(indicator)
        if found:
            systems.append(DetectedSystem(name=name, indicators=found, url=system_url))

    if systems:
        logger.debug("Permitting systems detected", url=page_url[:80], systems=[s.name for s in systems])
    return systems


async def probe_system(fetcher: Fetcher, system: DetectedSystem) -> list[DetectedForm]:
    """Fetch the system's landing page and extract its forms. Best-effort."""
    if not system.url:
        return []
    try:
        result = await fetcher.get(system.url)
    except FetchError as e:
        logger.debug("System probe failed", system=system.name, url=system.url[:80], error=str(e))
        return []

    html = result.text
    _, forms = detect_vendor_forms(BeautifulSoup(html, "lxml"), result.final_url, html)
    logger.info("System probed", system=system.name, url=system.url[:80], forms=len(forms))
    return forms
