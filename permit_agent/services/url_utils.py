"""
URL Utilities for Permit Agent.

Provides:
- normalize_url: URL deduplication normalization
- is_safe_url / is_government_host: structural URL checks
- timeout_for_url: per-call timeout by URL type
- RobotsChecker: robots.txt compliance checker
"""

import re
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse
from urllib.robotparser import RobotFileParser

import httpx
import structlog

logger = structlog.get_logger()


# =============================================================================
# Constants
# =============================================================================

ALLOWED_PORTS = {80, 443}

# Document file extensions (kept without trailing slash when normalizing)
DOCUMENT_EXTENSIONS = {".pdf", ".xlsx", ".xls", ".docx", ".doc"}

# Query parameters to strip (tracking, session, etc.)
STRIP_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "fbclid", "gclid", "session_id", "sessionid", "sid", "ref", "referrer",
    "source", "tracking", "_ga", "_gl", "mc_cid", "mc_eid",
}

GOVERNMENT_TLDS = (".gov", ".us")
GOVERNMENT_HOST_WORDS = ("city", "county", "municipal")


# =============================================================================
# URL Normalization
# =============================================================================


def normalize_url(url: str) -> str:
    """Normalize URL for deduplication.

    - Strip tracking params (?utm_*, ?session_id, etc)
    - Remove anchors (#section)
    - Normalize trailing slashes (keep for directories, remove for files)
    - Lowercase hostname
    - Sort remaining query parameters

    Args:
        url: URL to normalize

    Returns:
        Normalized URL string
    """
    try:
        parsed = urlparse(url)

        hostname = parsed.hostname.lower() if parsed.hostname else ""

        if parsed.port and parsed.port not in (80, 443):
            netloc = f"{hostname}:{parsed.port}"
        else:
            netloc = hostname

        path = re.sub(r"/+", "/", parsed.path)
        if not path:
            path = "/"

        # Directories get a trailing slash, files do not
        last_segment = path.rsplit("/", 1)[-1]
        if path != "/" and "." not in last_segment and not path.endswith("/"):
            path = path + "/"

        if parsed.query:
            params = parse_qs(parsed.query, keep_blank_values=True)
            filtered = {
                k: v for k, v in params.items()
                if k.lower() not in STRIP_PARAMS and not k.lower().startswith("utm_")
            }
            query = urlencode(sorted(filtered.items()), doseq=True)
        else:
            query = ""

        return urlunparse((
            parsed.scheme.lower(),
            netloc,
            path,
            "",
            query,
            "",
        ))
    except ValueError:
        return url


def host_path_key(url: str) -> str:
    """Lowercased host+path, used to merge portal candidates."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.lower().rstrip("/") or "/"
    return f"{host}{path}"


def extract_domain(url: str) -> str | None:
    """Extract domain from URL without www prefix."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.hostname:
        domain = parsed.hostname.lower()
        if domain.startswith("www."):
            domain = domain[4:]
        return domain
    return None


def is_same_domain(url: str, domain: str) -> bool:
    """True if url's host is ``domain`` or one of its subdomains."""
    host = extract_domain(url)
    if not host:
        return False
    return host == domain or host.endswith("." + domain)


def is_safe_url(url: str) -> bool:
    """Validate URL structure (scheme, port, host, no userinfo)."""
    try:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return False
        if parsed.username or parsed.password:
            return False
        if not parsed.netloc or not parsed.hostname:
            return False
        if "." not in parsed.hostname:
            return False
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return port in ALLOWED_PORTS
    except ValueError:
        return False


def is_government_host(url: str) -> bool:
    """Heuristic: .gov/.us TLD or a city/county/municipal-named host."""
    host = extract_domain(url) or ""
    if host.endswith(GOVERNMENT_TLDS):
        return True
    return any(word in host for word in GOVERNMENT_HOST_WORDS)


def timeout_for_url(url: str, default: float, government: float, api: float) -> float:
    """Per-call timeout: API endpoints are slowest, then .gov sites."""
    lower = url.lower()
    if "/api/" in lower:
        return api
    if ".gov" in (extract_domain(url) or ""):
        return government
    return default


def absolute_url(base_url: str, href: str | None) -> str | None:
    """Resolve href against base_url; None for non-navigable links."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("javascript:", "mailto:", "tel:", "#", "data:")):
        return None
    try:
        full = urljoin(base_url, href)
    except ValueError:
        return None
    if urlparse(full).scheme not in ("http", "https"):
        return None
    return full.split("#", 1)[0]


# =============================================================================
# Robots.txt Checker
# =============================================================================


class RobotsChecker:
    """Check robots.txt compliance for crawling.

    Caches robots.txt per origin to avoid repeated fetches.
    """

    USER_AGENT = "PermitAgent/1.0"

    def __init__(self, client: httpx.AsyncClient, user_agent: str | None = None):
        self.client = client
        self.user_agent = user_agent or self.USER_AGENT
        self._cache: dict[str, RobotFileParser | None] = {}
        self.log = logger.bind(component="RobotsChecker")

    async def can_fetch(self, url: str) -> bool:
        """Check if URL can be fetched according to robots.txt.

        Missing or unreadable robots.txt allows everything.
        """
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"

        if origin not in self._cache:
            await self._fetch_robots(origin)

        rp = self._cache.get(origin)
        if rp is None:
            return True
        return rp.can_fetch(self.user_agent, url)

    async def _fetch_robots(self, origin: str) -> None:
        """Fetch and parse robots.txt for an origin."""
        robots_url = f"{origin}/robots.txt"
        try:
            response = await self.client.get(robots_url, timeout=5.0)
        except httpx.HTTPError as e:
            self.log.debug("Failed to fetch robots.txt", origin=origin, error=str(e))
            self._cache[origin] = None
            return

        if response.status_code == 200:
            rp = RobotFileParser()
            rp.parse(response.text.splitlines())
            self._cache[origin] = rp
            self.log.debug("Loaded robots.txt", origin=origin)
        else:
            self._cache[origin] = None
