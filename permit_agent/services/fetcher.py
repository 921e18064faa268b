"""
HTTP transport for Permit Agent.

Wraps an httpx.AsyncClient with:
- structural URL validation (malformed URLs fail fast, never retried)
- a process-wide rate limiter gate
- per-URL-type timeouts
- exponential backoff retries
- read-through/write-through caching of successful text GETs
"""

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from permit_agent.core.config import Settings, get_settings
from permit_agent.core.errors import FetchError, FetchTimeoutError, HttpStatusError, InvalidUrlError
from permit_agent.core.rate_limiter import RateLimiter
from permit_agent.services.cache import QualityCache
from permit_agent.services.retry_utils import with_retries
from permit_agent.services.url_utils import is_safe_url, timeout_for_url

logger = structlog.get_logger()

CACHEABLE_CONTENT_PREFIXES = (
    "text/",
    "application/json",
    "application/xhtml",
    "application/xml",
    "application/ld+json",
)


@dataclass
class FetchResult:
    """Outcome of one HTTP request."""
    url: str
    final_url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    encoding: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";")[0].strip().lower()

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text)


class Fetcher:
    """Polite, retrying HTTP fetcher shared by every pipeline component."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: QualityCache | None = None,
        rate_limiter: RateLimiter | None = None,
        settings: Settings | None = None,
    ):
        self.client = client
        self.cache = cache
        self.settings = settings or get_settings()
        self.rate_limiter = rate_limiter
        self.log = logger.bind(component="Fetcher")

    def timeout_for(self, url: str) -> float:
        return timeout_for_url(
            url,
            default=self.settings.timeout_default,
            government=self.settings.timeout_government,
            api=self.settings.timeout_api,
        )

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        use_cache: bool = True,
        max_attempts: int | None = None,
    ) -> FetchResult:
        """
        Issue a request and return its result, whatever the status.

        Raises:
            InvalidUrlError: URL is structurally invalid (never retried)
            FetchTimeoutError: every attempt timed out
            FetchError: network failure after all retries
        """
        if not is_safe_url(url):
            raise InvalidUrlError(url)

        cacheable = use_cache and method == "GET" and self.cache is not None and not headers
        if cacheable:
            cached = self.cache.get_fetch(url)
            if cached is not None:
                self.log.debug("Fetch cache hit", url=url[:80])
                return cached

        timeout = timeout or self.timeout_for(url)

        async def _do_request() -> httpx.Response:
            if self.rate_limiter is not None:
                await self.rate_limiter.wait_for_slot()
            return await self.client.request(
                method,
                url,
                headers=headers,
                timeout=timeout,
                follow_redirects=True,
            )

        try:
            response = await with_retries(
                _do_request,
                max_attempts=max_attempts or self.settings.retry_max_attempts,
                backoff_base=self.settings.retry_backoff_base,
                backoff_max=self.settings.retry_backoff_max,
                jitter=self.settings.retry_jitter,
            )
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(url, timeout) from e
        except httpx.InvalidURL as e:
            raise InvalidUrlError(url, str(e)) from e
        except httpx.HTTPError as e:
            raise FetchError(f"{type(e).__name__}: {e}", url=url) from e

        result = FetchResult(
            url=url,
            final_url=str(response.url),
            status=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            content=response.content,
            encoding=response.encoding,
        )

        if cacheable and result.ok and self.is_cacheable_body(result):
            self.cache.set_fetch(url, result)

        return result

    def is_cacheable_body(self, result: FetchResult) -> bool:
        """Only text bodies (HTML, JSON, XML, plain) up to the size cap."""
        if len(result.content) > self.settings.cache_max_body_bytes:
            return False
        content_type = result.content_type
        return not content_type or content_type.startswith(CACHEABLE_CONTENT_PREFIXES)

    async def get(self, url: str, **kwargs) -> FetchResult:
        """GET that raises HttpStatusError on a non-2xx answer."""
        result = await self.fetch(url, "GET", **kwargs)
        if not result.ok:
            raise HttpStatusError(url, result.status)
        return result

    async def head(self, url: str, timeout: float | None = None, max_attempts: int = 1) -> FetchResult:
        """Existence check. Falls back to GET when HEAD is not allowed."""
        result = await self.fetch(
            url, "HEAD", timeout=timeout, use_cache=False, max_attempts=max_attempts,
        )
        if result.status in (405, 501):
            result = await self.fetch(url, "GET", timeout=timeout, max_attempts=max_attempts)
        return result
