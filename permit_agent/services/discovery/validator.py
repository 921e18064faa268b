"""
Batch URL validation.

Lightweight existence checks (HEAD, falling back to GET where HEAD is
refused) fanned out concurrently under a semaphore. One candidate's
failure never affects another's.
"""

import asyncio

import structlog

from permit_agent.core.errors import FetchError
from permit_agent.core.models import UrlCheck
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import is_safe_url

logger = structlog.get_logger()


class BatchUrlValidator:
    """Concurrent reachability checks bounded by ``concurrency``."""

    def __init__(self, fetcher: Fetcher, concurrency: int = 10, timeout: float | None = None):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.timeout = timeout
        self.log = logger.bind(component="BatchUrlValidator")

    async def check(self, url: str) -> UrlCheck:
        if not is_safe_url(url):
            return UrlCheck(url=url, is_valid=False, error="malformed URL")
        try:
            result = await self.fetcher.head(url, timeout=self.timeout)
        except FetchError as e:
            return UrlCheck(url=url, is_valid=True, is_accessible=False, error=str(e))
        return UrlCheck(
            url=url,
            is_valid=True,
            is_accessible=result.ok,
            status_code=result.status,
            final_url=result.final_url,
        )

    async def validate_all(self, urls: list[str]) -> list[UrlCheck]:
        """Check every URL; results keep the input order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(url: str) -> UrlCheck:
            async with semaphore:
                return await self.check(url)

        unique = list(dict.fromkeys(urls))
        results = await asyncio.gather(*(_bounded(url) for url in unique))
        accessible = sum(1 for r in results if r.is_accessible)
        self.log.info("Batch validation done", checked=len(results), accessible=accessible)
        return list(results)

    async def accessible(self, urls: list[str]) -> list[UrlCheck]:
        """Only the valid, accessible checks, in input order."""
        return [r for r in await self.validate_all(urls) if r.is_valid and r.is_accessible]

    async def first_accessible(self, urls: list[str]) -> UrlCheck | None:
        hits = await self.accessible(urls)
        return hits[0] if hits else None
