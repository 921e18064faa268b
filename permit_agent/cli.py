"""
Command-line entry point.

    permit-agent acquire --url https://www.example.gov/permits --city Springfield --state IL
    permit-agent acquire --city "St. Louis" --state MO
    permit-agent discover --city Austin --state TX

The entry point owns the shared resources: the httpx client, the cache
(and its sweeper task) and the rate limiter. Results are printed as JSON
on stdout; logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from datetime import timedelta
from urllib.parse import urlparse

import httpx
import structlog

from permit_agent.core.config import get_settings
from permit_agent.core.logging import configure_logging
from permit_agent.core.models import (
    AcquireOptions,
    Address,
    EnhancedResult,
    Jurisdiction,
    JurisdictionType,
)
from permit_agent.core.rate_limiter import RateLimiter
from permit_agent.jobs.acquire_job import AcquisitionPipeline
from permit_agent.services.cache import QualityCache
from permit_agent.services.discovery.manager import DiscoveryManager, jurisdiction_id
from permit_agent.services.extraction.ai_parser import get_ai_parser
from permit_agent.services.fetcher import Fetcher

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permit-agent",
        description="Acquire permit information from government websites",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines instead of colored console output",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    acquire = sub.add_parser("acquire", help="Run the acquisition pipeline for one jurisdiction")
    acquire.add_argument("--url", help="Jurisdiction website or permit page (discovered if omitted)")
    acquire.add_argument("--city", default="")
    acquire.add_argument("--state", default="")
    acquire.add_argument("--zip", dest="zip_code", default="")
    acquire.add_argument("--street", default="")
    acquire.add_argument("--no-ai", action="store_true", help="Heuristic extraction only")
    acquire.add_argument("--no-crawl", action="store_true", help="Analyze the start page only")
    acquire.add_argument("--max-pages", type=int, default=None)
    acquire.add_argument("--max-depth", type=int, default=None)

    discover = sub.add_parser("discover", help="Find a jurisdiction's website and permit portal")
    discover.add_argument("--city", required=True)
    discover.add_argument("--state", required=True)
    discover.add_argument("--zip", dest="zip_code", default="")

    return parser


def jurisdiction_from_url(url: str, address: Address) -> Jurisdiction:
    host = urlparse(url).hostname or url
    name = address.city or host
    return Jurisdiction(
        id=jurisdiction_id(JurisdictionType.CITY, name, address.state or "na"),
        name=name,
        type=JurisdictionType.CITY,
        address=address,
        website=url,
    )


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    cache = QualityCache(
        max_size=settings.cache_max_size,
        default_ttl=timedelta(hours=settings.cache_default_ttl_hours),
        sweep_interval=settings.cache_sweep_interval_seconds,
    )
    cache.start_sweeper()

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": settings.crawler_user_agent},
        ) as client:
            fetcher = Fetcher(
                client,
                cache=cache,
                rate_limiter=RateLimiter(rate=settings.rate_limit_per_second),
                settings=settings,
            )
            address = Address(
                street=getattr(args, "street", ""),
                city=args.city,
                state=args.state.upper(),
                zip_code=args.zip_code,
            )

            if args.command == "discover" or not args.url:
                jurisdiction = await DiscoveryManager(fetcher, settings=settings).discover(address)
                if jurisdiction is None:
                    logger.error("No jurisdiction found", city=address.city, state=address.state)
                    _print_json({"success": False, "error": "No jurisdiction website found"})
                    return 1
                if args.command == "discover":
                    _print_json(asdict(jurisdiction))
                    return 0
            else:
                jurisdiction = jurisdiction_from_url(args.url, address)

            options = AcquireOptions(
                use_ai=not args.no_ai,
                crawl=not args.no_crawl,
                max_pages=args.max_pages,
                max_depth=args.max_depth,
            )
            pipeline = AcquisitionPipeline(
                fetcher,
                ai_parser=None if args.no_ai else get_ai_parser(settings, cache),
                settings=settings,
            )
            result: EnhancedResult = await pipeline.acquire(jurisdiction, address, options)
            _print_json(result.to_dict())
            logger.debug("Cache stats", **cache.stats())
            return 0 if result.success else 1
    finally:
        await cache.aclose()


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(
        json_logs=args.json_logs or settings.log_json,
        log_level=args.log_level or settings.log_level,
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
