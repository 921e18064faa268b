"""
Acquire Job - Steps 1-7: Fetch, Detect, Documents, Flows, Systems, Validate, Score.

Runs one acquisition request for a jurisdiction:
1. Step 01: Basic Fetch - start page plus crawl, heuristic extraction
2. Step 02: Form Detection - static, vendor and dynamic layers
3. Step 03: Documents - PDF analysis
4. Step 04: Flows - multi-step application mapping
5. Step 05: Systems - hosted permitting-system probing
6. Step 06: Validate & Merge - AI cross-reference and validation
7. Step 07: Score - data quality and confidence

Every phase after the first is independent: a failed phase is recorded
in the methodology trace and the pipeline moves on. When the basic fetch
fails, the remaining phases are skipped and a keyword scan of the
jurisdiction website produces a low-confidence fallback result.

Network calls run sequentially on a single logical worker so crawling
stays polite. Nothing raises past acquire().
"""

import re

import httpx
import structlog

from permit_agent.core.config import Settings, get_settings
from permit_agent.core.errors import FetchError
from permit_agent.core.logging import bind_request_context, clear_request_context
from permit_agent.core.models import (
    AcquireOptions,
    Address,
    EnhancedResult,
    Jurisdiction,
    Methodology,
    PermitCategory,
    PermitType,
    PhaseStatus,
)
from permit_agent.core.rate_limiter import RateLimiter
from permit_agent.jobs.steps.base import PipelineContext
from permit_agent.services.cache import QualityCache
from permit_agent.services.extraction.ai_parser import AIParser, get_ai_parser
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import is_safe_url
from permit_agent.services.validator import DataValidator

logger = structlog.get_logger()

FALLBACK_CONFIDENCE = 0.3
FALLBACK_CATEGORIES = (
    PermitCategory.BUILDING,
    PermitCategory.ELECTRICAL,
    PermitCategory.PLUMBING,
    PermitCategory.MECHANICAL,
)

# Steps for the acquire job
ACQUIRE_STEPS = None  # Lazy loaded to avoid circular imports


def get_acquire_steps():
    """Lazy load acquire steps to avoid circular imports."""
    global ACQUIRE_STEPS
    if ACQUIRE_STEPS is None:
        from permit_agent.jobs.steps.step_01_fetch import FetchStep
        from permit_agent.jobs.steps.step_02_detect import DetectStep
        from permit_agent.jobs.steps.step_03_documents import DocumentStep
        from permit_agent.jobs.steps.step_04_flows import FlowStep
        from permit_agent.jobs.steps.step_05_systems import SystemsStep
        from permit_agent.jobs.steps.step_06_validate import ValidateStep
        from permit_agent.jobs.steps.step_07_score import ScoreStep

        ACQUIRE_STEPS = [
            FetchStep(),
            DetectStep(),
            DocumentStep(),
            FlowStep(),
            SystemsStep(),
            ValidateStep(),
            ScoreStep(),
        ]
    return ACQUIRE_STEPS


def scan_permit_keywords(text: str, id_prefix: str) -> list[PermitType]:
    """Minimal permit list from category names mentioned on a page."""
    permits = []
    for category in FALLBACK_CATEGORIES:
        if re.search(rf"\b{category.value}\s+permit", text, re.IGNORECASE):
            permits.append(PermitType(
                id=f"{id_prefix}-{category.value}-permit",
                name=f"{category.value.title()} Permit",
                category=category,
                description=f"Basic {category.value} permit",
            ))
    return permits


class AcquisitionPipeline:
    """
    Seven-phase permit acquisition.

    The fetcher (and through it the cache and rate limiter) is injected;
    the pipeline never creates or closes shared resources.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        ai_parser: AIParser | None = None,
        validator: DataValidator | None = None,
        settings: Settings | None = None,
    ):
        self.fetcher = fetcher
        self.ai_parser = ai_parser
        self.validator = validator or DataValidator()
        self.settings = settings or fetcher.settings
        self.log = logger.bind(component="AcquisitionPipeline")

    async def acquire(
        self,
        jurisdiction: Jurisdiction,
        address: Address | None = None,
        options: AcquireOptions | None = None,
    ) -> EnhancedResult:
        """
        Run every phase for one jurisdiction.

        Returns:
            EnhancedResult; success=False only for structurally invalid input
        """
        options = options or AcquireOptions()
        start_url = jurisdiction.permit_url or jurisdiction.website
        bind_request_context(jurisdiction=jurisdiction.id)
        log = self.log.bind(jurisdiction=jurisdiction.id, url=start_url)

        try:
            if not start_url or not is_safe_url(start_url):
                log.warning("Rejected jurisdiction URL")
                return EnhancedResult(
                    success=False,
                    jurisdiction=jurisdiction,
                    error=f"Invalid jurisdiction URL: {start_url!r}",
                )

            ctx = PipelineContext(
                jurisdiction=jurisdiction,
                address=address,
                options=options,
                settings=self.settings,
                fetcher=self.fetcher,
                ai_parser=self.ai_parser,
                validator=self.validator,
                start_url=start_url,
            )

            log.info("Acquisition started")
            steps = get_acquire_steps()
            total_steps = len(steps)

            first = await steps[0].execute(ctx, 1, total_steps)
            if first.status == PhaseStatus.FAILED:
                await self._fallback(ctx, first.error)
            else:
                for i, step in enumerate(steps[1:], 2):
                    await step.execute(ctx, i, total_steps)

            result = self._build_result(ctx)
            log.info(
                "Acquisition completed",
                permits=len(result.permits),
                forms=len(result.forms),
                confidence=round(result.confidence, 2),
            )
            return result
        except Exception as e:
            log.error("Acquisition crashed", error=str(e), error_type=type(e).__name__)
            return EnhancedResult(
                success=True,
                jurisdiction=jurisdiction,
                methodology=Methodology(fallbacks=["pipeline_error"]),
                error=f"{type(e).__name__}: {e}",
            )
        finally:
            clear_request_context()

    async def _fallback(self, ctx: PipelineContext, reason: str | None) -> None:
        self.log.error("Basic fetch failed, falling back to keyword scan", error=reason)
        ctx.fallbacks.append("basic_fallback")

        text = ctx.html
        if not text:
            try:
                page = await self.fetcher.get(ctx.jurisdiction.website, max_attempts=1)
            except FetchError as e:
                self.log.warning("Fallback fetch failed", url=ctx.jurisdiction.website, error=str(e))
                return
            text = page.text

        ctx.permits = scan_permit_keywords(text, ctx.jurisdiction.id)
        ctx.add_technique("keyword_scan")
        ctx.confidence = FALLBACK_CONFIDENCE

    def _build_result(self, ctx: PipelineContext) -> EnhancedResult:
        return EnhancedResult(
            success=True,
            jurisdiction=ctx.jurisdiction,
            permits=ctx.permits,
            forms=list(ctx.forms),
            contact=ctx.contact,
            requirements=ctx.requirements,
            processing_times=ctx.processing_times,
            flows=ctx.flows,
            systems=ctx.systems,
            sources=ctx.sources,
            validation=ctx.validation,
            ai_parsed=ctx.ai_data.model_dump(mode="json") if ctx.ai_data is not None else None,
            data_quality=ctx.data_quality,
            confidence=ctx.confidence,
            methodology=Methodology(
                techniques=ctx.techniques,
                fallbacks=ctx.fallbacks,
                phases=ctx.phases,
            ),
        )


async def acquire(
    jurisdiction: Jurisdiction,
    address: Address | None = None,
    options: AcquireOptions | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    cache: QualityCache | None = None,
    settings: Settings | None = None,
) -> EnhancedResult:
    """
    One-shot acquisition for hosting applications.

    Pass a client and cache to share them across calls; otherwise a
    client is created (and closed) for this call only and nothing is cached.
    """
    settings = settings or get_settings()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": settings.crawler_user_agent},
        )
    try:
        fetcher = Fetcher(
            client,
            cache=cache,
            rate_limiter=RateLimiter(rate=settings.rate_limit_per_second),
            settings=settings,
        )
        pipeline = AcquisitionPipeline(
            fetcher,
            ai_parser=get_ai_parser(settings, cache) if (options is None or options.use_ai) else None,
            settings=settings,
        )
        return await pipeline.acquire(jurisdiction, address, options)
    finally:
        if owns_client:
            await client.aclose()
