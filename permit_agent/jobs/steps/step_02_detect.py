"""
Step 02: Form Detection

Runs the detection engine over the start page.

What it does:
- Static layers and vendor adapters (results merged with the crawl's forms)
- Dynamic probing of script-referenced JSON endpoints
- Forms are deduplicated by URL

Output stored in ctx:
- forms
"""

from permit_agent.core.models import SourceType
from permit_agent.jobs.steps.base import BaseStep, PipelineContext, StepError
from permit_agent.services.detection import detect_forms
from permit_agent.services.detection.dynamic import probe_dynamic_forms
from permit_agent.services.detection.vendors import detect_vendor_forms
from permit_agent.services.merge import dedup_forms_by_url


class DetectStep(BaseStep):
    label = "Form Detection"
    description = "Detecting forms, vendor portals and dynamic endpoints..."

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.soup is not None

    async def run(self, ctx: PipelineContext) -> str:
        if ctx.soup is None:
            raise StepError("No start page to analyze")

        vendor, vendor_forms = detect_vendor_forms(ctx.soup, ctx.final_url, ctx.html)
        static_forms = detect_forms(ctx.soup, ctx.final_url)
        dynamic_forms = await probe_dynamic_forms(ctx.fetcher, ctx.soup, ctx.final_url)

        ctx.add_technique("static_form_detection")
        if vendor:
            ctx.add_technique(f"vendor_detection:{vendor}")
        if dynamic_forms:
            ctx.add_technique("dynamic_probing")
            ctx.add_source(SourceType.API, ctx.final_url)

        before = len(ctx.forms)
        ctx.forms = dedup_forms_by_url([*vendor_forms, *ctx.forms, *static_forms, *dynamic_forms])
        if ctx.forms:
            ctx.add_source(SourceType.FORM, ctx.final_url)

        return (
            f"{len(ctx.forms)} forms ({len(ctx.forms) - before} new; vendor={vendor or 'none'}, "
            f"dynamic={len(dynamic_forms)})"
        )
