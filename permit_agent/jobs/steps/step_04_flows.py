"""
Step 04: Flow Mapping

Follows multi-step online applications and records each step's fields,
uploads and validation rules.

Candidates are the start page, when it already shows a step indicator,
followed by the online form URLs, capped at max_flows_mapped.

Output stored in ctx:
- flows
"""

from permit_agent.core.models import FileType
from permit_agent.jobs.steps.base import BaseStep, PipelineContext
from permit_agent.services.detection.flow_mapper import FlowMapper, has_step_indicators
from permit_agent.services.url_utils import normalize_url


class FlowStep(BaseStep):
    label = "Flow Mapping"
    description = "Mapping multi-step application flows..."

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.options.map_flows

    async def run(self, ctx: PipelineContext) -> str:
        urls = [f.url for f in ctx.forms if f.file_type == FileType.ONLINE]
        if ctx.soup is not None and has_step_indicators(ctx.soup):
            urls.insert(0, ctx.final_url)

        candidates: list[str] = []
        seen: set[str] = set()
        for url in urls:
            key = normalize_url(url)
            if key not in seen:
                seen.add(key)
                candidates.append(url)
        candidates = candidates[: ctx.settings.max_flows_mapped]

        mapper = FlowMapper(
            ctx.fetcher,
            max_depth=ctx.settings.flow_max_depth,
            step_delay=ctx.settings.flow_step_delay,
        )
        for url in candidates:
            html = ctx.html if url == ctx.final_url else None
            flow = await mapper.map_flow(url, html=html)
            if flow is not None:
                ctx.flows.append(flow)

        if ctx.flows:
            ctx.add_technique("flow_mapping")
        return f"Mapped {len(ctx.flows)} flows from {len(candidates)} candidates"
