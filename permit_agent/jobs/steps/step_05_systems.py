"""
Step 05: Permitting Systems

Detects hosted permitting systems referenced by the start page and
probes the first few of them for forms. Best-effort.

Output stored in ctx:
- systems
- forms (merged)
"""

from permit_agent.core.models import SourceType
from permit_agent.jobs.steps.base import BaseStep, PipelineContext
from permit_agent.services.detection.systems import detect_systems, probe_system
from permit_agent.services.merge import dedup_forms_by_url


class SystemsStep(BaseStep):
    label = "System Probing"
    description = "Probing external permitting systems..."

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.options.probe_systems and bool(ctx.html)

    async def run(self, ctx: PipelineContext) -> str:
        ctx.systems = detect_systems(ctx.html, ctx.final_url)
        if not ctx.systems:
            return "No permitting systems detected"

        found = 0
        for system in ctx.systems[: ctx.settings.max_systems_probed]:
            forms = await probe_system(ctx.fetcher, system)
            if not forms:
                continue
            found += len(forms)
            ctx.forms = dedup_forms_by_url([*ctx.forms, *forms])
            ctx.add_source(SourceType.API, system.url or ctx.final_url)

        ctx.add_technique("system_detection")
        names = ", ".join(s.name for s in ctx.systems)
        return f"Detected {names}; {found} forms from probes"
