"""
Step 06: Validate & Merge

Cross-references the heuristic data with the text-understanding service
(when configured), assembles permit types and runs the validator.

What it does:
- AI parse of the start page; any failure degrades to heuristic-only
- Merge AI fees, contact, requirements, forms and processing times into
  the heuristic baseline (heuristic values win)
- Build PermitType entries from permit names, permit-like fees and AI permits
- Validate the assembled data

Output stored in ctx:
- ai_data, permits, validation
"""

import re

from permit_agent.core.constants import infer_category
from permit_agent.core.errors import AIServiceError
from permit_agent.core.models import PermitFee, PermitType
from permit_agent.jobs.steps.base import BaseStep, PipelineContext
from permit_agent.services.merge import (
    dedup_forms_by_url,
    merge_contact,
    merge_fees,
    merge_processing_times,
    merge_requirements,
)

PERMIT_FEE_PATTERN = re.compile(r"\bpermit\b", re.IGNORECASE)


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def _fee_matches(fee: PermitFee, name: str) -> bool:
    fee_type = fee.type.strip().lower()
    base = re.sub(r"\s+permit$", "", name.strip().lower())
    return bool(base) and (fee_type == name.strip().lower() or base in fee_type)


def build_permits(
    names: list[str],
    fees: list[PermitFee],
    requirements: list[str],
    processing_times: dict[str, str],
    external: list[PermitType] | None = None,
    id_prefix: str = "permit",
) -> list[PermitType]:
    """
    Assemble permit types from everything gathered so far.

    One permit per extracted name, with the fees whose type mentions it.
    Fees that look like permit fees but match no name become permits of
    their own. External permits are added when no permit of that name
    exists yet, otherwise they only fill gaps.
    """
    permits: list[PermitType] = []
    by_name: dict[str, PermitType] = {}
    claimed: set[int] = set()

    def add(permit: PermitType) -> None:
        permits.append(permit)
        by_name[permit.name.strip().lower()] = permit

    for name in names:
        if name.strip().lower() in by_name:
            continue
        matched = [i for i, fee in enumerate(fees) if _fee_matches(fee, name)]
        claimed.update(matched)
        add(PermitType(
            id=f"{id_prefix}-{_slug(name)}",
            name=name,
            category=infer_category(name),
            requirements=list(requirements),
            processing_time=processing_times.get(name) or processing_times.get("General"),
            fees=[fees[i] for i in matched],
        ))

    for i, fee in enumerate(fees):
        if i in claimed or not PERMIT_FEE_PATTERN.search(fee.type):
            continue
        if fee.type.strip().lower() in by_name:
            by_name[fee.type.strip().lower()].fees.append(fee)
            continue
        add(PermitType(
            id=f"{id_prefix}-{_slug(fee.type)}",
            name=fee.type,
            category=infer_category(f"{fee.type} {fee.description}"),
            requirements=list(requirements),
            processing_time=processing_times.get("General"),
            fees=[fee],
        ))

    for permit in external or []:
        existing = by_name.get(permit.name.strip().lower())
        if existing is None:
            add(permit)
            continue
        existing.fees = merge_fees(existing.fees, permit.fees)
        existing.requirements = merge_requirements(existing.requirements, permit.requirements)
        existing.description = existing.description or permit.description
        existing.processing_time = existing.processing_time or permit.processing_time

    return permits


class ValidateStep(BaseStep):
    label = "Validate & Merge"
    description = "Cross-referencing with text understanding and validating..."

    async def run(self, ctx: PipelineContext) -> str:
        await self._parse_with_ai(ctx)

        external_permits = []
        if ctx.ai_data is not None:
            data = ctx.ai_data
            ctx.fees = merge_fees(ctx.fees, data.to_fees())
            ctx.contact = merge_contact(ctx.contact, data.to_contact())
            ctx.requirements = merge_requirements(ctx.requirements, data.requirements)
            ctx.forms = dedup_forms_by_url([*ctx.forms, *data.to_forms(ctx.final_url)])
            ctx.processing_times = merge_processing_times(data.processing_times, ctx.processing_times)
            external_permits = data.to_permits(id_prefix=f"{ctx.jurisdiction.id}-ai")

        ctx.permits = build_permits(
            ctx.permit_names,
            ctx.fees,
            ctx.requirements,
            ctx.processing_times,
            external=external_permits,
            id_prefix=ctx.jurisdiction.id,
        )

        if not ctx.options.validate or ctx.validator is None:
            return f"{len(ctx.permits)} permits assembled (validation disabled)"

        try:
            ctx.validation = ctx.validator.validate(
                ctx.permits,
                fees=ctx.fees,
                contact=ctx.contact,
                jurisdiction=ctx.jurisdiction,
            )
        except Exception as e:
            self.log.warning("Validator failed", error=str(e))
            ctx.fallbacks.append("validation_skipped")
            return f"{len(ctx.permits)} permits assembled; validation failed"

        ctx.add_technique("validation")
        return (
            f"{len(ctx.permits)} permits; valid={ctx.validation.is_valid}, "
            f"issues={len(ctx.validation.issues)}"
        )

    async def _parse_with_ai(self, ctx: PipelineContext) -> None:
        if not ctx.options.use_ai or ctx.ai_parser is None:
            ctx.fallbacks.append("heuristic_only")
            return
        if not ctx.html:
            return
        try:
            ctx.ai_data = await ctx.ai_parser.parse(ctx.html, ctx.final_url)
        except AIServiceError as e:
            self.log.warning("AI parse failed, continuing with heuristics", error=str(e))
            ctx.fallbacks.append("heuristic_only")
        except Exception as e:
            self.log.warning("AI parser raised unexpectedly", error=str(e), error_type=type(e).__name__)
            ctx.fallbacks.append("heuristic_only")
        else:
            ctx.add_technique("ai_parsing")
