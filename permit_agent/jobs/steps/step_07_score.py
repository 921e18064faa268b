"""
Step 07: Confidence Scoring

Computes data quality and the final confidence score.

Confidence:
    0.5 base
    + 0.1 per distinct source type
    + 0.2 permits found, + 0.1 forms found
    + 0.1 phone or email present, + 0.1 flow mapped
    averaged with the validator's confidence when a validation exists,
    clamped to [0, 1]

Data quality is the AI's self-reported score when AI parsing succeeded,
otherwise the same completeness formula over heuristic counts.
"""

from permit_agent.jobs.steps.base import BaseStep, PipelineContext
from permit_agent.services.extraction.ai_parser import score_heuristic_quality

BASE_CONFIDENCE = 0.5
SOURCE_TYPE_BONUS = 0.1
PERMITS_BONUS = 0.2
FORMS_BONUS = 0.1
CONTACT_BONUS = 0.1
FLOWS_BONUS = 0.1


def compute_confidence(ctx: PipelineContext) -> float:
    score = BASE_CONFIDENCE
    score += SOURCE_TYPE_BONUS * len({source.type for source in ctx.sources})
    if ctx.permits:
        score += PERMITS_BONUS
    if ctx.forms:
        score += FORMS_BONUS
    if ctx.contact.phone or ctx.contact.email:
        score += CONTACT_BONUS
    if ctx.flows:
        score += FLOWS_BONUS
    if ctx.validation is not None:
        score = (score + ctx.validation.confidence) / 2
    return min(1.0, max(0.0, score))


class ScoreStep(BaseStep):
    label = "Confidence Scoring"
    description = "Scoring data quality and confidence..."

    async def run(self, ctx: PipelineContext) -> str:
        if ctx.ai_data is not None:
            ctx.data_quality = ctx.ai_data.data_quality
        else:
            ctx.data_quality = score_heuristic_quality(
                ctx.permits,
                ctx.forms,
                ctx.contact,
                ctx.requirements,
                ctx.processing_times,
            )
        ctx.confidence = compute_confidence(ctx)
        return f"quality={ctx.data_quality:.2f}, confidence={ctx.confidence:.2f}"
