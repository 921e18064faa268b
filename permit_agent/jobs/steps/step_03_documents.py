"""
Step 03: Document Analysis

Downloads the first few PDF forms and mines them for fees, requirements,
contact details and processing times.

Output stored in ctx:
- fees / requirements / contact / processing_times (merged)
"""

from permit_agent.core.models import FileType, SourceType
from permit_agent.jobs.steps.base import BaseStep, PipelineContext
from permit_agent.services.extraction.pdf_analyzer import PDFAnalyzer
from permit_agent.services.merge import (
    merge_contact,
    merge_fees,
    merge_processing_times,
    merge_requirements,
)


class DocumentStep(BaseStep):
    label = "Document Analysis"
    description = "Analyzing downloadable forms..."

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.options.analyze_documents and any(f.file_type == FileType.PDF for f in ctx.forms)

    async def run(self, ctx: PipelineContext) -> str:
        pdfs = [f for f in ctx.forms if f.file_type == FileType.PDF]
        pdfs = pdfs[: ctx.settings.max_documents_analyzed]
        analyzer = PDFAnalyzer(ctx.fetcher)

        analyzed = 0
        for form in pdfs:
            analysis = await analyzer.analyze(form.url)
            if analysis is None:
                continue
            analyzed += 1
            ctx.add_source(SourceType.PDF, form.url)
            ctx.fees = merge_fees(ctx.fees, analysis.fees)
            ctx.requirements = merge_requirements(ctx.requirements, analysis.requirements)
            ctx.contact = merge_contact(ctx.contact, analysis.contact)
            ctx.processing_times = merge_processing_times(analysis.processing_times, ctx.processing_times)

        if analyzed:
            ctx.add_technique("pdf_analysis")
        return f"Analyzed {analyzed}/{len(pdfs)} documents"
