import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog
from bs4 import BeautifulSoup

from permit_agent.core.config import Settings
from permit_agent.core.models import (
    AcquireOptions,
    Address,
    ContactInfo,
    DataSource,
    DetectedForm,
    DetectedSystem,
    Jurisdiction,
    MappedFlow,
    PermitFee,
    PermitType,
    PhaseReport,
    PhaseStatus,
    SourceType,
    ValidationResult,
)
from permit_agent.services.extraction.ai_parser import AIParsedData, AIParser
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.validator import DataValidator

logger = structlog.get_logger()


# Reliability recorded for each kind of source
SOURCE_RELIABILITY = {
    SourceType.WEBSITE: 0.8,
    SourceType.FORM: 0.9,
    SourceType.PDF: 0.85,
    SourceType.API: 0.95,
}


@dataclass
class PipelineContext:
    """Everything one acquisition request accumulates, phase by phase."""
    jurisdiction: Jurisdiction
    address: Address | None
    options: AcquireOptions
    settings: Settings
    fetcher: Fetcher
    ai_parser: AIParser | None = None
    validator: DataValidator | None = None

    # Phase 1
    start_url: str = ""
    final_url: str = ""
    html: str = ""
    soup: BeautifulSoup | None = None
    pages: dict[str, str] = field(default_factory=dict)
    permit_names: list[str] = field(default_factory=list)

    # Accumulated across phases
    forms: list[DetectedForm] = field(default_factory=list)
    fees: list[PermitFee] = field(default_factory=list)
    contact: ContactInfo = field(default_factory=ContactInfo)
    requirements: list[str] = field(default_factory=list)
    processing_times: dict[str, str] = field(default_factory=dict)
    flows: list[MappedFlow] = field(default_factory=list)
    systems: list[DetectedSystem] = field(default_factory=list)
    sources: list[DataSource] = field(default_factory=list)
    permits: list[PermitType] = field(default_factory=list)

    ai_data: AIParsedData | None = None
    validation: ValidationResult | None = None
    data_quality: float = 0.0
    confidence: float = 0.0

    techniques: list[str] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)
    phases: list[PhaseReport] = field(default_factory=list)

    def add_source(self, source_type: SourceType, url: str) -> None:
        if any(s.type == source_type and s.url == url for s in self.sources):
            return
        self.sources.append(DataSource(
            type=source_type, url=url, reliability=SOURCE_RELIABILITY[source_type],
        ))

    def add_technique(self, name: str) -> None:
        if name not in self.techniques:
            self.techniques.append(name)


class StepError(Exception):
    """Controlled phase failure with a message meant for the methodology trace.

    Use this for expected failures, as opposed to unexpected exceptions.
    """

    pass


class BaseStep(ABC):
    """Base class for all acquisition phases."""

    label: str = "Base Step"
    description: str = "Performing base step..."

    def __init__(self):
        self.log = logger.bind(step=self.label)

    def should_run(self, ctx: PipelineContext) -> bool:
        """False skips the phase (recorded as skipped)."""
        return True

    @abstractmethod
    async def run(self, ctx: PipelineContext) -> str | None:
        """Logic for the step goes here. Returns a short result message."""
        pass

    async def execute(self, ctx: PipelineContext, step_num: int, total_steps: int) -> PhaseReport:
        """Wrapper around run() that records timing and status. Never raises."""
        if not self.should_run(ctx):
            self.log.debug(f"Step {step_num}/{total_steps} skipped")
            report = PhaseReport(name=self.label, status=PhaseStatus.SKIPPED)
            ctx.phases.append(report)
            return report

        self.log.info(f"Starting step {step_num}/{total_steps}")
        start = time.monotonic()
        try:
            result_msg = await self.run(ctx)
        except StepError as e:
            self.log.warning(f"Step {step_num} failed", error=str(e))
            report = PhaseReport(
                name=self.label,
                status=PhaseStatus.FAILED,
                duration_seconds=round(time.monotonic() - start, 3),
                error=str(e),
            )
        except Exception as e:
            self.log.warning(f"Step {step_num} failed", error=str(e), error_type=type(e).__name__)
            report = PhaseReport(
                name=self.label,
                status=PhaseStatus.FAILED,
                duration_seconds=round(time.monotonic() - start, 3),
                error=f"{type(e).__name__}: {e}",
            )
        else:
            report = PhaseReport(
                name=self.label,
                status=PhaseStatus.DONE,
                duration_seconds=round(time.monotonic() - start, 3),
                detail=result_msg,
            )
            self.log.info(f"Step {step_num}/{total_steps} completed", result=result_msg)

        ctx.phases.append(report)
        return report
