"""
Acquisition Pipeline Steps

Pipeline:
    step_01: Basic Fetch      - Fetch start page, crawl, heuristic extraction
    step_02: Form Detection   - Static layers, vendor adapters, dynamic endpoints
    step_03: Documents        - PDF analysis (first 5 documents)
    step_04: Flows            - Multi-step application mapping (first 3)
    step_05: Systems          - Hosted permitting-system probing (first 2)
    step_06: Validate & Merge - AI cross-reference, permit assembly, validation
    step_07: Score            - Data quality and confidence
"""

from permit_agent.jobs.steps.base import BaseStep, PipelineContext, StepError
from permit_agent.jobs.steps.step_01_fetch import FetchStep
from permit_agent.jobs.steps.step_02_detect import DetectStep
from permit_agent.jobs.steps.step_03_documents import DocumentStep
from permit_agent.jobs.steps.step_04_flows import FlowStep
from permit_agent.jobs.steps.step_05_systems import SystemsStep
from permit_agent.jobs.steps.step_06_validate import ValidateStep
from permit_agent.jobs.steps.step_07_score import ScoreStep

__all__ = [
    "BaseStep",
    "PipelineContext",
    "StepError",
    "FetchStep",
    "DetectStep",
    "DocumentStep",
    "FlowStep",
    "SystemsStep",
    "ValidateStep",
    "ScoreStep",
]
