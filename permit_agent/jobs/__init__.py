"""
Jobs layer: the acquisition pipeline.

acquire_job runs the ordered steps in jobs/steps/ against one
jurisdiction and assembles the EnhancedResult.
"""

from permit_agent.jobs.acquire_job import AcquisitionPipeline, acquire, get_acquire_steps

__all__ = [
    "AcquisitionPipeline",
    "acquire",
    "get_acquire_steps",
]
