"""
Extraction subpackage for data extraction from fetched documents.

Modules:
- content_extractor: HTML tables, fees, contacts, hours, requirements
- pdf_analyzer: pdfplumber-based analysis of downloadable forms
- ai_parser: OpenAI-compatible text understanding with validated output
"""

from permit_agent.services.extraction.content_extractor import (
    extract_content,
    extract_content_from_html,
)

__all__ = [
    "extract_content",
    "extract_content_from_html",
]
