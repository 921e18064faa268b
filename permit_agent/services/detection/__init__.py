"""
Detection engine: forms, vendor portals, dynamic endpoints and
multi-step application flows.

Modules:
- form_detector: layered static DOM heuristics
- vendors: known permitting-platform adapters (VENDOR_ADAPTERS)
- dynamic: script-referenced JSON endpoints
- flow_mapper: multi-step wizard reconstruction
- systems: hosted permitting-system detection and probing
"""

from bs4 import BeautifulSoup

from permit_agent.core.models import DetectedForm
from permit_agent.services.detection.form_detector import dedup_forms, detect_forms
from permit_agent.services.detection.vendors import detect_vendor_forms


def detect_page_forms(soup: BeautifulSoup, page_url: str, html: str | None = None) -> list[DetectedForm]:
    """Vendor and static candidates for one page, vendor results first."""
    _, vendor_forms = detect_vendor_forms(soup, page_url, html)
    return dedup_forms(vendor_forms + detect_forms(soup, page_url))


__all__ = [
    "dedup_forms",
    "detect_forms",
    "detect_page_forms",
    "detect_vendor_forms",
]
