"""
Unit tests for the detection engine: static layers, vendor adapters,
dynamic endpoints and permitting systems.
"""

import json

import pytest
from bs4 import BeautifulSoup

from permit_agent.core.models import DetectedSystem, FileType
from permit_agent.services.detection import detect_forms, detect_page_forms
from permit_agent.services.detection.dynamic import (
    extract_endpoints,
    forms_from_json,
    probe_dynamic_forms,
)
from permit_agent.services.detection.systems import detect_systems, probe_system
from permit_agent.services.detection.vendors import (
    VENDOR_ADAPTERS,
    AccelaAdapter,
    TylerAdapter,
    detect_vendor,
    detect_vendor_forms,
)
from permit_agent.services.merge import dedup_forms_by_url
from tests.conftest import PERMIT_PAGE_HTML

pytestmark = pytest.mark.asyncio

PAGE_URL = "https://www.springfield.gov/permits"


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


# =============================================================================
# Static layers
# =============================================================================


class TestStaticDetection:
    """Layered DOM heuristics."""

    async def test_file_links_on_permit_page(self):
        forms = detect_forms(soup_of(PERMIT_PAGE_HTML), PAGE_URL)
        urls = {f.url for f in forms}

        assert "https://www.springfield.gov/docs/building-permit-application.pdf" in urls
        assert "https://www.springfield.gov/docs/electrical-permit-form.pdf" in urls
        assert all(f.file_type == FileType.PDF for f in forms)

    async def test_unrelated_and_offsite_links_dropped(self):
        html = """
        <p><a href="/docs/parks-map.pdf">Parks Map</a></p>
        <p><a href="https://tracker.example.net/permit-form.pdf">Building Permit Form</a></p>
        """
        assert detect_forms(soup_of(html), PAGE_URL) == []

    async def test_identical_urls_collapse(self):
        """Two links to the same document end up as one form."""
        html = """
        <div class="forms">
          <a href="/docs/fence-permit.pdf">Fence Permit</a>
          <a href="/docs/fence-permit.pdf">Download the fence permit application</a>
        </div>
        """
        forms = dedup_forms_by_url(detect_page_forms(soup_of(html), PAGE_URL))
        assert [f.url for f in forms] == ["https://www.springfield.gov/docs/fence-permit.pdf"]

    async def test_json_ld_metadata(self):
        html = """
        <script type="application/ld+json">
        {"@type": "GovernmentService", "name": "Building Permit Application",
         "url": "/apply/building-permit"}
        </script>
        """
        forms = detect_forms(soup_of(html), PAGE_URL)
        assert len(forms) == 1
        assert forms[0].source == "json_ld"
        assert forms[0].file_type == FileType.ONLINE

    async def test_required_marker(self):
        html = '<ul class="forms"><li><a href="/docs/plot-plan-permit.pdf">Plot Plan Permit</a> (required)</li></ul>'
        forms = detect_forms(soup_of(html), PAGE_URL)
        assert forms and forms[0].is_required


# =============================================================================
# Vendors
# =============================================================================


class TestVendorDispatch:
    """Host patterns first, then page signatures."""

    async def test_dispatch_table_keys_match_adapter_names(self):
        for key, adapter_cls in VENDOR_ADAPTERS.items():
            assert adapter_cls.name == key

    async def test_host_match(self):
        adapter = detect_vendor("https://aca-prod.accela.com/SPRINGFIELD/Default.aspx", "")
        assert isinstance(adapter, AccelaAdapter)

    async def test_signature_match(self):
        adapter = detect_vendor(PAGE_URL, "<footer>Powered by Tyler Technologies</footer>")
        assert isinstance(adapter, TylerAdapter)

    async def test_signature_needs_word_boundary(self):
        assert detect_vendor(PAGE_URL, "<p>More information about permits</p>") is None

    async def test_accela_custom_extraction(self):
        html = """
        <div class="aca-page-content">
          <div class="attachment-item required">
            <a href="/docs/residential-application.pdf">Residential Building Application</a>
            <span class="attachment-description">New homes and additions</span>
          </div>
        </div>
        """
        vendor, forms = detect_vendor_forms(
            soup_of(html), "https://aca-prod.accela.com/SPRINGFIELD/Default.aspx", html,
        )
        assert vendor == "accela"
        assert len(forms) == 1
        form = forms[0]
        assert form.source == "vendor:accela"
        assert form.is_required
        assert form.description == "New homes and additions"
        assert form.confidence == 0.85

    async def test_generic_portal_runs_without_vendor(self):
        html = '<div class="form-card"><a href="/forms/sign-permit">Sign Permit</a></div>'
        vendor, forms = detect_vendor_forms(soup_of(html), PAGE_URL)
        assert vendor is None
        assert [f.source for f in forms] == ["vendor:generic"]


# =============================================================================
# Dynamic endpoints
# =============================================================================


class TestDynamicProbing:
    async def test_endpoint_extraction(self):
        script = """
        fetch('/api/permits/forms');
        $.get('/api/weather');
        axios.get('https://other.example.com/api/permit-list');
        $.ajax({method: 'GET', url: '/ajax/applications'});
        """
        endpoints = extract_endpoints(script, PAGE_URL)
        assert endpoints == [
            "https://www.springfield.gov/api/permits/forms",
            "https://www.springfield.gov/ajax/applications",
        ]

    async def test_forms_from_json_shapes(self):
        listed = forms_from_json(
            [{"type": "form", "name": "Deck Permit", "url": "/forms/deck.pdf"}, {"weather": "sunny"}],
            PAGE_URL,
        )
        wrapped = forms_from_json({"applications": [{"title": "Pool Permit", "link": "/apply/pool"}]}, PAGE_URL)

        assert [f.name for f in listed] == ["Deck Permit"]
        assert listed[0].file_type == FileType.PDF
        assert [f.url for f in wrapped] == ["https://www.springfield.gov/apply/pool"]
        assert forms_from_json("nonsense", PAGE_URL) == []

    async def test_probe_reads_json_endpoint(self, site, fetcher):
        page = "<script>fetch('/api/permits/forms')</script>"
        site.add(
            "https://www.springfield.gov/api/permits/forms",
            json.dumps({"forms": [{"name": "Roofing Permit", "url": "/forms/roof.pdf"}]}),
            content_type="application/json",
        )
        forms = await probe_dynamic_forms(fetcher, soup_of(page), PAGE_URL)

        assert [f.name for f in forms] == ["Roofing Permit"]
        assert forms[0].source == "api"

    async def test_probe_failures_are_silent(self, site, fetcher):
        page = "<script>fetch('/api/permits/forms')</script>"
        site.add("https://www.springfield.gov/api/permits/forms", "oops", status=500)
        assert await probe_dynamic_forms(fetcher, soup_of(page), PAGE_URL) == []


# =============================================================================
# Permitting systems
# =============================================================================


class TestSystems:
    async def test_detect_from_links(self):
        html = '<a href="https://springfield-energov.tylertech.com/portal">Apply online</a>'
        systems = {s.name: s for s in detect_systems(html, PAGE_URL)}

        assert "tyler" in systems
        assert "energov" in systems
        assert systems["tyler"].url == "https://springfield-energov.tylertech.com/portal"

    async def test_prose_only_indicators_ignored(self):
        html = "<p>For more information, see the Harris Street spectrum of services.</p>"
        assert detect_systems(html, PAGE_URL) == []

    async def test_probe_system(self, site, fetcher):
        site.add(
            "https://springfield.portal.accela.com/",
            '<div class="form-download"><a href="/docs/permit.pdf">Permit Form</a></div>',
        )
        system = DetectedSystem(name="accela", indicators=["accela"], url="https://springfield.portal.accela.com/")
        forms = await probe_system(fetcher, system)
        assert [f.name for f in forms] == ["Permit Form"]

    async def test_probe_without_url(self, fetcher):
        assert await probe_system(fetcher, DetectedSystem(name="amanda")) == []
