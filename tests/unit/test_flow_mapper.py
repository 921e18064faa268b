"""
Unit tests for multi-step application flow mapping.
"""

import pytest
from bs4 import BeautifulSoup

from permit_agent.services.detection.flow_mapper import (
    FlowMapper,
    extract_fields,
    extract_validation_rules,
    find_next_url,
    has_step_indicators,
)
from tests.conftest import WIZARD_STEP_1_HTML, WIZARD_STEP_2_HTML

pytestmark = pytest.mark.asyncio

START_URL = "https://www.springfield.gov/apply/step-1"


class TestStepParsing:
    """Single-page helpers."""

    async def test_step_indicators(self):
        assert has_step_indicators(BeautifulSoup(WIZARD_STEP_1_HTML, "lxml"))
        assert not has_step_indicators(BeautifulSoup("<p>Plain page</p>", "lxml"))

    async def test_fields_split_by_required(self):
        required, optional = extract_fields(BeautifulSoup(WIZARD_STEP_1_HTML, "lxml"))
        assert required == ["Full Name"]
        assert optional == ["Phone"]

    async def test_validation_rules(self):
        rules = extract_validation_rules(BeautifulSoup(WIZARD_STEP_1_HTML, "lxml"))
        assert {(r.field, r.rule) for r in rules} >= {("Full Name", "required"), ("Phone", "pattern")}

    async def test_next_link_preferred_over_form_action(self):
        html = """
        <form action="/apply/submit"><input type="submit" value="Save"></form>
        <a href="/apply/step-3">Continue</a>
        """
        soup = BeautifulSoup(html, "lxml")
        assert find_next_url(soup, START_URL) == "https://www.springfield.gov/apply/step-3"

    async def test_submit_action_fallback(self):
        html = '<form action="/apply/review"><button type="submit">Save</button></form>'
        soup = BeautifulSoup(html, "lxml")
        assert find_next_url(soup, START_URL) == "https://www.springfield.gov/apply/review"


class TestFlowMapper:
    """Following a wizard across pages."""

    async def test_two_step_flow(self, site, fetcher):
        site.add(START_URL, WIZARD_STEP_1_HTML)
        site.add("https://www.springfield.gov/apply/step-2", WIZARD_STEP_2_HTML)

        flow = await FlowMapper(fetcher, max_depth=5, step_delay=0).map_flow(START_URL)

        assert flow is not None
        assert flow.total_steps == 2
        assert flow.steps[0].title == "Applicant Information"
        assert flow.steps[1].file_uploads[0].name == "Site Plans"
        assert flow.steps[1].file_uploads[0].accepted_formats == [".pdf", ".dwg"]
        assert flow.required_documents == ["Site Plans"]

    async def test_loop_terminates(self, site, fetcher):
        """A next link pointing back at a visited step ends the flow."""
        looping = WIZARD_STEP_2_HTML.replace(
            '<form action="/apply/submit" method="post">',
            '<form action="/apply/step-1" method="post"><a href="/apply/step-1">Next</a>',
        )
        site.add(START_URL, WIZARD_STEP_1_HTML)
        site.add("https://www.springfield.gov/apply/step-2", looping)

        flow = await FlowMapper(fetcher, max_depth=10, step_delay=0).map_flow(START_URL)

        assert flow is not None
        assert flow.total_steps == 2
        assert len(site.fetched()) == 2

    async def test_external_next_step_not_followed(self, site, fetcher):
        """A Next link to a payment provider ends the flow before leaving the site."""
        handoff = WIZARD_STEP_2_HTML.replace(
            '<form action="/apply/submit" method="post">',
            '<form action="https://pay.example.com/checkout" method="post">'
            '<a href="https://pay.example.com/checkout">Next</a>',
        )
        site.add(START_URL, WIZARD_STEP_1_HTML)
        site.add("https://www.springfield.gov/apply/step-2", handoff)
        site.add("https://pay.example.com/checkout", WIZARD_STEP_2_HTML)

        flow = await FlowMapper(fetcher, max_depth=5, step_delay=0).map_flow(START_URL)

        assert flow is not None
        assert flow.total_steps == 2
        assert not any("pay.example.com" in url for url in site.fetched())

    async def test_depth_bound(self, site, fetcher):
        site.add(START_URL, WIZARD_STEP_1_HTML)
        site.add("https://www.springfield.gov/apply/step-2", WIZARD_STEP_2_HTML)

        flow = await FlowMapper(fetcher, max_depth=1, step_delay=0).map_flow(START_URL)
        assert flow is None

    async def test_page_without_indicators(self, site, fetcher):
        site.add(START_URL, "<html><body><h1>Apply</h1><a href='/next'>Next</a></body></html>")
        assert await FlowMapper(fetcher, step_delay=0).map_flow(START_URL) is None

    async def test_preloaded_html_skips_first_fetch(self, site, fetcher):
        site.add("https://www.springfield.gov/apply/step-2", WIZARD_STEP_2_HTML)

        flow = await FlowMapper(fetcher, step_delay=0).map_flow(START_URL, html=WIZARD_STEP_1_HTML)

        assert flow is not None and flow.total_steps == 2
        assert site.fetched() == ["https://www.springfield.gov/apply/step-2"]
