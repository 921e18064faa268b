"""
Unit tests for jurisdiction discovery: candidate generation, batch
validation, portal classification and the manager.
"""

import asyncio

import httpx
import pytest

from permit_agent.core.models import Address, JurisdictionType, PortalCandidate, PortalType
from permit_agent.services.discovery import (
    BatchUrlValidator,
    DiscoveryManager,
    best_portal,
    classify_portal,
    generate_candidates,
)
from permit_agent.services.discovery.candidates import name_variants, sanitize_tokens
from permit_agent.services.discovery.manager import jurisdiction_id
from permit_agent.services.discovery.portals import merge_portals

pytestmark = pytest.mark.asyncio


# =============================================================================
# Candidates
# =============================================================================


class TestCandidates:
    """Hostname permutations."""

    async def test_saint_alias_both_ways(self):
        hosts = generate_candidates("St. Louis", "MO")
        assert "st-louis.gov" in hosts
        assert "saintlouis.gov" in hosts
        assert "stlouis.mo.us" in hosts

    async def test_no_duplicates(self):
        hosts = generate_candidates("Austin", "TX")
        assert len(hosts) == len(set(hosts))
        assert "austintx.gov" in hosts
        assert "permits.austin.gov" in hosts
        assert "austin.accela.com" in hosts

    async def test_county_patterns(self):
        hosts = generate_candidates("Travis County", "TX", JurisdictionType.COUNTY)
        assert "traviscounty.gov" in hosts
        assert "co.travis.tx.us" in hosts
        assert not any("countycounty" in h for h in hosts)

    async def test_state_patterns(self):
        hosts = generate_candidates("Texas", "TX", JurisdictionType.STATE)
        assert hosts[:2] == ["tx.gov", "texas.gov"]
        assert "permits.tx.gov" in hosts

    async def test_name_sanitizing(self):
        assert sanitize_tokens("City of Coeur d'Alene") == ["coeur", "dalene"]
        assert name_variants("Fort Worth")[:3] == ["fortworth", "fort-worth", "fort_worth"]
        assert generate_candidates("!!!") == []


# =============================================================================
# Batch validation
# =============================================================================


class TestBatchUrlValidator:
    """Concurrent HEAD checks."""

    async def test_concurrency_is_bounded(self, make_fetcher):
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200)

        validator = BatchUrlValidator(make_fetcher(handler), concurrency=3)
        urls = [f"https://host{i}.gov/" for i in range(10)]
        results = await validator.validate_all(urls)

        assert len(results) == 10
        assert peak <= 3
        assert all(r.is_accessible for r in results)

    async def test_order_kept_and_duplicates_dropped(self, site, make_fetcher):
        site.add("https://b.gov/", "ok")
        validator = BatchUrlValidator(make_fetcher(site), concurrency=2)

        results = await validator.validate_all(["https://a.gov/", "https://b.gov/", "https://a.gov/"])

        assert [r.url for r in results] == ["https://a.gov/", "https://b.gov/"]
        assert [r.is_accessible for r in results] == [False, True]
        assert results[0].status_code == 404

    async def test_malformed_url_is_invalid(self, site, make_fetcher):
        validator = BatchUrlValidator(make_fetcher(site))
        check = await validator.check("not a url")
        assert not check.is_valid
        assert site.requests == []

    async def test_network_error_isolated(self, make_fetcher):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.gov":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        validator = BatchUrlValidator(make_fetcher(handler))
        hits = await validator.accessible(["https://down.gov/", "https://up.gov/"])
        assert [h.url for h in hits] == ["https://up.gov/"]

    async def test_concurrency_must_be_positive(self, fetcher):
        with pytest.raises(ValueError):
            BatchUrlValidator(fetcher, concurrency=0)


# =============================================================================
# Portals
# =============================================================================


class TestPortals:
    async def test_classify_by_indicator_count(self):
        text = "Download form packets. Printable and fillable PDF form library."
        assert classify_portal(text)[0] == PortalType.FORM_LIBRARY

    async def test_tie_goes_to_earlier_type(self):
        portal_type, count = classify_portal("Apply online or view our forms")
        assert portal_type == PortalType.ONLINE_PORTAL
        assert count == 1

    async def test_no_indicators_defaults_to_application_page(self):
        assert classify_portal("Welcome to the parks department") == (PortalType.APPLICATION_PAGE, 0)

    async def test_merge_dedupes_by_host_and_path(self):
        a = PortalCandidate(url="https://www.springfield.gov/permits/", portal_type=PortalType.ONLINE_PORTAL)
        b = PortalCandidate(url="https://springfield.gov/Permits", portal_type=PortalType.FORM_LIBRARY)
        c = PortalCandidate(url="https://springfield.gov/forms", portal_type=PortalType.FORM_LIBRARY)

        merged = merge_portals([a], [b, c])
        assert merged == [a, c]

    async def test_best_portal_prefers_matches(self):
        weak = PortalCandidate(url="https://a.gov/x", portal_type=PortalType.APPLICATION_PAGE, match_count=1)
        strong = PortalCandidate(url="https://a.gov/y", portal_type=PortalType.ONLINE_PORTAL, match_count=3)
        assert best_portal([weak, strong]) is strong
        assert best_portal([]) is None


# =============================================================================
# Manager
# =============================================================================


class TestDiscoveryManager:
    async def test_discovers_city_site_and_portal(self, site, fetcher, settings):
        site.add("https://springfield.gov/", '<a href="/parks">Parks</a>')
        site.add(
            "https://springfield.gov/permits/apply",
            "<title>Permits</title><p>Apply online through the permit portal. Create account to start.</p>",
        )

        jurisdiction = await DiscoveryManager(fetcher, settings=settings).discover(
            Address(city="Springfield", state="IL"),
        )

        assert jurisdiction is not None
        assert jurisdiction.id == "city-springfield-il"
        assert jurisdiction.type == JurisdictionType.CITY
        assert jurisdiction.website == "https://springfield.gov/"
        assert jurisdiction.permit_url == "https://springfield.gov/permits/apply"

    async def test_falls_through_to_state(self, site, fetcher, settings):
        site.add("https://il.gov/", "<p>State of Illinois</p>")

        jurisdiction = await DiscoveryManager(fetcher, settings=settings).discover(
            Address(city="Nowhere", state="IL"),
        )

        assert jurisdiction is not None
        assert jurisdiction.type == JurisdictionType.STATE
        assert jurisdiction.website == "https://il.gov/"

    async def test_nothing_found(self, fetcher, settings):
        assert await DiscoveryManager(fetcher, settings=settings).discover(Address(city="Nowhere")) is None

    async def test_jurisdiction_id(self):
        assert jurisdiction_id(JurisdictionType.COUNTY, "St. Louis", "MO") == "county-st-louis-mo"
