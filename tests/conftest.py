"""
Pytest configuration and fixtures for Permit Agent tests.

HTTP never leaves the process: every fetcher is backed by an
httpx.MockTransport serving canned pages from a route table.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
import pytest
import pytest_asyncio

from permit_agent.core.config import Settings
from permit_agent.services.cache import QualityCache
from permit_agent.services.fetcher import Fetcher


# =============================================================================
# HTML fixtures
# =============================================================================

PERMIT_PAGE_HTML = """
<html>
<head><title>Building Permits | City of Springfield</title></head>
<body>
  <h1>Building Permits</h1>
  <ul class="permit-types">
    <li>Residential Building Permit</li>
    <li>Electrical Permit</li>
  </ul>
  <table>
    <thead><tr><th>Permit Type</th><th>Fee</th></tr></thead>
    <tbody>
      <tr><td>Residential Building Permit</td><td>$500</td></tr>
      <tr><td>Electrical Permit</td><td>$75.00</td></tr>
      <tr><td>Plan Review</td><td>$125.00 per sq ft</td></tr>
    </tbody>
  </table>
  <div class="requirements">
    <h2>Required Documents</h2>
    <ul>
      <li>Two sets of construction drawings</li>
      <li>Site plan showing property lines</li>
    </ul>
  </div>
  <div class="forms">
    <a href="/docs/building-permit-application.pdf">Building Permit Application</a>
    <a href="/docs/electrical-permit-form.pdf">Electrical Permit Form</a>
  </div>
  <p class="processing-time">Building permits are reviewed within 10 business days.</p>
  <div class="contact">
    <p>Phone: (217) 555-0142</p>
    <p>Email: permits@springfield.gov</p>
  </div>
</body>
</html>
"""

PLAIN_PAGE_HTML = """
<html>
<head><title>Welcome</title></head>
<body>
  <h1>Welcome to Springfield</h1>
  <p>Our parks are open from dawn to dusk.</p>
  <a href="/parks">Parks</a>
  <a href="/events">Events</a>
</body>
</html>
"""

WIZARD_STEP_1_HTML = """
<html><body>
  <div class="wizard"><div class="step active">Step 1 of 2</div></div>
  <h1>Applicant Information</h1>
  <form action="/apply/step-2" method="post">
    <label for="name">Full Name</label><input id="name" name="name" required>
    <label for="phone">Phone</label><input id="phone" name="phone" pattern="[0-9]{10}">
    <input type="hidden" name="token" value="x">
    <a href="/apply/step-2">Next</a>
  </form>
</body></html>
"""

WIZARD_STEP_2_HTML = """
<html><body>
  <div class="wizard"><div class="step active">Step 2 of 2</div></div>
  <h1>Project Documents</h1>
  <form action="/apply/submit" method="post">
    <label for="plans">Site Plans</label>
    <input type="file" id="plans" name="plans" accept=".pdf,.dwg" required>
    <label for="notes">Notes</label><textarea id="notes" name="notes"></textarea>
  </form>
</body></html>
"""


# =============================================================================
# Mock transport
# =============================================================================


def route_key(url: str) -> str:
    """host + path without trailing slash, so /permits and /permits/ match."""
    parsed = urlparse(url)
    return f"{(parsed.hostname or '').lower()}{parsed.path.rstrip('/') or '/'}"


@dataclass
class MockSite:
    """Route table plus a log of every request the transport saw."""
    routes: dict[str, tuple[int, str | bytes, str]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def add(self, url: str, body: str | bytes, status: int = 200, content_type: str = "text/html") -> None:
        self.routes[route_key(url)] = (status, body, content_type)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(route_key(str(request.url)))
        if route is None:
            return httpx.Response(404, text="Not Found", headers={"content-type": "text/html"})
        status, body, content_type = route
        content = body.encode("utf-8") if isinstance(body, str) else body
        if request.method == "HEAD":
            content = b""
        return httpx.Response(status, content=content, headers={"content-type": content_type})

    def fetched(self, method: str = "GET") -> list[str]:
        return [str(r.url) for r in self.requests if r.method == method]


@pytest.fixture
def settings() -> Settings:
    """Settings without politeness delays, retries or robots checks."""
    return Settings(
        crawler_request_delay=0,
        flow_step_delay=0,
        respect_robots_txt=False,
        retry_max_attempts=1,
        retry_backoff_base=0,
        ai_api_url=None,
        ai_model=None,
    )


@pytest.fixture
def site() -> MockSite:
    return MockSite()


@pytest.fixture
def make_fetcher(settings: Settings) -> Callable[..., Fetcher]:
    """Build a Fetcher over a MockSite (or any handler callable)."""
    clients: list[httpx.AsyncClient] = []

    def _make(site_or_handler, cache: QualityCache | None = None) -> Fetcher:
        handler = site_or_handler.handler if isinstance(site_or_handler, MockSite) else site_or_handler
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return Fetcher(client, cache=cache, settings=settings)

    return _make


@pytest_asyncio.fixture
async def fetcher(site: MockSite, make_fetcher) -> Fetcher:
    f = make_fetcher(site)
    yield f
    await f.client.aclose()
