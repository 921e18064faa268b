"""
Dynamic-content probing.

Script-driven portals often load their form lists from JSON endpoints.
We pull same-origin endpoint paths out of inline and external script
text, keep the permit-looking ones, GET them and read any list of
form-like objects from the answer. Every failure is per endpoint and
silent.
"""

import json
import re
from typing import Any
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup

from permit_agent.core.constants import infer_category
from permit_agent.core.errors import FetchError
from permit_agent.core.models import DetectedForm
from permit_agent.services.detection.form_detector import detect_forms, filename_label, get_file_type
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import absolute_url

logger = structlog.get_logger()


ENDPOINT_PATTERNS = [
    re.compile(r"""['"`](/api/[^'"`\s]+)['"`]"""),
    re.compile(r"""['"`](/ajax/[^'"`\s]+)['"`]"""),
    re.compile(r"""fetch\(\s*['"`]([^'"`\s]+)['"`]"""),
    re.compile(r"""\$\.ajax\(.*?url:\s*['"`]([^'"`\s]+)['"`]""", re.S),
    re.compile(r"""axios\.(?:get|post|put|delete)\(\s*['"`]([^'"`\s]+)['"`]"""),
]
ENDPOINT_KEYWORDS = ("permit", "application", "form")
MAX_ENDPOINTS = 10

PROBE_HEADERS = {
    "Accept": "application/json, text/html",
    "X-Requested-With": "XMLHttpRequest",
}


def extract_endpoints(script_text: str, page_url: str) -> list[str]:
    """Same-origin, permit-looking endpoint URLs referenced in script text."""
    origin = urlparse(page_url).netloc.lower()
    endpoints: list[str] = []
    for pattern in ENDPOINT_PATTERNS:
        for match in pattern.finditer(script_text):
            path = match.group(1)
            if not any(kw in path.lower() for kw in ENDPOINT_KEYWORDS):
                continue
            url = absolute_url(page_url, path)
            if url and urlparse(url).netloc.lower() == origin and url not in endpoints:
                endpoints.append(url)
    return endpoints[:MAX_ENDPOINTS]


def _form_from_item(item: dict[str, Any], base_url: str, source: str) -> DetectedForm | None:
    href = item.get("url") or item.get("link") or item.get("downloadUrl") or item.get("fileUrl")
    url = absolute_url(base_url, href) if isinstance(href, str) else None
    if url is None:
        return None
    name = str(item.get("name") or item.get("title") or item.get("filename") or filename_label(url))
    description = str(item.get("description") or "")
    return DetectedForm(
        name=name,
        url=url,
        file_type=get_file_type(url),
        is_required=bool(item.get("required") or item.get("mandatory")),
        description=description,
        category=infer_category(f"{name} {description}"),
        source=source,
        confidence=0.6,
    )


def forms_from_json(data: Any, base_url: str, source: str = "api") -> list[DetectedForm]:
    """
    Read form-like objects from a decoded JSON payload.

    Accepts a bare list (items must look like forms: type == "form",
    formId or applicationId, or at least a url) or an object holding a
    forms/applications/documents list.
    """
    if isinstance(data, list):
        items = [
            item for item in data
            if isinstance(item, dict) and (
                item.get("type") == "form" or "formId" in item or "applicationId" in item
                or "url" in item or "downloadUrl" in item or "fileUrl" in item
            )
        ]
    elif isinstance(data, dict):
        items = next(
            (data[key] for key in ("forms", "applications", "documents") if isinstance(data.get(key), list)),
            [],
        )
        items = [item for item in items if isinstance(item, dict)]
    else:
        return []

    forms = []
    for item in items:
        form = _form_from_item(item, base_url, source)
        if form is not None:
            forms.append(form)
    return forms


def _script_text(soup: BeautifulSoup) -> str:
    return "\n".join(script.get_text() for script in soup.find_all("script") if not script.get("src"))


async def probe_dynamic_forms(fetcher: Fetcher, soup: BeautifulSoup, page_url: str) -> list[DetectedForm]:
    """GET every endpoint referenced by the page's scripts and collect forms."""
    endpoints = extract_endpoints(_script_text(soup), page_url)
    if not endpoints:
        return []

    log = logger.bind(component="DynamicProbe")
    forms: list[DetectedForm] = []
    for endpoint in endpoints:
        try:
            result = await fetcher.fetch(endpoint, headers=PROBE_HEADERS, max_attempts=1)
        except FetchError as e:
            log.debug("Endpoint probe failed", url=endpoint[:80], error=str(e))
            continue
        if not result.ok:
            continue

        try:
            found = forms_from_json(result.json(), endpoint)
        except (json.JSONDecodeError, UnicodeDecodeError):
            if "html" not in result.content_type:
                continue
            found = detect_forms(BeautifulSoup(result.text, "lxml"), endpoint)
        forms.extend(found)

    log.debug("Dynamic probing done", url=page_url[:80], endpoints=len(endpoints), forms=len(forms))
    return forms
