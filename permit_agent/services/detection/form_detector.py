"""
Static form detection.

Five independent DOM layers, in priority order:
1. direct file links (pdf/doc/xls)
2. organized sections, tables and lists
3. navigation menus
4. prose content mentioning forms
5. structured metadata (JSON-LD, microdata, data attributes)

A candidate is kept only if its URL is on the page's domain (or a
government-looking domain) and its name plus description mention permit
vocabulary. A layer that raises contributes nothing.
"""

import json
import re
from collections.abc import Callable
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup, Tag

from permit_agent.core.constants import PERMIT_KEYWORDS, infer_category
from permit_agent.core.models import DetectedForm, FileType
from permit_agent.services.url_utils import absolute_url, extract_domain

logger = structlog.get_logger()


FILE_LINK_PATTERN = re.compile(r"\.(pdf|docx?|xlsx?)(\?|#|$)", re.I)
FILE_SIZE_PATTERN = re.compile(r"\(([0-9.]+\s*(?:KB|MB))\)", re.I)

SECTION_SELECTORS = (
    ".forms, .applications, .downloads, .documents, .permit-forms, .form-list, "
    ".document-list, .resources, #forms, #applications, #documents, "
    "[class*='form-library'], [class*='document-center']"
)
NAVIGATION_SELECTORS = (
    "nav, .navigation, .nav, .menu, .sidebar, .side-nav, .main-nav, "
    ".breadcrumb, .quick-links, .related-links"
)
CONTENT_SELECTORS = "p, li, article, section"

FORM_CONTEXT_KEYWORDS = (
    "form", "application", "apply", "permit", "license", "request",
    "submit", "download", "pdf", "document", "complete", "fill out", "register",
)
FORM_URL_PATTERN = re.compile(
    r"form|applic|apply|permit|submit|portal|e-?permit|citizen|self-service|"
    r"building|inspection|plan-review|zoning|variance|electrical|plumbing|mechanical",
    re.I,
)
REQUIRED_INDICATORS = ("required", "mandatory", "must")

SCHEMA_FORM_TYPES = ("GovernmentService", "WebPage", "DigitalDocument", "ApplyAction")


# =============================================================================
# Helpers
# =============================================================================


def get_file_type(url: str) -> FileType:
    path = urlparse(url).path.lower()
    if path.endswith(".pdf"):
        return FileType.PDF
    if path.endswith((".doc", ".docx")):
        return FileType.DOC
    if path.endswith((".xls", ".xlsx")):
        return FileType.XLS
    return FileType.ONLINE


def is_government_url(url: str, page_domain: str | None) -> bool:
    """Same domain as the page, or a .gov/.org/city/county host."""
    host = extract_domain(url)
    if not host:
        return False
    if page_domain and (host == page_domain or host.endswith("." + page_domain)):
        return True
    return host.endswith((".gov", ".org")) or "city" in host or "county" in host


def is_permit_related(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in PERMIT_KEYWORDS)


def filename_label(url: str) -> str:
    name = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    name = name.rsplit(".", 1)[0]
    return re.sub(r"[-_]+", " ", name).strip() or "Unknown Form"


def is_required_form(element: Tag, text: str) -> bool:
    lower = text.lower()
    if any(ind in lower for ind in REQUIRED_INDICATORS):
        return True
    if element.has_attr("required"):
        return True
    classes = " ".join(element.get("class") or []).lower()
    if "required" in classes:
        return True
    container = element.find_parent(["tr", "li"])
    if container is not None:
        context = container.get_text(" ", strip=True).lower()
        return any(ind in context for ind in REQUIRED_INDICATORS)
    return False


def describe_link(link: Tag) -> str:
    """title/aria-label, a nearby .description, or short parent text."""
    for attr in ("title", "aria-label"):
        value = link.get(attr)
        if value and value.strip() and value.strip() != link.get_text(strip=True):
            return value.strip()

    parent = link.parent
    if parent is not None:
        desc = parent.select_one(".description")
        if desc is not None:
            return " ".join(desc.get_text(" ", strip=True).split())
        text = " ".join(parent.get_text(" ", strip=True).split())
        text = text.replace(link.get_text(" ", strip=True), "").strip(" -:–")
        if 10 < len(text) < 200:
            return text
    return ""


def dedup_forms(forms: list[DetectedForm]) -> list[DetectedForm]:
    """Collapse candidates sharing (name, url); the first occurrence wins."""
    seen: set[tuple[str, str]] = set()
    unique = []
    for form in forms:
        key = (form.name.strip().lower(), form.url)
        if key not in seen:
            seen.add(key)
            unique.append(form)
    return unique


# =============================================================================
# Detector
# =============================================================================


class FormDetector:
    """Layered static form detection over one parsed page."""

    def __init__(self, soup: BeautifulSoup, page_url: str):
        self.soup = soup
        self.page_url = page_url
        self.domain = extract_domain(page_url)
        self.log = logger.bind(component="FormDetector")

    def detect(self) -> list[DetectedForm]:
        layers: list[tuple[str, Callable[[], list[DetectedForm]]]] = [
            ("file_links", self.find_file_links),
            ("sections", self.find_in_sections),
            ("navigation", self.find_in_navigation),
            ("content", self.find_in_content),
            ("metadata", self.find_in_metadata),
        ]
        candidates: list[DetectedForm] = []
        for name, layer in layers:
            try:
                found = layer()
            except Exception as e:
                self.log.debug("Detection layer failed", layer=name, error=str(e))
                continue
            candidates.extend(found)

        forms = dedup_forms([f for f in candidates if is_permit_related(f"{f.name} {f.description}")])
        self.log.debug("Static detection done", url=self.page_url[:80], candidates=len(candidates), forms=len(forms))
        return forms

    def _candidate(
        self,
        element: Tag,
        href: str | None,
        name: str,
        source: str,
        confidence: float,
        description: str = "",
    ) -> DetectedForm | None:
        url = absolute_url(self.page_url, href)
        if not url or not is_government_url(url, self.domain):
            return None
        name = " ".join(name.split()) or filename_label(url)
        return DetectedForm(
            name=name,
            url=url,
            file_type=get_file_type(url),
            is_required=is_required_form(element, name),
            description=description,
            category=infer_category(f"{name} {description}"),
            source=source,
            confidence=confidence,
        )

    def _link_candidate(self, link: Tag, source: str, confidence: float) -> DetectedForm | None:
        href = link.get("href")
        if not href:
            return None
        if get_file_type(href) == FileType.ONLINE and not FORM_URL_PATTERN.search(href):
            return None
        return self._candidate(
            link, href, link.get_text(" ", strip=True), source, confidence, describe_link(link),
        )

    # -------------------------------------------------------------------------
    # Layers
    # -------------------------------------------------------------------------

    def find_file_links(self) -> list[DetectedForm]:
        forms = []
        for link in self.soup.select("a[href]"):
            href = link["href"]
            if not FILE_LINK_PATTERN.search(href):
                continue
            form = self._candidate(
                link, href, link.get_text(" ", strip=True), "file_link", 0.8, describe_link(link),
            )
            if form is not None:
                forms.append(form)
        return forms

    def find_in_sections(self) -> list[DetectedForm]:
        forms = []
        for section in self.soup.select(SECTION_SELECTORS):
            for link in section.select("a[href]"):
                form = self._link_candidate(link, "section", 0.7)
                if form is not None:
                    forms.append(form)

        for table in self.soup.find_all("table"):
            forms.extend(self._forms_from_table(table))
        return forms

    def _forms_from_table(self, table: Tag) -> list[DetectedForm]:
        forms = []
        header_row = table.find("tr")
        headers = [c.get_text(" ", strip=True).lower() for c in header_row.find_all(["th", "td"])] if header_row else []
        desc_index = next((i for i, h in enumerate(headers) if "description" in h), -1)

        for row in table.find_all("tr")[1:]:
            link = row.find("a", href=True)
            if link is None:
                continue
            cells = row.find_all(["td", "th"])
            name = cells[0].get_text(" ", strip=True) if cells else ""
            name = name or link.get_text(" ", strip=True)
            description = ""
            if 0 <= desc_index < len(cells):
                description = cells[desc_index].get_text(" ", strip=True)

            href = link["href"]
            if get_file_type(href) == FileType.ONLINE and not FORM_URL_PATTERN.search(href):
                continue
            form = self._candidate(row, href, name, "table", 0.7, description)
            if form is not None:
                forms.append(form)
        return forms

    def find_in_navigation(self) -> list[DetectedForm]:
        forms = []
        for nav in self.soup.select(NAVIGATION_SELECTORS):
            for link in nav.select("a[href]"):
                text = link.get_text(" ", strip=True).lower()
                if not any(kw in text for kw in ("form", "application", "apply", "permit")):
                    continue
                form = self._link_candidate(link, "navigation", 0.5)
                if form is not None:
                    forms.append(form)
        return forms

    def find_in_content(self) -> list[DetectedForm]:
        forms = []
        for block in self.soup.select(CONTENT_SELECTORS):
            text = block.get_text(" ", strip=True).lower()
            if not any(kw in text for kw in FORM_CONTEXT_KEYWORDS):
                continue
            for link in block.find_all("a", href=True):
                form = self._link_candidate(link, "content", 0.4)
                if form is None:
                    continue
                if not form.description:
                    context = " ".join(block.get_text(" ", strip=True).split())
                    form.description = context[:147] + ("..." if len(context) > 147 else "")
                forms.append(form)
        return forms

    def find_in_metadata(self) -> list[DetectedForm]:
        forms = []
        for script in self.soup.select('script[type="application/ld+json"]'):
            try:
                data = json.loads(script.string or "")
            except json.JSONDecodeError:
                continue
            forms.extend(self._forms_from_json_ld(script, data))

        for element in self.soup.select('[itemtype*="schema.org"]'):
            url_el = element.select_one('[itemprop="url"]')
            name_el = element.select_one('[itemprop="name"]')
            if url_el is None:
                continue
            href = url_el.get("href") or url_el.get("content")
            name = name_el.get_text(" ", strip=True) if name_el else ""
            desc_el = element.select_one('[itemprop="description"]')
            description = desc_el.get_text(" ", strip=True) if desc_el else ""
            form = self._candidate(element, href, name, "microdata", 0.6, description)
            if form is not None:
                forms.append(form)

        for element in self.soup.select("[data-form], [data-application], [data-document]"):
            link = element if element.name == "a" else element.find("a", href=True)
            if link is None or not link.get("href"):
                continue
            name = (
                link.get_text(" ", strip=True)
                or element.get("data-form")
                or element.get("data-application")
                or element.get("data-document")
                or ""
            )
            form = self._candidate(link, link["href"], name, "data_attribute", 0.6, "Found in metadata")
            if form is not None:
                forms.append(form)
        return forms

    def _forms_from_json_ld(self, script: Tag, data) -> list[DetectedForm]:
        items = data if isinstance(data, list) else data.get("@graph", [data]) if isinstance(data, dict) else []
        forms = []
        for item in items:
            if not isinstance(item, dict):
                continue
            types = item.get("@type")
            types = types if isinstance(types, list) else [types]
            if not any(t in SCHEMA_FORM_TYPES for t in types):
                continue
            url = item.get("url")
            if not isinstance(url, str):
                continue
            form = self._candidate(
                script, url, str(item.get("name") or ""), "json_ld", 0.6, str(item.get("description") or ""),
            )
            if form is not None:
                forms.append(form)
        return forms


def detect_forms(soup: BeautifulSoup, page_url: str) -> list[DetectedForm]:
    """Run every static layer over a page. Never raises."""
    try:
        return FormDetector(soup, page_url).detect()
    except Exception as e:
        logger.warning("Static form detection failed", url=page_url[:80], error=str(e))
        return []
