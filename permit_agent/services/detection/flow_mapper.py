"""
Multi-step application flow mapping.

Starting from a page that shows wizard/step/progress indicators, follow
the first "next step" link (explicit next/continue anchors and buttons
first, then the form's submit action) until the depth bound or an
already-visited URL. Steps on another domain (payment or login
providers) end the flow. Each page becomes a MappedStep recording its
required and optional fields, file uploads and validation rules.

A flow with fewer than two steps is noise and is discarded.
"""

import asyncio
import re

import structlog
from bs4 import BeautifulSoup, Tag

from permit_agent.core.errors import FetchError
from permit_agent.core.models import FileUpload, MappedFlow, MappedStep, ValidationRule
from permit_agent.services.fetcher import Fetcher
from permit_agent.services.url_utils import absolute_url, extract_domain, is_same_domain, normalize_url

logger = structlog.get_logger()


STEP_INDICATOR_SELECTORS = (
    '[class*="step"], [id*="step"], [data-step]',
    '.progress, .stepper, .wizard, [role="progressbar"]',
    ".breadcrumb, .steps, .wizard-steps",
)
NEXT_TEXT_PATTERN = re.compile(r"\b(next|continue|proceed)\b", re.I)
NEXT_SELECTORS = (".next-step", ".continue-btn", '[data-action="next"]')
TITLE_SELECTORS = ("h1", "h2", ".step-title", ".page-title", ".form-title", ".wizard-title")
FIELD_SELECTOR = "input, select, textarea"
SKIPPED_INPUT_TYPES = {"submit", "button", "reset", "hidden", "image", "file"}
VALIDATION_ATTRIBUTES = ("required", "pattern", "min", "max", "minlength", "maxlength")
MIN_FLOW_STEPS = 2


def has_step_indicators(soup: BeautifulSoup) -> bool:
    return any(soup.select_one(selector) is not None for selector in STEP_INDICATOR_SELECTORS)


def _field_label(soup: BeautifulSoup, field: Tag) -> str:
    field_id = field.get("id")
    if field_id:
        label = soup.find("label", attrs={"for": field_id})
        if label is not None:
            text = label.get_text(" ", strip=True).rstrip("*: ").strip()
            if text:
                return text
    return str(field.get("name") or field_id or field.get("placeholder") or "").strip()


def _is_required(field: Tag) -> bool:
    if field.has_attr("required"):
        return True
    if "required" in (field.get("class") or []):
        return True
    return field.find_parent(class_="required") is not None


def extract_step_title(soup: BeautifulSoup) -> str:
    for selector in TITLE_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            title = element.get_text(" ", strip=True)
            if 3 < len(title) < 100:
                return title
    if soup.title and soup.title.get_text(strip=True):
        return re.split(r"\s[|\-]\s", soup.title.get_text(strip=True))[0].strip()
    return "Application Step"


def extract_fields(soup: BeautifulSoup) -> tuple[list[str], list[str]]:
    """(required, optional) field labels, in document order."""
    required: list[str] = []
    optional: list[str] = []
    for field in soup.select(FIELD_SELECTOR):
        if field.name == "input" and (field.get("type") or "text").lower() in SKIPPED_INPUT_TYPES:
            continue
        label = _field_label(soup, field)
        if not label:
            continue
        target = required if _is_required(field) else optional
        if label not in target:
            target.append(label)
    return required, optional


def extract_file_uploads(soup: BeautifulSoup) -> list[FileUpload]:
    uploads = []
    for field in soup.select('input[type="file"]'):
        accept = field.get("accept") or ""
        uploads.append(FileUpload(
            name=_field_label(soup, field) or "Document upload",
            accepted_formats=[fmt.strip() for fmt in accept.split(",") if fmt.strip()],
            required=_is_required(field),
        ))
    return uploads


def extract_validation_rules(soup: BeautifulSoup) -> list[ValidationRule]:
    rules = []
    for field in soup.select(FIELD_SELECTOR):
        label = _field_label(soup, field)
        if not label:
            continue
        for attr in VALIDATION_ATTRIBUTES:
            if not field.has_attr(attr):
                continue
            value = field.get(attr)
            rules.append(ValidationRule(
                field=label,
                rule=attr,
                value=None if attr == "required" else str(value),
            ))
    return rules


def find_next_url(soup: BeautifulSoup, page_url: str) -> str | None:
    """
    First matching navigation target, in priority order:
    next/continue anchors, next-step classes, then a submit form action.
    """
    for link in soup.find_all("a", href=True):
        if NEXT_TEXT_PATTERN.search(link.get_text(" ", strip=True)):
            url = absolute_url(page_url, link["href"])
            if url:
                return url

    for selector in NEXT_SELECTORS:
        for element in soup.select(selector):
            href = element.get("href") or element.get("data-href") or element.get("formaction")
            url = absolute_url(page_url, href)
            if url:
                return url

    for button in soup.find_all("button"):
        if NEXT_TEXT_PATTERN.search(button.get_text(" ", strip=True)):
            form = button.find_parent("form")
            target = button.get("formaction") or (form.get("action") if form else None)
            url = absolute_url(page_url, target)
            if url:
                return url

    for submit in soup.select('input[type="submit"], button[type="submit"]'):
        form = submit.find_parent("form")
        target = submit.get("formaction") or (form.get("action") if form else None)
        url = absolute_url(page_url, target)
        if url:
            return url
    return None


def build_step(soup: BeautifulSoup, url: str, step_number: int) -> MappedStep:
    required, optional = extract_fields(soup)
    return MappedStep(
        step_number=step_number,
        url=url,
        title=extract_step_title(soup),
        required_fields=required,
        optional_fields=optional,
        file_uploads=extract_file_uploads(soup),
        validation_rules=extract_validation_rules(soup),
        next_url=find_next_url(soup, url),
    )


class FlowMapper:
    """Follows a wizard's next-step links and records each step."""

    def __init__(self, fetcher: Fetcher, max_depth: int = 5, step_delay: float = 1.0):
        self.fetcher = fetcher
        self.max_depth = max_depth
        self.step_delay = step_delay
        self._visited: set[str] = set()
        self.log = logger.bind(component="FlowMapper")

    async def map_flow(self, start_url: str, html: str | None = None) -> MappedFlow | None:
        """
        Map the flow starting at start_url.

        Returns None when the start page shows no step indicators or when
        fewer than two steps were found.
        """
        self._visited = set()
        if html is None:
            soup = await self._load(start_url)
            if soup is None:
                return None
        else:
            soup = BeautifulSoup(html, "lxml")

        if not has_step_indicators(soup):
            self.log.debug("No step indicators", url=start_url[:80])
            return None

        domain = extract_domain(start_url) or ""
        flow = MappedFlow(name=extract_step_title(soup), start_url=start_url)
        url: str | None = start_url
        step_number = 1

        while url is not None and step_number <= self.max_depth:
            key = normalize_url(url)
            if key in self._visited:
                break
            self._visited.add(key)

            if step_number > 1:
                if not is_same_domain(url, domain):
                    self.log.debug("Next step leaves the site", url=url[:80])
                    break
                await asyncio.sleep(self.step_delay)
                soup = await self._load(url)
                if soup is None:
                    break

            step = build_step(soup, url, step_number)
            flow.steps.append(step)
            url = step.next_url
            step_number += 1

        if flow.total_steps < MIN_FLOW_STEPS:
            self.log.debug("Flow discarded", url=start_url[:80], steps=flow.total_steps)
            return None

        self.log.info("Flow mapped", url=start_url[:80], steps=flow.total_steps)
        return flow

    async def _load(self, url: str) -> BeautifulSoup | None:
        try:
            result = await self.fetcher.get(url)
        except FetchError as e:
            self.log.debug("Step fetch failed", url=url[:80], error=str(e))
            return None
        return BeautifulSoup(result.text, "lxml")
