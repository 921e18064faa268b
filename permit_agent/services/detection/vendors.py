"""
Known permitting-platform adapters.

Each vendor is a VendorAdapter subclass describing how to recognise the
platform (host patterns, page signatures) and where its forms live (CSS
selectors, optionally a custom extract_forms).

VENDOR_ADAPTERS is the single dispatch table. To add a vendor:
1. Subclass VendorAdapter below
2. Add it to VENDOR_ADAPTERS

GenericModernPortal is not in the table; it runs on every page.
"""

import re

import structlog
from bs4 import BeautifulSoup, Tag

from permit_agent.core.constants import infer_category
from permit_agent.core.models import DetectedForm
from permit_agent.services.detection.form_detector import (
    dedup_forms,
    describe_link,
    filename_label,
    get_file_type,
    is_required_form,
)
from permit_agent.services.url_utils import absolute_url, extract_domain

logger = structlog.get_logger()


class VendorAdapter:
    """Base adapter: selector-driven extraction."""

    name: str = "generic"
    host_patterns: tuple[str, ...] = ()
    signatures: tuple[str, ...] = ()
    form_selectors: tuple[str, ...] = ()
    login_required: bool = False
    confidence: float = 0.75

    def __init__(self):
        self.log = logger.bind(component="VendorAdapter", vendor=self.name)

    @classmethod
    def matches_host(cls, host: str) -> bool:
        return any(host == p or host.endswith("." + p) for p in cls.host_patterns)

    @classmethod
    def matches_signature(cls, html_lower: str) -> bool:
        return any(re.search(rf"\b{re.escape(sig)}\b", html_lower) for sig in cls.signatures)

    def extract_forms(self, soup: BeautifulSoup, page_url: str) -> list[DetectedForm]:
        forms = []
        for selector in self.form_selectors:
            for element in soup.select(selector):
                form = self.form_from_element(element, page_url)
                if form is not None:
                    forms.append(form)
        return forms

    def form_from_element(self, element: Tag, page_url: str) -> DetectedForm | None:
        link = element if element.name == "a" else element.find("a", href=True)
        href = None
        if link is not None:
            href = link.get("href")
        href = href or element.get("data-attachment-url") or element.get("data-url")
        url = absolute_url(page_url, href)
        if url is None:
            return None

        anchor = link if link is not None else element
        name = (
            anchor.get_text(" ", strip=True)
            or element.get("title")
            or element.get("data-title")
            or filename_label(url)
        )
        name = " ".join(str(name).split())
        description = describe_link(anchor)
        return DetectedForm(
            name=name,
            url=url,
            file_type=get_file_type(url),
            is_required=is_required_form(element, name),
            description=description,
            category=infer_category(f"{name} {description}"),
            source=f"vendor:{self.name}",
            confidence=self.confidence,
        )


class AccelaAdapter(VendorAdapter):
    name = "accela"
    host_patterns = ("accela.com",)
    signatures = ("accela", "civic platform")
    form_selectors = (
        '.aca-page-content a[href*=".pdf"]',
        ".attachment-download",
        ".form-download-link",
        "[data-attachment-url]",
    )
    confidence = 0.85

    def extract_forms(self, soup: BeautifulSoup, page_url: str) -> list[DetectedForm]:
        forms = []
        for item in soup.select(".aca-page-content .attachment-item, .form-item, .document-item"):
            link = item.find("a", href=True)
            if link is None:
                continue
            url = absolute_url(page_url, link["href"])
            if url is None:
                continue
            name_el = item.select_one(".attachment-name, .form-title")
            name = link.get_text(" ", strip=True) or (name_el.get_text(" ", strip=True) if name_el else "")
            desc_el = item.select_one(".attachment-description, .form-description")
            description = desc_el.get_text(" ", strip=True) if desc_el else ""
            classes = item.get("class") or []
            forms.append(DetectedForm(
                name=name or filename_label(url),
                url=url,
                file_type=get_file_type(url),
                is_required="required" in classes or item.select_one(".required") is not None,
                description=description,
                category=infer_category(f"{name} {description}"),
                source=f"vendor:{self.name}",
                confidence=self.confidence,
            ))
        return forms + super().extract_forms(soup, page_url)


class TylerAdapter(VendorAdapter):
    name = "tyler"
    host_patterns = ("tylertech.com", "tylerhost.net")
    signatures = ("tyler technologies", "tylertech", "energov")
    form_selectors = (
        ".document-link",
        ".form-attachment",
        'a[href*="GetDocument"]',
        'a[href*="download"]',
    )


class CityGrowsAdapter(VendorAdapter):
    name = "citygrows"
    host_patterns = ("citygrows.com",)
    signatures = ("citygrows",)
    form_selectors = (".workflow-form", ".document-download", 'a[href*="forms"]')
    login_required = True


class ViewPointAdapter(VendorAdapter):
    name = "viewpoint"
    host_patterns = ("viewpermit.com", "viewpointcloud.com")
    form_selectors = (".permit-form", ".application-form", ".document-link")


class ETrakitAdapter(VendorAdapter):
    name = "etrakit"
    host_patterns = ("etrakit.com",)
    signatures = ("etrakit",)
    form_selectors = (".form-download", ".attachment-link", 'a[href*="forms"]')


class AmandaAdapter(VendorAdapter):
    name = "amanda"
    host_patterns = ("amanda.com",)
    form_selectors = (".form-link", ".document-attachment", 'a[href*="GetFile"]')


class PermitTraxAdapter(VendorAdapter):
    name = "permittrax"
    host_patterns = ("permittrax.com",)
    signatures = ("permittrax",)
    form_selectors = (".form-download-btn", ".permit-form-link", 'a[href*="download"]')


class GovPilotAdapter(VendorAdapter):
    name = "govpilot"
    host_patterns = ("govpilot.com",)
    signatures = ("govpilot",)
    form_selectors = (".service-form", ".form-attachment", ".download-link")
    login_required = True


class GenericModernPortal(VendorAdapter):
    """Catch-all selectors for card- and button-style document listings."""
    name = "generic"
    confidence = 0.6
    form_selectors = (
        ".form-download",
        ".document-download",
        ".permit-form",
        ".application-form",
        ".form-attachment",
        ".doc-link",
        ".file-download",
        'a.btn[href*=".pdf"]',
        'a.button[href*=".pdf"]',
        'a.btn[href*=".doc"]',
        ".card a[href*='.pdf']",
        ".form-card a",
        ".document-card a",
    )


# Checked in order; the first host or signature match wins
VENDOR_ADAPTERS: dict[str, type[VendorAdapter]] = {
    "accela": AccelaAdapter,
    "tyler": TylerAdapter,
    "citygrows": CityGrowsAdapter,
    "viewpoint": ViewPointAdapter,
    "etrakit": ETrakitAdapter,
    "amanda": AmandaAdapter,
    "permittrax": PermitTraxAdapter,
    "govpilot": GovPilotAdapter,
}


def detect_vendor(page_url: str, html: str) -> VendorAdapter | None:
    """Resolve the page's platform: host patterns first, then page signatures."""
    host = extract_domain(page_url) or ""
    for adapter_cls in VENDOR_ADAPTERS.values():
        if adapter_cls.matches_host(host):
            return adapter_cls()

    html_lower = html.lower()
    for adapter_cls in VENDOR_ADAPTERS.values():
        if adapter_cls.matches_signature(html_lower):
            return adapter_cls()
    return None


def detect_vendor_forms(
    soup: BeautifulSoup,
    page_url: str,
    html: str | None = None,
) -> tuple[str | None, list[DetectedForm]]:
    """
    Vendor-specific forms (if a vendor is recognised) plus the generic set.

    Returns:
        (vendor name or None, deduplicated forms with vendor results first)
    """
    html = html if html is not None else str(soup)
    forms: list[DetectedForm] = []
    vendor = None
    try:
        vendor = detect_vendor(page_url, html)
        if vendor is not None:
            forms.extend(vendor.extract_forms(soup, page_url))
            vendor.log.debug("Vendor detected", url=page_url[:80], forms=len(forms))
            if vendor.login_required:
                vendor.log.info("Portal requires login, only public forms extracted", url=page_url[:80])
    except Exception as e:
        logger.debug("Vendor extraction failed", url=page_url[:80], error=str(e))

    try:
        forms.extend(GenericModernPortal().extract_forms(soup, page_url))
    except Exception as e:
        logger.debug("Generic portal extraction failed", url=page_url[:80], error=str(e))

    return (vendor.name if vendor else None), dedup_forms(forms)
