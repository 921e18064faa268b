"""
PDF analysis for downloadable permit documents.

Uses pdfplumber to extract text and tables from application packets and
fee schedules, then reuses the HTML extractor's parsers for fees,
contacts and processing times.
"""

import asyncio
import io
import re

import pdfplumber
import structlog

from permit_agent.core.errors import FetchError
from permit_agent.core.models import DocumentAnalysis, ExtractedTable, PermitFee, TableType
from permit_agent.services.extraction.content_extractor import (
    PROCESSING_TIME_PATTERN,
    REQUIREMENT_HEADINGS,
    REQUIREMENT_MAX_LEN,
    REQUIREMENT_MIN_LEN,
    classify_table,
    extract_email,
    extract_phone,
    parse_fee,
    parse_fee_table,
)
from permit_agent.services.fetcher import Fetcher

logger = structlog.get_logger()

# "Plan Review Fee: $150.00" / "$150 plan review fee"
LABELLED_FEE_PATTERNS = [
    re.compile(r"([A-Z][A-Za-z ]{2,60}?(?:Fee|Cost|Charge))\s*[:\-]?\s*(\$\s?[\d,]+(?:\.\d{2})?[^\n]*)"),
    re.compile(r"(\$\s?[\d,]+(?:\.\d{2})?)\s+([A-Za-z ]{2,60}?(?:fee|cost|charge))", re.I),
]
LIST_ITEM_PATTERN = re.compile(r"^\s*(?:[-•*▪●]|\d+[.)]|[a-z][.)]|☐|□)\s+(.+)$")
PDF_MAX_BYTES = 20 * 1024 * 1024


def _table_from_rows(raw: list[list[str | None]]) -> ExtractedTable | None:
    rows = [[(cell or "").strip() for cell in row] for row in raw if row and any(row)]
    if len(rows) < 2:
        return None
    headers, body = rows[0], rows[1:]
    return ExtractedTable(headers=headers, rows=body, table_type=classify_table(headers, body))


def _fees_from_text(text: str) -> list[PermitFee]:
    fees: list[PermitFee] = []
    for match in LABELLED_FEE_PATTERNS[0].finditer(text):
        fee = parse_fee(match.group(1), match.group(2))
        if fee:
            fees.append(fee)
    for match in LABELLED_FEE_PATTERNS[1].finditer(text):
        fee = parse_fee(match.group(2).strip().title(), match.group(1))
        if fee:
            fees.append(fee)
    return fees


def _requirements_from_text(text: str) -> list[str]:
    """List items that follow a requirements heading, until the next blank line."""
    requirements: list[str] = []
    in_section = False
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            in_section = False
            continue
        lower = stripped.lower()
        if any(h in lower for h in REQUIREMENT_HEADINGS) and len(stripped) < 80:
            in_section = True
            continue
        if in_section:
            item = LIST_ITEM_PATTERN.match(stripped)
            value = item.group(1).strip() if item else stripped
            if REQUIREMENT_MIN_LEN < len(value) < REQUIREMENT_MAX_LEN and value not in requirements:
                requirements.append(value)
    return requirements


def _dedup_fees(fees: list[PermitFee]) -> list[PermitFee]:
    seen: set[tuple[str, float]] = set()
    unique = []
    for fee in fees:
        key = (fee.type.lower(), round(fee.amount, 2))
        if key not in seen:
            seen.add(key)
            unique.append(fee)
    return unique


def analyze_pdf_bytes(content: bytes, url: str) -> DocumentAnalysis:
    """
    Extract fees, requirements, contacts and processing times from a PDF.

    Raises whatever pdfplumber raises on a corrupt file; callers treat
    that as zero contribution.
    """
    analysis = DocumentAnalysis(url=url)
    text_parts: list[str] = []
    fees: list[PermitFee] = []

    with pdfplumber.open(io.BytesIO(content)) as pdf:
        analysis.page_count = len(pdf.pages)
        analysis.has_fillable_fields = "AcroForm" in (pdf.doc.catalog or {})

        for page in pdf.pages:
            text_parts.append(page.extract_text() or "")
            for raw_table in page.extract_tables():
                table = _table_from_rows(raw_table)
                if table is not None and table.table_type == TableType.FEES:
                    fees.extend(parse_fee_table(table))

    text = "\n".join(text_parts)
    fees.extend(_fees_from_text(text))
    analysis.fees = _dedup_fees(fees)
    analysis.requirements = _requirements_from_text(text)
    analysis.contact.phone = extract_phone(text)
    analysis.contact.email = extract_email(text)

    match = PROCESSING_TIME_PATTERN.search(text)
    if match:
        analysis.processing_times["General"] = " ".join(match.group(0).split())

    return analysis


class PDFAnalyzer:
    """Downloads and analyzes PDF forms."""

    def __init__(self, fetcher: Fetcher):
        self.fetcher = fetcher
        self.log = logger.bind(component="PDFAnalyzer")

    async def analyze(self, url: str) -> DocumentAnalysis | None:
        """Analyze one PDF. Returns None if it cannot be fetched or parsed."""
        try:
            result = await self.fetcher.get(url, use_cache=False)
        except FetchError as e:
            self.log.info("PDF download failed", url=url[:80], error=str(e))
            return None

        if len(result.content) > PDF_MAX_BYTES:
            self.log.info("PDF too large, skipping", url=url[:80], size=len(result.content))
            return None
        if not result.content.startswith(b"%PDF") and "pdf" not in result.content_type:
            self.log.debug("Not a PDF", url=url[:80], content_type=result.content_type)
            return None

        try:
            analysis = await asyncio.to_thread(analyze_pdf_bytes, result.content, url)
        except Exception as e:
            self.log.info("PDF parse failed", url=url[:80], error=str(e))
            return None

        self.log.info(
            "PDF analyzed",
            url=url[:80],
            pages=analysis.page_count,
            fees=len(analysis.fees),
            requirements=len(analysis.requirements),
        )
        return analysis
