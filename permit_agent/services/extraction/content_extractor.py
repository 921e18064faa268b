"""
Content extractor for permit pages.

Parses one fetched HTML document into tables, a fee schedule, contact
info, business hours, requirements and processing times. Every
sub-extraction is independent: if one raises, the others still run and
the failing field is left empty.
"""

import re
from collections.abc import Callable
from typing import TypeVar

import structlog
from bs4 import BeautifulSoup, Tag

from permit_agent.core.models import (
    WEEKDAYS,
    Address,
    BusinessHours,
    ContactInfo,
    DayHours,
    ExtractedContent,
    ExtractedTable,
    FeeUnit,
    PermitFee,
    TableType,
)

logger = structlog.get_logger()

T = TypeVar("T")


# =============================================================================
# Patterns
# =============================================================================

# Checked in this order; the first match classifies the table
TABLE_VOCABULARY: list[tuple[TableType, re.Pattern]] = [
    (TableType.FEES, re.compile(r"fee|cost|price|amount|charge|dollar|\$|payment", re.I)),
    (TableType.REQUIREMENTS, re.compile(
        r"requirement|document|checklist|needed|required|must|shall|attach|submit|provide", re.I,
    )),
    (TableType.SCHEDULE, re.compile(
        r"schedule|time|day|hour|when|deadline|processing|review|turnaround|business.hours", re.I,
    )),
]

FEE_TYPE_COLUMN = re.compile(r"type|permit|description|service", re.I)
FEE_AMOUNT_COLUMN = re.compile(r"fee|cost|amount|price", re.I)
AMOUNT_PATTERN = re.compile(r"\$?\s*(\d[\d,]*\.?\d*)")
# First match wins; whole words only
FEE_UNIT_PATTERNS = [
    (re.compile(r"\bsq(?:uare|ft|\.)?(?:\b|\s)|square", re.I), FeeUnit.PER_SQFT),
    (re.compile(r"\bhour|\bhrs?\b", re.I), FeeUnit.PER_HOUR),
    (re.compile(r"\bunits?\b", re.I), FeeUnit.PER_UNIT),
    (re.compile(r"%|\bpercent", re.I), FeeUnit.PERCENTAGE),
]

PHONE_PATTERN = re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
REJECTED_EMAIL_PARTS = ("example", "noreply", "donotreply")

ADDRESS_SELECTORS = "address, .address, .location, .contact-address, [itemprop=address]"
STREET_ADDRESS_PATTERN = re.compile(
    r"\d+\s+[\w\s.]+?(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|"
    r"court|ct|place|pl|parkway|pkwy|square|sq)\.?[\s,]+[\w\s.]+?,?\s+[A-Z]{2}\s+\d{5}(?:-\d{4})?",
    re.I,
)
STATE_ZIP_PATTERN = re.compile(r"\b([A-Z]{2})\s+(\d{5}(?:-\d{4})?)\b")

HOURS_SELECTORS = ".hours, .business-hours, .office-hours, .contact-hours, .schedule, .open-hours"
TIME_TOKEN = r"(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m\.?"
TIME_RANGE_PATTERN = re.compile(TIME_TOKEN + r"\s*(?:-|–|—|to)\s*" + TIME_TOKEN, re.I)
DAY_PATTERN = re.compile(
    r"\b(mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)(?:day|nesday|sday|urday|rsday)?\b", re.I,
)
DAY_RANGE_PATTERN = re.compile(DAY_PATTERN.pattern + r"\s*(?:-|–|—|to|through|thru)\s*" + DAY_PATTERN.pattern, re.I)

REQUIREMENT_SELECTORS = ".requirements, .checklist, .required-documents, .permit-requirements, #requirements"
REQUIREMENT_HEADINGS = (
    "required documents", "requirements", "checklist", "what you need",
    "necessary documents", "submit the following",
)
REQUIREMENT_MIN_LEN = 10
REQUIREMENT_MAX_LEN = 500

PROCESSING_TIME_PATTERN = re.compile(
    r"(\d+\s*[-–]\s*\d+|\d+)\s*(business\s+)?(days?|weeks?|months?|hours?)", re.I,
)
PROCESSING_SELECTORS = ".processing-time, .turnaround, .review-time, #processing"
PROCESSING_PERMIT_TYPES = ("building", "electrical", "plumbing", "mechanical", "demolition")

PERMIT_TYPE_SELECTORS = (
    ".permit-type, .permit-types li, .building-permits li, select[name*=permit] option, "
    ".permit-category, ul.permit-list li"
)
PERMIT_TYPE_PATTERN = re.compile(
    r"\b(building|electrical|plumbing|mechanical|residential|commercial|demolition|renovation|"
    r"addition|fence|deck|pool|sign|zoning)\s+permits?\b",
    re.I,
)
PERMIT_TYPE_NOISE = re.compile(r"select|choose|click|more|info|contact|apply", re.I)


# =============================================================================
# Helpers
# =============================================================================


def _safe(name: str, func: Callable[[], T], default: T) -> T:
    """Run one sub-extraction; a failure yields ``default`` instead of raising."""
    try:
        return func()
    except Exception as e:
        logger.debug("Sub-extraction failed", extractor=name, error=str(e))
        return default


def _clean_text(element: Tag) -> str:
    return " ".join(element.get_text(" ", strip=True).split())


def parse_amount(text: str) -> float | None:
    """Parse a non-negative money amount; None when nothing parses."""
    if not text or "-$" in text.replace(" ", "") or text.strip().startswith("-"):
        return None
    match = AMOUNT_PATTERN.search(text)
    if not match:
        return None
    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    return value if value >= 0 else None


def infer_fee_unit(text: str) -> FeeUnit:
    for pattern, unit in FEE_UNIT_PATTERNS:
        if pattern.search(text):
            return unit
    return FeeUnit.FLAT


def parse_fee(fee_type: str, amount_text: str, description: str = "") -> PermitFee | None:
    """Build a fee from a type label and a raw amount string."""
    fee_type = fee_type.strip()
    amount = parse_amount(amount_text)
    if not fee_type or amount is None:
        return None
    return PermitFee(
        type=fee_type,
        amount=amount,
        unit=infer_fee_unit(amount_text),
        description=description.strip(),
    )


def normalize_phone(raw: str) -> str | None:
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def to_24h(hour: str, minute: str | None, meridiem: str) -> str:
    h = int(hour) % 12
    if meridiem.lower() == "p":
        h += 12
    return f"{h:02d}:{int(minute or 0):02d}"


# =============================================================================
# Tables
# =============================================================================


def classify_table(headers: list[str], rows: list[list[str]]) -> TableType:
    """Classify by header + first-row text; fees > requirements > schedule."""
    sample = " ".join(headers + (rows[0] if rows else [])).lower()
    for table_type, pattern in TABLE_VOCABULARY:
        if pattern.search(sample):
            return table_type
    return TableType.UNKNOWN


def parse_table(table: Tag) -> ExtractedTable | None:
    """Parse a <table> into headers and rows."""
    headers: list[str] = []
    rows: list[list[str]] = []

    header_cells = table.select("thead th") or table.select("thead td")
    body_rows = table.find_all("tr")

    if header_cells:
        headers = [_clean_text(c) for c in header_cells]
    elif body_rows and body_rows[0].find("th"):
        headers = [_clean_text(c) for c in body_rows[0].find_all(["th", "td"])]
        body_rows = body_rows[1:]

    for tr in body_rows:
        if tr.find_parent("thead") is not None:
            continue
        cells = [_clean_text(c) for c in tr.find_all(["td", "th"])]
        if cells and any(cells):
            rows.append(cells)

    # No explicit header: promote the first row
    if not headers and rows:
        headers, rows = rows[0], rows[1:]

    if not headers:
        return None
    return ExtractedTable(headers=headers, rows=rows, table_type=classify_table(headers, rows))


def extract_tables(soup: BeautifulSoup) -> list[ExtractedTable]:
    tables = []
    for element in soup.find_all("table"):
        parsed = _safe("table", lambda el=element: parse_table(el), None)
        if parsed is not None:
            tables.append(parsed)
    return tables


def parse_fee_table(table: ExtractedTable) -> list[PermitFee]:
    """Fee rows need both a type column and an amount column."""
    type_idx = next((i for i, h in enumerate(table.headers) if FEE_TYPE_COLUMN.search(h)), -1)
    amount_idx = next(
        (i for i, h in enumerate(table.headers) if i != type_idx and FEE_AMOUNT_COLUMN.search(h)),
        -1,
    )
    if type_idx == -1 or amount_idx == -1:
        return []

    fees = []
    for row in table.rows:
        if max(type_idx, amount_idx) >= len(row):
            continue
        description = " ".join(c for i, c in enumerate(row) if i not in (type_idx, amount_idx))
        fee = parse_fee(row[type_idx], row[amount_idx], description)
        if fee is not None:
            fees.append(fee)
    return fees


def extract_fees(soup: BeautifulSoup, tables: list[ExtractedTable]) -> list[PermitFee]:
    """Fees from fee tables plus <dl> fee lists."""
    fees: list[PermitFee] = []
    for table in tables:
        if table.table_type == TableType.FEES:
            fees.extend(_safe("fee_table", lambda t=table: parse_fee_table(t), []))

    fees.extend(_safe("fee_list", lambda: parse_fee_lists(soup), []))
    return fees


def parse_fee_lists(soup: BeautifulSoup) -> list[PermitFee]:
    """<dt> fee names paired with their <dd> amounts."""
    fees: list[PermitFee] = []
    for dl in soup.select(".fees dl, .fee-schedule dl, dl.fees, dl.fee-schedule"):
        for dt in dl.find_all("dt"):
            dd = dt.find_next_sibling("dd")
            if dd is None:
                continue
            amount_text = _clean_text(dd)
            fee = parse_fee(
                _clean_text(dt), amount_text, AMOUNT_PATTERN.sub("", amount_text, count=1),
            )
            if fee is not None:
                fees.append(fee)
    return fees


# =============================================================================
# Contact
# =============================================================================


def extract_phone(text: str) -> str | None:
    for match in PHONE_PATTERN.finditer(text):
        phone = normalize_phone(match.group(0))
        if phone:
            return phone
    return None


def extract_email(text: str) -> str | None:
    for match in EMAIL_PATTERN.finditer(text):
        email = match.group(0)
        lower = email.lower()
        if not any(part in lower for part in REJECTED_EMAIL_PARTS):
            return email
    return None


def parse_address_text(text: str) -> Address | None:
    """Parse "street, city, ST 12345" style text."""
    parts = [p.strip() for p in re.split(r"[\n,]", text) if p.strip()]
    if len(parts) < 2:
        return None
    state_zip = STATE_ZIP_PATTERN.search(parts[-1])
    if not state_zip:
        return None

    city = STATE_ZIP_PATTERN.sub("", parts[-1]).strip()
    street_parts = parts[:-1]
    if not city and len(parts) >= 3:
        city = parts[-2]
        street_parts = parts[:-2]
    street = " ".join(street_parts).strip()
    if not street:
        return None
    return Address(street=street, city=city, state=state_zip.group(1), zip_code=state_zip.group(2))


def extract_address(soup: BeautifulSoup, text: str) -> Address | None:
    for element in soup.select(ADDRESS_SELECTORS):
        parsed = parse_address_text(element.get_text("\n", strip=True))
        if parsed:
            return parsed
    match = STREET_ADDRESS_PATTERN.search(text)
    if match:
        return parse_address_text(match.group(0))
    return None


def extract_contact(soup: BeautifulSoup) -> ContactInfo:
    text = soup.get_text(" ", strip=True)
    # mailto/tel hrefs are often the only place a contact appears
    hrefs = " ".join(
        a["href"].split(":", 1)[1] for a in soup.select("a[href^='mailto:'], a[href^='tel:']")
    )
    combined = f"{text} {hrefs}"
    return ContactInfo(
        phone=_safe("phone", lambda: extract_phone(combined), None),
        email=_safe("email", lambda: extract_email(combined), None),
        address=_safe("address", lambda: extract_address(soup, text), None),
    )


# =============================================================================
# Business hours
# =============================================================================


def _day_index(token: str) -> int | None:
    token = token.lower()[:3]
    for i, day in enumerate(WEEKDAYS):
        if day.startswith(token):
            return i
    return None


def _days_in_segment(segment: str) -> list[str]:
    days: list[str] = []
    for match in DAY_RANGE_PATTERN.finditer(segment):
        start, end = _day_index(match.group(1)), _day_index(match.group(2))
        if start is not None and end is not None and start <= end:
            days.extend(WEEKDAYS[start:end + 1])
    if not days:
        for match in DAY_PATTERN.finditer(segment):
            index = _day_index(match.group(1))
            if index is not None:
                days.append(WEEKDAYS[index])
    return days


def parse_hours_text(text: str) -> BusinessHours | None:
    """Per weekday, pick up "8:00am - 5:00pm" ranges or "closed" tokens."""
    hours = BusinessHours()
    for segment in re.split(r"[\n;|]", text):
        days = _days_in_segment(segment)
        if not days:
            continue
        time_range = TIME_RANGE_PATTERN.search(segment)
        if time_range:
            g = time_range.groups()
            value = DayHours(open=to_24h(g[0], g[1], g[2]), close=to_24h(g[3], g[4], g[5]))
        elif "closed" in segment.lower():
            value = DayHours(closed=True)
        else:
            continue
        for day in days:
            if getattr(hours, day) is None:
                setattr(hours, day, value)
    return None if hours.is_empty() else hours


def extract_business_hours(soup: BeautifulSoup) -> BusinessHours | None:
    containers = soup.select(HOURS_SELECTORS)
    if containers:
        text = "\n".join(c.get_text("\n", strip=True) for c in containers)
        parsed = parse_hours_text(text)
        if parsed:
            return parsed
    return parse_hours_text(soup.get_text("\n", strip=True))


# =============================================================================
# Requirements / processing times / permit types
# =============================================================================


def _keep_requirement(text: str, seen: list[str]) -> None:
    if REQUIREMENT_MIN_LEN < len(text) < REQUIREMENT_MAX_LEN and text not in seen:
        seen.append(text)


def extract_requirements(soup: BeautifulSoup) -> list[str]:
    requirements: list[str] = []
    for container in soup.select(REQUIREMENT_SELECTORS):
        for element in container.find_all(["li", "p"]):
            _keep_requirement(_clean_text(element), requirements)

    for heading in soup.find_all(["h1", "h2", "h3", "h4", "h5", "strong", "b"]):
        heading_text = heading.get_text(" ", strip=True).lower()
        if not any(h in heading_text for h in REQUIREMENT_HEADINGS):
            continue
        following = heading.find_next(["ul", "ol"])
        if following is None:
            continue
        for li in following.find_all("li"):
            _keep_requirement(_clean_text(li), requirements)
    return requirements


def extract_processing_times(soup: BeautifulSoup) -> dict[str, str]:
    times: dict[str, str] = {}
    for element in soup.select(PROCESSING_SELECTORS):
        match = PROCESSING_TIME_PATTERN.search(element.get_text(" ", strip=True))
        if not match:
            continue
        heading = element.find_previous_sibling(["h1", "h2", "h3", "h4"])
        label = heading.get_text(" ", strip=True) if heading else "General"
        times[label] = " ".join(match.group(0).split())

    text = soup.get_text(" ", strip=True)
    for permit_type in PROCESSING_PERMIT_TYPES:
        pattern = re.compile(permit_type + r"[^.]*?" + PROCESSING_TIME_PATTERN.pattern, re.I)
        match = pattern.search(text)
        if match:
            found = PROCESSING_TIME_PATTERN.search(match.group(0))
            if found:
                times[permit_type] = " ".join(found.group(0).split())
    return times


def extract_permit_types(soup: BeautifulSoup) -> list[str]:
    """Permit type names from permit lists and "<x> permit" phrases."""
    types: list[str] = []
    for element in soup.select(PERMIT_TYPE_SELECTORS):
        text = _clean_text(element)
        if 3 < len(text) < 100 and not PERMIT_TYPE_NOISE.search(text) and text not in types:
            types.append(text)

    seen_lower = {t.lower() for t in types}
    for match in PERMIT_TYPE_PATTERN.finditer(soup.get_text(" ", strip=True)):
        name = f"{match.group(1).title()} Permit"
        if name.lower() not in seen_lower:
            seen_lower.add(name.lower())
            types.append(name)
    return types


# =============================================================================
# Entry point
# =============================================================================


def extract_content(soup: BeautifulSoup, url: str) -> ExtractedContent:
    """Run every sub-extractor over one document."""
    tables = _safe("tables", lambda: extract_tables(soup), [])
    contact = _safe("contact", lambda: extract_contact(soup), ContactInfo())
    hours = _safe("hours", lambda: extract_business_hours(soup), None)
    if hours is not None:
        contact.hours = hours

    title = soup.title.get_text(strip=True) if soup.title else None

    return ExtractedContent(
        url=url,
        title=title or None,
        tables=tables,
        fees=_safe("fees", lambda: extract_fees(soup, tables), []),
        contact=contact,
        requirements=_safe("requirements", lambda: extract_requirements(soup), []),
        processing_times=_safe("processing_times", lambda: extract_processing_times(soup), {}),
        business_hours=hours,
    )


def extract_content_from_html(html: str, url: str) -> ExtractedContent:
    return extract_content(BeautifulSoup(html, "lxml"), url)
