"""
Core models and types for Permit Agent.

Everything the pipeline produces is a plain dataclass. Contact and hours
fields are optional per field and merged with "first present value wins".
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Enums
# =============================================================================


class JurisdictionType(str, Enum):
    CITY = "city"
    COUNTY = "county"
    STATE = "state"


class PermitCategory(str, Enum):
    BUILDING = "building"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    MECHANICAL = "mechanical"
    ZONING = "zoning"
    DEMOLITION = "demolition"
    SIGN = "sign"
    BUSINESS = "business"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "PermitCategory":
        """Resolve any input to a member; unknown values become OTHER."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.OTHER


class FeeUnit(str, Enum):
    FLAT = "flat"
    PER_SQFT = "per_sqft"
    PER_HOUR = "per_hour"
    PER_UNIT = "per_unit"
    PERCENTAGE = "percentage"

    @classmethod
    def coerce(cls, value: Any) -> "FeeUnit":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.FLAT


class FileType(str, Enum):
    PDF = "pdf"
    DOC = "doc"
    XLS = "xls"
    ONLINE = "online"


class TableType(str, Enum):
    FEES = "fees"
    REQUIREMENTS = "requirements"
    SCHEDULE = "schedule"
    UNKNOWN = "unknown"


class PortalType(str, Enum):
    """Portal classification. Declaration order is the tie-break order."""
    ONLINE_PORTAL = "online_portal"
    APPLICATION_PAGE = "application_page"
    FORM_LIBRARY = "form_library"
    DOCUMENT_CENTER = "document_center"


class SourceType(str, Enum):
    WEBSITE = "website"
    FORM = "form"
    PDF = "pdf"
    API = "api"


class PhaseStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


# =============================================================================
# Address / Contact
# =============================================================================


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    county: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def __str__(self) -> str:
        tail = " ".join(p for p in (self.state, self.zip_code) if p)
        return ", ".join(p for p in (self.street, self.city, tail) if p)


@dataclass
class DayHours:
    """Opening hours for one weekday. ``closed`` marks an explicit closure."""
    open: str | None = None
    close: str | None = None
    closed: bool = False


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass
class BusinessHours:
    monday: DayHours | None = None
    tuesday: DayHours | None = None
    wednesday: DayHours | None = None
    thursday: DayHours | None = None
    friday: DayHours | None = None
    saturday: DayHours | None = None
    sunday: DayHours | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, day) is None for day in WEEKDAYS)

    def merge(self, other: "BusinessHours | None") -> "BusinessHours":
        """Per weekday, keep our value when present, else take theirs."""
        if other is None:
            return self
        return BusinessHours(**{
            day: first_present(getattr(self, day), getattr(other, day)) for day in WEEKDAYS
        })


@dataclass
class ContactInfo:
    phone: str | None = None
    email: str | None = None
    address: Address | None = None
    hours: BusinessHours | None = None
    department: str | None = None
    website: str | None = None

    def is_empty(self) -> bool:
        return not any((
            self.phone,
            self.email,
            self.address,
            self.hours and not self.hours.is_empty(),
            self.website,
        ))

    def merge(self, other: "ContactInfo | None") -> "ContactInfo":
        """Field-wise merge; values already present on ``self`` win."""
        if other is None:
            return self
        hours = self.hours.merge(other.hours) if self.hours else other.hours
        return ContactInfo(
            phone=first_present(self.phone, other.phone),
            email=first_present(self.email, other.email),
            address=first_present(self.address, other.address),
            hours=hours,
            department=first_present(self.department, other.department),
            website=first_present(self.website, other.website),
        )


def first_present(*values: Any) -> Any:
    """Return the first value that is not None or an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


# =============================================================================
# Permits, fees, forms
# =============================================================================


@dataclass
class PermitFee:
    type: str
    amount: float
    unit: FeeUnit = FeeUnit.FLAT
    description: str = ""
    conditions: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.amount is None or math.isnan(self.amount) or self.amount < 0:
            raise ValueError(f"invalid fee amount: {self.amount!r}")


@dataclass
class PermitForm:
    name: str
    url: str
    file_type: FileType = FileType.ONLINE
    is_required: bool = False
    description: str = ""
    category: PermitCategory | None = None


@dataclass
class DetectedForm(PermitForm):
    source: str = "static"
    confidence: float = 0.5


@dataclass
class PermitType:
    id: str
    name: str
    category: PermitCategory = PermitCategory.OTHER
    description: str = ""
    requirements: list[str] = field(default_factory=list)
    processing_time: str | None = None
    fees: list[PermitFee] = field(default_factory=list)
    forms: list[PermitForm] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.category = PermitCategory.coerce(self.category)


@dataclass
class Jurisdiction:
    id: str
    name: str
    type: JurisdictionType
    address: Address
    website: str
    permit_url: str | None = None
    contact_info: ContactInfo = field(default_factory=ContactInfo)
    last_updated: datetime = field(default_factory=utcnow)
    is_active: bool = True


# =============================================================================
# Extraction results
# =============================================================================


@dataclass
class ExtractedTable:
    headers: list[str]
    rows: list[list[str]]
    table_type: TableType = TableType.UNKNOWN


@dataclass
class ExtractedContent:
    """Everything the content extractor pulled out of one document."""
    url: str
    title: str | None = None
    tables: list[ExtractedTable] = field(default_factory=list)
    fees: list[PermitFee] = field(default_factory=list)
    contact: ContactInfo = field(default_factory=ContactInfo)
    requirements: list[str] = field(default_factory=list)
    processing_times: dict[str, str] = field(default_factory=dict)
    business_hours: BusinessHours | None = None


@dataclass
class FileUpload:
    name: str
    accepted_formats: list[str] = field(default_factory=list)
    required: bool = False


@dataclass
class ValidationRule:
    field: str
    rule: str
    value: str | None = None


@dataclass
class MappedStep:
    step_number: int
    url: str
    title: str = ""
    required_fields: list[str] = field(default_factory=list)
    optional_fields: list[str] = field(default_factory=list)
    file_uploads: list[FileUpload] = field(default_factory=list)
    validation_rules: list[ValidationRule] = field(default_factory=list)
    next_url: str | None = None


@dataclass
class MappedFlow:
    name: str
    start_url: str
    steps: list[MappedStep] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def required_documents(self) -> list[str]:
        docs: list[str] = []
        for step in self.steps:
            for upload in step.file_uploads:
                if upload.name not in docs:
                    docs.append(upload.name)
        return docs


@dataclass
class DocumentAnalysis:
    url: str
    page_count: int = 0
    has_fillable_fields: bool = False
    fees: list[PermitFee] = field(default_factory=list)
    requirements: list[str] = field(default_factory=list)
    contact: ContactInfo = field(default_factory=ContactInfo)
    processing_times: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Discovery / crawl
# =============================================================================


@dataclass
class UrlCheck:
    """Outcome of one lightweight existence check."""
    url: str
    is_valid: bool
    is_accessible: bool = False
    status_code: int | None = None
    final_url: str | None = None
    error: str | None = None


@dataclass
class PortalCandidate:
    url: str
    portal_type: PortalType
    source: str = "path"  # path | link | fallback
    title: str | None = None
    match_count: int = 0


@dataclass
class CrawlResult:
    """Aggregate of every page visited by one crawl."""
    start_url: str
    pages_visited: int = 0
    visited_urls: list[str] = field(default_factory=list)
    failed_urls: list[str] = field(default_factory=list)
    content: dict[str, str] = field(default_factory=dict)
    links: list[str] = field(default_factory=list)
    forms: list[DetectedForm] = field(default_factory=list)
    fees: list[PermitFee] = field(default_factory=list)
    contacts: dict[str, ContactInfo] = field(default_factory=dict)
    requirements: list[str] = field(default_factory=list)
    processing_times: dict[str, str] = field(default_factory=dict)
    crawled_at: datetime = field(default_factory=utcnow)


# =============================================================================
# Cache
# =============================================================================


@dataclass
class CacheEntry:
    payload: Any
    created_at: datetime
    expires_at: datetime
    quality: float = 0.5
    checksum: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


# =============================================================================
# Validation / pipeline output
# =============================================================================


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: str  # critical | high | medium | low
    code: str


@dataclass
class ValidationResult:
    is_valid: bool
    confidence: float
    issues: list[ValidationIssue] = field(default_factory=list)
    validated_at: datetime = field(default_factory=utcnow)


@dataclass
class DataSource:
    type: SourceType
    url: str
    reliability: float
    accessed_at: datetime = field(default_factory=utcnow)


@dataclass
class DetectedSystem:
    name: str
    indicators: list[str] = field(default_factory=list)
    url: str | None = None


@dataclass
class PhaseReport:
    name: str
    status: PhaseStatus
    duration_seconds: float = 0.0
    detail: str | None = None
    error: str | None = None


@dataclass
class Methodology:
    techniques: list[str] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)
    phases: list[PhaseReport] = field(default_factory=list)


@dataclass
class AcquireOptions:
    use_ai: bool = True
    crawl: bool = True
    max_pages: int | None = None
    max_depth: int | None = None
    analyze_documents: bool = True
    map_flows: bool = True
    probe_systems: bool = True
    validate: bool = True


@dataclass
class EnhancedResult:
    success: bool
    jurisdiction: Jurisdiction | None = None
    permits: list[PermitType] = field(default_factory=list)
    forms: list[PermitForm] = field(default_factory=list)
    contact: ContactInfo = field(default_factory=ContactInfo)
    requirements: list[str] = field(default_factory=list)
    processing_times: dict[str, str] = field(default_factory=dict)
    flows: list[MappedFlow] = field(default_factory=list)
    systems: list[DetectedSystem] = field(default_factory=list)
    sources: list[DataSource] = field(default_factory=list)
    validation: ValidationResult | None = None
    ai_parsed: dict[str, Any] | None = None
    data_quality: float = 0.0
    confidence: float = 0.0
    methodology: Methodology = field(default_factory=Methodology)
    error: str | None = None
    acquired_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

