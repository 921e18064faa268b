"""
Shared constants for Permit Agent.

Vocabularies, link-scoring weights and classification tie-break orders.
The numeric weights are empirical; components accept overrides through
their constructors rather than reading these directly at call time.
"""

from permit_agent.core.models import PermitCategory, PortalType

# =============================================================================
# Permit vocabulary
# =============================================================================

PERMIT_KEYWORDS = (
    "permit", "application", "building", "construction", "electrical",
    "plumbing", "mechanical", "zoning", "demolition", "renovation",
    "inspection", "license", "approval", "review", "plan", "blueprint",
    "certificate", "compliance", "safety", "code", "ordinance",
)

# Category inference: first match wins, checked in this order
CATEGORY_KEYWORDS: list[tuple[PermitCategory, tuple[str, ...]]] = [
    (PermitCategory.ELECTRICAL, ("electrical", "electric", "wiring")),
    (PermitCategory.PLUMBING, ("plumbing", "water heater", "sewer")),
    (PermitCategory.MECHANICAL, ("mechanical", "hvac", "heating", "air conditioning")),
    (PermitCategory.DEMOLITION, ("demolition", "demo ")),
    (PermitCategory.SIGN, ("sign", "signage", "billboard")),
    (PermitCategory.ZONING, ("zoning", "variance", "land use")),
    (PermitCategory.BUSINESS, ("business license", "business")),
    (PermitCategory.BUILDING, ("building", "construction", "residential", "commercial", "addition")),
]


def infer_category(text: str) -> PermitCategory:
    """Map free text to a permit category; unrecognized text is OTHER."""
    lower = f" {text.lower()} "
    for category, keywords in CATEGORY_KEYWORDS:
        if any(kw in lower for kw in keywords):
            return category
    return PermitCategory.OTHER


# =============================================================================
# Crawler link scoring
# =============================================================================

LINK_KEYWORD_WEIGHTS: dict[str, tuple[int, tuple[str, ...]]] = {
    "high": (10, (
        "permit-application", "apply-online", "permit-center", "building-permit",
        "permit-portal", "e-permit", "online-permit", "submit-application",
    )),
    "medium": (5, (
        "permit", "building", "application", "form", "fee", "requirement",
        "electrical", "plumbing", "mechanical", "residential", "commercial",
    )),
    "low": (2, (
        "planning", "zoning", "development", "construction", "inspection",
        "contractor", "homeowner", "project",
    )),
}

# (path fragments, bonus) pairs; every matching group adds its bonus
LINK_PATH_BONUSES: list[tuple[tuple[str, ...], int]] = [
    (("/permits/", "/building/"), 8),
    (("/apply", "/submit"), 7),
    (("/forms", "/applications"), 6),
    (("/fees", "/costs"), 5),
]

# Links containing these are never followed
CRAWL_EXCLUDE_PATTERNS = (
    "/news", "/events", "/calendar", "/jobs", "/careers", "/employment",
    "/login", "/logout", "/search", "/privacy", "/terms", "/accessibility",
    "facebook.com", "twitter.com", "instagram.com", "linkedin.com", "youtube.com",
)

SKIP_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".css", ".js", ".zip", ".mp4", ".mp3",
)

# =============================================================================
# Portal discovery
# =============================================================================

COMMON_PERMIT_PATHS = (
    "/permits", "/building", "/building-permits", "/planning", "/development",
    "/applications", "/forms", "/services/building", "/departments/building",
    "/permits-and-licenses",
)

PORTAL_PATHS = (
    "/permits/online", "/permits/apply", "/permits/application", "/online-services",
    "/e-permits", "/permit-portal", "/apply-online", "/applications/online",
    "/services/permits", "/departments/building/permits", "/building/permits/apply",
    "/permits-and-licenses", "/citizen-access", "/accela", "/energov", "/clariti", "/aca",
)

# Dict order is the tie-break order
PORTAL_INDICATORS: dict[PortalType, tuple[str, ...]] = {
    PortalType.ONLINE_PORTAL: (
        "apply online", "online application", "submit online", "permit portal",
        "citizen access", "create account", "log in to apply", "track your permit",
    ),
    PortalType.APPLICATION_PAGE: (
        "application form", "apply for", "permit application", "start application",
        "submit application", "application process",
    ),
    PortalType.FORM_LIBRARY: (
        "forms", "download form", "printable", "fillable", "pdf form", "document library",
    ),
    PortalType.DOCUMENT_CENTER: (
        "documents", "resources", "guidelines", "handouts", "checklists", "publications",
    ),
}

PORTAL_LINK_KEYWORDS = (
    "apply online", "online permit", "permit portal", "e-permit", "epermit",
    "citizen access", "online services", "submit application", "permit application",
    "accela", "energov", "etrakit", "viewpoint", "citygrows",
)
