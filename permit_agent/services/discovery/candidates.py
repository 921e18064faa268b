"""
Candidate domain generation.

Government sites follow a handful of naming habits (cityof{name}.gov,
{name}.{state}.us, vendor subdomains, department subdomains). Given a
place name we produce every name variant (aliases such as saint/st,
hyphen and underscore joins) and expand each through those habits.

Only coverage matters: order is not significant and duplicates are
removed before anything is validated.
"""

import re
import unicodedata

from permit_agent.core.models import JurisdictionType

# Token aliases applied in both directions
NAME_ALIASES: dict[str, str] = {
    "saint": "st",
    "mount": "mt",
    "fort": "ft",
    "sainte": "ste",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
}
_REVERSE_ALIASES = {short: full for full, short in NAME_ALIASES.items()}

JOINERS = ("", "-", "_")

CITY_PATTERNS = (
    "{n}.gov", "cityof{n}.gov", "city-of-{n}.gov", "{n}city.gov", "city{n}.gov",
    "{n}.org", "cityof{n}.org", "{n}.us", "{n}.com", "townof{n}.gov",
    "{n}{s}.gov", "{n}-{s}.gov", "{n}.{s}.us", "{n}.{s}.gov", "ci.{n}.{s}.us",
    "cityof{n}.{s}.us", "{n}.ci.{s}.us", "go{n}.gov", "my{n}.gov",
)
COUNTY_PATTERNS = (
    "{n}county.gov", "{n}county.org", "{n}co.gov", "{n}countyus.gov", "co.{n}.{s}.us",
    "{n}.co.{s}.us", "{n}county{s}.gov", "{n}county.{s}.gov", "{n}county.us",
)
STATE_PATTERNS = ("{s}.gov", "{n}.gov", "portal.{s}.gov", "permits.{s}.gov")

DEPARTMENT_SUBDOMAINS = (
    "permits", "permitting", "building", "planning", "development", "inspections",
    "eservices", "online", "portal", "citizen", "services", "applications",
)
VENDOR_DOMAINS = (
    "accela.com", "tylertech.com", "energov.com", "etrakit.com", "viewpermit.com",
    "citygrows.com", "govpilot.com", "permittrax.com", "amanda.com", "cityworks.com",
    "clariti.com", "cloudpermit.com", "smartgov.com",
)


def sanitize_tokens(name: str) -> list[str]:
    """Lowercase ASCII word tokens: 'St. Louis' -> ['st', 'louis']."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    ascii_name = re.sub(r"\b(city|town|village|county|parish|borough)\s+of\b", " ", ascii_name, flags=re.I)
    return re.findall(r"[a-z0-9]+", ascii_name.lower().replace("'", ""))


def token_variants(tokens: list[str]) -> list[list[str]]:
    """The tokens as given, then with every alias substitution applied."""
    variants = [tokens]
    swapped = [NAME_ALIASES.get(t, _REVERSE_ALIASES.get(t, t)) for t in tokens]
    if swapped != tokens:
        variants.append(swapped)
    for i, token in enumerate(tokens):
        alias = NAME_ALIASES.get(token) or _REVERSE_ALIASES.get(token)
        if alias:
            single = list(tokens)
            single[i] = alias
            if single not in variants:
                variants.append(single)
    return variants


def name_variants(name: str) -> list[str]:
    """Every joined spelling of the name, primary spelling first."""
    tokens = sanitize_tokens(name)
    if not tokens:
        return []
    names: list[str] = []
    for variant in token_variants(tokens):
        for joiner in JOINERS:
            joined = joiner.join(variant)
            if joined not in names:
                names.append(joined)
    return names


def _county_base(county: str) -> str:
    return re.sub(r"\s+county$", "", county.strip(), flags=re.I)


def generate_candidates(
    name: str,
    state: str = "",
    jurisdiction_type: JurisdictionType = JurisdictionType.CITY,
) -> list[str]:
    """
    Candidate hostnames for a jurisdiction, deduplicated.

    >>> "st-louis.gov" in generate_candidates("St. Louis", "MO")
    True
    """
    if jurisdiction_type == JurisdictionType.COUNTY:
        name = _county_base(name)
        patterns = COUNTY_PATTERNS
    elif jurisdiction_type == JurisdictionType.STATE:
        patterns = STATE_PATTERNS
    else:
        patterns = CITY_PATTERNS

    names = name_variants(name)
    if not names:
        return []
    state = "".join(sanitize_tokens(state)) if state else ""

    candidates: list[str] = []
    for n in names:
        for pattern in patterns:
            if "{s}" in pattern and not state:
                continue
            candidates.append(pattern.format(n=n, s=state))

    primary = names[0]
    if jurisdiction_type == JurisdictionType.CITY:
        candidates.extend(f"{dept}.{primary}.gov" for dept in DEPARTMENT_SUBDOMAINS)
        candidates.extend(f"{n}.{vendor}" for n in names if "_" not in n for vendor in VENDOR_DOMAINS)
    elif jurisdiction_type == JurisdictionType.COUNTY:
        candidates.extend(f"{dept}.{primary}county.gov" for dept in DEPARTMENT_SUBDOMAINS[:6])

    return list(dict.fromkeys(candidates))


def candidate_urls(hostnames: list[str]) -> list[str]:
    """https:// URLs for the hostnames, in order."""
    return [f"https://{host}/" for host in hostnames]
