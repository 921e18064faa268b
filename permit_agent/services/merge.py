"""
Merging heuristic extraction with text-understanding output.

Heuristic data is the baseline; external values only fill gaps or add
entries that are not already present.
"""

from collections.abc import Iterable

from permit_agent.core.models import ContactInfo, PermitFee, PermitForm

FEE_AMOUNT_TOLERANCE = 0.01


def is_duplicate_fee(candidate: PermitFee, existing: Iterable[PermitFee]) -> bool:
    """Same type (case-insensitive) and an amount within one cent."""
    fee_type = candidate.type.strip().lower()
    return any(
        fee.type.strip().lower() == fee_type
        and abs(fee.amount - candidate.amount) <= FEE_AMOUNT_TOLERANCE
        for fee in existing
    )


def merge_fees(heuristic: list[PermitFee], external: list[PermitFee]) -> list[PermitFee]:
    merged = list(heuristic)
    for fee in external:
        if not is_duplicate_fee(fee, merged):
            merged.append(fee)
    return merged


def merge_contact(heuristic: ContactInfo | None, external: ContactInfo | None) -> ContactInfo:
    """External values are used only where the heuristic value is absent."""
    base = heuristic or ContactInfo()
    return base.merge(external)


def is_duplicate_requirement(candidate: str, existing: Iterable[str]) -> bool:
    """Case-insensitive substring containment in either direction."""
    lower = candidate.strip().lower()
    if not lower:
        return True
    for item in existing:
        other = item.strip().lower()
        if lower in other or other in lower:
            return True
    return False


def merge_requirements(heuristic: list[str], external: list[str]) -> list[str]:
    merged: list[str] = []
    for requirement in [*heuristic, *external]:
        if not is_duplicate_requirement(requirement, merged):
            merged.append(requirement.strip())
    return merged


def dedup_forms_by_url(forms: Iterable[PermitForm]) -> list[PermitForm]:
    """One form per absolute URL; the first occurrence wins."""
    seen: set[str] = set()
    unique = []
    for form in forms:
        if form.url not in seen:
            seen.add(form.url)
            unique.append(form)
    return unique


def merge_processing_times(*maps: dict[str, str]) -> dict[str, str]:
    """Later maps overwrite earlier ones on key collision."""
    merged: dict[str, str] = {}
    for mapping in maps:
        merged.update(mapping)
    return merged
