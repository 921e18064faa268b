"""
Heuristic validation of acquired permit data.

Each check records a ValidationIssue with a severity. Confidence starts
at 1.0 and drops per issue:

    critical 0.3 | high 0.2 | medium 0.1 | low 0.05

Data is valid when no critical or high issue was found. Results are
memoized per content key for an hour.
"""

import re
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from permit_agent.core.models import (
    ContactInfo,
    Jurisdiction,
    PermitFee,
    PermitType,
    ValidationIssue,
    ValidationResult,
    utcnow,
)
from permit_agent.services.cache import content_checksum

logger = structlog.get_logger()


SEVERITY_PENALTIES = {
    "critical": 0.3,
    "high": 0.2,
    "medium": 0.1,
    "low": 0.05,
}
BLOCKING_SEVERITIES = {"critical", "high"}

MAX_PLAUSIBLE_FEE = 1_000_000
MIN_REQUIREMENT_LENGTH = 5
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
FAKE_PHONE_NUMBERS = {"5555555555", "1234567890", "0000000000"}
MEMO_TTL = timedelta(hours=1)
MEMO_MAX_ENTRIES = 256


def score_issues(issues: list[ValidationIssue]) -> float:
    confidence = 1.0 - sum(SEVERITY_PENALTIES.get(issue.severity, 0.0) for issue in issues)
    return min(1.0, max(0.0, confidence))


class DataValidator:
    """Default validator collaborator for the acquisition pipeline."""

    def __init__(self, clock: Callable[[], datetime] = utcnow, max_entries: int = MEMO_MAX_ENTRIES):
        self._clock = clock
        self.max_entries = max_entries
        self._memo: dict[str, ValidationResult] = {}
        self.log = logger.bind(component="DataValidator")

    def validate(
        self,
        permits: list[PermitType],
        fees: list[PermitFee] | None = None,
        contact: ContactInfo | None = None,
        jurisdiction: Jurisdiction | None = None,
    ) -> ValidationResult:
        fees = fees or []
        key = self._memo_key(permits, fees, contact, jurisdiction)
        cached = self._memo.get(key)
        if cached is not None and self._clock() - cached.validated_at < MEMO_TTL:
            return cached

        issues: list[ValidationIssue] = []
        issues.extend(self.check_permits(permits))
        issues.extend(self.check_fees([*fees, *(f for p in permits for f in p.fees)]))
        if contact is not None:
            issues.extend(self.check_contact(contact))

        result = ValidationResult(
            is_valid=not any(issue.severity in BLOCKING_SEVERITIES for issue in issues),
            confidence=score_issues(issues),
            issues=issues,
            validated_at=self._clock(),
        )
        self._remember(key, result)
        self.log.debug(
            "Validation done",
            valid=result.is_valid,
            confidence=round(result.confidence, 2),
            issues=len(issues),
        )
        return result

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def check_permits(self, permits: list[PermitType]) -> list[ValidationIssue]:
        if not permits:
            return [ValidationIssue("permits", "No permits found", "high", "NO_PERMITS_FOUND")]

        issues = []
        seen: set[str] = set()
        for i, permit in enumerate(permits):
            field = f"permits[{i}]"
            name = (permit.name or "").strip()
            if not name:
                issues.append(ValidationIssue(
                    f"{field}.name", "Permit name is required", "critical", "REQUIRED_FIELD_MISSING",
                ))
            elif name.lower() in seen:
                issues.append(ValidationIssue(
                    f"{field}.name", f"Duplicate permit: {name}", "medium", "DUPLICATE_PERMIT",
                ))
            else:
                seen.add(name.lower())

            for j, requirement in enumerate(permit.requirements):
                if len(requirement.strip()) < MIN_REQUIREMENT_LENGTH:
                    issues.append(ValidationIssue(
                        f"{field}.requirements[{j}]",
                        "Requirement description too short",
                        "low",
                        "INSUFFICIENT_DESCRIPTION",
                    ))
        return issues

    def check_fees(self, fees: list[PermitFee]) -> list[ValidationIssue]:
        issues = []
        for i, fee in enumerate(fees):
            if fee.amount < 0:
                issues.append(ValidationIssue(
                    f"fees[{i}].amount", "Fee amount is negative", "medium", "INVALID_VALUE",
                ))
            elif fee.amount > MAX_PLAUSIBLE_FEE:
                issues.append(ValidationIssue(
                    f"fees[{i}].amount", f"Fee amount {fee.amount} is implausibly high", "medium", "SUSPICIOUS_VALUE",
                ))
        return issues

    def check_contact(self, contact: ContactInfo) -> list[ValidationIssue]:
        issues = []
        if contact.phone:
            digits = re.sub(r"\D", "", contact.phone)
            if len(digits) not in (10, 11) or digits[-10:] in FAKE_PHONE_NUMBERS:
                issues.append(ValidationIssue(
                    "contact.phone", f"Malformed phone number: {contact.phone}", "medium", "INVALID_PHONE_FORMAT",
                ))
        if contact.email and not EMAIL_PATTERN.match(contact.email):
            issues.append(ValidationIssue(
                "contact.email", f"Malformed email: {contact.email}", "medium", "INVALID_EMAIL_FORMAT",
            ))
        return issues

    # -------------------------------------------------------------------------
    # Memo
    # -------------------------------------------------------------------------

    def _memo_key(
        self,
        permits: list[PermitType],
        fees: list[PermitFee],
        contact: ContactInfo | None,
        jurisdiction: Jurisdiction | None,
    ) -> str:
        parts = [
            jurisdiction.id if jurisdiction else "",
            "|".join(
                f"{p.name}:{';'.join(p.requirements)}:{','.join(str(f.amount) for f in p.fees)}"
                for p in permits
            ),
            "|".join(f"{f.type}:{f.amount}" for f in fees),
            f"{contact.phone}:{contact.email}" if contact else "",
        ]
        return content_checksum("\n".join(parts))

    def clear(self) -> None:
        self._memo.clear()

    def _remember(self, key: str, result: ValidationResult) -> None:
        """Store a result, dropping expired entries and then the oldest ones past the cap."""
        now = self._clock()
        for stale in [k for k, v in self._memo.items() if now - v.validated_at >= MEMO_TTL]:
            del self._memo[stale]
        self._memo.pop(key, None)
        self._memo[key] = result
        while len(self._memo) > self.max_entries:
            del self._memo[next(iter(self._memo))]
