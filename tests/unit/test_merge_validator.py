"""
Unit tests for data merging and heuristic validation.
"""

from datetime import UTC, datetime, timedelta

import pytest

from permit_agent.core.models import (
    Address,
    ContactInfo,
    FileType,
    PermitFee,
    PermitForm,
    PermitType,
)
from permit_agent.services.merge import (
    dedup_forms_by_url,
    merge_contact,
    merge_fees,
    merge_processing_times,
    merge_requirements,
)
from permit_agent.services.validator import DataValidator, score_issues


# =============================================================================
# Merge
# =============================================================================


class TestMergeFees:
    def test_case_and_cent_tolerant_dedup(self):
        """'Permit Fee' 100 and 'permit fee' 100.00 are one entry."""
        merged = merge_fees([PermitFee("Permit Fee", 100)], [PermitFee("permit fee", 100.00)])
        assert len(merged) == 1
        assert merged[0].type == "Permit Fee"

    def test_different_amounts_kept(self):
        merged = merge_fees([PermitFee("Permit Fee", 100)], [PermitFee("Permit Fee", 150)])
        assert [f.amount for f in merged] == [100, 150]

    def test_negative_fee_rejected_at_construction(self):
        with pytest.raises(ValueError):
            PermitFee("Refund", -5)


class TestMergeContact:
    """Heuristic values win; external values fill gaps."""

    def test_first_present_per_field(self):
        heuristic = ContactInfo(phone="(217) 555-0142", email="")
        external = ContactInfo(
            phone="(217) 555-0199",
            email="permits@springfield.gov",
            address=Address(city="Springfield", state="IL"),
        )
        merged = merge_contact(heuristic, external)

        assert merged.phone == "(217) 555-0142"
        assert merged.email == "permits@springfield.gov"
        assert merged.address.city == "Springfield"

    def test_missing_sides(self):
        assert merge_contact(None, None).is_empty()
        assert merge_contact(None, ContactInfo(phone="x")).phone == "x"


class TestMergeRequirements:
    def test_substring_either_direction(self):
        merged = merge_requirements(
            ["Site plan", "Proof of ownership"],
            ["Site plan showing setbacks", "proof of ownership", "Contractor license"],
        )
        assert merged == ["Site plan", "Proof of ownership", "Contractor license"]

    def test_blank_entries_dropped(self):
        assert merge_requirements(["  "], ["Deed"]) == ["Deed"]


class TestMergeMisc:
    def test_forms_first_url_wins(self):
        a = PermitForm("Building Application", "https://x.gov/a.pdf", FileType.PDF)
        b = PermitForm("Application (PDF)", "https://x.gov/a.pdf", FileType.PDF)
        c = PermitForm("Online", "https://x.gov/apply")
        assert dedup_forms_by_url([a, b, c]) == [a, c]

    def test_processing_times_later_wins(self):
        merged = merge_processing_times({"standard": "10 days", "express": "3 days"}, {"standard": "2 weeks"})
        assert merged == {"standard": "2 weeks", "express": "3 days"}


# =============================================================================
# Validator
# =============================================================================


def permit(name: str, **kwargs) -> PermitType:
    return PermitType(id=name.lower().replace(" ", "-") or "blank", name=name, **kwargs)


class Clock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


class TestDataValidator:
    """Severity-weighted confidence."""

    def test_clean_data(self):
        result = DataValidator().validate(
            [permit("Building Permit")],
            fees=[PermitFee("Building Permit", 500)],
            contact=ContactInfo(phone="(217) 555-0142", email="permits@springfield.gov"),
        )
        assert result.is_valid
        assert result.confidence == 1.0
        assert result.issues == []

    def test_no_permits_is_high(self):
        result = DataValidator().validate([])
        assert not result.is_valid
        assert result.confidence == pytest.approx(0.8)
        assert result.issues[0].code == "NO_PERMITS_FOUND"

    def test_missing_name_is_critical(self):
        result = DataValidator().validate([permit("")])
        assert not result.is_valid
        assert result.issues[0].severity == "critical"
        assert result.confidence == pytest.approx(0.7)

    def test_medium_and_low_keep_data_valid(self):
        result = DataValidator().validate(
            [
                permit("Fence Permit", requirements=["ID"]),
                permit("fence permit"),
            ],
            fees=[PermitFee("Fence Permit", 2_000_000)],
            contact=ContactInfo(phone="555-555-5555", email="bad@"),
        )
        codes = {issue.code for issue in result.issues}

        assert result.is_valid
        assert codes == {
            "INSUFFICIENT_DESCRIPTION",
            "DUPLICATE_PERMIT",
            "SUSPICIOUS_VALUE",
            "INVALID_PHONE_FORMAT",
            "INVALID_EMAIL_FORMAT",
        }
        assert result.confidence == pytest.approx(1.0 - 0.05 - 4 * 0.1)

    def test_confidence_clamped(self):
        issues = DataValidator().check_permits([permit("") for _ in range(5)])
        assert score_issues(issues) == 0.0

    def test_memoized_for_an_hour(self):
        clock = Clock()
        validator = DataValidator(clock=clock)
        permits = [permit("Deck Permit")]

        first = validator.validate(permits)
        assert validator.validate(permits) is first

        clock.now += timedelta(hours=2)
        assert validator.validate(permits) is not first

    def test_expired_results_pruned_on_write(self):
        clock = Clock()
        validator = DataValidator(clock=clock)
        validator.validate([permit("Deck Permit")])

        clock.now += timedelta(hours=2)
        validator.validate([permit("Fence Permit")])

        assert len(validator._memo) == 1

    def test_memo_size_bounded(self):
        validator = DataValidator(clock=Clock(), max_entries=2)
        for name in ("Deck Permit", "Fence Permit", "Pool Permit"):
            validator.validate([permit(name)])

        assert len(validator._memo) == 2
        first = validator.validate([permit("Pool Permit")])
        assert validator.validate([permit("Pool Permit")]) is first
