"""
Tests for appropriations/bona_fide_need.py — need-year rule, exceptions,
severable apportionment and the severability classifier
"""
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from appropriations.bona_fide_need import (
    CONTRACT_TYPES,
    ExceptionType,
    determine_service_severability,
    generate_bona_fide_need_report,
    validate_bona_fide_need,
    validate_severable_services_contract,
)
from appropriations.models import ContractType, Obligation, PerformancePeriod
from appropriations.statutes import BONA_FIDE_NEED_STATUTE


@pytest.fixture
def next_year_need():
    """FY2024 funds for a need arising in FY2025."""
    return Obligation(id="OBL-BFN", appropriation_type="OM", fiscal_year=2024,
                      need_date=date(2024, 11, 15), amount=Decimal(50_000))


class TestNeedYear:
    def test_need_in_year(self, obligation):
        result = validate_bona_fide_need(obligation)
        assert result.is_valid
        assert result.need_matches_fy
        assert result.exception is None

    def test_need_in_next_year_is_violation(self, next_year_need):
        result = validate_bona_fide_need(next_year_need)
        assert not result.is_valid
        assert result.need_fy == 2025
        assert result.errors[0].startswith(
            "Bona fide need violation: FY2024 funds cannot be used for need arising in FY2025. "
            "The need must arise during FY2024 (2023-10-01 - 2024-09-30).")
        assert result.issues[0].statute == BONA_FIDE_NEED_STATUTE

    def test_performance_start_used_when_no_need_date(self):
        result = validate_bona_fide_need(Obligation(
            fiscal_year=2024,
            performance_period=PerformancePeriod(start=date(2023, 12, 1), end=date(2024, 6, 1))))
        assert result.is_valid

    def test_missing_inputs(self):
        result = validate_bona_fide_need(Obligation())
        assert result.errors == [
            "Fiscal year of appropriation is required",
            "Need date or performance period is required for bona fide need validation",
        ]


class TestExceptions:
    def test_stock_item(self, next_year_need):
        result = validate_bona_fide_need(next_year_need.model_copy(update={"is_stock_item": True}))
        assert result.is_valid
        assert result.exception.exception_type is ExceptionType.STOCK_INVENTORY
        assert result.warnings[0].startswith(
            "Bona fide need exception applied: STOCK_INVENTORY.")

    def test_severable_service_overlapping_year(self):
        result = validate_bona_fide_need(Obligation(
            fiscal_year=2024, need_date=date(2024, 10, 15),
            contract_type=ContractType.SEVERABLE_SERVICE,
            performance_period=PerformancePeriod(start=date(2024, 9, 1), end=date(2025, 8, 31))))
        assert result.exception.exception_type is ExceptionType.SEVERABLE_SERVICE

    def test_severable_service_without_overlap(self):
        result = validate_bona_fide_need(Obligation(
            fiscal_year=2024, contract_type=ContractType.SEVERABLE_SERVICE,
            performance_period=PerformancePeriod(start=date(2024, 11, 1), end=date(2025, 10, 31))))
        assert not result.is_valid

    def test_lead_time(self, next_year_need):
        result = validate_bona_fide_need(next_year_need.model_copy(update={
            "lead_time_months": 14,
            "lead_time_justification": "Long-lead forgings",
        }))
        assert result.exception.exception_type is ExceptionType.LEAD_TIME
        assert "Production requires 14 months." in result.exception.justification

    @pytest.mark.parametrize("update", [
        {"lead_time_months": 11, "lead_time_justification": "Too short"},
        {"lead_time_months": 14, "lead_time_justification": None},
    ])
    def test_lead_time_not_met(self, next_year_need, update):
        assert not validate_bona_fide_need(next_year_need.model_copy(update=update)).is_valid

    def test_lead_time_only_for_following_year(self, next_year_need):
        result = validate_bona_fide_need(next_year_need.model_copy(update={
            "need_date": date(2025, 11, 1),
            "lead_time_months": 24,
            "lead_time_justification": "Two-year build",
        }))
        assert not result.is_valid

    def test_multi_year_authority(self, next_year_need):
        result = validate_bona_fide_need(
            next_year_need.model_copy(update={"multi_year_authority": "10 U.S.C. § 3501"}))
        assert result.exception.exception_type is ExceptionType.MULTIYEAR_AUTHORITY

    def test_continuing_resolution(self, next_year_need):
        result = validate_bona_fide_need(next_year_need.model_copy(
            update={"continuing_resolution_authority": "P.L. 118-15 § 101"}))
        assert result.exception.exception_type is ExceptionType.CONTINUING_RESOLUTION
        assert result.exception.reference == "P.L. 118-15 § 101"

    def test_first_matching_exception_wins(self, next_year_need):
        result = validate_bona_fide_need(next_year_need.model_copy(update={
            "is_stock_item": True,
            "multi_year_authority": "10 U.S.C. § 3501",
        }))
        assert result.exception.exception_type is ExceptionType.STOCK_INVENTORY


class TestSeverableContract:
    PERIOD = PerformancePeriod(start=date(2024, 7, 1), end=date(2025, 6, 30))

    def test_days_by_fiscal_year(self):
        result = validate_severable_services_contract(self.PERIOD)
        assert result.is_valid
        assert result.total_days == 365
        assert result.fiscal_year_days == {2024: 92, 2025: 273}
        assert result.fiscal_year_percentages == {2024: 25.21, 2025: 74.79}

    def test_disproportionate_funding_warns(self):
        result = validate_severable_services_contract(
            self.PERIOD, {2024: Decimal(500_000), 2025: Decimal(500_000)})
        assert len(result.warnings) == 2
        assert result.warnings[0].startswith(
            "FY2024 funding (50.00%) does not match service period (25.21%).")

    def test_proportionate_funding(self):
        result = validate_severable_services_contract(
            self.PERIOD, {2024: Decimal(25_210), 2025: Decimal(74_790)})
        assert result.warnings == []

    @pytest.mark.parametrize("period", [
        None,
        PerformancePeriod(start=date(2024, 7, 1)),
    ])
    def test_requires_both_ends(self, period):
        assert not validate_severable_services_contract(period).is_valid

    def test_end_before_start(self):
        result = validate_severable_services_contract(
            PerformancePeriod(start=date(2024, 7, 1), end=date(2024, 6, 1)))
        assert result.errors == ["Performance period end precedes its start"]


class TestSeverability:
    def test_recurring_service(self):
        assessment = determine_service_severability(
            "Janitorial and grounds maintenance services", has_recurring_payments=True)
        assert assessment.is_severable
        assert assessment.confidence == "high"
        assert assessment.recommendation is ContractType.SEVERABLE_SERVICE
        assert not assessment.needs_review

    def test_single_deliverable(self):
        assessment = determine_service_severability(
            "Design and build a single facility", has_deliverable=True)
        assert not assessment.is_severable
        assert assessment.non_severable_score == 5
        assert assessment.recommendation is ContractType.NON_SEVERABLE_SERVICE

    def test_ambiguous_needs_review(self):
        assessment = determine_service_severability("IT support project")
        assert assessment.confidence == "medium"
        assert assessment.needs_review
        assert assessment.to_dict()["advisory"] is True

    def test_contract_type_catalog(self):
        assert CONTRACT_TYPES[ContractType.SEVERABLE_SERVICE].cross_fy_allowed
        assert CONTRACT_TYPES[ContractType.SUPPLIES].stocking_exception


class TestReport:
    def test_tally(self, obligation, next_year_need):
        stocked = next_year_need.model_copy(update={"id": "OBL-STOCK", "is_stock_item": True})
        report = generate_bona_fide_need_report([obligation, next_year_need, stocked])
        assert report.total_obligations == 3
        assert report.compliant == 2
        assert report.violations == 1
        assert report.exception_types == {"STOCK_INVENTORY": 1}
        assert report.violation_details[0]["need_fy"] == 2025
