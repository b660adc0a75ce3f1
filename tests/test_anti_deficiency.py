"""
Tests for appropriations/anti_deficiency.py — §1341, §1342, §1517 and §1532
checks with severity routing
"""
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from appropriations.anti_deficiency import (
    CRITICAL_WARNING,
    Severity,
    ViolationType,
    check_advance_payment,
    check_apportionment,
    check_augmentation,
    check_overobligation,
    check_voluntary_services,
    generate_violation_report,
    validate_anti_deficiency_act,
)
from appropriations.models import (
    ApportionmentFootnote,
    ApportionmentRecord,
    BudgetAccount,
    FundingSource,
    Obligation,
)
from appropriations.statutes import ADVANCE_OBLIGATION_STATUTE, OVEROBLIGATION_STATUTE


@pytest.fixture
def apportioned_account():
    return BudgetAccount(id="ACCT-1", appropriated=Decimal(10_000_000),
                         apportioned=Decimal(9_000_000), obligated=Decimal(8_500_000),
                         committed=Decimal(400_000))


class TestOverobligation:
    def test_apportionment_limit_exceeded(self, apportioned_account):
        result = check_overobligation(apportioned_account, Decimal(500_000))
        assert result.severity is Severity.CRITICAL
        assert result.violation is ViolationType.OVEROBLIGATION
        assert result.analysis.limit_type == "APPORTIONMENT"
        assert result.analysis.remaining_after == Decimal(-400_000)
        assert "would exceed APPORTIONMENT limit of $9,000,000 by $400,000" in result.errors[0]

    @pytest.mark.parametrize("obligated,proposed,severity", [
        (Decimal(9_000_000), Decimal(600_000), Severity.HIGH),
        (Decimal(9_000_000), Decimal(200_000), Severity.MEDIUM),
        (Decimal(5_000_000), Decimal(100_000), None),
    ])
    def test_headroom_bands(self, obligated, proposed, severity):
        account = BudgetAccount(appropriated=Decimal(10_000_000), obligated=obligated)
        result = check_overobligation(account, proposed)
        assert result.is_valid
        assert result.severity is severity

    def test_headroom_warning_text(self):
        account = BudgetAccount(appropriated=Decimal(10_000_000), obligated=Decimal(9_000_000))
        result = check_overobligation(account, Decimal(600_000))
        assert result.warnings[0].startswith("HIGH RISK: Only $400,000 (4.00%) will remain")

    def test_allotment_is_tightest(self):
        account = BudgetAccount(appropriated=Decimal(10_000_000), apportioned=Decimal(9_000_000),
                                allotted=Decimal(1_000_000))
        result = check_overobligation(account, Decimal(1_000_001))
        assert result.analysis.limit_type == "ALLOTMENT"
        assert result.has_violation

    def test_exact_ceiling_is_not_violation(self):
        account = BudgetAccount(appropriated=Decimal(1_000))
        result = check_overobligation(account, Decimal(1_000))
        assert not result.has_violation
        assert result.severity is Severity.HIGH

    def test_missing_inputs(self, apportioned_account):
        assert check_overobligation(None, Decimal(1)).errors == [
            "Budget account information is required"]
        assert check_overobligation(apportioned_account, Decimal(0)).errors == [
            "Proposed obligation amount must be greater than zero"]


class TestAugmentation:
    @pytest.mark.parametrize("source", [FundingSource.GIFT, FundingSource.DONATION,
                                        FundingSource.PRIVATE_FUNDS, FundingSource.NON_FEDERAL])
    def test_outside_source_without_authority(self, source):
        result = check_augmentation(Obligation(funding_source=source))
        assert result.severity is Severity.HIGH
        assert result.violation is ViolationType.AUGMENTATION

    def test_with_authority_warns(self):
        result = check_augmentation(Obligation(funding_source=FundingSource.GIFT,
                                               augmentation_authority="10 U.S.C. § 2601"))
        assert result.is_valid
        assert result.warnings[0].startswith("Augmentation authority cited: 10 U.S.C. § 2601.")

    def test_appropriated_source(self):
        result = check_augmentation(Obligation(funding_source=FundingSource.APPROPRIATED))
        assert result.is_valid
        assert result.warnings == []

    def test_missing_source(self):
        assert check_augmentation(Obligation()).warnings == [
            "Funding source not specified - cannot validate augmentation rules"]


class TestVoluntaryServices:
    def test_uncompensated_is_critical(self):
        result = check_voluntary_services(Obligation(is_service=True, compensated=False))
        assert result.severity is Severity.CRITICAL

    def test_emergency_without_justification(self):
        result = check_voluntary_services(Obligation(is_service=True, compensated=False,
                                                     is_emergency=True))
        assert result.severity is Severity.HIGH
        assert result.errors == [
            "Emergency justification required for voluntary services exception"]

    def test_emergency_with_justification(self):
        result = check_voluntary_services(Obligation(
            is_service=True, compensated=False, is_emergency=True,
            emergency_justification="Flood response protecting life and property"))
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_compensated(self):
        assert check_voluntary_services(Obligation(is_service=True)).is_valid


class TestAdvancePayment:
    def test_before_appropriation(self):
        result = check_advance_payment(Obligation(appropriation_date=date(2023, 12, 22),
                                                  obligation_date=date(2023, 11, 1)))
        assert result.severity is Severity.CRITICAL
        assert "Payment date: 2023-11-01, Appropriation date: 2023-12-22" in result.errors[0]

    def test_payment_date_preferred(self):
        result = check_advance_payment(Obligation(appropriation_date=date(2023, 12, 22),
                                                  obligation_date=date(2023, 11, 1),
                                                  payment_date=date(2024, 1, 5)))
        assert result.is_valid

    def test_authority_cited(self):
        result = check_advance_payment(Obligation(appropriation_date=date(2023, 12, 22),
                                                  obligation_date=date(2023, 11, 1),
                                                  advance_payment_authority="31 U.S.C. § 3324"))
        assert result.is_valid
        assert result.warnings

    def test_missing_dates(self):
        assert check_advance_payment(Obligation()).warnings == [
            "Appropriation date not provided - cannot validate advance payment rules"]


class TestApportionment:
    RECORD = ApportionmentRecord(
        category="A", period_start=date(2023, 10, 1), period_end=date(2023, 12, 31),
        footnotes=(ApportionmentFootnote(activities=("Conferences",), footnote="A1"),
                   ApportionmentFootnote(type="ADVISORY", activities=("travel",))))

    def test_outside_period(self):
        result = check_apportionment(Obligation(obligation_date=date(2024, 1, 2)), self.RECORD)
        assert result.violation is ViolationType.APPORTIONMENT_PERIOD
        assert result.severity is Severity.CRITICAL

    def test_prohibited_footnote(self):
        result = check_apportionment(Obligation(obligation_date=date(2023, 11, 1),
                                                purpose="conferences"), self.RECORD)
        assert result.violation is ViolationType.APPORTIONMENT_RESTRICTION
        assert "prohibited by OMB footnote: A1" in result.errors[0]

    def test_advisory_footnote_ignored(self):
        result = check_apportionment(Obligation(obligation_date=date(2023, 11, 1),
                                                purpose="travel"), self.RECORD)
        assert result.is_valid

    def test_no_record(self):
        assert check_apportionment(Obligation(), None).warnings == [
            "No apportionment data provided - cannot validate § 1517 compliance"]


class TestValidateAntiDeficiencyAct:
    def test_critical_routing(self, apportioned_account):
        result = validate_anti_deficiency_act(
            Obligation(id="T1", amount=Decimal(500_000)), apportioned_account)
        assert result.has_violation
        assert result.severity is Severity.CRITICAL
        assert result.requires_reporting
        assert result.reporting_deadline == "Immediately"
        assert result.report_to == ("OMB", "Congress", "GAO", "Agency Head")
        assert result.critical_warning == CRITICAL_WARNING
        assert result.statute == OVEROBLIGATION_STATUTE

    def test_high_has_no_critical_warning(self):
        result = validate_anti_deficiency_act(
            Obligation(funding_source=FundingSource.DONATION), None)
        assert result.severity is Severity.HIGH
        assert result.reporting_deadline == "Within 24 hours"
        assert result.critical_warning is None

    def test_violation_follows_most_severe_check(self):
        result = validate_anti_deficiency_act(Obligation(
            funding_source=FundingSource.GIFT,
            appropriation_date=date(2023, 12, 22),
            obligation_date=date(2023, 11, 1)), None)
        assert result.violation is ViolationType.ADVANCE_OBLIGATION
        assert result.statute == ADVANCE_OBLIGATION_STATUTE
        assert set(result.validations) == {"augmentation", "advance_payment"}

    def test_only_populated_checks_run(self, account):
        result = validate_anti_deficiency_act(Obligation(amount=Decimal(1_000)), account)
        assert set(result.validations) == {"overobligation"}
        assert not result.has_violation
        assert result.severity is None
        assert not result.requires_reporting

    def test_to_dict(self, apportioned_account):
        data = validate_anti_deficiency_act(
            Obligation(amount=Decimal(500_000)), apportioned_account).to_dict()
        assert data["details"]["severity"] == "CRITICAL"
        assert data["details"]["analysis"]["limit_type"] == "APPORTIONMENT"


class TestViolationReport:
    def test_report(self, apportioned_account):
        txn = Obligation(id="T1", amount=Decimal(500_000), obligation_date=date(2024, 2, 1))
        result = validate_anti_deficiency_act(txn, apportioned_account)
        now = datetime(2024, 2, 1, tzinfo=timezone.utc)
        report = generate_violation_report(result, txn, "ACCT-1", now=now)
        assert report.violation_type == "OVEROBLIGATION"
        assert report.transaction == {"id": "T1", "amount": "500000",
                                      "date": "2024-02-01", "account": "ACCT-1"}
        assert report.reporting_requirements["deadline"] == "Immediately"
        assert "1350" in report.penalty
        data = report.to_dict()
        assert data["report_date"] == now.isoformat()
        assert len(data["remedial_actions"]) == 6
