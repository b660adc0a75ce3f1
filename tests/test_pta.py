"""
Tests for appropriations/pta.py — purpose, time and amount restrictions
"""
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from appropriations.models import BudgetAccount, Obligation, PurposeRestriction
from appropriations.pta import (
    generate_pta_compliance_report,
    validate_amount_restriction,
    validate_pta,
    validate_purpose_restriction,
    validate_time_restriction,
)
from appropriations.statutes import BONA_FIDE_NEED_STATUTE, OVEROBLIGATION_STATUTE


class TestPurposeRestriction:
    def test_valid(self, obligation):
        assert validate_purpose_restriction(obligation).is_valid

    def test_prohibited_by_restriction(self, obligation):
        restricted = obligation.model_copy(update={"restrictions": (
            PurposeRestriction(prohibited=("Supplies",), reference="Act § 8012"),)})
        result = validate_purpose_restriction(restricted)
        assert "Purpose 'supplies' is specifically prohibited by: Act § 8012" in result.errors

    def test_required_list_warns(self, obligation):
        restricted = obligation.model_copy(update={"restrictions": (
            PurposeRestriction(required=("training_operating",), reference="FN A1"),)})
        result = validate_purpose_restriction(restricted)
        assert result.is_valid
        assert result.warnings == ["Purpose should be one of: training_operating per FN A1"]

    def test_short_justification_warns(self, obligation):
        result = validate_purpose_restriction(obligation.model_copy(update={"justification": "x"}))
        assert result.is_valid
        assert result.warnings[0].startswith("Insufficient justification for purpose")

    def test_missing_fields(self):
        result = validate_purpose_restriction(Obligation())
        assert result.errors == ["Appropriation type is required for purpose validation",
                                 "Purpose description is required"]


class TestTimeRestriction:
    def test_current_funds(self, obligation):
        result = validate_time_restriction(obligation)
        assert result.is_valid
        assert result.expiration_fy == 2024
        assert result.is_expired is False

    def test_expired_funds(self, obligation):
        result = validate_time_restriction(
            obligation.model_copy(update={"obligation_date": date(2024, 10, 1), "need_date": None}))
        assert not result.is_valid
        assert result.errors[0].startswith(
            "Cannot obligate expired funds. OM FY2024 expired on 2024-09-30.")

    def test_near_expiration_warning(self, obligation):
        result = validate_time_restriction(
            obligation.model_copy(update={"obligation_date": date(2024, 9, 20)}))
        assert result.is_valid
        assert result.warnings[0].startswith("Funds expire in 10 days.")

    def test_need_date_in_other_year(self, obligation):
        result = validate_time_restriction(
            obligation.model_copy(update={"need_date": date(2024, 11, 1)}))
        assert result.need_fy == 2025
        assert result.issues[-1].statute == BONA_FIDE_NEED_STATUTE
        assert "need arises in FY2025" in result.errors[-1]

    def test_missing_date(self, obligation):
        result = validate_time_restriction(obligation.model_copy(update={"obligation_date": None}))
        assert result.errors == ["Obligation date is required"]


class TestAmountRestriction:
    def test_within_balance(self, obligation, account):
        result = validate_amount_restriction(obligation, account)
        assert result.is_valid
        analysis = result.budget_analysis
        assert analysis.available == Decimal(2_000_000)
        assert analysis.remaining_after_obligation == Decimal(1_875_000)
        assert analysis.percentage_used == 6.25

    def test_exactly_available_is_allowed(self, obligation, account):
        result = validate_amount_restriction(
            obligation.model_copy(update={"amount": Decimal(2_000_000)}), account)
        assert result.is_valid
        assert result.budget_analysis.remaining_after_obligation == 0
        assert any("100.0% of remaining available funds" in w for w in result.warnings)

    def test_one_dollar_over_is_rejected(self, obligation, account):
        result = validate_amount_restriction(
            obligation.model_copy(update={"amount": Decimal(2_000_001)}), account)
        assert not result.is_valid
        assert result.errors[0].startswith(
            "Insufficient funds: Obligation of $2,000,001 exceeds available balance of $2,000,000.")
        assert result.issues[0].statute == OVEROBLIGATION_STATUTE
        assert result.budget_analysis.would_exceed

    def test_explicit_available_override(self, obligation, account):
        override = account.model_copy(update={"available": Decimal(100_000)})
        assert not validate_amount_restriction(obligation, override).is_valid

    @pytest.mark.parametrize("amount", [None, Decimal(0), Decimal(-5)])
    def test_non_positive_amount(self, obligation, account, amount):
        result = validate_amount_restriction(obligation.model_copy(update={"amount": amount}),
                                             account)
        assert result.errors == ["Obligation amount must be greater than zero"]

    def test_missing_account(self, obligation):
        result = validate_amount_restriction(obligation, None)
        assert result.errors == ["Budget status is required for amount validation"]

    def test_negative_balance(self, obligation, account):
        bad = account.model_copy(update={"obligated": Decimal(-1)})
        result = validate_amount_restriction(obligation, bad)
        assert result.errors == ["Budget account obligated balance cannot be negative (-1)"]

    @settings(max_examples=50, deadline=None)
    @given(amount=st.integers(min_value=1, max_value=4_000_000))
    def test_valid_iff_within_available(self, amount):
        account = BudgetAccount(appropriated=Decimal(10_000_000), obligated=Decimal(7_000_000),
                                committed=Decimal(1_000_000))
        result = validate_amount_restriction(Obligation(amount=Decimal(amount)), account)
        assert result.is_valid == (amount <= 2_000_000)


class TestValidatePTA:
    def test_all_valid(self, obligation, account):
        result = validate_pta(obligation, account)
        assert result.is_valid
        assert result.summary == {"purpose_valid": True, "time_valid": True,
                                  "amount_valid": True, "total_errors": 0,
                                  "total_warnings": 0}

    def test_reports_every_sub_check(self, account):
        result = validate_pta(Obligation(amount=Decimal(5)), account)
        summary = result.summary
        assert not summary["purpose_valid"]
        assert not summary["time_valid"]
        assert summary["amount_valid"]

    def test_to_dict_includes_sub_results(self, obligation, account):
        data = validate_pta(obligation, account).to_dict()
        assert data["details"]["amount"]["details"]["budget_analysis"]["available"] == "2000000"


class TestComplianceReport:
    def test_tally(self, obligation, account):
        bad = obligation.model_copy(update={"id": "OBL-2", "amount": Decimal(3_000_000)})
        report = generate_pta_compliance_report([obligation, bad], account)
        assert report.total_obligations == 2
        assert report.compliant == 1
        assert report.non_compliant == 1
        assert report.by_restriction["amount"]["violations"] == 1
        assert report.compliance_rate == 50.0
        assert report.violations[0]["obligation_id"] == "OBL-2"
