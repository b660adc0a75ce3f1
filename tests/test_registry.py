"""
Tests for appropriations/registry.py — categories, availability and expiration
"""
import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from appropriations.fiscal_calendar import days_remaining
from appropriations.registry import (
    AppropriationCategory,
    availability_years,
    calculate_expiration,
    category_for_account,
    color_of_money,
    is_expired,
    list_categories,
    lookup,
    validate_appropriation_type,
    validate_appropriation_with_fiscal_year,
)


class TestLookup:
    @pytest.mark.parametrize("code,expected", [
        ("OM", AppropriationCategory.OM),
        ("om", AppropriationCategory.OM),
        ("O&M", AppropriationCategory.OM),
        ("RDT&E", AppropriationCategory.RDTE),
        ("no-year", AppropriationCategory.NO_YEAR),
        (AppropriationCategory.MILCON, AppropriationCategory.MILCON),
    ])
    def test_known_codes(self, code, expected):
        assert lookup(code).category is expected

    @pytest.mark.parametrize("code", ["XYZ", "", None])
    def test_unknown_codes(self, code):
        assert lookup(code) is None

    def test_catalog(self):
        assert len(list_categories()) == 7
        assert color_of_money("PROCUREMENT") == "red"
        assert color_of_money("bogus") is None
        assert lookup("OM").to_dict()["availability_type"] == "annual"


class TestValidateType:
    def test_valid(self):
        result = validate_appropriation_type("RDTE")
        assert result.is_valid
        assert result.details["category"].availability_years == 2

    def test_invalid_lists_choices(self):
        result = validate_appropriation_type("XYZ")
        assert not result.is_valid
        assert result.errors[0].startswith("Invalid appropriation type: XYZ. Must be one of: OM")

    def test_missing(self):
        assert validate_appropriation_type(None).errors == ["Appropriation type code is required"]


class TestAvailability:
    @pytest.mark.parametrize("code,sub_type,years", [
        ("OM", None, 1),
        ("MILPERS", None, 1),
        ("PROCUREMENT", None, 3),
        ("PROCUREMENT", "SHIPBUILDING", 5),
        ("PROCUREMENT", "aircraft", 3),
        ("RDTE", None, 2),
        ("MILCON", None, 5),
        ("FAMILY_HOUSING", None, 2),
        ("NO_YEAR", None, None),
    ])
    def test_years(self, code, sub_type, years):
        assert availability_years(code, sub_type) == years

    def test_unknown_raises(self):
        with pytest.raises(KeyError):
            availability_years("XYZ")

    def test_category_for_account(self):
        assert category_for_account("1611") == (AppropriationCategory.PROCUREMENT, "SHIPBUILDING")
        assert category_for_account("Miscellaneous") is None


class TestExpiration:
    def test_expiration_fiscal_year(self):
        status = calculate_expiration("PROCUREMENT", 2024)
        assert status.expiration_fy == 2026
        assert status.expiration_date.date() == date(2026, 9, 30)

    def test_shipbuilding_subtype(self):
        assert calculate_expiration("PROCUREMENT", 2024, "SHIPBUILDING").expiration_fy == 2028

    def test_unknown_subtype_warns(self):
        status = calculate_expiration("PROCUREMENT", 2024, "SUBMARINES")
        assert status.is_valid
        assert status.expiration_fy == 2026
        assert "Unknown procurement subtype" in status.warnings[0]

    @pytest.mark.parametrize("fiscal_year,message", [
        (None, "Fiscal year is required"),
        (1500, "Invalid fiscal year: 1500"),
    ])
    def test_bad_fiscal_year(self, fiscal_year, message):
        assert calculate_expiration("OM", fiscal_year).errors == [message]

    def test_last_day_not_expired(self):
        status = is_expired("OM", 2024, date(2024, 9, 30))
        assert status.is_expired is False
        assert status.days_until_expiration == 0

    def test_expired_one_day_later(self):
        status = is_expired("OM", 2024, date(2024, 10, 1))
        assert status.is_expired is True
        assert status.days_until_expiration == 0

    def test_multi_year_boundary(self):
        assert not is_expired("RDTE", 2024, datetime(2025, 9, 30, 12)).is_expired
        assert is_expired("RDTE", 2024, date(2025, 10, 1)).is_expired

    def test_days_until_expiration(self):
        assert is_expired("OM", 2024, date(2024, 9, 1)).days_until_expiration == 29

    @pytest.mark.parametrize("as_of", [
        date(2024, 9, 1),
        datetime(2024, 9, 1),
        datetime(2024, 9, 1, tzinfo=timezone.utc),
    ])
    def test_days_until_expiration_same_for_dates_and_datetimes(self, as_of):
        assert is_expired("OM", 2024, as_of).days_until_expiration == 29
        assert days_remaining(as_of) == 30

    def test_no_year_never_expires(self):
        status = is_expired("NO_YEAR", 1990, date(2150, 1, 1))
        assert status.never_expires
        assert status.is_expired is False
        assert status.expiration_fy is None

    def test_to_dict(self):
        data = is_expired("OM", 2024, date(2024, 3, 1)).to_dict()
        assert data["expiration_fy"] == 2024
        assert data["is_expired"] is False


class TestValidateWithFiscalYear:
    def test_expired_is_warning(self):
        status = validate_appropriation_with_fiscal_year("OM", 2022, now=date(2024, 3, 1))
        assert status.is_valid
        assert status.warnings == ["Funds expired at end of FY2022"]

    def test_missing_inputs(self):
        status = validate_appropriation_with_fiscal_year(None, None)
        assert status.errors == ["Appropriation type code is required", "Fiscal year is required"]
