"""
Tests for utils/validation.py — ValidationIssue, ValidationResult and
is_positive_amount.
"""
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.validation import (
    ERROR,
    WARNING,
    INFO,
    ValidationIssue,
    ValidationResult,
    is_positive_amount,
)


class TestValidationIssue:
    def test_basic_creation(self):
        issue = ValidationIssue("check1", "error", "Something bad happened")
        assert issue.check_name == "check1"
        assert issue.severity == "error"
        assert issue.detail == "Something bad happened"
        assert issue.statute is None
        assert issue.sample is None

    def test_to_dict(self):
        issue = ValidationIssue("pta_amount", ERROR, "over", statute="31 U.S.C. § 1341",
                                sample=Decimal("10.5"))
        d = issue.to_dict()
        assert d["check"] == "pta_amount"
        assert d["severity"] == "error"
        assert d["statute"] == "31 U.S.C. § 1341"
        assert d["sample"] == "10.5"

    def test_to_dict_none_sample(self):
        assert ValidationIssue("c", INFO, "ok").to_dict()["sample"] is None

    def test_equality(self):
        assert ValidationIssue("c", ERROR, "x") == ValidationIssue("c", ERROR, "x")
        assert ValidationIssue("c", ERROR, "x") != ValidationIssue("c", WARNING, "x")

    def test_repr(self):
        r = repr(ValidationIssue("chk", "warning", "x"))
        assert "chk" in r
        assert "warning" in r


class TestValidationResult:
    def test_empty_is_valid(self):
        result = ValidationResult("demo")
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_error_makes_invalid(self):
        result = ValidationResult("demo")
        result.add_error("bad")
        assert not result.is_valid
        assert result.errors == ["bad"]
        assert result.failed_checks == ["demo"]

    def test_warning_keeps_valid(self):
        result = ValidationResult("demo")
        result.add_warning("careful")
        assert result.is_valid
        assert result.warnings == ["careful"]
        assert result.failed_checks == []

    def test_info_is_separate(self):
        result = ValidationResult("demo")
        result.add_info("fyi")
        assert result.info == ["fyi"]
        assert result.warnings == []

    def test_order_preserved(self):
        result = ValidationResult()
        for msg in ("first", "second", "third"):
            result.add_error(msg)
        assert result.errors == ["first", "second", "third"]

    def test_check_name_override(self):
        result = ValidationResult("outer")
        result.add_error("x", check_name="inner", statute="S")
        assert result.issues[0].check_name == "inner"
        assert result.issues[0].statute == "S"
        assert "inner" in result.failed_checks

    def test_counts(self):
        result = ValidationResult()
        result.add_error("a")
        result.add_warning("b")
        result.add_warning("c")
        assert result.error_count() == 1
        assert result.warning_count() == 2

    def test_mark_check_passed_dedupes(self):
        result = ValidationResult()
        result.mark_check_passed("a")
        result.mark_check_passed("a")
        assert result.passed_checks == ["a"]

    def test_merge(self):
        outer = ValidationResult("outer")
        inner = ValidationResult("inner")
        inner.add_error("e1")
        inner.add_warning("w1")
        inner.mark_check_passed("p")
        outer.merge(inner)
        assert outer.errors == ["e1"]
        assert outer.warnings == ["w1"]
        assert "p" in outer.passed_checks
        assert "inner" in outer.failed_checks

    def test_merge_with_prefix(self):
        outer = ValidationResult()
        inner = ValidationResult()
        inner.add_error("missing")
        outer.merge(inner, prefix="PTA")
        assert outer.errors == ["PTA: missing"]

    def test_to_dict(self):
        result = ValidationResult("demo")
        result.add_warning("w")
        result.details["when"] = date(2024, 1, 2)
        d = result.to_dict()
        assert d["check"] == "demo"
        assert d["is_valid"] is True
        assert d["warnings"] == ["w"]
        assert d["details"]["when"] == "2024-01-02"

    def test_detail_fields_serialized(self):
        class AmountResult(ValidationResult):
            detail_fields = ("remaining",)

            def __init__(self):
                super().__init__("amount")
                self.remaining = Decimal("12.00")

        assert AmountResult().to_dict()["details"]["remaining"] == "12.00"

    def test_repr(self):
        assert "errors=0" in repr(ValidationResult("x"))


class TestIsPositiveAmount:
    @pytest.mark.parametrize("value", [1, 0.01, Decimal("5")])
    def test_positive(self, value):
        assert is_positive_amount(value)

    @pytest.mark.parametrize("value", [0, -1, Decimal("-0.01"), None, "100", True])
    def test_not_positive(self, value):
        assert not is_positive_amount(value)
