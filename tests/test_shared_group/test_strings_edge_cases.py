"""
Tests for utils/strings.py — money coercion and purpose normalization

Covers currency symbols, magnitude suffixes, float noise and blank input.
"""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.strings import safe_decimal, normalize_whitespace, normalize_purpose, has_min_length


class TestSafeDecimal:
    @pytest.mark.parametrize("value,expected", [
        (100, Decimal(100)),
        (Decimal("12.50"), Decimal("12.50")),
        ("1,234,567", Decimal(1234567)),
        ("$1,234", Decimal(1234)),
        ("€500", Decimal(500)),
        ("  42  ", Decimal(42)),
        ("-250", Decimal(-250)),
    ])
    def test_parses(self, value, expected):
        assert safe_decimal(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("$1,250K", Decimal(1_250_000)),
        ("2.5M", Decimal(2_500_000)),
        ("1b", Decimal(1_000_000_000)),
    ])
    def test_magnitude_suffixes(self, value, expected):
        assert safe_decimal(value) == expected

    def test_float_uses_shortest_repr(self):
        assert safe_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", [None, "", "abc", "$", "K", True, False])
    def test_invalid_returns_default(self, value):
        assert safe_decimal(value) is None
        assert safe_decimal(value, Decimal(0)) == Decimal(0)

    def test_decimal_passthrough_identity(self):
        value = Decimal("99.99")
        assert safe_decimal(value) is value


class TestNormalizeWhitespace:
    def test_collapses_runs(self):
        assert normalize_whitespace("Aircraft   Procurement\n  Air Force") == \
            "Aircraft Procurement Air Force"

    def test_strips_ends(self):
        assert normalize_whitespace("  x  ") == "x"


class TestNormalizePurpose:
    @pytest.mark.parametrize("raw,expected", [
        ("Minor Equipment", "minor_equipment"),
        ("minor_equipment", "minor_equipment"),
        ("  Base   Operations ", "base_operations"),
        ("SALARIES", "salaries"),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_purpose(raw) == expected

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty(self, raw):
        assert normalize_purpose(raw) == ""


class TestHasMinLength:
    def test_long_enough(self):
        assert has_min_length("Replace worn radios", 10)

    def test_exactly_minimum(self):
        assert has_min_length("a" * 10, 10)

    def test_whitespace_does_not_count(self):
        assert not has_min_length("   short   ", 10)

    def test_none(self):
        assert not has_min_length(None, 1)
