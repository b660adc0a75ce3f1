"""
Tests for utils/patterns.py — pre-compiled regex patterns

Validates that all regex patterns match expected inputs and reject invalid ones.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.patterns import (
    PE_NUMBER,
    FISCAL_YEAR,
    ACCOUNT_CODE_TITLE,
    WHITESPACE,
    CURRENCY_SYMBOLS,
    MAGNITUDE_SUFFIX,
)


class TestPENumber:
    @pytest.mark.parametrize("text", ["0602702E", "0801273F", "0603270A", "1234567BB"])
    def test_matches_valid(self, text):
        assert PE_NUMBER.fullmatch(text)

    @pytest.mark.parametrize("text", ["060270E", "06027021", "0602702e", "PE 06027"])
    def test_rejects_invalid(self, text):
        assert not PE_NUMBER.fullmatch(text)

    def test_finds_in_text(self):
        match = PE_NUMBER.search("Program Element 0603270A funds radar work")
        assert match.group() == "0603270A"


class TestFiscalYear:
    @pytest.mark.parametrize("text,year", [
        ("FY2026", "2026"),
        ("FY 2024", "2024"),
        ("fy2025", "2025"),
        ("2023", "2023"),
    ])
    def test_extracts_year(self, text, year):
        assert FISCAL_YEAR.search(text).group(2) == year

    def test_no_match_for_short_numbers(self):
        assert FISCAL_YEAR.search("FY24") is None


class TestAccountCodeTitle:
    def test_splits_code_and_title(self):
        m = ACCOUNT_CODE_TITLE.match("2020 Operation and Maintenance, Army")
        assert m.group(1) == "2020"
        assert m.group(2) == "Operation and Maintenance, Army"

    def test_bare_title_does_not_match(self):
        assert ACCOUNT_CODE_TITLE.match("Operation and Maintenance, Army") is None


class TestMiscPatterns:
    def test_whitespace_collapses(self):
        assert WHITESPACE.sub(" ", "a \t\n b") == "a b"

    @pytest.mark.parametrize("symbol", ["$", "€", "£", "¥"])
    def test_currency_symbols(self, symbol):
        assert CURRENCY_SYMBOLS.search(f"{symbol}100")

    @pytest.mark.parametrize("text,suffix", [("1,250K", "K"), ("3m", "m"), ("2B", "B")])
    def test_magnitude_suffix(self, text, suffix):
        assert MAGNITUDE_SUFFIX.search(text).group(1) == suffix

    def test_magnitude_suffix_only_at_end(self):
        assert MAGNITUDE_SUFFIX.search("K100") is None
