"""
Tests for utils/config.py — Config, ComplianceThresholds, EngineConfig,
KnownValues and classify_account_title
"""
import dataclasses
import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.config import (
    Config,
    ComplianceThresholds,
    DEFAULT_THRESHOLDS,
    EngineConfig,
    KnownValues,
    classify_account_title,
)


class TestConfig:
    def test_to_dict_empty(self):
        assert Config().to_dict() == {}

    def test_to_dict_skips_private(self):
        c = Config()
        c._private = "hidden"
        c.public = "visible"
        assert c.to_dict() == {"public": "visible"}

    def test_from_dict(self):
        c = Config.from_dict({"x": 1, "y": "two"})
        assert c.x == 1
        assert c.y == "two"

    def test_json_round_trip(self, tmp_path):
        c = Config.from_dict({"name": "engine", "level": 3})
        path = tmp_path / "sub" / "config.json"
        c.save_json(path)
        loaded = Config.load_json(path)
        assert loaded.to_dict() == {"name": "engine", "level": 3}

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load_json(tmp_path / "missing.json")


class TestComplianceThresholds:
    def test_defaults(self):
        t = DEFAULT_THRESHOLDS
        assert t.minor_equipment_threshold == Decimal(250_000)
        assert t.milcon_threshold == Decimal(750_000)
        assert t.min_justification_length == 10
        assert t.near_expiration_days == 30
        assert t.ada_high_headroom_pct == 5.0
        assert t.ada_medium_headroom_pct == 10.0
        assert (t.significantly_behind_pct, t.behind_pct, t.ahead_pct) == (-20.0, -10.0, 10.0)

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_THRESHOLDS.near_expiration_days = 5

    def test_from_dict_partial_and_coerced(self):
        t = ComplianceThresholds.from_dict({
            "milcon_threshold": 1000000.0,
            "near_expiration_days": "45",
            "unknown_key": 1,
        })
        assert t.milcon_threshold == Decimal("1000000.0")
        assert isinstance(t.milcon_threshold, Decimal)
        assert t.near_expiration_days == 45
        assert t.minor_equipment_threshold == Decimal(250_000)

    @pytest.mark.parametrize("data,field", [
        ({"near_expiration_days": None}, "near_expiration_days"),
        ({"minor_equipment_threshold": "abc"}, "minor_equipment_threshold"),
        ({"ada_high_headroom_pct": "five"}, "ada_high_headroom_pct"),
        ({"min_lead_time_months": [12]}, "min_lead_time_months"),
    ])
    def test_from_dict_bad_value(self, data, field):
        with pytest.raises(ValueError, match=f"invalid threshold {field}"):
            ComplianceThresholds.from_dict(data)

    def test_from_dict_requires_mapping(self):
        with pytest.raises(ValueError, match="must be a JSON object"):
            ComplianceThresholds.from_dict([1, 2])

    def test_json_round_trip(self, tmp_path):
        original = ComplianceThresholds(near_expiration_days=60,
                                        minor_equipment_threshold=Decimal("300000"))
        path = tmp_path / "thresholds.json"
        original.save_json(path)
        assert ComplianceThresholds.load_json(path) == original


class TestEngineConfig:
    def test_defaults(self, monkeypatch):
        for var in ("ACE_LOG_FORMAT", "ACE_LOG_LEVEL", "ACE_THRESHOLDS_PATH"):
            monkeypatch.delenv(var, raising=False)
        config = EngineConfig.from_env()
        assert config.log_format == "text"
        assert config.log_level == "INFO"
        assert config.thresholds_path is None
        assert config.load_thresholds() is DEFAULT_THRESHOLDS

    def test_env_overrides(self, monkeypatch, tmp_path):
        path = tmp_path / "t.json"
        ComplianceThresholds(near_expiration_days=7).save_json(path)
        monkeypatch.setenv("ACE_LOG_FORMAT", "json")
        monkeypatch.setenv("ACE_LOG_LEVEL", "debug")
        monkeypatch.setenv("ACE_THRESHOLDS_PATH", str(path))
        config = EngineConfig.from_env()
        assert config.log_format == "json"
        assert config.log_level == "DEBUG"
        assert config.load_thresholds().near_expiration_days == 7


class TestKnownValues:
    def test_bare_symbol(self):
        assert KnownValues.get_account("2020") == (
            "Operation and Maintenance, Army", "OM", None)

    def test_code_and_title_line(self):
        title, category, subtype = KnownValues.get_account(
            "1611 Shipbuilding and Conversion, Navy")
        assert category == "PROCUREMENT"
        assert subtype == "SHIPBUILDING"

    def test_unknown(self):
        assert KnownValues.get_account("9999") is None

    def test_title_line_with_line_breaks(self):
        assert KnownValues.get_account("  2020\n  Operation and Maintenance,\n Army ") == (
            "Operation and Maintenance, Army", "OM", None)


class TestClassifyAccountTitle:
    @pytest.mark.parametrize("title,expected", [
        ("Aircraft Procurement, Air Force", ("PROCUREMENT", "AIRCRAFT")),
        ("Shipbuilding and Conversion, Navy", ("PROCUREMENT", "SHIPBUILDING")),
        ("Procurement of Ammunition, Army", ("PROCUREMENT", "AMMUNITION")),
        ("Other Procurement, Army", ("PROCUREMENT", "OTHER")),
        ("Research, Development, Test and Evaluation, Navy", ("RDTE", None)),
        ("Military Construction, Air Force", ("MILCON", None)),
        ("Family Housing Operation and Maintenance, Army", ("FAMILY_HOUSING", None)),
        ("Military Personnel, Army", ("MILPERS", None)),
        ("Operation and Maintenance, Navy", ("OM", None)),
        ("Defense Working Capital Fund", ("NO_YEAR", None)),
    ])
    def test_titles(self, title, expected):
        assert classify_account_title(title) == expected

    def test_known_symbol_wins(self):
        assert classify_account_title("3600") == ("RDTE", None)

    @pytest.mark.parametrize("title", ["", "Miscellaneous Receipts"])
    def test_no_match(self, title):
        assert classify_account_title(title) is None
