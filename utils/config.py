"""Configuration management utilities for the appropriations engine.

Provides reusable pieces for:
- Loading and saving configuration as JSON
- Environment-driven engine settings (logging format/level, thresholds file)
- The immutable table of policy thresholds consumed by every validator
- Known Treasury appropriation accounts and title-based category inference
"""

from dataclasses import dataclass, asdict, fields
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional, Any, Tuple
import json
import re

from utils.patterns import ACCOUNT_CODE_TITLE
from utils.strings import normalize_whitespace


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        """Initialize configuration with default values."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Args:
            path: Path to configuration file

        Returns:
            Config instance loaded from file

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


# ── Policy thresholds ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ComplianceThresholds:
    """Policy numbers used by the validators.

    Frozen so a single instance can be shared across threads.  Dollar values
    are Decimals; percentages are expressed in points (90 means 90%).
    """

    # Purpose / colors of money
    minor_equipment_threshold: Decimal = Decimal("250000")
    milcon_threshold: Decimal = Decimal("750000")
    min_justification_length: int = 10

    # Time / amount
    near_expiration_days: int = 30
    high_consumption_pct: float = 90.0

    # Anti-Deficiency Act headroom bands
    ada_high_headroom_pct: float = 5.0
    ada_medium_headroom_pct: float = 10.0

    # Bona fide need / multi-year
    severable_tolerance_pct: float = 5.0
    min_lead_time_months: int = 12
    multi_year_min_savings_pct: float = 10.0
    max_advance_procurement_years: int = 2

    # Execution tracking
    significantly_behind_pct: float = -20.0
    behind_pct: float = -10.0
    ahead_pct: float = 10.0
    ahead_window_days: int = 30
    year_end_window_days: int = 60
    high_unliquidated_pct: float = 50.0
    low_obligation_rate_pct: float = 50.0
    low_expenditure_rate_pct: float = 30.0
    high_obligation_rate_pct: float = 70.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComplianceThresholds":
        """Build thresholds from a (possibly partial) dictionary.

        Unknown keys are ignored; values are coerced to the field's type so a
        JSON float such as 250000.0 becomes Decimal("250000.0").

        Raises:
            ValueError: If ``data`` is not a mapping or a value cannot be
                coerced to its field's type
        """
        if not isinstance(data, dict):
            raise ValueError(f"thresholds must be a JSON object, got {type(data).__name__}")
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            default = getattr(cls, f.name)
            raw = data[f.name]
            try:
                if isinstance(default, Decimal):
                    kwargs[f.name] = Decimal(str(raw))
                else:
                    kwargs[f.name] = type(default)(raw)
            except (TypeError, ValueError, ArithmeticError) as e:
                raise ValueError(f"invalid threshold {f.name}: {raw!r}") from e
        return cls(**kwargs)

    def save_json(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "ComplianceThresholds":
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


DEFAULT_THRESHOLDS = ComplianceThresholds()


# ── Known accounts ────────────────────────────────────────────────────────────

class KnownValues:
    """Container for known Treasury appropriation accounts."""

    # Basic symbol -> (title, category code, procurement subtype)
    APPROPRIATIONS: Dict[str, Tuple[str, str, Optional[str]]] = {
        "2010": ("Military Personnel, Army", "MILPERS", None),
        "1453": ("Military Personnel, Navy", "MILPERS", None),
        "1105": ("Military Personnel, Marine Corps", "MILPERS", None),
        "3500": ("Military Personnel, Air Force", "MILPERS", None),
        "2020": ("Operation and Maintenance, Army", "OM", None),
        "1804": ("Operation and Maintenance, Navy", "OM", None),
        "1106": ("Operation and Maintenance, Marine Corps", "OM", None),
        "3400": ("Operation and Maintenance, Air Force", "OM", None),
        "0100": ("Operation and Maintenance, Defense-Wide", "OM", None),
        "2031": ("Aircraft Procurement, Army", "PROCUREMENT", "AIRCRAFT"),
        "1506": ("Aircraft Procurement, Navy", "PROCUREMENT", "AIRCRAFT"),
        "3010": ("Aircraft Procurement, Air Force", "PROCUREMENT", "AIRCRAFT"),
        "2032": ("Missile Procurement, Army", "PROCUREMENT", "MISSILES"),
        "3020": ("Missile Procurement, Air Force", "PROCUREMENT", "MISSILES"),
        "1507": ("Weapons Procurement, Navy", "PROCUREMENT", "WEAPONS"),
        "2034": ("Procurement of Ammunition, Army", "PROCUREMENT", "AMMUNITION"),
        "2035": ("Other Procurement, Army", "PROCUREMENT", "OTHER"),
        "1810": ("Other Procurement, Navy", "PROCUREMENT", "OTHER"),
        "1611": ("Shipbuilding and Conversion, Navy", "PROCUREMENT", "SHIPBUILDING"),
        "2040": ("Research, Development, Test and Evaluation, Army", "RDTE", None),
        "1319": ("Research, Development, Test and Evaluation, Navy", "RDTE", None),
        "3600": ("Research, Development, Test and Evaluation, Air Force", "RDTE", None),
        "0400": ("Research, Development, Test and Evaluation, Defense-Wide", "RDTE", None),
        "2050": ("Military Construction, Army", "MILCON", None),
        "1205": ("Military Construction, Navy and Marine Corps", "MILCON", None),
        "3300": ("Military Construction, Air Force", "MILCON", None),
        "0720": ("Family Housing Construction, Army", "FAMILY_HOUSING", None),
        "0725": ("Family Housing Operation and Maintenance, Army", "FAMILY_HOUSING", None),
        "4930": ("Defense Working Capital Fund", "NO_YEAR", None),
    }

    @classmethod
    def get_account(cls, code: str) -> Optional[Tuple[str, str, Optional[str]]]:
        """Look up a known account by basic symbol.

        Accepts either the bare symbol ("2010") or a code-and-title line
        ("2010 Operation and Maintenance, Army").  Line breaks and repeated
        spaces copied from exhibit PDFs are collapsed first.

        Returns:
            (title, category code, subtype) or None if not found
        """
        code = normalize_whitespace(code)
        match = ACCOUNT_CODE_TITLE.match(code)
        if match:
            code = match.group(1)
        return cls.APPROPRIATIONS.get(code.upper())


# ── Title-based classification ────────────────────────────────────────────────
# Ordered: shipbuilding before the general procurement pattern, family housing
# before MILCON and O&M (its titles contain both "construction" and
# "maintenance").

_END = r"(?![a-zA-Z])"

_TITLE_PATTERNS: Tuple[Tuple[re.Pattern, str, Optional[str]], ...] = (
    (re.compile(r"\bshipbuilding" + _END + r"|\bscn" + _END, re.IGNORECASE),
     "PROCUREMENT", "SHIPBUILDING"),
    (re.compile(r"\bfamily\s*housing" + _END + r"|\bfh[co]?" + _END, re.IGNORECASE),
     "FAMILY_HOUSING", None),
    (re.compile(r"\baircraft\s+procurement|\bapn" + _END + r"|\bapaf" + _END, re.IGNORECASE),
     "PROCUREMENT", "AIRCRAFT"),
    (re.compile(r"\bmissile\s+procurement" + _END, re.IGNORECASE),
     "PROCUREMENT", "MISSILES"),
    (re.compile(r"\bweapons\s+procurement|\bwtcv" + _END, re.IGNORECASE),
     "PROCUREMENT", "WEAPONS"),
    (re.compile(r"\bammunition" + _END + r"|\bpanmc" + _END, re.IGNORECASE),
     "PROCUREMENT", "AMMUNITION"),
    (re.compile(r"\bprocurement" + _END + r"|\bopa\d*" + _END + r"|\bopn" + _END,
                re.IGNORECASE),
     "PROCUREMENT", "OTHER"),
    (re.compile(r"\bresearch.*development|\brdt&?e" + _END, re.IGNORECASE),
     "RDTE", None),
    (re.compile(r"\bmilitary\s*construction" + _END + r"|\bmilcon" + _END
                + r"|\bmcon" + _END, re.IGNORECASE),
     "MILCON", None),
    (re.compile(r"\bmilitary\s*personnel" + _END + r"|\breserve\s*personnel" + _END
                + r"|\bnational\s*guard\s*personnel" + _END + r"|\bmilpers" + _END,
                re.IGNORECASE),
     "MILPERS", None),
    (re.compile(r"\boperation[s]?\s*(?:and|&)\s*maintenance" + _END + r"|\bo&m" + _END
                + r"|\boma" + _END + r"|\bomn" + _END, re.IGNORECASE),
     "OM", None),
    (re.compile(r"\bworking\s*capital\s*fund" + _END + r"|\brevolving\s*funds?" + _END,
                re.IGNORECASE),
     "NO_YEAR", None),
)


def classify_account_title(title: str) -> Optional[Tuple[str, Optional[str]]]:
    """Infer the appropriation category of an account from its title.

    Known basic symbols win over title patterns.

    Examples:
        classify_account_title("Aircraft Procurement, Air Force")
        -> ("PROCUREMENT", "AIRCRAFT")
        classify_account_title("Shipbuilding and Conversion, Navy")
        -> ("PROCUREMENT", "SHIPBUILDING")

    Returns:
        (category code, subtype) or None when nothing matches
    """
    if not title:
        return None
    known = KnownValues.get_account(title)
    if known:
        return known[1], known[2]
    for pattern, category, subtype in _TITLE_PATTERNS:
        if pattern.search(title):
            return category, subtype
    return None


# ── Engine configuration ──────────────────────────────────────────────────────

import os as _os  # noqa: E402


class EngineConfig(Config):
    """Engine-level configuration loaded from environment variables.

    All env vars have sensible defaults so the engine works out of the box.

    Environment variables:
        ACE_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        ACE_LOG_LEVEL: Logging level name (default: INFO)
        ACE_THRESHOLDS_PATH: Optional JSON file overriding policy thresholds
    """

    def __init__(self) -> None:
        super().__init__()
        self.log_format = _os.getenv("ACE_LOG_FORMAT", "text")
        self.log_level = _os.getenv("ACE_LOG_LEVEL", "INFO").upper()
        raw_path = _os.getenv("ACE_THRESHOLDS_PATH", "")
        self.thresholds_path: Optional[Path] = Path(raw_path) if raw_path else None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create an EngineConfig instance populated from environment variables."""
        return cls()

    def load_thresholds(self) -> ComplianceThresholds:
        """Return thresholds from ``thresholds_path`` or the defaults."""
        if self.thresholds_path is None:
            return DEFAULT_THRESHOLDS
        return ComplianceThresholds.load_json(self.thresholds_path)
