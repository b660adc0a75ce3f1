"""String and numeric coercion utilities for the appropriations engine.

Amounts arrive from callers as ints, floats, strings with currency symbols or
rendered exhibit values ("$1,250K").  Everything money-related is converted to
``Decimal`` here so validators never do float arithmetic on dollars.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from utils.patterns import WHITESPACE, CURRENCY_SYMBOLS, MAGNITUDE_SUFFIX

_MAGNITUDES = {"K": Decimal(1_000), "M": Decimal(1_000_000), "B": Decimal(1_000_000_000)}


def safe_decimal(val: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Safely convert value to Decimal with fallback default.

    Handles:
    - None, empty strings -> default
    - Decimal / int -> Decimal
    - float -> Decimal via its shortest repr (avoids binary noise)
    - Strings with currency symbols, whitespace, commas and K/M/B suffixes
    - Invalid input -> default

    Args:
        val: Value to convert (any type)
        default: Value to return on failure (default: None)

    Returns:
        Decimal: Parsed value or default
    """
    if val is None or val == '':
        return default
    if isinstance(val, bool):
        return default
    if isinstance(val, Decimal):
        return val
    if isinstance(val, int):
        return Decimal(val)
    if isinstance(val, float):
        return Decimal(repr(val))

    s = str(val).strip()
    s = CURRENCY_SYMBOLS.sub('', s)
    s = s.replace(',', '').strip()
    multiplier = Decimal(1)
    match = MAGNITUDE_SUFFIX.search(s)
    if match:
        multiplier = _MAGNITUDES[match.group(1).upper()]
        s = s[:match.start()].strip()
    if not s:
        return default
    try:
        return Decimal(s) * multiplier
    except InvalidOperation:
        return default


def normalize_whitespace(s: str) -> str:
    """Normalize multiple whitespace characters to single spaces.

    Example:
        "Aircraft   Procurement\\n  Air Force" -> "Aircraft Procurement Air Force"
    """
    return WHITESPACE.sub(' ', s).strip()


def normalize_purpose(purpose: Optional[str]) -> str:
    """Normalize a purpose tag for lookup against authorized-purpose tables.

    Lowercases and replaces runs of whitespace with a single underscore, so
    "Minor  Equipment" and "minor_equipment" compare equal.
    """
    if not purpose:
        return ""
    return WHITESPACE.sub('_', purpose.strip().lower())


def has_min_length(text: Optional[str], minimum: int) -> bool:
    """True when ``text`` has at least ``minimum`` non-blank characters."""
    return bool(text) and len(text.strip()) >= minimum
