"""
Appropriation Registry — catalog of appropriation categories.

Each category carries its period of availability, a display "color of money"
and a description (DoD FMR Volume 2A, Chapter 1; 31 U.S.C. §1301).  Funds are
available for new obligations through the end of fiscal year
``FY + availability_years - 1``; no-year funds never expire.

Unknown codes are reported through ValidationResult errors, never raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from appropriations.fiscal_calendar import (
    fiscal_year_end,
    fiscal_year_of,
    format_fiscal_year,
    is_valid_fiscal_year,
    to_naive_datetime,
)
from utils.config import classify_account_title
from utils.validation import ValidationResult

logger = logging.getLogger(__name__)


class AppropriationCategory(str, Enum):
    OM = "OM"
    MILPERS = "MILPERS"
    PROCUREMENT = "PROCUREMENT"
    RDTE = "RDTE"
    MILCON = "MILCON"
    FAMILY_HOUSING = "FAMILY_HOUSING"
    NO_YEAR = "NO_YEAR"


class ProcurementSubtype(str, Enum):
    AIRCRAFT = "AIRCRAFT"
    MISSILES = "MISSILES"
    WEAPONS = "WEAPONS"
    AMMUNITION = "AMMUNITION"
    SHIPBUILDING = "SHIPBUILDING"
    OTHER = "OTHER"


@dataclass(frozen=True)
class CategoryInfo:
    """Static description of one appropriation category."""

    category: AppropriationCategory
    name: str
    full_name: str
    availability_years: int | None          # None means available until expended
    availability_type: str                  # annual | multi-year | no-year
    color: str
    description: str
    subtype_availability: Mapping[ProcurementSubtype, int] = field(
        default_factory=lambda: MappingProxyType({}))

    @property
    def never_expires(self) -> bool:
        return self.availability_years is None

    def to_dict(self) -> dict:
        return {
            "code": self.category.value,
            "name": self.name,
            "full_name": self.full_name,
            "availability_years": self.availability_years,
            "availability_type": self.availability_type,
            "color": self.color,
            "description": self.description,
            "subtypes": {k.value: v for k, v in self.subtype_availability.items()},
        }


CATEGORIES: Mapping[AppropriationCategory, CategoryInfo] = MappingProxyType({
    AppropriationCategory.OM: CategoryInfo(
        AppropriationCategory.OM, "Operations and Maintenance",
        "Operations and Maintenance (O&M)", 1, "annual", "green",
        "Current expenses not otherwise classified, including civilian personnel compensation",
    ),
    AppropriationCategory.MILPERS: CategoryInfo(
        AppropriationCategory.MILPERS, "Military Personnel",
        "Military Personnel (MILPERS)", 1, "annual", "blue",
        "Pay and allowances for active and reserve military personnel",
    ),
    AppropriationCategory.PROCUREMENT: CategoryInfo(
        AppropriationCategory.PROCUREMENT, "Procurement", "Procurement", 3, "multi-year", "red",
        "Acquisition of equipment, weapons systems, and other capital assets",
        MappingProxyType({
            ProcurementSubtype.AIRCRAFT: 3,
            ProcurementSubtype.MISSILES: 3,
            ProcurementSubtype.WEAPONS: 3,
            ProcurementSubtype.AMMUNITION: 3,
            ProcurementSubtype.SHIPBUILDING: 5,
            ProcurementSubtype.OTHER: 3,
        }),
    ),
    AppropriationCategory.RDTE: CategoryInfo(
        AppropriationCategory.RDTE, "Research, Development, Test & Evaluation",
        "Research, Development, Test & Evaluation (RDT&E)", 2, "multi-year", "yellow",
        "Research and development of new technologies and systems",
    ),
    AppropriationCategory.MILCON: CategoryInfo(
        AppropriationCategory.MILCON, "Military Construction",
        "Military Construction (MILCON)", 5, "multi-year", "orange",
        "Construction, installation, or acquisition of facilities",
    ),
    AppropriationCategory.FAMILY_HOUSING: CategoryInfo(
        AppropriationCategory.FAMILY_HOUSING, "Family Housing", "Family Housing", 2,
        "multi-year", "purple",
        "Construction, maintenance, and operation of family housing",
    ),
    AppropriationCategory.NO_YEAR: CategoryInfo(
        AppropriationCategory.NO_YEAR, "No-Year Funds", "No-Year Appropriation", None,
        "no-year", "gray",
        "Funds available until expended, no time limit",
    ),
})

# Alternate spellings seen in budget documents and legacy records
_ALIASES: Mapping[str, AppropriationCategory] = MappingProxyType({
    "O&M": AppropriationCategory.OM,
    "O_M": AppropriationCategory.OM,
    "MILPER": AppropriationCategory.MILPERS,
    "PROC": AppropriationCategory.PROCUREMENT,
    "RDT&E": AppropriationCategory.RDTE,
    "RDT_E": AppropriationCategory.RDTE,
    "FCH": AppropriationCategory.FAMILY_HOUSING,
    "FH": AppropriationCategory.FAMILY_HOUSING,
    "NOYEAR": AppropriationCategory.NO_YEAR,
    "NO-YEAR": AppropriationCategory.NO_YEAR,
})


def _normalize_code(code: object) -> str:
    if isinstance(code, AppropriationCategory):
        return code.value
    return str(code or "").strip().upper().replace(" ", "_")


def lookup(code: str | AppropriationCategory | None) -> CategoryInfo | None:
    """Category for ``code`` (case-insensitive, aliases accepted), else None."""
    normalized = _normalize_code(code)
    if not normalized:
        return None
    try:
        category = AppropriationCategory(normalized)
    except ValueError:
        category = _ALIASES.get(normalized)
    return CATEGORIES.get(category) if category else None


def list_categories() -> list[CategoryInfo]:
    return list(CATEGORIES.values())


def color_of_money(code: str | AppropriationCategory | None) -> str | None:
    info = lookup(code)
    return info.color if info else None


def validate_appropriation_type(code: str | AppropriationCategory | None) -> ValidationResult:
    """Check that ``code`` names a known category.

    On success ``details["category"]`` holds the CategoryInfo.
    """
    result = ValidationResult("appropriation_type")
    if not code:
        result.add_error("Appropriation type code is required")
        return result
    info = lookup(code)
    if info is None:
        valid = ", ".join(c.value for c in AppropriationCategory)
        result.add_error(f"Invalid appropriation type: {code}. Must be one of: {valid}",
                         sample=code)
        return result
    result.details["category"] = info
    result.mark_check_passed("appropriation_type")
    return result


def availability_years(code: str | AppropriationCategory,
                       sub_type: str | None = None) -> int | None:
    """Years of availability, honoring the procurement subtype; None for no-year.

    Raises:
        KeyError: If ``code`` is not a known category
    """
    info = lookup(code)
    if info is None:
        raise KeyError(code)
    if sub_type and sub_type.upper() in ProcurementSubtype.__members__:
        subtype = ProcurementSubtype[sub_type.upper()]
        if subtype in info.subtype_availability:
            return info.subtype_availability[subtype]
    return info.availability_years


def category_for_account(account: str) -> tuple[AppropriationCategory, str | None] | None:
    """Infer (category, subtype) from a Treasury symbol or account title."""
    classified = classify_account_title(account)
    if classified is None:
        return None
    code, sub_type = classified
    return AppropriationCategory(code), sub_type


# ── Expiration ────────────────────────────────────────────────────────────────

class ExpirationStatus(ValidationResult):
    """Expiration math for one appropriation year.

    ``is_expired`` and ``days_until_expiration`` are only populated when an
    as-of date was supplied.
    """

    detail_fields = ("category", "fiscal_year", "availability_years", "never_expires",
                     "expiration_fy", "expiration_date", "as_of_fy", "is_expired",
                     "days_until_expiration")

    def __init__(self) -> None:
        super().__init__("expiration")
        self.category: AppropriationCategory | None = None
        self.fiscal_year: int | None = None
        self.availability_years: int | None = None
        self.never_expires: bool = False
        self.expiration_fy: int | None = None
        self.expiration_date: datetime | None = None
        self.as_of_fy: int | None = None
        self.is_expired: bool | None = None
        self.days_until_expiration: int | None = None


def calculate_expiration(code: str | AppropriationCategory | None, fiscal_year: int | None,
                         sub_type: str | None = None) -> ExpirationStatus:
    """Expiration fiscal year and date for an appropriation.

    Expiration = FY + availability_years - 1, at the end of that fiscal year.
    """
    status = ExpirationStatus()
    type_check = validate_appropriation_type(code)
    status.merge(type_check)
    if fiscal_year is None:
        status.add_error("Fiscal year is required")
    elif not is_valid_fiscal_year(fiscal_year):
        status.add_error(f"Invalid fiscal year: {fiscal_year}", sample=fiscal_year)
    if not status.is_valid:
        return status

    info: CategoryInfo = type_check.details["category"]
    status.category = info.category
    status.fiscal_year = fiscal_year

    if sub_type and info.category is AppropriationCategory.PROCUREMENT:
        if sub_type.upper() not in ProcurementSubtype.__members__:
            status.add_warning(
                f"Unknown procurement subtype '{sub_type}'; using the base "
                f"{info.availability_years}-year period of availability")
    years = availability_years(info.category, sub_type)
    status.availability_years = years

    if years is None:
        status.never_expires = True
        return status

    status.expiration_fy = fiscal_year + years - 1
    status.expiration_date = fiscal_year_end(status.expiration_fy)
    return status


def is_expired(code: str | AppropriationCategory | None, fiscal_year: int | None,
               as_of: date | datetime, sub_type: str | None = None) -> ExpirationStatus:
    """Whether funds are expired for new obligations as of ``as_of``.

    Funds expire when the as-of fiscal year is later than the expiration
    fiscal year.  ``days_until_expiration`` counts whole days to the end of
    the expiration fiscal year (0 once expired).
    """
    status = calculate_expiration(code, fiscal_year, sub_type)
    if not status.is_valid:
        return status
    status.as_of_fy = fiscal_year_of(as_of)
    if status.never_expires:
        status.is_expired = False
        return status

    status.is_expired = status.as_of_fy > status.expiration_fy
    if status.is_expired:
        status.days_until_expiration = 0
    else:
        delta = status.expiration_date - to_naive_datetime(as_of)
        status.days_until_expiration = math.floor(delta.total_seconds() / 86400)
    logger.debug("Expiration check %s FY%s as of %s: expired=%s",
                 status.category.value, fiscal_year, as_of, status.is_expired)
    return status


def validate_appropriation_with_fiscal_year(code: str | AppropriationCategory | None,
                                            fiscal_year: int | None,
                                            sub_type: str | None = None,
                                            now: date | datetime | None = None) -> ExpirationStatus:
    """Validate a category/fiscal-year pair; warn if the funds have expired.

    Expired funds are still a valid appropriation (they remain available for
    adjustments and liquidation), so expiry is a warning here.
    """
    result = ExpirationStatus()
    if not code:
        result.add_error("Appropriation type code is required")
    if not fiscal_year:
        result.add_error("Fiscal year is required")
    if not result.is_valid:
        return result

    status = is_expired(code, fiscal_year, now or datetime.now(timezone.utc), sub_type)
    if status.is_valid and status.is_expired:
        status.add_warning(
            f"Funds expired at end of {format_fiscal_year(status.expiration_fy)}")
    return status
