"""
Purpose Classifier — "colors of money" rules.

31 U.S.C. §1301(a): appropriations shall be applied only to the objects for
which they were made.  Each category carries a closed list of authorized
purpose tags; this module validates a purpose against that list, recommends a
category for a purpose and dollar amount, and detects commingling of
categories on a single obligation or activity.

Purpose tags are compared after normalization (lowercase, whitespace to
underscores), so "Minor Equipment" matches ``minor_equipment``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from appropriations.models import Obligation
from appropriations.registry import AppropriationCategory, lookup, validate_appropriation_type
from appropriations.statutes import PURPOSE_STATUTE
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import format_amount
from utils.strings import normalize_purpose
from utils.validation import ValidationResult

logger = logging.getLogger(__name__)

AUTHORIZED_PURPOSES: Mapping[AppropriationCategory, tuple[str, ...]] = MappingProxyType({
    AppropriationCategory.OM: (
        "personnel_civilian", "operations", "maintenance", "supplies", "services",
        "transportation", "training_operating", "minor_equipment", "contracted_services",
        "utilities", "base_operations",
    ),
    AppropriationCategory.MILPERS: (
        "military_pay", "allowances", "subsistence", "permanent_change_of_station",
        "incentive_pay", "special_pay", "retired_pay_accrual",
    ),
    AppropriationCategory.PROCUREMENT: (
        "equipment_acquisition", "weapons_systems", "vehicles", "aircraft", "ships",
        "ammunition", "missiles", "major_equipment", "spare_parts_initial", "modifications",
    ),
    AppropriationCategory.RDTE: (
        "research", "development", "testing", "evaluation", "prototypes", "studies",
        "scientific_investigation", "technology_demonstration",
    ),
    AppropriationCategory.MILCON: (
        "construction", "facility_acquisition", "major_renovation", "infrastructure",
        "utilities_infrastructure", "planning_design",
    ),
    AppropriationCategory.FAMILY_HOUSING: (
        "family_housing_construction", "family_housing_maintenance",
        "family_housing_operations", "housing_utilities",
    ),
    AppropriationCategory.NO_YEAR: (
        "working_capital", "revolving_funds", "special_purpose",
    ),
})


def authorized_purposes(code: str | AppropriationCategory | None) -> tuple[str, ...]:
    """Authorized purpose tags for a category; empty for unknown codes."""
    info = lookup(code)
    if info is None:
        return ()
    return AUTHORIZED_PURPOSES.get(info.category, ())


# ── Purpose validation ────────────────────────────────────────────────────────

class PurposeResult(ValidationResult):
    detail_fields = ("category", "purpose", "authorized_purposes")

    def __init__(self) -> None:
        super().__init__("purpose")
        self.category: AppropriationCategory | None = None
        self.purpose: str | None = None
        self.authorized_purposes: tuple[str, ...] = ()


def validate_purpose(code: str | AppropriationCategory | None,
                     purpose: str | None) -> PurposeResult:
    """Check that ``purpose`` is authorized for the appropriation category."""
    result = PurposeResult()
    if not code:
        result.add_error("Appropriation type code is required")
        return result
    if not purpose:
        result.add_error("Purpose is required")
        return result

    type_check = validate_appropriation_type(code)
    if not type_check.is_valid:
        result.merge(type_check)
        return result

    info = type_check.details["category"]
    allowed = AUTHORIZED_PURPOSES[info.category]
    normalized = normalize_purpose(purpose)
    result.category = info.category
    result.purpose = normalized
    result.authorized_purposes = allowed

    if normalized not in allowed:
        result.add_error(
            f"Purpose '{purpose}' is not authorized for {info.name} ({info.category.value}). "
            f"Authorized purposes: {', '.join(allowed)}",
            statute=PURPOSE_STATUTE, sample=purpose)
        return result

    result.mark_check_passed("purpose")
    return result


# ── Recommendation ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Recommendation:
    category: AppropriationCategory
    name: str
    reason: str
    confidence: str = "high"

    def to_dict(self) -> dict:
        return {
            "code": self.category.value,
            "name": self.name,
            "reason": self.reason,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class RecommendationSet:
    """Ranked, de-duplicated category recommendations for a purpose."""

    purpose: str
    recommendations: tuple[Recommendation, ...] = ()
    thresholds_applied: Mapping[str, str] = field(default_factory=dict)

    @property
    def primary(self) -> Recommendation | None:
        return self.recommendations[0] if self.recommendations else None

    def to_dict(self) -> dict:
        return {
            "purpose": self.purpose,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "primary_recommendation": self.primary.to_dict() if self.primary else None,
            "thresholds_applied": dict(self.thresholds_applied),
        }


def _named(category: AppropriationCategory, reason: str) -> Recommendation:
    return Recommendation(category, lookup(category).name, reason)


def recommend(purpose: str | None, amount=None,
              thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> RecommendationSet:
    """Recommend appropriation categories for a purpose and dollar amount.

    Categories whose authorized list contains the purpose come first, in
    catalog order, followed by the dollar-threshold rules:

    - an equipment purpose under the minor-equipment threshold -> O&M
    - an equipment purpose at or above it -> PROCUREMENT
    - a construction purpose at or above the MILCON threshold -> MILCON

    A category appears at most once, at its first (highest) rank.

    Args:
        purpose: Purpose tag or free text
        amount: Dollar amount; threshold rules are skipped when None
        thresholds: Policy thresholds

    Returns:
        RecommendationSet with the ranked recommendations
    """
    normalized = normalize_purpose(purpose)
    candidates: list[Recommendation] = []

    for category, purposes in AUTHORIZED_PURPOSES.items():
        if normalized and normalized in purposes:
            info = lookup(category)
            candidates.append(_named(
                category, f"Purpose '{purpose}' is authorized for {info.name}"))

    minor = thresholds.minor_equipment_threshold
    milcon = thresholds.milcon_threshold
    if amount is not None and "equipment" in normalized:
        if amount < minor:
            candidates.append(_named(
                AppropriationCategory.OM,
                f"Equipment under {format_amount(minor)} threshold should use O&M"))
        else:
            candidates.append(_named(
                AppropriationCategory.PROCUREMENT,
                f"Equipment at or above {format_amount(minor)} threshold should use Procurement"))

    if amount is not None and "construction" in normalized and amount >= milcon:
        candidates.append(_named(
            AppropriationCategory.MILCON,
            f"Construction over {format_amount(milcon)} threshold requires MILCON"))

    seen: set[AppropriationCategory] = set()
    ranked = []
    for rec in candidates:
        if rec.category not in seen:
            seen.add(rec.category)
            ranked.append(rec)

    return RecommendationSet(
        purpose=normalized,
        recommendations=tuple(ranked),
        thresholds_applied=MappingProxyType({
            "minor_equipment": str(minor),
            "milcon": str(milcon),
        }),
    )


# ── Commingling ───────────────────────────────────────────────────────────────

class CommingleResult(ValidationResult):
    detail_fields = ("groups_analyzed",)

    def __init__(self) -> None:
        super().__init__("commingling")
        self.groups_analyzed = 0


def _group_key(txn: Obligation) -> str:
    return txn.obligation_id or txn.activity_id or "ungrouped"


def validate_no_commingling(transactions: Iterable[Obligation]) -> CommingleResult:
    """Detect mixed appropriations within a single obligation or activity.

    Transactions are grouped by ``obligation_id``, else ``activity_id``,
    else into one "ungrouped" bucket.  A group that mixes categories is an
    error.  A group that mixes fiscal years of one category is a warning
    unless one of its lines carries an incremental-funding flag or a
    multi-year authority citation.
    """
    result = CommingleResult()
    transactions = list(transactions or ())
    if not transactions:
        result.add_warning("No transactions to validate")
        return result

    groups: dict[str, list[Obligation]] = {}
    for txn in transactions:
        groups.setdefault(_group_key(txn), []).append(txn)
    result.groups_analyzed = len(groups)

    for key, group in groups.items():
        types = list(dict.fromkeys(t.appropriation_type for t in group))
        if len(types) > 1:
            labels = ", ".join(str(t) for t in types)
            result.add_error(
                f"Commingling detected in {key}: Multiple appropriation types ({labels}) "
                f"used for single obligation/activity. This violates {PURPOSE_STATUTE}.",
                statute=PURPOSE_STATUTE, sample=key)
            continue

        years = set(t.fiscal_year for t in group)
        authorized = any(t.incremental_funding or t.multi_year_authority for t in group)
        if len(years) > 1 and not authorized:
            result.add_warning(
                f"Multiple fiscal years of {types[0]} detected in {key}. "
                f"Ensure this is authorized (e.g., incrementally funded contract).",
                sample=key)

    if result.is_valid:
        result.mark_check_passed("commingling")
    else:
        logger.warning("Commingling detected in %d group(s)", len(result.errors),
                       extra={"check": "commingling", "statute": PURPOSE_STATUTE})
    return result


# ── Category changes ──────────────────────────────────────────────────────────

def validate_appropriation_change(from_code: str | None, to_code: str | None,
                                  justification: str | None = None) -> ValidationResult:
    """Check a proposed change of appropriation category.

    A change always needs new authority (deobligate, then obligate the new
    funds) and a written justification.
    """
    result = ValidationResult("appropriation_change")
    from_info, to_info = lookup(from_code), lookup(to_code)
    if from_info is not None and from_info is to_info:
        result.add_warning("No change in appropriation type")
        result.details["change_required"] = False
        result.mark_check_passed("appropriation_change")
        return result

    if from_info is None:
        result.add_error(f"Invalid source appropriation type: {from_code}", sample=from_code)
    if to_info is None:
        result.add_error(f"Invalid target appropriation type: {to_code}", sample=to_code)
    if not result.is_valid:
        return result

    result.add_warning(
        "Changing appropriation type generally requires new appropriation authority. "
        "Original funds must be deobligated and new funds obligated with proper authority.")
    if not justification or not justification.strip():
        result.add_error("Justification required for appropriation type change",
                         statute=PURPOSE_STATUTE)

    result.details.update({
        "change_required": True,
        "requires_new_authority": True,
        "requires_justification": True,
        "from_type": from_info.name,
        "to_type": to_info.name,
    })
    if result.is_valid:
        result.mark_check_passed("appropriation_change")
    return result


# ── Combined rules ────────────────────────────────────────────────────────────

class ColorOfMoneyResult(ValidationResult):
    detail_fields = ("purpose_result", "recommendation")

    def __init__(self) -> None:
        super().__init__("color_of_money")
        self.purpose_result: PurposeResult | None = None
        self.recommendation: RecommendationSet | None = None


def validate_color_of_money_rules(
        obligation: Obligation,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> ColorOfMoneyResult:
    """Purpose check plus a warning when the recommended category differs."""
    result = ColorOfMoneyResult()

    if obligation.purpose and obligation.appropriation_type:
        result.purpose_result = validate_purpose(obligation.appropriation_type,
                                                 obligation.purpose)
        result.merge(result.purpose_result)

    if obligation.purpose and obligation.amount:
        rec = recommend(obligation.purpose, obligation.amount, thresholds)
        result.recommendation = rec
        current = lookup(obligation.appropriation_type)
        if rec.primary and obligation.appropriation_type and rec.primary.category is not (
                current.category if current else None):
            result.add_warning(
                f"Recommended appropriation type is {rec.primary.name}, "
                f"but {obligation.appropriation_type} is being used. Verify this is correct.")

    return result
