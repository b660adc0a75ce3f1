"""
PTA Validator — Purpose, Time and Amount restrictions (31 U.S.C. §1301).

Three independent sub-checks are run for every obligation and all three
results are kept, so the caller sees every problem in one pass:

- Purpose: the purpose is authorized for the category, is not prohibited by
  an attached restriction, and is documented by a justification.
- Time: the funds are not expired as of the obligation date, and an attached
  need date falls in the appropriation's fiscal year.
- Amount: the obligation fits the account's available balance.

``validate_pta`` is valid only when all three sub-checks are valid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from appropriations.colors_of_money import PurposeResult, validate_purpose
from appropriations.fiscal_calendar import fiscal_year_of, format_fiscal_year
from appropriations.models import BudgetAccount, Obligation
from appropriations.registry import is_expired
from appropriations.statutes import (
    BONA_FIDE_NEED_STATUTE,
    OVEROBLIGATION_STATUTE,
    PTA_STATUTE,
    PURPOSE_STATUTE,
)
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import format_amount, format_percent, percent_of
from utils.strings import has_min_length, normalize_purpose
from utils.validation import ValidationResult, is_positive_amount

logger = logging.getLogger(__name__)


# ── Purpose ───────────────────────────────────────────────────────────────────

class PurposeRestrictionResult(ValidationResult):
    detail_fields = ("purpose_validation",)

    def __init__(self) -> None:
        super().__init__("pta_purpose")
        self.purpose_validation: PurposeResult | None = None


def validate_purpose_restriction(
        obligation: Obligation,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> PurposeRestrictionResult:
    result = PurposeRestrictionResult()
    if not obligation.appropriation_type:
        result.add_error("Appropriation type is required for purpose validation")
    if not obligation.purpose:
        result.add_error("Purpose description is required")
    if not result.is_valid:
        return result

    result.purpose_validation = validate_purpose(obligation.appropriation_type,
                                                 obligation.purpose)
    result.merge(result.purpose_validation)

    purpose = normalize_purpose(obligation.purpose)
    for restriction in obligation.restrictions:
        prohibited = {normalize_purpose(p) for p in restriction.prohibited}
        required = [normalize_purpose(p) for p in restriction.required]
        if purpose in prohibited:
            result.add_error(
                f"Purpose '{obligation.purpose}' is specifically prohibited by: "
                f"{restriction.reference}",
                statute=PURPOSE_STATUTE, sample=obligation.purpose)
        if required and purpose not in required:
            result.add_warning(
                f"Purpose should be one of: {', '.join(restriction.required)} "
                f"per {restriction.reference}")

    if not has_min_length(obligation.justification, thresholds.min_justification_length):
        result.add_warning("Insufficient justification for purpose. "
                           "Provide detailed explanation for audit trail.")

    if result.is_valid:
        result.mark_check_passed("pta_purpose")
    return result


# ── Time ──────────────────────────────────────────────────────────────────────

class TimeRestrictionResult(ValidationResult):
    detail_fields = ("expiration_fy", "expiration_date", "days_until_expiration",
                     "is_expired", "need_fy")

    def __init__(self) -> None:
        super().__init__("pta_time")
        self.expiration_fy = None
        self.expiration_date = None
        self.days_until_expiration = None
        self.is_expired = None
        self.need_fy = None


def validate_time_restriction(
        obligation: Obligation,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> TimeRestrictionResult:
    result = TimeRestrictionResult()
    if not obligation.appropriation_type:
        result.add_error("Appropriation type is required for time validation")
    if not obligation.fiscal_year:
        result.add_error("Fiscal year is required for time validation")
    if obligation.obligation_date is None:
        result.add_error("Obligation date is required")
    if not result.is_valid:
        return result

    status = is_expired(obligation.appropriation_type, obligation.fiscal_year,
                        obligation.obligation_date, obligation.sub_type)
    if not status.is_valid:
        result.merge(status)
        return result
    for warning in status.warnings:
        result.add_warning(warning)

    result.expiration_fy = status.expiration_fy
    result.expiration_date = status.expiration_date
    result.days_until_expiration = status.days_until_expiration
    result.is_expired = status.is_expired
    label = f"{obligation.appropriation_type} {format_fiscal_year(obligation.fiscal_year)}"

    if status.is_expired:
        result.add_error(
            f"Cannot obligate expired funds. {label} expired on "
            f"{status.expiration_date.date().isoformat()}. "
            f"This violates the time restriction of appropriations.",
            sample=obligation.obligation_date)
    elif (status.days_until_expiration is not None
          and status.days_until_expiration <= thresholds.near_expiration_days):
        result.add_warning(
            f"Funds expire in {status.days_until_expiration} days. Ensure obligation is "
            f"completed before {status.expiration_date.date().isoformat()}.")

    if obligation.need_date is not None:
        result.need_fy = fiscal_year_of(obligation.need_date)
        if result.need_fy != obligation.fiscal_year:
            result.add_error(
                f"Bona fide need mismatch: Obligation uses "
                f"{format_fiscal_year(obligation.fiscal_year)} funds but need arises in "
                f"{format_fiscal_year(result.need_fy)}. This violates the bona fide need rule.",
                statute=BONA_FIDE_NEED_STATUTE, sample=obligation.need_date)

    if result.is_valid:
        result.mark_check_passed("pta_time")
    return result


# ── Amount ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BudgetAnalysis:
    appropriated: Decimal
    obligated: Decimal
    committed: Decimal
    available: Decimal
    obligation_amount: Decimal
    remaining_after_obligation: Decimal
    percentage_used: float | None
    would_exceed: bool

    def to_dict(self) -> dict:
        return {
            "appropriated": str(self.appropriated),
            "obligated": str(self.obligated),
            "committed": str(self.committed),
            "available": str(self.available),
            "obligation_amount": str(self.obligation_amount),
            "remaining_after_obligation": str(self.remaining_after_obligation),
            "percentage_used": self.percentage_used,
            "would_exceed": self.would_exceed,
        }


class AmountRestrictionResult(ValidationResult):
    detail_fields = ("budget_analysis",)

    def __init__(self) -> None:
        super().__init__("pta_amount")
        self.budget_analysis: BudgetAnalysis | None = None


def validate_amount_restriction(
        obligation: Obligation, account: BudgetAccount | None,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> AmountRestrictionResult:
    """Check the obligation against the account's available balance.

    ``available`` is the account's explicit override when present, otherwise
    appropriated - obligated - committed.  Proposing exactly the available
    balance is allowed; one dollar more is not.
    """
    result = AmountRestrictionResult()
    if not is_positive_amount(obligation.amount):
        result.add_error("Obligation amount must be greater than zero",
                         sample=obligation.amount)
    if account is None:
        result.add_error("Budget status is required for amount validation")
    else:
        for message in account.balance_errors():
            result.add_error(message)
    if not result.is_valid:
        return result

    amount = obligation.amount
    available = account.available_balance()
    remaining = available - amount
    used = percent_of(amount, available) if available > 0 else None
    result.budget_analysis = BudgetAnalysis(
        appropriated=account.appropriated,
        obligated=account.obligated,
        committed=account.committed,
        available=available,
        obligation_amount=amount,
        remaining_after_obligation=remaining,
        percentage_used=used,
        would_exceed=remaining < 0,
    )

    if remaining < 0:
        result.add_error(
            f"Insufficient funds: Obligation of {format_amount(amount)} exceeds available "
            f"balance of {format_amount(available)}. This would violate the "
            f"Anti-Deficiency Act (31 U.S.C. § 1341).",
            statute=OVEROBLIGATION_STATUTE, sample=amount)
        logger.warning("Obligation %s exceeds available balance by %s", obligation.id,
                       format_amount(-remaining),
                       extra={"transaction_id": obligation.id, "check": "pta_amount"})
    elif used is not None and used > thresholds.high_consumption_pct:
        result.add_warning(
            f"This obligation will use {format_percent(used)} of remaining available funds. "
            f"Only {format_amount(remaining)} will remain.")

    if account.committed > 0 and available < account.committed + amount:
        result.add_warning(
            f"Existing commitments of {format_amount(account.committed)} may not be "
            f"fully funded after this obligation.")

    if result.is_valid:
        result.mark_check_passed("pta_amount")
    return result


# ── Combined ──────────────────────────────────────────────────────────────────

class PTAResult(ValidationResult):
    """Union of the purpose, time and amount sub-results."""

    detail_fields = ("purpose", "time", "amount", "summary", "reference")

    def __init__(self) -> None:
        super().__init__("pta")
        self.purpose: PurposeRestrictionResult | None = None
        self.time: TimeRestrictionResult | None = None
        self.amount: AmountRestrictionResult | None = None
        self.reference = PTA_STATUTE

    @property
    def summary(self) -> dict:
        return {
            "purpose_valid": self.purpose.is_valid,
            "time_valid": self.time.is_valid,
            "amount_valid": self.amount.is_valid,
            "total_errors": self.error_count(),
            "total_warnings": self.warning_count(),
        }


def validate_pta(obligation: Obligation, account: BudgetAccount | None,
                 thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> PTAResult:
    """Run all three PTA sub-checks and combine them."""
    result = PTAResult()
    result.purpose = validate_purpose_restriction(obligation, thresholds)
    result.time = validate_time_restriction(obligation, thresholds)
    result.amount = validate_amount_restriction(obligation, account, thresholds)
    for sub in (result.purpose, result.time, result.amount):
        result.merge(sub)
    if result.is_valid:
        result.mark_check_passed("pta")
    logger.debug("PTA %s: %d error(s), %d warning(s)", obligation.id,
                 result.error_count(), result.warning_count(),
                 extra={"transaction_id": obligation.id, "check": "pta"})
    return result


# ── Compliance report ─────────────────────────────────────────────────────────

@dataclass
class PTAComplianceReport:
    total_obligations: int = 0
    compliant: int = 0
    non_compliant: int = 0
    with_warnings: int = 0
    by_restriction: dict = field(default_factory=lambda: {
        name: {"violations": 0, "warnings": 0} for name in ("purpose", "time", "amount")})
    violations: list = field(default_factory=list)

    @property
    def compliance_rate(self) -> float:
        return percent_of(self.compliant, self.total_obligations) or 0.0

    def to_dict(self) -> dict:
        return {
            "total_obligations": self.total_obligations,
            "compliant": self.compliant,
            "non_compliant": self.non_compliant,
            "with_warnings": self.with_warnings,
            "by_restriction": self.by_restriction,
            "violations": self.violations,
            "compliance_rate": self.compliance_rate,
        }


def generate_pta_compliance_report(
        obligations: Iterable[Obligation], account: BudgetAccount | None,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> PTAComplianceReport:
    """Validate each obligation against the same account snapshot and tally results."""
    report = PTAComplianceReport()
    for obligation in obligations:
        report.total_obligations += 1
        validation = validate_pta(obligation, account, thresholds)
        if validation.is_valid:
            report.compliant += 1
        else:
            report.non_compliant += 1
            report.violations.append({
                "obligation_id": obligation.id,
                "errors": validation.errors,
                "warnings": validation.warnings,
            })
        if validation.warnings:
            report.with_warnings += 1

        for name in ("purpose", "time", "amount"):
            sub: ValidationResult = getattr(validation, name)
            if not sub.is_valid:
                report.by_restriction[name]["violations"] += 1
            if sub.warnings:
                report.by_restriction[name]["warnings"] += 1
    return report
