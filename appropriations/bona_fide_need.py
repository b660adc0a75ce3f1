"""
Bona Fide Need Validator (31 U.S.C. §1502(a)).

An appropriation is available only for a need arising during its period of
availability.  The need date (or, for contracts, the start of performance)
must fall in the appropriation's fiscal year.  When it does not, the
recognized exceptions are tried in a fixed order and the first match wins:

1. Severable service whose performance period overlaps the appropriation FY
2. Stock / inventory replenishment
3. Lead time: need in FY+1, lead time of at least 12 months, justified
4. Cited multi-year contract authority
5. Cited continuing-resolution authority

Also here: per-fiscal-year apportionment of severable service contracts and
an advisory keyword classifier for service severability.  The classifier is
a heuristic that returns a confidence band; it never gates an obligation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

from appropriations.fiscal_calendar import (
    fiscal_year_end_date,
    fiscal_year_of,
    fiscal_year_start_date,
    fiscal_years_spanned,
    format_fiscal_year,
    overlap_days,
)
from appropriations.models import ContractType, Obligation, PerformancePeriod
from appropriations.statutes import BONA_FIDE_NEED_STATUTE, MULTI_YEAR_CONTRACT_STATUTE
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import format_percent, percent_of
from utils.strings import safe_decimal
from utils.validation import ValidationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractTypeInfo:
    contract_type: ContractType
    name: str
    description: str
    bona_fide_need_rule: str
    cross_fy_allowed: bool
    examples: tuple[str, ...]
    stocking_exception: bool = False
    lead_time_exception: bool = False


CONTRACT_TYPES: Mapping[ContractType, ContractTypeInfo] = MappingProxyType({
    ContractType.SEVERABLE_SERVICE: ContractTypeInfo(
        ContractType.SEVERABLE_SERVICE, "Severable Services",
        "Services that are continuing in nature and can be separated into components",
        "Need arises when services are performed, not when contracted",
        True, ("Janitorial services", "Grounds maintenance", "IT support", "Security services"),
    ),
    ContractType.NON_SEVERABLE_SERVICE: ContractTypeInfo(
        ContractType.NON_SEVERABLE_SERVICE, "Non-Severable Services",
        "Services that constitute a single undertaking",
        "Entire contract must be performed in the fiscal year",
        False, ("Building construction", "System development project", "Single audit",
                "One-time study"),
    ),
    ContractType.SUPPLIES: ContractTypeInfo(
        ContractType.SUPPLIES, "Supplies and Materials", "Tangible items consumed in use",
        "Need arises when supplies are required for use",
        False, ("Office supplies", "Spare parts", "Fuel", "Ammunition"),
        stocking_exception=True,
    ),
    ContractType.EQUIPMENT: ContractTypeInfo(
        ContractType.EQUIPMENT, "Equipment and Capital Assets", "Durable goods and capital items",
        "Need arises when item is required",
        False, ("Vehicles", "Computers", "Machinery", "Weapons systems"),
        lead_time_exception=True,
    ),
})


# ── Exceptions ────────────────────────────────────────────────────────────────

class ExceptionType(str, Enum):
    SEVERABLE_SERVICE = "SEVERABLE_SERVICE"
    STOCK_INVENTORY = "STOCK_INVENTORY"
    LEAD_TIME = "LEAD_TIME"
    MULTIYEAR_AUTHORITY = "MULTIYEAR_AUTHORITY"
    CONTINUING_RESOLUTION = "CONTINUING_RESOLUTION"


@dataclass(frozen=True)
class BonaFideNeedException:
    exception_type: ExceptionType
    justification: str
    reference: str

    def to_dict(self) -> dict:
        return {
            "exception_type": self.exception_type.value,
            "justification": self.justification,
            "reference": self.reference,
        }


def check_exceptions(obligation: Obligation, appropriation_fy: int, need_fy: int | None,
                     thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                     ) -> BonaFideNeedException | None:
    """First applicable bona fide need exception, or None."""
    period = obligation.performance_period
    if obligation.contract_type is ContractType.SEVERABLE_SERVICE and period is not None:
        end = period.end or period.start
        if overlap_days(period.start, end, appropriation_fy) > 0:
            return BonaFideNeedException(
                ExceptionType.SEVERABLE_SERVICE,
                "Severable services contract may cross fiscal year boundaries. The portion "
                "performed in the appropriation FY satisfies bona fide need.",
                "GAO Redbook, Chapter 5, Section B.2",
            )

    if obligation.is_stock_item:
        return BonaFideNeedException(
            ExceptionType.STOCK_INVENTORY,
            "Stock and inventory items needed to maintain normal operating levels may be "
            "ordered in advance. The need is determined by when items will be consumed.",
            "41 Comp. Gen. 739 (1962)",
        )

    months = obligation.lead_time_months
    if (need_fy == appropriation_fy + 1 and months is not None
            and months >= thresholds.min_lead_time_months
            and obligation.lead_time_justification):
        return BonaFideNeedException(
            ExceptionType.LEAD_TIME,
            f"Lead-time exception: {obligation.lead_time_justification}. "
            f"Production requires {months} months.",
            "DoD FMR Volume 3, Chapter 8",
        )

    if obligation.multi_year_authority:
        return BonaFideNeedException(
            ExceptionType.MULTIYEAR_AUTHORITY,
            f"Multi-year contract authority: {obligation.multi_year_authority}",
            MULTI_YEAR_CONTRACT_STATUTE,
        )

    if obligation.continuing_resolution_authority:
        return BonaFideNeedException(
            ExceptionType.CONTINUING_RESOLUTION,
            "Obligation authorized under Continuing Resolution authority",
            obligation.continuing_resolution_authority,
        )

    return None


# ── Core rule ─────────────────────────────────────────────────────────────────

class BonaFideNeedResult(ValidationResult):
    detail_fields = ("appropriation_fy", "need_fy", "need_matches_fy", "exception")

    def __init__(self) -> None:
        super().__init__("bona_fide_need")
        self.appropriation_fy: int | None = None
        self.need_fy: int | None = None
        self.need_matches_fy: bool | None = None
        self.exception: BonaFideNeedException | None = None


def validate_bona_fide_need(obligation: Obligation,
                            thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                            ) -> BonaFideNeedResult:
    """Check that the need arises in the appropriation's fiscal year.

    An applied exception keeps the result valid and is reported as a warning
    so it is visible in the audit trail.
    """
    result = BonaFideNeedResult()
    if not obligation.fiscal_year:
        result.add_error("Fiscal year of appropriation is required")
    need_date = obligation.need_reference_date
    if need_date is None:
        result.add_error(
            "Need date or performance period is required for bona fide need validation")
    if not result.is_valid:
        return result

    appropriation_fy = obligation.fiscal_year
    result.appropriation_fy = appropriation_fy
    result.need_fy = fiscal_year_of(need_date)
    result.need_matches_fy = result.need_fy == appropriation_fy

    if result.need_matches_fy:
        result.mark_check_passed("bona_fide_need")
        return result

    exception = check_exceptions(obligation, appropriation_fy, result.need_fy, thresholds)
    if exception is not None:
        result.exception = exception
        result.add_warning(
            f"Bona fide need exception applied: {exception.exception_type.value}. "
            f"{exception.justification}",
            statute=exception.reference)
        result.mark_check_passed("bona_fide_need")
        logger.debug("Bona fide need exception %s applied to %s",
                     exception.exception_type.value, obligation.id)
        return result

    start = fiscal_year_start_date(appropriation_fy)
    end = fiscal_year_end_date(appropriation_fy)
    fy_label = format_fiscal_year(appropriation_fy)
    result.add_error(
        f"Bona fide need violation: {fy_label} funds cannot be used for need arising in "
        f"{format_fiscal_year(result.need_fy)}. The need must arise during {fy_label} "
        f"({start.isoformat()} - {end.isoformat()}). ({BONA_FIDE_NEED_STATUTE})",
        statute=BONA_FIDE_NEED_STATUTE, sample=need_date)
    logger.warning("Bona fide need violation for %s", obligation.id,
                   extra={"transaction_id": obligation.id, "check": "bona_fide_need",
                          "statute": BONA_FIDE_NEED_STATUTE})
    return result


# ── Severable services ────────────────────────────────────────────────────────

class SeverableContractResult(ValidationResult):
    detail_fields = ("start_fy", "end_fy", "fiscal_year_days", "fiscal_year_percentages",
                     "total_days")

    def __init__(self) -> None:
        super().__init__("severable_services")
        self.start_fy: int | None = None
        self.end_fy: int | None = None
        self.fiscal_year_days: dict[int, int] = {}
        self.fiscal_year_percentages: dict[int, float] = {}
        self.total_days = 0


def validate_severable_services_contract(
        performance_period: PerformancePeriod | None,
        funding_by_fy: Mapping[int, object] | None = None,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> SeverableContractResult:
    """Apportion a severable contract across fiscal years by calendar days.

    Each fiscal year's share is the number of performance days (inclusive)
    falling inside it.  When ``funding_by_fy`` is given, any year whose share
    of funding differs from its share of days by more than the tolerance
    produces a warning.
    """
    result = SeverableContractResult()
    if performance_period is None or performance_period.end is None:
        result.add_error(
            "Performance period with start and end dates is required for severable services")
        return result
    start, end = performance_period.start, performance_period.end
    if end < start:
        result.add_error("Performance period end precedes its start", sample=end)
        return result

    result.start_fy = fiscal_year_of(start)
    result.end_fy = fiscal_year_of(end)
    result.total_days = (end - start).days + 1
    for fy in fiscal_years_spanned(start, end):
        days = overlap_days(start, end, fy)
        if days:
            result.fiscal_year_days[fy] = days
            result.fiscal_year_percentages[fy] = percent_of(days, result.total_days)

    if funding_by_fy:
        amounts = {int(fy): safe_decimal(amount, 0) for fy, amount in funding_by_fy.items()}
        total_funding = sum(amounts.values())
        for fy, amount in amounts.items():
            if not total_funding:
                break
            expected = result.fiscal_year_percentages.get(fy, 0.0)
            actual = percent_of(amount, total_funding)
            if abs(expected - actual) > thresholds.severable_tolerance_pct:
                result.add_warning(
                    f"{format_fiscal_year(fy)} funding ({format_percent(actual, 2)}) does not "
                    f"match service period ({format_percent(expected, 2)}). For severable "
                    f"services, funding should be proportional to services performed.",
                    sample=fy)

    result.mark_check_passed("severable_services")
    return result


# ── Severability classifier ───────────────────────────────────────────────────

SEVERABLE_KEYWORDS = (
    "maintenance", "janitorial", "grounds", "recurring", "continuing", "support", "guard",
    "security", "custodial", "routine", "monthly", "periodic", "ongoing", "daily", "weekly",
)

NON_SEVERABLE_KEYWORDS = (
    "construction", "development", "design", "project", "study", "audit", "assessment",
    "single", "one-time", "complete", "deliver", "produce", "create", "build",
)

# Weight of each contract-shape hint relative to one keyword hit
_SHAPE_WEIGHT = 2


@dataclass(frozen=True)
class SeverabilityAssessment:
    """Advisory classification of a service description.

    Not a legal determination.  ``confidence`` is "high" only when the score
    margin exceeds two; otherwise a manual review is recommended.
    """

    is_severable: bool
    confidence: str
    severable_score: int
    non_severable_score: int
    recommendation: ContractType
    note: str
    matched_keywords: tuple[str, ...] = field(default=())

    @property
    def needs_review(self) -> bool:
        return self.confidence != "high"

    def to_dict(self) -> dict:
        return {
            "is_severable": self.is_severable,
            "confidence": self.confidence,
            "severable_score": self.severable_score,
            "non_severable_score": self.non_severable_score,
            "recommendation": self.recommendation.value,
            "note": self.note,
            "matched_keywords": list(self.matched_keywords),
            "advisory": True,
        }


def determine_service_severability(description: str | None,
                                   has_recurring_payments: bool = False,
                                   has_milestones: bool = False,
                                   has_deliverable: bool = False) -> SeverabilityAssessment:
    text = (description or "").lower()
    severable_hits = [k for k in SEVERABLE_KEYWORDS if k in text]
    non_severable_hits = [k for k in NON_SEVERABLE_KEYWORDS if k in text]

    severable = len(severable_hits) + (_SHAPE_WEIGHT if has_recurring_payments else 0)
    non_severable = (len(non_severable_hits)
                     + (_SHAPE_WEIGHT if has_milestones else 0)
                     + (_SHAPE_WEIGHT if has_deliverable else 0))

    is_severable = severable > non_severable
    confidence = "high" if abs(severable - non_severable) > 2 else "medium"
    note = ("Classification appears clear based on description" if confidence == "high"
            else "Manual review recommended - classification is not clear-cut")
    return SeverabilityAssessment(
        is_severable=is_severable,
        confidence=confidence,
        severable_score=severable,
        non_severable_score=non_severable,
        recommendation=(ContractType.SEVERABLE_SERVICE if is_severable
                        else ContractType.NON_SEVERABLE_SERVICE),
        note=note,
        matched_keywords=tuple(severable_hits + non_severable_hits),
    )


# ── Report ────────────────────────────────────────────────────────────────────

@dataclass
class BonaFideNeedReport:
    total_obligations: int = 0
    compliant: int = 0
    violations: int = 0
    exceptions: int = 0
    exception_types: dict = field(default_factory=dict)
    violation_details: list = field(default_factory=list)

    @property
    def compliance_rate(self) -> float:
        return percent_of(self.compliant, self.total_obligations) or 0.0

    def to_dict(self) -> dict:
        return {
            "total_obligations": self.total_obligations,
            "compliant": self.compliant,
            "violations": self.violations,
            "exceptions": self.exceptions,
            "exception_types": dict(self.exception_types),
            "violation_details": list(self.violation_details),
            "compliance_rate": self.compliance_rate,
        }


def generate_bona_fide_need_report(
        obligations: Iterable[Obligation],
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> BonaFideNeedReport:
    report = BonaFideNeedReport()
    for obligation in obligations:
        report.total_obligations += 1
        validation = validate_bona_fide_need(obligation, thresholds)
        if validation.is_valid:
            report.compliant += 1
            if validation.exception is not None:
                report.exceptions += 1
                key = validation.exception.exception_type.value
                report.exception_types[key] = report.exception_types.get(key, 0) + 1
        else:
            report.violations += 1
            report.violation_details.append({
                "obligation_id": obligation.id,
                "appropriation_fy": validation.appropriation_fy,
                "need_fy": validation.need_fy,
                "errors": validation.errors,
            })
    return report
