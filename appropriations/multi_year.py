"""
Multi-Year Funding Calculator.

Full funding policy (DoD FMR Volume 2A, Chapter 1), incremental funding
schedules, multi-year procurement contracts (10 U.S.C. §2306b), advance
procurement and per-program multi-year funding analysis.

Dollar amounts are Decimals.  Schedules are allocated in whole dollars,
rounded half-up, with any rounding remainder absorbed by the final fiscal
year so the schedule always sums to the total exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from appropriations.fiscal_calendar import (
    fiscal_year_end_date,
    fiscal_year_of,
    fiscal_year_start_date,
    fiscal_years_spanned,
    format_fiscal_year,
    overlap_days,
)
from appropriations.models import ContractFunding, ContractType, FundingEntry
from appropriations.registry import calculate_expiration
from appropriations.statutes import FULL_FUNDING_POLICY, MULTI_YEAR_CONTRACT_STATUTE
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import format_amount, format_percent, percent_of
from utils.strings import safe_decimal
from utils.validation import ValidationResult, is_positive_amount

logger = logging.getLogger(__name__)

_WHOLE_DOLLAR = Decimal(1)

MULTI_YEAR_REQUIRED_CONDITIONS = (
    "Substantial savings compared to annual contracts",
    "Realistic cost estimates",
    "Stable requirement for at least 5 years",
    "Stable funding",
    "Statutory authority for multi-year contracting",
)


def _whole_dollars(value: Decimal) -> Decimal:
    return value.quantize(_WHOLE_DOLLAR, rounding=ROUND_HALF_UP)


# ── Full funding ──────────────────────────────────────────────────────────────

class FullFundingResult(ValidationResult):
    detail_fields = ("is_fully_funded", "funding_ratio", "shortfall", "requires_authority")

    def __init__(self) -> None:
        super().__init__("full_funding")
        self.is_fully_funded: bool | None = None
        self.funding_ratio: float | None = None
        self.shortfall: Decimal | None = None
        self.requires_authority = False


def validate_full_funding(contract: ContractFunding) -> FullFundingResult:
    """Initial funding must cover total cost unless incremental authority is cited."""
    result = FullFundingResult()
    if not is_positive_amount(contract.total_cost):
        result.add_error("Total contract cost is required for full funding validation")
        return result
    if not is_positive_amount(contract.initial_funding):
        result.add_error("Initial funding amount is required")
        return result

    ratio = percent_of(contract.initial_funding, contract.total_cost)
    result.funding_ratio = ratio
    result.is_fully_funded = contract.initial_funding >= contract.total_cost
    if result.is_fully_funded:
        result.mark_check_passed("full_funding")
        return result

    result.shortfall = contract.total_cost - contract.initial_funding
    if not contract.incremental_funding_authority:
        result.requires_authority = True
        result.add_error(
            f"Full Funding Policy violation: Contract total cost is "
            f"{format_amount(contract.total_cost)} but only "
            f"{format_amount(contract.initial_funding)} ({format_percent(ratio, 2)}) is funded. "
            f"DoD FMR Volume 2A requires full funding at obligation unless specific "
            f"authority exists.",
            statute=FULL_FUNDING_POLICY)
        return result

    result.add_warning(
        f"Incremental funding authority cited: {contract.incremental_funding_authority}. "
        f"Verify this authority permits {format_percent(ratio, 2)} initial funding.")
    result.mark_check_passed("full_funding")
    return result


# ── Incremental schedule ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScheduleEntry:
    fiscal_year: int
    start_date: date
    end_date: date
    days: int
    percentage: float
    amount: Decimal
    appropriation_type: str = "PROCUREMENT"

    def to_dict(self) -> dict:
        return {
            "fiscal_year": self.fiscal_year,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "days": self.days,
            "percentage": self.percentage,
            "amount": str(self.amount),
            "appropriation_type": self.appropriation_type,
        }


class FundingScheduleResult(ValidationResult):
    detail_fields = ("schedule", "total_cost", "total_allocated", "start_fy", "end_fy",
                     "fiscal_years")

    def __init__(self, check_name: str = "incremental_schedule") -> None:
        super().__init__(check_name)
        self.schedule: list[ScheduleEntry] = []
        self.total_cost: Decimal | None = None
        self.start_fy: int | None = None
        self.end_fy: int | None = None

    @property
    def total_allocated(self) -> Decimal:
        return sum((e.amount for e in self.schedule), Decimal(0))

    @property
    def fiscal_years(self) -> int:
        return len(self.schedule)


def _allocate(total: Decimal, weights: Sequence[int]) -> tuple[list[Decimal], Decimal]:
    """Split ``total`` by integer weights; returns amounts and the remainder fixed up."""
    weight_sum = sum(weights)
    amounts = [_whole_dollars(total * w / weight_sum) for w in weights]
    difference = total - sum(amounts)
    if amounts:
        amounts[-1] += difference
    return amounts, difference


def calculate_incremental_funding_schedule(contract: ContractFunding) -> FundingScheduleResult:
    """Spread total cost over the fiscal years of the performance period.

    Each year is weighted by the calendar days (inclusive) of the period that
    fall inside it.
    """
    result = FundingScheduleResult()
    if not is_positive_amount(contract.total_cost):
        result.add_error("Total cost is required")
    period = contract.performance_period
    if period is None or period.end is None:
        result.add_error("Performance period with start and end dates is required")
    elif period.end < period.start:
        result.add_error("Performance period end precedes its start", sample=period.end)
    if not result.is_valid:
        return result

    total = contract.total_cost
    result.total_cost = total
    result.start_fy = fiscal_year_of(period.start)
    result.end_fy = fiscal_year_of(period.end)
    total_days = (period.end - period.start).days + 1

    years, days = [], []
    for fy in fiscal_years_spanned(period.start, period.end):
        fy_days = overlap_days(period.start, period.end, fy)
        if fy_days:
            years.append(fy)
            days.append(fy_days)

    amounts, difference = _allocate(total, days)
    for fy, fy_days, amount in zip(years, days, amounts):
        result.schedule.append(ScheduleEntry(
            fiscal_year=fy,
            start_date=max(period.start, fiscal_year_start_date(fy)),
            end_date=min(period.end, fiscal_year_end_date(fy)),
            days=fy_days,
            percentage=percent_of(fy_days, total_days),
            amount=amount,
            appropriation_type=contract.appropriation_type,
        ))

    if difference:
        result.add_warning(
            f"Rounding adjustment of {format_amount(difference)} applied to final year")
    result.mark_check_passed("incremental_schedule")
    return result


# ── Multi-year contracts ──────────────────────────────────────────────────────

class MultiYearContractResult(ValidationResult):
    detail_fields = ("statute", "required_conditions", "contract_years", "savings_percentage")

    def __init__(self) -> None:
        super().__init__("multi_year_contract")
        self.statute = MULTI_YEAR_CONTRACT_STATUTE
        self.required_conditions = MULTI_YEAR_REQUIRED_CONDITIONS
        self.contract_years: int | None = None
        self.savings_percentage: float | None = None


def validate_multi_year_contract(
        contract: ContractFunding,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> MultiYearContractResult:
    result = MultiYearContractResult()
    result.contract_years = contract.contract_years

    if not contract.multi_year_authority:
        result.add_error(
            f"Multi-year procurement contracts require specific statutory authority per "
            f"{MULTI_YEAR_CONTRACT_STATUTE}", statute=MULTI_YEAR_CONTRACT_STATUTE)

    if not is_positive_amount(contract.estimated_savings):
        result.add_warning("Multi-year contracts should demonstrate substantial savings. "
                           "Document expected savings.")
    elif is_positive_amount(contract.total_cost):
        pct = percent_of(contract.estimated_savings, contract.total_cost)
        result.savings_percentage = pct
        if pct < thresholds.multi_year_min_savings_pct:
            result.add_warning(
                f"Estimated savings of {format_percent(pct, 2)} may not justify multi-year "
                f"contract. Typically requires {thresholds.multi_year_min_savings_pct:g}% or "
                f"greater savings.")

    if not contract.contract_years or contract.contract_years < 2:
        result.add_error("Multi-year contract must span at least 2 fiscal years",
                         statute=MULTI_YEAR_CONTRACT_STATUTE)

    if not contract.cancellation_ceiling:
        result.add_warning(
            f"Cancellation ceiling should be established per {MULTI_YEAR_CONTRACT_STATUTE}(g) "
            f"to limit government liability")

    if result.is_valid:
        result.mark_check_passed("multi_year_contract")
    return result


# ── Advance procurement ───────────────────────────────────────────────────────

class AdvanceProcurementResult(ValidationResult):
    detail_fields = ("procurement_fy", "end_item_fy", "component_cost", "lead_time_months",
                     "advance_years", "justification", "appropriation_type")

    def __init__(self) -> None:
        super().__init__("advance_procurement")
        self.procurement_fy: int | None = None
        self.end_item_fy: int | None = None
        self.component_cost: Decimal | None = None
        self.lead_time_months: int | None = None
        self.advance_years: int | None = None
        self.justification: str | None = None
        self.appropriation_type = "PROCUREMENT"


def calculate_advance_procurement(end_item: str | None, end_item_fy: int | None,
                                  component_cost, lead_time_months: int | None,
                                  as_of: date | datetime | None = None,
                                  thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                                  ) -> AdvanceProcurementResult:
    """Fiscal year to fund long-lead components of a future end item.

    Components are funded in the fiscal year before the end item.
    """
    result = AdvanceProcurementResult()
    if not end_item or not end_item_fy:
        result.add_error("End item and delivery fiscal year required for advance procurement")
        return result
    if not is_positive_amount(component_cost):
        result.add_error("Component cost is required")
        return result
    if not lead_time_months:
        result.add_error("Lead time in months is required")
        return result

    current_fy = fiscal_year_of(as_of or datetime.now(timezone.utc))
    result.end_item_fy = end_item_fy
    result.procurement_fy = end_item_fy - 1
    result.component_cost = component_cost
    result.lead_time_months = lead_time_months
    result.advance_years = end_item_fy - current_fy
    result.justification = (f"Component required {lead_time_months} months before end item "
                            f"delivery in {format_fiscal_year(end_item_fy)}")

    if result.advance_years > thresholds.max_advance_procurement_years:
        result.add_warning(
            f"Advance procurement {result.advance_years} years ahead is unusual. "
            f"Verify lead time justification.")
    if lead_time_months < thresholds.min_lead_time_months:
        result.add_warning(
            f"Lead time of {lead_time_months} months may not justify advance procurement. "
            f"Typically requires {thresholds.min_lead_time_months}+ months lead time.")

    result.mark_check_passed("advance_procurement")
    return result


# ── Program analysis ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FiscalYearFunding:
    fiscal_year: int
    appropriation_type: str
    appropriated: Decimal
    obligated: Decimal
    expended: Decimal
    available: Decimal
    expiration_fy: int | None
    is_expired: bool
    obligation_rate: float
    expenditure_rate: float

    def to_dict(self) -> dict:
        return {
            "fiscal_year": self.fiscal_year,
            "appropriation_type": self.appropriation_type,
            "appropriated": str(self.appropriated),
            "obligated": str(self.obligated),
            "expended": str(self.expended),
            "available": str(self.available),
            "expiration_fy": self.expiration_fy,
            "is_expired": self.is_expired,
            "obligation_rate": self.obligation_rate,
            "expenditure_rate": self.expenditure_rate,
        }


class MultiYearAnalysis(ValidationResult):
    detail_fields = ("current_fy", "total_program_cost", "total_obligated", "total_expended",
                     "overall_obligation_rate", "overall_expenditure_rate",
                     "remaining_to_budget", "by_fiscal_year", "expiring_funds",
                     "available_funds")

    def __init__(self) -> None:
        super().__init__("multi_year_analysis")
        self.current_fy: int | None = None
        self.total_program_cost = Decimal(0)
        self.total_obligated = Decimal(0)
        self.total_expended = Decimal(0)
        self.remaining_to_budget = Decimal(0)
        self.by_fiscal_year: list[FiscalYearFunding] = []
        self.expiring_funds: list[dict] = []
        self.available_funds: list[dict] = []

    @property
    def overall_obligation_rate(self) -> float:
        return percent_of(self.total_obligated, self.total_program_cost) or 0.0

    @property
    def overall_expenditure_rate(self) -> float:
        return percent_of(self.total_expended, self.total_obligated) or 0.0


def analyze_multi_year_funding(entries: Iterable[FundingEntry] | None,
                               total_program_cost=None,
                               as_of: date | datetime | None = None,
                               thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                               ) -> MultiYearAnalysis:
    """Totals, per-year rates and expiring balances for a program's funding lines.

    Funds expiring at the end of the current fiscal year that are still
    unobligated produce a use-it-or-lose-it warning.
    """
    result = MultiYearAnalysis()
    if entries is None:
        result.add_error("Funding profile by fiscal year is required")
        return result
    entries = list(entries)
    current_fy = fiscal_year_of(as_of or datetime.now(timezone.utc))
    result.current_fy = current_fy

    for entry in entries:
        result.total_program_cost += entry.amount
        result.total_obligated += entry.obligated
        result.total_expended += entry.expended

        expiration = calculate_expiration(entry.appropriation_type, entry.fiscal_year,
                                          entry.sub_type)
        if not expiration.is_valid:
            result.merge(expiration, prefix=format_fiscal_year(entry.fiscal_year))
            continue
        expiration_fy = expiration.expiration_fy
        expired = not expiration.never_expires and current_fy > expiration_fy
        available = entry.amount - entry.obligated

        result.by_fiscal_year.append(FiscalYearFunding(
            fiscal_year=entry.fiscal_year,
            appropriation_type=entry.appropriation_type,
            appropriated=entry.amount,
            obligated=entry.obligated,
            expended=entry.expended,
            available=available,
            expiration_fy=expiration_fy,
            is_expired=expired,
            obligation_rate=percent_of(entry.obligated, entry.amount) or 0.0,
            expenditure_rate=percent_of(entry.expended, entry.obligated) or 0.0,
        ))
        if expired or available <= 0:
            continue
        if expiration_fy == current_fy:
            result.expiring_funds.append({
                "fiscal_year": entry.fiscal_year,
                "appropriation_type": entry.appropriation_type,
                "amount": available,
                "expiration_date": expiration.expiration_date,
            })
        result.available_funds.append({
            "fiscal_year": entry.fiscal_year,
            "appropriation_type": entry.appropriation_type,
            "amount": available,
            "expiration_fy": expiration_fy,
        })

    if total_program_cost is not None:
        result.remaining_to_budget = total_program_cost - result.total_program_cost

    if result.expiring_funds:
        expiring = sum((f["amount"] for f in result.expiring_funds), Decimal(0))
        result.add_warning(
            f"{format_amount(expiring)} in funds expire at end of current "
            f"{format_fiscal_year(current_fy)}. Ensure these funds are obligated or will be lost.")
    if (len(entries) > 2 and result.total_program_cost > 0
            and result.overall_obligation_rate < thresholds.low_obligation_rate_pct):
        result.add_warning(
            f"Low obligation rate of {format_percent(result.overall_obligation_rate, 2)} "
            f"across multi-year program. Review execution strategy.")

    if result.is_valid:
        result.mark_check_passed("multi_year_analysis")
    return result


# ── Phasing ───────────────────────────────────────────────────────────────────

PHASING_PROFILES = ("level", "front_loaded", "back_loaded")


@dataclass(frozen=True)
class FundingApproach:
    approach: str
    description: str
    advantages: tuple[str, ...]
    disadvantages: tuple[str, ...]
    confidence: str
    requires_authority: bool = False

    def to_dict(self) -> dict:
        return {
            "approach": self.approach,
            "description": self.description,
            "advantages": list(self.advantages),
            "disadvantages": list(self.disadvantages),
            "confidence": self.confidence,
            "requires_authority": self.requires_authority,
        }


FULL_FUNDING = FundingApproach(
    "FULL_FUNDING", "Fund entire requirement upfront (DoD FMR standard policy)",
    ("Simplified execution", "Lower risk", "Policy compliant"),
    ("Large upfront commitment", "Less flexibility"), "high")

INCREMENTAL_FUNDING = FundingApproach(
    "INCREMENTAL_FUNDING", "Fund severable services incrementally by fiscal year",
    ("Matches funding to performance", "Spreads budget impact"),
    ("Requires close monitoring", "Continuation risk"), "high", requires_authority=True)

MULTIYEAR_CONTRACT = FundingApproach(
    "MULTIYEAR_CONTRACT", "Structure as multi-year procurement contract",
    ("Potential cost savings", "Vendor stability", "Reduced admin"),
    ("Less flexibility", "Cancellation costs"), "medium", requires_authority=True)

# Total cost above which a multi-year contract is worth considering
_MULTIYEAR_CONSIDERATION_COST = Decimal(10_000_000)


class FundingPhasing(FundingScheduleResult):
    detail_fields = FundingScheduleResult.detail_fields + ("profile", "approaches")

    def __init__(self) -> None:
        super().__init__("funding_phasing")
        self.profile: str | None = None
        self.approaches: list[FundingApproach] = []

    @property
    def primary_approach(self) -> FundingApproach | None:
        return self.approaches[0] if self.approaches else None


def _profile_weights(profile: str, years: int) -> list[int]:
    if profile == "front_loaded":
        return list(range(years, 0, -1))
    if profile == "back_loaded":
        return list(range(1, years + 1))
    return [1] * years


def recommend_funding_phasing(total_cost, start_fy: int, years: int, profile: str = "level",
                              contract_type: ContractType | None = None,
                              urgency: str = "normal") -> FundingPhasing:
    """Phase a requirement across fiscal years and list candidate funding approaches.

    Profiles: ``level`` (equal shares), ``front_loaded`` (weights n..1) and
    ``back_loaded`` (weights 1..n).  Full funding is always the first
    approach; incremental funding is offered for severable services spanning
    more than one year, and a multi-year contract for low-urgency
    requirements over $10M lasting three or more years.
    """
    result = FundingPhasing()
    if not is_positive_amount(total_cost):
        result.add_error("Total cost must be greater than zero", sample=total_cost)
    if not years or years < 1:
        result.add_error("Phasing requires at least one fiscal year", sample=years)
    if profile not in PHASING_PROFILES:
        result.add_error(f"Unknown phasing profile: {profile}. "
                         f"Must be one of: {', '.join(PHASING_PROFILES)}", sample=profile)
    if not result.is_valid:
        return result

    total = safe_decimal(total_cost)
    weights = _profile_weights(profile, years)
    weight_sum = sum(weights)
    amounts, _ = _allocate(total, weights)
    result.profile = profile
    result.total_cost = total
    result.start_fy = start_fy
    result.end_fy = start_fy + years - 1
    for offset, (weight, amount) in enumerate(zip(weights, amounts)):
        fy = start_fy + offset
        result.schedule.append(ScheduleEntry(
            fiscal_year=fy,
            start_date=fiscal_year_start_date(fy),
            end_date=fiscal_year_end_date(fy),
            days=(fiscal_year_end_date(fy) - fiscal_year_start_date(fy)).days + 1,
            percentage=round(weight * 100 / weight_sum, 2),
            amount=amount,
        ))

    result.approaches.append(FULL_FUNDING)
    if years > 1 and contract_type is ContractType.SEVERABLE_SERVICE:
        result.approaches.append(INCREMENTAL_FUNDING)
    if total > _MULTIYEAR_CONSIDERATION_COST and urgency == "low" and years >= 3:
        result.approaches.append(MULTIYEAR_CONTRACT)

    result.mark_check_passed("funding_phasing")
    return result
