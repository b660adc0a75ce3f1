"""
Execution Tracker — obligation and expenditure performance (DoD FMR Volume 3).

Funds move through six stages: APPORTIONED (SF-132 release), ALLOTTED,
COMMITTED, OBLIGATED, EXPENDED and CLOSED.  Everything here works from a
``BudgetAccount`` snapshot and an as-of date supplied by the caller:

- ``calculate_execution_metrics``: amounts, rates, daily velocity and
  straight-line end-of-year projections
- ``track_obligation_performance``: status against the expected pace
- ``track_expenditure_performance``: unliquidated obligations and burn rate
- ``calculate_fund_availability``: net balance after every reservation
- ``generate_execution_report``: portfolio roll-up across accounts
- ``analyze_execution_trends``: month-over-month deltas from snapshots

Rates are percentages in points.  A rate whose denominator is zero is 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Sequence

from appropriations.fiscal_calendar import (
    current_fiscal_year,
    days_elapsed,
    days_in_fiscal_year,
    days_remaining,
)
from appropriations.models import BudgetAccount, MonthlyExecution
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import format_amount, format_percent, percent_of
from utils.validation import ValidationResult

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_DOLLAR = Decimal(1)
_TOP_N = 5


class ExecutionStage(str, Enum):
    APPORTIONED = "APPORTIONED"
    ALLOTTED = "ALLOTTED"
    COMMITTED = "COMMITTED"
    OBLIGATED = "OBLIGATED"
    EXPENDED = "EXPENDED"
    CLOSED = "CLOSED"

    @property
    def order(self) -> int:
        return list(ExecutionStage).index(self) + 1

    @property
    def description(self) -> str:
        return _STAGE_DESCRIPTIONS[self]


_STAGE_DESCRIPTIONS = {
    ExecutionStage.APPORTIONED: "Funds released by OMB via SF-132",
    ExecutionStage.ALLOTTED: "Funds distributed to operating units",
    ExecutionStage.COMMITTED: "Administrative reservation of funds",
    ExecutionStage.OBLIGATED: "Legal liability incurred",
    ExecutionStage.EXPENDED: "Payment disbursed",
    ExecutionStage.CLOSED: "Final accounting complete",
}


class ExecutionStatus(str, Enum):
    ON_TRACK = "ON_TRACK"
    BEHIND = "BEHIND"
    SIGNIFICANTLY_BEHIND = "SIGNIFICANTLY_BEHIND"
    AHEAD = "AHEAD"


class ExpenditureStatus(str, Enum):
    NORMAL = "NORMAL"
    HIGH_UNLIQUIDATED = "HIGH_UNLIQUIDATED"


def _rate(part: Decimal, whole: Decimal) -> float:
    return percent_of(part, whole) if whole > 0 else 0.0


def _as_moment(as_of: date | datetime | None) -> datetime:
    if as_of is None:
        return datetime.now(timezone.utc)
    if isinstance(as_of, datetime):
        return as_of
    return datetime(as_of.year, as_of.month, as_of.day, tzinfo=timezone.utc)


# ── Metrics ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExecutionSnapshot:
    """Point-in-time execution metrics for one account."""
    account_id: str | None
    fiscal_year: int
    as_of: datetime

    # amounts
    appropriated: Decimal
    apportioned: Decimal | None
    allotted: Decimal | None
    committed: Decimal
    obligated: Decimal
    expended: Decimal
    available: Decimal
    unliquidated: Decimal

    # rates
    obligation_rate: float
    expenditure_rate: float
    commitment_rate: float
    availability_rate: float

    # velocity
    days_elapsed: int
    days_remaining: int
    days_in_year: int
    daily_obligation_rate: Decimal
    daily_expenditure_rate: Decimal

    # projections
    projected_obligations: Decimal
    projected_expenditures: Decimal

    @property
    def projected_unobligated(self) -> Decimal:
        return self.appropriated - self.projected_obligations

    @property
    def projected_unliquidated(self) -> Decimal:
        return self.projected_obligations - self.projected_expenditures

    @property
    def percent_of_year_elapsed(self) -> float:
        return round(self.days_elapsed / self.days_in_year * 100, 2)

    def to_dict(self) -> dict:
        def money(value):
            return None if value is None else str(value)
        return {
            "account_id": self.account_id,
            "fiscal_year": self.fiscal_year,
            "as_of": self.as_of.isoformat(),
            "amounts": {
                "appropriated": money(self.appropriated),
                "apportioned": money(self.apportioned),
                "allotted": money(self.allotted),
                "committed": money(self.committed),
                "obligated": money(self.obligated),
                "expended": money(self.expended),
                "available": money(self.available),
                "unliquidated": money(self.unliquidated),
            },
            "rates": {
                "obligation_rate": self.obligation_rate,
                "expenditure_rate": self.expenditure_rate,
                "commitment_rate": self.commitment_rate,
                "availability_rate": self.availability_rate,
            },
            "velocity": {
                "daily_obligation_rate": money(self.daily_obligation_rate),
                "daily_expenditure_rate": money(self.daily_expenditure_rate),
                "days_elapsed": self.days_elapsed,
                "days_remaining": self.days_remaining,
            },
            "projections": {
                "projected_obligations": money(self.projected_obligations),
                "projected_expenditures": money(self.projected_expenditures),
                "projected_unobligated": money(self.projected_unobligated),
                "projected_unliquidated": money(self.projected_unliquidated),
            },
        }


def _elapsed_and_remaining(fiscal_year: int, moment: datetime) -> tuple[int, int]:
    """Days elapsed/remaining in ``fiscal_year`` as seen from ``moment``.

    A past fiscal year is fully elapsed; a future one has not started.
    """
    current = current_fiscal_year(moment)
    total = days_in_fiscal_year(fiscal_year)
    if fiscal_year < current:
        return total, 0
    if fiscal_year > current:
        return 0, total
    return days_elapsed(moment), days_remaining(moment)


def calculate_execution_metrics(account: BudgetAccount,
                                as_of: date | datetime | None = None) -> ExecutionSnapshot:
    """Compute amounts, rates, velocity and projections for one account.

    Daily rates divide by days elapsed in the account's fiscal year;
    projections add the daily rate times days remaining, so a closed year
    projects its current totals.
    """
    moment = _as_moment(as_of)
    fiscal_year = account.fiscal_year or current_fiscal_year(moment)
    elapsed, remaining = _elapsed_and_remaining(fiscal_year, moment)

    appropriated = account.appropriated
    obligated = account.obligated
    expended = account.expended
    committed = account.committed
    available = appropriated - obligated - committed

    if elapsed > 0:
        daily_obligation = obligated / elapsed
        daily_expenditure = expended / elapsed
    else:
        daily_obligation = daily_expenditure = Decimal(0)
    projected_obligations = obligated + daily_obligation * remaining
    projected_expenditures = expended + daily_expenditure * remaining

    return ExecutionSnapshot(
        account_id=account.id or account.name,
        fiscal_year=fiscal_year,
        as_of=moment,
        appropriated=appropriated,
        apportioned=account.apportioned,
        allotted=account.allotted,
        committed=committed,
        obligated=obligated,
        expended=expended,
        available=available,
        unliquidated=obligated - expended,
        obligation_rate=_rate(obligated, appropriated),
        expenditure_rate=_rate(expended, obligated),
        commitment_rate=_rate(committed, appropriated),
        availability_rate=_rate(available, appropriated),
        days_elapsed=elapsed,
        days_remaining=remaining,
        days_in_year=days_in_fiscal_year(fiscal_year),
        daily_obligation_rate=daily_obligation.quantize(_CENT, rounding=ROUND_HALF_UP),
        daily_expenditure_rate=daily_expenditure.quantize(_CENT, rounding=ROUND_HALF_UP),
        projected_obligations=projected_obligations.quantize(_DOLLAR, rounding=ROUND_HALF_UP),
        projected_expenditures=projected_expenditures.quantize(_DOLLAR, rounding=ROUND_HALF_UP),
    )


# ── Obligation performance ────────────────────────────────────────────────────

@dataclass
class ObligationPerformance:
    status: ExecutionStatus
    metrics: ExecutionSnapshot
    expected_rate: float
    actual_rate: float
    variance: float
    concerns: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def possible_year_end_dump(self) -> bool:
        return self.status is ExecutionStatus.AHEAD

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "expected_rate": self.expected_rate,
            "actual_rate": self.actual_rate,
            "variance": self.variance,
            "percent_of_year_elapsed": self.metrics.percent_of_year_elapsed,
            "concerns": list(self.concerns),
            "recommendations": list(self.recommendations),
            "metrics": self.metrics.to_dict(),
        }


def track_obligation_performance(
        account: BudgetAccount, target_rate: float | None = None,
        as_of: date | datetime | None = None,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> ObligationPerformance:
    """Classify the obligation pace of one account.

    The expected rate is ``target_rate`` when given, otherwise the share of
    the fiscal year elapsed.  Variance is actual minus expected, in points.

    Args:
        account: Account snapshot
        target_rate: Explicit expected obligation rate in percent
        as_of: Evaluation date (defaults to now, UTC)
        thresholds: Variance bands and windows

    Returns:
        ObligationPerformance with status, concerns and recommendations
    """
    metrics = calculate_execution_metrics(account, as_of)
    actual = metrics.obligation_rate
    expected = (float(target_rate) if target_rate is not None
                else metrics.percent_of_year_elapsed)
    variance = round(actual - expected, 2)
    perf = ObligationPerformance(ExecutionStatus.ON_TRACK, metrics, round(expected, 2),
                                 actual, variance)

    if variance < thresholds.significantly_behind_pct:
        perf.status = ExecutionStatus.SIGNIFICANTLY_BEHIND
        perf.concerns.append(f"Obligation rate ({format_percent(actual, 2)}) is significantly "
                             f"behind expected rate ({format_percent(expected, 2)})")
        perf.recommendations.append("Review and expedite pending obligations")
        perf.recommendations.append("Identify and resolve execution barriers")
    elif variance < thresholds.behind_pct:
        perf.status = ExecutionStatus.BEHIND
        perf.concerns.append(f"Obligation rate is {format_percent(abs(variance), 2)} below target")
        perf.recommendations.append("Accelerate obligation activities")
    elif variance > thresholds.ahead_pct and metrics.days_remaining < thresholds.ahead_window_days:
        perf.status = ExecutionStatus.AHEAD
        perf.concerns.append("Rapid obligation rate - ensure funds are not being rushed "
                             "at year-end")
        perf.recommendations.append("Verify all obligations comply with bona fide need rule")

    if metrics.days_remaining < thresholds.year_end_window_days and metrics.available > 0:
        needed = metrics.available / max(metrics.days_remaining, 1)
        current = metrics.daily_obligation_rate
        if current <= 0:
            perf.concerns.append(
                f"Need to obligate {format_amount(metrics.available)} in "
                f"{metrics.days_remaining} days with no obligations recorded to date.")
            perf.recommendations.append("Prioritize high-value obligations immediately")
        elif needed > current * 2:
            increase = needed / current * 100
            perf.concerns.append(
                f"Need to obligate {format_amount(metrics.available)} in "
                f"{metrics.days_remaining} days. Requires {increase:.0f}% increase in daily rate.")
            perf.recommendations.append("Prioritize high-value obligations immediately")

    if perf.status is not ExecutionStatus.ON_TRACK:
        logger.info("Account %s obligation pace %s (variance %.2f)", metrics.account_id,
                    perf.status.value, variance,
                    extra={"check": "obligation_performance",
                           "fiscal_year": metrics.fiscal_year})
    return perf


# ── Expenditure performance ───────────────────────────────────────────────────

@dataclass
class ExpenditurePerformance:
    status: ExpenditureStatus
    metrics: ExecutionSnapshot
    unliquidated_amount: Decimal
    unliquidated_percentage: float
    monthly_burn_rate: Decimal
    concerns: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "unliquidated_amount": str(self.unliquidated_amount),
            "unliquidated_percentage": self.unliquidated_percentage,
            "monthly_burn_rate": str(self.monthly_burn_rate),
            "concerns": list(self.concerns),
            "recommendations": list(self.recommendations),
            "metrics": self.metrics.to_dict(),
        }


def track_expenditure_performance(
        account: BudgetAccount, as_of: date | datetime | None = None,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> ExpenditurePerformance:
    """Flag large unliquidated balances and a lagging expenditure rate."""
    metrics = calculate_execution_metrics(account, as_of)
    unliquidated_pct = _rate(metrics.unliquidated, metrics.obligated)
    perf = ExpenditurePerformance(
        status=ExpenditureStatus.NORMAL,
        metrics=metrics,
        unliquidated_amount=metrics.unliquidated,
        unliquidated_percentage=unliquidated_pct,
        monthly_burn_rate=metrics.daily_expenditure_rate * 30,
    )

    if metrics.obligated > 0 and unliquidated_pct > thresholds.high_unliquidated_pct:
        perf.status = ExpenditureStatus.HIGH_UNLIQUIDATED
        perf.concerns.append(f"High unliquidated obligations: {format_amount(metrics.unliquidated)} "
                             f"({format_percent(unliquidated_pct, 2)} of obligations)")
        perf.recommendations.append("Review aged unliquidated obligations")
        perf.recommendations.append("Verify payment schedules and deliverables")

    if (metrics.expenditure_rate < thresholds.low_expenditure_rate_pct
            and metrics.obligation_rate > thresholds.high_obligation_rate_pct):
        perf.concerns.append(
            f"Low expenditure rate ({format_percent(metrics.expenditure_rate, 2)}) relative "
            f"to obligation rate ({format_percent(metrics.obligation_rate, 2)}). Large "
            f"unliquidated obligation backlog building.")
        perf.recommendations.append("Accelerate payment processing")
    return perf


# ── Fund availability ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FundAvailability:
    as_of: datetime
    gross_available: Decimal
    ceiling: Decimal
    ceiling_type: str
    obligated: Decimal
    committed: Decimal
    pre_commitments: Decimal
    net_available: Decimal

    @property
    def total_reserved(self) -> Decimal:
        return self.obligated + self.committed + self.pre_commitments

    @property
    def percent_available(self) -> float:
        return _rate(self.net_available, self.ceiling)

    @property
    def can_obligate(self) -> bool:
        return self.net_available > 0

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "gross_available": str(self.gross_available),
            "ceiling": str(self.ceiling),
            "ceiling_type": self.ceiling_type,
            "reserved": {
                "obligated": str(self.obligated),
                "committed": str(self.committed),
                "pre_commitments": str(self.pre_commitments),
                "total": str(self.total_reserved),
            },
            "net_available": str(self.net_available),
            "percent_available": self.percent_available,
            "can_obligate": self.can_obligate,
        }


def calculate_fund_availability(account: BudgetAccount,
                                as_of: date | datetime | None = None) -> FundAvailability:
    """Net balance under the tightest of appropriation, apportionment and allotment."""
    ceiling, ceiling_type = account.controlling_limit()
    net = ceiling - account.obligated - account.committed - account.pre_commitments
    return FundAvailability(
        as_of=_as_moment(as_of),
        gross_available=account.appropriated,
        ceiling=ceiling,
        ceiling_type=ceiling_type,
        obligated=account.obligated,
        committed=account.committed,
        pre_commitments=account.pre_commitments,
        net_available=net,
    )


# ── Portfolio report ──────────────────────────────────────────────────────────

@dataclass
class ExecutionReport:
    fiscal_year: int
    generated_at: datetime
    total_accounts: int = 0
    total_appropriated: Decimal = Decimal(0)
    total_obligated: Decimal = Decimal(0)
    total_expended: Decimal = Decimal(0)
    total_available: Decimal = Decimal(0)
    total_unliquidated: Decimal = Decimal(0)
    by_status: dict = field(default_factory=lambda: {s.value: 0 for s in ExecutionStatus})
    concerns: list = field(default_factory=list)
    top_performers: list = field(default_factory=list)
    bottom_performers: list = field(default_factory=list)

    @property
    def average_obligation_rate(self) -> float:
        return _rate(self.total_obligated, self.total_appropriated)

    @property
    def average_expenditure_rate(self) -> float:
        return _rate(self.total_expended, self.total_obligated)

    def to_dict(self) -> dict:
        return {
            "fiscal_year": self.fiscal_year,
            "generated_at": self.generated_at.isoformat(),
            "summary": {
                "total_accounts": self.total_accounts,
                "total_appropriated": str(self.total_appropriated),
                "total_obligated": str(self.total_obligated),
                "total_expended": str(self.total_expended),
                "total_available": str(self.total_available),
                "total_unliquidated": str(self.total_unliquidated),
                "average_obligation_rate": self.average_obligation_rate,
                "average_expenditure_rate": self.average_expenditure_rate,
            },
            "by_status": dict(self.by_status),
            "concerns": list(self.concerns),
            "top_performers": list(self.top_performers),
            "bottom_performers": list(self.bottom_performers),
        }


def generate_execution_report(
        accounts: Iterable[BudgetAccount], as_of: date | datetime | None = None,
        thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> ExecutionReport:
    """Roll up obligation performance across accounts.

    Performers are ranked by obligation rate; the top and bottom five are
    kept (the bottom list is ordered worst first).
    """
    moment = _as_moment(as_of)
    report = ExecutionReport(fiscal_year=current_fiscal_year(moment), generated_at=moment)
    performances = []

    for account in accounts:
        perf = track_obligation_performance(account, as_of=moment, thresholds=thresholds)
        m = perf.metrics
        report.total_accounts += 1
        report.total_appropriated += m.appropriated
        report.total_obligated += m.obligated
        report.total_expended += m.expended
        report.total_available += m.available
        report.total_unliquidated += m.unliquidated
        report.by_status[perf.status.value] += 1

        label = account.name or account.id
        if perf.concerns:
            report.concerns.append({"account": label, "concerns": list(perf.concerns)})
        performances.append({
            "account": label,
            "obligation_rate": m.obligation_rate,
            "expenditure_rate": m.expenditure_rate,
            "status": perf.status.value,
        })

    performances.sort(key=lambda p: p["obligation_rate"], reverse=True)
    report.top_performers = performances[:_TOP_N]
    report.bottom_performers = list(reversed(performances[-_TOP_N:]))
    return report


# ── Trends ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MonthlyChange:
    month: str
    change: Decimal
    percent_change: float

    def to_dict(self) -> dict:
        return {"month": self.month, "change": str(self.change),
                "percent_change": self.percent_change}


class TrendAnalysis(ValidationResult):
    """Month-over-month execution deltas; invalid with fewer than two snapshots."""

    detail_fields = ("obligation_trend", "expenditure_trend", "monthly_obligation_velocity",
                     "monthly_expenditure_velocity", "accelerating", "data_points")

    def __init__(self) -> None:
        super().__init__("execution_trends")
        self.obligation_trend: list[MonthlyChange] = []
        self.expenditure_trend: list[MonthlyChange] = []
        self.monthly_obligation_velocity: Decimal | None = None
        self.monthly_expenditure_velocity: Decimal | None = None
        self.accelerating: bool | None = None
        self.data_points = 0

    @property
    def error(self) -> str | None:
        return self.errors[0] if self.errors else None


def _changes(snapshots: Sequence[MonthlyExecution], attr: str) -> list[MonthlyChange]:
    changes = []
    for previous, current in zip(snapshots, snapshots[1:]):
        before, after = getattr(previous, attr), getattr(current, attr)
        delta = after - before
        changes.append(MonthlyChange(current.month, delta, _rate(delta, before)))
    return changes


def analyze_execution_trends(snapshots: Sequence[MonthlyExecution] | None) -> TrendAnalysis:
    """Deltas between consecutive cumulative snapshots, oldest first.

    ``accelerating`` is True when the latest month's obligations grew by more
    than the average monthly velocity.
    """
    result = TrendAnalysis()
    snapshots = list(snapshots or ())
    result.data_points = len(snapshots)
    if len(snapshots) < 2:
        result.add_error("Insufficient data for trend analysis (minimum 2 months required)")
        return result

    result.obligation_trend = _changes(snapshots, "obligated")
    result.expenditure_trend = _changes(snapshots, "expended")
    months = len(result.obligation_trend)
    result.monthly_obligation_velocity = (
        sum((c.change for c in result.obligation_trend), Decimal(0)) / months
    ).quantize(_CENT, rounding=ROUND_HALF_UP)
    result.monthly_expenditure_velocity = (
        sum((c.change for c in result.expenditure_trend), Decimal(0)) / months
    ).quantize(_CENT, rounding=ROUND_HALF_UP)
    result.accelerating = result.obligation_trend[-1].change > result.monthly_obligation_velocity

    if result.accelerating:
        result.add_info(f"Obligations accelerated in {result.obligation_trend[-1].month}")
    result.mark_check_passed("execution_trends")
    return result
