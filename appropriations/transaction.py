"""
Transaction Validator — one entry point over every compliance check.

``validate_transaction`` runs each check whose inputs are populated on the
transaction and unions their errors and warnings:

    fiscal_year         transaction.fiscal_year is set
    appropriation_type  transaction.appropriation_type is set
    pta                 an account snapshot is supplied
    bona_fide_need      fiscal year plus a need date or performance period
    anti_deficiency     any ADA input (account and amount, funding source,
                        service flag, appropriation date, apportionment)
    color_of_money      purpose and appropriation type are set

An identical message raised by two checks (the purpose check runs inside
both PTA and the colors-of-money rules) is reported once.  The highest ADA severity
and its reporting routing are surfaced on the result.

Callers must serialize validate-then-commit per account: two obligations
checked against the same stale snapshot can each pass and together exceed
the ceiling.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from appropriations.anti_deficiency import AntiDeficiencyResult, Severity, validate_anti_deficiency_act
from appropriations.bona_fide_need import validate_bona_fide_need
from appropriations.colors_of_money import validate_color_of_money_rules
from appropriations.fiscal_calendar import (
    MAX_FISCAL_YEAR,
    MIN_FISCAL_YEAR,
    current_fiscal_year,
    is_valid_fiscal_year,
)
from appropriations.models import ApportionmentRecord, BudgetAccount, Obligation
from appropriations.pta import validate_pta
from appropriations.registry import validate_appropriation_type
from appropriations.statutes import FISCAL_YEAR_STATUTE, STATUTES
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import ReportFormatter, TableFormatter, format_amount
from utils.validation import ValidationResult

logger = logging.getLogger(__name__)

ENGINE_NAME = "Appropriations Compliance & Execution Engine"
ENGINE_VERSION = "1.0.0"

REGULATIONS = (
    "DoD FMR Volume 2A (Budgeting)",
    "DoD FMR Volume 2B (Justification)",
    "DoD FMR Volume 3 (Execution)",
    "GAO Principles of Appropriations Law",
)

COMPONENTS = (
    "Fiscal Calendar",
    "Appropriation Registry",
    "Purpose Classifier (Colors of Money)",
    "PTA Validator",
    "Bona Fide Need Validator",
    "Anti-Deficiency Act Checker",
    "Multi-Year Funding Calculator",
    "Budget Workflow State Machine",
    "Execution Tracker",
    "Congressional Report Formatter",
    "Transaction Validator",
)


class TransactionResult(ValidationResult):
    """Union of every sub-check run against one transaction."""

    detail_fields = ("transaction_id", "validations", "critical_violations", "severity",
                     "requires_reporting", "reporting_deadline", "report_to",
                     "critical_warning", "timestamp")

    def __init__(self, transaction_id: str | None, timestamp: datetime) -> None:
        super().__init__("transaction")
        self.transaction_id = transaction_id
        self.timestamp = timestamp
        self.validations: dict[str, ValidationResult] = {}

    def include(self, name: str, sub: ValidationResult) -> None:
        """Record a sub-result and fold in messages not already reported."""
        self.validations[name] = sub
        seen = {(i.severity, i.detail) for i in self.issues}
        for issue in sub.issues:
            if (issue.severity, issue.detail) not in seen:
                self.issues.append(issue)
                seen.add((issue.severity, issue.detail))
        for check in sub.passed_checks:
            self.mark_check_passed(check)
        for check in sub.failed_checks:
            self.mark_check_failed(check)

    @property
    def passed(self) -> bool:
        return self.is_valid

    @property
    def anti_deficiency(self) -> AntiDeficiencyResult | None:
        return self.validations.get("anti_deficiency")

    @property
    def critical_violations(self) -> bool:
        ada = self.anti_deficiency
        return bool(ada and ada.has_violation)

    @property
    def severity(self) -> Severity | None:
        ada = self.anti_deficiency
        return ada.severity if ada else None

    @property
    def requires_reporting(self) -> bool:
        ada = self.anti_deficiency
        return ada.requires_reporting if ada else False

    @property
    def reporting_deadline(self) -> str | None:
        ada = self.anti_deficiency
        return ada.reporting_deadline if ada else None

    @property
    def report_to(self) -> tuple[str, ...]:
        ada = self.anti_deficiency
        return ada.report_to if ada else ()

    @property
    def critical_warning(self) -> str | None:
        ada = self.anti_deficiency
        return ada.critical_warning if ada else None


def _validate_fiscal_year(fiscal_year: int, now: datetime) -> ValidationResult:
    result = ValidationResult("fiscal_year")
    result.details["current_fiscal_year"] = current_fiscal_year(now)
    if not is_valid_fiscal_year(fiscal_year):
        result.add_error(f"Invalid fiscal year: {fiscal_year}. Must be between "
                         f"{MIN_FISCAL_YEAR} and {MAX_FISCAL_YEAR}.",
                         statute=FISCAL_YEAR_STATUTE, sample=fiscal_year)
    else:
        result.mark_check_passed("fiscal_year")
    return result


def _has_ada_inputs(transaction: Obligation, account: BudgetAccount | None,
                    apportionment: ApportionmentRecord | None) -> bool:
    return bool((account is not None and transaction.amount)
                or transaction.funding_source is not None
                or transaction.is_service
                or transaction.appropriation_date is not None
                or apportionment is not None)


def validate_transaction(transaction: Obligation, account: BudgetAccount | None = None,
                         apportionment: ApportionmentRecord | None = None,
                         now: datetime | None = None,
                         thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                         ) -> TransactionResult:
    """Run every applicable compliance check against one transaction.

    Args:
        transaction: Proposed obligation
        account: Account snapshot read by the caller (None skips PTA and
            the overobligation check)
        apportionment: Optional SF 132 record for §1517 checks
        now: Evaluation timestamp (defaults to now, UTC)
        thresholds: Policy thresholds

    Returns:
        TransactionResult; ``is_valid`` is False when any check raised an error
    """
    now = now or datetime.now(timezone.utc)
    result = TransactionResult(transaction.id, now)

    if transaction.fiscal_year:
        result.include("fiscal_year", _validate_fiscal_year(transaction.fiscal_year, now))
    if transaction.appropriation_type:
        result.include("appropriation_type",
                       validate_appropriation_type(transaction.appropriation_type))
    if account is not None:
        result.include("pta", validate_pta(transaction, account, thresholds))
    if transaction.fiscal_year and transaction.need_reference_date is not None:
        result.include("bona_fide_need", validate_bona_fide_need(transaction, thresholds))
    if _has_ada_inputs(transaction, account, apportionment):
        result.include("anti_deficiency", validate_anti_deficiency_act(
            transaction, account, apportionment, thresholds))
    if transaction.purpose and transaction.appropriation_type:
        result.include("color_of_money", validate_color_of_money_rules(transaction, thresholds))

    if result.is_valid:
        result.mark_check_passed("transaction")
    logger.info("Transaction %s %s: %d error(s), %d warning(s)", transaction.id,
                "valid" if result.is_valid else "invalid", result.error_count(),
                result.warning_count(),
                extra={"transaction_id": transaction.id, "check": "transaction",
                       "fiscal_year": transaction.fiscal_year,
                       "appropriation": transaction.appropriation_type,
                       "severity": result.severity.value if result.severity else None})
    return result


def module_info() -> dict:
    """Engine name, version, statutes enforced and components."""
    return {
        "name": ENGINE_NAME,
        "version": ENGINE_VERSION,
        "regulations": list(REGULATIONS),
        "statutes": dict(STATUTES),
        "components": list(COMPONENTS),
    }


def render_text_report(result: TransactionResult) -> str:
    """Plain-text rendering of a transaction result for terminals and logs."""
    report = ReportFormatter(f"Transaction {result.transaction_id or '(unnamed)'}")
    report.add_section("Summary", {
        "Result": "VALID" if result.is_valid else "INVALID",
        "Errors": result.error_count(),
        "Warnings": result.warning_count(),
        "Evaluated": result.timestamp.isoformat(),
    })

    table = TableFormatter(["Check", "Result", "Errors", "Warnings"])
    for name, sub in result.validations.items():
        table.add_row([name, "pass" if sub.is_valid else "FAIL",
                       sub.error_count(), sub.warning_count()])
    report.add_section("Checks", table)

    if result.errors:
        report.add_section("Errors", result.errors)
    if result.warnings:
        report.add_section("Warnings", result.warnings)

    ada = result.anti_deficiency
    if ada is not None and ada.severity is not None:
        routing = {
            "Severity": ada.severity.value,
            "Reporting required": "yes" if ada.requires_reporting else "no",
            "Deadline": ada.reporting_deadline,
            "Report to": ", ".join(ada.report_to) or "-",
        }
        if ada.analysis is not None:
            routing["Remaining after obligation"] = format_amount(ada.analysis.remaining_after)
        report.add_section("Anti-Deficiency Act", routing)
        if ada.critical_warning:
            report.add_section(ada.critical_warning, "", level=2)
    return report.to_string()
