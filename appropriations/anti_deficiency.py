"""
Anti-Deficiency Act Checker (31 U.S.C. §§1341, 1342, 1517, 1532).

Five independent checks, each with its own severity:

- Overobligation, §1341(a)(1)(A): obligated + committed + proposed must not
  exceed the tightest of appropriation, apportionment and allotment.
- Augmentation, §1532: outside funding sources need cited authority.
- Voluntary services, §1342: uncompensated services only in emergencies.
- Advance obligation, §1341(a)(1)(B): nothing before the appropriation exists.
- Apportionment, §1517: inside the apportioned period and not a
  footnote-prohibited activity.

``validate_anti_deficiency_act`` runs the checks whose inputs are populated
and reports the highest severity found with its reporting routing.
Violations are returned, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from appropriations.models import (
    AUGMENTING_SOURCES,
    ApportionmentRecord,
    BudgetAccount,
    Obligation,
)
from appropriations.statutes import (
    ADVANCE_OBLIGATION_STATUTE,
    APPORTIONMENT_STATUTE,
    AUGMENTATION_STATUTE,
    OVEROBLIGATION_STATUTE,
    VOLUNTARY_SERVICES_STATUTE,
)
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.formatting import format_amount, format_percent, percent_of
from utils.strings import normalize_purpose
from utils.validation import ValidationResult, is_positive_amount

logger = logging.getLogger(__name__)

CRITICAL_WARNING = (
    "ANTI-DEFICIENCY ACT VIOLATIONS ARE CRIMINAL OFFENSES. "
    "IMMEDIATELY HALT TRANSACTION AND REPORT TO APPROPRIATE AUTHORITIES."
)

REMEDIAL_ACTIONS = (
    "Immediately halt the transaction",
    "Notify agency head and CFO",
    "Report to OMB and Congress if required",
    "Conduct investigation",
    "Implement corrective actions",
    "Document all actions taken",
)


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}


@dataclass(frozen=True)
class SeverityRouting:
    """Mandatory reporting attached to a severity tier."""

    severity: Severity
    description: str
    requires_reporting: bool
    reporting_deadline: str
    report_to: tuple[str, ...]


SEVERITY_ROUTING: Mapping[Severity, SeverityRouting] = MappingProxyType({
    Severity.CRITICAL: SeverityRouting(
        Severity.CRITICAL, "Direct violation of appropriation limit - criminal offense",
        True, "Immediately", ("OMB", "Congress", "GAO", "Agency Head")),
    Severity.HIGH: SeverityRouting(
        Severity.HIGH, "Imminent risk of violation - immediate action required",
        True, "Within 24 hours", ("Agency CFO", "Comptroller")),
    Severity.MEDIUM: SeverityRouting(
        Severity.MEDIUM, "Potential risk of violation - monitoring required",
        False, "Monitor", ("Budget Officer",)),
    Severity.LOW: SeverityRouting(
        Severity.LOW, "Administrative concern - no immediate violation risk",
        False, "N/A", ()),
})


class ViolationType(str, Enum):
    OVEROBLIGATION = "OVEROBLIGATION"
    AUGMENTATION = "AUGMENTATION"
    VOLUNTARY_SERVICE = "VOLUNTARY_SERVICE"
    ADVANCE_OBLIGATION = "ADVANCE_OBLIGATION"
    APPORTIONMENT_PERIOD = "APPORTIONMENT_PERIOD"
    APPORTIONMENT_RESTRICTION = "APPORTIONMENT_RESTRICTION"


_ADA_PENALTY = ("Administrative discipline including suspension or removal (31 U.S.C. § 1349); "
                "if knowing and willful, a fine of up to $5,000 and/or imprisonment "
                "for up to 2 years (31 U.S.C. § 1350)")

VIOLATION_CATALOG: Mapping[ViolationType, dict] = MappingProxyType({
    ViolationType.OVEROBLIGATION: {
        "statute": OVEROBLIGATION_STATUTE,
        "description": "Obligation or expenditure exceeding the amount available",
        "penalty": _ADA_PENALTY,
    },
    ViolationType.AUGMENTATION: {
        "statute": AUGMENTATION_STATUTE,
        "description": "Supplementing an appropriation from outside sources without authority",
        "penalty": "Funds must be deposited to the Treasury as miscellaneous receipts",
    },
    ViolationType.VOLUNTARY_SERVICE: {
        "statute": VOLUNTARY_SERVICES_STATUTE,
        "description": "Accepting voluntary services outside an emergency",
        "penalty": _ADA_PENALTY,
    },
    ViolationType.ADVANCE_OBLIGATION: {
        "statute": ADVANCE_OBLIGATION_STATUTE,
        "description": "Obligation or payment before an appropriation is made",
        "penalty": _ADA_PENALTY,
    },
    ViolationType.APPORTIONMENT_PERIOD: {
        "statute": APPORTIONMENT_STATUTE,
        "description": "Obligation outside the apportioned period",
        "penalty": _ADA_PENALTY,
    },
    ViolationType.APPORTIONMENT_RESTRICTION: {
        "statute": APPORTIONMENT_STATUTE,
        "description": "Obligation for an activity prohibited by an apportionment footnote",
        "penalty": _ADA_PENALTY,
    },
})


class AdaResult(ValidationResult):
    """ValidationResult carrying an ADA severity and its reporting routing."""

    detail_fields = ("severity", "violation", "statute", "requires_reporting",
                     "reporting_deadline", "report_to", "analysis", "critical_warning")

    def __init__(self, check_name: str = "anti_deficiency", statute: str | None = None) -> None:
        super().__init__(check_name)
        self.severity: Severity | None = None
        self.violation: ViolationType | None = None
        self.statute = statute
        self.analysis = None

    def raise_severity(self, severity: Severity | None) -> None:
        """Keep the highest severity seen."""
        if severity is not None and (self.severity is None or severity.rank > self.severity.rank):
            self.severity = severity

    def add_violation(self, violation: ViolationType, severity: Severity, detail: str) -> None:
        statute = VIOLATION_CATALOG[violation]["statute"]
        self.add_error(detail, statute=statute)
        if self.violation is None:
            self.violation = violation
        self.raise_severity(severity)

    @property
    def has_violation(self) -> bool:
        return not self.is_valid

    @property
    def routing(self) -> SeverityRouting | None:
        return SEVERITY_ROUTING[self.severity] if self.severity else None

    @property
    def requires_reporting(self) -> bool:
        return self.routing.requires_reporting if self.routing else False

    @property
    def reporting_deadline(self) -> str | None:
        return self.routing.reporting_deadline if self.routing else None

    @property
    def report_to(self) -> tuple[str, ...]:
        return self.routing.report_to if self.routing else ()

    @property
    def critical_warning(self) -> str | None:
        return CRITICAL_WARNING if self.severity is Severity.CRITICAL else None


# ── §1341(a)(1)(A) overobligation ─────────────────────────────────────────────

@dataclass(frozen=True)
class OverobligationAnalysis:
    appropriated: Decimal
    apportioned: Decimal | None
    allotted: Decimal | None
    controlling_limit: Decimal
    limit_type: str
    obligated: Decimal
    committed: Decimal
    available: Decimal
    proposed_obligation: Decimal
    remaining_after: Decimal
    percent_remaining: float
    would_violate: bool

    def to_dict(self) -> dict:
        data = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            data[name] = str(value) if isinstance(value, Decimal) else value
        return data


def check_overobligation(account: BudgetAccount | None, proposed_amount,
                         thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS) -> AdaResult:
    """Compare the proposal against the controlling ceiling.

    Severity is CRITICAL when the ceiling would be exceeded, HIGH when less
    than 5% of the ceiling would remain, MEDIUM when less than 10% would.
    """
    result = AdaResult("overobligation", OVEROBLIGATION_STATUTE)
    if account is None:
        result.add_error("Budget account information is required")
        return result
    if not is_positive_amount(proposed_amount):
        result.add_error("Proposed obligation amount must be greater than zero",
                         sample=proposed_amount)
        return result
    for message in account.balance_errors():
        result.add_error(message)
    if not result.is_valid:
        return result

    limit, limit_type = account.controlling_limit()
    available = limit - (account.obligated + account.committed)
    remaining = available - proposed_amount
    remaining_pct = percent_of(remaining, limit) if limit > 0 else 0.0
    violation = remaining < 0

    result.analysis = OverobligationAnalysis(
        appropriated=account.appropriated,
        apportioned=account.apportioned,
        allotted=account.allotted,
        controlling_limit=limit,
        limit_type=limit_type,
        obligated=account.obligated,
        committed=account.committed,
        available=available,
        proposed_obligation=proposed_amount,
        remaining_after=remaining,
        percent_remaining=remaining_pct,
        would_violate=violation,
    )

    if violation:
        result.add_violation(
            ViolationType.OVEROBLIGATION, Severity.CRITICAL,
            f"ANTI-DEFICIENCY ACT VIOLATION: Proposed obligation of "
            f"{format_amount(proposed_amount)} would exceed {limit_type} limit of "
            f"{format_amount(limit)} by {format_amount(-remaining)}. Current obligations: "
            f"{format_amount(account.obligated)}, Commitments: {format_amount(account.committed)}. "
            f"This violates {OVEROBLIGATION_STATUTE} and is a CRIMINAL OFFENSE.")
    elif remaining < limit * Decimal(str(thresholds.ada_high_headroom_pct)) / 100:
        result.raise_severity(Severity.HIGH)
        result.add_warning(
            f"HIGH RISK: Only {format_amount(remaining)} ({format_percent(remaining_pct, 2)}) "
            f"will remain after this obligation. Immediate review required to prevent "
            f"ADA violation.")
    elif remaining < limit * Decimal(str(thresholds.ada_medium_headroom_pct)) / 100:
        result.raise_severity(Severity.MEDIUM)
        result.add_warning(
            f"CAUTION: Only {format_amount(remaining)} ({format_percent(remaining_pct, 2)}) "
            f"will remain after this obligation. Monitor closely.")
    else:
        result.mark_check_passed("overobligation")
    return result


# ── §1532 augmentation ────────────────────────────────────────────────────────

def check_augmentation(obligation: Obligation) -> AdaResult:
    """Outside funding sources require a cited augmentation authority.

    The citation is trusted as supplied and flagged for scope review.
    """
    result = AdaResult("augmentation", AUGMENTATION_STATUTE)
    source = obligation.funding_source
    if source is None:
        result.add_warning("Funding source not specified - cannot validate augmentation rules")
        return result

    if source in AUGMENTING_SOURCES:
        if not obligation.augmentation_authority:
            result.add_violation(
                ViolationType.AUGMENTATION, Severity.HIGH,
                f"Potential augmentation violation: Using {source.value} to supplement "
                f"appropriated funds requires specific statutory authority. "
                f"Reference {AUGMENTATION_STATUTE}.")
            return result
        result.add_warning(
            f"Augmentation authority cited: {obligation.augmentation_authority}. "
            f"Verify this authority permits acceptance of {source.value}.")

    result.mark_check_passed("augmentation")
    return result


# ── §1342 voluntary services ──────────────────────────────────────────────────

def check_voluntary_services(obligation: Obligation) -> AdaResult:
    result = AdaResult("voluntary_services", VOLUNTARY_SERVICES_STATUTE)
    if not obligation.compensated and not obligation.is_emergency:
        result.add_violation(
            ViolationType.VOLUNTARY_SERVICE, Severity.CRITICAL,
            "ANTI-DEFICIENCY ACT VIOLATION: Accepting voluntary (uncompensated) services is "
            "prohibited except in emergencies involving the safety of human life or protection "
            f"of property. This violates {VOLUNTARY_SERVICES_STATUTE}.")
        return result

    if obligation.is_emergency:
        result.add_warning(
            "Emergency exception claimed for voluntary services. Document the emergency "
            "conditions and ensure they meet the statutory requirements.")
        if not obligation.emergency_justification:
            result.add_violation(
                ViolationType.VOLUNTARY_SERVICE, Severity.HIGH,
                "Emergency justification required for voluntary services exception")
            return result

    result.mark_check_passed("voluntary_services")
    return result


# ── §1341(a)(1)(B) advance obligation ─────────────────────────────────────────

def check_advance_payment(obligation: Obligation) -> AdaResult:
    result = AdaResult("advance_payment", ADVANCE_OBLIGATION_STATUTE)
    appropriation_date = obligation.appropriation_date
    if appropriation_date is None:
        result.add_warning("Appropriation date not provided - cannot validate advance payment rules")
        return result
    payment_date = obligation.payment_date or obligation.obligation_date
    if payment_date is None:
        result.add_warning("Payment or obligation date not provided - "
                           "cannot validate advance payment rules")
        return result

    if payment_date < appropriation_date:
        if not obligation.advance_payment_authority:
            result.add_violation(
                ViolationType.ADVANCE_OBLIGATION, Severity.CRITICAL,
                f"ANTI-DEFICIENCY ACT VIOLATION: Obligation/payment made before appropriation "
                f"is available. Payment date: {payment_date.isoformat()}, Appropriation date: "
                f"{appropriation_date.isoformat()}. This violates {ADVANCE_OBLIGATION_STATUTE}.")
            return result
        result.add_warning(
            f"Advance payment authority cited: {obligation.advance_payment_authority}. "
            f"Verify authority permits payment before appropriation.")

    result.mark_check_passed("advance_payment")
    return result


# ── §1517 apportionment ───────────────────────────────────────────────────────

def check_apportionment(obligation: Obligation,
                        apportionment: ApportionmentRecord | None) -> AdaResult:
    result = AdaResult("apportionment", APPORTIONMENT_STATUTE)
    if apportionment is None:
        result.add_warning("No apportionment data provided - cannot validate § 1517 compliance")
        return result

    start, end = apportionment.period_start, apportionment.period_end
    when = obligation.obligation_date
    if start is not None and end is not None:
        if when is None:
            result.add_warning("Obligation date not provided - cannot validate apportioned period")
        elif when < start or when > end:
            result.add_violation(
                ViolationType.APPORTIONMENT_PERIOD, Severity.CRITICAL,
                f"Apportionment violation: Obligation date {when.isoformat()} is outside "
                f"apportioned period ({start.isoformat()} - {end.isoformat()}). "
                f"This violates {APPORTIONMENT_STATUTE}.")
            return result

    purpose = normalize_purpose(obligation.purpose)
    for footnote in apportionment.footnotes:
        if footnote.type.upper() != "PROHIBITED" or not purpose:
            continue
        if purpose in {normalize_purpose(a) for a in footnote.activities}:
            result.add_violation(
                ViolationType.APPORTIONMENT_RESTRICTION, Severity.CRITICAL,
                f"Apportionment restriction violation: Activity '{obligation.purpose}' is "
                f"prohibited by OMB footnote: {footnote.footnote}. "
                f"This violates {APPORTIONMENT_STATUTE}.")
            return result

    result.mark_check_passed("apportionment")
    return result


# ── Orchestration ─────────────────────────────────────────────────────────────

class AntiDeficiencyResult(AdaResult):
    detail_fields = AdaResult.detail_fields + ("validations",)

    def __init__(self) -> None:
        super().__init__("anti_deficiency")
        self.validations: dict[str, AdaResult] = {}
        self._violation_severity: Severity | None = None

    def include(self, name: str, sub: AdaResult) -> None:
        """Fold in a sub-check; violation and statute follow the most severe one."""
        self.validations[name] = sub
        self.merge(sub)
        self.raise_severity(sub.severity)
        if sub.violation is not None and (self._violation_severity is None
                                          or sub.severity.rank > self._violation_severity.rank):
            self.violation = sub.violation
            self.statute = sub.statute
            self._violation_severity = sub.severity
        if name == "overobligation":
            self.analysis = sub.analysis


def validate_anti_deficiency_act(obligation: Obligation, account: BudgetAccount | None,
                                 apportionment: ApportionmentRecord | None = None,
                                 thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                                 ) -> AntiDeficiencyResult:
    """Run every ADA check whose inputs are present on the transaction.

    - overobligation: an account snapshot and an amount are supplied
    - augmentation: ``funding_source`` is set
    - voluntary services: ``is_service`` is set
    - advance payment: ``appropriation_date`` is set
    - apportionment: an apportionment record is supplied
    """
    result = AntiDeficiencyResult()
    if account is not None and obligation.amount:
        result.include("overobligation", check_overobligation(account, obligation.amount, thresholds))
    if obligation.funding_source is not None:
        result.include("augmentation", check_augmentation(obligation))
    if obligation.is_service:
        result.include("voluntary_services", check_voluntary_services(obligation))
    if obligation.appropriation_date is not None:
        result.include("advance_payment", check_advance_payment(obligation))
    if apportionment is not None:
        result.include("apportionment", check_apportionment(obligation, apportionment))

    if result.severity is Severity.CRITICAL:
        logger.error("ADA violation (%s) on %s: %s", result.violation.value, obligation.id,
                     "; ".join(result.errors),
                     extra={"transaction_id": obligation.id, "check": "anti_deficiency",
                            "severity": result.severity.value, "statute": result.statute})
    elif result.has_violation:
        logger.warning("ADA finding on %s: %s", obligation.id, "; ".join(result.errors),
                       extra={"transaction_id": obligation.id, "check": "anti_deficiency",
                              "severity": result.severity.value if result.severity else None})
    return result


# ── Violation report ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ViolationReport:
    report_type: str
    report_date: datetime
    statute: str
    severity: str
    violation_type: str
    description: str
    penalty: str | None
    transaction: dict
    reporting_requirements: dict
    analysis: dict
    remedial_actions: tuple[str, ...] = field(default=REMEDIAL_ACTIONS)

    def to_dict(self) -> dict:
        return {
            "report_type": self.report_type,
            "report_date": self.report_date.isoformat(),
            "statute": self.statute,
            "severity": self.severity,
            "violation_type": self.violation_type,
            "description": self.description,
            "penalty": self.penalty,
            "transaction": self.transaction,
            "reporting_requirements": self.reporting_requirements,
            "analysis": self.analysis,
            "remedial_actions": list(self.remedial_actions),
        }


def generate_violation_report(result: AdaResult, obligation: Obligation | None = None,
                              account_id: str | None = None,
                              now: datetime | None = None) -> ViolationReport:
    """Structured record for submitting an ADA violation."""
    catalog = VIOLATION_CATALOG.get(result.violation, {}) if result.violation else {}
    return ViolationReport(
        report_type="ANTI-DEFICIENCY ACT VIOLATION",
        report_date=now or datetime.now(timezone.utc),
        statute=result.statute or "31 U.S.C. § 1341",
        severity=result.severity.value if result.severity else "UNKNOWN",
        violation_type=result.violation.value if result.violation else "UNKNOWN",
        description="; ".join(result.errors),
        penalty=catalog.get("penalty"),
        transaction={
            "id": obligation.id if obligation else None,
            "amount": str(obligation.amount) if obligation and obligation.amount is not None else None,
            "date": obligation.obligation_date.isoformat()
            if obligation and obligation.obligation_date else None,
            "account": account_id,
        },
        reporting_requirements={
            "required": result.requires_reporting,
            "deadline": result.reporting_deadline or "N/A",
            "recipients": list(result.report_to),
        },
        analysis=result.analysis.to_dict() if result.analysis is not None else {},
    )
