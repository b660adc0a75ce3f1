"""
Congressional Report Formatter — budget exhibits (DoD FMR Volume 2B).

One formatter per exhibit:

    Budget Justification   format_budget_justification
    OP-5  (O&M)            format_om_exhibit
    P-1   (Procurement)    format_procurement_exhibit
    R-2   (RDT&E)          format_rdte_exhibit
    C-1   (MILCON)         format_milcon_exhibit
    DD 1415 (Reprogramming) format_reprogramming_action
    Quarterly report       format_quarterly_report
    Budget book            generate_budget_book

Formatters only shape numbers the caller has already validated; nothing here
enforces a business rule.  Currency is rendered in thousands with a "K"
suffix ("$1,235K").  Submission dates come from ``as_of`` so output is
reproducible.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from appropriations.fiscal_calendar import format_fiscal_year, quarter_dates
from appropriations.models import Money
from appropriations.registry import lookup
from utils.formatting import format_percent, format_thousands, percent_of

DEFAULT_DEPARTMENT = "Department of Defense"

CONGRESSIONAL_COMMITTEES = (
    "House Armed Services Committee",
    "Senate Armed Services Committee",
    "House Appropriations Committee (Defense)",
    "Senate Appropriations Committee (Defense)",
)


def _today(as_of: date | datetime | None) -> date:
    if as_of is None:
        return datetime.now(timezone.utc).date()
    if isinstance(as_of, datetime):
        return as_of.date()
    return as_of


def _appropriation_title(code: str | None) -> str:
    info = lookup(code)
    return info.full_name if info else (code or "")


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Shared pieces ─────────────────────────────────────────────────────────────

class BudgetActivity(_Record):
    code: str
    name: str


class ExhibitColumn(_Record):
    """One labelled amount (a fiscal-year column or a line element)."""
    label: str
    amount: str


class ExhibitLine(_Record):
    name: str
    amount: Money = Decimal(0)


def _year_columns(fiscal_year: int, prior: Decimal, current: Decimal, budget: Decimal,
                  current_label: str = "Estimate") -> list[ExhibitColumn]:
    return [
        ExhibitColumn(label=f"{format_fiscal_year(fiscal_year - 2)} Actual",
                      amount=format_thousands(prior)),
        ExhibitColumn(label=f"{format_fiscal_year(fiscal_year - 1)} {current_label}",
                      amount=format_thousands(current)),
        ExhibitColumn(label=f"{format_fiscal_year(fiscal_year)} Request",
                      amount=format_thousands(budget)),
    ]


# ── Budget Justification ──────────────────────────────────────────────────────

class BudgetJustificationInput(_Record):
    kind: Literal["BUDGET_JUSTIFICATION"] = "BUDGET_JUSTIFICATION"
    fiscal_year: int
    appropriation_type: str | None = None
    title: str = ""
    department: str = DEFAULT_DEPARTMENT
    exhibit_number: str = "TBD"
    budget_activity: str | None = None
    program_element: str | None = None
    amount: Money = Decimal(0)
    current_year_amount: Money = Decimal(0)
    prior_year_amount: Money = Decimal(0)
    mission: str = ""
    goals: tuple[str, ...] = ()
    accomplishments: tuple[str, ...] = ()
    change_summary: str = ""
    performance_metrics: tuple[str, ...] = ()

    @property
    def section(self) -> str:
        return self.appropriation_type or "OTHER"

    @property
    def request_amount(self) -> Decimal:
        return self.amount


class ExhibitHeader(_Record):
    title: str
    department: str
    appropriation: str
    fiscal_year: str
    submission_date: date
    exhibit_number: str


class BudgetJustification(_Record):
    header: ExhibitHeader
    fiscal_year_summary: list[ExhibitColumn]
    change_amount: str
    change_percentage: str
    budget_activity: str
    program_element: str
    project_title: str
    mission_description: str
    performance_goals: list[str]
    accomplishments: list[str]
    change_summary: str
    performance_metrics: list[str]
    formatted_for: str = "Congressional Budget Justification Book"


def format_budget_justification(data: BudgetJustificationInput,
                                as_of: date | datetime | None = None) -> BudgetJustification:
    change = data.amount - data.current_year_amount
    pct = percent_of(change, data.current_year_amount) if data.current_year_amount > 0 else None
    return BudgetJustification(
        header=ExhibitHeader(
            title="BUDGET JUSTIFICATION",
            department=data.department,
            appropriation=_appropriation_title(data.appropriation_type),
            fiscal_year=format_fiscal_year(data.fiscal_year),
            submission_date=_today(as_of),
            exhibit_number=data.exhibit_number,
        ),
        fiscal_year_summary=_year_columns(data.fiscal_year, data.prior_year_amount,
                                          data.current_year_amount, data.amount,
                                          current_label="Enacted"),
        change_amount=format_thousands(change),
        change_percentage="N/A" if pct is None else f"{pct:.2f}",
        budget_activity=data.budget_activity or "N/A",
        program_element=data.program_element or "N/A",
        project_title=data.title,
        mission_description=data.mission,
        performance_goals=list(data.goals),
        accomplishments=list(data.accomplishments),
        change_summary=data.change_summary,
        performance_metrics=list(data.performance_metrics),
    )


# ── OP-5 ──────────────────────────────────────────────────────────────────────

class OMExhibitInput(_Record):
    kind: Literal["OP-5"] = "OP-5"
    fiscal_year: int
    title: str = "Operation and Maintenance"
    budget_activity: BudgetActivity = BudgetActivity(code="BA-01", name="Operating Forces")
    prior_year: Money = Decimal(0)
    current_year: Money = Decimal(0)
    budget_year: Money = Decimal(0)
    changes: tuple[str, ...] = ()
    elements: tuple[ExhibitLine, ...] = ()
    civilian_fte: int = 0
    military_end_strength: int = 0

    section: ClassVar[str] = "OM"

    @property
    def request_amount(self) -> Decimal:
        return self.budget_year


class OMExhibit(_Record):
    exhibit: str = "OP-5"
    title: str = "OPERATION AND MAINTENANCE BUDGET EXHIBIT"
    fiscal_year: str
    budget_activity: BudgetActivity
    columns: list[ExhibitColumn]
    total_change: str
    changes_summary: list[str]
    breakdown_by_element: list[ExhibitColumn]
    civilian_fte: int
    military_end_strength: int


def format_om_exhibit(data: OMExhibitInput) -> OMExhibit:
    return OMExhibit(
        fiscal_year=format_fiscal_year(data.fiscal_year),
        budget_activity=data.budget_activity,
        columns=_year_columns(data.fiscal_year, data.prior_year, data.current_year,
                              data.budget_year),
        total_change=format_thousands(data.budget_year - data.current_year),
        changes_summary=list(data.changes),
        breakdown_by_element=[ExhibitColumn(label=e.name, amount=format_thousands(e.amount))
                              for e in data.elements],
        civilian_fte=data.civilian_fte,
        military_end_strength=data.military_end_strength,
    )


# ── P-1 ───────────────────────────────────────────────────────────────────────

class AdvanceProcurementLine(_Record):
    amount: Money = Decimal(0)
    description: str = ""


class ProcurementExhibitInput(_Record):
    kind: Literal["P-1"] = "P-1"
    fiscal_year: int
    line_item: str = ""
    item_name: str = ""
    quantity: int = 0
    unit_cost: Money = Decimal(0)
    total_cost: Money = Decimal(0)
    prior_year_funding: Money = Decimal(0)
    cost_to_complete: Money = Decimal(0)
    cost_type: str = "TY$ (Then-Year Dollars)"
    advance_procurement: AdvanceProcurementLine | None = None
    technical_description: str = ""
    mission_description: str = ""
    program_status: str = "Production"

    section: ClassVar[str] = "PROCUREMENT"

    @property
    def title(self) -> str:
        return self.item_name

    @property
    def request_amount(self) -> Decimal:
        return self.total_cost


class ProcurementExhibit(_Record):
    exhibit: str = "P-1"
    title: str = "PROCUREMENT PROGRAM"
    fiscal_year: str
    line_item_number: str
    nomenclature: str
    quantity: int
    unit_cost: str
    total_cost: str
    cost_type: str
    prior_years: str
    current_request: str
    to_complete: str
    advance_procurement: ExhibitColumn | None
    technical_description: str
    mission_description: str
    program_status: str


def format_procurement_exhibit(data: ProcurementExhibitInput) -> ProcurementExhibit:
    advance = None
    if data.advance_procurement is not None:
        advance = ExhibitColumn(label=data.advance_procurement.description,
                                amount=format_thousands(data.advance_procurement.amount))
    return ProcurementExhibit(
        fiscal_year=format_fiscal_year(data.fiscal_year),
        line_item_number=data.line_item,
        nomenclature=data.item_name,
        quantity=data.quantity,
        unit_cost=format_thousands(data.unit_cost),
        total_cost=format_thousands(data.total_cost),
        cost_type=data.cost_type,
        prior_years=format_thousands(data.prior_year_funding),
        current_request=format_thousands(data.total_cost),
        to_complete=format_thousands(data.cost_to_complete),
        advance_procurement=advance,
        technical_description=data.technical_description,
        mission_description=data.mission_description,
        program_status=data.program_status,
    )


# ── R-2 ───────────────────────────────────────────────────────────────────────

class RDTEExhibitInput(_Record):
    kind: Literal["R-2"] = "R-2"
    fiscal_year: int
    program_element: str = "PE XXXXXX"
    project_title: str = ""
    budget_activity: BudgetActivity = BudgetActivity(code="BA-1", name="Basic Research")
    prior_year: Money = Decimal(0)
    current_year: Money = Decimal(0)
    budget_year: Money = Decimal(0)
    cost_to_complete: Money = Decimal(0)
    projects: tuple[str, ...] = ()
    accomplishments: tuple[str, ...] = ()
    plans: str = ""
    schedule: dict[str, str] = Field(default_factory=dict)

    section: ClassVar[str] = "RDTE"

    @property
    def title(self) -> str:
        return self.project_title

    @property
    def request_amount(self) -> Decimal:
        return self.budget_year


class RDTEExhibit(_Record):
    exhibit: str = "R-2"
    title: str = "RDT&E BUDGET ITEM JUSTIFICATION"
    fiscal_year: str
    program_element: str
    project_title: str
    budget_activity: BudgetActivity
    prior_year: str
    current_year: str
    budget_year: str
    cost_to_complete: str
    projects: list[str]
    accomplishments: list[str]
    plans_summary: str
    schedule_profile: dict[str, str]


def format_rdte_exhibit(data: RDTEExhibitInput) -> RDTEExhibit:
    return RDTEExhibit(
        fiscal_year=format_fiscal_year(data.fiscal_year),
        program_element=data.program_element,
        project_title=data.project_title,
        budget_activity=data.budget_activity,
        prior_year=format_thousands(data.prior_year),
        current_year=format_thousands(data.current_year),
        budget_year=format_thousands(data.budget_year),
        cost_to_complete=format_thousands(data.cost_to_complete),
        projects=list(data.projects),
        accomplishments=list(data.accomplishments),
        plans_summary=data.plans,
        schedule_profile=dict(data.schedule),
    )


# ── C-1 ───────────────────────────────────────────────────────────────────────

class ProjectLocation(_Record):
    installation: str = ""
    state: str = ""
    country: str = "USA"


class MilconExhibitInput(_Record):
    kind: Literal["C-1"] = "C-1"
    fiscal_year: int
    project_title: str = ""
    location: ProjectLocation = ProjectLocation()
    category: str = "Other"
    total_cost: Money = Decimal(0)
    prior_year_funding: Money = Decimal(0)
    current_request: Money = Decimal(0)
    justification: str = ""
    scope_of_work: str = ""
    current_situation: str = ""
    square_footage: int = 0

    section: ClassVar[str] = "MILCON"

    @property
    def title(self) -> str:
        return self.project_title

    @property
    def request_amount(self) -> Decimal:
        return self.current_request


class MilconExhibit(_Record):
    exhibit: str = "C-1"
    title: str = "MILITARY CONSTRUCTION PROJECT DATA"
    fiscal_year: str
    project_title: str
    location: ProjectLocation
    category: str
    total_cost: str
    prior_year_funding: str
    current_request: str
    future_years: str
    project_justification: str
    scope_of_work: str
    current_situation: str
    square_footage: int


def format_milcon_exhibit(data: MilconExhibitInput) -> MilconExhibit:
    future = data.total_cost - data.prior_year_funding - data.current_request
    return MilconExhibit(
        fiscal_year=format_fiscal_year(data.fiscal_year),
        project_title=data.project_title,
        location=data.location,
        category=data.category,
        total_cost=format_thousands(data.total_cost),
        prior_year_funding=format_thousands(data.prior_year_funding),
        current_request=format_thousands(data.current_request),
        future_years=format_thousands(future),
        project_justification=data.justification,
        scope_of_work=data.scope_of_work,
        current_situation=data.current_situation,
        square_footage=data.square_footage,
    )


# ── DD 1415 ───────────────────────────────────────────────────────────────────

class ProgramLine(_Record):
    program_element: str = ""
    title: str = ""
    current_amount: Money = Decimal(0)


class ReprogrammingInput(_Record):
    fiscal_year: int
    appropriation_type: str | None = None
    from_program: ProgramLine
    to_program: ProgramLine
    amount: Money = Decimal(0)
    justification: str = ""
    impact_statement: str = ""
    category: str = "Below Threshold Reprogramming (BTR)"
    notification_required: bool = True
    control_number: str | None = None


class ReprogrammingProgram(_Record):
    program_element: str
    title: str
    current_amount: str
    change_amount: str


class CongressionalNotification(_Record):
    required: bool
    committees: list[str]


class ReprogrammingAction(_Record):
    form: str = "DD 1415"
    title: str = "REPROGRAMMING ACTION"
    control_number: str
    fiscal_year: str
    appropriation: str
    category: str
    from_program: ReprogrammingProgram
    to_program: ReprogrammingProgram
    net_change: str
    justification: str
    impact_statement: str
    congressional_notification: CongressionalNotification
    submission_date: date


def control_number(data: ReprogrammingInput) -> str:
    """Deterministic control number "FYyy-nnnn" derived from the action's content.

    Identical actions always receive the same number.
    """
    payload = data.model_dump(mode="json", exclude={"control_number"})
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
    sequence = int(digest[:8], 16) % 10000
    return f"FY{str(data.fiscal_year)[-2:]}-{sequence:04d}"


def format_reprogramming_action(data: ReprogrammingInput,
                                as_of: date | datetime | None = None) -> ReprogrammingAction:
    return ReprogrammingAction(
        control_number=data.control_number or control_number(data),
        fiscal_year=format_fiscal_year(data.fiscal_year),
        appropriation=_appropriation_title(data.appropriation_type),
        category=data.category,
        from_program=ReprogrammingProgram(
            program_element=data.from_program.program_element,
            title=data.from_program.title,
            current_amount=format_thousands(data.from_program.current_amount),
            change_amount=format_thousands(-data.amount),
        ),
        to_program=ReprogrammingProgram(
            program_element=data.to_program.program_element,
            title=data.to_program.title,
            current_amount=format_thousands(data.to_program.current_amount),
            change_amount=format_thousands(data.amount),
        ),
        # Reprogramming moves funds; the appropriation total is unchanged
        net_change=format_thousands(0),
        justification=data.justification,
        impact_statement=data.impact_statement,
        congressional_notification=CongressionalNotification(
            required=data.notification_required,
            committees=list(CONGRESSIONAL_COMMITTEES),
        ),
        submission_date=_today(as_of),
    )


# ── Quarterly report ──────────────────────────────────────────────────────────

class AppropriationExecution(_Record):
    type: str
    appropriated: Money = Decimal(0)
    obligated: Money = Decimal(0)
    expended: Money = Decimal(0)


class QuarterlyInput(_Record):
    fiscal_year: int
    quarter: int = Field(..., ge=1, le=4)
    appropriations: tuple[AppropriationExecution, ...] = ()


class QuarterlyLine(_Record):
    type: str
    appropriated: str
    obligated: str
    expended: str
    obligation_rate: str
    expenditure_rate: str


class QuarterlyReport(_Record):
    report_type: str = "QUARTERLY_FINANCIAL_REPORT"
    fiscal_year: str
    quarter: str
    period_start: date
    period_end: date
    total_appropriated: str
    total_obligated: str
    total_expended: str
    by_appropriation: list[QuarterlyLine]
    generated_date: date


def _rate_text(part: Decimal, whole: Decimal) -> str:
    if whole <= 0:
        return "0%"
    return format_percent(percent_of(part, whole), 2)


def format_quarterly_report(data: QuarterlyInput,
                            as_of: date | datetime | None = None) -> QuarterlyReport:
    start, end = quarter_dates(data.fiscal_year, data.quarter)
    lines = data.appropriations
    return QuarterlyReport(
        fiscal_year=format_fiscal_year(data.fiscal_year),
        quarter=f"Q{data.quarter}",
        period_start=start,
        period_end=end,
        total_appropriated=format_thousands(sum((a.appropriated for a in lines), Decimal(0))),
        total_obligated=format_thousands(sum((a.obligated for a in lines), Decimal(0))),
        total_expended=format_thousands(sum((a.expended for a in lines), Decimal(0))),
        by_appropriation=[
            QuarterlyLine(
                type=a.type,
                appropriated=format_thousands(a.appropriated),
                obligated=format_thousands(a.obligated),
                expended=format_thousands(a.expended),
                obligation_rate=_rate_text(a.obligated, a.appropriated),
                expenditure_rate=_rate_text(a.expended, a.obligated),
            )
            for a in lines
        ],
        generated_date=_today(as_of),
    )


# ── Budget book ───────────────────────────────────────────────────────────────

ExhibitInput = Annotated[
    Union[BudgetJustificationInput, OMExhibitInput, ProcurementExhibitInput,
          RDTEExhibitInput, MilconExhibitInput],
    Field(discriminator="kind"),
]

Exhibit = Union[BudgetJustification, OMExhibit, ProcurementExhibit, RDTEExhibit, MilconExhibit]


class BudgetBookInput(_Record):
    fiscal_year: int
    department: str = DEFAULT_DEPARTMENT
    highlights: tuple[str, ...] = ()
    priorities: tuple[str, ...] = ()
    appropriations: tuple[ExhibitInput, ...] = ()


class ExecutiveSummary(_Record):
    total_request: str
    highlights: list[str]
    priorities: list[str]


class BudgetBookSection(_Record):
    section: str
    title: str
    exhibit: Exhibit


class BudgetBook(_Record):
    title: str = "DEPARTMENT BUDGET REQUEST"
    subtitle: str
    department: str
    submission_date: date
    executive_summary: ExecutiveSummary
    sections: list[BudgetBookSection]


def format_exhibit(data: ExhibitInput, as_of: date | datetime | None = None) -> Exhibit:
    """Dispatch an exhibit input to its formatter."""
    if isinstance(data, OMExhibitInput):
        return format_om_exhibit(data)
    if isinstance(data, ProcurementExhibitInput):
        return format_procurement_exhibit(data)
    if isinstance(data, RDTEExhibitInput):
        return format_rdte_exhibit(data)
    if isinstance(data, MilconExhibitInput):
        return format_milcon_exhibit(data)
    return format_budget_justification(data, as_of)


def generate_budget_book(data: BudgetBookInput,
                         as_of: date | datetime | None = None) -> BudgetBook:
    """Executive summary followed by one exhibit section per appropriation entry."""
    total = sum((entry.request_amount for entry in data.appropriations), Decimal(0))
    return BudgetBook(
        subtitle=f"Fiscal Year {data.fiscal_year}",
        department=data.department,
        submission_date=_today(as_of),
        executive_summary=ExecutiveSummary(
            total_request=format_thousands(total),
            highlights=list(data.highlights),
            priorities=list(data.priorities),
        ),
        sections=[
            BudgetBookSection(section=entry.section, title=entry.title,
                              exhibit=format_exhibit(entry, as_of))
            for entry in data.appropriations
        ],
    )
