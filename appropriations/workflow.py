"""
Budget Workflow State Machine — the PPBE cycle (DoD Instruction 7045.14).

Eighteen states across four phases:

    PLANNING     DRAFT -> PLANNING_REVIEW -> PLANNING_APPROVED
    PROGRAMMING  PROGRAMMING -> POM_REVIEW -> POM_APPROVED
    BUDGETING    BUDGET_FORMULATION -> BUDGET_REVIEW -> OMB_REVIEW ->
                 CONGRESSIONAL_SUBMISSION -> CONGRESSIONAL_MARKUP -> APPROPRIATED
    EXECUTION    EXECUTION -> SUSPENDED | CLOSEOUT -> CLOSED

plus the terminal REJECTED and CANCELLED states reachable from several
points.  The transition table below is the only source of ordering; it is
checked by ``validate_transition_table()`` when the module is imported.

A ``BudgetWorkflow`` is an immutable value.  ``transition()`` never changes
the workflow it is called on: it returns a ``TransitionResult`` whose
``workflow`` is the new value (or the unchanged one on failure).  Each
successful transition appends exactly one history record.

Usage:
    wf = BudgetWorkflow(BudgetRequest(title="Radar upgrade", fiscal_year=2026,
                                      amount=1_500_000, justification="..."))
    outcome = wf.transition("PLANNING_REVIEW", approved_by="j.smith")
    if outcome.success:
        wf = outcome.workflow
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from appropriations.fiscal_calendar import current_fiscal_year, format_fiscal_year
from appropriations.models import Money
from appropriations.registry import lookup
from utils.config import DEFAULT_THRESHOLDS, ComplianceThresholds
from utils.patterns import PE_NUMBER
from utils.strings import has_min_length
from utils.validation import ValidationResult, is_positive_amount

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    PLANNING = "PLANNING"
    PROGRAMMING = "PROGRAMMING"
    BUDGETING = "BUDGETING"
    EXECUTION = "EXECUTION"


class WorkflowState(str, Enum):
    DRAFT = "DRAFT"
    PLANNING_REVIEW = "PLANNING_REVIEW"
    PLANNING_APPROVED = "PLANNING_APPROVED"
    PROGRAMMING = "PROGRAMMING"
    POM_REVIEW = "POM_REVIEW"
    POM_APPROVED = "POM_APPROVED"
    BUDGET_FORMULATION = "BUDGET_FORMULATION"
    BUDGET_REVIEW = "BUDGET_REVIEW"
    OMB_REVIEW = "OMB_REVIEW"
    CONGRESSIONAL_SUBMISSION = "CONGRESSIONAL_SUBMISSION"
    CONGRESSIONAL_MARKUP = "CONGRESSIONAL_MARKUP"
    APPROPRIATED = "APPROPRIATED"
    EXECUTION = "EXECUTION"
    SUSPENDED = "SUSPENDED"
    CLOSEOUT = "CLOSEOUT"
    CLOSED = "CLOSED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class WorkflowDefinitionError(Exception):
    """The transition table is malformed (unreachable or dead-end states)."""


@dataclass(frozen=True)
class StateDefinition:
    state: WorkflowState
    phase: Phase | None
    name: str
    description: str
    allowed: tuple[WorkflowState, ...] = ()      # first entry is the primary next state
    required_fields: tuple[str, ...] = ()          # must be populated to enter this state
    approval_level: str | None = None              # approver role needed to enter this state

    @property
    def approval_required(self) -> bool:
        return self.approval_level is not None

    @property
    def terminal(self) -> bool:
        return not self.allowed

    def to_dict(self) -> dict:
        return {
            "code": self.state.value,
            "phase": self.phase.value if self.phase else None,
            "name": self.name,
            "description": self.description,
            "allowed_transitions": [s.value for s in self.allowed],
            "required_fields": list(self.required_fields),
            "approval_required": self.approval_required,
            "approval_level": self.approval_level,
            "terminal": self.terminal,
        }


S = WorkflowState

STATE_DEFINITIONS: Mapping[WorkflowState, StateDefinition] = MappingProxyType({
    d.state: d for d in (
        # Planning
        StateDefinition(S.DRAFT, Phase.PLANNING, "Draft",
                        "Initial budget request being prepared",
                        (S.PLANNING_REVIEW, S.CANCELLED)),
        StateDefinition(S.PLANNING_REVIEW, Phase.PLANNING, "Planning Review",
                        "Under review by planning staff",
                        (S.PLANNING_APPROVED, S.DRAFT, S.REJECTED),
                        ("title", "fiscal_year", "amount", "justification"),
                        "PLANNING_OFFICER"),
        StateDefinition(S.PLANNING_APPROVED, Phase.PLANNING, "Planning Approved",
                        "Approved for programming phase",
                        (S.PROGRAMMING,), approval_level="PLANNING_DIRECTOR"),
        # Programming
        StateDefinition(S.PROGRAMMING, Phase.PROGRAMMING, "Programming",
                        "POM development and resource allocation",
                        (S.POM_REVIEW, S.PLANNING_APPROVED),
                        ("program_elements", "resource_sponsor", "pom_year")),
        StateDefinition(S.POM_REVIEW, Phase.PROGRAMMING, "POM Review",
                        "Program Objective Memorandum under review",
                        (S.POM_APPROVED, S.PROGRAMMING, S.REJECTED),
                        approval_level="POM_REVIEWER"),
        StateDefinition(S.POM_APPROVED, Phase.PROGRAMMING, "POM Approved",
                        "POM approved, ready for budget formulation",
                        (S.BUDGET_FORMULATION,), approval_level="COMPTROLLER"),
        # Budgeting
        StateDefinition(S.BUDGET_FORMULATION, Phase.BUDGETING, "Budget Formulation",
                        "Preparing budget submission",
                        (S.BUDGET_REVIEW, S.POM_APPROVED),
                        ("budget_justification", "appropriation_type",
                         "congressional_submission")),
        StateDefinition(S.BUDGET_REVIEW, Phase.BUDGETING, "Budget Review",
                        "Budget under internal review",
                        (S.OMB_REVIEW, S.BUDGET_FORMULATION, S.REJECTED),
                        approval_level="BUDGET_OFFICER"),
        StateDefinition(S.OMB_REVIEW, Phase.BUDGETING, "OMB Review",
                        "Under review by Office of Management and Budget",
                        (S.CONGRESSIONAL_SUBMISSION, S.BUDGET_FORMULATION),
                        approval_level="OMB"),
        StateDefinition(S.CONGRESSIONAL_SUBMISSION, Phase.BUDGETING, "Congressional Submission",
                        "Submitted to Congress for authorization and appropriation",
                        (S.CONGRESSIONAL_MARKUP, S.REJECTED), approval_level="SECRETARY"),
        StateDefinition(S.CONGRESSIONAL_MARKUP, Phase.BUDGETING, "Congressional Markup",
                        "Under congressional review and markup",
                        (S.APPROPRIATED, S.CONGRESSIONAL_SUBMISSION, S.REJECTED)),
        StateDefinition(S.APPROPRIATED, Phase.BUDGETING, "Appropriated",
                        "Funds appropriated by Congress", (S.EXECUTION,)),
        # Execution
        StateDefinition(S.EXECUTION, Phase.EXECUTION, "Execution",
                        "Funds being obligated and expended", (S.CLOSEOUT, S.SUSPENDED)),
        StateDefinition(S.SUSPENDED, Phase.EXECUTION, "Suspended",
                        "Execution temporarily suspended", (S.EXECUTION, S.CANCELLED),
                        approval_level="PROGRAM_MANAGER"),
        StateDefinition(S.CLOSEOUT, Phase.EXECUTION, "Closeout",
                        "Final accounting and closeout", (S.CLOSED,),
                        approval_level="FINANCE_OFFICER"),
        StateDefinition(S.CLOSED, Phase.EXECUTION, "Closed", "Budget cycle complete"),
        # Terminal
        StateDefinition(S.REJECTED, None, "Rejected", "Budget request rejected"),
        StateDefinition(S.CANCELLED, None, "Cancelled", "Budget request cancelled"),
    )
})

TRANSITIONS: Mapping[WorkflowState, frozenset[WorkflowState]] = MappingProxyType({
    state: frozenset(d.allowed) for state, d in STATE_DEFINITIONS.items()
})

TERMINAL_STATES = frozenset(s for s, d in STATE_DEFINITIONS.items() if d.terminal)

# Canonical phase-ordered sequence used for progress reporting
PROGRESS_SEQUENCE = (
    S.DRAFT, S.PLANNING_REVIEW, S.PLANNING_APPROVED,
    S.PROGRAMMING, S.POM_REVIEW, S.POM_APPROVED,
    S.BUDGET_FORMULATION, S.BUDGET_REVIEW, S.OMB_REVIEW,
    S.CONGRESSIONAL_SUBMISSION, S.CONGRESSIONAL_MARKUP, S.APPROPRIATED,
    S.EXECUTION, S.CLOSEOUT, S.CLOSED,
)

# States without their own slot report the progress of another
_PROGRESS_ALIASES = {S.SUSPENDED: S.EXECUTION}


def validate_transition_table(
        definitions: Mapping[WorkflowState, StateDefinition] = STATE_DEFINITIONS,
        initial: WorkflowState = WorkflowState.DRAFT) -> None:
    """Check the state graph.

    Every state must be defined, reachable from ``initial`` and able to reach
    a terminal state; terminal states have no exits by construction.

    Raises:
        WorkflowDefinitionError: Describing the first problem found
    """
    missing = [s.value for s in WorkflowState if s not in definitions]
    if missing:
        raise WorkflowDefinitionError(f"States without a definition: {', '.join(missing)}")
    for state, definition in definitions.items():
        if definition.state is not state:
            raise WorkflowDefinitionError(f"Definition for {state.value} is keyed incorrectly")
        if state in definition.allowed:
            raise WorkflowDefinitionError(f"{state.value} transitions to itself")

    reachable = {initial}
    frontier = [initial]
    while frontier:
        for target in definitions[frontier.pop()].allowed:
            if target not in reachable:
                reachable.add(target)
                frontier.append(target)
    unreachable = [s.value for s in WorkflowState if s not in reachable]
    if unreachable:
        raise WorkflowDefinitionError(
            f"States unreachable from {initial.value}: {', '.join(unreachable)}")

    terminals = {s for s, d in definitions.items() if d.terminal}
    finishing = set(terminals)
    changed = True
    while changed:
        changed = False
        for state, definition in definitions.items():
            if state not in finishing and finishing.intersection(definition.allowed):
                finishing.add(state)
                changed = True
    stuck = [s.value for s in WorkflowState if s not in finishing]
    if stuck:
        raise WorkflowDefinitionError(
            f"States that can never reach a terminal state: {', '.join(stuck)}")


def states_by_phase(phase: Phase | str) -> list[StateDefinition]:
    phase = Phase(phase)
    return [d for d in STATE_DEFINITIONS.values() if d.phase is phase]


def _parse_state(value: WorkflowState | str | None) -> WorkflowState | None:
    if isinstance(value, WorkflowState):
        return value
    if isinstance(value, str) and value.strip().upper() in WorkflowState.__members__:
        return WorkflowState[value.strip().upper()]
    return None


# ── Budget request ────────────────────────────────────────────────────────────

class BudgetRequest(BaseModel):
    """Fields a budget request accumulates as it moves through the cycle."""
    model_config = ConfigDict(frozen=True)

    id: str | None = Field(None, description="Request identifier", examples=["BR-2026-014"])
    title: str | None = Field(None, description="Short title", examples=["Radar upgrade"])
    fiscal_year: int | None = Field(None, description="Budget fiscal year", examples=[2026])
    amount: Money = Field(Decimal(0), description="Requested amount in dollars")
    justification: str | None = None
    appropriation_type: str | None = None
    program_element: str | None = Field(None, description="Program element number",
                                        examples=["0603270A"])
    program_elements: tuple[str, ...] = ()
    resource_sponsor: str | None = None
    pom_year: int | None = None
    budget_justification: str | None = None
    congressional_submission: str | None = None


def validate_budget_request(request: BudgetRequest,
                            now: date | datetime | None = None,
                            thresholds: ComplianceThresholds = DEFAULT_THRESHOLDS
                            ) -> ValidationResult:
    """Basic completeness checks before a request enters the workflow."""
    result = ValidationResult("budget_request")
    if not request.title:
        result.add_error("Budget title is required")
    if not request.fiscal_year:
        result.add_error("Fiscal year is required")
    if not is_positive_amount(request.amount):
        result.add_error("Budget amount must be greater than zero", sample=request.amount)
    if not has_min_length(request.justification, thresholds.min_justification_length):
        result.add_warning(
            f"Justification should be at least {thresholds.min_justification_length} characters")
    if request.appropriation_type and lookup(request.appropriation_type) is None:
        result.add_error(f"Invalid appropriation type: {request.appropriation_type}",
                         sample=request.appropriation_type)
    if request.program_element and not PE_NUMBER.fullmatch(request.program_element.strip()):
        result.add_warning(f"Program element '{request.program_element}' does not match the "
                           f"expected format (7 digits and a service suffix)")

    current_fy = current_fiscal_year(now)
    if request.fiscal_year and request.fiscal_year < current_fy + 1:
        result.add_warning(
            f"Budget is for {format_fiscal_year(request.fiscal_year)} but current FY is "
            f"{current_fy}. Budget formulation typically occurs 1-2 years in advance.")

    if result.is_valid:
        result.mark_check_passed("budget_request")
    return result


# ── Workflow value ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransitionRecord:
    sequence: int
    from_state: WorkflowState
    to_state: WorkflowState
    actor: str
    approved_by: str | None
    timestamp: datetime
    reason: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "actor": self.actor,
            "approved_by": self.approved_by,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "metadata": dict(self.metadata),
        }


class TransitionResult(ValidationResult):
    """Outcome of a transition attempt; ``workflow`` is the resulting value."""

    detail_fields = ("from_state", "to_state", "allowed_transitions", "requires_approval",
                     "approval_level", "history_entry")

    def __init__(self, workflow: "BudgetWorkflow", to_state: WorkflowState | None) -> None:
        super().__init__("workflow_transition")
        self.workflow = workflow
        self.from_state = workflow.state
        self.to_state = to_state
        self.allowed_transitions: tuple[WorkflowState, ...] = ()
        self.requires_approval = False
        self.approval_level: str | None = None
        self.history_entry: TransitionRecord | None = None

    @property
    def success(self) -> bool:
        return self.is_valid

    @property
    def new_state(self) -> WorkflowState:
        return self.workflow.state


@dataclass(frozen=True)
class BudgetWorkflow:
    request: BudgetRequest = field(default_factory=BudgetRequest)
    state: WorkflowState = WorkflowState.DRAFT
    history: tuple[TransitionRecord, ...] = ()

    @property
    def definition(self) -> StateDefinition:
        return STATE_DEFINITIONS[self.state]

    @property
    def phase(self) -> Phase | None:
        return self.definition.phase

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def next_states(self) -> tuple[WorkflowState, ...]:
        return self.definition.allowed

    def next_state(self) -> WorkflowState | None:
        """Primary (first listed) next state, None when terminal."""
        allowed = self.definition.allowed
        return allowed[0] if allowed else None

    def missing_fields(self, target: WorkflowState) -> list[str]:
        return [name for name in STATE_DEFINITIONS[target].required_fields
                if not getattr(self.request, name, None)]

    def with_request(self, **changes: Any) -> "BudgetWorkflow":
        """Copy of this workflow with updated request fields."""
        return replace(self, request=self.request.model_copy(update=changes))

    def transition(self, to_state: WorkflowState | str, actor: str | None = None,
                   approved_by: str | None = None, reason: str | None = None,
                   metadata: Mapping[str, Any] | None = None,
                   now: datetime | None = None) -> TransitionResult:
        """Attempt a move to ``to_state``.

        Checks, in order: the target is in the current state's allowed set,
        the target's required fields are populated on the request, and an
        approver is supplied when the target requires approval.
        """
        target = _parse_state(to_state)
        result = TransitionResult(self, target)
        result.allowed_transitions = self.definition.allowed

        if target is None:
            result.add_error(f"Invalid target state: {to_state}", sample=to_state)
            return result
        if target not in TRANSITIONS[self.state]:
            allowed = ", ".join(s.value for s in self.definition.allowed) or "none"
            result.add_error(
                f"Transition from {self.state.value} to {target.value} is not allowed. "
                f"Allowed transitions: {allowed}")
            return result

        for name in self.missing_fields(target):
            result.add_error(f"Required field '{name}' is missing for state {target.value}",
                             check_name="required_fields")
        if not result.is_valid:
            return result

        definition = STATE_DEFINITIONS[target]
        result.requires_approval = definition.approval_required
        result.approval_level = definition.approval_level
        if definition.approval_required and not approved_by:
            result.add_error(
                f"Transition to {target.value} requires approval by {definition.approval_level}",
                check_name="approval")
            return result

        record = TransitionRecord(
            sequence=len(self.history) + 1,
            from_state=self.state,
            to_state=target,
            actor=actor or approved_by or "system",
            approved_by=approved_by,
            timestamp=now or datetime.now(timezone.utc),
            reason=reason,
            metadata=MappingProxyType(dict(metadata or {})),
        )
        result.history_entry = record
        result.workflow = replace(self, state=target, history=self.history + (record,))
        result.mark_check_passed("workflow_transition")
        logger.info("Budget request %s moved %s -> %s", self.request.id, self.state.value,
                    target.value, extra={"workflow_state": target.value})
        return result

    def get_progress(self) -> float:
        """Percent through the canonical sequence; 0 for REJECTED and CANCELLED."""
        state = _PROGRESS_ALIASES.get(self.state, self.state)
        if state not in PROGRESS_SEQUENCE:
            return 0.0
        index = PROGRESS_SEQUENCE.index(state)
        return round((index + 1) / len(PROGRESS_SEQUENCE) * 100, 2)

    def to_dict(self) -> dict:
        return {
            "request": self.request.model_dump(mode="json"),
            "state": self.state.value,
            "phase": self.phase.value if self.phase else None,
            "progress": self.get_progress(),
            "history": [h.to_dict() for h in self.history],
        }


# ── Reporting ─────────────────────────────────────────────────────────────────

@dataclass
class WorkflowReport:
    total: int = 0
    by_phase: dict = field(default_factory=lambda: {p.value: 0 for p in Phase})
    by_state: dict = field(default_factory=dict)
    total_amount: Decimal = Decimal(0)
    average_progress: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_phase": dict(self.by_phase),
            "by_state": dict(self.by_state),
            "total_amount": str(self.total_amount),
            "average_progress": self.average_progress,
        }


def workflow_report(workflows: Iterable[BudgetWorkflow]) -> WorkflowReport:
    report = WorkflowReport()
    progress_total = 0.0
    for wf in workflows:
        report.total += 1
        if wf.phase is not None:
            report.by_phase[wf.phase.value] += 1
        report.by_state[wf.state.value] = report.by_state.get(wf.state.value, 0) + 1
        report.total_amount += wf.request.amount
        progress_total += wf.get_progress()
    if report.total:
        report.average_progress = round(progress_total / report.total, 2)
    return report


validate_transition_table()
