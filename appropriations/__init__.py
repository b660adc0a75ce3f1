"""Federal appropriations compliance and execution engine.

Validators return ``ValidationResult`` objects and never raise for a
business-rule failure; see ``appropriations.transaction.validate_transaction``
for the combined entry point.
"""

# Input records
from appropriations.models import (
    ApportionmentFootnote,
    ApportionmentRecord,
    BudgetAccount,
    ContractFunding,
    ContractType,
    FundingEntry,
    FundingSource,
    MonthlyExecution,
    Obligation,
    PerformancePeriod,
    PurposeRestriction,
)

# Fiscal calendar
from appropriations.fiscal_calendar import (
    current_fiscal_year,
    days_elapsed,
    days_remaining,
    fiscal_quarter,
    fiscal_year_end,
    fiscal_year_of,
    fiscal_year_start,
    format_fiscal_year,
    parse_fiscal_year,
    quarter_dates,
)

# Appropriation registry
from appropriations.registry import (
    AppropriationCategory,
    ProcurementSubtype,
    availability_years,
    calculate_expiration,
    is_expired,
    lookup,
    validate_appropriation_type,
)

# Compliance checks
from appropriations.colors_of_money import (
    recommend,
    validate_color_of_money_rules,
    validate_no_commingling,
    validate_purpose,
)
from appropriations.pta import validate_pta
from appropriations.bona_fide_need import (
    determine_service_severability,
    validate_bona_fide_need,
    validate_severable_services_contract,
)
from appropriations.anti_deficiency import (
    Severity,
    ViolationType,
    generate_violation_report,
    validate_anti_deficiency_act,
)
from appropriations.multi_year import (
    analyze_multi_year_funding,
    calculate_advance_procurement,
    calculate_incremental_funding_schedule,
    recommend_funding_phasing,
    validate_full_funding,
    validate_multi_year_contract,
)

# Workflow and execution
from appropriations.workflow import (
    BudgetRequest,
    BudgetWorkflow,
    Phase,
    WorkflowState,
    validate_budget_request,
)
from appropriations.execution import (
    ExecutionStatus,
    analyze_execution_trends,
    calculate_execution_metrics,
    calculate_fund_availability,
    generate_execution_report,
    track_expenditure_performance,
    track_obligation_performance,
)

# Orchestration
from appropriations.transaction import (
    TransactionResult,
    module_info,
    render_text_report,
    validate_transaction,
)

__version__ = "1.0.0"

__all__ = [
    # Input records
    "ApportionmentFootnote",
    "ApportionmentRecord",
    "BudgetAccount",
    "ContractFunding",
    "ContractType",
    "FundingEntry",
    "FundingSource",
    "MonthlyExecution",
    "Obligation",
    "PerformancePeriod",
    "PurposeRestriction",
    # Fiscal calendar
    "current_fiscal_year",
    "days_elapsed",
    "days_remaining",
    "fiscal_quarter",
    "fiscal_year_end",
    "fiscal_year_of",
    "fiscal_year_start",
    "format_fiscal_year",
    "parse_fiscal_year",
    "quarter_dates",
    # Registry
    "AppropriationCategory",
    "ProcurementSubtype",
    "availability_years",
    "calculate_expiration",
    "is_expired",
    "lookup",
    "validate_appropriation_type",
    # Compliance checks
    "recommend",
    "validate_color_of_money_rules",
    "validate_no_commingling",
    "validate_purpose",
    "validate_pta",
    "determine_service_severability",
    "validate_bona_fide_need",
    "validate_severable_services_contract",
    "Severity",
    "ViolationType",
    "generate_violation_report",
    "validate_anti_deficiency_act",
    "analyze_multi_year_funding",
    "calculate_advance_procurement",
    "calculate_incremental_funding_schedule",
    "recommend_funding_phasing",
    "validate_full_funding",
    "validate_multi_year_contract",
    # Workflow and execution
    "BudgetRequest",
    "BudgetWorkflow",
    "Phase",
    "WorkflowState",
    "validate_budget_request",
    "ExecutionStatus",
    "analyze_execution_trends",
    "calculate_execution_metrics",
    "calculate_fund_availability",
    "generate_execution_report",
    "track_expenditure_performance",
    "track_obligation_performance",
    # Orchestration
    "TransactionResult",
    "module_info",
    "render_text_report",
    "validate_transaction",
]
