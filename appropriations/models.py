"""
Input records for the compliance engine.

Callers build these from user input or persistence rows and hand them to the
validators.  Optional fields default to None so partially populated records
are accepted; missing data is reported by the validators as an input error
rather than rejected here.

Money fields accept Decimals, ints, floats, or strings carrying currency
symbols, thousands separators and K/M/B suffixes ("$1,250K").
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from utils.strings import safe_decimal


def _coerce_money(value: Any) -> Any:
    if value is None or isinstance(value, Decimal):
        return value
    parsed = safe_decimal(value)
    # Unparseable input is passed through so pydantic reports it
    return value if parsed is None else parsed


Money = Annotated[Decimal, BeforeValidator(_coerce_money)]
OptionalMoney = Annotated[Decimal | None, BeforeValidator(_coerce_money)]


class ContractType(str, Enum):
    SEVERABLE_SERVICE = "SEVERABLE_SERVICE"
    NON_SEVERABLE_SERVICE = "NON_SEVERABLE_SERVICE"
    SUPPLIES = "SUPPLIES"
    EQUIPMENT = "EQUIPMENT"


class FundingSource(str, Enum):
    APPROPRIATED = "APPROPRIATED"
    REIMBURSABLE = "REIMBURSABLE"
    GIFT = "GIFT"
    DONATION = "DONATION"
    PRIVATE_FUNDS = "PRIVATE_FUNDS"
    NON_FEDERAL = "NON_FEDERAL"


# Sources that augment an appropriation from outside the Treasury
AUGMENTING_SOURCES = frozenset({
    FundingSource.GIFT,
    FundingSource.DONATION,
    FundingSource.PRIVATE_FUNDS,
    FundingSource.NON_FEDERAL,
})


# ── Obligation ────────────────────────────────────────────────────────────────

class PerformancePeriod(BaseModel):
    """Contract performance window (both ends inclusive)."""
    model_config = ConfigDict(frozen=True)

    start: date = Field(..., description="First day of performance", examples=["2023-10-01"])
    end: date | None = Field(None, description="Last day of performance", examples=["2024-09-30"])


class PurposeRestriction(BaseModel):
    """A purpose restriction attached to an obligation by statute or policy."""
    model_config = ConfigDict(frozen=True)

    prohibited: tuple[str, ...] = Field((), description="Purposes expressly prohibited")
    required: tuple[str, ...] = Field((), description="Purposes the obligation should be one of")
    reference: str = Field("", description="Citation imposing the restriction",
                           examples=["FY2024 DoD Appropriations Act § 8012"])


class Obligation(BaseModel):
    """A proposed or recorded obligation of appropriated funds."""
    model_config = ConfigDict(frozen=True)

    id: str | None = Field(None, description="Transaction identifier", examples=["OBL-2024-0001"])
    amount: OptionalMoney = Field(None, description="Obligation amount in dollars", examples=["125000"])
    appropriation_type: str | None = Field(None, description="Appropriation category code", examples=["OM"])
    sub_type: str | None = Field(None, description="Procurement subtype", examples=["SHIPBUILDING"])
    fiscal_year: int | None = Field(None, description="Fiscal year of the appropriation", examples=[2024])
    purpose: str | None = Field(None, description="Purpose tag", examples=["supplies"])
    description: str | None = Field(None, description="Free-text description")
    justification: str | None = Field(None, description="Documentation supporting the purpose")
    obligation_date: date | None = Field(None, description="Date the obligation is incurred")
    need_date: date | None = Field(None, description="Date the bona fide need arises")
    performance_period: PerformancePeriod | None = None
    contract_type: ContractType | None = None

    # Bona fide need exceptions
    is_stock_item: bool = Field(False, description="Stock/inventory replenishment")
    lead_time_months: int | None = Field(None, description="Production lead time in months")
    lead_time_justification: str | None = None
    multi_year_authority: str | None = Field(None, description="Cited multi-year contract authority")
    continuing_resolution_authority: str | None = Field(
        None, description="Cited continuing-resolution authority")

    restrictions: tuple[PurposeRestriction, ...] = ()

    # Anti-Deficiency Act inputs
    funding_source: FundingSource | None = None
    augmentation_authority: str | None = Field(None, description="Statute permitting augmentation")
    is_service: bool = False
    compensated: bool = True
    is_emergency: bool = False
    emergency_justification: str | None = None
    appropriation_date: date | None = Field(None, description="Date the appropriation became available")
    payment_date: date | None = None
    advance_payment_authority: str | None = None

    # Commingling inputs
    obligation_id: str | None = Field(None, description="Parent obligation for line-level grouping")
    activity_id: str | None = None
    incremental_funding: bool = Field(False, description="Incremental or multi-year funding flag")

    @field_validator("appropriation_type", "sub_type", mode="before")
    @classmethod
    def _upper_code(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @property
    def need_reference_date(self) -> date | None:
        """Need date, falling back to the start of performance."""
        if self.need_date is not None:
            return self.need_date
        if self.performance_period is not None:
            return self.performance_period.start
        return None


# ── Budget account ────────────────────────────────────────────────────────────

class BudgetAccount(BaseModel):
    """Point-in-time balances of one appropriation account."""
    model_config = ConfigDict(frozen=True)

    id: str | None = Field(None, description="Account identifier", examples=["2020-FY2024"])
    name: str | None = Field(None, description="Account title", examples=["Operation and Maintenance, Army"])
    appropriation_type: str | None = None
    fiscal_year: int | None = None
    appropriated: Money = Field(Decimal(0), description="Enacted budget authority")
    apportioned: OptionalMoney = Field(None, description="OMB apportionment, if any")
    allotted: OptionalMoney = Field(None, description="Agency allotment, if any")
    committed: Money = Decimal(0)
    obligated: Money = Decimal(0)
    expended: Money = Decimal(0)
    pre_commitments: Money = Field(Decimal(0), description="Reservations not yet committed")
    available: OptionalMoney = Field(None, description="Explicit available balance override")

    def balance_errors(self) -> list[str]:
        """Input errors for balances that must not be negative."""
        errors = []
        for name in ("appropriated", "apportioned", "allotted", "committed",
                     "obligated", "expended"):
            value = getattr(self, name)
            if value is not None and value < 0:
                errors.append(f"Budget account {name} balance cannot be negative ({value})")
        return errors

    def available_balance(self) -> Decimal:
        """Explicit override, else appropriated - obligated - committed."""
        if self.available is not None:
            return self.available
        return self.appropriated - self.obligated - self.committed

    def controlling_limit(self) -> tuple[Decimal, str]:
        """Tightest non-null ceiling and its name."""
        limit, limit_type = self.appropriated, "APPROPRIATION"
        if self.apportioned is not None and self.apportioned < limit:
            limit, limit_type = self.apportioned, "APPORTIONMENT"
        if self.allotted is not None and self.allotted < limit:
            limit, limit_type = self.allotted, "ALLOTMENT"
        return limit, limit_type


# ── Apportionment ─────────────────────────────────────────────────────────────

class ApportionmentFootnote(BaseModel):
    """An OMB apportionment footnote restricting activities."""
    model_config = ConfigDict(frozen=True)

    type: str = Field("PROHIBITED", description="PROHIBITED or ADVISORY")
    activities: tuple[str, ...] = ()
    footnote: str = Field("", description="Footnote reference", examples=["A1"])


class ApportionmentRecord(BaseModel):
    """OMB apportionment (SF 132) line supplied for §1517 checks."""
    model_config = ConfigDict(frozen=True)

    category: str | None = Field(None, description="'A' (quarterly) or 'B' (other periods/purposes)")
    amount: OptionalMoney = None
    period_start: date | None = None
    period_end: date | None = None
    footnotes: tuple[ApportionmentFootnote, ...] = ()


# ── Multi-year funding entries ────────────────────────────────────────────────

class FundingEntry(BaseModel):
    """One fiscal year's funding line for a multi-year program."""
    model_config = ConfigDict(frozen=True)

    fiscal_year: int
    appropriation_type: str = "PROCUREMENT"
    sub_type: str | None = None
    amount: Money = Decimal(0)
    obligated: Money = Decimal(0)
    expended: Money = Decimal(0)

    @field_validator("appropriation_type", "sub_type", mode="before")
    @classmethod
    def _upper_code(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value


class ContractFunding(BaseModel):
    """Cost and authority data for a contract funded across fiscal years."""
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    total_cost: OptionalMoney = Field(None, description="Total contract cost", examples=["5000000"])
    initial_funding: OptionalMoney = Field(None, description="Amount funded at award")
    incremental_funding_authority: str | None = Field(
        None, description="Cited authority permitting incremental funding")
    performance_period: PerformancePeriod | None = None
    appropriation_type: str = "PROCUREMENT"
    contract_type: ContractType | None = None
    multi_year_authority: str | None = None
    estimated_savings: OptionalMoney = None
    contract_years: int | None = None
    cancellation_ceiling: OptionalMoney = None

    @field_validator("appropriation_type", mode="before")
    @classmethod
    def _upper_code(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or "PROCUREMENT"
        return value


# ── Execution snapshots ───────────────────────────────────────────────────────

class MonthlyExecution(BaseModel):
    """Cumulative obligation and expenditure totals at the end of a month."""
    model_config = ConfigDict(frozen=True)

    month: str = Field(..., description="Month label", examples=["2024-03"])
    obligated: Money = Decimal(0)
    expended: Money = Decimal(0)
