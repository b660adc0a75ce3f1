"""
Pytest fixtures for the appropriations compliance engine tests

Provides reusable account snapshots, obligations and a fixed evaluation
clock so no test depends on the system date.
"""

import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

_PROJECT_ROOT = str(Path(__file__).resolve().parent.parent)
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from appropriations.models import BudgetAccount, Obligation  # noqa: E402

# Mid-FY2024: 2024-03-15 is day 166 of a 366-day fiscal year
FIXED_NOW = datetime(2024, 3, 15, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def account():
    """FY2024 O&M account with 2M available against a 10M appropriation."""
    return BudgetAccount(
        id="2020-FY2024",
        name="Operation and Maintenance, Army",
        appropriation_type="OM",
        fiscal_year=2024,
        appropriated=Decimal("10000000"),
        obligated=Decimal("7000000"),
        committed=Decimal("1000000"),
        expended=Decimal("4000000"),
    )


@pytest.fixture
def obligation():
    """Valid O&M supplies purchase against FY2024 funds."""
    return Obligation(
        id="OBL-2024-0001",
        amount=Decimal("125000"),
        appropriation_type="OM",
        fiscal_year=2024,
        purpose="supplies",
        justification="Replenish depot consumables for Q3 training rotation",
        obligation_date=date(2024, 3, 15),
        need_date=date(2024, 4, 1),
    )
