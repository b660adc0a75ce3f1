"""
Tests for appropriations/reporting.py — congressional exhibits, DD 1415,
quarterly reports and the budget book
"""
import re
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from appropriations.reporting import (
    CONGRESSIONAL_COMMITTEES,
    BudgetBookInput,
    BudgetJustificationInput,
    MilconExhibit,
    MilconExhibitInput,
    OMExhibit,
    OMExhibitInput,
    ProcurementExhibitInput,
    QuarterlyInput,
    RDTEExhibitInput,
    ReprogrammingInput,
    control_number,
    format_budget_justification,
    format_milcon_exhibit,
    format_om_exhibit,
    format_procurement_exhibit,
    format_quarterly_report,
    format_rdte_exhibit,
    format_reprogramming_action,
    generate_budget_book,
)

AS_OF = date(2024, 2, 5)


class TestBudgetJustification:
    def test_columns_and_change(self):
        exhibit = format_budget_justification(BudgetJustificationInput(
            fiscal_year=2025, appropriation_type="RDTE", title="Hypersonic test bed",
            amount=12_500_000, current_year_amount=10_000_000, prior_year_amount=9_000_000,
            goals=("Flight test by Q3",)), as_of=AS_OF)
        assert [(c.label, c.amount) for c in exhibit.fiscal_year_summary] == [
            ("FY2023 Actual", "$9,000K"),
            ("FY2024 Enacted", "$10,000K"),
            ("FY2025 Request", "$12,500K"),
        ]
        assert exhibit.change_amount == "$2,500K"
        assert exhibit.change_percentage == "25.00"
        assert exhibit.header.appropriation == "Research, Development, Test & Evaluation (RDT&E)"
        assert exhibit.header.submission_date == AS_OF
        assert exhibit.header.fiscal_year == "FY2025"
        assert exhibit.performance_goals == ["Flight test by Q3"]
        assert exhibit.program_element == "N/A"

    def test_new_start_has_no_percentage(self):
        exhibit = format_budget_justification(
            BudgetJustificationInput(fiscal_year=2025, amount="$1.5M"), as_of=AS_OF)
        assert exhibit.change_percentage == "N/A"
        assert exhibit.change_amount == "$1,500K"

    def test_datetime_as_of(self):
        exhibit = format_budget_justification(
            BudgetJustificationInput(fiscal_year=2025),
            as_of=datetime(2024, 2, 5, 17, 30, tzinfo=timezone.utc))
        assert exhibit.header.submission_date == AS_OF


class TestOMExhibit:
    def test_op5(self):
        exhibit = format_om_exhibit(OMExhibitInput(
            fiscal_year=2025, prior_year=800_000, current_year=900_000, budget_year=1_000_000,
            elements=({"name": "Depot maintenance", "amount": 400_000},),
            changes=("Flying hour increase",), civilian_fte=120))
        assert exhibit.exhibit == "OP-5"
        assert exhibit.total_change == "$100K"
        assert exhibit.columns[1].label == "FY2024 Estimate"
        assert exhibit.breakdown_by_element[0].amount == "$400K"
        assert exhibit.budget_activity.code == "BA-01"
        assert exhibit.civilian_fte == 120

    def test_decrease(self):
        exhibit = format_om_exhibit(OMExhibitInput(fiscal_year=2025, current_year=900_000,
                                                   budget_year=850_000))
        assert exhibit.total_change == "-$50K"


class TestProcurementExhibit:
    def test_p1(self):
        exhibit = format_procurement_exhibit(ProcurementExhibitInput(
            fiscal_year=2025, line_item="42", item_name="JLTV", quantity=100,
            unit_cost=450_000, total_cost=45_000_000, prior_year_funding=90_000_000,
            cost_to_complete=30_000_000,
            advance_procurement={"amount": 2_000_000, "description": "Long-lead armor"}))
        assert exhibit.nomenclature == "JLTV"
        assert exhibit.unit_cost == "$450K"
        assert exhibit.current_request == exhibit.total_cost == "$45,000K"
        assert exhibit.advance_procurement.label == "Long-lead armor"
        assert exhibit.advance_procurement.amount == "$2,000K"

    def test_without_advance_procurement(self):
        exhibit = format_procurement_exhibit(ProcurementExhibitInput(fiscal_year=2025))
        assert exhibit.advance_procurement is None


class TestRDTEExhibit:
    def test_r2(self):
        exhibit = format_rdte_exhibit(RDTEExhibitInput(
            fiscal_year=2025, program_element="0603270A", project_title="EW Technology",
            budget_year=7_250_000, schedule={"Milestone B": "FY2026 Q2"}))
        assert exhibit.exhibit == "R-2"
        assert exhibit.budget_year == "$7,250K"
        assert exhibit.schedule_profile == {"Milestone B": "FY2026 Q2"}


class TestMilconExhibit:
    def test_future_years(self):
        exhibit = format_milcon_exhibit(MilconExhibitInput(
            fiscal_year=2025, project_title="Hangar", total_cost=50_000_000,
            prior_year_funding=10_000_000, current_request=15_000_000,
            location={"installation": "Fort Liberty", "state": "NC"}, square_footage=85_000))
        assert exhibit.future_years == "$25,000K"
        assert exhibit.location.country == "USA"
        assert exhibit.title == "MILITARY CONSTRUCTION PROJECT DATA"


class TestReprogramming:
    DATA = ReprogrammingInput(
        fiscal_year=2025, appropriation_type="OM",
        from_program={"program_element": "0202020A", "title": "Base ops",
                      "current_amount": 10_000_000},
        to_program={"program_element": "0303030A", "title": "Cyber",
                    "current_amount": 2_000_000},
        amount=500_000, justification="Emergent cyber requirement")

    def test_dd1415(self):
        action = format_reprogramming_action(self.DATA, as_of=AS_OF)
        assert action.form == "DD 1415"
        assert action.from_program.change_amount == "-$500K"
        assert action.to_program.change_amount == "$500K"
        assert action.net_change == "$0K"
        assert action.appropriation == "Operations and Maintenance (O&M)"
        assert action.congressional_notification.committees == list(CONGRESSIONAL_COMMITTEES)
        assert action.submission_date == AS_OF

    def test_control_number_is_deterministic(self):
        first = format_reprogramming_action(self.DATA, as_of=AS_OF).control_number
        assert re.fullmatch(r"FY25-\d{4}", first)
        assert first == control_number(self.DATA)
        assert format_reprogramming_action(self.DATA, as_of=date(2030, 1, 1)).control_number \
            == first

    def test_explicit_control_number_kept(self):
        data = self.DATA.model_copy(update={"control_number": "FY25-0001"})
        assert format_reprogramming_action(data).control_number == "FY25-0001"
        assert control_number(data) == control_number(self.DATA)


class TestQuarterlyReport:
    def test_q2(self):
        report = format_quarterly_report(QuarterlyInput(
            fiscal_year=2025, quarter=2,
            appropriations=({"type": "OM", "appropriated": 1_000_000, "obligated": 750_000,
                             "expended": 300_000},
                            {"type": "RDTE"})), as_of=AS_OF)
        assert report.quarter == "Q2"
        assert (report.period_start, report.period_end) == (date(2025, 1, 1), date(2025, 3, 31))
        assert report.total_obligated == "$750K"
        om, rdte = report.by_appropriation
        assert (om.obligation_rate, om.expenditure_rate) == ("75.00%", "40.00%")
        assert (rdte.obligation_rate, rdte.expenditure_rate) == ("0%", "0%")

    @pytest.mark.parametrize("quarter", [0, 5])
    def test_quarter_bounds(self, quarter):
        with pytest.raises(ValidationError):
            QuarterlyInput(fiscal_year=2025, quarter=quarter)


class TestBudgetBook:
    def test_book_from_mixed_exhibits(self):
        book_input = BudgetBookInput.model_validate({
            "fiscal_year": 2025,
            "highlights": ["Readiness recovery"],
            "appropriations": [
                {"kind": "OP-5", "fiscal_year": 2025, "budget_year": 1_000_000},
                {"kind": "C-1", "fiscal_year": 2025, "project_title": "Hangar",
                 "total_cost": 5_000_000, "current_request": 2_000_000},
                {"kind": "BUDGET_JUSTIFICATION", "fiscal_year": 2025, "title": "Radar",
                 "appropriation_type": "PROCUREMENT", "amount": 500_000},
            ],
        })
        book = generate_budget_book(book_input, as_of=AS_OF)
        assert book.subtitle == "Fiscal Year 2025"
        assert book.executive_summary.total_request == "$3,500K"
        assert [s.section for s in book.sections] == ["OM", "MILCON", "PROCUREMENT"]
        assert isinstance(book.sections[0].exhibit, OMExhibit)
        assert isinstance(book.sections[1].exhibit, MilconExhibit)
        assert book.sections[1].title == "Hangar"
        assert book.submission_date == AS_OF

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            BudgetBookInput.model_validate({
                "fiscal_year": 2025, "appropriations": [{"kind": "Q-9", "fiscal_year": 2025}]})

    def test_serializes_to_json(self):
        book = generate_budget_book(BudgetBookInput(fiscal_year=2025), as_of=AS_OF)
        data = book.model_dump(mode="json")
        assert data["submission_date"] == "2024-02-05"
        assert data["sections"] == []
        assert data["executive_summary"]["total_request"] == "$0K"
