"""
Tests for CSV, Excel and text report export
"""

import csv
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rehab_roster.constraints import ConstraintSeverity, ConstraintViolation
from rehab_roster.engine import AllocationResult, ProgramDeduction, TherapistAllocation
from rehab_roster.exporter import (
    allocation_rows,
    export_allocation_report,
    export_to_csv,
    export_to_excel,
    team_slot_grid,
)
from rehab_roster.schedule_config import TEAMS


@pytest.fixture
def result():
    allocations = [
        TherapistAllocation(staff_id="rpt-fo", team="FO", fte=0.75,
                            slot1="FO", slot2="FO", slot3="FO", slot4="FO",
                            special_program_ids=("prog-robotic",)),
        TherapistAllocation(staff_id="spt-1", team="SMM", fte=0.5,
                            slot1="SMM", slot2="SMM", spt_slot_display="AM"),
        TherapistAllocation(staff_id="spt-sup", team="MC", fte=1.0,
                            slot1="MC", slot2="MC", slot3="MC", slot4="MC",
                            is_substitute_team_head=True),
        TherapistAllocation(staff_id="rpt-mc", team="GMC", fte=0.5,
                            slot1="GMC", slot2="GMC", slot3="GMC", slot4="GMC",
                            is_manual_override=True, manual_override_note="cover"),
    ]
    totals = {t: 0.0 for t in TEAMS}
    for a in allocations:
        totals[a.team] += a.fte
    return AllocationResult(
        allocations=allocations,
        fte_per_team=totals,
        total_fte_on_duty=sum(totals.values()),
        deductions=[ProgramDeduction("prog-robotic", "FO", "rpt-fo", 0.25, 0.25, ("rpt-fo",))],
        weekday="mon",
    )


@pytest.fixture
def names():
    return {"rpt-fo": "Ben Lau", "spt-1": "Mei Cheung"}


class TestRows:

    def test_allocation_rows(self, result, names):
        rows = allocation_rows(result, names)
        assert rows[0]["name"] == "Ben Lau"
        assert rows[0]["special_program_ids"] == "prog-robotic"
        assert rows[2]["name"] == "spt-sup"
        assert rows[1]["spt_slot_display"] == "AM"

    def test_team_slot_grid(self, result, names):
        grid = team_slot_grid(result, names)
        assert set(grid) == set(TEAMS)
        assert grid["SMM"]["09:00-10:30"] == "Mei Cheung"
        assert grid["SMM"]["15:00-16:30"] == ""
        assert grid["FO"]["15:00-16:30"] == "Ben Lau"


class TestFiles:

    def test_csv(self, result, names, tmp_path):
        path = tmp_path / "out" / "alloc.csv"
        export_to_csv(result, path, staff_names=names)
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 4
        assert rows[0]["staff_id"] == "rpt-fo"
        assert rows[0]["fte"] == "0.75"
        assert rows[1]["slot3"] == ""

    def test_excel(self, result, names, tmp_path):
        from openpyxl import load_workbook

        path = tmp_path / "alloc.xlsx"
        export_to_excel(result, path, staff_names=names)
        wb = load_workbook(path)
        assert wb.sheetnames == ["Allocations", "Team Slots"]
        assert wb["Allocations"]["A1"].value == "name"
        assert wb["Allocations"]["A2"].value == "Ben Lau"
        assert wb["Team Slots"]["A1"].value == "Team"
        assert wb["Team Slots"].max_row == len(TEAMS) + 1

    def test_report(self, result, names, tmp_path):
        violation = ConstraintViolation(
            severity=ConstraintSeverity.SOFT,
            constraint_type="UNSTAFFED_TEAM",
            description="DRO has no therapist FTE",
            team="DRO",
        )
        path = tmp_path / "report.txt"
        text = export_allocation_report(result, path, for_date="2026-03-02",
                                        violations=[violation], staff_names=names)
        assert path.read_text() == text
        assert "THERAPIST ALLOCATION REPORT" in text
        assert "2026-03-02" in text
        assert "prog-robotic" in text
        assert "substitute head of MC" in text
        assert "manual → GMC 0.50  (cover)" in text
        assert "UNSTAFFED_TEAM" in text

    def test_report_without_violations_section(self, result, tmp_path):
        text = export_allocation_report(result, tmp_path / "r.txt")
        assert "Constraint Violations" not in text
