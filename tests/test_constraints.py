"""
Tests for post-run constraint checks and roster validation
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rehab_roster.constraints import ConstraintChecker, ConstraintSeverity, ConstraintViolation
from rehab_roster.engine import AllocationContext, AllocationResult, TherapistAllocation, allocate_therapists
from rehab_roster.schedule_config import TEAMS
from rehab_roster.slots import whole_day_slot_teams

MONDAY = date(2026, 3, 2)


def head(team):
    return {"id": f"appt-{team.lower()}", "name": team, "rank": "APPT", "team": team,
            "fte": 1.0, "is_available": True}


def alloc(staff_id, team, fte=1.0, **extra):
    fields = dict(whole_day_slot_teams(team))
    fields.update(extra)
    return TherapistAllocation(staff_id=staff_id, team=team, fte=fte, **fields)


def result_of(allocations, weekday="mon"):
    totals = {t: 0.0 for t in TEAMS}
    for a in allocations:
        totals[a.team] = totals.get(a.team, 0.0) + a.fte
    return AllocationResult(allocations=allocations, fte_per_team=totals,
                            total_fte_on_duty=sum(totals.values()), weekday=weekday)


def types(violations):
    return [v.constraint_type for v in violations]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def staff():
    rows = [head(t) for t in TEAMS]
    rows.append({"id": "spt-1", "name": "Sam", "rank": "SPT", "team": None,
                 "fte": 1.0, "is_available": True})
    return rows


@pytest.fixture
def spt_rows():
    return [{
        "staff_id": "spt-1",
        "teams": ["FO", "SMM"],
        "active": True,
        "config_by_weekday": {"mon": {"enabled": True, "slots": [1, 2],
                                      "slot_modes": {"am": "AND", "pm": "AND"}}},
    }]


@pytest.fixture
def checker(staff, spt_rows):
    return ConstraintChecker(staff, [], spt_rows)


# ---------------------------------------------------------------------------
# Engine output passes
# ---------------------------------------------------------------------------

class TestEngineOutput:

    def test_clean_run_has_no_violations(self, staff, spt_rows, checker):
        result = allocate_therapists(AllocationContext(
            date=MONDAY, staff=staff, spt_allocations=spt_rows,
        ))
        hard, soft = checker.check_all(result)
        assert hard == []
        assert soft == []

    def test_manual_split_is_not_a_duplicate(self, checker):
        allocations = [
            alloc("appt-mc", "MC", 0.5, is_manual_override=True),
            alloc("appt-mc", "GMC", 0.5, is_manual_override=True),
        ]
        assert checker.check_duplicate_staff(allocations) == []


# ---------------------------------------------------------------------------
# Hard violations
# ---------------------------------------------------------------------------

class TestHardConstraints:

    def test_duplicate_staff(self, checker):
        violations = checker.check_duplicate_staff([alloc("appt-fo", "FO"), alloc("appt-fo", "SMM")])
        assert types(violations) == ["DUPLICATE_STAFF"]
        assert violations[0].severity == ConstraintSeverity.HARD
        assert violations[0].details["teams"] == ["FO", "SMM"]

    def test_negative_fte(self, checker):
        violations = checker.check_fte_bounds(result_of([alloc("appt-fo", "FO", -0.5)]))
        # the allocation and the FO team total
        assert types(violations) == ["NEGATIVE_FTE", "NEGATIVE_FTE"]

    def test_unknown_team(self, checker):
        violations = checker.check_teams([alloc("appt-fo", "XX")])
        assert types(violations) == ["UNKNOWN_TEAM"]

    def test_team_total_mismatch(self, checker):
        result = result_of([alloc("appt-fo", "FO")])
        result.fte_per_team["FO"] = 2.0
        violations = checker.check_team_totals(result)
        assert types(violations) == ["TEAM_TOTAL_MISMATCH"]
        assert violations[0].team == "FO"

    def test_specialist_slot_mismatch(self, checker):
        # configured for slots 1-2 but recorded as whole day
        violations = checker.check_specialist_slots(result_of([alloc("spt-1", "FO", 0.5)]))
        assert types(violations) == ["SLOT_MISMATCH"]

    def test_specialist_slots_match(self, checker):
        a = alloc("spt-1", "FO", 0.5, slot3=None, slot4=None)
        assert checker.check_specialist_slots(result_of([a])) == []

    def test_manual_specialist_skips_slot_check(self, checker):
        a = alloc("spt-1", "FO", 1.0, is_manual_override=True)
        assert checker.check_specialist_slots(result_of([a])) == []

    def test_program_multiple_runners(self, checker):
        allocations = [
            alloc("appt-fo", "FO", special_program_ids=("p1",)),
            alloc("spt-1", "FO", special_program_ids=("p1",)),
        ]
        assert types(checker.check_program_runners(allocations)) == ["PROGRAM_MULTIPLE_RUNNERS"]

    def test_same_program_in_two_teams_is_fine(self, checker):
        allocations = [
            alloc("appt-fo", "FO", special_program_ids=("p1",)),
            alloc("appt-smm", "SMM", special_program_ids=("p1",)),
        ]
        assert checker.check_program_runners(allocations) == []


# ---------------------------------------------------------------------------
# Soft violations
# ---------------------------------------------------------------------------

class TestSoftConstraints:

    def test_team_without_head(self, checker):
        allocations = [alloc(f"appt-{t.lower()}", t) for t in TEAMS if t != "MC"]
        violations = checker.check_team_heads(allocations)
        assert types(violations) == ["TEAM_WITHOUT_HEAD"]
        assert violations[0].team == "MC"
        assert violations[0].severity == ConstraintSeverity.SOFT

    def test_substitute_head_counts(self, checker):
        allocations = [alloc(f"appt-{t.lower()}", t) for t in TEAMS if t != "MC"]
        allocations.append(alloc("spt-1", "MC", is_substitute_team_head=True))
        assert checker.check_team_heads(allocations) == []

    def test_unstaffed_team(self, checker):
        result = result_of([alloc(f"appt-{t.lower()}", t) for t in TEAMS if t != "DRO"])
        assert [v.team for v in checker.check_unstaffed(result)] == ["DRO"]


# ---------------------------------------------------------------------------
# Violation formatting
# ---------------------------------------------------------------------------

def test_violation_str():
    v = ConstraintViolation(
        severity=ConstraintSeverity.HARD,
        constraint_type="UNKNOWN_TEAM",
        description="bad team",
        team="XX",
        staff="r1",
    )
    assert str(v) == "[HARD] UNKNOWN_TEAM | team=XX | staff=r1 | → bad team"


# ---------------------------------------------------------------------------
# Roster validation
# ---------------------------------------------------------------------------

class TestValidateRoster:

    def test_sample_roster_is_clean(self, checker):
        errors, warnings = checker.validate_roster()
        assert errors == []
        assert warnings == []

    def test_structural_errors(self):
        staff = [
            {"id": "a", "rank": "RPT", "team": "FO", "fte": 1.5},
            {"id": "a", "rank": "RPT", "team": "ZZ"},
            {"id": "b", "rank": "RPT", "team": "FO", "available_slots": [0, 5]},
        ]
        spt_rows = [{"staff_id": "ghost", "teams": ["FO", "QQ"]}]
        errors, warnings = ConstraintChecker(staff, [], spt_rows).validate_roster()

        assert any("Duplicate staff ids" in e for e in errors)
        assert any("a: FTE=1.5" in e for e in errors)
        assert any("b: invalid available slots" in e for e in errors)
        assert any("unknown team 'ZZ'" in w for w in warnings)
        assert any("ghost has no staff record" in w for w in warnings)
        assert any("unknown teams ['QQ']" in w for w in warnings)
