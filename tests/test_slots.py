"""
Tests for the time-slot model (AM/PM split, AND/OR modes, slot FTE, rounding)
and the standalone validation predicates
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rehab_roster.slots import (
    assign_slot_teams,
    clean_slots,
    effective_slots,
    get_slot_time,
    granted_slots,
    normalize_slot_modes,
    restrict_slots,
    round_down_to_quarter,
    round_to_nearest_quarter,
    round_to_quarter_with_midpoint,
    slot_display,
    slots_fte,
    split_am_pm,
)
from rehab_roster.validation import (
    validate_fte,
    validate_fte_sum,
    validate_slot,
    validate_slots,
    validate_team,
)


class TestSlotSets:

    def test_clean_slots_drops_invalid_and_sorts(self):
        assert clean_slots([4, "2", 9, None, 2]) == [2, 4]

    def test_clean_slots_empty(self):
        assert clean_slots(None) == []

    def test_split_am_pm(self):
        assert split_am_pm([4, 1, 3]) == ([1], [3, 4])

    def test_restrict_with_no_availability_is_whole_day(self):
        assert restrict_slots([1, 2, 3, 4], []) == [1, 2, 3, 4]

    def test_restrict_intersects(self):
        assert restrict_slots([1, 2, 3, 4], [2, 3]) == [2, 3]


class TestSlotModes:

    def test_legacy_string_applies_to_both_halves(self):
        assert normalize_slot_modes("or") == {"am": "OR", "pm": "OR"}

    def test_dict_defaults_unknown_to_and(self):
        assert normalize_slot_modes({"am": "or", "pm": "xyz"}) == {"am": "OR", "pm": "AND"}

    def test_none_is_and_and(self):
        assert normalize_slot_modes(None) == {"am": "AND", "pm": "AND"}

    def test_and_counts_every_selected_slot(self):
        assert effective_slots([1, 2, 3], {"am": "AND", "pm": "AND"}) == {"am": 2, "pm": 1, "total": 3}

    def test_or_counts_one_per_half(self):
        assert effective_slots([1, 2, 3, 4], {"am": "OR", "pm": "OR"}) == {"am": 1, "pm": 1, "total": 2}

    def test_or_with_empty_half_counts_zero(self):
        assert effective_slots([3, 4], {"am": "OR", "pm": "OR"})["am"] == 0

    def test_slots_fte(self):
        assert slots_fte([1, 2, 3, 4]) == pytest.approx(1.0)
        assert slots_fte([1, 2, 3, 4], {"am": "OR", "pm": "AND"}) == pytest.approx(0.75)


class TestGrantedSlots:

    def test_or_keeps_first_slot_only(self):
        assert granted_slots([1, 2, 3, 4], {"am": "OR", "pm": "AND"}) == [1, 3, 4]

    def test_availability_applies_before_mode(self):
        assert granted_slots([1, 2, 3, 4], {"am": "OR", "pm": "OR"}, [2, 3]) == [2, 3]

    def test_assign_slot_teams_respects_availability(self):
        teams = assign_slot_teams([1, 2, 3, 4], None, "FO", [1, 2])
        assert teams == {"slot1": "FO", "slot2": "FO", "slot3": None, "slot4": None}

    def test_granted_count_matches_fte(self):
        modes = {"am": "OR", "pm": "AND"}
        granted = granted_slots([1, 2, 4], modes)
        assert len(granted) * 0.25 == pytest.approx(slots_fte([1, 2, 4], modes))


class TestDisplay:

    def test_slot_display(self):
        assert slot_display([1, 2, 3]) == "AM+PM"
        assert slot_display([2]) == "AM"
        assert slot_display([3]) == "PM"
        assert slot_display([]) is None

    def test_slot_time(self):
        assert get_slot_time(1) == "09:00-10:30"
        assert get_slot_time(4) == "15:00-16:30"


class TestRounding:

    @pytest.mark.parametrize("value, expected", [
        (0.625, 0.5),
        (0.63, 0.75),
        (1.03, 1.0),
        (0.1, 0.0),
        (0.2, 0.25),
        (0.0, 0.0),
    ])
    def test_midpoint_rounding(self, value, expected):
        assert round_to_quarter_with_midpoint(value) == pytest.approx(expected)

    def test_nearest_quarter_rounds_half_up(self):
        assert round_to_nearest_quarter(0.125) == pytest.approx(0.25)
        assert round_to_nearest_quarter(1.37) == pytest.approx(1.25)

    def test_round_down(self):
        assert round_down_to_quarter(0.7) == pytest.approx(0.5)
        assert round_down_to_quarter(0.75) == pytest.approx(0.75)


class TestValidation:

    def test_validate_fte(self):
        assert validate_fte(0) and validate_fte(1) and validate_fte(0.5)
        assert not validate_fte(-0.1)
        assert not validate_fte(1.01)
        assert not validate_fte(float("nan"))
        assert not validate_fte("0.5")
        assert not validate_fte(True)

    def test_validate_fte_sum(self):
        assert validate_fte_sum([{"fte": 0.5}, {"fte": 0.5}])
        assert not validate_fte_sum([{"fte": 0.75}, {"fte": 0.5}])

    def test_validate_slot(self):
        assert validate_slot(1) and validate_slot(4) and validate_slot(2.0)
        assert not validate_slot(0)
        assert not validate_slot(5)
        assert not validate_slot(1.5)
        assert not validate_slot("1")
        assert validate_slots([1, 3])
        assert not validate_slots([1, 7])

    def test_validate_team(self):
        assert validate_team("FO")
        assert not validate_team("XX")
        assert not validate_team(None)
