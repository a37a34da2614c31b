"""
Tests for config loading (staff CSV, JSON inputs, previous-day persistence)
"""

import json
import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rehab_roster.config import (
    get_config,
    load_manual_overrides,
    load_previous_allocations,
    load_special_programs,
    load_spt_allocations,
    load_staff,
    save_previous_allocations,
)

HEADER = "id,name,rank,team,floating,status,fte,leave_type,is_available,available_slots,special_program,buffer_fte\n"


def write_staff(tmp_path, *rows):
    path = tmp_path / "staff.csv"
    path.write_text(HEADER + "".join(r + "\n" for r in rows))
    return path


# ---------------------------------------------------------------------------
# Staff roster
# ---------------------------------------------------------------------------

class TestLoadStaff:

    def test_sample_roster(self):
        staff = load_staff()
        ids = [s["id"] for s in staff]
        assert len(ids) == len(set(ids))
        assert "spt-1" in ids

        by_id = {s["id"]: s for s in staff}
        assert by_id["rpt-smm"]["available_slots"] == [1, 2]
        assert by_id["rpt-smm"]["leave_type"] == "half day VL"
        assert by_id["appt-mc"]["is_available"] is False
        assert by_id["pca-float-1"]["floating"] is True
        assert by_id["spt-1"]["team"] is None

    def test_parses_lists_and_defaults(self, tmp_path):
        path = write_staff(
            tmp_path,
            "r1,Rae,RPT,FO,,,0.75,,,2|3,Robotic;CRP,",
            "b1,Bo,PCA,,yes,buffer,,,,,,0.5",
        )
        r1, b1 = load_staff(path)
        assert r1["fte"] == pytest.approx(0.75)
        assert r1["status"] == "active"
        assert r1["is_available"] is True
        assert r1["floating"] is False
        assert r1["available_slots"] == [2, 3]
        assert r1["special_program"] == ["Robotic", "CRP"]
        assert r1["leave_type"] is None

        assert b1["fte"] is None
        assert b1["status"] == "buffer"
        assert b1["floating"] is True
        assert b1["buffer_fte"] == pytest.approx(0.5)
        assert b1["available_slots"] == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_staff(tmp_path / "nope.csv")

    def test_duplicate_id_raises(self, tmp_path):
        path = write_staff(tmp_path, "r1,A,RPT,FO,,,1,,,,,", "r1,B,RPT,SMM,,,1,,,,,")
        with pytest.raises(ValueError, match="Duplicate staff id"):
            load_staff(path)

    def test_fte_out_of_range_raises(self, tmp_path):
        path = write_staff(tmp_path, "r1,A,RPT,FO,,,1.5,,,,,")
        with pytest.raises(ValueError, match="outside 0..1"):
            load_staff(path)

    def test_bad_slot_raises(self, tmp_path):
        path = write_staff(tmp_path, "r1,A,RPT,FO,,,1,,,1;5,,")
        with pytest.raises(ValueError, match="available_slots"):
            load_staff(path)


# ---------------------------------------------------------------------------
# JSON inputs
# ---------------------------------------------------------------------------

class TestJsonInputs:

    def test_sample_files(self):
        assert {p["id"] for p in load_special_programs()} >= {"prog-robotic", "prog-crp"}
        assert any(r["staff_id"] == "spt-1" for r in load_spt_allocations())
        assert "rpt-mc" in load_manual_overrides()

    def test_optional_files_missing_load_empty(self, tmp_path, caplog):
        assert load_special_programs(tmp_path / "p.json") == []
        assert load_spt_allocations(tmp_path / "s.json") == []
        assert load_manual_overrides(tmp_path / "m.json") == {}
        assert load_previous_allocations(tmp_path / "prev.json") == []
        assert "not found" in caplog.text

    def test_wrong_shape_raises(self, tmp_path):
        path = tmp_path / "m.json"
        path.write_text(json.dumps([{"team": "FO"}]))
        with pytest.raises(ValueError, match="JSON dict"):
            load_manual_overrides(path)

    def test_previous_round_trip(self, tmp_path):
        path = tmp_path / "state" / "prev.json"
        rows = [{"staff_id": "spt-1", "team": "FO"}]
        save_previous_allocations(rows, date(2026, 3, 2), path)
        assert json.loads(path.read_text())["date"] == "2026-03-02"
        assert load_previous_allocations(path) == rows


def test_get_config():
    cfg = get_config()
    assert cfg["teams"][0] == "FO"
    assert cfg["weekdays"] == ["mon", "tue", "wed", "thu", "fri"]
    assert cfg["program_fallback_policy"] == "max_requested"
