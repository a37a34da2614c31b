"""
config.py — Configuration & Loading for the Rehab Roster Engine

Loads the staff roster, special programs, SPT allocation rows, manual
overrides and the previous day's allocations from config/.

Staff roster (staff.csv) columns:
  id, name, rank, team, floating, status, fte, leave_type, is_available,
  available_slots, special_program, buffer_fte

List columns (available_slots, special_program) accept ';', ',' or '|'
separators, so "1;2" and "Robotic,CRP" both parse.

Required files raise; optional files log a warning and load as empty.
"""

import json
import logging
import math
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from rehab_roster.schedule_config import (
    DEFAULT_SLOT_MODES,
    LEAVE_TYPE_FTE_MAP,
    PROGRAM_FALLBACK_POLICY,
    SLOT_TIMES,
    STATUS_ACTIVE,
    TEAMS,
    WEEKDAYS,
)
from rehab_roster.validation import validate_fte, validate_slots

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_STAFF_PATH        = DEFAULT_CONFIG_DIR / "staff.csv"
DEFAULT_PROGRAMS_PATH     = DEFAULT_CONFIG_DIR / "special_programs.json"
DEFAULT_SPT_PATH          = DEFAULT_CONFIG_DIR / "spt_allocations.json"
DEFAULT_OVERRIDES_PATH    = DEFAULT_CONFIG_DIR / "manual_overrides.json"
DEFAULT_PREVIOUS_PATH     = DEFAULT_CONFIG_DIR / "previous_allocations.json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _parse_bool(value: Any, default: bool) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("yes", "true", "1", "y")


def _parse_list(raw: Any) -> List[str]:
    """Split a ';' / ',' / '|' separated cell into stripped tokens."""
    if _is_blank(raw):
        return []
    s = str(raw).replace(";", ",").replace("|", ",")
    return [p.strip() for p in s.split(",") if p.strip()]


def _parse_slots(raw: Any, staff_id: str) -> List[int]:
    tokens = _parse_list(raw)
    try:
        slots = [int(float(t)) for t in tokens]
    except ValueError:
        raise ValueError(f"Staff {staff_id}: available_slots {raw!r} is not a slot list")
    if not validate_slots(slots):
        raise ValueError(f"Staff {staff_id}: available_slots {slots} outside 1..4")
    return slots


def _optional_str(value: Any) -> Optional[str]:
    return None if _is_blank(value) else str(value).strip()


def _optional_float(value: Any) -> Optional[float]:
    return None if _is_blank(value) else float(value)


def _load_json(path: Path, label: str, empty: Any) -> Any:
    if not path.exists():
        logger.warning(f"{label} not found: {path}. Using empty {type(empty).__name__}.")
        return empty
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, type(empty)):
        raise ValueError(f"{label} at {path} must be a JSON {type(empty).__name__}")
    return data


# ---------------------------------------------------------------------------
# Staff roster
# ---------------------------------------------------------------------------

def load_staff(staff_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """
    Load the staff roster from staff.csv.

    Returns a list of staff dicts in file order. Raises FileNotFoundError if
    the file is missing and ValueError on duplicate ids, FTE outside 0..1 or
    bad slot numbers.
    """
    import pandas as pd

    path = staff_path or DEFAULT_STAFF_PATH
    if not path.exists():
        raise FileNotFoundError(f"Staff file not found: {path}")

    df = pd.read_csv(path, dtype={"id": str})

    staff: List[Dict[str, Any]] = []
    seen = set()
    for _, row in df.iterrows():
        sid = str(row["id"]).strip()
        if sid in seen:
            raise ValueError(f"Duplicate staff id {sid!r} in {path}")
        seen.add(sid)

        fte = _optional_float(row.get("fte"))
        if fte is not None and not validate_fte(fte):
            raise ValueError(f"Staff {sid}: fte={fte} outside 0..1")

        person: Dict[str, Any] = {
            "id":              sid,
            "name":            str(row.get("name", sid)).strip(),
            "rank":            str(row["rank"]).strip(),
            "team":            _optional_str(row.get("team")),
            "floating":        _parse_bool(row.get("floating"), False),
            "status":          _optional_str(row.get("status")) or STATUS_ACTIVE,
            "fte":             fte,
            "leave_type":      _optional_str(row.get("leave_type")),
            "is_available":    _parse_bool(row.get("is_available"), True),
            "available_slots": _parse_slots(row.get("available_slots"), sid),
            "special_program": _parse_list(row.get("special_program")),
            "buffer_fte":      _optional_float(row.get("buffer_fte")),
        }
        staff.append(person)

    logger.info(f"Loaded {len(staff)} staff from {path}")
    return staff


# ---------------------------------------------------------------------------
# JSON inputs
# ---------------------------------------------------------------------------

def load_special_programs(programs_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """
    Load special programs:
      [{id, name, weekdays, staff_ids, fte_subtraction {staff: {weekday: fte}},
        therapist_preference_order {team: [staff ids]}, active}]
    """
    path = programs_path or DEFAULT_PROGRAMS_PATH
    programs = _load_json(path, "Special programs", [])
    for p in programs:
        unknown = [d for d in p.get("weekdays") or [] if d not in WEEKDAYS]
        if unknown:
            logger.warning(f"Program {p.get('id')}: unknown weekdays {unknown}")
    logger.info(f"Loaded {len(programs)} special programs from {path}")
    return programs


def load_spt_allocations(spt_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Load raw SPT allocation rows (duplicates collapsed later by the directory)."""
    path = spt_path or DEFAULT_SPT_PATH
    rows = _load_json(path, "SPT allocations", [])
    logger.info(f"Loaded {len(rows)} SPT allocation rows from {path}")
    return rows


def load_manual_overrides(overrides_path: Optional[Path] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Load manual overrides: {staff_id: [{team, fte, note?}, ...]}."""
    path = overrides_path or DEFAULT_OVERRIDES_PATH
    overrides = _load_json(path, "Manual overrides", {})
    logger.info(f"Loaded manual overrides for {len(overrides)} staff from {path}")
    return overrides


def load_previous_allocations(previous_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Load the previous working day's allocations ([{staff_id, team, ...}])."""
    path = previous_path or DEFAULT_PREVIOUS_PATH
    data = _load_json(path, "Previous allocations", {})
    allocations = data.get("allocations", [])
    logger.info(f"Loaded {len(allocations)} previous allocations from {path}")
    return allocations


def save_previous_allocations(
    allocations: List[Dict[str, Any]],
    for_date: date,
    previous_path: Optional[Path] = None,
) -> Path:
    """Persist today's allocations so tomorrow's run can prefer the same teams."""
    path = previous_path or DEFAULT_PREVIOUS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"date": for_date.isoformat(), "allocations": allocations}
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Saved {len(allocations)} allocations to {path}")
    return path


# ---------------------------------------------------------------------------
# Full config dict
# ---------------------------------------------------------------------------

def get_config() -> Dict[str, Any]:
    return {
        "teams":                   list(TEAMS),
        "weekdays":                list(WEEKDAYS),
        "slot_times":              SLOT_TIMES.copy(),
        "default_slot_modes":      DEFAULT_SLOT_MODES.copy(),
        "leave_type_fte":          LEAVE_TYPE_FTE_MAP.copy(),
        "program_fallback_policy": PROGRAM_FALLBACK_POLICY.value,
    }
