"""
staff.py — Staff record helpers

Staff rows are plain dicts, one per person, loaded fresh for each planning
run and never mutated by the engines:

  id               opaque string key
  name             display name
  rank             SPT | APPT | RPT | PCA | workman
  team             home team or None
  floating         PCA only: no fixed team
  status           active | inactive | buffer
  fte              day capacity after leave, 0..1
  leave_type       None / "none" / "on duty..." means fully on duty
  is_available     False drops the person from the day entirely
  available_slots  optional subset of 1..4 for partial-day presence
  special_program  optional list of program NAMES the person is linked to
  buffer_fte       buffer staff only: capacity for the day
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from rehab_roster.schedule_config import (
    LEAVE_TYPE_FTE_MAP,
    ON_DUTY_LEAVE_LABELS,
    RANK_PCA,
    RANK_SPT,
    STATUS_BUFFER,
    TEAM_HEAD_RANK,
    TEAMS,
    THERAPIST_RANKS,
)
from rehab_roster.slots import clean_slots

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------------

def is_on_duty_leave_type(leave_type: Any) -> bool:
    """
    True when a leave type means "on duty / no leave".

    Stored data uses None for on duty, but older rows carry strings such as
    'none' or 'On duty (no leave)'.
    """
    if leave_type is None:
        return True
    if not isinstance(leave_type, str):
        return False
    s = leave_type.strip().lower()
    return s in ON_DUTY_LEAVE_LABELS or s.startswith("on duty")


def default_fte_for_leave(leave_type: Any) -> Optional[float]:
    """Default FTE remaining for a leave type, or None if it has no default."""
    if is_on_duty_leave_type(leave_type):
        return 1.0
    return LEAVE_TYPE_FTE_MAP.get(str(leave_type).strip())


# ---------------------------------------------------------------------------
# Record accessors
# ---------------------------------------------------------------------------

def staff_fte(staff: Dict[str, Any]) -> float:
    """Day capacity for a staff row; falls back to the leave-type default."""
    raw = staff.get("fte")
    if raw is not None:
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning(f"Staff {staff.get('id')}: unreadable fte={raw!r}")
    default = default_fte_for_leave(staff.get("leave_type"))
    return 1.0 if default is None else default


def is_available(staff: Optional[Dict[str, Any]]) -> bool:
    if staff is None:
        return False
    return bool(staff.get("is_available", True))


def available_slots(staff: Optional[Dict[str, Any]]) -> List[int]:
    if staff is None:
        return []
    return clean_slots(staff.get("available_slots"))


def is_specialist(staff: Optional[Dict[str, Any]]) -> bool:
    return staff is not None and staff.get("rank") == RANK_SPT


def is_therapist(staff: Optional[Dict[str, Any]]) -> bool:
    return staff is not None and staff.get("rank") in THERAPIST_RANKS


def is_floating_pca(staff: Optional[Dict[str, Any]]) -> bool:
    return staff is not None and staff.get("rank") == RANK_PCA and bool(staff.get("floating"))


def is_buffer(staff: Optional[Dict[str, Any]]) -> bool:
    return staff is not None and staff.get("status") == STATUS_BUFFER


def index_staff(staff: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Map staff id → row. Later duplicates of an id are ignored."""
    out: Dict[str, Dict[str, Any]] = {}
    for s in staff:
        sid = s.get("id")
        if not sid:
            continue
        if sid in out:
            logger.warning(f"Duplicate staff id {sid!r} — keeping first row")
            continue
        out[sid] = s
    return out


# ---------------------------------------------------------------------------
# Team heads
# ---------------------------------------------------------------------------

def is_on_team_today(staff: Dict[str, Any]) -> bool:
    """Home team set, available and with FTE > 0."""
    return bool(staff.get("team")) and is_available(staff) and staff_fte(staff) > 0


def teams_without_heads(staff: Iterable[Dict[str, Any]]) -> List[str]:
    """
    Teams (in TEAMS order) with no available team-head-rank staff today.
    """
    headed = {
        s["team"] for s in staff
        if s.get("rank") == TEAM_HEAD_RANK and is_on_team_today(s)
    }
    return [t for t in TEAMS if t not in headed]
