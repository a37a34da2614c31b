"""
schedule_config.py — Teams, Weekdays, Slots & Allocation Policy

Static configuration shared by the allocation engine and the PCA step
reconciliation.

TEAMS
─────
  Eight ward-care teams. Order matters: it is the iteration order for
  per-team totals and the priority order when an RBIP supervisor is sent to
  the first team lacking a team head.

SLOTS
─────
  Four half-session slots per weekday:
    1  09:00-10:30   ┐ AM pair
    2  10:30-12:00   ┘
    3  13:30-15:00   ┐ PM pair
    4  15:00-16:30   ┘
  Each slot is worth 0.25 FTE.

RANKS
─────
  SPT   specialist therapist (load-balanced across teams, never defaulted)
  APPT  team-head therapist rank
  RPT   therapist
  PCA   patient-care assistant (floating or team-bound)
  workman  not scheduled by either engine

SPECIAL PROGRAM FALLBACK
────────────────────────
  When several enrolled therapists land in one team and the program has no
  preference order for that team, the legacy behaviour subtracts the
  maximum requested FTE from the first eligible therapist. The policy is
  selectable so callers can switch to "first eligible pays own amount".
"""

from enum import Enum
from typing import Dict, List, Tuple

# ---------------------------------------------------------------------------
# Teams & weekdays
# ---------------------------------------------------------------------------
TEAMS: Tuple[str, ...] = ("FO", "SMM", "SFM", "CPPC", "MC", "GMC", "NSM", "DRO")

WEEKDAYS: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri")

# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------
SLOTS: Tuple[int, ...] = (1, 2, 3, 4)
AM_SLOTS: Tuple[int, ...] = (1, 2)
PM_SLOTS: Tuple[int, ...] = (3, 4)
SLOT_FTE = 0.25

SLOT_TIMES: Dict[int, str] = {
    1: "09:00-10:30",
    2: "10:30-12:00",
    3: "13:30-15:00",
    4: "15:00-16:30",
}

SLOT_MODE_AND = "AND"
SLOT_MODE_OR = "OR"
DEFAULT_SLOT_MODES: Dict[str, str] = {"am": SLOT_MODE_AND, "pm": SLOT_MODE_AND}

# ---------------------------------------------------------------------------
# Ranks
# ---------------------------------------------------------------------------
RANK_SPT = "SPT"
RANK_APPT = "APPT"
RANK_RPT = "RPT"
RANK_PCA = "PCA"
RANK_WORKMAN = "workman"

THERAPIST_RANKS: Tuple[str, ...] = (RANK_SPT, RANK_APPT, RANK_RPT)
TEAM_HEAD_RANK = RANK_APPT

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_BUFFER = "buffer"

# ---------------------------------------------------------------------------
# Leave types → default FTE remaining
# ---------------------------------------------------------------------------
LEAVE_TYPE_FTE_MAP: Dict[str, float] = {
    "VL":                0.0,
    "half day VL":       0.5,
    "TIL":               0.0,
    "SDO":               0.0,
    "sick leave":        0.0,
    "study leave":       0.0,
    "medical follow-up": 0.0,
}

ON_DUTY_LEAVE_LABELS: Tuple[str, ...] = ("", "none", "on duty", "on duty (no leave)")


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

class ProgramFallbackPolicy(Enum):
    """How Phase D settles a contested team when no preference order exists."""
    MAX_REQUESTED = "max_requested"     # legacy: first eligible pays the group max
    FIRST_ELIGIBLE = "first_eligible"   # first eligible pays its own amount


PROGRAM_FALLBACK_POLICY = ProgramFallbackPolicy.MAX_REQUESTED

# Floating-point slack for FTE comparisons
FTE_EPSILON = 1e-6

# Override keys used by the PCA reconciliation
OVERRIDE_SLOT_KEY = "slotOverrides"
OVERRIDE_BUFFER_SLOT_KEY = "bufferManualSlotOverrides"
OVERRIDE_SUBSTITUTION_KEY = "substitutionFor"
OVERRIDE_SUBSTITUTION_BY_SLOT_KEY = "substitutionForBySlot"
OVERRIDE_AVAILABLE_SLOTS_KEY = "availableSlots"

EXPORT_COLUMNS: List[str] = [
    "staff_id", "team", "fte", "slot1", "slot2", "slot3", "slot4",
    "leave_type", "special_program_ids", "is_substitute_team_head",
    "spt_slot_display", "is_manual_override",
]
