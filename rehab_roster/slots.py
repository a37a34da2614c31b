"""
slots.py — Time-Slot Model

Four fixed slots per weekday, split into an AM pair (1, 2) and a PM pair
(3, 4). Each pair carries its own slot mode:

  AND  every selected slot in the pair is granted
       effective count = number of selected slots
  OR   only the first selected slot in the pair is granted
       effective count = 1 if any slot selected else 0

FTE for a day = (effective AM + effective PM) × 0.25. The same arithmetic
drives specialist base-FTE derivation and the slot fields written onto an
allocation, so both always agree.
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rehab_roster.schedule_config import (
    AM_SLOTS,
    DEFAULT_SLOT_MODES,
    PM_SLOTS,
    SLOT_FTE,
    SLOT_MODE_AND,
    SLOT_MODE_OR,
    SLOT_TIMES,
    SLOTS,
)


# ---------------------------------------------------------------------------
# Slot sets
# ---------------------------------------------------------------------------

def clean_slots(raw: Optional[Iterable[Any]]) -> List[int]:
    """Return the valid slot numbers in `raw`, sorted and de-duplicated."""
    if not raw:
        return []
    out = set()
    for s in raw:
        try:
            n = int(s)
        except (TypeError, ValueError):
            continue
        if n in SLOTS:
            out.add(n)
    return sorted(out)


def split_am_pm(slots: Iterable[int]) -> Tuple[List[int], List[int]]:
    """Split a slot set into its (AM, PM) halves."""
    cleaned = clean_slots(slots)
    return (
        [s for s in cleaned if s in AM_SLOTS],
        [s for s in cleaned if s in PM_SLOTS],
    )


def restrict_slots(
    slots: Iterable[int],
    available_slots: Optional[Iterable[int]] = None,
) -> List[int]:
    """
    Intersect a configured slot set with a staff member's available slots.

    An empty or missing availability list means "whole day" and leaves the
    configured set unchanged.
    """
    cleaned = clean_slots(slots)
    available = clean_slots(available_slots)
    if not available:
        return cleaned
    return [s for s in cleaned if s in available]


# ---------------------------------------------------------------------------
# Slot modes
# ---------------------------------------------------------------------------

def normalize_slot_modes(raw: Any) -> Dict[str, str]:
    """
    Normalise a stored slot-mode value to {"am": ..., "pm": ...}.

    Accepts the legacy single string ("AND" / "OR", applied to both halves)
    and the {am, pm} mapping. Anything other than "OR" reads as "AND".
    """
    if raw is None:
        return dict(DEFAULT_SLOT_MODES)
    if isinstance(raw, str):
        mode = SLOT_MODE_OR if raw.strip().upper() == SLOT_MODE_OR else SLOT_MODE_AND
        return {"am": mode, "pm": mode}
    if isinstance(raw, dict):
        am = str(raw.get("am") or "").strip().upper()
        pm = str(raw.get("pm") or "").strip().upper()
        return {
            "am": SLOT_MODE_OR if am == SLOT_MODE_OR else SLOT_MODE_AND,
            "pm": SLOT_MODE_OR if pm == SLOT_MODE_OR else SLOT_MODE_AND,
        }
    return dict(DEFAULT_SLOT_MODES)


# ---------------------------------------------------------------------------
# Effective counts & FTE
# ---------------------------------------------------------------------------

def effective_slot_count(half_slots: List[int], mode: str) -> int:
    """Effective slot count for one AM/PM half under AND/OR semantics."""
    if not half_slots:
        return 0
    if mode == SLOT_MODE_OR:
        return 1
    return len(half_slots)


def effective_slots(slots: Iterable[int], modes: Optional[Dict[str, str]] = None) -> Dict[str, int]:
    """Return {"am", "pm", "total"} effective slot counts."""
    modes = normalize_slot_modes(modes)
    am, pm = split_am_pm(slots)
    am_count = effective_slot_count(am, modes["am"])
    pm_count = effective_slot_count(pm, modes["pm"])
    return {"am": am_count, "pm": pm_count, "total": am_count + pm_count}


def slots_fte(slots: Iterable[int], modes: Optional[Dict[str, str]] = None) -> float:
    """FTE contribution of a slot set: effective total × 0.25."""
    return effective_slots(slots, modes)["total"] * SLOT_FTE


def granted_slots(
    slots: Iterable[int],
    modes: Optional[Dict[str, str]] = None,
    available_slots: Optional[Iterable[int]] = None,
) -> List[int]:
    """
    The slots actually granted after availability restriction and mode.

    AND keeps every selected slot of a half; OR keeps only the first one.
    """
    modes = normalize_slot_modes(modes)
    am, pm = split_am_pm(restrict_slots(slots, available_slots))
    granted: List[int] = []
    for half, mode in ((am, modes["am"]), (pm, modes["pm"])):
        if not half:
            continue
        granted.extend(half[:1] if mode == SLOT_MODE_OR else half)
    return granted


def assign_slot_teams(
    slots: Iterable[int],
    modes: Optional[Dict[str, str]],
    team: str,
    available_slots: Optional[Iterable[int]] = None,
) -> Dict[str, Optional[str]]:
    """Return {"slot1".."slot4": team or None} for the granted slots."""
    granted = set(granted_slots(slots, modes, available_slots))
    return {f"slot{s}": (team if s in granted else None) for s in SLOTS}


def whole_day_slot_teams(team: str) -> Dict[str, Optional[str]]:
    return {f"slot{s}": team for s in SLOTS}


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def slot_display(slots: Iterable[int]) -> Optional[str]:
    """'AM', 'PM', 'AM+PM' or None for a slot set."""
    am, pm = split_am_pm(slots)
    if am and pm:
        return "AM+PM"
    if am:
        return "AM"
    if pm:
        return "PM"
    return None


def get_slot_time(slot: int) -> str:
    return SLOT_TIMES.get(slot, f"Slot {slot}")


# ---------------------------------------------------------------------------
# Quarter rounding
# ---------------------------------------------------------------------------

def round_to_nearest_quarter(value: float) -> float:
    """Round to the nearest 0.25, halves rounding up (0.125 → 0.25)."""
    return math.floor(value / SLOT_FTE + 0.5) * SLOT_FTE


def round_down_to_quarter(value: float) -> float:
    return math.floor(value / SLOT_FTE) * SLOT_FTE


def round_to_quarter_with_midpoint(value: float) -> float:
    """
    Round to a 0.25 step using a strict midpoint.

    Values above the midpoint of their quarter interval round up; values at
    or below it round down (0.625 → 0.5, 0.63 → 0.75, 0.1 → 0.0).
    """
    if value < 0:
        return -round_to_quarter_with_midpoint(-value)
    lower = math.floor(value / SLOT_FTE) * SLOT_FTE
    upper = lower + SLOT_FTE
    midpoint = (lower + upper) / 2
    return upper if value > midpoint else lower
