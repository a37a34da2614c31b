"""
validation.py — Small standalone predicates for FTE, slot and team bounds.

Callers validate input with these before a planning run; the engine reuses
them to skip rows it cannot trust.
"""

import math
from typing import Any, Dict, Iterable

from rehab_roster.schedule_config import SLOTS, TEAMS


def validate_fte(fte: Any) -> bool:
    """True if `fte` is a finite number in [0, 1]."""
    if isinstance(fte, bool) or not isinstance(fte, (int, float)):
        return False
    return math.isfinite(fte) and 0 <= fte <= 1


def validate_fte_sum(allocations: Iterable[Dict[str, Any]]) -> bool:
    """True if the `fte` values of `allocations` sum into [0, 1]."""
    total = sum(float(a.get("fte", 0) or 0) for a in allocations)
    return 0 <= total <= 1 + 1e-9


def validate_slot(slot: Any) -> bool:
    """True if `slot` is one of the integer slots 1..4."""
    if isinstance(slot, bool):
        return False
    if isinstance(slot, float) and not slot.is_integer():
        return False
    if not isinstance(slot, (int, float)):
        return False
    return int(slot) in SLOTS


def validate_slots(slots: Iterable[Any]) -> bool:
    return all(validate_slot(s) for s in slots)


def validate_team(team: Any) -> bool:
    """True if `team` names one of the configured ward teams."""
    return isinstance(team, str) and team in TEAMS
