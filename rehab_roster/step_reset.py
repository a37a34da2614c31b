"""
step_reset.py — PCA Step Reconciliation

When the user steps back to re-run the floating-PCA pass, the later,
algorithm-derived work has to be cleared without losing protected
placements.

  reset_step2_overrides()   entry into step 2: drop stale availableSlots
                            from floating PCA overrides unless leave-driven
  compute_step3_reset()     re-entry into step 3:
                              1. keep non-floating, buffer, special-program
                                 and substitution allocations
                              2. rebuild buffer manual placements that only
                                 exist as overrides
                              3. strip slotOverrides from floating PCAs
                                 (buffer staff keep theirs under both keys)
                              4. recompute pending FTE per team

  pending[team] = round_to_quarter_with_midpoint(
      max(0, target − nonFloating − preservedSubstitution − bufferFloating))

Special-program slots never reduce pending; only the substitution slots of
such an allocation count. compute_step3_reset(its own output) returns the
same result.

Substitution markers live on the PCA's override:
  substitutionForBySlot  {slot: {team, nonFloatingPCAId, nonFloatingPCAName}}
  substitutionFor        legacy {team, slots, nonFloatingPCAId, nonFloatingPCAName}
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from rehab_roster.schedule_config import (
    FTE_EPSILON,
    OVERRIDE_AVAILABLE_SLOTS_KEY,
    OVERRIDE_BUFFER_SLOT_KEY,
    OVERRIDE_SLOT_KEY,
    OVERRIDE_SUBSTITUTION_BY_SLOT_KEY,
    OVERRIDE_SUBSTITUTION_KEY,
    SLOT_FTE,
    SLOTS,
    TEAMS,
)
from rehab_roster.slots import round_to_quarter_with_midpoint
from rehab_roster.staff import index_staff, is_buffer, is_floating_pca

logger = logging.getLogger(__name__)

Overrides = Dict[str, Dict[str, Any]]
PcaAllocations = Dict[str, List[Dict[str, Any]]]   # team → [allocation dict]


# ---------------------------------------------------------------------------
# Substitution markers
# ---------------------------------------------------------------------------

def _by_slot_entry(raw: Any, slot: int) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    entry = raw.get(slot, raw.get(str(slot)))
    if not isinstance(entry, dict):
        return None
    if not isinstance(entry.get("team"), str) or not isinstance(entry.get("nonFloatingPCAId"), str):
        return None
    name = entry.get("nonFloatingPCAName")
    return {
        "team": entry["team"],
        "nonFloatingPCAId": entry["nonFloatingPCAId"],
        "nonFloatingPCAName": name if isinstance(name, str) else "",
    }


def normalize_substitution_by_slot(override: Optional[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    """
    Merge the per-slot and legacy substitution markers into {slot: entry}.
    Per-slot entries win over the legacy record.
    """
    by_slot: Dict[int, Dict[str, Any]] = {}
    if not isinstance(override, dict):
        return by_slot

    raw = override.get(OVERRIDE_SUBSTITUTION_BY_SLOT_KEY)
    for slot in SLOTS:
        entry = _by_slot_entry(raw, slot)
        if entry is not None:
            by_slot[slot] = entry

    legacy = override.get(OVERRIDE_SUBSTITUTION_KEY)
    if isinstance(legacy, dict) and isinstance(legacy.get("slots"), list):
        for s in legacy["slots"]:
            if s not in SLOTS or s in by_slot:
                continue
            by_slot[s] = {
                "team": legacy.get("team"),
                "nonFloatingPCAId": legacy.get("nonFloatingPCAId"),
                "nonFloatingPCAName": legacy.get("nonFloatingPCAName"),
            }
    return dict(sorted(by_slot.items()))


def get_all_substitution_slots(override: Optional[Dict[str, Any]]) -> List[int]:
    return list(normalize_substitution_by_slot(override).keys())


def get_substitution_slots_for_team(override: Optional[Dict[str, Any]], team: str) -> List[int]:
    return [
        slot for slot, entry in normalize_substitution_by_slot(override).items()
        if entry.get("team") == team
    ]


def has_any_substitution(override: Optional[Dict[str, Any]]) -> bool:
    return bool(get_all_substitution_slots(override))


def derive_legacy_substitution(by_slot: Dict[int, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Legacy single record if every marked slot points at the same target."""
    slots = [s for s in SLOTS if s in by_slot]
    if not slots:
        return None
    first = by_slot[slots[0]]
    if any(by_slot[s] != first for s in slots[1:]):
        return None
    return {**first, "slots": slots}


def _write_substitutions(override: Dict[str, Any], by_slot: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
    if not by_slot:
        override.pop(OVERRIDE_SUBSTITUTION_BY_SLOT_KEY, None)
        override.pop(OVERRIDE_SUBSTITUTION_KEY, None)
        return override
    override[OVERRIDE_SUBSTITUTION_BY_SLOT_KEY] = by_slot
    legacy = derive_legacy_substitution(by_slot)
    if legacy is not None:
        override[OVERRIDE_SUBSTITUTION_KEY] = legacy
    else:
        override.pop(OVERRIDE_SUBSTITUTION_KEY, None)
    return override


def apply_substitution_slots(
    override: Optional[Dict[str, Any]],
    team: str,
    non_floating_id: str,
    non_floating_name: str,
    slots: Iterable[int],
) -> Dict[str, Any]:
    """Return a copy of `override` with `slots` marked as covering `team`."""
    result = dict(override or {})
    by_slot = normalize_substitution_by_slot(result)
    for s in slots:
        if s not in SLOTS:
            continue
        by_slot[s] = {
            "team": team,
            "nonFloatingPCAId": non_floating_id,
            "nonFloatingPCAName": non_floating_name,
        }
    return _write_substitutions(result, dict(sorted(by_slot.items())))


def remove_substitution_for_teams(override: Optional[Dict[str, Any]], teams: Iterable[str]) -> Dict[str, Any]:
    """Return a copy of `override` without substitution slots for `teams`."""
    result = dict(override or {})
    teams = set(teams)
    by_slot = normalize_substitution_by_slot(result)
    kept = {s: e for s, e in by_slot.items() if e.get("team") not in teams}
    if len(kept) == len(by_slot):
        return result
    return _write_substitutions(result, kept)


# ---------------------------------------------------------------------------
# Step 2 entry
# ---------------------------------------------------------------------------

def _is_leave_driven(override: Dict[str, Any]) -> bool:
    """True if the override carries leave or partial-availability signals."""
    if override.get("leaveType") not in (None, ""):
        return True
    subtraction = override.get("fteSubtraction")
    if isinstance(subtraction, (int, float)) and abs(subtraction) > FTE_EPSILON:
        return True
    remaining = override.get("fteRemaining")
    if isinstance(remaining, (int, float)) and remaining < 1 - FTE_EPSILON:
        return True
    if isinstance(override.get("invalidSlots"), list) and override["invalidSlots"]:
        return True
    return override.get("invalidSlot") is not None


def reset_step2_overrides(overrides: Optional[Overrides], staff: List[Dict[str, Any]]) -> Overrides:
    """
    Clear algorithm-derived availableSlots from floating, non-buffer PCA
    overrides and drop overrides left empty.
    """
    cleaned: Overrides = {sid: dict(o) for sid, o in (overrides or {}).items() if isinstance(o, dict)}
    for s in staff:
        sid = s.get("id")
        o = cleaned.get(sid)
        if o is None or not is_floating_pca(s) or is_buffer(s):
            continue
        if _is_leave_driven(o):
            continue
        o.pop(OVERRIDE_AVAILABLE_SLOTS_KEY, None)
    return {sid: o for sid, o in cleaned.items() if o}


# ---------------------------------------------------------------------------
# Step 3 re-entry
# ---------------------------------------------------------------------------

@dataclass
class Step3Reset:
    allocations: PcaAllocations
    overrides: Overrides
    pending_fte_per_team: Dict[str, float] = field(default_factory=dict)


def _keep_allocation(alloc: Dict[str, Any], team: str, staff: Dict[str, Any],
                     buffer_ids: set, overrides: Overrides) -> bool:
    if not staff.get("floating"):
        return True
    if staff.get("id") in buffer_ids:
        return True
    if alloc.get("special_program_ids"):
        return True
    return bool(get_substitution_slots_for_team(overrides.get(alloc.get("staff_id")), team))


def _buffer_capacity(staff: Dict[str, Any], override: Dict[str, Any]) -> float:
    remaining = override.get("fteRemaining")
    if isinstance(remaining, (int, float)) and not isinstance(remaining, bool):
        return float(remaining)
    try:
        return float(staff.get("buffer_fte"))
    except (TypeError, ValueError):
        return 1.0


def _rehydrate_buffer_allocations(
    allocations: PcaAllocations,
    staff_by_id: Dict[str, Dict[str, Any]],
    buffer_ids: List[str],
    overrides: Overrides,
    id_prefix: Optional[str],
) -> int:
    added = 0
    for staff_id in buffer_ids:
        o = overrides.get(staff_id) or {}
        manual = o.get(OVERRIDE_BUFFER_SLOT_KEY) or o.get(OVERRIDE_SLOT_KEY)
        if not isinstance(manual, dict):
            continue
        slot_teams = {s: manual.get(f"slot{s}") for s in SLOTS}
        teams = [t for t in dict.fromkeys(slot_teams.values()) if t in allocations]
        if not teams:
            continue

        capacity = _buffer_capacity(staff_by_id[staff_id], o)
        slot_count = sum(1 for t in slot_teams.values() if t)
        prefix = f"{id_prefix}:" if id_prefix else ""
        for team in teams:
            if any(a.get("staff_id") == staff_id for a in allocations[team]):
                continue
            allocations[team].append({
                "id": f"manual-buffer:{prefix}{staff_id}",
                "staff_id": staff_id,
                "team": team,
                "fte_pca": capacity,
                "fte_remaining": capacity,
                "slot_assigned": slot_count * SLOT_FTE,
                "slot1": slot_teams[1],
                "slot2": slot_teams[2],
                "slot3": slot_teams[3],
                "slot4": slot_teams[4],
                "leave_type": None,
                "special_program_ids": None,
                "fte_subtraction": 0,
            })
            added += 1
    return added


def _clean_overrides(overrides: Overrides, floating_ids: List[str], buffer_ids: set) -> Overrides:
    cleaned: Overrides = dict(overrides)
    for staff_id in floating_ids:
        cur = cleaned.get(staff_id)
        if not isinstance(cur, dict):
            continue
        if staff_id in buffer_ids:
            manual = cur.get(OVERRIDE_BUFFER_SLOT_KEY) or cur.get(OVERRIDE_SLOT_KEY)
            if manual:
                cleaned[staff_id] = {
                    **cur,
                    OVERRIDE_BUFFER_SLOT_KEY: manual,
                    OVERRIDE_SLOT_KEY: manual,
                }
            continue
        rest = {k: v for k, v in cur.items() if k != OVERRIDE_SLOT_KEY}
        if rest:
            cleaned[staff_id] = rest
        else:
            del cleaned[staff_id]
    return cleaned


def _slots_counted(alloc: Dict[str, Any], team: str, substitution_slots: List[int]) -> int:
    if alloc.get("special_program_ids"):
        return sum(1 for s in substitution_slots if alloc.get(f"slot{s}") == team)

    count = sum(1 for s in SLOTS if alloc.get(f"slot{s}") == team)
    invalid = alloc.get("invalid_slot")
    if invalid in SLOTS and alloc.get(f"slot{invalid}") == team:
        count = max(0, count - 1)
    return count


def compute_pending_fte(
    allocations: PcaAllocations,
    staff_by_id: Dict[str, Dict[str, Any]],
    buffer_ids: set,
    overrides: Overrides,
    target: Dict[str, float],
) -> Dict[str, float]:
    non_floating = {t: 0.0 for t in TEAMS}
    preserved = {t: 0.0 for t in TEAMS}
    buffer_floating = {t: 0.0 for t in TEAMS}

    for team, allocs in allocations.items():
        for alloc in allocs:
            staff = staff_by_id.get(alloc.get("staff_id"))
            if staff is None:
                continue
            substitution_slots = get_substitution_slots_for_team(overrides.get(staff["id"]), team)
            fte = _slots_counted(alloc, team, substitution_slots) * SLOT_FTE

            if not staff.get("floating"):
                non_floating[team] += fte
            elif staff["id"] in buffer_ids:
                buffer_floating[team] += fte
            elif substitution_slots:
                preserved[team] += fte

    return {
        team: round_to_quarter_with_midpoint(max(
            0.0,
            float(target.get(team, 0) or 0)
            - non_floating[team] - preserved[team] - buffer_floating[team],
        ))
        for team in TEAMS
    }


def compute_step3_reset(
    pca_allocations: PcaAllocations,
    staff: List[Dict[str, Any]],
    overrides: Optional[Overrides],
    target: Dict[str, float],
    buffer_staff: Optional[List[Dict[str, Any]]] = None,
    allocation_id_prefix: Optional[str] = None,
) -> Step3Reset:
    """
    Clear floating-PCA work for step 3 re-entry and recompute pending FTE.

    Inputs are not mutated. Allocations for staff missing from `staff` and
    `buffer_staff` are dropped.
    """
    overrides = dict(overrides or {})
    all_staff = list(staff or []) + list(buffer_staff or [])
    staff_by_id = index_staff(all_staff)
    buffer_ids = [sid for sid, s in staff_by_id.items() if is_floating_pca(s) and is_buffer(s)]
    buffer_set = set(buffer_ids)
    floating_ids = [sid for sid, s in staff_by_id.items() if is_floating_pca(s)]

    allocations: PcaAllocations = {}
    dropped = 0
    for team in TEAMS:
        kept = []
        for alloc in (pca_allocations or {}).get(team) or []:
            member = staff_by_id.get(alloc.get("staff_id"))
            if member is not None and _keep_allocation(alloc, team, member, buffer_set, overrides):
                kept.append(dict(alloc))
            else:
                dropped += 1
        allocations[team] = kept

    added = _rehydrate_buffer_allocations(
        allocations, staff_by_id, buffer_ids, overrides, allocation_id_prefix,
    )
    cleaned_overrides = _clean_overrides(overrides, floating_ids, buffer_set)
    pending = compute_pending_fte(allocations, staff_by_id, buffer_set, overrides, target)

    logger.info(
        f"Step 3 reset: dropped {dropped} floating allocations, "
        f"rebuilt {added} buffer placements, pending total {sum(pending.values()):.2f}"
    )
    return Step3Reset(allocations=allocations, overrides=cleaned_overrides,
                      pending_fte_per_team=pending)
