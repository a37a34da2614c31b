"""
directory.py — Staff & Program Directory

Read-side view over one planning snapshot:

  - date → weekday (Mon–Fri; weekends resolve to None)
  - special programs running on a weekday
  - one canonical specialist (SPT) allocation row per staff id
  - the resolved per-weekday specialist config (enabled, slots, slot modes,
    base FTE, display label), intersected with the staff's own availability

Canonicalisation of duplicate SPT rows happens exactly once, in
StaffDirectory.__init__, so the allocation phases can assume one config per
specialist.

SPT rows come in two shapes:
  new     config_by_weekday[weekday] = {enabled, contributes_fte, slots,
                                        slot_modes {am, pm}, display_text}
  legacy  weekdays [...], slots[weekday], slot_modes[weekday] (str or {am, pm}),
          fte_addon
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from rehab_roster.schedule_config import DEFAULT_SLOT_MODES, SLOT_FTE, WEEKDAYS
from rehab_roster.slots import (
    clean_slots,
    effective_slots,
    normalize_slot_modes,
    restrict_slots,
    slot_display,
)
from rehab_roster.staff import available_slots, index_staff, is_specialist

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Weekday
# ---------------------------------------------------------------------------

def weekday_for_date(d: date) -> Optional[str]:
    """'mon'..'fri' for a weekday, None for Saturday/Sunday."""
    idx = d.weekday()
    return WEEKDAYS[idx] if idx < len(WEEKDAYS) else None


# ---------------------------------------------------------------------------
# Canonical SPT rows
# ---------------------------------------------------------------------------

def _is_active(row: Dict[str, Any]) -> bool:
    return row.get("active") is not False


def _updated_ts(row: Dict[str, Any]) -> float:
    """
    Seconds since the epoch for `updated_at`, 0.0 if missing or unreadable.

    PostgREST trims trailing zeros from fractional seconds, so values such as
    "2026-02-01T08:00:00.12345+00:00" must parse as well.
    """
    import pandas as pd

    raw = row.get("updated_at")
    if not raw:
        return 0.0
    if isinstance(raw, datetime):
        return raw.timestamp()
    try:
        ts = pd.Timestamp(str(raw))
    except ValueError:
        logger.warning(f"SPT row {row.get('id')}: unreadable updated_at={raw!r}")
        return 0.0
    if pd.isna(ts):
        return 0.0
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.timestamp()


def pick_canonical_spt_row(rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Prefer active rows; among equals prefer the most recently updated."""
    if not rows:
        return None
    ranked = sorted(rows, key=lambda r: (not _is_active(r), -_updated_ts(r)))
    return ranked[0]


def canonicalize_spt_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collapse SPT rows to one active row per staff id.

    Output keeps the order in which each staff id first appears. A staff id
    whose canonical row is inactive is dropped.
    """
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows or []:
        sid = row.get("staff_id")
        if not sid:
            continue
        grouped.setdefault(sid, []).append(row)

    canonical: List[Dict[str, Any]] = []
    for sid, candidates in grouped.items():
        row = pick_canonical_spt_row(candidates)
        if row is None or not _is_active(row):
            logger.debug(f"SPT {sid}: no active row — dropped")
            continue
        if len(candidates) > 1:
            logger.info(f"SPT {sid}: collapsed {len(candidates)} rows to one")
        canonical.append(row)
    return canonical


# ---------------------------------------------------------------------------
# Resolved weekday config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SptWeekdayConfig:
    staff_id: str
    weekday: Optional[str]
    enabled: bool = False
    contributes_fte: bool = False
    slots: Tuple[int, ...] = ()
    slot_modes: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SLOT_MODES))
    display_text: Optional[str] = None
    slot_display: Optional[str] = None
    effective: Dict[str, int] = field(default_factory=lambda: {"am": 0, "pm": 0, "total": 0})
    base_fte: float = 0.0
    teams: Tuple[str, ...] = ()
    is_rbip_supervisor: bool = False

    @property
    def label(self) -> Optional[str]:
        """Display text if set, else the derived AM / PM / AM+PM label."""
        return self.display_text or self.slot_display


def resolve_spt_weekday_config(
    row: Optional[Dict[str, Any]],
    weekday: Optional[str],
    staff_available_slots: Optional[List[int]] = None,
    staff_id: Optional[str] = None,
) -> SptWeekdayConfig:
    """
    Resolve one SPT row for one weekday.

    Defaulting rules:
      - no row, inactive row, weekend, or no config for the weekday →
        disabled, base FTE 0
      - contributes_fte False → base FTE 0 (slots kept for display)
      - slots are intersected with the staff's available slots if any
    """
    sid = staff_id or (row or {}).get("staff_id") or ""
    if row is None or not _is_active(row) or weekday is None:
        return SptWeekdayConfig(staff_id=sid, weekday=weekday)

    teams = tuple(row.get("teams") or ())
    supervisor = bool(row.get("is_rbip_supervisor", False))
    cfg = (row.get("config_by_weekday") or {}).get(weekday)

    if cfg is not None:
        enabled = cfg.get("enabled") is not False
        contributes = cfg.get("contributes_fte") is not False
        raw_slots = cfg.get("slots")
        modes = normalize_slot_modes(cfg.get("slot_modes"))
        text = cfg.get("display_text")
    else:
        enabled = weekday in (row.get("weekdays") or [])
        contributes = float(row.get("fte_addon") or 0) > 0
        raw_slots = (row.get("slots") or {}).get(weekday)
        modes = normalize_slot_modes((row.get("slot_modes") or {}).get(weekday))
        text = None

    slots = restrict_slots(clean_slots(raw_slots), staff_available_slots)
    display_text = text.strip() if isinstance(text, str) and text.strip() else None
    eff = effective_slots(slots, modes)
    base_fte = eff["total"] * SLOT_FTE if enabled and contributes else 0.0

    return SptWeekdayConfig(
        staff_id=sid,
        weekday=weekday,
        enabled=enabled,
        contributes_fte=contributes,
        slots=tuple(slots),
        slot_modes=modes,
        display_text=display_text,
        slot_display=slot_display(slots),
        effective=eff,
        base_fte=base_fte,
        teams=teams,
        is_rbip_supervisor=supervisor,
    )


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

class StaffDirectory:
    """
    Read-only lookups over staff, special programs and SPT rows.

    Usage:
      directory = StaffDirectory(staff, special_programs, spt_rows)
      weekday   = directory.weekday(date(2026, 3, 2))        # 'mon'
      programs  = directory.active_programs(weekday)
      cfg       = directory.spt_config("spt-1", weekday)
    """

    def __init__(
        self,
        staff: List[Dict[str, Any]],
        special_programs: Optional[List[Dict[str, Any]]] = None,
        spt_rows: Optional[List[Dict[str, Any]]] = None,
    ):
        self.staff = list(staff or [])
        self.special_programs = list(special_programs or [])
        self._staff_by_id = index_staff(self.staff)
        self.spt_rows = canonicalize_spt_rows(list(spt_rows or []))
        self._spt_by_id = {r["staff_id"]: r for r in self.spt_rows}
        self._program_by_name = {}
        for p in self.special_programs:
            name = p.get("name")
            if name and name not in self._program_by_name:
                self._program_by_name[name] = p

    # -- staff --------------------------------------------------------------

    def get_staff(self, staff_id: str) -> Optional[Dict[str, Any]]:
        return self._staff_by_id.get(staff_id)

    def staff_index(self) -> Dict[str, Dict[str, Any]]:
        """Staff id → row, first row per id, in roster order."""
        return dict(self._staff_by_id)

    def specialist_ids(self) -> set:
        """Staff ranked SPT plus anyone holding a canonical SPT row."""
        ids = {sid for sid, s in self._staff_by_id.items() if is_specialist(s)}
        ids.update(self._spt_by_id.keys())
        return ids

    # -- dates & programs ---------------------------------------------------

    @staticmethod
    def weekday(d: date) -> Optional[str]:
        return weekday_for_date(d)

    def active_programs(self, weekday: Optional[str]) -> List[Dict[str, Any]]:
        """Programs running on `weekday`, in directory order."""
        if weekday is None:
            return []
        return [
            p for p in self.special_programs
            if p.get("active") is not False and weekday in (p.get("weekdays") or [])
        ]

    def program_id_for_name(self, name: str) -> Optional[str]:
        program = self._program_by_name.get(name)
        return program.get("id") if program else None

    def program_ids_for_names(self, names: Optional[List[str]]) -> Tuple[str, ...]:
        ids = []
        for name in names or []:
            pid = self.program_id_for_name(name)
            if pid and pid not in ids:
                ids.append(pid)
        return tuple(ids)

    # -- specialists --------------------------------------------------------

    def spt_row(self, staff_id: str) -> Optional[Dict[str, Any]]:
        return self._spt_by_id.get(staff_id)

    def spt_config(self, staff_id: str, weekday: Optional[str]) -> SptWeekdayConfig:
        return resolve_spt_weekday_config(
            self._spt_by_id.get(staff_id),
            weekday,
            staff_available_slots=available_slots(self.get_staff(staff_id)),
            staff_id=staff_id,
        )

    def spt_configs(self, weekday: Optional[str]) -> Dict[str, SptWeekdayConfig]:
        """Resolved configs for every canonical SPT row, in row order."""
        return {r["staff_id"]: self.spt_config(r["staff_id"], weekday) for r in self.spt_rows}
