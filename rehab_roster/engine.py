"""
engine.py — Daily Therapist Allocation Engine

Produces the team-by-team therapist duty assignment for one weekday.

Phases (fixed order):
  A   manual overrides      one record per (staff, team) override entry,
                            whole-day slots, staff excluded from later phases
  B   default assignment    non-specialist therapists → home team, whole day
  C1  specialist balancing  each SPT → candidate team with the lowest
                            estimated post-program FTE
  C2  RBIP supervisors      fill the first team lacking a head, otherwise
                            balance like C1 (all teams if none configured)
  D   program deductions    each running special program subtracts its FTE
                            from exactly one therapist per team

Tie-break for C1/C2 (lowest estimated FTE wins):
  1. team without a specialist already placed
  2. the specialist's previous-day team
  3. candidate list order

The estimate in C1/C2 and the real subtraction in D share one planner,
plan_program_deductions(), so the look-ahead and the commit cannot drift.

A–C propose TherapistAllocation records; D returns new copies via
dataclasses.replace. Bad or incomplete data is skipped and logged, never
raised.

Usage:
  context = AllocationContext(date=date(2026, 3, 2), staff=staff_rows,
                              special_programs=programs, spt_allocations=spt_rows)
  result  = allocate_therapists(context)
  result.summary()  # {"totalFTEOnDuty": ..., "fteTotalPerTeam": {...}}
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from rehab_roster.directory import SptWeekdayConfig, StaffDirectory
from rehab_roster.schedule_config import (
    FTE_EPSILON,
    PROGRAM_FALLBACK_POLICY,
    SLOTS,
    TEAMS,
    ProgramFallbackPolicy,
)
from rehab_roster.slots import assign_slot_teams, whole_day_slot_teams
from rehab_roster.staff import (
    available_slots,
    is_available,
    is_on_duty_leave_type,
    is_specialist,
    is_therapist,
    staff_fte,
    teams_without_heads,
)
from rehab_roster.validation import validate_team

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TherapistAllocation:
    staff_id: str
    team: str
    fte: float
    slot1: Optional[str] = None
    slot2: Optional[str] = None
    slot3: Optional[str] = None
    slot4: Optional[str] = None
    leave_type: Optional[str] = None
    special_program_ids: Tuple[str, ...] = ()
    is_substitute_team_head: bool = False
    spt_slot_display: Optional[str] = None
    is_manual_override: bool = False
    manual_override_note: Optional[str] = None
    fte_remaining: float = 0.0

    def slot_teams(self) -> Dict[int, Optional[str]]:
        return {s: getattr(self, f"slot{s}") for s in SLOTS}

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["special_program_ids"] = list(self.special_program_ids)
        return d


@dataclass(frozen=True)
class ProgramDeduction:
    """
    Outcome of one special program in one team.

    staff_id is the therapist running the program (None if nobody in a
    contested team was eligible). members lists every enrolled therapist
    allocated to the team, in enrolment order.
    """
    program_id: str
    team: str
    staff_id: Optional[str]
    requested: float
    applied: float
    members: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TeamEvaluation:
    team: str
    estimated_fte: float
    has_existing_specialist: bool
    is_previous_team: bool
    order: int

    def sort_key(self) -> Tuple[float, bool, bool, int]:
        return (round(self.estimated_fte, 6), self.has_existing_specialist,
                not self.is_previous_team, self.order)


@dataclass
class AllocationContext:
    date: date
    staff: List[Dict[str, Any]]
    special_programs: List[Dict[str, Any]] = field(default_factory=list)
    spt_allocations: List[Dict[str, Any]] = field(default_factory=list)
    manual_overrides: Dict[str, Any] = field(default_factory=dict)
    include_spt_allocation: bool = True
    previous_allocations: Optional[List[Any]] = None
    fallback_policy: ProgramFallbackPolicy = PROGRAM_FALLBACK_POLICY


@dataclass
class AllocationResult:
    allocations: List[TherapistAllocation]
    fte_per_team: Dict[str, float]
    total_fte_on_duty: float
    deductions: List[ProgramDeduction] = field(default_factory=list)
    weekday: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "totalFTEOnDuty": self.total_fte_on_duty,
            "fteTotalPerTeam": dict(self.fte_per_team),
        }

    def for_team(self, team: str) -> List[TherapistAllocation]:
        return [a for a in self.allocations if a.team == team]


# ---------------------------------------------------------------------------
# Special-program planner (shared by look-ahead and Phase D)
# ---------------------------------------------------------------------------

def is_on_duty_zero_fte_specialist(
    staff: Optional[Dict[str, Any]],
    allocation_fte: float,
    leave_type: Any,
    requested: float,
) -> bool:
    """
    A specialist configured at 0 FTE today but still on duty may run a
    program that costs nothing.
    """
    return (
        is_specialist(staff)
        and abs(allocation_fte) <= FTE_EPSILON
        and is_on_duty_leave_type(leave_type)
        and abs(requested) <= FTE_EPSILON
    )


def _requested_fte(program: Dict[str, Any], staff_id: str, weekday: str) -> float:
    per_day = (program.get("fte_subtraction") or {}).get(staff_id)
    if not isinstance(per_day, dict):
        return 0.0
    try:
        return float(per_day.get(weekday) or 0)
    except (TypeError, ValueError):
        return 0.0


def _team_order(teams: Iterable[str]) -> List[str]:
    seen = list(dict.fromkeys(teams))
    return [t for t in TEAMS if t in seen] + [t for t in seen if t not in TEAMS]


def plan_program_deductions(
    programs: List[Dict[str, Any]],
    weekday: Optional[str],
    allocations: List[TherapistAllocation],
    staff_by_id: Dict[str, Dict[str, Any]],
    policy: ProgramFallbackPolicy = PROGRAM_FALLBACK_POLICY,
) -> List[ProgramDeduction]:
    """
    Decide, without touching `allocations`, who runs each program per team
    and how much FTE it costs.

    Programs are settled in order; each deduction lowers the working FTE
    seen by the programs after it. Each applied amount is clamped to the
    runner's remaining FTE.
    """
    if weekday is None:
        return []

    first_index: Dict[str, int] = {}
    for i, alloc in enumerate(allocations):
        first_index.setdefault(alloc.staff_id, i)
    working_fte = {sid: allocations[i].fte for sid, i in first_index.items()}

    deductions: List[ProgramDeduction] = []
    for program in programs:
        if weekday not in (program.get("weekdays") or []):
            continue
        program_id = program.get("id")
        if not program_id:
            continue

        groups: Dict[str, List[Tuple[str, float]]] = {}
        for staff_id in program.get("staff_ids") or []:
            idx = first_index.get(staff_id)
            if idx is None:
                continue
            team = allocations[idx].team
            if any(sid == staff_id for sid, _ in groups.get(team, [])):
                continue
            groups.setdefault(team, []).append((staff_id, _requested_fte(program, staff_id, weekday)))

        for team in _team_order(groups.keys()):
            members = groups[team]
            runner, amount = _select_program_runner(
                program, team, members, working_fte, allocations, first_index,
                staff_by_id, policy,
            )
            applied = 0.0
            if runner is not None:
                applied = min(max(amount, 0.0), max(working_fte[runner], 0.0))
                working_fte[runner] -= applied
            deductions.append(ProgramDeduction(
                program_id=program_id,
                team=team,
                staff_id=runner,
                requested=amount,
                applied=applied,
                members=tuple(sid for sid, _ in members),
            ))
    return deductions


def _select_program_runner(
    program: Dict[str, Any],
    team: str,
    members: List[Tuple[str, float]],
    working_fte: Dict[str, float],
    allocations: List[TherapistAllocation],
    first_index: Dict[str, int],
    staff_by_id: Dict[str, Dict[str, Any]],
    policy: ProgramFallbackPolicy,
) -> Tuple[Optional[str], float]:
    if len(members) == 1:
        staff_id, requested = members[0]
        return staff_id, requested

    def eligible(staff_id: str, requested: float) -> bool:
        fte = working_fte[staff_id]
        if fte > FTE_EPSILON:
            return True
        leave_type = allocations[first_index[staff_id]].leave_type
        return is_on_duty_zero_fte_specialist(staff_by_id.get(staff_id), fte, leave_type, requested)

    order = (program.get("therapist_preference_order") or {}).get(team) or []
    if order:
        by_id = dict(members)
        ranked = [sid for sid in order if sid in by_id]
        ranked += [sid for sid, _ in members if sid not in ranked]
        for sid in ranked:
            if eligible(sid, by_id[sid]):
                return sid, by_id[sid]
        logger.debug(f"Program {program.get('id')} / {team}: no eligible therapist")
        return None, 0.0

    for sid, requested in members:
        if not eligible(sid, requested):
            continue
        if policy == ProgramFallbackPolicy.MAX_REQUESTED:
            return sid, max(r for _, r in members)
        return sid, requested
    return None, 0.0


def predicted_deductions_by_team(deductions: List[ProgramDeduction]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for d in deductions:
        out[d.team] = out.get(d.team, 0.0) + d.applied
    return out


def apply_program_deductions(
    allocations: List[TherapistAllocation],
    deductions: List[ProgramDeduction],
) -> List[TherapistAllocation]:
    """
    Return new allocation records with program FTE subtracted and program
    ids recorded on the runner. Contested members who do not run a program
    lose that program id.
    """
    out = list(allocations)
    first_index: Dict[str, int] = {}
    for i, alloc in enumerate(out):
        first_index.setdefault(alloc.staff_id, i)

    for d in deductions:
        for staff_id in d.members:
            i = first_index[staff_id]
            alloc = out[i]
            ids = list(alloc.special_program_ids)
            if staff_id == d.staff_id:
                if d.program_id not in ids:
                    ids.append(d.program_id)
                out[i] = replace(
                    alloc,
                    fte=max(0.0, alloc.fte - d.applied),
                    special_program_ids=tuple(ids),
                )
            elif d.program_id in ids:
                ids.remove(d.program_id)
                out[i] = replace(alloc, special_program_ids=tuple(ids))
    return out


# ---------------------------------------------------------------------------
# Team ranking for specialists
# ---------------------------------------------------------------------------

def rank_candidate_teams(
    candidates: List[str],
    fte_per_team: Dict[str, float],
    predicted_deductions: Dict[str, float],
    specialist_teams: Set[str],
    previous_team: Optional[str] = None,
) -> List[TeamEvaluation]:
    """Candidate teams ordered best-first."""
    evaluations = [
        TeamEvaluation(
            team=team,
            estimated_fte=fte_per_team.get(team, 0.0) - predicted_deductions.get(team, 0.0),
            has_existing_specialist=team in specialist_teams,
            is_previous_team=previous_team == team,
            order=i,
        )
        for i, team in enumerate(candidates)
    ]
    return sorted(evaluations, key=TeamEvaluation.sort_key)


# ---------------------------------------------------------------------------
# Allocation run
# ---------------------------------------------------------------------------

class TherapistAllocator:
    """One planning run. State is local to the instance; inputs are never mutated."""

    def __init__(self, context: AllocationContext):
        self.context = context
        self.directory = StaffDirectory(
            context.staff, context.special_programs, context.spt_allocations,
        )
        self.weekday = self.directory.weekday(context.date)
        self.programs = self.directory.active_programs(self.weekday)
        self.staff_by_id = self.directory.staff_index()
        self.overrides = context.manual_overrides or {}
        self.specialist_ids = self.directory.specialist_ids()

        self.allocations: List[TherapistAllocation] = []
        self.fte_per_team: Dict[str, float] = {t: 0.0 for t in TEAMS}
        self._emitted: Set[str] = set()
        self._substituted_teams: Set[str] = set()

    # -- bookkeeping --------------------------------------------------------

    def _emit(self, alloc: TherapistAllocation, allow_same_staff: bool = False) -> bool:
        if alloc.staff_id in self._emitted and not allow_same_staff:
            logger.debug(f"{alloc.staff_id}: already allocated — skipping duplicate")
            return False
        self.allocations.append(alloc)
        self._emitted.add(alloc.staff_id)
        self.fte_per_team[alloc.team] = self.fte_per_team.get(alloc.team, 0.0) + alloc.fte
        return True

    def _previous_team(self, staff_id: str) -> Optional[str]:
        for prev in self.context.previous_allocations or []:
            sid = prev.get("staff_id") if isinstance(prev, dict) else getattr(prev, "staff_id", None)
            if sid == staff_id:
                return prev.get("team") if isinstance(prev, dict) else getattr(prev, "team", None)
        return None

    # -- Phase A ------------------------------------------------------------

    def apply_manual_overrides(self) -> None:
        count = 0
        for staff_id, entries in self.overrides.items():
            staff = self.staff_by_id.get(staff_id)
            if staff is None:
                logger.warning(f"Manual override for unknown staff {staff_id!r} — ignored")
                continue
            if isinstance(entries, dict):
                entries = [entries]

            per_team: Dict[str, float] = {}
            notes: Dict[str, Optional[str]] = {}
            for entry in entries or []:
                team = entry.get("team")
                if not validate_team(team):
                    logger.warning(f"Manual override {staff_id}: unknown team {team!r}")
                    continue
                try:
                    fte = float(entry.get("fte") or 0)
                except (TypeError, ValueError):
                    logger.warning(
                        f"Manual override {staff_id}: unreadable fte {entry.get('fte')!r} — skipped"
                    )
                    continue
                per_team[team] = per_team.get(team, 0.0) + fte
                notes.setdefault(team, entry.get("note"))

            remaining = staff_fte(staff) - sum(per_team.values())
            for i, (team, fte) in enumerate(per_team.items()):
                if self._emit(TherapistAllocation(
                    staff_id=staff_id,
                    team=team,
                    fte=fte,
                    leave_type=staff.get("leave_type"),
                    is_manual_override=True,
                    manual_override_note=notes.get(team),
                    fte_remaining=remaining,
                    **whole_day_slot_teams(team),
                ), allow_same_staff=i > 0):
                    count += 1
        logger.info(f"Phase A: {count} manual override allocations")

    # -- Phase B ------------------------------------------------------------

    def apply_default_assignments(self) -> None:
        count = 0
        for staff_id, staff in self.staff_by_id.items():
            if staff_id in self.overrides or staff_id in self._emitted:
                continue
            if not is_therapist(staff) or is_specialist(staff):
                continue
            team = staff.get("team")
            if not validate_team(team):
                if team:
                    logger.warning(f"{staff_id}: unknown home team {team!r} — skipped")
                continue
            fte = staff_fte(staff)
            if not is_available(staff) or fte <= 0:
                logger.debug(f"{staff_id}: unavailable or zero FTE — skipped")
                continue
            if self._emit(TherapistAllocation(
                staff_id=staff_id,
                team=team,
                fte=fte,
                leave_type=staff.get("leave_type"),
                special_program_ids=self.directory.program_ids_for_names(staff.get("special_program")),
                **whole_day_slot_teams(team),
            )):
                count += 1
        logger.info(f"Phase B: {count} default allocations")

    # -- Phase C ------------------------------------------------------------

    def _specialist_ready(self, staff_id: str, cfg: SptWeekdayConfig) -> bool:
        if staff_id in self.overrides or staff_id in self._emitted:
            return False
        staff = self.staff_by_id.get(staff_id)
        if staff is not None and (not is_available(staff) or staff_fte(staff) <= 0):
            logger.debug(f"SPT {staff_id}: unavailable — skipped")
            return False
        if not cfg.enabled or not cfg.slots:
            logger.debug(f"SPT {staff_id}: no slots on {self.weekday} — skipped")
            return False
        return True

    def _specialist_fte(self, staff_id: str, cfg: SptWeekdayConfig) -> float:
        staff = self.staff_by_id.get(staff_id)
        if staff is None:
            return cfg.base_fte
        return min(staff_fte(staff), cfg.base_fte)

    def _best_team(self, staff_id: str, candidates: List[str]) -> Optional[str]:
        candidates = [
            t for t in candidates
            if validate_team(t)
            and not any(a.staff_id == staff_id and a.team == t for a in self.allocations)
        ]
        if not candidates:
            return None
        planned = plan_program_deductions(
            self.programs, self.weekday, self.allocations, self.staff_by_id,
            self.context.fallback_policy,
        )
        specialist_teams = {a.team for a in self.allocations if a.staff_id in self.specialist_ids}
        ranked = rank_candidate_teams(
            candidates,
            self.fte_per_team,
            predicted_deductions_by_team(planned),
            specialist_teams,
            previous_team=self._previous_team(staff_id),
        )
        return ranked[0].team

    def _emit_specialist(self, staff_id: str, cfg: SptWeekdayConfig, team: str,
                         substitute_head: bool = False) -> bool:
        staff = self.staff_by_id.get(staff_id)
        return self._emit(TherapistAllocation(
            staff_id=staff_id,
            team=team,
            fte=self._specialist_fte(staff_id, cfg),
            leave_type=(staff or {}).get("leave_type"),
            is_substitute_team_head=substitute_head,
            spt_slot_display=cfg.label,
            **assign_slot_teams(cfg.slots, cfg.slot_modes, team, available_slots(staff)),
        ))

    def apply_specialists(self) -> None:
        count = 0
        for staff_id, cfg in self.directory.spt_configs(self.weekday).items():
            if cfg.is_rbip_supervisor or not self._specialist_ready(staff_id, cfg):
                continue
            team = self._best_team(staff_id, list(cfg.teams))
            if team is None:
                logger.debug(f"SPT {staff_id}: no candidate team left")
                continue
            if self._emit_specialist(staff_id, cfg, team):
                count += 1
        logger.info(f"Phase C1: {count} specialist allocations")

    def apply_supervisors(self) -> None:
        count = 0
        for staff_id, cfg in self.directory.spt_configs(self.weekday).items():
            if not cfg.is_rbip_supervisor or not self._specialist_ready(staff_id, cfg):
                continue
            headless = [
                t for t in teams_without_heads(self.staff_by_id.values())
                if t not in self._substituted_teams
            ]
            if headless:
                team = headless[0]
                if self._emit_specialist(staff_id, cfg, team, substitute_head=True):
                    self._substituted_teams.add(team)
                    count += 1
                    logger.info(f"Supervisor {staff_id} substitutes as head of {team}")
                continue
            team = self._best_team(staff_id, list(cfg.teams) or list(TEAMS))
            if team is not None and self._emit_specialist(staff_id, cfg, team):
                count += 1
        logger.info(f"Phase C2: {count} supervisor allocations")

    # -- Phase D ------------------------------------------------------------

    def apply_program_deductions(self) -> List[ProgramDeduction]:
        deductions = plan_program_deductions(
            self.programs, self.weekday, self.allocations, self.staff_by_id,
            self.context.fallback_policy,
        )
        self.allocations = apply_program_deductions(self.allocations, deductions)
        for d in deductions:
            self.fte_per_team[d.team] = self.fte_per_team.get(d.team, 0.0) - d.applied
        applied = [d for d in deductions if d.staff_id is not None]
        logger.info(f"Phase D: {len(applied)} program deductions across {len(self.programs)} programs")
        return deductions

    # -- run ----------------------------------------------------------------

    def run(self) -> AllocationResult:
        self.apply_manual_overrides()
        self.apply_default_assignments()
        if self.context.include_spt_allocation and self.weekday is not None:
            self.apply_specialists()
            self.apply_supervisors()
        deductions = self.apply_program_deductions()
        total = sum(self.fte_per_team.values())
        return AllocationResult(
            allocations=list(self.allocations),
            fte_per_team=dict(self.fte_per_team),
            total_fte_on_duty=total,
            deductions=deductions,
            weekday=self.weekday,
        )


def allocate_therapists(context: AllocationContext) -> AllocationResult:
    """Run phases A → B → C1 → C2 → D for `context.date`."""
    return TherapistAllocator(context).run()
