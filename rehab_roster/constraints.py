"""
constraints.py — Post-run checks for a therapist allocation result

Hard constraints (must NOT violate):
  - DUPLICATE_STAFF: a staff id allocated more than once (split manual
    overrides excepted)
  - NEGATIVE_FTE: an allocation or team total below zero
  - UNKNOWN_TEAM: allocation to a team outside TEAMS
  - SLOT_MISMATCH: specialist slot fields disagree with the weekday config
  - TEAM_TOTAL_MISMATCH: reported team total ≠ sum of its allocations
  - PROGRAM_MULTIPLE_RUNNERS: one program recorded twice in the same team

Soft constraints (reported, not fatal):
  - TEAM_WITHOUT_HEAD: no team-head therapist and no substitute head
  - UNSTAFFED_TEAM: team total FTE is zero

Usage:
  checker = ConstraintChecker(staff, special_programs, spt_rows)
  hard, soft = checker.check_all(result)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from rehab_roster.directory import StaffDirectory
from rehab_roster.engine import AllocationResult, TherapistAllocation
from rehab_roster.schedule_config import FTE_EPSILON, TEAM_HEAD_RANK, TEAMS
from rehab_roster.slots import assign_slot_teams, clean_slots
from rehab_roster.staff import available_slots
from rehab_roster.validation import validate_fte, validate_slots, validate_team

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    team: Optional[str] = None
    staff: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.team:
            parts.append(f"team={self.team}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


class ConstraintChecker:
    """
    Validates an AllocationResult against hard and soft constraints, and the
    input roster for structural integrity.
    """

    def __init__(
        self,
        staff: List[Dict[str, Any]],
        special_programs: Optional[List[Dict[str, Any]]] = None,
        spt_rows: Optional[List[Dict[str, Any]]] = None,
    ):
        self.staff = staff
        self.directory = StaffDirectory(staff, special_programs, spt_rows)

    # -----------------------------------------------------------------------
    # HARD: one record per staff id
    # -----------------------------------------------------------------------

    def check_duplicate_staff(self, allocations: List[TherapistAllocation]) -> List[ConstraintViolation]:
        violations = []
        by_staff: Dict[str, List[TherapistAllocation]] = {}
        for a in allocations:
            by_staff.setdefault(a.staff_id, []).append(a)
        for staff_id, allocs in by_staff.items():
            if len(allocs) < 2:
                continue
            teams = [a.team for a in allocs]
            if all(a.is_manual_override for a in allocs) and len(set(teams)) == len(teams):
                continue
            violations.append(ConstraintViolation(
                severity=ConstraintSeverity.HARD,
                constraint_type="DUPLICATE_STAFF",
                description=f"{staff_id} allocated {len(allocs)} times ({', '.join(teams)})",
                staff=staff_id,
                details={"teams": teams},
            ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: FTE bounds and team totals
    # -----------------------------------------------------------------------

    def check_fte_bounds(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        for a in result.allocations:
            if a.fte < -FTE_EPSILON:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="NEGATIVE_FTE",
                    description=f"{a.staff_id} has FTE {a.fte:.2f} in {a.team}",
                    team=a.team,
                    staff=a.staff_id,
                ))
        for team, total in result.fte_per_team.items():
            if total < -FTE_EPSILON:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="NEGATIVE_FTE",
                    description=f"Team total {total:.2f} is negative",
                    team=team,
                ))
        return violations

    def check_team_totals(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        sums: Dict[str, float] = {t: 0.0 for t in TEAMS}
        for a in result.allocations:
            sums[a.team] = sums.get(a.team, 0.0) + a.fte
        for team, expected in sums.items():
            reported = result.fte_per_team.get(team, 0.0)
            if abs(reported - expected) > FTE_EPSILON:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="TEAM_TOTAL_MISMATCH",
                    description=f"Reported {reported:.2f} but allocations sum to {expected:.2f}",
                    team=team,
                    details={"reported": reported, "expected": expected},
                ))
        return violations

    def check_teams(self, allocations: List[TherapistAllocation]) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.HARD,
                constraint_type="UNKNOWN_TEAM",
                description=f"{a.staff_id} allocated to unknown team {a.team!r}",
                team=a.team,
                staff=a.staff_id,
            )
            for a in allocations if not validate_team(a.team)
        ]

    # -----------------------------------------------------------------------
    # HARD: specialist slots agree with the weekday config
    # -----------------------------------------------------------------------

    def check_specialist_slots(self, result: AllocationResult) -> List[ConstraintViolation]:
        violations = []
        for a in result.allocations:
            if a.is_manual_override or self.directory.spt_row(a.staff_id) is None:
                continue
            cfg = self.directory.spt_config(a.staff_id, result.weekday)
            expected = assign_slot_teams(
                cfg.slots, cfg.slot_modes, a.team,
                available_slots(self.directory.get_staff(a.staff_id)),
            )
            actual = {f"slot{s}": team for s, team in a.slot_teams().items()}
            if actual != expected:
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="SLOT_MISMATCH",
                    description=f"{a.staff_id} slots {actual} ≠ configured {expected}",
                    team=a.team,
                    staff=a.staff_id,
                    details={"actual": actual, "expected": expected},
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: one runner per program per team
    # -----------------------------------------------------------------------

    def check_program_runners(self, allocations: List[TherapistAllocation]) -> List[ConstraintViolation]:
        violations = []
        seen: Dict[Tuple[str, str], str] = {}
        for a in allocations:
            for pid in a.special_program_ids:
                key = (pid, a.team)
                if key in seen and seen[key] != a.staff_id:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="PROGRAM_MULTIPLE_RUNNERS",
                        description=f"Program {pid} run by both {seen[key]} and {a.staff_id}",
                        team=a.team,
                        staff=a.staff_id,
                    ))
                else:
                    seen[key] = a.staff_id
        return violations

    # -----------------------------------------------------------------------
    # SOFT: coverage
    # -----------------------------------------------------------------------

    def check_team_heads(self, allocations: List[TherapistAllocation]) -> List[ConstraintViolation]:
        headed = set()
        for a in allocations:
            staff = self.directory.get_staff(a.staff_id) or {}
            if a.is_substitute_team_head or staff.get("rank") == TEAM_HEAD_RANK:
                headed.add(a.team)
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="TEAM_WITHOUT_HEAD",
                description=f"No team head or substitute allocated to {team}",
                team=team,
            )
            for team in TEAMS if team not in headed
        ]

    def check_unstaffed(self, result: AllocationResult) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="UNSTAFFED_TEAM",
                description=f"{team} has no therapist FTE after program deductions",
                team=team,
            )
            for team in TEAMS if result.fte_per_team.get(team, 0.0) <= FTE_EPSILON
        ]

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(
        self,
        result: AllocationResult,
    ) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Run all hard and soft constraint checks.

        Returns:
            (hard_violations, soft_violations)
        """
        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_duplicate_staff(result.allocations))
        hard.extend(self.check_fte_bounds(result))
        hard.extend(self.check_teams(result.allocations))
        hard.extend(self.check_team_totals(result))
        hard.extend(self.check_specialist_slots(result))
        hard.extend(self.check_program_runners(result.allocations))

        soft.extend(self.check_team_heads(result.allocations))
        soft.extend(self.check_unstaffed(result))

        logger.info(f"Constraint check: {len(hard)} hard, {len(soft)} soft violations")
        return hard, soft

    # -----------------------------------------------------------------------
    # Input validation (roster / config)
    # -----------------------------------------------------------------------

    def validate_roster(self) -> Tuple[List[str], List[str]]:
        """
        Validate the staff roster and SPT rows for structural integrity.

        Returns:
            (errors, warnings) as lists of strings
        """
        errors = []
        warnings = []

        ids = [s.get("id") for s in self.staff]
        dupes = sorted({i for i in ids if i and ids.count(i) > 1})
        if dupes:
            errors.append(f"Duplicate staff ids: {dupes}")
        if any(not i for i in ids):
            errors.append("Staff row without an id")

        for s in self.staff:
            sid = s.get("id")
            fte = s.get("fte")
            if fte is not None and not validate_fte(fte):
                errors.append(f"{sid}: FTE={fte!r} outside 0..1")
            if s.get("team") and not validate_team(s["team"]):
                warnings.append(f"{sid}: unknown team {s['team']!r}")
            raw_slots = s.get("available_slots") or []
            if not validate_slots(raw_slots):
                errors.append(f"{sid}: invalid available slots {raw_slots!r}")
            if s.get("available_slots") and not clean_slots(raw_slots):
                warnings.append(f"{sid}: available slots list is empty after cleaning")

        for row in self.directory.spt_rows:
            sid = row["staff_id"]
            if self.directory.get_staff(sid) is None:
                warnings.append(f"SPT row for {sid} has no staff record")
            bad = [t for t in row.get("teams") or [] if not validate_team(t)]
            if bad:
                warnings.append(f"SPT row for {sid} lists unknown teams {bad}")

        return errors, warnings
