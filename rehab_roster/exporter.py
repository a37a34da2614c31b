"""
exporter.py — Export Layer for the Rehab Roster Engine

Outputs:
  - CSV: one row per therapist allocation
  - Excel (.xlsx): "Allocations" sheet (flat) and "Team Slots" sheet
    (team × slot grid with staff names)
  - Allocation report (.txt): team totals, program deductions, substitute
    heads and constraint violations

Usage:
  from rehab_roster.exporter import export_to_csv, export_to_excel, export_allocation_report
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from rehab_roster.engine import AllocationResult
from rehab_roster.schedule_config import EXPORT_COLUMNS, SLOTS, TEAMS
from rehab_roster.slots import get_slot_time

logger = logging.getLogger(__name__)


def allocation_rows(
    result: AllocationResult,
    staff_names: Optional[Dict[str, str]] = None,
) -> List[Dict[str, Any]]:
    """Flatten allocations into export rows (program ids joined with ';')."""
    names = staff_names or {}
    rows = []
    for alloc in result.allocations:
        d = alloc.to_dict()
        row = {col: d.get(col) for col in EXPORT_COLUMNS}
        row["special_program_ids"] = ";".join(alloc.special_program_ids)
        row["fte"] = round(alloc.fte, 4)
        row["name"] = names.get(alloc.staff_id, alloc.staff_id)
        rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_to_csv(
    result: AllocationResult,
    output_path: Path,
    staff_names: Optional[Dict[str, str]] = None,
) -> None:
    """
    Export allocations to flat CSV.

    Args:
        result:       AllocationResult from allocate_therapists()
        output_path:  .csv file path
        staff_names:  Optional staff id → display name
    """
    import csv
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=["name"] + EXPORT_COLUMNS)
        writer.writeheader()
        for row in allocation_rows(result, staff_names):
            writer.writerow(row)

    logger.info(f"CSV exported → {output_path}")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def team_slot_grid(
    result: AllocationResult,
    staff_names: Optional[Dict[str, str]] = None,
) -> Dict[str, Dict[str, str]]:
    """{team: {slot label: "Name A; Name B"}} for every team and slot."""
    names = staff_names or {}
    grid: Dict[str, Dict[str, List[str]]] = {
        team: {get_slot_time(s): [] for s in SLOTS} for team in TEAMS
    }
    for alloc in result.allocations:
        for slot, team in alloc.slot_teams().items():
            if team in grid:
                grid[team][get_slot_time(slot)].append(names.get(alloc.staff_id, alloc.staff_id))
    return {
        team: {label: "; ".join(people) for label, people in cells.items()}
        for team, cells in grid.items()
    }


def export_to_excel(
    result: AllocationResult,
    output_path: Path,
    staff_names: Optional[Dict[str, str]] = None,
) -> None:
    """
    Export allocations to a formatted workbook.

    Args:
        result:       AllocationResult from allocate_therapists()
        output_path:  .xlsx file path
        staff_names:  If provided, cells show names instead of staff ids
    """
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)

    flat = pd.DataFrame(allocation_rows(result, staff_names), columns=["name"] + EXPORT_COLUMNS)
    grid = pd.DataFrame.from_dict(team_slot_grid(result, staff_names), orient="index")
    grid.index.name = "Team"
    grid["FTE"] = [round(result.fte_per_team.get(t, 0.0), 2) for t in grid.index]

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        flat.to_excel(writer, sheet_name="Allocations", index=False)
        _format_sheet(writer, "Allocations")
        grid.to_excel(writer, sheet_name="Team Slots")
        _format_sheet(writer, "Team Slots")

    logger.info(f"Excel exported → {output_path}")


def _format_sheet(writer: Any, sheet_name: str) -> None:
    """Header styling, column widths and alternate row shading."""
    from openpyxl.styles import Alignment, Font, PatternFill

    ws = writer.sheets[sheet_name]
    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF")

    for cell in ws[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    for col in ws.columns:
        max_len = max((len(str(c.value)) for c in col if c.value is not None), default=8)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)

    alt = PatternFill("solid", fgColor="EBF3FB")
    for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
        if i % 2 == 0:
            for cell in row:
                cell.fill = alt


# ---------------------------------------------------------------------------
# Allocation Report
# ---------------------------------------------------------------------------

def export_allocation_report(
    result: AllocationResult,
    output_path: Path,
    for_date: str = "",
    violations: Optional[List[Any]] = None,
    staff_names: Optional[Dict[str, str]] = None,
) -> str:
    """
    Export a text report of one allocation run.

    Includes:
      - Total FTE on duty and per-team FTE
      - Program deductions (runner, requested, applied)
      - Substitute team heads and manual overrides
      - Constraint violations, if given

    Returns the report text.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    names = staff_names or {}
    sep = "=" * 70

    lines = [
        sep,
        f"  THERAPIST ALLOCATION REPORT{(' — ' + for_date) if for_date else ''}",
        sep,
        "",
        f"  Weekday:               {result.weekday or '(weekend)'}",
        f"  Total FTE on duty:     {result.total_fte_on_duty:.2f}",
        f"  Allocations:           {len(result.allocations)}",
        "",
        "─" * 70,
        "  FTE per Team",
        "─" * 70,
    ]
    for team in TEAMS:
        fte = result.fte_per_team.get(team, 0.0)
        staff_count = len(result.for_team(team))
        lines.append(f"  {team:<8} {fte:>6.2f}  ({staff_count} staff)")

    lines += ["", "─" * 70, "  Special Program Deductions", "─" * 70]
    if result.deductions:
        for d in result.deductions:
            runner = names.get(d.staff_id, d.staff_id) if d.staff_id else "(no eligible therapist)"
            lines.append(
                f"  {d.program_id:<12} {d.team:<6} {runner:<24} "
                f"requested={d.requested:.2f} applied={d.applied:.2f}"
            )
    else:
        lines.append("  (none)")

    substitutes = [a for a in result.allocations if a.is_substitute_team_head]
    manual = [a for a in result.allocations if a.is_manual_override]
    lines += ["", "─" * 70, "  Substitute Heads & Manual Overrides", "─" * 70]
    for a in substitutes:
        lines.append(f"  {names.get(a.staff_id, a.staff_id):<24} substitute head of {a.team}")
    for a in manual:
        note = f"  ({a.manual_override_note})" if a.manual_override_note else ""
        lines.append(f"  {names.get(a.staff_id, a.staff_id):<24} manual → {a.team} {a.fte:.2f}{note}")
    if not substitutes and not manual:
        lines.append("  (none)")

    if violations is not None:
        lines += ["", "─" * 70, "  Constraint Violations", "─" * 70]
        lines.extend(f"  {v}" for v in violations)
        if not violations:
            lines.append("  ✓ none")

    lines.append("")
    lines.append(sep)

    report_text = "\n".join(lines)
    with open(output_path, "w") as f:
        f.write(report_text)

    logger.info(f"Allocation report exported → {output_path}")
    return report_text
