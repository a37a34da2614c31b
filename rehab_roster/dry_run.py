"""
dry_run.py — Safe Allocation Run (nothing written back to the database)

Full orchestration:
  1. Load staff, special programs, SPT rows, manual overrides and the
     previous day's allocations (local files or Supabase)
  2. Validate inputs (duplicate ids, FTE bounds, slot numbers, SPT rows)
  3. Run the therapist allocation (phases A → B → C1 → C2 → D)
  4. Check constraints (hard + soft)
  5. Export CSV, Excel, allocation report, violations report
  6. Print summary to console

Usage:
  python -m rehab_roster.dry_run --date 2026-03-02
  python -m rehab_roster.dry_run --date 2026-03-02 --source supabase --no-spt
"""

import argparse
import logging
import os
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rehab_roster.config import (
    load_manual_overrides,
    load_previous_allocations,
    load_special_programs,
    load_spt_allocations,
    load_staff,
    save_previous_allocations,
)
from rehab_roster.constraints import ConstraintChecker
from rehab_roster.engine import AllocationContext, allocate_therapists
from rehab_roster.exporter import export_allocation_report, export_to_csv, export_to_excel
from rehab_roster.schedule_config import TEAMS

logger = logging.getLogger(__name__)

OUTPUTS_DIR = PROJECT_ROOT / "outputs"


def _load_inputs(source: str, config_dir: Optional[Path]) -> Dict[str, Any]:
    """Staff, programs and SPT rows from local files or Supabase."""
    if source == "supabase":
        from rehab_roster.supabase_client import SupabaseClient

        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_KEY")
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set for --source supabase")
        return SupabaseClient(url, key).fetch_planning_inputs()

    base = Path(config_dir) if config_dir else None
    return {
        "staff": load_staff(base / "staff.csv" if base else None),
        "buffer_staff": [],
        "special_programs": load_special_programs(base / "special_programs.json" if base else None),
        "spt_allocations": load_spt_allocations(base / "spt_allocations.json" if base else None),
    }


# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------

def run_dry_run(
    for_date: date,
    output_dir: Path = OUTPUTS_DIR,
    source: str = "csv",
    config_dir: Optional[Path] = None,
    include_spt: bool = True,
    save_previous: bool = False,
) -> Dict:
    """
    Allocate therapists for one date in dry-run mode.

    Args:
        for_date:      Date to plan
        output_dir:    Directory for output files
        source:        "csv" (local config files) or "supabase"
        config_dir:    Override the config/ directory for local files
        include_spt:   If False, skip specialist phases C1/C2
        save_previous: If True, persist today's allocations for tomorrow's tie-break

    Returns:
        Dict with result, violations, output paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"dry_run_{for_date}"
    sep = "=" * 70

    print(f"\n{sep}")
    print(f"  DRY RUN MODE — nothing written back to the database")
    print(f"  Date: {for_date} ({for_date.strftime('%A')})")
    print(f"{sep}\n")

    # ── 1. Load inputs ─────────────────────────────────────────────────────
    print(f"Step 1/6: Loading inputs ({source})...")
    base = Path(config_dir) if config_dir else None
    inputs = _load_inputs(source, config_dir)
    overrides = load_manual_overrides(base / "manual_overrides.json" if base else None)
    previous = load_previous_allocations(base / "previous_allocations.json" if base else None)
    staff = inputs["staff"]
    print(
        f"  ✓ {len(staff)} staff | {len(inputs['special_programs'])} programs | "
        f"{len(inputs['spt_allocations'])} SPT rows | {len(overrides)} overrides"
    )

    # ── 2. Validate inputs ─────────────────────────────────────────────────
    print("\nStep 2/6: Validating inputs...")
    checker = ConstraintChecker(staff, inputs["special_programs"], inputs["spt_allocations"])
    roster_errors, roster_warnings = checker.validate_roster()

    for err in roster_errors:
        print(f"  ✗ ROSTER ERROR: {err}")
    for w in roster_warnings:
        print(f"  ⚠ WARNING: {w}")

    if roster_errors:
        print("\n  ✗ Cannot proceed — fix roster errors above.")
        sys.exit(1)

    if not roster_warnings:
        print("  ✓ Roster valid")

    # ── 3. Allocation ──────────────────────────────────────────────────────
    print("\nStep 3/6: Running therapist allocation...")
    print("  Phase order: manual → default → specialists → supervisors → programs")

    context = AllocationContext(
        date=for_date,
        staff=staff,
        special_programs=inputs["special_programs"],
        spt_allocations=inputs["spt_allocations"],
        manual_overrides=overrides,
        include_spt_allocation=include_spt,
        previous_allocations=previous,
    )
    result = allocate_therapists(context)
    print(f"  ✓ {len(result.allocations)} allocations | {result.total_fte_on_duty:.2f} FTE on duty")
    if result.weekday is None:
        print("  ⚠ Weekend date: only manual and default phases ran")

    if save_previous:
        save_previous_allocations(
            [a.to_dict() for a in result.allocations], for_date,
            base / "previous_allocations.json" if base else None,
        )
        print("  ✓ Allocations saved for the next day's tie-break")

    # ── 4. Constraint checking ─────────────────────────────────────────────
    print("\nStep 4/6: Checking constraints...")
    hard_violations, soft_violations = checker.check_all(result)

    h_count = len(hard_violations)
    s_count = len(soft_violations)
    status = "✓" if h_count == 0 else "✗"
    print(f"  {status} Hard violations: {h_count}")
    print(f"    Soft violations: {s_count}")

    # ── 5. Export ──────────────────────────────────────────────────────────
    print("\nStep 5/6: Exporting outputs...")

    csv_path        = output_dir / f"{prefix}_allocations.csv"
    xlsx_path       = output_dir / f"{prefix}_allocations.xlsx"
    report_path     = output_dir / f"{prefix}_report.txt"
    violations_path = output_dir / f"{prefix}_violations.txt"

    names = {s["id"]: s.get("name", s["id"]) for s in staff if s.get("id")}
    export_to_csv(result, csv_path, staff_names=names)
    export_to_excel(result, xlsx_path, staff_names=names)
    export_allocation_report(
        result, report_path,
        for_date=for_date.isoformat(),
        violations=hard_violations + soft_violations,
        staff_names=names,
    )

    with open(violations_path, "w") as f:
        f.write("=== Constraint Violations ===\n\n")
        f.write(f"HARD ({h_count}):\n")
        for v in hard_violations:
            f.write(f"  {v}\n")
        f.write(f"\nSOFT ({s_count}):\n")
        for v in soft_violations:
            f.write(f"  {v}\n")

    print(f"  ✓ CSV:       {csv_path.name}")
    print(f"  ✓ Excel:     {xlsx_path.name}")
    print(f"  ✓ Report:    {report_path.name}")
    print(f"  ✓ Violations:{violations_path.name}")

    # ── 6. Summary ─────────────────────────────────────────────────────────
    print(f"\nStep 6/6: Summary")
    print(f"{sep}")
    print(f"  Date:              {for_date}")
    print(f"  Total FTE on duty: {result.total_fte_on_duty:.2f}")
    print(f"  Hard violations:   {h_count}  {status}")
    print(f"  Soft violations:   {s_count}")
    print(f"\n  FTE per team:")
    for team in TEAMS:
        print(f"    {team:<8} {result.fte_per_team.get(team, 0.0):6.2f}")
    print(f"\n{sep}\n")

    return {
        "result":          result,
        "hard_violations": hard_violations,
        "soft_violations": soft_violations,
        "outputs": {
            "csv":        csv_path,
            "excel":      xlsx_path,
            "report":     report_path,
            "violations": violations_path,
        },
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(
        description="Dry-run therapist allocation for one day (no database writes)"
    )
    parser.add_argument("--date",          required=True, help="Date YYYY-MM-DD")
    parser.add_argument("--output-dir",    default=None,  help="Output directory (default: outputs/)")
    parser.add_argument("--config-dir",    default=None,  help="Input directory (default: config/)")
    parser.add_argument("--source",        choices=("csv", "supabase"), default="csv",
                        help="Where staff, programs and SPT rows come from")
    parser.add_argument("--no-spt",        action="store_true", help="Skip specialist allocation")
    parser.add_argument("--save-previous", action="store_true",
                        help="Persist allocations as previous-day input")
    args = parser.parse_args()

    try:
        for_date = datetime.strptime(args.date, "%Y-%m-%d").date()
    except ValueError as e:
        print(f"Invalid date format: {e}")
        sys.exit(1)

    out_dir = Path(args.output_dir) if args.output_dir else OUTPUTS_DIR
    try:
        run_dry_run(
            for_date,
            output_dir=out_dir,
            source=args.source,
            config_dir=Path(args.config_dir) if args.config_dir else None,
            include_spt=not args.no_spt,
            save_previous=args.save_previous,
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
