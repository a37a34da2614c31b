"""
Rehab Roster Allocation Engine

Modules:
- schedule_config: Teams, slots, ranks, leave FTE map, program fallback policy
- directory: Staff/program directory and specialist weekday configs
- engine: Daily therapist allocation (phases A–D)
- step_reset: PCA step reconciliation and substitution markers
- calculations: Beds per therapist and average PCA targets
- constraints: Post-run hard/soft constraint checks
- config: Roster and JSON input loaders
- supabase_client: Read-only Supabase REST access
- exporter: CSV, Excel and text report output
- dry_run: Command-line dry run
"""

from .config import (
    load_staff,
    load_special_programs,
    load_spt_allocations,
    load_manual_overrides,
    load_previous_allocations,
    save_previous_allocations,
    get_config,
)

from .engine import (
    AllocationContext,
    AllocationResult,
    TherapistAllocation,
    allocate_therapists,
)

from .step_reset import (
    Step3Reset,
    compute_step3_reset,
    reset_step2_overrides,
)

__all__ = [
    "load_staff",
    "load_special_programs",
    "load_spt_allocations",
    "load_manual_overrides",
    "load_previous_allocations",
    "save_previous_allocations",
    "get_config",
    "AllocationContext",
    "AllocationResult",
    "TherapistAllocation",
    "allocate_therapists",
    "Step3Reset",
    "compute_step3_reset",
    "reset_step2_overrides",
]
