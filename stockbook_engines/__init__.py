"""
Module: stockbook_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines. This is
    the import surface for stockbook_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stockbook_kernel. MUST NOT import stockbook_services.

Invariants enforced:
    - Purity: engines never read the clock; reference dates are passed in.
    - Decimal-only arithmetic for every amount and quantity.
    - Determinism: identical inputs always produce identical outputs.
"""

from stockbook_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgedDebt,
    AgingReport,
    DebtView,
    build_aging_report,
    classify,
    days_past_due,
    is_overdue,
    view_debt,
)
from stockbook_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationMethod,
    AllocationResult,
    AllocationTarget,
)
from stockbook_engines.fifo import CostPlan, FifoCostEngine, plan_fifo
from stockbook_engines.settlement import (
    apply_settlement,
    compute_remaining,
    derive_payment_status,
    reverse_settlement,
)
from stockbook_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "STANDARD_BUCKETS",
    "AgeBucket",
    "AgedDebt",
    "AgingReport",
    "AllocationEngine",
    "AllocationLine",
    "AllocationMethod",
    "AllocationResult",
    "AllocationTarget",
    "CostPlan",
    "DebtView",
    "FifoCostEngine",
    "apply_settlement",
    "build_aging_report",
    "classify",
    "compute_input_fingerprint",
    "compute_remaining",
    "days_past_due",
    "derive_payment_status",
    "is_overdue",
    "plan_fifo",
    "reverse_settlement",
    "traced_engine",
    "view_debt",
]
