"""
Reconciliation - pure lease/occupancy comparison.

The stateful sweep that applies repairs lives in
tenancy_services.reconciliation_service.
"""

from tenancy_engines.reconciliation.types import (
    CLAIMABLE_STATUSES,
    FindingKind,
    LeaseSnapshot,
    OccupancySnapshot,
    ReconciliationFinding,
    ReconciliationReport,
    RepairAction,
    SweepResult,
)

from tenancy_engines.reconciliation.checker import OccupancyReconciliationChecker

__all__ = [
    "CLAIMABLE_STATUSES",
    "FindingKind",
    "LeaseSnapshot",
    "OccupancySnapshot",
    "ReconciliationFinding",
    "ReconciliationReport",
    "RepairAction",
    "SweepResult",
    "OccupancyReconciliationChecker",
]
