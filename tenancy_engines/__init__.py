"""
Module: tenancy_engines
Responsibility:
    Package entrypoint re-exporting the pure evaluation engines: tenant
    qualification, application status projection, and lease/occupancy
    reconciliation.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.
    May only import tenancy_kernel domain values, exceptions and logging.
    MUST NOT import tenancy_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are passed
      in by the services that call them.
    - Decimal-only arithmetic: every amount is a ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Every engine entry point is traced via ``@traced_engine`` (see
``tenancy_engines.tracer``), emitting TENANCY_ENGINE_TRACE records.
"""

from tenancy_engines.qualification import (
    CheckOutcome,
    QualificationCheck,
    QualificationResult,
    TenantFacts,
    evaluate,
)
from tenancy_engines.status_projection import (
    ApplicationState,
    ProjectionResult,
    apply_override,
    clear_override,
    project,
)
from tenancy_engines.reconciliation import (
    FindingKind,
    LeaseSnapshot,
    OccupancyReconciliationChecker,
    OccupancySnapshot,
    ReconciliationFinding,
    ReconciliationReport,
    RepairAction,
)
from tenancy_engines.tracer import traced_engine

__all__ = [
    "CheckOutcome",
    "QualificationCheck",
    "QualificationResult",
    "TenantFacts",
    "evaluate",
    "ApplicationState",
    "ProjectionResult",
    "apply_override",
    "clear_override",
    "project",
    "FindingKind",
    "LeaseSnapshot",
    "OccupancyReconciliationChecker",
    "OccupancySnapshot",
    "ReconciliationFinding",
    "ReconciliationReport",
    "RepairAction",
    "traced_engine",
]
