"""
Occupancy reconciliation domain types.

Pure frozen dataclasses and enums describing what the reconciliation sweep
observed (lease and occupancy snapshots) and what it decided (findings with
a repair action).  Used by OccupancyReconciliationChecker (pure engine) and
ReconciliationService (imperative shell).

Architecture: tenancy_engines/reconciliation -- pure domain, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from tenancy_kernel.domain.dtos import OccupancyKey


class FindingKind(str, Enum):
    """Kinds of lease/occupancy disagreement."""

    ORPHANED_LEASE = "orphaned-lease"
    GHOST_OCCUPANCY = "ghost-occupancy"
    DUPLICATE_ACTIVE_LEASE = "duplicate-active-lease"
    HALF_SET_OCCUPANCY = "half-set-occupancy"
    STALE_LEASE_WINDOW = "stale-lease-window"


class RepairAction(str, Enum):
    """What the sweep should do about a finding."""

    RELEASE_OCCUPANCY = "release-occupancy"
    CLAIM_OCCUPANCY = "claim-occupancy"
    TERMINATE_LEASE = "terminate-lease"
    COPY_LEASE_WINDOW = "copy-lease-window"
    FLAG = "flag"


# Occupancy statuses from which a vacant record may be claimed for a lease
CLAIMABLE_STATUSES: frozenset[str] = frozenset({"available", "pending", "occupied"})


# =============================================================================
# Input types (populated by service, consumed by engine)
# =============================================================================


@dataclass(frozen=True)
class LeaseSnapshot:
    """One ACTIVE lease as read from a tenant's ledger."""

    lease_id: UUID
    tenant_id: UUID
    property_id: UUID
    unit_id: UUID | None
    start_date: datetime
    end_date: datetime

    @property
    def key(self) -> OccupancyKey:
        return OccupancyKey(self.property_id, self.unit_id)


@dataclass(frozen=True)
class OccupancySnapshot:
    """One occupancy record (whole property or unit) as read from a property."""

    property_id: UUID
    unit_id: UUID | None
    is_occupied: bool
    tenant_id: UUID | None
    lease_start: datetime | None
    lease_end: datetime | None
    status: str
    version: int

    @property
    def key(self) -> OccupancyKey:
        return OccupancyKey(self.property_id, self.unit_id)

    @property
    def is_half_set(self) -> bool:
        return self.is_occupied != (self.tenant_id is not None)

    @property
    def holder(self) -> UUID | None:
        """Tenant the record points at, only when fully set."""
        if self.is_occupied and self.tenant_id is not None:
            return self.tenant_id
        return None

    @property
    def is_claimable(self) -> bool:
        return str(self.status) in CLAIMABLE_STATUSES


# =============================================================================
# Output types (produced by engine, consumed by service)
# =============================================================================


@dataclass(frozen=True)
class ReconciliationFinding:
    """
    One disagreement plus the repair decided for it.

    ``observed_version`` is the occupancy record version the decision was
    based on; the service skips the repair if the record has moved on.
    """

    kind: FindingKind
    key: OccupancyKey
    repair: RepairAction
    detail: str
    tenant_id: UUID | None = None
    lease_id: UUID | None = None
    observed_version: int | None = None

    @property
    def is_flagged(self) -> bool:
        return self.repair == RepairAction.FLAG

    def describe(self) -> str:
        return f"{self.kind.value} at {self.key}: {self.detail}"


@dataclass(frozen=True)
class ReconciliationReport:
    """Checker output for one sweep."""

    findings: tuple[ReconciliationFinding, ...] = ()
    leases_checked: int = 0
    spaces_checked: int = 0

    @property
    def is_consistent(self) -> bool:
        return not self.findings

    @property
    def flagged(self) -> tuple[ReconciliationFinding, ...]:
        return tuple(f for f in self.findings if f.is_flagged)

    @property
    def repairable(self) -> tuple[ReconciliationFinding, ...]:
        return tuple(f for f in self.findings if not f.is_flagged)

    def by_kind(self, kind: FindingKind) -> tuple[ReconciliationFinding, ...]:
        return tuple(f for f in self.findings if f.kind == kind)


@dataclass(frozen=True)
class SweepResult:
    """What a sweep found and what it did about it."""

    report: ReconciliationReport
    repaired: tuple[ReconciliationFinding, ...] = ()
    skipped: tuple[ReconciliationFinding, ...] = ()
    flagged_issue_ids: tuple[UUID, ...] = ()
    resolved_issue_ids: tuple[UUID, ...] = ()
    errors: tuple[str, ...] = field(default_factory=tuple)
