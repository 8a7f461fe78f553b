"""
Module: tenancy_services
Responsibility:
    Imperative shell composing the kernel (persistence, single-aggregate
    operations) with the pure engines (qualification, status projection,
    reconciliation).  Every public operation owns its transactions.

Architecture position:
    Services -- outermost layer.  May import tenancy_kernel and
    tenancy_engines.  Nothing in either of those imports from here.

Invariants enforced:
    - Each transaction writes at most one aggregate (Tenant or Property).
    - Operations touching an occupancy space hold that space's in-process
      lock for their whole duration.
    - Single-aggregate writes retry on version conflicts a bounded number
      of times (``TenancyConfig.max_write_retries``).
"""

from tenancy_services.assignment_coordinator import (
    AssignmentCoordinator,
    AssignmentResult,
    ForceUnassignmentResult,
    RenewalResult,
    UnassignmentResult,
)
from tenancy_services.lease_expiry_service import ExpiryResult, LeaseExpiryService
from tenancy_services.occupancy_lock import OccupancyLockRegistry, default_lock_registry
from tenancy_services.qualification_service import QualificationService, facts_from_tenant
from tenancy_services.reconciliation_service import ReconciliationService
from tenancy_services.status_projector import StatusProjector
from tenancy_services.tenant_service import TenantService

__all__ = [
    "AssignmentCoordinator",
    "AssignmentResult",
    "ForceUnassignmentResult",
    "RenewalResult",
    "UnassignmentResult",
    "ExpiryResult",
    "LeaseExpiryService",
    "OccupancyLockRegistry",
    "default_lock_registry",
    "QualificationService",
    "facts_from_tenant",
    "ReconciliationService",
    "StatusProjector",
    "TenantService",
]
