"""
Typed Exception Hierarchy for the Tenancy Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the assignment and qualification layer (HTTP handlers, batch
jobs, operators) must react to failures precisely.  Matching on message
text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (ids, dates, statuses)

Example:

    try:
        coordinator.assign(tenant_id, property_id, unit_ref="2B", actor_id=owner)
    except AlreadyOccupiedError as e:
        api_response(409, code=e.code, property_id=str(e.property_id))
    except NotFoundError as e:
        api_response(404, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TenancyKernelError (base)
    |
    +-- NotFoundError
    |   +-- TenantNotFoundError
    |   +-- PropertyNotFoundError
    |   +-- UnitNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidDatesError
    |   +-- UnitRequiredError
    |   +-- UnitNotAllowedError
    |   +-- InvalidRentError
    |   +-- InvalidLeaseTermsError
    |   +-- InvalidAmountError
    |   +-- InvalidStatusTransitionError
    |
    +-- AssignmentError
    |   +-- AlreadyOccupiedError
    |   +-- NoActiveLeaseError
    |   +-- SpaceUnavailableError
    |   +-- TenantAlreadyLeasedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ConsistencyError
        +-- ConsistencyViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

NotFoundError       -> surfaced directly, never retried.  Also raised when
                       the record exists but is not owned by the caller.
ValidationError     -> raised before any write; nothing was mutated.
AssignmentError     -> expected business rejection; never retried.
ConcurrencyError    -> single-aggregate writes retry a bounded number of
                       times before this escapes.
ConsistencyError    -> internal.  Raised only by explicit invariant checks
                       (ReconciliationService.verify_invariants); never
                       by assign/unassign.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID


class TenancyKernelError(Exception):
    """
    Base exception for all tenancy kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TENANCY_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(TenancyKernelError):
    """Record is absent or not owned by the calling principal."""

    code: str = "NOT_FOUND"


class TenantNotFoundError(NotFoundError):
    """Tenant does not exist, is inactive, or belongs to another owner."""

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: UUID | str):
        self.tenant_id = str(tenant_id)
        super().__init__(f"Tenant not found or access denied: {tenant_id}")


class PropertyNotFoundError(NotFoundError):
    """Property does not exist or belongs to another owner."""

    code: str = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: UUID | str):
        self.property_id = str(property_id)
        super().__init__(f"Property not found or access denied: {property_id}")


class UnitNotFoundError(NotFoundError):
    """Unit reference does not match any unit of the property."""

    code: str = "UNIT_NOT_FOUND"

    def __init__(self, property_id: UUID | str, unit_ref: UUID | str):
        self.property_id = str(property_id)
        self.unit_ref = str(unit_ref)
        super().__init__(
            f"Unit {unit_ref} not found in property {property_id}"
        )


# Validation exceptions


class ValidationError(TenancyKernelError):
    """Base exception for input validation failures (no write attempted)."""

    code: str = "VALIDATION_ERROR"


class InvalidDatesError(ValidationError):
    """Lease window is empty, inverted, or already over."""

    code: str = "INVALID_DATES"

    def __init__(self, start_date: datetime, end_date: datetime, reason: str):
        self.start_date = start_date
        self.end_date = end_date
        self.reason = reason
        super().__init__(
            f"Invalid lease dates {start_date.isoformat()} -> "
            f"{end_date.isoformat()}: {reason}"
        )


class UnitRequiredError(ValidationError):
    """Multi-unit property addressed without a unit."""

    code: str = "UNIT_REQUIRED"

    def __init__(self, property_id: UUID | str, property_type: str):
        self.property_id = str(property_id)
        self.property_type = property_type
        super().__init__(
            f"Unit is required for multi-unit property {property_id} "
            f"({property_type})"
        )


class UnitNotAllowedError(ValidationError):
    """Single-unit property addressed with a unit."""

    code: str = "UNIT_NOT_ALLOWED"

    def __init__(self, property_id: UUID | str, property_type: str):
        self.property_id = str(property_id)
        self.property_type = property_type
        super().__init__(
            f"Unit not allowed for single-unit property {property_id} "
            f"({property_type})"
        )


class InvalidRentError(ValidationError):
    """Candidate rent is missing, zero, or negative."""

    code: str = "INVALID_RENT"

    def __init__(self, monthly_rent: object):
        self.monthly_rent = str(monthly_rent)
        super().__init__(f"Monthly rent must be a positive amount, got {monthly_rent}")


class InvalidLeaseTermsError(ValidationError):
    """A lease term other than the dates is out of range."""

    code: str = "INVALID_LEASE_TERMS"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid lease term {field}={value}: {reason}")


class InvalidAmountError(ValidationError):
    """A recorded tenant financial fact (income, expenses) is negative."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = str(value)
        super().__init__(f"Invalid amount {field}={value}: must not be negative")


class InvalidStatusTransitionError(ValidationError):
    """Requested status change is not in the transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        super().__init__(
            f"Invalid {entity_type} transition: {from_status} -> {to_status}"
        )


# Assignment exceptions


class AssignmentError(TenancyKernelError):
    """Base exception for assignment business-rule rejections."""

    code: str = "ASSIGNMENT_ERROR"


class AlreadyOccupiedError(AssignmentError):
    """Target property/unit is already occupied (or was claimed first)."""

    code: str = "ALREADY_OCCUPIED"

    def __init__(self, property_id: UUID, unit_id: UUID | None):
        self.property_id = property_id
        self.unit_id = unit_id
        where = f"unit {unit_id} of property {property_id}" if unit_id else f"property {property_id}"
        super().__init__(f"Already occupied: {where}")


class NoActiveLeaseError(AssignmentError):
    """Tenant has no active lease on the given property/unit."""

    code: str = "NO_ACTIVE_LEASE"

    def __init__(self, tenant_id: UUID, property_id: UUID, unit_id: UUID | None):
        self.tenant_id = tenant_id
        self.property_id = property_id
        self.unit_id = unit_id
        super().__init__(
            f"No active lease for tenant {tenant_id} on property {property_id}"
            + (f" unit {unit_id}" if unit_id else "")
        )


class SpaceUnavailableError(AssignmentError):
    """Space is vacant but its status does not allow occupation."""

    code: str = "SPACE_UNAVAILABLE"

    def __init__(self, property_id: UUID, unit_id: UUID | None, status: str):
        self.property_id = property_id
        self.unit_id = unit_id
        self.status = str(status)
        super().__init__(
            f"Space {property_id}/{unit_id or '-'} is not available (status={status})"
        )


class TenantAlreadyLeasedError(AssignmentError):
    """Tenant already holds an active lease the policy forbids duplicating."""

    code: str = "TENANT_ALREADY_LEASED"

    def __init__(self, tenant_id: UUID, lease_id: UUID):
        self.tenant_id = tenant_id
        self.lease_id = lease_id
        super().__init__(
            f"Tenant {tenant_id} already has active lease {lease_id}"
        )


# Concurrency exceptions


class ConcurrencyError(TenancyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict persisted after all retries."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Consistency exceptions


class ConsistencyError(TenancyKernelError):
    """Base exception for cross-aggregate consistency problems."""

    code: str = "CONSISTENCY_ERROR"


class ConsistencyViolationError(ConsistencyError):
    """Lease ledger and occupancy records disagree."""

    code: str = "CONSISTENCY_VIOLATION"

    def __init__(self, findings: list[str]):
        self.findings = list(findings)
        super().__init__(
            f"{len(self.findings)} lease/occupancy consistency violation(s): "
            + "; ".join(self.findings[:5])
        )
