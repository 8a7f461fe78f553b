"""
Closed status enumerations and their transition tables
(``tenancy_kernel.domain.statuses``).

Responsibility
--------------
Single definition of every status vocabulary used by the Lease Ledger,
the Occupancy Store, the Qualification Engine and the Status Projector,
together with the exhaustive ``from -> allowed targets`` table for each.

Architecture position
---------------------
**Kernel domain layer** -- pure values.  ZERO I/O.  Imported by models,
engines and services alike.

Invariants enforced
-------------------
* Every member of every enum appears as a key of its transition table
  (checked at import time by ``_assert_exhaustive``).
* Terminal states map to an empty frozenset.
"""

from __future__ import annotations

from enum import Enum

from tenancy_kernel.exceptions import InvalidStatusTransitionError


class PropertyType(str, Enum):
    """Kind of property; decides single vs multi-unit occupancy."""

    HOUSE = "house"
    APARTMENT = "apartment"
    CONDO = "condo"
    TOWNHOUSE = "townhouse"
    DUPLEX = "duplex"
    COMMERCIAL = "commercial"
    LAND = "land"
    OTHER = "other"

    @property
    def is_multi_unit(self) -> bool:
        return self in MULTI_UNIT_TYPES


MULTI_UNIT_TYPES: frozenset[PropertyType] = frozenset({
    PropertyType.APARTMENT,
    PropertyType.DUPLEX,
})


class TenancyType(str, Enum):
    """UK tenancy agreement type recorded on a lease."""

    ASSURED_SHORTHOLD = "assured-shorthold"
    ASSURED = "assured"
    REGULATED = "regulated"
    CONTRACTUAL = "contractual"
    PERIODIC = "periodic"


class LeaseStatus(str, Enum):
    """
    Lease lifecycle.

    State machine:
        PENDING -> ACTIVE | TERMINATED
        ACTIVE  -> TERMINATED | EXPIRED | RENEWED
        TERMINATED, EXPIRED, RENEWED: terminal
    """

    PENDING = "pending"
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"
    RENEWED = "renewed"


LEASE_TRANSITIONS: dict[LeaseStatus, frozenset[LeaseStatus]] = {
    LeaseStatus.PENDING: frozenset({LeaseStatus.ACTIVE, LeaseStatus.TERMINATED}),
    LeaseStatus.ACTIVE: frozenset({
        LeaseStatus.TERMINATED, LeaseStatus.EXPIRED, LeaseStatus.RENEWED,
    }),
    LeaseStatus.TERMINATED: frozenset(),
    LeaseStatus.EXPIRED: frozenset(),
    LeaseStatus.RENEWED: frozenset(),
}


class TerminationCode(str, Enum):
    """Why a lease left the ACTIVE state."""

    MANUAL_UNASSIGNMENT = "manual-unassignment"
    ASSIGNMENT_ROLLED_BACK = "assignment-rolled-back"
    FORCE_UNASSIGNED = "force-unassigned"
    RECONCILIATION = "reconciliation"
    EXPIRED = "expired"
    RENEWED = "renewed"


class OccupancyStatus(str, Enum):
    """Status of a unit's occupancy record."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    OFF_MARKET = "off-market"


OCCUPANCY_TRANSITIONS: dict[OccupancyStatus, frozenset[OccupancyStatus]] = {
    OccupancyStatus.AVAILABLE: frozenset({
        OccupancyStatus.OCCUPIED, OccupancyStatus.MAINTENANCE, OccupancyStatus.OFF_MARKET,
    }),
    OccupancyStatus.OCCUPIED: frozenset({OccupancyStatus.AVAILABLE}),
    OccupancyStatus.MAINTENANCE: frozenset({
        OccupancyStatus.AVAILABLE, OccupancyStatus.OFF_MARKET,
    }),
    OccupancyStatus.OFF_MARKET: frozenset({
        OccupancyStatus.AVAILABLE, OccupancyStatus.MAINTENANCE,
    }),
}


class PropertyStatus(str, Enum):
    """Status of a whole property (superset of OccupancyStatus)."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    OFF_MARKET = "off-market"
    PENDING = "pending"


PROPERTY_TRANSITIONS: dict[PropertyStatus, frozenset[PropertyStatus]] = {
    PropertyStatus.PENDING: frozenset({
        PropertyStatus.AVAILABLE, PropertyStatus.OCCUPIED, PropertyStatus.OFF_MARKET,
    }),
    PropertyStatus.AVAILABLE: frozenset({
        PropertyStatus.OCCUPIED, PropertyStatus.MAINTENANCE,
        PropertyStatus.OFF_MARKET, PropertyStatus.PENDING,
    }),
    PropertyStatus.OCCUPIED: frozenset({PropertyStatus.AVAILABLE}),
    PropertyStatus.MAINTENANCE: frozenset({
        PropertyStatus.AVAILABLE, PropertyStatus.OFF_MARKET,
    }),
    PropertyStatus.OFF_MARKET: frozenset({
        PropertyStatus.AVAILABLE, PropertyStatus.MAINTENANCE, PropertyStatus.PENDING,
    }),
}


class QualificationVerdict(str, Enum):
    """Categorical output of the Qualification Engine."""

    QUALIFIED = "qualified"
    NEEDS_REVIEW = "needs-review"
    NOT_QUALIFIED = "not-qualified"
    UNKNOWN = "unknown"


class ApplicationStatus(str, Enum):
    """Externally visible application status of a tenant."""

    PENDING = "pending"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITLISTED = "waitlisted"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class StatusSource(str, Enum):
    """Whether applicationStatus was derived or set by a person."""

    DERIVED = "derived"
    MANUAL = "manual"


class ReferencingStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ReferencingOutcome(str, Enum):
    PASS = "pass"
    PASS_WITH_CONDITIONS = "pass-with-conditions"
    FAIL = "fail"
    PENDING = "pending"


class IssueStatus(str, Enum):
    """Lifecycle of a flagged consistency issue."""

    OPEN = "open"
    RESOLVED = "resolved"


# The projector recomputes verdicts freely, so every verdict may follow
# every other one; the table below is what the status mapping consumes.
VERDICT_TO_APPLICATION_STATUS: dict[QualificationVerdict, ApplicationStatus] = {
    QualificationVerdict.QUALIFIED: ApplicationStatus.APPROVED,
    QualificationVerdict.NOT_QUALIFIED: ApplicationStatus.REJECTED,
    QualificationVerdict.NEEDS_REVIEW: ApplicationStatus.UNDER_REVIEW,
    QualificationVerdict.UNKNOWN: ApplicationStatus.PENDING,
}

VERDICT_TRANSITIONS: dict[QualificationVerdict, frozenset[QualificationVerdict]] = {
    verdict: frozenset(QualificationVerdict) for verdict in QualificationVerdict
}

# Statuses derivation can produce; anything else only arrives by override
DERIVABLE_STATUSES: frozenset[ApplicationStatus] = frozenset(VERDICT_TO_APPLICATION_STATUS.values())

APPLICATION_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset(ApplicationStatus) - {ApplicationStatus.PENDING},
    ApplicationStatus.UNDER_REVIEW: frozenset(ApplicationStatus) - {ApplicationStatus.UNDER_REVIEW},
    ApplicationStatus.APPROVED: (DERIVABLE_STATUSES | {
        ApplicationStatus.WITHDRAWN, ApplicationStatus.EXPIRED,
    }) - {ApplicationStatus.APPROVED},
    ApplicationStatus.REJECTED: (DERIVABLE_STATUSES | {
        ApplicationStatus.WAITLISTED, ApplicationStatus.WITHDRAWN,
    }) - {ApplicationStatus.REJECTED},
    ApplicationStatus.WAITLISTED: frozenset(ApplicationStatus) - {ApplicationStatus.WAITLISTED},
    # Closed applications only reopen as pending
    ApplicationStatus.WITHDRAWN: frozenset({ApplicationStatus.PENDING}),
    ApplicationStatus.EXPIRED: frozenset({ApplicationStatus.PENDING}),
}


def _assert_exhaustive(enum_cls: type[Enum], table: dict) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        raise RuntimeError(
            f"Transition table for {enum_cls.__name__} is missing {sorted(m.value for m in missing)}"
        )


for _enum, _table in (
    (LeaseStatus, LEASE_TRANSITIONS),
    (OccupancyStatus, OCCUPANCY_TRANSITIONS),
    (PropertyStatus, PROPERTY_TRANSITIONS),
    (QualificationVerdict, VERDICT_TRANSITIONS),
    (QualificationVerdict, VERDICT_TO_APPLICATION_STATUS),
    (ApplicationStatus, APPLICATION_TRANSITIONS),
):
    _assert_exhaustive(_enum, _table)


def can_transition(table: dict, current: Enum, target: Enum) -> bool:
    """True when ``target`` is reachable from ``current`` in one step."""
    return target in table.get(current, frozenset())


def require_transition(entity_type: str, table: dict, current: Enum, target: Enum) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is allowed."""
    if not can_transition(table, current, target):
        raise InvalidStatusTransitionError(
            entity_type,
            getattr(current, "value", current),
            getattr(target, "value", target),
        )
