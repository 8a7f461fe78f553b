"""
Immutable DTOs returned across the service boundary.

Services never hand ORM entities to callers; every public method returns
one of these frozen dataclasses, built inside the transaction that loaded
the row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from tenancy_kernel.domain.statuses import (
    ApplicationStatus,
    LeaseStatus,
    OccupancyStatus,
    PropertyStatus,
    PropertyType,
    QualificationVerdict,
    StatusSource,
    TenancyType,
    TerminationCode,
)


@dataclass(frozen=True)
class OccupancyKey:
    """A space: a whole property (unit_id None) or one unit of it."""

    property_id: UUID
    unit_id: UUID | None = None

    def __str__(self) -> str:
        return f"{self.property_id}:{self.unit_id or '-'}"


@dataclass(frozen=True)
class LeaseTerms:
    """
    Caller-supplied lease terms.  Every field is optional; missing values are
    materialised from the clock and the unit/property financials.
    """

    start_date: datetime | None = None
    end_date: datetime | None = None
    monthly_rent: Decimal | None = None
    security_deposit: Decimal | None = None
    rent_due_day: int = 1
    tenancy_type: TenancyType = TenancyType.ASSURED_SHORTHOLD


@dataclass(frozen=True)
class LeaseInfo:
    id: UUID
    tenant_id: UUID
    property_id: UUID
    unit_id: UUID | None
    unit_number: str | None
    tenancy_type: TenancyType
    start_date: datetime
    end_date: datetime
    monthly_rent: Decimal
    security_deposit: Decimal
    rent_due_day: int
    status: LeaseStatus
    termination_date: datetime | None = None
    termination_code: TerminationCode | None = None
    termination_reason: str | None = None
    renewed_from_id: UUID | None = None

    @property
    def key(self) -> OccupancyKey:
        return OccupancyKey(self.property_id, self.unit_id)

    @property
    def is_active(self) -> bool:
        return self.status == LeaseStatus.ACTIVE


@dataclass(frozen=True)
class TenantInfo:
    """Immutable view of a tenant aggregate."""

    id: UUID
    owner_id: UUID
    tenant_ref: str
    first_name: str
    last_name: str
    email: str | None
    is_active: bool
    application_status: ApplicationStatus
    status_source: StatusSource
    application_date: datetime | None
    review_date: datetime | None
    approval_date: datetime | None
    rejection_reason: str | None
    qualification_verdict: QualificationVerdict | None
    qualification_issues: tuple[str, ...]
    qualification_rent_basis: Decimal | None
    qualification_evaluated_at: datetime | None
    target_monthly_rent: Decimal | None
    version: int
    leases: tuple[LeaseInfo, ...] = field(default_factory=tuple)

    @property
    def active_leases(self) -> tuple[LeaseInfo, ...]:
        return tuple(lease for lease in self.leases if lease.is_active)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class UnitInfo:
    id: UUID
    property_id: UUID
    unit_number: str
    bedrooms: int | None
    bathrooms: int | None
    square_footage: int | None
    monthly_rent: Decimal | None
    security_deposit: Decimal | None
    status: OccupancyStatus
    is_occupied: bool
    tenant_id: UUID | None
    lease_start: datetime | None
    lease_end: datetime | None
    version: int


@dataclass(frozen=True)
class PropertyInfo:
    """Immutable view of a property aggregate and its units."""

    id: UUID
    owner_id: UUID
    title: str
    property_type: PropertyType
    monthly_rent: Decimal | None
    security_deposit: Decimal | None
    status: PropertyStatus
    is_occupied: bool
    tenant_id: UUID | None
    lease_start: datetime | None
    lease_end: datetime | None
    version: int
    units: tuple[UnitInfo, ...] = field(default_factory=tuple)

    @property
    def is_multi_unit(self) -> bool:
        return PropertyType(self.property_type).is_multi_unit

    def unit(self, unit_ref: UUID | str) -> UnitInfo | None:
        ref = str(unit_ref)
        for unit in self.units:
            if str(unit.id) == ref or unit.unit_number == ref:
                return unit
        return None

    def occupant_of(self, unit_id: UUID | None) -> UUID | None:
        if unit_id is None:
            return self.tenant_id
        unit = self.unit(unit_id)
        return unit.tenant_id if unit else None
