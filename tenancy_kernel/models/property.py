"""
Module: tenancy_kernel.models.property
Responsibility: ORM persistence for the Property aggregate, its Units, and
    the occupancy record each of them carries (the Occupancy Store).
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain vocabulary.  MUST NOT import from services/, selectors/, or
    outer layers.

Invariants enforced:
    - Occupancy record shape: is_occupied is True iff tenant_id is set; a
      claimed record has status OCCUPIED, a released one AVAILABLE.
    - Multi-unit property types (apartment, duplex) are occupied per unit;
      all other types are occupied as a whole.
    - Every occupancy write bumps the owning row's version.  The unit row is
      the serialization point for its space, the property row for a
      whole-property space.

Failure modes:
    - AlreadyOccupiedError when claiming an occupied record.
    - SpaceUnavailableError when the record's status cannot move to occupied
      (maintenance, off-market).
    - InvalidStatusTransitionError on an availability change the transition
      table forbids.
    - StaleDataError (SQLAlchemy) on flush after a concurrent claim/release.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenancy_kernel.db.base import TrackedBase
from tenancy_kernel.domain.statuses import (
    OCCUPANCY_TRANSITIONS,
    PROPERTY_TRANSITIONS,
    OccupancyStatus,
    PropertyStatus,
    PropertyType,
    can_transition,
    require_transition,
)
from tenancy_kernel.exceptions import (
    AlreadyOccupiedError,
    InvalidStatusTransitionError,
    SpaceUnavailableError,
    UnitNotFoundError,
)


class OccupancyRecord:
    """
    Occupancy fields and operations shared by Property and Unit.

    Subclasses supply ``_status_type``, ``_transitions`` and
    ``occupancy_key``.
    """

    _status_type: ClassVar[type[Enum]]
    _transitions: ClassVar[dict]
    _entity_name: ClassVar[str]

    is_occupied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tenant_id: Mapped[UUID | None] = mapped_column(nullable=True)

    lease_start: Mapped[datetime | None] = mapped_column(nullable=True)

    lease_end: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def occupancy_key(self) -> tuple[UUID, UUID | None]:
        raise NotImplementedError

    @property
    def status_enum(self):
        return self._status_type(self.status)

    def bump_version(self) -> None:
        self.version = (self.version or 1) + 1

    def is_held_by(self, tenant_id: UUID) -> bool:
        return self.is_occupied and self.tenant_id == tenant_id

    @property
    def is_vacant(self) -> bool:
        return not self.is_occupied and self.tenant_id is None

    @property
    def is_claimable(self) -> bool:
        """Whether the status allows the record to be claimed."""
        target = self._status_type("occupied")
        return self.status_enum == target or can_transition(
            self._transitions, self.status_enum, target,
        )

    def claim(self, tenant_id: UUID, lease_start: datetime, lease_end: datetime) -> None:
        """Mark the space occupied by ``tenant_id`` for the given window."""
        property_id, unit_id = self.occupancy_key
        if self.is_occupied or self.tenant_id is not None:
            raise AlreadyOccupiedError(property_id, unit_id)
        target = self._status_type("occupied")
        if self.status_enum != target:
            try:
                require_transition(self._entity_name, self._transitions, self.status_enum, target)
            except InvalidStatusTransitionError:
                raise SpaceUnavailableError(property_id, unit_id, self.status_enum.value) from None
        self.is_occupied = True
        self.tenant_id = tenant_id
        self.lease_start = lease_start
        self.lease_end = lease_end
        self.status = target
        self.bump_version()

    def release(self, tenant_id: UUID | None = None) -> bool:
        """
        Clear the occupancy.

        With ``tenant_id`` the release only happens when the record still
        points at that tenant.  Returns True if anything changed.
        """
        if tenant_id is not None and self.tenant_id != tenant_id:
            return False
        if (
            self.is_vacant
            and self.lease_start is None
            and self.status_enum.value != "occupied"
        ):
            return False
        self.is_occupied = False
        self.tenant_id = None
        self.lease_start = None
        self.lease_end = None
        if self.status_enum.value == "occupied":
            self.status = self._status_type("available")
        self.bump_version()
        return True

    def set_lease_window(self, lease_start: datetime, lease_end: datetime) -> None:
        self.lease_start = lease_start
        self.lease_end = lease_end
        self.bump_version()

    def set_availability(self, target) -> None:
        """Move a vacant space between available, maintenance and off-market."""
        property_id, unit_id = self.occupancy_key
        if self.is_occupied:
            raise AlreadyOccupiedError(property_id, unit_id)
        target = self._status_type(target)
        if target.value == "occupied":
            # Only claim() occupies a space
            raise InvalidStatusTransitionError(
                self._entity_name, self.status_enum.value, target.value,
            )
        if target == self.status_enum:
            return
        require_transition(self._entity_name, self._transitions, self.status_enum, target)
        self.status = target
        self.bump_version()


class Unit(OccupancyRecord, TrackedBase):
    """A rentable unit of a multi-unit property."""

    __tablename__ = "units"

    _status_type = OccupancyStatus
    _transitions = OCCUPANCY_TRANSITIONS
    _entity_name = "Unit"

    __table_args__ = (
        UniqueConstraint("property_id", "unit_number", name="uq_unit_number"),
        Index("idx_unit_property", "property_id"),
    )

    property_id: Mapped[UUID] = mapped_column(
        ForeignKey("properties.id"),
        nullable=False,
    )

    unit_number: Mapped[str] = mapped_column(String(20), nullable=False)

    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    square_footage: Mapped[int | None] = mapped_column(Integer, nullable=True)

    monthly_rent: Mapped[Decimal | None] = mapped_column(nullable=True)

    security_deposit: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[OccupancyStatus] = mapped_column(
        String(20),
        nullable=False,
        default=OccupancyStatus.AVAILABLE,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    owner_property: Mapped[Property] = relationship(back_populates="units")

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    @property
    def occupancy_key(self) -> tuple[UUID, UUID | None]:
        return (self.property_id, self.id)

    def __repr__(self) -> str:
        return f"<Unit {self.unit_number} of {self.property_id}>"


class Property(OccupancyRecord, TrackedBase):
    """
    Property aggregate root.

    Contract:
        For single-unit types the property's own occupancy fields are the
        occupancy record.  For multi-unit types each Unit carries its own
        record and the property-level fields stay vacant.
    """

    __tablename__ = "properties"

    _status_type = PropertyStatus
    _transitions = PROPERTY_TRANSITIONS
    _entity_name = "Property"

    __table_args__ = (
        Index("idx_property_owner", "owner_id"),
        Index("idx_property_status", "status"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    street: Mapped[str | None] = mapped_column(String(200), nullable=True)

    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    postcode: Mapped[str | None] = mapped_column(String(12), nullable=True)

    country: Mapped[str] = mapped_column(String(60), nullable=False, default="United Kingdom")

    property_type: Mapped[PropertyType] = mapped_column(String(20), nullable=False)

    monthly_rent: Mapped[Decimal | None] = mapped_column(nullable=True)

    security_deposit: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[PropertyStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PropertyStatus.AVAILABLE,
    )

    units: Mapped[list[Unit]] = relationship(
        back_populates="owner_property",
        order_by=Unit.unit_number,
        lazy="selectin",
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    @property
    def occupancy_key(self) -> tuple[UUID, UUID | None]:
        return (self.id, None)

    @property
    def property_type_enum(self) -> PropertyType:
        return PropertyType(self.property_type)

    @property
    def is_multi_unit(self) -> bool:
        return self.property_type_enum.is_multi_unit

    def find_unit(self, unit_ref: UUID | str) -> Unit:
        """
        Resolve a unit by id or by unit number.

        Raises:
            UnitNotFoundError: if no unit matches.
        """
        ref = str(unit_ref)
        for unit in self.units:
            if str(unit.id) == ref:
                return unit
        for unit in self.units:
            if unit.unit_number == ref:
                return unit
        raise UnitNotFoundError(self.id, ref)

    def occupancy_record(self, unit_id: UUID | None) -> OccupancyRecord:
        """The record for a whole-property space (None) or one unit."""
        if unit_id is None:
            return self
        return self.find_unit(unit_id)

    def __repr__(self) -> str:
        return f"<Property {self.title} ({self.property_type})>"
