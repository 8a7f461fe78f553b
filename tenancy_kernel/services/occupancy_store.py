"""
OccupancyStore -- load, claim and release occupancy records.

Responsibility:
    The only code path that mutates the occupancy fields of a Property or
    Unit.  Resolves a (property, unit reference) pair into a space, enforcing
    the multi-unit / single-unit addressing rule.

Architecture position:
    Kernel > Services.  Flush-only: the caller owns the transaction.

Invariants enforced:
    - Multi-unit types need a unit (UnitRequiredError); other types forbid
      one (UnitNotAllowedError).
    - A claim re-reads the record under lock and is refused only when the
      space is no longer vacant and claimable; the version column is
      compared again by SQLAlchemy at flush.
    - Records are loaded FOR UPDATE where the backend supports row locks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from tenancy_kernel.domain.dtos import OccupancyKey
from tenancy_kernel.exceptions import (
    PropertyNotFoundError,
    UnitNotAllowedError,
    UnitNotFoundError,
    UnitRequiredError,
)
from tenancy_kernel.logging_config import get_logger
from tenancy_kernel.models.property import OccupancyRecord, Property, Unit
from tenancy_kernel.services.base import BaseService

logger = get_logger("services.occupancy_store")


@dataclass(frozen=True)
class ResolvedSpace:
    """A space addressed by a caller."""

    key: OccupancyKey
    unit_number: str | None


class OccupancyStore(BaseService[Property]):
    """Occupancy record access for one transaction."""

    def load_property(
        self,
        property_id: UUID,
        owner_id: UUID | None = None,
        for_update: bool = False,
    ) -> Property:
        """
        Raises:
            PropertyNotFoundError: absent, or owned by someone else.
        """
        stmt = select(Property).where(Property.id == property_id)
        if for_update:
            stmt = stmt.with_for_update()
        prop = self.session.execute(stmt).scalar_one_or_none()
        if prop is None or (owner_id is not None and prop.owner_id != owner_id):
            raise PropertyNotFoundError(property_id)
        return prop

    def resolve_space(
        self,
        prop: Property,
        unit_ref: UUID | str | None,
    ) -> tuple[OccupancyRecord, ResolvedSpace]:
        """
        Turn a caller's unit reference (id, unit number, or None) into the
        occupancy record it addresses.
        """
        if prop.is_multi_unit:
            if unit_ref is None or str(unit_ref) == "":
                raise UnitRequiredError(prop.id, prop.property_type_enum.value)
            unit = prop.find_unit(unit_ref)
            return unit, ResolvedSpace(
                key=OccupancyKey(prop.id, unit.id),
                unit_number=unit.unit_number,
            )

        if unit_ref is not None and str(unit_ref) != "":
            raise UnitNotAllowedError(prop.id, prop.property_type_enum.value)
        return prop, ResolvedSpace(
            key=OccupancyKey(prop.id, None),
            unit_number=None,
        )

    def load_record(self, key: OccupancyKey, for_update: bool = True) -> OccupancyRecord:
        """
        Raises:
            PropertyNotFoundError / UnitNotFoundError: the space is gone.
        """
        if key.unit_id is None:
            return self.load_property(key.property_id, for_update=for_update)
        stmt = select(Unit).where(Unit.id == key.unit_id, Unit.property_id == key.property_id)
        if for_update:
            stmt = stmt.with_for_update()
        unit = self.session.execute(stmt).scalar_one_or_none()
        if unit is None:
            raise UnitNotFoundError(key.property_id, key.unit_id)
        return unit

    def claim(
        self,
        key: OccupancyKey,
        tenant_id: UUID,
        lease_start: datetime,
        lease_end: datetime,
        expected_version: int | None = None,
    ) -> OccupancyRecord:
        """
        Occupy ``key`` for ``tenant_id`` and flush.

        The row is re-read under lock, so a version that moved since
        ``expected_version`` was observed only matters if the space is no
        longer vacant and claimable.  A property edit that bumped the version
        without touching occupancy does not block the claim.

        Raises:
            AlreadyOccupiedError: occupied by the time the lock was taken.
            SpaceUnavailableError: status forbids occupation.
        """
        record = self.load_record(key, for_update=True)
        if expected_version is not None and record.version != expected_version:
            logger.info(
                "occupancy_version_moved",
                extra={
                    "property_id": str(key.property_id),
                    "unit_id": str(key.unit_id) if key.unit_id else None,
                    "expected_version": expected_version,
                    "actual_version": record.version,
                    "vacant": record.is_vacant,
                },
            )
        record.claim(tenant_id, lease_start, lease_end)
        self.session.flush()
        return record

    def release(self, key: OccupancyKey, tenant_id: UUID | None = None) -> bool:
        """
        Vacate ``key`` if it still points at ``tenant_id`` (any tenant when
        None).  Returns True when the record changed.
        """
        record = self.load_record(key, for_update=True)
        changed = record.release(tenant_id)
        if changed:
            self.session.flush()
        return changed

    def update_window(
        self,
        key: OccupancyKey,
        tenant_id: UUID,
        lease_start: datetime,
        lease_end: datetime,
    ) -> bool:
        """Copy new lease dates onto a record held by ``tenant_id``."""
        record = self.load_record(key, for_update=True)
        if not record.is_held_by(tenant_id):
            return False
        record.set_lease_window(lease_start, lease_end)
        self.session.flush()
        return True
