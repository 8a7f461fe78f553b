"""
PropertySelector -- read-only queries over properties, units and their
occupancy records.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from tenancy_kernel.domain.dtos import PropertyInfo, UnitInfo
from tenancy_kernel.domain.statuses import OccupancyStatus, PropertyStatus, PropertyType
from tenancy_kernel.exceptions import PropertyNotFoundError
from tenancy_kernel.models.property import Property, Unit
from tenancy_kernel.selectors.base import BaseSelector


def unit_to_info(unit: Unit) -> UnitInfo:
    """Convert ORM Unit to UnitInfo DTO."""
    return UnitInfo(
        id=unit.id,
        property_id=unit.property_id,
        unit_number=unit.unit_number,
        bedrooms=unit.bedrooms,
        bathrooms=unit.bathrooms,
        square_footage=unit.square_footage,
        monthly_rent=unit.monthly_rent,
        security_deposit=unit.security_deposit,
        status=OccupancyStatus(unit.status),
        is_occupied=unit.is_occupied,
        tenant_id=unit.tenant_id,
        lease_start=unit.lease_start,
        lease_end=unit.lease_end,
        version=unit.version,
    )


def property_to_info(prop: Property) -> PropertyInfo:
    """Convert ORM Property (with its units) to PropertyInfo DTO."""
    return PropertyInfo(
        id=prop.id,
        owner_id=prop.owner_id,
        title=prop.title,
        property_type=PropertyType(prop.property_type),
        monthly_rent=prop.monthly_rent,
        security_deposit=prop.security_deposit,
        status=PropertyStatus(prop.status),
        is_occupied=prop.is_occupied,
        tenant_id=prop.tenant_id,
        lease_start=prop.lease_start,
        lease_end=prop.lease_end,
        version=prop.version,
        units=tuple(unit_to_info(u) for u in prop.units),
    )


class PropertySelector(BaseSelector[Property]):
    """Read-only property queries."""

    def get(self, property_id: UUID, owner_id: UUID | None = None) -> PropertyInfo:
        """
        Raises:
            PropertyNotFoundError: absent, or owned by someone else.
        """
        prop = self.session.get(Property, property_id)
        if prop is None or (owner_id is not None and prop.owner_id != owner_id):
            raise PropertyNotFoundError(property_id)
        return property_to_info(prop)

    def list_all(self, owner_id: UUID | None = None) -> list[PropertyInfo]:
        stmt = select(Property)
        if owner_id is not None:
            stmt = stmt.where(Property.owner_id == owner_id)
        stmt = stmt.order_by(Property.title, Property.id)
        return [property_to_info(p) for p in self.session.execute(stmt).scalars()]

    def occupied_by(self, tenant_id: UUID) -> list[tuple[UUID, UUID | None]]:
        """Every (property_id, unit_id) whose occupancy record points at the tenant."""
        keys: list[tuple[UUID, UUID | None]] = []
        props = self.session.execute(
            select(Property.id).where(Property.tenant_id == tenant_id)
        ).scalars()
        keys.extend((pid, None) for pid in props)
        units = self.session.execute(
            select(Unit.property_id, Unit.id).where(Unit.tenant_id == tenant_id)
        ).all()
        keys.extend((pid, uid) for pid, uid in units)
        return keys
