"""
PropertyService -- property and unit registration, availability, and
generic edits that never touch occupancy.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from tenancy_kernel.domain.dtos import PropertyInfo, UnitInfo
from tenancy_kernel.domain.statuses import OccupancyStatus, PropertyStatus, PropertyType
from tenancy_kernel.exceptions import InvalidLeaseTermsError, UnitNotAllowedError
from tenancy_kernel.logging_config import get_logger
from tenancy_kernel.models.property import Property, Unit
from tenancy_kernel.selectors.property_selector import property_to_info, unit_to_info
from tenancy_kernel.services.base import BaseService
from tenancy_kernel.services.occupancy_store import OccupancyStore

logger = get_logger("services.property")

# Fields a generic edit may change.  Occupancy fields are deliberately absent.
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "title",
    "street",
    "city",
    "postcode",
    "country",
    "monthly_rent",
    "security_deposit",
})


def _check_amount(field: str, value: Decimal | None) -> None:
    if value is not None and value < 0:
        raise InvalidLeaseTermsError(field, value, "must not be negative")


class PropertyService(BaseService[Property]):
    """
    Service for managing properties and their units.

    All public methods return PropertyInfo / UnitInfo DTOs.
    """

    def create_property(
        self,
        owner_id: UUID,
        title: str,
        property_type: PropertyType,
        monthly_rent: Decimal | None = None,
        security_deposit: Decimal | None = None,
        street: str | None = None,
        city: str | None = None,
        postcode: str | None = None,
        country: str = "United Kingdom",
        status: PropertyStatus = PropertyStatus.AVAILABLE,
    ) -> PropertyInfo:
        _check_amount("monthly_rent", monthly_rent)
        _check_amount("security_deposit", security_deposit)
        prop = Property(
            owner_id=owner_id,
            title=title,
            property_type=PropertyType(property_type),
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            street=street,
            city=city,
            postcode=postcode,
            country=country,
            status=PropertyStatus(status),
            is_occupied=False,
            version=1,
            created_by_id=owner_id,
        )
        self.session.add(prop)
        self.session.flush()
        logger.info(
            "property_created",
            extra={
                "property_id": str(prop.id),
                "property_type": PropertyType(property_type).value,
            },
        )
        return property_to_info(prop)

    def add_unit(
        self,
        property_id: UUID,
        owner_id: UUID,
        unit_number: str,
        monthly_rent: Decimal | None = None,
        security_deposit: Decimal | None = None,
        bedrooms: int | None = None,
        bathrooms: int | None = None,
        square_footage: int | None = None,
    ) -> UnitInfo:
        """
        Raises:
            PropertyNotFoundError: absent or not owned.
            UnitNotAllowedError: the property type is not multi-unit.
        """
        store = OccupancyStore(self.session, self.clock)
        prop = store.load_property(property_id, owner_id)
        if not prop.is_multi_unit:
            raise UnitNotAllowedError(prop.id, prop.property_type_enum.value)
        _check_amount("monthly_rent", monthly_rent)
        _check_amount("security_deposit", security_deposit)

        unit = Unit(
            property_id=prop.id,
            unit_number=unit_number,
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            bedrooms=bedrooms,
            bathrooms=bathrooms,
            square_footage=square_footage,
            status=OccupancyStatus.AVAILABLE,
            is_occupied=False,
            version=1,
            created_by_id=owner_id,
        )
        prop.units.append(unit)
        self.session.flush()
        logger.info(
            "unit_added",
            extra={"property_id": str(prop.id), "unit_id": str(unit.id), "unit_number": unit_number},
        )
        return unit_to_info(unit)

    def set_availability(
        self,
        property_id: UUID,
        owner_id: UUID,
        status: OccupancyStatus | PropertyStatus | str,
        unit_ref: UUID | str | None = None,
    ) -> PropertyInfo:
        """
        Move a vacant space between available, maintenance and off-market.

        Raises:
            AlreadyOccupiedError: the space is occupied.
            InvalidStatusTransitionError: the move is not in the table.
        """
        store = OccupancyStore(self.session, self.clock)
        prop = store.load_property(property_id, owner_id, for_update=True)
        record, space = store.resolve_space(prop, unit_ref)
        record.set_availability(getattr(status, "value", status))
        record.updated_by_id = owner_id
        self.session.flush()
        logger.info(
            "availability_changed",
            extra={
                "property_id": str(space.key.property_id),
                "unit_id": str(space.key.unit_id) if space.key.unit_id else None,
                "status": str(getattr(status, "value", status)),
            },
        )
        return property_to_info(prop)

    def update_details(self, property_id: UUID, owner_id: UUID, **changes) -> PropertyInfo:
        """
        Generic edit of descriptive and financial fields.

        Raises:
            ValueError: a field outside EDITABLE_FIELDS was supplied.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable here: {sorted(unknown)}")
        _check_amount("monthly_rent", changes.get("monthly_rent"))
        _check_amount("security_deposit", changes.get("security_deposit"))

        prop = OccupancyStore(self.session, self.clock).load_property(property_id, owner_id)
        for name, value in changes.items():
            setattr(prop, name, value)
        prop.bump_version()
        prop.updated_by_id = owner_id
        self.session.flush()
        return property_to_info(prop)
