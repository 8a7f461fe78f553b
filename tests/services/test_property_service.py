"""
Tests for PropertyService: registration, units, availability and generic
edits that must never reach the occupancy fields.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.statuses import OccupancyStatus, PropertyStatus, PropertyType
from tenancy_kernel.exceptions import (
    AlreadyOccupiedError,
    InvalidLeaseTermsError,
    InvalidStatusTransitionError,
    PropertyNotFoundError,
    UnitNotAllowedError,
)
from tenancy_kernel.selectors.property_selector import PropertySelector
from tenancy_kernel.services.property_service import PropertyService


@pytest.fixture
def property_service_scope(session_factory, deterministic_clock):
    """Run ``fn(service)`` inside one committed transaction."""

    def _run(fn):
        with transaction_scope(session_factory) as session:
            return fn(PropertyService(session, deterministic_clock))

    return _run


class TestCreate:
    def test_house(self, create_property, test_actor_id):
        house = create_property()

        assert house.owner_id == test_actor_id
        assert house.property_type == PropertyType.HOUSE
        assert house.status == PropertyStatus.AVAILABLE
        assert not house.is_occupied
        assert house.tenant_id is None
        assert house.units == ()
        assert not house.is_multi_unit

    def test_apartment_with_units(self, create_property):
        block = create_property(PropertyType.APARTMENT, units=("1A", "1B", "2A"))

        assert block.is_multi_unit
        assert [u.unit_number for u in block.units] == ["1A", "1B", "2A"]
        assert all(u.status == OccupancyStatus.AVAILABLE for u in block.units)
        assert block.unit("1B").property_id == block.id

    def test_units_only_on_multi_unit_types(self, create_property, property_service_scope, test_actor_id):
        house = create_property()

        with pytest.raises(UnitNotAllowedError):
            property_service_scope(lambda s: s.add_unit(house.id, test_actor_id, "1A"))

    def test_negative_rent(self, property_service_scope, test_actor_id):
        with pytest.raises(InvalidLeaseTermsError):
            property_service_scope(
                lambda s: s.create_property(
                    test_actor_id, "Bad", PropertyType.HOUSE, monthly_rent=Decimal("-1"),
                )
            )

    def test_add_unit_other_owner(self, create_property, property_service_scope):
        block = create_property(PropertyType.APARTMENT)

        with pytest.raises(PropertyNotFoundError):
            property_service_scope(lambda s: s.add_unit(block.id, uuid4(), "1A"))


class TestAvailability:
    def test_move_to_maintenance_and_back(self, create_property, property_service_scope, test_actor_id):
        house = create_property()

        down = property_service_scope(
            lambda s: s.set_availability(house.id, test_actor_id, OccupancyStatus.MAINTENANCE)
        )
        up = property_service_scope(
            lambda s: s.set_availability(house.id, test_actor_id, "available")
        )

        assert down.status == PropertyStatus.MAINTENANCE
        assert up.status == PropertyStatus.AVAILABLE
        assert up.version == house.version + 2

    def test_unit_availability(self, create_property, property_service_scope, test_actor_id):
        block = create_property(PropertyType.APARTMENT, units=("1A",))

        updated = property_service_scope(
            lambda s: s.set_availability(block.id, test_actor_id, OccupancyStatus.OFF_MARKET, "1A")
        )

        assert updated.unit("1A").status == OccupancyStatus.OFF_MARKET
        assert updated.status == PropertyStatus.AVAILABLE

    def test_occupied_space_cannot_change_availability(
        self, coordinator, create_tenant, create_property, property_service_scope, test_actor_id,
    ):
        tenant = create_tenant()
        house = create_property()
        coordinator.assign(tenant.id, house.id, actor_id=test_actor_id)

        with pytest.raises(AlreadyOccupiedError):
            property_service_scope(
                lambda s: s.set_availability(house.id, test_actor_id, OccupancyStatus.MAINTENANCE)
            )

    def test_availability_cannot_set_occupied(self, create_property, property_service_scope, test_actor_id):
        house = create_property()

        with pytest.raises(InvalidStatusTransitionError):
            property_service_scope(
                lambda s: s.set_availability(house.id, test_actor_id, PropertyStatus.OCCUPIED)
            )

    def test_pending_property_cannot_go_to_maintenance(
        self, property_service_scope, test_actor_id,
    ):
        pending = property_service_scope(
            lambda s: s.create_property(
                test_actor_id, "New build", PropertyType.HOUSE, status=PropertyStatus.PENDING,
            )
        )

        with pytest.raises(InvalidStatusTransitionError):
            property_service_scope(
                lambda s: s.set_availability(pending.id, test_actor_id, PropertyStatus.MAINTENANCE)
            )


class TestUpdateDetails:
    def test_descriptive_fields(self, create_property, property_service_scope, test_actor_id):
        house = create_property()

        updated = property_service_scope(
            lambda s: s.update_details(
                house.id, test_actor_id, title="12a Acacia Avenue", monthly_rent=Decimal("1100.00"),
            )
        )

        assert updated.title == "12a Acacia Avenue"
        assert updated.monthly_rent == Decimal("1100.00")
        assert updated.version == house.version + 1

    @pytest.mark.parametrize("field", ["is_occupied", "tenant_id", "lease_start", "status", "version"])
    def test_occupancy_fields_rejected(self, create_property, property_service_scope, test_actor_id, field):
        house = create_property()

        with pytest.raises(ValueError, match="not editable"):
            property_service_scope(
                lambda s: s.update_details(house.id, test_actor_id, **{field: None})
            )

    def test_list_all_scoped_to_owner(self, create_property, session_factory, test_actor_id):
        mine = create_property()
        create_property(owner_id=uuid4(), title="Elsewhere")

        with transaction_scope(session_factory) as session:
            listed = PropertySelector(session).list_all(test_actor_id)

        assert [p.id for p in listed] == [mine.id]
