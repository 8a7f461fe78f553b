"""
Tests for the in-memory behaviour of the Tenant and Property aggregates.

No database: instances are built transiently and only their methods run.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from tenancy_kernel.domain.statuses import (
    LeaseStatus,
    OccupancyStatus,
    PropertyStatus,
    PropertyType,
    TerminationCode,
)
from tenancy_kernel.exceptions import (
    AlreadyOccupiedError,
    InvalidStatusTransitionError,
    SpaceUnavailableError,
    TenantAlreadyLeasedError,
    UnitNotFoundError,
)
from tenancy_kernel.models.property import Property, Unit
from tenancy_kernel.models.tenant import Lease, Tenant

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)
LATER = NOW + timedelta(days=365)


def _house(**overrides):
    fields = dict(
        id=uuid4(),
        owner_id=uuid4(),
        title="12 Acacia Avenue",
        property_type=PropertyType.HOUSE,
        status=PropertyStatus.AVAILABLE,
        is_occupied=False,
        version=1,
    )
    fields.update(overrides)
    return Property(**fields)


def _unit(property_id, number="1A", status=OccupancyStatus.AVAILABLE):
    return Unit(
        id=uuid4(),
        property_id=property_id,
        unit_number=number,
        status=status,
        is_occupied=False,
        version=1,
    )


def _lease(property_id, unit_id=None):
    return Lease(
        id=uuid4(),
        property_id=property_id,
        unit_id=unit_id,
        start_date=NOW,
        end_date=LATER,
        monthly_rent=Decimal("1000.00"),
        security_deposit=Decimal("0"),
        status=LeaseStatus.ACTIVE,
    )


# =============================================================================
# Occupancy record
# =============================================================================


class TestOccupancyRecord:
    def test_claim_sets_every_field(self):
        house = _house()
        tenant_id = uuid4()

        house.claim(tenant_id, NOW, LATER)

        assert house.is_occupied
        assert house.is_held_by(tenant_id)
        assert (house.lease_start, house.lease_end) == (NOW, LATER)
        assert house.status_enum == PropertyStatus.OCCUPIED
        assert house.version == 2

    def test_claim_occupied_space(self):
        house = _house()
        house.claim(uuid4(), NOW, LATER)

        with pytest.raises(AlreadyOccupiedError):
            house.claim(uuid4(), NOW, LATER)

    @pytest.mark.parametrize("status", [PropertyStatus.MAINTENANCE, PropertyStatus.OFF_MARKET])
    def test_claim_unavailable_space(self, status):
        house = _house(status=status)

        with pytest.raises(SpaceUnavailableError):
            house.claim(uuid4(), NOW, LATER)
        assert house.version == 1

    def test_release_only_for_current_holder(self):
        house = _house()
        holder = uuid4()
        house.claim(holder, NOW, LATER)

        assert house.release(uuid4()) is False
        assert house.is_held_by(holder)

        assert house.release(holder) is True
        assert house.is_vacant
        assert house.lease_start is None
        assert house.status_enum == PropertyStatus.AVAILABLE

    def test_release_vacant_space_is_a_no_op(self):
        house = _house()

        assert house.release() is False
        assert house.version == 1

    def test_release_normalises_half_set_record(self):
        house = _house(is_occupied=True)

        assert house.release() is True
        assert house.is_vacant

    def test_unit_uses_occupancy_statuses(self):
        prop = _house(property_type=PropertyType.APARTMENT)
        unit = _unit(prop.id, status=OccupancyStatus.MAINTENANCE)

        assert not unit.is_claimable
        unit.set_availability(OccupancyStatus.AVAILABLE)
        assert unit.is_claimable
        assert unit.occupancy_key == (prop.id, unit.id)

    def test_availability_refused_while_occupied(self):
        house = _house()
        house.claim(uuid4(), NOW, LATER)

        with pytest.raises(AlreadyOccupiedError):
            house.set_availability(PropertyStatus.MAINTENANCE)


class TestPropertyUnits:
    def test_find_unit_by_id_or_number(self):
        prop = _house(property_type=PropertyType.APARTMENT)
        first, second = _unit(prop.id, "1A"), _unit(prop.id, "1B")
        prop.units = [first, second]

        assert prop.find_unit("1B") is second
        assert prop.find_unit(first.id) is first
        assert prop.occupancy_record(second.id) is second
        assert prop.occupancy_record(None) is prop

    def test_unknown_unit(self):
        prop = _house(property_type=PropertyType.DUPLEX)

        with pytest.raises(UnitNotFoundError):
            prop.find_unit("9Z")


# =============================================================================
# Lease ledger
# =============================================================================


class TestTenantLedger:
    def test_one_active_lease_per_space(self):
        tenant = Tenant(id=uuid4(), version=1)
        property_id = uuid4()
        tenant.append_lease(_lease(property_id))

        with pytest.raises(TenantAlreadyLeasedError):
            tenant.append_lease(_lease(property_id))

        tenant.append_lease(_lease(property_id, uuid4()))
        assert len(tenant.active_leases()) == 2

    def test_closed_lease_frees_the_space(self):
        tenant = Tenant(id=uuid4(), version=1)
        property_id = uuid4()
        lease = tenant.append_lease(_lease(property_id))

        tenant.close_lease(lease, LeaseStatus.TERMINATED, NOW, TerminationCode.MANUAL_UNASSIGNMENT)
        tenant.append_lease(_lease(property_id))

        assert lease.termination_date == NOW
        assert lease.termination_code == TerminationCode.MANUAL_UNASSIGNMENT
        assert tenant.find_active_lease(property_id, None) is not lease
        assert tenant.version == 4

    def test_closed_lease_cannot_be_closed_again(self):
        tenant = Tenant(id=uuid4(), version=1)
        lease = tenant.append_lease(_lease(uuid4()))
        tenant.close_lease(lease, LeaseStatus.EXPIRED, NOW, TerminationCode.EXPIRED)

        with pytest.raises(InvalidStatusTransitionError):
            tenant.close_lease(lease, LeaseStatus.TERMINATED, NOW, TerminationCode.RECONCILIATION)

    def test_disposable_income(self):
        tenant = Tenant(
            affordability_monthly_income=Decimal("3000"),
            affordability_monthly_expenses=Decimal("1500"),
            affordability_monthly_commitments=None,
        )

        assert tenant.disposable_income == Decimal("1500")
        assert Tenant(affordability_monthly_income=None).disposable_income is None
