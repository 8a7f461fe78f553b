"""
Tests for the status vocabularies and their transition tables.
"""

import pytest

from tenancy_kernel.domain.statuses import (
    APPLICATION_TRANSITIONS,
    LEASE_TRANSITIONS,
    OCCUPANCY_TRANSITIONS,
    PROPERTY_TRANSITIONS,
    VERDICT_TO_APPLICATION_STATUS,
    ApplicationStatus,
    LeaseStatus,
    OccupancyStatus,
    PropertyStatus,
    PropertyType,
    QualificationVerdict,
    can_transition,
    require_transition,
)
from tenancy_kernel.exceptions import InvalidStatusTransitionError


class TestTablesAreExhaustive:
    @pytest.mark.parametrize(
        "enum_cls, table",
        [
            (LeaseStatus, LEASE_TRANSITIONS),
            (OccupancyStatus, OCCUPANCY_TRANSITIONS),
            (PropertyStatus, PROPERTY_TRANSITIONS),
            (ApplicationStatus, APPLICATION_TRANSITIONS),
            (QualificationVerdict, VERDICT_TO_APPLICATION_STATUS),
        ],
    )
    def test_every_member_has_an_entry(self, enum_cls, table):
        assert set(table) == set(enum_cls)

    def test_no_self_loops_in_application_table(self):
        for status, targets in APPLICATION_TRANSITIONS.items():
            assert status not in targets


class TestLeaseLifecycle:
    @pytest.mark.parametrize(
        "terminal", [LeaseStatus.TERMINATED, LeaseStatus.EXPIRED, LeaseStatus.RENEWED],
    )
    def test_terminal_states_have_no_exits(self, terminal):
        assert LEASE_TRANSITIONS[terminal] == frozenset()

    def test_active_can_close(self):
        for target in (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED, LeaseStatus.RENEWED):
            assert can_transition(LEASE_TRANSITIONS, LeaseStatus.ACTIVE, target)

    def test_terminated_cannot_reactivate(self):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            require_transition(
                "Lease", LEASE_TRANSITIONS, LeaseStatus.TERMINATED, LeaseStatus.ACTIVE,
            )
        assert exc_info.value.entity_type == "Lease"
        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"


class TestOccupancy:
    def test_available_to_occupied(self):
        assert can_transition(
            OCCUPANCY_TRANSITIONS, OccupancyStatus.AVAILABLE, OccupancyStatus.OCCUPIED,
        )

    @pytest.mark.parametrize("status", [OccupancyStatus.MAINTENANCE, OccupancyStatus.OFF_MARKET])
    def test_unavailable_statuses_cannot_be_occupied(self, status):
        assert not can_transition(OCCUPANCY_TRANSITIONS, status, OccupancyStatus.OCCUPIED)

    def test_occupied_only_returns_to_available(self):
        assert OCCUPANCY_TRANSITIONS[OccupancyStatus.OCCUPIED] == frozenset(
            {OccupancyStatus.AVAILABLE}
        )

    def test_pending_property_may_be_occupied(self):
        assert can_transition(
            PROPERTY_TRANSITIONS, PropertyStatus.PENDING, PropertyStatus.OCCUPIED,
        )


class TestApplication:
    @pytest.mark.parametrize("closed", [ApplicationStatus.WITHDRAWN, ApplicationStatus.EXPIRED])
    def test_closed_applications_only_reopen_as_pending(self, closed):
        assert APPLICATION_TRANSITIONS[closed] == frozenset({ApplicationStatus.PENDING})

    def test_approved_may_be_withdrawn(self):
        assert can_transition(
            APPLICATION_TRANSITIONS, ApplicationStatus.APPROVED, ApplicationStatus.WITHDRAWN,
        )

    def test_approved_cannot_be_waitlisted(self):
        assert not can_transition(
            APPLICATION_TRANSITIONS, ApplicationStatus.APPROVED, ApplicationStatus.WAITLISTED,
        )

    def test_unknown_current_status_allows_nothing(self):
        assert not can_transition({}, ApplicationStatus.PENDING, ApplicationStatus.APPROVED)


class TestPropertyType:
    @pytest.mark.parametrize("ptype", [PropertyType.APARTMENT, PropertyType.DUPLEX])
    def test_multi_unit(self, ptype):
        assert ptype.is_multi_unit

    @pytest.mark.parametrize(
        "ptype", [PropertyType.HOUSE, PropertyType.CONDO, PropertyType.TOWNHOUSE],
    )
    def test_single_unit(self, ptype):
        assert not ptype.is_multi_unit
