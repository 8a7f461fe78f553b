"""
Concurrent assignment tests.

Two coordinators with separate lock registries stand in for two processes:
the in-process lock cannot serialise them, so the occupancy version check
alone has to pick exactly one winner.  Threads share one file-backed SQLite
database.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest

from tenancy_kernel.domain.dtos import OccupancyKey
from tenancy_kernel.domain.statuses import LeaseStatus, PropertyType, TerminationCode
from tenancy_kernel.exceptions import AlreadyOccupiedError
from tenancy_services.assignment_coordinator import AssignmentCoordinator
from tenancy_services.occupancy_lock import OccupancyLockRegistry

pytestmark = pytest.mark.slow


def _race(coordinators, calls):
    """Run ``calls[i](coordinators[i])`` in parallel; return (results, errors)."""
    barrier = Barrier(len(calls))
    results, errors = [], []
    guard = threading.Lock()

    def run(index):
        barrier.wait()
        try:
            outcome = calls[index](coordinators[index])
        except Exception as exc:  # collected for assertions
            with guard:
                errors.append(exc)
            return
        with guard:
            results.append(outcome)

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        list(pool.map(run, range(len(calls))))
    return results, errors


@pytest.fixture
def independent_coordinators(session_factory, config, deterministic_clock, projector):
    return [
        AssignmentCoordinator(
            session_factory, config, deterministic_clock, OccupancyLockRegistry(), projector,
        )
        for _ in range(2)
    ]


class TestTwoTenantsOneSpace:
    def test_exactly_one_assignment_wins(
        self, independent_coordinators, create_tenant, create_property,
        reconciliation_service, read_property, read_tenant, test_actor_id,
    ):
        tenants = [create_tenant("Ada", "Lovelace"), create_tenant("Grace", "Hopper")]
        house = create_property()

        results, errors = _race(
            independent_coordinators,
            [
                lambda c, t=tenant: c.assign(t.id, house.id, actor_id=test_actor_id)
                for tenant in tenants
            ],
        )

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyOccupiedError)

        winner = results[0].tenant.id
        assert read_property(house.id).tenant_id == winner

        loser = next(t for t in tenants if t.id != winner)
        loser_leases = read_tenant(loser.id).leases
        assert all(lease.status != LeaseStatus.ACTIVE for lease in loser_leases)
        for lease in loser_leases:
            assert lease.termination_code == TerminationCode.ASSIGNMENT_ROLLED_BACK

        reconciliation_service.verify_invariants()

    def test_different_units_both_succeed(
        self, independent_coordinators, create_tenant, create_property,
        reconciliation_service, read_property, test_actor_id,
    ):
        tenants = [create_tenant("Ada", "Lovelace"), create_tenant("Grace", "Hopper")]
        block = create_property(PropertyType.APARTMENT, units=("1A", "1B"))

        results, errors = _race(
            independent_coordinators,
            [
                lambda c, t=tenants[0]: c.assign(t.id, block.id, "1A", actor_id=test_actor_id),
                lambda c, t=tenants[1]: c.assign(t.id, block.id, "1B", actor_id=test_actor_id),
            ],
        )

        assert errors == []
        assert len(results) == 2
        after = read_property(block.id)
        assert after.unit("1A").tenant_id == tenants[0].id
        assert after.unit("1B").tenant_id == tenants[1].id
        reconciliation_service.verify_invariants()


class TestSharedRegistry:
    def test_shared_registry_serialises_same_space(
        self, coordinator, create_tenant, create_property, reconciliation_service, test_actor_id,
    ):
        tenants = [create_tenant("Ada", "Lovelace"), create_tenant("Grace", "Hopper")]
        house = create_property()

        results, errors = _race(
            [coordinator, coordinator],
            [
                lambda c, t=tenant: c.assign(t.id, house.id, actor_id=test_actor_id)
                for tenant in tenants
            ],
        )

        assert len(results) == 1
        assert [type(e) for e in errors] == [AlreadyOccupiedError]
        reconciliation_service.verify_invariants()


class TestLockRegistry:
    def test_same_key_is_reentrant(self):
        registry = OccupancyLockRegistry()
        key = OccupancyKey(uuid4())

        with registry.hold(key):
            with registry.hold(key):
                assert len(registry) == 1
            assert len(registry) == 1

        assert len(registry) == 0

    def test_released_keys_are_evicted(self):
        registry = OccupancyLockRegistry()

        for _ in range(100):
            with registry.hold(OccupancyKey(uuid4())):
                pass
        with registry.hold_many([OccupancyKey(uuid4()), OccupancyKey(uuid4(), uuid4())]):
            assert len(registry) == 2

        assert len(registry) == 0

    def test_hold_blocks_other_threads(self):
        registry = OccupancyLockRegistry()
        key = OccupancyKey(uuid4())
        entered = threading.Event()

        def contender():
            with registry.hold(key):
                entered.set()

        with registry.hold(key):
            worker = threading.Thread(target=contender)
            worker.start()
            assert not entered.wait(timeout=0.2)
            assert len(registry) == 1

        worker.join(timeout=5)
        assert entered.is_set()
        assert len(registry) == 0

    def test_hold_many_opposite_orders_do_not_deadlock(self):
        registry = OccupancyLockRegistry()
        keys = [OccupancyKey(uuid4()), OccupancyKey(uuid4(), uuid4())]
        barrier = Barrier(2)
        done = []

        def worker(order):
            barrier.wait()
            for _ in range(200):
                with registry.hold_many(order):
                    pass
            done.append(True)

        threads = [
            threading.Thread(target=worker, args=(keys,)),
            threading.Thread(target=worker, args=(list(reversed(keys)),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert done == [True, True]
        assert len(registry) == 0
