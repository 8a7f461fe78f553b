"""
Pytest fixtures for the tenancy kernel test suite.

Provides:
- A fresh file-backed SQLite database per test (worker threads can share it)
- Session factory, deterministic clock and actor id
- Service fixtures wired to the same clock, config and lock registry
- Factory fixtures for properties and tenants
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import (
    build_engine,
    build_session_factory,
    create_tables,
    transaction_scope,
)
from tenancy_kernel.domain.clock import DeterministicClock
from tenancy_kernel.domain.statuses import PropertyType, ReferencingOutcome
from tenancy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from tenancy_kernel.selectors.property_selector import PropertySelector
from tenancy_kernel.selectors.tenant_selector import TenantSelector
from tenancy_kernel.services.property_service import PropertyService
from tenancy_services.assignment_coordinator import AssignmentCoordinator
from tenancy_services.lease_expiry_service import LeaseExpiryService
from tenancy_services.occupancy_lock import OccupancyLockRegistry
from tenancy_services.qualification_service import QualificationService
from tenancy_services.reconciliation_service import ReconciliationService
from tenancy_services.status_projector import StatusProjector
from tenancy_services.tenant_service import TenantService


# Owner / actor for all test operations
TEST_ACTOR_ID = uuid4()

START_TIME = datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture tenancy_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, coordinator):
            coordinator.assign(...)
            logs = captured_logs()
            assert any(r["message"] == "assignment_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("tenancy_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'tenancy.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(START_TIME)


@pytest.fixture
def config():
    return TenancyConfig.with_defaults()


@pytest.fixture
def lock_registry():
    return OccupancyLockRegistry()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def projector(session_factory, config, deterministic_clock):
    return StatusProjector(session_factory, config, deterministic_clock)


@pytest.fixture
def tenant_service(session_factory, config, deterministic_clock, projector):
    return TenantService(session_factory, config, deterministic_clock, projector)


@pytest.fixture
def qualification_service(session_factory, config):
    return QualificationService(session_factory, config)


@pytest.fixture
def coordinator(session_factory, config, deterministic_clock, lock_registry, projector):
    return AssignmentCoordinator(
        session_factory, config, deterministic_clock, lock_registry, projector,
    )


@pytest.fixture
def reconciliation_service(session_factory, config, deterministic_clock, lock_registry, projector):
    return ReconciliationService(
        session_factory, config, deterministic_clock, lock_registry, projector,
    )


@pytest.fixture
def expiry_service(session_factory, config, deterministic_clock, lock_registry, projector):
    return LeaseExpiryService(
        session_factory, config, deterministic_clock, lock_registry, projector,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_property(session_factory, deterministic_clock, test_actor_id):
    """
    Create a property (and its units) and return its PropertyInfo.

    Usage::

        house = create_property()
        block = create_property(PropertyType.APARTMENT, units=("1A", "1B"))
    """

    def _create(
        property_type: PropertyType = PropertyType.HOUSE,
        units: tuple[str, ...] = (),
        monthly_rent: Decimal | None = Decimal("1000.00"),
        security_deposit: Decimal | None = Decimal("1200.00"),
        owner_id=None,
        title: str = "12 Acacia Avenue",
    ):
        owner = owner_id or test_actor_id
        with transaction_scope(session_factory) as session:
            service = PropertyService(session, deterministic_clock)
            prop = service.create_property(
                owner,
                title,
                property_type,
                monthly_rent=monthly_rent,
                security_deposit=security_deposit,
                city="Leeds",
                postcode="LS1 4AP",
            )
            for number in units:
                service.add_unit(
                    prop.id, owner, number,
                    monthly_rent=monthly_rent,
                    security_deposit=security_deposit,
                    bedrooms=2,
                )
            return PropertySelector(session).get(prop.id)

    return _create


@pytest.fixture
def create_tenant(tenant_service, test_actor_id):
    """
    Create a tenant and optionally record a complete, qualifying fact set:
    gross 3000/month, expenses + commitments 2000, right to rent verified,
    referencing passed.
    """

    def _create(
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        qualified: bool = True,
        owner_id=None,
        target_monthly_rent: Decimal | None = None,
    ):
        owner = owner_id or test_actor_id
        tenant = tenant_service.create_tenant(
            owner, first_name, last_name,
            email=f"{first_name.lower()}@example.com",
            target_monthly_rent=target_monthly_rent,
        )
        if qualified:
            tenant_service.update_income(
                tenant.id, owner, gross_monthly_income=Decimal("3000.00"),
            )
            tenant_service.update_affordability(
                tenant.id, owner,
                monthly_income=None,
                monthly_expenses=Decimal("1500.00"),
                monthly_commitments=Decimal("500.00"),
            )
            tenant_service.verify_right_to_rent(tenant.id, owner, document_type="passport")
            tenant = tenant_service.record_referencing(
                tenant.id, owner, ReferencingOutcome.PASS,
            )
        return tenant

    return _create


@pytest.fixture
def read_tenant(session_factory):
    def _read(tenant_id):
        with transaction_scope(session_factory) as session:
            return TenantSelector(session).get(tenant_id)

    return _read


@pytest.fixture
def read_property(session_factory):
    def _read(property_id):
        with transaction_scope(session_factory) as session:
            return PropertySelector(session).get(property_id)

    return _read
