"""
AssignmentCoordinator -- bind and unbind tenants and occupancy spaces.

Architecture: tenancy_services -- saga over two aggregates.

A tenant and a property are separate aggregates with separate version
counters, so binding them is two sequential single-aggregate transactions,
never one:

    assign:    tenant write (append ACTIVE lease)  ->  occupancy claim
    unassign:  tenant write (terminate lease)      ->  occupancy release

Contract:
    - Every operation on a space runs under the in-process lock for that
      space.  The occupancy claim re-reads the record under a row lock and
      the version column is checked at flush, so of two racing assigns the
      first committer wins and the loser gets AlreadyOccupiedError.  A
      version bump from an unrelated property edit does not fail a claim.
    - A failed claim is compensated synchronously: the lease is terminated
      with code ``assignment-rolled-back``.  If compensation fails too, the
      ledger is left for ReconciliationService.sweep().
    - A failed release after unassign is logged, reported as
      ``occupancy_released=False``, and left for the sweep.
    - Qualification is advisory: its result is returned, never enforced.

Failure modes:
    - NotFoundError / ValidationError subclasses before anything is written.
    - AlreadyOccupiedError, SpaceUnavailableError, TenantAlreadyLeasedError,
      NoActiveLeaseError for business rejections.
    - OptimisticLockError when a tenant write keeps losing version races;
      an occupancy claim that keeps losing them surfaces as
      AlreadyOccupiedError.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.clock import Clock, SystemClock
from tenancy_kernel.domain.dtos import (
    LeaseInfo,
    LeaseTerms,
    OccupancyKey,
    PropertyInfo,
    TenantInfo,
)
from tenancy_kernel.domain.statuses import LeaseStatus, TerminationCode
from tenancy_kernel.exceptions import (
    AlreadyOccupiedError,
    InvalidDatesError,
    OptimisticLockError,
    SpaceUnavailableError,
    TenancyKernelError,
)
from tenancy_kernel.logging_config import LogContext, get_logger
from tenancy_kernel.models.property import OccupancyRecord
from tenancy_kernel.models.tenant import Tenant
from tenancy_kernel.selectors.property_selector import PropertySelector, property_to_info
from tenancy_kernel.selectors.tenant_selector import lease_to_info, tenant_to_info
from tenancy_kernel.services.lease_ledger import LeaseLedger, materialize_terms
from tenancy_kernel.services.occupancy_store import OccupancyStore

from tenancy_engines.qualification import QualificationResult, evaluate
from tenancy_services._write_retry import run_with_retry
from tenancy_services.occupancy_lock import OccupancyLockRegistry, default_lock_registry
from tenancy_services.qualification_service import facts_from_tenant
from tenancy_services.status_projector import StatusProjector

logger = get_logger("services.assignment")

ZERO = Decimal("0")


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class AssignmentResult:
    tenant: TenantInfo
    property: PropertyInfo
    lease: LeaseInfo
    qualification: QualificationResult | None


@dataclass(frozen=True)
class UnassignmentResult:
    tenant: TenantInfo
    property: PropertyInfo
    lease: LeaseInfo
    occupancy_released: bool


@dataclass(frozen=True)
class RenewalResult:
    tenant: TenantInfo
    property: PropertyInfo
    previous_lease: LeaseInfo
    lease: LeaseInfo
    occupancy_updated: bool


@dataclass(frozen=True)
class ForceUnassignmentResult:
    tenant: TenantInfo
    closed_leases: tuple[LeaseInfo, ...]
    released: tuple[OccupancyKey, ...] = field(default_factory=tuple)
    unreleased: tuple[OccupancyKey, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class _LeaseWrite:
    """What the tenant-side step committed, carried into the occupancy step."""

    lease: LeaseInfo
    observed_version: int | None = None
    qualification: QualificationResult | None = None
    previous_lease: LeaseInfo | None = None


# =============================================================================
# Coordinator
# =============================================================================


class AssignmentCoordinator:
    """
    Saga coordinator for assign / unassign / renew / force_unassign.

    One coordinator may be shared between threads; each call opens its own
    sessions from ``session_factory``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: TenancyConfig | None = None,
        clock: Clock | None = None,
        locks: OccupancyLockRegistry | None = None,
        projector: StatusProjector | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or TenancyConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._locks = locks or default_lock_registry()
        self._projector = projector or StatusProjector(session_factory, self._config, self._clock)

    # -----------------------------------------------------------------
    # assign
    # -----------------------------------------------------------------

    def assign(
        self,
        tenant_id: UUID,
        property_id: UUID,
        unit_ref: UUID | str | None = None,
        terms: LeaseTerms | None = None,
        *,
        actor_id: UUID,
    ) -> AssignmentResult:
        """
        Bind ``tenant_id`` to the addressed space under a new ACTIVE lease.

        Raises:
            TenantNotFoundError / PropertyNotFoundError / UnitNotFoundError
            UnitRequiredError / UnitNotAllowedError
            InvalidDatesError / InvalidLeaseTermsError
            AlreadyOccupiedError: occupied, or lost the race for it.
            SpaceUnavailableError: maintenance or off-market.
            TenantAlreadyLeasedError: the lease policy forbids another lease.
        """
        with LogContext.operation(tenant_id=tenant_id, property_id=property_id, actor_id=actor_id):
            key = self._resolve_key(tenant_id, property_id, unit_ref, actor_id)
            with LogContext.bind(unit_id=key.unit_id), self._locks.hold(key):
                logger.info("assignment_started", extra={"space": str(key)})

                written = run_with_retry(
                    self._session_factory,
                    lambda session: self._open_lease(session, tenant_id, key, terms, actor_id),
                    entity_type="Tenant",
                    entity_id=tenant_id,
                    max_attempts=self._config.max_write_retries,
                )

                try:
                    self._claim(key, tenant_id, written)
                except Exception as exc:
                    self._compensate(tenant_id, written.lease, actor_id, exc)
                    if isinstance(exc, OptimisticLockError):
                        raise AlreadyOccupiedError(key.property_id, key.unit_id) from exc
                    raise

                tenant, prop, lease = self._read_back(tenant_id, key, written.lease.id)
                logger.info(
                    "assignment_completed",
                    extra={
                        "lease_id": str(lease.id),
                        "space": str(key),
                        "verdict": (
                            written.qualification.verdict.value
                            if written.qualification else None
                        ),
                    },
                )
                return AssignmentResult(
                    tenant=tenant,
                    property=prop,
                    lease=lease,
                    qualification=written.qualification,
                )

    def _open_lease(
        self,
        session: Session,
        tenant_id: UUID,
        key: OccupancyKey,
        terms: LeaseTerms | None,
        actor_id: UUID,
    ) -> _LeaseWrite:
        ledger = LeaseLedger(session, self._clock)
        store = OccupancyStore(session, self._clock)

        tenant = ledger.load_tenant(tenant_id, owner_id=actor_id, for_update=True)
        prop = store.load_property(key.property_id, owner_id=actor_id)
        record = prop.occupancy_record(key.unit_id)
        self._check_available(record, key)
        ledger.check_can_lease(tenant, key, self._config.single_active_lease_per_tenant)

        default_rent = record.monthly_rent if record.monthly_rent is not None else prop.monthly_rent
        default_deposit = (
            record.security_deposit if record.security_deposit is not None
            else prop.security_deposit
        )
        materialized = materialize_terms(
            terms,
            self._clock.now(),
            self._config.default_lease_days,
            default_rent,
            default_deposit,
        )

        qualification = None
        if materialized.monthly_rent > ZERO:
            qualification = evaluate(
                facts_from_tenant(tenant),
                materialized.monthly_rent,
                self._config.qualification,
            )

        unit_number = record.unit_number if key.unit_id is not None else None
        lease = ledger.open_lease(tenant, key, materialized, actor_id, unit_number=unit_number)
        self._projector.project_onto(tenant)
        session.flush()
        return _LeaseWrite(
            lease=lease_to_info(lease),
            observed_version=record.version,
            qualification=qualification,
        )

    @staticmethod
    def _check_available(record: OccupancyRecord, key: OccupancyKey) -> None:
        if not record.is_vacant:
            raise AlreadyOccupiedError(key.property_id, key.unit_id)
        if not record.is_claimable:
            raise SpaceUnavailableError(key.property_id, key.unit_id, record.status_enum.value)

    def _claim(self, key: OccupancyKey, tenant_id: UUID, written: _LeaseWrite) -> None:
        # A flush-time version conflict is retried against the fresh row; a
        # real winner then shows up as an occupied record.
        run_with_retry(
            self._session_factory,
            lambda session: OccupancyStore(session, self._clock).claim(
                key,
                tenant_id,
                written.lease.start_date,
                written.lease.end_date,
                expected_version=written.observed_version,
            ),
            entity_type="Property",
            entity_id=key.property_id,
            max_attempts=self._config.max_write_retries,
        )

    def _compensate(
        self,
        tenant_id: UUID,
        lease: LeaseInfo,
        actor_id: UUID,
        cause: Exception,
    ) -> None:
        """Terminate the lease opened by a failed assign; never raises."""

        def work(session: Session) -> None:
            ledger = LeaseLedger(session, self._clock)
            tenant = ledger.load_tenant(tenant_id, require_active=False, for_update=True)
            closed = ledger.close_lease(
                tenant,
                lease.id,
                LeaseStatus.TERMINATED,
                TerminationCode.ASSIGNMENT_ROLLED_BACK,
                actor_id,
                reason=f"occupancy claim failed: {type(cause).__name__}",
            )
            if closed is not None:
                self._projector.project_onto(tenant)
                session.flush()

        try:
            run_with_retry(
                self._session_factory,
                work,
                entity_type="Tenant",
                entity_id=tenant_id,
                max_attempts=self._config.max_write_retries,
            )
        except (SQLAlchemyError, TenancyKernelError):
            logger.exception(
                "compensation_failed",
                extra={"lease_id": str(lease.id), "cause": type(cause).__name__},
            )
            return
        logger.warning(
            "assignment_compensated",
            extra={"lease_id": str(lease.id), "cause": type(cause).__name__},
        )

    # -----------------------------------------------------------------
    # unassign
    # -----------------------------------------------------------------

    def unassign(
        self,
        tenant_id: UUID,
        property_id: UUID,
        unit_ref: UUID | str | None = None,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> UnassignmentResult:
        """
        Terminate the tenant's active lease on the space, then release it.

        Raises:
            TenantNotFoundError / PropertyNotFoundError / UnitNotFoundError
            UnitRequiredError / UnitNotAllowedError
            NoActiveLeaseError: nothing to terminate; nothing was changed.
        """
        with LogContext.operation(tenant_id=tenant_id, property_id=property_id, actor_id=actor_id):
            key = self._resolve_key(tenant_id, property_id, unit_ref, actor_id)
            with LogContext.bind(unit_id=key.unit_id), self._locks.hold(key):
                logger.info("unassignment_started", extra={"space": str(key)})

                def work(session: Session) -> LeaseInfo:
                    ledger = LeaseLedger(session, self._clock)
                    tenant = ledger.load_tenant(tenant_id, owner_id=actor_id, for_update=True)
                    lease = ledger.require_active_lease(tenant, key)
                    ledger.close_lease(
                        tenant,
                        lease.id,
                        LeaseStatus.TERMINATED,
                        TerminationCode.MANUAL_UNASSIGNMENT,
                        actor_id,
                        reason=reason,
                    )
                    self._projector.project_onto(tenant)
                    session.flush()
                    return lease_to_info(lease)

                closed = run_with_retry(
                    self._session_factory,
                    work,
                    entity_type="Tenant",
                    entity_id=tenant_id,
                    max_attempts=self._config.max_write_retries,
                )
                released = self._release(key, tenant_id, closed.id)

                tenant, prop, lease = self._read_back(tenant_id, key, closed.id)
                logger.info(
                    "unassignment_completed",
                    extra={
                        "lease_id": str(lease.id),
                        "space": str(key),
                        "occupancy_released": released,
                    },
                )
                return UnassignmentResult(
                    tenant=tenant,
                    property=prop,
                    lease=lease,
                    occupancy_released=released,
                )

    def _release(self, key: OccupancyKey, tenant_id: UUID, lease_id: UUID | None) -> bool:
        """Release ``key`` if it still points at ``tenant_id``; failures are logged."""
        try:
            with transaction_scope(self._session_factory) as session:
                return OccupancyStore(session, self._clock).release(key, tenant_id)
        except (SQLAlchemyError, TenancyKernelError):
            logger.exception(
                "occupancy_release_failed",
                extra={
                    "space": str(key),
                    "lease_id": str(lease_id) if lease_id else None,
                },
            )
            return False

    # -----------------------------------------------------------------
    # renew
    # -----------------------------------------------------------------

    def renew(
        self,
        tenant_id: UUID,
        property_id: UUID,
        unit_ref: UUID | str | None = None,
        *,
        new_end_date: datetime,
        actor_id: UUID,
        monthly_rent: Decimal | None = None,
    ) -> RenewalResult:
        """
        Replace the active lease on a space with a successor lease starting
        where it ends.  The old lease becomes RENEWED.

        Raises:
            NoActiveLeaseError: no active lease on the space.
            InvalidDatesError: ``new_end_date`` does not extend the lease.
            InvalidLeaseTermsError: negative rent.
        """
        with LogContext.operation(tenant_id=tenant_id, property_id=property_id, actor_id=actor_id):
            key = self._resolve_key(tenant_id, property_id, unit_ref, actor_id)
            with LogContext.bind(unit_id=key.unit_id), self._locks.hold(key):

                def work(session: Session) -> _LeaseWrite:
                    ledger = LeaseLedger(session, self._clock)
                    tenant = ledger.load_tenant(tenant_id, owner_id=actor_id, for_update=True)
                    current = ledger.require_active_lease(tenant, key)
                    if new_end_date <= current.end_date:
                        raise InvalidDatesError(
                            current.end_date, new_end_date,
                            "renewal must extend the current end date",
                        )
                    successor_terms = materialize_terms(
                        LeaseTerms(
                            start_date=current.end_date,
                            end_date=new_end_date,
                            monthly_rent=(
                                monthly_rent if monthly_rent is not None
                                else current.monthly_rent
                            ),
                            security_deposit=current.security_deposit,
                            rent_due_day=current.rent_due_day,
                            tenancy_type=current.tenancy_type,
                        ),
                        self._clock.now(),
                        self._config.default_lease_days,
                        None,
                        None,
                    )
                    ledger.close_lease(
                        tenant,
                        current.id,
                        LeaseStatus.RENEWED,
                        TerminationCode.RENEWED,
                        actor_id,
                    )
                    successor = ledger.open_lease(
                        tenant,
                        key,
                        successor_terms,
                        actor_id,
                        unit_number=current.unit_number,
                        renewed_from_id=current.id,
                    )
                    self._projector.project_onto(tenant)
                    session.flush()
                    return _LeaseWrite(
                        lease=lease_to_info(successor),
                        previous_lease=lease_to_info(current),
                    )

                written = run_with_retry(
                    self._session_factory,
                    work,
                    entity_type="Tenant",
                    entity_id=tenant_id,
                    max_attempts=self._config.max_write_retries,
                )
                updated = self._update_window(key, tenant_id, written.lease)

                tenant, prop, lease = self._read_back(tenant_id, key, written.lease.id)
                logger.info(
                    "lease_renewed",
                    extra={
                        "lease_id": str(lease.id),
                        "renewed_from_id": str(written.previous_lease.id),
                        "occupancy_updated": updated,
                    },
                )
                return RenewalResult(
                    tenant=tenant,
                    property=prop,
                    previous_lease=written.previous_lease,
                    lease=lease,
                    occupancy_updated=updated,
                )

    def _update_window(self, key: OccupancyKey, tenant_id: UUID, lease: LeaseInfo) -> bool:
        try:
            with transaction_scope(self._session_factory) as session:
                return OccupancyStore(session, self._clock).update_window(
                    key, tenant_id, lease.start_date, lease.end_date,
                )
        except (SQLAlchemyError, TenancyKernelError):
            logger.exception(
                "occupancy_window_update_failed",
                extra={"space": str(key), "lease_id": str(lease.id)},
            )
            return False

    # -----------------------------------------------------------------
    # force_unassign
    # -----------------------------------------------------------------

    def force_unassign(
        self,
        tenant_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ForceUnassignmentResult:
        """
        Terminate every active lease of the tenant and release every space
        that points at it.  Works on inactive tenants too.
        """
        with LogContext.operation(tenant_id=tenant_id, actor_id=actor_id):
            with transaction_scope(self._session_factory) as session:
                tenant = LeaseLedger(session, self._clock).load_tenant(
                    tenant_id, owner_id=actor_id, require_active=False,
                )
                keys = {OccupancyKey(lease.property_id, lease.unit_id) for lease in tenant.active_leases()}
                keys.update(
                    OccupancyKey(pid, uid)
                    for pid, uid in PropertySelector(session).occupied_by(tenant_id)
                )

            with self._locks.hold_many(keys):
                logger.info("force_unassignment_started", extra={"space_count": len(keys)})

                def work(session: Session) -> tuple[LeaseInfo, ...]:
                    ledger = LeaseLedger(session, self._clock)
                    tenant = ledger.load_tenant(
                        tenant_id, owner_id=actor_id, require_active=False, for_update=True,
                    )
                    closed = []
                    for lease in tenant.active_leases():
                        ledger.close_lease(
                            tenant,
                            lease.id,
                            LeaseStatus.TERMINATED,
                            TerminationCode.FORCE_UNASSIGNED,
                            actor_id,
                            reason=reason,
                        )
                        closed.append(lease_to_info(lease))
                    if closed:
                        self._projector.project_onto(tenant)
                        session.flush()
                    return tuple(closed)

                closed = run_with_retry(
                    self._session_factory,
                    work,
                    entity_type="Tenant",
                    entity_id=tenant_id,
                    max_attempts=self._config.max_write_retries,
                )

                released: list[OccupancyKey] = []
                unreleased: list[OccupancyKey] = []
                for key in _ordered(keys):
                    if self._release(key, tenant_id, None):
                        released.append(key)
                    elif self._still_held(key, tenant_id):
                        unreleased.append(key)

            tenant_info = self._read_tenant(tenant_id)
            logger.info(
                "force_unassignment_completed",
                extra={
                    "closed_lease_count": len(closed),
                    "released_count": len(released),
                    "unreleased_count": len(unreleased),
                },
            )
            return ForceUnassignmentResult(
                tenant=tenant_info,
                closed_leases=closed,
                released=tuple(released),
                unreleased=tuple(unreleased),
            )

    def _still_held(self, key: OccupancyKey, tenant_id: UUID) -> bool:
        with transaction_scope(self._session_factory) as session:
            record = OccupancyStore(session, self._clock).load_record(key, for_update=False)
            return record.tenant_id == tenant_id

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _resolve_key(
        self,
        tenant_id: UUID,
        property_id: UUID,
        unit_ref: UUID | str | None,
        actor_id: UUID,
    ) -> OccupancyKey:
        """Validate ownership and addressing; nothing is written."""
        with transaction_scope(self._session_factory) as session:
            LeaseLedger(session, self._clock).load_tenant(tenant_id, owner_id=actor_id)
            store = OccupancyStore(session, self._clock)
            prop = store.load_property(property_id, owner_id=actor_id)
            _, resolved = store.resolve_space(prop, unit_ref)
            return resolved.key

    def _read_back(
        self,
        tenant_id: UUID,
        key: OccupancyKey,
        lease_id: UUID,
    ) -> tuple[TenantInfo, PropertyInfo, LeaseInfo]:
        with transaction_scope(self._session_factory) as session:
            tenant = session.get(Tenant, tenant_id)
            prop = OccupancyStore(session, self._clock).load_property(key.property_id)
            lease = tenant.find_lease(lease_id)
            return tenant_to_info(tenant), property_to_info(prop), lease_to_info(lease)

    def _read_tenant(self, tenant_id: UUID) -> TenantInfo:
        with transaction_scope(self._session_factory) as session:
            return tenant_to_info(session.get(Tenant, tenant_id))


def _ordered(keys: Iterable[OccupancyKey]) -> list[OccupancyKey]:
    return sorted(keys, key=lambda k: (str(k.property_id), str(k.unit_id or "")))


__all__: list[str] = [
    "AssignmentCoordinator",
    "AssignmentResult",
    "ForceUnassignmentResult",
    "RenewalResult",
    "UnassignmentResult",
]