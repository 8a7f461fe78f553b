"""
LeaseExpiryService -- move leases past their end date to EXPIRED.

Same two-step ordering as unassign: the tenant write (lease -> EXPIRED, code
``expired``) commits first, then the occupancy record is released if it still
points at the tenant.  A failed release is logged and left for the
reconciliation sweep.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.clock import Clock, SystemClock
from tenancy_kernel.domain.dtos import LeaseInfo
from tenancy_kernel.domain.statuses import LeaseStatus, TerminationCode
from tenancy_kernel.exceptions import TenancyKernelError
from tenancy_kernel.logging_config import LogContext, get_logger
from tenancy_kernel.selectors.tenant_selector import TenantSelector, lease_to_info
from tenancy_kernel.services.lease_ledger import LeaseLedger
from tenancy_kernel.services.occupancy_store import OccupancyStore

from tenancy_services._write_retry import run_with_retry
from tenancy_services.occupancy_lock import OccupancyLockRegistry, default_lock_registry
from tenancy_services.status_projector import StatusProjector

logger = get_logger("services.lease_expiry")


@dataclass(frozen=True)
class ExpiryResult:
    as_of: datetime
    expired: tuple[LeaseInfo, ...] = ()
    released: int = 0
    failed: tuple[UUID, ...] = ()


class LeaseExpiryService:
    """Batch expiry of ACTIVE leases whose end date has passed."""

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

    def expire_due_leases(self, as_of: datetime | None = None) -> ExpiryResult:
        """Expire every ACTIVE lease with ``end_date <= as_of`` (default now)."""
        as_of = as_of or self._clock.now()
        with transaction_scope(self._session_factory) as session:
            due = TenantSelector(session).leases_due(as_of)

        expired: list[LeaseInfo] = []
        failed: list[UUID] = []
        released = 0
        for lease in due:
            with LogContext.bind(tenant_id=lease.tenant_id, lease_id=lease.id):
                with self._locks.hold(lease.key):
                    try:
                        closed = self._expire(lease, as_of)
                    except TenancyKernelError:
                        logger.exception("lease_expiry_failed")
                        failed.append(lease.id)
                        continue
                    if closed is None:
                        continue
                    expired.append(closed)
                    if self._release(lease):
                        released += 1

        logger.info(
            "leases_expired",
            extra={
                "as_of": as_of.isoformat(),
                "due_count": len(due),
                "expired_count": len(expired),
                "released_count": released,
                "failed_count": len(failed),
            },
        )
        return ExpiryResult(
            as_of=as_of,
            expired=tuple(expired),
            released=released,
            failed=tuple(failed),
        )

    def _expire(self, lease: LeaseInfo, as_of: datetime) -> LeaseInfo | None:
        def work(session: Session) -> LeaseInfo | None:
            ledger = LeaseLedger(session, self._clock)
            tenant = ledger.load_tenant(lease.tenant_id, require_active=False, for_update=True)
            current = tenant.find_lease(lease.id)
            # Renewed or terminated since the due list was read
            if current is None or not current.is_active or current.end_date > as_of:
                return None
            ledger.close_lease(
                tenant,
                lease.id,
                LeaseStatus.EXPIRED,
                TerminationCode.EXPIRED,
                None,
            )
            self._projector.project_onto(tenant)
            session.flush()
            return lease_to_info(current)

        return run_with_retry(
            self._session_factory,
            work,
            entity_type="Tenant",
            entity_id=lease.tenant_id,
            max_attempts=self._config.max_write_retries,
        )

    def _release(self, lease: LeaseInfo) -> bool:
        try:
            with transaction_scope(self._session_factory) as session:
                return OccupancyStore(session, self._clock).release(lease.key, lease.tenant_id)
        except (SQLAlchemyError, TenancyKernelError):
            logger.exception("occupancy_release_failed", extra={"space": str(lease.key)})
            return False
