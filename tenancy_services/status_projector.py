"""
StatusProjector -- keep a tenant's cached verdict and application status in
step with its facts.

Architecture: tenancy_services -- imperative shell over the pure
qualification and status_projection engines.

Contract:
    - ``recompute()`` re-derives the cached qualification and, unless a
      manual override is in force, the application status.  It writes only
      the tenant aggregate, and only when something changed.
    - Writes are single-aggregate, guarded by the tenant version, and
      retried a bounded number of times on conflict.
    - Rent basis: the rent of the tenant's active lease, else the target
      rent the tenant applied for, else none (verdict UNKNOWN).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.clock import Clock, SystemClock
from tenancy_kernel.domain.dtos import TenantInfo
from tenancy_kernel.domain.statuses import (
    ApplicationStatus,
    QualificationVerdict,
    StatusSource,
)
from tenancy_kernel.logging_config import LogContext, get_logger
from tenancy_kernel.models.tenant import Tenant
from tenancy_kernel.selectors.tenant_selector import tenant_to_info
from tenancy_kernel.services.lease_ledger import LeaseLedger

from tenancy_engines.qualification import evaluate
from tenancy_engines.status_projection import (
    ApplicationState,
    apply_override,
    clear_override,
    project,
)
from tenancy_services._write_retry import run_with_retry
from tenancy_services.qualification_service import facts_from_tenant

logger = get_logger("services.status_projector")

ISSUE_NO_RENT_BASIS = "no rent basis for qualification"

# Statuses re-evaluated by recompute_all
REEVALUATED_STATUSES: tuple[ApplicationStatus, ...] = (
    ApplicationStatus.PENDING,
    ApplicationStatus.UNDER_REVIEW,
)


def rent_basis(tenant: Tenant) -> Decimal | None:
    """Active lease rent, else target rent, else None."""
    active = [lease for lease in tenant.active_leases() if lease.monthly_rent > 0]
    if active:
        return active[-1].monthly_rent
    if tenant.target_monthly_rent is not None and tenant.target_monthly_rent > 0:
        return tenant.target_monthly_rent
    return None


def _state_of(tenant: Tenant) -> ApplicationState:
    return ApplicationState(
        status=ApplicationStatus(tenant.application_status),
        source=StatusSource(tenant.application_status_source),
        review_date=tenant.review_date,
        approval_date=tenant.approval_date,
        rejection_reason=tenant.rejection_reason,
    )


def _write_state(tenant: Tenant, state: ApplicationState) -> None:
    tenant.application_status = ApplicationStatus(state.status)
    tenant.application_status_source = StatusSource(state.source)
    tenant.review_date = state.review_date
    tenant.approval_date = state.approval_date
    tenant.rejection_reason = state.rejection_reason


class StatusProjector:
    """Derives and persists qualification verdicts and application status."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: TenancyConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or TenancyConfig.with_defaults()
        self._clock = clock or SystemClock()

    # -----------------------------------------------------------------
    # In-transaction projection
    # -----------------------------------------------------------------

    def project_onto(self, tenant: Tenant, now: datetime | None = None) -> bool:
        """
        Recompute the cached verdict and derived status on a loaded tenant.

        Does not flush.  Returns True when any field changed (the tenant
        version is bumped in that case).
        """
        now = now or self._clock.now()
        basis = rent_basis(tenant)
        if basis is None:
            verdict, issues = QualificationVerdict.UNKNOWN, (ISSUE_NO_RENT_BASIS,)
        else:
            result = evaluate(facts_from_tenant(tenant), basis, self._config.qualification)
            verdict, issues = result.verdict, result.issues

        changed = False
        cached_verdict = (
            QualificationVerdict(tenant.qualification_verdict)
            if tenant.qualification_verdict else None
        )
        if (
            cached_verdict != verdict
            or tuple(tenant.qualification_issues or ()) != issues
            or tenant.qualification_rent_basis != basis
        ):
            tenant.qualification_verdict = verdict
            tenant.qualification_issues = list(issues)
            tenant.qualification_rent_basis = basis
            tenant.qualification_evaluated_at = now
            changed = True

        projection = project(_state_of(tenant), verdict, issues, now)
        if projection.changed:
            _write_state(tenant, projection.state)
            changed = True

        if changed:
            tenant.bump_version()
            logger.info(
                "tenant_status_projected",
                extra={
                    "tenant_id": str(tenant.id),
                    "verdict": verdict.value,
                    "application_status": ApplicationStatus(tenant.application_status).value,
                    "status_source": StatusSource(tenant.application_status_source).value,
                },
            )
        return changed

    # -----------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------

    def recompute(self, tenant_id: UUID, actor_id: UUID | None = None) -> TenantInfo:
        """
        Idempotent re-derivation of one tenant's verdict and status.

        Raises:
            TenantNotFoundError: absent or not owned by ``actor_id``.
            OptimisticLockError: conflicts persisted past the retry budget.
        """

        def work(session: Session) -> TenantInfo:
            tenant = LeaseLedger(session, self._clock).load_tenant(
                tenant_id, owner_id=actor_id, require_active=False,
            )
            if self.project_onto(tenant) and actor_id is not None:
                tenant.updated_by_id = actor_id
            session.flush()
            return tenant_to_info(tenant)

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            return run_with_retry(
                self._session_factory,
                work,
                entity_type="Tenant",
                entity_id=tenant_id,
                max_attempts=self._config.max_write_retries,
            )

    def recompute_status(self, tenant_id: UUID, actor_id: UUID | None = None) -> TenantInfo:
        return self.recompute(tenant_id, actor_id)

    def recompute_all(self, owner_id: UUID) -> list[TenantInfo]:
        """Re-evaluate every active tenant of ``owner_id`` still pending or under review."""
        with transaction_scope(self._session_factory) as session:
            stmt = (
                select(Tenant.id)
                .where(
                    Tenant.owner_id == owner_id,
                    Tenant.is_active.is_(True),
                    Tenant.application_status.in_([s.value for s in REEVALUATED_STATUSES]),
                )
                .order_by(Tenant.tenant_ref)
            )
            tenant_ids = list(session.execute(stmt).scalars())

        results = [self.recompute(tid, actor_id=owner_id) for tid in tenant_ids]
        logger.info(
            "tenants_reevaluated",
            extra={"owner_id": str(owner_id), "tenant_count": len(results)},
        )
        return results

    def override_status(
        self,
        tenant_id: UUID,
        status: ApplicationStatus,
        actor_id: UUID,
        reason: str | None = None,
        notes: str | None = None,
    ) -> TenantInfo:
        """
        Set a manual application status; derivation stops until cleared.

        Raises:
            InvalidStatusTransitionError: the table forbids the move.
        """

        def work(session: Session) -> TenantInfo:
            tenant = LeaseLedger(session, self._clock).load_tenant(
                tenant_id, owner_id=actor_id, require_active=False,
            )
            now = self._clock.now()
            _write_state(tenant, apply_override(_state_of(tenant), status, now, reason))
            tenant.reviewed_by_id = actor_id
            if notes is not None:
                tenant.application_notes = notes
            tenant.updated_by_id = actor_id
            tenant.bump_version()
            session.flush()
            return tenant_to_info(tenant)

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            info = run_with_retry(
                self._session_factory,
                work,
                entity_type="Tenant",
                entity_id=tenant_id,
                max_attempts=self._config.max_write_retries,
            )
            logger.info(
                "application_status_overridden",
                extra={"application_status": ApplicationStatus(status).value},
            )
            return info

    def clear_override(self, tenant_id: UUID, actor_id: UUID) -> TenantInfo:
        """Return the status to derivation and recompute it immediately."""

        def work(session: Session) -> TenantInfo:
            tenant = LeaseLedger(session, self._clock).load_tenant(
                tenant_id, owner_id=actor_id, require_active=False,
            )
            changed = False
            if StatusSource(tenant.application_status_source) == StatusSource.MANUAL:
                _write_state(tenant, clear_override(_state_of(tenant)))
                tenant.bump_version()
                changed = True
            if self.project_onto(tenant) or changed:
                tenant.updated_by_id = actor_id
            session.flush()
            return tenant_to_info(tenant)

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            info = run_with_retry(
                self._session_factory,
                work,
                entity_type="Tenant",
                entity_id=tenant_id,
                max_attempts=self._config.max_write_retries,
            )
            logger.info("application_status_override_cleared")
            return info
