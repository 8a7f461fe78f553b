"""
TenantService -- register tenants and maintain the facts qualification reads.

Architecture: tenancy_services -- imperative shell.  Each operation loads the
tenant aggregate, applies one fact change, re-projects the cached verdict and
application status, and commits, all in one single-aggregate transaction
retried on version conflicts.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.clock import Clock, SystemClock
from tenancy_kernel.domain.dtos import TenantInfo
from tenancy_kernel.domain.statuses import (
    ApplicationStatus,
    ReferencingOutcome,
    ReferencingStatus,
    StatusSource,
)
from tenancy_kernel.exceptions import InvalidAmountError, InvalidRentError
from tenancy_kernel.logging_config import LogContext, get_logger
from tenancy_kernel.models.tenant import Tenant
from tenancy_kernel.selectors.tenant_selector import tenant_to_info
from tenancy_kernel.services.lease_ledger import LeaseLedger

from tenancy_services._write_retry import run_with_retry
from tenancy_services.status_projector import StatusProjector

logger = get_logger("services.tenant")

ZERO = Decimal("0")
TENANT_REF_ATTEMPTS = 5


def generate_tenant_ref(now: datetime) -> str:
    """Human reference of the form TNT-YYYYMMDD-XXXXXXXX."""
    return f"TNT-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def _is_ref_collision(exc: IntegrityError) -> bool:
    return "tenant_ref" in str(exc.orig)


def _check_amount(field: str, value: Decimal | None) -> None:
    if value is not None and value < ZERO:
        raise InvalidAmountError(field, value)


class TenantService:
    """Tenant registration and fact maintenance for one owner."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: TenancyConfig | None = None,
        clock: Clock | None = None,
        projector: StatusProjector | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or TenancyConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._projector = projector or StatusProjector(session_factory, self._config, self._clock)

    def create_tenant(
        self,
        owner_id: UUID,
        first_name: str,
        last_name: str,
        email: str | None = None,
        target_monthly_rent: Decimal | None = None,
    ) -> TenantInfo:
        """
        Register a tenant with an empty ledger and evaluate it once.

        A generated reference that is already taken is drawn again, up to
        TENANT_REF_ATTEMPTS times in all.
        """
        if target_monthly_rent is not None and target_monthly_rent <= ZERO:
            raise InvalidRentError(target_monthly_rent)

        now = self._clock.now()

        def insert(tenant_ref: str) -> TenantInfo:
            with transaction_scope(self._session_factory) as session:
                tenant = Tenant(
                    id=uuid4(),
                    owner_id=owner_id,
                    tenant_ref=tenant_ref,
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    is_active=True,
                    target_monthly_rent=target_monthly_rent,
                    referencing_status=ReferencingStatus.NOT_STARTED,
                    application_status=ApplicationStatus.PENDING,
                    application_status_source=StatusSource.DERIVED,
                    application_date=now,
                    qualification_issues=[],
                    version=1,
                    created_by_id=owner_id,
                )
                self._projector.project_onto(tenant, now)
                tenant.version = 1
                session.add(tenant)
                session.flush()
                return tenant_to_info(tenant)

        for attempt in range(1, TENANT_REF_ATTEMPTS):
            tenant_ref = generate_tenant_ref(now)
            try:
                info = insert(tenant_ref)
                break
            except IntegrityError as exc:
                if not _is_ref_collision(exc):
                    raise
                logger.warning(
                    "tenant_ref_collision",
                    extra={"tenant_ref": tenant_ref, "attempt": attempt},
                )
        else:
            info = insert(generate_tenant_ref(now))

        logger.info(
            "tenant_created",
            extra={"tenant_id": str(info.id), "tenant_ref": info.tenant_ref},
        )
        return info

    # -----------------------------------------------------------------
    # Fact updates
    # -----------------------------------------------------------------

    def update_income(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        gross_monthly_income: Decimal | None = None,
        net_monthly_income: Decimal | None = None,
        monthly_benefits: Decimal | None = None,
        income_verified: bool | None = None,
    ) -> TenantInfo:
        for field, value in (
            ("gross_monthly_income", gross_monthly_income),
            ("net_monthly_income", net_monthly_income),
            ("monthly_benefits", monthly_benefits),
        ):
            _check_amount(field, value)

        def change(tenant: Tenant) -> None:
            if gross_monthly_income is not None:
                tenant.gross_monthly_income = gross_monthly_income
            if net_monthly_income is not None:
                tenant.net_monthly_income = net_monthly_income
            if monthly_benefits is not None:
                tenant.monthly_benefits = monthly_benefits
            if income_verified is not None:
                tenant.income_verified = income_verified

        return self._apply(tenant_id, actor_id, "income", change)

    def update_affordability(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        monthly_income: Decimal | None,
        monthly_expenses: Decimal | None = None,
        monthly_commitments: Decimal | None = None,
    ) -> TenantInfo:
        for field, value in (
            ("affordability_monthly_income", monthly_income),
            ("affordability_monthly_expenses", monthly_expenses),
            ("affordability_monthly_commitments", monthly_commitments),
        ):
            _check_amount(field, value)

        def change(tenant: Tenant) -> None:
            tenant.affordability_monthly_income = monthly_income
            tenant.affordability_monthly_expenses = monthly_expenses
            tenant.affordability_monthly_commitments = monthly_commitments

        return self._apply(tenant_id, actor_id, "affordability", change)

    def verify_right_to_rent(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        verified: bool = True,
        document_type: str | None = None,
    ) -> TenantInfo:
        now = self._clock.now()

        def change(tenant: Tenant) -> None:
            tenant.right_to_rent_verified = verified
            tenant.right_to_rent_verification_date = now if verified else None
            tenant.right_to_rent_document_type = document_type if verified else None

        return self._apply(tenant_id, actor_id, "right_to_rent", change)

    def record_referencing(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        outcome: ReferencingOutcome | None,
        conditions: str | None = None,
    ) -> TenantInfo:
        """Record a referencing outcome; ``None`` means referencing has started."""

        def change(tenant: Tenant) -> None:
            if outcome is None:
                tenant.referencing_status = ReferencingStatus.IN_PROGRESS
                tenant.referencing_outcome = None
                tenant.referencing_conditions = None
                return
            outcome_enum = ReferencingOutcome(outcome)
            tenant.referencing_outcome = outcome_enum
            tenant.referencing_conditions = (
                conditions if outcome_enum == ReferencingOutcome.PASS_WITH_CONDITIONS else None
            )
            if outcome_enum == ReferencingOutcome.PENDING:
                tenant.referencing_status = ReferencingStatus.IN_PROGRESS
            elif outcome_enum == ReferencingOutcome.FAIL:
                tenant.referencing_status = ReferencingStatus.FAILED
            else:
                tenant.referencing_status = ReferencingStatus.COMPLETED

        return self._apply(tenant_id, actor_id, "referencing", change)

    def update_guarantor(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        required: bool,
        provided: bool = False,
        verified: bool = False,
        name: str | None = None,
    ) -> TenantInfo:
        def change(tenant: Tenant) -> None:
            tenant.guarantor_required = required
            tenant.guarantor_provided = provided
            tenant.guarantor_verified = verified and provided
            tenant.guarantor_name = name if provided else None

        return self._apply(tenant_id, actor_id, "guarantor", change)

    def set_target_rent(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        monthly_rent: Decimal | None,
    ) -> TenantInfo:
        if monthly_rent is not None and monthly_rent <= ZERO:
            raise InvalidRentError(monthly_rent)

        def change(tenant: Tenant) -> None:
            tenant.target_monthly_rent = monthly_rent

        return self._apply(tenant_id, actor_id, "target_rent", change)

    def deactivate(self, tenant_id: UUID, actor_id: UUID) -> TenantInfo:
        """
        Mark the tenant inactive.  Active leases are left to the caller
        (``AssignmentCoordinator.force_unassign``).
        """

        def change(tenant: Tenant) -> None:
            tenant.is_active = False

        return self._apply(tenant_id, actor_id, "deactivated", change, project=False)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _apply(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        fact: str,
        change: Callable[[Tenant], None],
        project: bool = True,
    ) -> TenantInfo:
        def work(session: Session) -> TenantInfo:
            tenant = LeaseLedger(session, self._clock).load_tenant(tenant_id, owner_id=actor_id)
            change(tenant)
            tenant.updated_by_id = actor_id
            tenant.bump_version()
            if project:
                self._projector.project_onto(tenant)
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
                "tenant_fact_updated",
                extra={
                    "fact": fact,
                    "application_status": ApplicationStatus(info.application_status).value,
                },
            )
            return info
