"""
LeaseLedger -- tenant-scoped lease operations.

Responsibility:
    Load a tenant aggregate for a principal, materialise and validate lease
    terms, append leases, and move them through their lifecycle.

Architecture position:
    Kernel > Services.  Flush-only: the caller owns the transaction.

Invariants enforced:
    - Validation happens before any mutation (InvalidDatesError,
      InvalidLeaseTermsError).
    - Lease transitions go through Tenant.close_lease so the tenant version
      is bumped with every ledger change.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from tenancy_kernel.domain.dtos import LeaseTerms, OccupancyKey
from tenancy_kernel.domain.statuses import LeaseStatus, TenancyType, TerminationCode
from tenancy_kernel.exceptions import (
    InvalidDatesError,
    InvalidLeaseTermsError,
    NoActiveLeaseError,
    TenantAlreadyLeasedError,
    TenantNotFoundError,
)
from tenancy_kernel.logging_config import get_logger
from tenancy_kernel.models.tenant import Lease, Tenant
from tenancy_kernel.services.base import BaseService

logger = get_logger("services.lease_ledger")

ZERO = Decimal("0")


def materialize_terms(
    terms: LeaseTerms | None,
    now: datetime,
    default_lease_days: int,
    default_rent: Decimal | None,
    default_deposit: Decimal | None,
) -> LeaseTerms:
    """
    Fill in missing lease terms and validate the result.

    Defaults: start = now, end = start + ``default_lease_days``, rent and
    deposit from the occupied space's financials (0 when none recorded).

    Raises:
        InvalidDatesError: start >= end, or end already passed.
        InvalidLeaseTermsError: negative rent/deposit, or rent_due_day
            outside 1..31.
    """
    terms = terms or LeaseTerms()
    start = terms.start_date or now
    end = terms.end_date or start + timedelta(days=default_lease_days)

    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidDatesError(start, end, "lease dates must be timezone-aware")
    if start >= end:
        raise InvalidDatesError(start, end, "start date must be before end date")
    if end <= now:
        raise InvalidDatesError(start, end, "end date must be in the future")

    rent = terms.monthly_rent if terms.monthly_rent is not None else (default_rent or ZERO)
    deposit = (
        terms.security_deposit if terms.security_deposit is not None else (default_deposit or ZERO)
    )
    if rent < ZERO:
        raise InvalidLeaseTermsError("monthly_rent", rent, "must not be negative")
    if deposit < ZERO:
        raise InvalidLeaseTermsError("security_deposit", deposit, "must not be negative")
    if not 1 <= terms.rent_due_day <= 31:
        raise InvalidLeaseTermsError("rent_due_day", terms.rent_due_day, "must be between 1 and 31")

    return LeaseTerms(
        start_date=start,
        end_date=end,
        monthly_rent=rent,
        security_deposit=deposit,
        rent_due_day=terms.rent_due_day,
        tenancy_type=TenancyType(terms.tenancy_type),
    )


class LeaseLedger(BaseService[Tenant]):
    """Lease ledger access for one transaction."""

    def load_tenant(
        self,
        tenant_id: UUID,
        owner_id: UUID | None = None,
        for_update: bool = False,
        require_active: bool = True,
    ) -> Tenant:
        """
        Raises:
            TenantNotFoundError: absent, inactive, or owned by someone else.
        """
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        tenant = self.session.execute(stmt).scalar_one_or_none()
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        if owner_id is not None and tenant.owner_id != owner_id:
            raise TenantNotFoundError(tenant_id)
        if require_active and not tenant.is_active:
            raise TenantNotFoundError(tenant_id)
        return tenant

    def check_can_lease(
        self,
        tenant: Tenant,
        key: OccupancyKey,
        exclusive: bool,
    ) -> None:
        """
        Raises:
            TenantAlreadyLeasedError: the tenant already leases this space,
                or (``exclusive``) holds any active lease.
        """
        existing = tenant.find_active_lease(key.property_id, key.unit_id)
        if existing is None and exclusive:
            active = tenant.active_leases()
            existing = active[0] if active else None
        if existing is not None:
            raise TenantAlreadyLeasedError(tenant.id, existing.id)

    def open_lease(
        self,
        tenant: Tenant,
        key: OccupancyKey,
        terms: LeaseTerms,
        actor_id: UUID,
        unit_number: str | None = None,
        renewed_from_id: UUID | None = None,
    ) -> Lease:
        """Append an ACTIVE lease built from materialised ``terms`` and flush."""
        lease = Lease(
            property_id=key.property_id,
            unit_id=key.unit_id,
            unit_number=unit_number,
            tenancy_type=terms.tenancy_type,
            start_date=terms.start_date,
            end_date=terms.end_date,
            monthly_rent=terms.monthly_rent,
            security_deposit=terms.security_deposit,
            rent_due_day=terms.rent_due_day,
            status=LeaseStatus.ACTIVE,
            renewed_from_id=renewed_from_id,
            created_by_id=actor_id,
        )
        tenant.append_lease(lease)
        tenant.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "lease_opened",
            extra={
                "tenant_id": str(tenant.id),
                "lease_id": str(lease.id),
                "space": f"{key.property_id}:{key.unit_id or '-'}",
            },
        )
        return lease

    def close_lease(
        self,
        tenant: Tenant,
        lease_id: UUID,
        target: LeaseStatus,
        code: TerminationCode,
        actor_id: UUID | None,
        reason: str | None = None,
    ) -> Lease | None:
        """
        Close an ACTIVE lease and flush.  Returns None when the lease is
        missing or no longer active, which makes compensation idempotent.
        """
        lease = tenant.find_lease(lease_id)
        if lease is None or not lease.is_active:
            return None
        tenant.close_lease(lease, target, self.clock.now(), code, reason)
        if actor_id is not None:
            tenant.updated_by_id = actor_id
            lease.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "lease_closed",
            extra={
                "tenant_id": str(tenant.id),
                "lease_id": str(lease.id),
                "lease_status": LeaseStatus(target).value,
                "termination_code": TerminationCode(code).value,
            },
        )
        return lease

    def require_active_lease(self, tenant: Tenant, key: OccupancyKey) -> Lease:
        """
        Raises:
            NoActiveLeaseError: no ACTIVE lease on ``key``.
        """
        lease = tenant.find_active_lease(key.property_id, key.unit_id)
        if lease is None:
            raise NoActiveLeaseError(tenant.id, key.property_id, key.unit_id)
        return lease
