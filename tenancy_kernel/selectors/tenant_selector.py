"""
TenantSelector -- read-only queries over tenants and their lease ledgers.

Also home of the ORM -> DTO converters for Tenant and Lease, shared by every
service that returns tenant data.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from tenancy_kernel.domain.dtos import LeaseInfo, TenantInfo
from tenancy_kernel.domain.statuses import (
    ApplicationStatus,
    LeaseStatus,
    QualificationVerdict,
    StatusSource,
    TenancyType,
    TerminationCode,
)
from tenancy_kernel.exceptions import TenantNotFoundError
from tenancy_kernel.models.tenant import Lease, Tenant
from tenancy_kernel.selectors.base import BaseSelector


def lease_to_info(lease: Lease) -> LeaseInfo:
    """Convert ORM Lease to LeaseInfo DTO."""
    return LeaseInfo(
        id=lease.id,
        tenant_id=lease.tenant_id,
        property_id=lease.property_id,
        unit_id=lease.unit_id,
        unit_number=lease.unit_number,
        tenancy_type=TenancyType(lease.tenancy_type),
        start_date=lease.start_date,
        end_date=lease.end_date,
        monthly_rent=lease.monthly_rent,
        security_deposit=lease.security_deposit,
        rent_due_day=lease.rent_due_day,
        status=LeaseStatus(lease.status),
        termination_date=lease.termination_date,
        termination_code=(
            TerminationCode(lease.termination_code) if lease.termination_code else None
        ),
        termination_reason=lease.termination_reason,
        renewed_from_id=lease.renewed_from_id,
    )


def tenant_to_info(tenant: Tenant) -> TenantInfo:
    """Convert ORM Tenant (with its leases) to TenantInfo DTO."""
    return TenantInfo(
        id=tenant.id,
        owner_id=tenant.owner_id,
        tenant_ref=tenant.tenant_ref,
        first_name=tenant.first_name,
        last_name=tenant.last_name,
        email=tenant.email,
        is_active=tenant.is_active,
        application_status=ApplicationStatus(tenant.application_status),
        status_source=StatusSource(tenant.application_status_source),
        application_date=tenant.application_date,
        review_date=tenant.review_date,
        approval_date=tenant.approval_date,
        rejection_reason=tenant.rejection_reason,
        qualification_verdict=(
            QualificationVerdict(tenant.qualification_verdict)
            if tenant.qualification_verdict else None
        ),
        qualification_issues=tuple(tenant.qualification_issues or ()),
        qualification_rent_basis=tenant.qualification_rent_basis,
        qualification_evaluated_at=tenant.qualification_evaluated_at,
        target_monthly_rent=tenant.target_monthly_rent,
        version=tenant.version,
        leases=tuple(lease_to_info(lease) for lease in tenant.leases),
    )


class TenantSelector(BaseSelector[Tenant]):
    """Read-only tenant queries, always scoped to an owner when one is given."""

    def get(self, tenant_id: UUID, owner_id: UUID | None = None) -> TenantInfo:
        """
        Raises:
            TenantNotFoundError: absent, or owned by someone else.
        """
        tenant = self.session.get(Tenant, tenant_id)
        if tenant is None or (owner_id is not None and tenant.owner_id != owner_id):
            raise TenantNotFoundError(tenant_id)
        return tenant_to_info(tenant)

    def list_for_owner(
        self,
        owner_id: UUID,
        statuses: tuple[ApplicationStatus, ...] | None = None,
        active_only: bool = True,
    ) -> list[TenantInfo]:
        stmt = select(Tenant).where(Tenant.owner_id == owner_id)
        if active_only:
            stmt = stmt.where(Tenant.is_active.is_(True))
        if statuses:
            stmt = stmt.where(Tenant.application_status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(Tenant.tenant_ref)
        return [tenant_to_info(t) for t in self.session.execute(stmt).scalars()]

    def active_leases(self, owner_id: UUID | None = None) -> list[LeaseInfo]:
        """Every ACTIVE lease, optionally limited to one owner's tenants."""
        stmt = select(Lease).where(Lease.status == LeaseStatus.ACTIVE.value)
        if owner_id is not None:
            stmt = stmt.join(Tenant, Lease.tenant_id == Tenant.id).where(
                Tenant.owner_id == owner_id
            )
        stmt = stmt.order_by(Lease.start_date, Lease.id)
        return [lease_to_info(lease) for lease in self.session.execute(stmt).scalars()]

    def active_leases_for_space(
        self,
        property_id: UUID,
        unit_id: UUID | None,
    ) -> list[LeaseInfo]:
        stmt = select(Lease).where(
            Lease.status == LeaseStatus.ACTIVE.value,
            Lease.property_id == property_id,
        )
        if unit_id is None:
            stmt = stmt.where(Lease.unit_id.is_(None))
        else:
            stmt = stmt.where(Lease.unit_id == unit_id)
        return [lease_to_info(lease) for lease in self.session.execute(stmt).scalars()]

    def leases_due(self, as_of) -> list[LeaseInfo]:
        """ACTIVE leases whose end date is at or before ``as_of``."""
        stmt = (
            select(Lease)
            .where(Lease.status == LeaseStatus.ACTIVE.value, Lease.end_date <= as_of)
            .order_by(Lease.end_date, Lease.id)
        )
        return [lease_to_info(lease) for lease in self.session.execute(stmt).scalars()]
