"""
Module: tenancy_kernel.models.tenant
Responsibility: ORM persistence for the Tenant aggregate and its Lease Ledger.
    A tenant owns the facts the qualification engine reads, the derived or
    manual application status, a cached qualification result, and the ordered
    list of leases binding it to properties or units.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain vocabulary.  MUST NOT import from services/, selectors/, or
    outer layers.

Invariants enforced:
    - At most one ACTIVE lease per (tenant, property, unit): checked by
      Tenant.append_lease and backed by the partial unique index
      uq_lease_active_space.
    - Leases are never deleted, only transitioned through LEASE_TRANSITIONS.
    - Every mutation of the aggregate (facts, status, ledger) goes through
      bump_version(); the version column is compared on UPDATE so a stale
      writer gets StaleDataError.

Failure modes:
    - TenantAlreadyLeasedError when appending a second active lease on the
      same space.
    - InvalidStatusTransitionError when a lease transition is not allowed.
    - StaleDataError (SQLAlchemy) on flush when another transaction has
      already bumped the version.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenancy_kernel.db.base import TrackedBase
from tenancy_kernel.domain.statuses import (
    LEASE_TRANSITIONS,
    ApplicationStatus,
    LeaseStatus,
    QualificationVerdict,
    ReferencingOutcome,
    ReferencingStatus,
    StatusSource,
    TenancyType,
    TerminationCode,
    require_transition,
)
from tenancy_kernel.exceptions import TenantAlreadyLeasedError


def space_key(property_id: UUID, unit_id: UUID | None) -> str:
    """Stable string key of an occupancy space."""
    return f"{property_id}:{unit_id or '-'}"


class Lease(TrackedBase):
    """
    One lease in a tenant's ledger.

    Guarantees:
        - unit_id is None for a whole-property lease.
        - space_key mirrors (property_id, unit_id) for indexing.
        - status only moves along LEASE_TRANSITIONS.
    """

    __tablename__ = "leases"

    __table_args__ = (
        Index("idx_lease_tenant", "tenant_id"),
        Index("idx_lease_space", "space_key"),
        Index("idx_lease_status", "status"),
        Index(
            "uq_lease_active_space",
            "tenant_id",
            "space_key",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id"),
        nullable=False,
    )

    property_id: Mapped[UUID] = mapped_column(nullable=False)

    unit_id: Mapped[UUID | None] = mapped_column(nullable=True)

    unit_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    space_key: Mapped[str] = mapped_column(String(80), nullable=False)

    tenancy_type: Mapped[TenancyType] = mapped_column(
        String(30),
        nullable=False,
        default=TenancyType.ASSURED_SHORTHOLD,
    )

    start_date: Mapped[datetime] = mapped_column(nullable=False)

    end_date: Mapped[datetime] = mapped_column(nullable=False)

    monthly_rent: Mapped[Decimal] = mapped_column(nullable=False)

    security_deposit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    rent_due_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[LeaseStatus] = mapped_column(
        String(20),
        nullable=False,
        default=LeaseStatus.ACTIVE,
    )

    termination_date: Mapped[datetime | None] = mapped_column(nullable=True)

    termination_code: Mapped[TerminationCode | None] = mapped_column(String(30), nullable=True)

    termination_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    renewed_from_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("leases.id"),
        nullable=True,
    )

    tenant: Mapped[Tenant] = relationship(back_populates="leases")

    @property
    def status_enum(self) -> LeaseStatus:
        return LeaseStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status_enum == LeaseStatus.ACTIVE

    def matches_space(self, property_id: UUID, unit_id: UUID | None) -> bool:
        return self.property_id == property_id and self.unit_id == unit_id

    def close(
        self,
        target: LeaseStatus,
        at: datetime,
        code: TerminationCode,
        reason: str | None = None,
    ) -> None:
        """Move the lease to a closed status, recording when and why."""
        require_transition("Lease", LEASE_TRANSITIONS, self.status_enum, target)
        self.status = target
        self.termination_date = at
        self.termination_code = code
        if reason is not None:
            self.termination_reason = reason

    def __repr__(self) -> str:
        return f"<Lease {self.id} {self.space_key} {self.status}>"


class Tenant(TrackedBase):
    """
    Tenant aggregate root.

    Contract:
        Holds the qualification facts, the application status (derived from
        the cached verdict unless a manual override is in force), the cached
        qualification result, and the lease ledger.  Ownership is by
        owner_id; every lookup is scoped to the calling principal.
    """

    __tablename__ = "tenants"

    __table_args__ = (
        UniqueConstraint("tenant_ref", name="uq_tenant_ref"),
        Index("idx_tenant_owner", "owner_id"),
        Index("idx_tenant_application_status", "application_status"),
    )

    owner_id: Mapped[UUID] = mapped_column(nullable=False)

    tenant_ref: Mapped[str] = mapped_column(String(32), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)

    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Right to rent
    right_to_rent_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    right_to_rent_verification_date: Mapped[datetime | None] = mapped_column(nullable=True)
    right_to_rent_document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Employment income
    gross_monthly_income: Mapped[Decimal | None] = mapped_column(nullable=True)
    net_monthly_income: Mapped[Decimal | None] = mapped_column(nullable=True)
    income_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    monthly_benefits: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Affordability assessment
    affordability_monthly_income: Mapped[Decimal | None] = mapped_column(nullable=True)
    affordability_monthly_expenses: Mapped[Decimal | None] = mapped_column(nullable=True)
    affordability_monthly_commitments: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Guarantor
    guarantor_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    guarantor_provided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    guarantor_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    guarantor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Referencing
    referencing_status: Mapped[ReferencingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReferencingStatus.NOT_STARTED,
    )
    referencing_outcome: Mapped[ReferencingOutcome | None] = mapped_column(
        String(30),
        nullable=True,
    )
    referencing_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    target_monthly_rent: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Application status
    application_status: Mapped[ApplicationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    application_status_source: Mapped[StatusSource] = mapped_column(
        String(10),
        nullable=False,
        default=StatusSource.DERIVED,
    )
    application_date: Mapped[datetime | None] = mapped_column(nullable=True)
    review_date: Mapped[datetime | None] = mapped_column(nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    # Cached qualification
    qualification_verdict: Mapped[QualificationVerdict | None] = mapped_column(
        String(20),
        nullable=True,
    )
    qualification_issues: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    qualification_rent_basis: Mapped[Decimal | None] = mapped_column(nullable=True)
    qualification_evaluated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    leases: Mapped[list[Lease]] = relationship(
        back_populates="tenant",
        order_by=[Lease.start_date, Lease.created_at],
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def application_status_enum(self) -> ApplicationStatus:
        return ApplicationStatus(self.application_status)

    @property
    def status_source_enum(self) -> StatusSource:
        return StatusSource(self.application_status_source)

    @property
    def disposable_income(self) -> Decimal | None:
        """Affordability income less expenses and commitments."""
        if self.affordability_monthly_income is None:
            return None
        return (
            self.affordability_monthly_income
            - (self.affordability_monthly_expenses or Decimal("0"))
            - (self.affordability_monthly_commitments or Decimal("0"))
        )

    def active_leases(self) -> list[Lease]:
        return [lease for lease in self.leases if lease.is_active]

    def find_active_lease(self, property_id: UUID, unit_id: UUID | None) -> Lease | None:
        for lease in self.leases:
            if lease.is_active and lease.matches_space(property_id, unit_id):
                return lease
        return None

    def find_lease(self, lease_id: UUID) -> Lease | None:
        for lease in self.leases:
            if lease.id == lease_id:
                return lease
        return None

    # ------------------------------------------------------------------
    # Ledger mutations
    # ------------------------------------------------------------------

    def bump_version(self) -> None:
        """Mark the aggregate as changed; checked against the row on UPDATE."""
        self.version = (self.version or 1) + 1

    def append_lease(self, lease: Lease) -> Lease:
        """Append an ACTIVE lease; at most one per space."""
        existing = self.find_active_lease(lease.property_id, lease.unit_id)
        if existing is not None:
            raise TenantAlreadyLeasedError(self.id, existing.id)
        lease.space_key = space_key(lease.property_id, lease.unit_id)
        self.leases.append(lease)
        self.bump_version()
        return lease

    def close_lease(
        self,
        lease: Lease,
        target: LeaseStatus,
        at: datetime,
        code: TerminationCode,
        reason: str | None = None,
    ) -> Lease:
        lease.close(target, at, code, reason)
        self.bump_version()
        return lease

    def __repr__(self) -> str:
        return f"<Tenant {self.tenant_ref}: {self.full_name}>"
