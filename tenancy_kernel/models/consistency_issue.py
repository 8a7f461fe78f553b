"""
Module: tenancy_kernel.models.consistency_issue
Responsibility: ORM persistence for lease/occupancy disagreements that the
    reconciliation sweep could not repair automatically.
Architecture position: Kernel > Models.  Written only by the reconciliation
    sweep; read by operators.

Invariants enforced:
    - At most one OPEN issue per (kind, property_id, unit_id, lease_id),
      enforced by the partial unique index uq_issue_open_key on issue_key.
    - Issues are resolved, never deleted.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from tenancy_kernel.db.base import Base
from tenancy_kernel.domain.statuses import IssueStatus


def issue_key(kind: str, property_id: UUID, unit_id: UUID | None, lease_id: UUID | None) -> str:
    return f"{kind}|{property_id}|{unit_id or '-'}|{lease_id or '-'}"


class ConsistencyIssue(Base):
    """A flagged reconciliation finding awaiting manual resolution."""

    __tablename__ = "consistency_issues"

    __table_args__ = (
        Index("idx_issue_status", "status"),
        Index("idx_issue_property", "property_id"),
        Index(
            "uq_issue_open_key",
            "issue_key",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    kind: Mapped[str] = mapped_column(String(40), nullable=False)

    issue_key: Mapped[str] = mapped_column(String(200), nullable=False)

    owner_id: Mapped[UUID | None] = mapped_column(nullable=True)

    property_id: Mapped[UUID] = mapped_column(nullable=False)

    unit_id: Mapped[UUID | None] = mapped_column(nullable=True)

    tenant_id: Mapped[UUID | None] = mapped_column(nullable=True)

    lease_id: Mapped[UUID | None] = mapped_column(nullable=True)

    detail: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[IssueStatus] = mapped_column(
        String(20),
        nullable=False,
        default=IssueStatus.OPEN,
    )

    detected_at: Mapped[datetime] = mapped_column(nullable=False)

    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_open(self) -> bool:
        return IssueStatus(self.status) == IssueStatus.OPEN

    def resolve(self, at: datetime) -> None:
        self.status = IssueStatus.RESOLVED
        self.resolved_at = at

    def __repr__(self) -> str:
        return f"<ConsistencyIssue {self.kind} {self.status} {self.issue_key}>"
