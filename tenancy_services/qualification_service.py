"""
QualificationService -- evaluate a stored tenant against a candidate rent.

Architecture: tenancy_services -- imperative shell.  Reads the tenant in a
short read-only transaction, builds TenantFacts, and delegates to the pure
qualification engine.  Nothing is written.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.statuses import ReferencingOutcome
from tenancy_kernel.logging_config import LogContext, get_logger
from tenancy_kernel.models.tenant import Tenant
from tenancy_kernel.services.lease_ledger import LeaseLedger

from tenancy_engines.qualification import QualificationResult, TenantFacts, evaluate

logger = get_logger("services.qualification")


def facts_from_tenant(tenant: Tenant) -> TenantFacts:
    """Snapshot the qualification-relevant facts of a tenant row."""
    return TenantFacts(
        gross_monthly_income=tenant.gross_monthly_income,
        net_monthly_income=tenant.net_monthly_income,
        monthly_benefits=tenant.monthly_benefits,
        affordability_monthly_income=tenant.affordability_monthly_income,
        affordability_monthly_expenses=tenant.affordability_monthly_expenses,
        affordability_monthly_commitments=tenant.affordability_monthly_commitments,
        right_to_rent_verified=bool(tenant.right_to_rent_verified),
        referencing_outcome=(
            ReferencingOutcome(tenant.referencing_outcome) if tenant.referencing_outcome else None
        ),
        referencing_conditions=tenant.referencing_conditions,
        guarantor_required=bool(tenant.guarantor_required),
        guarantor_provided=bool(tenant.guarantor_provided),
    )


class QualificationService:
    """Evaluate qualification for stored tenants.

    Contract:
        - ``evaluate_qualification()`` never mutates the tenant; caching the
          verdict is the StatusProjector's job.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: TenancyConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or TenancyConfig.with_defaults()

    def evaluate_qualification(
        self,
        tenant_id: UUID,
        candidate_monthly_rent: Decimal,
        actor_id: UUID | None = None,
    ) -> QualificationResult:
        """
        Raises:
            TenantNotFoundError: absent or not owned by ``actor_id``.
            InvalidRentError: rent not a positive amount.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            with transaction_scope(self._session_factory) as session:
                tenant = LeaseLedger(session).load_tenant(
                    tenant_id, owner_id=actor_id, require_active=False,
                )
                facts = facts_from_tenant(tenant)

            result = evaluate(facts, candidate_monthly_rent, self._config.qualification)
            logger.info(
                "qualification_evaluated",
                extra={
                    "verdict": result.verdict.value,
                    "issues": list(result.issues),
                },
            )
            return result
