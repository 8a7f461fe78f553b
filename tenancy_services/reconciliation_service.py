"""
ReconciliationService -- repair disagreements between the lease ledger and
the occupancy records.

Architecture: tenancy_services -- imperative shell around the pure
OccupancyReconciliationChecker.

Flow of ``sweep()``:
    1. Snapshot every ACTIVE lease and every occupancy record in scope
       (one read-only transaction).
    2. Run the checker.
    3. For each space, under the same per-space lock the coordinator uses,
       apply the repairs in the order the checker emitted them.  Each
       repair is its own single-aggregate transaction and re-checks the
       occupancy version the decision was based on; a repair whose premise
       has moved on is skipped, not forced.
    4. Persist FLAG findings as OPEN ConsistencyIssues (one per issue key)
       and resolve OPEN issues that no longer reproduce.

The sweep is idempotent: running it twice over a consistent store changes
nothing.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tenancy_kernel.config import TenancyConfig
from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.clock import Clock, SystemClock
from tenancy_kernel.domain.dtos import OccupancyKey, PropertyInfo
from tenancy_kernel.domain.statuses import IssueStatus, LeaseStatus, TerminationCode
from tenancy_kernel.exceptions import ConsistencyViolationError, TenancyKernelError
from tenancy_kernel.logging_config import LogContext, get_logger
from tenancy_kernel.models.consistency_issue import ConsistencyIssue, issue_key
from tenancy_kernel.models.property import OccupancyRecord
from tenancy_kernel.selectors.property_selector import PropertySelector
from tenancy_kernel.selectors.tenant_selector import TenantSelector
from tenancy_kernel.services.lease_ledger import LeaseLedger
from tenancy_kernel.services.occupancy_store import OccupancyStore

from tenancy_engines.reconciliation import (
    LeaseSnapshot,
    OccupancyReconciliationChecker,
    OccupancySnapshot,
    ReconciliationFinding,
    ReconciliationReport,
    RepairAction,
)
from tenancy_engines.reconciliation.types import SweepResult
from tenancy_services.occupancy_lock import OccupancyLockRegistry, default_lock_registry
from tenancy_services.status_projector import StatusProjector

logger = get_logger("services.reconciliation")


class _RepairSkipped(Exception):
    """The premise of a repair no longer holds."""


def occupancy_snapshots(prop: PropertyInfo) -> list[OccupancySnapshot]:
    """One snapshot per space: the units of a multi-unit property, else the property."""
    if prop.is_multi_unit:
        return [
            OccupancySnapshot(
                property_id=prop.id,
                unit_id=unit.id,
                is_occupied=unit.is_occupied,
                tenant_id=unit.tenant_id,
                lease_start=unit.lease_start,
                lease_end=unit.lease_end,
                status=unit.status.value,
                version=unit.version,
            )
            for unit in prop.units
        ]
    return [
        OccupancySnapshot(
            property_id=prop.id,
            unit_id=None,
            is_occupied=prop.is_occupied,
            tenant_id=prop.tenant_id,
            lease_start=prop.lease_start,
            lease_end=prop.lease_end,
            status=prop.status.value,
            version=prop.version,
        )
    ]


class ReconciliationService:
    """Reconciliation sweep and invariant verification."""

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
        self._checker = OccupancyReconciliationChecker()

    # -----------------------------------------------------------------
    # Checking
    # -----------------------------------------------------------------

    def check(self, owner_id: UUID | None = None) -> ReconciliationReport:
        """Run the checker over the current state without repairing anything."""
        leases, occupancies, _ = self._snapshot(owner_id)
        return self._checker.check(leases=leases, occupancies=occupancies)

    def verify_invariants(self, owner_id: UUID | None = None) -> ReconciliationReport:
        """
        Raises:
            ConsistencyViolationError: the checker reported any finding.
        """
        report = self.check(owner_id)
        if not report.is_consistent:
            descriptions = [finding.describe() for finding in report.findings]
            logger.error(
                "consistency_violation_detected",
                extra={"finding_count": len(descriptions), "findings": descriptions},
            )
            raise ConsistencyViolationError(descriptions)
        return report

    def _snapshot(
        self,
        owner_id: UUID | None,
    ) -> tuple[list[LeaseSnapshot], list[OccupancySnapshot], dict[UUID, UUID]]:
        with transaction_scope(self._session_factory) as session:
            leases = [
                LeaseSnapshot(
                    lease_id=lease.id,
                    tenant_id=lease.tenant_id,
                    property_id=lease.property_id,
                    unit_id=lease.unit_id,
                    start_date=lease.start_date,
                    end_date=lease.end_date,
                )
                for lease in TenantSelector(session).active_leases(owner_id)
            ]
            occupancies: list[OccupancySnapshot] = []
            owners: dict[UUID, UUID] = {}
            for prop in PropertySelector(session).list_all(owner_id):
                owners[prop.id] = prop.owner_id
                occupancies.extend(occupancy_snapshots(prop))
        return leases, occupancies, owners

    # -----------------------------------------------------------------
    # Sweep
    # -----------------------------------------------------------------

    def sweep(self, owner_id: UUID | None = None) -> SweepResult:
        """Detect, repair, flag and resolve.  Never raises for findings."""
        with LogContext.operation(actor_id=owner_id):
            leases, occupancies, owners = self._snapshot(owner_id)
            report = self._checker.check(leases=leases, occupancies=occupancies)
            logger.info(
                "reconciliation_sweep_started",
                extra={
                    "leases_checked": report.leases_checked,
                    "spaces_checked": report.spaces_checked,
                    "finding_count": len(report.findings),
                },
            )

            by_key: dict[OccupancyKey, list[ReconciliationFinding]] = defaultdict(list)
            for finding in report.repairable:
                by_key[finding.key].append(finding)

            repaired: list[ReconciliationFinding] = []
            skipped: list[ReconciliationFinding] = []
            errors: list[str] = []
            for key, findings in by_key.items():
                with self._locks.hold(key):
                    self._repair_space(key, findings, repaired, skipped, errors)

            flagged_ids, resolved_ids = self._sync_issues(report.flagged, owners, owner_id)

            result = SweepResult(
                report=report,
                repaired=tuple(repaired),
                skipped=tuple(skipped),
                flagged_issue_ids=tuple(flagged_ids),
                resolved_issue_ids=tuple(resolved_ids),
                errors=tuple(errors),
            )
            logger.info(
                "reconciliation_sweep_completed",
                extra={
                    "repaired_count": len(repaired),
                    "skipped_count": len(skipped),
                    "flagged_count": len(flagged_ids),
                    "resolved_count": len(resolved_ids),
                    "error_count": len(errors),
                },
            )
            return result

    def _repair_space(
        self,
        key: OccupancyKey,
        findings: list[ReconciliationFinding],
        repaired: list[ReconciliationFinding],
        skipped: list[ReconciliationFinding],
        errors: list[str],
    ) -> None:
        expected = findings[0].observed_version
        for index, finding in enumerate(findings):
            try:
                expected = self._apply(finding, expected)
            except _RepairSkipped as exc:
                # Later repairs on this space were decided on the same premise
                skipped.extend(findings[index:])
                logger.info(
                    "reconciliation_repair_skipped",
                    extra={"finding": finding.describe(), "reason": str(exc)},
                )
                return
            except (SQLAlchemyError, TenancyKernelError) as exc:
                errors.append(f"{finding.describe()}: {exc}")
                logger.exception(
                    "reconciliation_repair_failed",
                    extra={"finding": finding.describe()},
                )
                return
            repaired.append(finding)
            logger.warning(
                "reconciliation_repair_applied",
                extra={
                    "kind": finding.kind.value,
                    "repair": finding.repair.value,
                    "space": str(key),
                    "lease_id": str(finding.lease_id) if finding.lease_id else None,
                },
            )

    def _apply(self, finding: ReconciliationFinding, expected_version: int | None) -> int:
        """Apply one repair in its own transaction; returns the record version after it."""
        with transaction_scope(self._session_factory) as session:
            store = OccupancyStore(session, self._clock)
            record = store.load_record(finding.key, for_update=True)
            if expected_version is not None and record.version != expected_version:
                raise _RepairSkipped(
                    f"occupancy version {record.version} != observed {expected_version}"
                )

            if finding.repair == RepairAction.RELEASE_OCCUPANCY:
                record.release()

            elif finding.repair == RepairAction.CLAIM_OCCUPANCY:
                lease = self._active_lease(session, finding)
                if not record.is_vacant:
                    record.release()
                record.claim(lease.tenant_id, lease.start_date, lease.end_date)

            elif finding.repair == RepairAction.COPY_LEASE_WINDOW:
                lease = self._active_lease(session, finding)
                self._require_holder(record, lease.tenant_id)
                record.set_lease_window(lease.start_date, lease.end_date)

            elif finding.repair == RepairAction.TERMINATE_LEASE:
                ledger = LeaseLedger(session, self._clock)
                tenant = ledger.load_tenant(finding.tenant_id, require_active=False, for_update=True)
                closed = ledger.close_lease(
                    tenant,
                    finding.lease_id,
                    LeaseStatus.TERMINATED,
                    TerminationCode.RECONCILIATION,
                    None,
                    reason=finding.detail,
                )
                if closed is None:
                    raise _RepairSkipped(f"lease {finding.lease_id} is no longer active")
                self._projector.project_onto(tenant)

            session.flush()
            return record.version

    @staticmethod
    def _active_lease(session: Session, finding: ReconciliationFinding):
        tenant = LeaseLedger(session).load_tenant(finding.tenant_id, require_active=False)
        lease = tenant.find_lease(finding.lease_id)
        if lease is None or not lease.is_active:
            raise _RepairSkipped(f"lease {finding.lease_id} is no longer active")
        return lease

    @staticmethod
    def _require_holder(record: OccupancyRecord, tenant_id: UUID) -> None:
        if not record.is_held_by(tenant_id):
            raise _RepairSkipped(f"space is no longer held by tenant {tenant_id}")

    # -----------------------------------------------------------------
    # Issues
    # -----------------------------------------------------------------

    def _sync_issues(
        self,
        flagged: tuple[ReconciliationFinding, ...],
        owners: dict[UUID, UUID],
        owner_id: UUID | None,
    ) -> tuple[list[UUID], list[UUID]]:
        now = self._clock.now()
        with transaction_scope(self._session_factory) as session:
            stmt = select(ConsistencyIssue).where(
                ConsistencyIssue.status == IssueStatus.OPEN.value
            )
            if owner_id is not None:
                stmt = stmt.where(ConsistencyIssue.owner_id == owner_id)
            open_issues = {issue.issue_key: issue for issue in session.execute(stmt).scalars()}

            flagged_ids: list[UUID] = []
            seen: set[str] = set()
            for finding in flagged:
                key_str = issue_key(
                    finding.kind.value,
                    finding.key.property_id,
                    finding.key.unit_id,
                    finding.lease_id,
                )
                if key_str in seen:
                    continue
                seen.add(key_str)
                issue = open_issues.get(key_str)
                if issue is None:
                    issue = ConsistencyIssue(
                        kind=finding.kind.value,
                        issue_key=key_str,
                        owner_id=owners.get(finding.key.property_id, owner_id),
                        property_id=finding.key.property_id,
                        unit_id=finding.key.unit_id,
                        tenant_id=finding.tenant_id,
                        lease_id=finding.lease_id,
                        detail=finding.detail,
                        status=IssueStatus.OPEN,
                        detected_at=now,
                    )
                    session.add(issue)
                    session.flush()
                    logger.warning(
                        "consistency_issue_flagged",
                        extra={"issue_id": str(issue.id), "finding": finding.describe()},
                    )
                flagged_ids.append(issue.id)

            resolved_ids: list[UUID] = []
            for key_str, issue in open_issues.items():
                if key_str in seen:
                    continue
                issue.resolve(now)
                resolved_ids.append(issue.id)
                logger.info("consistency_issue_resolved", extra={"issue_id": str(issue.id)})
            session.flush()
        return flagged_ids, resolved_ids
