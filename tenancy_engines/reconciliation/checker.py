"""
OccupancyReconciliationChecker -- Pure engine comparing the lease ledger with
the occupancy store.

Architecture: tenancy_engines -- pure evaluation, zero I/O, zero DB access.
All inputs are frozen snapshots populated by the service layer.

Repair policy:
    - The lease ledger decides whether there is a tenant: occupancy that no
      active lease backs is released; a half-set record is normalised from
      its single lease, or released when it has none.
    - The occupancy record decides whether the space is available: a lease
      whose space is held by another leased tenant is terminated; a lease on
      a vacant claimable space claims it; anything on a maintenance,
      off-market or missing space is flagged.
    - Duplicates keep the lease the occupancy points at.  With no such lease
      they are flagged.
    - A held space whose dates differ from its lease gets the lease dates.

Findings for one space are emitted in the order the repairs must be applied.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from tenancy_kernel.domain.dtos import OccupancyKey
from tenancy_kernel.logging_config import get_logger
from tenancy_engines.tracer import traced_engine

from tenancy_engines.reconciliation.types import (
    FindingKind,
    LeaseSnapshot,
    OccupancySnapshot,
    ReconciliationFinding,
    ReconciliationReport,
    RepairAction,
)

logger = get_logger("engines.reconciliation.checker")


def _key_order(key: OccupancyKey) -> tuple[str, str]:
    return (str(key.property_id), str(key.unit_id or ""))


def _lease_order(lease: LeaseSnapshot) -> tuple:
    return (lease.start_date, str(lease.lease_id))


class OccupancyReconciliationChecker:
    """Pure engine for lease/occupancy reconciliation.

    Usage:
        checker = OccupancyReconciliationChecker()
        report = checker.check(leases=lease_snapshots, occupancies=occupancy_snapshots)
        for finding in report.findings:
            ...
    """

    @traced_engine("occupancy_reconciliation", "1.0", fingerprint_fields=("leases", "occupancies"))
    def check(
        self,
        leases: Sequence[LeaseSnapshot],
        occupancies: Sequence[OccupancySnapshot],
    ) -> ReconciliationReport:
        """Compare active leases with occupancy records.

        Args:
            leases: every ACTIVE lease in scope.
            occupancies: every occupancy record in scope.
        """
        leases_by_key: dict[OccupancyKey, list[LeaseSnapshot]] = defaultdict(list)
        for lease in leases:
            leases_by_key[lease.key].append(lease)
        records = {record.key: record for record in occupancies}

        findings: list[ReconciliationFinding] = []

        for key in sorted(records, key=_key_order):
            key_leases = sorted(leases_by_key.get(key, ()), key=_lease_order)
            findings.extend(self._check_space(records[key], key_leases))

        for key in sorted(set(leases_by_key) - set(records), key=_key_order):
            for lease in sorted(leases_by_key[key], key=_lease_order):
                findings.append(ReconciliationFinding(
                    kind=FindingKind.ORPHANED_LEASE,
                    key=key,
                    repair=RepairAction.FLAG,
                    detail="active lease references a space that does not exist",
                    tenant_id=lease.tenant_id,
                    lease_id=lease.lease_id,
                ))

        if findings:
            logger.info(
                "reconciliation_findings",
                extra={
                    "finding_count": len(findings),
                    "flagged_count": sum(1 for f in findings if f.is_flagged),
                },
            )

        return ReconciliationReport(
            findings=tuple(findings),
            leases_checked=len(leases),
            spaces_checked=len(records),
        )

    # -----------------------------------------------------------------
    # Per-space analysis
    # -----------------------------------------------------------------

    def _check_space(
        self,
        record: OccupancySnapshot,
        leases: list[LeaseSnapshot],
    ) -> list[ReconciliationFinding]:
        if record.is_half_set:
            return [self._half_set(record, leases)]

        holder = record.holder
        if holder is None:
            return self._vacant(record, leases)
        return self._held(record, holder, leases)

    def _half_set(
        self,
        record: OccupancySnapshot,
        leases: list[LeaseSnapshot],
    ) -> ReconciliationFinding:
        detail = (
            f"is_occupied={record.is_occupied} but tenant_id={record.tenant_id}"
        )
        if not leases:
            return self._finding(
                FindingKind.HALF_SET_OCCUPANCY, record, RepairAction.RELEASE_OCCUPANCY,
                f"{detail}; no active lease",
                tenant_id=record.tenant_id,
            )
        if len(leases) == 1 and record.is_claimable:
            lease = leases[0]
            return self._finding(
                FindingKind.HALF_SET_OCCUPANCY, record, RepairAction.CLAIM_OCCUPANCY,
                f"{detail}; normalised from lease {lease.lease_id}",
                tenant_id=lease.tenant_id, lease_id=lease.lease_id,
            )
        return self._finding(
            FindingKind.HALF_SET_OCCUPANCY, record, RepairAction.FLAG,
            f"{detail}; {len(leases)} active lease(s), status {record.status}",
            tenant_id=record.tenant_id,
        )

    def _vacant(
        self,
        record: OccupancySnapshot,
        leases: list[LeaseSnapshot],
    ) -> list[ReconciliationFinding]:
        if not leases:
            return []
        if len(leases) > 1:
            return [
                self._finding(
                    FindingKind.DUPLICATE_ACTIVE_LEASE, record, RepairAction.FLAG,
                    f"{len(leases)} active leases on a vacant space",
                    tenant_id=lease.tenant_id, lease_id=lease.lease_id,
                )
                for lease in leases
            ]
        return [self._orphan_on_vacant(record, leases[0])]

    def _orphan_on_vacant(
        self,
        record: OccupancySnapshot,
        lease: LeaseSnapshot,
    ) -> ReconciliationFinding:
        if record.is_claimable:
            return self._finding(
                FindingKind.ORPHANED_LEASE, record, RepairAction.CLAIM_OCCUPANCY,
                "active lease on a vacant space; claiming it",
                tenant_id=lease.tenant_id, lease_id=lease.lease_id,
            )
        return self._finding(
            FindingKind.ORPHANED_LEASE, record, RepairAction.FLAG,
            f"active lease on a vacant space with status {record.status}",
            tenant_id=lease.tenant_id, lease_id=lease.lease_id,
        )

    def _held(
        self,
        record: OccupancySnapshot,
        holder,
        leases: list[LeaseSnapshot],
    ) -> list[ReconciliationFinding]:
        matching = [lease for lease in leases if lease.tenant_id == holder]
        others = [lease for lease in leases if lease.tenant_id != holder]

        if not matching:
            findings = [self._finding(
                FindingKind.GHOST_OCCUPANCY, record, RepairAction.RELEASE_OCCUPANCY,
                f"occupied by tenant {holder} without an active lease",
                tenant_id=holder,
            )]
            if len(others) == 1:
                # Released above, so the space is vacant and available
                findings.append(self._finding(
                    FindingKind.ORPHANED_LEASE, record, RepairAction.CLAIM_OCCUPANCY,
                    "active lease on a space held by a tenant without a lease; claiming it",
                    tenant_id=others[0].tenant_id, lease_id=others[0].lease_id,
                ))
            elif others:
                findings.extend(
                    self._finding(
                        FindingKind.DUPLICATE_ACTIVE_LEASE, record, RepairAction.FLAG,
                        f"{len(others)} active leases, occupancy points at none",
                        tenant_id=lease.tenant_id, lease_id=lease.lease_id,
                    )
                    for lease in others
                )
            return findings

        keep = self._pick_kept(record, matching)
        findings = []
        for lease in matching:
            if lease.lease_id == keep.lease_id:
                continue
            findings.append(self._finding(
                FindingKind.DUPLICATE_ACTIVE_LEASE, record, RepairAction.TERMINATE_LEASE,
                f"duplicate active lease; keeping {keep.lease_id}",
                tenant_id=lease.tenant_id, lease_id=lease.lease_id,
            ))
        for lease in others:
            findings.append(self._finding(
                FindingKind.ORPHANED_LEASE, record, RepairAction.TERMINATE_LEASE,
                f"space is held by tenant {holder}",
                tenant_id=lease.tenant_id, lease_id=lease.lease_id,
            ))

        if record.lease_start != keep.start_date or record.lease_end != keep.end_date:
            findings.append(self._finding(
                FindingKind.STALE_LEASE_WINDOW, record, RepairAction.COPY_LEASE_WINDOW,
                (
                    f"occupancy window {record.lease_start} -> {record.lease_end} "
                    f"differs from lease {keep.start_date} -> {keep.end_date}"
                ),
                tenant_id=keep.tenant_id, lease_id=keep.lease_id,
            ))
        return findings

    @staticmethod
    def _pick_kept(record: OccupancySnapshot, matching: list[LeaseSnapshot]) -> LeaseSnapshot:
        for lease in matching:
            if lease.start_date == record.lease_start and lease.end_date == record.lease_end:
                return lease
        return matching[0]

    @staticmethod
    def _finding(
        kind: FindingKind,
        record: OccupancySnapshot,
        repair: RepairAction,
        detail: str,
        tenant_id=None,
        lease_id=None,
    ) -> ReconciliationFinding:
        return ReconciliationFinding(
            kind=kind,
            key=record.key,
            repair=repair,
            detail=detail,
            tenant_id=tenant_id,
            lease_id=lease_id,
            observed_version=record.version,
        )
