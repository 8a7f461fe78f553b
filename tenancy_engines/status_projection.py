"""
Module: tenancy_engines.status_projection
Responsibility:
    Derive a tenant's externally visible application status from the
    current qualification verdict, honouring a manual override.

Architecture position:
    Engines -- pure, zero I/O.  The persistence shell lives in
    ``tenancy_services.status_projector``.

Invariants enforced:
    - A MANUAL status is never replaced by a derived one.
    - Idempotent: projecting the same verdict twice yields the same state.
    - Recorded audit fields (rejection_reason, approval_date, review_date)
      are only ever filled in, never cleared.
    - A DERIVED state always carries the status its verdict maps to.  A
      status only an override can set (withdrawn, expired, waitlisted) is
      replaced by the mapped one once the override has been cleared.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from tenancy_kernel.domain.statuses import (
    APPLICATION_TRANSITIONS,
    DERIVABLE_STATUSES,
    VERDICT_TO_APPLICATION_STATUS,
    ApplicationStatus,
    QualificationVerdict,
    StatusSource,
    require_transition,
)
from tenancy_kernel.logging_config import get_logger
from tenancy_engines.tracer import traced_engine

logger = get_logger("engines.status_projection")


@dataclass(frozen=True)
class ApplicationState:
    """The application-status slice of a tenant."""

    status: ApplicationStatus
    source: StatusSource = StatusSource.DERIVED
    review_date: datetime | None = None
    approval_date: datetime | None = None
    rejection_reason: str | None = None


@dataclass(frozen=True)
class ProjectionResult:
    state: ApplicationState
    changed: bool


def derived_status(verdict: QualificationVerdict) -> ApplicationStatus:
    return VERDICT_TO_APPLICATION_STATUS[QualificationVerdict(verdict)]


@traced_engine("status_projection", "1.0", fingerprint_fields=("current", "verdict"))
def project(
    current: ApplicationState,
    verdict: QualificationVerdict,
    issues: tuple[str, ...],
    now: datetime,
) -> ProjectionResult:
    """Project ``verdict`` onto ``current``; ``now`` stamps newly set dates."""
    if StatusSource(current.source) == StatusSource.MANUAL:
        return ProjectionResult(current, changed=False)

    status = ApplicationStatus(current.status)
    target = derived_status(verdict)

    if status not in DERIVABLE_STATUSES:
        # Left behind by a cleared override
        logger.info(
            "closed_status_rederived",
            extra={"from_status": status.value, "to_status": target.value},
        )

    new_state = replace(current, status=target)
    if target == ApplicationStatus.UNDER_REVIEW and new_state.review_date is None:
        new_state = replace(new_state, review_date=now)
    elif target == ApplicationStatus.APPROVED and new_state.approval_date is None:
        new_state = replace(new_state, approval_date=now)
    elif target == ApplicationStatus.REJECTED and not new_state.rejection_reason:
        new_state = replace(new_state, rejection_reason="; ".join(issues) or None)

    return ProjectionResult(new_state, changed=new_state != current)


def apply_override(
    current: ApplicationState,
    status: ApplicationStatus,
    now: datetime,
    reason: str | None = None,
) -> ApplicationState:
    """
    Manual status set by an authorized person.

    Raises:
        InvalidStatusTransitionError: if the table forbids the move.
    """
    current_status = ApplicationStatus(current.status)
    target = ApplicationStatus(status)
    if target != current_status:
        require_transition("ApplicationStatus", APPLICATION_TRANSITIONS, current_status, target)

    new_state = replace(current, status=target, source=StatusSource.MANUAL)
    if target == ApplicationStatus.APPROVED and new_state.approval_date is None:
        new_state = replace(new_state, approval_date=now)
    if target == ApplicationStatus.REJECTED and reason:
        new_state = replace(new_state, rejection_reason=reason)
    if target == ApplicationStatus.UNDER_REVIEW and new_state.review_date is None:
        new_state = replace(new_state, review_date=now)
    return new_state


def clear_override(current: ApplicationState) -> ApplicationState:
    """Hand the status back to derivation; the next projection recomputes it."""
    return replace(current, source=StatusSource.DERIVED)
