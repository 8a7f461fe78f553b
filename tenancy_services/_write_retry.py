"""
Bounded retry for single-aggregate writes.

A write that loses an optimistic version race raises StaleDataError at
flush/commit.  The whole unit of work (load, mutate, commit) is re-run in a
fresh transaction up to ``max_attempts`` times before the conflict surfaces
as OptimisticLockError.  Business-rule errors are never retried.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.exceptions import OptimisticLockError
from tenancy_kernel.logging_config import get_logger

logger = get_logger("services.write_retry")

T = TypeVar("T")


def run_with_retry(
    session_factory: sessionmaker[Session],
    work: Callable[[Session], T],
    *,
    entity_type: str,
    entity_id: UUID | str,
    max_attempts: int,
) -> T:
    """
    Run ``work(session)`` in its own transaction, retrying on StaleDataError.

    Raises:
        OptimisticLockError: every attempt lost a version race.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            with transaction_scope(session_factory) as session:
                return work(session)
        except StaleDataError:
            logger.warning(
                "optimistic_write_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                },
            )
    raise OptimisticLockError(entity_type, entity_id)
