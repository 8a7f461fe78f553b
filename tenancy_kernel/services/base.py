"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every service in
    the kernel layer.  Kernel services receive a SQLAlchemy ``Session`` and
    use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  The orchestrating
    services in ``tenancy_services`` own transaction boundaries and hand a
    session to these services, one transaction per aggregate write.

Failure modes:
    - If a subclass calls ``session.commit()`` the coordinator's one
      transaction per aggregate step is broken.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from tenancy_kernel.db.base import Base
from tenancy_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``; the caller controls transaction boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
