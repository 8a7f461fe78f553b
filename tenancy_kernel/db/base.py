"""
Module: tenancy_kernel.db.base
Responsibility: the declarative base every tenancy table derives from, the
    portable column types it maps Python annotations onto, and the audit
    columns shared by the aggregate tables.
Architecture position: Kernel > DB.  Imported by every model; imports
    nothing from the kernel itself.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as text so the same schema
      runs on SQLite and PostgreSQL.
    - Money columns are Numeric(14, 2); rents, deposits and incomes are
      never floats.
    - Datetimes are stored in UTC and always read back timezone-aware.
      Writing a naive datetime is an error, not a silent local-time guess.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(14, 2)


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, PyUUID):
            return value
        return PyUUID(str(value))


class UTCDateTime(TypeDecorator):
    """
    Aware datetime, normalised to UTC.

    SQLite drops the offset on storage, so values come back naive and are
    re-tagged as UTC on read.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        datetime: UTCDateTime(),
        Decimal: MONEY,
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base for rows an actor creates and edits.

    ``created_at``/``updated_at`` come from the database clock;
    ``created_by_id`` is mandatory, ``updated_by_id`` is set by whichever
    service last wrote the row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )
    created_by_id: Mapped[PyUUID]
    updated_by_id: Mapped[PyUUID | None]


UUID = PyUUID
