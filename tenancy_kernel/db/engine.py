"""
Module: tenancy_kernel.db.engine
Responsibility: build engines and session factories, and provide the
    transaction scope every aggregate write runs in.
Architecture position: Kernel > DB.  May import from db/base.py and, for
    table creation only, tenancy_kernel.models.

Invariants enforced:
    - One transaction per aggregate write.  The coordinator never spans the
      Tenant and Property aggregates with one transaction; each saga step
      opens its own transaction_scope() and commits before the next starts.
    - PostgreSQL (production): QueuePool, READ COMMITTED, and occupancy rows
      read with SELECT ... FOR UPDATE.
    - SQLite (local runs, tests): FOR UPDATE is ignored, so the version
      columns alone decide a race.  File databases may be shared by worker
      threads; an in-memory database is pinned to a single connection.

Failure modes:
    - RuntimeError from get_session_factory() before init_engine_from_url().
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from tenancy_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_in_memory(url: URL) -> bool:
    return not url.database or url.database == ":memory:"


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create an Engine for ``database_url`` without touching module state."""
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": pool_timeout},
            **({"poolclass": StaticPool} if _is_in_memory(url) else {}),
        )
        event.listen(engine, "connect", _sqlite_pragmas)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Factory bound to ``engine``; loaded objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Install the process-wide engine and session factory.

    A second call disposes the previous engine first.
    """
    global _engine, _session_factory

    reset_engine()
    _engine = build_engine(database_url, echo=echo, **pool_options)
    _session_factory = build_session_factory(_engine)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "row_locks": _engine.dialect.name == "postgresql",
        },
    )
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The process-wide session factory handed to the services.

    Raises:
        RuntimeError: init_engine_from_url() has not run.
    """
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def reset_engine() -> None:
    """Dispose the process-wide engine, if any."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)


@contextmanager
def transaction_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    One database transaction.

    Commits on normal exit; rolls back and re-raises on any exception.  The
    session is closed either way.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every kernel table on ``engine`` (default: the process-wide one)."""
    from tenancy_kernel.db.base import Base
    import tenancy_kernel.models  # noqa: F401  registers every table

    target = engine if engine is not None else _engine
    if target is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    Base.metadata.create_all(target)
