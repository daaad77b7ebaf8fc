"""
Database connection setup for the SQL-backed purchase order repository.

One engine and one session factory per process, created by
``init_engine_from_url``.  SQLite is used for local runs and the test suite;
PostgreSQL (via the ``postgres`` extra) for deployments.

SQLite specifics:
    - ``:memory:`` databases share a single connection (``StaticPool``) so
      every session sees the schema created by ``create_tables``.
    - ``PRAGMA foreign_keys=ON`` is issued on each new connection so line
      and receipt rows cannot outlive their order.

Calling any accessor before ``init_engine_from_url`` raises ``RuntimeError``.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from purchasing_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    url = make_url(database_url)
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    engine = create_engine(database_url, echo=echo, **options)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    Pool settings apply to server databases only.  Sessions keep loaded
    attributes after commit (``expire_on_commit=False``) so repositories can
    hand committed rows straight to the domain mapping.
    """
    global _engine, _SessionFactory

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        _engine = _sqlite_engine(database_url, echo)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": backend, "echo": echo})
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _engine


def get_session() -> Session:
    """Open a new session on the configured engine."""
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """The factory itself, for callers that open one session per worker."""
    return _require_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on success, roll back and re-raise on error, always close.

        with session_scope() as session:
            SqlPurchaseOrderRepository(session).save(order)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the purchase order and document sequence tables."""
    from purchasing_kernel.db.base import Base
    import purchasing_kernel.services.sequence_service  # noqa: F401
    import purchasing_modules.purchase_order.orm  # noqa: F401

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every table.  Test teardown only."""
    from purchasing_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
