"""
Module: asset_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory
    management, and the transactional ``session_scope()`` helper.  Single
    point of database connection configuration.
Architecture position: Kernel > DB.  create_tables() reaches outward to the
    ORM registry so that every module's tables are known to Base.metadata.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) where stronger isolation is needed.
    - SQLite engines get the pysqlite BEGIN/SAVEPOINT hooks so nested
      transactions behave as on PostgreSQL.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from asset_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Make pysqlite honour SAVEPOINT / ROLLBACK TO.

    pysqlite defers BEGIN until the first DML statement, which breaks
    ``Session.begin_nested()``.  Disabling the driver's own transaction
    handling and emitting BEGIN from SQLAlchemy restores the expected
    behaviour.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Create an engine for PostgreSQL or SQLite with the right options."""
    if database_url.startswith("sqlite"):
        options = {"echo": echo}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            # One shared connection, otherwise every checkout sees an empty database
            options.update(
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return enable_sqlite_savepoints(create_engine(database_url, **options))

    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_options.get("pool_size", 10),
        max_overflow=pool_options.get("max_overflow", 5),
        pool_pre_ping=True,
        pool_recycle=pool_options.get("pool_recycle", 1800),
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Postconditions: get_engine()/get_session() use this engine until
        reset_engine() is called.  A second call replaces the first.
    """
    global _engine, _SessionFactory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: Commits and closes on normal exit.  On exception the
        session is rolled back, closed, and the exception re-raised.
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create every table known to the ORM registry.

    Preconditions: engine given, or init_engine_from_url() already called.
    """
    from asset_kernel.db.base import Base
    from asset_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Primarily for tests."""
    from asset_kernel.db.base import Base

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None
