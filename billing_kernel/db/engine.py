"""
Module: billing_kernel.db.engine
Responsibility: Process-wide engine and session factory for the scheduler,
    plus the per-operation transactional scope every service writes through.
Architecture position: Kernel > DB.  Imports db/base.py and logging only.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED behind a pre-pinged QueuePool, so a
      scheduler pass always sees config rows committed by other writers.
    - SQLite URLs (local runs, tests) get a single shared connection so the
      scheduler thread and its generation workers see the same database.
    - One transaction per ``session_scope``; nothing spans a pass.

Failure modes:
    - RuntimeError from get_engine/get_session_factory before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from billing_kernel.db.base import Base
from billing_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _engine_options(database_url: str, pool_size: int, max_overflow: int) -> dict:
    if make_url(database_url).get_backend_name() == "sqlite":
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 5,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    Calling again replaces (and disposes) the previous engine.

    Args:
        database_url: SQLAlchemy URL, e.g. ``postgresql://billing@db/billing``.
        echo: Log every SQL statement.
        pool_size: QueuePool size (ignored for SQLite).
        max_overflow: QueuePool overflow (ignored for SQLite).
    """
    global _engine, _session_factory

    reset_engine()
    _engine = create_engine(
        database_url,
        echo=echo,
        **_engine_options(database_url, pool_size, max_overflow),
    )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool": type(_engine.pool).__name__,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Return the session factory.

    Services take the factory rather than a session: the scheduler thread
    and each generation worker open their own short-lived sessions.
    """
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


@contextmanager
def session_scope(
    session_factory: Callable[[], Session] | None = None,
) -> Iterator[Session]:
    """
    Run one unit of work: commit on success, roll back and re-raise on error.

    Usage:
        with session_scope(factory) as session:
            session.add(log_entry)
    """
    factory = session_factory if session_factory is not None else get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> list[str]:
    """
    Create every table registered on ``Base.metadata`` that does not exist yet.

    Callers import their models packages first; the kernel only knows its
    own tables.  Returns the sorted table names.
    """
    import billing_kernel.models  # noqa: F401

    target = engine if engine is not None else get_engine()
    Base.metadata.create_all(target)
    tables = sorted(Base.metadata.tables)
    logger.info("tables_created", extra={"tables": tables})
    return tables


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def _dispose_at_exit() -> None:
    if _engine is not None:
        try:
            _engine.dispose()
        except SQLAlchemyError:
            logger.warning("engine_dispose_failed", exc_info=True)


atexit.register(_dispose_at_exit)
