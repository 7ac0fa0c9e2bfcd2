"""
Database Configuration and Session Management

This module provides the SQLAlchemy engine and session factory for the
violation/challan record store, plus the transaction scope every core
operation runs in.

Store connectivity failures are translated here, and only here, into the
retryable Unavailable / StoreTimeout errors. The engine carries a default
timeout; call_timeout() narrows it for the store calls of one caller.
"""

import logging
import math
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from enforcement.errors import StoreError, StoreTimeout, Unavailable, ValidationError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent.parent / "data"

DEFAULT_DATABASE_URL = f"sqlite:///{DATA_DIR}/enforcement.db"

# Base class for ORM models
Base = declarative_base()

_engine: Optional[Engine] = None


def create_store_engine(database_url: Optional[str] = None, timeout: float = 5.0) -> Engine:
    """
    Create an engine whose every call carries the given timeout

    SQLite gets a busy timeout; PostgreSQL a connect and statement timeout.

    Args:
        database_url: SQLAlchemy URL (default: SQLite file under backend/data)
        timeout: Seconds before a store call fails with StoreTimeout
    """
    url = make_url(database_url or DEFAULT_DATABASE_URL)
    backend = url.get_backend_name()

    connect_args = {}
    if backend == "sqlite":
        connect_args = {"check_same_thread": False, "timeout": timeout}
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    elif backend == "postgresql":
        connect_args = {
            "connect_timeout": max(1, math.ceil(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }

    return create_engine(
        url,
        connect_args=connect_args,
        pool_timeout=timeout if backend != "sqlite" else 30,
        echo=False,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine):
    """
    Initialize database - create all tables

    Called on application startup to ensure all tables exist.
    """
    from enforcement.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized at %s", engine.url.render_as_string(hide_password=True))


def reset_db(engine: Engine):
    """
    Reset database - drop and recreate all tables

    WARNING: This will delete all data!
    """
    from enforcement.database import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.warning("Database reset complete - all data deleted")


def configure_database(database_url: Optional[str] = None, timeout: float = 5.0) -> sessionmaker:
    """Create the global engine and session factory and ensure tables exist"""
    global _engine
    _engine = create_store_engine(database_url, timeout)
    init_db(_engine)
    return create_session_factory(_engine)


def get_engine() -> Optional[Engine]:
    return _engine


def translate_store_error(exc: Exception) -> StoreError:
    """Map a driver/pool failure onto the retryable store error kinds"""
    reason = str(getattr(exc, "orig", None) or exc)
    lowered = reason.lower()

    if (
        isinstance(exc, sa_exc.TimeoutError)
        or "locked" in lowered
        or "timeout" in lowered
        or "timed out" in lowered
    ):
        return StoreTimeout("Record store did not respond in time", {"reason": reason})

    return Unavailable("Record store is unavailable", {"reason": reason})


# Seconds for store calls made in the current context; None keeps the engine's
_call_timeout: ContextVar[Optional[float]] = ContextVar("store_call_timeout", default=None)


@contextmanager
def call_timeout(seconds: float) -> Iterator[None]:
    """
    Give every store call made inside the block its own timeout

    Overrides the engine-wide timeout for the current thread or task only:

        with call_timeout(0.5):
            workflow.dashboard_stats()
    """
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds <= 0:
        raise ValidationError("Store timeout must be a positive number of seconds", {"timeout": seconds})

    token = _call_timeout.set(float(seconds))
    try:
        yield
    finally:
        _call_timeout.reset(token)


def _apply_call_timeout(session: Session, timeout: float) -> Optional[int]:
    """
    Set the timeout on the session's connection

    Returns the SQLite busy timeout to restore afterwards. PostgreSQL's
    SET LOCAL ends with the transaction by itself.
    """
    millis = max(1, int(timeout * 1000))
    dialect = session.get_bind().dialect.name

    if dialect == "sqlite":
        previous = session.execute(text("PRAGMA busy_timeout")).scalar()
        session.execute(text(f"PRAGMA busy_timeout = {millis}"))
        return previous
    if dialect == "postgresql":
        session.execute(text(f"SET LOCAL statement_timeout = {millis}"))
    return None


def _restore_busy_timeout(session: Session, previous: int):
    try:
        session.execute(text(f"PRAGMA busy_timeout = {int(previous)}"))
    except sa_exc.SQLAlchemyError as e:
        # Pooled connections must not keep a per-call timeout
        logger.warning("Could not restore busy timeout, discarding connection: %s", e)
        session.invalidate()


@contextmanager
def session_scope(session_factory: sessionmaker, timeout: Optional[float] = None) -> Iterator[Session]:
    """
    Provide a transactional scope around a unit of work

    Commits on success, rolls back on any failure. Nothing is partially
    written when the caller abandons the work or an error is raised.

    Args:
        session_factory: Factory bound to the record store
        timeout: Seconds for this unit of work (default: the enclosing
            call_timeout block, else the engine's timeout)
    """
    if timeout is None:
        timeout = _call_timeout.get()

    session = session_factory()
    restore = None
    try:
        if timeout is not None:
            restore = _apply_call_timeout(session, timeout)
        yield session
        session.commit()
    except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError) as e:
        session.rollback()
        error = translate_store_error(e)
        logger.error("Store failure (%s): %s", error.code, error.details.get("reason"))
        raise error from e
    except BaseException:
        session.rollback()
        raise
    finally:
        if restore is not None:
            _restore_busy_timeout(session, restore)
        session.close()
