"""
Database Package

SQLAlchemy engine/session management and ORM tables for the record store.
"""

from .database import (
    Base,
    call_timeout,
    create_store_engine,
    create_session_factory,
    configure_database,
    get_engine,
    init_db,
    reset_db,
    session_scope,
    translate_store_error,
)

__all__ = [
    "Base",
    "call_timeout",
    "create_store_engine",
    "create_session_factory",
    "configure_database",
    "get_engine",
    "init_db",
    "reset_db",
    "session_scope",
    "translate_store_error",
]
