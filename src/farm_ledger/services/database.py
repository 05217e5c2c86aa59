"""
Database connection and session management for Farm Ledger.

Two databases are managed here:
- The ledger store, shared by every device, holding batches, inventory and
  all ledger records (models derived from Base)
- The local outbox, private to the device, holding operations queued while
  offline (models derived from LocalBase)

This module provides:
- Engine creation and configuration for both
- Session factories and transactional scopes
- Table creation
- SQLite pragmas (foreign keys, WAL)
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..models.base import Base, LocalBase
from ..utils.config import get_config

logger = logging.getLogger(__name__)

# Global engines and session factories
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None
_outbox_engine: Optional[Engine] = None
_OutboxSessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints and WAL mode. Connections to other
    databases are left untouched.
    """
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure a database engine.

    Args:
        database_url: Optional database URL. If None, uses the ledger URL from config.
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        Configured SQLAlchemy Engine
    """
    if database_url is None:
        database_url = get_config().database_url

    logger.info(f"Creating database engine: {database_url}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        # In-memory databases (testing) must share one connection
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    # Remote ledger servers: detect dropped connections before use
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create all ledger store tables that don't exist yet.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing ledger database tables")
    Base.metadata.create_all(engine)
    logger.info("Ledger database tables initialized successfully")


def init_outbox_database(engine: Optional[Engine] = None) -> None:
    """
    Create the local outbox tables that don't exist yet.

    Args:
        engine: Optional engine to use. If None, uses global outbox engine.
    """
    if engine is None:
        engine = get_outbox_engine()

    logger.info("Initializing outbox database tables")
    LocalBase.metadata.create_all(engine)


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global ledger store engine.

    Args:
        force_recreate: If True, recreate the engine even if one exists

    Returns:
        Database engine
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_outbox_engine(force_recreate: bool = False) -> Engine:
    """Get the global local outbox engine."""
    global _outbox_engine

    if _outbox_engine is None or force_recreate:
        _outbox_engine = create_database_engine(get_config().outbox_database_url)

    return _outbox_engine


def get_session_factory() -> sessionmaker:
    """
    Get the global ledger session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _SessionFactory


def get_outbox_session_factory() -> sessionmaker:
    """Get the global local outbox session factory."""
    global _OutboxSessionFactory

    if _OutboxSessionFactory is None:
        _OutboxSessionFactory = sessionmaker(bind=get_outbox_engine(), expire_on_commit=False)

    return _OutboxSessionFactory


def get_session() -> Session:
    """
    Create a new ledger store session.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope against the ledger store.

    - Creates a new session
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Yields:
        Database session

    Example:
        with session_scope() as session:
            batch = Batch(name="Lote 12", initial_population=500, ...)
            session.add(batch)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def outbox_session_scope():
    """
    Provide a transactional scope against the local outbox database.

    Same lifecycle as session_scope().
    """
    session = get_outbox_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_database(confirm: bool = False) -> None:
    """
    Drop all ledger tables and recreate them.

    WARNING: This will delete all data!

    Args:
        confirm: Must be True to actually reset. Safety check.

    Raises:
        ValueError: If confirm is not True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("RESETTING DATABASE - ALL DATA WILL BE LOST")

    engine = get_engine()
    Base.metadata.drop_all(engine)
    logger.info("All tables dropped")
    Base.metadata.create_all(engine)
    logger.info("Tables recreated")


def close_connections() -> None:
    """
    Close all database connections.

    Useful for cleanup or before application exit.
    """
    global _engine, _SessionFactory, _outbox_engine, _OutboxSessionFactory

    _SessionFactory = None
    _OutboxSessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    if _outbox_engine is not None:
        _outbox_engine.dispose()
        _outbox_engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Initialize the ledger and outbox databases.

    This is the main entry point for setting up storage when the app starts.
    """
    config = get_config()

    if not config.database_exists():
        logger.info(f"Creating new database at: {config.database_url}")
    else:
        logger.info(f"Using existing database at: {config.database_url}")

    init_database(get_engine())
    init_outbox_database(get_outbox_engine())
