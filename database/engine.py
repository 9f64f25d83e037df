"""
Database Persistence Layer - Core Engine.

============================================================
TRAFFIC STORE PERSISTENCE
============================================================

Engine and session management for the relational store.

Requirements:
- SQLAlchemy ORM with PostgreSQL (SQLite for local runs/tests)
- Repositories commit each write on their own session
- Hard failures on startup persistence errors

============================================================
"""

import logging
from typing import Optional

from sqlalchemy import Engine, create_engine, event, inspect, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.config import DatabaseSettings
from storage.models import Base


logger = logging.getLogger(__name__)


# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url)


def get_database_url(settings: Optional[DatabaseSettings] = None) -> str:
    """Database URL, with async driver URLs converted to their sync form."""
    url = (settings or DatabaseSettings()).url
    if url.startswith("postgresql+asyncpg"):
        url = url.replace("postgresql+asyncpg", "postgresql+psycopg2")
    return url


def create_database_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """
    Create a SQLAlchemy engine.

    PostgreSQL gets a QueuePool sized from settings. File-backed
    SQLite uses the default pool; in-memory SQLite uses a single
    shared connection so every session sees the same database.

    Args:
        settings: Database settings (defaults when omitted)

    Returns:
        SQLAlchemy Engine
    """
    settings = settings or DatabaseSettings()
    database_url = get_database_url(settings)

    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    if _is_memory_sqlite(database_url):
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=settings.echo,
        )
    elif _is_sqlite(database_url):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=settings.echo,
        )
    else:
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_recycle=settings.pool_recycle_seconds,
            pool_pre_ping=True,
            echo=settings.echo,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def get_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """Get the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_database_engine(settings)
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Session factory bound to engine.

    Without an engine, returns the process-wide factory bound to
    get_engine().
    """
    global _SessionFactory

    if engine is not None:
        return sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionFactory


def dispose_engine() -> None:
    """Dispose the process-wide engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _SessionFactory = None


# =============================================================
# DATABASE INITIALIZATION
# =============================================================

REQUIRED_TABLES = tuple(sorted(Base.metadata.tables))


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseConnectionError: If connection fails
    """
    engine = engine or get_engine()

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except (OperationalError, SQLAlchemyError) as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e

    logger.info("Database connection verified successfully")
    return True


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all tables defined in ORM models (existing ones are kept).

    Raises:
        DatabaseInitializationError: If table creation fails
    """
    engine = engine or get_engine()

    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e


def verify_required_tables(engine: Optional[Engine] = None) -> None:
    """
    Check every model table exists.

    Raises:
        DatabaseInitializationError: If any table is missing
    """
    engine = engine or get_engine()
    existing = set(inspect(engine).get_table_names())
    missing = [table for table in REQUIRED_TABLES if table not in existing]
    if missing:
        raise DatabaseInitializationError(f"Missing tables: {', '.join(missing)}")
    for table in REQUIRED_TABLES:
        logger.debug(f"  [OK] Table verified: {table}")


def initialize_database(engine: Optional[Engine] = None) -> None:
    """
    Full database initialization sequence.

    1. Verify connection
    2. Create tables if not exist
    3. Verify tables exist

    Any failure is raised; the caller treats it as a startup failure.
    """
    engine = engine or get_engine()
    logger.info("Initializing database")

    verify_database_connection(engine)
    create_all_tables(engine)
    verify_required_tables(engine)

    logger.info("Database initialization complete")


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when database initialization fails."""
    pass


__all__ = [
    "Base",
    "create_database_engine",
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "dispose_engine",
    "initialize_database",
    "verify_database_connection",
    "verify_required_tables",
    "create_all_tables",
    "REQUIRED_TABLES",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
