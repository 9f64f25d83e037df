"""
Database Package Initialization.

============================================================
TRAFFIC STORE PERSISTENCE LAYER
============================================================

Engine, sessions and schema bootstrap for the relational
store. Table definitions live in storage.models; data access
goes through storage.repositories.

REQUIRED:
- Every failure at startup raises a hard exception
- All transactions are explicit with commit/rollback

============================================================
"""

from .engine import (
    # Declarative base
    Base,

    # Engine creation
    create_database_engine,
    get_database_url,
    get_engine,
    dispose_engine,

    # Session management
    get_session_factory,

    # Database initialization
    initialize_database,
    verify_database_connection,
    verify_required_tables,
    create_all_tables,
    REQUIRED_TABLES,

    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)


__all__ = [
    "Base",
    "create_database_engine",
    "get_database_url",
    "get_engine",
    "dispose_engine",
    "get_session_factory",
    "initialize_database",
    "verify_database_connection",
    "verify_required_tables",
    "create_all_tables",
    "REQUIRED_TABLES",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
