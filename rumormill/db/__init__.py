"""
Database Layer for the rumor board

Provides:
- RumorStore abstraction (InMemory for dev, SQLite by default, Postgres for shared deployments)
- Versioned schema migrations (rumormill.db.migrations)
- Environment-based store configuration
"""

from .store import (
    RumorStore,
    StoreSession,
    InMemoryRumorStore,
    SqliteRumorStore,
    PostgresRumorStore,
    StoreError,
    ConstraintViolationError,
    DuplicateVoteError,
    StoreBusyError,
    MigrationError,
)
from .config import DatabaseConfig, StoreDriver, get_store_driver, postgres_configured

__all__ = [
    "RumorStore",
    "StoreSession",
    "InMemoryRumorStore",
    "SqliteRumorStore",
    "PostgresRumorStore",
    "StoreError",
    "ConstraintViolationError",
    "DuplicateVoteError",
    "StoreBusyError",
    "MigrationError",
    "DatabaseConfig",
    "StoreDriver",
    "get_store_driver",
    "postgres_configured",
]
