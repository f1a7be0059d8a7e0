"""
Shared Store and Service Construction

Builds the RumorStore and RumorService the API and CLI run on.

Store is determined by environment variables (see rumormill.db.config):
- RUMORMILL_STORE_DRIVER: Explicit driver selection (memory, sqlite, psycopg2)
- DATABASE_URL or DATABASE_HOST: PostgreSQL connection (auto-selects psycopg2)
- Neither set: SQLite file at RUMORMILL_SQLITE_PATH (default rumors.db)

A configured database that cannot be reached is an error. The factory
never falls back to the in-memory store, since that would silently drop
every write.
"""

import psycopg2

from .core import ConsensusPolicy, LifecyclePolicy, RumorService
from .db.config import (
    DatabaseConfig,
    StoreDriver,
    get_sqlite_path,
    get_store_driver,
)
from .db.store import (
    InMemoryRumorStore,
    PostgresRumorStore,
    RumorStore,
    SqliteRumorStore,
    StoreError,
)
from .observability import get_logger

logger = get_logger(__name__)


def create_store() -> RumorStore:
    """
    Create the appropriate RumorStore based on configuration.

    Returns:
        InMemoryRumorStore for development/testing
        SqliteRumorStore by default
        PostgresRumorStore when a PostgreSQL database is configured
    """
    driver = get_store_driver()

    if driver == StoreDriver.MEMORY:
        logger.warning("Using in-memory store (no persistence)")
        return InMemoryRumorStore()

    if driver == StoreDriver.SQLITE:
        path = get_sqlite_path()
        logger.info("Using SQLite store", path=path)
        return SqliteRumorStore(path)

    return _create_psycopg2_store(DatabaseConfig.from_env())


def _create_psycopg2_store(config: DatabaseConfig) -> PostgresRumorStore:
    """Create PostgresRumorStore with psycopg2, checking the connection first."""

    def connection_factory():
        return psycopg2.connect(**config.connect_kwargs())

    try:
        test_conn = connection_factory()
        test_conn.close()
    except psycopg2.Error as e:
        logger.error(
            "Could not connect to PostgreSQL",
            host=config.host,
            port=config.port,
            database=config.database,
            error=str(e),
        )
        raise StoreError(f"Could not connect to PostgreSQL: {e}") from e

    logger.info(
        "PostgreSQL connection established",
        database=config.describe(),
    )
    return PostgresRumorStore(connection_factory)


def create_service(store: RumorStore) -> RumorService:
    """Migrate the store, then build a RumorService over it with env policies."""
    applied = store.migrate()
    if applied:
        logger.info("Applied schema migrations", versions=applied)

    return RumorService(
        store=store,
        consensus_policy=ConsensusPolicy.from_env(),
        lifecycle_policy=LifecyclePolicy.from_env(),
    )
