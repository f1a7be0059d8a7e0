"""
Rumor Store Abstraction

This module defines the RumorStore interface and provides three implementations:
- InMemoryRumorStore: For development and testing
- SqliteRumorStore: Default durable store (file-backed, compatible with legacy rumors.db)
- PostgresRumorStore: For multi-instance deployments

The RumorStore is responsible for:
- Table-level storage of rumors, votes and identity credibility
- The (rumor_id, hashed_token) uniqueness constraint on votes
- Transaction boundaries, row locking and durability

The rumor service retains responsibility for:
- Scoring arithmetic and credibility feedback
- Input and state-transition rules

TRANSACTION CONTRACT:
Every read and write goes through the transaction() context manager:

    with store.transaction() as session:
        rumor = session.get_rumor(rumor_id, for_update=True)
        # ... compute ...
        session.save_rumor_tally(updated)

The block commits when it exits normally and rolls back on any exception,
so a caller never reports success for a write that was not persisted.
"""

import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Generator, Optional

import psycopg2

from ..observability import get_logger
from ..schemas import IdentityCredibility, Rumor, RumorStatus, Vote, VoteType

logger = get_logger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================

class StoreError(Exception):
    """Base exception for storage failures."""
    pass


class ConstraintViolationError(StoreError):
    """Raised when a write violates a uniqueness or key constraint."""
    pass


class DuplicateVoteError(ConstraintViolationError):
    """Raised when (rumor_id, hashed_token) already has a vote."""
    pass


class StoreBusyError(StoreError):
    """Raised when a lock could not be acquired in time."""
    pass


class MigrationError(StoreError):
    """Raised when the schema cannot be brought up to date."""
    pass


# ============================================================
# SESSION INTERFACE
# ============================================================

class StoreSession(ABC):
    """
    Data access inside one transaction.

    Sessions are only valid within the `with store.transaction()` block
    that produced them.
    """

    # Rumors

    @abstractmethod
    def insert_rumor(
        self,
        content: str,
        timestamp: int,
        trust_score: float,
        submitter_token: str,
    ) -> Rumor:
        """Insert an ACTIVE rumor; weighted_verify is seeded with trust_score."""
        pass

    @abstractmethod
    def get_rumor(self, rumor_id: int, for_update: bool = False) -> Optional[Rumor]:
        """Point lookup. for_update locks the row until the transaction ends."""
        pass

    @abstractmethod
    def save_rumor_tally(self, rumor: Rumor) -> None:
        """Persist verify_count, dispute_count and trust_score."""
        pass

    @abstractmethod
    def mark_rumor_deleted(self, rumor_id: int) -> None:
        """Flag as deleted and archived. The row is kept."""
        pass

    @abstractmethod
    def archive_stale_rumors(
        self,
        now: int,
        max_age_ms: float,
        low_trust_threshold: float,
    ) -> int:
        """Archive ACTIVE rumors older than max_age_ms or below the trust floor."""
        pass

    @abstractmethod
    def list_visible_rumors(self) -> list[Rumor]:
        """Non-deleted rumors, ACTIVE first, newest first within a status."""
        pass

    @abstractmethod
    def count_rumors(self) -> int:
        pass

    # Votes

    @abstractmethod
    def find_vote(self, rumor_id: int, hashed_token: str) -> Optional[Vote]:
        pass

    @abstractmethod
    def insert_vote(
        self,
        rumor_id: int,
        hashed_token: str,
        vote_type: VoteType,
        timestamp: int,
        vote_weight: float,
        confidence: float,
    ) -> Vote:
        """Insert a vote. Raises DuplicateVoteError on the uniqueness constraint."""
        pass

    @abstractmethod
    def list_votes(self, rumor_id: int) -> list[Vote]:
        """Every vote ever cast on a rumor, in insertion order."""
        pass

    @abstractmethod
    def delete_orphaned_votes(self) -> int:
        """Delete votes whose voter has no credibility record."""
        pass

    # Identity credibility

    @abstractmethod
    def get_credibility(
        self,
        hashed_token: str,
        for_update: bool = False,
    ) -> Optional[IdentityCredibility]:
        pass

    @abstractmethod
    def insert_credibility(self, record: IdentityCredibility) -> None:
        """Insert a record unless one already exists for the identity."""
        pass

    @abstractmethod
    def save_credibility(self, record: IdentityCredibility) -> None:
        """Persist credibility, counters and last_updated."""
        pass

    @abstractmethod
    def delete_inactive_identities(self, cutoff: float) -> int:
        """Delete credibility records with last_updated < cutoff."""
        pass


# ============================================================
# ABSTRACT STORE
# ============================================================

class RumorStore(ABC):
    """
    Abstract base class for rumor storage.

    Implementations must ensure:
    1. All session calls inside one transaction() see and write the same state
    2. Concurrent transactions never interleave read-modify-write on a rumor
       or an identity (lost updates)
    3. A transaction that exits normally is durable before transaction() returns
    """

    @contextmanager
    @abstractmethod
    def transaction(self) -> Generator[StoreSession, None, None]:
        """
        Open a transaction.

        Yields:
            StoreSession bound to this transaction
        """
        pass

    def migrate(self) -> list[int]:
        """Apply pending schema migrations. Returns the versions applied."""
        return []

    def close(self) -> None:
        """Release resources held by the store."""
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

@dataclass
class _MemoryState:
    rumors: dict[int, Rumor] = field(default_factory=dict)
    votes: dict[int, Vote] = field(default_factory=dict)
    vote_index: dict[tuple[int, str], int] = field(default_factory=dict)
    credibility: dict[str, IdentityCredibility] = field(default_factory=dict)
    next_rumor_id: int = 1
    next_vote_id: int = 1

    def copy(self) -> "_MemoryState":
        # Rows are frozen models, so copying the containers is enough
        return _MemoryState(
            rumors=dict(self.rumors),
            votes=dict(self.votes),
            vote_index=dict(self.vote_index),
            credibility=dict(self.credibility),
            next_rumor_id=self.next_rumor_id,
            next_vote_id=self.next_vote_id,
        )


class InMemorySession(StoreSession):
    """Session over a private working copy of the in-memory state."""

    def __init__(self, state: _MemoryState):
        self._state = state

    def insert_rumor(self, content, timestamp, trust_score, submitter_token) -> Rumor:
        rumor = Rumor(
            id=self._state.next_rumor_id,
            content=content,
            timestamp=timestamp,
            weighted_verify=trust_score,
            trust_score=trust_score,
            submitter_token=submitter_token,
        )
        self._state.rumors[rumor.id] = rumor
        self._state.next_rumor_id += 1
        return rumor

    def get_rumor(self, rumor_id, for_update=False) -> Optional[Rumor]:
        return self._state.rumors.get(rumor_id)

    def save_rumor_tally(self, rumor: Rumor) -> None:
        current = self._state.rumors[rumor.id]
        self._state.rumors[rumor.id] = current.model_copy(update={
            "verify_count": rumor.verify_count,
            "dispute_count": rumor.dispute_count,
            "trust_score": rumor.trust_score,
        })

    def mark_rumor_deleted(self, rumor_id: int) -> None:
        current = self._state.rumors[rumor_id]
        self._state.rumors[rumor_id] = current.model_copy(update={
            "is_deleted": True,
            "is_archived": True,
            "status": RumorStatus.ARCHIVED,
        })

    def archive_stale_rumors(self, now, max_age_ms, low_trust_threshold) -> int:
        archived = 0
        for rumor_id, rumor in list(self._state.rumors.items()):
            if rumor.status != RumorStatus.ACTIVE:
                continue
            if now - rumor.timestamp > max_age_ms or rumor.trust_score < low_trust_threshold:
                self._state.rumors[rumor_id] = rumor.model_copy(update={
                    "is_archived": True,
                    "status": RumorStatus.ARCHIVED,
                })
                archived += 1
        return archived

    def list_visible_rumors(self) -> list[Rumor]:
        visible = [r for r in self._state.rumors.values() if not r.is_deleted]
        # Newest first, then a stable sort on status puts ACTIVE before ARCHIVED
        visible.sort(key=lambda r: (r.timestamp, r.id), reverse=True)
        visible.sort(key=lambda r: r.status.value)
        return visible

    def count_rumors(self) -> int:
        return len(self._state.rumors)

    def find_vote(self, rumor_id, hashed_token) -> Optional[Vote]:
        vote_id = self._state.vote_index.get((rumor_id, hashed_token))
        if vote_id is None:
            return None
        return self._state.votes.get(vote_id)

    def insert_vote(
        self, rumor_id, hashed_token, vote_type, timestamp, vote_weight, confidence
    ) -> Vote:
        key = (rumor_id, hashed_token)
        if key in self._state.vote_index:
            raise DuplicateVoteError(
                f"Vote already recorded for rumor {rumor_id} by this identity"
            )
        vote = Vote(
            id=self._state.next_vote_id,
            rumor_id=rumor_id,
            hashed_token=hashed_token,
            vote_type=vote_type,
            timestamp=timestamp,
            vote_weight=vote_weight,
            confidence=confidence,
        )
        self._state.votes[vote.id] = vote
        self._state.vote_index[key] = vote.id
        self._state.next_vote_id += 1
        return vote

    def list_votes(self, rumor_id: int) -> list[Vote]:
        return sorted(
            [v for v in self._state.votes.values() if v.rumor_id == rumor_id],
            key=lambda v: v.id,
        )

    def delete_orphaned_votes(self) -> int:
        orphaned = [
            v for v in self._state.votes.values()
            if v.hashed_token not in self._state.credibility
        ]
        for vote in orphaned:
            del self._state.votes[vote.id]
            del self._state.vote_index[(vote.rumor_id, vote.hashed_token)]
        return len(orphaned)

    def get_credibility(self, hashed_token, for_update=False) -> Optional[IdentityCredibility]:
        return self._state.credibility.get(hashed_token)

    def insert_credibility(self, record: IdentityCredibility) -> None:
        self._state.credibility.setdefault(record.hashed_token, record)

    def save_credibility(self, record: IdentityCredibility) -> None:
        self._state.credibility[record.hashed_token] = record

    def delete_inactive_identities(self, cutoff: float) -> int:
        stale = [
            token for token, record in self._state.credibility.items()
            if record.last_updated < cutoff
        ]
        for token in stale:
            del self._state.credibility[token]
        return len(stale)


class InMemoryRumorStore(RumorStore):
    """
    In-memory implementation of RumorStore.

    Suitable for:
    - Development
    - Testing

    NOT suitable for:
    - Production (no durability)
    - Multi-process deployments (no shared state)

    Transactions are serialized by a single lock. Each one works on a copy
    of the state that replaces the committed state only on normal exit.
    """

    def __init__(self):
        self._state = _MemoryState()
        self._lock = Lock()

    @contextmanager
    def transaction(self) -> Generator[StoreSession, None, None]:
        with self._lock:
            working = self._state.copy()
            yield InMemorySession(working)
            self._state = working


# ============================================================
# SQL IMPLEMENTATIONS
# ============================================================

RUMOR_COLUMNS = (
    "id, content, timestamp, verify_count, dispute_count, weighted_verify, "
    "weighted_dispute, trust_score, is_deleted, is_archived, status, submitter_token"
)
VOTE_COLUMNS = "id, rumor_id, hashed_token, vote_type, timestamp, vote_weight, confidence"
CREDIBILITY_COLUMNS = (
    "hashed_token, credibility, total_votes, aligned_votes, created_at, last_updated"
)


def _rumor_from_row(row) -> Rumor:
    return Rumor(
        id=row[0],
        content=row[1],
        timestamp=int(row[2]),
        verify_count=row[3] or 0,
        dispute_count=row[4] or 0,
        weighted_verify=row[5] or 0.0,
        weighted_dispute=row[6] or 0.0,
        trust_score=row[7] or 0.0,
        is_deleted=bool(row[8]),
        is_archived=bool(row[9]),
        status=RumorStatus(row[10] or RumorStatus.ACTIVE.value),
        submitter_token=row[11] or "",
    )


def _vote_from_row(row) -> Vote:
    return Vote(
        id=row[0],
        rumor_id=row[1],
        hashed_token=row[2],
        vote_type=VoteType(row[3]),
        timestamp=int(row[4]),
        vote_weight=row[5] if row[5] is not None else 1.0,
        confidence=row[6] if row[6] is not None else 1.0,
    )


def _credibility_from_row(row) -> IdentityCredibility:
    return IdentityCredibility(
        hashed_token=row[0],
        credibility=row[1],
        total_votes=row[2] or 0,
        aligned_votes=row[3] or 0,
        created_at=int(row[4]),
        last_updated=int(row[5]),
    )


class SqlStoreSession(StoreSession):
    """
    Session bound to one connection and cursor.

    Queries are written with `?` placeholders; the store rewrites them
    for its driver.
    """

    def __init__(self, store: "SqlRumorStore", cursor: Any):
        self._store = store
        self._cursor = cursor

    def _execute(self, sql: str, params: tuple = ()) -> Any:
        return self._store.execute(self._cursor, sql, params)

    def _fetchone(self, sql: str, params: tuple = ()):
        self._execute(sql, params)
        return self._cursor.fetchone()

    def _fetchall(self, sql: str, params: tuple = ()):
        self._execute(sql, params)
        return self._cursor.fetchall()

    def _lock_suffix(self, for_update: bool) -> str:
        return self._store.for_update_clause if for_update else ""

    def insert_rumor(self, content, timestamp, trust_score, submitter_token) -> Rumor:
        rumor_id = self._store.insert_returning_id(
            self._cursor,
            """
            INSERT INTO rumors (
                content, timestamp, verify_count, dispute_count,
                weighted_verify, weighted_dispute, trust_score,
                is_deleted, is_archived, submitter_token, status
            ) VALUES (?, ?, 0, 0, ?, 0, ?, 0, 0, ?, 'ACTIVE')
            """,
            (content, timestamp, trust_score, trust_score, submitter_token),
        )
        return Rumor(
            id=rumor_id,
            content=content,
            timestamp=timestamp,
            weighted_verify=trust_score,
            trust_score=trust_score,
            submitter_token=submitter_token,
        )

    def get_rumor(self, rumor_id, for_update=False) -> Optional[Rumor]:
        row = self._fetchone(
            f"SELECT {RUMOR_COLUMNS} FROM rumors WHERE id = ?{self._lock_suffix(for_update)}",
            (rumor_id,),
        )
        return _rumor_from_row(row) if row else None

    def save_rumor_tally(self, rumor: Rumor) -> None:
        self._execute(
            """
            UPDATE rumors
            SET verify_count = ?, dispute_count = ?, trust_score = ?
            WHERE id = ?
            """,
            (rumor.verify_count, rumor.dispute_count, rumor.trust_score, rumor.id),
        )

    def mark_rumor_deleted(self, rumor_id: int) -> None:
        self._execute(
            """
            UPDATE rumors
            SET is_deleted = 1, is_archived = 1, status = 'ARCHIVED'
            WHERE id = ?
            """,
            (rumor_id,),
        )

    def archive_stale_rumors(self, now, max_age_ms, low_trust_threshold) -> int:
        cursor = self._execute(
            """
            UPDATE rumors
            SET status = 'ARCHIVED', is_archived = 1
            WHERE status = 'ACTIVE'
            AND ((? - timestamp > ?) OR (trust_score < ?))
            """,
            (now, max_age_ms, low_trust_threshold),
        )
        return max(cursor.rowcount, 0)

    def list_visible_rumors(self) -> list[Rumor]:
        rows = self._fetchall(
            f"""
            SELECT {RUMOR_COLUMNS}
            FROM rumors
            WHERE is_deleted = 0
            ORDER BY status ASC, timestamp DESC, id DESC
            """
        )
        return [_rumor_from_row(row) for row in rows]

    def count_rumors(self) -> int:
        return self._fetchone("SELECT COUNT(*) FROM rumors")[0]

    def find_vote(self, rumor_id, hashed_token) -> Optional[Vote]:
        row = self._fetchone(
            f"SELECT {VOTE_COLUMNS} FROM votes WHERE rumor_id = ? AND hashed_token = ?",
            (rumor_id, hashed_token),
        )
        return _vote_from_row(row) if row else None

    def insert_vote(
        self, rumor_id, hashed_token, vote_type, timestamp, vote_weight, confidence
    ) -> Vote:
        try:
            vote_id = self._store.insert_returning_id(
                self._cursor,
                """
                INSERT INTO votes (
                    rumor_id, hashed_token, vote_type, timestamp, vote_weight, confidence
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (rumor_id, hashed_token, vote_type.value, timestamp, vote_weight, confidence),
            )
        except ConstraintViolationError as e:
            raise DuplicateVoteError(
                f"Vote already recorded for rumor {rumor_id} by this identity"
            ) from e
        return Vote(
            id=vote_id,
            rumor_id=rumor_id,
            hashed_token=hashed_token,
            vote_type=vote_type,
            timestamp=timestamp,
            vote_weight=vote_weight,
            confidence=confidence,
        )

    def list_votes(self, rumor_id: int) -> list[Vote]:
        rows = self._fetchall(
            f"SELECT {VOTE_COLUMNS} FROM votes WHERE rumor_id = ? ORDER BY id ASC",
            (rumor_id,),
        )
        return [_vote_from_row(row) for row in rows]

    def delete_orphaned_votes(self) -> int:
        cursor = self._execute(
            """
            DELETE FROM votes
            WHERE hashed_token NOT IN (SELECT hashed_token FROM user_credibility)
            """
        )
        return max(cursor.rowcount, 0)

    def get_credibility(self, hashed_token, for_update=False) -> Optional[IdentityCredibility]:
        row = self._fetchone(
            f"SELECT {CREDIBILITY_COLUMNS} FROM user_credibility "
            f"WHERE hashed_token = ?{self._lock_suffix(for_update)}",
            (hashed_token,),
        )
        return _credibility_from_row(row) if row else None

    def insert_credibility(self, record: IdentityCredibility) -> None:
        self._execute(
            f"INSERT INTO user_credibility ({CREDIBILITY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (hashed_token) DO NOTHING",
            (
                record.hashed_token,
                record.credibility,
                record.total_votes,
                record.aligned_votes,
                record.created_at,
                record.last_updated,
            ),
        )

    def save_credibility(self, record: IdentityCredibility) -> None:
        self._execute(
            """
            UPDATE user_credibility
            SET credibility = ?, total_votes = ?, aligned_votes = ?, last_updated = ?
            WHERE hashed_token = ?
            """,
            (
                record.credibility,
                record.total_votes,
                record.aligned_votes,
                record.last_updated,
                record.hashed_token,
            ),
        )

    def delete_inactive_identities(self, cutoff: float) -> int:
        cursor = self._execute(
            "DELETE FROM user_credibility WHERE last_updated < ?",
            (cutoff,),
        )
        return max(cursor.rowcount, 0)


class SqlRumorStore(RumorStore):
    """
    Shared transaction handling and SQL dialect hooks.

    Subclasses set the placeholder style, DDL types, driver exception
    classes and how inserted ids and busy errors are read.

    THREAD SAFETY:
    Each transaction opens its own connection, so one store instance can
    be shared across threads.
    """

    placeholder = "?"
    for_update_clause = ""
    id_column = "INTEGER PRIMARY KEY AUTOINCREMENT"
    real_type = "REAL"
    bigint_type = "INTEGER"
    database_error: type = Exception
    integrity_error: type = Exception

    def __init__(self, connection_factory: Callable[[], Any]):
        """
        Args:
            connection_factory: Callable that returns a new DB-API connection.
        """
        self._connection_factory = connection_factory

    # ---- dialect hooks -------------------------------------------------

    def sql(self, query: str) -> str:
        if self.placeholder == "?":
            return query
        return query.replace("?", self.placeholder)

    def execute(self, cursor: Any, query: str, params: tuple = ()) -> Any:
        """Execute on cursor, translating driver errors into StoreError."""
        try:
            cursor.execute(self.sql(query), params)
        except self.integrity_error as e:
            raise ConstraintViolationError(str(e)) from e
        except self.database_error as e:
            if self._is_busy(e):
                raise StoreBusyError("Store busy - could not acquire lock. Try again.") from e
            raise StoreError(f"Query failed: {e}") from e
        return cursor

    @abstractmethod
    def insert_returning_id(self, cursor: Any, query: str, params: tuple) -> int:
        pass

    @abstractmethod
    def column_names(self, cursor: Any, table: str) -> set[str]:
        """Existing columns of a table (empty if the table is missing)."""
        pass

    def _is_busy(self, e: Exception) -> bool:
        return False

    def _begin(self, cursor: Any) -> None:
        pass

    def _lock_for_migration(self, cursor: Any) -> None:
        pass

    # ---- transactions --------------------------------------------------

    def _connect(self) -> Any:
        try:
            return self._connection_factory()
        except self.database_error as e:
            raise StoreError(f"Could not connect to store: {e}") from e

    @contextmanager
    def _connection(self) -> Generator[tuple[Any, Any], None, None]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            try:
                self._begin(cursor)
                yield conn, cursor
            except BaseException:
                try:
                    conn.rollback()
                except self.database_error:
                    logger.warning("Rollback failed; connection discarded")
                raise
            try:
                conn.commit()
            except self.database_error as e:
                raise StoreError(f"Commit failed: {e}") from e
            finally:
                cursor.close()
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[StoreSession, None, None]:
        with self._connection() as (_, cursor):
            yield SqlStoreSession(self, cursor)

    def migrate(self) -> list[int]:
        from .migrations import apply_migrations

        with self._connection() as (_, cursor):
            self._lock_for_migration(cursor)
            return apply_migrations(self, cursor)


class SqliteRumorStore(SqlRumorStore):
    """
    SQLite implementation of RumorStore.

    Each transaction starts with BEGIN IMMEDIATE, which takes the database
    write lock up front. That serializes every mutating operation across
    threads and processes, so read-modify-write on a rumor or identity
    cannot interleave.
    """

    database_error = sqlite3.Error
    integrity_error = sqlite3.IntegrityError

    def __init__(self, path: str, busy_timeout: float = 5.0):
        self.path = str(path)

        def connection_factory():
            # isolation_level=None: transactions are opened explicitly in _begin
            return sqlite3.connect(self.path, timeout=busy_timeout, isolation_level=None)

        super().__init__(connection_factory)

    def _begin(self, cursor: Any) -> None:
        self.execute(cursor, "BEGIN IMMEDIATE")

    def _is_busy(self, e: Exception) -> bool:
        return isinstance(e, sqlite3.OperationalError) and "locked" in str(e).lower()

    def insert_returning_id(self, cursor: Any, query: str, params: tuple) -> int:
        self.execute(cursor, query, params)
        return cursor.lastrowid

    def column_names(self, cursor: Any, table: str) -> set[str]:
        self.execute(cursor, f"PRAGMA table_info({table})")
        return {row[1] for row in cursor.fetchall()}


class PostgresRumorStore(SqlRumorStore):
    """
    PostgreSQL implementation of RumorStore.

    Provides:
    - Full ACID guarantees
    - Concurrency safety via FOR UPDATE row locking on rumors and identities
    - Multi-instance support (shared database)
    - Lock/statement timeouts to prevent hanging
    """

    placeholder = "%s"
    for_update_clause = " FOR UPDATE"
    id_column = "BIGSERIAL PRIMARY KEY"
    real_type = "DOUBLE PRECISION"
    bigint_type = "BIGINT"
    database_error = psycopg2.Error
    integrity_error = psycopg2.IntegrityError

    LOCK_TIMEOUT_MS = 2000
    STATEMENT_TIMEOUT_MS = 10000
    MIGRATION_LOCK_KEY = 7261001

    # psycopg2 error codes for lock/statement timeout
    PGCODE_LOCK_NOT_AVAILABLE = "55P03"
    PGCODE_QUERY_CANCELED = "57014"

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        lock_timeout_ms: int = LOCK_TIMEOUT_MS,
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ):
        super().__init__(connection_factory)
        self._lock_timeout_ms = lock_timeout_ms
        self._statement_timeout_ms = statement_timeout_ms

    def _begin(self, cursor: Any) -> None:
        # SET LOCAL keeps the timeouts transaction-scoped
        self.execute(cursor, f"SET LOCAL lock_timeout = '{self._lock_timeout_ms}ms'")
        self.execute(cursor, f"SET LOCAL statement_timeout = '{self._statement_timeout_ms}ms'")

    def _lock_for_migration(self, cursor: Any) -> None:
        self.execute(cursor, "SELECT pg_advisory_xact_lock(?)", (self.MIGRATION_LOCK_KEY,))

    def _is_busy(self, e: Exception) -> bool:
        pgcode = getattr(e, "pgcode", None)
        if pgcode == self.PGCODE_LOCK_NOT_AVAILABLE:
            return True
        if pgcode == self.PGCODE_QUERY_CANCELED:
            message = (getattr(e, "pgerror", None) or str(e)).lower()
            return "lock timeout" in message
        return False

    def insert_returning_id(self, cursor: Any, query: str, params: tuple) -> int:
        self.execute(cursor, query.rstrip() + " RETURNING id", params)
        return cursor.fetchone()[0]

    def column_names(self, cursor: Any, table: str) -> set[str]:
        self.execute(
            cursor,
            "SELECT column_name FROM information_schema.columns WHERE table_name = ?",
            (table,),
        )
        return {row[0] for row in cursor.fetchall()}
