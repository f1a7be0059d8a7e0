"""
Tests for the SQL stores and schema migrations.

SQLite databases live under tmp_path; PostgreSQL is exercised only
through its dialect hooks, since no server is available in CI.
"""

import sqlite3
import threading

import pytest

from rumormill.core import DAY_MS, RumorService, now_ms
from rumormill.db import (
    DatabaseConfig,
    DuplicateVoteError,
    InMemoryRumorStore,
    PostgresRumorStore,
    SqliteRumorStore,
    StoreDriver,
    get_store_driver,
)
from rumormill.db.migrations import FLAGGED_BACKDATE_MS, MIGRATIONS
from rumormill.schemas import IdentityCredibility, RumorStatus, VoteType

from conftest import FakeClock, make_identity, submission, vote


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "rumors.db"


@pytest.fixture
def store(db_path):
    store = SqliteRumorStore(db_path)
    store.migrate()
    return store


class TestMigrations:

    def test_fresh_database_applies_all(self, db_path):
        store = SqliteRumorStore(db_path)
        assert store.migrate() == [m.version for m in MIGRATIONS]

    def test_migrate_is_idempotent(self, store):
        assert store.migrate() == []

    def test_versions_recorded(self, store, db_path):
        conn = sqlite3.connect(db_path)
        try:
            rows = conn.execute("SELECT version, name FROM schema_version ORDER BY version").fetchall()
        finally:
            conn.close()
        assert rows == [(1, "create_tables"), (2, "backfill_legacy_columns"), (3, "archive_flagged_rumor")]

    def test_legacy_database_backfilled(self, db_path):
        """A rumors.db from before weighted votes and deletion gains the new columns."""
        conn = sqlite3.connect(db_path)
        conn.executescript("""
            CREATE TABLE rumors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                verify_count INTEGER DEFAULT 0,
                dispute_count INTEGER DEFAULT 0,
                trust_score REAL DEFAULT 0
            );
            CREATE TABLE votes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rumor_id INTEGER NOT NULL,
                hashed_token TEXT NOT NULL,
                vote_type TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                UNIQUE(rumor_id, hashed_token)
            );
            INSERT INTO rumors (content, timestamp, verify_count, trust_score)
            VALUES ('old rumor', 1700000000000, 2, 0.3);
        """)
        conn.commit()
        conn.close()

        store = SqliteRumorStore(db_path)
        store.migrate()

        with store.transaction() as session:
            rumor = session.get_rumor(1)
        assert rumor.content == "old rumor"
        assert rumor.verify_count == 2
        assert rumor.trust_score == pytest.approx(0.3)
        assert rumor.status == RumorStatus.ACTIVE
        assert not rumor.is_deleted

    def test_flagged_rumor_archived_and_backdated(self, db_path):
        conn = sqlite3.connect(db_path)
        conn.executescript("""
            CREATE TABLE rumors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                verify_count INTEGER DEFAULT 0,
                dispute_count INTEGER DEFAULT 0,
                trust_score REAL DEFAULT 0,
                status TEXT DEFAULT 'ACTIVE'
            );
        """)
        conn.execute(
            "INSERT INTO rumors (content, timestamp) VALUES (?, ?)",
            ("Did you know SEECS is built on top of a graveyard?", now_ms()),
        )
        conn.execute(
            "INSERT INTO rumors (content, timestamp) VALUES (?, ?)",
            ("Cafeteria is getting a new menu", now_ms()),
        )
        conn.commit()
        conn.close()

        before = now_ms()
        store = SqliteRumorStore(db_path)
        store.migrate()

        with store.transaction() as session:
            flagged = session.get_rumor(1)
            other = session.get_rumor(2)
        assert flagged.status == RumorStatus.ARCHIVED
        assert flagged.is_archived
        assert flagged.timestamp <= now_ms() - FLAGGED_BACKDATE_MS
        assert flagged.timestamp >= before - FLAGGED_BACKDATE_MS
        assert other.status == RumorStatus.ACTIVE

    def test_flagged_migration_runs_once(self, store):
        """A later rumor with the same text is not touched by restarts."""
        with store.transaction() as session:
            rumor = session.insert_rumor(
                "SEECS is built on top of a graveyard", now_ms(), 0.1, make_identity("s")
            )
        store.migrate()

        with store.transaction() as session:
            assert session.get_rumor(rumor.id).status == RumorStatus.ACTIVE


class TestSqliteSession:

    def test_durable_across_store_instances(self, store, db_path):
        service = RumorService(store=store)
        rumor = service.submit_rumor(submission(make_identity("s"), confidence=0.5))
        service.cast_vote(vote(rumor.id, make_identity("v"), VoteType.VERIFY, 1.0))

        reopened = RumorService(store=SqliteRumorStore(db_path))
        stored = reopened.get_rumor(rumor.id)

        assert stored.trust_score == pytest.approx(0.15)
        assert stored.verify_count == 1
        assert reopened.get_credibility(make_identity("v")).credibility == pytest.approx(0.1)

    def test_duplicate_vote_constraint(self, store):
        voter = make_identity("v")
        with store.transaction() as session:
            rumor = session.insert_rumor("x", 0, 0.0, make_identity("s"))
            session.insert_vote(rumor.id, voter, VoteType.VERIFY, 0, 0.1, 0.5)

        with pytest.raises(DuplicateVoteError):
            with store.transaction() as session:
                session.insert_vote(rumor.id, voter, VoteType.DISPUTE, 0, 0.1, 0.5)

        with store.transaction() as session:
            votes = session.list_votes(rumor.id)
        assert [v.vote_type for v in votes] == [VoteType.VERIFY]

    def test_exception_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as session:
                session.insert_rumor("never committed", 0, 0.0, make_identity("s"))
                raise RuntimeError("boom")

        with store.transaction() as session:
            assert session.count_rumors() == 0

    def test_insert_credibility_keeps_existing(self, store):
        token = make_identity("x")
        first = IdentityCredibility(hashed_token=token, credibility=0.5, created_at=1, last_updated=1)
        second = IdentityCredibility(hashed_token=token, credibility=0.1, created_at=2, last_updated=2)
        with store.transaction() as session:
            session.insert_credibility(first)
            session.insert_credibility(second)
            assert session.get_credibility(token).credibility == 0.5

    def test_visible_rumors_exclude_deleted(self, store):
        with store.transaction() as session:
            kept = session.insert_rumor("kept", 2, 0.0, make_identity("s"))
            gone = session.insert_rumor("gone", 1, 0.0, make_identity("s"))
            session.mark_rumor_deleted(gone.id)
            visible = session.list_visible_rumors()

        assert [r.id for r in visible] == [kept.id]

    def test_sweep_matches_in_memory(self, db_path):
        """Both stores archive and prune the same rows."""
        reports = []
        for store in (InMemoryRumorStore(), SqliteRumorStore(db_path)):
            store.migrate()
            clock = FakeClock()
            service = RumorService(store=store, clock=clock)
            rumor = service.submit_rumor(submission(make_identity("s")))
            service.cast_vote(vote(rumor.id, make_identity("v")))
            clock.advance(366 * DAY_MS)
            reports.append(service.sweep())

        memory, sqlite = reports
        assert (memory.rumors_archived, memory.identities_pruned, memory.votes_pruned) == (1, 2, 1)
        assert (sqlite.rumors_archived, sqlite.identities_pruned, sqlite.votes_pruned) == (1, 2, 1)

    def test_concurrent_votes_all_counted(self, store):
        """Simultaneous voters on one rumor never lose an update."""
        service = RumorService(store=store)
        rumor = service.submit_rumor(submission(make_identity("s"), confidence=1.0))
        voter_count = 4
        barrier = threading.Barrier(voter_count)
        errors = []

        def cast(i):
            barrier.wait()
            try:
                service.cast_vote(vote(rumor.id, make_identity(f"voter-{i}")))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=cast, args=(i,)) for i in range(voter_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stored = service.get_rumor(rumor.id)
        assert stored.verify_count == voter_count
        assert stored.trust_score == pytest.approx(0.1 + voter_count * 0.1)


class TestPostgresDialect:

    def test_placeholders_rewritten(self):
        store = PostgresRumorStore(connection_factory=lambda: None)
        assert store.sql("SELECT * FROM rumors WHERE id = ?") == "SELECT * FROM rumors WHERE id = %s"
        assert store.for_update_clause == " FOR UPDATE"


class TestConfig:

    def test_default_driver_is_sqlite(self, monkeypatch):
        for var in ("RUMORMILL_STORE_DRIVER", "DATABASE_URL", "DATABASE_HOST"):
            monkeypatch.delenv(var, raising=False)
        assert get_store_driver() == StoreDriver.SQLITE

    def test_database_url_selects_postgres(self, monkeypatch):
        monkeypatch.delenv("RUMORMILL_STORE_DRIVER", raising=False)
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5433/rumors")
        assert get_store_driver() == StoreDriver.PSYCOPG2

    def test_explicit_driver_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5433/rumors")
        monkeypatch.setenv("RUMORMILL_STORE_DRIVER", "memory")
        assert get_store_driver() == StoreDriver.MEMORY

    def test_unknown_driver_rejected(self, monkeypatch):
        monkeypatch.setenv("RUMORMILL_STORE_DRIVER", "mongodb")
        with pytest.raises(ValueError, match="Unknown RUMORMILL_STORE_DRIVER"):
            get_store_driver()

    def test_url_parsing(self):
        config = DatabaseConfig.from_url("postgresql://u:p%40ss@db:5433/rumors?sslmode=require")
        assert config.connect_kwargs() == {
            "host": "db",
            "port": 5433,
            "dbname": "rumors",
            "user": "u",
            "password": "p@ss",
            "sslmode": "require",
        }

    def test_describe_omits_password(self):
        config = DatabaseConfig.from_url("postgresql://u:secret@db:5433/rumors")
        assert config.describe() == "u@db:5433/rumors"
        assert "secret" not in config.describe()

    def test_from_env_prefers_database_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5433/rumors")
        monkeypatch.setenv("DATABASE_HOST", "elsewhere")
        assert DatabaseConfig.from_env().host == "db"

    def test_from_env_individual_variables(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("DATABASE_HOST", "pg")
        monkeypatch.setenv("DATABASE_PORT", "6543")
        config = DatabaseConfig.from_env()
        assert (config.host, config.port, config.database) == ("pg", 6543, "rumormill")
