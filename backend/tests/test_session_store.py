"""Tests for upload session persistence (DuckDB and in-memory)."""

from datetime import timedelta

import pytest

from notevault.clock import utcnow
from notevault.db import Database
from notevault.errors import SessionStoreError
from notevault.sessions import store as store_module
from notevault.sessions.schemas import SessionState
from notevault.sessions.store import DuckDBSessionStore, InMemorySessionStore


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / "sessions.duckdb"))
    yield db
    db.close()


@pytest.fixture(params=["duckdb", "memory"])
def make_store(request, database):
    def _make(ttl_minutes=0):
        if request.param == "duckdb":
            return DuckDBSessionStore(database, ttl_minutes=ttl_minutes)
        return InMemorySessionStore(ttl_minutes=ttl_minutes)
    return _make


class TestSaveAndLoad:
    """Merge-write semantics shared by every store."""

    def test_load_missing_returns_none(self, make_store):
        """Test loading a session that does not exist."""
        assert make_store().load(42) is None

    def test_save_creates_session(self, make_store):
        """Test that save creates a new session."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_FOLDER, draft={})

        session = store.load(42)
        assert session.user_id == 42
        assert session.state is SessionState.AWAITING_FOLDER
        assert session.draft.folder is None

    def test_create_without_state_rejected(self, make_store):
        """Test that a new session needs a state."""
        with pytest.raises(ValueError):
            make_store().save(42, draft={"title": "x"})

    def test_draft_keys_merge(self, make_store):
        """Test that saved draft keys merge into the stored draft."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_CATEGORY, draft={"folder": "natural"})
        store.save(42, state=SessionState.AWAITING_TITLE, draft={"category": "medical"})

        session = store.load(42)
        assert session.state is SessionState.AWAITING_TITLE
        assert session.draft.folder == "natural"
        assert session.draft.category == "medical"

    def test_state_kept_when_not_given(self, make_store):
        """Test that save keeps the state when none is given."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_TITLE, draft={"folder": "social"})
        store.save(42, draft={"title": "Contracts"})

        session = store.load(42)
        assert session.state is SessionState.AWAITING_TITLE
        assert session.draft.title == "Contracts"

    def test_sessions_are_per_user(self, make_store):
        """Test that sessions of different users are separate."""
        store = make_store()
        store.save(1, state=SessionState.AWAITING_FOLDER)
        store.save(2, state=SessionState.AWAITING_FILE, draft={"title": "other"})

        assert store.load(1).state is SessionState.AWAITING_FOLDER
        assert store.load(1).draft.title is None

    def test_delete_and_delete_missing(self, make_store):
        """Test deleting present and absent sessions."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_FOLDER)
        store.delete(42)
        store.delete(42)

        assert store.load(42) is None


class TestClaim:
    """Atomic check-and-remove of a session in a given state."""

    def test_claim_matching_state(self, make_store):
        """Test claiming returns the session and removes it."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_FILE, draft={"title": "Cell Biology"})

        claimed = store.claim(42, SessionState.AWAITING_FILE)

        assert claimed.state is SessionState.AWAITING_FILE
        assert claimed.draft.title == "Cell Biology"
        assert store.load(42) is None

    def test_second_claim_gets_nothing(self, make_store):
        """Test only the first of two claims succeeds."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_FILE)

        assert store.claim(42, SessionState.AWAITING_FILE) is not None
        assert store.claim(42, SessionState.AWAITING_FILE) is None

    def test_claim_other_state_keeps_session(self, make_store):
        """Test a claim for a different state leaves the session alone."""
        store = make_store()
        store.save(42, state=SessionState.AWAITING_TITLE)

        assert store.claim(42, SessionState.AWAITING_FILE) is None
        assert store.load(42).state is SessionState.AWAITING_TITLE

    def test_claim_missing(self, make_store):
        """Test claiming with no session returns None."""
        assert make_store().claim(42, SessionState.AWAITING_FILE) is None


class TestExpiry:
    """Idle sessions are dropped on the next load."""

    def test_expired_session_removed(self, make_store, monkeypatch):
        """Test that idle sessions past the TTL are removed."""
        store = make_store(ttl_minutes=60)
        store.save(42, state=SessionState.AWAITING_TITLE)

        later = utcnow() + timedelta(minutes=61)
        monkeypatch.setattr(store_module, "utcnow", lambda: later)

        assert store.load(42) is None
        monkeypatch.undo()
        assert store.load(42) is None

    def test_fresh_session_kept(self, make_store, monkeypatch):
        """Test that recent sessions survive the TTL check."""
        store = make_store(ttl_minutes=60)
        store.save(42, state=SessionState.AWAITING_TITLE)

        later = utcnow() + timedelta(minutes=30)
        monkeypatch.setattr(store_module, "utcnow", lambda: later)

        assert store.load(42) is not None

    def test_zero_ttl_never_expires(self, make_store, monkeypatch):
        """Test that a zero TTL disables expiry."""
        store = make_store(ttl_minutes=0)
        store.save(42, state=SessionState.AWAITING_TITLE)

        later = utcnow() + timedelta(days=365)
        monkeypatch.setattr(store_module, "utcnow", lambda: later)

        assert store.load(42) is not None


class TestDuckDBSessionStore:
    """DuckDB-specific behavior."""

    def test_sessions_survive_reopen(self, tmp_path):
        """Test that sessions persist across database reopens."""
        path = str(tmp_path / "persist.duckdb")
        db = Database(path)
        DuckDBSessionStore(db).save(7, state=SessionState.AWAITING_FILE, draft={"title": "Kept"})
        db.close()

        db = Database(path)
        try:
            session = DuckDBSessionStore(db).load(7)
        finally:
            db.close()
        assert session.state is SessionState.AWAITING_FILE
        assert session.draft.title == "Kept"

    def test_unreadable_state_is_discarded(self, database):
        """Test that a row with an unknown state is discarded."""
        store = DuckDBSessionStore(database)
        with database.cursor() as cur:
            cur.execute(
                "INSERT INTO upload_sessions (user_id, state, draft, updated_at) VALUES (?, ?, ?, ?)",
                [9, "awaiting_unicorn", "{}", utcnow()],
            )

        assert store.load(9) is None
        with database.cursor() as cur:
            assert cur.execute("SELECT count(*) FROM upload_sessions").fetchone()[0] == 0

    def test_closed_database_raises_store_error(self, tmp_path):
        """Test that a closed session database raises SessionStoreError."""
        db = Database(str(tmp_path / "closed.duckdb"))
        store = DuckDBSessionStore(db)
        db.close()

        with pytest.raises(SessionStoreError):
            store.load(1)
        with pytest.raises(SessionStoreError):
            store.save(1, state=SessionState.AWAITING_FOLDER)

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
    def test_corrupt_draft_raises_store_error(self, database, raw):
        """Test an undecodable draft column surfaces as SessionStoreError."""
        store = DuckDBSessionStore(database)
        with database.cursor() as cur:
            cur.execute(
                "INSERT INTO upload_sessions (user_id, state, draft, updated_at) VALUES (?, ?, ?, ?)",
                [9, "awaiting_title", raw, utcnow()],
            )

        with pytest.raises(SessionStoreError):
            store.load(9)
        store.delete(9)
        assert store.load(9) is None
