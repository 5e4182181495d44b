"""Session persistence.

``SessionStore`` implements the merge-write and expiry rules once; concrete
stores only provide raw row access:

    DuckDBSessionStore    durable, shared by every webhook invocation
    InMemorySessionStore  test double

Backend failures surface as ``SessionStoreError`` so callers can abort the
current step instead of crashing the invocation.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import duckdb

from notevault.clock import utcnow
from notevault.db import Database
from notevault.errors import SessionStoreError
from .schemas import Draft, SessionState, UploadSession

logger = logging.getLogger(__name__)

# (state, draft, updated_at)
_Row = Tuple[str, Dict[str, Any], datetime]


class SessionStore(ABC):
    """Key-value store of upload sessions keyed by user id.

    Args:
        ttl_minutes: Sessions not written for this long are treated as
            expired and removed on the next ``load``. ``0`` disables expiry.
    """

    def __init__(self, ttl_minutes: int = 0) -> None:
        self._ttl = timedelta(minutes=ttl_minutes) if ttl_minutes > 0 else None

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def save(
        self,
        user_id: int,
        state: Optional[SessionState] = None,
        draft: Optional[Dict[str, Any]] = None,
    ) -> UploadSession:
        """Upsert the session, merging *draft* keys into the stored draft.

        Fields that are not given keep their stored values.

        Raises:
            SessionStoreError: If the backend read or write fails.
            ValueError: If no session exists and *state* is not given.
        """
        existing = self._guarded("read", user_id, self._read)
        if existing is None and state is None:
            raise ValueError(f"Cannot create a session for user {user_id} without a state")

        merged_draft: Dict[str, Any] = dict(existing[1]) if existing else {}
        if draft:
            merged_draft.update({k: v for k, v in draft.items() if v is not None})
        new_state = state.value if state is not None else existing[0]

        session = UploadSession(
            user_id=user_id,
            state=SessionState(new_state),
            draft=Draft(**merged_draft),
            updated_at=utcnow(),
        )
        self._guarded(
            "write",
            user_id,
            lambda uid: self._write(uid, session.state.value, session.draft.model_dump(), session.updated_at),
        )
        logger.debug("[sessions] Saved user=%s state=%s", user_id, session.state.value)
        return session

    def load(self, user_id: int) -> Optional[UploadSession]:
        """Return the live session for *user_id*, or None.

        Raises:
            SessionStoreError: If the backend read fails.
        """
        row = self._guarded("read", user_id, self._read)
        if row is None:
            return None

        state, draft, updated_at = row
        if self._ttl is not None and utcnow() - updated_at > self._ttl:
            logger.info("[sessions] Session for user %s expired (last write %s)", user_id, updated_at)
            self.delete(user_id)
            return None

        try:
            return UploadSession(
                user_id=user_id,
                state=SessionState(state),
                draft=Draft(**draft),
                updated_at=updated_at,
            )
        except ValueError:
            logger.warning("[sessions] Discarding unreadable session for user %s: state=%r", user_id, state)
            self.delete(user_id)
            return None

    def delete(self, user_id: int) -> None:
        """Remove the session for *user_id* (no-op if absent).

        Raises:
            SessionStoreError: If the backend delete fails.
        """
        self._guarded("delete", user_id, self._remove)
        logger.debug("[sessions] Deleted session for user %s", user_id)

    def claim(self, user_id: int, state: SessionState) -> Optional[UploadSession]:
        """Remove and return the session only if it is in *state*.

        The check and the removal are one atomic step, so of two concurrent
        callers at most one gets the session.

        Raises:
            SessionStoreError: If the backend operation fails.
        """
        row = self._guarded("claim", user_id, lambda uid: self._take(uid, state.value))
        if row is None:
            return None
        _, draft, updated_at = row
        try:
            session = UploadSession(user_id=user_id, state=state, draft=Draft(**draft), updated_at=updated_at)
        except ValueError:
            logger.warning("[sessions] Claimed unreadable session for user %s", user_id)
            return None
        logger.debug("[sessions] Claimed session for user %s at %s", user_id, state.value)
        return session

    # -----------------------------------------------------------------------
    # Backend hooks
    # -----------------------------------------------------------------------

    @abstractmethod
    def _read(self, user_id: int) -> Optional[_Row]:
        """Return the raw stored row or None."""

    @abstractmethod
    def _write(self, user_id: int, state: str, draft: Dict[str, Any], updated_at: datetime) -> None:
        """Insert or replace the row for *user_id*."""

    @abstractmethod
    def _remove(self, user_id: int) -> None:
        """Delete the row for *user_id* if present."""

    @abstractmethod
    def _take(self, user_id: int, state: str) -> Optional[_Row]:
        """Atomically delete and return the row if its state is *state*."""

    def _guarded(self, op: str, user_id: int, fn):
        try:
            return fn(user_id)
        except SessionStoreError:
            raise
        except (duckdb.Error, OSError, ValueError) as exc:
            logger.error("[sessions] %s failed for user %s: %s", op, user_id, exc)
            raise SessionStoreError(f"Session {op} failed: {exc}") from exc


def _decode_draft(raw: Optional[str]) -> Dict[str, Any]:
    draft = json.loads(raw or "{}")
    if not isinstance(draft, dict):
        raise ValueError(f"Session draft is not an object: {raw!r}")
    return draft


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS upload_sessions (
    user_id    BIGINT PRIMARY KEY,
    state      VARCHAR NOT NULL,
    draft      VARCHAR NOT NULL DEFAULT '{}',
    updated_at TIMESTAMP NOT NULL
)
"""


class DuckDBSessionStore(SessionStore):
    """Sessions persisted in the ``upload_sessions`` table."""

    def __init__(self, db: Database, ttl_minutes: int = 0) -> None:
        super().__init__(ttl_minutes)
        self._db = db
        with self._db.cursor() as cur:
            cur.execute(_CREATE_TABLE)

    def _read(self, user_id: int) -> Optional[_Row]:
        with self._db.cursor() as cur:
            row = cur.execute(
                "SELECT state, draft, updated_at FROM upload_sessions WHERE user_id = ?",
                [user_id],
            ).fetchone()
        if row is None:
            return None
        return row[0], _decode_draft(row[1]), row[2]

    def _write(self, user_id: int, state: str, draft: Dict[str, Any], updated_at: datetime) -> None:
        with self._db.cursor() as cur:
            cur.execute(
                "INSERT OR REPLACE INTO upload_sessions (user_id, state, draft, updated_at) VALUES (?, ?, ?, ?)",
                [user_id, state, json.dumps(draft), updated_at],
            )

    def _remove(self, user_id: int) -> None:
        with self._db.cursor() as cur:
            cur.execute("DELETE FROM upload_sessions WHERE user_id = ?", [user_id])

    def _take(self, user_id: int, state: str) -> Optional[_Row]:
        with self._db.cursor() as cur:
            row = cur.execute(
                "DELETE FROM upload_sessions WHERE user_id = ? AND state = ? RETURNING state, draft, updated_at",
                [user_id, state],
            ).fetchone()
        if row is None:
            return None
        return row[0], _decode_draft(row[1]), row[2]


class InMemorySessionStore(SessionStore):
    """Dict-backed store for tests; not shared between processes."""

    def __init__(self, ttl_minutes: int = 0) -> None:
        super().__init__(ttl_minutes)
        self._rows: Dict[int, _Row] = {}
        self._lock = threading.Lock()

    def _read(self, user_id: int) -> Optional[_Row]:
        with self._lock:
            row = self._rows.get(user_id)
        if row is None:
            return None
        return row[0], dict(row[1]), row[2]

    def _write(self, user_id: int, state: str, draft: Dict[str, Any], updated_at: datetime) -> None:
        with self._lock:
            self._rows[user_id] = (state, dict(draft), updated_at)

    def _remove(self, user_id: int) -> None:
        with self._lock:
            self._rows.pop(user_id, None)

    def _take(self, user_id: int, state: str) -> Optional[_Row]:
        with self._lock:
            row = self._rows.get(user_id)
            if row is None or row[0] != state:
                return None
            del self._rows[user_id]
        return row[0], dict(row[1]), row[2]
