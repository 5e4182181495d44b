"""Record and user persistence.

    RecordStore          abstract interface used by the pipeline and lifecycle
    DuckDBRecordStore    durable store (``records`` and ``users`` tables)
    InMemoryRecordStore  test double

DuckDB failures surface as ``RecordStoreError``.
"""
import functools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import duckdb

from notevault.clock import utcnow
from notevault.db import Database
from notevault.errors import RecordStoreError
from .schemas import Record, RecordStats, User

logger = logging.getLogger(__name__)

# Fields that lifecycle operations may change after creation.
UPDATABLE_FIELDS = frozenset({"title", "description", "active", "content_url", "object_key"})


class RecordStore(ABC):
    """Persistence contract for records and user profiles."""

    @abstractmethod
    def create(self, record: Record) -> Record:
        """Insert a new record."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[Record]:
        """Fetch a record by id."""

    @abstractmethod
    def update(self, record_id: str, **fields) -> Optional[Record]:
        """Apply *fields* (a subset of ``UPDATABLE_FIELDS``); None if missing."""

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Delete a record; False if it did not exist."""

    @abstractmethod
    def list_by_owner(self, owner_id: int) -> List[Record]:
        """All records owned by *owner_id*, newest first."""

    @abstractmethod
    def increment_views(self, record_id: str) -> Optional[Record]:
        """Add one view to an *active* record; None if missing or inactive."""

    @abstractmethod
    def stats(self) -> RecordStats:
        """Aggregate counters."""

    @abstractmethod
    def upsert_user(
        self,
        user_id: int,
        display_name: str = "",
        is_admin: bool = False,
        started: bool = False,
    ) -> User:
        """Create or refresh a user; ``started`` never reverts to False."""

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        """Fetch a user profile."""


def _check_fields(fields: dict) -> dict:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")
    return fields


# ---------------------------------------------------------------------------
# DuckDB
# ---------------------------------------------------------------------------

_CREATE_RECORDS = """
CREATE TABLE IF NOT EXISTS records (
    id          VARCHAR PRIMARY KEY,
    title       VARCHAR NOT NULL,
    description VARCHAR NOT NULL,
    folder      VARCHAR NOT NULL,
    category    VARCHAR NOT NULL,
    owner_id    BIGINT NOT NULL,
    content_url VARCHAR NOT NULL,
    object_key  VARCHAR NOT NULL,
    file_name   VARCHAR NOT NULL DEFAULT '',
    file_size   BIGINT NOT NULL DEFAULT 0,
    active      BOOLEAN NOT NULL DEFAULT TRUE,
    views       BIGINT NOT NULL DEFAULT 0,
    created_at  TIMESTAMP NOT NULL,
    updated_at  TIMESTAMP NOT NULL
)
"""

_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id           BIGINT PRIMARY KEY,
    display_name VARCHAR NOT NULL DEFAULT '',
    is_admin     BOOLEAN NOT NULL DEFAULT FALSE,
    started      BOOLEAN NOT NULL DEFAULT FALSE,
    created_at   TIMESTAMP NOT NULL,
    updated_at   TIMESTAMP NOT NULL
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_records_owner ON records(owner_id)"

_RECORD_COLUMNS = [
    "id", "title", "description", "folder", "category", "owner_id",
    "content_url", "object_key", "file_name", "file_size", "active", "views",
    "created_at", "updated_at",
]
_RECORD_SELECT = f"SELECT {', '.join(_RECORD_COLUMNS)} FROM records"

_USER_COLUMNS = ["id", "display_name", "is_admin", "started", "created_at", "updated_at"]


def _wrap_db_errors(fn):
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except duckdb.Error as exc:
            logger.error("[records] %s failed: %s", fn.__name__, exc)
            raise RecordStoreError(f"Record store {fn.__name__} failed: {exc}") from exc
    return wrapper


class DuckDBRecordStore(RecordStore):
    """Records and users in DuckDB.

    ``increment_views`` is a single conditional ``UPDATE ... RETURNING``, so
    concurrent opens of the same record never lose a count.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        with self._db.cursor() as cur:
            cur.execute(_CREATE_RECORDS)
            cur.execute(_CREATE_USERS)
            cur.execute(_INDEX)

    @staticmethod
    def _row_to_record(row) -> Record:
        return Record(**dict(zip(_RECORD_COLUMNS, row)))

    @staticmethod
    def _row_to_user(row) -> User:
        return User(**dict(zip(_USER_COLUMNS, row)))

    @_wrap_db_errors
    def create(self, record: Record) -> Record:
        data = record.model_dump()
        with self._db.cursor() as cur:
            cur.execute(
                f"INSERT INTO records ({', '.join(_RECORD_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _RECORD_COLUMNS)})",
                [data[c] for c in _RECORD_COLUMNS],
            )
        logger.info("[records] Created %s for owner %s", record.id, record.owner_id)
        return record

    @_wrap_db_errors
    def get(self, record_id: str) -> Optional[Record]:
        with self._db.cursor() as cur:
            row = cur.execute(f"{_RECORD_SELECT} WHERE id = ?", [record_id]).fetchone()
        return self._row_to_record(row) if row else None

    @_wrap_db_errors
    def update(self, record_id: str, **fields) -> Optional[Record]:
        fields = _check_fields(fields)
        if not fields:
            return self.get(record_id)

        fields["updated_at"] = utcnow()
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        with self._db.cursor() as cur:
            row = cur.execute(
                f"UPDATE records SET {set_clause} WHERE id = ? RETURNING {', '.join(_RECORD_COLUMNS)}",
                list(fields.values()) + [record_id],
            ).fetchone()
        return self._row_to_record(row) if row else None

    @_wrap_db_errors
    def delete(self, record_id: str) -> bool:
        with self._db.cursor() as cur:
            row = cur.execute("DELETE FROM records WHERE id = ? RETURNING id", [record_id]).fetchone()
        return row is not None

    @_wrap_db_errors
    def list_by_owner(self, owner_id: int) -> List[Record]:
        with self._db.cursor() as cur:
            rows = cur.execute(
                f"{_RECORD_SELECT} WHERE owner_id = ? ORDER BY created_at DESC, id DESC",
                [owner_id],
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    @_wrap_db_errors
    def increment_views(self, record_id: str) -> Optional[Record]:
        with self._db.cursor() as cur:
            row = cur.execute(
                f"UPDATE records SET views = views + 1 WHERE id = ? AND active "
                f"RETURNING {', '.join(_RECORD_COLUMNS)}",
                [record_id],
            ).fetchone()
        return self._row_to_record(row) if row else None

    @_wrap_db_errors
    def stats(self) -> RecordStats:
        with self._db.cursor() as cur:
            records, active, views = cur.execute(
                "SELECT count(*), count(*) FILTER (WHERE active), coalesce(sum(views), 0) FROM records"
            ).fetchone()
            users = cur.execute("SELECT count(*) FROM users").fetchone()[0]
        return RecordStats(records=records, active_records=active, users=users, total_views=views)

    @_wrap_db_errors
    def upsert_user(
        self,
        user_id: int,
        display_name: str = "",
        is_admin: bool = False,
        started: bool = False,
    ) -> User:
        now = utcnow()
        with self._db.cursor() as cur:
            row = cur.execute(
                f"""
                INSERT INTO users (id, display_name, is_admin, started, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    display_name = excluded.display_name,
                    is_admin     = excluded.is_admin,
                    started      = started OR excluded.started,
                    updated_at   = excluded.updated_at
                RETURNING {', '.join(_USER_COLUMNS)}
                """,
                [user_id, display_name, is_admin, started, now, now],
            ).fetchone()
        return self._row_to_user(row)

    @_wrap_db_errors
    def get_user(self, user_id: int) -> Optional[User]:
        with self._db.cursor() as cur:
            row = cur.execute(
                f"SELECT {', '.join(_USER_COLUMNS)} FROM users WHERE id = ?", [user_id]
            ).fetchone()
        return self._row_to_user(row) if row else None


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryRecordStore(RecordStore):
    """Dict-backed store for tests. View increments are read-modify-write."""

    def __init__(self) -> None:
        self._records: Dict[str, Record] = {}
        self._users: Dict[int, User] = {}
        self._lock = threading.Lock()

    def create(self, record: Record) -> Record:
        with self._lock:
            if record.id in self._records:
                raise RecordStoreError(f"Duplicate record id {record.id}")
            self._records[record.id] = record.model_copy()
        return record

    def get(self, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._records.get(record_id)
        return record.model_copy() if record else None

    def update(self, record_id: str, **fields) -> Optional[Record]:
        fields = _check_fields(fields)
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            if fields:
                record = record.model_copy(update={**fields, "updated_at": utcnow()})
                self._records[record_id] = record
        return record.model_copy()

    def delete(self, record_id: str) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    def list_by_owner(self, owner_id: int) -> List[Record]:
        with self._lock:
            owned = [r.model_copy() for r in self._records.values() if r.owner_id == owner_id]
        return sorted(owned, key=lambda r: (r.created_at, r.id), reverse=True)

    def increment_views(self, record_id: str) -> Optional[Record]:
        record = self.get(record_id)
        if record is None or not record.active:
            return None
        with self._lock:
            updated = record.model_copy(update={"views": record.views + 1})
            self._records[record_id] = updated
        return updated.model_copy()

    def stats(self) -> RecordStats:
        with self._lock:
            records = list(self._records.values())
            users = len(self._users)
        return RecordStats(
            records=len(records),
            active_records=sum(1 for r in records if r.active),
            users=users,
            total_views=sum(r.views for r in records),
        )

    def upsert_user(
        self,
        user_id: int,
        display_name: str = "",
        is_admin: bool = False,
        started: bool = False,
    ) -> User:
        now = utcnow()
        with self._lock:
            existing = self._users.get(user_id)
            user = User(
                id=user_id,
                display_name=display_name,
                is_admin=is_admin,
                started=started or (existing.started if existing else False),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._users[user_id] = user
        return user.model_copy()

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
        return user.model_copy() if user else None
