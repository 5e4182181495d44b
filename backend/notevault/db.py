"""Shared DuckDB handle for the session and record stores.

DuckDB connections are not safe to share between threads, and FastAPI runs
sync endpoints on a thread pool, so every operation takes its own cursor.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import duckdb

logger = logging.getLogger(__name__)


class Database:
    """Owns the DuckDB connection; hands out short-lived cursors."""

    def __init__(self, path: str = ":memory:") -> None:
        self._path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(path)
        logger.info("[db] Opened DuckDB at %s", path)

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        if self._conn is None:
            raise duckdb.ConnectionException(f"Database {self._path} is closed")
        cur = self._conn.cursor()
        try:
            yield cur
        finally:
            cur.close()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
