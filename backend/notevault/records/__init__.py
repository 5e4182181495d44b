"""Published records: schemas, persistence and lifecycle."""
from .schemas import Record, RecordStats, User
from .store import DuckDBRecordStore, InMemoryRecordStore, RecordStore

__all__ = [
    "DuckDBRecordStore",
    "InMemoryRecordStore",
    "Record",
    "RecordStats",
    "RecordStore",
    "User",
]
