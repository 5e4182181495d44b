"""Timestamp helper shared by the stores.

DuckDB ``TIMESTAMP`` columns are naive, so every stored time is naive UTC.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
