"""Record and object-key allocation.

Record ids are a zero-padded hex millisecond timestamp followed by random
hex, so they sort by creation time and need no coordination. Neither format
contains ``_``, the action-string separator.
"""
import secrets
import time
import uuid
from typing import Optional


def new_record_id(now_ms: Optional[int] = None) -> str:
    ms = int(time.time() * 1000) if now_ms is None else now_ms
    return f"{ms:012x}{secrets.token_hex(4)}"


def new_object_key(prefix: str, extension: str) -> str:
    name = f"{uuid.uuid4().hex}{extension}"
    return f"{prefix}/{name}" if prefix else name
