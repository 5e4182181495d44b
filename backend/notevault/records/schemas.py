"""Pydantic schemas for published records and the users who touch them.

A ``Record`` is one uploaded note: its metadata lives in the record store and
its bytes live in the object store under ``object_key``. ``content_url`` is
the public URL handed to readers; regenerating a link moves both fields to a
fresh copy of the object.
"""
from datetime import datetime

from pydantic import BaseModel, Field

from notevault.clock import utcnow


class Record(BaseModel):
    """A finalized note."""
    id: str = Field(..., description="Time-ordered record token")
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    folder: str = Field(..., description="Folder id from the taxonomy")
    category: str = Field(..., description="Category id within the folder")
    owner_id: int = Field(..., description="Uploading administrator")
    content_url: str = Field(..., description="Public URL of the stored object")
    object_key: str = Field(..., description="Object store key backing content_url")
    file_name: str = Field(default="", description="Attachment name as sent")
    file_size: int = Field(default=0, ge=0, description="Stored size in bytes")
    active: bool = Field(default=True, description="False once revoked")
    views: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class User(BaseModel):
    """Anyone who has contacted the bot."""
    id: int
    display_name: str = ""
    is_admin: bool = False
    started: bool = Field(default=False, description="Has sent /start at least once")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RecordStats(BaseModel):
    """Aggregate counters exposed by /health and /stats."""
    records: int = 0
    active_records: int = 0
    users: int = 0
    total_views: int = 0
