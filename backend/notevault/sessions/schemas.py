"""Pydantic schemas for upload sessions.

A session tracks one administrator's progress through the upload dialogue.
``state`` always names the next piece of information the bot expects; the
``draft`` accumulates the record fields collected so far.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from notevault.clock import utcnow


class SessionState(str, Enum):
    """Upload dialogue steps, in order."""
    AWAITING_FOLDER = "awaiting_folder"
    AWAITING_CATEGORY = "awaiting_category"
    AWAITING_TITLE = "awaiting_title"
    AWAITING_DESCRIPTION = "awaiting_description"
    AWAITING_FILE = "awaiting_file"


class Draft(BaseModel):
    """Record fields collected before the attachment arrives."""
    folder: Optional[str] = None
    category: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class UploadSession(BaseModel):
    user_id: int = Field(..., description="Owning user")
    state: SessionState = Field(..., description="Next expected input")
    draft: Draft = Field(default_factory=Draft)
    updated_at: datetime = Field(default_factory=utcnow, description="Last write (naive UTC)")
