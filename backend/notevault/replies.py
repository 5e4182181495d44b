"""Outgoing chat messages, independent of the chat platform's wire format."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Button:
    """An inline control: either an action string or an external URL."""
    text: str
    action: Optional[str] = None
    url: Optional[str] = None


@dataclass
class Reply:
    text: str
    buttons: List[List[Button]] = field(default_factory=list)
