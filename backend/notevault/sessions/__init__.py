"""Upload sessions: persistence and the dialogue state machine."""
from .machine import Attachment, StepOutcome, StepResult, UploadStateMachine
from .schemas import Draft, SessionState, UploadSession
from .store import DuckDBSessionStore, InMemorySessionStore, SessionStore

__all__ = [
    "Attachment",
    "Draft",
    "DuckDBSessionStore",
    "InMemorySessionStore",
    "SessionState",
    "SessionStore",
    "StepOutcome",
    "StepResult",
    "UploadSession",
    "UploadStateMachine",
]
