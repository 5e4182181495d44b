"""Upload dialogue state machine.

    awaiting_folder → awaiting_category → awaiting_title
        → awaiting_description → awaiting_file → (record created)

Every step reloads the session and checks that it is in exactly the state
the step expects. A mismatch, including a missing session, answers
"session expired" and writes nothing, so stale or duplicated button presses
can never advance some other session. The file step claims (removes) the
session before transferring, so a redelivered document finds no session.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from notevault import messages, taxonomy
from notevault.config import UploadSettings
from notevault.errors import FetchError, RecordStoreError, SessionStoreError, TransferError
from notevault.records.ids import new_record_id
from notevault.records.schemas import Record
from notevault.records.store import RecordStore
from notevault.replies import Reply
from notevault.transfer.service import ContentTransfer
from .schemas import SessionState, UploadSession
from .store import SessionStore

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    STARTED = "started"
    ADVANCED = "advanced"
    COMPLETED = "completed"
    REJECTED = "rejected"
    SESSION_EXPIRED = "session_expired"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class StepResult:
    outcome: StepOutcome
    reply: Reply
    record: Optional[Record] = None


@dataclass(frozen=True)
class Attachment:
    """The parts of a chat document the pipeline looks at."""
    file_id: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None


def _expired() -> StepResult:
    return StepResult(StepOutcome.SESSION_EXPIRED, Reply(messages.SESSION_EXPIRED))


def _storage_failed() -> StepResult:
    return StepResult(StepOutcome.FAILED, Reply(messages.STORAGE_UNAVAILABLE))


class UploadStateMachine:
    """Drives one user's upload dialogue against the injected stores."""

    def __init__(
        self,
        sessions: SessionStore,
        records: RecordStore,
        transfer: ContentTransfer,
        uploads: Optional[UploadSettings] = None,
    ) -> None:
        self._sessions = sessions
        self._records = records
        self._transfer = transfer
        self._uploads = uploads or UploadSettings()

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _expect(self, user_id: int, state: SessionState) -> Optional[UploadSession]:
        session = self._sessions.load(user_id)
        if session is None or session.state is not state:
            logger.info(
                "[upload] user=%s expected %s but session is %s",
                user_id, state.value, session.state.value if session else "absent",
            )
            return None
        return session

    def _drop(self, user_id: int) -> None:
        try:
            self._sessions.delete(user_id)
        except SessionStoreError as exc:
            logger.error("[upload] Could not delete session for user %s: %s", user_id, exc)

    def awaiting_text(self, user_id: int) -> bool:
        """True if the next input for *user_id* is a title or description."""
        try:
            session = self._sessions.load(user_id)
        except SessionStoreError:
            return False
        return session is not None and session.state in (
            SessionState.AWAITING_TITLE,
            SessionState.AWAITING_DESCRIPTION,
        )

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def begin(self, user_id: int) -> StepResult:
        """Start a fresh upload, discarding any session in progress."""
        try:
            self._sessions.delete(user_id)
            self._sessions.save(user_id, state=SessionState.AWAITING_FOLDER, draft={})
        except SessionStoreError:
            return _storage_failed()
        logger.info("[upload] user=%s started an upload", user_id)
        return StepResult(StepOutcome.STARTED, messages.choose_folder())

    def cancel(self, user_id: int) -> StepResult:
        try:
            existing = self._sessions.load(user_id)
            self._sessions.delete(user_id)
        except SessionStoreError:
            return _storage_failed()
        if existing is None:
            return StepResult(StepOutcome.CANCELLED, Reply(messages.NOTHING_TO_CANCEL))
        logger.info("[upload] user=%s cancelled at %s", user_id, existing.state.value)
        return StepResult(StepOutcome.CANCELLED, Reply(messages.UPLOAD_CANCELLED))

    def choose_folder(self, user_id: int, folder_id: str) -> StepResult:
        try:
            if self._expect(user_id, SessionState.AWAITING_FOLDER) is None:
                return _expired()
            folder = taxonomy.get_folder(folder_id)
            if folder is None:
                return StepResult(StepOutcome.REJECTED, messages.choose_folder())
            self._sessions.save(user_id, state=SessionState.AWAITING_CATEGORY, draft={"folder": folder.id})
        except SessionStoreError:
            return _storage_failed()
        return StepResult(StepOutcome.ADVANCED, messages.choose_category(folder))

    def choose_category(self, user_id: int, category_id: str) -> StepResult:
        try:
            session = self._expect(user_id, SessionState.AWAITING_CATEGORY)
            if session is None:
                return _expired()
            folder = taxonomy.get_folder(session.draft.folder or "")
            if folder is None:
                self._drop(user_id)
                return _expired()
            category = taxonomy.get_category(folder.id, category_id)
            if category is None:
                return StepResult(StepOutcome.REJECTED, messages.choose_category(folder))
            self._sessions.save(user_id, state=SessionState.AWAITING_TITLE, draft={"category": category.id})
        except SessionStoreError:
            return _storage_failed()
        return StepResult(StepOutcome.ADVANCED, Reply(f"Category: {category.name}\n{messages.ASK_TITLE}"))

    def receive_text(self, user_id: int, text: str) -> StepResult:
        """Title or description, depending on the session state."""
        try:
            session = self._sessions.load(user_id)
            if session is None or session.state not in (
                SessionState.AWAITING_TITLE,
                SessionState.AWAITING_DESCRIPTION,
            ):
                return _expired()
            if not text or not text.strip():
                return StepResult(StepOutcome.REJECTED, Reply(messages.EMPTY_TEXT))

            if session.state is SessionState.AWAITING_TITLE:
                self._sessions.save(user_id, state=SessionState.AWAITING_DESCRIPTION, draft={"title": text})
                return StepResult(StepOutcome.ADVANCED, Reply(messages.ASK_DESCRIPTION))

            self._sessions.save(user_id, state=SessionState.AWAITING_FILE, draft={"description": text})
        except SessionStoreError:
            return _storage_failed()
        return StepResult(StepOutcome.ADVANCED, messages.ask_file(self._uploads.allowed_extension))

    def receive_file(self, user_id: int, attachment: Attachment) -> StepResult:
        """Validate, transfer and publish the attachment; ends the session."""
        try:
            session = self._expect(user_id, SessionState.AWAITING_FILE)
        except SessionStoreError:
            return _storage_failed()
        if session is None:
            return _expired()

        extension = self._uploads.allowed_extension
        if not (attachment.file_name or "").lower().endswith(extension):
            logger.info("[upload] user=%s sent %r, rejected", user_id, attachment.file_name)
            return StepResult(StepOutcome.REJECTED, messages.wrong_file(attachment.file_name, extension))
        if attachment.file_size and attachment.file_size > self._uploads.max_file_bytes:
            return StepResult(
                StepOutcome.REJECTED,
                messages.file_too_large(attachment.file_size, self._uploads.max_file_bytes),
            )

        # Claiming removes the session; only the claimant publishes.
        try:
            claimed = self._sessions.claim(user_id, SessionState.AWAITING_FILE)
        except SessionStoreError:
            return _storage_failed()
        if claimed is None:
            logger.info("[upload] user=%s file arrived after the session was claimed", user_id)
            return _expired()

        draft = claimed.draft
        if not (draft.folder and draft.category and draft.title and draft.description):
            logger.warning("[upload] user=%s reached awaiting_file with incomplete draft %s", user_id, draft)
            return _expired()

        try:
            stored = self._transfer.transfer(attachment.file_id)
        except TransferError as exc:
            side = "download it from Telegram" if isinstance(exc, FetchError) else "save it to storage"
            return StepResult(
                StepOutcome.FAILED,
                Reply(f"Upload failed: could not {side}. Send /upload to try again."),
            )

        record = Record(
            id=new_record_id(),
            title=draft.title,
            description=draft.description,
            folder=draft.folder,
            category=draft.category,
            owner_id=user_id,
            content_url=stored.url,
            object_key=stored.key,
            file_name=attachment.file_name or "",
            file_size=stored.size,
        )
        try:
            self._records.create(record)
        except RecordStoreError:
            self._transfer.discard(stored.key)
            return StepResult(
                StepOutcome.FAILED,
                Reply("Upload failed: the note could not be saved. Send /upload to try again."),
            )

        logger.info("[upload] user=%s published record %s", user_id, record.id)
        return StepResult(StepOutcome.COMPLETED, messages.record_card(record, header="Note published!"), record)
