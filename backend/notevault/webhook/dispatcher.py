"""Action router: one Telegram update in, a list of replies out.

Commands, plain text, documents and button presses are all reduced to a call
on the upload state machine or the record lifecycle manager. Nothing raised
below this layer escapes ``dispatch``; every failure becomes a reply.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from notevault import messages
from notevault.actions import Action, ActionKind, decode
from notevault.config import AppSettings
from notevault.errors import (
    AccessDeniedError,
    NoteVaultError,
    PermissionDeniedError,
    RecordNotFoundError,
    RecordStoreError,
    StorageWriteError,
    ValidationFailure,
)
from notevault.records.lifecycle import RecordLifecycleManager
from notevault.records.store import RecordStore
from notevault.replies import Button, Reply
from notevault.sessions.machine import Attachment, UploadStateMachine
from .schemas import TelegramCallbackQuery, TelegramMessage, TelegramUser, Update

logger = logging.getLogger(__name__)

COMMANDS = frozenset({"start", "help", "cancel", "upload", "mynotes", "stats", "check"})


def _command_name(text: str) -> str:
    """Command name without the slash, bot suffix or arguments."""
    head = text.strip().partition(" ")[0]
    return head[1:].split("@", 1)[0].lower()


@dataclass
class Dispatch:
    """What the webhook should send back for one update."""
    chat_id: Optional[int] = None
    replies: List[Reply] = field(default_factory=list)
    callback_query_id: Optional[str] = None
    callback_text: Optional[str] = None


class ActionRouter:
    """Routes updates to the state machine and lifecycle manager."""

    def __init__(
        self,
        settings: AppSettings,
        machine: UploadStateMachine,
        lifecycle: RecordLifecycleManager,
        records: RecordStore,
        connectivity_check: Optional[Callable[[], None]] = None,
    ) -> None:
        self._settings = settings
        self._machine = machine
        self._lifecycle = lifecycle
        self._records = records
        self._connectivity_check = connectivity_check

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    def dispatch(self, update: Update) -> Dispatch:
        result = Dispatch()
        try:
            if update.callback_query is not None:
                query = update.callback_query
                result.callback_query_id = query.id
                result.chat_id = query.message.chat.id if query.message else query.from_user.id
                reply, toast = self._on_callback(query)
                result.replies.append(reply)
                result.callback_text = toast
            elif update.message is not None:
                result.chat_id = update.message.chat.id
                reply = self._on_message(update.message)
                if reply is not None:
                    result.replies.append(reply)
            else:
                logger.debug("[router] Ignoring update %s with no message or callback", update.update_id)
        except NoteVaultError as exc:
            logger.error("[router] Update %s failed: %s", update.update_id, exc)
            result.replies = [Reply(messages.GENERIC_FAILURE)]
        except Exception:
            logger.exception("[router] Unexpected error handling update %s", update.update_id)
            result.replies = [Reply(messages.GENERIC_FAILURE)]
        return result

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _touch(self, user: TelegramUser, started: bool = False) -> None:
        try:
            self._records.upsert_user(
                user.id,
                display_name=user.display_name,
                is_admin=self._settings.is_admin(user.id),
                started=started,
            )
        except RecordStoreError as exc:
            logger.warning("[router] Could not record contact from user %s: %s", user.id, exc)

    def _is_admin(self, user_id: int) -> bool:
        return self._settings.is_admin(user_id)

    def _guard_record_op(self, fn: Callable[[], Reply]) -> Reply:
        try:
            return fn()
        except RecordNotFoundError:
            return Reply(messages.RECORD_GONE)
        except PermissionDeniedError:
            return Reply(messages.NOT_OWNER)
        except AccessDeniedError:
            return Reply(messages.START_FIRST)
        except ValidationFailure as exc:
            return Reply(str(exc))
        except StorageWriteError as exc:
            logger.error("[router] Storage operation failed: %s", exc)
            return Reply("Storage failed; the note was not changed. Please try again.")
        except RecordStoreError as exc:
            logger.error("[router] Record store operation failed: %s", exc)
            return Reply("The database is unavailable; nothing was changed. Please try again.")

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def _on_message(self, message: TelegramMessage) -> Optional[Reply]:
        user = message.from_user
        if user is None:
            return None

        if message.document is not None:
            self._touch(user)
            doc = message.document
            attachment = Attachment(file_id=doc.file_id, file_name=doc.file_name, file_size=doc.file_size)
            return self._machine.receive_file(user.id, attachment).reply

        text = message.text
        if text is None:
            self._touch(user)
            return Reply("I can only handle text messages and files.")

        if text.startswith("/") and (
            _command_name(text) in COMMANDS or not self._machine.awaiting_text(user.id)
        ):
            return self._on_command(user, text)

        self._touch(user)
        return self._machine.receive_text(user.id, text).reply

    def _on_command(self, user: TelegramUser, text: str) -> Reply:
        command = _command_name(text)
        arg = text.strip().partition(" ")[2].strip()

        if command == "start":
            self._touch(user, started=True)
            if arg:
                action = decode(arg)
                if action.kind is ActionKind.OPEN:
                    return self._open(user.id, action.target)
                return Reply(messages.UNRECOGNIZED_ACTION)
            return messages.welcome(user.display_name, self._is_admin(user.id))

        self._touch(user)
        if command == "help":
            return Reply(messages.HELP)
        if command == "cancel":
            return self._machine.cancel(user.id).reply
        if command in ("upload", "mynotes", "stats", "check"):
            if not self._is_admin(user.id):
                return Reply(messages.ADMIN_REQUIRED)
            if command == "upload":
                return self._machine.begin(user.id).reply
            if command == "mynotes":
                return self._my_notes(user.id)
            if command == "stats":
                return self._guard_record_op(lambda: messages.stats(self._lifecycle.stats()))
            return self._check()
        return Reply(messages.UNRECOGNIZED_COMMAND)

    # -----------------------------------------------------------------------
    # Button presses
    # -----------------------------------------------------------------------

    def _on_callback(self, query: TelegramCallbackQuery):
        user = query.from_user
        self._touch(user)
        action = decode(query.data)
        logger.info("[router] user=%s pressed %r -> %s", user.id, query.data, action.kind.value)
        return self._route(user.id, action)

    def _route(self, user_id: int, action: Action):
        """Dispatch a decoded action; returns (reply, toast)."""
        admin_only = action.kind not in (ActionKind.OPEN, ActionKind.CANCEL, ActionKind.UNKNOWN)
        if admin_only and not self._is_admin(user_id):
            return Reply(messages.ADMIN_REQUIRED), messages.ADMIN_REQUIRED

        rid = action.target
        match action.kind:
            case ActionKind.UPLOAD:
                return self._machine.begin(user_id).reply, None
            case ActionKind.FOLDER:
                return self._machine.choose_folder(user_id, rid).reply, None
            case ActionKind.CATEGORY:
                return self._machine.choose_category(user_id, rid).reply, None
            case ActionKind.CANCEL:
                return self._machine.cancel(user_id).reply, None
            case ActionKind.OPEN:
                return self._open(user_id, rid), None
            case ActionKind.MY_NOTES:
                return self._my_notes(user_id), None
            case ActionKind.MANAGE:
                return self._guard_record_op(
                    lambda: messages.record_card(self._lifecycle.get_owned(rid, user_id))
                ), None
            case ActionKind.SHARE:
                return self._guard_record_op(lambda: self._share(rid, user_id)), None
            case ActionKind.REVOKE:
                return self._guard_record_op(
                    lambda: messages.record_card(self._lifecycle.revoke(rid, user_id), header="Note revoked.")
                ), "Revoked"
            case ActionKind.RESTORE:
                return self._guard_record_op(
                    lambda: messages.record_card(self._lifecycle.restore(rid, user_id), header="Note restored.")
                ), "Restored"
            case ActionKind.REGEN:
                return self._guard_record_op(
                    lambda: messages.record_card(
                        self._lifecycle.regenerate_link(rid, user_id), header="New link generated."
                    )
                ), None
            case ActionKind.DELETE:
                return self._guard_record_op(
                    lambda: Reply(f"Deleted \"{self._lifecycle.delete(rid, user_id).title}\".")
                ), None
            case ActionKind.UNKNOWN:
                return Reply(messages.UNRECOGNIZED_ACTION), "Unrecognized action"

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    def _open(self, user_id: int, record_id: Optional[str]) -> Reply:
        def _view() -> Reply:
            return messages.open_note(self._lifecycle.increment_view(record_id, user_id))

        try:
            return _view()
        except RecordNotFoundError:
            return Reply(messages.NOTE_UNAVAILABLE)
        except AccessDeniedError:
            return Reply(messages.START_FIRST)
        except RecordStoreError as exc:
            logger.error("[router] View of %s failed: %s", record_id, exc)
            return Reply(messages.GENERIC_FAILURE)

    def _share(self, record_id: str, user_id: int) -> Reply:
        link = self._lifecycle.share_link(record_id, user_id)
        return Reply(f"Share this link:\n{link}", buttons=[[Button("Open", url=link)]])

    def _my_notes(self, user_id: int) -> Reply:
        return self._guard_record_op(lambda: messages.record_list(self._lifecycle.owner_records(user_id)))

    def _check(self) -> Reply:
        lines = ["Connectivity check:"]
        try:
            self._records.stats()
            lines.append("Database: OK")
        except RecordStoreError as exc:
            lines.append(f"Database: FAILED ({exc})")
        if self._connectivity_check is not None:
            try:
                self._connectivity_check()
                lines.append("Object storage: OK")
            except StorageWriteError as exc:
                lines.append(f"Object storage: FAILED ({exc})")
        return Reply("\n".join(lines))
