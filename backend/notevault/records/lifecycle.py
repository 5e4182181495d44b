"""Record lifecycle: visibility, links, deletion and views.

Every operation re-reads its target, because buttons outlive the records they
point at. Mutations are owner-only. ``revoke`` and ``regenerate_link`` are
independent: revoking hides the record from readers, regenerating publishes a
fresh copy of the object under a new key. Old object URLs stay fetchable.
"""
import logging
from typing import List, Union

from notevault.errors import (
    AccessDeniedError,
    PermissionDeniedError,
    RecordNotFoundError,
    RecordStoreError,
    StorageWriteError,
    ValidationFailure,
)
from notevault.transfer.service import ContentTransfer
from .schemas import Record, RecordStats
from .store import RecordStore

logger = logging.getLogger(__name__)

DEEP_LINK_BASE = "https://t.me"


def coerce_user_id(value: Union[int, str]) -> int:
    """Accept an int or a decimal string; reject everything else."""
    if isinstance(value, bool):
        raise ValidationFailure(f"Invalid user id {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    raise ValidationFailure(f"Invalid user id {value!r}")


class RecordLifecycleManager:
    """Owner operations on published records plus the reader view path.

    Args:
        records:      Record/user store.
        transfer:     Used to copy and delete backing objects.
        bot_username: Bot handle used to build share deep links.
    """

    def __init__(self, records: RecordStore, transfer: ContentTransfer, bot_username: str = "") -> None:
        self._records = records
        self._transfer = transfer
        self._bot_username = bot_username.lstrip("@")

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _owned(self, record_id: str, actor_id: int) -> Record:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        if record.owner_id != actor_id:
            logger.warning("[lifecycle] user=%s tried to manage %s owned by %s", actor_id, record_id, record.owner_id)
            raise PermissionDeniedError(f"User {actor_id} does not own record {record_id}")
        return record

    def _set_active(self, record_id: str, actor_id: int, active: bool) -> Record:
        record = self._owned(record_id, actor_id)
        if record.active is active:
            return record
        updated = self._records.update(record_id, active=active)
        if updated is None:
            raise RecordNotFoundError(record_id)
        logger.info("[lifecycle] %s %s by user %s", "Restored" if active else "Revoked", record_id, actor_id)
        return updated

    # -----------------------------------------------------------------------
    # Owner operations
    # -----------------------------------------------------------------------

    def get_owned(self, record_id: str, actor_id: int) -> Record:
        return self._owned(record_id, actor_id)

    def revoke(self, record_id: str, actor_id: int) -> Record:
        """Hide the record from readers. Revoking twice is a no-op."""
        return self._set_active(record_id, actor_id, False)

    def restore(self, record_id: str, actor_id: int) -> Record:
        return self._set_active(record_id, actor_id, True)

    def regenerate_link(self, record_id: str, actor_id: int) -> Record:
        """Publish a copy of the object under a new key and point the record at it.

        Raises:
            StorageWriteError: If the copy fails; the record is unchanged.
            RecordStoreError: If the record update fails; the copy is discarded.
        """
        record = self._owned(record_id, actor_id)
        stored = self._transfer.copy(record.object_key)
        try:
            updated = self._records.update(record_id, content_url=stored.url, object_key=stored.key)
        except RecordStoreError:
            self._transfer.discard(stored.key)
            raise
        if updated is None:
            self._transfer.discard(stored.key)
            raise RecordNotFoundError(record_id)
        logger.info("[lifecycle] New link for %s: %s (old key %s kept)", record_id, stored.key, record.object_key)
        return updated

    def delete(self, record_id: str, actor_id: int) -> Record:
        """Delete the metadata, then best-effort delete the object."""
        record = self._owned(record_id, actor_id)
        if not self._records.delete(record_id):
            raise RecordNotFoundError(record_id)
        try:
            self._transfer.delete(record.object_key)
        except StorageWriteError as exc:
            logger.warning("[lifecycle] Record %s deleted but object %s remains: %s", record_id, record.object_key, exc)
        logger.info("[lifecycle] Deleted %s by user %s", record_id, actor_id)
        return record

    def share_link(self, record_id: str, actor_id: int) -> str:
        record = self._owned(record_id, actor_id)
        if not self._bot_username:
            return record.content_url
        return f"{DEEP_LINK_BASE}/{self._bot_username}?start=open_{record.id}"

    def owner_records(self, owner_id: Union[int, str]) -> List[Record]:
        """All records of *owner_id*, newest first."""
        return self._records.list_by_owner(coerce_user_id(owner_id))

    # -----------------------------------------------------------------------
    # Readers
    # -----------------------------------------------------------------------

    def increment_view(self, record_id: str, user_id: int) -> Record:
        """Count a view and return the record (with its URL).

        Raises:
            AccessDeniedError: The user never sent /start.
            RecordNotFoundError: No such record, or it has been revoked.
        """
        user = self._records.get_user(user_id)
        if user is None or not user.started:
            raise AccessDeniedError(f"User {user_id} has not started the bot")
        record = self._records.increment_views(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def stats(self) -> RecordStats:
        return self._records.stats()
