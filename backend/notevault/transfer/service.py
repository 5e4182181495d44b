"""Content transfer: chat attachment → object store.

The attachment is buffered whole; notes are small HTML documents. Failures
are split by side so the user hears which system let them down:

    FetchError         getFile / download from Telegram failed
    StorageWriteError  the object store rejected the write
"""
import logging
import mimetypes

import httpx

from notevault.errors import FetchError, StorageWriteError
from notevault.records.ids import new_object_key
from notevault.telegram import TelegramAPIError, TelegramClient, describe_error
from .object_store import ObjectStore, StoredObject

logger = logging.getLogger(__name__)


class ContentTransfer:
    """Moves one attachment from Telegram into the object store.

    Args:
        chat:       Telegram client used to resolve and download the file.
        objects:    Destination object store.
        key_prefix: Namespace for new object keys.
        extension:  Extension given to stored objects (e.g. ``.html``).
    """

    def __init__(
        self,
        chat: TelegramClient,
        objects: ObjectStore,
        key_prefix: str = "uploads",
        extension: str = ".html",
    ) -> None:
        self._chat = chat
        self._objects = objects
        self._key_prefix = key_prefix
        self._extension = extension
        guessed, _ = mimetypes.guess_type(f"file{extension}")
        self._content_type = guessed or "application/octet-stream"

    def fetch(self, file_id: str) -> bytes:
        """Download the attachment bytes.

        Raises:
            FetchError: On any Telegram or network failure, or an empty body.
        """
        try:
            url = self._chat.get_file_url(file_id)
            body = self._chat.download(url)
        except (httpx.HTTPError, TelegramAPIError) as exc:
            reason = describe_error(exc)
            logger.error("[transfer] Fetch of %s failed: %s", file_id, reason)
            raise FetchError(f"Could not download the file from Telegram: {reason}") from exc

        if not body:
            raise FetchError("Telegram returned an empty file")
        logger.info("[transfer] Downloaded %s (%d bytes)", file_id, len(body))
        return body

    def transfer(self, file_id: str) -> StoredObject:
        """Fetch *file_id* and store it publicly under a fresh key.

        Raises:
            FetchError: See :meth:`fetch`.
            StorageWriteError: If the object store write fails.
        """
        body = self.fetch(file_id)
        key = new_object_key(self._key_prefix, self._extension)
        url = self._objects.put_public(key, body, self._content_type)
        return StoredObject(key=key, url=url, size=len(body))

    def copy(self, src_key: str) -> StoredObject:
        """Publish a copy of *src_key* under a fresh key (link regeneration)."""
        key = new_object_key(self._key_prefix, self._extension)
        url = self._objects.copy_public(src_key, key)
        return StoredObject(key=key, url=url)

    def delete(self, key: str) -> None:
        """Remove *key*; raises StorageWriteError on failure."""
        self._objects.delete(key)

    def check(self) -> None:
        self._objects.check()

    def discard(self, key: str) -> None:
        """Best-effort removal of an object nobody references."""
        try:
            self._objects.delete(key)
        except StorageWriteError as exc:
            logger.warning("[transfer] Could not discard orphan object %s: %s", key, exc)
