"""Wiring: builds the stores and clients from settings and delivers replies.

A module-level singleton is initialised in ``notevault/main.py`` at startup;
while it is unset the webhook answers 500 and /health answers 503.
"""
import logging
from typing import Optional

import httpx

from notevault.config import AppSettings
from notevault.db import Database
from notevault.records.lifecycle import RecordLifecycleManager
from notevault.records.store import DuckDBRecordStore, RecordStore
from notevault.sessions.machine import UploadStateMachine
from notevault.sessions.store import DuckDBSessionStore
from notevault.telegram import TelegramAPIError, TelegramClient, describe_error
from notevault.transfer.object_store import S3ObjectStore
from notevault.transfer.service import ContentTransfer
from .dispatcher import ActionRouter, Dispatch
from .schemas import Update

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_service: Optional["WebhookService"] = None


def get_webhook_service() -> Optional["WebhookService"]:
    """Return the global WebhookService, or None if not configured."""
    return _service


def set_webhook_service(service: Optional["WebhookService"]) -> None:
    """Set (or clear) the global WebhookService."""
    global _service
    _service = service


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class WebhookService:
    """Handles one update end to end: dispatch, then best-effort delivery."""

    def __init__(
        self,
        settings: AppSettings,
        router: ActionRouter,
        records: RecordStore,
        chat: TelegramClient,
        database: Optional[Database] = None,
    ) -> None:
        self.settings = settings
        self.router = router
        self.records = records
        self.chat = chat
        self._database = database

    def handle(self, update: Update) -> Dispatch:
        result = self.router.dispatch(update)
        self.deliver(result)
        return result

    def deliver(self, result: Dispatch) -> None:
        if result.callback_query_id:
            try:
                self.chat.answer_callback_query(result.callback_query_id, result.callback_text)
            except (httpx.HTTPError, TelegramAPIError) as exc:
                logger.warning("[webhook] answerCallbackQuery failed: %s", describe_error(exc))

        if result.chat_id is None:
            return
        for reply in result.replies:
            try:
                self.chat.send_message(result.chat_id, reply)
            except (httpx.HTTPError, TelegramAPIError) as exc:
                logger.error("[webhook] sendMessage to %s failed: %s", result.chat_id, describe_error(exc))

    def close(self) -> None:
        self.chat.close()
        if self._database is not None:
            self._database.close()


def build_webhook_service(settings: AppSettings) -> WebhookService:
    """Construct the production object graph.

    Raises:
        ConfigurationError: If the bot token or bucket is missing.
    """
    settings.require_ready()

    database = Database(settings.database.path)
    sessions = DuckDBSessionStore(database, ttl_minutes=settings.sessions.ttl_minutes)
    records = DuckDBRecordStore(database)

    chat = TelegramClient(
        token=settings.secrets.telegram.bot_token,
        api_base=settings.telegram.api_base,
        timeout=settings.telegram.timeout_seconds,
    )
    store_cfg = settings.object_store
    aws = settings.secrets.aws
    objects = S3ObjectStore(
        bucket=store_cfg.bucket,
        region=store_cfg.region,
        endpoint_url=store_cfg.endpoint_url,
        public_base_url=store_cfg.public_base_url,
        aws_access_key_id=aws.access_key_id,
        aws_secret_access_key=aws.secret_access_key,
        aws_session_token=aws.session_token,
        connect_timeout=store_cfg.connect_timeout,
        read_timeout=store_cfg.read_timeout,
    )
    transfer = ContentTransfer(
        chat,
        objects,
        key_prefix=settings.uploads.key_prefix,
        extension=settings.uploads.allowed_extension,
    )

    machine = UploadStateMachine(sessions, records, transfer, settings.uploads)
    lifecycle = RecordLifecycleManager(records, transfer, bot_username=settings.telegram.bot_username)
    router = ActionRouter(settings, machine, lifecycle, records, connectivity_check=transfer.check)
    logger.info(
        "[webhook] Service ready: db=%s bucket=%s prefix=%s",
        database.path, store_cfg.bucket, settings.uploads.key_prefix,
    )
    return WebhookService(settings, router, records, chat, database)
