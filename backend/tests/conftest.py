"""Shared test fixtures for the NoteVault backend.

Every component gets in-memory stores and a fake Telegram client so the suite
runs without network access, DuckDB files, or AWS credentials. DuckDB-specific
tests build their own ``Database`` on ``tmp_path``.
"""
from typing import Dict, List, Optional, Tuple

import httpx
import pytest

from notevault.config import (
    AppSettings,
    ObjectStoreSettings,
    Secrets,
    TelegramSecrets,
    TelegramSettings,
)
from notevault.records.lifecycle import RecordLifecycleManager
from notevault.records.store import InMemoryRecordStore
from notevault.replies import Reply
from notevault.sessions.machine import UploadStateMachine
from notevault.sessions.store import InMemorySessionStore
from notevault.telegram import TelegramAPIError
from notevault.transfer.object_store import InMemoryObjectStore
from notevault.transfer.service import ContentTransfer
from notevault.webhook.dispatcher import ActionRouter
from notevault.webhook.service import WebhookService

ADMIN_ID = 1001
OTHER_ADMIN_ID = 1002
READER_ID = 2002

HTML_BODY = b"<html><body><h1>Cell Biology</h1>" + b"x" * 166 + b"</body></html>"


class FakeTelegram:
    """Stands in for TelegramClient: serves files, records outgoing calls."""

    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.fail_fetch = False
        self.fail_send = False
        self.sent: List[Tuple[int, Reply]] = []
        self.answered: List[Tuple[str, Optional[str]]] = []
        self.webhooks: List[Tuple[str, Optional[str]]] = []

    def get_file_url(self, file_id: str) -> str:
        if file_id not in self.files:
            raise TelegramAPIError(f"getFile: Bad Request: invalid file_id {file_id}")
        return f"https://files.test/{file_id}"

    def download(self, url: str) -> bytes:
        if self.fail_fetch:
            raise httpx.ConnectError("connection refused")
        return self.files[url.rsplit("/", 1)[-1]]

    def send_message(self, chat_id: int, reply: Reply) -> None:
        if self.fail_send:
            raise httpx.ReadTimeout("timed out")
        self.sent.append((chat_id, reply))

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        self.answered.append((callback_query_id, text))

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        self.webhooks.append((url, secret_token))

    def close(self) -> None:
        pass


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        object_store=ObjectStoreSettings(bucket="test-bucket"),
        telegram=TelegramSettings(bot_username="notes_bot", admin_ids=[ADMIN_ID, OTHER_ADMIN_ID]),
        secrets=Secrets(telegram=TelegramSecrets(bot_token="TEST:TOKEN")),
    )


@pytest.fixture
def chat() -> FakeTelegram:
    return FakeTelegram()


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def records() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def objects() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def transfer(chat, objects) -> ContentTransfer:
    return ContentTransfer(chat, objects, key_prefix="uploads", extension=".html")


@pytest.fixture
def machine(sessions, records, transfer, settings) -> UploadStateMachine:
    return UploadStateMachine(sessions, records, transfer, settings.uploads)


@pytest.fixture
def lifecycle(records, transfer, settings) -> RecordLifecycleManager:
    return RecordLifecycleManager(records, transfer, bot_username=settings.telegram.bot_username)


@pytest.fixture
def action_router(settings, machine, lifecycle, records, transfer) -> ActionRouter:
    return ActionRouter(settings, machine, lifecycle, records, connectivity_check=transfer.check)


@pytest.fixture
def webhook_service(settings, action_router, records, chat) -> WebhookService:
    return WebhookService(settings, action_router, records, chat)


# ---------------------------------------------------------------------------
# Update builders
# ---------------------------------------------------------------------------

_counter = {"update": 0}


def _next_id() -> int:
    _counter["update"] += 1
    return _counter["update"]


def _user(user_id: int) -> dict:
    return {"id": user_id, "is_bot": False, "first_name": f"User{user_id}"}


def message_update(user_id: int, text: Optional[str] = None, document: Optional[dict] = None) -> dict:
    message = {
        "message_id": _next_id(),
        "date": 1700000000,
        "chat": {"id": user_id, "type": "private"},
        "from": _user(user_id),
    }
    if text is not None:
        message["text"] = text
    if document is not None:
        message["document"] = document
    return {"update_id": _next_id(), "message": message}


def document(file_id: str = "file-1", file_name: str = "notes.html", file_size: int = 200) -> dict:
    return {"file_id": file_id, "file_unique_id": f"u-{file_id}", "file_name": file_name, "file_size": file_size}


def callback_update(user_id: int, data: str) -> dict:
    return {
        "update_id": _next_id(),
        "callback_query": {
            "id": f"cb-{_next_id()}",
            "from": _user(user_id),
            "chat_instance": "ci",
            "data": data,
            "message": {
                "message_id": _next_id(),
                "date": 1700000000,
                "chat": {"id": user_id, "type": "private"},
            },
        },
    }
