"""Telegram Bot API client.

Only the handful of methods NoteVault needs: resolve and download an
attachment, send a message with an inline keyboard, acknowledge a button
press, and register the webhook. Every call carries the configured timeout.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from notevault.errors import NoteVaultError
from notevault.replies import Button, Reply

logger = logging.getLogger(__name__)


class TelegramAPIError(NoteVaultError):
    """Telegram answered with ``ok: false`` or an unreadable body."""


def describe_error(exc: Exception) -> str:
    """Loggable summary of a client error.

    httpx error texts include the request URL, which carries the bot token.
    """
    if isinstance(exc, TelegramAPIError):
        return str(exc)
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return type(exc).__name__


class TelegramClient:
    """Thin synchronous wrapper over the Bot API.

    Args:
        token:     Bot token from BotFather.
        api_base:  API root, overridable for local Bot API servers.
        timeout:   Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 20.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        resp = self._client.post(f"{self._api_base}/bot{self._token}/{method}", json=payload)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TelegramAPIError(f"{method}: HTTP {resp.status_code} with non-JSON body") from exc

        if not data.get("ok"):
            raise TelegramAPIError(f"{method}: {data.get('description', resp.status_code)}")
        return data.get("result")

    @staticmethod
    def _keyboard(buttons: List[List[Button]]) -> Dict[str, Any]:
        rows = []
        for row in buttons:
            cells = []
            for b in row:
                cell: Dict[str, Any] = {"text": b.text}
                if b.url:
                    cell["url"] = b.url
                else:
                    cell["callback_data"] = b.action
                cells.append(cell)
            rows.append(cells)
        return {"inline_keyboard": rows}

    # -----------------------------------------------------------------------
    # Files
    # -----------------------------------------------------------------------

    def get_file_url(self, file_id: str) -> str:
        """Resolve *file_id* to a temporary download URL via ``getFile``."""
        result = self._call("getFile", {"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise TelegramAPIError(f"getFile returned no file_path for {file_id}")
        return f"{self._api_base}/file/bot{self._token}/{file_path}"

    def download(self, url: str) -> bytes:
        """Fetch the whole body at *url*."""
        resp = self._client.get(url)
        resp.raise_for_status()
        return resp.content

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def send_message(self, chat_id: int, reply: Reply) -> None:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": reply.text,
            "disable_web_page_preview": True,
        }
        if reply.buttons:
            payload["reply_markup"] = self._keyboard(reply.buttons)
        self._call("sendMessage", payload)

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        self._call("answerCallbackQuery", payload)

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {
            "url": url,
            "allowed_updates": ["message", "callback_query"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        self._call("setWebhook", payload)
        logger.info("[telegram] Webhook registered at %s", url)

    def close(self) -> None:
        self._client.close()
