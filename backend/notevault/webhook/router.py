"""Telegram webhook endpoint.

Endpoints:
    POST /telegram/webhook  receive one Telegram update

Telegram retries any non-2xx answer, so once an update has been parsed the
endpoint always answers 200; failures are reported to the user in chat.
Only an unconfigured service (500) or a bad secret token (403) is rejected.
"""
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Header
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .schemas import Update
from .service import get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook")
def telegram_webhook(
    payload: Dict[str, Any] = Body(...),
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
) -> JSONResponse:
    """Handle one update.

    Returns:
        200 ``{"ok": true}`` whenever the update was accepted, even if its
        handling failed; 403 on a secret mismatch; 500 if not configured.
    """
    service = get_webhook_service()
    if service is None:
        logger.error("[webhook] Update received but the service is not configured")
        return JSONResponse({"ok": False, "error": "Service not configured"}, status_code=500)

    expected = service.settings.secrets.telegram.webhook_secret
    if expected and not secrets.compare_digest(x_telegram_bot_api_secret_token or "", expected):
        logger.warning("[webhook] Rejected update with a bad secret token")
        return JSONResponse({"ok": False, "error": "Forbidden"}, status_code=403)

    try:
        update = Update.model_validate(payload)
    except ValidationError as exc:
        logger.warning("[webhook] Ignoring malformed update: %s", exc.errors()[:3])
        return JSONResponse({"ok": True, "ignored": True})

    logger.info("[webhook] Update %s received", update.update_id)
    try:
        service.handle(update)
    except Exception:
        logger.exception("[webhook] Update %s failed after dispatch", update.update_id)
    return JSONResponse({"ok": True})
