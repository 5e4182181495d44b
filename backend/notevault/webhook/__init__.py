"""Inbound Telegram webhook: parsing, action routing and reply delivery."""
from .dispatcher import ActionRouter, Dispatch
from .router import router
from .schemas import Update
from .service import WebhookService, build_webhook_service, get_webhook_service, set_webhook_service

__all__ = [
    "ActionRouter",
    "Dispatch",
    "Update",
    "WebhookService",
    "build_webhook_service",
    "get_webhook_service",
    "router",
    "set_webhook_service",
]
