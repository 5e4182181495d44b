"""Development tunnel: exposes the local server to Telegram via ngrok.

Telegram can only deliver webhooks to a public HTTPS URL. In development the
server starts ngrok, reads the tunnel URL from ngrok's local API, and
registers ``<url>/telegram/webhook`` with ``setWebhook``.
"""
import asyncio
import logging
import subprocess
from typing import Optional

import httpx

from notevault.telegram import TelegramAPIError, TelegramClient, describe_error

logger = logging.getLogger(__name__)

NGROK_API = "http://localhost:4040/api/tunnels"
WEBHOOK_PATH = "/telegram/webhook"

# Module-level state
_ngrok_process: Optional[subprocess.Popen] = None
_public_url: Optional[str] = None


async def _get_tunnel_url() -> Optional[str]:
    """Read the HTTPS tunnel URL from ngrok's local API, if it is running."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(NGROK_API, timeout=2.0)
    except httpx.HTTPError:
        return None
    if response.status_code != 200:
        return None
    tunnels = response.json().get("tunnels", [])
    for tunnel in tunnels:
        if tunnel.get("proto") == "https":
            return tunnel.get("public_url")
    return None


async def start_tunnel(port: int, authtoken: Optional[str] = None, region: str = "us") -> Optional[str]:
    """Start (or reuse) an ngrok tunnel to *port*; None if unavailable."""
    global _ngrok_process, _public_url

    existing = await _get_tunnel_url()
    if existing:
        _public_url = existing
        logger.info("[tunnel] Reusing running ngrok tunnel: %s", existing)
        return existing

    cmd = ["ngrok", "http", str(port), "--region", region]
    if authtoken:
        cmd += ["--authtoken", authtoken]
    try:
        _ngrok_process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except FileNotFoundError:
        logger.error("[tunnel] ngrok is not installed: https://ngrok.com/download")
        return None

    for _ in range(10):
        await asyncio.sleep(1)
        url = await _get_tunnel_url()
        if url:
            _public_url = url
            logger.info("[tunnel] ngrok tunnel established: %s", url)
            return url

    logger.error("[tunnel] ngrok started but reported no HTTPS tunnel")
    return None


def register_webhook(chat: TelegramClient, base_url: str, secret_token: Optional[str] = None) -> bool:
    """Point Telegram at ``<base_url>/telegram/webhook``."""
    try:
        chat.set_webhook(f"{base_url.rstrip('/')}{WEBHOOK_PATH}", secret_token=secret_token)
    except (httpx.HTTPError, TelegramAPIError) as exc:
        logger.error("[tunnel] setWebhook failed: %s", describe_error(exc))
        return False
    return True


def get_public_url() -> Optional[str]:
    return _public_url


def stop_tunnel() -> None:
    """Terminate the ngrok process started by this server, if any."""
    global _ngrok_process, _public_url
    if _ngrok_process:
        _ngrok_process.terminate()
        _ngrok_process = None
        _public_url = None
        logger.info("[tunnel] ngrok tunnel stopped")
