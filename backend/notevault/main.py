"""NoteVault backend application.

Administrators upload HTML notes through a guided Telegram dialogue; the
service stores them in S3-compatible object storage, keeps metadata in
DuckDB, and lets readers open published notes through deep links.

Modules:
    - webhook:  Telegram update parsing, action routing, reply delivery
    - sessions: upload dialogue state machine and session persistence
    - records:  record/user persistence and lifecycle operations
    - transfer: attachment download and object storage
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from notevault import __version__
from notevault.config import get_config
from notevault.errors import ConfigurationError, RecordStoreError
from notevault.tunnel import get_public_url, register_webhook, start_tunnel, stop_tunnel
from notevault.webhook.router import router as webhook_router
from notevault.webhook.service import build_webhook_service, get_webhook_service, set_webhook_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# botocore logs signed request details; urllib3/httpx/httpcore log every
# connection, and httpx request lines include the bot token in the URL.
for _noisy in (
    "botocore",
    "boto3",
    "s3transfer",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    built = None
    if get_webhook_service() is None:
        try:
            built = build_webhook_service(config)
            set_webhook_service(built)
        except ConfigurationError as exc:
            logger.error("%s; webhook disabled until configured.", exc)

    service = get_webhook_service()
    if config.ngrok.enabled and service is not None:
        public_url = await start_tunnel(
            port=config.server.port,
            authtoken=config.secrets.ngrok.authtoken,
            region=config.ngrok.region,
        )
        if public_url:
            register_webhook(service.chat, public_url, config.secrets.telegram.webhook_secret)
        else:
            logger.warning("ngrok unavailable; register the webhook URL manually.")

    yield  # Application runs here

    stop_tunnel()
    if built is not None:
        built.close()
        set_webhook_service(None)
    logger.info("Application shutdown complete")


app = FastAPI(
    title="NoteVault API",
    description="Telegram bot backend for uploading and publishing notes",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(webhook_router)


@app.get("/health")
def health() -> JSONResponse:
    """Service status with aggregate counters.

    Returns:
        200 with record/user/view counts, or 503 when the service is not
        configured or the database cannot be read.
    """
    service = get_webhook_service()
    if service is None:
        return JSONResponse(
            {"status": "unconfigured", "missing": get_config().missing_settings()},
            status_code=503,
        )
    try:
        stats = service.records.stats()
    except RecordStoreError as exc:
        return JSONResponse({"status": "degraded", "error": str(exc)}, status_code=503)
    return JSONResponse({
        "status": "ok",
        "version": __version__,
        "public_url": get_public_url(),
        **stats.model_dump(),
    })
