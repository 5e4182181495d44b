"""NoteVault application configuration.

Loads settings from two YAML files:
  * notevault.settings.yaml   non-secret configuration
  * notevault.secrets.yaml    secrets (never committed)

``BOT_TOKEN`` and ``ADMIN_IDS`` environment variables override the YAML so
serverless deployments can configure the bot without files.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from notevault.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("notevault.settings.yaml")
SECRETS_FILE  = Path("notevault.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class AwsSecrets(BaseModel):
    access_key_id:     Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token:     Optional[str] = None


class TelegramSecrets(BaseModel):
    bot_token:      Optional[str] = None
    webhook_secret: Optional[str] = None


class NgrokSecrets(BaseModel):
    authtoken: Optional[str] = None


class Secrets(BaseModel):
    aws:      AwsSecrets      = Field(default_factory=AwsSecrets)
    telegram: TelegramSecrets = Field(default_factory=TelegramSecrets)
    ngrok:    NgrokSecrets    = Field(default_factory=NgrokSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "notevault.duckdb"


class SessionSettings(BaseModel):
    """Upload sessions idle longer than ``ttl_minutes`` are dropped on access.

    ``0`` disables expiry.
    """
    ttl_minutes: int = Field(default=60, ge=0)


class UploadSettings(BaseModel):
    allowed_extension: str = ".html"
    max_file_bytes:    int = 20 * 1024 * 1024
    key_prefix:        str = "uploads"

    @field_validator("allowed_extension")
    @classmethod
    def _dotted_lowercase(cls, v: str) -> str:
        v = v.strip().lower()
        return v if v.startswith(".") else f".{v}"

    @field_validator("key_prefix")
    @classmethod
    def _strip_slashes(cls, v: str) -> str:
        return v.strip("/")


class ObjectStoreSettings(BaseModel):
    bucket:                Optional[str] = None
    region:                str           = "us-east-1"
    endpoint_url:          Optional[str] = None
    public_base_url:       Optional[str] = None
    connect_timeout:       float         = 5.0
    read_timeout:          float         = 30.0


class TelegramSettings(BaseModel):
    api_base:        str       = "https://api.telegram.org"
    bot_username:    str       = ""
    timeout_seconds: float     = 20.0
    admin_ids:       List[int] = Field(default_factory=list)


class NgrokSettings(BaseModel):
    enabled: bool = False
    region:  str  = "us"


class AppSettings(BaseModel):
    server:       ServerSettings      = Field(default_factory=ServerSettings)
    logging:      LoggingSettings     = Field(default_factory=LoggingSettings)
    database:     DatabaseSettings    = Field(default_factory=DatabaseSettings)
    sessions:     SessionSettings     = Field(default_factory=SessionSettings)
    uploads:      UploadSettings      = Field(default_factory=UploadSettings)
    object_store: ObjectStoreSettings = Field(default_factory=ObjectStoreSettings)
    telegram:     TelegramSettings    = Field(default_factory=TelegramSettings)
    ngrok:        NgrokSettings       = Field(default_factory=NgrokSettings)
    secrets:      Secrets             = Field(default_factory=Secrets)

    def missing_settings(self) -> List[str]:
        """Names of required settings that are not configured."""
        missing = []
        if not self.secrets.telegram.bot_token:
            missing.append("secrets.telegram.bot_token")
        if not self.object_store.bucket:
            missing.append("object_store.bucket")
        return missing

    def require_ready(self) -> None:
        """Raise ConfigurationError unless the service can handle updates."""
        missing = self.missing_settings()
        if missing:
            raise ConfigurationError(f"Missing configuration: {', '.join(missing)}")

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.telegram.admin_ids


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _parse_admin_ids(raw: str) -> List[int]:
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning("Ignoring non-numeric admin id %r in ADMIN_IDS", part)
    return ids


def _apply_env_overrides(settings: AppSettings) -> None:
    bot_token = os.environ.get("BOT_TOKEN")
    if bot_token:
        settings.secrets.telegram.bot_token = bot_token
        logger.info("Bot token taken from BOT_TOKEN environment variable.")

    admin_ids = os.environ.get("ADMIN_IDS")
    if admin_ids:
        settings.telegram.admin_ids = _parse_admin_ids(admin_ids)
        logger.info("Admin ids taken from ADMIN_IDS (%d ids).", len(settings.telegram.admin_ids))


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_path or SETTINGS_FILE)
    secrets_data  = _load_yaml(secrets_path or SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _apply_env_overrides(app_settings)
    logger.info(
        "Settings loaded (server=%s:%s, bucket=%s, admins=%d, session_ttl=%sm)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.object_store.bucket,
        len(app_settings.telegram.admin_ids),
        app_settings.sessions.ttl_minutes,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(settings: Optional[AppSettings]) -> None:
    """Set (or clear) the process-wide settings."""
    global _config
    _config = settings
