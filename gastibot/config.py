"""
Configuration module for the Gasti.pro expense bot.
Loads environment variables once and exposes them as an immutable object.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Mapping, Optional

import pytz
from dotenv import load_dotenv

from gastibot.errors import ConfigError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent

# Closed category set accepted by Gasti.pro (emoji included)
EXPENSE_CATEGORIES: tuple[str, ...] = (
    "💰 Ahorros",
    "🚗 Auto",
    "⛽ Combustible",
    "🍽️ Comida",
    "🎨 Decoración",
    "⚽ Deportes",
    "🤝 Donaciones",
    "📚 Educación",
    "💼 Emprendimiento",
    "🎮 Entretenimiento",
    "🅿️ Estacionamiento",
    "💊 Farmacia",
    "🏋️ Gimnasio",
    "👼 Hijos",
    "🎨 Hobbies",
    "📈 Inversiones",
    "🔧 Mantenimiento",
    "🐶 Mascotas",
    "📦 Otros",
    "💑 Pareja",
    "🏦 Prestamos",
    "🔄 Reconciliación de cuenta",
    "🎁 Regalos",
    "👕 Ropa",
    "🏥 Salud",
    "🔒 Seguros",
    "🚰 Servicios",
    "📱 Subscripciones",
    "🛒 Supermercado",
    "💳 Tarjetas",
    "💼 Trabajo",
    "🚌 Transporte",
    "🌴 Vacaciones",
    "🏠 Vivienda",
)

FALLBACK_CATEGORY = "📦 Otros"

# Where /gastos reads from: the dated RPC over the whole history window, or
# the backend's own monthly summary RPC
LISTING_RPCS = ("by_period", "summary")

REQUIRED_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "DEEPSEEK_API_KEY",
    "GASTI_REFRESH_TOKEN",
    "GASTI_API_URL",
    "SUPABASE_APIKEY",
    "GASTI_USER_EMAIL",
    "GASTI_USER_ID",
)


def _data_dir(env: Mapping[str, str]) -> Path:
    # Use RAILWAY_VOLUME_MOUNT_PATH if available (for persistent storage)
    volume_path = env.get("RAILWAY_VOLUME_MOUNT_PATH", "")
    if volume_path:
        return Path(volume_path)
    return BASE_DIR / "data"


@dataclass(frozen=True)
class Config:
    """Application configuration, built once at startup and passed around."""

    # Telegram
    telegram_bot_token: str
    allowed_user_ids: tuple[int, ...] = ()

    # DeepSeek (OpenAI-compatible API)
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com"
    llm_model: str = "deepseek-chat"
    query_model: str = "deepseek-chat"

    # Gasti.pro / Supabase
    gasti_refresh_token: str = ""
    gasti_api_url: str = ""
    supabase_url: str = ""
    supabase_apikey: str = ""
    gasti_user_email: str = ""
    gasti_user_id: str = ""

    # Storage
    data_dir: Path = field(default_factory=lambda: BASE_DIR / "data")
    token_store_path: Path = field(default_factory=lambda: BASE_DIR / "data" / "gasti_token.json")

    # Locale and reporting
    timezone: str = "America/Argentina/Buenos_Aires"
    history_floor: date = date(2020, 1, 1)
    listing_rpc: str = "by_period"
    http_timeout: float = 30.0
    log_level: str = "INFO"

    @property
    def auth_url(self) -> str:
        """Base URL of the Supabase auth service."""
        return (self.supabase_url or self.gasti_api_url).rstrip("/")

    @property
    def api_url(self) -> str:
        return self.gasti_api_url.rstrip("/")

    def is_user_allowed(self, user_id: int) -> bool:
        """Check if user is allowed to use the bot."""
        if not self.allowed_user_ids:
            return True  # Allow all if no restriction set
        return user_id in self.allowed_user_ids

    def ensure_data_dir(self) -> None:
        """Create the token store directory if it doesn't exist."""
        directory = self.token_store_path.parent
        logger.info(f"📂 Ensuring data directory exists: {directory}")
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"❌ Failed to create data directory: {e}")
            raise

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build the configuration from environment variables.

        Args:
            env: Mapping to read from. Defaults to ``os.environ`` after
                loading the ``.env`` file.

        Raises:
            ConfigError: if required variables are missing or malformed.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        missing = [name for name in REQUIRED_VARS if not env.get(name, "").strip()]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        try:
            allowed_user_ids = tuple(
                int(uid.strip())
                for uid in env.get("ALLOWED_USER_IDS", "").split(",")
                if uid.strip()
            )
        except ValueError as e:
            raise ConfigError(f"ALLOWED_USER_IDS must be a comma-separated list of integers: {e}") from e

        try:
            history_floor = date.fromisoformat(env.get("HISTORY_FLOOR_DATE", "2020-01-01"))
        except ValueError as e:
            raise ConfigError(f"HISTORY_FLOOR_DATE must be YYYY-MM-DD: {e}") from e

        try:
            http_timeout = float(env.get("HTTP_TIMEOUT", "30"))
        except ValueError as e:
            raise ConfigError(f"HTTP_TIMEOUT must be a number of seconds: {e}") from e

        listing_rpc = env.get("LISTING_RPC", "by_period").strip().lower()
        if listing_rpc not in LISTING_RPCS:
            raise ConfigError(f"LISTING_RPC must be one of: {', '.join(LISTING_RPCS)}")

        timezone = env.get("TIMEZONE", "America/Argentina/Buenos_Aires")
        try:
            pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigError(f"Unknown TIMEZONE: {timezone}") from e

        data_dir = _data_dir(env)
        token_store_path = Path(env.get("TOKEN_STORE_PATH") or data_dir / "gasti_token.json")

        return cls(
            telegram_bot_token=env["TELEGRAM_BOT_TOKEN"].strip(),
            allowed_user_ids=allowed_user_ids,
            deepseek_api_key=env["DEEPSEEK_API_KEY"].strip(),
            deepseek_base_url=env.get("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
            llm_model=env.get("LLM_MODEL", "deepseek-chat"),
            query_model=env.get("QUERY_MODEL", "deepseek-chat"),
            gasti_refresh_token=env["GASTI_REFRESH_TOKEN"].strip(),
            gasti_api_url=env["GASTI_API_URL"].strip(),
            supabase_url=env.get("SUPABASE_URL", "").strip(),
            supabase_apikey=env["SUPABASE_APIKEY"].strip(),
            gasti_user_email=env["GASTI_USER_EMAIL"].strip(),
            gasti_user_id=env["GASTI_USER_ID"].strip(),
            data_dir=data_dir,
            token_store_path=token_store_path,
            timezone=timezone,
            history_floor=history_floor,
            listing_rpc=listing_rpc,
            http_timeout=http_timeout,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
