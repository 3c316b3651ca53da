# tgrelay/config.py
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from tgrelay.infra.logging_config import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    # Telegram Bot API (the provider)
    telegram_token: str | None = None  # Bot token from @BotFather
    telegram_chat_id: str | None = None  # Every outgoing message goes to this chat
    telegram_api_base: str = "https://api.telegram.org"
    updates_timeout_seconds: int = 25  # Long-poll timeout passed to getUpdates
    media_chunk_size: int = 64 * 1024  # Bytes per chunk when proxying media

    # Security
    relay_secret: str | None = None  # Shared secret checked by /api/verify
    allowed_origins: list[str] = ["*"]

    # Monitoring
    enable_metrics: bool = True
    metrics_token: str | None = None  # Bearer token for /metrics; endpoint is hidden when unset

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def telegram_enabled(self) -> bool:
        """Check if both the bot token and the chat target are configured"""
        return bool(self.telegram_token and self.telegram_chat_id)

    def missing_required(self) -> list[str]:
        """Names of settings the relay cannot forward without"""
        required_fields = [
            ("telegram_token", self.telegram_token),
            ("telegram_chat_id", self.telegram_chat_id),
        ]
        return [name for name, value in required_fields if not value]


def warn_on_risky_config(s: Settings) -> list[str]:
    warnings: list[str] = []

    if not s.relay_secret:
        warnings.append("relay_secret is not set: /api/verify will reject every request.")

    if (s.is_production or s.is_staging) and s.allowed_origins == ["*"]:
        warnings.append(f"{s.app_env}: allowed_origins=['*'] (CORS is wide open).")

    if s.enable_metrics and not s.metrics_token:
        warnings.append("enable_metrics=True but metrics_token is not set: /metrics is disabled.")

    if not s.telegram_api_base.startswith("https://"):
        warnings.append(f"telegram_api_base is not HTTPS ({s.telegram_api_base}).")

    return warnings


def validate_or_warn(s: Settings) -> None:
    """
    Log missing provider credentials as critical and risky settings as warnings.

    Never raises: without credentials the relay still starts and every
    provider call fails.
    """
    missing = s.missing_required()
    if missing:
        logger.critical(
            "CRITICAL: required settings are not set: %s "
            "(set TELEGRAM_TOKEN and TELEGRAM_CHAT_ID)",
            ", ".join(missing),
        )

    for msg in warn_on_risky_config(s):
        logger.warning("[config] %s", msg)


@lru_cache
def get_settings() -> Settings:
    """Settings read from the process environment, built once per process."""
    return Settings()
