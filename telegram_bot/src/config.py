"""
Telegram payment bot configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Payment bot settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    # Telegram Bot
    telegram_bot_token: str = Field(
        ...,
        description="Telegram bot token from @BotFather"
    )

    # Billing API
    billing_api_host: str = Field(default="mobile-pre.at.dz", description="Billing API host")
    billing_api_scheme: str = Field(default="https")
    billing_request_timeout: float = Field(default=30.0, description="Per-attempt timeout, seconds")
    billing_max_attempts: int = Field(default=3, ge=1)
    billing_retry_base_delay: float = Field(default=1.0, ge=0, description="Backoff unit, seconds")
    billing_user_agent: str = Field(default="Dart/2.18 (dart:io)")

    # Health endpoint
    health_host: str = Field(default="0.0.0.0")
    health_port: int = Field(default=3000)

    # Sessions
    session_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="Idle sessions older than this are dropped (0 disables)"
    )
    session_sweep_interval_seconds: int = Field(default=300, ge=1)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="json | console")


# Global settings instance
settings = Settings()
