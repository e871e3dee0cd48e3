"""Application settings and configuration.

This module defines all configuration options for the Focus auth bridge.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Focus Auth Bridge", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./focus_auth.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Telegram bot and login widget
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_bot_username: str = Field(default="", alias="TELEGRAM_BOT_USERNAME")
    telegram_webhook_secret: str = Field(default="", alias="TELEGRAM_WEBHOOK_SECRET")
    telegram_api_base_url: str = Field(
        default="https://api.telegram.org",
        alias="TELEGRAM_API_BASE_URL",
    )
    telegram_http_timeout_seconds: float = Field(
        default=5.0,
        alias="TELEGRAM_HTTP_TIMEOUT_SECONDS",
    )

    # Secret used to derive deterministic backend credentials
    credential_secret: str | None = Field(default=None, alias="CREDENTIAL_SECRET")

    # Nonce lifetimes
    bot_nonce_ttl_seconds: int = Field(default=600, alias="BOT_NONCE_TTL_SECONDS")
    wallet_nonce_ttl_seconds: int = Field(default=600, alias="WALLET_NONCE_TTL_SECONDS")
    widget_max_age_seconds: int = Field(default=300, alias="WIDGET_MAX_AGE_SECONDS")

    # Optional pin for the SIWE "<domain> wants you to sign in" line
    siwe_domain: str | None = Field(default=None, alias="SIWE_DOMAIN")

    # Identity-and-data backend (auth subsystem)
    backend_url: str = Field(default="http://localhost:54321", alias="BACKEND_URL")
    backend_anon_key: str = Field(default="", alias="BACKEND_ANON_KEY")
    backend_service_role_key: str = Field(default="", alias="BACKEND_SERVICE_ROLE_KEY")
    backend_timeout_seconds: float = Field(default=5.0, alias="BACKEND_TIMEOUT_SECONDS")

    # Synthetic account email namespaces
    telegram_email_domain: str = Field(default="telegram.local", alias="TELEGRAM_EMAIL_DOMAIN")
    wallet_email_domain: str = Field(default="wallet.local", alias="WALLET_EMAIL_DOMAIN")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_credential_secret(self) -> str:
        """Return the secret used for deterministic credentials.

        Falls back to the bot token so a single-secret deployment keeps working.

        Returns:
            The configured credential secret, or the Telegram bot token
        """
        return self.credential_secret or self.telegram_bot_token


settings = Settings()
