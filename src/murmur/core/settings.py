"""Application settings and configuration.

This module defines all configuration options for the Murmur messaging core.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Client-side options (key cache, reconnect policy) live here too so a
    single `.env` configures both halves of the protocol.
    """

    # Application metadata
    app_name: str = Field(default="Murmur", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./murmur.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Messaging rules
    message_edit_window_minutes: int = Field(default=15, alias="MESSAGE_EDIT_WINDOW_MINUTES")
    message_max_length: int = Field(default=10_000, alias="MESSAGE_MAX_LENGTH")
    messages_page_size: int = Field(default=50, alias="MESSAGES_PAGE_SIZE")
    user_search_limit: int = Field(default=20, alias="USER_SEARCH_LIMIT")
    messages_page_size_max: int = Field(default=100, alias="MESSAGES_PAGE_SIZE_MAX")
    deleted_message_placeholder: str = Field(
        default="This message was deleted",
        alias="DELETED_MESSAGE_PLACEHOLDER",
    )

    # End-to-end encryption
    rsa_key_size: int = Field(default=2048, alias="RSA_KEY_SIZE")
    public_key_cache_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        alias="PUBLIC_KEY_CACHE_TTL_SECONDS",
    )

    # Client session behaviour
    client_base_url: str = Field(default="http://localhost:8000", alias="CLIENT_BASE_URL")
    client_reconnect_delay_seconds: float = Field(
        default=1.0,
        alias="CLIENT_RECONNECT_DELAY_SECONDS",
    )
    client_reconnect_delay_max_seconds: float = Field(
        default=30.0,
        alias="CLIENT_RECONNECT_DELAY_MAX_SECONDS",
    )
    client_http_timeout_seconds: float = Field(
        default=10.0,
        alias="CLIENT_HTTP_TIMEOUT_SECONDS",
    )
    client_keystore_dir: str = Field(default="./client_keys", alias="CLIENT_KEYSTORE_DIR")
    typing_idle_seconds: float = Field(default=1.0, alias="TYPING_IDLE_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
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
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def message_edit_window_seconds(self) -> int:
        """Return the edit window expressed in seconds."""
        return self.message_edit_window_minutes * 60


settings = Settings()  # type: ignore[call-arg]
