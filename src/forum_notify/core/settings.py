"""Application settings and configuration.

This module defines all configuration options for the forum notification
service. Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SECONDS_PER_DAY = 24 * 3600


class Settings(BaseSettings):
    """Service settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files. The
    forum-specific names mirror the site configuration keys of the host
    learning platform so that operators can copy values across.
    """

    # Application metadata
    app_name: str = Field(default="Forum Notify", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./forum_notify.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Read tracking
    trackreadposts: bool = Field(default=True, alias="FORUM_TRACKREADPOSTS")
    allowforcedreadtracking: bool = Field(default=False, alias="FORUM_ALLOWFORCEDREADTRACKING")
    oldpostdays: int = Field(default=14, alias="FORUM_OLDPOSTDAYS")
    usermarksread: bool = Field(default=False, alias="FORUM_USERMARKSREAD")
    enable_timed_posts: bool = Field(default=False, alias="FORUM_ENABLETIMEDPOSTS")
    read_batch_size: int = Field(default=200, alias="FORUM_READ_BATCH_SIZE")

    # Notification scheduling
    maxeditingtime: int = Field(default=1800, alias="MAXEDITINGTIME")
    digestmailtime: int = Field(default=17, alias="DIGESTMAILTIME")
    site_timezone: str = Field(default="UTC", alias="SITE_TIMEZONE")
    digest_retention_days: int = Field(default=7, alias="DIGEST_RETENTION_DAYS")
    guest_user_id: int = Field(default=1, alias="GUEST_USER_ID")

    # Outgoing mail
    site_name: str = Field(default="Learning Site", alias="SITE_NAME")
    site_shortname: str = Field(default="Site", alias="SITE_SHORTNAME")
    site_url: str = Field(default="http://localhost", alias="SITE_URL")
    noreply_address: str = Field(default="noreply@localhost", alias="NOREPLY_ADDRESS")
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_tls: bool = Field(default=True, alias="SMTP_TLS")
    smtp_timeout_seconds: float = Field(default=30.0, alias="SMTP_TIMEOUT_SECONDS")

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
        populate_by_name=True,
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def old_post_seconds(self) -> int:
        """Age in seconds beyond which a post counts as read by definition."""
        return self.oldpostdays * SECONDS_PER_DAY

    @property
    def digest_retention_seconds(self) -> int:
        """Maximum age of a queued digest entry before it is discarded."""
        return self.digest_retention_days * SECONDS_PER_DAY


settings = Settings()
