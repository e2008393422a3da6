"""Application settings and configuration.

This module defines all configuration options for the Kinetic Authority service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Tokens and nonces must carry at least 128 bits of entropy.
MIN_RANDOM_BYTES = 16


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Kinetic Authority", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    api_prefix: str = Field(default="", alias="API_PREFIX")

    # Admin credential; the admin API rejects every call while unset.
    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")

    # Database configuration (clients and usage logs only)
    database_url: str = Field(default="sqlite:///./kinetic.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Challenge and session lifetimes
    challenge_ttl_seconds: int = Field(default=60, gt=0, alias="CHALLENGE_TTL_SECONDS")
    session_ttl_seconds: int = Field(default=300, gt=0, alias="SESSION_TTL_SECONDS")

    # Background sweeper for expired challenges and sessions
    sweeper_enabled: bool = Field(default=True, alias="SWEEPER_ENABLED")
    sweep_interval_seconds: float = Field(default=300.0, gt=0, alias="SWEEP_INTERVAL_SECONDS")

    # Random material
    nonce_bytes: int = Field(default=16, alias="NONCE_BYTES")
    session_token_bytes: int = Field(default=32, alias="SESSION_TOKEN_BYTES")
    session_token_prefix: str = Field(default="zk_", alias="SESSION_TOKEN_PREFIX")
    duress_token_prefix: str = Field(default="zkd_", alias="DURESS_TOKEN_PREFIX")
    api_key_prefix: str = Field(default="zk_live_", alias="API_KEY_PREFIX")

    # Tenant provisioning
    default_plan_duration_days: int = Field(default=30, gt=0, alias="DEFAULT_PLAN_DURATION_DAYS")

    # CORS configuration for browser-based device clients
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("nonce_bytes", "session_token_bytes")
    @classmethod
    def validate_entropy(cls, v: int) -> int:
        """Reject random sizes below 128 bits."""
        if v < MIN_RANDOM_BYTES:
            raise ValueError(f"must be at least {MIN_RANDOM_BYTES} bytes")
        return v

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
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url


settings = Settings()
