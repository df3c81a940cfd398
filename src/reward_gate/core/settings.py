"""Application settings and configuration.

This module defines all configuration options for the reward gate service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Every threshold used by the security gate, the integrity validator and
    the reward calculator lives here so that operators can tune them without
    a code change. Settings can be overridden via environment variables or
    .env files.
    """

    # Application metadata
    app_name: str = Field(default="Reward Gate", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./reward_gate.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    db_pool_timeout_seconds: float = Field(default=5.0, alias="DB_POOL_TIMEOUT_SECONDS")
    db_connect_timeout_seconds: float = Field(default=5.0, alias="DB_CONNECT_TIMEOUT_SECONDS")

    # Replay protection and rate limiting
    nonce_expiry_ms: int = Field(default=300_000, alias="NONCE_EXPIRY_MS")
    rate_limit_window_ms: int = Field(default=60_000, alias="RATE_LIMIT_WINDOW_MS")
    rate_limit_max_requests: int = Field(default=30, alias="RATE_LIMIT_MAX_REQUESTS")
    max_timestamp_drift_ms: int = Field(default=300_000, alias="MAX_TIMESTAMP_DRIFT_MS")

    # Issuance caps
    daily_reward_cap: float = Field(default=5000.0, alias="DAILY_REWARD_CAP")
    daily_match_cap: int = Field(default=50, alias="DAILY_MATCH_CAP")
    max_reward_per_match: float = Field(default=1000.0, alias="MAX_REWARD_PER_MATCH")

    # Bot-confidence thresholds (0..1)
    suspicious_threshold: float = Field(default=0.7, alias="BOT_SUSPICIOUS_THRESHOLD")
    ban_threshold: float = Field(default=0.9, alias="BOT_BAN_THRESHOLD")

    # Match integrity thresholds
    min_time_per_kill_ms: int = Field(default=3000, alias="MIN_TIME_PER_KILL_MS")
    input_variance_zero_ms: float = Field(default=5.0, alias="INPUT_VARIANCE_ZERO_MS")
    input_variance_low_ms: float = Field(default=30.0, alias="INPUT_VARIANCE_LOW_MS")
    input_variance_normal_max_ms: float = Field(
        default=500.0,
        alias="INPUT_VARIANCE_NORMAL_MAX_MS",
    )
    expected_tick_rate: float = Field(default=60.0, alias="EXPECTED_TICK_RATE")
    tick_rate_tolerance: float = Field(default=0.3, alias="TICK_RATE_TOLERANCE")
    max_consecutive_wins: int = Field(default=10, alias="MAX_CONSECUTIVE_WINS")
    max_win_rate_24h: float = Field(default=0.85, alias="MAX_WIN_RATE_24H")
    min_matches_for_rate: int = Field(default=5, alias="MIN_MATCHES_FOR_RATE")
    win_history_limit: int = Field(default=50, alias="WIN_HISTORY_LIMIT")
    rapid_match_window_ms: int = Field(default=60_000, alias="RAPID_MATCH_WINDOW_MS")
    max_rapid_matches: int = Field(default=3, alias="MAX_RAPID_MATCHES")
    risk_flag_threshold: int = Field(default=50, alias="RISK_FLAG_THRESHOLD")
    risk_reject_threshold: int = Field(default=75, alias="RISK_REJECT_THRESHOLD")

    # Client signature verification (HMAC-SHA256); disabled when unset
    match_signing_secret: str | None = Field(default=None, alias="MATCH_SIGNING_SECRET")

    # Minting authority integration
    mint_enabled: bool = Field(default=False, alias="MINT_ENABLED")
    mint_base_url: str | None = Field(default=None, alias="MINT_BASE_URL")
    mint_shared_secret: str | None = Field(default=None, alias="MINT_SHARED_SECRET")
    mint_audience: str = Field(default="reward-controller", alias="MINT_JWT_AUD")
    mint_issuer: str = Field(default="reward-gate", alias="MINT_JWT_ISS")
    mint_token_ttl_seconds: int = Field(default=60, alias="MINT_TOKEN_TTL_SECONDS")
    mint_http_timeout_seconds: float = Field(default=5.0, alias="MINT_HTTP_TIMEOUT_SECONDS")

    # Storage hygiene
    audit_retention_days: int = Field(default=30, alias="AUDIT_RETENTION_DAYS")

    # CORS configuration for the game client
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

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
    def min_tick_rate(self) -> float:
        return self.expected_tick_rate * (1 - self.tick_rate_tolerance)

    @property
    def max_tick_rate(self) -> float:
        return self.expected_tick_rate * (1 + self.tick_rate_tolerance)


settings = Settings()
