"""Application configuration loaded from environment variables.

Settings for the database, guest OTP challenges, session and action tokens,
abuse guard thresholds, email delivery, and incident reporting. Uses
pydantic-settings for validation and .env file support.
"""

from limits import parse
from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "guest_access_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "storefront"
    database_user: str = "storefront_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS: storefront frontend origin(s). Never "*" (credentials are allowed).
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Signing secret for session tokens and OTP code hashes
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "storefront-guest-access"
    session_token_audience: str = "storefront-guest-session"
    session_token_ttl_minutes: int = 15

    # OTP challenges
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 5
    otp_resend_cooldown_seconds: int = 60

    # Action tokens (emailed deep links, e.g. review invitations)
    action_token_ttl_days: int = 30

    # Abuse guard (sliding windows, "count/period" strings)
    # Storage URI from the `limits` library. Use async+redis://host:port when
    # running more than one instance.
    abuse_guard_enabled: bool = True
    abuse_guard_storage_uri: str = "async+memory://"
    abuse_otp_requests_per_identifier: str = "5/hour"
    abuse_otp_requests_per_ip: str = "20/hour"
    abuse_failed_verifications_per_identifier: str = "10/hour"
    abuse_failed_verifications_per_ip: str = "10/hour"

    # Client IP resolution: only honour X-Forwarded-For / X-Real-IP behind a
    # trusted reverse proxy.
    trust_forwarded_headers: bool = False

    # HTTP rate limiting for scoped and review endpoints (slowapi)
    rate_limit_enabled: bool = True
    rate_limit_guest_actions: str = "10/hour"
    rate_limit_review_check: str = "30/minute"
    rate_limit_review_submit: str = "10/hour"

    # OTP delivery (Resend)
    email_from: str = "noreply@storefront.example"
    resend_api_key: SecretStr = SecretStr("")
    delivery_max_retries: int = 2
    delivery_retry_base_delay_ms: int = 200
    delivery_retry_max_delay_ms: int = 2000

    # Security incident reporting. Empty URL logs incidents only.
    incident_webhook_url: str = ""
    incident_webhook_token: SecretStr = SecretStr("")

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants and production security.

        Checks:
        - Abuse guard and endpoint limits parse as "count/period" strings
        - OTP attempts, TTLs and cooldown are positive
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        - Abuse guard counters must use shared storage in production
        """
        for field_name in (
            "abuse_otp_requests_per_identifier",
            "abuse_otp_requests_per_ip",
            "abuse_failed_verifications_per_identifier",
            "abuse_failed_verifications_per_ip",
            "rate_limit_guest_actions",
            "rate_limit_review_check",
            "rate_limit_review_submit",
        ):
            value = getattr(self, field_name)
            try:
                parse(value)
            except ValueError as exc:
                msg = f"{field_name.upper()} must look like '5/hour'. Got: {value!r}"
                raise ValueError(msg) from exc

        for field_name in (
            "otp_ttl_minutes",
            "otp_max_attempts",
            "session_token_ttl_minutes",
            "action_token_ttl_days",
        ):
            if getattr(self, field_name) <= 0:
                msg = f"{field_name.upper()} must be positive."
                raise ValueError(msg)

        if self.otp_resend_cooldown_seconds < 0:
            msg = "OTP_RESEND_COOLDOWN_SECONDS cannot be negative."
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Wildcard CORS origins are incompatible with credentials."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

            if "memory://" in self.abuse_guard_storage_uri:
                msg = (
                    "ABUSE_GUARD_STORAGE_URI must point at shared storage in "
                    "production (e.g. async+redis://host:6379). In-memory "
                    "counters are per process."
                )
                raise ValueError(msg)

        return self


settings = Settings()

