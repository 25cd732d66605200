"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults that match the gym auth behavior (1h access, 7d refresh)

Collaborators:
  - api/main.py: reads settings for CORS, pool and startup validation
  - identity/tokens.py: secrets, issuer/audience and TTLs
  - application/auth_service.py: lockout policy and bcrypt cost

Constraints:
  - Lives in API/infrastructure layer, NOT in domain/application
  - No business logic (pure configuration)

Notes:
  - Uses pydantic-settings for env parsing and validation
  - Singleton via lru_cache for performance
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        database_url: PostgreSQL connection string
        app_env: Application environment (development/production/test)
        allowed_origins: Comma-separated CORS origins
        cors_allow_credentials: Allow cookies cross-origin (default: False)
        jwt_secret: Secret for signing access tokens
        jwt_refresh_secret: Secret for signing refresh tokens (must differ)
        jwt_issuer: `iss` claim
        jwt_audience: `aud` claim
        jwt_access_ttl_seconds: Access token lifetime (default: 3600)
        jwt_refresh_ttl_seconds: Refresh token lifetime (default: 604800)
        session_ttl_seconds: Server-side session lifetime (default: 604800)
        cookie_secure: Force Secure on auth cookies (default: production only)
        login_max_failed_attempts: Failed logins before lockout (default: 5)
        login_lockout_minutes: Lockout duration (default: 15)
        bcrypt_rounds: bcrypt cost factor for new hashes (default: 12)
        log_level: Logging level (default: INFO)
        log_json: Emit JSON logs (default: True)
    """

    # Required (no defaults)
    database_url: str

    # Environment
    app_env: str = "development"

    # CORS configuration
    allowed_origins: str = "http://localhost:5173"
    cors_allow_credentials: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Security - JWT
    jwt_secret: str = "dev-secret"
    jwt_refresh_secret: str = "dev-refresh-secret"
    jwt_issuer: str = "kranos-gym"
    jwt_audience: str = "kranos-gym-users"
    jwt_access_ttl_seconds: int = 60 * 60
    jwt_refresh_ttl_seconds: int = 7 * 24 * 60 * 60

    # Security - Sessions / cookies
    session_ttl_seconds: int = 7 * 24 * 60 * 60
    cookie_secure: bool | None = None

    # Security - Login policy
    login_max_failed_attempts: int = 5
    login_lockout_minutes: int = 15
    bcrypt_rounds: int = 12

    # Database - Connection Pool
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_statement_timeout_ms: int = 30000  # 30 seconds

    @field_validator(
        "jwt_access_ttl_seconds", "jwt_refresh_ttl_seconds", "session_ttl_seconds"
    )
    @classmethod
    def ttl_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("token and session TTLs must be greater than 0")
        return v

    @field_validator("login_max_failed_attempts", "login_lockout_minutes")
    @classmethod
    def lockout_policy_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("lockout settings must be greater than 0")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def bcrypt_rounds_in_range(cls, v: int) -> int:
        # bcrypt acepta 4..31; más de 15 vuelve el login inusable.
        if v < 4 or v > 15:
            raise ValueError("bcrypt_rounds must be between 4 and 15")
        return v

    def get_allowed_origins_list(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]

    @model_validator(mode="after")
    def validate_security_requirements(self):
        if not self.is_production():
            return self

        insecure_secrets = {
            "dev-secret",
            "dev-refresh-secret",
            "changeme",
            "change-me",
            "password",
        }
        for name, value in (
            ("JWT_SECRET", self.jwt_secret),
            ("JWT_REFRESH_SECRET", self.jwt_refresh_secret),
        ):
            secret = (value or "").strip()
            if not secret or secret in insecure_secrets:
                raise ValueError(
                    f"{name} must be set to a strong, non-default value in production"
                )
            if len(secret) < 32:
                raise ValueError(f"{name} must be at least 32 characters in production")

        if self.jwt_secret.strip() == self.jwt_refresh_secret.strip():
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different")
        if self.cookie_secure is False:
            raise ValueError("COOKIE_SECURE must be true in production")
        if self.bcrypt_rounds < 12:
            raise ValueError("BCRYPT_ROUNDS must be at least 12 in production")

        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def use_secure_cookies(self) -> bool:
        """Secure explícito si está configurado; si no, solo en producción."""
        if self.cookie_secure is not None:
            return self.cookie_secure
        return self.is_production()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()
