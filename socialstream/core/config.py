"""Application configuration loaded from environment variables.

Settings for database, API, authentication cookies, OAuth provider
credentials, frontend routes and the social login feature flags. Uses
pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "socialstream_dev_password"  # nosec B105

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
    database_name: str = "socialstream"
    database_user: str = "socialstream_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # Never ["*"]: the session cookie is sent with credentials
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session cookie (JWT)
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "socialstream"
    auth_audience: str = "socialstream"
    auth_cookie_name: str = "socialstream.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    # Lifetime of a session cookie issued with "remember me"
    remember_session_days: int = 30

    # OAuth Providers
    # Only providers listed here can be used for redirects and callbacks
    socialstream_providers: list[str] = ["github", "google", "linkedin"]
    github_client_id: str = ""
    github_client_secret: SecretStr = SecretStr("")
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")
    linkedin_client_id: str = ""
    linkedin_client_secret: SecretStr = SecretStr("")

    # Frontend URL and route paths (targets of every callback redirect)
    frontend_url: str = "http://localhost:3000"
    home_path: str = "/dashboard"
    login_path: str = "/login"
    register_path: str = "/register"
    profile_path: str = "/user/profile"

    # Feature flags
    registration_enabled: bool = True
    create_account_on_first_login: bool = False
    login_on_registration: bool = False
    remember_session: bool = False
    provider_avatars: bool = False
    generate_missing_emails: bool = False

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_oauth_redirect: str = "10/hour"
    rate_limit_oauth_callback: str = "20/hour"
    rate_limit_enabled: bool = True  # Disable for testing

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

    def route_url(self, path: str) -> str:
        """Absolute frontend URL for a route path."""
        return f"{self.frontend_url.rstrip('/')}{path}"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate production security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - SameSite=None requires Secure flag (browser requirement)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Remember-session lifetime must be positive
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.remember_session_days <= 0:
            msg = (
                "REMEMBER_SESSION_DAYS must be positive. "
                f"Got: {self.remember_session_days}"
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

        return self


settings = Settings()
