"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with TENANTKIT_ prefix
(a local .env file is read too). Both the server and the client/CLI read
the same Settings object.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    """All app configuration. Set via TENANTKIT_* env vars."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./tenantkit.db"

    # Auth
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    bcrypt_rounds: int = 12

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3001

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Client / CLI
    api_url: str = "http://localhost:3001"
    client_transport: str = "http"  # "http" or "mock"
    session_file: str = "~/.tenantkit/session.json"

    model_config = SettingsConfigDict(env_prefix="TENANTKIT_", env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment not in ("development", "test")
            and self.jwt_secret == DEFAULT_JWT_SECRET
        ):
            raise ValueError(
                "TENANTKIT_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        if self.client_transport not in ("http", "mock"):
            raise ValueError(
                f"TENANTKIT_CLIENT_TRANSPORT must be 'http' or 'mock', got {self.client_transport!r}"
            )
        return self


# Singleton — import this everywhere
settings = Settings()
