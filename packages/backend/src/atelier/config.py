"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with ATELIER_ prefix.
No config files: everything comes from the environment.

Learn: The SSE knobs (heartbeat, diagnostics interval, warning threshold)
live here so tests and deployments can tune them without code changes.
The heartbeat must stay below the reverse proxy's idle timeout
(nginx proxy_read_timeout defaults to 60s).
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via ATELIER_* env vars."""

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3001",
        "http://localhost:5173",
    ]

    # Server-Sent Events
    sse_heartbeat_interval_seconds: float = 30.0
    sse_diagnostic_interval_seconds: float = 30.0
    sse_warning_threshold: int = 50  # warn above this many open streams

    model_config = {"env_prefix": "ATELIER_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment not in ("development", "test")
            and self.jwt_secret == "change-me-in-production"
        ):
            raise ValueError(
                "ATELIER_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        return self


# Singleton: import this everywhere
settings = Settings()
