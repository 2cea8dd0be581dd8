"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields so the
service starts locally without any setup; in a production deployment
override them via the environment (``NODE_ENV=production`` switches
the auth cookie to ``Secure`` + ``SameSite=None``).
"""

import os
from dataclasses import dataclass, field
from typing import List


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Marathon Hub API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    environment: str = os.getenv("NODE_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")
    log_max_bytes: int = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
    log_backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "3"))

    # Secret used to sign auth tokens.  Must be overridden in production.
    secret_key: str = os.getenv("ACCESS_TOKEN_SECRET", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
    token_cookie_name: str = os.getenv("TOKEN_COOKIE_NAME", "token")

    # Origins allowed to call the API with credentials (cookies).
    cors_origins: List[str] = field(
        default_factory=lambda: _split_csv(
            os.getenv(
                "CORS_ORIGINS",
                "http://localhost:5173,"
                "https://marathon-hub-d6162.web.app,"
                "https://marathon-hub-d6162.firebaseapp.com",
            )
        )
    )

    # Path to the SQLite file backing the document store.  Relative
    # paths are resolved against the project root by ``core.db``.
    database_url: str = os.getenv("DATABASE_URL", "marathon_hub.db")

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "5000"))

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables
# should be set before importing this module.
settings = Settings()
