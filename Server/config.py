"""
SafawiNet Server - Configuration

Process-level settings loaded from SAFAWINET_* environment variables or a .env file.
Runtime-tunable values (token lifetime, lockout policy, session cap) live in the
settings table instead, see DatabaseManager.PopulateDefaultSettings.
"""

import secrets
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the SafawiNet API process"""

    model_config = SettingsConfigDict(
        env_prefix="SAFAWINET_",
        env_file=".env",
        extra="ignore",
    )

    database_path: str = "database/safawinet.db"

    # A random secret invalidates every issued token on restart unless one is configured
    jwt_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "safawinet"
    jwt_audience: str = "safawinet-users"

    bcrypt_rounds: int = 12

    # Login requests allowed per client IP (limits syntax, e.g. "10/minute")
    login_rate_limit: str = "10/minute"

    cors_origins: List[str] = ["http://localhost:3000"]

    log_dir: str = "logs"
    host: str = "0.0.0.0"
    port: int = 5000


@lru_cache
def GetSettings() -> ServerSettings:
    """
    Get the process settings (cached after first load)

    Returns:
        ServerSettings: Loaded settings
    """
    return ServerSettings()
