"""
Runtime configuration.

All settings are read from the environment (prefix ``TASKPULSE_``) or an
optional ``.env`` file.
"""

import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """TaskPulse service settings."""

    model_config = SettingsConfigDict(
        env_prefix="TASKPULSE_",
        env_file=".env",
        extra="ignore",
    )

    environment: str = "development"

    # Persistence
    db_path: Path = Path("data/taskpulse.db")

    # JWT
    jwt_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(64))
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30

    # HTTP surface
    http_host: str = "0.0.0.0"
    http_port: int = 5000

    # Socket server
    ws_host: str = "0.0.0.0"
    ws_port: int = 8765
    auth_timeout: float = 10.0
    send_timeout: float = 5.0
    outbound_queue_size: int = 256
    open_room_joins: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
