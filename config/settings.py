"""
Centralized configuration for the lead intelligence engine.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")
    db_pool_size: int = Field(default=5, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, env="DB_MAX_OVERFLOW")

    # Store boundary
    store_timeout_seconds: float = Field(default=5.0, env="STORE_TIMEOUT_SECONDS")
    store_max_retries: int = Field(default=3, env="STORE_MAX_RETRIES")
    store_retry_delay_seconds: float = Field(default=0.2, env="STORE_RETRY_DELAY_SECONDS")

    # Conversation context cache
    context_cache_size: int = Field(default=1000, env="CONTEXT_CACHE_SIZE")
    context_cache_ttl_seconds: float = Field(default=3600.0, env="CONTEXT_CACHE_TTL_SECONDS")

    # Journey
    stage_policy: str = Field(default="event", env="STAGE_POLICY")  # event | combined

    # Escalation
    high_value_threshold: float = Field(default=75000.0, env="HIGH_VALUE_THRESHOLD")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_title: str = Field(default="Lead Intelligence Engine API", env="API_TITLE")
    api_version: str = Field(default="1.0.0", env="API_VERSION")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def uses_database(self) -> bool:
        return bool(self.database_url)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
