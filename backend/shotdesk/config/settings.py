"""
Application Settings Configuration
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Database
    database_url: str = Field(default="sqlite:///./data/shotdesk.db")

    # Redis (generation submission throttling)
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Generation collaborator (image generation backend)
    generation_service_url: str = Field(default="http://localhost:8100")

    # Asset collaborator (drive sync of the active artifact)
    asset_service_url: str = Field(default="http://localhost:8100")

    # Outbound HTTP timeout in seconds
    http_timeout_s: float = Field(default=30.0, gt=0)

    # Polling
    poll_interval_s: float = Field(default=3.0, gt=0)

    # Local pending jobs the server never acknowledges are dropped after this
    unconfirmed_job_ttl_s: float = Field(default=120.0, gt=0)

    # Workstation sessions left idle and not polling are closed after this
    workstation_idle_ttl_s: float = Field(default=1800.0, gt=0)

    # Trash
    trash_retention_days: int = Field(default=30, ge=0)

    # Throttling
    generation_rate_limit_per_min: int = Field(default=20, ge=1)

    # HTTP server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


# Global settings instance
settings = Settings()
