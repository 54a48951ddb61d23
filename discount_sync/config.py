"""Application configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.debug and self.log_level.upper() not in ("TRACE", "VERBOSE"):
            self.log_level = "DEBUG"

    # Database
    database_url: str = "sqlite:///./discount_sync.db"

    # Security (Fernet key used for integration and channel credentials)
    encryption_key: str = ""

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Application
    debug: bool = False
    log_level: str = "INFO"
    log_directory: str = ""  # Daily audit log files are written here when set
    api_v1_str: str = "/api/v1"

    # Sync
    sync_timezone: str = "America/Sao_Paulo"
    http_timeout_seconds: float = 30.0
    store_timeout_seconds: float = 300.0  # 0 disables the per-store timeout
    stale_run_minutes: int = 120
    default_product_limit: int = 1000

    # Retention
    log_retention_days: int = 30

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
