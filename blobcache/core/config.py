from datetime import timedelta
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    # App Settings
    APP_NAME: str = "Blob Cache"
    PROJECT_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: str = "*"  # Comma-separated string or "*"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = False
    RATE_LIMIT_DEFAULT: str = "100/minute"

    # Storage
    CACHE_DIR: str = "./cache-data"
    COMPRESSION_LEVEL: int = Field(default=6, ge=0, le=9)
    CHUNK_SIZE: int = Field(default=64 * 1024, gt=0)
    UPLOAD_TIMEOUT_SECONDS: float = Field(default=300, gt=0)

    # Reaper
    REAPER_ENABLED: bool = True
    RETENTION_DAYS: float = Field(default=1, ge=0)
    SWEEP_INTERVAL_HOURS: float = Field(default=1, gt=0)
    ORPHAN_GRACE_HOURS: float | None = Field(default=None, ge=0)
    STAGING_TTL_HOURS: float = Field(default=1, gt=0)

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Parse ALLOWED_ORIGINS
    @property
    def allowed_origins_list(self) -> List[str]:
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def retention_window(self) -> timedelta:
        return timedelta(days=self.RETENTION_DAYS)

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(hours=self.SWEEP_INTERVAL_HOURS)

    @property
    def orphan_grace(self) -> timedelta | None:
        if self.ORPHAN_GRACE_HOURS is None:
            return None
        return timedelta(hours=self.ORPHAN_GRACE_HOURS)

    @property
    def staging_ttl(self) -> timedelta:
        return timedelta(hours=self.STAGING_TTL_HOURS)


settings = Settings()
