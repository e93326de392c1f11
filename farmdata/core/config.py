"""
Client configuration settings
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import validator


DAY_MS = 24 * 60 * 60 * 1000


class Settings(BaseSettings):
    """Data-access layer settings"""

    # Application
    APP_NAME: str = "Farm Data Access"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Remote API
    API_BASE_URL: str = "http://localhost:4000"
    API_PREFIX: str = "/api"
    API_TIMEOUT_SECONDS: float = 20.0

    # Durable storage
    STORAGE_DATABASE_URL: str = "sqlite:///farmdata_storage.db"
    STORAGE_NAMESPACE: str = "farmreact"

    # Cache windows (milliseconds)
    CACHE_TTL_ENTITIES_MS: int = 7 * DAY_MS
    CACHE_TTL_RECORDS_MS: int = 7 * DAY_MS
    CACHE_TTL_REPORTS_MS: int = 3 * 60 * 1000  # 3 minutes
    CACHE_TTL_DASHBOARD_MS: int = DAY_MS // 2  # 12 hours
    CACHE_TTL_SYNC_STATUS_MS: int = 60 * 1000

    # Cache growth
    CACHE_MAX_ENTRIES: Optional[int] = 5000
    CACHE_SWEEP_ENABLED: bool = True
    CACHE_SWEEP_INTERVAL_MINUTES: int = 30
    CACHE_SWEEP_MAX_AGE_MS: int = 30 * DAY_MS

    # Serve cached data when the server explicitly rejects a read
    CACHE_FALLBACK_ON_REJECTION: bool = False

    # Paging
    DEFAULT_PAGE_SIZE: int = 20
    REPORT_PAGE_SIZE: int = 1200
    REPORT_BATCH_PAGE_SIZE: int = 600
    REPORT_PARTIAL_ROWS: int = 30

    @validator("API_PREFIX", pre=True)
    def normalize_prefix(cls, v):
        if v is None:
            return ""
        v = str(v).strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @validator("CACHE_MAX_ENTRIES", pre=True)
    def disable_bound(cls, v):
        if isinstance(v, str) and v.strip().lower() in ("", "none", "0"):
            return None
        if isinstance(v, int) and v <= 0:
            return None
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Create settings instance
settings = Settings()
