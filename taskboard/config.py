"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "TaskBoard Sync"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Remote store
    REMOTE_MODE: str = "stub"  # stub or live
    REMOTE_BASE_URL: Optional[str] = None
    REMOTE_API_KEY: Optional[str] = None
    REMOTE_TIMEOUT: float = 30.0
    REMOTE_RETRY_ATTEMPTS: int = 3
    REMOTE_RETRY_WAIT_MIN: float = 2.0
    REMOTE_RETRY_WAIT_MAX: float = 10.0

    # Tables
    TASKS_TABLE: str = "todos"
    CATEGORIES_TABLE: str = "categories"
    SCOPE_COLUMN: str = "vault_id"

    # Sync engine
    TEMP_ID_PREFIX: str = "temp-"
    TOMBSTONE_LIMIT: int = 1000

    # Categories
    DEFAULT_CATEGORY_COLOR: str = "#2563eb"
    NEW_CATEGORY_COLOR: str = "#6b7280"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
