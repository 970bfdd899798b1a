from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "CatalogSync"
    APP_PORT: int = 9210
    DEBUG: bool = False

    # Database
    USE_POSTGRES: bool = False
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "catalog_sync"
    POSTGRES_PORT: int = 5432
    SQLITE_PATH: str = "./data/catalog_sync.db"

    # Paths
    LOGS_PATH: Optional[str] = None

    # Shopify Admin API
    SHOPIFY_API_VERSION: str = "2025-01"
    SHOPIFY_HTTP_TIMEOUT: float = 30.0
    SHOPIFY_MAX_RETRIES: int = 3

    # Multi-store sync
    SYNC_BATCH_SIZE: int = 3
    SYNC_BATCH_DELAY_SECONDS: float = 5.0
    SYNC_FETCH_MAX_RETRIES: int = 3
    SYNC_FETCH_BACKOFF_SECONDS: float = 1.0
    SYNC_ERROR_MAX_LENGTH: int = 2000

    # Media
    MEDIA_READY_TIMEOUT_SECONDS: float = 60.0
    MEDIA_POLL_INTERVAL_SECONDS: float = 1.0
    MEDIA_DELETE_DETACHED: bool = False

    # Inventory
    INVENTORY_LOCATIONS_LIMIT: int = 10

    # Failed sync retry job
    RETRY_FAILED_SYNC_ENABLED: bool = False
    RETRY_FAILED_SYNC_INTERVAL_MINUTES: int = 30

    @property
    def DATABASE_URL(self) -> str:
        if self.USE_POSTGRES:
            return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        directory = os.path.dirname(self.SQLITE_PATH)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return f"sqlite:///{self.SQLITE_PATH}"

    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
