"""
Application settings.

All values can be overridden through environment variables or a local `.env`
file. Field names match the environment variable names.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    APP_DEBUG: bool = False
    APP_RELOAD: bool = False
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    # Postgres (execution rows, datasets, templates, schema cache)
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DATABASE: str = "shopdata"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_POOL_MIN_SIZE: int = 1
    POSTGRES_POOL_MAX_SIZE: int = 10
    POSTGRES_CONNECT_ON_STARTUP: bool = True

    # Shopify Admin GraphQL API
    SHOPIFY_DEFAULT_API_VERSION: str = "2025-01"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 30.0
    SHOPIFY_MAX_PAGE_SIZE: int = 250
    SHOPIFY_REQUEST_DELAY_SECONDS: float = Field(
        default=0.5,
        description="Fixed pause between pages and between secondary batches (~2 req/s).",
    )

    # Dataset execution
    DEFAULT_MAX_ITEMS: int = 1000
    SECONDARY_BATCH_SIZE: int = 50

    # Schema cache
    SCHEMA_CACHE_TTL_DAYS: int = 7

    # Preview / retrieval
    PREVIEW_DEFAULT_LIMIT: int = 100
    DIRECT_PREVIEW_MAX_ROWS: int = 5
    STUCK_EXECUTION_MINUTES: int = 10
    EXECUTION_HISTORY_LIMIT: int = 50

    # Export
    EXPORT_INLINE_MAX_ROWS: int = 1000
    EXPORT_STORAGE_DIR: str = "exports"

    # Query template seeds
    QUERY_TEMPLATES_DIR: str = "config/query_templates"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
