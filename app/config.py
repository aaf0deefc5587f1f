"""Configuration management"""

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "FairShare Engine"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Database
    database_url: str
    db_isolation_level: Optional[str] = "REPEATABLE READ"
    create_tables_on_startup: bool = False

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    cache_enabled: bool = True
    statistics_cache_ttl: int = 300

    # Ledger
    default_currency: str = "INR"
    ledger_batch_size: int = 200

    # Feed
    feed_default_limit: int = 20
    feed_max_limit: int = 100

    # Transient failure retry
    retry_attempts: int = 5
    retry_base_delay: float = 0.05
    retry_max_delay: float = 2.0

    # CORS
    allowed_origins: List[str] = []

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL uses an async driver we support"""
        if not (v.startswith("postgresql") or v.startswith("sqlite")):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or SQLite connection string"
            )
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        """Validate currency is a 3 letter code"""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("DEFAULT_CURRENCY must be a 3 letter currency code")
        return v.upper()

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RETRY_ATTEMPTS must be at least 1")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
