"""
Configuration settings for the household objects database layer.

Uses Pydantic Settings to load environment variables for the database
connection, pool sizing, claim timeouts, and logging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("household_objects", alias="DB_NAME")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Pool
    pool_min_size: int = Field(1, alias="POOL_MIN_SIZE")
    pool_max_size: int = Field(10, alias="POOL_MAX_SIZE")
    pool_timeout_seconds: float = Field(30.0, alias="POOL_TIMEOUT_SECONDS")

    # Task claiming
    claim_lock_timeout_ms: int = Field(5_000, alias="CLAIM_LOCK_TIMEOUT_MS")
    db_statement_timeout_ms: int = Field(30_000, alias="DB_STATEMENT_TIMEOUT_MS")
    worker_id: Optional[str] = Field(None, alias="WORKER_ID")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
