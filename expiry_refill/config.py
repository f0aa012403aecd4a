"""
Configuration settings for Expiry Refill.

Uses Pydantic Settings to load environment variables for the cache and record
store connections, the refill worker and logging. Values are resolved once at
startup and injected into the adapters.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

NOT_FOUND_SENTINEL = "false"


class Settings(BaseSettings):
    # Cache (Redis)
    redis_host: str = Field("localhost", alias="REDIS_HOST")
    redis_port: int = Field(6379, alias="REDIS_PORT")
    redis_db: int = Field(0, alias="REDIS_DB")
    redis_password: Optional[str] = Field(None, alias="REDIS_PASSWORD")
    redis_ssl: bool = Field(False, alias="REDIS_SSL")
    redis_url: Optional[str] = Field(None, alias="REDIS_URL")
    notification_channel: Optional[str] = Field(None, alias="NOTIFICATION_CHANNEL")
    configure_notifications: bool = Field(False, alias="CONFIGURE_NOTIFICATIONS")

    # Record store (Postgres JSONB documents)
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("refill", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(5_000, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")
    store_table: str = Field("public.inventory", alias="STORE_TABLE")
    store_key_field: str = Field("item", alias="STORE_KEY_FIELD")
    store_value_field: str = Field("price", alias="STORE_VALUE_FIELD")

    # Worker
    not_found_sentinel: str = Field(NOT_FOUND_SENTINEL, alias="NOT_FOUND_SENTINEL")
    refill_timeout_seconds: float = Field(10.0, alias="REFILL_TIMEOUT_SECONDS")
    max_in_flight: int = Field(32, alias="MAX_IN_FLIGHT")
    max_redeliveries: int = Field(2, alias="MAX_REDELIVERIES")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def expired_channel(self) -> str:
        """Channel carrying expiration events, defaulting to the keyevent channel of `redis_db`."""
        return self.notification_channel or f"__keyevent@{self.redis_db}__:expired"

    @property
    def refill_timeout(self) -> Optional[float]:
        """Per-invocation deadline in seconds, or None when disabled."""
        return self.refill_timeout_seconds if self.refill_timeout_seconds > 0 else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["NOT_FOUND_SENTINEL", "Settings", "get_settings"]
