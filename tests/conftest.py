"""
Pytest configuration for Expiry Refill.

Provides fixtures for:
- Settings override for unit and integration tests
- In-memory fakes for the record store and cache sink (see tests/fakes.py)
- Connection availability checks for integration tests
"""

from __future__ import annotations

import os
from pathlib import Path

import psycopg
import pytest

from expiry_refill.config import Settings, get_settings
from expiry_refill.domain.models import Record
from expiry_refill.infrastructure.db_factory import build_dsn
from expiry_refill.infrastructure.redis_factory import build_redis_url
from tests.fakes import FakeCacheSink, FakeRecordStore


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sku_record() -> Record:
    return Record(id="doc-1", key="sku-1", value="19.99")


@pytest.fixture
def store(sku_record: Record) -> FakeRecordStore:
    return FakeRecordStore(records=[sku_record])


@pytest.fixture
def sink() -> FakeCacheSink:
    return FakeCacheSink()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        redis_host=os.getenv("REDIS_HOST", "localhost"),
        redis_port=int(os.getenv("REDIS_PORT", "6379")),
        redis_db=int(os.getenv("REDIS_DB", "0")),
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "refill"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def test_redis_url(test_settings: Settings) -> str:
    return build_redis_url(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def inventory_table(test_dsn: str, db_connection_available: bool) -> str:
    """
    Ensure the inventory table exists and return its name.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with psycopg.connect(test_dsn) as conn:
        with conn.cursor() as cur:
            cur.execute(init_sql_path.read_text(encoding="utf-8"))
        conn.commit()
    return "public.inventory"


@pytest.fixture
def clean_inventory(test_dsn: str, inventory_table: str):
    """
    Clean the inventory table around each test function.
    """
    with psycopg.connect(test_dsn) as conn:
        conn.execute("TRUNCATE TABLE public.inventory;")
        conn.commit()
    yield inventory_table
    with psycopg.connect(test_dsn) as conn:
        conn.execute("TRUNCATE TABLE public.inventory;")
        conn.commit()
