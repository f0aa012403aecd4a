import pytest

from expiry_refill import config
from expiry_refill.errors import (
    InvalidEvent,
    RefillError,
    SinkTimeout,
    SinkUnavailable,
    StoreTimeout,
    StoreUnavailable,
)
from expiry_refill.infrastructure.db_factory import build_dsn
from expiry_refill.infrastructure.redis_factory import build_redis_url


def test_get_settings_defaults():
    settings = config.get_settings()
    assert settings.redis_host == "localhost"
    assert settings.redis_port == 6379
    assert settings.db_port == 5432
    assert settings.store_table == "public.inventory"
    assert settings.store_key_field == "item"
    assert settings.store_value_field == "price"
    assert settings.not_found_sentinel == "false"
    assert settings.max_in_flight > 0
    assert settings.max_redeliveries >= 0


def test_expired_channel_follows_redis_db():
    settings = config.Settings(redis_db=3)
    assert settings.expired_channel == "__keyevent@3__:expired"


def test_explicit_notification_channel_wins(monkeypatch):
    monkeypatch.setenv("NOTIFICATION_CHANNEL", "__keyevent@*__:expired")
    assert config.get_settings().expired_channel == "__keyevent@*__:expired"


def test_zero_timeout_disables_deadline():
    assert config.Settings(refill_timeout_seconds=0).refill_timeout is None
    assert config.Settings(refill_timeout_seconds=2.5).refill_timeout == 2.5


def test_build_redis_url_variants():
    plain = config.Settings(redis_host="cache", redis_port=6380, redis_db=2)
    assert build_redis_url(plain) == "redis://cache:6380/2"

    secured = config.Settings(redis_host="cache", redis_password="p@ss word", redis_ssl=True)
    assert build_redis_url(secured) == "rediss://:p%40ss%20word@cache:6379/0"

    explicit = config.Settings(redis_url="redis://other:1/5")
    assert build_redis_url(explicit) == "redis://other:1/5"


def test_build_dsn_from_settings():
    settings = config.Settings(db_user="u", db_password="p", db_host="h", db_port=1, db_name="d")
    assert build_dsn(settings) == "postgresql://u:p@h:1/d"


@pytest.mark.parametrize(
    ("error_type", "retryable"),
    [
        (InvalidEvent, False),
        (StoreUnavailable, True),
        (StoreTimeout, True),
        (SinkUnavailable, True),
        (SinkTimeout, True),
    ],
)
def test_error_taxonomy(error_type, retryable):
    error = error_type("failure", key="sku-1")
    assert isinstance(error, RefillError)
    assert error.retryable is retryable
    assert error.key == "sku-1"
