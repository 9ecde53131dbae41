"""
Unit tests for configuration and cache backend selection.
"""

from datetime import timedelta

import pytest

from shared.config import CacheSettings, ServiceSettings, get_config, parse_duration
from shared.errors import ConfigurationError
from shared.retry import RetryConfig, calculate_delay
from service_orders.app.cache import InMemoryOrderCache, RedisOrderCache, create_order_cache
from service_orders.app.cache.factory import DEFAULT_INMEMORY_TTL


class TestParseDuration:
    """Test cases for parse_duration."""

    @pytest.mark.parametrize("text, expected", [
        ("30m", timedelta(minutes=30)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("300ms", timedelta(milliseconds=300)),
        ("1.5s", timedelta(seconds=1.5)),
        ("0", timedelta(0)),
        ("-2s", timedelta(seconds=-2)),
    ])
    def test_valid_durations(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "10", "abc", "5 minutes", "1h-"])
    def test_invalid_durations(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestCacheSettings:
    """Test cases for CacheSettings validation."""

    def test_defaults(self):
        settings = CacheSettings()

        assert settings.type == "inmemory"
        assert settings.capacity == 1000
        assert settings.ttl_timedelta() == timedelta(minutes=30)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            CacheSettings(type="memcached").validate_settings()

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_non_positive_capacity(self, capacity):
        with pytest.raises(ConfigurationError):
            CacheSettings(capacity=capacity).validate_settings()

    def test_capacity_ignored_for_redis(self):
        CacheSettings(type="redis", capacity=0).validate_settings()

    def test_bad_ttl(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CacheSettings(ttl="soon").validate_settings()

        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_unset_ttl(self):
        assert CacheSettings(ttl=None).ttl_timedelta() is None
        assert CacheSettings(ttl="").ttl_timedelta() is None


class TestServiceSettings:
    """Test cases for ServiceSettings."""

    def test_nested_cache_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("ORDERS_CACHE__TYPE", "redis")
        monkeypatch.setenv("ORDERS_CACHE__TTL", "2h")
        monkeypatch.setenv("ORDERS_KAFKA_TOPIC", "orders-v2")

        settings = ServiceSettings(_env_file=None)

        assert settings.cache.type == "redis"
        assert settings.cache.ttl_timedelta() == timedelta(hours=2)
        assert settings.kafka_topic == "orders-v2"

    def test_get_config_rejects_bad_cache(self):
        with pytest.raises(ConfigurationError):
            get_config(_env_file=None, cache=CacheSettings(capacity=0))

    def test_get_config_wraps_parse_errors(self):
        with pytest.raises(ConfigurationError):
            get_config(_env_file=None, port="not-a-port")

    def test_get_config_requires_topic(self):
        with pytest.raises(ConfigurationError):
            get_config(_env_file=None, kafka_topic="")


class TestCreateOrderCache:
    """Test cases for create_order_cache."""

    def test_inmemory(self):
        cache = create_order_cache(CacheSettings(type="inmemory", capacity=5, ttl="10m"))

        assert isinstance(cache, InMemoryOrderCache)
        assert cache.capacity == 5
        assert cache.ttl == 600

    def test_inmemory_default_ttl(self):
        cache = create_order_cache(CacheSettings(type="inmemory", ttl=None))

        assert cache.ttl == DEFAULT_INMEMORY_TTL.total_seconds()

    def test_inmemory_zero_ttl_disables_expiry(self):
        cache = create_order_cache(CacheSettings(type="inmemory", ttl="0"))

        assert cache.ttl is None

    def test_redis(self):
        cache = create_order_cache(CacheSettings(type="redis", ttl="5m"))

        assert isinstance(cache, RedisOrderCache)
        assert cache.ttl == timedelta(minutes=5)

    def test_redis_default_ttl(self):
        cache = create_order_cache(CacheSettings(type="redis", ttl=None))

        assert cache.ttl == timedelta(hours=24)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            create_order_cache(CacheSettings(type="disk"))


class TestReconnectDelay:
    """Test cases for the reconnect backoff."""

    def test_fixed_delay_is_constant(self):
        config = RetryConfig.fixed(2.5)

        assert [calculate_delay(attempt, config) for attempt in (1, 2, 10)] == [2.5, 2.5, 2.5]

    def test_delay_capped_at_max(self):
        assert calculate_delay(3, RetryConfig(base_delay=90.0, max_delay=60.0)) == 60.0
