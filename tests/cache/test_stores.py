"""
Tests for cache stores
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock

import redis

from harvest_intel.cache.stores import InMemoryCacheStore, RedisCacheStore
from harvest_intel.config import HarvestIntelligenceSettings


class TestInMemoryCacheStore:
    """Test cases for InMemoryCacheStore"""

    @pytest.fixture
    def store(self, clock):
        return InMemoryCacheStore(clock=clock)

    def test_set_and_get(self, store):
        assert store.set("user-1", "k", b"payload")
        assert store.get("user-1", "k") == b"payload"

    def test_scopes_are_isolated(self, store):
        store.set("user-1", "k", b"one")
        store.set("user-2", "k", b"two")

        assert store.get("user-1", "k") == b"one"
        assert store.get("user-2", "k") == b"two"
        assert store.get("system", "k") is None

    def test_delete(self, store):
        store.set("user-1", "k", b"payload")

        assert store.delete("user-1", "k") is True
        assert store.delete("user-1", "k") is False
        assert store.get("user-1", "k") is None

    def test_delete_expired(self, store, clock, fixed_now):
        store.set("user-1", "old", b"x", fixed_now + timedelta(minutes=1))
        store.set("user-1", "fresh", b"y", fixed_now + timedelta(hours=1))
        store.set("system", "forever", b"z")
        clock.advance(minutes=1)

        assert store.delete_expired() == 1
        assert store.get("user-1", "old") is None
        assert store.get("user-1", "fresh") == b"y"
        assert store.get("system", "forever") == b"z"

    def test_delete_expired_by_scope(self, store, clock, fixed_now):
        store.set("user-1", "a", b"x", fixed_now)
        store.set("user-2", "a", b"x", fixed_now)

        assert store.delete_expired("user-1") == 1
        assert store.get("user-2", "a") == b"x"

    def test_stats(self, store, fixed_now):
        store.set("user-1", "a", b"abc", fixed_now)
        store.set("user-1", "b", b"abcde")
        store.set("user-2", "c", b"ab")

        scoped = store.stats("user-1")
        assert scoped.total_entries == 2
        assert scoped.expired_entries == 1
        assert scoped.total_size == 8

        assert store.stats().total_entries == 3

    def test_clear(self, store):
        store.set("user-1", "a", b"x")
        store.set("user-2", "a", b"x")

        assert store.clear("user-1") == 1
        assert store.get("user-2", "a") == b"x"
        assert store.clear() == 1


class TestRedisCacheStore:
    """Test cases for RedisCacheStore"""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def store(self, client, clock):
        return RedisCacheStore(client=client, clock=clock)

    def test_injected_client_is_not_pinged(self, store, client):
        client.ping.assert_not_called()

    def test_key_namespacing(self, store, client):
        client.get.return_value = b"payload"

        assert store.get("user-1", "weather_forecast:f1:7d") == b"payload"
        client.get.assert_called_once_with("harvest:user-1:weather_forecast:f1:7d")

    def test_set_with_expiry_uses_milliseconds(self, store, client, fixed_now):
        client.set.return_value = True

        assert store.set("system", "k", b"v", fixed_now + timedelta(seconds=90))
        client.set.assert_called_once_with("harvest:system:k", b"v", px=90000)

    def test_set_without_expiry(self, store, client):
        client.set.return_value = True

        store.set("system", "k", b"v")
        client.set.assert_called_once_with("harvest:system:k", b"v")

    def test_set_already_expired_deletes(self, store, client, fixed_now):
        assert store.set("system", "k", b"v", fixed_now) is False
        client.delete.assert_called_once_with("harvest:system:k")
        client.set.assert_not_called()

    def test_redis_errors_are_logged_not_raised(self, store, client):
        client.get.side_effect = redis.ConnectionError("gone")
        client.set.side_effect = redis.ConnectionError("gone")

        assert store.get("system", "k") is None
        assert store.set("system", "k", b"v") is False

    def test_stats_scans_scope(self, store, client):
        client.scan_iter.return_value = iter([b"harvest:user-1:a", b"harvest:user-1:b"])
        client.strlen.side_effect = [10, 5]

        stats = store.stats("user-1")

        client.scan_iter.assert_called_once_with(match="harvest:user-1:*")
        assert stats.total_entries == 2
        assert stats.total_size == 15

    def test_clear_all(self, store, client):
        client.scan_iter.return_value = iter([b"harvest:a:1", b"harvest:b:2"])
        client.delete.return_value = 2

        assert store.clear() == 2
        client.scan_iter.assert_called_once_with(match="harvest:*")
        client.delete.assert_called_once_with(b"harvest:a:1", b"harvest:b:2")

    def test_clear_empty(self, store, client):
        client.scan_iter.return_value = iter([])

        assert store.clear("user-1") == 0
        client.delete.assert_not_called()

    def test_delete_expired_is_noop(self, store):
        assert store.delete_expired() == 0

    def test_connects_and_pings(self, monkeypatch):
        fake = MagicMock()
        factory = MagicMock(return_value=fake)
        monkeypatch.setattr(redis, "Redis", factory)

        store = RedisCacheStore.from_settings(
            HarvestIntelligenceSettings(redis_host="cache.local", redis_port=6380, redis_db=2)
        )

        assert store.client is fake
        fake.ping.assert_called_once()
        kwargs = factory.call_args.kwargs
        assert kwargs["host"] == "cache.local"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 2

    def test_connection_failure_raises(self, monkeypatch):
        fake = MagicMock()
        fake.ping.side_effect = redis.ConnectionError("refused")
        monkeypatch.setattr(redis, "Redis", MagicMock(return_value=fake))

        with pytest.raises(redis.ConnectionError):
            RedisCacheStore()
