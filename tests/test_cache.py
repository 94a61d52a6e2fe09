"""Tests for the Redis cache manager

The integration tests require a Redis instance to be running:
docker run --name redis-test -p 6379:6379 -d redis:7-alpine

They are skipped unless TEST_REDIS_URL is set, for example
TEST_REDIS_URL=redis://localhost:6379/1 pytest -m integration
"""

import json
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from arena_indexer.cache.manager import CacheManager

TEST_REDIS_URL = os.getenv("TEST_REDIS_URL")

requires_redis = pytest.mark.skipif(not TEST_REDIS_URL, reason="TEST_REDIS_URL not set")


async def _aiter(items):
    for item in items:
        yield item


@pytest.fixture
def mock_redis():
    client = MagicMock()
    client.setex = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.delete = AsyncMock(return_value=0)
    return client


@pytest.fixture
def cache(mock_redis):
    manager = CacheManager("redis://localhost:6379/1")
    manager.client = mock_redis
    return manager


# ============================================================================
# Unit Tests
# ============================================================================

async def test_cache_leaderboard_uses_ttl_and_key(cache, mock_redis):
    """Test leaderboard pages are keyed by sort field and limit"""
    await cache.cache_leaderboard("games_won", 10, [{"address": "0xA"}])

    mock_redis.setex.assert_awaited_once()
    key, ttl, value = mock_redis.setex.await_args.args
    assert key == "leaderboard:games_won:10"
    assert ttl == 30
    assert json.loads(value) == [{"address": "0xA"}]


async def test_cache_available_games_serializes_datetimes(cache, mock_redis):
    """Test datetimes are written as ISO strings"""
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    await cache.cache_available_games(None, 50, 0, [{"game_id": 7, "created_at": created}])

    key, ttl, value = mock_redis.setex.await_args.args
    assert key == "games:available:all:50:0"
    assert ttl == 10
    assert json.loads(value)[0]["created_at"] == created.isoformat()


async def test_get_cached_miss(cache, mock_redis):
    assert await cache.get_cached_leaderboard("total_winnings", 10) is None
    mock_redis.get.assert_awaited_once_with("leaderboard:total_winnings:10")


async def test_get_cached_hit(cache, mock_redis):
    mock_redis.get.return_value = json.dumps([{"game_id": 7}])

    result = await cache.get_cached_available_games(2, 50, 0)

    assert result == [{"game_id": 7}]
    mock_redis.get.assert_awaited_once_with("games:available:2:50:0")


async def test_redis_errors_degrade_to_miss(cache, mock_redis):
    """Test a failing Redis never fails the request"""
    mock_redis.get.side_effect = ConnectionError("redis down")
    mock_redis.setex.side_effect = ConnectionError("redis down")

    assert await cache.get_cached_leaderboard("games_won", 10) is None
    await cache.cache_leaderboard("games_won", 10, [])


async def test_not_connected_is_noop():
    manager = CacheManager("redis://localhost:6379/1")

    assert await manager.get_cached_leaderboard("games_won", 10) is None
    await manager.cache_leaderboard("games_won", 10, [])
    assert await manager.invalidate_read_model() == 0


async def test_ping_reports_redis_availability(cache, mock_redis):
    mock_redis.ping = AsyncMock(return_value=True)
    assert await cache.ping() is True

    mock_redis.ping.side_effect = ConnectionError("redis down")
    assert await cache.ping() is False

    assert await CacheManager("redis://localhost:6379/1").ping() is False


async def test_invalidate_read_model_covers_all_patterns(cache, mock_redis):
    """Test the indexer's invalidation clears lobby and leaderboard keys"""
    patterns = []

    def scan_iter(match):
        patterns.append(match)
        return _aiter([f"{match[:-1]}x"])

    mock_redis.scan_iter = scan_iter
    mock_redis.delete.return_value = 1

    deleted = await cache.invalidate_read_model()

    assert patterns == ["leaderboard:*", "games:available:*"]
    assert deleted == 2


# ============================================================================
# Integration Tests
# ============================================================================

@pytest.fixture
async def cache_manager():
    """Create cache manager against a live Redis"""
    manager = CacheManager(TEST_REDIS_URL)

    try:
        await manager.connect()
        await manager.client.flushdb()
        yield manager
    finally:
        if manager.client:
            await manager.client.flushdb()
        await manager.disconnect()


@pytest.mark.integration
@requires_redis
async def test_leaderboard_round_trip(cache_manager):
    """Test a cached leaderboard is readable until invalidated"""
    leaderboard = [{"address": "0xB", "games_won": 1, "total_winnings": "100000000"}]

    await cache_manager.cache_leaderboard("total_winnings", 10, leaderboard)
    assert await cache_manager.get_cached_leaderboard("total_winnings", 10) == leaderboard

    deleted = await cache_manager.invalidate_read_model()

    assert deleted == 1
    assert await cache_manager.get_cached_leaderboard("total_winnings", 10) is None


@pytest.mark.integration
@requires_redis
async def test_ttl_is_set(cache_manager):
    await cache_manager.cache_available_games(1, 50, 0, [{"game_id": 1}])

    ttl = await cache_manager.client.ttl("games:available:1:50:0")

    assert 0 < ttl <= 10
