"""Cache manager with Redis connection and TTL support"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

READ_MODEL_PATTERNS = ("leaderboard:*", "games:available:*")


class CacheManager:
    """
    Manages Redis cache operations for read-model queries.

    Features:
    - Connection management for Redis
    - Leaderboard caching with 30-second TTL
    - Available games caching with 10-second TTL
    - Pattern-based invalidation after the indexer applies events
    """

    def __init__(self, redis_url: str):
        """
        Initialize cache manager.

        Args:
            redis_url: Redis connection URL (e.g., redis://localhost:6379)
        """
        self.redis_url = redis_url
        self.client: Optional[redis.Redis] = None
        self._logger = logger.bind(component="cache_manager")

    async def connect(self) -> None:
        """Establish connection to Redis"""
        try:
            self.client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            # Test connection
            await self.client.ping()
            self._logger.info("redis_connected")
        except Exception as e:
            self._logger.error("redis_connection_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self.client:
            await self.client.aclose()
            self._logger.info("redis_disconnected")

    async def ping(self) -> bool:
        """True when Redis answers; never raises"""
        if not self.client:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            self._logger.warning("redis_ping_failed", error=str(e))
            return False

    def _serialize_value(self, value: Any) -> str:
        """Serialize value to JSON string, handling datetimes"""

        def default(obj):
            if isinstance(obj, datetime):
                return obj.isoformat()
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

        return json.dumps(value, default=default)

    def _deserialize_value(self, value: str) -> Any:
        return json.loads(value)

    async def _set(self, key: str, value: Any, ttl: int) -> None:
        if not self.client:
            self._logger.warning("cache_set_skipped", key=key, reason="redis_not_connected")
            return

        try:
            await self.client.setex(key, ttl, self._serialize_value(value))
            self._logger.debug("cache_set", key=key, ttl=ttl)
        except Exception as e:
            self._logger.error("cache_set_failed", key=key, error=str(e))

    async def _get(self, key: str) -> Optional[Any]:
        if not self.client:
            return None

        try:
            value = await self.client.get(key)
            if value:
                self._logger.debug("cache_hit", key=key)
                return self._deserialize_value(value)

            self._logger.debug("cache_miss", key=key)
            return None
        except Exception as e:
            self._logger.error("cache_get_failed", key=key, error=str(e))
            return None

    @staticmethod
    def _leaderboard_key(sort_by: str, limit: int) -> str:
        return f"leaderboard:{sort_by}:{limit}"

    @staticmethod
    def _available_games_key(bet_tier: Optional[int], limit: int, offset: int) -> str:
        tier_key = bet_tier if bet_tier is not None else "all"
        return f"games:available:{tier_key}:{limit}:{offset}"

    async def cache_leaderboard(
        self, sort_by: str, limit: int, leaderboard: List[Dict[str, Any]], ttl: int = 30
    ) -> None:
        """Cache a leaderboard page"""
        await self._set(self._leaderboard_key(sort_by, limit), leaderboard, ttl)

    async def get_cached_leaderboard(
        self, sort_by: str, limit: int
    ) -> Optional[List[Dict[str, Any]]]:
        """Get a cached leaderboard page or None"""
        return await self._get(self._leaderboard_key(sort_by, limit))

    async def cache_available_games(
        self,
        bet_tier: Optional[int],
        limit: int,
        offset: int,
        games: List[Dict[str, Any]],
        ttl: int = 10,
    ) -> None:
        """Cache a page of the lobby's open games"""
        await self._set(self._available_games_key(bet_tier, limit, offset), games, ttl)

    async def get_cached_available_games(
        self, bet_tier: Optional[int], limit: int, offset: int
    ) -> Optional[List[Dict[str, Any]]]:
        """Get a cached page of open games or None"""
        return await self._get(self._available_games_key(bet_tier, limit, offset))

    async def invalidate_cache(self, pattern: str) -> int:
        """
        Invalidate cache entries matching pattern.

        Args:
            pattern: Redis key pattern (e.g., "leaderboard:*")

        Returns:
            Number of keys deleted
        """
        if not self.client:
            self._logger.warning("invalidate_cache_skipped", reason="redis_not_connected")
            return 0

        try:
            keys = []
            async for key in self.client.scan_iter(match=pattern):
                keys.append(key)

            if keys:
                deleted = await self.client.delete(*keys)
                self._logger.info(
                    "cache_invalidated",
                    pattern=pattern,
                    deleted_count=deleted,
                )
                return deleted

            return 0

        except Exception as e:
            self._logger.error(
                "invalidate_cache_failed",
                pattern=pattern,
                error=str(e),
            )
            return 0

    async def invalidate_read_model(self) -> int:
        """Drop every cached read-model query"""
        deleted = 0
        for pattern in READ_MODEL_PATTERNS:
            deleted += await self.invalidate_cache(pattern)
        return deleted
