"""
Redis query cache with entity-based invalidation

List queries are cached under "<prefix>:<hash>" keys. When a row changes
(realtime notification, sweep, manual transition), every prefix that can
show that entity is dropped so the next read goes back to PostgreSQL.
"""
import json
import hashlib
from typing import Dict, Iterable, List, Optional, Any, Tuple
import redis.asyncio as redis
from redis.exceptions import RedisError
import structlog

from .metrics import track_cache_invalidation
from .models import ChangeEvent, ChangeType

logger = structlog.get_logger(__name__)

# Entity (table) -> cache prefixes that display it
INVALIDATION_MAP: Dict[str, Tuple[str, ...]] = {
    "reservations": ("reservations", "dashboard-stats", "calendar-data", "finance-data"),
    "vehicles": ("vehicles", "dashboard-stats", "available-vehicles"),
    "contracts": ("contracts", "reservations", "dashboard-stats"),
    "customers": ("customers", "dashboard-stats"),
}

# Dropped after a sweep expires something
SWEEP_PREFIXES: Tuple[str, ...] = ("reservations", "vehicles", "dashboard-stats", "calendar-data")


class CacheManager:
    """Manages caching operations with Redis"""

    def __init__(self, redis_client: redis.Redis, default_ttl: int = 300):
        self.redis = redis_client
        self.default_ttl = default_ttl
        self._hit_count = 0
        self._miss_count = 0

    @classmethod
    def from_url(cls, redis_url: str, default_ttl: int = 300) -> "CacheManager":
        return cls(redis.from_url(redis_url, decode_responses=True), default_ttl=default_ttl)

    async def close(self):
        await self.redis.aclose()

    async def ping(self) -> bool:
        return await self.redis.ping()

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on miss or Redis failure"""
        try:
            cached = await self.redis.get(key)
        except RedisError as e:
            logger.error("cache_get_error", key=key, error=str(e))
            return None

        if cached:
            self._hit_count += 1
            logger.debug("cache_hit", key=key, hit_rate=self.hit_rate)
            return json.loads(cached)

        self._miss_count += 1
        logger.debug("cache_miss", key=key, hit_rate=self.hit_rate)
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        try:
            await self.redis.setex(key, ttl or self.default_ttl, json.dumps(value, default=str))
            logger.debug("cache_set", key=key, ttl=ttl or self.default_ttl)
        except RedisError as e:
            logger.error("cache_set_error", key=key, error=str(e))

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching pattern

        Args:
            pattern: Redis glob pattern (e.g., "reservations:*")
        """
        try:
            keys = [key async for key in self.redis.scan_iter(match=pattern)]
            if not keys:
                return 0
            deleted = await self.redis.delete(*keys)
            logger.debug("cache_pattern_delete", pattern=pattern, keys_deleted=deleted)
            return deleted
        except RedisError as e:
            logger.error("cache_pattern_delete_error", pattern=pattern, error=str(e))
            return 0

    @property
    def hit_rate(self) -> float:
        total = self._hit_count + self._miss_count
        if total == 0:
            return 0.0
        return round(self._hit_count / total * 100, 2)

    @staticmethod
    def make_key(prefix: str, *parts: Any) -> str:
        key_data = json.dumps(parts, default=str, sort_keys=True)
        return f"{prefix}:{hashlib.md5(key_data.encode()).hexdigest()}"


class CacheInvalidator:
    """Turns entity changes into cache prefix deletions"""

    def __init__(self, cache: CacheManager):
        self.cache = cache

    async def invalidate_prefixes(self, prefixes: Iterable[str]) -> List[str]:
        dropped = []
        for prefix in dict.fromkeys(prefixes):
            await self.cache.delete_pattern(f"{prefix}:*")
            track_cache_invalidation(prefix)
            dropped.append(prefix)
        return dropped

    async def invalidate_entity(self, table: str) -> List[str]:
        prefixes = INVALIDATION_MAP.get(table)
        if not prefixes:
            logger.debug("cache_invalidation_skipped", table=table)
            return []
        return await self.invalidate_prefixes(prefixes)

    async def handle_change(self, event: ChangeEvent) -> List[str]:
        """Realtime callback: on any change to a watched table, drop its caches"""
        if event.table == "reservations" and event.type == ChangeType.UPDATE:
            old_status = (event.old_record or {}).get("status")
            new_status = (event.record or {}).get("status")
            if old_status != new_status:
                logger.info(
                    "reservation_status_changed",
                    reservation_id=(event.record or {}).get("id"),
                    old_status=old_status,
                    new_status=new_status
                )

        return await self.invalidate_entity(event.table)

    async def after_sweep(self) -> List[str]:
        return await self.invalidate_prefixes(SWEEP_PREFIXES)
