"""
Tests for the Redis query cache and entity invalidation
"""
import pytest

from fleetdesk.cache import INVALIDATION_MAP, CacheManager
from fleetdesk.models import ChangeEvent


async def seed(cache, *prefixes):
    for prefix in prefixes:
        await cache.set(CacheManager.make_key(prefix, "list"), [prefix])


class TestCacheManager:

    def test_make_key_is_stable(self):
        key = CacheManager.make_key("reservations", "list", ["pending"])
        assert key.startswith("reservations:")
        assert key == CacheManager.make_key("reservations", "list", ["pending"])
        assert key != CacheManager.make_key("reservations", "list", ["expired"])

    @pytest.mark.asyncio
    async def test_set_get_and_hit_rate(self, cache, redis_client):
        assert await cache.get("reservations:x") is None
        await cache.set("reservations:x", {"count": 2})

        assert await cache.get("reservations:x") == {"count": 2}
        assert redis_client.ttls["reservations:x"] == 60
        assert cache.hit_rate == 50.0

    @pytest.mark.asyncio
    async def test_redis_failure_is_a_miss(self, cache, redis_client):
        redis_client.broken = True

        await cache.set("reservations:x", [1])
        assert await cache.get("reservations:x") is None
        assert await cache.delete_pattern("reservations:*") == 0

    @pytest.mark.asyncio
    async def test_delete_pattern(self, cache, redis_client):
        await seed(cache, "reservations", "vehicles")

        assert await cache.delete_pattern("reservations:*") == 1
        assert all(key.startswith("vehicles:") for key in redis_client.data)


class TestCacheInvalidator:

    @pytest.mark.asyncio
    async def test_reservation_change_drops_dependent_views(self, invalidator, cache, redis_client):
        await seed(cache, "reservations", "dashboard-stats", "calendar-data", "finance-data", "vehicles")

        dropped = await invalidator.invalidate_entity("reservations")

        assert dropped == list(INVALIDATION_MAP["reservations"])
        assert [key.split(":")[0] for key in redis_client.data] == ["vehicles"]

    @pytest.mark.asyncio
    async def test_unknown_table_is_ignored(self, invalidator, cache, redis_client):
        await seed(cache, "reservations")

        assert await invalidator.invalidate_entity("audit_log") == []
        assert len(redis_client.data) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("table,expected", [
        ("vehicles", {"vehicles", "dashboard-stats", "available-vehicles"}),
        ("contracts", {"contracts", "reservations", "dashboard-stats"}),
        ("customers", {"customers", "dashboard-stats"}),
    ])
    async def test_handle_change(self, invalidator, table, expected):
        event = ChangeEvent(table=table, type="insert", record={"id": 1})
        assert set(await invalidator.handle_change(event)) == expected

    @pytest.mark.asyncio
    async def test_after_sweep(self, invalidator, cache, redis_client):
        await seed(cache, "reservations", "vehicles", "calendar-data", "customers")

        await invalidator.after_sweep()

        assert [key.split(":")[0] for key in redis_client.data] == ["customers"]
