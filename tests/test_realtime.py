"""
Tests for the realtime change feed dispatch
"""
import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from fleetdesk.cache import CacheManager
from fleetdesk.config import Settings
from fleetdesk.models import ChangeType
from fleetdesk.realtime import RealtimeListener


@pytest.fixture
def listener():
    return RealtimeListener("postgresql://fleetdesk@localhost/fleetdesk_test")


def notification(table, change_type, record=None, old_record=None):
    return json.dumps({"table": table, "type": change_type, "record": record, "old_record": old_record})


class TestDispatch:

    @pytest.mark.asyncio
    async def test_handlers_receive_parsed_event(self, listener):
        handler = AsyncMock()
        listener.subscribe(handler)

        event = await listener.dispatch(notification("reservations", "update", {"id": "r1", "status": "expired"}))

        assert event.table == "reservations"
        assert event.type == ChangeType.UPDATE
        handler.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["not json", json.dumps({"type": "INSERT"}), json.dumps({"table": "vehicles", "type": "TRUNCATE"})])
    async def test_invalid_payload_is_dropped(self, listener, payload):
        handler = AsyncMock()
        listener.subscribe(handler)

        assert await listener.dispatch(payload) is None
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, listener):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        listener.subscribe(failing)
        listener.subscribe(healthy)

        await listener.dispatch(notification("vehicles", "DELETE", old_record={"id": "v1"}))

        healthy.assert_awaited_once()

    def test_not_connected_before_start(self, listener):
        assert not listener.connected

    @pytest.mark.asyncio
    async def test_stop_without_start(self, listener):
        await listener.stop()
        assert not listener.connected


class TestInvalidationOnChange:

    @pytest.mark.asyncio
    async def test_expired_reservation_drops_caches(self, listener, invalidator, cache, redis_client):
        listener.subscribe(invalidator.handle_change)
        await cache.set(CacheManager.make_key("reservations", "list"), [])
        await cache.set(CacheManager.make_key("calendar-data", "march"), [])
        await cache.set(CacheManager.make_key("customers", "list"), [])

        await listener.dispatch(notification(
            "reservations",
            "UPDATE",
            record={"id": "r1", "status": "expired"},
            old_record={"id": "r1", "status": "awaiting_payment"},
        ))

        assert [key.split(":")[0] for key in redis_client.data] == ["customers"]


def test_trigger_falls_back_to_the_default_listen_channel():
    trigger_sql = (Path(__file__).parent.parent / "sql" / "realtime.sql").read_text()
    default_channel = Settings.model_fields["realtime_channel"].default

    assert f"current_setting('fleetdesk.realtime_channel', true), ''), '{default_channel}')" in trigger_sql
    assert "pg_notify(channel, payload::text)" in trigger_sql
