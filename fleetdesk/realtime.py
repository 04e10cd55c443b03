"""
Realtime change feed

Row triggers (sql/realtime.sql) publish every INSERT/UPDATE/DELETE on the
watched tables to a PostgreSQL NOTIFY channel. This listener holds one
dedicated connection, parses each notification into a ChangeEvent and hands
it to the registered callbacks (the cache invalidator).
"""
import asyncio
import json
from typing import Awaitable, Callable, List, Optional, Set

import asyncpg
import structlog
from pydantic import ValidationError

from .metrics import track_realtime_event
from .models import ChangeEvent

logger = structlog.get_logger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[object]]

WATCHED_TABLES = ("reservations", "vehicles", "contracts", "customers")


class RealtimeListener:
    """LISTEN on a channel and fan change events out to handlers"""

    def __init__(self, dsn: str, channel: str = "table_changes"):
        self.dsn = dsn
        self.channel = channel
        self.handlers: List[ChangeHandler] = []
        self._connection: Optional[asyncpg.Connection] = None
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, handler: ChangeHandler):
        self.handlers.append(handler)

    @property
    def connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed()

    async def start(self):
        if self.connected:
            return
        self._connection = await asyncpg.connect(self.dsn)
        await self._connection.add_listener(self.channel, self._on_notification)
        logger.info("realtime_subscribed", channel=self.channel, tables=list(WATCHED_TABLES))

    async def stop(self):
        if self._connection is None:
            return

        if not self._connection.is_closed():
            await self._connection.remove_listener(self.channel, self._on_notification)
            await self._connection.close()
        self._connection = None

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        logger.info("realtime_unsubscribed", channel=self.channel)

    def _on_notification(self, connection, pid, channel, payload):
        # asyncpg calls this synchronously on the event loop
        task = asyncio.get_running_loop().create_task(self.dispatch(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def dispatch(self, payload: str) -> Optional[ChangeEvent]:
        """Parse one notification payload and run every handler on it"""
        try:
            event = ChangeEvent.model_validate(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("realtime_payload_invalid", channel=self.channel, error=str(e))
            return None

        track_realtime_event(event.table, event.type.value)
        logger.debug("realtime_event", table=event.table, type=event.type.value)

        for handler in self.handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error("realtime_handler_failed", table=event.table, error=str(e), exc_info=True)
        return event
