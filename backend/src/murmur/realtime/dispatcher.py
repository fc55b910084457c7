"""Single-node fan-out of committed events to live websocket connections."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, Set, Tuple

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.monitoring.metrics import (
    realtime_connections,
    realtime_delivery_failures_total,
    realtime_events_total,
)

from .events import EventType, RealtimeEvent, ScopeKind

logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON through *websocket*, returning False instead of raising when it is gone."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


Outgoing = Tuple[str, Dict[str, Any], "asyncio.Future[bool]"]


@dataclass(eq=False, slots=True)
class Connection:
    """One live socket of a logical user.

    ``outbox`` holds envelopes in dispatch order; whoever holds
    ``send_lock`` drains it, so sends to one socket never interleave.
    """

    websocket: WebSocket
    user_id: int
    username: str
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    outbox: Deque[Outgoing] = field(default_factory=deque)
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class FanoutDispatcher:
    """Routes events to rooms, personal channels or every live connection.

    Bookkeeping and target selection happen under one short lock that also
    enqueues the envelope on each target's outbox. Sending happens outside
    it, one drain per connection, so a stalled socket only delays its own
    deliveries while per-connection order still matches dispatch order.
    """

    def __init__(self) -> None:
        self._rooms: Dict[int, Set[Connection]] = defaultdict(set)
        self._personal: Dict[int, Set[Connection]] = defaultdict(set)
        self._memberships: Dict[Connection, Set[int]] = {}
        self._lock = asyncio.Lock()

    async def register(self, connection: Connection, conversation_ids: Iterable[int]) -> None:
        async with self._lock:
            if connection in self._memberships:
                return
            self._personal[connection.user_id].add(connection)
            rooms = set(conversation_ids)
            for conversation_id in rooms:
                self._rooms[conversation_id].add(connection)
            self._memberships[connection] = rooms
            realtime_connections.labels("sockets").inc()

    async def unregister(self, connection: Connection) -> None:
        async with self._lock:
            rooms = self._memberships.pop(connection, None)
            if rooms is None:
                return
            for conversation_id in rooms:
                self._discard(self._rooms, conversation_id, connection)
            self._discard(self._personal, connection.user_id, connection)
            realtime_connections.labels("sockets").dec()

    @staticmethod
    def _discard(index: Dict[int, Set[Connection]], key: int, connection: Connection) -> None:
        bucket = index.get(key)
        if not bucket:
            return
        bucket.discard(connection)
        if not bucket:
            index.pop(key, None)

    def _join_room_locked(self, conversation_id: int, user_ids: Iterable[int]) -> None:
        for user_id in user_ids:
            for connection in self._personal.get(user_id, ()):
                self._rooms[conversation_id].add(connection)
                self._memberships[connection].add(conversation_id)

    async def join_room(self, conversation_id: int, user_ids: Iterable[int]) -> None:
        """Subscribe every live connection of *user_ids* to a conversation room."""

        async with self._lock:
            self._join_room_locked(conversation_id, user_ids)

    def _targets_locked(self, event: RealtimeEvent) -> list[Connection]:
        scope = event.scope
        if scope.kind == ScopeKind.ROOM:
            candidates: Iterable[Connection] = self._rooms.get(scope.conversation_id, ())
        elif scope.kind == ScopeKind.USERS:
            candidates = {
                connection
                for user_id in scope.user_ids
                for connection in self._personal.get(user_id, ())
            }
        else:
            candidates = self._memberships.keys()
        return [connection for connection in candidates if connection is not scope.exclude]

    async def dispatch(self, event: RealtimeEvent) -> int:
        """Deliver *event* once to each live connection in scope; return the delivery count."""

        envelope = event.envelope()
        loop = asyncio.get_running_loop()
        pending: list[tuple[Connection, asyncio.Future[bool]]] = []
        async with self._lock:
            if event.join_room is not None and event.scope.kind == ScopeKind.USERS:
                self._join_room_locked(event.join_room, event.scope.user_ids)
            for connection in self._targets_locked(event):
                outcome: asyncio.Future[bool] = loop.create_future()
                connection.outbox.append((event.type.value, envelope, outcome))
                pending.append((connection, outcome))

        if pending:
            await asyncio.gather(*(self._drain(connection) for connection, _ in pending))
        realtime_events_total.labels(event.type.value, event.scope.kind.value).inc()
        return sum(1 for _, outcome in pending if outcome.done() and outcome.result())

    @staticmethod
    async def _drain(connection: Connection) -> None:
        async with connection.send_lock:
            while connection.outbox:
                event_name, envelope, outcome = connection.outbox.popleft()
                sent = await safe_send_json(connection.websocket, envelope)
                if not sent:
                    realtime_delivery_failures_total.labels(event_name).inc()
                    logger.info(
                        "Dropped %s for user %s (connection %s is not live)",
                        event_name,
                        connection.user_id,
                        connection.connection_id,
                    )
                if not outcome.done():
                    outcome.set_result(sent)

    # -- introspection ------------------------------------------------------

    def room_members(self, conversation_id: int) -> set[Connection]:
        return set(self._rooms.get(conversation_id, ()))

    def connections_for(self, user_id: int) -> set[Connection]:
        return set(self._personal.get(user_id, ()))

    def rooms_for(self, connection: Connection) -> set[int]:
        return set(self._memberships.get(connection, ()))

    @property
    def connection_count(self) -> int:
        return len(self._memberships)


__all__ = ["Connection", "FanoutDispatcher", "EventType", "safe_send_json"]
