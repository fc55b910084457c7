"""Presence and typing registry derived from live connection counts."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Set

from app.models.enums import PresenceStatus

from .dispatcher import Connection, FanoutDispatcher
from .events import presence_changed, typing_changed

logger = logging.getLogger(__name__)

ConversationLookup = Callable[[int], Iterable[int]]
MembershipCheck = Callable[[int, int], bool]
StatusWriter = Callable[[int, PresenceStatus, "datetime | None"], None]


class PresenceRegistry:
    """Maps each user to their live connections and derives presence from it.

    Transitions for one user are serialized by a per-user lock, so a
    connect racing a disconnect cannot leave the user in the wrong state.
    The in-memory connection set is the source of truth: storage failures
    while writing presence through are logged and otherwise ignored.
    """

    def __init__(
        self,
        dispatcher: FanoutDispatcher,
        *,
        conversation_lookup: ConversationLookup,
        membership_check: MembershipCheck,
        status_writer: StatusWriter,
    ) -> None:
        self._dispatcher = dispatcher
        self._conversation_lookup = conversation_lookup
        self._membership_check = membership_check
        self._status_writer = status_writer
        self._connections: Dict[int, Set[str]] = defaultdict(set)
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def dispatcher(self) -> FanoutDispatcher:
        return self._dispatcher

    def is_online(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    def connection_count(self, user_id: int) -> int:
        return len(self._connections.get(user_id, ()))

    def online_user_ids(self) -> list[int]:
        return sorted(user_id for user_id, ids in self._connections.items() if ids)

    def _write_status(
        self, user_id: int, status: PresenceStatus, last_seen: datetime | None
    ) -> None:
        try:
            self._status_writer(user_id, status, last_seen)
        except Exception:
            logger.exception("Failed to persist presence %s for user %s", status.value, user_id)

    def _rooms_for(self, user_id: int) -> list[int]:
        try:
            return list(self._conversation_lookup(user_id))
        except Exception:
            logger.exception("Failed to load conversations for user %s", user_id)
            return []

    async def on_connect(self, connection: Connection) -> bool:
        """Register *connection*; return True when the user just came online."""

        user_id = connection.user_id
        async with self._locks[user_id]:
            live = self._connections[user_id]
            first = not live
            live.add(connection.connection_id)
            await self._dispatcher.register(connection, self._rooms_for(user_id))
            if first:
                self._write_status(user_id, PresenceStatus.ONLINE, None)
                logger.info("User %s is online", user_id)
                await self._dispatcher.dispatch(
                    presence_changed(user_id, PresenceStatus.ONLINE.value, None)
                )
            return first

    async def on_disconnect(self, connection: Connection) -> bool:
        """Drop *connection*; return True when it was the user's last one."""

        user_id = connection.user_id
        async with self._locks[user_id]:
            live = self._connections.get(user_id)
            await self._dispatcher.unregister(connection)
            if not live or connection.connection_id not in live:
                return False
            live.discard(connection.connection_id)
            if live:
                return False
            self._connections.pop(user_id, None)
            last_seen = datetime.now(timezone.utc)
            self._write_status(user_id, PresenceStatus.OFFLINE, last_seen)
            logger.info("User %s is offline", user_id)
            await self._dispatcher.dispatch(
                presence_changed(user_id, PresenceStatus.OFFLINE.value, last_seen.isoformat())
            )
            return True

    async def set_status(self, user_id: int, status: PresenceStatus) -> bool:
        """Switch a connected user between online and away."""

        async with self._locks[user_id]:
            if not self._connections.get(user_id):
                return False
            self._write_status(user_id, status, None)
            await self._dispatcher.dispatch(presence_changed(user_id, status.value, None))
            return True

    async def typing(self, connection: Connection, conversation_id: int, is_typing: bool) -> bool:
        """Relay a typing signal to the rest of the room; non-participants are dropped."""

        try:
            allowed = self._membership_check(connection.user_id, conversation_id)
        except Exception:
            logger.exception("Membership check failed for typing signal")
            return False
        if not allowed:
            logger.debug(
                "Dropping typing signal from user %s for conversation %s",
                connection.user_id,
                conversation_id,
            )
            return False
        await self._dispatcher.dispatch(
            typing_changed(
                conversation_id,
                connection.user_id,
                connection.username,
                bool(is_typing),
                origin=connection,
            )
        )
        return True
