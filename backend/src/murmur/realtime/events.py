"""Realtime event envelope and delivery scopes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from .dispatcher import Connection


class EventType(str, Enum):
    """Committed mutations fanned out to live sockets, keyed by wire name."""

    MESSAGE_CREATED = "newMessage"
    MESSAGE_EDITED = "messageUpdated"
    MESSAGE_DELETED = "messageDeleted"
    REACTION_CHANGED = "messageReactionUpdated"
    CONVERSATION_CREATED = "newConversation"
    READ_RECEIPT_CHANGED = "messagesRead"
    PRESENCE_CHANGED = "userStatusChange"
    TYPING_CHANGED = "userTyping"


class ScopeKind(str, Enum):
    ROOM = "room"
    USERS = "users"
    BROADCAST = "broadcast"


@dataclass(frozen=True, slots=True)
class Scope:
    """Set of live connections an event is delivered to."""

    kind: ScopeKind
    conversation_id: int | None = None
    user_ids: frozenset[int] = frozenset()
    exclude: "Connection | None" = None

    @classmethod
    def room(cls, conversation_id: int, *, exclude: "Connection | None" = None) -> "Scope":
        return cls(ScopeKind.ROOM, conversation_id=conversation_id, exclude=exclude)

    @classmethod
    def users(cls, user_ids: Iterable[int]) -> "Scope":
        return cls(ScopeKind.USERS, user_ids=frozenset(user_ids))

    @classmethod
    def broadcast(cls) -> "Scope":
        return cls(ScopeKind.BROADCAST)


@dataclass(slots=True)
class RealtimeEvent:
    type: EventType
    payload: dict[str, Any]
    scope: Scope
    # Subscribe the scope's live connections to this room before delivery.
    join_room: int | None = field(default=None)

    def envelope(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": self.payload}


def message_created(conversation_id: int, message: dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventType.MESSAGE_CREATED, message, Scope.room(conversation_id))


def message_edited(conversation_id: int, message: dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(EventType.MESSAGE_EDITED, message, Scope.room(conversation_id))


def message_deleted(conversation_id: int, message_id: int) -> RealtimeEvent:
    return RealtimeEvent(
        EventType.MESSAGE_DELETED,
        {"message_id": message_id, "conversation_id": conversation_id},
        Scope.room(conversation_id),
    )


def reaction_changed(
    conversation_id: int,
    message_id: int,
    reactions: dict[int, str],
    user_id: int,
    emoji: str | None,
) -> RealtimeEvent:
    return RealtimeEvent(
        EventType.REACTION_CHANGED,
        {
            "message_id": message_id,
            "conversation_id": conversation_id,
            "reactions": {str(key): value for key, value in reactions.items()},
            "user_id": user_id,
            "emoji": emoji,
        },
        Scope.room(conversation_id),
    )


def conversation_created(
    conversation_id: int, participant_ids: Iterable[int], conversation: dict[str, Any]
) -> RealtimeEvent:
    return RealtimeEvent(
        EventType.CONVERSATION_CREATED,
        conversation,
        Scope.users(participant_ids),
        join_room=conversation_id,
    )


def messages_read(conversation_id: int, user_id: int) -> RealtimeEvent:
    return RealtimeEvent(
        EventType.READ_RECEIPT_CHANGED,
        {"conversation_id": conversation_id, "user_id": user_id},
        Scope.room(conversation_id),
    )


def presence_changed(user_id: int, status: str, last_seen: str | None) -> RealtimeEvent:
    return RealtimeEvent(
        EventType.PRESENCE_CHANGED,
        {"user_id": user_id, "status": status, "last_seen": last_seen},
        Scope.broadcast(),
    )


def typing_changed(
    conversation_id: int,
    user_id: int,
    username: str,
    is_typing: bool,
    *,
    origin: "Connection | None" = None,
) -> RealtimeEvent:
    return RealtimeEvent(
        EventType.TYPING_CHANGED,
        {
            "user_id": user_id,
            "username": username,
            "conversation_id": conversation_id,
            "is_typing": is_typing,
        },
        Scope.room(conversation_id, exclude=origin),
    )
