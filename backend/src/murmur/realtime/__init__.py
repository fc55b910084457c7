"""Live-connection fan-out, presence and typing for the chat backend."""

from .dispatcher import Connection, FanoutDispatcher, safe_send_json
from .events import (
    EventType,
    RealtimeEvent,
    Scope,
    ScopeKind,
    conversation_created,
    message_created,
    message_deleted,
    message_edited,
    messages_read,
    presence_changed,
    reaction_changed,
    typing_changed,
)
from .presence import PresenceRegistry

__all__ = [
    "Connection",
    "EventType",
    "FanoutDispatcher",
    "PresenceRegistry",
    "RealtimeEvent",
    "Scope",
    "ScopeKind",
    "conversation_created",
    "message_created",
    "message_deleted",
    "message_edited",
    "messages_read",
    "presence_changed",
    "reaction_changed",
    "safe_send_json",
    "typing_changed",
]
