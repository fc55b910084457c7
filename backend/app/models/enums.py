from __future__ import annotations

from enum import Enum


class PresenceStatus(str, Enum):
    """Presence derived from live connections, or set manually to away."""

    ONLINE = "online"
    OFFLINE = "offline"
    AWAY = "away"


class Theme(str, Enum):
    """UI theme preference stored with the user settings."""

    LIGHT = "light"
    DARK = "dark"


class ConversationKind(str, Enum):
    """Private (two-party) or group conversation."""

    PRIVATE = "private"
    GROUP = "group"


class MessageType(str, Enum):
    """Kind of message payload."""

    TEXT = "text"
    IMAGE = "image"
