"""Database models package."""

from .base import Base
from .chat import (
    Conversation,
    ConversationParticipant,
    Message,
    MessageReaction,
    MessageReceipt,
    User,
    private_pair_key,
    utcnow,
)
from .enums import ConversationKind, MessageType, PresenceStatus, Theme

__all__ = [
    "Base",
    "User",
    "Conversation",
    "ConversationParticipant",
    "Message",
    "MessageReceipt",
    "MessageReaction",
    "ConversationKind",
    "MessageType",
    "PresenceStatus",
    "Theme",
    "private_pair_key",
    "utcnow",
]
