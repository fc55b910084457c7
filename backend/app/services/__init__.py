"""Application service helpers."""

from .conversations import ConversationStore
from .messages import MessageLog, ReactionToggle
from .realtime import dispatcher, get_dispatcher, get_presence_registry, presence_registry
from .users import UserDirectory, avatar_glyph

__all__ = [
    "ConversationStore",
    "MessageLog",
    "ReactionToggle",
    "UserDirectory",
    "avatar_glyph",
    "dispatcher",
    "get_dispatcher",
    "get_presence_registry",
    "presence_registry",
]
