"""Pydantic schemas for API payloads."""

from .auth import AuthResponse, LoginRequest, SignupRequest
from .conversations import ConversationCreate, ConversationRead, LastMessageSummary
from .messages import (
    MessageCreate,
    MessageRead,
    MessageUpdate,
    ReactionRequest,
    ReactionUpdate,
    ReadReceiptResult,
    ReplyPreview,
)
from .users import PublicUser, SettingsUpdate, StatusUpdate, UserRead, UserSettings

__all__ = [
    "AuthResponse",
    "LoginRequest",
    "SignupRequest",
    "ConversationCreate",
    "ConversationRead",
    "LastMessageSummary",
    "MessageCreate",
    "MessageRead",
    "MessageUpdate",
    "ReactionRequest",
    "ReactionUpdate",
    "ReadReceiptResult",
    "ReplyPreview",
    "PublicUser",
    "SettingsUpdate",
    "StatusUpdate",
    "UserRead",
    "UserSettings",
]
