"""Core utilities for the Murmur backend."""

from .errors import (
    AccessDenied,
    ChatError,
    Conflict,
    Forbidden,
    InvalidParticipants,
    InvalidReference,
    NotFound,
    Unauthenticated,
    ValidationError,
)

__all__ = [
    "ChatError",
    "ValidationError",
    "InvalidParticipants",
    "InvalidReference",
    "AccessDenied",
    "Forbidden",
    "NotFound",
    "Conflict",
    "Unauthenticated",
]
