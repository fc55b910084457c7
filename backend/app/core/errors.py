"""Typed failures raised by the services and rendered by the API layer."""

from __future__ import annotations

from fastapi import status


class ChatError(Exception):
    """Base class for failures that map 1:1 onto an HTTP response."""

    kind: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, str]:
        return {"error": self.kind, "detail": self.message}


class ValidationError(ChatError):
    """Malformed or missing input."""

    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidParticipants(ValidationError):
    kind = "invalid_participants"
    default_message = "Participants required"


class InvalidReference(ValidationError):
    kind = "invalid_reference"
    default_message = "Referenced message does not exist in this conversation"


class AccessDenied(ChatError):
    """Authenticated, but not a participant of the conversation."""

    kind = "access_denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not a participant of this conversation"


class Forbidden(ChatError):
    """Participant, but not the owner of the message."""

    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Only the sender can modify this message"


class NotFound(ChatError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(ChatError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class Unauthenticated(ChatError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"
