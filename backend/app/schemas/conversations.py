"""Schemas for conversation listing and creation."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr

from app.models import Conversation
from app.models.enums import ConversationKind
from app.schemas.users import PublicUser


class ConversationCreate(BaseModel):
    """Start a private chat or create a group."""

    kind: ConversationKind = Field(default=ConversationKind.PRIVATE, alias="type")
    participant_ids: list[int] = Field(
        default_factory=list,
        description="Other participants; the caller is always added",
    )
    name: constr(strip_whitespace=True, max_length=128) | None = Field(
        default=None, description="Group display name"
    )

    model_config = ConfigDict(populate_by_name=True)


class LastMessageSummary(BaseModel):
    message_id: int | None = None
    text: str
    sender_id: int | None = None
    at: datetime


class ConversationRead(BaseModel):
    """Conversation as seen by any of its participants."""

    id: int
    kind: ConversationKind
    name: str | None = None
    participant_ids: list[int]
    participants: list[PublicUser]
    last_message: LastMessageSummary | None = None
    unread_counts: dict[int, int] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationRead":
        last_message = None
        if conversation.last_message_at is not None:
            last_message = LastMessageSummary(
                message_id=conversation.last_message_id,
                text=conversation.last_message_text or "",
                sender_id=conversation.last_message_sender_id,
                at=conversation.last_message_at,
            )
        return cls(
            id=conversation.id,
            kind=conversation.kind,
            name=conversation.name,
            participant_ids=conversation.participant_ids,
            participants=[
                PublicUser.from_user(participant.user) for participant in conversation.participants
            ],
            last_message=last_message,
            unread_counts={
                participant.user_id: participant.unread_count
                for participant in conversation.participants
                if participant.unread_count is not None
            },
            created_at=conversation.created_at,
        )
