"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, constr

from app.models import Message
from app.models.enums import MessageType
from app.schemas.users import PublicUser


class MessageCreate(BaseModel):
    """Payload for appending a message to a conversation."""

    conversation_id: int
    content: str = Field(..., description="Message text; blank content is rejected")
    type: MessageType = MessageType.TEXT
    file_url: str | None = Field(default=None, max_length=512)
    reply_to_message_id: int | None = Field(
        default=None, description="Message in the same conversation being replied to"
    )
    forwarded: bool = False


class MessageUpdate(BaseModel):
    content: str = Field(..., description="Replacement text")


class ReactionRequest(BaseModel):
    """Toggle a reaction; sending the same emoji twice removes it."""

    emoji: constr(strip_whitespace=True, min_length=1, max_length=32)


class ReplyPreview(BaseModel):
    """Resolved reply target, or a placeholder once the target is gone."""

    id: int
    available: bool
    content: str | None = None
    sender: PublicUser | None = None


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    id: int
    conversation_id: int
    sender_id: int
    sender: PublicUser
    content: str
    type: MessageType
    file_url: str | None = None
    created_at: datetime
    updated_at: datetime
    edited: bool = False
    forwarded: bool = False
    reply_to_message_id: int | None = None
    reply_to: ReplyPreview | None = None
    read_by: list[int] = Field(default_factory=list)
    reactions: dict[int, str] = Field(default_factory=dict)

    @classmethod
    def from_message(
        cls, message: Message, reply_targets: dict[int, Message] | None = None
    ) -> "MessageRead":
        reply_to = None
        if message.reply_to_message_id is not None:
            target = (reply_targets or {}).get(message.reply_to_message_id)
            if target is None:
                reply_to = ReplyPreview(id=message.reply_to_message_id, available=False)
            else:
                reply_to = ReplyPreview(
                    id=target.id,
                    available=True,
                    content=target.content,
                    sender=PublicUser.from_user(target.sender),
                )
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            sender=PublicUser.from_user(message.sender),
            content=message.content,
            type=message.content_type,
            file_url=message.file_url,
            created_at=message.created_at,
            updated_at=message.updated_at,
            edited=message.edited,
            forwarded=message.forwarded,
            reply_to_message_id=message.reply_to_message_id,
            reply_to=reply_to,
            read_by=message.read_by,
            reactions=message.reaction_map,
        )


class ReactionUpdate(BaseModel):
    """Result of a reaction toggle, as broadcast to the room."""

    message_id: int
    conversation_id: int
    reactions: dict[int, str]
    user_id: int
    emoji: str | None = None


class ReadReceiptResult(BaseModel):
    conversation_id: int
    user_id: int
    marked: int = Field(..., description="Number of messages newly marked as read")
