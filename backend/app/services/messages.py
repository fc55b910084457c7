"""Message log: ordered append, owner-scoped mutations, reactions and receipts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy import DateTime, exists, insert, literal, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.core.errors import Forbidden, InvalidReference, NotFound, ValidationError
from app.models import Message, MessageReaction, MessageReceipt, MessageType, utcnow
from app.services.conversations import ConversationStore

settings = get_settings()

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReactionToggle:
    """Outcome of :meth:`MessageLog.toggle_reaction`."""

    message: Message
    reactions: dict[int, str]
    added: bool
    emoji: str | None


def _message_options():
    return (
        selectinload(Message.sender),
        selectinload(Message.receipts),
        selectinload(Message.reactions),
    )


class MessageLog:
    """Repository owning :class:`Message` state for every conversation."""

    def __init__(self, db: Session, conversations: ConversationStore | None = None) -> None:
        self.db = db
        self.conversations = conversations or ConversationStore(db)

    @staticmethod
    def _clean_content(content: str | None) -> str:
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty")
        if len(text) > settings.chat_message_max_length:
            raise ValidationError(
                f"Message content exceeds {settings.chat_message_max_length} characters"
            )
        return text

    def get(self, message_id: int) -> Message:
        stmt = select(Message).where(Message.id == message_id).options(*_message_options())
        message = self.db.execute(stmt).scalar_one_or_none()
        if message is None:
            raise NotFound("Message not found")
        return message

    def append(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        content_type: MessageType = MessageType.TEXT,
        *,
        file_url: str | None = None,
        reply_to_message_id: int | None = None,
        forwarded: bool = False,
    ) -> Message:
        """Append a message and update the conversation summary in one transaction."""

        text = self._clean_content(content)
        conversation = self.conversations.require_participant(conversation_id, sender_id)

        if reply_to_message_id is not None:
            target_stmt = select(Message.id).where(
                Message.id == reply_to_message_id,
                Message.conversation_id == conversation.id,
            )
            if self.db.execute(target_stmt).first() is None:
                raise InvalidReference()

        now = utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=text,
            content_type=content_type,
            file_url=file_url or None,
            reply_to_message_id=reply_to_message_id,
            forwarded=forwarded,
            created_at=now,
            updated_at=now,
        )
        message.receipts = [MessageReceipt(user_id=sender_id, read_at=now)]
        self.db.add(message)
        self.db.flush()

        self.conversations.record_delivery(conversation.id, sender_id, message)
        return message

    def edit(self, message_id: int, actor_id: int, new_content: str) -> Message:
        message = self.get(message_id)
        if message.sender_id != actor_id:
            raise Forbidden()
        message.content = self._clean_content(new_content)
        message.edited = True
        message.updated_at = utcnow()
        self.db.add(message)
        self.db.flush()
        self.conversations.refresh_last_message_if_affected(message)
        return message

    def delete(self, message_id: int, actor_id: int) -> Message:
        """Remove the message and repair the conversation summary if needed."""

        message = self.get(message_id)
        if message.sender_id != actor_id:
            raise Forbidden()
        conversation = self.conversations.get(message.conversation_id)
        self.db.delete(message)
        self.db.flush()
        self.conversations.recompute_last_message_if_affected(conversation, message)
        return message

    def toggle_reaction(self, message_id: int, actor_id: int, emoji: str) -> ReactionToggle:
        """Add, replace or remove *actor_id*'s reaction.

        When another request of the same user inserts the first reaction
        concurrently, the unique constraint fails the flush; the session is
        rolled back and the toggle is applied again on the winner's row.
        """

        message = self.get(message_id)
        self.conversations.require_participant(message.conversation_id, actor_id)

        emoji = (emoji or "").strip()
        if not emoji:
            raise ValidationError("Emoji is required")
        if len(emoji) > settings.reaction_max_length:
            raise ValidationError("Emoji is too long")

        try:
            return self._apply_reaction(message, actor_id, emoji)
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Reaction of user %s on message %s changed concurrently; reapplying",
                actor_id,
                message_id,
            )
            return self._apply_reaction(self.get(message_id), actor_id, emoji)

    def _apply_reaction(self, message: Message, actor_id: int, emoji: str) -> ReactionToggle:
        existing = next(
            (reaction for reaction in message.reactions if reaction.user_id == actor_id),
            None,
        )
        if existing is not None and existing.emoji == emoji:
            message.reactions.remove(existing)
            added = False
            result: str | None = None
        elif existing is not None:
            existing.emoji = emoji
            added = True
            result = emoji
        else:
            message.reactions.append(MessageReaction(user_id=actor_id, emoji=emoji))
            added = True
            result = emoji
        self.db.add(message)
        self.db.flush()
        return ReactionToggle(
            message=message,
            reactions=message.reaction_map,
            added=added,
            emoji=result,
        )

    def mark_read(self, conversation_id: int, reader_id: int) -> int:
        """Add *reader_id* to the receipts of every unread message from others.

        A single ``INSERT ... SELECT`` with duplicate-ignoring semantics, so
        concurrent readers never lose or duplicate receipts.
        """

        already_read = exists().where(
            MessageReceipt.message_id == Message.id,
            MessageReceipt.user_id == reader_id,
        )
        source = select(
            Message.id,
            literal(reader_id),
            literal(utcnow(), DateTime(timezone=True)),
        ).where(
            Message.conversation_id == conversation_id,
            Message.sender_id != reader_id,
            ~already_read,
        )
        stmt = (
            insert(MessageReceipt.__table__)
            .from_select(["message_id", "user_id", "read_at"], source)
            .prefix_with("OR IGNORE", dialect="sqlite")
            .prefix_with("IGNORE", dialect="mysql")
        )
        result = self.db.execute(stmt)
        return max(result.rowcount or 0, 0)

    def list(
        self,
        conversation_id: int,
        requester_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Message]:
        """Page of messages, oldest to newest, counted back from the newest."""

        self.conversations.require_participant(conversation_id, requester_id)
        if limit is None:
            limit = settings.chat_history_default_limit
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and skip non-negative")
        limit = min(limit, settings.chat_history_max_limit)

        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .offset(offset)
            .options(*_message_options())
        )
        page = list(self.db.execute(stmt).scalars())
        page.reverse()
        return page

    def load_reply_targets(self, messages: Iterable[Message]) -> dict[int, Message]:
        """Resolve reply pointers in one query; deleted targets are simply absent."""

        wanted: dict[int, int] = {}
        for message in messages:
            if message.reply_to_message_id is not None:
                wanted[message.reply_to_message_id] = message.conversation_id
        if not wanted:
            return {}
        stmt = (
            select(Message)
            .where(Message.id.in_(wanted))
            .options(selectinload(Message.sender))
        )
        return {
            target.id: target
            for target in self.db.execute(stmt).scalars()
            if wanted.get(target.id) == target.conversation_id
        }

    def reload(self, message_ids: Sequence[int]) -> list[Message]:
        stmt = (
            select(Message)
            .where(Message.id.in_(message_ids))
            .order_by(Message.created_at.asc(), Message.id.asc())
            .options(*_message_options())
        )
        return list(self.db.execute(stmt).scalars())
