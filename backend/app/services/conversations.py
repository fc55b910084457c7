"""Conversation store: participants, unread counters and the last-message cache."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import AccessDenied, InvalidParticipants, NotFound, ValidationError
from app.models import (
    Conversation,
    ConversationKind,
    ConversationParticipant,
    Message,
    User,
    private_pair_key,
)

logger = logging.getLogger(__name__)


def _with_participants():
    return selectinload(Conversation.participants).selectinload(ConversationParticipant.user)


class ConversationStore:
    """Repository owning :class:`Conversation` state.

    Methods flush but never commit; the caller decides the transaction
    boundary. ``create_private`` is the exception: it rolls back the session
    when it loses a creation race.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # -- reads --------------------------------------------------------------

    def get(self, conversation_id: int) -> Conversation:
        stmt = (
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(_with_participants())
        )
        conversation = self.db.execute(stmt).scalar_one_or_none()
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    def require_participant(self, conversation_id: int, user_id: int) -> Conversation:
        conversation = self.get(conversation_id)
        if not conversation.has_user(user_id):
            raise AccessDenied()
        return conversation

    def is_participant(self, conversation_id: int, user_id: int) -> bool:
        stmt = select(ConversationParticipant.id).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
        return self.db.execute(stmt).first() is not None

    def ids_for_user(self, user_id: int) -> list[int]:
        stmt = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user_id
        )
        return list(self.db.execute(stmt).scalars())

    def list_for_user(self, user_id: int) -> list[Conversation]:
        """Conversations of *user_id*, most recent activity first, empty ones last."""

        member_of = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user_id
        )
        stmt = (
            select(Conversation)
            .where(Conversation.id.in_(member_of))
            .order_by(
                Conversation.last_message_at.is_(None),
                Conversation.last_message_at.desc(),
                Conversation.id.desc(),
            )
            .options(_with_participants())
        )
        return list(self.db.execute(stmt).scalars())

    # -- creation -----------------------------------------------------------

    def _find_private(self, key: str) -> Conversation | None:
        stmt = (
            select(Conversation)
            .where(Conversation.private_key == key)
            .options(_with_participants())
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def _require_users(self, user_ids: Iterable[int]) -> None:
        wanted = set(user_ids)
        stmt = select(User.id).where(User.id.in_(wanted))
        found = set(self.db.execute(stmt).scalars())
        if found != wanted:
            raise InvalidParticipants("Some participants do not exist")

    def create_private(self, initiator_id: int, other_user_id: int) -> tuple[Conversation, bool]:
        """Return the pair's private conversation, creating it if needed.

        Uniqueness rests on ``conversations.private_key``: when a concurrent
        request inserts the same pair first, the flush fails and the winner's
        row is returned instead.
        """

        if initiator_id == other_user_id:
            raise InvalidParticipants("A private conversation needs two different users")
        key = private_pair_key(initiator_id, other_user_id)

        existing = self._find_private(key)
        if existing is not None:
            return existing, False

        if self.db.get(User, other_user_id) is None:
            raise NotFound("User not found")

        conversation = Conversation(
            kind=ConversationKind.PRIVATE,
            private_key=key,
            creator_id=initiator_id,
        )
        conversation.participants = [
            ConversationParticipant(user_id=initiator_id),
            ConversationParticipant(user_id=other_user_id),
        ]
        self.db.add(conversation)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info("Private conversation %s created concurrently; reusing it", key)
            existing = self._find_private(key)
            if existing is None:
                raise
            return existing, False
        return conversation, True

    def create_group(
        self, initiator_id: int, member_ids: Iterable[int], name: str | None
    ) -> Conversation:
        members = list(member_ids)
        if not members:
            raise InvalidParticipants()
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name is required")

        participant_ids = list(dict.fromkeys([initiator_id, *members]))
        if len(participant_ids) < 2:
            raise InvalidParticipants("A group needs at least one other member")
        self._require_users(participant_ids)

        conversation = Conversation(
            kind=ConversationKind.GROUP,
            name=name,
            creator_id=initiator_id,
        )
        conversation.participants = [
            ConversationParticipant(user_id=user_id) for user_id in participant_ids
        ]
        self.db.add(conversation)
        self.db.flush()
        return conversation

    # -- materialized view maintenance --------------------------------------

    def record_delivery(self, conversation_id: int, sender_id: int, message: Message) -> None:
        """Update the summary and bump every other participant's unread counter."""

        self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                last_message_id=message.id,
                last_message_text=message.content,
                last_message_sender_id=sender_id,
                last_message_at=message.created_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        self.db.execute(
            update(ConversationParticipant)
            .where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id != sender_id,
            )
            .values(unread_count=func.coalesce(ConversationParticipant.unread_count, 0) + 1)
            .execution_options(synchronize_session="fetch")
        )

    def mark_read(self, conversation_id: int, user_id: int) -> None:
        self.require_participant(conversation_id, user_id)
        self.db.execute(
            update(ConversationParticipant)
            .where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
            )
            .values(unread_count=0)
            .execution_options(synchronize_session="fetch")
        )

    def refresh_last_message_if_affected(self, edited_message: Message) -> bool:
        """Copy the new content into the summary when *edited_message* is its source."""

        result = self.db.execute(
            update(Conversation)
            .where(
                Conversation.id == edited_message.conversation_id,
                Conversation.last_message_id == edited_message.id,
            )
            .values(last_message_text=edited_message.content)
            .execution_options(synchronize_session="fetch")
        )
        return bool(result.rowcount)

    def recompute_last_message_if_affected(
        self, conversation: Conversation, deleted_message: Message
    ) -> bool:
        """Re-derive the summary from the log tail if *deleted_message* was its source."""

        if conversation.last_message_id != deleted_message.id:
            return False

        tail_stmt = (
            select(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.id != deleted_message.id,
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
        tail = self.db.execute(tail_stmt).scalar_one_or_none()
        if tail is None:
            conversation.last_message_id = None
            conversation.last_message_text = None
            conversation.last_message_sender_id = None
            conversation.last_message_at = None
        else:
            conversation.last_message_id = tail.id
            conversation.last_message_text = tail.content
            conversation.last_message_sender_id = tail.sender_id
            conversation.last_message_at = tail.created_at
        self.db.add(conversation)
        self.db.flush()
        return True
