"""Conversation listing and creation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from murmur.realtime import FanoutDispatcher, conversation_created

from app.api.deps import get_current_user
from app.core.errors import InvalidParticipants
from app.database import get_db
from app.models import ConversationKind, User
from app.schemas import ConversationCreate, ConversationRead
from app.services import ConversationStore, get_dispatcher

router = APIRouter(prefix="/conversations", tags=["conversations"])

logger = logging.getLogger(__name__)


@router.get("", response_model=list[ConversationRead])
def list_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ConversationRead]:
    """Return the caller's conversations, most recently active first."""

    store = ConversationStore(db)
    return [
        ConversationRead.from_conversation(conversation)
        for conversation in store.list_for_user(current_user.id)
    ]


@router.post("", response_model=ConversationRead, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    payload: ConversationCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: FanoutDispatcher = Depends(get_dispatcher),
) -> ConversationRead:
    """Open the private chat with another user, or create a group.

    Asking for an existing private chat returns it with ``200`` and emits
    nothing; a newly created conversation is announced to its participants.
    """

    store = ConversationStore(db)
    if payload.kind == ConversationKind.PRIVATE:
        others = list(dict.fromkeys(payload.participant_ids))
        if len(others) != 1:
            raise InvalidParticipants("A private conversation takes exactly one other participant")
        conversation, created = store.create_private(current_user.id, others[0])
    else:
        conversation = store.create_group(current_user.id, payload.participant_ids, payload.name)
        created = True

    conversation_id = conversation.id
    db.commit()
    result = ConversationRead.from_conversation(store.get(conversation_id))

    if not created:
        response.status_code = status.HTTP_200_OK
        return result

    logger.info(
        "Conversation %s (%s) created by user %s",
        conversation_id,
        result.kind.value,
        current_user.id,
    )
    await dispatcher.dispatch(
        conversation_created(
            conversation_id,
            result.participant_ids,
            result.model_dump(mode="json"),
        )
    )
    return result
