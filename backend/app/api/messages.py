"""HTTP endpoints for managing chat messages."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from murmur.realtime import (
    FanoutDispatcher,
    message_created,
    message_deleted,
    message_edited,
    messages_read,
    reaction_changed,
)

from app.api.deps import get_current_user
from app.database import get_db
from app.models import User
from app.schemas import (
    MessageCreate,
    MessageRead,
    MessageUpdate,
    ReactionRequest,
    ReactionUpdate,
    ReadReceiptResult,
)
from app.services import ConversationStore, MessageLog, get_dispatcher

router = APIRouter(prefix="/messages", tags=["messages"])

logger = logging.getLogger(__name__)


def serialize_message_by_id(log: MessageLog, message_id: int) -> MessageRead:
    """Reload a committed message with its sender, receipts, reactions and reply target."""

    messages = log.reload([message_id])
    if not messages:
        return MessageRead.from_message(log.get(message_id))
    targets = log.load_reply_targets(messages)
    return MessageRead.from_message(messages[0], targets)


@router.get("/{conversation_id}", response_model=list[MessageRead])
def fetch_messages(
    conversation_id: int,
    limit: int | None = Query(default=None, ge=1),
    skip: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[MessageRead]:
    """Return one page of history, oldest to newest, counted back from the newest."""

    log = MessageLog(db)
    page = log.list(conversation_id, current_user.id, limit=limit, offset=skip)
    targets = log.load_reply_targets(page)
    return [MessageRead.from_message(message, targets) for message in page]


@router.post("", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: FanoutDispatcher = Depends(get_dispatcher),
) -> MessageRead:
    log = MessageLog(db)
    message = log.append(
        payload.conversation_id,
        current_user.id,
        payload.content,
        payload.type,
        file_url=payload.file_url,
        reply_to_message_id=payload.reply_to_message_id,
        forwarded=payload.forwarded,
    )
    message_id = message.id
    db.commit()

    result = serialize_message_by_id(log, message_id)
    await dispatcher.dispatch(
        message_created(result.conversation_id, result.model_dump(mode="json"))
    )
    return result


@router.patch("/read/{conversation_id}", response_model=ReadReceiptResult)
async def mark_conversation_read(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: FanoutDispatcher = Depends(get_dispatcher),
) -> ReadReceiptResult:
    """Reset the caller's unread counter and add them to every receipt set."""

    store = ConversationStore(db)
    store.mark_read(conversation_id, current_user.id)
    marked = MessageLog(db, store).mark_read(conversation_id, current_user.id)
    user_id = current_user.id
    db.commit()

    await dispatcher.dispatch(messages_read(conversation_id, user_id))
    return ReadReceiptResult(conversation_id=conversation_id, user_id=user_id, marked=marked)


@router.patch("/{message_id}", response_model=MessageRead)
async def edit_message(
    message_id: int,
    payload: MessageUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: FanoutDispatcher = Depends(get_dispatcher),
) -> MessageRead:
    log = MessageLog(db)
    log.edit(message_id, current_user.id, payload.content)
    db.commit()

    result = serialize_message_by_id(log, message_id)
    await dispatcher.dispatch(
        message_edited(result.conversation_id, result.model_dump(mode="json"))
    )
    return result


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: FanoutDispatcher = Depends(get_dispatcher),
) -> None:
    log = MessageLog(db)
    message = log.delete(message_id, current_user.id)
    conversation_id = message.conversation_id
    db.commit()

    logger.info("Message %s deleted from conversation %s", message_id, conversation_id)
    await dispatcher.dispatch(message_deleted(conversation_id, message_id))
    return None


@router.patch("/{message_id}/react", response_model=ReactionUpdate)
async def react_to_message(
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: FanoutDispatcher = Depends(get_dispatcher),
) -> ReactionUpdate:
    """Toggle the caller's reaction; the same emoji twice removes it."""

    toggle = MessageLog(db).toggle_reaction(message_id, current_user.id, payload.emoji)
    result = ReactionUpdate(
        message_id=message_id,
        conversation_id=toggle.message.conversation_id,
        reactions=dict(toggle.reactions),
        user_id=current_user.id,
        emoji=toggle.emoji,
    )
    db.commit()

    await dispatcher.dispatch(
        reaction_changed(
            result.conversation_id,
            message_id,
            result.reactions,
            result.user_id,
            result.emoji,
        )
    )
    return result
