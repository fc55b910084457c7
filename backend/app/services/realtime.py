"""Process-wide realtime singletons wired to the database."""

from __future__ import annotations

from datetime import datetime

from murmur.realtime import FanoutDispatcher, PresenceRegistry

from app.database import get_db_session
from app.models import PresenceStatus
from app.services.conversations import ConversationStore
from app.services.users import UserDirectory


def load_conversation_ids(user_id: int) -> list[int]:
    with get_db_session() as db:
        return ConversationStore(db).ids_for_user(user_id)


def check_membership(user_id: int, conversation_id: int) -> bool:
    with get_db_session() as db:
        return ConversationStore(db).is_participant(conversation_id, user_id)


def write_presence(user_id: int, status: PresenceStatus, last_seen: datetime | None) -> None:
    with get_db_session() as db:
        UserDirectory(db).set_presence(user_id, status, last_seen_at=last_seen)
        db.commit()


def build_presence_registry(dispatcher: FanoutDispatcher) -> PresenceRegistry:
    return PresenceRegistry(
        dispatcher,
        conversation_lookup=load_conversation_ids,
        membership_check=check_membership,
        status_writer=write_presence,
    )


dispatcher = FanoutDispatcher()
"""Singleton fan-out dispatcher shared by the API and websocket handlers."""

presence_registry = build_presence_registry(dispatcher)


def get_dispatcher() -> FanoutDispatcher:
    return dispatcher


def get_presence_registry() -> PresenceRegistry:
    return presence_registry
