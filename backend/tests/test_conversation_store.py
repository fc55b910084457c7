"""Unit tests for the conversation store."""

from __future__ import annotations

import pytest

from app.core.errors import AccessDenied, InvalidParticipants, NotFound, ValidationError
from app.models import Conversation, ConversationKind, ConversationParticipant
from app.services.conversations import ConversationStore
from app.services.messages import MessageLog


@pytest.fixture()
def users(make_user) -> tuple[int, int, int]:
    return make_user("alice"), make_user("bob"), make_user("carol")


def _unread(db_session, conversation_id: int) -> dict[int, int | None]:
    db_session.expire_all()
    rows = db_session.query(ConversationParticipant).filter_by(conversation_id=conversation_id)
    return {row.user_id: row.unread_count for row in rows}


def test_create_private_is_deduplicated_for_either_order(db_session, users):
    alice, bob, _ = users
    store = ConversationStore(db_session)

    first, created = store.create_private(alice, bob)
    db_session.commit()
    second, created_again = store.create_private(bob, alice)

    assert created is True
    assert created_again is False
    assert first.id == second.id
    assert first.kind == ConversationKind.PRIVATE
    assert sorted(first.participant_ids) == [alice, bob]
    assert db_session.query(Conversation).count() == 1


def test_create_private_starts_without_unread_entries(db_session, users):
    alice, bob, _ = users
    conversation, _ = ConversationStore(db_session).create_private(alice, bob)
    db_session.commit()

    assert _unread(db_session, conversation.id) == {alice: None, bob: None}
    assert conversation.last_message_at is None


def test_create_private_rejects_self_chat(db_session, users):
    alice, _, _ = users
    with pytest.raises(InvalidParticipants):
        ConversationStore(db_session).create_private(alice, alice)


def test_create_private_rejects_unknown_user(db_session, users):
    alice, _, _ = users
    with pytest.raises(NotFound):
        ConversationStore(db_session).create_private(alice, 4242)


def test_create_private_returns_winner_when_insert_races(session_factory, users, monkeypatch):
    alice, bob, _ = users

    with session_factory() as winner_session:
        winner, _ = ConversationStore(winner_session).create_private(alice, bob)
        winner_session.commit()
        winner_id = winner.id

    with session_factory() as session:
        store = ConversationStore(session)
        real_find = store._find_private
        lookups: list[str] = []

        def stale_find(key: str):
            lookups.append(key)
            # The first lookup runs before the competing insert became visible.
            if len(lookups) == 1:
                return None
            return real_find(key)

        monkeypatch.setattr(store, "_find_private", stale_find)
        conversation, created = store.create_private(bob, alice)

        assert created is False
        assert conversation.id == winner_id
        assert len(lookups) == 2
        assert session.query(Conversation).count() == 1


def test_create_group_includes_initiator_and_deduplicates(db_session, users):
    alice, bob, carol = users
    group = ConversationStore(db_session).create_group(alice, [bob, carol, bob, alice], " Team ")
    db_session.commit()

    assert group.kind == ConversationKind.GROUP
    assert group.name == "Team"
    assert group.private_key is None
    assert group.participant_ids == [alice, bob, carol]


def test_create_group_always_creates(db_session, users):
    alice, bob, _ = users
    store = ConversationStore(db_session)
    first = store.create_group(alice, [bob], "One")
    second = store.create_group(alice, [bob], "One")
    assert first.id != second.id


@pytest.mark.parametrize(
    ("members", "name", "error"),
    [
        ([], "Team", InvalidParticipants),
        ([1], "Team", InvalidParticipants),
        ([2], "   ", ValidationError),
        ([2, 999], "Team", InvalidParticipants),
    ],
)
def test_create_group_validation(db_session, users, members, name, error):
    alice, _, _ = users
    with pytest.raises(error):
        ConversationStore(db_session).create_group(alice, members, name)


def test_record_delivery_increments_everyone_but_sender(db_session, users):
    alice, bob, carol = users
    store = ConversationStore(db_session)
    log = MessageLog(db_session, store)
    group = store.create_group(alice, [bob, carol], "Team")
    db_session.commit()

    log.append(group.id, alice, "one")
    log.append(group.id, alice, "two")
    log.append(group.id, bob, "three")
    db_session.commit()

    assert _unread(db_session, group.id) == {alice: 1, bob: 2, carol: 3}


def test_mark_read_is_idempotent_and_scoped(db_session, users):
    alice, bob, carol = users
    store = ConversationStore(db_session)
    log = MessageLog(db_session, store)
    group = store.create_group(alice, [bob, carol], "Team")
    log.append(group.id, alice, "hello")
    db_session.commit()

    store.mark_read(group.id, bob)
    db_session.commit()
    assert _unread(db_session, group.id) == {alice: None, bob: 0, carol: 1}

    store.mark_read(group.id, bob)
    db_session.commit()
    assert _unread(db_session, group.id) == {alice: None, bob: 0, carol: 1}


def test_mark_read_requires_participant(db_session, users):
    alice, bob, carol = users
    store = ConversationStore(db_session)
    conversation, _ = store.create_private(alice, bob)
    db_session.commit()

    with pytest.raises(AccessDenied):
        store.mark_read(conversation.id, carol)


def test_require_participant_unknown_conversation(db_session, users):
    with pytest.raises(NotFound):
        ConversationStore(db_session).require_participant(12345, users[0])


def test_list_for_user_orders_by_activity_with_empty_last(db_session, users):
    alice, bob, carol = users
    store = ConversationStore(db_session)
    log = MessageLog(db_session, store)

    quiet = store.create_group(alice, [bob], "Quiet")
    older, _ = store.create_private(alice, bob)
    newer, _ = store.create_private(alice, carol)
    db_session.commit()

    log.append(older.id, alice, "first")
    db_session.commit()
    log.append(newer.id, carol, "second")
    db_session.commit()

    ordered = [conversation.id for conversation in store.list_for_user(alice)]
    assert ordered == [newer.id, older.id, quiet.id]
    assert [conversation.id for conversation in store.list_for_user(carol)] == [newer.id]


def test_ids_for_user_and_is_participant(db_session, users):
    alice, bob, carol = users
    store = ConversationStore(db_session)
    conversation, _ = store.create_private(alice, bob)
    db_session.commit()

    assert store.ids_for_user(alice) == [conversation.id]
    assert store.ids_for_user(carol) == []
    assert store.is_participant(conversation.id, bob) is True
    assert store.is_participant(conversation.id, carol) is False
