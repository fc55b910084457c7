"""Unit tests for the message log."""

from __future__ import annotations

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from app.core.errors import AccessDenied, Forbidden, InvalidReference, NotFound, ValidationError
from app.models import Conversation, MessageReaction, MessageReceipt, MessageType
from app.schemas import MessageRead
from app.services.conversations import ConversationStore
from app.services.messages import MessageLog


@pytest.fixture()
def users(make_user) -> tuple[int, int, int]:
    return make_user("alice"), make_user("bob"), make_user("carol")


@pytest.fixture()
def log(db_session) -> MessageLog:
    return MessageLog(db_session)


@pytest.fixture()
def chat(db_session, log, users) -> int:
    alice, bob, _ = users
    conversation, _ = log.conversations.create_private(alice, bob)
    db_session.commit()
    return conversation.id


def _conversation(db_session, conversation_id: int) -> Conversation:
    db_session.expire_all()
    return ConversationStore(db_session).get(conversation_id)


def test_append_records_sender_receipt_and_summary(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "  hi  ")
    db_session.commit()

    assert message.content == "hi"
    assert message.content_type == MessageType.TEXT
    assert message.read_by == [alice]
    assert message.reaction_map == {}
    assert message.edited is False

    conversation = _conversation(db_session, chat)
    assert conversation.last_message_id == message.id
    assert conversation.last_message_text == "hi"
    assert conversation.last_message_sender_id == alice


def test_append_keeps_image_metadata_and_forward_flag(db_session, log, users, chat):
    alice, _, _ = users
    message = log.append(
        chat,
        alice,
        "photo.png",
        MessageType.IMAGE,
        file_url="/uploads/photo.png",
        forwarded=True,
    )
    assert message.content_type == MessageType.IMAGE
    assert message.file_url == "/uploads/photo.png"
    assert message.forwarded is True


@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
def test_append_rejects_blank_content(log, users, chat, content):
    with pytest.raises(ValidationError):
        log.append(chat, users[0], content)


def test_append_rejects_overlong_content(log, users, chat):
    with pytest.raises(ValidationError):
        log.append(chat, users[0], "x" * 2001)


def test_append_requires_participant(log, users, chat):
    with pytest.raises(AccessDenied):
        log.append(chat, users[2], "let me in")


def test_append_unknown_conversation(log, users):
    with pytest.raises(NotFound):
        log.append(999, users[0], "hello?")


def test_reply_must_target_same_conversation(db_session, log, users, chat):
    alice, bob, carol = users
    other, _ = log.conversations.create_private(alice, carol)
    foreign = log.append(other.id, carol, "elsewhere")
    db_session.commit()

    with pytest.raises(InvalidReference):
        log.append(chat, bob, "reply", reply_to_message_id=foreign.id)
    with pytest.raises(InvalidReference):
        log.append(chat, bob, "reply", reply_to_message_id=424242)


def test_edit_preserves_identity_and_marks_edited(db_session, log, users, chat):
    alice, _, _ = users
    message = log.append(chat, alice, "first draft")
    db_session.commit()
    db_session.expire_all()
    before = log.get(message.id)
    snapshot = (before.id, before.sender_id, before.created_at, before.updated_at)

    log.edit(message.id, alice, "final text")
    db_session.commit()
    db_session.expire_all()
    after = log.get(message.id)

    assert (after.id, after.sender_id, after.created_at) == snapshot[:3]
    assert after.updated_at >= snapshot[3]
    assert after.edited is True
    assert after.content == "final text"


def test_edit_of_newest_message_updates_summary(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "hi bob")
    db_session.commit()

    log.edit(message.id, alice, "hello bob")
    db_session.commit()

    conversation = _conversation(db_session, chat)
    assert conversation.last_message_id == message.id
    assert conversation.last_message_text == "hello bob"
    assert conversation.last_message_sender_id == alice


def test_edit_of_older_message_keeps_summary(db_session, log, users, chat):
    alice, bob, _ = users
    older = log.append(chat, alice, "first")
    db_session.commit()
    log.append(chat, bob, "second")
    db_session.commit()

    log.edit(older.id, alice, "first, revised")
    db_session.commit()

    assert _conversation(db_session, chat).last_message_text == "second"


def test_edit_is_sender_only(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "mine")
    db_session.commit()

    with pytest.raises(Forbidden):
        log.edit(message.id, bob, "hijacked")


def test_edit_rejects_blank_content(db_session, log, users, chat):
    alice, _, _ = users
    message = log.append(chat, alice, "mine")
    db_session.commit()

    with pytest.raises(ValidationError):
        log.edit(message.id, alice, "   ")


def test_delete_last_message_recomputes_summary(db_session, log, users, chat):
    alice, bob, _ = users
    first = log.append(chat, alice, "first")
    db_session.commit()
    second = log.append(chat, bob, "second")
    db_session.commit()
    first_id, second_id = first.id, second.id

    log.delete(second_id, bob)
    db_session.commit()
    conversation = _conversation(db_session, chat)
    assert conversation.last_message_id == first_id
    assert conversation.last_message_text == "first"
    assert conversation.last_message_sender_id == alice

    log.delete(first_id, alice)
    db_session.commit()
    conversation = _conversation(db_session, chat)
    assert conversation.last_message_id is None
    assert conversation.last_message_text is None
    assert conversation.last_message_at is None


def test_delete_older_message_keeps_summary(db_session, log, users, chat):
    alice, bob, _ = users
    first = log.append(chat, alice, "first")
    db_session.commit()
    second = log.append(chat, bob, "second")
    db_session.commit()
    second_id = second.id

    log.delete(first.id, alice)
    db_session.commit()
    assert _conversation(db_session, chat).last_message_id == second_id


def test_delete_cascades_receipts_and_reactions(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "bye")
    log.toggle_reaction(message.id, bob, "👍")
    log.mark_read(chat, bob)
    db_session.commit()

    log.delete(message.id, alice)
    db_session.commit()

    assert db_session.query(MessageReceipt).count() == 0
    assert db_session.query(MessageReaction).count() == 0


def test_delete_is_sender_only(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "mine")
    db_session.commit()

    with pytest.raises(Forbidden):
        log.delete(message.id, bob)


def test_toggle_same_reaction_twice_is_noop(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "react to me")
    db_session.commit()

    added = log.toggle_reaction(message.id, bob, "👍")
    assert added.added is True
    assert added.reactions == {bob: "👍"}

    removed = log.toggle_reaction(message.id, bob, "👍")
    assert removed.added is False
    assert removed.emoji is None
    assert bob not in removed.reactions


def test_toggle_different_reaction_replaces(db_session, log, users, chat):
    alice, bob, _ = users
    message = log.append(chat, alice, "react to me")
    db_session.commit()

    log.toggle_reaction(message.id, bob, "👍")
    log.toggle_reaction(message.id, alice, "😂")
    result = log.toggle_reaction(message.id, bob, "❤️")
    db_session.commit()

    assert result.reactions == {alice: "😂", bob: "❤️"}
    assert db_session.query(MessageReaction).filter_by(user_id=bob).count() == 1


def test_toggle_reaction_reapplies_when_first_insert_races(
    session_factory, db_session, log, users, chat, monkeypatch
):
    alice, bob, _ = users
    message = log.append(chat, alice, "react to me")
    db_session.commit()
    message_id = message.id

    with session_factory() as other_tab:
        MessageLog(other_tab).toggle_reaction(message_id, bob, "👍")
        other_tab.commit()

    real_get = log.get
    lookups: list[int] = []

    def stale_get(requested_id: int):
        lookups.append(requested_id)
        loaded = real_get(requested_id)
        # The first read happened before the other tab's reaction was committed.
        if len(lookups) == 1:
            set_committed_value(loaded, "reactions", [])
        return loaded

    monkeypatch.setattr(log, "get", stale_get)
    result = log.toggle_reaction(message_id, bob, "❤️")
    db_session.commit()

    assert len(lookups) == 2
    assert result.added is True
    assert result.reactions == {bob: "❤️"}
    assert db_session.query(MessageReaction).filter_by(user_id=bob).count() == 1


def test_toggle_reaction_requires_participant(db_session, log, users, chat):
    alice, _, carol = users
    message = log.append(chat, alice, "private")
    db_session.commit()

    with pytest.raises(AccessDenied):
        log.toggle_reaction(message.id, carol, "👍")


def test_mark_read_adds_reader_once(db_session, log, users, chat):
    alice, bob, _ = users
    first = log.append(chat, alice, "one")
    second = log.append(chat, alice, "two")
    own = log.append(chat, bob, "three")
    db_session.commit()
    ids = [first.id, second.id, own.id]

    assert log.mark_read(chat, bob) == 2
    assert log.mark_read(chat, bob) == 0
    db_session.commit()

    db_session.expire_all()
    reloaded = {message.id: message.read_by for message in log.reload(ids)}
    assert reloaded == {
        first.id: sorted([alice, bob]),
        second.id: sorted([alice, bob]),
        own.id: [bob],
    }


def test_list_pages_back_from_newest(db_session, log, users, chat):
    alice, bob, _ = users
    contents = ["t1", "t2", "t3"]
    for index, content in enumerate(contents):
        log.append(chat, alice if index % 2 == 0 else bob, content)
        db_session.commit()

    assert [m.content for m in log.list(chat, alice, limit=1, offset=0)] == ["t3"]
    assert [m.content for m in log.list(chat, alice, limit=2, offset=1)] == ["t1", "t2"]
    assert [m.content for m in log.list(chat, bob)] == ["t1", "t2", "t3"]
    assert log.list(chat, alice, limit=5, offset=3) == []


def test_list_requires_participant(log, users, chat):
    with pytest.raises(AccessDenied):
        log.list(chat, users[2])


def test_list_caps_limit(db_session, log, users, chat):
    alice, _, _ = users
    for index in range(3):
        log.append(chat, alice, f"m{index}")
    db_session.commit()

    assert len(log.list(chat, alice, limit=10_000)) == 3
    with pytest.raises(ValidationError):
        log.list(chat, alice, limit=0)


def test_dangling_reply_resolves_to_unavailable(db_session, log, users, chat):
    alice, bob, _ = users
    original = log.append(chat, alice, "original")
    db_session.commit()
    reply = log.append(chat, bob, "answer", reply_to_message_id=original.id)
    db_session.commit()
    original_id = original.id

    page = log.list(chat, bob)
    targets = log.load_reply_targets(page)
    rendered = {m.id: MessageRead.from_message(m, targets) for m in page}
    assert rendered[reply.id].reply_to.available is True
    assert rendered[reply.id].reply_to.content == "original"
    assert rendered[reply.id].reply_to.sender.id == alice

    log.delete(original_id, alice)
    db_session.commit()

    page = log.list(chat, bob)
    targets = log.load_reply_targets(page)
    preview = MessageRead.from_message(page[0], targets).reply_to
    assert preview.id == original_id
    assert preview.available is False
    assert preview.content is None
