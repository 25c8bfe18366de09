"""Tests for find-or-create and conversation listing."""
import pytest
from sqlmodel import select

from chatapp.errors import NotFoundError, ValidationError
from chatapp.models.conversation import Conversation, canonical_pair
from chatapp.services.conversation_service import ConversationService
from chatapp.services.message_service import MessageService


def count_conversations(session):
    return len(session.exec(select(Conversation)).all())


def test_find_or_create_converges_for_both_orders(session, make_user):
    alice, bob = make_user("alice"), make_user("bob")
    service = ConversationService(session)

    ids = {
        service.find_or_create(a, b).id
        for a, b in [(alice.id, bob.id), (bob.id, alice.id)] * 3
    }

    assert len(ids) == 1
    assert count_conversations(session) == 1


def test_new_conversation_is_canonical_and_empty(session, make_user):
    alice, bob = make_user("alice"), make_user("bob")

    conversation = ConversationService(session).find_or_create(bob.id, alice.id)

    assert conversation.participants == canonical_pair(alice.id, bob.id)
    assert conversation.message_count == 0
    assert conversation.last_message_id is None


def test_self_conversation_is_rejected(session, make_user):
    alice = make_user("alice")

    with pytest.raises(ValidationError):
        ConversationService(session).find_or_create(alice.id, alice.id)

    assert count_conversations(session) == 0


def test_unknown_participant_is_not_found(session, make_user):
    alice = make_user("alice")

    with pytest.raises(NotFoundError):
        ConversationService(session).find_or_create(alice.id, "00000000-0000-0000-0000-000000000000")


def test_lost_insert_race_returns_existing_row(session, make_user, monkeypatch):
    alice, bob = make_user("alice"), make_user("bob")
    service = ConversationService(session)
    winner = service.find_or_create(alice.id, bob.id)

    # Simulate the other participant committing between our lookup and insert
    real_find = service._find_pair
    calls = {"n": 0}

    def stale_find(a, b):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_find(a, b)

    monkeypatch.setattr(service, "_find_pair", stale_find)

    assert service.find_or_create(bob.id, alice.id).id == winner.id
    assert count_conversations(session) == 1


def test_list_for_user_orders_by_most_recent_activity(session, make_user):
    alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
    service = ConversationService(session)
    with_bob = service.find_or_create(alice.id, bob.id)
    with_carol = service.find_or_create(alice.id, carol.id)

    MessageService(session).send_direct_message(bob.id, with_bob.id, "newest")

    listed = service.resolve(service.list_for_user(alice.id))
    assert [c.id for c in listed] == [with_bob.id, with_carol.id]
    assert listed[0].last_message.content == "newest"
    assert {p.username for p in listed[0].participants} == {"alice", "bob"}
    assert listed[1].last_message is None
    assert service.list_for_user(carol.id)[0].id == with_carol.id


def test_other_participant(session, make_user):
    alice, bob = make_user("alice"), make_user("bob")
    conversation = ConversationService(session).find_or_create(alice.id, bob.id)

    assert conversation.other_participant(alice.id) == bob.id
    assert conversation.other_participant(bob.id) == alice.id
    assert conversation.other_participant("someone-else") is None
