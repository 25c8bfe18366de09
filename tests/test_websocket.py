"""Tests for the /ws live transport."""
import asyncio

import pytest
from sqlmodel import Session
from starlette.websockets import WebSocketDisconnect

from chatapp.errors import AuthorizationError
from chatapp.services.conversation_service import ConversationService
from chatapp.ws.fanout import FanoutEngine
from chatapp.ws.session_registry import SessionRegistry
from chatapp.ws.websocket_handler import NOT_PARTICIPANT, WebSocketHandler
from conftest import register


def connect(client, token):
    websocket = client.websocket_connect(f"/ws?token={token}")
    return websocket


def open_conversation(client, headers, other_id):
    response = client.get(f"/api/messages/conversations/user/{other_id}", headers=headers)
    return response.json()["conversation"]["id"]


def expect_error(websocket):
    """Send an unknown event; the reply proves nothing else was queued before it."""
    websocket.send_json({"event": "ping", "data": None})
    frame = websocket.receive_json()
    assert frame["event"] == "error", frame
    return frame


def test_handshake_without_valid_token_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert excinfo.value.code == 1008

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws"):
            pass


def test_connection_established_and_session_registered(client, app):
    alice, _, token = register(client, "alice")

    with connect(client, token) as websocket:
        frame = websocket.receive_json()
        assert frame["event"] == "connection_established"
        assert frame["data"]["userId"] == alice["id"]
        assert app.state.session_registry.lookup(alice["id"]) is not None

    assert client.get("/api/health").json()["sessions"] == 0


def test_unsubscribed_recipient_receives_direct_message(client):
    alice, alice_headers, alice_token = register(client, "alice")
    bob, _, bob_token = register(client, "bob")
    conversation_id = open_conversation(client, alice_headers, bob["id"])

    with connect(client, alice_token) as alice_ws, connect(client, bob_token) as bob_ws:
        alice_ws.receive_json()
        bob_ws.receive_json()

        alice_ws.send_json({"event": "send_message", "data": {
            "id": "m1",
            "conversationId": conversation_id,
            "content": "Hi Bob",
            "sender": {"id": "forged"},
        }})

        frame = bob_ws.receive_json()
        assert frame["event"] == "receive_message"
        assert frame["data"]["content"] == "Hi Bob"
        assert frame["data"]["id"] == "m1"
        assert frame["data"]["kind"] == "direct"
        assert frame["data"]["sender"] == {"id": alice["id"], "username": "alice"}

        expect_error(alice_ws)


def test_subscribed_recipient_receives_message_once(client):
    _, alice_headers, alice_token = register(client, "alice")
    bob, _, bob_token = register(client, "bob")
    conversation_id = open_conversation(client, alice_headers, bob["id"])

    with connect(client, alice_token) as alice_ws, connect(client, bob_token) as bob_ws:
        alice_ws.receive_json()
        bob_ws.receive_json()
        for websocket in (alice_ws, bob_ws):
            websocket.send_json({"event": "join_conversation", "data": conversation_id})
            assert websocket.receive_json()["data"] == {"channel": f"conversation:{conversation_id}"}

        alice_ws.send_json({"event": "send_message", "data": {
            "conversationId": conversation_id, "content": "once",
        }})

        assert bob_ws.receive_json()["data"]["content"] == "once"
        expect_error(bob_ws)
        expect_error(alice_ws)


def test_room_broadcast(client):
    _, _, alice_token = register(client, "alice")
    _, _, bob_token = register(client, "bob")

    with connect(client, alice_token) as alice_ws, connect(client, bob_token) as bob_ws:
        alice_ws.receive_json()
        bob_ws.receive_json()
        for websocket in (alice_ws, bob_ws):
            websocket.send_json({"event": "join_room", "data": "general"})
            assert websocket.receive_json()["event"] == "joined"

        alice_ws.send_json({"event": "send_message", "data": {"roomId": "general", "content": "hey all"}})

        frame = bob_ws.receive_json()
        assert frame["data"]["roomId"] == "general"
        assert frame["data"]["kind"] == "room"
        expect_error(alice_ws)


def test_outsider_cannot_join_or_send(client):
    _, alice_headers, _ = register(client, "alice")
    bob, _, _ = register(client, "bob")
    _, _, carol_token = register(client, "carol")
    conversation_id = open_conversation(client, alice_headers, bob["id"])

    with connect(client, carol_token) as websocket:
        websocket.receive_json()

        websocket.send_json({"event": "join_conversation", "data": conversation_id})
        assert websocket.receive_json()["data"]["message"] == NOT_PARTICIPANT

        websocket.send_json({"event": "send_message", "data": {
            "conversationId": conversation_id, "content": "sneaky",
        }})
        assert websocket.receive_json()["event"] == "error"


def test_malformed_frames_get_error_events(client):
    _, _, token = register(client, "alice")

    with connect(client, token) as websocket:
        websocket.receive_json()

        websocket.send_text("not json")
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "send_message", "data": {
            "conversationId": "6f1c2a7e-3b0d-4c55-9a61-1f2e3d4c5b6a", "roomId": "general", "content": "x",
        }})
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "send_message", "data": {"content": "nowhere"}})
        assert websocket.receive_json()["event"] == "error"

        websocket.send_json({"event": "join_conversation", "data": "not-a-uuid"})
        assert websocket.receive_json()["data"]["message"] == "Invalid conversation ID"


def test_binary_frames_get_error_events(client):
    _, _, token = register(client, "alice")

    with connect(client, token) as websocket:
        websocket.receive_json()

        websocket.send_bytes(b"\x00\x01")
        frame = websocket.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["message"] == "Frames must be JSON objects"

        websocket.send_json({"event": "join_room", "data": "general"})
        assert websocket.receive_json()["event"] == "joined"


class RecordingConnection:
    def __init__(self, user_id, username):
        self.user_id = user_id
        self.username = username
        self.sent = []

    async def send(self, event, data):
        self.sent.append((event, data))


def test_outsider_join_and_send_are_authorization_errors(engine, session, make_user):
    alice, bob, carol = make_user("alice"), make_user("bob"), make_user("carol")
    conversation_id = str(ConversationService(session).find_or_create(alice.id, bob.id).id)
    registry = SessionRegistry()
    handler = WebSocketHandler(
        registry,
        FanoutEngine(registry, lambda conversation_id, sender_id: None),
        lambda: Session(engine),
    )
    outsider = RecordingConnection(carol.id, "carol")

    with pytest.raises(AuthorizationError):
        handler.join_conversation(outsider, conversation_id)
    with pytest.raises(AuthorizationError):
        asyncio.run(handler.send_message(outsider, {"conversationId": conversation_id, "content": "sneaky"}))

    assert registry.channels_of(outsider) == set()
    assert outsider.sent == []
