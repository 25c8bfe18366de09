"""
WebSocket Handler for real-time message delivery.

Authenticates the handshake, registers the connection in the session
registry, and serves the client events ``join_room``, ``join_conversation``
and ``send_message``. Outbound messages reach other clients as
``receive_message`` events through the fanout engine.

Frames in both directions are JSON objects: ``{"event": ..., "data": ...}``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect, status
from sqlmodel import Session

from chatapp.errors import AuthenticationError, AuthorizationError, ChatAppError, ValidationError
from chatapp.middleware.auth import authenticate_token
from chatapp.models.conversation import Conversation
from chatapp.schemas.messages import DirectMessagePayload, parse_live_payload, payload_to_wire
from chatapp.utils.logger import get_logger
from chatapp.ws.fanout import FanoutEngine
from chatapp.ws.session_registry import SessionRegistry, conversation_channel, room_channel

logger = get_logger("chatapp.realtime")

SessionFactory = Callable[[], Session]

FRAME_FORMAT_ERROR = "Frames must be JSON objects"
NOT_PARTICIPANT = "You are not a participant in this conversation"


class WebSocketConnection:
    """Transport handle wrapping one accepted FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket, user_id: str, username: str):
        self.websocket = websocket
        self.user_id = user_id
        self.username = username

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    async def send_error(self, message: str) -> None:
        await self.send("error", {"message": message})


def handshake_token(websocket: WebSocket) -> Optional[str]:
    """Credential from the ``token`` query parameter or a bearer header."""
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


class WebSocketHandler:
    """Handler for WebSocket connections and client events."""

    def __init__(self, registry: SessionRegistry, fanout: FanoutEngine, session_factory: SessionFactory):
        self.registry = registry
        self.fanout = fanout
        self.session_factory = session_factory

    async def handle(self, websocket: WebSocket):
        """Serve one client connection until it disconnects."""
        try:
            with self.session_factory() as session:
                user = authenticate_token(handshake_token(websocket), session)
                user_id, username = user.id, user.username
        except AuthenticationError as e:
            logger.warning("WebSocket authentication failed", reason=e.message)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
            return

        await websocket.accept()
        connection = WebSocketConnection(websocket, user_id, username)

        previous = self.registry.register(user_id, username, connection)
        if previous is not None:
            logger.info("Replaced previous session", user_id=user_id)

        await connection.send("connection_established", {
            "userId": user_id,
            "username": username,
            "message": f"Connected to WebSocket server as user {username}",
        })
        logger.info("User connected", user_id=user_id, username=username, sessions=len(self.registry))

        try:
            while True:
                received = await websocket.receive()
                if received["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(received.get("code", status.WS_1000_NORMAL_CLOSURE))
                if received.get("text") is None:  # binary frame
                    await connection.send_error(FRAME_FORMAT_ERROR)
                    continue
                await self.dispatch(connection, received["text"])
        except WebSocketDisconnect:
            logger.info("User disconnected", user_id=user_id, username=username)
        finally:
            self.registry.detach(connection)
            self.registry.unregister(user_id, connection)

    async def dispatch(self, connection: WebSocketConnection, raw: str):
        """Route one client frame; malformed frames get an ``error`` event back."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            await connection.send_error(FRAME_FORMAT_ERROR)
            return
        if not isinstance(frame, dict):
            await connection.send_error(FRAME_FORMAT_ERROR)
            return

        event = frame.get("event")
        data = frame.get("data")
        try:
            if event == "join_room":
                channel = self.join_room(connection, data)
                await connection.send("joined", {"channel": channel})
            elif event == "join_conversation":
                channel = self.join_conversation(connection, data)
                await connection.send("joined", {"channel": channel})
            elif event == "send_message":
                await self.send_message(connection, data)
            else:
                raise ValidationError(f"Unknown event: {event}")
        except ChatAppError as e:
            await connection.send_error(e.message)

    def join_room(self, connection: WebSocketConnection, room_id: Any) -> str:
        if not isinstance(room_id, str) or not room_id:
            raise ValidationError("Room ID is required")
        channel = room_channel(room_id)
        self.registry.subscribe(connection, channel)
        logger.info("User joined room", user_id=connection.user_id, room_id=room_id)
        return channel

    def join_conversation(self, connection: WebSocketConnection, conversation_id: Any) -> str:
        conversation_uuid = _parse_uuid(conversation_id)
        with self.session_factory() as session:
            conversation = session.get(Conversation, conversation_uuid)
            allowed = conversation is not None and conversation.has_participant(connection.user_id)
        if not allowed:
            raise AuthorizationError(NOT_PARTICIPANT)
        channel = conversation_channel(conversation_uuid)
        self.registry.subscribe(connection, channel)
        logger.info("User joined conversation", user_id=connection.user_id, conversation_id=str(conversation_uuid))
        return channel

    async def send_message(self, connection: WebSocketConnection, data: Any):
        payload = parse_live_payload(data)
        if isinstance(payload, DirectMessagePayload) and self._is_forbidden(payload.conversation_id, connection.user_id):
            raise AuthorizationError(NOT_PARTICIPANT)

        message: Dict[str, Any] = payload_to_wire(payload, {
            "id": connection.user_id,
            "username": connection.username,
        })
        await self.fanout.publish(message, origin=connection, sender_id=connection.user_id)

    def _is_forbidden(self, conversation_id: UUID, user_id: str) -> bool:
        """True only when the conversation exists and ``user_id`` is not in it."""
        try:
            with self.session_factory() as session:
                conversation = session.get(Conversation, conversation_id)
                return conversation is not None and not conversation.has_participant(user_id)
        except Exception as e:
            logger.warning("Conversation lookup failed", conversation_id=str(conversation_id), error=str(e))
            return False


def _parse_uuid(value: Any) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError("Invalid conversation ID")


def make_recipient_resolver(session_factory: SessionFactory):
    """Build the fanout resolver that finds a conversation's other participant."""

    def resolve_recipient(conversation_id: UUID, sender_id: str) -> Optional[str]:
        with session_factory() as session:
            conversation = session.get(Conversation, conversation_id)
            if conversation is None:
                return None
            return conversation.other_participant(sender_id)

    return resolve_recipient
