"""
Client-side chat state and its reconciliation rules.

``ChatState`` keeps the conversation list, the open chat and its messages in
step with the server:

- a live message for the open conversation (or room) is appended directly;
- a live message for any other conversation triggers a refresh of the
  conversation list from the server instead of patching unread flags locally;
- opening a conversation fetches its history first, then marks it read;
- an optimistic (pending) send is always reconciled: replaced by the
  server-confirmed message, or removed on failure.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Protocol, Union
from uuid import uuid4
import logging

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chatapp.client.api_client import ChatApiClient
from chatapp.schemas.messages import ConversationRead, DirectMessageRead, MessageRead, RoomMessageRead

logger = logging.getLogger(__name__)

_message_adapter = TypeAdapter(MessageRead)

SEND_FAILED = "Failed to send message. Please try again."


class Transport(Protocol):
    async def emit(self, event: str, data: Any) -> None:
        ...


@dataclass
class ActiveChat:
    kind: Literal["direct", "room"]
    id: str


@dataclass
class PendingMessage:
    """Local echo of a send that the server has not confirmed yet."""
    content: str
    sender_id: str
    chat: ActiveChat
    local_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ChatMessage = Union[DirectMessageRead, RoomMessageRead, PendingMessage]


class ChatState:
    """State container for one signed-in user."""

    def __init__(self, api: ChatApiClient, current_user_id: str, transport: Optional[Transport] = None):
        self.api = api
        self.current_user_id = current_user_id
        self.transport = transport
        self.conversations: List[ConversationRead] = []
        self.active: Optional[ActiveChat] = None
        self.messages: List[ChatMessage] = []
        self.notifications: List[str] = []

    # Derived state

    def is_unread(self, conversation: ConversationRead) -> bool:
        last = conversation.last_message
        return last is not None and not last.read and last.sender.id != self.current_user_id

    def unread_conversations(self) -> List[ConversationRead]:
        return [c for c in self.conversations if self.is_unread(c)]

    def pending_messages(self) -> List[PendingMessage]:
        return [m for m in self.messages if isinstance(m, PendingMessage)]

    def _is_open(self, kind: str, chat_id: Any) -> bool:
        return self.active is not None and self.active.kind == kind and self.active.id == str(chat_id)

    async def _emit(self, event: str, data: Any):
        if self.transport is None:
            return
        try:
            await self.transport.emit(event, data)
        except Exception as e:
            logger.error(f"Failed to emit {event}: {str(e)}")

    # Server fetches

    async def refresh_conversations(self):
        self.conversations = await self.api.list_conversations()

    async def open_conversation(self, conversation_id: Any):
        """Open a conversation: fetch its history, then mark it read."""
        self.active = ActiveChat(kind="direct", id=str(conversation_id))
        await self._emit("join_conversation", str(conversation_id))
        self.messages = list(await self.api.get_conversation_messages(conversation_id))
        await self.api.mark_read(conversation_id)
        await self.refresh_conversations()

    async def open_room(self, room_id: str):
        self.active = ActiveChat(kind="room", id=room_id)
        await self._emit("join_room", room_id)
        self.messages = list(await self.api.get_room_messages(room_id))

    async def start_conversation(self, user_id: str) -> Optional[ConversationRead]:
        conversation = await self.api.get_or_create_conversation(user_id)
        if conversation is None:
            self.notifications.append("Failed to start conversation.")
            return None
        if not any(c.id == conversation.id for c in self.conversations):
            self.conversations.insert(0, conversation)
        await self.open_conversation(conversation.id)
        return conversation

    def close_chat(self):
        self.active = None
        self.messages = []

    # Live delivery

    async def handle_incoming(self, payload: Dict[str, Any]):
        """Reconcile one ``receive_message`` payload against local state."""
        sender = payload.get("sender") or {}
        if sender.get("id") == self.current_user_id:
            return

        conversation_id = payload.get("conversationId")
        if conversation_id:
            if self._is_open("direct", conversation_id):
                self._append_live(payload)
            else:
                await self.refresh_conversations()
            return

        room_id = payload.get("roomId")
        if room_id and self._is_open("room", room_id):
            self._append_live(payload)

    def _append_live(self, payload: Dict[str, Any]):
        try:
            message = _message_adapter.validate_python(payload)
        except PydanticValidationError:
            logger.warning("Dropping live message that does not match the message schema")
            return
        if any(getattr(m, "id", None) == message.id for m in self.messages):
            return
        self.messages.append(message)

    # Sends

    async def send_direct_message(self, content: str) -> Optional[DirectMessageRead]:
        if self.active is None or self.active.kind != "direct":
            self.notifications.append("No active conversation. Please start a conversation first.")
            return None

        pending = PendingMessage(content=content, sender_id=self.current_user_id, chat=self.active)
        self.messages.append(pending)

        confirmed = await self.api.send_direct_message(self.active.id, content)
        if not self._reconcile(pending, confirmed):
            return None

        self._apply_last_message(confirmed)
        await self._emit("send_message", confirmed.model_dump(mode="json", by_alias=True))
        return confirmed

    async def send_room_message(self, content: str) -> Optional[RoomMessageRead]:
        if self.active is None or self.active.kind != "room":
            self.notifications.append("No active chat room. Please join a room first.")
            return None

        pending = PendingMessage(content=content, sender_id=self.current_user_id, chat=self.active)
        self.messages.append(pending)

        confirmed = await self.api.send_room_message(self.active.id, content)
        if not self._reconcile(pending, confirmed):
            return None

        await self._emit("send_message", confirmed.model_dump(mode="json", by_alias=True))
        return confirmed

    def _reconcile(self, pending: PendingMessage, confirmed: Optional[Any]) -> bool:
        """Swap a pending message for its confirmation, or drop it on failure."""
        index = next((i for i, m in enumerate(self.messages) if m is pending), None)
        if confirmed is None:
            if index is not None:
                del self.messages[index]
            self.notifications.append(SEND_FAILED)
            return False
        if index is not None:
            self.messages[index] = confirmed
        elif pending.chat == self.active:
            self.messages.append(confirmed)
        return True

    def _apply_last_message(self, message: DirectMessageRead):
        """Move the conversation to the top with the confirmed message as its tail."""
        for i, conversation in enumerate(self.conversations):
            if conversation.id == message.conversation_id:
                updated = conversation.model_copy(update={
                    "last_message": message,
                    "updated_at": message.created_at,
                })
                del self.conversations[i]
                self.conversations.insert(0, updated)
                return
