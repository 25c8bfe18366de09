"""
Message and conversation schemas.

Outbound messages are a tagged union: ``DirectMessageRead`` (kind="direct",
carries ``conversationId``) or ``RoomMessageRead`` (kind="room", carries
``roomId``). The same shapes are used for REST responses and for the
``receive_message`` live event.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from chatapp.errors import ValidationError
from chatapp.models.message import Message
from chatapp.schemas.auth import CamelModel, UserPublic


class SenderRead(CamelModel):
    id: str
    username: str
    profile_pic: str = ""


class DirectMessageRead(CamelModel):
    kind: Literal["direct"] = "direct"
    id: UUID
    sender: SenderRead
    content: str
    conversation_id: UUID
    read: bool
    created_at: datetime


class RoomMessageRead(CamelModel):
    kind: Literal["room"] = "room"
    id: UUID
    sender: SenderRead
    content: str
    room_id: str
    read: bool
    created_at: datetime


MessageRead = Annotated[Union[DirectMessageRead, RoomMessageRead], Field(discriminator="kind")]


def serialize_message(message: Message) -> Union[DirectMessageRead, RoomMessageRead]:
    """Convert a stored message (with sender loaded) into its tagged read model."""
    sender = SenderRead.model_validate(message.sender)
    if message.conversation_id is not None:
        return DirectMessageRead(
            id=message.id,
            sender=sender,
            content=message.content,
            conversation_id=message.conversation_id,
            read=message.read,
            created_at=message.created_at,
        )
    return RoomMessageRead(
        id=message.id,
        sender=sender,
        content=message.content,
        room_id=message.room_id,
        read=message.read,
        created_at=message.created_at,
    )


class ConversationRead(CamelModel):
    """Conversation with participants and last message resolved."""
    id: UUID
    participants: List[UserPublic]
    last_message: Optional[DirectMessageRead] = None
    message_count: int = 0
    created_at: datetime
    updated_at: datetime


class DirectMessageRequest(CamelModel):
    """Body of POST /messages/direct."""
    conversation_id: UUID
    content: str = Field(..., min_length=1)


class RoomMessageRequest(CamelModel):
    """Body of POST /messages/rooms."""
    room_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class ConversationListResponse(BaseModel):
    success: bool = True
    conversations: List[ConversationRead]


class ConversationResponse(BaseModel):
    success: bool = True
    conversation: ConversationRead


class MessageListResponse(BaseModel):
    success: bool = True
    messages: List[MessageRead]


class MessageResponse(BaseModel):
    success: bool = True
    message: MessageRead


class MarkReadResponse(CamelModel):
    success: bool = True
    updated_count: int


# Live transport payloads. Extra keys (id, createdAt, sender, ...) are relayed untouched.

class DirectMessagePayload(CamelModel):
    model_config = ConfigDict(extra="allow")

    conversation_id: UUID
    content: str = Field(..., min_length=1)


class RoomMessagePayload(CamelModel):
    model_config = ConfigDict(extra="allow")

    room_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


LivePayload = Union[DirectMessagePayload, RoomMessagePayload]


def parse_live_payload(data: Any) -> LivePayload:
    """
    Validate a ``send_message`` payload into its tagged variant.

    Raises:
        ValidationError: if the payload is not an object, carries both or
            neither of ``conversationId``/``roomId``, or has no content.
    """
    if not isinstance(data, dict):
        raise ValidationError("Message payload must be an object")

    has_conversation = bool(data.get("conversationId"))
    has_room = bool(data.get("roomId"))
    if has_conversation == has_room:
        raise ValidationError("Message must belong to either a conversation or a room")

    model = DirectMessagePayload if has_conversation else RoomMessagePayload
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid message payload", error=str(e)) from e


def payload_to_wire(payload: LivePayload, sender: Dict[str, Any]) -> Dict[str, Any]:
    """Render a validated live payload, stamped with the authenticated sender."""
    body = payload.model_dump(mode="json", by_alias=True)
    body["kind"] = "direct" if isinstance(payload, DirectMessagePayload) else "room"
    body["sender"] = sender
    return body
