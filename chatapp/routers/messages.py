"""
Messages API Router

Direct conversations (find-or-create, history, mark-read, send) and room chat.
All endpoints require a bearer credential.
"""

from uuid import UUID
import logging

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from chatapp.db.config import get_session
from chatapp.errors import AuthorizationError, ValidationError
from chatapp.middleware.auth import CurrentUser, get_current_user
from chatapp.schemas.messages import (
    ConversationListResponse,
    ConversationResponse,
    DirectMessageRequest,
    MarkReadResponse,
    MessageListResponse,
    MessageResponse,
    RoomMessageRequest,
    serialize_message,
)
from chatapp.services.conversation_service import ConversationService
from chatapp.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])  # main.py mounts this under /api/messages

NOT_PARTICIPANT = "You are not a participant in this conversation"


def parse_id(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise ValidationError(f"Invalid {label} ID")


@router.get("/conversations", response_model=ConversationListResponse)
async def get_user_conversations(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """List the caller's conversations, most recently updated first."""
    service = ConversationService(db)
    conversations = service.list_for_user(current_user.user_id)
    return ConversationListResponse(conversations=service.resolve(conversations))


@router.get("/conversations/user/{receiver_id}", response_model=ConversationResponse)
async def get_or_create_conversation(
    receiver_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """Find or create the conversation between the caller and ``receiver_id``."""
    parse_id(receiver_id, "receiver")
    service = ConversationService(db)
    conversation = service.find_or_create(current_user.user_id, receiver_id)
    return ConversationResponse(conversation=service.resolve([conversation])[0])


@router.get("/conversations/{conversation_id}/messages", response_model=MessageListResponse)
async def get_conversation_messages(
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    conversation_uuid = parse_id(conversation_id, "conversation")
    if ConversationService(db).get_for_participant(conversation_uuid, current_user.user_id) is None:
        raise AuthorizationError(NOT_PARTICIPANT)

    messages = MessageService(db).list_by_conversation(conversation_uuid)
    return MessageListResponse(messages=[serialize_message(m) for m in messages])


@router.put("/conversations/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_messages_as_read(
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """Mark every message the other participant sent here as read."""
    conversation_uuid = parse_id(conversation_id, "conversation")
    if ConversationService(db).get_for_participant(conversation_uuid, current_user.user_id) is None:
        raise AuthorizationError(NOT_PARTICIPANT)

    updated = MessageService(db).mark_conversation_read(conversation_uuid, current_user.user_id)
    return MarkReadResponse(updated_count=updated)


@router.post("/direct", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_direct_message(
    request: DirectMessageRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    message = MessageService(db).send_direct_message(
        current_user.user_id, request.conversation_id, request.content
    )
    return MessageResponse(message=serialize_message(message))


@router.get("/rooms/{room_id}", response_model=MessageListResponse)
async def get_room_messages(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    messages = MessageService(db).list_by_room(room_id)
    return MessageListResponse(messages=[serialize_message(m) for m in messages])


@router.post("/rooms", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_room_message(
    request: RoomMessageRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    message = MessageService(db).send_room_message(current_user.user_id, request.room_id, request.content)
    return MessageResponse(message=serialize_message(message))
