"""
Message Service

Creates and lists messages, sends direct messages transactionally and marks
conversations read.

A direct message and its conversation's log/pointer update are committed
together or not at all: the message is flushed, the conversation updated and
both committed in one transaction; any failure rolls the whole unit back.
"""

from typing import List
from uuid import UUID
import logging

from sqlmodel import Session, col, select

from chatapp.errors import AuthorizationError, ValidationError
from chatapp.models.message import ConversationTarget, Message, MessageTarget, RoomTarget
from chatapp.services.conversation_service import ConversationService
from chatapp.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

NOT_PARTICIPANT = "Conversation not found or you are not a participant"


class MessageService:
    """Service for message persistence"""

    def __init__(self, db: Session):
        self.db = db
        self.conversations = ConversationService(db)

    def create(self, sender_id: str, content: str, target: MessageTarget) -> Message:
        """
        Build and stage a message for ``target`` (not committed).

        Raises:
            ValidationError: If content is empty or target is not a conversation/room target
        """
        if not content or not content.strip():
            raise ValidationError("Message content is required")

        if isinstance(target, ConversationTarget):
            message = Message(
                sender_id=sender_id,
                content=content,
                conversation_id=target.conversation_id,
                read=False,
            )
        elif isinstance(target, RoomTarget):
            # Room messages have no per-recipient read state
            message = Message(sender_id=sender_id, content=content, room_id=target.room_id, read=True)
        else:
            raise ValidationError("Message must belong to either a conversation or a room")

        self.db.add(message)
        return message

    def send_direct_message(self, sender_id: str, conversation_id: UUID, content: str) -> Message:
        """
        Persist a direct message together with its conversation update.

        Raises:
            ValidationError: If content is empty
            AuthorizationError: If the conversation does not exist or the
                sender is not one of its participants
        """
        if not content or not content.strip():
            raise ValidationError("Conversation ID and message content are required")

        conversation = self.conversations.get_for_participant(conversation_id, sender_id)
        if conversation is None:
            raise AuthorizationError(NOT_PARTICIPANT)

        try:
            message = self.create(sender_id, content, ConversationTarget(conversation_id=conversation.id))
            self.db.flush()
            self.conversations.append_message(conversation, message)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Direct message to {conversation_id} rolled back", exc_info=True)
            raise

        self.db.refresh(message)
        metrics_collector.message_sent()
        logger.info(f"Message {message.id} sent in conversation {conversation_id}")
        return message

    def send_room_message(self, sender_id: str, room_id: str, content: str) -> Message:
        if not room_id or not content or not content.strip():
            raise ValidationError("Room ID and message content are required")

        message = self.create(sender_id, content, RoomTarget(room_id=room_id))
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(message)
        metrics_collector.message_sent()
        return message

    def list_by_conversation(self, conversation_id: UUID) -> List[Message]:
        """Get messages for conversation in log order"""
        statement = select(Message).where(
            Message.conversation_id == conversation_id
        ).order_by(col(Message.position), col(Message.created_at))
        return list(self.db.exec(statement).all())

    def list_by_room(self, room_id: str) -> List[Message]:
        statement = select(Message).where(
            Message.room_id == room_id
        ).order_by(col(Message.created_at))
        return list(self.db.exec(statement).all())

    def mark_conversation_read(self, conversation_id: UUID, reader_id: str) -> int:
        """
        Mark every unread message sent by the other participant as read.

        Returns:
            Number of messages updated (0 when everything was already read)
        """
        statement = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.sender_id != reader_id,
            Message.read == False,  # noqa: E712
        )
        unread = list(self.db.exec(statement).all())
        for message in unread:
            message.read = True
            self.db.add(message)
        if unread:
            self.db.commit()
        return len(unread)
