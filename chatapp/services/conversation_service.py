"""
Conversation Service

Find-or-create, append and listing operations for two-party conversations.

Concurrency: the canonicalized participant pair carries a unique constraint,
so two first-contact requests racing each other converge on one row; the
loser of the insert re-reads the winner's conversation.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from chatapp.errors import NotFoundError, ValidationError
from chatapp.models.conversation import Conversation, canonical_pair
from chatapp.models.message import Message
from chatapp.models.user import User
from chatapp.schemas.auth import UserPublic
from chatapp.schemas.messages import ConversationRead, serialize_message

logger = logging.getLogger(__name__)


class ConversationService:
    """Service for managing two-party conversations"""

    def __init__(self, db: Session):
        self.db = db

    def _find_pair(self, user_a: str, user_b: str) -> Optional[Conversation]:
        first, second = canonical_pair(user_a, user_b)
        statement = select(Conversation).where(
            Conversation.participant_a == first,
            Conversation.participant_b == second,
        )
        return self.db.exec(statement).first()

    def find_or_create(self, user_a: str, user_b: str) -> Conversation:
        """
        Return the conversation between two users, creating it on first contact.

        Raises:
            ValidationError: If both ids are the same user
            NotFoundError: If either user does not exist
        """
        if user_a == user_b:
            raise ValidationError("Cannot create a conversation with yourself")

        existing = self._find_pair(user_a, user_b)
        if existing:
            return existing

        for user_id in (user_a, user_b):
            if self.db.get(User, user_id) is None:
                raise NotFoundError("User not found")

        first, second = canonical_pair(user_a, user_b)
        conversation = Conversation(participant_a=first, participant_b=second)
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against the other participant's first contact
            self.db.rollback()
            winner = self._find_pair(user_a, user_b)
            if winner is None:
                raise
            logger.info(f"Conversation race resolved to {winner.id}")
            return winner

        self.db.refresh(conversation)
        logger.info(f"Created conversation {conversation.id} for {first} and {second}")
        return conversation

    def get(self, conversation_id: UUID) -> Optional[Conversation]:
        return self.db.get(Conversation, conversation_id)

    def get_for_participant(self, conversation_id: UUID, user_id: str) -> Optional[Conversation]:
        """Get conversation only if ``user_id`` takes part in it"""
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None or not conversation.has_participant(user_id):
            return None
        return conversation

    def append_message(self, conversation: Conversation, message: Message) -> None:
        """
        Append ``message`` to the conversation log and move the last-message pointer.

        Does not commit: the caller owns the transaction that also inserts the message.
        """
        message.position = conversation.message_count
        conversation.message_count += 1
        conversation.last_message_id = message.id
        conversation.updated_at = datetime.now(timezone.utc)
        self.db.add(conversation)

    def list_for_user(self, user_id: str) -> List[Conversation]:
        """Get all conversations for a user, ordered by most recent"""
        statement = select(Conversation).where(
            or_(Conversation.participant_a == user_id, Conversation.participant_b == user_id)
        ).order_by(col(Conversation.updated_at).desc())
        return list(self.db.exec(statement).all())

    def resolve(self, conversations: List[Conversation]) -> List[ConversationRead]:
        """Denormalize participants and last messages for API responses."""
        user_ids = {uid for conv in conversations for uid in conv.participants}
        users: Dict[str, User] = {}
        if user_ids:
            users = {
                u.id: u for u in self.db.exec(select(User).where(col(User.id).in_(user_ids))).all()
            }

        last_ids = [conv.last_message_id for conv in conversations if conv.last_message_id]
        last_messages: Dict[UUID, Message] = {}
        if last_ids:
            last_messages = {
                m.id: m for m in self.db.exec(select(Message).where(col(Message.id).in_(last_ids))).all()
            }

        resolved = []
        for conv in conversations:
            last = last_messages.get(conv.last_message_id) if conv.last_message_id else None
            resolved.append(ConversationRead(
                id=conv.id,
                participants=[
                    UserPublic.model_validate(users[uid]) for uid in conv.participants if uid in users
                ],
                last_message=serialize_message(last) if last else None,
                message_count=conv.message_count,
                created_at=conv.created_at,
                updated_at=conv.updated_at,
            ))
        return resolved
