"""
Conversation Model

A durable two-party direct-message channel. Room chats never create a
Conversation; they are tagged on the message with a bare room id instead.

The participant pair is stored canonicalized (participant_a < participant_b)
so that the unique constraint below holds for the unordered pair.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field


def canonical_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    """Order two participant ids deterministically."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class Conversation(SQLModel, table=True):
    """
    Conversation between exactly two distinct users.

    The message log is the set of messages tagged with this conversation,
    ordered by ``Message.position``; ``message_count`` is its length and
    ``last_message_id`` points at its tail. Both are only ever changed in the
    same transaction that inserts the message.
    """
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("participant_a", "participant_b", name="uq_conversation_pair"),
        CheckConstraint("participant_a < participant_b", name="ck_conversation_pair_order"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    participant_a: str = Field(foreign_key="user.id", index=True)
    participant_b: str = Field(foreign_key="user.id", index=True)
    message_count: int = Field(default=0)
    # No FK: messages already reference conversations
    last_message_id: Optional[UUID] = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        index=True,
    )

    @property
    def participants(self) -> Tuple[str, str]:
        return (self.participant_a, self.participant_b)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> Optional[str]:
        """Return the participant that is not ``user_id``."""
        if not self.has_participant(user_id):
            return None
        return self.participant_b if self.participant_a == user_id else self.participant_a
