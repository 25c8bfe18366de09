"""
Message Model

A message belongs either to a conversation (direct message) or to a room,
never both and never neither. The database enforces the same rule with a
check constraint; in Python the choice is made through ``MessageTarget``.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union, TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Text
from sqlmodel import SQLModel, Field, Relationship

from chatapp.errors import ValidationError

if TYPE_CHECKING:
    from .user import User


@dataclass(frozen=True)
class ConversationTarget:
    conversation_id: UUID


@dataclass(frozen=True)
class RoomTarget:
    room_id: str


MessageTarget = Union[ConversationTarget, RoomTarget]


def target_from_fields(
    conversation_id: Optional[UUID] = None,
    room_id: Optional[str] = None,
) -> MessageTarget:
    """Build a target from the two optional wire fields, rejecting both/neither."""
    if conversation_id and room_id:
        raise ValidationError("Message must belong to either a conversation or a room, not both")
    if conversation_id:
        return ConversationTarget(conversation_id=conversation_id)
    if room_id:
        return RoomTarget(room_id=room_id)
    raise ValidationError("Message must belong to either a conversation or a room")


class Message(SQLModel, table=True):
    """
    Individual chat message.

    Only ``read`` changes after creation: conversation messages start unread,
    room messages are stored read since rooms have no fixed participant set.
    """
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(
            "(conversation_id IS NULL) <> (room_id IS NULL)",
            name="ck_message_single_target",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    sender_id: str = Field(foreign_key="user.id", index=True)
    content: str = Field(sa_column=Column(Text, nullable=False))
    conversation_id: Optional[UUID] = Field(default=None, foreign_key="conversations.id", index=True)
    room_id: Optional[str] = Field(default=None, index=True, max_length=255)
    position: Optional[int] = Field(default=None)  # index in the conversation log
    read: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        index=True,
    )

    sender: "User" = Relationship(sa_relationship_kwargs={"lazy": "joined"})

    @property
    def target(self) -> MessageTarget:
        return target_from_fields(self.conversation_id, self.room_id)
