from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.core.db import Base, utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_key = Column(String, nullable=False)
    sender_id = Column(String, nullable=False)
    receiver_id = Column(String, nullable=False)
    content = Column(String, nullable=False)
    message_type = Column(String, nullable=False, default="text")
    reply_to_message_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    read_at = Column(DateTime, nullable=True)
    is_edited = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_key", "created_at", "id"),
        Index("idx_messages_receiver_unread", "receiver_id", "read_at"),
    )


class GroupMessage(Base):
    __tablename__ = "group_messages"

    id = Column(Integer, primary_key=True, index=True)
    place_id = Column(String, ForeignKey("places.id"), nullable=False)
    sender_id = Column(String, nullable=False)
    content = Column(String, nullable=False)
    message_type = Column(String, nullable=False, default="text")
    reply_to_message_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    reads = relationship(
        "GroupMessageRead",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_group_messages_place_created", "place_id", "created_at", "id"),
    )

    @property
    def read_by(self) -> list[str]:
        return sorted(r.user_id for r in self.reads)


class GroupMessageRead(Base):
    __tablename__ = "group_message_reads"

    message_id = Column(Integer, ForeignKey("group_messages.id"), primary_key=True)
    user_id = Column(String, primary_key=True)
    read_at = Column(DateTime, nullable=False, default=utcnow)
