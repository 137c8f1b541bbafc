"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from wabridge.storage import Base


class Room(Base):
    """
    One conversation per external chat identity on a channel.

    Table: rooms
    Unique: (channel, chat_id) - concurrent first contact cannot create two rooms
    """
    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("channel", "chat_id", name="uq_rooms_channel_chat_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel = Column(String, nullable=False, index=True)
    chat_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, default="")
    avatar = Column(String, nullable=False, default="empty-avatar.png")
    username = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    status_state = Column(String, nullable=False, default="offline")
    status_last_changed = Column(Integer, nullable=False, default=0)
    unread_count = Column(Integer, nullable=False, default=0)
    last_message_id = Column(Integer, nullable=True)
    last_activity = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)  # Server time ISO-8601

    messages = relationship("Message", back_populates="room")


class Message(Base):
    """
    A single message inside a room.

    Table: messages
    Unique: (channel, messenger_id) - ensures idempotent ingestion
    """
    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("channel", "messenger_id", name="uq_messages_channel_messenger_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel = Column(String, nullable=False, index=True)
    messenger_id = Column(String, nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    chat_id = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    from_me = Column(Boolean, nullable=False, default=False)
    saved = Column(Boolean, nullable=False, default=False)
    distributed = Column(Boolean, nullable=False, default=False)
    seen = Column(Boolean, nullable=False, default=False)
    system = Column(Boolean, nullable=False, default=False)
    deleted = Column(Boolean, nullable=False, default=False)
    forwarded = Column(Boolean, nullable=False, default=False)
    failure = Column(String, nullable=True)
    reply_message_id = Column(Integer, nullable=True)
    reactions = Column(JSON, nullable=False, default=dict)  # chat_id -> emoji
    file_type = Column(String, nullable=True)  # image|video|audio|document
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    file_mime = Column(String, nullable=True)
    timestamp = Column(Integer, nullable=False, index=True)  # Provider unix seconds
    created_at = Column(String, nullable=False)  # Server time ISO-8601

    room = relationship("Room", back_populates="messages")
