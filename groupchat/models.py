from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupchat.database import Base

# ---------------------------------------------------------------------------
# Association table: User <-> Group (membership)
# ---------------------------------------------------------------------------
group_users = Table(
    "group_users",
    Base.metadata,
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

# ---------------------------------------------------------------------------
# Association table: User <-> User (friendship, stored in both directions)
# ---------------------------------------------------------------------------
friendships = Table(
    "friendships",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("friend_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"
    # Fetch server-side defaults (created_at) on INSERT; async sessions cannot lazy-load them.
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    # Credential hash is owned by the auth subsystem.
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    registration_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    badge_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships are lazy="noload"; the store issues explicit queries
    groups: Mapped[List["Group"]] = relationship(
        "Group", secondary=group_users, back_populates="users", lazy="noload"
    )
    friends: Mapped[List["User"]] = relationship(
        "User",
        secondary=friendships,
        primaryjoin=lambda: User.id == friendships.c.user_id,
        secondaryjoin=lambda: User.id == friendships.c.friend_id,
        lazy="noload",
    )
    messages: Mapped[List["Message"]] = relationship(
        "Message", back_populates="author", lazy="noload"
    )


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------
class Group(Base):
    __tablename__ = "groups"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    users: Mapped[List["User"]] = relationship(
        "User", secondary=group_users, back_populates="groups", lazy="noload"
    )
    messages: Mapped[List["Message"]] = relationship(
        "Message", back_populates="group", lazy="noload"
    )


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------
class Message(Base):
    __tablename__ = "messages"
    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        # Group feed, newest first by id (the cursor key)
        Index("ix_messages_group_id_id", "group_id", "id"),
        # A user's own messages, newest first
        Index("ix_messages_user_id_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Author and owning group never change after creation.
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )

    author: Mapped["User"] = relationship("User", back_populates="messages", lazy="noload")
    group: Mapped["Group"] = relationship("Group", back_populates="messages", lazy="noload")


# ---------------------------------------------------------------------------
# LastRead: one read marker per (user, group)
# ---------------------------------------------------------------------------
class LastRead(Base):
    __tablename__ = "last_reads"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )

    message: Mapped["Message"] = relationship("Message", lazy="noload")
