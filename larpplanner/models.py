"""SQLAlchemy models for LarpPlanner."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class System(Base):
    __tablename__ = "systems"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    authors = Column(String(255), nullable=True)
    url = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    games = relationship(
        "Game",
        back_populates="system",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Game.name",
    )


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=_uuid)
    system_id = Column(
        String(36), ForeignKey("systems.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    module_properties = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    system = relationship("System", back_populates="games")
    events = relationship(
        "Event",
        back_populates="game",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Event.start_time",
    )
    members = relationship(
        "GameUser",
        back_populates="game",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def user_ids_with_role(self, role: str) -> list[str]:
        return sorted(member.user_id for member in self.members if member.role == role)


class GameUser(Base):
    __tablename__ = "game_users"
    __table_args__ = (UniqueConstraint("game_id", "user_id", "role"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(
        String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(128), nullable=False)
    role = Column(String(16), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    game = relationship("Game", back_populates="members")


class AppAdmin(Base):
    __tablename__ = "app_admins"

    user_id = Column(String(128), primary_key=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class UserDisplayName(Base):
    __tablename__ = "user_display_names"
    __table_args__ = (UniqueConstraint("user_id", "game_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False)
    game_id = Column(
        String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    display_name = Column(String(120), nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(
        String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    game = relationship("Game", back_populates="events")
    modules = relationship(
        "Module",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Module.start_time",
    )


class Module(Base):
    __tablename__ = "modules"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    author_id = Column(String(128), nullable=True)
    name = Column(String(255), nullable=False)
    summary = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False)
    duration = Column(Float, nullable=False)
    color = Column(String(16), nullable=False, default="blue")
    properties = Column(JSON, nullable=False, default=dict)
    approval_status = Column(String(16), nullable=False, default="in_progress")
    approval_comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="modules")
