from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ...core.normalize import utcnow
from .base import Base, TimestampMixin


class World(TimestampMixin, Base):
    __tablename__ = "msn_worlds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    document_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")


class Room(Base):
    __tablename__ = "msn_rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    world_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_worlds.id"), nullable=False)
    internal_name: Mapped[str] = mapped_column(String(128), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    base_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_dark: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("world_id", "internal_name", name="uq_msn_room_world_internal_name"),
    )


class Exit(Base):
    __tablename__ = "msn_exits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_room_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_rooms.id"), nullable=False)
    dest_room_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_rooms.id"), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("source_room_id", "direction", name="uq_msn_exit_source_direction"),
    )


class Item(Base):
    __tablename__ = "msn_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    world_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_worlds.id"), nullable=False)
    current_room_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("msn_rooms.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


Index("ix_msn_item_room", Item.current_room_id)


class Character(Base):
    __tablename__ = "msn_characters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    world_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_worlds.id"), nullable=False)
    current_room_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_rooms.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    secret_goal: Mapped[str] = mapped_column(Text, nullable=False, default="")
    persona_prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    health: Mapped[int] = mapped_column(Integer, nullable=False, default=100)


class Player(TimestampMixin, Base):
    __tablename__ = "msn_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class GameSession(Base):
    __tablename__ = "msn_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    world_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_worlds.id"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


Index("ix_msn_session_active", GameSession.is_active)


class SessionPlayer(Base):
    __tablename__ = "msn_session_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("msn_sessions.id"), nullable=True)
    player_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_players.id"), nullable=False, unique=True)
    character_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_characters.id"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class SystemConfigEntry(Base):
    __tablename__ = "msn_system_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="SYSTEM")
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SystemLog(Base):
    __tablename__ = "msn_system_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class WorldFact(Base):
    __tablename__ = "msn_world_facts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(Integer, ForeignKey("msn_sessions.id"), nullable=False)
    attribute: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    vector_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


Index("ix_msn_world_fact_session", WorldFact.session_id)
