from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ...core.normalize import utcnow
from .models import (
    Character,
    Exit,
    GameSession,
    Item,
    Player,
    Room,
    SessionPlayer,
    SystemConfigEntry,
    SystemLog,
    World,
    WorldFact,
)


class WorldRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, world_id: int) -> World | None:
        return self.session.get(World, world_id)

    def list_all(self) -> list[World]:
        stmt = select(World).order_by(World.created_at.desc(), World.id.desc())
        return list(self.session.execute(stmt).scalars().all())

    def add(self, name: str, description: str, author: str, document_json: str) -> World:
        row = World(name=name, description=description, author=author, document_json=document_json)
        self.session.add(row)
        self.session.flush()
        return row


class RoomRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, room_id: int) -> Room | None:
        return self.session.get(Room, room_id)

    def add(self, world_id: int, internal_name: str, display_name: str, base_description: str, is_dark: bool) -> Room:
        row = Room(
            world_id=world_id,
            internal_name=internal_name,
            display_name=display_name,
            base_description=base_description,
            is_dark=is_dark,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def add_exit(self, source_room_id: int, dest_room_id: int, direction: str, description: str | None) -> Exit:
        row = Exit(
            source_room_id=source_room_id,
            dest_room_id=dest_room_id,
            direction=direction,
            description=description,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def exits_for(self, room_id: int) -> list[Exit]:
        stmt = select(Exit).where(Exit.source_room_id == room_id).order_by(Exit.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def find_exit(self, room_id: int, direction: str) -> Exit | None:
        stmt = (
            select(Exit)
            .where(Exit.source_room_id == room_id)
            .where(Exit.direction == direction)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def add_item(
        self,
        world_id: int,
        room_id: int | None,
        name: str,
        description: str,
        is_hidden: bool = False,
        is_critical: bool = False,
    ) -> Item:
        row = Item(
            world_id=world_id,
            current_room_id=room_id,
            name=name,
            description=description,
            is_hidden=is_hidden,
            is_critical=is_critical,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def visible_items(self, room_id: int) -> list[Item]:
        stmt = (
            select(Item)
            .where(Item.current_room_id == room_id)
            .where(Item.is_hidden.is_(False))
            .order_by(Item.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())


class CharacterRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, character_id: int) -> Character | None:
        return self.session.get(Character, character_id)

    def add(
        self,
        world_id: int,
        room_id: int,
        name: str,
        secret_goal: str,
        persona_prompt: str,
    ) -> Character:
        row = Character(
            world_id=world_id,
            current_room_id=room_id,
            name=name,
            secret_goal=secret_goal,
            persona_prompt=persona_prompt,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def for_player(self, player_id: int) -> Character | None:
        stmt = (
            select(Character)
            .join(SessionPlayer, SessionPlayer.character_id == Character.id)
            .where(SessionPlayer.player_id == player_id)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def move(self, character_id: int, room_id: int) -> bool:
        stmt = update(Character).where(Character.id == character_id).values(current_room_id=room_id)
        return (self.session.execute(stmt).rowcount or 0) == 1


class PlayerRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, player_id: int) -> Player | None:
        return self.session.get(Player, player_id)

    def get_by_name(self, name: str) -> Player | None:
        stmt = select(Player).where(Player.name == name).limit(1)
        return self.session.execute(stmt).scalar_one_or_none()

    def create(self, name: str) -> Player:
        row = Player(name=name, last_seen_at=utcnow())
        self.session.add(row)
        self.session.flush()
        return row

    def assign_character(self, player_id: int, character_id: int, session_id: int | None = None) -> SessionPlayer:
        stmt = select(SessionPlayer).where(SessionPlayer.player_id == player_id).limit(1)
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            row = SessionPlayer(player_id=player_id, character_id=character_id, session_id=session_id)
            self.session.add(row)
        else:
            row.character_id = character_id
            row.session_id = session_id
            row.joined_at = utcnow()
        self.session.flush()
        return row


class GameSessionRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, record_id: int) -> GameSession | None:
        return self.session.get(GameSession, record_id)

    def open(self, world_id: int, started_at: datetime) -> GameSession:
        row = GameSession(world_id=world_id, start_time=started_at, is_active=True)
        self.session.add(row)
        self.session.flush()
        return row

    def close(self, record_id: int, ended_at: datetime) -> bool:
        stmt = (
            update(GameSession)
            .where(GameSession.id == record_id)
            .values(is_active=False, end_time=ended_at)
        )
        return (self.session.execute(stmt).rowcount or 0) == 1

    def count_active(self) -> int:
        stmt = select(GameSession.id).where(GameSession.is_active.is_(True))
        return len(self.session.execute(stmt).scalars().all())


class ConfigRepo:
    def __init__(self, session: Session):
        self.session = session

    def all(self) -> dict[str, str]:
        rows = self.session.execute(select(SystemConfigEntry)).scalars().all()
        return {row.key: row.value for row in rows}

    def upsert(self, key: str, value: str, category: str = "AI_MODELS") -> SystemConfigEntry:
        row = self.session.get(SystemConfigEntry, key)
        if row is None:
            row = SystemConfigEntry(key=key, value=value, category=category)
            self.session.add(row)
        else:
            row.value = value
            row.updated_at = utcnow()
        self.session.flush()
        return row


class LogRepo:
    def __init__(self, session: Session):
        self.session = session

    def add(self, level: str, message: str) -> None:
        self.session.add(SystemLog(level=level, message=message))
        self.session.flush()


class FactRepo:
    def __init__(self, session: Session):
        self.session = session

    def add(self, session_id: int, attribute: str, value: str, vector_json: str) -> WorldFact:
        row = WorldFact(session_id=session_id, attribute=attribute, value=value, vector_json=vector_json)
        self.session.add(row)
        self.session.flush()
        return row

    def list_by_session(self, session_id: int) -> list[WorldFact]:
        stmt = select(WorldFact).where(WorldFact.session_id == session_id).order_by(WorldFact.id.asc())
        return list(self.session.execute(stmt).scalars().all())
