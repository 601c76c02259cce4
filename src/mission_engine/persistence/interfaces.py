from __future__ import annotations

from datetime import datetime
from typing import Protocol


class WorldRepo(Protocol):
    def get(self, world_id: int): ...
    def list_all(self): ...
    def add(self, name: str, description: str, author: str, document_json: str): ...


class RoomRepo(Protocol):
    def get(self, room_id: int): ...
    def add(self, world_id: int, internal_name: str, display_name: str, base_description: str, is_dark: bool): ...
    def add_exit(self, source_room_id: int, dest_room_id: int, direction: str, description: str | None): ...
    def exits_for(self, room_id: int): ...
    def find_exit(self, room_id: int, direction: str): ...
    def add_item(
        self,
        world_id: int,
        room_id: int | None,
        name: str,
        description: str,
        is_hidden: bool = False,
        is_critical: bool = False,
    ): ...
    def visible_items(self, room_id: int): ...


class CharacterRepo(Protocol):
    def get(self, character_id: int): ...
    def add(self, world_id: int, room_id: int, name: str, secret_goal: str, persona_prompt: str): ...
    def for_player(self, player_id: int): ...
    def move(self, character_id: int, room_id: int) -> bool: ...


class PlayerRepo(Protocol):
    def get(self, player_id: int): ...
    def get_by_name(self, name: str): ...
    def create(self, name: str): ...
    def assign_character(self, player_id: int, character_id: int, session_id: int | None = None): ...


class GameSessionRepo(Protocol):
    def get(self, record_id: int): ...
    def open(self, world_id: int, started_at: datetime): ...
    def close(self, record_id: int, ended_at: datetime) -> bool: ...
    def count_active(self) -> int: ...


class ConfigRepo(Protocol):
    def all(self) -> dict[str, str]: ...
    def upsert(self, key: str, value: str, category: str = "AI_MODELS"): ...


class LogRepo(Protocol):
    def add(self, level: str, message: str) -> None: ...


class FactRepo(Protocol):
    def add(self, session_id: int, attribute: str, value: str, vector_json: str): ...
    def list_by_session(self, session_id: int): ...


class UnitOfWork(Protocol):
    worlds: WorldRepo
    rooms: RoomRepo
    characters: CharacterRepo
    players: PlayerRepo
    sessions: GameSessionRepo
    config: ConfigRepo
    logs: LogRepo
    facts: FactRepo

    def ping(self) -> bool: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
