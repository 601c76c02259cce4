from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ..core.errors import StorageUnavailable
from ..core.normalize import dump_json, utcnow
from ..core.types import ExitView, ItemView, PlayerView, RoomView
from ..core.world import validate_world_document
from .interfaces import UnitOfWork

logger = logging.getLogger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError, PoolTimeoutError)


class StorageGateway:
    """The storage contract used by the orchestration core.

    Connection-level database failures surface as ``StorageUnavailable``;
    integrity and programming errors propagate unchanged.
    """

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self._uow_factory = uow_factory

    @contextmanager
    def _unit(self) -> Iterator[Any]:
        try:
            with self._uow_factory() as uow:
                yield uow
        except _UNAVAILABLE as exc:
            raise StorageUnavailable(str(exc).splitlines()[0]) from exc

    def ping(self) -> bool:
        with self._unit() as uow:
            return uow.ping()

    # -- players ---------------------------------------------------------

    def find_or_create_player(self, name: str) -> int:
        name = (name or "").strip()
        if not name:
            raise ValueError("Player name is required")
        with self._unit() as uow:
            player = uow.players.get_by_name(name)
            if player is None:
                player = uow.players.create(name)
            else:
                player.last_seen_at = utcnow()
            uow.commit()
            return player.id

    def assign_character(self, player_id: int, character_id: int, session_id: int | None = None) -> None:
        with self._unit() as uow:
            uow.players.assign_character(player_id, character_id, session_id)
            uow.commit()

    def read_player_view(self, player_id: int) -> PlayerView | None:
        with self._unit() as uow:
            character = uow.characters.for_player(player_id)
            if character is None:
                return None
            room = uow.rooms.get(character.current_room_id)
            if room is None:
                return None
            items = [ItemView(name=i.name, description=i.description) for i in uow.rooms.visible_items(room.id)]
            exits = [
                ExitView(direction=e.direction, destination_room_id=e.dest_room_id, description=e.description)
                for e in uow.rooms.exits_for(room.id)
            ]
            return PlayerView(
                player_id=player_id,
                character_name=character.name,
                health=character.health,
                room=RoomView(
                    room_id=room.id,
                    name=room.display_name,
                    description=room.base_description,
                    is_dark=room.is_dark,
                    items=items,
                    exits=exits,
                ),
            )

    def find_exit(self, player_id: int, direction: str) -> ExitView | None:
        with self._unit() as uow:
            character = uow.characters.for_player(player_id)
            if character is None:
                return None
            row = uow.rooms.find_exit(character.current_room_id, direction)
            if row is None:
                return None
            return ExitView(direction=row.direction, destination_room_id=row.dest_room_id, description=row.description)

    def move_player(self, player_id: int, room_id: int) -> bool:
        with self._unit() as uow:
            character = uow.characters.for_player(player_id)
            if character is None:
                return False
            moved = uow.characters.move(character.id, room_id)
            uow.commit()
            return moved

    # -- mission session rows ----------------------------------------------

    def open_session(self, world_id: int, started_at: datetime) -> int:
        with self._unit() as uow:
            row = uow.sessions.open(world_id, started_at)
            uow.commit()
            return row.id

    def close_session(self, record_id: int, ended_at: datetime) -> bool:
        with self._unit() as uow:
            closed = uow.sessions.close(record_id, ended_at)
            uow.commit()
            return closed

    def count_active_sessions(self) -> int:
        with self._unit() as uow:
            return uow.sessions.count_active()

    # -- configuration and logs ----------------------------------------------

    def load_config(self) -> dict[str, str]:
        with self._unit() as uow:
            return uow.config.all()

    def save_config(self, values: Mapping[str, object], category: str = "AI_MODELS") -> None:
        with self._unit() as uow:
            for key, value in values.items():
                uow.config.upsert(str(key), "" if value is None else str(value), category=category)
            uow.commit()

    def append_log(self, level: str, message: str) -> None:
        with self._unit() as uow:
            uow.logs.add(level, message)
            uow.commit()

    # -- worlds ------------------------------------------------------------

    def list_worlds(self) -> list[dict[str, Any]]:
        with self._unit() as uow:
            return [
                {"world_id": w.id, "name": w.name, "description": w.description}
                for w in uow.worlds.list_all()
            ]

    def ingest_world(self, document: Mapping[str, Any]) -> int:
        doc = validate_world_document(document)
        meta = doc["metadata"]
        seed = doc["seed_data"]
        with self._unit() as uow:
            world = uow.worlds.add(
                name=meta["name"],
                description=meta["description"],
                author=meta["author"],
                document_json=dump_json(doc),
            )
            room_ids: dict[str, int] = {}
            for room in seed["rooms"]:
                row = uow.rooms.add(
                    world_id=world.id,
                    internal_name=room["internalName"],
                    display_name=room["displayName"],
                    base_description=room["description"],
                    is_dark=room["isDark"],
                )
                room_ids[room["internalName"]] = row.id
            for room in seed["rooms"]:
                for exit_def in room["exits"]:
                    uow.rooms.add_exit(
                        source_room_id=room_ids[room["internalName"]],
                        dest_room_id=room_ids[exit_def["to"]],
                        direction=exit_def["direction"],
                        description=exit_def["description"],
                    )
            for item in seed["items"]:
                uow.rooms.add_item(
                    world_id=world.id,
                    room_id=room_ids.get(item["room"]) if item["room"] else None,
                    name=item["name"],
                    description=item["description"],
                    is_hidden=item["isHidden"],
                    is_critical=item["isCritical"],
                )
            for character in seed["characters"]:
                uow.characters.add(
                    world_id=world.id,
                    room_id=room_ids[character["startRoom"]],
                    name=character["name"],
                    secret_goal=character["secretGoal"],
                    persona_prompt=character["personaPrompt"],
                )
            uow.commit()
            logger.info("World %s ingested: %s (%d rooms)", world.id, world.name, len(room_ids))
            return world.id

    # -- semantic facts ------------------------------------------------------

    def add_fact(self, session_id: int, attribute: str, value: str, vector: list[float]) -> int:
        with self._unit() as uow:
            row = uow.facts.add(session_id, attribute, value, dump_json([float(v) for v in vector]))
            uow.commit()
            return row.id

    def list_facts(self, session_id: int) -> list[dict[str, Any]]:
        with self._unit() as uow:
            out: list[dict[str, Any]] = []
            for row in uow.facts.list_by_session(session_id):
                try:
                    vector = json.loads(row.vector_json or "[]")
                except ValueError:
                    vector = []
                out.append({"attribute": row.attribute, "value": row.value, "vector": vector})
            return out
