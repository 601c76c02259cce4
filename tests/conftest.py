from __future__ import annotations

import copy
import inspect
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, text

from mission_engine.core.errors import StorageUnavailable
from mission_engine.persistence.gateway import StorageGateway
from mission_engine.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from mission_engine.persistence.sqlalchemy.models import Character, Room
from mission_engine.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, minutes=minutes)
        return self.now


class StubTransport:
    """Answers requests from a list of (url fragment, reply) routes.

    A reply may be an ``HttpResponse``, an exception instance to raise, or a
    callable (sync or async) taking ``(method, url, headers, payload)``.
    Unmatched requests fail like a refused connection.
    """

    def __init__(self):
        self.routes: list[tuple[str, object]] = []
        self.calls: list[dict] = []

    def add(self, fragment: str, reply) -> "StubTransport":
        self.routes.append((fragment, reply))
        return self

    async def request(self, method, url, *, headers=None, payload=None, timeout):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "payload": payload})
        for fragment, reply in self.routes:
            if fragment not in url:
                continue
            if isinstance(reply, BaseException):
                raise reply
            if callable(reply):
                result = reply(method, url, headers, payload)
                if inspect.isawaitable(result):
                    result = await result
                return result
            return reply
        raise ConnectionRefusedError(f"no route for {url}")


class StubRecords:
    def __init__(self):
        self.opened: list[tuple[int, int, datetime]] = []
        self.closed: list[tuple[int, datetime]] = []
        self.fail_open = 0
        self.fail_close = False
        self.on_open = None
        self._next_id = 1

    def open_session(self, world_id, started_at):
        if self.fail_open:
            self.fail_open -= 1
            raise StorageUnavailable("database is down")
        record_id = self._next_id
        self._next_id += 1
        self.opened.append((record_id, world_id, started_at))
        if self.on_open is not None:
            self.on_open()
        return record_id

    def close_session(self, record_id, ended_at):
        if self.fail_close:
            raise StorageUnavailable("database is down")
        self.closed.append((record_id, ended_at))
        return True


WORLD_DOCUMENT = {
    "version": "1.0.0",
    "metadata": {"name": "Station Kappa", "description": "A drifting research station.", "author": "ops"},
    "seed_data": {
        "rooms": [
            {
                "internalName": "airlock",
                "displayName": "Airlock",
                "description": "Frost rims the outer hatch.",
                "exits": [
                    {"direction": "n", "to": "corridor", "description": "You cycle the inner door and step north."},
                    {"direction": "up", "to": "observatory"},
                ],
            },
            {
                "internalName": "corridor",
                "displayName": "Main Corridor",
                "description": "Emergency lights pulse red.",
                "exits": [{"direction": "SOUTH", "to": "airlock"}],
            },
            {
                "internalName": "observatory",
                "displayName": "Observatory",
                "description": "Stars wheel past the dome.",
                "isDark": True,
                "exits": [{"direction": "d", "to": "airlock"}],
            },
        ],
        "characters": [
            {
                "name": "Dr. Vasquez",
                "secretGoal": "Erase the reactor logs.",
                "personaPrompt": "Calm, evasive, precise.",
                "startRoom": "airlock",
            }
        ],
        "items": [
            {"name": "Keycard", "description": "A scuffed blue keycard.", "room": "airlock"},
            {"name": "Data chip", "description": "Hidden behind a panel.", "room": "airlock", "isHidden": True},
        ],
    },
}


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    sf = build_session_factory(engine)
    with sf() as session:
        session.execute(text("PRAGMA foreign_keys=ON"))
        session.commit()
    return sf


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def storage(uow_factory):
    return StorageGateway(uow_factory)


@pytest.fixture()
def seeded_world(storage, session_factory):
    world_id = storage.ingest_world(WORLD_DOCUMENT)
    player_id = storage.find_or_create_player("tester")
    with session_factory() as session:
        character = session.execute(select(Character).where(Character.world_id == world_id)).scalar_one()
        rooms = {
            room.internal_name: room.id
            for room in session.execute(select(Room).where(Room.world_id == world_id)).scalars()
        }
    storage.assign_character(player_id, character.id)
    return {"world_id": world_id, "player_id": player_id, "character_id": character.id, "rooms": rooms}


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 14, 9, 0, 0))


@pytest.fixture()
def transport():
    return StubTransport()


@pytest.fixture()
def records():
    return StubRecords()


@pytest.fixture()
def world_document():
    return copy.deepcopy(WORLD_DOCUMENT)
