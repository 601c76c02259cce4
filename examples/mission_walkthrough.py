from __future__ import annotations

import asyncio
import json

from mission_engine import MissionControl, ProviderRouter, RouterConfig, StorageGateway
from mission_engine.core.ports import HttpResponse
from mission_engine.persistence.sqlalchemy import (
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)


class DemoTransport:
    """Pretends to be a local Ollama server."""

    async def request(self, method, url, *, headers=None, payload=None, timeout):
        if url.endswith("/api/generate"):
            prompt = (payload or {}).get("prompt", "")
            if 'Say "Verified"' in prompt:
                return HttpResponse(status=200, body={"response": "Verified"})
            return HttpResponse(
                status=200,
                body={"response": "Static crackles in your headset, then a voice: 'Who's there?'"},
            )
        if url.endswith("/api/tags"):
            return HttpResponse(status=200, body={"models": [{"name": "llama3"}]})
        return HttpResponse(status=404, body={"error": "not found"}, reason="Not Found")


WORLD = {
    "version": "1.0.0",
    "metadata": {"name": "Relay Station", "description": "A listening post at the edge of the system."},
    "seed_data": {
        "rooms": [
            {
                "internalName": "dock",
                "displayName": "Docking Ring",
                "description": "Your shuttle ticks as it cools.",
                "exits": [{"direction": "north", "to": "comms"}],
            },
            {
                "internalName": "comms",
                "displayName": "Comms Room",
                "description": "A wall of dead monitors.",
                "exits": [{"direction": "s", "to": "dock"}],
            },
        ],
        "characters": [
            {
                "name": "Operator Lin",
                "secretGoal": "Find out who sent the distress call.",
                "personaPrompt": "Curt and methodical.",
            }
        ],
        "items": [{"name": "Headset", "description": "Still warm.", "room": "comms"}],
    },
}


def make_storage():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    session_factory = build_session_factory(engine)

    def _uow_factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return StorageGateway(_uow_factory)


async def main() -> None:
    storage = make_storage()
    world_id = storage.ingest_world(WORLD)
    player_id = storage.find_or_create_player("player-one")
    storage.assign_character(player_id, character_id=1)

    router = ProviderRouter(RouterConfig.from_mapping({}), transport=DemoTransport())
    control = MissionControl(storage, router)

    health = await control.monitor.run_once()
    print("preflight:", json.dumps(health.as_dict()))

    ack = control.schedule_mission(world_id, duration_minutes=5)
    print("schedule:", ack["message"], ack["mission"]["status"])
    control.scheduler.tick()
    print("mission:", control.mission_status()["status"])

    for command in ("n", "pick up the headset", "east"):
        reply = await control.submit_command(player_id, command)
        print(f"> {command}\n{reply['message']}")

    state = await control.fetch_state(player_id)
    print("room:", state["room"]["name"], "| items:", [i["name"] for i in state["room"]["items"]])

    control.abort_mission()
    print("mission:", control.mission_status()["status"])


if __name__ == "__main__":
    asyncio.run(main())
