from __future__ import annotations

from typing import Any

from .errors import InvalidWorldDocument
from .normalize import canonical_direction

SUPPORTED_VERSIONS = ("1.0.0",)


def _require_str(entry: dict[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidWorldDocument(f"{where}: '{key}' is required")
    return value.strip()


def validate_world_document(document: Any) -> dict[str, Any]:
    """Check a scenario document and return a normalized copy.

    Exit directions are canonicalized (``"n"`` -> ``"NORTH"``) and every exit
    destination must name a room declared in the same document.
    """
    if not isinstance(document, dict):
        raise InvalidWorldDocument("World document must be an object")

    version = str(document.get("version") or "1.0.0")
    if version not in SUPPORTED_VERSIONS:
        raise InvalidWorldDocument(f"Unsupported world document version: {version}")

    metadata = document.get("metadata")
    if not isinstance(metadata, dict):
        raise InvalidWorldDocument("metadata is required")
    name = _require_str(metadata, "name", "metadata")

    seed = document.get("seed_data")
    if not isinstance(seed, dict):
        raise InvalidWorldDocument("seed_data is required")

    raw_rooms = seed.get("rooms")
    if not isinstance(raw_rooms, list) or not raw_rooms:
        raise InvalidWorldDocument("seed_data.rooms must be a non-empty list")

    rooms: list[dict[str, Any]] = []
    room_names: set[str] = set()
    for idx, raw in enumerate(raw_rooms):
        if not isinstance(raw, dict):
            raise InvalidWorldDocument(f"rooms[{idx}] must be an object")
        where = f"rooms[{idx}]"
        internal = _require_str(raw, "internalName", where)
        if internal in room_names:
            raise InvalidWorldDocument(f"{where}: duplicate room '{internal}'")
        room_names.add(internal)
        rooms.append(
            {
                "internalName": internal,
                "displayName": _require_str(raw, "displayName", where),
                "description": _require_str(raw, "description", where),
                "isDark": bool(raw.get("isDark", False)),
                "exits": raw.get("exits") or [],
            }
        )

    for room in rooms:
        exits: list[dict[str, Any]] = []
        seen: set[str] = set()
        if not isinstance(room["exits"], list):
            raise InvalidWorldDocument(f"room '{room['internalName']}': exits must be a list")
        for raw_exit in room["exits"]:
            where = f"room '{room['internalName']}' exit"
            if not isinstance(raw_exit, dict):
                raise InvalidWorldDocument(f"{where} must be an object")
            direction = canonical_direction(raw_exit.get("direction"))
            if direction is None:
                raise InvalidWorldDocument(f"{where}: unknown direction {raw_exit.get('direction')!r}")
            if direction in seen:
                raise InvalidWorldDocument(f"{where}: duplicate direction {direction}")
            seen.add(direction)
            destination = _require_str(raw_exit, "to", where)
            if destination not in room_names:
                raise InvalidWorldDocument(f"{where}: unknown destination '{destination}'")
            description = raw_exit.get("description")
            exits.append(
                {
                    "direction": direction,
                    "to": destination,
                    "description": str(description).strip() if description else None,
                }
            )
        room["exits"] = exits

    characters: list[dict[str, Any]] = []
    for idx, raw in enumerate(seed.get("characters") or []):
        if not isinstance(raw, dict):
            raise InvalidWorldDocument(f"characters[{idx}] must be an object")
        where = f"characters[{idx}]"
        start_room = raw.get("startRoom") or rooms[0]["internalName"]
        if start_room not in room_names:
            raise InvalidWorldDocument(f"{where}: unknown startRoom '{start_room}'")
        characters.append(
            {
                "name": _require_str(raw, "name", where),
                "secretGoal": _require_str(raw, "secretGoal", where),
                "personaPrompt": _require_str(raw, "personaPrompt", where),
                "startRoom": start_room,
            }
        )

    items: list[dict[str, Any]] = []
    for idx, raw in enumerate(seed.get("items") or []):
        if not isinstance(raw, dict):
            raise InvalidWorldDocument(f"items[{idx}] must be an object")
        where = f"items[{idx}]"
        room = raw.get("room")
        if room is not None and room not in room_names:
            raise InvalidWorldDocument(f"{where}: unknown room '{room}'")
        items.append(
            {
                "name": _require_str(raw, "name", where),
                "description": str(raw.get("description") or ""),
                "room": room,
                "isHidden": bool(raw.get("isHidden", False)),
                "isCritical": bool(raw.get("isCritical", False)),
            }
        )

    return {
        "version": version,
        "metadata": {
            "name": name,
            "description": str(metadata.get("description") or ""),
            "author": str(metadata.get("author") or ""),
            "playerCount": metadata.get("playerCount"),
        },
        "seed_data": {"rooms": rooms, "characters": characters, "items": items},
    }
