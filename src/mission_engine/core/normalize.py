from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any


CANONICAL_DIRECTIONS = (
    "NORTH",
    "SOUTH",
    "EAST",
    "WEST",
    "NORTHEAST",
    "NORTHWEST",
    "SOUTHEAST",
    "SOUTHWEST",
    "UP",
    "DOWN",
)

DIRECTION_ABBREVIATIONS = {
    "N": "NORTH",
    "S": "SOUTH",
    "E": "EAST",
    "W": "WEST",
    "NE": "NORTHEAST",
    "NW": "NORTHWEST",
    "SE": "SOUTHEAST",
    "SW": "SOUTHWEST",
    "U": "UP",
    "D": "DOWN",
}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the database columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def normalize_command(value: str | None) -> str:
    value = (value or "").strip()
    value = re.sub(r"\s+", " ", value)
    return value.upper()


def canonical_direction(value: str | None) -> str | None:
    token = normalize_command(value)
    token = DIRECTION_ABBREVIATIONS.get(token, token)
    if token in CANONICAL_DIRECTIONS:
        return token
    return None


def dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=True, separators=(",", ":"))


def parse_keywords(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    out: list[str] = []
    for part in str(value).split(","):
        word = part.strip().lower()
        if word and word not in out:
            out.append(word)
    return tuple(out)
