from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class MissionStatus(str, Enum):
    IDLE = "IDLE"
    WAITING = "WAITING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class SystemMode(str, Enum):
    ONLINE = "ONLINE"
    DEGRADED = "DEGRADED"


class Role(str, Enum):
    DIRECTOR = "director"
    WORKHORSE = "workhorse"


class ProviderKind(str, Enum):
    GEMINI = "gemini"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"


@dataclass(frozen=True)
class MissionSession:
    status: MissionStatus = MissionStatus.IDLE
    world_id: Optional[int] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    remaining_seconds: int = 0
    session_record_id: Optional[int] = None
    # Bumped on every schedule() so a tick can tell missions apart.
    generation: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "remaining_seconds": self.remaining_seconds,
            "world_id": self.world_id,
            "session_record_id": self.session_record_id,
            "scheduled_start": self.scheduled_start.isoformat() if self.scheduled_start else None,
            "scheduled_end": self.scheduled_end.isoformat() if self.scheduled_end else None,
        }


@dataclass(frozen=True)
class ProviderTarget:
    provider: str
    endpoint: str
    model: str
    credential: Optional[str] = None
    headers: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class HealthStatus:
    storage_up: bool
    role_up: Mapping[str, bool]
    last_checked_at: datetime
    role_errors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "role_up", MappingProxyType(dict(self.role_up)))
        object.__setattr__(self, "role_errors", MappingProxyType(dict(self.role_errors)))

    @property
    def mode(self) -> SystemMode:
        if self.storage_up and self.role_up.get(Role.WORKHORSE.value, False):
            return SystemMode.ONLINE
        return SystemMode.DEGRADED

    def as_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "storage_up": self.storage_up,
            "role_up": dict(self.role_up),
            "role_errors": dict(self.role_errors),
            "last_checked_at": self.last_checked_at.isoformat(),
        }


@dataclass(frozen=True)
class VerifyResult:
    ok: bool
    message: Optional[str] = None
    cause: Optional[str] = None


@dataclass(frozen=True)
class Classification:
    kind: str
    direction: Optional[str] = None
    normalized: str = ""

    @property
    def is_movement(self) -> bool:
        return self.kind == "move"


@dataclass
class ExitView:
    direction: str
    destination_room_id: int
    description: Optional[str] = None


@dataclass
class ItemView:
    name: str
    description: str = ""


@dataclass
class RoomView:
    room_id: int
    name: str
    description: str
    is_dark: bool = False
    items: list[ItemView] = field(default_factory=list)
    exits: list[ExitView] = field(default_factory=list)


@dataclass
class PlayerView:
    player_id: int
    character_name: str
    health: int
    room: RoomView


@dataclass
class CommandResult:
    message: str
    new_room_id: Optional[int] = None
    action: str = "narrative"
    degraded: bool = False
    mission: Optional[dict[str, Any]] = None
