from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from .types import ExitView, PlayerView, Role, VerifyResult


@dataclass
class HttpResponse:
    status: int
    body: Any = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
        timeout: float,
    ) -> HttpResponse:
        ...


class TextGenerationPort(Protocol):
    async def generate(self, role: Role | str, prompt: str, system_instruction: str = "") -> str:
        ...

    async def verify(self, role: Role | str) -> VerifyResult:
        ...


class StorageProbePort(Protocol):
    def ping(self) -> bool:
        ...


class SessionRecordPort(Protocol):
    def open_session(self, world_id: int, started_at: datetime) -> int:
        ...

    def close_session(self, record_id: int, ended_at: datetime) -> bool:
        ...


class RoomGraphPort(Protocol):
    def read_player_view(self, player_id: int) -> PlayerView | None:
        ...

    def find_exit(self, player_id: int, direction: str) -> ExitView | None:
        ...

    def move_player(self, player_id: int, room_id: int) -> bool:
        ...


class EscalationPolicy(Protocol):
    def choose_role(self, command: str) -> Role:
        ...


class ScenarioGeneratorPort(Protocol):
    async def generate(self, prompt: str, player_count: int = 5) -> dict[str, Any]:
        ...

