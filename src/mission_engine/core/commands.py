from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Optional, Sequence

from .errors import MissionEngineError, StorageUnavailable
from .normalize import canonical_direction, normalize_command
from .ports import EscalationPolicy, RoomGraphPort, TextGenerationPort
from .types import Classification, CommandResult, Role

logger = logging.getLogger(__name__)

NARRATOR_PERSONA = (
    "You are the narrator of a multiplayer text adventure. Describe the outcome of the "
    "player's action in the second person, in two to four vivid sentences. Stay inside the "
    "fiction, never mention game mechanics, and do not decide actions for the player."
)

BLOCKED_MESSAGE = "You can't go that way."
NARRATOR_UNREACHABLE_MESSAGE = "The narrator is unreachable. Your words echo into static; try again shortly."
STORAGE_UNAVAILABLE_MESSAGE = "The world flickers and holds still. Nothing moves for now."


class WorkhorseOnly:
    def choose_role(self, command: str) -> Role:
        return Role.WORKHORSE


class KeywordEscalation:
    """Escalates to the director when a command mentions any configured keyword."""

    def __init__(self, keywords: Sequence[str]):
        self.keywords = tuple(k.strip().lower() for k in keywords if k and k.strip())

    def choose_role(self, command: str) -> Role:
        lowered = " ".join((command or "").lower().split())
        words = set(re.findall(r"[a-z0-9']+", lowered))
        for keyword in self.keywords:
            if (" " in keyword and keyword in lowered) or keyword in words:
                return Role.DIRECTOR
        return Role.WORKHORSE


def classify(raw_command: str | None) -> Classification:
    normalized = normalize_command(raw_command)
    direction = canonical_direction(normalized)
    if direction is not None:
        return Classification(kind="move", direction=direction, normalized=normalized)
    return Classification(kind="narrative", normalized=normalized)


class CommandEngine:
    def __init__(
        self,
        rooms: RoomGraphPort,
        generator: TextGenerationPort,
        escalation: EscalationPolicy | None = None,
        mission_status: Callable[[], Optional[dict[str, Any]]] | None = None,
        narrator_persona: str = NARRATOR_PERSONA,
    ):
        self._rooms = rooms
        self._generator = generator
        self._escalation = escalation or WorkhorseOnly()
        self._mission_status = mission_status
        self._narrator_persona = narrator_persona

    def set_escalation(self, escalation: EscalationPolicy) -> None:
        self._escalation = escalation

    async def process(self, player_id: int, raw_command: str) -> CommandResult:
        classification = classify(raw_command)
        if classification.is_movement:
            result = await self._move(player_id, classification.direction or "")
        else:
            result = await self._narrate(raw_command)
        if self._mission_status is not None:
            result.mission = self._mission_status()
        return result

    async def _move(self, player_id: int, direction: str) -> CommandResult:
        try:
            exit_view = await asyncio.to_thread(self._rooms.find_exit, player_id, direction)
            if exit_view is None:
                return CommandResult(message=BLOCKED_MESSAGE, action="blocked")
            await asyncio.to_thread(self._rooms.move_player, player_id, exit_view.destination_room_id)
        except StorageUnavailable as exc:
            logger.warning("Movement dropped for player %s (%s): %s", player_id, direction, exc)
            return CommandResult(message=STORAGE_UNAVAILABLE_MESSAGE, action="move", degraded=True)

        message = (exit_view.description or "").strip() or f"You move {direction.lower()}."
        return CommandResult(message=message, new_room_id=exit_view.destination_room_id, action="move")

    async def _narrate(self, raw_command: str) -> CommandResult:
        command = (raw_command or "").strip()
        role = self._escalation.choose_role(command)
        try:
            text = await self._generator.generate(role, command, self._narrator_persona)
        except MissionEngineError as exc:
            logger.warning("Narration failed for role=%s: %s", getattr(role, "value", role), exc)
            return CommandResult(message=NARRATOR_UNREACHABLE_MESSAGE, action="narrative", degraded=True)
        return CommandResult(message=(text or "").strip(), action="narrative")
