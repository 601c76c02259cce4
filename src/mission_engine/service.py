from __future__ import annotations

import asyncio
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from .core.commands import CommandEngine, KeywordEscalation, WorkhorseOnly
from .core.config import MissionControlConfig, RouterConfig
from .core.errors import MissionEngineError, NotReady, StorageUnavailable
from .core.logbuffer import LogBuffer
from .core.normalize import utcnow
from .core.ports import ScenarioGeneratorPort
from .core.preflight import PreflightMonitor
from .core.router import ProviderRouter
from .core.scheduler import SessionScheduler
from .core.tasks import PeriodicTask
from .core.types import PlayerView, Role
from .persistence.gateway import StorageGateway

logger = logging.getLogger(__name__)


def _cosine_distance(a: list[float], b: list[float]) -> Optional[float]:
    if not a or len(a) != len(b):
        return None
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return None
    return 1.0 - dot / (norm_a * norm_b)


class MissionControl:
    """Wires the router, preflight monitor, scheduler and command engine together.

    This is the surface the transport layer calls: mission control operations
    for operators and gameplay operations for authenticated players.
    """

    def __init__(
        self,
        storage: StorageGateway,
        router: ProviderRouter | None = None,
        *,
        config: MissionControlConfig | None = None,
        base_settings: Mapping[str, object] | None = None,
        scenario_generator: ScenarioGeneratorPort | None = None,
        clock: Callable[[], datetime] | None = None,
        log_buffer: LogBuffer | None = None,
    ):
        self.config = config or MissionControlConfig()
        self._storage = storage
        self._base_settings = dict(base_settings or {})
        self._clock = clock or utcnow
        self._scenario_generator = scenario_generator
        self.router = router or ProviderRouter(RouterConfig.from_mapping(self._base_settings))
        self.monitor = PreflightMonitor(storage, self.router, clock=self._clock)
        self.scheduler = SessionScheduler(
            storage,
            self.monitor.snapshot,
            clock=self._clock,
            default_duration_minutes=self.config.default_duration_minutes,
        )
        self.commands = CommandEngine(
            storage,
            self.router,
            escalation=self._escalation_for(self.router.config),
            mission_status=lambda: self.scheduler.current_status().as_dict(),
        )
        self.log_buffer = log_buffer or LogBuffer(capacity=self.config.log_buffer_size)
        self._view_cache: dict[int, PlayerView] = {}
        self._log_writer: ThreadPoolExecutor | None = None
        self._tick_task = PeriodicTask("mission-tick", self.config.tick_interval_seconds, self._tick)
        self._preflight_task = PeriodicTask(
            "preflight",
            self.config.preflight_interval_seconds,
            self.monitor.run_once,
            run_immediately=False,
        )

    @staticmethod
    def _escalation_for(config: RouterConfig):
        if config.escalation_keywords:
            return KeywordEscalation(config.escalation_keywords)
        return WorkhorseOnly()

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        package_logger = logging.getLogger("mission_engine")
        if self.log_buffer not in package_logger.handlers:
            package_logger.addHandler(self.log_buffer)
        if package_logger.getEffectiveLevel() > self.log_buffer.level:
            package_logger.setLevel(self.log_buffer.level)
        if self._log_writer is None:
            self._log_writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mission-log")
        self.log_buffer.set_sink(self._persist_log)

        await self.reload_config()
        await self.monitor.run_once()
        self._tick_task.start()
        self._preflight_task.start()
        logger.info("Mission engine online")

    async def stop(self) -> None:
        await self._tick_task.stop()
        await self._preflight_task.stop()
        self.log_buffer.set_sink(None)
        logging.getLogger("mission_engine").removeHandler(self.log_buffer)
        writer, self._log_writer = self._log_writer, None
        if writer is not None:
            await asyncio.to_thread(writer.shutdown, wait=True)

    async def _tick(self):
        return await asyncio.to_thread(self.scheduler.tick)

    def _persist_log(self, level: str, message: str) -> None:
        # Called on the logging thread; the write is queued to the writer thread.
        writer = self._log_writer
        if writer is None:
            return
        try:
            writer.submit(self._write_log, level, message)
        except RuntimeError:
            return

    def _write_log(self, level: str, message: str) -> None:
        try:
            self._storage.append_log(level, message)
        except StorageUnavailable:
            return

    # -- configuration -------------------------------------------------------

    async def reload_config(self) -> RouterConfig:
        try:
            stored = await asyncio.to_thread(self._storage.load_config)
        except StorageUnavailable as exc:
            logger.warning("Stored configuration unavailable, using base settings: %s", exc)
            stored = {}
        merged: dict[str, object] = dict(self._base_settings)
        merged.update(stored)
        config = self.router.update_config(merged)
        self.commands.set_escalation(self._escalation_for(config))
        return config

    async def save_config(self, values: Mapping[str, object]) -> RouterConfig:
        await asyncio.to_thread(self._storage.save_config, dict(values))
        return await self.reload_config()

    # -- mission control surface ---------------------------------------------

    def schedule_mission(
        self,
        world_id: int | str | None,
        start_time: datetime | str | None = None,
        duration_minutes: float | int | None = None,
    ) -> dict[str, Any]:
        mission = self.scheduler.schedule(world_id, start_time, duration_minutes)
        return {"success": True, "message": "Mission Scheduled", "mission": mission.as_dict()}

    def abort_mission(self) -> dict[str, Any]:
        mission = self.scheduler.abort()
        return {"success": True, "message": "Mission Aborted", "mission": mission.as_dict()}

    def mission_status(self) -> dict[str, Any]:
        out = self.scheduler.current_status().as_dict()
        health = self.monitor.snapshot()
        out["health"] = health.as_dict() if health is not None else None
        return out

    def system_status(self) -> dict[str, Any]:
        health = self.monitor.snapshot()
        config = self.router.config
        roles: dict[str, Any] = {}
        for role in (Role.DIRECTOR, Role.WORKHORSE):
            target = config.target_for(role)
            roles[role.value] = {
                "provider": target.provider,
                "model": target.model,
                "up": bool(health and health.role_up.get(role.value)),
                "error": health.role_errors.get(role.value) if health else None,
            }
        return {
            "mode": self.monitor.mode.value,
            "storage_up": bool(health and health.storage_up),
            "roles": roles,
            "last_checked_at": health.last_checked_at.isoformat() if health else None,
        }

    async def verify_role(self, role: Role | str):
        return await self.router.verify(role)

    async def list_models(self, provider: str, credential: str | None = None, endpoint: str | None = None) -> list[str]:
        return await self.router.list_models(provider, credential, endpoint)

    def recent_logs(self, limit: int | None = None) -> list[dict[str, Any]]:
        return self.log_buffer.recent(limit)

    async def list_worlds(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._storage.list_worlds)

    async def generate_world(self, prompt: str, player_count: int = 5) -> int:
        if self._scenario_generator is None:
            raise NotReady("No scenario generator configured")
        document = await self._scenario_generator.generate(prompt, player_count)
        return await asyncio.to_thread(self._storage.ingest_world, document)

    # -- gameplay surface ----------------------------------------------------

    async def login(self, name: str) -> int:
        return await asyncio.to_thread(self._storage.find_or_create_player, name)

    async def fetch_state(self, player_id: int) -> dict[str, Any]:
        mission = self.scheduler.current_status().as_dict()
        try:
            view = await asyncio.to_thread(self._storage.read_player_view, player_id)
        except StorageUnavailable as exc:
            logger.warning("State read failed for player %s, serving cached view: %s", player_id, exc)
            view = self._view_cache.get(player_id)
            if view is None:
                return {"error": "World state temporarily unavailable", "degraded": True, "mission": mission}
            return self._render_state(view, mission, degraded=True)

        if view is None:
            return {"error": "No active session or character found", "mission": mission}
        self._view_cache[player_id] = view
        return self._render_state(view, mission)

    def _render_state(self, view: PlayerView, mission: dict[str, Any], degraded: bool = False) -> dict[str, Any]:
        room = asdict(view.room)
        return {
            "room": {
                "room_id": room["room_id"],
                "name": room["name"],
                "description": room["description"],
                "is_dark": room["is_dark"],
                "items": room["items"],
                "exits": room["exits"],
            },
            "status": {
                "character_name": view.character_name,
                "health": view.health,
                "clock": self._clock().strftime("%H:%M"),
            },
            "mission": mission,
            "degraded": degraded,
        }

    async def submit_command(self, player_id: int, command: str) -> dict[str, Any]:
        if not (command or "").strip():
            raise ValueError("Command is required")
        result = await self.commands.process(player_id, command)
        if result.new_room_id is not None:
            self._view_cache.pop(player_id, None)
        return {
            "message": result.message,
            "new_room_id": result.new_room_id,
            "action": result.action,
            "degraded": result.degraded,
            "mission": result.mission,
        }

    async def semantic_facts(self, session_id: int, query: str, top_k: int = 5) -> list[dict[str, Any]]:
        try:
            embedding = await self.router.embed(query)
        except MissionEngineError as exc:
            logger.warning("Embedding failed: %s", exc)
            return []
        if not embedding:
            return []
        try:
            facts = await asyncio.to_thread(self._storage.list_facts, session_id)
        except StorageUnavailable as exc:
            logger.warning("Fact lookup failed: %s", exc)
            return []

        ranked: list[dict[str, Any]] = []
        for fact in facts:
            distance = _cosine_distance(embedding, fact["vector"])
            if distance is None:
                continue
            ranked.append({"attribute": fact["attribute"], "value": fact["value"], "distance": distance})
        ranked.sort(key=lambda f: f["distance"])
        return ranked[: max(int(top_k), 0)]
