from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from .normalize import utcnow
from .ports import StorageProbePort, TextGenerationPort
from .types import HealthStatus, Role, SystemMode, VerifyResult

logger = logging.getLogger(__name__)


class PreflightMonitor:
    """Samples storage and provider health and publishes the system mode.

    Only ``run_once`` writes the snapshot; readers get the last complete
    ``HealthStatus`` (or ``None`` before the first cycle finishes).
    """

    def __init__(
        self,
        storage: StorageProbePort,
        router: TextGenerationPort,
        clock: Callable[[], datetime] | None = None,
        roles: Sequence[Role] = (Role.WORKHORSE, Role.DIRECTOR),
    ):
        self._storage = storage
        self._router = router
        self._clock = clock or utcnow
        self._roles = tuple(roles)
        self._snapshot: Optional[HealthStatus] = None

    def snapshot(self) -> Optional[HealthStatus]:
        return self._snapshot

    @property
    def mode(self) -> SystemMode:
        snap = self._snapshot
        return snap.mode if snap is not None else SystemMode.DEGRADED

    async def run_once(self) -> HealthStatus:
        storage_up, *results = await asyncio.gather(
            self._probe_storage(),
            *(self._verify_role(role) for role in self._roles),
        )
        role_up: dict[str, bool] = {}
        role_errors: dict[str, str] = {}
        for role, result in zip(self._roles, results):
            role_up[role.value] = result.ok
            if not result.ok:
                role_errors[role.value] = result.cause or "unreachable"

        previous = self._snapshot
        snapshot = HealthStatus(
            storage_up=storage_up,
            role_up=role_up,
            role_errors=role_errors,
            last_checked_at=self._clock(),
        )
        self._snapshot = snapshot
        self._log_transitions(previous, snapshot)
        return snapshot

    async def _probe_storage(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self._storage.ping))
        except Exception as exc:
            logger.debug("Storage probe failed: %s", exc)
            return False

    async def _verify_role(self, role: Role) -> VerifyResult:
        try:
            return await self._router.verify(role)
        except Exception as exc:
            return VerifyResult(ok=False, cause=str(exc))

    def _log_transitions(self, previous: Optional[HealthStatus], current: HealthStatus) -> None:
        for role, up in current.role_up.items():
            was_up = previous.role_up.get(role) if previous is not None else None
            if was_up == up:
                continue
            if up:
                logger.info("AI %s: ONLINE", role)
            else:
                logger.warning("AI %s: OFFLINE - %s", role, current.role_errors.get(role, "unreachable"))

        if previous is None or previous.mode != current.mode:
            if current.mode == SystemMode.ONLINE:
                logger.info("System status change: %s", current.mode.value)
            else:
                logger.warning(
                    "System status change: %s (storage_up=%s workhorse_up=%s)",
                    current.mode.value,
                    current.storage_up,
                    current.role_up.get(Role.WORKHORSE.value, False),
                )
