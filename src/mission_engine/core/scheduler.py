from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from .errors import InvalidMissionRequest, MissionConflict, NotReady, NothingToAbort, StorageUnavailable
from .normalize import parse_timestamp, utcnow
from .ports import SessionRecordPort
from .types import HealthStatus, MissionSession, MissionStatus, SystemMode

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (MissionStatus.WAITING, MissionStatus.RUNNING)


def _remaining(target: Optional[datetime], now: datetime) -> int:
    if target is None:
        return 0
    return max(int(math.floor((target - now).total_seconds())), 0)


class SessionScheduler:
    """Single-mission lifecycle: IDLE -> WAITING -> RUNNING -> COMPLETED.

    The mission is held as an immutable ``MissionSession`` that is replaced by
    compare-and-set. ``abort`` always wins against a tick that is midway
    through a transition; the tick notices the lost swap and discards its
    result.
    """

    def __init__(
        self,
        records: SessionRecordPort,
        health: Callable[[], Optional[HealthStatus]],
        clock: Callable[[], datetime] | None = None,
        default_duration_minutes: int = 30,
    ):
        self._records = records
        self._health = health
        self._clock = clock or utcnow
        self._default_duration_minutes = default_duration_minutes
        self._state = MissionSession()
        self._lock = threading.Lock()
        # record_id -> ended_at for session rows whose close has not persisted yet
        self._unclosed: dict[int, datetime] = {}
        self._open_retry_generation: Optional[int] = None

    def current_status(self) -> MissionSession:
        return self._state

    def _compare_and_set(self, expected: MissionSession, new: MissionSession) -> bool:
        with self._lock:
            if self._state is not expected:
                return False
            self._state = new
            return True

    def schedule(
        self,
        world_id: int | str | None,
        start_time: datetime | str | None = None,
        duration_minutes: float | int | None = None,
    ) -> MissionSession:
        now = self._clock()
        with self._lock:
            current = self._state
            if current.status in ACTIVE_STATUSES:
                raise MissionConflict("Mission already in progress. Abort current mission first.")

            health = self._health()
            if health is None or health.mode != SystemMode.ONLINE:
                raise NotReady("System pre-flight checks failed. Cannot start mission.")

            world = self._coerce_world_id(world_id)
            duration = self._coerce_duration(duration_minutes)
            try:
                start = parse_timestamp(start_time) or now
            except ValueError as exc:
                raise InvalidMissionRequest(f"Invalid start time: {start_time!r}") from exc
            try:
                end = start + timedelta(minutes=duration)
            except OverflowError as exc:
                raise InvalidMissionRequest(f"Duration too long: {duration_minutes!r}") from exc
            if end <= start:
                raise InvalidMissionRequest(f"Duration too short: {duration_minutes!r}")

            new = MissionSession(
                status=MissionStatus.WAITING,
                world_id=world,
                scheduled_start=start,
                scheduled_end=end,
                remaining_seconds=_remaining(start, now),
                session_record_id=None,
                generation=current.generation + 1,
            )
            self._state = new
            self._open_retry_generation = None

        logger.info("Mission scheduled: world %s at %s for %s minutes", world, start.isoformat(), duration)
        return new

    def abort(self) -> MissionSession:
        while True:
            current = self._state
            if current.status not in ACTIVE_STATUSES:
                raise NothingToAbort("No active mission to abort.")
            new = replace(current, status=MissionStatus.COMPLETED, remaining_seconds=0)
            if self._compare_and_set(current, new):
                break

        self._open_retry_generation = None
        if current.session_record_id is not None:
            self._close_record(current.session_record_id, self._clock())
        logger.warning("Mission aborted by operator: world %s", current.world_id)
        return new

    def tick(self) -> MissionSession:
        now = self._clock()
        self._retry_unclosed()
        current = self._state

        if current.status == MissionStatus.WAITING and current.scheduled_start and now >= current.scheduled_start:
            self._activate(current, now)
        elif current.status == MissionStatus.RUNNING and current.scheduled_end and now >= current.scheduled_end:
            self._complete(current, now)
        elif current.status == MissionStatus.RUNNING and self._needs_open_retry(current):
            record_id = self._open_record(current.world_id, now)
            new = replace(
                current,
                session_record_id=record_id,
                remaining_seconds=_remaining(current.scheduled_end, now),
            )
            if not self._compare_and_set(current, new):
                if record_id is not None:
                    self._close_record(record_id, now)
            elif record_id is not None:
                self._open_retry_generation = None
                logger.info("Session %s started (retry)", record_id)
        elif current.status in ACTIVE_STATUSES:
            target = current.scheduled_start if current.status == MissionStatus.WAITING else current.scheduled_end
            remaining = _remaining(target, now)
            if remaining != current.remaining_seconds:
                self._compare_and_set(current, replace(current, remaining_seconds=remaining))

        return self._state

    def _activate(self, current: MissionSession, now: datetime) -> None:
        logger.info("Activating mission: world %s", current.world_id)
        record_id = self._open_record(current.world_id, now)
        new = replace(
            current,
            status=MissionStatus.RUNNING,
            session_record_id=record_id,
            remaining_seconds=_remaining(current.scheduled_end, now),
        )
        if not self._compare_and_set(current, new):
            # Aborted while the record was being opened.
            if record_id is not None:
                self._close_record(record_id, now)
            return
        if record_id is None:
            self._open_retry_generation = current.generation
        else:
            logger.info("Session %s started", record_id)

    def _complete(self, current: MissionSession, now: datetime) -> None:
        new = replace(current, status=MissionStatus.COMPLETED, remaining_seconds=0)
        if not self._compare_and_set(current, new):
            return
        self._open_retry_generation = None
        if current.session_record_id is not None:
            self._close_record(current.session_record_id, now)
        logger.info("Session %s completed", current.session_record_id if current.session_record_id is not None else "?")

    def _needs_open_retry(self, current: MissionSession) -> bool:
        return current.session_record_id is None and self._open_retry_generation == current.generation

    def _open_record(self, world_id: Optional[int], now: datetime) -> Optional[int]:
        try:
            return int(self._records.open_session(int(world_id), now))
        except StorageUnavailable as exc:
            logger.error("Session start failed: %s", exc)
        except Exception:
            logger.exception("Session start failed: world=%s", world_id)
        return None

    def _close_record(self, record_id: int, ended_at: datetime) -> bool:
        try:
            self._records.close_session(record_id, ended_at)
        except StorageUnavailable as exc:
            logger.error("Session %s end failed: %s", record_id, exc)
        except Exception:
            logger.exception("Session %s end failed", record_id)
        else:
            with self._lock:
                self._unclosed.pop(record_id, None)
            return True
        with self._lock:
            self._unclosed.setdefault(record_id, ended_at)
        return False

    def _retry_unclosed(self) -> None:
        with self._lock:
            pending = list(self._unclosed.items())
        for record_id, ended_at in pending:
            if self._close_record(record_id, ended_at):
                logger.info("Session %s end persisted on retry", record_id)

    def pending_closes(self) -> list[int]:
        with self._lock:
            return sorted(self._unclosed)

    def _coerce_world_id(self, world_id: int | str | None) -> int:
        if world_id is None or isinstance(world_id, bool) or str(world_id).strip() == "":
            raise InvalidMissionRequest("World ID required")
        try:
            return int(world_id)
        except (TypeError, ValueError) as exc:
            raise InvalidMissionRequest(f"Invalid world ID: {world_id!r}") from exc

    def _coerce_duration(self, duration_minutes: float | int | None) -> float:
        if duration_minutes is None:
            return float(self._default_duration_minutes)
        try:
            duration = float(duration_minutes)
        except (TypeError, ValueError) as exc:
            raise InvalidMissionRequest(f"Invalid duration: {duration_minutes!r}") from exc
        if not math.isfinite(duration) or duration <= 0:
            raise InvalidMissionRequest("Duration must be a positive number of minutes")
        return duration
