from __future__ import annotations

import asyncio
import logging

import pytest

from mission_engine.core.config import RouterConfig
from mission_engine.core.errors import NotReady
from mission_engine.core.preflight import PreflightMonitor
from mission_engine.core.ports import HttpResponse
from mission_engine.core.router import ProviderRouter
from mission_engine.core.scheduler import SessionScheduler
from mission_engine.core.types import Role, SystemMode, VerifyResult


class StubStorage:
    def __init__(self, up=True):
        self.up = up

    def ping(self):
        if isinstance(self.up, Exception):
            raise self.up
        return self.up


class StubRouter:
    def __init__(self, **up):
        self.up = {"workhorse": True, "director": True, **up}
        self.verified = []

    async def verify(self, role):
        self.verified.append(role)
        state = self.up[role.value]
        if isinstance(state, Exception):
            raise state
        if state:
            return VerifyResult(ok=True, message="Verified")
        return VerifyResult(ok=False, cause="connection refused")


def test_mode_is_degraded_before_first_check(clock):
    monitor = PreflightMonitor(StubStorage(), StubRouter(), clock=clock)
    assert monitor.snapshot() is None
    assert monitor.mode == SystemMode.DEGRADED


def test_online_requires_storage_and_workhorse(clock):
    async def run_test():
        router = StubRouter()
        monitor = PreflightMonitor(StubStorage(), router, clock=clock)
        snap = await monitor.run_once()
        assert snap.mode == SystemMode.ONLINE
        assert snap.last_checked_at == clock()
        assert set(router.verified) == {Role.WORKHORSE, Role.DIRECTOR}

        monitor = PreflightMonitor(StubStorage(False), StubRouter(), clock=clock)
        assert (await monitor.run_once()).mode == SystemMode.DEGRADED

        monitor = PreflightMonitor(StubStorage(), StubRouter(workhorse=False), clock=clock)
        snap = await monitor.run_once()
        assert snap.mode == SystemMode.DEGRADED
        assert snap.role_errors == {"workhorse": "connection refused"}

        monitor = PreflightMonitor(StubStorage(), StubRouter(director=False), clock=clock)
        snap = await monitor.run_once()
        assert snap.mode == SystemMode.ONLINE
        assert snap.role_up == {"workhorse": True, "director": False}

    asyncio.run(run_test())


def test_snapshot_maps_are_read_only(clock):
    async def run_test():
        monitor = PreflightMonitor(StubStorage(), StubRouter(director=False), clock=clock)
        snap = await monitor.run_once()

        with pytest.raises(TypeError):
            snap.role_up["workhorse"] = False
        with pytest.raises(TypeError):
            snap.role_errors["workhorse"] = "tampered"
        assert monitor.snapshot().mode == SystemMode.ONLINE
        assert snap.as_dict()["role_up"] == {"workhorse": True, "director": False}

    asyncio.run(run_test())


def test_check_exceptions_count_as_down(clock):
    async def run_test():
        monitor = PreflightMonitor(
            StubStorage(RuntimeError("socket closed")),
            StubRouter(workhorse=RuntimeError("boom")),
            clock=clock,
        )
        snap = await monitor.run_once()
        assert snap.storage_up is False
        assert snap.role_up["workhorse"] is False
        assert snap.role_errors["workhorse"] == "boom"

    asyncio.run(run_test())


def test_mode_change_is_logged_once_per_transition(clock, caplog):
    caplog.set_level(logging.INFO, logger="mission_engine")

    async def run_test():
        router = StubRouter()
        monitor = PreflightMonitor(StubStorage(), router, clock=clock)

        await monitor.run_once()
        await monitor.run_once()
        changes = [r for r in caplog.records if "System status change" in r.getMessage()]
        assert [r.getMessage() for r in changes] == ["System status change: ONLINE"]

        caplog.clear()
        router.up["workhorse"] = False
        await monitor.run_once()
        await monitor.run_once()
        messages = [r.getMessage() for r in caplog.records]
        assert messages.count("AI workhorse: OFFLINE - connection refused") == 1
        changes = [m for m in messages if "System status change" in m]
        assert len(changes) == 1
        assert changes[0].startswith("System status change: DEGRADED")

    asyncio.run(run_test())


def test_unreachable_workhorse_blocks_scheduling(clock, records, transport):
    async def run_test():
        # Nothing answers on the Ollama port.
        router = ProviderRouter(RouterConfig.from_mapping({"GEMINI_API_KEY": "g-key"}), transport=transport)
        transport.add(
            "generativelanguage",
            HttpResponse(status=200, body={"candidates": [{"content": {"parts": [{"text": "Verified"}]}}]}),
        )
        monitor = PreflightMonitor(StubStorage(), router, clock=clock)
        scheduler = SessionScheduler(records, monitor.snapshot, clock=clock)

        snap = await monitor.run_once()
        assert snap.mode == SystemMode.DEGRADED
        assert snap.role_up == {"workhorse": False, "director": True}
        assert "transport error" in snap.role_errors["workhorse"]

        with pytest.raises(NotReady):
            scheduler.schedule(42)

    asyncio.run(run_test())


def test_canary_request_goes_through_configured_workhorse(clock, transport):
    async def run_test():
        transport.add("/api/generate", HttpResponse(status=200, body={"response": "Verified"}))
        router = ProviderRouter(RouterConfig.from_mapping({"OLLAMA_URL": "http://gpu-box:11434"}), transport=transport)
        monitor = PreflightMonitor(StubStorage(), router, clock=clock, roles=(Role.WORKHORSE,))

        snap = await monitor.run_once()

        assert snap.mode == SystemMode.ONLINE
        assert transport.calls[0]["url"] == "http://gpu-box:11434/api/generate"
        assert 'Say "Verified"' in transport.calls[0]["payload"]["prompt"]

    asyncio.run(run_test())
