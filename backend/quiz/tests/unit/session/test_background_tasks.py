"""Tests for the idle-session reaper and the critical-role monitor."""

import asyncio
import logging
from unittest.mock import patch

import pytest

from quiz.logic.enums import CommandKind, Role
from quiz.session.alerting import CriticalRoleMonitor
from quiz.session.reaper import SessionReaper
from quiz.tests.helpers.builders import make_command


@pytest.fixture
def reaper(orchestrator):
    return SessionReaper(orchestrator, interval_seconds=30)


@pytest.fixture
def monitor(orchestrator, clock):
    return CriticalRoleMonitor(
        states=orchestrator.states,
        connections=orchestrator.connections,
        threshold_seconds=30,
        clock=clock,
    )


class TestSessionReaper:
    async def test_sweep_evicts_idle_sessions(self, reaper, orchestrator, clock):
        orchestrator.connections.touch("s1", Role.AUDIENCE, "a1")
        clock.advance(901)
        assert reaper.sweep() == ["s1"]
        assert orchestrator.connections.get_counts("s1").audience == 0

    async def test_start_is_idempotent(self, reaper):
        reaper.start()
        first = reaper._task
        reaper.start()
        assert reaper._task is first
        await reaper.stop()
        assert not reaper.is_running

    async def test_stop_without_start(self, reaper):
        await reaper.stop()
        assert not reaper.is_running

    async def test_loop_survives_errors(self, reaper, caplog):
        calls = 0

        def failing_sweep(now=None):  # noqa: ARG001
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return []

        with (
            patch("quiz.session.reaper.asyncio.sleep", side_effect=[None, None, asyncio.CancelledError()]),
            patch.object(reaper, "sweep", side_effect=failing_sweep),
            caplog.at_level(logging.ERROR),
            pytest.raises(asyncio.CancelledError),
        ):
            await reaper._loop()

        assert calls == 2
        assert "session reaper encountered an error" in caplog.text


class TestCriticalRoleMonitor:
    async def _create_session(self, orchestrator):
        await orchestrator.submit(make_command(CommandKind.CREATE_SESSION))

    async def test_alerts_after_threshold(self, monitor, orchestrator, clock, caplog):
        await self._create_session(orchestrator)
        assert monitor.check() == []

        clock.advance(30)
        with caplog.at_level(logging.WARNING):
            fired = monitor.check()

        assert set(fired) == {("s1", Role.ENGINE), ("s1", Role.PROJECTOR)}
        assert "critical role missing" in caplog.text

    async def test_alerts_once_until_role_returns(self, monitor, orchestrator, clock):
        await self._create_session(orchestrator)
        orchestrator.connections.touch("s1", Role.PROJECTOR, "proj")
        monitor.check()
        clock.advance(31)
        assert monitor.check() == [("s1", Role.ENGINE)]
        clock.advance(31)
        assert monitor.check() == []

        orchestrator.connections.touch("s1", Role.ENGINE, "eng")
        monitor.check()
        orchestrator.connections.remove("eng")
        monitor.check()
        clock.advance(31)
        assert monitor.check() == [("s1", Role.ENGINE)]

    async def test_sessions_without_state_are_not_watched(self, monitor, orchestrator, clock):
        orchestrator.connections.touch("s1", Role.AUDIENCE, "a1")
        monitor.check()
        clock.advance(60)
        assert monitor.check() == []

    async def test_start_and_stop(self, monitor):
        monitor.start()
        await monitor.stop()
        assert monitor._task is None
