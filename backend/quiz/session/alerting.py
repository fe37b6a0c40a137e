"""Warn when a live session has been without its engine or projector for too long."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

import structlog

from quiz.logic.enums import Role

if TYPE_CHECKING:
    from collections.abc import Callable

    from quiz.session.connection_store import ConnectionStore
    from quiz.session.state_store import GameStateStore

logger = structlog.get_logger()

_CHECK_INTERVAL = 5  # seconds between checks

CRITICAL_ROLES = (Role.ENGINE, Role.PROJECTOR)


class CriticalRoleMonitor:
    """Track how long each session has lacked a critical role.

    A warning is logged once per (session, role) when the role has been
    missing for at least threshold_seconds, and re-armed when the role
    reconnects. Only sessions with game state are watched.
    """

    def __init__(
        self,
        *,
        states: GameStateStore,
        connections: ConnectionStore,
        threshold_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._states = states
        self._connections = connections
        self._threshold = threshold_seconds
        self._clock = clock
        self._missing_since: dict[tuple[str, Role], float] = {}
        self._alerted: set[tuple[str, Role]] = set()
        self._task: asyncio.Task[None] | None = None

    def check(self, now: float | None = None) -> list[tuple[str, Role]]:
        """Run one check. Return the (session, role) pairs alerted on this call."""
        if now is None:
            now = self._clock()
        live_sessions = set(self._states.sessions())
        fired: list[tuple[str, Role]] = []

        for session_code in live_sessions:
            counts = self._connections.get_counts(session_code)
            present = {Role.ENGINE: counts.engine > 0, Role.PROJECTOR: counts.projector > 0}
            for role in CRITICAL_ROLES:
                key = (session_code, role)
                if present[role]:
                    self._missing_since.pop(key, None)
                    self._alerted.discard(key)
                    continue
                since = self._missing_since.setdefault(key, now)
                if key not in self._alerted and now - since >= self._threshold:
                    self._alerted.add(key)
                    fired.append(key)
                    logger.warning(
                        "critical role missing",
                        session=session_code,
                        role=role,
                        missing_seconds=round(now - since, 1),
                    )

        for key in [k for k in self._missing_since if k[0] not in live_sessions]:
            self._missing_since.pop(key, None)
            self._alerted.discard(key)
        return fired

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(_CHECK_INTERVAL)
            try:
                self.check()
            except Exception:
                logger.exception("critical role monitor encountered an error")
