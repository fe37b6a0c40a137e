from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from quiz.session.orchestrator import SessionOrchestrator

logger = structlog.get_logger()


class SessionReaper:
    """Periodically evict idle sessions through the orchestrator."""

    def __init__(self, orchestrator: SessionOrchestrator, *, interval_seconds: float) -> None:
        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep task. Idempotent."""
        if self.is_running:
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
            await asyncio.sleep(self._interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("session reaper encountered an error")

    def sweep(self, now: float | None = None) -> list[str]:
        evicted = self._orchestrator.evict_idle(now)
        if evicted:
            logger.info("idle sessions evicted", count=len(evicted), sessions=evicted)
        return evicted
