"""Per-session orchestration of the command pipeline.

Each session has one asyncio.Lock (its lane). A command runs
register -> read -> guard -> plan -> reduce -> store -> broadcast while
holding the lane, so commands of one session are applied and broadcast in
the order the idempotency store accepted them. Registration, reduction and
storing happen with no await in between: once a command id is registered
its effect is stored before the task can be cancelled, and a retry is
answered as a duplicate.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from quiz.logic.enums import ReasonCode
from quiz.logic.phase_guard import (
    CommandRejection,
    ensure_allowed,
    ensure_change_allowed,
    ensure_role,
    is_ignored,
)
from quiz.logic.planner import plan_events
from quiz.logic.reducer import reduce, reduce_all
from quiz.messaging.types import EventMessage, StateMessage
from quiz.session.broadcast import broadcast_to_subscribers

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from quiz.logic.commands import Command
    from quiz.logic.events import Event
    from quiz.logic.state import GameStateSnapshot
    from quiz.session.connection_store import ConnectionStore
    from quiz.session.idempotency import IdempotencyStore
    from quiz.session.state_store import GameStateStore
    from quiz.session.subscribers import SubscriberRegistry

logger = structlog.get_logger()


class CommandStatus(StrEnum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CommandOutcome:
    status: CommandStatus
    command_id: str
    rejection: CommandRejection | None = None
    events: tuple[Event, ...] = ()
    snapshot: GameStateSnapshot | None = None
    version: int = 0
    correlation_id: str | None = None


@dataclass
class _Lane:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_used: float = 0.0
    # holders plus queued waiters
    users: int = 0


class SessionOrchestrator:
    def __init__(
        self,
        *,
        idempotency: IdempotencyStore,
        states: GameStateStore,
        connections: ConnectionStore,
        subscribers: SubscriberRegistry,
        idle_timeout_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        utc_now: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
    ) -> None:
        self._idempotency = idempotency
        self._states = states
        self._connections = connections
        self._subscribers = subscribers
        self._idle_timeout = idle_timeout_seconds
        self._clock = clock
        self._utc_now = utc_now
        self._lanes: dict[str, _Lane] = {}

    @property
    def states(self) -> GameStateStore:
        return self._states

    @property
    def connections(self) -> ConnectionStore:
        return self._connections

    @property
    def subscribers(self) -> SubscriberRegistry:
        return self._subscribers

    @property
    def lane_count(self) -> int:
        return len(self._lanes)

    def _lane(self, session_code: str) -> _Lane:
        lane = self._lanes.get(session_code)
        if lane is None:
            lane = _Lane(last_used=self._clock())
            self._lanes[session_code] = lane
        return lane

    @contextlib.asynccontextmanager
    async def _hold(self, session_code: str) -> AsyncIterator[None]:
        lane = self._lane(session_code)
        lane.users += 1
        try:
            async with lane.lock:
                lane.last_used = self._clock()
                yield
        finally:
            lane.users -= 1

    async def submit(self, command: Command, correlation_id: str | None = None) -> CommandOutcome:
        """Run a command through the pipeline and return its outcome. Never raises for rule violations."""
        session_code = command.session_code
        command_id = str(command.command_id)
        correlation_id = correlation_id or command_id
        structlog.contextvars.bind_contextvars(
            session=session_code,
            command=command.kind,
            command_id=command_id,
        )

        rejection = ensure_role(command)
        if rejection is not None:
            logger.warning("command rejected", reason=rejection.reason, detail=rejection.detail)
            return CommandOutcome(
                status=CommandStatus.REJECTED,
                command_id=command_id,
                rejection=rejection,
                correlation_id=correlation_id,
            )

        async with self._hold(session_code):
            if not self._idempotency.try_register(session_code, command_id):
                logger.info("duplicate command, not re-applied")
                return CommandOutcome(
                    status=CommandStatus.DUPLICATE,
                    command_id=command_id,
                    correlation_id=correlation_id,
                )

            state = self._states.get_or_initial(session_code)

            if is_ignored(state.phase, command):
                logger.debug("command has no effect in current phase", phase=state.phase)
                return CommandOutcome(
                    status=CommandStatus.IGNORED,
                    command_id=command_id,
                    snapshot=state,
                    version=self._states.version(session_code),
                    correlation_id=correlation_id,
                )

            rejection = ensure_allowed(state.phase, command) or ensure_change_allowed(state.phase, command)
            if rejection is not None:
                logger.warning("command rejected", reason=rejection.reason, detail=rejection.detail)
                return CommandOutcome(
                    status=CommandStatus.REJECTED,
                    command_id=command_id,
                    rejection=rejection,
                    correlation_id=correlation_id,
                )

            events = plan_events(state, command, correlation_id=correlation_id, now=self._utc_now())
            new_state, error = reduce_all(state, events)
            if error is not None:
                logger.warning("reducer rejected event", error=error)
                return CommandOutcome(
                    status=CommandStatus.REJECTED,
                    command_id=command_id,
                    rejection=CommandRejection(reason=ReasonCode.PHASE_MISMATCH, detail=error),
                    correlation_id=correlation_id,
                )

            if new_state == state:
                # e.g. an answer for a choice the current round does not offer
                logger.debug("command left state unchanged", phase=state.phase)
                return CommandOutcome(
                    status=CommandStatus.IGNORED,
                    command_id=command_id,
                    snapshot=state,
                    version=self._states.version(session_code),
                    correlation_id=correlation_id,
                )

            version = self._states.set(new_state)
            logger.info("command applied", phase=new_state.phase, events=len(events), version=version)

            await self._broadcast(session_code, events, new_state, version)

        return CommandOutcome(
            status=CommandStatus.ACCEPTED,
            command_id=command_id,
            events=tuple(events),
            snapshot=new_state,
            version=version,
            correlation_id=correlation_id,
        )

    async def inject_event(self, event: Event) -> str | None:
        """Apply a single externally built event to its session. Return the reducer error, if any."""
        session_code = event.session_code
        async with self._hold(session_code):
            state = self._states.get_or_initial(session_code)
            new_state, error = reduce(state, event)
            if error is not None:
                logger.warning("injected event rejected", session=session_code, error=error)
                return error
            version = self._states.set(new_state)
            await self._broadcast(session_code, [event], new_state, version)
        return None

    async def _broadcast(
        self,
        session_code: str,
        events: list[Event],
        snapshot: GameStateSnapshot,
        version: int,
    ) -> None:
        messages = [
            EventMessage(event=event.model_dump(mode="json", by_alias=True)).model_dump() for event in events
        ]
        messages.append(StateMessage(version=version, state=snapshot.to_public()).model_dump())
        subscribers = self._subscribers.for_session(session_code)
        reached = await broadcast_to_subscribers(subscribers, messages)
        if reached < len(subscribers):
            logger.warning("broadcast skipped failing subscribers", reached=reached, subscribers=len(subscribers))

    def reset(self, session_code: str) -> None:
        """Forget everything known about a session except its live subscribers."""
        self._states.remove(session_code)
        self._idempotency.clear(session_code)
        self._connections.clear(session_code)
        lane = self._lanes.get(session_code)
        if lane is not None and lane.users == 0:
            del self._lanes[session_code]
        logger.info("session reset", session=session_code)

    def evict_idle(self, now: float | None = None) -> list[str]:
        """Drop idle connection records, then the state of sessions nobody is connected to.

        A session's game state, idempotency record and lane are removed once it
        has no connection records, no live subscribers and no command has run
        for longer than the idle timeout. Lanes that are held or awaited are skipped.
        """
        if now is None:
            now = self._clock()
        evicted = set(self._connections.evict_idle(now))

        for session_code, lane in list(self._lanes.items()):
            if self._connections.has_session(session_code) or self._subscribers.for_session(session_code):
                continue
            if lane.users or now - lane.last_used <= self._idle_timeout:
                continue
            del self._lanes[session_code]
            self._states.remove(session_code)
            self._idempotency.clear(session_code)
            evicted.add(session_code)
            logger.info("idle session state evicted", session=session_code)

        return sorted(evicted)
