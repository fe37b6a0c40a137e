from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from quiz.logic.enums import Role
from quiz.session.models import RoleCounts, SessionConnections

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()


class ConnectionStore:
    """In-memory bookkeeping of which connections are in which session, per role.

    A connection belongs to at most one session at a time. Sessions are
    created on the first touch, dropped as soon as their last connection is
    removed, and evicted by evict_idle() once untouched for longer than the
    idle timeout.
    """

    def __init__(
        self,
        *,
        idle_timeout_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._idle_timeout = idle_timeout_seconds
        self._clock = clock
        self._sessions: dict[str, SessionConnections] = {}
        self._by_connection: dict[str, str] = {}  # connection_id -> session_code

    def touch(
        self,
        session_code: str,
        role: Role | str,
        connection_id: str,
        display_name: str | None = None,
    ) -> None:
        """Add or refresh a connection under a role bucket and mark the session active.

        Unknown roles are counted as audience.
        """
        previous = self._by_connection.get(connection_id)
        if previous is not None and previous != session_code:
            self.remove(connection_id)

        now = self._clock()
        session = self._sessions.get(session_code)
        if session is None:
            session = SessionConnections(session_code=session_code, last_activity=now)
            self._sessions[session_code] = session
        session.last_activity = now

        # A connection holds a single role within its session.
        session.discard(connection_id)
        if role == Role.PERFORMER:
            session.performers.add(connection_id)
        elif role == Role.PROJECTOR:
            session.projectors.add(connection_id)
        elif role == Role.ENGINE:
            session.engines.add(connection_id)
        else:
            session.audiences[connection_id] = display_name or connection_id
        self._by_connection[connection_id] = session_code

    def remove(self, connection_id: str) -> str | None:
        """Remove a connection from whichever session holds it. Return that session code."""
        session_code = self._by_connection.pop(connection_id, None)
        if session_code is None:
            return None
        session = self._sessions.get(session_code)
        if session is None:
            return session_code
        session.discard(connection_id)
        session.last_activity = self._clock()
        if session.is_empty:
            del self._sessions[session_code]
            logger.info("session has no connections, dropped", session=session_code)
        return session_code

    def session_of(self, connection_id: str) -> str | None:
        return self._by_connection.get(connection_id)

    def has_session(self, session_code: str) -> bool:
        return session_code in self._sessions

    def sessions(self) -> list[str]:
        return list(self._sessions)

    def audience_names(self, session_code: str) -> dict[str, str]:
        session = self._sessions.get(session_code)
        return dict(session.audiences) if session is not None else {}

    def get_counts(self, session_code: str) -> RoleCounts:
        session = self._sessions.get(session_code)
        if session is None:
            return RoleCounts()
        return session.counts()

    def get_aggregate_counts(self) -> RoleCounts:
        total = RoleCounts()
        for session in self._sessions.values():
            total += session.counts()
        return total

    def clear(self, session_code: str) -> None:
        session = self._sessions.pop(session_code, None)
        if session is None:
            return
        self._forget_connections(session)

    def evict_idle(self, now: float | None = None) -> list[str]:
        """Evict every session whose last activity is older than the idle timeout."""
        if now is None:
            now = self._clock()
        expired = [
            code for code, session in self._sessions.items() if now - session.last_activity > self._idle_timeout
        ]
        for code in expired:
            session = self._sessions.pop(code)
            self._forget_connections(session)
            logger.info("idle session evicted", session=code, idle_seconds=round(now - session.last_activity, 1))
        return expired

    def _forget_connections(self, session: SessionConnections) -> None:
        for connection_id in [*session.performers, *session.projectors, *session.engines, *session.audiences]:
            if self._by_connection.get(connection_id) == session.session_code:
                del self._by_connection[connection_id]
