from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING

from quiz.logic.enums import Role

if TYPE_CHECKING:
    from quiz.messaging.protocol import ConnectionProtocol


@dataclass(frozen=True)
class RoleCounts:
    performer: int = 0
    projector: int = 0
    engine: int = 0
    audience: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "performer": self.performer,
            "projector": self.projector,
            "engine": self.engine,
            "audiences": self.audience,
        }

    def __add__(self, other: RoleCounts) -> RoleCounts:
        return RoleCounts(
            performer=self.performer + other.performer,
            projector=self.projector + other.projector,
            engine=self.engine + other.engine,
            audience=self.audience + other.audience,
        )


@dataclass
class SessionConnections:
    """Connections of one session, bucketed by role.

    Audience connections map to a display name; the other roles are plain sets.
    last_activity is a time.monotonic() timestamp refreshed on every touch.
    """

    session_code: str
    last_activity: float
    performers: set[str] = field(default_factory=set)
    projectors: set[str] = field(default_factory=set)
    engines: set[str] = field(default_factory=set)
    audiences: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.performers or self.projectors or self.engines or self.audiences)

    def discard(self, connection_id: str) -> None:
        self.performers.discard(connection_id)
        self.projectors.discard(connection_id)
        self.engines.discard(connection_id)
        self.audiences.pop(connection_id, None)

    def counts(self) -> RoleCounts:
        return RoleCounts(
            performer=len(self.performers),
            projector=len(self.projectors),
            engine=len(self.engines),
            audience=len(self.audiences),
        )


@dataclass
class IdempotencyRecord:
    """Bounded FIFO of command ids seen for one session."""

    lock: Lock = field(default_factory=Lock)
    order: deque[tuple[str, float]] = field(default_factory=deque)  # (command_id, seen_at)
    seen: dict[str, float] = field(default_factory=dict)


@dataclass
class Subscriber:
    """A WebSocket connection that joined a session under a role."""

    connection: ConnectionProtocol
    session_code: str
    role: Role
    name: str = ""

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id
