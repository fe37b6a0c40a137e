from __future__ import annotations

from typing import TYPE_CHECKING

from quiz.session.models import Subscriber

if TYPE_CHECKING:
    from quiz.logic.enums import Role
    from quiz.messaging.protocol import ConnectionProtocol


class SubscriberRegistry:
    """Connections that receive broadcasts for a session."""

    def __init__(self) -> None:
        self._by_session: dict[str, dict[str, Subscriber]] = {}  # session -> connection_id -> Subscriber
        self._by_connection: dict[str, Subscriber] = {}

    def add(self, connection: ConnectionProtocol, session_code: str, role: Role, name: str = "") -> Subscriber:
        self.remove(connection.connection_id)
        subscriber = Subscriber(connection=connection, session_code=session_code, role=role, name=name)
        self._by_session.setdefault(session_code, {})[connection.connection_id] = subscriber
        self._by_connection[connection.connection_id] = subscriber
        return subscriber

    def remove(self, connection_id: str) -> Subscriber | None:
        subscriber = self._by_connection.pop(connection_id, None)
        if subscriber is None:
            return None
        members = self._by_session.get(subscriber.session_code)
        if members is not None:
            members.pop(connection_id, None)
            if not members:
                del self._by_session[subscriber.session_code]
        return subscriber

    def get(self, connection_id: str) -> Subscriber | None:
        return self._by_connection.get(connection_id)

    def for_session(self, session_code: str) -> list[Subscriber]:
        return list(self._by_session.get(session_code, {}).values())
