"""Transport-independent connection interface."""

from abc import ABC, abstractmethod
from typing import Any

from quiz.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """A client connection bound to one session code.

    Session and messaging code only talk to this interface, so they run
    against MockConnection in tests and WebSocketConnection in the server.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @property
    @abstractmethod
    def session_code(self) -> str:
        """Session code taken from the connection URL (/ws/{session})."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))
