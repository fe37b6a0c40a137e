"""WebSocket transport for /ws/{session_code}.

Frames are MessagePack maps. Every frame that decodes and fits the rate
limit refreshes the sender's connection record before it is routed, so a
socket that keeps talking is never evicted as idle.
"""

from __future__ import annotations

import contextlib
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from quiz.messaging.encoder import DecodeError, decode
from quiz.messaging.protocol import ConnectionProtocol
from quiz.messaging.types import ErrorMessage, SessionErrorCode
from quiz.server.rate_limit import TokenBucket

if TYPE_CHECKING:
    from collections.abc import Iterator

    from quiz.messaging.router import MessageRouter

logger = structlog.get_logger()

SESSION_CODE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")

CLOSE_INVALID_SESSION_CODE = 4000
CLOSE_TOO_MANY_DECODE_ERRORS = 4004


@contextlib.contextmanager
def _disconnect_as_connection_error() -> Iterator[None]:
    try:
        yield
    except WebSocketDisconnect as e:
        raise ConnectionError(f"WebSocket already disconnected (code {e.code})") from None


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, session_code: str, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._session_code = session_code
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def session_code(self) -> str:
        return self._session_code

    async def send_bytes(self, data: bytes) -> None:
        with _disconnect_as_connection_error():
            await self._websocket.send_bytes(data)

    async def receive_bytes(self) -> bytes:
        with _disconnect_as_connection_error():
            return await self._websocket.receive_bytes()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


@dataclass(frozen=True)
class FrameLimits:
    # Audience bursts around Guessing are short; 20 msg/sec sustained is ample.
    messages_per_second: float = 20.0
    burst: int = 40
    # consecutive undecodable frames before the socket is closed
    max_decode_errors: int = 5


@dataclass
class FrameGate:
    """Admission for one socket's inbound frames.

    admit() returns the decoded map, or the error to send back. Decode
    failures count as strikes until a good frame arrives; throttled frames
    are dropped without a strike.
    """

    limits: FrameLimits = field(default_factory=FrameLimits)
    strikes: int = 0
    _bucket: TokenBucket = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._bucket = TokenBucket(rate=self.limits.messages_per_second, burst=self.limits.burst)

    @property
    def exhausted(self) -> bool:
        return self.strikes >= self.limits.max_decode_errors

    def admit(self, raw: bytes) -> dict[str, Any] | ErrorMessage:
        try:
            data = decode(raw)
        except DecodeError as e:
            self.strikes += 1
            logger.warning("decode error", error=str(e), strikes=self.strikes)
            return ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e))

        self.strikes = 0
        if not self._bucket.consume():
            return ErrorMessage(code=SessionErrorCode.RATE_LIMITED, message="Too many messages")
        return data


async def _serve(connection: WebSocketConnection, router: MessageRouter, gate: FrameGate) -> None:
    while True:
        admitted = gate.admit(await connection.receive_bytes())
        if isinstance(admitted, ErrorMessage):
            await connection.send_message(admitted.model_dump())
            if gate.exhausted:
                logger.info("too many decode errors, disconnecting")
                await connection.close(code=CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                return
            continue

        router.touch(connection)
        await router.handle_message(connection, admitted)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter, limits: FrameLimits | None = None) -> None:
    session_code = websocket.path_params["session_code"]
    if not SESSION_CODE_PATTERN.match(session_code):
        await websocket.close(code=CLOSE_INVALID_SESSION_CODE, reason="invalid_session_code")
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket, session_code=session_code)
    structlog.contextvars.bind_contextvars(session=session_code)
    await router.handle_connect(connection)
    logger.info("websocket connected")

    try:
        await _serve(connection, router, FrameGate(limits or FrameLimits()))
    except (ConnectionError, RuntimeError):
        logger.debug("websocket receive loop ended")
    finally:
        await router.handle_disconnect(connection)
        logger.info("websocket disconnected", connection_id=connection.connection_id)
        structlog.contextvars.clear_contextvars()
