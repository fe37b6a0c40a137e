from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from quiz.logic.commands import parse_command
from quiz.messaging.problems import problem_from_rejection
from quiz.messaging.types import (
    CommandMessage,
    CommandResultMessage,
    ErrorMessage,
    JoinedMessage,
    JoinMessage,
    LeaveMessage,
    LeftMessage,
    PingMessage,
    PongMessage,
    ProblemMessage,
    SessionErrorCode,
    parse_client_message,
)
from quiz.session.orchestrator import CommandStatus

if TYPE_CHECKING:
    from quiz.messaging.protocol import ConnectionProtocol
    from quiz.session.orchestrator import SessionOrchestrator

logger = structlog.get_logger()


class MessageRouter:
    """
    Routes decoded client messages to the session orchestrator.

    Holds no transport state of its own, so it runs against MockConnection
    in tests exactly as it does against a WebSocket.
    """

    def __init__(self, orchestrator: SessionOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def handle_message(self, connection: ConnectionProtocol, raw_message: dict[str, Any]) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message", connection_id=connection.connection_id, error=str(e))
            await self._send_error(connection, SessionErrorCode.INVALID_MESSAGE, str(e))
            return

        if isinstance(message, JoinMessage):
            await self._handle_join(connection, message)
        elif isinstance(message, LeaveMessage):
            await self._handle_leave(connection)
        elif isinstance(message, CommandMessage):
            await self._handle_command(connection, message)
        elif isinstance(message, PingMessage):
            await connection.send_message(PongMessage().model_dump())

    def touch(self, connection: ConnectionProtocol) -> None:
        """Mark a joined connection as active; unjoined connections are left alone."""
        subscriber = self._orchestrator.subscribers.get(connection.connection_id)
        if subscriber is not None:
            self._orchestrator.connections.touch(
                subscriber.session_code,
                subscriber.role,
                connection.connection_id,
                subscriber.name or None,
            )

    async def _send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    async def _handle_join(self, connection: ConnectionProtocol, message: JoinMessage) -> None:
        session_code = connection.session_code
        name = message.name or ""
        self._orchestrator.subscribers.add(connection, session_code, message.role, name)
        self._orchestrator.connections.touch(session_code, message.role, connection.connection_id, message.name)
        structlog.contextvars.bind_contextvars(session=session_code, role=message.role)
        logger.info("joined session")

        snapshot = self._orchestrator.states.get_or_initial(session_code)
        await connection.send_message(
            JoinedMessage(
                session_code=session_code,
                connection_id=connection.connection_id,
                role=message.role,
                state=snapshot.to_public(),
            ).model_dump(),
        )

    async def _handle_leave(self, connection: ConnectionProtocol) -> None:
        if self._orchestrator.subscribers.remove(connection.connection_id) is None:
            await self._send_error(connection, SessionErrorCode.NOT_JOINED, "Not joined to a session")
            return
        self._orchestrator.connections.remove(connection.connection_id)
        logger.info("left session")
        await connection.send_message(LeftMessage().model_dump())

    async def _handle_command(self, connection: ConnectionProtocol, message: CommandMessage) -> None:
        subscriber = self._orchestrator.subscribers.get(connection.connection_id)
        if subscriber is None:
            await self._send_error(connection, SessionErrorCode.NOT_JOINED, "Join the session before sending commands")
            return

        body = dict(message.payload)
        claimed_session = body.get("sessionCode", body.get("session_code"))
        if claimed_session is not None and claimed_session != subscriber.session_code:
            await self._send_error(connection, SessionErrorCode.SESSION_MISMATCH, "sessionCode does not match")
            return
        # Issuer identity comes from the joined connection, never from the payload.
        body.pop("session_code", None)
        body.pop("issued_by_role", None)
        body.pop("issued_by_id", None)
        body["sessionCode"] = subscriber.session_code
        body["issuedByRole"] = subscriber.role
        body["issuedById"] = connection.connection_id
        if "issuedAtUtc" not in body and "issued_at_utc" not in body:
            body["issuedAtUtc"] = datetime.now(tz=UTC)

        try:
            command = parse_command(message.command, body)
        except ValidationError as e:
            logger.warning("invalid command payload", command=message.command, error=str(e))
            await self._send_error(connection, SessionErrorCode.INVALID_MESSAGE, str(e))
            return

        try:
            outcome = await self._orchestrator.submit(command)
        except Exception:
            logger.exception("command failed", command=message.command)
            await self._send_error(connection, SessionErrorCode.COMMAND_FAILED, "Command could not be processed")
            return

        if outcome.status == CommandStatus.REJECTED and outcome.rejection is not None:
            problem = problem_from_rejection(outcome.rejection, outcome.correlation_id)
            await connection.send_message(ProblemMessage(problem=problem.to_dict()).model_dump())
            return
        await connection.send_message(
            CommandResultMessage(command_id=outcome.command_id, status=CommandStatus.ACCEPTED).model_dump(),
        )

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        self._orchestrator.subscribers.remove(connection.connection_id)
        self._orchestrator.connections.remove(connection.connection_id)
