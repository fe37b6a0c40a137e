from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from quiz.logic.enums import CommandKind, Role

# ASCII control character boundaries for display name validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F


class ClientMessageType(StrEnum):
    JOIN = "join"
    LEAVE = "leave"
    COMMAND = "command"
    PING = "ping"


class ServerMessageType(StrEnum):
    JOINED = "joined"
    LEFT = "left"
    EVENT = "event"
    STATE = "state"
    COMMAND_RESULT = "command_result"
    PROBLEM = "problem"
    PONG = "pong"
    ERROR = "error"


class SessionErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    NOT_JOINED = "not_joined"
    SESSION_MISMATCH = "session_mismatch"
    COMMAND_FAILED = "command_failed"


class JoinMessage(BaseModel):
    type: Literal[ClientMessageType.JOIN] = ClientMessageType.JOIN
    role: Role
    name: str | None = Field(default=None, min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str | None) -> str | None:
        if v is not None and any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("name must not contain control characters")
        return v


class LeaveMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE] = ClientMessageType.LEAVE


class CommandMessage(BaseModel):
    """A command issued over the socket; payload is the command body without issuer fields."""

    type: Literal[ClientMessageType.COMMAND] = ClientMessageType.COMMAND
    command: CommandKind
    payload: dict[str, Any] = Field(default_factory=dict)


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    JoinMessage | LeaveMessage | CommandMessage | PingMessage,
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> JoinMessage | LeaveMessage | CommandMessage | PingMessage:
    return _client_adapter.validate_python(data)


class JoinedMessage(BaseModel):
    type: Literal[ServerMessageType.JOINED] = ServerMessageType.JOINED
    session_code: str
    connection_id: str
    role: Role
    state: dict[str, Any]


class LeftMessage(BaseModel):
    type: Literal[ServerMessageType.LEFT] = ServerMessageType.LEFT


class EventMessage(BaseModel):
    type: Literal[ServerMessageType.EVENT] = ServerMessageType.EVENT
    event: dict[str, Any]


class StateMessage(BaseModel):
    type: Literal[ServerMessageType.STATE] = ServerMessageType.STATE
    version: int
    state: dict[str, Any]


class CommandResultMessage(BaseModel):
    type: Literal[ServerMessageType.COMMAND_RESULT] = ServerMessageType.COMMAND_RESULT
    command_id: str
    status: str


class ProblemMessage(BaseModel):
    type: Literal[ServerMessageType.PROBLEM] = ServerMessageType.PROBLEM
    problem: dict[str, Any]


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: SessionErrorCode
    message: str
