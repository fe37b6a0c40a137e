"""
Command envelope and concrete command payloads.

Every command carries the same envelope (commandId, sessionCode, issuedByRole,
issuedById, issuedAtUtc). commandId is the idempotency key. The command kind
is not part of the body: HTTP routes and WebSocket messages name it
explicitly and parse_command() selects the model for it.
"""

from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from pydantic import Field

from quiz.logic.enums import CommandKind, Role
from quiz.logic.state import SongRef, WireModel

_SESSION_CODE_FIELD = Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
_MAX_CHOICES = 16


class Command(WireModel):
    """Envelope shared by all commands."""

    kind: ClassVar[CommandKind]

    command_id: UUID
    session_code: str = _SESSION_CODE_FIELD
    issued_by_role: Role
    issued_by_id: str = Field(max_length=200)
    issued_at_utc: datetime


class CreateSessionCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.CREATE_SESSION
    catalog: tuple[SongRef, ...] = ()


class StartGameCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.START_GAME


class HintPayload(WireModel):
    index: int = Field(ge=0)
    text: str | None = Field(default=None, max_length=1000)


class GiveHintCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.GIVE_HINT
    hint: HintPayload | None = None


class OpenGuessingCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.OPEN_GUESSING


class SubmitAnswerCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.SUBMIT_ANSWER
    # audience id the answer is recorded under
    issued_by_id: str = Field(min_length=1, max_length=200)
    choice_index: int = Field(ge=0)


class LockAnswersCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.LOCK_ANSWERS


class RevealAnswerCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.REVEAL_ANSWER
    correct_choice_index: int = Field(ge=0)


class PlaySongCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.PLAY_SONG
    song_id: str | None = Field(default=None, max_length=200)


class EndSongCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.END_SONG


class NextRoundCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.NEXT_ROUND
    song: SongRef
    choices: tuple[str, ...] = Field(min_length=1, max_length=_MAX_CHOICES)


class EndGameCommand(Command):
    kind: ClassVar[CommandKind] = CommandKind.END_GAME


COMMAND_MODELS: dict[CommandKind, type[Command]] = {
    model.kind: model
    for model in (
        CreateSessionCommand,
        StartGameCommand,
        GiveHintCommand,
        OpenGuessingCommand,
        SubmitAnswerCommand,
        LockAnswersCommand,
        RevealAnswerCommand,
        PlaySongCommand,
        EndSongCommand,
        NextRoundCommand,
        EndGameCommand,
    )
}


def parse_command(kind: CommandKind, data: dict[str, Any]) -> Command:
    """Validate a raw command body for the given kind.

    Raises pydantic.ValidationError on malformed input.
    """
    return COMMAND_MODELS[kind].model_validate(data)
