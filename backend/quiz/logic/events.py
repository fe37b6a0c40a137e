"""Domain events produced by the command pipeline and folded by the reducer.

All events of one command share its correlationId and causedByCommandId.
The type field is the discriminator for the Event union.
"""

from datetime import UTC, datetime
from typing import Annotated, Literal
from uuid import UUID, uuid4

from pydantic import Field, TypeAdapter

from quiz.logic.enums import EventType, Phase
from quiz.logic.state import SongRef, WireModel


class EventBase(WireModel):
    """Envelope shared by all events."""

    type: EventType
    event_id: UUID = Field(default_factory=uuid4)
    correlation_id: str
    caused_by_command_id: UUID
    session_code: str
    emitted_at_utc: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class SessionCreated(EventBase):
    type: Literal[EventType.SESSION_CREATED] = EventType.SESSION_CREATED
    catalog: tuple[SongRef, ...] = ()


class GamePhaseChanged(EventBase):
    """Phase transition. current_phase is the phase the emitter believed was stored."""

    type: Literal[EventType.GAME_PHASE_CHANGED] = EventType.GAME_PHASE_CHANGED
    current_phase: Phase
    new_phase: Phase


class SongQueued(EventBase):
    type: Literal[EventType.SONG_QUEUED] = EventType.SONG_QUEUED
    song_index: int = Field(ge=0)
    song: SongRef
    choices: tuple[str, ...]


class HintGiven(EventBase):
    type: Literal[EventType.HINT_GIVEN] = EventType.HINT_GIVEN
    hint_index: int = Field(ge=0)
    text: str | None = None


class AnswerSubmitted(EventBase):
    type: Literal[EventType.ANSWER_SUBMITTED] = EventType.ANSWER_SUBMITTED
    audience_id: str
    choice_index: int


class CorrectAnswerRevealed(EventBase):
    type: Literal[EventType.CORRECT_ANSWER_REVEALED] = EventType.CORRECT_ANSWER_REVEALED
    correct_choice_index: int


class SongPlaybackStarted(EventBase):
    type: Literal[EventType.SONG_PLAYBACK_STARTED] = EventType.SONG_PLAYBACK_STARTED
    song_id: str | None = None
    started_at_utc: datetime


Event = Annotated[
    SessionCreated
    | GamePhaseChanged
    | SongQueued
    | HintGiven
    | AnswerSubmitted
    | CorrectAnswerRevealed
    | SongPlaybackStarted,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


def parse_event(data: dict) -> Event:
    """Validate a raw event dict (camelCase or snake_case keys)."""
    return _event_adapter.validate_python(data)
