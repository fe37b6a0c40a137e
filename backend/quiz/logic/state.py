"""
Immutable session state models.

GameStateSnapshot is a frozen Pydantic model; the reducer produces new
snapshots via model_copy and never mutates an existing one. Wire form uses
camelCase aliases (sessionCode, songIndex, ...). The per-audience answer
map is server-internal and excluded from every serialized form.
"""

from datetime import datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from quiz.logic.enums import Phase


class WireModel(BaseModel):
    """Base for frozen models exchanged with clients using camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SongRef(WireModel):
    id: str = Field(min_length=1, max_length=200)
    title: str = Field(min_length=1, max_length=500)
    artist: str = Field(default="", max_length=500)


class GameStateSnapshot(WireModel):
    """Full state of one quiz session."""

    session_code: str
    phase: Phase = Phase.IDLE
    song_index: int = Field(default=0, ge=0)
    current_song: SongRef | None = None
    catalog: tuple[SongRef, ...] = ()
    choices: tuple[str, ...] = ()
    hint_index: int = Field(default=0, ge=0)
    tallies: tuple[int, ...] = ()
    scores: dict[str, int] = Field(default_factory=dict)
    # audience id -> latest choice index for the current song
    answers: dict[str, int] = Field(default_factory=dict, exclude=True)
    song_started_at_utc: datetime | None = None

    @model_validator(mode="after")
    def _check_tallies(self) -> Self:
        if len(self.tallies) != len(self.choices):
            raise ValueError(
                f"tallies length {len(self.tallies)} does not match choices length {len(self.choices)}",
            )
        return self

    def to_public(self) -> dict:
        """JSON-compatible dict suitable for broadcast (answers excluded)."""
        return self.model_dump(mode="json", by_alias=True)


def initial_state(session_code: str) -> GameStateSnapshot:
    """State assumed for a session that has never been referenced."""
    return GameStateSnapshot(session_code=session_code)


def zero_tallies(choices: tuple[str, ...]) -> tuple[int, ...]:
    return (0,) * len(choices)
