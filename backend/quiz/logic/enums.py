"""
String enum definitions for quiz session concepts.
"""

from enum import StrEnum


class Phase(StrEnum):
    """Phases of a quiz session, in happy-path order."""

    IDLE = "Idle"
    LOBBY = "Lobby"
    START = "Start"
    HINT = "Hint"
    GUESSING = "Guessing"
    LOCK = "Lock"
    REVEAL = "Reveal"
    PLAY = "Play"
    INTERMISSION = "Intermission"
    FINISHED = "Finished"


class Role(StrEnum):
    """Roles a participant can hold within a session."""

    PERFORMER = "Performer"
    PROJECTOR = "Projector"
    AUDIENCE = "Audience"
    ENGINE = "Engine"


class ReasonCode(StrEnum):
    """Reason attached to a rejected command."""

    NONE = "None"
    INVALID_STATE_TRANSITION = "InvalidStateTransition"
    UNAUTHORIZED_ROLE = "UnauthorizedRole"
    DUPLICATE_COMMAND = "DuplicateCommand"
    PHASE_MISMATCH = "PhaseMismatch"


class CommandKind(StrEnum):
    """Commands an actor can issue against a session."""

    CREATE_SESSION = "CreateSession"
    START_GAME = "StartGame"
    GIVE_HINT = "GiveHint"
    OPEN_GUESSING = "OpenGuessing"
    SUBMIT_ANSWER = "SubmitAnswer"
    LOCK_ANSWERS = "LockAnswers"
    REVEAL_ANSWER = "RevealAnswer"
    PLAY_SONG = "PlaySong"
    END_SONG = "EndSong"
    NEXT_ROUND = "NextRound"
    END_GAME = "EndGame"

    @property
    def slug(self) -> str:
        """Kebab-case name used in HTTP routes (e.g. "start-game")."""
        out: list[str] = []
        for i, ch in enumerate(self.value):
            if ch.isupper() and i > 0:
                out.append("-")
            out.append(ch.lower())
        return "".join(out)


class EventType(StrEnum):
    """Events emitted by the command pipeline and consumed by the reducer."""

    SESSION_CREATED = "SessionCreated"
    GAME_PHASE_CHANGED = "GamePhaseChanged"
    SONG_QUEUED = "SongQueued"
    HINT_GIVEN = "HintGiven"
    ANSWER_SUBMITTED = "AnswerSubmitted"
    CORRECT_ANSWER_REVEALED = "CorrectAnswerRevealed"
    SONG_PLAYBACK_STARTED = "SongPlaybackStarted"


COMMAND_BY_SLUG: dict[str, CommandKind] = {kind.slug: kind for kind in CommandKind}
