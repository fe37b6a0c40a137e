"""
Translate a validated command into the ordered events it causes.

Commands that move the session to another phase always do so through a
GamePhaseChanged event carrying the phase read from the stored snapshot, so
every transition passes the reducer's mismatch check.
"""

from datetime import datetime

from quiz.logic.commands import (
    Command,
    CreateSessionCommand,
    GiveHintCommand,
    NextRoundCommand,
    PlaySongCommand,
    RevealAnswerCommand,
    SubmitAnswerCommand,
)
from quiz.logic.enums import Phase
from quiz.logic.events import (
    AnswerSubmitted,
    CorrectAnswerRevealed,
    Event,
    GamePhaseChanged,
    HintGiven,
    SessionCreated,
    SongPlaybackStarted,
    SongQueued,
)
from quiz.logic.phase_guard import COMMAND_RULES
from quiz.logic.state import GameStateSnapshot


def plan_events(
    state: GameStateSnapshot,
    command: Command,
    *,
    correlation_id: str,
    now: datetime,
) -> list[Event]:
    """Return the events for a command that already passed the phase guard."""
    envelope = {
        "correlation_id": correlation_id,
        "caused_by_command_id": command.command_id,
        "session_code": command.session_code,
        "emitted_at_utc": now,
    }

    def phase_change(new_phase: Phase) -> GamePhaseChanged:
        return GamePhaseChanged(current_phase=state.phase, new_phase=new_phase, **envelope)

    if isinstance(command, CreateSessionCommand):
        return [
            SessionCreated(catalog=command.catalog, **envelope),
            GamePhaseChanged(current_phase=state.phase, new_phase=Phase.LOBBY, **envelope),
        ]

    if isinstance(command, SubmitAnswerCommand):
        return [
            AnswerSubmitted(
                audience_id=command.issued_by_id,
                choice_index=command.choice_index,
                **envelope,
            ),
        ]

    if isinstance(command, GiveHintCommand):
        events: list[Event] = []
        if state.phase == Phase.START:
            events.append(phase_change(Phase.HINT))
        if command.hint is None:
            events.append(HintGiven(hint_index=state.hint_index + 1, **envelope))
        else:
            events.append(HintGiven(hint_index=command.hint.index, text=command.hint.text, **envelope))
        return events

    if isinstance(command, RevealAnswerCommand):
        return [
            phase_change(Phase.REVEAL),
            CorrectAnswerRevealed(correct_choice_index=command.correct_choice_index, **envelope),
        ]

    if isinstance(command, PlaySongCommand):
        song_id = command.song_id
        if song_id is None and state.current_song is not None:
            song_id = state.current_song.id
        return [
            phase_change(Phase.PLAY),
            SongPlaybackStarted(song_id=song_id, started_at_utc=now, **envelope),
        ]

    if isinstance(command, NextRoundCommand):
        song_index = 0 if state.current_song is None else state.song_index + 1
        events = [SongQueued(song_index=song_index, song=command.song, choices=command.choices, **envelope)]
        if state.phase == Phase.INTERMISSION:
            events.append(phase_change(Phase.START))
        return events

    target = COMMAND_RULES[command.kind].target
    if target is not None:
        return [phase_change(target)]
    return []
