"""
Pure state reducer.

reduce(state, event) returns (new_state, error). It never raises and never
mutates its input; on error (or for events that do not apply) the input
snapshot itself is returned.
"""

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
from quiz.logic.state import GameStateSnapshot, zero_tallies


def _apply_phase_changed(
    state: GameStateSnapshot,
    event: GamePhaseChanged,
) -> tuple[GameStateSnapshot, str | None]:
    if event.current_phase != state.phase:
        return state, f"phase_mismatch: state={state.phase}, eventCurrent={event.current_phase}"
    updates: dict[str, object] = {"phase": event.new_phase}
    if event.new_phase == Phase.START:
        updates["tallies"] = zero_tallies(state.choices)
        updates["answers"] = {}
    return state.model_copy(update=updates), None


def _apply_answer(state: GameStateSnapshot, event: AnswerSubmitted) -> GameStateSnapshot:
    if state.phase != Phase.GUESSING:
        return state
    if not 0 <= event.choice_index < len(state.choices):
        return state

    tallies = list(state.tallies)
    previous = state.answers.get(event.audience_id)
    if previous is not None and 0 <= previous < len(tallies):
        tallies[previous] -= 1
    tallies[event.choice_index] += 1

    answers = {**state.answers, event.audience_id: event.choice_index}
    return state.model_copy(update={"tallies": tuple(tallies), "answers": answers})


def _apply_reveal(state: GameStateSnapshot, event: CorrectAnswerRevealed) -> GameStateSnapshot:
    if not 0 <= event.correct_choice_index < len(state.choices):
        return state
    winners = [aid for aid, choice in state.answers.items() if choice == event.correct_choice_index]
    if not winners:
        return state
    scores = dict(state.scores)
    for audience_id in winners:
        scores[audience_id] = scores.get(audience_id, 0) + 1
    return state.model_copy(update={"scores": scores})


def _apply_session_created(state: GameStateSnapshot, event: SessionCreated) -> GameStateSnapshot:
    return state.model_copy(
        update={
            "catalog": event.catalog,
            "song_index": 0,
            "current_song": None,
            "choices": (),
            "tallies": (),
            "answers": {},
            "scores": {},
            "hint_index": 0,
            "song_started_at_utc": None,
        },
    )


def _apply_song_queued(state: GameStateSnapshot, event: SongQueued) -> GameStateSnapshot:
    return state.model_copy(
        update={
            "song_index": event.song_index,
            "current_song": event.song,
            "choices": event.choices,
            "tallies": zero_tallies(event.choices),
            "answers": {},
            "hint_index": 0,
            "song_started_at_utc": None,
        },
    )


def reduce(state: GameStateSnapshot, event: Event) -> tuple[GameStateSnapshot, str | None]:
    """Apply a single event to a snapshot."""
    if isinstance(event, GamePhaseChanged):
        return _apply_phase_changed(state, event)
    if isinstance(event, AnswerSubmitted):
        return _apply_answer(state, event), None
    if isinstance(event, CorrectAnswerRevealed):
        return _apply_reveal(state, event), None
    if isinstance(event, SessionCreated):
        return _apply_session_created(state, event), None
    if isinstance(event, SongQueued):
        return _apply_song_queued(state, event), None
    if isinstance(event, HintGiven):
        return state.model_copy(update={"hint_index": event.hint_index}), None
    if isinstance(event, SongPlaybackStarted):
        return state.model_copy(update={"song_started_at_utc": event.started_at_utc}), None
    return state, None


def reduce_all(
    state: GameStateSnapshot,
    events: list[Event],
) -> tuple[GameStateSnapshot, str | None]:
    """Fold events in order. Stops at the first error and returns the original state."""
    current = state
    for event in events:
        current, error = reduce(current, event)
        if error is not None:
            return state, error
    return current, None
