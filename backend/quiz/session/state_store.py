from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from quiz.logic.state import GameStateSnapshot, initial_state

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(frozen=True)
class StoredState:
    snapshot: GameStateSnapshot
    version: int
    updated_at: float  # time.monotonic() timestamp


class GameStateStore:
    """Latest snapshot per session.

    Writes are expected to happen inside the session's orchestration lane;
    the store itself performs no locking.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._states: dict[str, StoredState] = {}

    def get(self, session_code: str) -> GameStateSnapshot | None:
        stored = self._states.get(session_code)
        return stored.snapshot if stored is not None else None

    def get_or_initial(self, session_code: str) -> GameStateSnapshot:
        """Return the stored snapshot, or the lazy initial state without storing it."""
        stored = self._states.get(session_code)
        if stored is None:
            return initial_state(session_code)
        return stored.snapshot

    def set(self, snapshot: GameStateSnapshot) -> int:
        """Store a snapshot and return its new version."""
        previous = self._states.get(snapshot.session_code)
        version = previous.version + 1 if previous is not None else 1
        self._states[snapshot.session_code] = StoredState(
            snapshot=snapshot,
            version=version,
            updated_at=self._clock(),
        )
        return version

    def version(self, session_code: str) -> int:
        stored = self._states.get(session_code)
        return stored.version if stored is not None else 0

    def updated_at(self, session_code: str) -> float | None:
        stored = self._states.get(session_code)
        return stored.updated_at if stored is not None else None

    def remove(self, session_code: str) -> bool:
        return self._states.pop(session_code, None) is not None

    def sessions(self) -> list[str]:
        return list(self._states)

    def __len__(self) -> int:
        return len(self._states)
