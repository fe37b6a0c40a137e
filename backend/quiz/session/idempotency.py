"""In-memory command deduplication with per-session TTL and capacity bounds."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

import structlog

from quiz.session.models import IdempotencyRecord

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()


class IdempotencyStore:
    """Remember recently seen command ids per session.

    try_register() returns True the first time a command id is seen within the
    TTL and False for repeats. Each session keeps at most max_per_session ids in
    insertion order; expired ids are pruned from the front on every call and
    the oldest id is evicted when the session is at capacity.

    Sessions never contend with each other: the registry lock only guards
    record creation, and each record has its own lock.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_per_session: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_per_session <= 0:
            raise ValueError(f"max_per_session must be positive, got {max_per_session}")
        self._ttl = ttl_seconds
        self._max_per_session = max_per_session
        self._clock = clock
        self._records: dict[str, IdempotencyRecord] = {}
        self._registry_lock = threading.Lock()

    @property
    def session_count(self) -> int:
        return len(self._records)

    def _record_for(self, session_code: str) -> IdempotencyRecord:
        record = self._records.get(session_code)
        if record is not None:
            return record
        with self._registry_lock:
            return self._records.setdefault(session_code, IdempotencyRecord())

    def try_register(self, session_code: str, command_id: str) -> bool:
        """Record command_id for the session. Return False if it was already seen within the TTL."""
        record = self._record_for(session_code)
        now = self._clock()
        with record.lock:
            self._prune_expired(record, now)

            if command_id in record.seen:
                return False

            while len(record.order) >= self._max_per_session:
                evicted_id, _ = record.order.popleft()
                record.seen.pop(evicted_id, None)

            record.order.append((command_id, now))
            record.seen[command_id] = now
            return True

    def _prune_expired(self, record: IdempotencyRecord, now: float) -> None:
        while record.order and now - record.order[0][1] > self._ttl:
            expired_id, seen_at = record.order.popleft()
            # Only drop the index entry if it belongs to this queue slot.
            if record.seen.get(expired_id) == seen_at:
                del record.seen[expired_id]

    def clear(self, session_code: str) -> None:
        with self._registry_lock:
            removed = self._records.pop(session_code, None)
        if removed is not None:
            logger.debug("idempotency record cleared", session=session_code)

    def size(self, session_code: str) -> int:
        """Number of live (not yet pruned) ids for a session."""
        record = self._records.get(session_code)
        if record is None:
            return 0
        with record.lock:
            self._prune_expired(record, self._clock())
            return len(record.order)
