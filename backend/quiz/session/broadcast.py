"""Fan-out of server messages to the subscribers of a session."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from quiz.session.models import Subscriber


async def broadcast_to_subscribers(
    subscribers: Iterable[Subscriber],
    messages: list[dict[str, Any]],
) -> int:
    """Send messages, in order, to every subscriber. Return how many subscribers were reached.

    A failing connection is skipped so it cannot hold up the rest of the
    session; its disconnect handler removes it from the registry.
    """
    reached = 0
    for subscriber in list(subscribers):
        with contextlib.suppress(RuntimeError, OSError):
            for message in messages:
                await subscriber.connection.send_message(message)
            reached += 1
    return reached
