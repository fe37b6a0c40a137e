"""Correlation id propagation for HTTP requests."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import structlog

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

CORRELATION_HEADER = "x-correlation-id"


def resolve_correlation_id(raw: str | None) -> str:
    """Keep a caller-supplied id if it is a valid UUID, otherwise mint one."""
    if raw:
        with contextlib.suppress(ValueError):
            return str(UUID(raw))
    return str(uuid4())


class CorrelationIdMiddleware:
    """Attach a correlation id to every HTTP request.

    The id is stored on request.state.correlation_id, bound to the structlog
    context for the duration of the request, and echoed in the
    X-Correlation-Id response header.
    """

    def __init__(self, app: ASGIApp) -> None:
        self._app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        raw = None
        for name, value in scope.get("headers", []):
            if name.decode("latin-1").lower() == CORRELATION_HEADER:
                raw = value.decode("latin-1")
                break
        correlation_id = resolve_correlation_id(raw)
        scope.setdefault("state", {})["correlation_id"] = correlation_id

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((CORRELATION_HEADER.encode("latin-1"), correlation_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
            await self._app(scope, receive, send_with_header)
