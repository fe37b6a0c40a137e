from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute

from quiz.logic.commands import parse_command
from quiz.logic.enums import COMMAND_BY_SLUG
from quiz.logic.events import parse_event
from quiz.messaging.problems import Problem, bad_request, not_found, problem_from_rejection
from quiz.messaging.router import MessageRouter
from quiz.server.middleware import CORRELATION_HEADER, CorrelationIdMiddleware
from quiz.server.settings import QuizServerSettings
from quiz.server.websocket import SESSION_CODE_PATTERN, FrameLimits, websocket_endpoint
from quiz.session.alerting import CriticalRoleMonitor
from quiz.session.connection_store import ConnectionStore
from quiz.session.idempotency import IdempotencyStore
from quiz.session.orchestrator import CommandStatus, SessionOrchestrator
from quiz.session.reaper import SessionReaper
from quiz.session.state_store import GameStateStore
from quiz.session.subscribers import SubscriberRegistry
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

_MAX_REQUEST_BODY_SIZE = 16 * 1024


def _problem_response(problem: Problem) -> JSONResponse:
    return JSONResponse(problem.to_dict(), status_code=problem.status, media_type="application/problem+json")


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


def _session_code(request: Request) -> str | None:
    session_code = request.path_params["session_code"]
    if not SESSION_CODE_PATTERN.match(session_code):
        return None
    return session_code


async def _read_json_body(request: Request) -> dict[str, Any] | Problem:
    correlation_id = _correlation_id(request)
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        return Problem(
            title="Payload Too Large",
            status=413,
            detail="Request body too large",
            correlation_id=correlation_id,
        )
    try:
        body = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return bad_request("Request body is not valid JSON", correlation_id=correlation_id)
    if not isinstance(body, dict):
        return bad_request("Request body must be a JSON object", correlation_id=correlation_id)
    return body


def _describe_validation_error(e: ValidationError) -> tuple[str, str | None]:
    first = e.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return first.get("msg", "Invalid request body"), field


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    orchestrator: SessionOrchestrator = request.app.state.orchestrator
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "sessions": len(orchestrator.states),
            "connected_sessions": len(orchestrator.connections.sessions()),
            "connections": orchestrator.connections.get_aggregate_counts().to_dict(),
        },
    )


async def post_command(request: Request) -> JSONResponse:
    orchestrator: SessionOrchestrator = request.app.state.orchestrator
    correlation_id = _correlation_id(request)

    kind = COMMAND_BY_SLUG.get(request.path_params["command"])
    if kind is None:
        return _problem_response(bad_request("Unknown command", field="command", correlation_id=correlation_id))
    session_code = _session_code(request)
    if session_code is None:
        return _problem_response(
            bad_request("Invalid session code", field="sessionCode", correlation_id=correlation_id),
        )

    body = await _read_json_body(request)
    if isinstance(body, Problem):
        return _problem_response(body)

    claimed = body.get("sessionCode", body.get("session_code", session_code))
    if claimed != session_code:
        return _problem_response(
            bad_request("sessionCode does not match the URL", field="sessionCode", correlation_id=correlation_id),
        )
    body.setdefault("sessionCode", session_code)

    try:
        command = parse_command(kind, body)
    except ValidationError as e:
        detail, field = _describe_validation_error(e)
        return _problem_response(bad_request(detail, field=field, correlation_id=correlation_id))

    outcome = await orchestrator.submit(command, correlation_id=correlation_id)
    if outcome.status == CommandStatus.REJECTED and outcome.rejection is not None:
        return _problem_response(problem_from_rejection(outcome.rejection, outcome.correlation_id))

    return JSONResponse({"status": CommandStatus.ACCEPTED, "commandId": outcome.command_id}, status_code=202)


async def session_status(request: Request) -> JSONResponse:
    orchestrator: SessionOrchestrator = request.app.state.orchestrator
    session_code = request.path_params["session_code"]
    snapshot = orchestrator.states.get(session_code)
    if snapshot is None:
        return _problem_response(not_found(f"Session {session_code} not found", correlation_id=_correlation_id(request)))
    return JSONResponse(snapshot.to_public())


async def session_counts(request: Request) -> JSONResponse:
    orchestrator: SessionOrchestrator = request.app.state.orchestrator
    session_code = request.path_params["session_code"]
    return JSONResponse(orchestrator.connections.get_counts(session_code).to_dict())


async def dev_reset(request: Request) -> Response:
    orchestrator: SessionOrchestrator = request.app.state.orchestrator
    orchestrator.reset(request.path_params["session_code"])
    return Response(status_code=204)


async def dev_inject_event(request: Request) -> Response:
    orchestrator: SessionOrchestrator = request.app.state.orchestrator
    correlation_id = _correlation_id(request)
    session_code = _session_code(request)
    if session_code is None:
        return _problem_response(
            bad_request("Invalid session code", field="sessionCode", correlation_id=correlation_id),
        )

    body = await _read_json_body(request)
    if isinstance(body, Problem):
        return _problem_response(body)
    body.setdefault("sessionCode", session_code)
    body.setdefault("correlationId", correlation_id)

    try:
        event = parse_event(body)
    except ValidationError as e:
        detail, field = _describe_validation_error(e)
        return _problem_response(bad_request(detail, field=field, correlation_id=correlation_id))
    if event.session_code != session_code:
        return _problem_response(
            bad_request("sessionCode does not match the URL", field="sessionCode", correlation_id=correlation_id),
        )

    error = await orchestrator.inject_event(event)
    if error is not None:
        return _problem_response(
            Problem(title="Reducer rejected event", status=409, detail=error, correlation_id=correlation_id),
        )
    return Response(status_code=202)


def build_orchestrator(settings: QuizServerSettings) -> SessionOrchestrator:
    return SessionOrchestrator(
        idempotency=IdempotencyStore(
            ttl_seconds=settings.idempotency_ttl_seconds,
            max_per_session=settings.idempotency_max_per_session,
        ),
        states=GameStateStore(),
        connections=ConnectionStore(idle_timeout_seconds=settings.session_idle_timeout_seconds),
        subscribers=SubscriberRegistry(),
        idle_timeout_seconds=settings.session_idle_timeout_seconds,
    )


def create_app(
    settings: QuizServerSettings | None = None,
    orchestrator: SessionOrchestrator | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = QuizServerSettings()

    if orchestrator is None:
        orchestrator = build_orchestrator(settings)

    if message_router is None:
        message_router = MessageRouter(orchestrator)

    reaper = SessionReaper(orchestrator, interval_seconds=settings.session_eviction_interval_seconds)
    monitor = CriticalRoleMonitor(
        states=orchestrator.states,
        connections=orchestrator.connections,
        threshold_seconds=settings.missing_role_alert_threshold_seconds,
    )

    frame_limits = FrameLimits(
        messages_per_second=settings.ws_messages_per_second,
        burst=settings.ws_burst,
        max_decode_errors=settings.ws_max_decode_errors,
    )

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, frame_limits)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/status/{session_code}", session_status, methods=["GET"]),
        Route("/api/sessions/{session_code}/counts", session_counts, methods=["GET"]),
        Route("/v1/message/phase/{command}/{session_code}", post_command, methods=["POST"]),
        WebSocketRoute("/ws/{session_code}", ws_endpoint),
    ]
    if settings.dev_endpoints:
        routes += [
            Route("/dev/reset/{session_code}", dev_reset, methods=["POST"]),
            Route("/dev/events/{session_code}", dev_inject_event, methods=["POST"]),
        ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        reaper.start()
        monitor.start()
        try:
            yield
        finally:
            await monitor.stop()
            await reaper.stop()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", CORRELATION_HEADER],
        expose_headers=[CORRELATION_HEADER],
    )
    app.add_middleware(CorrelationIdMiddleware)  # type: ignore[arg-type]
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.reaper = reaper
    app.state.role_monitor = monitor

    logger.info("quiz server ready", dev_endpoints=settings.dev_endpoints)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = QuizServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
