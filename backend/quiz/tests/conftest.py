import pytest

from quiz.messaging.router import MessageRouter
from quiz.server.app import create_app
from quiz.server.settings import QuizServerSettings
from quiz.session.connection_store import ConnectionStore
from quiz.session.idempotency import IdempotencyStore
from quiz.session.orchestrator import SessionOrchestrator
from quiz.session.state_store import GameStateStore
from quiz.session.subscribers import SubscriberRegistry
from quiz.tests.helpers.builders import FIXED_NOW, FakeClock
from quiz.tests.mocks import MockConnection

IDLE_TIMEOUT = 900


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return QuizServerSettings(dev_endpoints=True)


@pytest.fixture
def orchestrator(clock):
    return SessionOrchestrator(
        idempotency=IdempotencyStore(ttl_seconds=600, max_per_session=128, clock=clock),
        states=GameStateStore(clock=clock),
        connections=ConnectionStore(idle_timeout_seconds=IDLE_TIMEOUT, clock=clock),
        subscribers=SubscriberRegistry(),
        idle_timeout_seconds=IDLE_TIMEOUT,
        clock=clock,
        utc_now=lambda: FIXED_NOW,
    )


@pytest.fixture
def message_router(orchestrator):
    return MessageRouter(orchestrator)


@pytest.fixture
def mock_connection():
    return MockConnection(session_code="s1")


@pytest.fixture
def app(settings, orchestrator, message_router):
    return create_app(settings=settings, orchestrator=orchestrator, message_router=message_router)
