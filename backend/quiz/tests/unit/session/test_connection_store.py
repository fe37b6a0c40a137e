import pytest

from quiz.logic.enums import Role
from quiz.session.connection_store import ConnectionStore
from quiz.session.models import RoleCounts
from quiz.tests.helpers.builders import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConnectionStore(idle_timeout_seconds=900, clock=clock)


class TestTouch:
    def test_counts_per_role(self, store):
        store.touch("s1", Role.PERFORMER, "perf")
        store.touch("s1", Role.PROJECTOR, "proj")
        store.touch("s1", Role.ENGINE, "eng")
        store.touch("s1", Role.AUDIENCE, "a1", "Alice")
        store.touch("s1", Role.AUDIENCE, "a2", "Bob")
        assert store.get_counts("s1") == RoleCounts(performer=1, projector=1, engine=1, audience=2)

    def test_touch_is_idempotent(self, store):
        store.touch("s1", Role.AUDIENCE, "a1")
        store.touch("s1", Role.AUDIENCE, "a1")
        assert store.get_counts("s1").audience == 1

    def test_unknown_role_counts_as_audience(self, store):
        store.touch("s1", "Spectator", "x1")
        assert store.get_counts("s1").audience == 1

    def test_role_change_moves_bucket(self, store):
        store.touch("s1", Role.AUDIENCE, "c1")
        store.touch("s1", Role.PROJECTOR, "c1")
        assert store.get_counts("s1") == RoleCounts(projector=1)

    def test_touch_in_other_session_moves_connection(self, store):
        store.touch("s1", Role.AUDIENCE, "c1")
        store.touch("s2", Role.AUDIENCE, "c1")
        assert not store.has_session("s1")
        assert store.get_counts("s2").audience == 1
        assert store.session_of("c1") == "s2"

    def test_audience_display_names(self, store):
        store.touch("s1", Role.AUDIENCE, "a1", "Alice")
        store.touch("s1", Role.AUDIENCE, "a2")
        assert store.audience_names("s1") == {"a1": "Alice", "a2": "a2"}


class TestRemove:
    def test_remove_returns_session(self, store):
        store.touch("s1", Role.AUDIENCE, "a1")
        store.touch("s1", Role.PERFORMER, "p1")
        assert store.remove("a1") == "s1"
        assert store.get_counts("s1") == RoleCounts(performer=1)

    def test_last_removal_drops_session(self, store):
        store.touch("s1", Role.AUDIENCE, "a1")
        store.remove("a1")
        assert not store.has_session("s1")
        assert store.get_counts("s1") == RoleCounts()

    def test_remove_unknown_is_noop(self, store):
        assert store.remove("ghost") is None


class TestCounts:
    def test_unknown_session_all_zero(self, store):
        assert store.get_counts("nope").to_dict() == {"performer": 0, "projector": 0, "engine": 0, "audiences": 0}

    def test_aggregate(self, store):
        store.touch("s1", Role.AUDIENCE, "a1")
        store.touch("s2", Role.AUDIENCE, "a2")
        store.touch("s2", Role.ENGINE, "e1")
        assert store.get_aggregate_counts() == RoleCounts(engine=1, audience=2)

    def test_clear_session(self, store):
        store.touch("s1", Role.AUDIENCE, "a1")
        store.clear("s1")
        assert not store.has_session("s1")
        assert store.session_of("a1") is None


class TestEvictIdle:
    def test_idle_session_evicted(self, store, clock):
        store.touch("s1", Role.AUDIENCE, "a1")
        clock.advance(901)
        assert store.evict_idle() == ["s1"]
        assert store.get_counts("s1") == RoleCounts()
        assert store.session_of("a1") is None

    def test_active_session_kept(self, store, clock):
        store.touch("s1", Role.AUDIENCE, "a1")
        clock.advance(600)
        store.touch("s1", Role.AUDIENCE, "a1")
        clock.advance(600)
        assert store.evict_idle() == []
        assert store.has_session("s1")

    def test_only_idle_sessions_evicted(self, store, clock):
        store.touch("old", Role.AUDIENCE, "a1")
        clock.advance(800)
        store.touch("new", Role.AUDIENCE, "a2")
        clock.advance(200)
        assert store.evict_idle() == ["old"]
        assert store.has_session("new")
