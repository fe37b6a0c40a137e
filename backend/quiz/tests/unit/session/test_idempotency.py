"""Tests for command deduplication."""

import threading

import pytest

from quiz.session.idempotency import IdempotencyStore
from quiz.tests.helpers.builders import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return IdempotencyStore(ttl_seconds=600, max_per_session=128, clock=clock)


class TestTryRegister:
    def test_first_then_duplicate(self, store):
        assert store.try_register("s1", "c1") is True
        assert store.try_register("s1", "c1") is False

    def test_same_id_in_other_session_is_new(self, store):
        assert store.try_register("s1", "c1") is True
        assert store.try_register("s2", "c1") is True

    def test_expired_id_is_new_again(self, store, clock):
        assert store.try_register("s1", "c1") is True
        clock.advance(601)
        assert store.try_register("s1", "c1") is True

    def test_within_ttl_still_duplicate(self, store, clock):
        store.try_register("s1", "c1")
        clock.advance(599)
        assert store.try_register("s1", "c1") is False

    def test_exactly_at_ttl_still_duplicate(self, store, clock):
        store.try_register("s1", "c1")
        clock.advance(600)
        assert store.try_register("s1", "c1") is False

    def test_expired_entries_pruned_on_any_call(self, store, clock):
        store.try_register("s1", "c1")
        store.try_register("s1", "c2")
        clock.advance(700)
        store.try_register("s1", "c3")
        assert store.size("s1") == 1


class TestCapacity:
    def test_oldest_evicted_at_capacity(self, clock):
        store = IdempotencyStore(ttl_seconds=600, max_per_session=3, clock=clock)
        for command_id in ("c1", "c2", "c3", "c4"):
            assert store.try_register("s1", command_id) is True
        assert store.size("s1") == 3
        # c1 was evicted, so it is accepted again
        assert store.try_register("s1", "c1") is True
        assert store.try_register("s1", "c4") is False

    def test_capacity_is_per_session(self, clock):
        store = IdempotencyStore(ttl_seconds=600, max_per_session=2, clock=clock)
        store.try_register("s1", "a")
        store.try_register("s1", "b")
        store.try_register("s2", "c")
        assert store.size("s1") == 2
        assert store.size("s2") == 1


class TestLifecycle:
    def test_clear_forgets_session(self, store):
        store.try_register("s1", "c1")
        store.clear("s1")
        assert store.session_count == 0
        assert store.try_register("s1", "c1") is True

    @pytest.mark.parametrize(("ttl", "cap"), [(0, 10), (-1, 10), (10, 0)])
    def test_non_positive_bounds_rejected(self, ttl, cap):
        with pytest.raises(ValueError, match="positive"):
            IdempotencyStore(ttl_seconds=ttl, max_per_session=cap)


class TestThreadSafety:
    def test_concurrent_registration_accepts_exactly_once(self, store):
        results: list[bool] = []
        results_lock = threading.Lock()
        barrier = threading.Barrier(16)

        def register() -> None:
            barrier.wait()
            accepted = store.try_register("s1", "same")
            with results_lock:
                results.append(accepted)

        threads = [threading.Thread(target=register) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15
