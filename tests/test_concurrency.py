"""Concurrency tests for per-session locking."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from molding_tracker import (
    InvalidTransitionError,
    PauseEntry,
    SessionBusyError,
    SessionNotFoundError,
    SessionStatus,
)
from molding_tracker.lifecycle import SessionLockRegistry


def test_concurrent_pauses_open_exactly_one_entry(tracker, session):
    barrier = threading.Barrier(2)

    def attempt():
        barrier.wait()
        try:
            return tracker.pause_session(session.id)
        except InvalidTransitionError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: attempt(), range(2)))

    successes = [result for result in results if isinstance(result, PauseEntry)]
    failures = [result for result in results if isinstance(result, InvalidTransitionError)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert len(tracker.ledger.open_entries(session.id)) == 1
    assert tracker.get_session(session.id).status is SessionStatus.PAUSED


def test_many_concurrent_transitions_keep_invariant(tracker, session):
    barrier = threading.Barrier(8)

    def toggle(index):
        barrier.wait()
        try:
            if index % 2:
                tracker.pause_session(session.id)
            else:
                tracker.resume_session(session.id)
        except InvalidTransitionError:
            pass

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(toggle, range(8)))

    status = tracker.get_session(session.id).status
    open_entries = tracker.ledger.open_entries(session.id)
    assert (status is SessionStatus.PAUSED) == (len(open_entries) == 1)
    assert len(open_entries) <= 1


def test_locked_session_times_out(tracker, session):
    with tracker.lifecycle.locks.hold(session.id):
        with pytest.raises(SessionBusyError):
            tracker.pause_session(session.id)

    assert tracker.get_session(session.id).status is SessionStatus.RUNNING


def test_other_sessions_are_not_blocked(tracker, refs, session):
    other = tracker.start_session(refs.employee.id, refs.machine.id, refs.mold.id)

    with tracker.lifecycle.locks.hold(session.id):
        tracker.pause_session(other.id)

    assert tracker.get_session(other.id).status is SessionStatus.PAUSED


def test_lock_registry_reuses_lock_per_id():
    registry = SessionLockRegistry(timeout_seconds=0.05)

    with registry.hold("a"):
        with registry.hold("b"):
            pass
        with pytest.raises(SessionBusyError):
            with registry.hold("a"):
                pass

    with registry.hold("a"):
        pass


def test_lock_registry_forgets_released_ids():
    registry = SessionLockRegistry(timeout_seconds=0.05)

    with registry.hold("a"):
        assert len(registry) == 1
        with pytest.raises(SessionBusyError):
            with registry.hold("a"):
                pass
        assert len(registry) == 1

    assert len(registry) == 0


def test_unknown_ids_do_not_grow_the_lock_registry(tracker, refs):
    for index in range(500):
        with pytest.raises(SessionNotFoundError):
            tracker.pause_session(f"bogus-{index}")
        with pytest.raises(SessionNotFoundError):
            tracker.end_session(f"bogus-{index}", 0)

    session = tracker.start_session(refs.employee.id, refs.machine.id, refs.mold.id)
    tracker.pause_session(session.id)
    tracker.resume_session(session.id)
    tracker.end_session(session.id, 10)

    assert len(tracker.lifecycle.locks) == 0
