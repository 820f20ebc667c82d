"""Tests for the append-only pause ledger."""

from dataclasses import replace
from datetime import timedelta

import pytest

from molding_tracker import InvariantViolationError, PauseEntry, PauseLedger
from molding_tracker.ledger import whole_minutes_rounded
from molding_tracker.repository import InMemoryPauseRepository

from conftest import T0


@pytest.mark.parametrize(
    "seconds, minutes",
    [(0, 0), (29, 0), (30, 1), (89, 1), (90, 2), (15 * 60, 15)],
)
def test_duration_rounds_half_up(seconds, minutes):
    assert whole_minutes_rounded(T0, T0 + timedelta(seconds=seconds)) == minutes


def test_open_and_close_pause():
    ledger = PauseLedger()
    entry = ledger.open_pause("s1", T0, reason_id="r1", note="nozzle")

    assert entry.is_open
    assert entry.duration_minutes is None
    assert ledger.open_entries("s1") == [entry]

    closed = ledger.close_pause(
        entry.id, T0 + timedelta(minutes=12), new_mold_id="m2", new_material_id="p2"
    )

    assert not closed.is_open
    assert closed.duration_minutes == 12
    assert closed.reason_id == "r1"
    assert closed.note == "nozzle"
    assert closed.new_mold_id == "m2"
    assert closed.new_material_id == "p2"
    assert ledger.open_entries("s1") == []
    # the entry returned by open_pause is a snapshot and stays untouched
    assert entry.is_open


def test_closing_twice_is_an_invariant_violation():
    ledger = PauseLedger()
    entry = ledger.open_pause("s1", T0)
    ledger.close_pause(entry.id, T0 + timedelta(minutes=1))

    with pytest.raises(InvariantViolationError):
        ledger.close_pause(entry.id, T0 + timedelta(minutes=2))


def test_close_before_start_is_rejected():
    ledger = PauseLedger()
    entry = ledger.open_pause("s1", T0)

    with pytest.raises(InvariantViolationError):
        ledger.close_pause(entry.id, T0 - timedelta(seconds=1))
    assert ledger.entries.get(entry.id).is_open


def test_list_by_session_is_ordered_and_scoped():
    ledger = PauseLedger()
    late = ledger.open_pause("s1", T0 + timedelta(minutes=30))
    ledger.open_pause("s2", T0 + timedelta(minutes=5))
    early = ledger.open_pause("s1", T0)
    tie = ledger.open_pause("s1", T0)

    entries = ledger.list_by_session("s1")

    assert [entry.id for entry in entries] == [early.id, tie.id, late.id]
    assert ledger.list_by_session("unknown") == []


def test_list_returns_fresh_snapshots():
    ledger = PauseLedger()
    entry = ledger.open_pause("s1", T0)
    before = ledger.list_by_session("s1")

    ledger.close_pause(entry.id, T0 + timedelta(minutes=3))

    assert before[0].is_open
    assert ledger.list_by_session("s1")[0].duration_minutes == 3


def test_list_by_session_reads_only_that_session(monkeypatch):
    ledger = PauseLedger()
    for index in range(50):
        ledger.open_pause(f"other-{index}", T0)
    mine = ledger.open_pause("s1", T0 + timedelta(minutes=1))

    def full_scan():
        raise AssertionError("list_by_session must not scan every entry")

    monkeypatch.setattr(ledger.entries, "list", full_scan)

    assert ledger.list_by_session("s1") == [mine]
    assert ledger.open_entries("s1") == [mine]


def test_session_index_follows_upserts():
    repository = InMemoryPauseRepository()
    entry = PauseEntry(id="p1", session_id="s1", start_time=T0)
    repository.add(entry.id, entry)

    repository.upsert(entry.id, replace(entry, session_id="s2"))
    repository.upsert(entry.id, replace(entry, session_id="s2", note="moved"))

    assert repository.list_by_session("s1") == []
    assert [item.note for item in repository.list_by_session("s2")] == ["moved"]
