"""Tests for the SQLite-backed repositories."""

from dataclasses import replace
from datetime import timedelta

import pytest

from molding_tracker import PauseEntry, SessionStatus, TrackerService
from molding_tracker.domain import Machine
from molding_tracker.repository import DuplicateRecordError, RecordNotFoundError
from molding_tracker.storage import TrackerDatabase

from conftest import T0


@pytest.fixture
def database(tmp_path):
    with TrackerDatabase(str(tmp_path / "tracker.sqlite3")) as db:
        yield db


def test_add_get_and_update(database):
    machine = Machine(id="m1", name="Romi EN 150", code="INJ-03")
    database.machines.add(machine.id, machine)

    assert "m1" in database.machines
    assert database.machines.get("m1") == machine

    updated = database.machines.update_fields("m1", is_active=False)

    assert updated.is_active is False
    assert database.machines.get("m1").is_active is False


def test_duplicate_and_missing_records(database):
    machine = Machine(id="m1", name="Romi", code="INJ-03")
    database.machines.add(machine.id, machine)

    with pytest.raises(DuplicateRecordError):
        database.machines.add(machine.id, machine)
    with pytest.raises(RecordNotFoundError):
        database.machines.get("m2")
    with pytest.raises(RecordNotFoundError):
        database.machines.update_fields("m2", name="Haitian")


def test_list_keeps_insertion_order(database):
    for item_id in ["z", "a", "m"]:
        database.machines.add(item_id, Machine(id=item_id, name=item_id, code=item_id))

    assert [machine.id for machine in database.machines.list()] == ["z", "a", "m"]


def test_full_session_survives_reopen(tmp_path, clock, config):
    path = str(tmp_path / "tracker.sqlite3")

    def service_for(db):
        return TrackerService(
            employee_repo=db.employees,
            machine_repo=db.machines,
            mold_repo=db.molds,
            raw_material_repo=db.raw_materials,
            mold_material_repo=db.mold_materials,
            pause_reason_repo=db.pause_reasons,
            session_repo=db.sessions,
            pause_repo=db.pauses,
            clock=clock,
            config=config,
        )

    with TrackerDatabase(path) as db:
        tracker = service_for(db)
        employee = tracker.register_employee("Ana", "OP-1")
        machine = tracker.register_machine("Romi", "INJ-1")
        mold = tracker.register_mold(
            "Tampa", "MT-1", "Tampa", pieces_per_cycle=2, cycle_time_seconds=60
        )
        material = tracker.register_raw_material("PEAD")
        tracker.link_mold_material(mold.id, material.id, cycle_time_seconds=30)
        session = tracker.start_session(employee.id, machine.id, mold.id)
        clock.advance(minutes=10)
        tracker.pause_session(session.id)
        clock.advance(minutes=15)
        tracker.resume_session(session.id, new_material_id=material.id)
        clock.advance(minutes=30)
        tracker.end_session(session.id, 60)

    clock.advance(minutes=180)
    with TrackerDatabase(path) as db:
        tracker = service_for(db)
        stored = tracker.get_session(session.id)
        metrics = tracker.session_metrics(session.id)
        (pause,) = tracker.session_pauses(session.id)

    assert stored.status is SessionStatus.COMPLETED
    assert pause.new_material_id == material.id
    assert metrics.total_session_time_minutes == 55
    assert metrics.total_pause_time_minutes == 15
    assert metrics.cycle_time_seconds == 30
    assert metrics.expected_pieces == 160


def test_pauses_are_queried_per_session(database):
    later = PauseEntry(id="p1", session_id="s1", start_time=T0 + timedelta(minutes=40))
    elsewhere = PauseEntry(id="p2", session_id="s2", start_time=T0)
    earlier = PauseEntry(id="p3", session_id="s1", start_time=T0)
    tie = PauseEntry(id="p4", session_id="s1", start_time=T0)
    for entry in (later, elsewhere, earlier, tie):
        database.pauses.add(entry.id, entry)

    database.pauses.update_fields("p3", end_time=T0 + timedelta(minutes=5), duration_minutes=5)

    entries = database.pauses.list_by_session("s1")
    assert [entry.id for entry in entries] == ["p3", "p4", "p1"]
    assert entries[0].duration_minutes == 5
    assert database.pauses.list_by_session("missing") == []


def test_pause_lookup_uses_session_index(database):
    database.pauses.add("p1", PauseEntry(id="p1", session_id="s1", start_time=T0))

    plan = database.connection.execute(
        "EXPLAIN QUERY PLAN SELECT payload FROM production_pauses "
        "WHERE session_id = ? ORDER BY start_ts, rowid",
        ("s1",),
    ).fetchall()

    assert any("ix_production_pauses_session" in row[3] for row in plan)


def test_pause_upsert_keeps_lookup_columns_current(database):
    entry = PauseEntry(id="p1", session_id="s1", start_time=T0)
    database.pauses.add(entry.id, entry)

    database.pauses.upsert(entry.id, replace(entry, session_id="s2"))

    assert database.pauses.list_by_session("s1") == []
    assert [item.id for item in database.pauses.list_by_session("s2")] == ["p1"]
