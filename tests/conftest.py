"""Shared fixtures for the production tracker tests."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from molding_tracker import ManualClock, TrackerService
from molding_tracker.config import TrackerConfig

T0 = datetime(2024, 3, 4, 7, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def config(monkeypatch):
    monkeypatch.setenv("TRACKER_LOCK_TIMEOUT", "0.2")
    return TrackerConfig()


@pytest.fixture
def tracker(clock, config):
    return TrackerService(clock=clock, config=config)


@pytest.fixture
def refs(tracker):
    """Master data for one machine running a two-cavity mold."""
    employee = tracker.register_employee("Ana Souza", "OP-0142")
    machine = tracker.register_machine("Romi EN 150", "INJ-03")
    mold = tracker.register_mold(
        "Matriz Tampa", "MT-028", "Tampa 28mm", pieces_per_cycle=2, cycle_time_seconds=60
    )
    other_mold = tracker.register_mold(
        "Matriz Copo", "MC-200", "Copo 200ml", pieces_per_cycle=1, cycle_time_seconds=45
    )
    material = tracker.register_raw_material("Polipropileno H503", code="PP-H503")
    fast_material = tracker.register_raw_material("PEAD HC7260", code="PE-7260")
    tracker.link_mold_material(mold.id, fast_material.id, cycle_time_seconds=30)
    maintenance = tracker.register_pause_reason("maintenance", description="Mold repair")
    return SimpleNamespace(
        employee=employee,
        machine=machine,
        mold=mold,
        other_mold=other_mold,
        material=material,
        fast_material=fast_material,
        maintenance=maintenance,
    )


@pytest.fixture
def session(tracker, refs):
    return tracker.start_session(refs.employee.id, refs.machine.id, refs.mold.id)
