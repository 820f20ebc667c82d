"""Service layer that exposes production tracking use-cases to clients."""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Union
from uuid import uuid4

from .clock import Clock, SystemClock
from .config import TrackerConfig
from .domain import (
    CycleParameters,
    Employee,
    Machine,
    Mold,
    MoldMaterial,
    PauseEntry,
    PauseReason,
    ProductionSession,
    RawMaterial,
    SessionMetrics,
    SessionStatus,
)
from .errors import InvalidInputError, InvalidReferenceError
from .ledger import PauseLedger, PauseStore
from .lifecycle import SessionLifecycleController, SessionLockRegistry
from .metrics import calculate_session_metrics, round_tenth
from .repository import InMemoryRepository, RecordNotFoundError


class TrackerService:
    """Facade bundling reference data, the session lifecycle and metrics."""

    def __init__(
        self,
        employee_repo: Optional[InMemoryRepository[Employee]] = None,
        machine_repo: Optional[InMemoryRepository[Machine]] = None,
        mold_repo: Optional[InMemoryRepository[Mold]] = None,
        raw_material_repo: Optional[InMemoryRepository[RawMaterial]] = None,
        mold_material_repo: Optional[InMemoryRepository[MoldMaterial]] = None,
        pause_reason_repo: Optional[InMemoryRepository[PauseReason]] = None,
        session_repo: Optional[InMemoryRepository[ProductionSession]] = None,
        pause_repo: Optional[PauseStore] = None,
        *,
        clock: Optional[Clock] = None,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self.clock = clock or SystemClock()
        self.employees = employee_repo if employee_repo is not None else InMemoryRepository()
        self.machines = machine_repo if machine_repo is not None else InMemoryRepository()
        self.molds = mold_repo if mold_repo is not None else InMemoryRepository()
        self.raw_materials = (
            raw_material_repo if raw_material_repo is not None else InMemoryRepository()
        )
        self.mold_materials = (
            mold_material_repo if mold_material_repo is not None else InMemoryRepository()
        )
        self.pause_reasons = (
            pause_reason_repo if pause_reason_repo is not None else InMemoryRepository()
        )
        self.sessions = session_repo if session_repo is not None else InMemoryRepository()
        self.ledger = PauseLedger(pause_repo)
        self.lifecycle = SessionLifecycleController(
            self,
            sessions=self.sessions,
            ledger=self.ledger,
            clock=self.clock,
            locks=SessionLockRegistry(self.config.lock_timeout_seconds),
        )

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------
    def register_employee(self, name: str, registration: str) -> Employee:
        employee = Employee(id=str(uuid4()), name=name, registration=registration)
        self.employees.add(employee.id, employee)
        return employee

    def register_machine(self, name: str, code: str) -> Machine:
        machine = Machine(id=str(uuid4()), name=name, code=code)
        self.machines.add(machine.id, machine)
        return machine

    def register_mold(
        self,
        name: str,
        code: str,
        piece_name: str,
        *,
        pieces_per_cycle: int = 1,
        cycle_time_seconds: Optional[float] = None,
    ) -> Mold:
        if pieces_per_cycle < 1:
            raise InvalidInputError("A mold produces at least one piece per cycle")
        if cycle_time_seconds is not None and cycle_time_seconds <= 0:
            raise InvalidInputError("Cycle time must be positive")
        mold = Mold(
            id=str(uuid4()),
            name=name,
            code=code,
            piece_name=piece_name,
            pieces_per_cycle=pieces_per_cycle,
            cycle_time_seconds=cycle_time_seconds,
        )
        self.molds.add(mold.id, mold)
        return mold

    def register_raw_material(self, name: str, *, code: str = "") -> RawMaterial:
        material = RawMaterial(id=str(uuid4()), name=name, code=code)
        self.raw_materials.add(material.id, material)
        return material

    def link_mold_material(
        self, mold_id: str, material_id: str, cycle_time_seconds: float
    ) -> MoldMaterial:
        """Configure the cycle time ``mold_id`` runs at with ``material_id``."""

        self.require_mold(mold_id)
        self.require_material(material_id)
        if cycle_time_seconds <= 0:
            raise InvalidInputError("Cycle time must be positive")
        link = MoldMaterial(
            mold_id=mold_id,
            material_id=material_id,
            cycle_time_seconds=cycle_time_seconds,
        )
        self.mold_materials.upsert(link.key, link)
        return link

    def register_pause_reason(self, name: str, *, description: str = "") -> PauseReason:
        reason = PauseReason(id=str(uuid4()), name=name, description=description)
        self.pause_reasons.add(reason.id, reason)
        return reason

    def require_employee(self, employee_id: str) -> Employee:
        return self._require(self.employees, employee_id, "Employee")

    def require_machine(self, machine_id: str) -> Machine:
        return self._require(self.machines, machine_id, "Machine")

    def require_mold(self, mold_id: str) -> Mold:
        return self._require(self.molds, mold_id, "Mold")

    def require_material(self, material_id: str) -> RawMaterial:
        return self._require(self.raw_materials, material_id, "Raw material")

    def require_pause_reason(self, reason_id: str) -> PauseReason:
        return self._require(self.pause_reasons, reason_id, "Pause reason")

    @staticmethod
    def _require(
        repository: InMemoryRepository,
        item_id: str,
        label: str,
    ) -> Union[Employee, Machine, Mold, RawMaterial, PauseReason]:
        try:
            record = repository.get(item_id)
        except RecordNotFoundError as exc:
            raise InvalidReferenceError(f"{label} {item_id!r} does not exist") from exc
        if not record.is_active:
            raise InvalidReferenceError(f"{label} {item_id!r} is inactive")
        return record

    def resolve_cycle_parameters(
        self, mold_id: str, material_id: Optional[str] = None
    ) -> CycleParameters:
        try:
            mold = self.molds.get(mold_id)
        except RecordNotFoundError as exc:
            raise InvalidReferenceError(f"Mold {mold_id!r} does not exist") from exc
        cycle_time = mold.cycle_time_seconds
        if material_id is not None:
            key = MoldMaterial.key_for(mold_id, material_id)
            if key in self.mold_materials:
                cycle_time = self.mold_materials.get(key).cycle_time_seconds
        return CycleParameters(
            cycle_time_seconds=cycle_time,
            pieces_per_cycle=mold.pieces_per_cycle,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def start_session(
        self,
        employee_id: str,
        machine_id: str,
        mold_id: str,
        material_id: Optional[str] = None,
        *,
        notes: str = "",
    ) -> ProductionSession:
        return self.lifecycle.start(
            employee_id, machine_id, mold_id, material_id, notes=notes
        )

    def pause_session(
        self,
        session_id: str,
        reason_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> PauseEntry:
        return self.lifecycle.pause(session_id, reason_id, note)

    def resume_session(
        self,
        session_id: str,
        new_mold_id: Optional[str] = None,
        new_material_id: Optional[str] = None,
    ) -> ProductionSession:
        return self.lifecycle.resume(session_id, new_mold_id, new_material_id)

    def end_session(self, session_id: str, total_pieces: int) -> ProductionSession:
        return self.lifecycle.end(session_id, total_pieces)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_session(self, session_id: str) -> ProductionSession:
        return self.lifecycle.get_session(session_id)

    def list_sessions(self) -> List[ProductionSession]:
        """All sessions, most recently started first."""

        return sorted(
            self.sessions.list(), key=lambda session: session.start_time, reverse=True
        )

    def list_active_sessions(self) -> List[ProductionSession]:
        sessions = [
            session
            for session in self.sessions.list()
            if session.status is not SessionStatus.COMPLETED
        ]
        sessions.sort(key=lambda session: session.start_time)
        return sessions

    def session_pauses(self, session_id: str) -> List[PauseEntry]:
        self.get_session(session_id)
        return self.ledger.list_by_session(session_id)

    def session_metrics(self, session_id: str) -> SessionMetrics:
        # session before ledger: a session read as paused always has its
        # pause entry written already
        session = self.get_session(session_id)
        pauses = self.ledger.list_by_session(session_id)
        cycle = self.resolve_cycle_parameters(session.mold_id, session.material_id)
        return calculate_session_metrics(
            session,
            pauses,
            cycle,
            self.clock.now(),
            default_cycle_time_seconds=self.config.default_cycle_time_seconds,
        )

    def dashboard_stats(self, day: Optional[date] = None) -> Dict[str, float]:
        day = day or self.clock.now().date()
        sessions = self.sessions.list()
        todays = [session for session in sessions if session.start_time.date() == day]
        efficiencies = [
            self.session_metrics(session.id).actual_efficiency_percent
            for session in todays
            if session.status is SessionStatus.COMPLETED
        ]
        return {
            "running_sessions": sum(
                1 for session in sessions if session.status is SessionStatus.RUNNING
            ),
            "paused_sessions": sum(
                1 for session in sessions if session.status is SessionStatus.PAUSED
            ),
            "active_machines": sum(1 for machine in self.machines if machine.is_active),
            "active_employees": sum(
                1 for employee in self.employees if employee.is_active
            ),
            "today_production": sum(session.total_pieces for session in todays),
            "overall_efficiency": round_tenth(sum(efficiencies) / len(efficiencies))
            if efficiencies
            else 0.0,
        }


__all__ = ["TrackerService"]
