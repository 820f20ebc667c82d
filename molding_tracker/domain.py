"""Core data structures for tracking production sessions on molding machines."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidTransitionError


class SessionAction(str, Enum):
    """Mutations that can be applied to an existing production session."""

    PAUSE = "pause"
    RESUME = "resume"
    END = "end"


class SessionStatus(str, Enum):
    """Lifecycle stages for a production session."""

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self is SessionStatus.COMPLETED

    def apply(self, action: SessionAction) -> "SessionStatus":
        """Return the status reached by applying ``action``.

        Raises :class:`InvalidTransitionError` when the action is not legal
        from this status. ``completed`` has no outgoing transitions.
        """

        try:
            return _TRANSITIONS[(self, action)]
        except KeyError:
            raise InvalidTransitionError(
                f"Cannot {action.value} a {self.value} session",
                status=self,
                action=action,
            ) from None


_TRANSITIONS = {
    (SessionStatus.RUNNING, SessionAction.PAUSE): SessionStatus.PAUSED,
    (SessionStatus.RUNNING, SessionAction.END): SessionStatus.COMPLETED,
    (SessionStatus.PAUSED, SessionAction.RESUME): SessionStatus.RUNNING,
    (SessionStatus.PAUSED, SessionAction.END): SessionStatus.COMPLETED,
}


@dataclass(slots=True)
class Employee:
    """Machine operator master data."""

    id: str
    name: str
    registration: str
    is_active: bool = True


@dataclass(slots=True)
class Machine:
    """An injection-molding machine."""

    id: str
    name: str
    code: str
    is_active: bool = True


@dataclass(slots=True)
class Mold:
    """Tooling ("matrix") defining pieces per cycle and the default cycle time."""

    id: str
    name: str
    code: str
    piece_name: str
    pieces_per_cycle: int = 1
    cycle_time_seconds: Optional[float] = None
    is_active: bool = True


@dataclass(slots=True)
class RawMaterial:
    """Raw material that can be loaded into a machine."""

    id: str
    name: str
    code: str = ""
    is_active: bool = True


@dataclass(slots=True)
class MoldMaterial:
    """Material-specific cycle time configured for a mold."""

    mold_id: str
    material_id: str
    cycle_time_seconds: float

    @staticmethod
    def key_for(mold_id: str, material_id: str) -> str:
        return f"{mold_id}:{material_id}"

    @property
    def key(self) -> str:
        return self.key_for(self.mold_id, self.material_id)


@dataclass(slots=True)
class PauseReason:
    """Catalog entry describing why production was paused."""

    id: str
    name: str
    description: str = ""
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class CycleParameters:
    """Cycle time and cavity count resolved for a mold/material pair."""

    cycle_time_seconds: Optional[float]
    pieces_per_cycle: int


@dataclass(frozen=True, slots=True)
class ProductionSession:
    """One continuous work assignment of an employee, machine and mold."""

    id: str
    employee_id: str
    machine_id: str
    mold_id: str
    start_time: datetime
    material_id: Optional[str] = None
    status: SessionStatus = SessionStatus.RUNNING
    end_time: Optional[datetime] = None
    total_pieces: int = 0
    notes: str = ""


@dataclass(frozen=True, slots=True)
class PauseEntry:
    """A single interval during which a session was not producing."""

    id: str
    session_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    reason_id: Optional[str] = None
    note: Optional[str] = None
    new_mold_id: Optional[str] = None
    new_material_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass(frozen=True, slots=True)
class SessionMetrics:
    """Read-only performance snapshot derived from a session and its pauses."""

    session_id: str
    total_session_time_minutes: int
    total_pause_time_minutes: int
    effective_work_time_minutes: int
    pause_count: int
    cycle_time_seconds: float
    pieces_per_cycle: int
    expected_pieces_per_hour: float
    expected_pieces: int
    actual_pieces: int
    actual_efficiency_percent: float
    downtime_percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    "SessionAction",
    "SessionStatus",
    "Employee",
    "Machine",
    "Mold",
    "RawMaterial",
    "MoldMaterial",
    "PauseReason",
    "CycleParameters",
    "ProductionSession",
    "PauseEntry",
    "SessionMetrics",
]
