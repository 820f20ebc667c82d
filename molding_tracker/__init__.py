"""Production session tracking for injection-molding shops.

This package records which employee, machine, mold and raw material a
production session runs with, drives the session through its running,
paused and completed states while keeping an append-only ledger of pauses,
and derives efficiency metrics comparing actual to expected output.
"""

from .clock import ManualClock, SystemClock
from .domain import (
    CycleParameters,
    PauseEntry,
    ProductionSession,
    SessionAction,
    SessionMetrics,
    SessionStatus,
)
from .errors import (
    InvalidInputError,
    InvalidReferenceError,
    InvalidTransitionError,
    InvariantViolationError,
    SessionBusyError,
    SessionNotFoundError,
    TrackerError,
)
from .lifecycle import SessionLifecycleController
from .ledger import PauseLedger
from .metrics import calculate_session_metrics
from .services import TrackerService

__all__ = [
    "ManualClock",
    "SystemClock",
    "CycleParameters",
    "PauseEntry",
    "ProductionSession",
    "SessionAction",
    "SessionMetrics",
    "SessionStatus",
    "InvalidInputError",
    "InvalidReferenceError",
    "InvalidTransitionError",
    "InvariantViolationError",
    "SessionBusyError",
    "SessionNotFoundError",
    "TrackerError",
    "SessionLifecycleController",
    "PauseLedger",
    "calculate_session_metrics",
    "TrackerService",
]
