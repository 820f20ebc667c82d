"""Derivation of time-based efficiency metrics for production sessions."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from .domain import (
    CycleParameters,
    PauseEntry,
    ProductionSession,
    SessionMetrics,
    SessionStatus,
)
from .errors import InvalidInputError

DEFAULT_CYCLE_TIME_SECONDS = 60.0
DEFAULT_PIECES_PER_CYCLE = 1


def _floor_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def round_tenth(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _validate(
    session: Optional[ProductionSession],
    pauses: Sequence[PauseEntry],
    cycle: CycleParameters,
    now: datetime,
) -> ProductionSession:
    if session is None:
        raise InvalidInputError("A session is required to compute metrics")
    if session.start_time is None:
        raise InvalidInputError(f"Session {session.id!r} has no start time")
    if now < session.start_time:
        raise InvalidInputError("Current time lies before the session start")
    if session.end_time is not None and session.end_time < session.start_time:
        raise InvalidInputError(f"Session {session.id!r} ends before it starts")
    if session.total_pieces is None or session.total_pieces < 0:
        raise InvalidInputError("Total pieces must be a non-negative number")
    if cycle.cycle_time_seconds is not None and cycle.cycle_time_seconds < 0:
        raise InvalidInputError("Cycle time cannot be negative")
    if cycle.pieces_per_cycle is not None and cycle.pieces_per_cycle < 0:
        raise InvalidInputError("Pieces per cycle cannot be negative")
    for pause in pauses:
        if pause.session_id != session.id:
            raise InvalidInputError(
                f"Pause {pause.id!r} belongs to session {pause.session_id!r}"
            )
        if pause.start_time < session.start_time:
            raise InvalidInputError(f"Pause {pause.id!r} starts before its session")
        if pause.end_time is not None and pause.end_time < pause.start_time:
            raise InvalidInputError(f"Pause {pause.id!r} ends before it starts")
        if pause.duration_minutes is not None and pause.duration_minutes < 0:
            raise InvalidInputError(f"Pause {pause.id!r} has a negative duration")
    return session


def calculate_session_metrics(
    session: Optional[ProductionSession],
    pauses: Sequence[PauseEntry],
    cycle: CycleParameters,
    now: datetime,
    *,
    default_cycle_time_seconds: float = DEFAULT_CYCLE_TIME_SECONDS,
) -> SessionMetrics:
    """Compute a performance snapshot for ``session``.

    The calculation is pure: it only looks at the records handed to it and
    the injected ``now``. Open pauses accrue time up to ``now`` (or up to the
    session end for a completed session), so a dashboard polling a paused
    session sees downtime grow live. Pause time is capped at the session time,
    so pause plus effective time always equals total time and downtime never
    exceeds 100%. Expected pieces truncate towards zero.
    """

    session = _validate(session, pauses, cycle, now)
    completed = session.status is SessionStatus.COMPLETED and session.end_time is not None
    effective_end = session.end_time if completed else now

    total_minutes = max(_floor_minutes(session.start_time, effective_end), 0)

    pause_minutes = 0
    for pause in pauses:
        if pause.duration_minutes is not None:
            pause_minutes += pause.duration_minutes
        elif pause.end_time is not None:
            pause_minutes += _floor_minutes(pause.start_time, pause.end_time)
        else:
            pause_minutes += max(_floor_minutes(pause.start_time, effective_end), 0)

    # per-pause rounding can push the sum past the floored session length
    pause_minutes = min(pause_minutes, total_minutes)
    effective_minutes = total_minutes - pause_minutes

    cycle_time = cycle.cycle_time_seconds or default_cycle_time_seconds
    pieces_per_cycle = cycle.pieces_per_cycle or DEFAULT_PIECES_PER_CYCLE
    pieces_per_hour = (3600 / cycle_time) * pieces_per_cycle
    expected_pieces = math.floor(effective_minutes * pieces_per_hour / 60)

    actual_pieces = session.total_pieces
    efficiency = (
        round_tenth(actual_pieces / expected_pieces * 100) if expected_pieces > 0 else 0.0
    )
    downtime = (
        round_tenth(pause_minutes / total_minutes * 100) if total_minutes > 0 else 0.0
    )

    return SessionMetrics(
        session_id=session.id,
        total_session_time_minutes=total_minutes,
        total_pause_time_minutes=pause_minutes,
        effective_work_time_minutes=effective_minutes,
        pause_count=len(pauses),
        cycle_time_seconds=float(cycle_time),
        pieces_per_cycle=pieces_per_cycle,
        expected_pieces_per_hour=round_tenth(pieces_per_hour),
        expected_pieces=expected_pieces,
        actual_pieces=actual_pieces,
        actual_efficiency_percent=efficiency,
        downtime_percentage=downtime,
    )


__all__ = [
    "calculate_session_metrics",
    "round_tenth",
    "DEFAULT_CYCLE_TIME_SECONDS",
    "DEFAULT_PIECES_PER_CYCLE",
]
