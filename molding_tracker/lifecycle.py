"""State machine driving production sessions through running, paused and completed."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Protocol
from uuid import uuid4

from .clock import Clock, SystemClock
from .domain import (
    PauseEntry,
    ProductionSession,
    SessionAction,
    SessionStatus,
)
from .errors import (
    InvalidInputError,
    InvariantViolationError,
    SessionBusyError,
    SessionNotFoundError,
)
from .ledger import PauseLedger
from .repository import InMemoryRepository, RecordNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class ReferenceResolver(Protocol):
    """Checks that referenced master data exists; raises InvalidReferenceError otherwise."""

    def require_employee(self, employee_id: str) -> Any: ...

    def require_machine(self, machine_id: str) -> Any: ...

    def require_mold(self, mold_id: str) -> Any: ...

    def require_material(self, material_id: str) -> Any: ...

    def require_pause_reason(self, reason_id: str) -> Any: ...


class _HeldLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class SessionLockRegistry:
    """Hands out one lock per session id.

    An entry lives only while some caller holds or waits for it, so the
    registry stays as small as the number of sessions being worked on.
    Two callers asking for the same id contend on the same lock while
    different ids never do.

    The locks are process-local: the tracker must run as a single process
    (one uvicorn worker) for the per-session guarantees to hold.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: Dict[str, _HeldLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, session_id: str) -> _HeldLock:
        with self._guard:
            held = self._locks.get(session_id)
            if held is None:
                held = self._locks[session_id] = _HeldLock()
            held.users += 1
            return held

    def _checkin(self, session_id: str, held: _HeldLock) -> None:
        with self._guard:
            held.users -= 1
            if held.users == 0:
                del self._locks[session_id]

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        held = self._checkout(session_id)
        try:
            if not held.lock.acquire(timeout=self.timeout_seconds):
                raise SessionBusyError(
                    f"Session {session_id!r} is locked by another operation"
                )
            try:
                yield
            finally:
                held.lock.release()
        finally:
            self._checkin(session_id, held)


class SessionLifecycleController:
    """Owns the status transitions of production sessions and their pause ledger.

    Every mutating call reads the session, checks the transition and commits
    while holding that session's lock. Writes are ordered so that a reader
    never sees ``paused`` without an open pause: entering ``paused`` writes
    the ledger first, leaving it writes the session first.
    Unknown session ids are rejected before a lock is taken.
    """

    def __init__(
        self,
        references: ReferenceResolver,
        *,
        sessions: Optional[InMemoryRepository[ProductionSession]] = None,
        ledger: Optional[PauseLedger] = None,
        clock: Optional[Clock] = None,
        locks: Optional[SessionLockRegistry] = None,
    ) -> None:
        self.references = references
        self.sessions = sessions if sessions is not None else InMemoryRepository()
        self.ledger = ledger or PauseLedger()
        self.clock = clock or SystemClock()
        self.locks = locks or SessionLockRegistry()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_session(self, session_id: str) -> ProductionSession:
        try:
            return self.sessions.get(session_id)
        except RecordNotFoundError as exc:
            raise SessionNotFoundError(
                f"Production session {session_id!r} not found"
            ) from exc

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def start(
        self,
        employee_id: str,
        machine_id: str,
        mold_id: str,
        material_id: Optional[str] = None,
        *,
        notes: str = "",
    ) -> ProductionSession:
        self.references.require_employee(employee_id)
        self.references.require_machine(machine_id)
        self.references.require_mold(mold_id)
        if material_id is not None:
            self.references.require_material(material_id)

        session = ProductionSession(
            id=str(uuid4()),
            employee_id=employee_id,
            machine_id=machine_id,
            mold_id=mold_id,
            material_id=material_id,
            start_time=self.clock.now(),
            notes=notes,
        )
        self.sessions.add(session.id, session)
        logger.info(
            "Started session %s (employee=%s machine=%s mold=%s material=%s)",
            session.id,
            employee_id,
            machine_id,
            mold_id,
            material_id,
        )
        return session

    def pause(
        self,
        session_id: str,
        reason_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> PauseEntry:
        self.get_session(session_id)
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            new_status = session.status.apply(SessionAction.PAUSE)
            if reason_id is not None:
                self.references.require_pause_reason(reason_id)
            self._require_no_open_pause(session)

            now = self.clock.now()
            entry = self.ledger.open_pause(session_id, now, reason_id=reason_id, note=note)
            try:
                self.sessions.update_fields(session_id, status=new_status)
            except Exception:
                # entries are never deleted; the orphan is closed with zero duration
                logger.exception("Pausing session %s failed, closing pause %s", session_id, entry.id)
                self.ledger.close_pause(entry.id, now)
                raise
            logger.info("Paused session %s (reason=%s)", session_id, reason_id)
            return entry

    def resume(
        self,
        session_id: str,
        new_mold_id: Optional[str] = None,
        new_material_id: Optional[str] = None,
    ) -> ProductionSession:
        self.get_session(session_id)
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            new_status = session.status.apply(SessionAction.RESUME)
            entry = self._single_open_pause(session)
            if new_mold_id is not None:
                self.references.require_mold(new_mold_id)
            if new_material_id is not None:
                self.references.require_material(new_material_id)

            changes: Dict[str, Any] = {"status": new_status}
            if new_mold_id is not None:
                changes["mold_id"] = new_mold_id
            if new_material_id is not None:
                changes["material_id"] = new_material_id

            now = self.clock.now()
            updated = self.sessions.update_fields(session_id, **changes)
            self._close_or_restore(
                session,
                entry,
                now,
                new_mold_id=new_mold_id,
                new_material_id=new_material_id,
            )
            logger.info(
                "Resumed session %s (mold=%s material=%s)",
                session_id,
                updated.mold_id,
                updated.material_id,
            )
            return updated

    def end(self, session_id: str, total_pieces: int) -> ProductionSession:
        if isinstance(total_pieces, bool) or not isinstance(total_pieces, int):
            raise InvalidInputError("Total pieces must be an integer")
        if total_pieces < 0:
            raise InvalidInputError("Total pieces cannot be negative")

        self.get_session(session_id)
        with self.locks.hold(session_id):
            session = self.get_session(session_id)
            new_status = session.status.apply(SessionAction.END)
            entry = (
                self._single_open_pause(session)
                if session.status is SessionStatus.PAUSED
                else None
            )
            if entry is None:
                self._require_no_open_pause(session)

            now = self.clock.now()
            updated = self.sessions.update_fields(
                session_id,
                status=new_status,
                end_time=now,
                total_pieces=total_pieces,
            )
            if entry is not None:
                self._close_or_restore(session, entry, now)
                logger.info("Closed dangling pause %s while ending session %s", entry.id, session_id)
            logger.info("Ended session %s with %s pieces", session_id, total_pieces)
            return updated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _close_or_restore(
        self,
        previous: ProductionSession,
        entry: PauseEntry,
        end_time: datetime,
        *,
        new_mold_id: Optional[str] = None,
        new_material_id: Optional[str] = None,
    ) -> PauseEntry:
        """Close ``entry``; if that fails, put the session back as it was."""

        try:
            return self.ledger.close_pause(
                entry.id,
                end_time,
                new_mold_id=new_mold_id,
                new_material_id=new_material_id,
            )
        except Exception:
            logger.exception(
                "Closing pause %s failed, restoring session %s", entry.id, previous.id
            )
            self.sessions.upsert(previous.id, previous)
            raise

    def _single_open_pause(self, session: ProductionSession) -> PauseEntry:
        open_entries = self.ledger.open_entries(session.id)
        if len(open_entries) != 1:
            self._report_violation(
                session,
                f"Session {session.id!r} is paused with {len(open_entries)} open pauses",
            )
        return open_entries[0]

    def _require_no_open_pause(self, session: ProductionSession) -> None:
        if self.ledger.open_entries(session.id):
            self._report_violation(
                session,
                f"Session {session.id!r} is {session.status.value} but has an open pause",
            )

    def _report_violation(self, session: ProductionSession, message: str) -> None:
        logger.error(
            "%s; session=%r ledger=%r",
            message,
            session,
            self.ledger.list_by_session(session.id),
        )
        raise InvariantViolationError(message)


__all__ = [
    "ReferenceResolver",
    "SessionLifecycleController",
    "SessionLockRegistry",
    "DEFAULT_LOCK_TIMEOUT_SECONDS",
]
