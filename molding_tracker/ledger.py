"""Append-only ledger of pause intervals for production sessions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Protocol
from uuid import uuid4

from .domain import PauseEntry
from .errors import InvariantViolationError
from .repository import InMemoryPauseRepository

logger = logging.getLogger(__name__)


def whole_minutes_rounded(start: datetime, end: datetime) -> int:
    """Length of ``[start, end]`` in minutes, rounded half up."""

    seconds = (end - start).total_seconds()
    return int((seconds + 30) // 60)


class PauseStore(Protocol):
    """Storage a ledger writes to; see InMemoryPauseRepository and SQLitePauseRepository."""

    def add(self, item_id: str, item: PauseEntry) -> None: ...

    def get(self, item_id: str) -> PauseEntry: ...

    def update_fields(self, item_id: str, **changes: Any) -> PauseEntry: ...

    def list_by_session(self, session_id: str) -> List[PauseEntry]: ...


class PauseLedger:
    """Opens, closes and lists pause entries.

    Entries are never deleted. An entry is written twice at most: once when
    the pause opens and once when it closes, the closing write carrying the
    duration and any mold/material change in a single update.
    """

    def __init__(self, repository: Optional[PauseStore] = None) -> None:
        self.entries = repository if repository is not None else InMemoryPauseRepository()

    def open_pause(
        self,
        session_id: str,
        start_time: datetime,
        reason_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> PauseEntry:
        entry = PauseEntry(
            id=str(uuid4()),
            session_id=session_id,
            start_time=start_time,
            reason_id=reason_id,
            note=note,
        )
        self.entries.add(entry.id, entry)
        logger.debug("Opened pause %s for session %s", entry.id, session_id)
        return entry

    def close_pause(
        self,
        entry_id: str,
        end_time: datetime,
        new_mold_id: Optional[str] = None,
        new_material_id: Optional[str] = None,
    ) -> PauseEntry:
        entry = self.entries.get(entry_id)
        if not entry.is_open:
            raise InvariantViolationError(
                f"Pause {entry_id!r} of session {entry.session_id!r} is already closed"
            )
        if end_time < entry.start_time:
            raise InvariantViolationError(
                f"Pause {entry_id!r} cannot end before it started"
            )
        closed = self.entries.update_fields(
            entry_id,
            end_time=end_time,
            duration_minutes=whole_minutes_rounded(entry.start_time, end_time),
            new_mold_id=new_mold_id,
            new_material_id=new_material_id,
        )
        logger.debug(
            "Closed pause %s for session %s after %s min",
            entry_id,
            entry.session_id,
            closed.duration_minutes,
        )
        return closed

    def list_by_session(self, session_id: str) -> List[PauseEntry]:
        """Return the session's entries, oldest first."""

        return self.entries.list_by_session(session_id)

    def open_entries(self, session_id: str) -> List[PauseEntry]:
        return [entry for entry in self.list_by_session(session_id) if entry.is_open]


__all__ = ["PauseLedger", "PauseStore", "whole_minutes_rounded"]
