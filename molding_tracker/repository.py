"""Simple in-memory repositories used by the tracker service layer."""

from __future__ import annotations

import threading
from dataclasses import asdict, replace
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    MutableMapping,
    TypeVar,
)

if TYPE_CHECKING:
    from .domain import PauseEntry

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a dictionary.

    Records are treated as values: ``update_fields`` builds a new record and
    swaps it in under the repository lock, so readers only ever see whole
    records.
    """

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}
        self._lock = threading.RLock()

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def __len__(self) -> int:  # pragma: no cover - convenience
        with self._lock:
            return len(self._items)

    def add(self, item_id: str, item: T) -> None:
        with self._lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._items[item_id] = item

    def upsert(self, item_id: str, item: T) -> None:
        with self._lock:
            self._items[item_id] = item

    def get(self, item_id: str) -> T:
        with self._lock:
            try:
                return self._items[item_id]
            except KeyError as exc:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def update_fields(self, item_id: str, **changes: Any) -> T:
        with self._lock:
            current = self.get(item_id)
            updated = replace(current, **changes)
            self._items[item_id] = updated
            return updated

    def list(self) -> List[T]:
        """Return all records in insertion order."""

        with self._lock:
            return list(self._items.values())

    def as_dicts(self) -> Iterable[Dict]:  # pragma: no cover - convenience
        for item in self.list():
            yield asdict(item)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())


class InMemoryPauseRepository(InMemoryRepository["PauseEntry"]):
    """Pause store that also indexes entry ids by session.

    ``list_by_session`` only touches the entries of one session, so reading
    a session's ledger does not get slower as other sessions accumulate
    pauses.
    """

    def __init__(self) -> None:
        super().__init__()
        self._by_session: Dict[str, List[str]] = {}

    def _index(self, item_id: str, item: "PauseEntry") -> None:
        previous = self._items.get(item_id)
        if previous is not None:
            if previous.session_id == item.session_id:
                return
            self._by_session[previous.session_id].remove(item_id)
        self._by_session.setdefault(item.session_id, []).append(item_id)

    def add(self, item_id: str, item: "PauseEntry") -> None:
        with self._lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._index(item_id, item)
            self._items[item_id] = item

    def upsert(self, item_id: str, item: "PauseEntry") -> None:
        with self._lock:
            self._index(item_id, item)
            self._items[item_id] = item

    def list_by_session(self, session_id: str) -> List["PauseEntry"]:
        """Return the session's entries ordered by start time, then insertion."""

        with self._lock:
            entries = [self._items[item_id] for item_id in self._by_session.get(session_id, ())]
        entries.sort(key=lambda entry: entry.start_time)
        return entries


__all__ = [
    "InMemoryRepository",
    "InMemoryPauseRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]
