"""SQLite-backed persistence helpers for the production tracker."""

from __future__ import annotations

import logging
import pickle
import sqlite3
import threading
from dataclasses import replace
from typing import Any, Generic, Iterator, List, Optional, Tuple, TypeVar

from .domain import (
    Employee,
    Machine,
    Mold,
    MoldMaterial,
    PauseEntry,
    PauseReason,
    ProductionSession,
    RawMaterial,
)
from .repository import DuplicateRecordError, RecordNotFoundError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite.

    All repositories of one :class:`TrackerDatabase` share a connection and
    a lock, so each statement plus its commit is atomic with respect to
    other threads.
    """

    #: extra ``name TYPE`` columns stored next to the pickled payload
    columns: Tuple[str, ...] = ()

    def __init__(
        self,
        connection: sqlite3.Connection,
        table: str,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._connection = connection
        self._table = table
        self._lock = lock or threading.RLock()
        with self._lock:
            self._create_schema()
            self._connection.commit()

    def _create_schema(self) -> None:
        extra = "".join(f", {column}" for column in self.columns)
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {self._table} ("  # nosec - static table names
            f"id TEXT PRIMARY KEY, payload BLOB NOT NULL{extra})"
        )

    def _column_values(self, item: T) -> Tuple[Any, ...]:
        return ()

    def _column_names(self) -> List[str]:
        return [column.split()[0] for column in self.columns]

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
            )
            return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:  # pragma: no cover - simple delegation
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT COUNT(1) FROM {self._table}"
            )
            value = cursor.fetchone()
        return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def _insert_sql(self) -> str:
        names = ["id", "payload", *self._column_names()]
        marks = ", ".join("?" for _ in names)
        return f"INSERT INTO {self._table} ({', '.join(names)}) VALUES ({marks})"

    def add(self, item_id: str, item: T) -> None:
        params = (item_id, pickle.dumps(item), *self._column_values(item))
        with self._lock:
            try:
                self._connection.execute(self._insert_sql(), params)
            except sqlite3.IntegrityError as exc:
                self._connection.rollback()
                raise DuplicateRecordError(
                    f"Record with id {item_id!r} already exists"
                ) from exc
            self._connection.commit()

    def upsert(self, item_id: str, item: T) -> None:
        params = (item_id, pickle.dumps(item), *self._column_values(item))
        assignments = ", ".join(
            f"{name} = excluded.{name}" for name in ["payload", *self._column_names()]
        )
        with self._lock:
            self._connection.execute(
                f"{self._insert_sql()} ON CONFLICT(id) DO UPDATE SET {assignments}",
                params,
            )
            self._connection.commit()

    def get(self, item_id: str) -> T:
        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
            )
            row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def update_fields(self, item_id: str, **changes: Any) -> T:
        with self._lock:
            updated = replace(self.get(item_id), **changes)
            assignments = ", ".join(
                f"{name} = ?" for name in ["payload", *self._column_names()]
            )
            self._connection.execute(
                f"UPDATE {self._table} SET {assignments} WHERE id = ?",
                (pickle.dumps(updated), *self._column_values(updated), item_id),
            )
            self._connection.commit()
        return updated

    def list(self) -> List[T]:
        """Return all records in insertion order."""

        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} ORDER BY rowid"
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]


class SQLitePauseRepository(SQLiteRepository[PauseEntry]):
    """Pause store with the owning session and start time kept as columns.

    An index on ``(session_id, start_ts)`` lets ``list_by_session`` read one
    session's ledger without loading the rest of the table.
    """

    columns = ("session_id TEXT NOT NULL", "start_ts REAL NOT NULL")

    def _create_schema(self) -> None:
        super()._create_schema()
        self._connection.execute(
            f"CREATE INDEX IF NOT EXISTS ix_{self._table}_session "
            f"ON {self._table} (session_id, start_ts)"
        )

    def _column_values(self, item: PauseEntry) -> Tuple[Any, ...]:
        return (item.session_id, item.start_time.timestamp())

    def list_by_session(self, session_id: str) -> List[PauseEntry]:
        """Return the session's entries ordered by start time, then insertion."""

        with self._lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE session_id = ? "
                "ORDER BY start_ts, rowid",
                (session_id,),
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]


class TrackerDatabase:
    """Convenience facade bundling SQLite repositories for all record types."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self._lock = threading.RLock()
        self.employees = SQLiteRepository[Employee](connection, "employees", self._lock)
        self.machines = SQLiteRepository[Machine](connection, "machines", self._lock)
        self.molds = SQLiteRepository[Mold](connection, "molds", self._lock)
        self.raw_materials = SQLiteRepository[RawMaterial](
            connection, "raw_materials", self._lock
        )
        self.mold_materials = SQLiteRepository[MoldMaterial](
            connection, "mold_materials", self._lock
        )
        self.pause_reasons = SQLiteRepository[PauseReason](
            connection, "pause_reasons", self._lock
        )
        self.sessions = SQLiteRepository[ProductionSession](
            connection, "production_sessions", self._lock
        )
        self.pauses = SQLitePauseRepository(
            connection, "production_pauses", self._lock
        )
        logger.info("Opened tracker database at %s", path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "TrackerDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLitePauseRepository", "SQLiteRepository", "TrackerDatabase"]
