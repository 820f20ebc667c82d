"""Exception hierarchy raised by the production session engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .repository import RecordNotFoundError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .domain import SessionAction, SessionStatus


class TrackerError(RuntimeError):
    """Base exception for production tracking errors."""


class InvalidReferenceError(TrackerError):
    """Raised when a referenced employee, machine, mold, material or reason is unknown."""


class InvalidTransitionError(TrackerError):
    """Raised when an operation is not legal from the current session status."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional["SessionStatus"] = None,
        action: Optional["SessionAction"] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.action = action


class InvariantViolationError(TrackerError):
    """Raised when a session and its pause ledger disagree."""


class InvalidInputError(TrackerError, ValueError):
    """Raised for malformed metrics or lifecycle input."""


class SessionNotFoundError(TrackerError, RecordNotFoundError):
    """Raised when a production session id does not exist."""


class SessionBusyError(TrackerError):
    """Raised when the session lock cannot be acquired in time."""


__all__ = [
    "TrackerError",
    "InvalidReferenceError",
    "InvalidTransitionError",
    "InvariantViolationError",
    "InvalidInputError",
    "SessionNotFoundError",
    "SessionBusyError",
]
