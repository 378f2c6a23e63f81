"""Exception hierarchy shared by the hospital stores and controllers."""

from __future__ import annotations

__all__ = [
    "HospitalError",
    "NotFoundError",
    "DuplicateKeyError",
    "InvalidTransitionError",
    "InsufficientStockError",
    "TerminalStateError",
    "SlotUnavailableError",
    "IndexOutOfRangeError",
    "ValidationError",
    "PersistenceError",
    "AuthorizationError",
]


class HospitalError(RuntimeError):
    """Base exception for every failure raised by the hospital stores."""


class NotFoundError(HospitalError):
    """Raised when an entity id or name is not present in a store."""


class DuplicateKeyError(HospitalError):
    """Raised when inserting an entity whose key already exists."""


class InvalidTransitionError(HospitalError):
    """Raised when a status change is not allowed from the current status."""


class InsufficientStockError(HospitalError):
    """Raised when a stock decrease exceeds the current stock."""


class TerminalStateError(HospitalError):
    """Raised when mutating an appointment that is already COMPLETED or CANCELED."""


class SlotUnavailableError(HospitalError):
    """Raised when a doctor already holds an active appointment at a date-time."""


class IndexOutOfRangeError(HospitalError, IndexError):
    """Raised when deleting a medical record entry by an invalid index."""


class ValidationError(HospitalError, ValueError):
    """Raised for malformed amounts, dates, enum names or identifiers."""


class PersistenceError(HospitalError):
    """Raised when a CSV table cannot be written."""


class AuthorizationError(HospitalError):
    """Raised when a user attempts an operation outside their role."""
